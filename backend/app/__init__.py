"""
app/__init__.py: Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time, which allows:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - `alembic` to import the models without starting the server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Set the level of the `backend` logger tree from LOG_LEVEL
  3. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  4. Build the email notifier and store it in app.extensions["notifier"]
  5. Register all route blueprints under /api/v1
  6. Register global error handlers (AppError → JSON, Exception → 500)
  7. Register a custom JSON provider to serialise Decimal as string
     (monetary amounts are transmitted as strings, never JS numbers)

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic inspects it. They are not used
  directly here; the import side-effect is sufficient.
"""

from __future__ import annotations

import logging
import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError as SchemaValidationError

from backend.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Flask's default JSON encoder does not handle Decimal.
# All monetary amounts are serialised as strings to preserve precision.

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Extends Flask's default JSON provider to serialise Decimal as str.

    Example: Decimal("150.00") → "150.00" (not 150.0)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".

    Returns:
        A fully configured Flask app ready to serve requests.
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    # ── Logging ────────────────────────────────────────────────────────────
    # Services log through logging.getLogger(__name__), i.e. children of
    # "backend". One level setting here covers all of them.
    logging.getLogger("backend").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from backend.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    from backend.app.services.notification_service import EmailNotifier
    app.extensions["notifier"] = EmailNotifier.from_config(app.config)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    # The imports are intentionally unused by name; side effect is the point.
    with app.app_context():
        from backend.app.models import (  # noqa: F401
            account,
            expense_participant,
            shared_expense,
            transaction,
            user,
        )

    # ── Blueprints ─────────────────────────────────────────────────────────
    _register_blueprints(app)

    # ── Error handlers ─────────────────────────────────────────────────────
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    Blueprint names match the route files in app/routes/.
    balances, settlements and users all hang off /api/v1/sharing; their
    paths do not overlap.
    """
    from backend.app.routes.balances import balances_bp
    from backend.app.routes.expenses import expenses_bp
    from backend.app.routes.settlements import settlements_bp
    from backend.app.routes.users import users_bp

    app.register_blueprint(expenses_bp,    url_prefix="/api/v1/expenses")
    app.register_blueprint(balances_bp,    url_prefix="/api/v1/sharing")
    app.register_blueprint(settlements_bp, url_prefix="/api/v1/sharing")
    app.register_blueprint(users_bp,       url_prefix="/api/v1/sharing")


def _first_schema_error(messages, path: tuple = ()) -> tuple[str | None, str]:
    """
    Walks a marshmallow messages structure down to its first leaf message.

    Returns (field_path, message), e.g. ("participants.0.email",
    "Not a valid email address."). Schema-level errors have no field.
    """
    if isinstance(messages, dict):
        for key, value in messages.items():
            segment = () if key == "_schema" else (str(key),)
            return _first_schema_error(value, path + segment)
    if isinstance(messages, list):
        if messages:
            return _first_schema_error(messages[0], path)
        return (".".join(path) or None), "Invalid value."
    return (".".join(path) or None), str(messages)


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError               → structured JSON error envelope with its HTTP status
      SchemaValidationError  → marshmallow errors as MISSING_FIELD / INVALID_FIELD
                               or a registered code (400)
      Exception              → generic INTERNAL_ERROR (500); traceback logged

    Stack traces never leave the server. Only
    {"error": {"code": "INTERNAL_ERROR", "message": "..."}} is returned and the
    traceback is written to the app logger.
    """
    from backend.app.errors import AppError, ErrorCode

    registered_codes = set(
        value for name, value in vars(ErrorCode).items() if not name.startswith("_")
    )

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.

        Routes never catch AppError; they let it propagate here.
        """
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(SchemaValidationError)
    def handle_validation_error(error: SchemaValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.

        Only the FIRST error is returned: one error, not many. If the
        message is itself a registered ErrorCode it becomes the code and a
        readable default message is substituted.
        """
        field, raw_message = _first_schema_error(error.messages)

        if raw_message in registered_codes:
            code = raw_message
            message = _code_to_message(code)
        elif raw_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        response_body = {"error": {"code": code, "message": message}}
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        HTTP errors raised by Flask itself (404 for unknown URLs, 405) keep
        their own status.
        """
        from werkzeug.exceptions import HTTPException

        if isinstance(error, HTTPException):
            return error

        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _code_to_message(code: str) -> str:
    """
    Returns a human-readable default message for a known error code.
    Used when a marshmallow ValidationError message IS the error code constant
    (e.g. DUPLICATE_PARTICIPANT raised from ShareExpenseSchema).
    """
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amounts must have at most 2 decimal places.",
        "INVALID_SPLIT_TYPE": "split_type must be 'EQUAL', 'PERCENTAGE' or 'FIXED'.",
        "INVALID_CURRENCY": "currency must be 'USD', 'EUR' or 'ILS'.",
        "INVALID_STATUS_FILTER": "status must be 'all', 'pending' or 'settled'.",
        "DUPLICATE_PARTICIPANT": "Each participant can only be added once.",
        "PERCENTAGE_TOTAL_EXCEEDED": "Share percentages cannot add up to more than 100.",
    }
    return _messages.get(code, "Invalid input.")
