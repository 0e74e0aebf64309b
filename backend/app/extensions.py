"""
extensions.py: Flask extension singletons.

Initialises SQLAlchemy and marshmallow as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

    from backend.app.extensions import db, ma

Do not pass the app object directly to SQLAlchemy() or Marshmallow() at
import time. That would prevent running tests with a separate test app.
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Schema inheritance rule:
#   Validation schemas in app/schemas/ inherit from marshmallow.Schema
#   directly, NOT from ma.Schema. ma.Schema needs an active application
#   context and the unit tests in tests/unit/ run without one.
#
#   Correct:
#       from marshmallow import Schema, fields
#       class ShareExpenseSchema(Schema): ...
#
#   Incorrect:
#       class ShareExpenseSchema(ma.Schema): ...   # breaks unit tests
ma = Marshmallow()
