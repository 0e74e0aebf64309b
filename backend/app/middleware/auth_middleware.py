"""
middleware/auth_middleware.py: JWT authentication decorator.

Access tokens are issued by the Balance Beacon auth service; this engine
only verifies them with the shared JWT_SECRET_KEY.

The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Decodes and verifies the JWT signature (JWT_ALGORITHM, HS256 by default)
  3. Checks token expiry
  4. Attaches user_id (int, from the `sub` claim) to flask.g
  5. Raises the appropriate 401 error if any step fails

Responsibility boundary:
  - Authentication only (401). Whether the user owns a transaction or a
    share is decided in services/authorization.py (403).
  - Services receive user_id as a plain integer argument, with no knowledge
    of JWT or HTTP headers.

Error codes:
  TOKEN_MISSING  (401): no Authorization header
  TOKEN_INVALID  (401): malformed header, invalid signature, or bad payload
  TOKEN_EXPIRED  (401): valid token but exp claim is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from backend.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Every sharing endpoint acts on behalf of a user, so every route carries it:

        @expenses_bp.route("/share", methods=["POST"])
        @require_auth
        def share_expense():
            owner_id = g.user_id  # always an int when this runs
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        g.user_id = authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _unauthorized(code: str, message: str) -> AppError:
    return AppError(code, message, 401)


def _bearer_token() -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        raise _unauthorized(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
        )

    scheme, _, token = auth_header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise _unauthorized(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
        )
    return token


def authenticate_request() -> int:
    """
    Verifies the request's access token and returns the user id it carries.

    Separate from the decorator so tests can call it inside a request
    context without a view function. Raises AppError (401) on any failure;
    the global error handler renders it.
    """
    token = _bearer_token()

    try:
        payload = jwt.decode(
            token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
            options={"require": ["sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Sign in again to continue.",
        )
    except jwt.InvalidTokenError:
        # Bad signature, malformed token, missing sub, invalid claims.
        raise _unauthorized(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
        )

    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        raise _unauthorized(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the access token is not a valid user ID.",
        )
