"""
errors.py: AppError hierarchy and error code registry.

Every error returned by the sharing engine must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - New error codes require: add constant here + add test.
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).

Taxonomy:
  NotFoundError       404  referenced entity absent
  ForbiddenError      403  authenticated actor lacks rights over the resource
  ValidationError     422  violated business invariant
  InvalidSplitError   422  split computation failure (a ValidationError)
  ConflictError       409  uniqueness already satisfied (already shared)
  NotificationError   502  email collaborator reported failure

Note: ValidationError here is the domain error. marshmallow's ValidationError
(request-shape problems, 400) is a different class and is imported under an
alias wherever both are needed.
"""

from __future__ import annotations


class AppError(Exception):

    default_status: int = 500

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int | None = None,
            field: str | None = None,
            details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status if http_status is not None else self.default_status
        self.field       = field    # which request field caused the error
        self.details     = details  # structured context for the caller's UI

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details:
            payload["details"] = self.details
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class NotFoundError(AppError):
    default_status = 404


class ForbiddenError(AppError):
    default_status = 403


class ValidationError(AppError):
    default_status = 422


class InvalidSplitError(ValidationError):
    pass


class ConflictError(AppError):
    default_status = 409


class NotificationError(AppError):
    default_status = 502


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_SPLIT_TYPE         = "INVALID_SPLIT_TYPE"
    INVALID_CURRENCY           = "INVALID_CURRENCY"
    INVALID_STATUS_FILTER      = "INVALID_STATUS_FILTER"
    PERCENTAGE_TOTAL_EXCEEDED  = "PERCENTAGE_TOTAL_EXCEEDED"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    ALREADY_SHARED             = "ALREADY_SHARED"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    TRANSACTION_NOT_FOUND      = "TRANSACTION_NOT_FOUND"
    SHARED_EXPENSE_NOT_FOUND   = "SHARED_EXPENSE_NOT_FOUND"
    PARTICIPANT_NOT_FOUND      = "PARTICIPANT_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    INCOME_NOT_SHAREABLE       = "INCOME_NOT_SHAREABLE"
    SELF_SHARE                 = "SELF_SHARE"
    DUPLICATE_PARTICIPANT      = "DUPLICATE_PARTICIPANT"
    PARTICIPANTS_NOT_FOUND     = "PARTICIPANTS_NOT_FOUND"
    SHARE_NOT_PENDING          = "SHARE_NOT_PENDING"
    REMINDER_COOLDOWN_ACTIVE   = "REMINDER_COOLDOWN_ACTIVE"
    NO_PENDING_SHARES          = "NO_PENDING_SHARES"

    # Split computation (InvalidSplitError, 422)
    INVALID_SPLIT              = "INVALID_SPLIT"
    SPLIT_TOTAL_EXCEEDED       = "SPLIT_TOTAL_EXCEEDED"
    PERCENTAGE_TOTAL_MISMATCH  = "PERCENTAGE_TOTAL_MISMATCH"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed on this resource
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    NOT_TRANSACTION_OWNER      = "NOT_TRANSACTION_OWNER"  # 403
    NOT_EXPENSE_OWNER          = "NOT_EXPENSE_OWNER"      # 403
    NOT_SHARE_PARTICIPANT      = "NOT_SHARE_PARTICIPANT"  # 403

    # ── Collaborator Errors (502) ──────────────────────────────────────────
    NOTIFICATION_FAILED        = "NOTIFICATION_FAILED"

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"
