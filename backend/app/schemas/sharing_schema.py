"""
schemas/sharing_schema.py: Marshmallow schemas for the expense sharing endpoints.

Validation responsibility:
  - This file (request shape, 400):
      - Field types, lengths, enum values, decimal precision
      - Participant emails are valid and lower-cased
      - DUPLICATE_PARTICIPANT      same email twice in one request
      - PERCENTAGE_TOTAL_EXCEEDED  PERCENTAGE shares add up to more than 100
      - share_percentage required for PERCENTAGE, share_amount for FIXED
  - services/sharing_service.py (needs the DB, 403/404/409/422):
      - Transaction ownership, type, existing share
      - Self-share, unknown participant emails
      - Fixed amounts exceeding the transaction total (split_calculator.py)

IMPORTANT: Inherits from marshmallow.Schema directly, never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from backend.app.errors import ErrorCode
from backend.app.models.shared_expense import SplitType
from backend.app.models.transaction import Currency
from backend.app.services.query_service import STATUS_FILTERS


# ── Shared validators ──────────────────────────────────────────────────────

def _validate_share_amount(value: Decimal) -> None:
    """Strictly positive, at most 2 decimal places. Never rounded."""
    if value <= Decimal("0"):
        raise ValidationError("Share amount must be greater than zero.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_share_percentage(value: Decimal) -> None:
    if value < Decimal("0") or value > Decimal("100"):
        raise ValidationError("Share percentage must be between 0 and 100.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _strip_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


# ── Sub-schema: one entry in the `participants` array ──────────────────────

class ParticipantInputSchema(Schema):

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255, error="Email must be at most 255 characters."),
    )

    # FIXED only.
    share_amount = fields.Decimal(
        load_default=None,
        allow_none=True,
        validate=_validate_share_amount,
    )

    # PERCENTAGE only.
    share_percentage = fields.Decimal(
        load_default=None,
        allow_none=True,
        validate=_validate_share_percentage,
    )

    @post_load
    def normalize_email(self, data: dict, **kwargs) -> dict:
        data["email"] = data["email"].strip().lower()
        return data


# ── Share an expense ───────────────────────────────────────────────────────

class ShareExpenseSchema(Schema):
    """
    POST /expenses/share

    Checks in this schema:
      - DUPLICATE_PARTICIPANT: same email (case-insensitive) appears twice
      - PERCENTAGE_TOTAL_EXCEEDED: percentages add up to more than 100
      - the per-participant field each split type needs is present
    """

    transaction_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="transaction_id must be a positive integer."),
    )

    split_type = fields.Enum(
        SplitType,
        load_default=SplitType.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    participants = fields.List(
        fields.Nested(ParticipantInputSchema),
        required=True,
        validate=validate.Length(min=1, error="At least one participant is required."),
    )

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=240, error="Description must be at most 240 characters."),
    )

    @validates_schema
    def validate_participants(self, data: dict, **kwargs) -> None:
        participants = data.get("participants") or []
        split_type = data.get("split_type", SplitType.EQUAL)

        emails = [p["email"] for p in participants]
        if len(emails) != len(set(emails)):
            raise ValidationError({"participants": [ErrorCode.DUPLICATE_PARTICIPANT]})

        if split_type == SplitType.PERCENTAGE:
            if any(p.get("share_percentage") is None for p in participants):
                raise ValidationError({
                    "participants": ["share_percentage is required for every participant in a PERCENTAGE split."],
                })
            total = sum((p["share_percentage"] for p in participants), Decimal("0"))
            if total > Decimal("100"):
                raise ValidationError({"participants": [ErrorCode.PERCENTAGE_TOTAL_EXCEEDED]})

        if split_type == SplitType.FIXED:
            if any(p.get("share_amount") is None for p in participants):
                raise ValidationError({
                    "participants": ["share_amount is required for every participant in a FIXED split."],
                })

    @post_load
    def normalize_description(self, data: dict, **kwargs) -> dict:
        data["description"] = _strip_to_none(data.get("description"))
        return data


# ── Decline a share ────────────────────────────────────────────────────────

class DeclineShareSchema(Schema):
    """POST /expenses/shares/:id/decline. Body is optional."""

    reason = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500, error="Reason must be at most 500 characters."),
    )

    @post_load
    def normalize_reason(self, data: dict, **kwargs) -> dict:
        data["reason"] = _strip_to_none(data.get("reason"))
        return data


# ── Settle all with a user ─────────────────────────────────────────────────

class SettleAllSchema(Schema):
    """POST /sharing/settle-all"""

    user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )

    currency = fields.Enum(
        Currency,
        required=True,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_CURRENCY},
    )


# ── Query-string schemas ───────────────────────────────────────────────────

class SharedExpenseListQuerySchema(Schema):
    """GET /expenses/shared-by-me?status=&limit=&offset="""

    status = fields.Str(
        load_default="all",
        validate=validate.OneOf(STATUS_FILTERS, error=ErrorCode.INVALID_STATUS_FILTER),
    )

    # The route clamps this to SHARED_EXPENSES_MAX_LIMIT.
    limit = fields.Int(
        load_default=None,
        validate=validate.Range(min=1, error="limit must be a positive integer."),
    )

    offset = fields.Int(
        load_default=0,
        validate=validate.Range(min=0, error="offset must not be negative."),
    )


class LookupUserSchema(Schema):
    """GET /sharing/lookup?email="""

    email = fields.Email(required=True)
