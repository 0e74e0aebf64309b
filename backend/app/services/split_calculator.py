"""
services/split_calculator.py: Share computation for shared expenses.

Pure Python. No database, no Flask, no clock. For identical inputs the
output is identical, so a retried share request computes the same rows.

Split types are a closed set. Each participant share is one of three frozen
dataclasses carrying only the field its split type needs:

  EQUAL       EqualShare(email)
  PERCENTAGE  PercentageShare(email, percentage)
  FIXED       FixedShare(email, amount)

calculate_shares() dispatches on the split type and returns
{email: ShareResult(amount, percentage)} in input order.

Rounding:
  All amounts use ROUND_DOWN to 2 decimal places, so the sum of computed
  shares never exceeds the total. For EQUAL with the owner included and for
  PERCENTAGE, the cents lost to rounding stay with the owner (bounded by
  0.01 per participant). For EQUAL with the owner excluded, the remainder
  goes to the first participant in sorted email order and the shares add
  up to the total exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Callable, Iterable, Union

from backend.app.errors import ErrorCode, InvalidSplitError
from backend.app.models.shared_expense import SplitType

_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")


# ── Participant specs (one variant per split type) ─────────────────────────

@dataclass(frozen=True)
class EqualShare:
    email: str


@dataclass(frozen=True)
class PercentageShare:
    email: str
    percentage: Decimal


@dataclass(frozen=True)
class FixedShare:
    email: str
    amount: Decimal


ShareSpec = Union[EqualShare, PercentageShare, FixedShare]


@dataclass(frozen=True)
class ShareResult:
    amount: Decimal
    percentage: Decimal | None = None


# ── Building specs from validated request data ─────────────────────────────

def build_share_specs(split_type: SplitType, participants: Iterable[dict]) -> list[ShareSpec]:
    """
    Converts validated participant dicts into the variant matching split_type.

    Raises InvalidSplitError if a PERCENTAGE participant has no
    share_percentage or a FIXED participant has no share_amount.
    Fields that do not belong to the split type are ignored.
    """
    specs: list[ShareSpec] = []
    for p in participants:
        email = p["email"].strip().lower()

        if split_type == SplitType.EQUAL:
            specs.append(EqualShare(email))

        elif split_type == SplitType.PERCENTAGE:
            percentage = p.get("share_percentage")
            if percentage is None:
                raise InvalidSplitError(
                    ErrorCode.INVALID_SPLIT,
                    f"Share percentage is required for {email} in a PERCENTAGE split.",
                    field="participants",
                    details={"email": email},
                )
            specs.append(PercentageShare(email, Decimal(percentage)))

        elif split_type == SplitType.FIXED:
            amount = p.get("share_amount")
            if amount is None:
                raise InvalidSplitError(
                    ErrorCode.INVALID_SPLIT,
                    f"Share amount is required for {email} in a FIXED split.",
                    field="participants",
                    details={"email": email},
                )
            specs.append(FixedShare(email, Decimal(amount)))

        else:
            raise InvalidSplitError(
                ErrorCode.INVALID_SPLIT,
                f"Unsupported split type: {split_type}.",
                field="split_type",
            )
    return specs


# ── Per-variant calculators ────────────────────────────────────────────────

def _equal(
        total: Decimal,
        specs: list[ShareSpec],
        include_owner: bool,
        require_full_percentage: bool,
) -> dict[str, ShareResult]:
    divisor = len(specs) + 1 if include_owner else len(specs)
    base = (total / Decimal(divisor)).quantize(_CENT, rounding=ROUND_DOWN)

    shares = {s.email: ShareResult(base) for s in specs}

    if not include_owner:
        remainder = total - base * len(specs)
        if remainder > 0:
            first = sorted(shares)[0]
            shares[first] = ShareResult(base + remainder)
    return shares


def _percentage(
        total: Decimal,
        specs: list[ShareSpec],
        include_owner: bool,
        require_full_percentage: bool,
) -> dict[str, ShareResult]:
    for s in specs:
        if not isinstance(s, PercentageShare):
            raise InvalidSplitError(
                ErrorCode.INVALID_SPLIT,
                f"Share percentage is required for {s.email} in a PERCENTAGE split.",
                field="participants",
                details={"email": s.email},
            )
        if s.percentage < 0 or s.percentage > _HUNDRED:
            raise InvalidSplitError(
                ErrorCode.INVALID_SPLIT,
                f"Share percentage for {s.email} must be between 0 and 100.",
                field="participants",
                details={"email": s.email, "percentage": str(s.percentage)},
            )

    pct_sum = sum((s.percentage for s in specs), Decimal("0"))
    if pct_sum > _HUNDRED:
        raise InvalidSplitError(
            ErrorCode.SPLIT_TOTAL_EXCEEDED,
            f"Total percentage ({pct_sum:.2f}) cannot exceed 100.",
            field="participants",
            details={"sum": f"{pct_sum:.2f}", "total": "100.00"},
        )
    if require_full_percentage and pct_sum != _HUNDRED:
        raise InvalidSplitError(
            ErrorCode.PERCENTAGE_TOTAL_MISMATCH,
            f"Share percentages must add up to 100 (got {pct_sum:.2f}).",
            field="participants",
            details={"sum": f"{pct_sum:.2f}"},
        )

    return {
        s.email: ShareResult(
            (total * s.percentage / _HUNDRED).quantize(_CENT, rounding=ROUND_DOWN),
            s.percentage,
        )
        for s in specs
    }


def _fixed(
        total: Decimal,
        specs: list[ShareSpec],
        include_owner: bool,
        require_full_percentage: bool,
) -> dict[str, ShareResult]:
    for s in specs:
        if not isinstance(s, FixedShare):
            raise InvalidSplitError(
                ErrorCode.INVALID_SPLIT,
                f"Share amount is required for {s.email} in a FIXED split.",
                field="participants",
                details={"email": s.email},
            )
        if s.amount < 0:
            raise InvalidSplitError(
                ErrorCode.INVALID_SPLIT,
                f"Share amount for {s.email} cannot be negative.",
                field="participants",
                details={"email": s.email, "amount": str(s.amount)},
            )

    fixed_sum = sum((s.amount for s in specs), Decimal("0"))
    if fixed_sum > total:
        raise InvalidSplitError(
            ErrorCode.SPLIT_TOTAL_EXCEEDED,
            f"Total share amounts ({fixed_sum:.2f}) cannot exceed "
            f"transaction total ({total:.2f}).",
            field="participants",
            details={"sum": f"{fixed_sum:.2f}", "total": f"{total:.2f}"},
        )

    return {s.email: ShareResult(s.amount) for s in specs}


_CALCULATORS: dict[SplitType, Callable[..., dict[str, ShareResult]]] = {
    SplitType.EQUAL:      _equal,
    SplitType.PERCENTAGE: _percentage,
    SplitType.FIXED:      _fixed,
}


# ── Public entry point ─────────────────────────────────────────────────────

def calculate_shares(
        split_type: SplitType,
        total_amount: Decimal,
        specs: list[ShareSpec],
        include_owner: bool = True,
        require_full_percentage: bool = False,
) -> dict[str, ShareResult]:
    """
    Computes each participant's share of total_amount.

    Args:
        split_type:              EQUAL, PERCENTAGE or FIXED.
        total_amount:            The shared expense total. Must be Decimal.
        specs:                   One spec per participant (see build_share_specs).
        include_owner:           EQUAL only. True divides by participants + 1
                                 (the owner keeps one share), False by participants.
        require_full_percentage: PERCENTAGE only. True requires the percentages
                                 to add up to exactly 100.

    Returns:
        {email: ShareResult} in the order of `specs`.

    Raises:
        InvalidSplitError (422) on a missing or out-of-range percentage, a
        negative or over-allocated fixed amount, or an empty participant list.
    """
    if not specs:
        raise InvalidSplitError(
            ErrorCode.INVALID_SPLIT,
            "At least one participant is required.",
            field="participants",
        )

    calculator = _CALCULATORS.get(SplitType(split_type))
    if calculator is None:  # pragma: no cover
        raise InvalidSplitError(
            ErrorCode.INVALID_SPLIT,
            f"Unsupported split type: {split_type}.",
            field="split_type",
        )

    return calculator(
        Decimal(total_amount),
        specs,
        include_owner,
        require_full_percentage,
    )
