"""
tests/unit/test_split_calculator.py: Unit tests for services/split_calculator.py.

What this file proves:
  - EQUAL: owner-included divisor (n + 1) and owner-excluded divisor (n)
  - EQUAL / PERCENTAGE: sum(shares) <= total, short by at most 0.01 per participant
  - EQUAL with the owner excluded adds up to the total exactly, remainder to
    the first participant in sorted email order
  - PERCENTAGE: amounts from percentages, optional "must total 100" rule
  - FIXED: pass-through, negative rejected, over-allocation names sum and total
  - Same input, same output

No database, no Flask. Pure Decimal arithmetic.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from backend.app.errors import ErrorCode, InvalidSplitError, ValidationError
from backend.app.models.shared_expense import SplitType
from backend.app.services.split_calculator import (
    EqualShare,
    FixedShare,
    PercentageShare,
    ShareResult,
    build_share_specs,
    calculate_shares,
)


def _equal(*emails):
    return [EqualShare(e) for e in emails]


def _amounts(result: dict) -> list[Decimal]:
    return [r.amount for r in result.values()]


# ═══════════════════════════════════════════════════════════════════════════
# EQUAL
# ═══════════════════════════════════════════════════════════════════════════

class TestEqualSplit:

    def test_single_participant_gets_half_when_owner_included(self):
        result = calculate_shares(SplitType.EQUAL, Decimal("300.00"), _equal("b@x.com"))
        assert result == {"b@x.com": ShareResult(Decimal("150.00"))}

    def test_single_participant_gets_all_when_owner_excluded(self):
        result = calculate_shares(
            SplitType.EQUAL, Decimal("300.00"), _equal("b@x.com"), include_owner=False,
        )
        assert result["b@x.com"].amount == Decimal("300.00")

    def test_rounds_down_when_owner_included(self):
        result = calculate_shares(SplitType.EQUAL, Decimal("100.00"), _equal("b@x.com", "c@x.com"))
        assert _amounts(result) == [Decimal("33.33"), Decimal("33.33")]

    def test_remainder_to_first_sorted_email_when_owner_excluded(self):
        result = calculate_shares(
            SplitType.EQUAL,
            Decimal("100.00"),
            _equal("zed@x.com", "amy@x.com", "kim@x.com"),
            include_owner=False,
        )
        assert result["amy@x.com"].amount == Decimal("33.34")
        assert result["kim@x.com"].amount == Decimal("33.33")
        assert result["zed@x.com"].amount == Decimal("33.33")
        assert sum(_amounts(result)) == Decimal("100.00")

    def test_preserves_input_order(self):
        result = calculate_shares(SplitType.EQUAL, Decimal("90.00"), _equal("z@x.com", "a@x.com"))
        assert list(result) == ["z@x.com", "a@x.com"]

    def test_no_percentage_on_equal_shares(self):
        result = calculate_shares(SplitType.EQUAL, Decimal("10.00"), _equal("b@x.com"))
        assert result["b@x.com"].percentage is None

    @pytest.mark.parametrize("total", ["0.01", "0.10", "1.00", "99.99", "100.00", "1234.57"])
    @pytest.mark.parametrize("count", [1, 2, 3, 7])
    @pytest.mark.parametrize("include_owner", [True, False])
    def test_sum_never_exceeds_total(self, total, count, include_owner):
        emails = [f"p{i}@x.com" for i in range(count)]
        total = Decimal(total)
        result = calculate_shares(
            SplitType.EQUAL, total, _equal(*emails), include_owner=include_owner,
        )

        shares_sum = sum(_amounts(result))
        assert shares_sum <= total
        if include_owner:
            owner_share = total - shares_sum
            assert owner_share >= max(_amounts(result)) - Decimal("0.01") * count
        else:
            assert shares_sum == total
        for amount in _amounts(result):
            assert amount.as_tuple().exponent == -2


# ═══════════════════════════════════════════════════════════════════════════
# PERCENTAGE
# ═══════════════════════════════════════════════════════════════════════════

class TestPercentageSplit:

    def test_amounts_follow_percentages(self):
        result = calculate_shares(
            SplitType.PERCENTAGE,
            Decimal("200.00"),
            [PercentageShare("b@x.com", Decimal("30")), PercentageShare("c@x.com", Decimal("20"))],
        )
        assert result["b@x.com"] == ShareResult(Decimal("60.00"), Decimal("30"))
        assert result["c@x.com"] == ShareResult(Decimal("40.00"), Decimal("20"))

    def test_rounding_stays_within_one_cent_per_participant(self):
        specs = [PercentageShare(f"p{i}@x.com", Decimal("33.33")) for i in range(3)]
        result = calculate_shares(SplitType.PERCENTAGE, Decimal("10.00"), specs)

        shares_sum = sum(_amounts(result))
        expected = Decimal("10.00") * Decimal("99.99") / 100
        assert shares_sum <= expected
        assert expected - shares_sum <= Decimal("0.01") * 3

    def test_partial_percentage_allowed_by_default(self):
        result = calculate_shares(
            SplitType.PERCENTAGE, Decimal("100.00"), [PercentageShare("b@x.com", Decimal("40"))],
        )
        assert result["b@x.com"].amount == Decimal("40.00")

    def test_partial_percentage_rejected_when_full_split_required(self):
        with pytest.raises(InvalidSplitError) as exc_info:
            calculate_shares(
                SplitType.PERCENTAGE,
                Decimal("100.00"),
                [PercentageShare("b@x.com", Decimal("40"))],
                require_full_percentage=True,
            )
        assert exc_info.value.code == ErrorCode.PERCENTAGE_TOTAL_MISMATCH
        assert exc_info.value.details == {"sum": "40.00"}

    def test_exactly_100_accepted_when_full_split_required(self):
        result = calculate_shares(
            SplitType.PERCENTAGE,
            Decimal("50.00"),
            [PercentageShare("b@x.com", Decimal("75")), PercentageShare("c@x.com", Decimal("25"))],
            require_full_percentage=True,
        )
        assert sum(_amounts(result)) == Decimal("50.00")

    def test_total_above_100_rejected(self):
        with pytest.raises(InvalidSplitError) as exc_info:
            calculate_shares(
                SplitType.PERCENTAGE,
                Decimal("100.00"),
                [PercentageShare("b@x.com", Decimal("60")), PercentageShare("c@x.com", Decimal("50"))],
            )
        assert exc_info.value.code == ErrorCode.SPLIT_TOTAL_EXCEEDED

    @pytest.mark.parametrize("pct", ["-1", "100.01"])
    def test_out_of_range_percentage_rejected(self, pct):
        with pytest.raises(InvalidSplitError) as exc_info:
            calculate_shares(
                SplitType.PERCENTAGE, Decimal("100.00"), [PercentageShare("b@x.com", Decimal(pct))],
            )
        assert exc_info.value.code == ErrorCode.INVALID_SPLIT

    def test_share_without_percentage_rejected(self):
        with pytest.raises(InvalidSplitError) as exc_info:
            calculate_shares(SplitType.PERCENTAGE, Decimal("100.00"), _equal("b@x.com"))
        assert exc_info.value.code == ErrorCode.INVALID_SPLIT
        assert exc_info.value.details == {"email": "b@x.com"}


# ═══════════════════════════════════════════════════════════════════════════
# FIXED
# ═══════════════════════════════════════════════════════════════════════════

class TestFixedSplit:

    def test_amounts_pass_through(self):
        result = calculate_shares(
            SplitType.FIXED,
            Decimal("100.00"),
            [FixedShare("b@x.com", Decimal("25.50")), FixedShare("c@x.com", Decimal("10.00"))],
        )
        assert result["b@x.com"].amount == Decimal("25.50")
        assert result["c@x.com"].amount == Decimal("10.00")

    def test_sum_equal_to_total_accepted(self):
        result = calculate_shares(
            SplitType.FIXED, Decimal("100.00"), [FixedShare("b@x.com", Decimal("100.00"))],
        )
        assert result["b@x.com"].amount == Decimal("100.00")

    def test_over_allocation_names_sum_and_total(self):
        with pytest.raises(InvalidSplitError) as exc_info:
            calculate_shares(
                SplitType.FIXED,
                Decimal("100.00"),
                [FixedShare("b@x.com", Decimal("60.00")), FixedShare("c@x.com", Decimal("50.00"))],
            )
        err = exc_info.value
        assert err.code == ErrorCode.SPLIT_TOTAL_EXCEEDED
        assert err.http_status == 422
        assert err.message == (
            "Total share amounts (110.00) cannot exceed transaction total (100.00)."
        )
        assert err.details == {"sum": "110.00", "total": "100.00"}

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidSplitError) as exc_info:
            calculate_shares(
                SplitType.FIXED, Decimal("100.00"), [FixedShare("b@x.com", Decimal("-1.00"))],
            )
        assert exc_info.value.code == ErrorCode.INVALID_SPLIT


# ═══════════════════════════════════════════════════════════════════════════
# Shared behaviour
# ═══════════════════════════════════════════════════════════════════════════

class TestCalculateShares:

    def test_empty_participant_list_rejected(self):
        with pytest.raises(InvalidSplitError):
            calculate_shares(SplitType.EQUAL, Decimal("100.00"), [])

    def test_invalid_split_error_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            calculate_shares(SplitType.FIXED, Decimal("1.00"), [FixedShare("b@x.com", Decimal("2.00"))])

    def test_identical_input_gives_identical_output(self):
        specs = [PercentageShare("b@x.com", Decimal("12.5")), PercentageShare("c@x.com", Decimal("37.5"))]
        first = calculate_shares(SplitType.PERCENTAGE, Decimal("99.99"), specs)
        second = calculate_shares(SplitType.PERCENTAGE, Decimal("99.99"), list(specs))
        assert first == second
        assert list(first) == list(second)

    def test_accepts_split_type_value_string(self):
        result = calculate_shares("EQUAL", Decimal("20.00"), _equal("b@x.com"))
        assert result["b@x.com"].amount == Decimal("10.00")


# ═══════════════════════════════════════════════════════════════════════════
# build_share_specs
# ═══════════════════════════════════════════════════════════════════════════

class TestBuildShareSpecs:

    def test_equal_ignores_amount_fields(self):
        specs = build_share_specs(
            SplitType.EQUAL, [{"email": " B@X.com ", "share_amount": Decimal("5")}],
        )
        assert specs == [EqualShare("b@x.com")]

    def test_percentage_builds_percentage_specs(self):
        specs = build_share_specs(
            SplitType.PERCENTAGE, [{"email": "b@x.com", "share_percentage": Decimal("40")}],
        )
        assert specs == [PercentageShare("b@x.com", Decimal("40"))]

    def test_fixed_builds_fixed_specs(self):
        specs = build_share_specs(
            SplitType.FIXED, [{"email": "b@x.com", "share_amount": Decimal("12.00")}],
        )
        assert specs == [FixedShare("b@x.com", Decimal("12.00"))]

    def test_percentage_without_value_rejected(self):
        with pytest.raises(InvalidSplitError) as exc_info:
            build_share_specs(SplitType.PERCENTAGE, [{"email": "b@x.com", "share_percentage": None}])
        assert exc_info.value.code == ErrorCode.INVALID_SPLIT

    def test_fixed_without_amount_rejected(self):
        with pytest.raises(InvalidSplitError) as exc_info:
            build_share_specs(SplitType.FIXED, [{"email": "b@x.com"}])
        assert exc_info.value.details == {"email": "b@x.com"}
