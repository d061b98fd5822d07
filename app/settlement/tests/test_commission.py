"""
Tests for CommissionCalculator.

Covers:
- Floor rounding of the platform cut, seller receiving the remainder
- Minimum and maximum fee clamping
- Scheme resolution: category, default category, fallback percentage
- Rejection of non-positive amounts and unbalanced schemes
- Provider processing fee and its bounds
"""

from decimal import Decimal

import pytest

from core.exceptions import ValidationError
from settlement.exceptions import InvalidRevenueShareSchemeError
from settlement.repositories import RevenueShareSchemeRepository
from settlement.services import CommissionCalculator
from settlement.tests.factories import RevenueShareSchemeFactory


class TestComputeSplit:
    """Tests for the pure split computation."""

    def test_ten_percent_split(self):
        split = CommissionCalculator.compute_split(10_000, Decimal("0.10"))

        assert split.platform_cut_cents == 1_000
        assert split.seller_net_cents == 9_000
        assert split.amount_cents == 10_000

    def test_cut_is_floored(self):
        """0.15 x 999 = 149.85, floored to 149."""
        split = CommissionCalculator.compute_split(999, Decimal("0.15"))

        assert split.platform_cut_cents == 149
        assert split.seller_net_cents == 850

    @pytest.mark.parametrize("amount", [1, 7, 333, 10_001, 987_654_321])
    def test_shares_always_add_up(self, amount):
        split = CommissionCalculator.compute_split(amount, Decimal("0.1234"))

        assert split.platform_cut_cents + split.seller_net_cents == amount
        assert split.platform_cut_cents >= 0
        assert split.seller_net_cents >= 0

    def test_minimum_fee_applied(self):
        split = CommissionCalculator.compute_split(
            1_000, Decimal("0.05"), minimum_fee_cents=200
        )

        assert split.platform_cut_cents == 200
        assert split.seller_net_cents == 800

    def test_maximum_fee_applied(self):
        split = CommissionCalculator.compute_split(
            1_000_000, Decimal("0.10"), maximum_fee_cents=5_000
        )

        assert split.platform_cut_cents == 5_000
        assert split.seller_net_cents == 995_000

    def test_minimum_fee_never_exceeds_amount(self):
        split = CommissionCalculator.compute_split(
            50, Decimal("0.10"), minimum_fee_cents=200
        )

        assert split.platform_cut_cents == 50
        assert split.seller_net_cents == 0

    def test_zero_percentage_gives_seller_everything(self):
        split = CommissionCalculator.compute_split(10_000, Decimal("0"))

        assert split.platform_cut_cents == 0
        assert split.seller_net_cents == 10_000

    @pytest.mark.parametrize("amount", [0, -100])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValidationError):
            CommissionCalculator.compute_split(amount, Decimal("0.10"))

    def test_percentages_must_sum_to_one(self):
        with pytest.raises(InvalidRevenueShareSchemeError) as exc_info:
            CommissionCalculator.compute_split(
                10_000,
                Decimal("0.10"),
                seller_percentage=Decimal("0.80"),
            )

        assert exc_info.value.error_code == "INVALID_REVENUE_SHARE_SCHEME"
        assert exc_info.value.details["rule"] == "scheme_percentages_sum_to_one"

    def test_negative_percentage_rejected(self):
        with pytest.raises(InvalidRevenueShareSchemeError):
            CommissionCalculator.compute_split(10_000, Decimal("-0.10"))


@pytest.mark.django_db
class TestCalculate:
    """Tests for scheme resolution."""

    @pytest.fixture
    def calculator(self):
        return CommissionCalculator(
            RevenueShareSchemeRepository(),
            fallback_platform_percentage=Decimal("0.05"),
            default_category="default",
        )

    def test_uses_category_scheme(self, calculator):
        scheme = RevenueShareSchemeFactory(
            category="fashion",
            platform_percentage=Decimal("0.2000"),
            seller_percentage=Decimal("0.8000"),
        )

        split = calculator.calculate(10_000, "fashion")

        assert split.platform_cut_cents == 2_000
        assert split.scheme_id == scheme.id

    def test_uses_default_category_scheme(self, calculator):
        default = RevenueShareSchemeFactory(
            category="default",
            platform_percentage=Decimal("0.1500"),
            seller_percentage=Decimal("0.8500"),
        )

        split = calculator.calculate(10_000, "books")

        assert split.platform_cut_cents == 1_500
        assert split.scheme_id == default.id

    def test_inactive_scheme_ignored(self, calculator):
        RevenueShareSchemeFactory(category="fashion", is_active=False)

        split = calculator.calculate(10_000, "fashion")

        assert split.scheme_id is None
        assert split.platform_cut_cents == 500

    def test_fallback_percentage_without_scheme(self, calculator):
        split = calculator.calculate(10_000, "unknown")

        assert split.scheme_id is None
        assert split.platform_percentage == Decimal("0.05")
        assert split.platform_cut_cents == 500
        assert split.seller_net_cents == 9_500

    def test_scheme_fee_bounds_applied(self, calculator):
        RevenueShareSchemeFactory(
            category="luxury",
            platform_percentage=Decimal("0.1000"),
            seller_percentage=Decimal("0.9000"),
            maximum_fee_cents=2_500,
        )

        split = calculator.calculate(100_000, "luxury")

        assert split.platform_cut_cents == 2_500
        assert split.seller_net_cents == 97_500


@pytest.mark.django_db
class TestProcessingFee:
    """Provider fee bookkeeping alongside the split."""

    @pytest.fixture
    def calculator(self):
        return CommissionCalculator(
            RevenueShareSchemeRepository(),
            processing_fee_percentage=Decimal("0.025"),
            minimum_processing_fee_cents=5_000,
            maximum_processing_fee_cents=200_000,
        )

    @pytest.mark.parametrize(
        "amount, fee",
        [
            (1_000_000, 25_000),
            (100_000, 5_000),
            (20_000_000, 200_000),
            (3_000, 3_000),
        ],
    )
    def test_rate_clamped_to_bounds(self, calculator, amount, fee):
        assert calculator.processing_fee(amount) == fee

    def test_fee_leaves_shares_untouched(self, calculator):
        split = calculator.calculate(1_000_000, "unknown")

        assert split.processing_fee_cents == 25_000
        assert split.platform_cut_cents == 50_000
        assert split.seller_net_cents == 950_000

    def test_no_fee_configured(self):
        calculator = CommissionCalculator(RevenueShareSchemeRepository())

        assert calculator.calculate(10_000, "unknown").processing_fee_cents == 0
