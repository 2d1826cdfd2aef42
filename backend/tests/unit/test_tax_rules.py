"""
Unit tests for tax, deduction and financial year rules.
"""

from datetime import date

import pytest

from famfin.models.tax import DeductionCategory
from famfin.rules.deductions import (
    calculate_vehicle_deduction,
    calculate_wfh_deduction,
    estimate_annual_wfh_deduction,
    should_flag_deduction,
    wfh_hours_from_weekly,
)
from famfin.rules.financial_year import (
    days_until_eofy,
    financial_year_bounds,
    financial_year_for,
    financial_year_start,
)
from famfin.rules.tax import (
    calculate_hecs_repayment,
    calculate_income_tax,
    calculate_medicare_levy,
    calculate_medicare_surcharge,
    calculate_tax,
    marginal_tax_rate,
    tax_bracket_label,
)


class TestIncomeTax:
    """Tests for the 2024-25 resident tax brackets."""

    @pytest.mark.parametrize(
        "income,expected",
        [
            (0, 0),
            (18200, 0),
            (45000, 4288),
            (100000, 20788),
            (135000, 31288),
            (200000, 56138),
        ],
    )
    def test_calculate_income_tax(self, income, expected):
        """Test tax at and between bracket thresholds."""
        assert calculate_income_tax(income) == pytest.approx(expected)

    def test_marginal_rate_and_label(self):
        """Test marginal rate lookup and the bracket description."""
        assert marginal_tax_rate(100000) == 0.30
        assert marginal_tax_rate(10000) == 0.0
        assert tax_bracket_label(100000) == "$45,001 - $135,000 (30%)"
        assert tax_bracket_label(250000) == "$190,001+ (45%)"
        assert tax_bracket_label(5000) == "$0 - $18,200 (0%)"


class TestMedicare:
    """Tests for Medicare levy and surcharge."""

    def test_levy_exempt_below_threshold(self):
        assert calculate_medicare_levy(26000) == 0

    def test_levy_shade_in(self):
        """Test the 10% shade-in between the thresholds."""
        assert calculate_medicare_levy(30000) == pytest.approx(400)

    def test_levy_full_rate(self):
        assert calculate_medicare_levy(100000) == pytest.approx(2000)

    def test_surcharge_only_without_private_health(self):
        """Test surcharge applies only without hospital cover."""
        assert calculate_medicare_surcharge(120000, has_private_health=True) == 0
        assert calculate_medicare_surcharge(120000, has_private_health=False) == pytest.approx(1200)
        assert calculate_medicare_surcharge(90000, has_private_health=False) == 0


class TestHecs:
    """Tests for HELP compulsory repayments."""

    def test_no_debt_no_repayment(self):
        assert calculate_hecs_repayment(100000, has_hecs_debt=False) == 0

    def test_below_threshold(self):
        assert calculate_hecs_repayment(50000, has_hecs_debt=True) == 0

    def test_rate_applies_to_whole_income(self):
        """Test the tier rate is charged on the full repayment income."""
        assert calculate_hecs_repayment(60000, has_hecs_debt=True) == pytest.approx(600)


class TestCalculateTax:
    """Tests for the full per-person calculation."""

    def test_basic_calculation(self):
        """Test a simple salary with no deductions."""
        result = calculate_tax(100000)

        assert result.taxable_income == 100000
        assert result.income_tax == 20788
        assert result.medicare_levy == 2000
        assert result.net_tax_payable == 22788
        assert result.effective_tax_rate == 22.79
        assert result.marginal_tax_rate == 30.0

    def test_deductions_reduce_taxable_income(self):
        result = calculate_tax(100000, deductions=10000)

        assert result.taxable_income == 90000
        assert result.income_tax == 17788

    def test_franking_credits_grossed_up_and_offset(self):
        """Test franking credits are added to income then refunded as an offset."""
        result = calculate_tax(50000, franking_credits=3000)

        assert result.grossed_up_income == 53000
        assert result.income_tax == 6688
        assert result.medicare_levy == 1060
        assert result.total_tax_before_offsets == 7748
        assert result.net_tax_payable == 4748

    def test_net_tax_never_negative(self):
        """Test excess franking credits do not produce negative tax."""
        result = calculate_tax(10000, franking_credits=2000)

        assert result.net_tax_payable == 0

    def test_to_dict(self):
        data = calculate_tax(80000).to_dict()

        assert data["gross_income"] == 80000
        assert "tax_bracket" in data


class TestDeductionRules:
    """Tests for work-related deduction helpers."""

    def test_wfh_fixed_rate(self):
        result = calculate_wfh_deduction(100)

        assert result.rate_per_hour == 0.67
        assert result.total_deduction == 67.0

    def test_annual_wfh_estimate(self):
        assert wfh_hours_from_weekly(10) == 480
        assert estimate_annual_wfh_deduction(10) == 321.6

    def test_vehicle_capped_at_5000_km(self):
        assert calculate_vehicle_deduction(1000) == 850.0
        assert calculate_vehicle_deduction(6000) == 4250.0
        assert calculate_vehicle_deduction(-5) == 0

    @pytest.mark.parametrize(
        "category,amount,has_receipt,flagged",
        [
            (DeductionCategory.CLOTHING_LAUNDRY, 200, False, True),
            (DeductionCategory.CLOTHING_LAUNDRY, 100, False, False),
            (DeductionCategory.TOOLS_EQUIPMENT, 250, False, False),
            (DeductionCategory.PHONE_INTERNET, 10, False, True),
            (DeductionCategory.PHONE_INTERNET, 10, True, False),
            (DeductionCategory.OTHER, 1500, False, True),
            (DeductionCategory.OTHER, 500, False, False),
            (DeductionCategory.WORK_FROM_HOME, 50, False, True),
            (DeductionCategory.WORK_FROM_HOME, 50, True, False),
        ],
    )
    def test_should_flag_deduction(self, category, amount, has_receipt, flagged):
        """Test receipt thresholds, large claims and WFH records."""
        assert should_flag_deduction(category, amount, has_receipt).flag is flagged

    def test_flag_reasons(self):
        clothing = should_flag_deduction(DeductionCategory.CLOTHING_LAUNDRY, 200, False)
        wfh = should_flag_deduction(DeductionCategory.WORK_FROM_HOME, 50, False)

        assert "$150" in clothing.reason
        assert "timesheet" in wfh.reason

    def test_unknown_category_treated_as_other(self):
        assert should_flag_deduction("not-a-category", 2000, False).flag is True


class TestFinancialYear:
    """Tests for financial year helpers."""

    @pytest.mark.parametrize(
        "day,expected",
        [
            (date(2024, 7, 1), "2024-25"),
            (date(2025, 6, 30), "2024-25"),
            (date(2025, 1, 15), "2024-25"),
            (date(1999, 12, 31), "1999-00"),
        ],
    )
    def test_financial_year_for(self, day, expected):
        assert financial_year_for(day) == expected

    def test_financial_year_start(self):
        assert financial_year_start("2024-25") == 2024
        assert financial_year_start("1999-00") == 1999

    @pytest.mark.parametrize("fy", ["2024-26", "2024", "abc", "24-25", "2024-2025"])
    def test_invalid_financial_year(self, fy):
        with pytest.raises(ValueError):
            financial_year_start(fy)

    def test_bounds(self):
        assert financial_year_bounds("2024-25") == (date(2024, 7, 1), date(2025, 6, 30))

    def test_days_until_eofy(self):
        """Test countdown to 30 June, including the day itself."""
        assert days_until_eofy(date(2025, 6, 30)) == 0
        assert days_until_eofy(date(2025, 6, 1)) == 29
        assert days_until_eofy(date(2025, 7, 1)) == 364
