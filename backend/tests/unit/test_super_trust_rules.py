"""
Unit tests for superannuation and trust distribution rules.
"""

from datetime import date

import pytest

from famfin.models.superannuation import ContributionType
from famfin.rules.superannuation import (
    age_on,
    bring_forward_eligibility,
    calculate_listo,
    carry_forward_eligible,
    check_division_293,
    contribution_caps,
    expected_employer_super,
    is_concessional,
    preservation_age,
    super_guarantee_rate,
)
from famfin.rules.trust import BeneficiaryIncome, DistributionScenario, model_distribution


class TestContributionCaps:
    """Tests for annual contribution caps and SG rates."""

    def test_caps_from_2024_25(self):
        caps = contribution_caps("2024-25")

        assert caps.concessional == 30000
        assert caps.non_concessional == 120000
        assert caps.bring_forward_amount == 360000

    def test_caps_before_2024_25(self):
        caps = contribution_caps("2023-24")

        assert caps.concessional == 27500
        assert caps.non_concessional == 110000

    @pytest.mark.parametrize(
        "fy,rate",
        [("2025-26", 0.12), ("2024-25", 0.115), ("2023-24", 0.11), ("2022-23", 0.105), ("2020-21", 0.10)],
    )
    def test_super_guarantee_rate(self, fy, rate):
        assert super_guarantee_rate(fy) == rate

    def test_expected_employer_super(self):
        assert expected_employer_super(100000, "2024-25") == 11500.0

    def test_is_concessional(self):
        assert is_concessional(ContributionType.EMPLOYER_SG) is True
        assert is_concessional("salary_sacrifice") is True
        assert is_concessional(ContributionType.SPOUSE) is False
        assert is_concessional("nonsense") is False


class TestSuperThresholds:
    """Tests for bring-forward, Division 293 and LISTO."""

    def test_bring_forward_unavailable_above_threshold(self):
        result = bring_forward_eligibility(2_000_000)

        assert result.available is False
        assert result.years_available == 0

    def test_bring_forward_two_years(self):
        result = bring_forward_eligibility(1_700_000)

        assert result.years_available == 2
        assert result.max_amount == 240000

    def test_bring_forward_three_years(self):
        result = bring_forward_eligibility(500_000)

        assert result.years_available == 3
        assert result.max_amount == 360000

    def test_division_293_applies_to_lesser_amount(self):
        """Test only the excess over $250k is taxed when smaller than contributions."""
        result = check_division_293(240000, 20000)

        assert result.applies is True
        assert result.taxable_amount == 10000
        assert result.tax == 1500

    def test_division_293_not_applied(self):
        result = check_division_293(200000, 20000)

        assert result.applies is False
        assert result.tax == 0

    def test_listo(self):
        """Test the 15% offset and its $500 cap."""
        assert calculate_listo(30000, 2000) == 300
        assert calculate_listo(30000, 5000) == 500
        assert calculate_listo(40000, 5000) == 0

    def test_carry_forward_balance_limit(self):
        assert carry_forward_eligible(None)
        assert carry_forward_eligible(499999.99)
        assert not carry_forward_eligible(500000)


class TestPreservationAge:
    """Tests for preservation age and member age."""

    @pytest.mark.parametrize(
        "born,age",
        [
            (date(1958, 3, 1), 55),
            (date(1960, 6, 30), 55),
            (date(1961, 1, 1), 56),
            (date(1963, 9, 9), 58),
            (date(1964, 6, 30), 59),
            (date(1965, 7, 1), 60),
            (date(1980, 1, 1), 60),
        ],
    )
    def test_preservation_age(self, born, age):
        assert preservation_age(born) == age

    def test_age_before_and_after_birthday(self):
        born = date(1970, 8, 15)

        assert age_on(born, date(2025, 8, 14)) == 54
        assert age_on(born, date(2025, 8, 15)) == 55
        assert age_on(born, date(2025, 12, 1)) == 55


class TestTrustDistributionModel:
    """Tests for trust distribution scenario modelling."""

    @pytest.fixture
    def beneficiaries(self):
        return [
            BeneficiaryIncome(key="alex", name="Alex", other_income=0),
            BeneficiaryIncome(key="sam", name="Sam", other_income=100000),
        ]

    def test_lowest_total_tax_wins(self, beneficiaries):
        """Test the scenario favouring the lower earner is best."""
        model = model_distribution(
            50000,
            0,
            beneficiaries,
            [
                DistributionScenario("Even split", {"alex": 50, "sam": 50}),
                DistributionScenario("All to Alex", {"alex": 100}),
                DistributionScenario("All to Sam", {"sam": 100}),
            ],
        )

        totals = {s.name: s.total_tax for s in model.scenarios}
        assert totals["All to Alex"] == pytest.approx(26576)
        assert totals["All to Sam"] == pytest.approx(36838)
        assert totals["Even split"] == pytest.approx(29376)
        assert model.best_scenario == "All to Alex"

    def test_franking_credits_follow_share(self, beneficiaries):
        model = model_distribution(10000, 3000, beneficiaries, [DistributionScenario("Alex", {"alex": 100})])

        alex, sam = model.scenarios[0].beneficiaries
        assert alex.franking_credits == 3000
        assert alex.taxable_income == 13000
        assert alex.tax == 0
        assert sam.distribution == 0

    def test_allocations_must_total_100(self, beneficiaries):
        with pytest.raises(ValueError, match="100%"):
            model_distribution(50000, 0, beneficiaries, [DistributionScenario("Short", {"alex": 60, "sam": 30})])

    def test_unknown_beneficiary_rejected(self, beneficiaries):
        with pytest.raises(ValueError, match="unknown"):
            model_distribution(50000, 0, beneficiaries, [DistributionScenario("Bad", {"kim": 100})])

    def test_negative_allocation_rejected(self, beneficiaries):
        with pytest.raises(ValueError, match="negative"):
            model_distribution(
                50000, 0, beneficiaries, [DistributionScenario("Bad", {"alex": 120, "sam": -20})]
            )

    def test_no_scenarios(self, beneficiaries):
        model = model_distribution(50000, 0, beneficiaries, [])

        assert model.scenarios == []
        assert model.best_scenario is None
