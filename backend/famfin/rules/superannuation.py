"""
Superannuation contribution rules.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from famfin.models.superannuation import ContributionType
from famfin.rules.financial_year import financial_year_start

CONCESSIONAL_TYPES = frozenset(
    {
        ContributionType.EMPLOYER_SG,
        ContributionType.SALARY_SACRIFICE,
        ContributionType.PERSONAL_DEDUCTIBLE,
    }
)

DIVISION_293_THRESHOLD = 250000
DIVISION_293_RATE = 0.15

LISTO_INCOME_THRESHOLD = 37000
LISTO_RATE = 0.15
LISTO_MAX = 500

TSB_THRESHOLD = 1900000
TSB_TWO_YEAR_THRESHOLD = 1680000

# Unused concessional cap can only be carried forward below this total super balance
CARRY_FORWARD_BALANCE_LIMIT = 500000


@dataclass(frozen=True)
class ContributionCaps:
    concessional: float
    non_concessional: float
    bring_forward_amount: float
    bring_forward_available: bool = True


@dataclass(frozen=True)
class BringForward:
    available: bool
    years_available: int
    max_amount: float


@dataclass(frozen=True)
class Division293:
    applies: bool
    taxable_amount: float
    tax: float


def contribution_caps(fy: str) -> ContributionCaps:
    """Annual caps. The 2024-25 increase applies from that year on."""
    if financial_year_start(fy) >= 2024:
        return ContributionCaps(concessional=30000, non_concessional=120000, bring_forward_amount=360000)
    return ContributionCaps(concessional=27500, non_concessional=110000, bring_forward_amount=330000)


def super_guarantee_rate(fy: str) -> float:
    """Employer SG rate as a fraction of ordinary time earnings."""
    year = financial_year_start(fy)
    if year >= 2025:
        return 0.12
    if year >= 2024:
        return 0.115
    if year >= 2023:
        return 0.11
    if year >= 2022:
        return 0.105
    return 0.10


def expected_employer_super(annual_salary: float, fy: str) -> float:
    return round(annual_salary * super_guarantee_rate(fy), 2)


def bring_forward_eligibility(total_super_balance: float) -> BringForward:
    """Non-concessional bring-forward available for a total super balance."""
    if total_super_balance >= TSB_THRESHOLD:
        return BringForward(available=False, years_available=0, max_amount=120000)
    if total_super_balance >= TSB_TWO_YEAR_THRESHOLD:
        return BringForward(available=True, years_available=2, max_amount=240000)
    return BringForward(available=True, years_available=3, max_amount=360000)


def is_concessional(contribution_type: ContributionType | str) -> bool:
    try:
        return ContributionType(contribution_type) in CONCESSIONAL_TYPES
    except ValueError:
        return False


def check_division_293(taxable_income: float, concessional_contributions: float) -> Division293:
    """
    Extra 15% on concessional contributions for high earners.

    The taxed amount is the lesser of the excess over the threshold and the
    concessional contributions themselves.
    """
    combined = taxable_income + concessional_contributions
    if combined <= DIVISION_293_THRESHOLD:
        return Division293(applies=False, taxable_amount=0.0, tax=0.0)

    taxable_amount = min(combined - DIVISION_293_THRESHOLD, concessional_contributions)
    return Division293(
        applies=True,
        taxable_amount=round(taxable_amount, 2),
        tax=round(taxable_amount * DIVISION_293_RATE, 2),
    )


def calculate_listo(taxable_income: float, concessional_contributions: float) -> float:
    """Low Income Super Tax Offset, capped at $500."""
    if taxable_income > LISTO_INCOME_THRESHOLD:
        return 0.0
    return round(min(concessional_contributions * LISTO_RATE, LISTO_MAX), 2)


def carry_forward_eligible(total_super_balance: Optional[float]) -> bool:
    return (total_super_balance or 0) < CARRY_FORWARD_BALANCE_LIMIT


def preservation_age(date_of_birth: date) -> int:
    """Age super can be accessed on retirement, by birth year."""
    if date_of_birth.year <= 1960:
        return 55
    if date_of_birth.year <= 1964:
        return date_of_birth.year - 1905
    return 60


def age_on(date_of_birth: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    had_birthday = (today.month, today.day) >= (date_of_birth.month, date_of_birth.day)
    return today.year - date_of_birth.year - (0 if had_birthday else 1)
