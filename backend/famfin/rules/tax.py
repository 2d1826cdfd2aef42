"""
Personal income tax rules for Australian residents (2024-25 tables).

Covers income tax brackets, the Medicare levy and surcharge, and HECS/HELP
compulsory repayments.
"""

from dataclasses import asdict, dataclass
from typing import Any

# (lower threshold, upper threshold, base tax, rate on income over lower)
TAX_BRACKETS_2024_25 = [
    (0, 18200, 0, 0.0),
    (18200, 45000, 0, 0.16),
    (45000, 135000, 4288, 0.30),
    (135000, 190000, 31288, 0.37),
    (190000, None, 51638, 0.45),
]

MEDICARE_EXEMPT_THRESHOLD = 26000
MEDICARE_SHADE_IN_THRESHOLD = 32500
MEDICARE_SHADE_IN_RATE = 0.10
MEDICARE_LEVY_RATE = 0.02

# (income up to, surcharge rate) for singles without private hospital cover
MEDICARE_SURCHARGE_TIERS = [
    (97000, 0.0),
    (130000, 0.01),
    (173000, 0.0125),
    (None, 0.015),
]

# (repayment income up to, rate applied to the whole income)
HECS_RATES_2024_25 = [
    (54435, 0.0),
    (62850, 0.01),
    (66620, 0.02),
    (70618, 0.025),
    (74855, 0.03),
    (79346, 0.035),
    (84107, 0.04),
    (89154, 0.045),
    (94503, 0.05),
    (100174, 0.055),
    (106185, 0.06),
    (112556, 0.065),
    (119309, 0.07),
    (126467, 0.075),
    (134056, 0.08),
    (142100, 0.085),
    (150626, 0.09),
    (159663, 0.095),
    (None, 0.10),
]


@dataclass
class TaxCalculation:
    """Full tax breakdown for one person."""

    gross_income: float
    deductions: float
    taxable_income: float
    franking_credits: float
    grossed_up_income: float
    income_tax: float
    medicare_levy: float
    medicare_surcharge: float
    hecs_repayment: float
    total_tax_before_offsets: float
    franking_credit_offset: float
    net_tax_payable: float
    effective_tax_rate: float
    marginal_tax_rate: float
    tax_bracket: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _bracket_for(taxable_income: float) -> tuple:
    for bracket in TAX_BRACKETS_2024_25:
        upper = bracket[1]
        if upper is None or taxable_income <= upper:
            return bracket
    return TAX_BRACKETS_2024_25[-1]


def calculate_income_tax(taxable_income: float) -> float:
    """Base income tax, excluding Medicare and HECS."""
    if taxable_income <= 0:
        return 0.0

    lower, _, base, rate = _bracket_for(taxable_income)
    return base + (taxable_income - lower) * rate


def marginal_tax_rate(taxable_income: float) -> float:
    """Marginal rate as a fraction (0.30 for 30%)."""
    return _bracket_for(max(taxable_income, 0))[3]


def tax_bracket_label(taxable_income: float) -> str:
    lower, upper, _, rate = _bracket_for(max(taxable_income, 0))
    percent = f"{rate * 100:g}%"
    start = 0 if lower == 0 else lower + 1
    if upper is None:
        return f"${start:,}+ ({percent})"
    return f"${start:,} - ${upper:,} ({percent})"


def calculate_medicare_levy(taxable_income: float) -> float:
    """2% levy with the low income shade-in between 26,000 and 32,500."""
    if taxable_income <= MEDICARE_EXEMPT_THRESHOLD:
        return 0.0
    if taxable_income <= MEDICARE_SHADE_IN_THRESHOLD:
        return (taxable_income - MEDICARE_EXEMPT_THRESHOLD) * MEDICARE_SHADE_IN_RATE
    return taxable_income * MEDICARE_LEVY_RATE


def calculate_medicare_surcharge(taxable_income: float, has_private_health: bool = True) -> float:
    if has_private_health:
        return 0.0

    for upper, rate in MEDICARE_SURCHARGE_TIERS:
        if upper is None or taxable_income <= upper:
            return taxable_income * rate
    return 0.0


def calculate_hecs_repayment(repayment_income: float, has_hecs_debt: bool = False) -> float:
    """Compulsory HELP repayment. The tier rate applies to the whole income."""
    if not has_hecs_debt or repayment_income <= 0:
        return 0.0

    for upper, rate in HECS_RATES_2024_25:
        if upper is None or repayment_income <= upper:
            return repayment_income * rate
    return 0.0


def calculate_tax(
    gross_income: float,
    deductions: float = 0,
    franking_credits: float = 0,
    has_hecs_debt: bool = False,
    has_private_health: bool = True,
) -> TaxCalculation:
    """
    Estimate total tax for one person.

    Franking credits are grossed up into taxable income, then refunded as a
    tax offset. Net tax payable never goes below zero.

    Args:
        gross_income: Total assessable income before deductions
        deductions: Total approved deductions
        franking_credits: Franking credits attached to dividends/distributions
        has_hecs_debt: Whether a HELP debt is outstanding
        has_private_health: Whether private hospital cover is held

    Returns:
        TaxCalculation with every component rounded to cents
    """
    taxable_income = max(0.0, gross_income - deductions)
    grossed_up = taxable_income + franking_credits

    income_tax = calculate_income_tax(grossed_up)
    medicare_levy = calculate_medicare_levy(grossed_up)
    medicare_surcharge = calculate_medicare_surcharge(grossed_up, has_private_health)
    hecs_repayment = calculate_hecs_repayment(grossed_up, has_hecs_debt)

    total = income_tax + medicare_levy + medicare_surcharge + hecs_repayment
    net_payable = max(0.0, total - franking_credits)
    effective_rate = (net_payable / gross_income) * 100 if gross_income > 0 else 0.0

    return TaxCalculation(
        gross_income=round(gross_income, 2),
        deductions=round(deductions, 2),
        taxable_income=round(taxable_income, 2),
        franking_credits=round(franking_credits, 2),
        grossed_up_income=round(grossed_up, 2),
        income_tax=round(income_tax, 2),
        medicare_levy=round(medicare_levy, 2),
        medicare_surcharge=round(medicare_surcharge, 2),
        hecs_repayment=round(hecs_repayment, 2),
        total_tax_before_offsets=round(total, 2),
        franking_credit_offset=round(franking_credits, 2),
        net_tax_payable=round(net_payable, 2),
        effective_tax_rate=round(effective_rate, 2),
        marginal_tax_rate=round(marginal_tax_rate(grossed_up) * 100, 2),
        tax_bracket=tax_bracket_label(grossed_up),
    )
