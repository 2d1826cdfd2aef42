"""
Per-person tax summaries built from stored income and deductions.
"""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.models.tax import Deduction, DeductionCategory, Income, IncomeType
from famfin.rules.tax import calculate_tax

# Income types folded into each summary line
INCOME_GROUPS = {
    IncomeType.SALARY: "salary",
    IncomeType.BONUS: "salary",
    IncomeType.DIVIDEND: "dividends",
    IncomeType.TRUST_DISTRIBUTION: "trust_distributions",
    IncomeType.RENTAL: "rental",
    IncomeType.CAPITAL_GAIN: "capital_gains",
}


async def list_income(
    session: AsyncSession, user_id: str, fy: Optional[str] = None, person: Optional[str] = None
) -> list[Income]:
    stmt = select(Income).where(Income.user_id == user_id)
    if fy:
        stmt = stmt.where(Income.financial_year == fy)
    if person:
        stmt = stmt.where(Income.person == person)
    result = await session.execute(stmt.order_by(Income.date.desc()))
    return list(result.scalars().all())


async def list_deductions(
    session: AsyncSession, user_id: str, fy: Optional[str] = None, person: Optional[str] = None
) -> list[Deduction]:
    stmt = select(Deduction).where(Deduction.user_id == user_id)
    if fy:
        stmt = stmt.where(Deduction.financial_year == fy)
    if person:
        stmt = stmt.where(Deduction.person == person)
    result = await session.execute(stmt.order_by(Deduction.date.desc()))
    return list(result.scalars().all())


def summarize_income(items: list[Income]) -> dict[str, Any]:
    """Taxable totals by income type, plus franking and withholding."""
    by_type = {t.value: 0.0 for t in IncomeType}
    total = franking = withheld = 0.0

    for item in items:
        if item.is_taxable:
            by_type[item.income_type.value] += item.amount
            total += item.amount
        franking += item.franking_credits or 0
        withheld += item.tax_withheld or 0

    return {
        "by_type": by_type,
        "total": round(total, 2),
        "franking_credits": round(franking, 2),
        "tax_withheld": round(withheld, 2),
    }


def summarize_deductions(items: list[Deduction]) -> dict[str, Any]:
    by_category = {c.value: 0.0 for c in DeductionCategory}
    total = 0.0
    pending = []

    for item in items:
        by_category[item.category.value] += item.amount
        total += item.amount
        if not item.is_approved:
            pending.append(item)

    return {
        "by_category": by_category,
        "total": round(total, 2),
        "flagged_count": sum(1 for d in items if d.is_flagged),
        "pending_approval": pending,
    }


async def person_tax_summary(
    session: AsyncSession,
    user_id: str,
    person: str,
    fy: str,
    has_hecs_debt: bool = False,
    has_private_health: bool = True,
) -> dict[str, Any]:
    """
    Income, deductions and estimated tax for one person and year.

    estimated_refund_or_owing is negative when a refund is expected.
    """
    income_items = await list_income(session, user_id, fy, person)
    deduction_items = await list_deductions(session, user_id, fy, person)

    income = {
        "salary": 0.0,
        "dividends": 0.0,
        "trust_distributions": 0.0,
        "rental": 0.0,
        "capital_gains": 0.0,
        "other": 0.0,
        "franking_credits": 0.0,
    }
    tax_withheld = 0.0

    for item in income_items:
        if not item.is_taxable:
            continue
        income[INCOME_GROUPS.get(item.income_type, "other")] += item.amount
        income["franking_credits"] += item.franking_credits or 0
        tax_withheld += item.tax_withheld or 0

    income["total"] = sum(v for k, v in income.items() if k != "franking_credits")
    income = {k: round(v, 2) for k, v in income.items()}

    deductions = summarize_deductions(deduction_items)
    estimate = calculate_tax(
        income["total"],
        deductions["total"],
        income["franking_credits"],
        has_hecs_debt=has_hecs_debt,
        has_private_health=has_private_health,
    )

    return {
        "person": person,
        "financial_year": fy,
        "income": income,
        "deductions": {"by_category": deductions["by_category"], "total": deductions["total"]},
        "tax_withheld": round(tax_withheld, 2),
        "estimated_tax": estimate.to_dict(),
        "estimated_refund_or_owing": round(estimate.net_tax_payable - tax_withheld, 2),
    }


async def household_tax_summary(
    session: AsyncSession, user_id: str, members: list[str], fy: str
) -> dict[str, Any]:
    members_summary = {
        person: await person_tax_summary(session, user_id, person, fy) for person in members
    }
    return {
        "financial_year": fy,
        "members": members_summary,
        "combined_tax": round(
            sum(s["estimated_tax"]["net_tax_payable"] for s in members_summary.values()), 2
        ),
        "combined_refund": round(
            sum(s["estimated_refund_or_owing"] for s in members_summary.values()), 2
        ),
    }
