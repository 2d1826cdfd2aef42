"""
Superannuation contribution summaries and cap alerts.
"""

from dataclasses import asdict
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.models.superannuation import ContributionType, SuperAccount, SuperContribution
from famfin.rules.superannuation import bring_forward_eligibility, contribution_caps

CONCESSIONAL_WARNING_REMAINING = 5000
LOW_UTILISATION_PERCENT = 50


async def list_contributions(
    session: AsyncSession, user_id: str, fy: Optional[str] = None, person: Optional[str] = None
) -> list[SuperContribution]:
    stmt = select(SuperContribution).where(SuperContribution.user_id == user_id)
    if fy:
        stmt = stmt.where(SuperContribution.financial_year == fy)
    if person:
        stmt = stmt.where(SuperContribution.person == person)
    result = await session.execute(stmt.order_by(SuperContribution.date.desc()))
    return list(result.scalars().all())


async def list_super_accounts(
    session: AsyncSession, user_id: str, person: Optional[str] = None
) -> list[SuperAccount]:
    stmt = select(SuperAccount).where(SuperAccount.user_id == user_id)
    if person:
        stmt = stmt.where(SuperAccount.person == person)
    result = await session.execute(stmt.order_by(SuperAccount.fund_name))
    return list(result.scalars().all())


async def contribution_summary(session: AsyncSession, user_id: str, person: str, fy: str) -> dict[str, Any]:
    caps = contribution_caps(fy)
    contributions = await list_contributions(session, user_id, fy, person)
    accounts = await list_super_accounts(session, user_id, person)

    concessional = sum(c.amount for c in contributions if c.is_concessional)
    non_concessional = sum(c.amount for c in contributions if not c.is_concessional)

    return {
        "person": person,
        "financial_year": fy,
        "concessional_contributions": round(concessional, 2),
        "non_concessional_contributions": round(non_concessional, 2),
        "concessional_cap": caps.concessional,
        "non_concessional_cap": caps.non_concessional,
        "concessional_remaining": round(max(0, caps.concessional - concessional), 2),
        "non_concessional_remaining": round(max(0, caps.non_concessional - non_concessional), 2),
        "total_super_balance": round(sum(a.balance for a in accounts if a.is_active), 2),
    }


async def household_contribution_summary(
    session: AsyncSession, user_id: str, members: list[str], fy: str
) -> dict[str, Any]:
    summaries = {p: await contribution_summary(session, user_id, p, fy) for p in members}
    return {
        "financial_year": fy,
        "members": summaries,
        "combined": {
            "total_concessional": round(sum(s["concessional_contributions"] for s in summaries.values()), 2),
            "total_non_concessional": round(
                sum(s["non_concessional_contributions"] for s in summaries.values()), 2
            ),
            "total_super_balance": round(sum(s["total_super_balance"] for s in summaries.values()), 2),
        },
    }


def contribution_alerts(summary: dict[str, Any]) -> list[dict[str, str]]:
    """Cap alerts for a contribution summary, most severe first."""
    alerts = []
    concessional = summary["concessional_contributions"]
    non_concessional = summary["non_concessional_contributions"]

    if concessional > summary["concessional_cap"]:
        excess = concessional - summary["concessional_cap"]
        alerts.append(
            {
                "type": "error",
                "message": f"Concessional cap exceeded by ${excess:,.0f}. Excess will be taxed at marginal rate.",
            }
        )
    elif summary["concessional_remaining"] < CONCESSIONAL_WARNING_REMAINING:
        alerts.append(
            {
                "type": "warning",
                "message": f"Only ${summary['concessional_remaining']:,.0f} concessional cap remaining.",
            }
        )

    if non_concessional > summary["non_concessional_cap"]:
        excess = non_concessional - summary["non_concessional_cap"]
        alerts.append(
            {
                "type": "error",
                "message": f"Non-concessional cap exceeded by ${excess:,.0f}. Excess will be taxed at 47%.",
            }
        )

    if not bring_forward_eligibility(summary["total_super_balance"]).available:
        alerts.append(
            {
                "type": "info",
                "message": "Bring-forward rule not available due to total super balance exceeding $1.9M.",
            }
        )

    utilisation = concessional / summary["concessional_cap"] * 100
    if utilisation < LOW_UTILISATION_PERCENT:
        alerts.append(
            {
                "type": "info",
                "message": f"Only {utilisation:.0f}% of concessional cap used. Consider salary sacrifice to reduce tax.",
            }
        )

    return alerts


async def contribution_status(session: AsyncSession, user_id: str, person: str, fy: str) -> dict[str, Any]:
    summary = await contribution_summary(session, user_id, person, fy)
    return {
        "summary": summary,
        "alerts": contribution_alerts(summary),
        "bring_forward": asdict(bring_forward_eligibility(summary["total_super_balance"])),
    }


async def contributions_by_type(
    session: AsyncSession, user_id: str, fy: Optional[str], person: Optional[str]
) -> dict[str, float]:
    by_type = {t.value: 0.0 for t in ContributionType}
    for c in await list_contributions(session, user_id, fy, person):
        by_type[c.contribution_type.value] += c.amount
    return {k: round(v, 2) for k, v in by_type.items()}


def cap_warnings(
    summary: dict[str, Any], amount: float, is_concessional: bool
) -> list[str]:
    """Warnings for a contribution about to be added."""
    if is_concessional:
        new_total = summary["concessional_contributions"] + amount
        if new_total > summary["concessional_cap"]:
            return [
                f"This contribution will exceed the concessional cap by ${new_total - summary['concessional_cap']:,.0f}"
            ]
        return []

    new_total = summary["non_concessional_contributions"] + amount
    if new_total > summary["non_concessional_cap"]:
        return [
            f"This contribution will exceed the non-concessional cap by ${new_total - summary['non_concessional_cap']:,.0f}"
        ]
    return []
