"""
Self-managed super fund summaries: member cap usage with carry-forward, and
the fund dashboard.
"""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.models.smsf import (
    SmsfCarryForward,
    SmsfCompliance,
    SmsfContribution,
    SmsfContributionType,
    SmsfFund,
    SmsfInvestment,
    SmsfMember,
    SmsfTransaction,
)
from famfin.rules.superannuation import carry_forward_eligible, contribution_caps

CARRY_FORWARD_YEARS = 5
RECENT_TRANSACTIONS = 10


async def list_funds(session: AsyncSession, user_id: str) -> list[SmsfFund]:
    result = await session.execute(select(SmsfFund).where(SmsfFund.user_id == user_id).order_by(SmsfFund.name))
    return list(result.scalars().all())


async def list_members(session: AsyncSession, fund_id: str) -> list[SmsfMember]:
    result = await session.execute(
        select(SmsfMember).where(SmsfMember.fund_id == fund_id).order_by(SmsfMember.name)
    )
    return list(result.scalars().all())


async def list_contributions(
    session: AsyncSession,
    fund_id: Optional[str] = None,
    member_id: Optional[str] = None,
    fy: Optional[str] = None,
) -> list[SmsfContribution]:
    stmt = select(SmsfContribution)
    if fund_id:
        stmt = stmt.where(SmsfContribution.fund_id == fund_id)
    if member_id:
        stmt = stmt.where(SmsfContribution.member_id == member_id)
    if fy:
        stmt = stmt.where(SmsfContribution.financial_year == fy)
    result = await session.execute(stmt.order_by(SmsfContribution.date.desc()))
    return list(result.scalars().all())


async def list_investments(session: AsyncSession, fund_id: str) -> list[SmsfInvestment]:
    result = await session.execute(
        select(SmsfInvestment)
        .where(SmsfInvestment.fund_id == fund_id)
        .order_by(SmsfInvestment.current_value.desc())
    )
    return list(result.scalars().all())


async def list_transactions(
    session: AsyncSession, fund_id: str, fy: Optional[str] = None, limit: Optional[int] = None
) -> list[SmsfTransaction]:
    stmt = select(SmsfTransaction).where(SmsfTransaction.fund_id == fund_id)
    if fy:
        stmt = stmt.where(SmsfTransaction.financial_year == fy)
    stmt = stmt.order_by(SmsfTransaction.date.desc(), SmsfTransaction.created_at.desc())
    if limit:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_compliance(session: AsyncSession, fund_id: str) -> list[SmsfCompliance]:
    result = await session.execute(
        select(SmsfCompliance)
        .where(SmsfCompliance.fund_id == fund_id)
        .order_by(SmsfCompliance.financial_year.desc())
    )
    return list(result.scalars().all())


async def get_compliance(session: AsyncSession, fund_id: str, fy: str) -> Optional[SmsfCompliance]:
    result = await session.execute(
        select(SmsfCompliance).where(SmsfCompliance.fund_id == fund_id, SmsfCompliance.financial_year == fy)
    )
    return result.scalar_one_or_none()


async def get_carry_forward(session: AsyncSession, member_id: str, fy: str) -> Optional[SmsfCarryForward]:
    result = await session.execute(
        select(SmsfCarryForward).where(
            SmsfCarryForward.member_id == member_id, SmsfCarryForward.financial_year == fy
        )
    )
    return result.scalar_one_or_none()


def _cap_usage(used: float, cap: float) -> dict[str, float]:
    return {
        "used": round(used, 2),
        "cap": cap,
        "remaining": round(max(0.0, cap - used), 2),
        "percentage": round(min(100.0, used / cap * 100), 2) if cap else 0.0,
    }


async def member_contribution_summary(session: AsyncSession, member: SmsfMember, fy: str) -> dict[str, Any]:
    """
    Concessional and non-concessional cap usage for one member and year.

    Only the two capped types count; spouse, downsizer and co-contributions
    are reported elsewhere. Unused concessional cap from the last five
    recorded years is available while the member's total super balance is
    under the carry-forward limit.
    """
    caps = contribution_caps(fy)
    contributions = await list_contributions(session, member_id=member.id, fy=fy)

    concessional = sum(
        c.amount for c in contributions if c.contribution_type == SmsfContributionType.CONCESSIONAL
    )
    non_concessional = sum(
        c.amount for c in contributions if c.contribution_type == SmsfContributionType.NON_CONCESSIONAL
    )

    result = await session.execute(
        select(SmsfCarryForward)
        .where(SmsfCarryForward.member_id == member.id)
        .order_by(SmsfCarryForward.financial_year.desc())
        .limit(CARRY_FORWARD_YEARS)
    )
    breakdown = [
        {"year": cf.financial_year, "amount": cf.unused_amount}
        for cf in result.scalars().all()
        if cf.eligible_for_carry_forward and (cf.unused_amount or 0) > 0
    ]
    eligible = carry_forward_eligible(member.total_super_balance)

    return {
        "member_id": member.id,
        "member_name": member.name,
        "financial_year": fy,
        "concessional": _cap_usage(concessional, caps.concessional),
        "non_concessional": _cap_usage(non_concessional, caps.non_concessional),
        "carry_forward": {
            "available": round(sum(b["amount"] for b in breakdown), 2) if eligible else 0.0,
            "eligible": eligible,
            "breakdown": breakdown,
        },
    }


async def fund_dashboard(session: AsyncSession, fund: SmsfFund, fy: str) -> dict[str, Any]:
    """Balances, investment mix and performance, the year's contributions and compliance."""
    members = await list_members(session, fund.id)
    investments = await list_investments(session, fund.id)
    contributions = await list_contributions(session, fund_id=fund.id, fy=fy)

    total_value = sum(i.current_value for i in investments)
    total_cost = sum(i.cost_base for i in investments)

    value_by_type: dict[str, float] = {}
    for investment in investments:
        key = investment.asset_type.value
        value_by_type[key] = value_by_type.get(key, 0.0) + investment.current_value

    contributed_by_type: dict[str, float] = {}
    for contribution in contributions:
        key = contribution.contribution_type.value
        contributed_by_type[key] = contributed_by_type.get(key, 0.0) + contribution.amount

    return {
        "fund": fund,
        "financial_year": fy,
        "members": members,
        "total_balance": round(sum(m.total_super_balance or 0 for m in members), 2),
        "investments": {
            "total": round(total_value, 2),
            "by_type": [
                {
                    "type": asset_type,
                    "value": round(value, 2),
                    "percentage": round(value / total_value * 100, 2) if total_value > 0 else 0.0,
                }
                for asset_type, value in value_by_type.items()
            ],
            "performance": {
                "cost_base": round(total_cost, 2),
                "current_value": round(total_value, 2),
                "gain_loss": round(total_value - total_cost, 2),
                "gain_loss_percent": (
                    round((total_value - total_cost) / total_cost * 100, 2) if total_cost > 0 else 0.0
                ),
            },
        },
        "contributions": {
            "total": round(sum(c.amount for c in contributions), 2),
            "by_type": [{"type": t, "amount": round(a, 2)} for t, a in contributed_by_type.items()],
        },
        "compliance": await get_compliance(session, fund.id, fy),
        "recent_transactions": await list_transactions(session, fund.id, limit=RECENT_TRANSACTIONS),
    }
