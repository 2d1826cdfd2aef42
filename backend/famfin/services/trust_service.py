"""
Family trust bookkeeping: income, distributions, the franking ledger and
investments.
"""

import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.models.trust import (
    FrankingCreditLedger,
    Trust,
    TrustBeneficiary,
    TrustDistribution,
    TrustIncome,
    TrustInvestment,
)
from famfin.rules.financial_year import days_until_eofy

logger = logging.getLogger(__name__)


async def get_trust(session: AsyncSession, user_id: str) -> Optional[Trust]:
    result = await session.execute(select(Trust).where(Trust.user_id == user_id))
    return result.scalar_one_or_none()


async def list_beneficiaries(session: AsyncSession, trust_id: str, active_only: bool = True) -> list[TrustBeneficiary]:
    stmt = select(TrustBeneficiary).where(TrustBeneficiary.trust_id == trust_id)
    if active_only:
        stmt = stmt.where(TrustBeneficiary.is_active.is_(True))
    result = await session.execute(stmt.order_by(TrustBeneficiary.name))
    return list(result.scalars().all())


async def list_income(session: AsyncSession, trust_id: str, fy: Optional[str] = None) -> list[TrustIncome]:
    stmt = select(TrustIncome).where(TrustIncome.trust_id == trust_id)
    if fy:
        stmt = stmt.where(TrustIncome.financial_year == fy)
    result = await session.execute(stmt.order_by(TrustIncome.date.desc()))
    return list(result.scalars().all())


async def list_distributions(
    session: AsyncSession, trust_id: str, fy: Optional[str] = None
) -> list[TrustDistribution]:
    stmt = select(TrustDistribution).where(TrustDistribution.trust_id == trust_id)
    if fy:
        stmt = stmt.where(TrustDistribution.financial_year == fy)
    result = await session.execute(stmt.order_by(TrustDistribution.date.desc()))
    return list(result.scalars().all())


async def list_investments(session: AsyncSession, trust_id: str) -> list[TrustInvestment]:
    """Holdings, largest first."""
    result = await session.execute(
        select(TrustInvestment)
        .where(TrustInvestment.trust_id == trust_id)
        .order_by(TrustInvestment.current_value.desc())
    )
    return list(result.scalars().all())


async def get_ledger(session: AsyncSession, trust_id: str, fy: str) -> Optional[FrankingCreditLedger]:
    result = await session.execute(
        select(FrankingCreditLedger).where(
            FrankingCreditLedger.trust_id == trust_id,
            FrankingCreditLedger.financial_year == fy,
        )
    )
    return result.scalar_one_or_none()


async def adjust_franking_ledger(
    session: AsyncSession,
    trust_id: str,
    fy: str,
    received: float = 0.0,
    distributed: float = 0.0,
) -> FrankingCreditLedger:
    """Add (or with negatives, reverse) credits on the year's ledger row."""
    ledger = await get_ledger(session, trust_id, fy)
    if ledger is None:
        ledger = FrankingCreditLedger(
            trust_id=trust_id,
            financial_year=fy,
            opening_balance=0.0,
            credits_received=0.0,
            credits_distributed=0.0,
        )
        session.add(ledger)

    ledger.credits_received = round((ledger.credits_received or 0) + received, 2)
    ledger.credits_distributed = round((ledger.credits_distributed or 0) + distributed, 2)
    await session.flush()
    return ledger


async def trust_summary(
    session: AsyncSession, trust: Trust, fy: str, today: Optional[date] = None
) -> dict[str, Any]:
    income = await list_income(session, trust.id, fy)
    distributions = await list_distributions(session, trust.id, fy)
    beneficiaries = await list_beneficiaries(session, trust.id)

    income_ytd = sum(i.amount for i in income)
    distributions_ytd = sum(d.amount for d in distributions)

    return {
        "trust": trust,
        "financial_year": fy,
        "income_ytd": round(income_ytd, 2),
        "franking_credits_ytd": round(sum(i.franking_credits or 0 for i in income), 2),
        "distributions_ytd": round(distributions_ytd, 2),
        "distributable_amount": round(income_ytd - distributions_ytd, 2),
        "days_until_eofy": days_until_eofy(today),
        "beneficiaries": beneficiaries,
    }


async def distributions_by_beneficiary(
    session: AsyncSession, trust_id: str, fy: Optional[str] = None
) -> dict[str, dict[str, Any]]:
    totals: dict[str, dict[str, Any]] = {}
    for d in await list_distributions(session, trust_id, fy):
        entry = totals.setdefault(
            d.beneficiary_id,
            {"name": d.beneficiary.name if d.beneficiary else "Unknown", "total": 0.0, "franking": 0.0},
        )
        entry["total"] = round(entry["total"] + d.amount, 2)
        entry["franking"] = round(entry["franking"] + (d.franking_credits_streamed or 0), 2)
    return totals
