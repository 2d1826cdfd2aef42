"""
Superannuation API endpoints.

Handles contributions (with cap warnings), super fund balances, cap
summaries and alerts, and the super calculators.
"""

import datetime as dt
import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.api.deps import financial_year_query, get_user_id, validate_financial_year, validate_person
from famfin.config import get_settings
from famfin.database import get_session
from famfin.models import ContributionType, SuperAccount, SuperContribution
from famfin.rules.financial_year import financial_year_for
from famfin.rules.superannuation import (
    calculate_listo,
    check_division_293,
    contribution_caps,
    expected_employer_super,
    is_concessional,
    super_guarantee_rate,
)
from famfin.services import super_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/super", tags=["superannuation"])


# === Pydantic Models ===


class ContributionCreate(BaseModel):
    person: str
    contribution_type: ContributionType
    amount: float = Field(..., gt=0)
    date: dt.date
    fund_name: Optional[str] = None
    notes: Optional[str] = None


class ContributionUpdate(BaseModel):
    contribution_type: Optional[ContributionType] = None
    amount: Optional[float] = Field(None, gt=0)
    date: Optional[dt.date] = None
    fund_name: Optional[str] = None
    notes: Optional[str] = None


class ContributionResponse(BaseModel):
    id: str
    person: str
    financial_year: str
    contribution_type: ContributionType
    is_concessional: bool
    amount: float
    date: dt.date
    fund_name: Optional[str]
    notes: Optional[str]

    class Config:
        from_attributes = True


class ContributionCreated(BaseModel):
    contribution: ContributionResponse
    warnings: list[str]


class SuperAccountUpsert(BaseModel):
    person: str
    fund_name: str = Field(..., min_length=1, max_length=255)
    member_number: Optional[str] = None
    balance: float = 0.0
    is_active: bool = True


class SuperAccountResponse(BaseModel):
    id: str
    person: str
    fund_name: str
    member_number: Optional[str]
    balance: float
    is_active: bool
    updated_at: Optional[dt.datetime]

    class Config:
        from_attributes = True


class Division293Request(BaseModel):
    taxable_income: float = Field(..., ge=0)
    concessional_contributions: float = Field(..., ge=0)


class ListoRequest(BaseModel):
    taxable_income: float = Field(..., ge=0)
    concessional_contributions: float = Field(..., ge=0)


class SuperGuaranteeRequest(BaseModel):
    annual_salary: float = Field(..., ge=0)
    financial_year: Optional[str] = None


# === Helper Functions ===


async def get_contribution_or_404(session: AsyncSession, contribution_id: str, user_id: str) -> SuperContribution:
    contribution = await session.get(SuperContribution, contribution_id)
    if not contribution or contribution.user_id != user_id:
        raise HTTPException(status_code=404, detail="Contribution not found")
    return contribution


def optional_person(person: Optional[str]) -> Optional[str]:
    return validate_person(person) if person else None


# === Contributions ===


@router.get("/contributions", response_model=list[ContributionResponse])
async def list_contributions(
    financial_year: Optional[str] = Query(None),
    person: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    fy = validate_financial_year(financial_year) if financial_year else None
    return await super_service.list_contributions(session, user_id, fy, optional_person(person))


@router.post("/contributions", response_model=ContributionCreated, status_code=201)
async def create_contribution(
    request: ContributionCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """
    Record a contribution.

    The financial year comes from the contribution date. Warnings are
    returned when the contribution takes the person over a cap.
    """
    validate_person(request.person)
    fy = financial_year_for(request.date)
    concessional = is_concessional(request.contribution_type)

    summary = await super_service.contribution_summary(session, user_id, request.person, fy)
    warnings = super_service.cap_warnings(summary, request.amount, concessional)

    contribution = SuperContribution(
        user_id=user_id,
        financial_year=fy,
        is_concessional=concessional,
        **request.model_dump(),
    )
    session.add(contribution)
    await session.flush()

    for warning in warnings:
        logger.warning("Contribution %s for %s: %s", contribution.id, request.person, warning)
    return ContributionCreated(contribution=ContributionResponse.model_validate(contribution), warnings=warnings)


@router.put("/contributions/{contribution_id}", response_model=ContributionResponse)
async def update_contribution(
    contribution_id: str,
    request: ContributionUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    contribution = await get_contribution_or_404(session, contribution_id, user_id)
    fields = request.model_dump(exclude_unset=True)
    for key, value in fields.items():
        setattr(contribution, key, value)
    if "date" in fields:
        contribution.financial_year = financial_year_for(contribution.date)
    if "contribution_type" in fields:
        contribution.is_concessional = is_concessional(contribution.contribution_type)
    await session.flush()
    return contribution


@router.delete("/contributions/{contribution_id}", status_code=204)
async def delete_contribution(
    contribution_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    await session.delete(await get_contribution_or_404(session, contribution_id, user_id))


# === Super accounts ===


@router.get("/accounts", response_model=list[SuperAccountResponse])
async def list_super_accounts(
    person: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return await super_service.list_super_accounts(session, user_id, optional_person(person))


@router.put("/accounts", response_model=SuperAccountResponse)
async def upsert_super_account(
    request: SuperAccountUpsert,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Create or update the fund account for (person, fund_name)."""
    validate_person(request.person)
    result = await session.execute(
        select(SuperAccount).where(
            SuperAccount.user_id == user_id,
            SuperAccount.person == request.person,
            SuperAccount.fund_name == request.fund_name,
        )
    )
    account = result.scalar_one_or_none()

    if account is None:
        account = SuperAccount(user_id=user_id, **request.model_dump())
        session.add(account)
    else:
        account.member_number = request.member_number
        account.balance = request.balance
        account.is_active = request.is_active

    await session.flush()
    await session.refresh(account)
    return account


@router.delete("/accounts/{account_id}", status_code=204)
async def delete_super_account(
    account_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    account = await session.get(SuperAccount, account_id)
    if not account or account.user_id != user_id:
        raise HTTPException(status_code=404, detail="Super account not found")
    await session.delete(account)


# === Summaries ===


@router.get("/summary")
async def contribution_summary(
    person: str = Query(...),
    fy: str = Depends(financial_year_query),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    validate_person(person)
    return await super_service.contribution_summary(session, user_id, person, fy)


@router.get("/household")
async def household_summary(
    fy: str = Depends(financial_year_query),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return await super_service.household_contribution_summary(
        session, user_id, get_settings().household_members, fy
    )


@router.get("/status")
async def contribution_status(
    person: str = Query(...),
    fy: str = Depends(financial_year_query),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Cap alerts and bring-forward eligibility for one person."""
    validate_person(person)
    return await super_service.contribution_status(session, user_id, person, fy)


@router.get("/by-type")
async def contributions_by_type(
    fy: str = Depends(financial_year_query),
    person: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return await super_service.contributions_by_type(session, user_id, fy, optional_person(person))


@router.get("/caps")
async def caps(fy: str = Depends(financial_year_query)):
    return {
        "financial_year": fy,
        **asdict(contribution_caps(fy)),
        "super_guarantee_rate": super_guarantee_rate(fy),
    }


# === Calculators ===


@router.post("/calculate/division-293")
async def division_293(request: Division293Request):
    return asdict(check_division_293(request.taxable_income, request.concessional_contributions))


@router.post("/calculate/listo")
async def listo(request: ListoRequest):
    """Low Income Super Tax Offset."""
    return {"listo": calculate_listo(request.taxable_income, request.concessional_contributions)}


@router.post("/calculate/super-guarantee")
async def super_guarantee(request: SuperGuaranteeRequest):
    fy = validate_financial_year(request.financial_year)
    return {
        "financial_year": fy,
        "rate": super_guarantee_rate(fy),
        "expected_employer_super": expected_employer_super(request.annual_salary, fy),
    }
