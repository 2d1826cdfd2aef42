"""
Self-managed super fund API endpoints.

Handles funds, members (TFNs stored encrypted), contributions with cap and
carry-forward summaries, the investment register, fund transactions, the
yearly compliance checklist and the fund dashboard.
"""

import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.api.deps import financial_year_query, get_user_id, validate_financial_year
from famfin.database import get_session
from famfin.models import (
    AssetType,
    AuditStatus,
    FundStatus,
    LodgementStatus,
    MemberStatus,
    SmsfCarryForward,
    SmsfCompliance,
    SmsfContribution,
    SmsfContributionType,
    SmsfFund,
    SmsfInvestment,
    SmsfMember,
    SmsfTransaction,
    SmsfTransactionType,
)
from famfin.rules.financial_year import financial_year_for
from famfin.rules.superannuation import age_on, carry_forward_eligible, contribution_caps, preservation_age
from famfin.services import smsf_service
from famfin.utils.encryption import encrypt_optional

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/smsf", tags=["smsf"])


# === Pydantic Models ===


class FundCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    abn: Optional[str] = None
    trustee_name: Optional[str] = None
    trustee_abn: Optional[str] = None
    establishment_date: Optional[dt.date] = None
    fund_status: FundStatus = FundStatus.ACTIVE


class FundUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    abn: Optional[str] = None
    trustee_name: Optional[str] = None
    trustee_abn: Optional[str] = None
    establishment_date: Optional[dt.date] = None
    fund_status: Optional[FundStatus] = None


class FundResponse(BaseModel):
    id: str
    name: str
    abn: Optional[str]
    trustee_name: Optional[str]
    trustee_abn: Optional[str]
    establishment_date: Optional[dt.date]
    fund_status: FundStatus

    class Config:
        from_attributes = True


class MemberCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    tfn: Optional[str] = None
    date_of_birth: Optional[dt.date] = None
    preservation_age: Optional[int] = Field(None, ge=55, le=60)
    total_super_balance: float = Field(0.0, ge=0)
    member_status: MemberStatus = MemberStatus.ACCUMULATION


class MemberUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    tfn: Optional[str] = None
    date_of_birth: Optional[dt.date] = None
    preservation_age: Optional[int] = Field(None, ge=55, le=60)
    total_super_balance: Optional[float] = Field(None, ge=0)
    member_status: Optional[MemberStatus] = None


class MemberResponse(BaseModel):
    id: str
    fund_id: str
    name: str
    has_tfn: bool
    date_of_birth: Optional[dt.date]
    age: Optional[int]
    preservation_age: Optional[int]
    total_super_balance: float
    member_status: MemberStatus


class ContributionCreate(BaseModel):
    member_id: str
    contribution_type: SmsfContributionType
    amount: float = Field(..., gt=0)
    date: dt.date
    description: Optional[str] = None


class ContributionResponse(BaseModel):
    id: str
    fund_id: str
    member_id: str
    member_name: Optional[str] = None
    contribution_type: SmsfContributionType
    amount: float
    date: dt.date
    financial_year: str
    description: Optional[str]

    class Config:
        from_attributes = True


class CapUsage(BaseModel):
    used: float
    cap: float
    remaining: float
    percentage: float


class CarryForwardYear(BaseModel):
    year: str
    amount: float


class CarryForwardAvailable(BaseModel):
    available: float
    eligible: bool
    breakdown: list[CarryForwardYear]


class ContributionSummaryResponse(BaseModel):
    member_id: str
    member_name: str
    financial_year: str
    concessional: CapUsage
    non_concessional: CapUsage
    carry_forward: CarryForwardAvailable


class CarryForwardUpsert(BaseModel):
    financial_year: str
    concessional_used: float = Field(..., ge=0)
    total_super_balance_at_year_end: Optional[float] = Field(None, ge=0)


class CarryForwardResponse(BaseModel):
    id: str
    member_id: str
    financial_year: str
    concessional_cap: float
    concessional_used: float
    unused_amount: float
    total_super_balance_at_year_end: Optional[float]
    eligible_for_carry_forward: bool

    class Config:
        from_attributes = True


class InvestmentCreate(BaseModel):
    asset_type: AssetType
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    units: Optional[float] = Field(None, ge=0)
    cost_base: float = Field(..., ge=0)
    current_value: float = Field(..., ge=0)
    acquisition_date: Optional[dt.date] = None
    income_ytd: float = 0.0


class InvestmentUpdate(BaseModel):
    asset_type: Optional[AssetType] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    units: Optional[float] = Field(None, ge=0)
    cost_base: Optional[float] = Field(None, ge=0)
    current_value: Optional[float] = Field(None, ge=0)
    acquisition_date: Optional[dt.date] = None
    income_ytd: Optional[float] = None


class InvestmentResponse(BaseModel):
    id: str
    fund_id: str
    asset_type: AssetType
    name: str
    description: Optional[str]
    units: Optional[float]
    cost_base: float
    current_value: float
    acquisition_date: Optional[dt.date]
    income_ytd: float

    class Config:
        from_attributes = True


class FundTransactionCreate(BaseModel):
    transaction_type: SmsfTransactionType
    amount: float
    date: dt.date
    investment_id: Optional[str] = None
    member_id: Optional[str] = None
    description: Optional[str] = None


class FundTransactionResponse(BaseModel):
    id: str
    fund_id: str
    transaction_type: SmsfTransactionType
    amount: float
    date: dt.date
    financial_year: str
    investment_id: Optional[str]
    investment_name: Optional[str] = None
    member_id: Optional[str]
    member_name: Optional[str] = None
    description: Optional[str]

    class Config:
        from_attributes = True


class ComplianceUpdate(BaseModel):
    audit_due_date: Optional[dt.date] = None
    audit_completed_date: Optional[dt.date] = None
    audit_status: Optional[AuditStatus] = None
    annual_return_due_date: Optional[dt.date] = None
    annual_return_lodged_date: Optional[dt.date] = None
    lodgement_status: Optional[LodgementStatus] = None
    investment_strategy_reviewed: Optional[bool] = None
    investment_strategy_date: Optional[dt.date] = None
    member_statements_issued: Optional[bool] = None
    notes: Optional[str] = None


class ComplianceResponse(BaseModel):
    id: str
    fund_id: str
    financial_year: str
    audit_due_date: Optional[dt.date]
    audit_completed_date: Optional[dt.date]
    audit_status: AuditStatus
    annual_return_due_date: Optional[dt.date]
    annual_return_lodged_date: Optional[dt.date]
    lodgement_status: LodgementStatus
    investment_strategy_reviewed: bool
    investment_strategy_date: Optional[dt.date]
    member_statements_issued: bool
    notes: Optional[str]

    class Config:
        from_attributes = True


class AssetMix(BaseModel):
    type: str
    value: float
    percentage: float


class Performance(BaseModel):
    cost_base: float
    current_value: float
    gain_loss: float
    gain_loss_percent: float


class InvestmentSummary(BaseModel):
    total: float
    by_type: list[AssetMix]
    performance: Performance


class ContributionTypeTotal(BaseModel):
    type: str
    amount: float


class ContributionTotals(BaseModel):
    total: float
    by_type: list[ContributionTypeTotal]


class DashboardResponse(BaseModel):
    fund: FundResponse
    financial_year: str
    members: list[MemberResponse]
    total_balance: float
    investments: InvestmentSummary
    contributions: ContributionTotals
    compliance: Optional[ComplianceResponse]
    recent_transactions: list[FundTransactionResponse]


# === Helper Functions ===


async def get_fund_or_404(session: AsyncSession, fund_id: str, user_id: str) -> SmsfFund:
    fund = await session.get(SmsfFund, fund_id)
    if not fund or fund.user_id != user_id:
        raise HTTPException(status_code=404, detail="Fund not found")
    return fund


async def get_member_or_404(session: AsyncSession, member_id: str, user_id: str) -> SmsfMember:
    member = await session.get(SmsfMember, member_id)
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")
    fund = await session.get(SmsfFund, member.fund_id)
    if not fund or fund.user_id != user_id:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


async def get_fund_item_or_404(session: AsyncSession, model, item_id: str, user_id: str, label: str):
    """Load a contribution, investment or transaction owned through its fund."""
    item = await session.get(model, item_id)
    if not item:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    fund = await session.get(SmsfFund, item.fund_id)
    if not fund or fund.user_id != user_id:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return item


async def check_in_fund(session: AsyncSession, model, item_id: Optional[str], fund: SmsfFund, label: str) -> None:
    if item_id is None:
        return
    item = await session.get(model, item_id)
    if not item or item.fund_id != fund.id:
        raise HTTPException(status_code=400, detail=f"{label} does not belong to this fund")


def member_to_response(member: SmsfMember) -> MemberResponse:
    return MemberResponse(
        id=member.id,
        fund_id=member.fund_id,
        name=member.name,
        has_tfn=bool(member.tfn),
        date_of_birth=member.date_of_birth,
        age=age_on(member.date_of_birth) if member.date_of_birth else None,
        preservation_age=member.preservation_age,
        total_super_balance=member.total_super_balance or 0.0,
        member_status=member.member_status,
    )


def contribution_to_response(contribution: SmsfContribution) -> ContributionResponse:
    response = ContributionResponse.model_validate(contribution)
    response.member_name = contribution.member.name if contribution.member else None
    return response


def fund_transaction_to_response(transaction: SmsfTransaction) -> FundTransactionResponse:
    response = FundTransactionResponse.model_validate(transaction)
    response.member_name = transaction.member.name if transaction.member else None
    response.investment_name = transaction.investment.name if transaction.investment else None
    return response


# === Funds ===


@router.get("/funds", response_model=list[FundResponse])
async def list_funds(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return await smsf_service.list_funds(session, user_id)


@router.post("/funds", response_model=FundResponse, status_code=201)
async def create_fund(
    request: FundCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    fund = SmsfFund(user_id=user_id, **request.model_dump())
    session.add(fund)
    await session.flush()
    logger.info("Created SMSF %s", fund.name)
    return fund


@router.get("/funds/{fund_id}", response_model=FundResponse)
async def get_fund(
    fund_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return await get_fund_or_404(session, fund_id, user_id)


@router.put("/funds/{fund_id}", response_model=FundResponse)
async def update_fund(
    fund_id: str,
    request: FundUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    fund = await get_fund_or_404(session, fund_id, user_id)
    for key, value in request.model_dump(exclude_unset=True).items():
        setattr(fund, key, value)
    await session.flush()
    await session.refresh(fund)
    return fund


@router.delete("/funds/{fund_id}", status_code=204)
async def delete_fund(
    fund_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Delete a fund with its members, contributions, investments and records."""
    fund = await get_fund_or_404(session, fund_id, user_id)
    await session.delete(fund)


@router.get("/funds/{fund_id}/dashboard", response_model=DashboardResponse)
async def fund_dashboard(
    fund_id: str,
    fy: str = Depends(financial_year_query),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Balances, asset mix and performance, the year's contributions and compliance."""
    fund = await get_fund_or_404(session, fund_id, user_id)
    dashboard = await smsf_service.fund_dashboard(session, fund, fy)
    dashboard["members"] = [member_to_response(m) for m in dashboard["members"]]
    dashboard["recent_transactions"] = [fund_transaction_to_response(t) for t in dashboard["recent_transactions"]]
    return dashboard


# === Members ===


@router.get("/funds/{fund_id}/members", response_model=list[MemberResponse])
async def list_members(
    fund_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    fund = await get_fund_or_404(session, fund_id, user_id)
    return [member_to_response(m) for m in await smsf_service.list_members(session, fund.id)]


@router.post("/funds/{fund_id}/members", response_model=MemberResponse, status_code=201)
async def add_member(
    fund_id: str,
    request: MemberCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Add a member. Preservation age defaults from the date of birth."""
    fund = await get_fund_or_404(session, fund_id, user_id)
    fields = request.model_dump()
    fields["tfn"] = encrypt_optional(request.tfn)
    if fields["preservation_age"] is None and request.date_of_birth:
        fields["preservation_age"] = preservation_age(request.date_of_birth)

    member = SmsfMember(fund_id=fund.id, **fields)
    session.add(member)
    await session.flush()
    return member_to_response(member)


@router.put("/members/{member_id}", response_model=MemberResponse)
async def update_member(
    member_id: str,
    request: MemberUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    member = await get_member_or_404(session, member_id, user_id)
    fields = request.model_dump(exclude_unset=True)
    if "tfn" in fields:
        fields["tfn"] = encrypt_optional(fields["tfn"])
    if fields.get("date_of_birth") and "preservation_age" not in fields:
        fields["preservation_age"] = preservation_age(fields["date_of_birth"])

    for key, value in fields.items():
        setattr(member, key, value)
    await session.flush()
    await session.refresh(member)
    return member_to_response(member)


@router.delete("/members/{member_id}", status_code=204)
async def delete_member(
    member_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Delete a member and their contributions."""
    member = await get_member_or_404(session, member_id, user_id)
    await session.delete(member)


# === Contributions ===


@router.get("/funds/{fund_id}/contributions", response_model=list[ContributionResponse])
async def list_fund_contributions(
    fund_id: str,
    financial_year: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    fund = await get_fund_or_404(session, fund_id, user_id)
    fy = validate_financial_year(financial_year) if financial_year else None
    contributions = await smsf_service.list_contributions(session, fund_id=fund.id, fy=fy)
    return [contribution_to_response(c) for c in contributions]


@router.post("/funds/{fund_id}/contributions", response_model=ContributionResponse, status_code=201)
async def add_contribution(
    fund_id: str,
    request: ContributionCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Record a contribution; the financial year comes from its date."""
    fund = await get_fund_or_404(session, fund_id, user_id)
    await check_in_fund(session, SmsfMember, request.member_id, fund, "Member")

    contribution = SmsfContribution(
        fund_id=fund.id, financial_year=financial_year_for(request.date), **request.model_dump()
    )
    session.add(contribution)
    await session.flush()
    await session.refresh(contribution, ["member"])
    return contribution_to_response(contribution)


@router.get("/members/{member_id}/contributions", response_model=list[ContributionResponse])
async def list_member_contributions(
    member_id: str,
    financial_year: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    member = await get_member_or_404(session, member_id, user_id)
    fy = validate_financial_year(financial_year) if financial_year else None
    contributions = await smsf_service.list_contributions(session, member_id=member.id, fy=fy)
    return [contribution_to_response(c) for c in contributions]


@router.delete("/contributions/{contribution_id}", status_code=204)
async def delete_contribution(
    contribution_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    contribution = await get_fund_item_or_404(session, SmsfContribution, contribution_id, user_id, "Contribution")
    await session.delete(contribution)


@router.get("/members/{member_id}/contribution-summary", response_model=ContributionSummaryResponse)
async def member_contribution_summary(
    member_id: str,
    fy: str = Depends(financial_year_query),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Cap usage for the year and any carried-forward concessional cap."""
    member = await get_member_or_404(session, member_id, user_id)
    return await smsf_service.member_contribution_summary(session, member, fy)


@router.put("/members/{member_id}/carry-forward", response_model=CarryForwardResponse)
async def record_carry_forward(
    member_id: str,
    request: CarryForwardUpsert,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """
    Record a member's concessional cap use for a closed year.

    The unused amount is what is left of that year's cap. It can be carried
    forward only when the balance at year end was under the limit.
    """
    member = await get_member_or_404(session, member_id, user_id)
    fy = validate_financial_year(request.financial_year)
    cap = contribution_caps(fy).concessional

    record = await smsf_service.get_carry_forward(session, member.id, fy)
    if record is None:
        record = SmsfCarryForward(member_id=member.id, financial_year=fy)
        session.add(record)

    record.concessional_cap = cap
    record.concessional_used = request.concessional_used
    record.unused_amount = round(max(0.0, cap - request.concessional_used), 2)
    record.total_super_balance_at_year_end = request.total_super_balance_at_year_end
    record.eligible_for_carry_forward = carry_forward_eligible(request.total_super_balance_at_year_end)
    await session.flush()
    return record


# === Investments ===


@router.get("/funds/{fund_id}/investments", response_model=list[InvestmentResponse])
async def list_investments(
    fund_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    fund = await get_fund_or_404(session, fund_id, user_id)
    return await smsf_service.list_investments(session, fund.id)


@router.post("/funds/{fund_id}/investments", response_model=InvestmentResponse, status_code=201)
async def add_investment(
    fund_id: str,
    request: InvestmentCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    fund = await get_fund_or_404(session, fund_id, user_id)
    investment = SmsfInvestment(fund_id=fund.id, **request.model_dump())
    session.add(investment)
    await session.flush()
    return investment


@router.put("/investments/{investment_id}", response_model=InvestmentResponse)
async def update_investment(
    investment_id: str,
    request: InvestmentUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    investment = await get_fund_item_or_404(session, SmsfInvestment, investment_id, user_id, "Investment")
    for key, value in request.model_dump(exclude_unset=True).items():
        setattr(investment, key, value)
    await session.flush()
    await session.refresh(investment)
    return investment


@router.delete("/investments/{investment_id}", status_code=204)
async def delete_investment(
    investment_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    investment = await get_fund_item_or_404(session, SmsfInvestment, investment_id, user_id, "Investment")
    await session.delete(investment)


# === Fund transactions ===


@router.get("/funds/{fund_id}/transactions", response_model=list[FundTransactionResponse])
async def list_fund_transactions(
    fund_id: str,
    financial_year: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    fund = await get_fund_or_404(session, fund_id, user_id)
    fy = validate_financial_year(financial_year) if financial_year else None
    return [fund_transaction_to_response(t) for t in await smsf_service.list_transactions(session, fund.id, fy)]


@router.post("/funds/{fund_id}/transactions", response_model=FundTransactionResponse, status_code=201)
async def add_fund_transaction(
    fund_id: str,
    request: FundTransactionCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    fund = await get_fund_or_404(session, fund_id, user_id)
    await check_in_fund(session, SmsfMember, request.member_id, fund, "Member")
    await check_in_fund(session, SmsfInvestment, request.investment_id, fund, "Investment")

    transaction = SmsfTransaction(
        fund_id=fund.id, financial_year=financial_year_for(request.date), **request.model_dump()
    )
    session.add(transaction)
    await session.flush()
    await session.refresh(transaction, ["member", "investment"])
    return fund_transaction_to_response(transaction)


@router.delete("/transactions/{transaction_id}", status_code=204)
async def delete_fund_transaction(
    transaction_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    transaction = await get_fund_item_or_404(session, SmsfTransaction, transaction_id, user_id, "Transaction")
    await session.delete(transaction)


# === Compliance ===


@router.get("/funds/{fund_id}/compliance", response_model=list[ComplianceResponse])
async def list_compliance(
    fund_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Compliance checklists, latest year first."""
    fund = await get_fund_or_404(session, fund_id, user_id)
    return await smsf_service.list_compliance(session, fund.id)


@router.put("/funds/{fund_id}/compliance/{financial_year}", response_model=ComplianceResponse)
async def upsert_compliance(
    fund_id: str,
    request: ComplianceUpdate,
    financial_year: str = Path(..., description="Financial year (YYYY-YY)"),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Create or update the checklist for one year; only the fields sent change."""
    fund = await get_fund_or_404(session, fund_id, user_id)
    fy = validate_financial_year(financial_year)

    compliance = await smsf_service.get_compliance(session, fund.id, fy)
    if compliance is None:
        compliance = SmsfCompliance(fund_id=fund.id, financial_year=fy)
        session.add(compliance)

    for key, value in request.model_dump(exclude_unset=True).items():
        setattr(compliance, key, value)
    await session.flush()
    await session.refresh(compliance)
    return compliance
