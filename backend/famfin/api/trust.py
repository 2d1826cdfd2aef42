"""
Family trust API endpoints.

Handles the trust record, beneficiaries, income and distributions (which
keep the franking credit ledger in step), the investment register, the
year summary and distribution modelling.
"""

import datetime as dt
import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.api.deps import financial_year_query, get_user_id, validate_financial_year, validate_person
from famfin.config import get_settings
from famfin.database import get_session
from famfin.models import (
    BeneficiaryType,
    DistributionType,
    Trust,
    TrustBeneficiary,
    TrustDistribution,
    TrustIncome,
    TrustIncomeType,
    TrustInvestment,
)
from famfin.rules.financial_year import financial_year_for
from famfin.rules.trust import BeneficiaryIncome, DistributionScenario, model_distribution
from famfin.services import trust_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trust", tags=["trust"])


# === Pydantic Models ===


class TrustCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    trustee_name: str = Field(..., min_length=1, max_length=255)
    abn: Optional[str] = None
    trustee_abn: Optional[str] = None
    establishment_date: Optional[dt.date] = None


class TrustUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    trustee_name: Optional[str] = Field(None, min_length=1, max_length=255)
    abn: Optional[str] = None
    trustee_abn: Optional[str] = None
    establishment_date: Optional[dt.date] = None


class TrustResponse(BaseModel):
    id: str
    name: str
    abn: Optional[str]
    trustee_name: str
    trustee_abn: Optional[str]
    establishment_date: Optional[dt.date]

    class Config:
        from_attributes = True


class BeneficiaryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    beneficiary_type: BeneficiaryType = BeneficiaryType.PRIMARY
    person: Optional[str] = None


class BeneficiaryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    beneficiary_type: Optional[BeneficiaryType] = None
    is_active: Optional[bool] = None


class BeneficiaryResponse(BaseModel):
    id: str
    name: str
    beneficiary_type: BeneficiaryType
    person: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True


class TrustIncomeCreate(BaseModel):
    source: str = Field(..., min_length=1, max_length=255)
    income_type: TrustIncomeType
    amount: float = Field(..., gt=0)
    franking_credits: float = Field(0.0, ge=0)
    date: dt.date
    notes: Optional[str] = None


class TrustIncomeResponse(BaseModel):
    id: str
    source: str
    income_type: TrustIncomeType
    amount: float
    franking_credits: float
    date: dt.date
    financial_year: str
    notes: Optional[str]

    class Config:
        from_attributes = True


class DistributionCreate(BaseModel):
    beneficiary_id: str
    amount: float = Field(..., gt=0)
    franking_credits_streamed: float = Field(0.0, ge=0)
    capital_gains_streamed: float = Field(0.0, ge=0)
    distribution_type: DistributionType = DistributionType.INCOME
    date: dt.date
    is_paid: bool = False
    payment_date: Optional[dt.date] = None
    notes: Optional[str] = None


class DistributionResponse(BaseModel):
    id: str
    beneficiary_id: str
    beneficiary_name: Optional[str] = None
    amount: float
    franking_credits_streamed: float
    capital_gains_streamed: float
    distribution_type: DistributionType
    date: dt.date
    financial_year: str
    is_paid: bool
    payment_date: Optional[dt.date]
    notes: Optional[str]

    class Config:
        from_attributes = True


class InvestmentCreate(BaseModel):
    asset_type: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    units: Optional[float] = Field(None, ge=0)
    cost_base: float = Field(..., ge=0)
    current_value: float = Field(..., ge=0)
    acquisition_date: Optional[dt.date] = None
    last_valued_date: Optional[dt.date] = None
    notes: Optional[str] = None


class InvestmentUpdate(BaseModel):
    asset_type: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    units: Optional[float] = Field(None, ge=0)
    cost_base: Optional[float] = Field(None, ge=0)
    current_value: Optional[float] = Field(None, ge=0)
    acquisition_date: Optional[dt.date] = None
    last_valued_date: Optional[dt.date] = None
    notes: Optional[str] = None


class InvestmentResponse(BaseModel):
    id: str
    asset_type: str
    name: str
    description: Optional[str]
    units: Optional[float]
    cost_base: float
    current_value: float
    gain_loss: float
    acquisition_date: Optional[dt.date]
    last_valued_date: Optional[dt.date]
    notes: Optional[str]

    class Config:
        from_attributes = True


class LedgerResponse(BaseModel):
    financial_year: str
    opening_balance: float
    credits_received: float
    credits_distributed: float
    closing_balance: float


class SummaryResponse(BaseModel):
    trust: TrustResponse
    financial_year: str
    income_ytd: float
    franking_credits_ytd: float
    distributions_ytd: float
    distributable_amount: float
    days_until_eofy: int
    beneficiaries: list[BeneficiaryResponse]


class BeneficiaryInput(BaseModel):
    key: str
    name: str
    other_income: float = Field(0.0, ge=0)


class ScenarioInput(BaseModel):
    name: str
    allocations: dict[str, float]


class ModelDistributionRequest(BaseModel):
    """
    Beneficiaries default to the trust's active beneficiaries keyed by id,
    with no other income.
    """

    distributable_amount: float = Field(..., ge=0)
    franking_credits: float = Field(0.0, ge=0)
    beneficiaries: Optional[list[BeneficiaryInput]] = None
    scenarios: list[ScenarioInput] = Field(..., min_length=1)


# === Helper Functions ===


async def get_trust_or_404(session: AsyncSession, user_id: str) -> Trust:
    trust = await trust_service.get_trust(session, user_id)
    if trust is None:
        raise HTTPException(status_code=404, detail="Trust not found")
    return trust


async def get_beneficiary_or_404(session: AsyncSession, trust: Trust, beneficiary_id: str) -> TrustBeneficiary:
    beneficiary = await session.get(TrustBeneficiary, beneficiary_id)
    if not beneficiary or beneficiary.trust_id != trust.id:
        raise HTTPException(status_code=404, detail="Beneficiary not found")
    return beneficiary


async def get_investment_or_404(session: AsyncSession, trust: Trust, investment_id: str) -> TrustInvestment:
    investment = await session.get(TrustInvestment, investment_id)
    if not investment or investment.trust_id != trust.id:
        raise HTTPException(status_code=404, detail="Investment not found")
    return investment


def distribution_to_response(distribution: TrustDistribution) -> DistributionResponse:
    response = DistributionResponse.model_validate(distribution)
    response.beneficiary_name = distribution.beneficiary.name if distribution.beneficiary else None
    return response


async def create_trust_record(session: AsyncSession, user_id: str, request: TrustCreate) -> Trust:
    if await trust_service.get_trust(session, user_id):
        raise HTTPException(status_code=409, detail="Trust already exists")
    trust = Trust(user_id=user_id, **request.model_dump())
    session.add(trust)
    await session.flush()
    return trust


# === Trust ===


@router.get("/", response_model=TrustResponse)
async def get_trust(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return await get_trust_or_404(session, user_id)


@router.post("/", response_model=TrustResponse, status_code=201)
async def create_trust(
    request: TrustCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return await create_trust_record(session, user_id, request)


@router.put("/", response_model=TrustResponse)
async def update_trust(
    request: TrustUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    trust = await get_trust_or_404(session, user_id)
    for key, value in request.model_dump(exclude_unset=True).items():
        setattr(trust, key, value)
    await session.flush()
    return trust


@router.post("/initialize", response_model=TrustResponse, status_code=201)
async def initialize_trust(
    request: TrustCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Create the trust with every household member as a primary beneficiary."""
    trust = await create_trust_record(session, user_id, request)
    for person in get_settings().household_members:
        session.add(
            TrustBeneficiary(
                trust_id=trust.id,
                name=person.replace("_", " ").title(),
                beneficiary_type=BeneficiaryType.PRIMARY,
                person=person,
            )
        )
    await session.flush()

    logger.info("Initialised trust %s with %d beneficiaries", trust.id, len(get_settings().household_members))
    return trust


# === Beneficiaries ===


@router.get("/beneficiaries", response_model=list[BeneficiaryResponse])
async def list_beneficiaries(
    include_inactive: bool = Query(False),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    trust = await get_trust_or_404(session, user_id)
    return await trust_service.list_beneficiaries(session, trust.id, active_only=not include_inactive)


@router.post("/beneficiaries", response_model=BeneficiaryResponse, status_code=201)
async def add_beneficiary(
    request: BeneficiaryCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    trust = await get_trust_or_404(session, user_id)
    if request.person:
        validate_person(request.person)
    beneficiary = TrustBeneficiary(trust_id=trust.id, is_active=True, **request.model_dump())
    session.add(beneficiary)
    await session.flush()
    return beneficiary


@router.put("/beneficiaries/{beneficiary_id}", response_model=BeneficiaryResponse)
async def update_beneficiary(
    beneficiary_id: str,
    request: BeneficiaryUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    trust = await get_trust_or_404(session, user_id)
    beneficiary = await get_beneficiary_or_404(session, trust, beneficiary_id)
    for key, value in request.model_dump(exclude_unset=True).items():
        setattr(beneficiary, key, value)
    await session.flush()
    return beneficiary


# === Income ===


@router.get("/income", response_model=list[TrustIncomeResponse])
async def list_income(
    financial_year: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    trust = await get_trust_or_404(session, user_id)
    fy = validate_financial_year(financial_year) if financial_year else None
    return await trust_service.list_income(session, trust.id, fy)


@router.post("/income", response_model=TrustIncomeResponse, status_code=201)
async def add_income(
    request: TrustIncomeCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Record trust income; its franking credits go on the year's ledger."""
    trust = await get_trust_or_404(session, user_id)
    fy = financial_year_for(request.date)

    income = TrustIncome(trust_id=trust.id, financial_year=fy, **request.model_dump())
    session.add(income)
    if request.franking_credits:
        await trust_service.adjust_franking_ledger(session, trust.id, fy, received=request.franking_credits)
    await session.flush()
    return income


@router.delete("/income/{income_id}", status_code=204)
async def delete_income(
    income_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    trust = await get_trust_or_404(session, user_id)
    income = await session.get(TrustIncome, income_id)
    if not income or income.trust_id != trust.id:
        raise HTTPException(status_code=404, detail="Income not found")

    if income.franking_credits:
        await trust_service.adjust_franking_ledger(
            session, trust.id, income.financial_year, received=-income.franking_credits
        )
    await session.delete(income)


# === Distributions ===


@router.get("/distributions", response_model=list[DistributionResponse])
async def list_distributions(
    financial_year: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    trust = await get_trust_or_404(session, user_id)
    fy = validate_financial_year(financial_year) if financial_year else None
    return [distribution_to_response(d) for d in await trust_service.list_distributions(session, trust.id, fy)]


@router.get("/distributions/by-beneficiary")
async def distributions_by_beneficiary(
    fy: str = Depends(financial_year_query),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    trust = await get_trust_or_404(session, user_id)
    return await trust_service.distributions_by_beneficiary(session, trust.id, fy)


@router.post("/distributions", response_model=DistributionResponse, status_code=201)
async def add_distribution(
    request: DistributionCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Record a distribution; streamed franking credits leave the year's ledger."""
    trust = await get_trust_or_404(session, user_id)
    await get_beneficiary_or_404(session, trust, request.beneficiary_id)
    fy = financial_year_for(request.date)

    distribution = TrustDistribution(trust_id=trust.id, financial_year=fy, **request.model_dump())
    session.add(distribution)
    if request.franking_credits_streamed:
        await trust_service.adjust_franking_ledger(
            session, trust.id, fy, distributed=request.franking_credits_streamed
        )
    await session.flush()
    await session.refresh(distribution, ["beneficiary"])
    return distribution_to_response(distribution)


@router.delete("/distributions/{distribution_id}", status_code=204)
async def delete_distribution(
    distribution_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    trust = await get_trust_or_404(session, user_id)
    distribution = await session.get(TrustDistribution, distribution_id)
    if not distribution or distribution.trust_id != trust.id:
        raise HTTPException(status_code=404, detail="Distribution not found")

    if distribution.franking_credits_streamed:
        await trust_service.adjust_franking_ledger(
            session, trust.id, distribution.financial_year, distributed=-distribution.franking_credits_streamed
        )
    await session.delete(distribution)


# === Investments ===


@router.get("/investments", response_model=list[InvestmentResponse])
async def list_investments(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Trust holdings, largest current value first."""
    trust = await get_trust_or_404(session, user_id)
    return await trust_service.list_investments(session, trust.id)


@router.post("/investments", response_model=InvestmentResponse, status_code=201)
async def add_investment(
    request: InvestmentCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    trust = await get_trust_or_404(session, user_id)
    investment = TrustInvestment(trust_id=trust.id, **request.model_dump())
    session.add(investment)
    await session.flush()
    logger.info("Added trust investment %s (%s)", investment.name, investment.asset_type)
    return investment


@router.put("/investments/{investment_id}", response_model=InvestmentResponse)
async def update_investment(
    investment_id: str,
    request: InvestmentUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    trust = await get_trust_or_404(session, user_id)
    investment = await get_investment_or_404(session, trust, investment_id)
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
    trust = await get_trust_or_404(session, user_id)
    investment = await get_investment_or_404(session, trust, investment_id)
    await session.delete(investment)


# === Franking ledger, summary and modelling ===


@router.get("/franking-credits", response_model=LedgerResponse)
async def franking_credits(
    fy: str = Depends(financial_year_query),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    trust = await get_trust_or_404(session, user_id)
    ledger = await trust_service.get_ledger(session, trust.id, fy)
    if ledger is None:
        return LedgerResponse(
            financial_year=fy, opening_balance=0, credits_received=0, credits_distributed=0, closing_balance=0
        )
    return LedgerResponse(
        financial_year=fy,
        opening_balance=ledger.opening_balance,
        credits_received=ledger.credits_received,
        credits_distributed=ledger.credits_distributed,
        closing_balance=ledger.closing_balance,
    )


@router.get("/summary", response_model=SummaryResponse)
async def trust_summary(
    fy: str = Depends(financial_year_query),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Income, franking and distributions this year, and what is left to distribute."""
    trust = await get_trust_or_404(session, user_id)
    return await trust_service.trust_summary(session, trust, fy)


@router.post("/model-distribution")
async def model_trust_distribution(
    request: ModelDistributionRequest,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Compare household tax across distribution scenarios; lowest total tax wins."""
    if request.beneficiaries is not None:
        beneficiaries = [BeneficiaryIncome(**b.model_dump()) for b in request.beneficiaries]
    else:
        trust = await get_trust_or_404(session, user_id)
        beneficiaries = [
            BeneficiaryIncome(key=b.id, name=b.name)
            for b in await trust_service.list_beneficiaries(session, trust.id)
        ]
    scenarios = [DistributionScenario(name=s.name, allocations=s.allocations) for s in request.scenarios]

    try:
        model = model_distribution(request.distributable_amount, request.franking_credits, beneficiaries, scenarios)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return asdict(model)
