"""
Tax API endpoints.

Handles income and deduction records, per-person and household tax
summaries, the accountant export and the tax calculators.
"""

import datetime as dt
import logging
from io import BytesIO
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.api.deps import financial_year_query, get_user_id, validate_financial_year, validate_person
from famfin.config import get_settings
from famfin.database import get_session
from famfin.models import Deduction, DeductionCategory, Income, IncomeType
from famfin.rules.deductions import (
    DEFAULT_WORK_WEEKS,
    VEHICLE_KM_LIMIT,
    calculate_vehicle_deduction,
    calculate_wfh_deduction,
    should_flag_deduction,
    wfh_hours_from_weekly,
)
from famfin.rules.financial_year import financial_year_for
from famfin.rules.tax import calculate_tax
from famfin.services import tax_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tax", tags=["tax"])


# === Pydantic Models ===


class IncomeCreate(BaseModel):
    person: str
    income_type: IncomeType
    source: str = Field(..., min_length=1, max_length=255)
    amount: float = Field(..., ge=0)
    franking_credits: float = Field(0.0, ge=0)
    tax_withheld: float = Field(0.0, ge=0)
    is_taxable: bool = True
    date: dt.date
    financial_year: Optional[str] = None
    notes: Optional[str] = None


class IncomeUpdate(BaseModel):
    income_type: Optional[IncomeType] = None
    source: Optional[str] = Field(None, min_length=1, max_length=255)
    amount: Optional[float] = Field(None, ge=0)
    franking_credits: Optional[float] = Field(None, ge=0)
    tax_withheld: Optional[float] = Field(None, ge=0)
    is_taxable: Optional[bool] = None
    date: Optional[dt.date] = None
    notes: Optional[str] = None


class IncomeResponse(BaseModel):
    id: str
    person: str
    financial_year: str
    income_type: IncomeType
    source: str
    amount: float
    franking_credits: float
    tax_withheld: float
    is_taxable: bool
    date: dt.date
    notes: Optional[str]

    class Config:
        from_attributes = True


class DeductionCreate(BaseModel):
    person: str
    category: DeductionCategory
    description: str = Field(..., min_length=1, max_length=500)
    amount: float = Field(..., ge=0)
    date: dt.date
    financial_year: Optional[str] = None
    has_receipt: bool = False
    wfh_hours: Optional[float] = Field(None, ge=0)


class DeductionUpdate(BaseModel):
    category: Optional[DeductionCategory] = None
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    amount: Optional[float] = Field(None, ge=0)
    date: Optional[dt.date] = None
    has_receipt: Optional[bool] = None
    wfh_hours: Optional[float] = Field(None, ge=0)


class DeductionResponse(BaseModel):
    id: str
    person: str
    financial_year: str
    category: DeductionCategory
    description: str
    amount: float
    date: dt.date
    has_receipt: bool
    is_approved: bool
    wfh_hours: Optional[float]
    is_flagged: bool
    flag_reason: Optional[str]

    class Config:
        from_attributes = True


class WFHRequest(BaseModel):
    """Either total_hours or hours_per_week (times weeks_worked)."""

    person: str
    total_hours: Optional[float] = Field(None, ge=0)
    hours_per_week: Optional[float] = Field(None, ge=0)
    weeks_worked: int = Field(DEFAULT_WORK_WEEKS, ge=1, le=52)
    period_start: Optional[dt.date] = None
    period_end: Optional[dt.date] = None
    financial_year: Optional[str] = None
    save: bool = False


class WFHResponse(BaseModel):
    hours: float
    rate_per_hour: float
    total_deduction: float
    period_start: Optional[dt.date]
    period_end: Optional[dt.date]
    deduction: Optional[DeductionResponse] = None


class TaxCalculationRequest(BaseModel):
    gross_income: float = Field(..., ge=0)
    deductions: float = Field(0.0, ge=0)
    franking_credits: float = Field(0.0, ge=0)
    has_hecs_debt: bool = False
    has_private_health: bool = True


class VehicleRequest(BaseModel):
    kilometres: float = Field(..., ge=0)


class VehicleResponse(BaseModel):
    kilometres: float
    claimable_kilometres: float
    deduction: float


# === Helper Functions ===


def flag_deduction(deduction: Deduction) -> None:
    result = should_flag_deduction(deduction.category, deduction.amount, deduction.has_receipt)
    deduction.is_flagged = result.flag
    deduction.flag_reason = result.reason


async def get_income_or_404(session: AsyncSession, income_id: str, user_id: str) -> Income:
    income = await session.get(Income, income_id)
    if not income or income.user_id != user_id:
        raise HTTPException(status_code=404, detail="Income not found")
    return income


async def get_deduction_or_404(session: AsyncSession, deduction_id: str, user_id: str) -> Deduction:
    deduction = await session.get(Deduction, deduction_id)
    if not deduction or deduction.user_id != user_id:
        raise HTTPException(status_code=404, detail="Deduction not found")
    return deduction


def optional_person(person: Optional[str]) -> Optional[str]:
    return validate_person(person) if person else None


# === Income ===


@router.get("/income", response_model=list[IncomeResponse])
async def list_income(
    financial_year: Optional[str] = Query(None),
    person: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    fy = validate_financial_year(financial_year) if financial_year else None
    return await tax_service.list_income(session, user_id, fy, optional_person(person))


@router.get("/income/summary")
async def income_summary(
    fy: str = Depends(financial_year_query),
    person: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Taxable income totals by type."""
    items = await tax_service.list_income(session, user_id, fy, optional_person(person))
    return {"financial_year": fy, "person": person, **tax_service.summarize_income(items)}


@router.post("/income", response_model=IncomeResponse, status_code=201)
async def create_income(
    request: IncomeCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    validate_person(request.person)
    fields = request.model_dump()
    fields["financial_year"] = validate_financial_year(request.financial_year or financial_year_for(request.date))

    income = Income(user_id=user_id, **fields)
    session.add(income)
    await session.flush()
    return income


@router.put("/income/{income_id}", response_model=IncomeResponse)
async def update_income(
    income_id: str,
    request: IncomeUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    income = await get_income_or_404(session, income_id, user_id)
    fields = request.model_dump(exclude_unset=True)
    for key, value in fields.items():
        setattr(income, key, value)
    if "date" in fields:
        income.financial_year = financial_year_for(income.date)
    await session.flush()
    return income


@router.delete("/income/{income_id}", status_code=204)
async def delete_income(
    income_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    await session.delete(await get_income_or_404(session, income_id, user_id))


# === Deductions ===


@router.get("/deductions", response_model=list[DeductionResponse])
async def list_deductions(
    financial_year: Optional[str] = Query(None),
    person: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    fy = validate_financial_year(financial_year) if financial_year else None
    return await tax_service.list_deductions(session, user_id, fy, optional_person(person))


@router.get("/deductions/summary")
async def deduction_summary(
    fy: str = Depends(financial_year_query),
    person: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Deduction totals by category, with claims still awaiting approval."""
    items = await tax_service.list_deductions(session, user_id, fy, optional_person(person))
    summary = tax_service.summarize_deductions(items)
    summary["pending_approval"] = [DeductionResponse.model_validate(d) for d in summary["pending_approval"]]
    return {"financial_year": fy, "person": person, **summary}


@router.post("/deductions", response_model=DeductionResponse, status_code=201)
async def create_deduction(
    request: DeductionCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    validate_person(request.person)
    fields = request.model_dump()
    fields["financial_year"] = validate_financial_year(request.financial_year or financial_year_for(request.date))

    deduction = Deduction(user_id=user_id, **fields)
    flag_deduction(deduction)
    session.add(deduction)
    await session.flush()

    if deduction.is_flagged:
        logger.info("Deduction %s flagged: %s", deduction.id, deduction.flag_reason)
    return deduction


@router.post("/deductions/wfh", response_model=WFHResponse)
async def wfh_deduction(
    request: WFHRequest,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """
    Work-from-home deduction at the fixed rate per hour.

    With save=true the result is recorded as a deduction.
    """
    validate_person(request.person)
    if request.total_hours is not None:
        hours = request.total_hours
    elif request.hours_per_week is not None:
        hours = wfh_hours_from_weekly(request.hours_per_week, request.weeks_worked)
    else:
        raise HTTPException(status_code=400, detail="Provide total_hours or hours_per_week")

    calc = calculate_wfh_deduction(hours, request.period_start, request.period_end)
    response = WFHResponse(
        hours=calc.hours,
        rate_per_hour=calc.rate_per_hour,
        total_deduction=calc.total_deduction,
        period_start=calc.period_start,
        period_end=calc.period_end,
    )

    if request.save:
        claim_date = request.period_end or dt.date.today()
        deduction = Deduction(
            user_id=user_id,
            person=request.person,
            financial_year=validate_financial_year(request.financial_year or financial_year_for(claim_date)),
            category=DeductionCategory.WORK_FROM_HOME,
            description=f"Work from home - {hours:g} hours",
            amount=calc.total_deduction,
            date=claim_date,
            wfh_hours=hours,
            has_receipt=False,
        )
        flag_deduction(deduction)
        session.add(deduction)
        await session.flush()
        response.deduction = DeductionResponse.model_validate(deduction)

    return response


@router.put("/deductions/{deduction_id}", response_model=DeductionResponse)
async def update_deduction(
    deduction_id: str,
    request: DeductionUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    deduction = await get_deduction_or_404(session, deduction_id, user_id)
    fields = request.model_dump(exclude_unset=True)
    for key, value in fields.items():
        setattr(deduction, key, value)
    if "date" in fields:
        deduction.financial_year = financial_year_for(deduction.date)
    flag_deduction(deduction)
    await session.flush()
    return deduction


@router.post("/deductions/{deduction_id}/approve", response_model=DeductionResponse)
async def approve_deduction(
    deduction_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    deduction = await get_deduction_or_404(session, deduction_id, user_id)
    deduction.is_approved = True
    await session.flush()
    return deduction


@router.delete("/deductions/{deduction_id}", status_code=204)
async def delete_deduction(
    deduction_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    await session.delete(await get_deduction_or_404(session, deduction_id, user_id))


# === Summaries ===


@router.get("/summary")
async def tax_summary(
    person: str = Query(...),
    fy: str = Depends(financial_year_query),
    has_hecs_debt: bool = Query(False),
    has_private_health: bool = Query(True),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """
    Income, deductions and estimated tax for one person.

    estimated_refund_or_owing is negative for an expected refund.
    """
    validate_person(person)
    return await tax_service.person_tax_summary(
        session, user_id, person, fy, has_hecs_debt=has_hecs_debt, has_private_health=has_private_health
    )


@router.get("/household")
async def household_summary(
    fy: str = Depends(financial_year_query),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return await tax_service.household_tax_summary(session, user_id, get_settings().household_members, fy)


@router.get("/summary/export")
async def export_summary(
    fy: str = Depends(financial_year_query),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Download the household tax summary as an Excel workbook for the accountant."""
    members = get_settings().household_members
    household = await tax_service.household_tax_summary(session, user_id, members, fy)
    income = await tax_service.list_income(session, user_id, fy)
    deductions = await tax_service.list_deductions(session, user_id, fy)

    buffer = BytesIO()
    build_tax_workbook(household, income, deductions).save(buffer)
    buffer.seek(0)

    return StreamingResponse(
        buffer,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename=tax-summary-{fy}.xlsx"},
    )


HEADER_FILL = PatternFill(start_color="CCE5FF", end_color="CCE5FF", fill_type="solid")


def _header_row(ws, headers: list[str]) -> None:
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = Font(bold=True)
        cell.fill = HEADER_FILL


def build_tax_workbook(
    household: dict[str, Any], income: list[Income], deductions: list[Deduction]
) -> Workbook:
    wb = Workbook()

    # Sheet 1: Summary per member
    ws1 = wb.active
    ws1.title = "Summary"
    members = list(household["members"])
    _header_row(ws1, ["Item", *members])
    rows = [
        ("Total income", lambda s: s["income"]["total"]),
        ("Franking credits", lambda s: s["income"]["franking_credits"]),
        ("Deductions", lambda s: s["deductions"]["total"]),
        ("Taxable income", lambda s: s["estimated_tax"]["taxable_income"]),
        ("Income tax", lambda s: s["estimated_tax"]["income_tax"]),
        ("Medicare levy", lambda s: s["estimated_tax"]["medicare_levy"]),
        ("Net tax payable", lambda s: s["estimated_tax"]["net_tax_payable"]),
        ("Tax withheld", lambda s: s["tax_withheld"]),
        ("Refund (-) / owing", lambda s: s["estimated_refund_or_owing"]),
    ]
    for row_idx, (label, value) in enumerate(rows, 2):
        ws1.cell(row=row_idx, column=1, value=label)
        for col, person in enumerate(members, 2):
            ws1.cell(row=row_idx, column=col, value=value(household["members"][person]))
    ws1.column_dimensions["A"].width = 22

    # Sheet 2: Income
    ws2 = wb.create_sheet("Income")
    _header_row(ws2, ["Date", "Person", "Type", "Source", "Amount", "Franking", "Withheld", "Taxable"])
    for row_idx, item in enumerate(income, 2):
        values = [
            item.date.isoformat(), item.person, item.income_type.value, item.source,
            item.amount, item.franking_credits, item.tax_withheld, "Yes" if item.is_taxable else "No",
        ]
        for col, value in enumerate(values, 1):
            ws2.cell(row=row_idx, column=col, value=value)
    ws2.column_dimensions["D"].width = 30

    # Sheet 3: Deductions
    ws3 = wb.create_sheet("Deductions")
    _header_row(ws3, ["Date", "Person", "Category", "Description", "Amount", "Receipt", "Approved", "Flag"])
    for row_idx, item in enumerate(deductions, 2):
        values = [
            item.date.isoformat(), item.person, item.category.value, item.description, item.amount,
            "Yes" if item.has_receipt else "No", "Yes" if item.is_approved else "No", item.flag_reason or "",
        ]
        for col, value in enumerate(values, 1):
            ws3.cell(row=row_idx, column=col, value=value)
    ws3.column_dimensions["D"].width = 40
    ws3.column_dimensions["H"].width = 40

    return wb


# === Calculators ===


@router.post("/calculate")
async def calculate(request: TaxCalculationRequest):
    """Tax on an income using the 2024-25 resident rates."""
    return calculate_tax(
        request.gross_income,
        request.deductions,
        request.franking_credits,
        has_hecs_debt=request.has_hecs_debt,
        has_private_health=request.has_private_health,
    ).to_dict()


@router.post("/calculate/vehicle", response_model=VehicleResponse)
async def calculate_vehicle(request: VehicleRequest):
    """Cents per kilometre method."""
    deduction = calculate_vehicle_deduction(request.kilometres)
    return VehicleResponse(
        kilometres=request.kilometres,
        claimable_kilometres=min(request.kilometres, VEHICLE_KM_LIMIT),
        deduction=deduction,
    )
