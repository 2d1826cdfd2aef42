"""
Budget API endpoints.

Handles budget CRUD (delete deactivates), progress in the current period,
the all-budgets summary and over/near-limit alerts.
"""

import datetime as dt
import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.api.deps import get_user_id
from famfin.api.transactions import TransactionResponse, get_category_or_404, transaction_to_response
from famfin.database import get_session
from famfin.models import Budget, BudgetPeriod
from famfin.services import budget_service
from famfin.services.budget_service import BudgetProgress

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/budgets", tags=["budgets"])


# === Pydantic Models ===


class BudgetCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category_id: Optional[str] = None
    amount: float = Field(..., gt=0)
    period: BudgetPeriod
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    alert_threshold: int = Field(80, ge=1, le=100)
    alert_enabled: bool = True
    notes: Optional[str] = None


class BudgetUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    category_id: Optional[str] = None
    amount: Optional[float] = Field(None, gt=0)
    period: Optional[BudgetPeriod] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    alert_threshold: Optional[int] = Field(None, ge=1, le=100)
    alert_enabled: Optional[bool] = None
    notes: Optional[str] = None


class BudgetResponse(BaseModel):
    id: str
    name: str
    category_id: Optional[str]
    category_name: Optional[str]
    amount: float
    period: BudgetPeriod
    start_date: dt.date
    end_date: Optional[dt.date]
    alert_threshold: int
    alert_enabled: bool
    notes: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True


class ProgressResponse(BaseModel):
    budget: BudgetResponse
    period_start: dt.date
    period_end: dt.date
    days_remaining: int
    spent: float
    remaining: float
    percentage: float
    is_over_budget: bool
    is_approaching_limit: bool
    daily_allowance: float
    transactions: list[TransactionResponse] = []


class SummaryResponse(BaseModel):
    total_budgeted: float
    total_spent: float
    total_remaining: float
    over_budget_count: int
    approaching_limit_count: int
    budgets: list[ProgressResponse]


class AlertResponse(BaseModel):
    budget_id: str
    budget_name: str
    title: str
    message: str
    priority: str
    percentage: float
    spent: float
    budgeted: float


# === Helper Functions ===


async def get_budget_or_404(session: AsyncSession, budget_id: str, user_id: str) -> Budget:
    budget = await session.get(Budget, budget_id)
    if not budget or budget.user_id != user_id:
        raise HTTPException(status_code=404, detail="Budget not found")
    return budget


def check_dates(start_date: Optional[dt.date], end_date: Optional[dt.date]) -> None:
    if start_date and end_date and end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")


def progress_to_response(progress: BudgetProgress, include_transactions: bool = False) -> ProgressResponse:
    return ProgressResponse(
        budget=BudgetResponse.model_validate(progress.budget),
        period_start=progress.window.start,
        period_end=progress.window.end,
        days_remaining=progress.window.days_remaining,
        transactions=[transaction_to_response(tx) for tx in progress.transactions] if include_transactions else [],
        **asdict(progress.status),
    )


# === Budgets ===


@router.get("/", response_model=list[BudgetResponse])
async def list_budgets(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Active budgets by name."""
    return await budget_service.list_budgets(session, user_id)


@router.post("/", response_model=BudgetResponse, status_code=201)
async def create_budget(
    request: BudgetCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    fields = request.model_dump()
    fields["start_date"] = fields["start_date"] or dt.date.today()
    check_dates(fields["start_date"], fields["end_date"])

    category_name = None
    if request.category_id:
        category_name = (await get_category_or_404(session, request.category_id, user_id)).name

    budget = Budget(user_id=user_id, category_name=category_name, is_active=True, **fields)
    session.add(budget)
    await session.flush()
    logger.info("Created %s budget %s for %.2f", budget.period.value, budget.name, budget.amount)
    return budget


@router.get("/summary", response_model=SummaryResponse)
async def budgets_summary(
    as_of: Optional[dt.date] = Query(None, description="Day whose periods to report (default today)"),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    summary = await budget_service.budget_summary(session, user_id, as_of)
    summary["budgets"] = [progress_to_response(p) for p in summary["budgets"]]
    return summary


@router.get("/alerts", response_model=list[AlertResponse])
async def budget_alerts(
    as_of: Optional[dt.date] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Budgets over their limit or past their alert threshold."""
    summary = await budget_service.budget_summary(session, user_id, as_of)
    alerts = [budget_service.budget_alert(p) for p in summary["budgets"]]
    return [asdict(a) for a in alerts if a is not None]


@router.get("/{budget_id}", response_model=BudgetResponse)
async def get_budget(
    budget_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return await get_budget_or_404(session, budget_id, user_id)


@router.put("/{budget_id}", response_model=BudgetResponse)
async def update_budget(
    budget_id: str,
    request: BudgetUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    budget = await get_budget_or_404(session, budget_id, user_id)
    fields = request.model_dump(exclude_unset=True)
    if fields.get("start_date") is None:
        fields.pop("start_date", None)
    check_dates(fields.get("start_date", budget.start_date), fields.get("end_date", budget.end_date))

    if fields.get("category_id"):
        fields["category_name"] = (await get_category_or_404(session, fields["category_id"], user_id)).name
    elif "category_id" in fields:
        fields["category_name"] = None

    for key, value in fields.items():
        setattr(budget, key, value)
    await session.flush()
    await session.refresh(budget)
    return budget


@router.delete("/{budget_id}", status_code=204)
async def delete_budget(
    budget_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Deactivate a budget; it drops out of lists and summaries."""
    budget = await get_budget_or_404(session, budget_id, user_id)
    budget.is_active = False
    await session.flush()


@router.get("/{budget_id}/progress", response_model=ProgressResponse)
async def get_budget_progress(
    budget_id: str,
    as_of: Optional[dt.date] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Spending in the budget's current period, with the transactions counted."""
    budget = await get_budget_or_404(session, budget_id, user_id)
    progress = await budget_service.budget_progress(session, budget, as_of)
    return progress_to_response(progress, include_transactions=True)
