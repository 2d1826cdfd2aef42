"""
Transaction API endpoints.

Handles transaction listing and editing, imports, the cash-flow summary,
categories and categorisation rules.
"""

import datetime as dt
import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.api.accounts import get_account_or_404
from famfin.api.deps import get_user_id
from famfin.database import get_session
from famfin.models import (
    CategorisationRule,
    Category,
    ExternalSource,
    MatchField,
    MatchType,
    Transaction,
    TransactionType,
)
from famfin.services.spending import transactions_summary
from famfin.services.transaction_service import apply_rules, import_transactions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"])


# === Pydantic Models ===


class TransactionCreate(BaseModel):
    account_id: str
    date: date
    description: str = Field(..., min_length=1, max_length=500)
    amount: float
    transaction_type: TransactionType
    category_id: Optional[str] = None
    payee: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    is_reconciled: bool = False


class TransactionUpdate(BaseModel):
    date: Optional[dt.date] = None
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    amount: Optional[float] = None
    transaction_type: Optional[TransactionType] = None
    category_id: Optional[str] = None
    payee: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    is_reconciled: Optional[bool] = None


class TransactionResponse(BaseModel):
    """Single transaction response."""

    id: str
    account_id: str
    category_id: Optional[str]
    category_name: Optional[str] = None
    date: date
    description: str
    amount: float
    transaction_type: TransactionType
    payee: Optional[str]
    reference: Optional[str]
    notes: Optional[str]
    is_reconciled: bool
    external_id: Optional[str]
    external_source: ExternalSource
    import_id: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
    total: int
    page: int
    page_size: int


class BulkDeleteRequest(BaseModel):
    ids: list[str] = Field(..., min_length=1)


class ImportRow(BaseModel):
    """Imported row; a negative amount is an expense."""

    date: date
    description: str = Field(..., min_length=1, max_length=500)
    amount: float
    payee: Optional[str] = None
    reference: Optional[str] = None
    external_id: Optional[str] = None


class ImportRequest(BaseModel):
    account_id: str
    rows: list[ImportRow] = Field(..., min_length=1)


class ImportResponse(BaseModel):
    import_id: str
    imported: int
    skipped: int
    categorised: int


class NamedAmount(BaseModel):
    name: str
    amount: float


class SummaryResponse(BaseModel):
    date_from: Optional[date]
    date_to: Optional[date]
    total_income: float
    total_expenses: float
    net_cash_flow: float
    transaction_count: int
    top_categories: list[NamedAmount]
    top_payees: list[NamedAmount]


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category_type: TransactionType


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    category_type: Optional[TransactionType] = None


class CategoryResponse(BaseModel):
    id: str
    name: str
    category_type: TransactionType

    class Config:
        from_attributes = True


class RuleCreate(BaseModel):
    category_id: str
    match_field: MatchField
    match_type: MatchType
    match_value: str = Field(..., min_length=1, max_length=255)
    priority: int = 100
    is_active: bool = True


class RuleUpdate(BaseModel):
    category_id: Optional[str] = None
    match_field: Optional[MatchField] = None
    match_type: Optional[MatchType] = None
    match_value: Optional[str] = Field(None, min_length=1, max_length=255)
    priority: Optional[int] = None
    is_active: Optional[bool] = None


class RuleResponse(BaseModel):
    id: str
    category_id: str
    match_field: MatchField
    match_type: MatchType
    match_value: str
    priority: int
    is_active: bool

    class Config:
        from_attributes = True


class ApplyRulesResponse(BaseModel):
    categorised: int


# === Helper Functions ===


def transaction_to_response(tx: Transaction) -> TransactionResponse:
    response = TransactionResponse.model_validate(tx)
    response.category_name = tx.category.name if tx.category else None
    return response


async def get_transaction_or_404(session: AsyncSession, transaction_id: str, user_id: str) -> Transaction:
    tx = await session.get(Transaction, transaction_id)
    if not tx or tx.user_id != user_id:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return tx


async def get_category_or_404(session: AsyncSession, category_id: str, user_id: str) -> Category:
    category = await session.get(Category, category_id)
    if not category or category.user_id != user_id:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


async def get_rule_or_404(session: AsyncSession, rule_id: str, user_id: str) -> CategorisationRule:
    rule = await session.get(CategorisationRule, rule_id)
    if not rule or rule.user_id != user_id:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


# === Transactions ===


@router.get("/", response_model=TransactionListResponse)
async def list_transactions(
    account_id: Optional[str] = Query(None),
    category_id: Optional[str] = Query(None),
    transaction_type: Optional[TransactionType] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    search: Optional[str] = Query(None, description="Search description or payee"),
    min_amount: Optional[float] = Query(None),
    max_amount: Optional[float] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=200, description="Items per page"),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """List transactions with optional filters, newest first."""
    query = select(Transaction).where(Transaction.user_id == user_id)

    if account_id:
        query = query.where(Transaction.account_id == account_id)
    if category_id:
        query = query.where(Transaction.category_id == category_id)
    if transaction_type:
        query = query.where(Transaction.transaction_type == transaction_type)
    if date_from:
        query = query.where(Transaction.date >= date_from)
    if date_to:
        query = query.where(Transaction.date <= date_to)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Transaction.description.ilike(pattern), Transaction.payee.ilike(pattern)))
    if min_amount is not None:
        query = query.where(Transaction.amount >= min_amount)
    if max_amount is not None:
        query = query.where(Transaction.amount <= max_amount)

    total_result = await session.execute(select(func.count()).select_from(query.subquery()))
    total = total_result.scalar() or 0

    query = query.order_by(Transaction.date.desc(), Transaction.created_at.desc())
    query = query.offset((page - 1) * page_size).limit(page_size)
    result = await session.execute(query)

    return TransactionListResponse(
        transactions=[transaction_to_response(tx) for tx in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/summary", response_model=SummaryResponse)
async def get_summary(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    account_id: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return await transactions_summary(session, user_id, date_from, date_to, account_id)


@router.post("/import", response_model=ImportResponse)
async def import_rows(
    request: ImportRequest,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """
    Import rows into an account.

    All rows share one import id; categorisation rules run afterwards.
    """
    account = await get_account_or_404(session, request.account_id, user_id)
    return await import_transactions(session, user_id, account, [r.model_dump() for r in request.rows])


@router.post("/bulk-delete")
async def bulk_delete(
    request: BulkDeleteRequest,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    result = await session.execute(
        delete(Transaction).where(Transaction.user_id == user_id, Transaction.id.in_(request.ids))
    )
    logger.info("Bulk deleted %d transactions", result.rowcount)
    return {"deleted": result.rowcount}


# === Categories ===


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(
    category_type: Optional[TransactionType] = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    query = select(Category).where(Category.user_id == user_id)
    if category_type:
        query = query.where(Category.category_type == category_type)
    result = await session.execute(query.order_by(Category.name))
    return result.scalars().all()


@router.post("/categories", response_model=CategoryResponse, status_code=201)
async def create_category(
    request: CategoryCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    category = Category(user_id=user_id, **request.model_dump())
    session.add(category)
    await session.flush()
    return category


@router.put("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: str,
    request: CategoryUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    category = await get_category_or_404(session, category_id, user_id)
    for key, value in request.model_dump(exclude_unset=True).items():
        setattr(category, key, value)
    await session.flush()
    return category


@router.delete("/categories/{category_id}", status_code=204)
async def delete_category(
    category_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Delete a category, its rules, and uncategorise its transactions."""
    category = await get_category_or_404(session, category_id, user_id)
    await session.execute(delete(CategorisationRule).where(CategorisationRule.category_id == category_id))
    await session.execute(
        update(Transaction).where(Transaction.category_id == category_id).values(category_id=None)
    )
    await session.delete(category)


# === Categorisation rules ===


@router.get("/rules", response_model=list[RuleResponse])
async def list_rules(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    result = await session.execute(
        select(CategorisationRule)
        .where(CategorisationRule.user_id == user_id)
        .order_by(CategorisationRule.priority, CategorisationRule.created_at)
    )
    return result.scalars().all()


@router.post("/rules", response_model=RuleResponse, status_code=201)
async def create_rule(
    request: RuleCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    await get_category_or_404(session, request.category_id, user_id)
    rule = CategorisationRule(user_id=user_id, **request.model_dump())
    session.add(rule)
    await session.flush()
    return rule


@router.post("/rules/apply", response_model=ApplyRulesResponse)
async def apply_categorisation_rules(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Categorise uncategorised transactions; first matching rule by priority wins."""
    return ApplyRulesResponse(categorised=await apply_rules(session, user_id))


@router.put("/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(
    rule_id: str,
    request: RuleUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    rule = await get_rule_or_404(session, rule_id, user_id)
    fields = request.model_dump(exclude_unset=True)
    if fields.get("category_id"):
        await get_category_or_404(session, fields["category_id"], user_id)
    for key, value in fields.items():
        setattr(rule, key, value)
    await session.flush()
    return rule


@router.delete("/rules/{rule_id}", status_code=204)
async def delete_rule(
    rule_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    await session.delete(await get_rule_or_404(session, rule_id, user_id))


# === Single transactions ===


@router.post("/", response_model=TransactionResponse, status_code=201)
async def create_transaction(
    request: TransactionCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    await get_account_or_404(session, request.account_id, user_id)
    if request.category_id:
        await get_category_or_404(session, request.category_id, user_id)

    tx = Transaction(user_id=user_id, external_source=ExternalSource.MANUAL, **request.model_dump())
    session.add(tx)
    await session.flush()
    await session.refresh(tx, ["category"])
    return transaction_to_response(tx)


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return transaction_to_response(await get_transaction_or_404(session, transaction_id, user_id))


@router.put("/{transaction_id}", response_model=TransactionResponse)
async def update_transaction(
    transaction_id: str,
    request: TransactionUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    tx = await get_transaction_or_404(session, transaction_id, user_id)
    fields = request.model_dump(exclude_unset=True)
    if fields.get("category_id"):
        await get_category_or_404(session, fields["category_id"], user_id)
    for key, value in fields.items():
        setattr(tx, key, value)
    await session.flush()
    await session.refresh(tx)
    return transaction_to_response(tx)


@router.delete("/{transaction_id}", status_code=204)
async def delete_transaction(
    transaction_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    await session.delete(await get_transaction_or_404(session, transaction_id, user_id))
