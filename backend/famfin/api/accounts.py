"""
Account API endpoints.

Handles account CRUD, the net position summary and balance recalculation.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.api.deps import get_user_id
from famfin.database import get_session
from famfin.models import Account, AccountType, XeroAccountMapping
from famfin.services.balances import recalculate_account_balance
from famfin.utils import encrypt_optional, mask_account_number, mask_bsb

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounts", tags=["accounts"])


# === Pydantic Models ===


class AccountCreate(BaseModel):
    """Request body for creating an account."""

    name: str = Field(..., min_length=1, max_length=255)
    account_type: AccountType
    institution: Optional[str] = None
    account_number: Optional[str] = None
    bsb: Optional[str] = None
    currency: str = "AUD"
    current_balance: float = 0.0
    credit_limit: Optional[float] = None
    interest_rate: Optional[float] = None
    is_active: bool = True
    notes: Optional[str] = None


class AccountUpdate(BaseModel):
    """Partial account update."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    account_type: Optional[AccountType] = None
    institution: Optional[str] = None
    account_number: Optional[str] = None
    bsb: Optional[str] = None
    currency: Optional[str] = None
    current_balance: Optional[float] = None
    credit_limit: Optional[float] = None
    interest_rate: Optional[float] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class AccountResponse(BaseModel):
    """Account with the account number masked."""

    id: str
    name: str
    account_type: AccountType
    institution: Optional[str]
    account_number_masked: Optional[str]
    bsb: Optional[str]
    currency: str
    current_balance: float
    credit_limit: Optional[float]
    interest_rate: Optional[float]
    is_active: bool
    notes: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class AccountsSummary(BaseModel):
    total_assets: float
    total_debt: float
    net_position: float
    account_count: int
    by_type: dict[str, float]


# === Helper Functions ===


def account_to_response(account: Account) -> AccountResponse:
    response = AccountResponse.model_validate(account)
    response.bsb = mask_bsb(account.bsb) if account.bsb else None
    return response


def apply_account_fields(account: Account, fields: dict) -> None:
    """Copy fields onto the account, encrypting the account number."""
    if "account_number" in fields:
        number = fields.pop("account_number")
        account.account_number = encrypt_optional(number)
        account.account_number_masked = mask_account_number(number) if number else None
    for key, value in fields.items():
        setattr(account, key, value)


async def get_account_or_404(session: AsyncSession, account_id: str, user_id: str) -> Account:
    account = await session.get(Account, account_id)
    if not account or account.user_id != user_id:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


# === Endpoints ===


@router.get("/", response_model=list[AccountResponse])
async def list_accounts(
    account_type: Optional[AccountType] = Query(None),
    include_inactive: bool = Query(False),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    query = select(Account).where(Account.user_id == user_id)
    if account_type:
        query = query.where(Account.account_type == account_type)
    if not include_inactive:
        query = query.where(Account.is_active.is_(True))

    result = await session.execute(query.order_by(Account.name))
    return [account_to_response(a) for a in result.scalars().all()]


@router.get("/summary", response_model=AccountsSummary)
async def accounts_summary(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """
    Assets vs debt across active accounts.

    Credit card and loan balances count as debt by absolute value.
    """
    result = await session.execute(
        select(Account).where(Account.user_id == user_id, Account.is_active.is_(True))
    )
    accounts = result.scalars().all()

    assets = debt = 0.0
    by_type: dict[str, float] = {}
    for account in accounts:
        balance = account.current_balance or 0
        if account.is_debt:
            debt += abs(balance)
        else:
            assets += balance
        by_type[account.account_type.value] = round(by_type.get(account.account_type.value, 0) + balance, 2)

    return AccountsSummary(
        total_assets=round(assets, 2),
        total_debt=round(debt, 2),
        net_position=round(assets - debt, 2),
        account_count=len(accounts),
        by_type=by_type,
    )


@router.post("/", response_model=AccountResponse, status_code=201)
async def create_account(
    request: AccountCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    account = Account(user_id=user_id)
    apply_account_fields(account, request.model_dump())
    session.add(account)
    await session.flush()

    logger.info("Created account %s (%s)", account.id, account.account_type.value)
    return account_to_response(account)


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(
    account_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return account_to_response(await get_account_or_404(session, account_id, user_id))


@router.put("/{account_id}", response_model=AccountResponse)
async def update_account(
    account_id: str,
    request: AccountUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    account = await get_account_or_404(session, account_id, user_id)
    apply_account_fields(account, request.model_dump(exclude_unset=True))
    await session.flush()
    await session.refresh(account)
    return account_to_response(account)


@router.delete("/{account_id}", status_code=204)
async def delete_account(
    account_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Delete an account and its transactions, unlinking any Xero mappings."""
    account = await get_account_or_404(session, account_id, user_id)
    await session.execute(
        update(XeroAccountMapping)
        .where(XeroAccountMapping.local_account_id == account_id)
        .values(local_account_id=None, match_confidence=None)
    )
    await session.delete(account)
    logger.info("Deleted account %s", account_id)


@router.post("/{account_id}/recalculate", response_model=AccountResponse)
async def recalculate_balance(
    account_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Set the balance to income minus expenses over the account's transactions."""
    account = await get_account_or_404(session, account_id, user_id)
    await recalculate_account_balance(session, account)
    await session.flush()
    return account_to_response(account)
