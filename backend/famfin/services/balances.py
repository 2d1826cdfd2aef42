"""
Account balance derivation from transactions.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.models.account import Account
from famfin.models.transaction import Transaction


def compute_balance(transactions: list[Transaction]) -> float:
    """Income adds, expenses subtract, transfers count as stored."""
    return round(sum(tx.signed_amount for tx in transactions), 2)


async def recalculate_account_balance(session: AsyncSession, account: Account) -> float:
    """Recompute and store the balance of an account."""
    result = await session.execute(select(Transaction).where(Transaction.account_id == account.id))
    account.current_balance = compute_balance(list(result.scalars().all()))
    return account.current_balance
