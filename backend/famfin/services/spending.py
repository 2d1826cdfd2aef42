"""
Cash-flow summaries over transactions.
"""

from collections import defaultdict
from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.models.transaction import Transaction, TransactionType

TOP_N = 10


async def transactions_summary(
    session: AsyncSession,
    user_id: str,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    account_id: Optional[str] = None,
) -> dict[str, Any]:
    """Income, expenses, net cash flow and the biggest expense categories and payees."""
    stmt = select(Transaction).where(Transaction.user_id == user_id)
    if date_from:
        stmt = stmt.where(Transaction.date >= date_from)
    if date_to:
        stmt = stmt.where(Transaction.date <= date_to)
    if account_id:
        stmt = stmt.where(Transaction.account_id == account_id)

    result = await session.execute(stmt)
    transactions = list(result.scalars().all())

    income = expenses = 0.0
    by_category: dict[str, float] = defaultdict(float)
    by_payee: dict[str, float] = defaultdict(float)

    for tx in transactions:
        amount = abs(tx.amount)
        if tx.transaction_type == TransactionType.INCOME:
            income += amount
        elif tx.transaction_type == TransactionType.EXPENSE:
            expenses += amount
            by_category[tx.category.name if tx.category else "Uncategorised"] += amount
            by_payee[tx.payee or tx.description] += amount

    def top(totals: dict[str, float]) -> list[dict[str, Any]]:
        ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)[:TOP_N]
        return [{"name": name, "amount": round(amount, 2)} for name, amount in ranked]

    return {
        "date_from": date_from,
        "date_to": date_to,
        "total_income": round(income, 2),
        "total_expenses": round(expenses, 2),
        "net_cash_flow": round(income - expenses, 2),
        "transaction_count": len(transactions),
        "top_categories": top(by_category),
        "top_payees": top(by_payee),
    }
