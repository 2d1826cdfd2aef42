"""
Budget progress, summaries and alerts.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.models.budget import Budget
from famfin.models.transaction import Transaction, TransactionType
from famfin.rules.budgets import BudgetStatus, PeriodWindow, budget_status, period_window


@dataclass
class BudgetProgress:
    budget: Budget
    window: PeriodWindow
    status: BudgetStatus
    transactions: list[Transaction] = field(default_factory=list)


@dataclass
class BudgetAlert:
    budget_id: str
    budget_name: str
    title: str
    message: str
    priority: str
    percentage: float
    spent: float
    budgeted: float


async def list_budgets(session: AsyncSession, user_id: str) -> list[Budget]:
    result = await session.execute(
        select(Budget).where(Budget.user_id == user_id, Budget.is_active.is_(True)).order_by(Budget.name)
    )
    return list(result.scalars().all())


async def budget_progress(session: AsyncSession, budget: Budget, today: Optional[date] = None) -> BudgetProgress:
    """
    Spending against a budget in its current period.

    Only expense transactions count. A budget without a category tracks all
    spending.
    """
    window = period_window(budget.period, today)

    stmt = select(Transaction).where(
        Transaction.user_id == budget.user_id,
        Transaction.transaction_type == TransactionType.EXPENSE,
        Transaction.date >= window.start,
        Transaction.date <= window.end,
    )
    if budget.category_id:
        stmt = stmt.where(Transaction.category_id == budget.category_id)

    result = await session.execute(stmt.order_by(Transaction.date.desc()))
    transactions = list(result.scalars().all())
    spent = sum(abs(tx.amount) for tx in transactions)

    return BudgetProgress(
        budget=budget,
        window=window,
        status=budget_status(budget.amount, spent, window.days_remaining, budget.alert_threshold),
        transactions=transactions,
    )


async def budget_summary(session: AsyncSession, user_id: str, today: Optional[date] = None) -> dict:
    progress = [await budget_progress(session, b, today) for b in await list_budgets(session, user_id)]

    total_budgeted = sum(p.budget.amount for p in progress)
    total_spent = sum(p.status.spent for p in progress)

    return {
        "total_budgeted": round(total_budgeted, 2),
        "total_spent": round(total_spent, 2),
        "total_remaining": round(max(0.0, total_budgeted - total_spent), 2),
        "over_budget_count": sum(1 for p in progress if p.status.is_over_budget),
        "approaching_limit_count": sum(1 for p in progress if p.status.is_approaching_limit),
        "budgets": progress,
    }


def budget_alert(progress: BudgetProgress) -> Optional[BudgetAlert]:
    """Alert for a budget that is over or near its limit, if alerts are on."""
    budget, status = progress.budget, progress.status
    if not budget.alert_enabled:
        return None

    if status.is_over_budget:
        title, priority = "Budget Exceeded", "urgent"
        message = (
            f"{budget.name} is {status.percentage:.0f}% spent - "
            f"over budget by ${status.spent - budget.amount:,.0f}"
        )
    elif status.is_approaching_limit:
        title, priority = "Budget Alert", "high"
        message = f"{budget.name} is at {status.percentage:.0f}% - ${status.remaining:,.0f} remaining"
    else:
        return None

    return BudgetAlert(
        budget_id=budget.id,
        budget_name=budget.name,
        title=title,
        message=message,
        priority=priority,
        percentage=status.percentage,
        spent=status.spent,
        budgeted=budget.amount,
    )
