"""
Budget periods and progress.
"""

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from famfin.models.budget import BudgetPeriod
from famfin.rules.financial_year import financial_year_bounds, financial_year_for

DEFAULT_ALERT_THRESHOLD = 80


@dataclass(frozen=True)
class PeriodWindow:
    start: date
    end: date
    days_remaining: int


@dataclass(frozen=True)
class BudgetStatus:
    spent: float
    remaining: float
    percentage: float
    is_over_budget: bool
    is_approaching_limit: bool
    daily_allowance: float


def period_window(period: BudgetPeriod | str, today: Optional[date] = None) -> PeriodWindow:
    """
    The budget period containing today.

    Weeks start on Monday. Fortnights are counted in whole weeks from
    1 January. Yearly budgets follow the financial year. Unknown periods
    are treated as monthly.
    """
    today = today or date.today()
    try:
        period = BudgetPeriod(period)
    except ValueError:
        period = BudgetPeriod.MONTHLY

    if period == BudgetPeriod.WEEKLY:
        start = today - timedelta(days=today.weekday())
        end = start + timedelta(days=6)
    elif period == BudgetPeriod.FORTNIGHTLY:
        year_start = date(today.year, 1, 1)
        weeks = (today - year_start).days // 7
        start = year_start + timedelta(days=(weeks // 2) * 14)
        end = start + timedelta(days=13)
    elif period == BudgetPeriod.QUARTERLY:
        first_month = (today.month - 1) // 3 * 3 + 1
        start = date(today.year, first_month, 1)
        end = date(today.year, first_month + 2, monthrange(today.year, first_month + 2)[1])
    elif period == BudgetPeriod.YEARLY:
        start, end = financial_year_bounds(financial_year_for(today))
    else:
        start = today.replace(day=1)
        end = today.replace(day=monthrange(today.year, today.month)[1])

    return PeriodWindow(start=start, end=end, days_remaining=max(0, (end - today).days))


def budget_status(
    amount: float, spent: float, days_remaining: int, alert_threshold: Optional[int] = None
) -> BudgetStatus:
    """Progress of spending against a budget amount."""
    remaining = max(0.0, amount - spent)
    percentage = spent / amount * 100 if amount > 0 else 0.0
    threshold = alert_threshold or DEFAULT_ALERT_THRESHOLD

    return BudgetStatus(
        spent=round(spent, 2),
        remaining=round(remaining, 2),
        percentage=round(percentage, 2),
        is_over_budget=spent > amount,
        is_approaching_limit=threshold <= percentage < 100,
        daily_allowance=round(remaining / days_remaining, 2) if days_remaining > 0 else 0.0,
    )
