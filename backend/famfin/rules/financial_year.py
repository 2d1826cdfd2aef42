"""
Australian financial year helpers (1 July - 30 June, written "2024-25").
"""

from datetime import date
from typing import Optional


def financial_year_for(day: date) -> str:
    """Financial year containing the given date."""
    start = day.year if day.month >= 7 else day.year - 1
    return f"{start}-{str(start + 1)[-2:]}"


def current_financial_year() -> str:
    return financial_year_for(date.today())


def financial_year_start(fy: str) -> int:
    """
    Calendar year the financial year starts in.

    Raises:
        ValueError: If fy is not in "YYYY-YY" form
    """
    head, sep, tail = fy.partition("-")
    if not sep or len(head) != 4 or len(tail) != 2 or not (head + tail).isdigit():
        raise ValueError(f"Invalid financial year: {fy!r}")

    start = int(head)
    if (start + 1) % 100 != int(tail):
        raise ValueError(f"Invalid financial year: {fy!r}")
    return start


def financial_year_bounds(fy: str) -> tuple[date, date]:
    """First and last day of the financial year."""
    start = financial_year_start(fy)
    return date(start, 7, 1), date(start + 1, 6, 30)


def days_until_eofy(today: Optional[date] = None) -> int:
    """Days until the next 30 June. Zero on 30 June itself."""
    today = today or date.today()
    year = today.year + 1 if today.month >= 7 else today.year
    return (date(year, 6, 30) - today).days
