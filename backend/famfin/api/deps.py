"""
Shared request dependencies.
"""

from typing import Optional

from fastapi import HTTPException, Query

from famfin.config import get_settings
from famfin.rules.financial_year import current_financial_year, financial_year_start


def get_user_id() -> str:
    """The single family user; there is no login."""
    return get_settings().default_user_id


def validate_person(person: str) -> str:
    members = get_settings().household_members
    if person not in members:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown household member '{person}'. Expected one of: {', '.join(members)}",
        )
    return person


def validate_financial_year(fy: Optional[str]) -> str:
    """Default to the current financial year; 400 on a malformed one."""
    if not fy:
        return current_financial_year()
    try:
        financial_year_start(fy)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return fy


def financial_year_query(
    financial_year: Optional[str] = Query(None, description="Financial year (YYYY-YY)"),
) -> str:
    return validate_financial_year(financial_year)
