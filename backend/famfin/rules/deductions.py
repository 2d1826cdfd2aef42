"""
Work-related deduction rules.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from famfin.models.tax import DeductionCategory

# Fixed rate method, 2024-25
WFH_RATE_PER_HOUR = 0.67
DEFAULT_WORK_WEEKS = 48

VEHICLE_RATE_PER_KM = 0.85
VEHICLE_KM_LIMIT = 5000

LARGE_DEDUCTION_THRESHOLD = 1000

# Claims above these amounts need a receipt
RECEIPT_REQUIRED_ABOVE = {
    DeductionCategory.CLOTHING_LAUNDRY: 150,
    DeductionCategory.TOOLS_EQUIPMENT: 300,
    DeductionCategory.PHONE_INTERNET: 0,
    DeductionCategory.SELF_EDUCATION: 0,
    DeductionCategory.TRAVEL: 0,
    DeductionCategory.VEHICLE: 0,
}


@dataclass(frozen=True)
class WFHCalculation:
    hours: float
    rate_per_hour: float
    total_deduction: float
    period_start: Optional[date] = None
    period_end: Optional[date] = None


@dataclass(frozen=True)
class DeductionFlag:
    flag: bool
    reason: Optional[str] = None


def calculate_wfh_deduction(
    total_hours: float,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
) -> WFHCalculation:
    return WFHCalculation(
        hours=total_hours,
        rate_per_hour=WFH_RATE_PER_HOUR,
        total_deduction=round(total_hours * WFH_RATE_PER_HOUR, 2),
        period_start=period_start,
        period_end=period_end,
    )


def wfh_hours_from_weekly(hours_per_week: float, weeks_worked: int = DEFAULT_WORK_WEEKS) -> float:
    return hours_per_week * weeks_worked


def estimate_annual_wfh_deduction(hours_per_week: float, weeks_worked: int = DEFAULT_WORK_WEEKS) -> float:
    return round(wfh_hours_from_weekly(hours_per_week, weeks_worked) * WFH_RATE_PER_HOUR, 2)


def calculate_vehicle_deduction(kilometres: float) -> float:
    """Cents per km method, capped at 5,000 km."""
    claimable = min(max(kilometres, 0), VEHICLE_KM_LIMIT)
    return round(claimable * VEHICLE_RATE_PER_KM, 2)


def should_flag_deduction(
    category: DeductionCategory | str,
    amount: float,
    has_receipt: bool,
) -> DeductionFlag:
    """Whether a claim needs documentation before it is lodged."""
    try:
        category = DeductionCategory(category)
    except ValueError:
        category = DeductionCategory.OTHER

    threshold = RECEIPT_REQUIRED_ABOVE.get(category)
    if threshold is not None and amount > threshold and not has_receipt:
        return DeductionFlag(
            flag=True,
            reason=f"Receipt required for {category.value} claims over ${threshold}",
        )

    if amount > LARGE_DEDUCTION_THRESHOLD and not has_receipt:
        return DeductionFlag(flag=True, reason="Large deduction without receipt - keep documentation")

    if category == DeductionCategory.WORK_FROM_HOME and not has_receipt:
        return DeductionFlag(flag=True, reason="WFH claims require timesheet/diary records")

    return DeductionFlag(flag=False)
