"""
Personal income and deduction records used for tax estimates.
"""

import datetime as dt
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Enum, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from famfin.database import Base, new_id


class IncomeType(str, enum.Enum):
    SALARY = "salary"
    BONUS = "bonus"
    DIVIDEND = "dividend"
    TRUST_DISTRIBUTION = "trust_distribution"
    RENTAL = "rental"
    INTEREST = "interest"
    CAPITAL_GAIN = "capital_gain"
    GOVERNMENT_PAYMENT = "government_payment"
    OTHER = "other"


class DeductionCategory(str, enum.Enum):
    WORK_FROM_HOME = "work_from_home"
    VEHICLE = "vehicle"
    TRAVEL = "travel"
    CLOTHING_LAUNDRY = "clothing_laundry"
    SELF_EDUCATION = "self_education"
    TOOLS_EQUIPMENT = "tools_equipment"
    PROFESSIONAL_SUBSCRIPTIONS = "professional_subscriptions"
    UNION_FEES = "union_fees"
    PHONE_INTERNET = "phone_internet"
    DONATIONS = "donations"
    INCOME_PROTECTION = "income_protection"
    TAX_AGENT_FEES = "tax_agent_fees"
    INVESTMENT_EXPENSES = "investment_expenses"
    RENTAL_PROPERTY = "rental_property"
    OTHER = "other"


class Income(Base):
    """Income received by a household member in a financial year."""

    __tablename__ = "income"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    person: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    financial_year: Mapped[str] = mapped_column(String(7), nullable=False, index=True)  # "2024-25"

    income_type: Mapped[IncomeType] = mapped_column(Enum(IncomeType), nullable=False)
    source: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    franking_credits: Mapped[float] = mapped_column(Float, default=0.0)
    tax_withheld: Mapped[float] = mapped_column(Float, default=0.0)
    is_taxable: Mapped[bool] = mapped_column(Boolean, default=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Income {self.person} {self.income_type.value} {self.amount:,.2f}>"


class Deduction(Base):
    """Claimable deduction for a household member."""

    __tablename__ = "deductions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    person: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    financial_year: Mapped[str] = mapped_column(String(7), nullable=False, index=True)

    category: Mapped[DeductionCategory] = mapped_column(Enum(DeductionCategory), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    has_receipt: Mapped[bool] = mapped_column(Boolean, default=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False)
    wfh_hours: Mapped[Optional[float]] = mapped_column(Float)

    # Set when the claim needs documentation before lodging
    is_flagged: Mapped[bool] = mapped_column(Boolean, default=False)
    flag_reason: Mapped[Optional[str]] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Deduction {self.person} {self.category.value} {self.amount:,.2f}>"
