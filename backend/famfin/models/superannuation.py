"""
Personal superannuation accounts and contributions.
"""

import datetime as dt
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Enum, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from famfin.database import Base, new_id


class ContributionType(str, enum.Enum):
    EMPLOYER_SG = "employer_sg"
    SALARY_SACRIFICE = "salary_sacrifice"
    PERSONAL_DEDUCTIBLE = "personal_deductible"
    PERSONAL_NON_DEDUCTIBLE = "personal_non_deductible"
    SPOUSE = "spouse"
    GOVERNMENT_CO_CONTRIBUTION = "government_co_contribution"
    LOW_INCOME_SUPER_OFFSET = "low_income_super_offset"
    OTHER = "other"


class SuperAccount(Base):
    """A member's super fund account. Unique per (person, fund_name)."""

    __tablename__ = "super_accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    person: Mapped[str] = mapped_column(String(50), nullable=False)
    fund_name: Mapped[str] = mapped_column(String(255), nullable=False)
    member_number: Mapped[Optional[str]] = mapped_column(String(50))
    balance: Mapped[float] = mapped_column(Float, default=0.0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<SuperAccount {self.person} {self.fund_name}: {self.balance:,.2f}>"


class SuperContribution(Base):
    """Single contribution into a member's super."""

    __tablename__ = "super_contributions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    person: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    financial_year: Mapped[str] = mapped_column(String(7), nullable=False, index=True)

    contribution_type: Mapped[ContributionType] = mapped_column(
        Enum(ContributionType), nullable=False
    )
    is_concessional: Mapped[bool] = mapped_column(Boolean, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    fund_name: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<SuperContribution {self.person} {self.contribution_type.value} {self.amount:,.2f}>"
