"""
Family trust models: trust, beneficiaries, income, distributions, the
franking credit ledger and the investment register.
"""

import datetime as dt
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Enum, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from famfin.database import Base, new_id


class TrustIncomeType(str, enum.Enum):
    DIVIDEND = "dividend"
    INTEREST = "interest"
    RENT = "rent"
    CAPITAL_GAIN = "capital_gain"
    OTHER = "other"


class DistributionType(str, enum.Enum):
    INCOME = "income"
    CAPITAL = "capital"
    MIXED = "mixed"


class BeneficiaryType(str, enum.Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    CONTINGENT = "contingent"


class Trust(Base):
    """Discretionary family trust. One per household."""

    __tablename__ = "trusts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    abn: Mapped[Optional[str]] = mapped_column(String(20))
    trustee_name: Mapped[str] = mapped_column(String(255), nullable=False)
    trustee_abn: Mapped[Optional[str]] = mapped_column(String(20))
    establishment_date: Mapped[Optional[dt.date]] = mapped_column(Date)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Trust {self.name}>"


class TrustBeneficiary(Base):
    __tablename__ = "trust_beneficiaries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    trust_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trusts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    beneficiary_type: Mapped[BeneficiaryType] = mapped_column(
        Enum(BeneficiaryType), default=BeneficiaryType.PRIMARY
    )
    # Household member slug, links distributions to personal tax
    person: Mapped[Optional[str]] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)


class TrustIncome(Base):
    __tablename__ = "trust_income"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    trust_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trusts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source: Mapped[str] = mapped_column(String(255), nullable=False)
    income_type: Mapped[TrustIncomeType] = mapped_column(Enum(TrustIncomeType), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    franking_credits: Mapped[float] = mapped_column(Float, default=0.0)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    financial_year: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class TrustDistribution(Base):
    __tablename__ = "trust_distributions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    trust_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trusts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    beneficiary_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trust_beneficiaries.id"), nullable=False
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    franking_credits_streamed: Mapped[float] = mapped_column(Float, default=0.0)
    capital_gains_streamed: Mapped[float] = mapped_column(Float, default=0.0)
    distribution_type: Mapped[DistributionType] = mapped_column(
        Enum(DistributionType), default=DistributionType.INCOME
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    financial_year: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    payment_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    beneficiary: Mapped[TrustBeneficiary] = relationship("TrustBeneficiary", lazy="selectin")


class FrankingCreditLedger(Base):
    """Franking credits received and streamed out, per financial year."""

    __tablename__ = "franking_credits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    trust_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trusts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    financial_year: Mapped[str] = mapped_column(String(7), nullable=False)
    opening_balance: Mapped[float] = mapped_column(Float, default=0.0)
    credits_received: Mapped[float] = mapped_column(Float, default=0.0)
    credits_distributed: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    @property
    def closing_balance(self) -> float:
        return self.opening_balance + self.credits_received - self.credits_distributed


class TrustInvestment(Base):
    """An asset held by the trust."""

    __tablename__ = "trust_investments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    trust_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trusts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Free text, e.g. australian_shares, property, cash
    asset_type: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    units: Mapped[Optional[float]] = mapped_column(Float)
    cost_base: Mapped[float] = mapped_column(Float, nullable=False)
    current_value: Mapped[float] = mapped_column(Float, nullable=False)
    acquisition_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    last_valued_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    @property
    def gain_loss(self) -> float:
        return self.current_value - self.cost_base
