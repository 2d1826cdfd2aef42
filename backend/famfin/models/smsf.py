"""
Self-managed super fund models: the fund, its members, contributions,
investment register, fund transactions, yearly compliance checklist and
carry-forward concessional cap records.
"""

import datetime as dt
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Enum, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from famfin.database import Base, new_id


class FundStatus(str, enum.Enum):
    ACTIVE = "active"
    WINDING_UP = "winding_up"
    WOUND_UP = "wound_up"


class MemberStatus(str, enum.Enum):
    ACCUMULATION = "accumulation"
    TRANSITION_TO_RETIREMENT = "transition_to_retirement"
    PENSION = "pension"


class SmsfContributionType(str, enum.Enum):
    CONCESSIONAL = "concessional"
    NON_CONCESSIONAL = "non_concessional"
    GOVERNMENT_CO_CONTRIBUTION = "government_co_contribution"
    SPOUSE = "spouse"
    DOWNSIZER = "downsizer"


class AssetType(str, enum.Enum):
    AUSTRALIAN_SHARES = "australian_shares"
    INTERNATIONAL_SHARES = "international_shares"
    PROPERTY = "property"
    FIXED_INCOME = "fixed_income"
    CASH = "cash"
    CRYPTOCURRENCY = "cryptocurrency"
    COLLECTIBLES = "collectibles"
    OTHER = "other"


class SmsfTransactionType(str, enum.Enum):
    CONTRIBUTION = "contribution"
    PENSION_PAYMENT = "pension_payment"
    LUMP_SUM = "lump_sum"
    INVESTMENT_INCOME = "investment_income"
    INVESTMENT_PURCHASE = "investment_purchase"
    INVESTMENT_SALE = "investment_sale"
    FEE = "fee"
    TAX = "tax"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    OTHER = "other"


class AuditStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ISSUES_FOUND = "issues_found"


class LodgementStatus(str, enum.Enum):
    PENDING = "pending"
    LODGED = "lodged"
    OVERDUE = "overdue"


class SmsfFund(Base):
    __tablename__ = "smsf_funds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    abn: Mapped[Optional[str]] = mapped_column(String(20))
    trustee_name: Mapped[Optional[str]] = mapped_column(String(255))
    trustee_abn: Mapped[Optional[str]] = mapped_column(String(20))
    establishment_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    fund_status: Mapped[FundStatus] = mapped_column(Enum(FundStatus), default=FundStatus.ACTIVE)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    members: Mapped[list["SmsfMember"]] = relationship(
        "SmsfMember", back_populates="fund", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<SmsfFund {self.name}>"


class SmsfMember(Base):
    __tablename__ = "smsf_members"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    fund_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("smsf_funds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Encrypted with utils.encryption
    tfn: Mapped[Optional[str]] = mapped_column(Text)
    date_of_birth: Mapped[Optional[dt.date]] = mapped_column(Date)
    preservation_age: Mapped[Optional[int]] = mapped_column(Integer)
    total_super_balance: Mapped[float] = mapped_column(Float, default=0.0)
    member_status: Mapped[MemberStatus] = mapped_column(Enum(MemberStatus), default=MemberStatus.ACCUMULATION)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    fund: Mapped[SmsfFund] = relationship("SmsfFund", back_populates="members")


class SmsfContribution(Base):
    __tablename__ = "smsf_contributions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    fund_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("smsf_funds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    member_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("smsf_members.id", ondelete="CASCADE"), nullable=False, index=True
    )
    contribution_type: Mapped[SmsfContributionType] = mapped_column(Enum(SmsfContributionType), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    financial_year: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    member: Mapped[SmsfMember] = relationship("SmsfMember", lazy="selectin")


class SmsfInvestment(Base):
    """One holding on the fund's investment register."""

    __tablename__ = "smsf_investments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    fund_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("smsf_funds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    asset_type: Mapped[AssetType] = mapped_column(Enum(AssetType), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    units: Mapped[Optional[float]] = mapped_column(Float)
    cost_base: Mapped[float] = mapped_column(Float, nullable=False)
    current_value: Mapped[float] = mapped_column(Float, nullable=False)
    acquisition_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    income_ytd: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)


class SmsfTransaction(Base):
    __tablename__ = "smsf_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    fund_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("smsf_funds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    investment_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("smsf_investments.id", ondelete="SET NULL")
    )
    member_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("smsf_members.id", ondelete="SET NULL"))
    transaction_type: Mapped[SmsfTransactionType] = mapped_column(Enum(SmsfTransactionType), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    financial_year: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    member: Mapped[Optional[SmsfMember]] = relationship("SmsfMember", lazy="selectin")
    investment: Mapped[Optional[SmsfInvestment]] = relationship("SmsfInvestment", lazy="selectin")


class SmsfCompliance(Base):
    """Audit, annual return and trustee obligations for one financial year."""

    __tablename__ = "smsf_compliance"
    __table_args__ = (UniqueConstraint("fund_id", "financial_year"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    fund_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("smsf_funds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    financial_year: Mapped[str] = mapped_column(String(7), nullable=False)
    audit_due_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    audit_completed_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    audit_status: Mapped[AuditStatus] = mapped_column(Enum(AuditStatus), default=AuditStatus.PENDING)
    annual_return_due_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    annual_return_lodged_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    lodgement_status: Mapped[LodgementStatus] = mapped_column(Enum(LodgementStatus), default=LodgementStatus.PENDING)
    investment_strategy_reviewed: Mapped[bool] = mapped_column(Boolean, default=False)
    investment_strategy_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    member_statements_issued: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)


class SmsfCarryForward(Base):
    """Unused concessional cap for one member and year."""

    __tablename__ = "smsf_carry_forward"
    __table_args__ = (UniqueConstraint("member_id", "financial_year"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    member_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("smsf_members.id", ondelete="CASCADE"), nullable=False, index=True
    )
    financial_year: Mapped[str] = mapped_column(String(7), nullable=False)
    concessional_cap: Mapped[float] = mapped_column(Float, nullable=False)
    concessional_used: Mapped[float] = mapped_column(Float, default=0.0)
    unused_amount: Mapped[float] = mapped_column(Float, default=0.0)
    total_super_balance_at_year_end: Mapped[Optional[float]] = mapped_column(Float)
    eligible_for_carry_forward: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
