"""
Transaction, category and categorisation rule models.
"""

import datetime as dt
import enum
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, Date, DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from famfin.database import Base, new_id

if TYPE_CHECKING:
    from famfin.models.account import Account


class TransactionType(str, enum.Enum):
    """Direction of a transaction."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class ExternalSource(str, enum.Enum):
    """Where an imported transaction came from."""

    MANUAL = "manual"
    CSV = "csv"
    XERO = "xero"
    XERO_STATEMENT = "xero_statement"


class MatchField(str, enum.Enum):
    DESCRIPTION = "description"
    PAYEE = "payee"
    REFERENCE = "reference"


class MatchType(str, enum.Enum):
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    EXACT = "exact"


class Category(Base):
    """Spending/income category."""

    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Category {self.name}>"


class CategorisationRule(Base):
    """
    Auto-categorisation rule.

    Rules are evaluated in ascending priority; the first match wins.
    """

    __tablename__ = "categorisation_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    category_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    match_field: Mapped[MatchField] = mapped_column(Enum(MatchField), nullable=False)
    match_type: Mapped[MatchType] = mapped_column(Enum(MatchType), nullable=False)
    match_value: Mapped[str] = mapped_column(String(255), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=100)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    def matches(self, transaction: "Transaction") -> bool:
        """Check a transaction against this rule (case-insensitive)."""
        value = getattr(transaction, self.match_field.value, None)
        if not value:
            return False

        field = value.lower()
        needle = self.match_value.lower()

        if self.match_type == MatchType.CONTAINS:
            return needle in field
        if self.match_type == MatchType.STARTS_WITH:
            return field.startswith(needle)
        if self.match_type == MatchType.ENDS_WITH:
            return field.endswith(needle)
        return field == needle


class Transaction(Base):
    """
    Account transaction.

    Amounts for expenses may be stored negative (Xero imports) or positive
    (manual/CSV); the transaction_type is authoritative for direction.
    """

    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("categories.id", ondelete="SET NULL")
    )

    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType), nullable=False
    )
    payee: Mapped[Optional[str]] = mapped_column(String(255))
    reference: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_reconciled: Mapped[bool] = mapped_column(Boolean, default=False)

    # Import tracking
    external_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    external_source: Mapped[ExternalSource] = mapped_column(
        Enum(ExternalSource), default=ExternalSource.MANUAL
    )
    import_id: Mapped[Optional[str]] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    account: Mapped["Account"] = relationship("Account", back_populates="transactions")
    category: Mapped[Optional[Category]] = relationship("Category", lazy="selectin")

    @property
    def signed_amount(self) -> float:
        """Amount with the sign implied by the transaction type."""
        if self.transaction_type == TransactionType.INCOME:
            return abs(self.amount)
        if self.transaction_type == TransactionType.EXPENSE:
            return -abs(self.amount)
        return self.amount

    def __repr__(self) -> str:
        return f"<Transaction {self.id}: {self.description} {self.amount:,.2f}>"
