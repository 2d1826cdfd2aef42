"""
Account model for bank, credit, loan, investment and cash accounts.
"""

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, Enum, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from famfin.database import Base, new_id
from famfin.utils.encryption import decrypt_optional

if TYPE_CHECKING:
    from famfin.models.transaction import Transaction


class AccountType(str, enum.Enum):
    """Kind of account."""

    BANK = "bank"
    CREDIT = "credit"
    INVESTMENT = "investment"
    LOAN = "loan"
    CASH = "cash"


# Account types whose balance is money owed
DEBT_ACCOUNT_TYPES = {AccountType.CREDIT, AccountType.LOAN}


class Account(Base):
    """
    Household account.

    The balance is either entered by hand or recalculated from the
    account's transactions.
    """

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(Enum(AccountType), nullable=False)
    institution: Mapped[Optional[str]] = mapped_column(String(255))

    # Bank details - account number is stored encrypted
    account_number: Mapped[Optional[str]] = mapped_column(String(500))
    account_number_masked: Mapped[Optional[str]] = mapped_column(String(50))
    bsb: Mapped[Optional[str]] = mapped_column(String(10))

    currency: Mapped[str] = mapped_column(String(3), default="AUD")
    current_balance: Mapped[float] = mapped_column(Float, default=0.0)
    credit_limit: Mapped[Optional[float]] = mapped_column(Float)
    interest_rate: Mapped[Optional[float]] = mapped_column(Float)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account", cascade="all, delete-orphan"
    )

    @property
    def is_debt(self) -> bool:
        return self.account_type in DEBT_ACCOUNT_TYPES

    @property
    def plain_account_number(self) -> Optional[str]:
        """Decrypted account number, for matching against bank feeds."""
        return decrypt_optional(self.account_number)

    def __repr__(self) -> str:
        return f"<Account {self.id}: {self.name} ({self.account_type.value})>"
