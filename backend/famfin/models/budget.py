"""
Spending budgets per category and period.
"""

import datetime as dt
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from famfin.database import Base, new_id
from famfin.models.transaction import Category


class BudgetPeriod(str, enum.Enum):
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class Budget(Base):
    """
    Spending limit for one category (or all spending) over a repeating period.

    category_name keeps the label when the category is deleted. Deleting a
    budget only deactivates it.
    """

    __tablename__ = "budgets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("categories.id", ondelete="SET NULL"), index=True
    )
    category_name: Mapped[Optional[str]] = mapped_column(String(255))
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    period: Mapped[BudgetPeriod] = mapped_column(Enum(BudgetPeriod), nullable=False)
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False, default=dt.date.today)
    end_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    # Percentage of the budget at which an alert is raised
    alert_threshold: Mapped[int] = mapped_column(Integer, default=80)
    alert_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    category: Mapped[Optional[Category]] = relationship("Category", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Budget {self.name} {self.amount} {self.period.value}>"
