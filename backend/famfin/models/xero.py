"""
Xero integration models: connected organisations, bank account mappings
and sync history.
"""

import enum
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from famfin.database import Base, new_id


class ConnectionStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    ERROR = "error"
    DISCONNECTED = "disconnected"


class SyncType(str, enum.Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    INITIAL = "initial"


class SyncStatus(str, enum.Enum):
    STARTED = "started"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class XeroConnection(Base):
    """
    Connected Xero organisation (tenant).

    Tokens are stored encrypted. Unique per (user_id, tenant_id).
    """

    __tablename__ = "xero_connections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tenant_name: Mapped[Optional[str]] = mapped_column(String(255))
    tenant_type: Mapped[Optional[str]] = mapped_column(String(50))

    access_token: Mapped[Optional[str]] = mapped_column(Text)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text)
    token_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    status: Mapped[ConnectionStatus] = mapped_column(
        Enum(ConnectionStatus), default=ConnectionStatus.ACTIVE
    )
    status_message: Mapped[Optional[str]] = mapped_column(String(500))

    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    sync_frequency: Mapped[str] = mapped_column(String(20), default="daily")  # hourly, daily
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    next_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    mappings: Mapped[list["XeroAccountMapping"]] = relationship(
        "XeroAccountMapping", back_populates="connection", cascade="all, delete-orphan"
    )
    sync_logs: Mapped[list["XeroSyncLog"]] = relationship(
        "XeroSyncLog", back_populates="connection", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<XeroConnection {self.tenant_name} ({self.status.value})>"


class XeroAccountMapping(Base):
    """Xero bank account, optionally linked to a local account."""

    __tablename__ = "xero_account_mappings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    connection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("xero_connections.id", ondelete="CASCADE"), nullable=False
    )

    xero_account_id: Mapped[str] = mapped_column(String(64), nullable=False)
    xero_account_name: Mapped[Optional[str]] = mapped_column(String(255))
    xero_account_code: Mapped[Optional[str]] = mapped_column(String(50))
    xero_account_type: Mapped[Optional[str]] = mapped_column(String(50))
    xero_bank_account_number: Mapped[Optional[str]] = mapped_column(String(500))

    local_account_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="SET NULL")
    )
    match_confidence: Mapped[Optional[int]] = mapped_column(Integer)
    is_sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    last_transaction_date: Mapped[Optional[date]] = mapped_column(Date)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)

    connection: Mapped[XeroConnection] = relationship("XeroConnection", back_populates="mappings")


class XeroSyncLog(Base):
    __tablename__ = "xero_sync_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    connection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("xero_connections.id", ondelete="CASCADE"), nullable=False
    )
    sync_type: Mapped[SyncType] = mapped_column(Enum(SyncType), default=SyncType.MANUAL)
    status: Mapped[SyncStatus] = mapped_column(Enum(SyncStatus), default=SyncStatus.STARTED)

    accounts_synced: Mapped[int] = mapped_column(Integer, default=0)
    transactions_imported: Mapped[int] = mapped_column(Integer, default=0)
    transactions_skipped: Mapped[int] = mapped_column(Integer, default=0)
    transactions_updated: Mapped[int] = mapped_column(Integer, default=0)
    api_calls_used: Mapped[int] = mapped_column(Integer, default=0)

    started_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    connection: Mapped[XeroConnection] = relationship("XeroConnection", back_populates="sync_logs")
