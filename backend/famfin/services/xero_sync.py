"""
Xero connection management and bank transaction sync.

Everything here works on an open AsyncSession and a XeroClient; callers own
the transaction boundary except where a status change must survive a
raised error (token expiry), which is committed here.
"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.models.account import Account
from famfin.models.transaction import ExternalSource, Transaction
from famfin.models.xero import (
    ConnectionStatus,
    SyncStatus,
    SyncType,
    XeroAccountMapping,
    XeroConnection,
    XeroSyncLog,
)
from famfin.services.account_matching import (
    AUTO_LINK_THRESHOLD,
    find_best_match,
    map_xero_type,
    xero_account_type,
)
from famfin.services.balances import recalculate_account_balance
from famfin.services.xero_client import (
    XeroAPIError,
    XeroClient,
    is_token_expired,
    statement_line_to_local,
    token_expiry,
    xero_transaction_to_local,
)
from famfin.utils.encryption import decrypt_optional, encrypt_optional, encrypt_value
from famfin.utils.masking import mask_account_number

logger = logging.getLogger(__name__)

SYNC_MAX_PAGES = 5


class XeroTokenError(Exception):
    """Connection can no longer get a valid access token; user must reconnect."""


@dataclass
class SyncResult:
    success: bool = False
    accounts_synced: int = 0
    transactions_imported: int = 0
    transactions_skipped: int = 0
    transactions_updated: int = 0
    errors: list[str] = field(default_factory=list)
    sync_log_id: Optional[str] = None


@dataclass
class AccountComparison:
    """How one Xero bank account lines up with local accounts."""

    xero_account: dict[str, Any]
    match_status: str  # matched, suggested, no_match
    local_account: Optional[Account]
    confidence: int
    match_reason: Optional[str]
    mapping: Optional[XeroAccountMapping]


# OAuth state


def create_oauth_state(user_id: str) -> str:
    return f"{user_id}:{secrets.token_urlsafe(16)}"


def state_belongs_to(state: Optional[str], user_id: str) -> bool:
    return bool(state) and state.startswith(f"{user_id}:")


# Lookups


async def get_connection(session: AsyncSession, connection_id: str, user_id: str) -> Optional[XeroConnection]:
    result = await session.execute(
        select(XeroConnection).where(
            XeroConnection.id == connection_id,
            XeroConnection.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def _local_accounts(session: AsyncSession, user_id: str) -> list[Account]:
    result = await session.execute(select(Account).where(Account.user_id == user_id))
    return list(result.scalars().all())


async def _mappings_by_xero_id(session: AsyncSession, connection_id: str) -> dict[str, XeroAccountMapping]:
    result = await session.execute(
        select(XeroAccountMapping).where(XeroAccountMapping.connection_id == connection_id)
    )
    return {m.xero_account_id: m for m in result.scalars().all()}


def _new_mapping(connection_id: str, xero_account: dict[str, Any]) -> XeroAccountMapping:
    number = xero_account.get("BankAccountNumber")
    return XeroAccountMapping(
        connection_id=connection_id,
        xero_account_id=xero_account["AccountID"],
        xero_account_name=xero_account.get("Name"),
        xero_account_code=xero_account.get("Code"),
        xero_account_type=xero_account_type(xero_account),
        xero_bank_account_number=encrypt_optional(number),
        is_sync_enabled=True,
    )


# Callback


async def store_connections(
    session: AsyncSession,
    user_id: str,
    tokens: dict[str, Any],
    tenants: list[dict[str, Any]],
    client: XeroClient,
) -> list[XeroConnection]:
    """
    Persist the tenants returned after an OAuth code exchange.

    Existing tenants get the new tokens; new ones are inserted. Each
    tenant's bank accounts are then fetched and mapped, auto-linking to a
    local account when the match is confident enough. A tenant without an
    id, or a failure fetching one tenant's accounts, is logged and the next
    tenant is processed.
    """
    access_token = tokens["access_token"]
    expires_at = token_expiry(int(tokens.get("expires_in", 1800)))
    local_accounts = await _local_accounts(session, user_id)
    stored = []

    for tenant in tenants:
        tenant_id = tenant.get("tenantId") if isinstance(tenant, dict) else None
        if not tenant_id:
            logger.warning("Skipping Xero connection without a tenant id: %r", tenant)
            continue

        result = await session.execute(
            select(XeroConnection).where(
                XeroConnection.user_id == user_id,
                XeroConnection.tenant_id == tenant_id,
            )
        )
        connection = result.scalar_one_or_none()
        if connection is None:
            connection = XeroConnection(
                user_id=user_id,
                tenant_id=tenant_id,
                sync_enabled=True,
                sync_frequency="daily",
            )
            session.add(connection)

        connection.tenant_name = tenant.get("tenantName")
        connection.tenant_type = tenant.get("tenantType")
        connection.access_token = encrypt_value(access_token)
        connection.refresh_token = encrypt_optional(tokens.get("refresh_token"))
        connection.token_expires_at = expires_at
        connection.status = ConnectionStatus.ACTIVE
        connection.status_message = None
        await session.flush()
        stored.append(connection)

        try:
            bank_accounts = await client.get_bank_accounts(access_token, connection.tenant_id)
        except XeroAPIError:
            logger.exception("Error fetching bank accounts for tenant %s", connection.tenant_id)
            continue

        linked = await _upsert_mappings(session, connection, bank_accounts, local_accounts)
        logger.info(
            "Stored Xero tenant %s with %d bank accounts (%d auto-linked)",
            connection.tenant_name,
            len(bank_accounts),
            linked,
        )

    return stored


async def _upsert_mappings(
    session: AsyncSession,
    connection: XeroConnection,
    bank_accounts: list[dict[str, Any]],
    local_accounts: list[Account],
) -> int:
    """Insert missing mappings and auto-link unlinked ones. Returns links made."""
    existing = await _mappings_by_xero_id(session, connection.id)
    linked = 0

    for xero_account in bank_accounts:
        mapping = existing.get(xero_account["AccountID"])
        if mapping is None:
            mapping = _new_mapping(connection.id, xero_account)
            session.add(mapping)
        elif mapping.local_account_id:
            continue

        best = find_best_match(xero_account, local_accounts)
        if best.account is not None and best.confidence >= AUTO_LINK_THRESHOLD:
            mapping.local_account_id = best.account.id
            mapping.match_confidence = best.confidence
            linked += 1

    await session.flush()
    return linked


# Tokens


async def ensure_valid_token(session: AsyncSession, connection: XeroConnection, client: XeroClient) -> str:
    """
    Return a usable access token, refreshing it when expired.

    Raises:
        XeroTokenError: The refresh token is missing or refreshing failed.
            The connection is marked expired and committed first.
    """
    if connection.access_token and not is_token_expired(connection.token_expires_at):
        return decrypt_optional(connection.access_token)

    refresh_token = decrypt_optional(connection.refresh_token)
    if not refresh_token:
        await _mark_expired(session, connection, "Refresh token missing - please reconnect")
        raise XeroTokenError("Token expired - please reconnect to Xero")

    try:
        tokens = await client.refresh_tokens(refresh_token)
    except XeroAPIError:
        logger.exception("Token refresh failed for connection %s", connection.id)
        await _mark_expired(session, connection, "Token refresh failed - please reconnect")
        raise XeroTokenError("Token refresh failed - please reconnect to Xero")

    connection.access_token = encrypt_value(tokens["access_token"])
    connection.refresh_token = encrypt_optional(tokens.get("refresh_token")) or connection.refresh_token
    connection.token_expires_at = token_expiry(int(tokens.get("expires_in", 1800)))
    connection.status = ConnectionStatus.ACTIVE
    connection.status_message = None
    await session.flush()
    return tokens["access_token"]


async def _mark_expired(session: AsyncSession, connection: XeroConnection, message: str) -> None:
    connection.status = ConnectionStatus.EXPIRED
    connection.status_message = message
    await session.commit()


# Sync


def _finish_log(log: XeroSyncLog, status: SyncStatus, started: float, error: Optional[str] = None) -> None:
    log.status = status
    log.error_message = error
    log.completed_at = datetime.utcnow()
    log.duration_ms = int((time.monotonic() - started) * 1000)


async def _existing_external_ids(session: AsyncSession, source: ExternalSource, ids: list[str]) -> set[str]:
    if not ids:
        return set()
    result = await session.execute(
        select(Transaction.external_id).where(
            Transaction.external_source == source,
            Transaction.external_id.in_(ids),
        )
    )
    return set(result.scalars().all())


async def _import_rows(
    session: AsyncSession,
    rows: list[dict[str, Any]],
    source: ExternalSource,
    result: SyncResult,
) -> Optional[date]:
    """Insert rows not already imported. Returns the latest row date."""
    seen = await _existing_external_ids(session, source, [r["external_id"] for r in rows])
    latest: Optional[date] = None

    for row in rows:
        if latest is None or row["date"] > latest:
            latest = row["date"]
        if row["external_id"] in seen:
            result.transactions_skipped += 1
            continue

        seen.add(row["external_id"])
        session.add(Transaction(**row))
        result.transactions_imported += 1

    return latest


def _statement_rows(lines: list[dict[str, Any]], account_id: str, user_id: str) -> list[dict[str, Any]]:
    """Map statement lines, dropping any whose date or amount cannot be read."""
    rows = []
    for line in lines:
        try:
            rows.append(statement_line_to_local(line, account_id, user_id))
        except (KeyError, ValueError):
            logger.warning("Skipping unreadable statement line: %r", line)
    return rows


async def sync_connection(
    session: AsyncSession,
    connection: XeroConnection,
    client: XeroClient,
    sync_type: SyncType = SyncType.MANUAL,
    include_statement_lines: bool = False,
) -> SyncResult:
    """
    Import new bank transactions for every enabled, linked mapping.

    Per-account failures are recorded and the loop continues; the sync log
    ends as completed, partial (some errors) or failed.
    """
    started = time.monotonic()
    result = SyncResult()

    log = XeroSyncLog(connection_id=connection.id, sync_type=sync_type, status=SyncStatus.STARTED)
    session.add(log)
    await session.flush()
    result.sync_log_id = log.id

    try:
        access_token = await ensure_valid_token(session, connection, client)
    except XeroTokenError as e:
        result.errors.append(str(e))
        _finish_log(log, SyncStatus.FAILED, started, str(e))
        await session.flush()
        return result

    mappings_result = await session.execute(
        select(XeroAccountMapping).where(
            XeroAccountMapping.connection_id == connection.id,
            XeroAccountMapping.is_sync_enabled.is_(True),
        )
    )
    mappings = list(mappings_result.scalars().all())

    if not mappings:
        result.errors.append("No accounts configured for sync")
        _finish_log(log, SyncStatus.COMPLETED, started, "No accounts configured for sync")
        await session.flush()
        return result

    api_calls = 0
    touched_accounts: set[str] = set()

    for mapping in mappings:
        if not mapping.local_account_id:
            continue

        try:
            modified_since = None
            if mapping.last_transaction_date:
                modified_since = datetime.combine(mapping.last_transaction_date, datetime.min.time())

            transactions, calls = await client.get_all_bank_transactions(
                access_token,
                connection.tenant_id,
                bank_account_id=mapping.xero_account_id,
                modified_since=modified_since,
                max_pages=SYNC_MAX_PAGES,
            )
            api_calls += calls

            rows = [
                xero_transaction_to_local(tx, mapping.local_account_id, connection.user_id)
                for tx in transactions
            ]
            latest = await _import_rows(session, rows, ExternalSource.XERO, result)

            if include_statement_lines:
                lines = await client.get_bank_statement_lines(
                    access_token, connection.tenant_id, mapping.xero_account_id
                )
                api_calls += 1
                statement_rows = _statement_rows(lines, mapping.local_account_id, connection.user_id)
                await _import_rows(session, statement_rows, ExternalSource.XERO_STATEMENT, result)

            result.accounts_synced += 1
            touched_accounts.add(mapping.local_account_id)
            mapping.last_sync_at = datetime.utcnow()
            if latest and (mapping.last_transaction_date is None or latest > mapping.last_transaction_date):
                mapping.last_transaction_date = latest
            await session.flush()
        except (XeroAPIError, KeyError, ValueError) as e:
            logger.exception("Error syncing account %s", mapping.xero_account_name)
            result.errors.append(f"Failed to sync {mapping.xero_account_name}: {e}")

    for account_id in touched_accounts:
        account = await session.get(Account, account_id)
        if account is not None:
            await recalculate_account_balance(session, account)

    now = datetime.utcnow()
    connection.last_sync_at = now
    connection.next_sync_at = now + (
        timedelta(hours=1) if connection.sync_frequency == "hourly" else timedelta(hours=24)
    )

    log.accounts_synced = result.accounts_synced
    log.transactions_imported = result.transactions_imported
    log.transactions_skipped = result.transactions_skipped
    log.transactions_updated = result.transactions_updated
    log.api_calls_used = api_calls
    _finish_log(
        log,
        SyncStatus.PARTIAL if result.errors else SyncStatus.COMPLETED,
        started,
        "; ".join(result.errors) or None,
    )
    await session.flush()

    result.success = True
    logger.info(
        "Xero sync %s: %d imported, %d skipped, %d errors",
        connection.tenant_name,
        result.transactions_imported,
        result.transactions_skipped,
        len(result.errors),
    )
    return result


# Account management


async def refresh_accounts(session: AsyncSession, connection: XeroConnection, client: XeroClient) -> int:
    """Re-fetch bank accounts, updating names/types and adding new mappings."""
    access_token = await ensure_valid_token(session, connection, client)
    bank_accounts = await client.get_bank_accounts(access_token, connection.tenant_id)
    existing = await _mappings_by_xero_id(session, connection.id)

    for xero_account in bank_accounts:
        mapping = existing.get(xero_account["AccountID"])
        if mapping is None:
            session.add(_new_mapping(connection.id, xero_account))
            continue

        mapping.xero_account_name = xero_account.get("Name")
        mapping.xero_account_code = xero_account.get("Code")
        mapping.xero_account_type = xero_account_type(xero_account)

    await session.flush()
    return len(bank_accounts)


_STATUS_ORDER = {"matched": 0, "suggested": 1, "no_match": 2}


async def review_accounts(
    session: AsyncSession, connection: XeroConnection, client: XeroClient
) -> list[AccountComparison]:
    """
    Compare Xero bank accounts with local accounts.

    Sorted matched first, then suggested by confidence, then unmatched.
    """
    access_token = await ensure_valid_token(session, connection, client)
    bank_accounts = await client.get_bank_accounts(access_token, connection.tenant_id)
    local_accounts = await _local_accounts(session, connection.user_id)
    by_id = {a.id: a for a in local_accounts}
    mappings = await _mappings_by_xero_id(session, connection.id)

    comparisons = []
    for xero_account in bank_accounts:
        mapping = mappings.get(xero_account["AccountID"])

        if mapping is not None and mapping.local_account_id:
            comparisons.append(
                AccountComparison(
                    xero_account=xero_account,
                    match_status="matched",
                    local_account=by_id.get(mapping.local_account_id),
                    confidence=100,
                    match_reason="Manually linked",
                    mapping=mapping,
                )
            )
            continue

        best = find_best_match(xero_account, local_accounts)
        comparisons.append(
            AccountComparison(
                xero_account=xero_account,
                match_status="suggested" if best.account else "no_match",
                local_account=best.account,
                confidence=best.confidence,
                match_reason=best.reason,
                mapping=mapping,
            )
        )

    comparisons.sort(key=lambda c: (_STATUS_ORDER[c.match_status], -c.confidence))
    return comparisons


async def import_xero_account_as_local(
    session: AsyncSession,
    connection: XeroConnection,
    client: XeroClient,
    xero_account_id: str,
) -> Account:
    """
    Create a local account from a Xero bank account and link it.

    Raises:
        LookupError: The Xero account does not exist on the tenant
    """
    access_token = await ensure_valid_token(session, connection, client)
    bank_accounts = await client.get_bank_accounts(access_token, connection.tenant_id)
    xero_account = next((a for a in bank_accounts if a["AccountID"] == xero_account_id), None)
    if xero_account is None:
        raise LookupError("Xero account not found")

    number = xero_account.get("BankAccountNumber")
    account = Account(
        user_id=connection.user_id,
        name=xero_account.get("Name") or "Xero account",
        account_type=map_xero_type(xero_account_type(xero_account)),
        account_number=encrypt_optional(number),
        account_number_masked=mask_account_number(number) if number else None,
        institution=connection.tenant_name or "Xero",
        current_balance=0.0,
        currency=xero_account.get("CurrencyCode") or "AUD",
        is_active=True,
        notes=f"Imported from Xero ({xero_account.get('Code')})",
    )
    session.add(account)
    await session.flush()

    mappings = await _mappings_by_xero_id(session, connection.id)
    mapping = mappings.get(xero_account_id)
    if mapping is None:
        mapping = _new_mapping(connection.id, xero_account)
        session.add(mapping)

    mapping.local_account_id = account.id
    mapping.match_confidence = 100
    mapping.is_sync_enabled = True
    await session.flush()
    return account


async def get_mapping(session: AsyncSession, mapping_id: str, user_id: str) -> Optional[XeroAccountMapping]:
    result = await session.execute(
        select(XeroAccountMapping)
        .join(XeroConnection, XeroAccountMapping.connection_id == XeroConnection.id)
        .where(XeroAccountMapping.id == mapping_id, XeroConnection.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def link_mapping(
    session: AsyncSession,
    mapping: XeroAccountMapping,
    user_id: str,
    local_account_id: Optional[str],
    is_sync_enabled: Optional[bool] = None,
) -> XeroAccountMapping:
    """
    Link a Xero account to a local account, or unlink it with None.

    Raises:
        LookupError: The local account does not exist
    """
    if local_account_id:
        account = await session.get(Account, local_account_id)
        if account is None or account.user_id != user_id:
            raise LookupError("Local account not found")
        mapping.match_confidence = 100
    else:
        mapping.match_confidence = None

    mapping.local_account_id = local_account_id
    if is_sync_enabled is not None:
        mapping.is_sync_enabled = is_sync_enabled
    await session.flush()
    return mapping


async def disconnect(session: AsyncSession, connection: XeroConnection) -> None:
    """Delete a connection with its mappings and sync history."""
    await session.delete(connection)
    await session.flush()
