"""
Xero API endpoints.

Handles the OAuth authorize redirect and callback, connection and account
mapping management, and bank transaction sync.
"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.api.accounts import AccountResponse, account_to_response
from famfin.api.deps import get_user_id
from famfin.config import get_settings
from famfin.database import get_session
from famfin.models import (
    ConnectionStatus,
    SyncStatus,
    SyncType,
    XeroAccountMapping,
    XeroConnection,
    XeroSyncLog,
)
from famfin.services import xero_sync
from famfin.services.account_matching import xero_account_type
from famfin.services.xero_client import XeroAPIError, XeroClient, XeroConfigurationError
from famfin.utils import decrypt_optional, mask_account_number

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/xero", tags=["xero"])

# Registered with Xero as the redirect URI, so mounted outside /api/v1
callback_router = APIRouter(tags=["xero"])

STATE_COOKIE = "xero_oauth_state"
STATE_COOKIE_MAX_AGE = 600
CONNECTIONS_PAGE = "/settings/bank-connections"
SYNC_LOG_LIMIT = 20


# === Pydantic Models ===


class ConnectionResponse(BaseModel):
    """Connection without its tokens."""

    id: str
    tenant_id: str
    tenant_name: Optional[str]
    tenant_type: Optional[str]
    status: ConnectionStatus
    status_message: Optional[str]
    sync_enabled: bool
    sync_frequency: str
    last_sync_at: Optional[datetime]
    next_sync_at: Optional[datetime]
    token_expires_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class MappingResponse(BaseModel):
    id: str
    connection_id: str
    xero_account_id: str
    xero_account_name: Optional[str]
    xero_account_code: Optional[str]
    xero_account_type: Optional[str]
    xero_bank_account_number_masked: Optional[str] = None
    local_account_id: Optional[str]
    match_confidence: Optional[int]
    is_sync_enabled: bool
    last_transaction_date: Optional[date]
    last_sync_at: Optional[datetime]

    class Config:
        from_attributes = True


class MappingUpdate(BaseModel):
    """Link (account id), unlink (null) or toggle sync for a mapping."""

    local_account_id: Optional[str] = None
    is_sync_enabled: Optional[bool] = None


class SyncLogResponse(BaseModel):
    id: str
    sync_type: SyncType
    status: SyncStatus
    accounts_synced: int
    transactions_imported: int
    transactions_skipped: int
    transactions_updated: int
    api_calls_used: int
    started_at: datetime
    completed_at: Optional[datetime]
    duration_ms: Optional[int]
    error_message: Optional[str]

    class Config:
        from_attributes = True


class SyncRequest(BaseModel):
    include_statement_lines: bool = False


class SyncResponse(BaseModel):
    success: bool
    accounts_synced: int
    transactions_imported: int
    transactions_skipped: int
    transactions_updated: int
    errors: list[str]
    sync_log_id: Optional[str]


class LocalAccountSummary(BaseModel):
    id: str
    name: str
    account_type: str
    institution: Optional[str]
    account_number_masked: Optional[str]


class ReviewItem(BaseModel):
    xero_account_id: str
    xero_account_name: Optional[str]
    xero_account_code: Optional[str]
    xero_account_type: Optional[str]
    xero_bank_account_number_masked: Optional[str]
    match_status: str
    confidence: int
    match_reason: Optional[str]
    local_account: Optional[LocalAccountSummary]
    mapping_id: Optional[str]


class ReviewResponse(BaseModel):
    connection_id: str
    tenant_name: Optional[str]
    accounts: list[ReviewItem]
    matched: int
    suggested: int
    unmatched: int


class ImportAccountRequest(BaseModel):
    xero_account_id: str


class ImportAccountResponse(BaseModel):
    account: AccountResponse
    mapping_id: Optional[str]


# === Helper Functions ===


def get_xero_client() -> XeroClient:
    return XeroClient()


def connections_redirect(**params: str) -> RedirectResponse:
    """Redirect back to the bank connections page with a status flag."""
    base = get_settings().app_url.rstrip("/")
    query = "&".join(f"{key}={value}" for key, value in params.items())
    return RedirectResponse(f"{base}{CONNECTIONS_PAGE}?{query}", status_code=307)


def mapping_to_response(mapping: XeroAccountMapping) -> MappingResponse:
    response = MappingResponse.model_validate(mapping)
    number = decrypt_optional(mapping.xero_bank_account_number)
    response.xero_bank_account_number_masked = mask_account_number(number) if number else None
    return response


async def get_connection_or_404(session: AsyncSession, connection_id: str, user_id: str) -> XeroConnection:
    connection = await xero_sync.get_connection(session, connection_id, user_id)
    if not connection:
        raise HTTPException(status_code=404, detail="Connection not found")
    return connection


async def get_mapping_or_404(session: AsyncSession, mapping_id: str, user_id: str) -> XeroAccountMapping:
    mapping = await xero_sync.get_mapping(session, mapping_id, user_id)
    if not mapping:
        raise HTTPException(status_code=404, detail="Mapping not found")
    return mapping


def xero_http_error(e: Exception) -> HTTPException:
    """Map Xero failures onto HTTP errors."""
    if isinstance(e, xero_sync.XeroTokenError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, XeroConfigurationError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=502, detail=f"Xero API error: {e}")


async def import_local_account(
    session: AsyncSession,
    connection: XeroConnection,
    client: XeroClient,
    xero_account_id: str,
) -> ImportAccountResponse:
    try:
        account = await xero_sync.import_xero_account_as_local(session, connection, client, xero_account_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (xero_sync.XeroTokenError, XeroAPIError, XeroConfigurationError) as e:
        raise xero_http_error(e)

    mappings = await session.execute(
        select(XeroAccountMapping.id).where(
            XeroAccountMapping.connection_id == connection.id,
            XeroAccountMapping.xero_account_id == xero_account_id,
        )
    )
    logger.info("Imported Xero account %s as local account %s", xero_account_id, account.id)
    return ImportAccountResponse(account=account_to_response(account), mapping_id=mappings.scalar_one_or_none())


# === Endpoints ===


@router.get("/authorize")
async def authorize(
    user_id: str = Depends(get_user_id),
    client: XeroClient = Depends(get_xero_client),
):
    """Start the OAuth flow: redirect to Xero with a state cookie set."""
    state = xero_sync.create_oauth_state(user_id)
    try:
        url = client.authorization_url(state)
    except XeroConfigurationError as e:
        logger.error("Xero authorize failed: %s", e)
        return JSONResponse(status_code=500, content={"detail": "Failed to initiate Xero connection"})

    response = RedirectResponse(url, status_code=307)
    response.set_cookie(
        STATE_COOKIE,
        state,
        max_age=STATE_COOKIE_MAX_AGE,
        httponly=True,
        secure=get_settings().app_url.startswith("https"),
        samesite="lax",
        path="/",
    )
    return response


@callback_router.get("/callback")
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    state_cookie: Optional[str] = Cookie(None, alias=STATE_COOKIE),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
    client: XeroClient = Depends(get_xero_client),
):
    """
    Finish the OAuth flow.

    Always redirects to the bank connections page, with success=connected
    or an error code.
    """
    if error:
        logger.error("Xero OAuth error: %s %s", error, error_description)
        return connections_redirect(error="oauth_denied")

    if not code or not state:
        return connections_redirect(error="missing_params")

    # The cookie can be lost across domains; the user prefix check always applies
    if not xero_sync.state_belongs_to(state, user_id) or (state_cookie and state_cookie != state):
        logger.error("Invalid Xero OAuth state: %s", state)
        return connections_redirect(error="invalid_state")

    try:
        tokens = await client.exchange_code(code)
        tenants = await client.get_connections(tokens["access_token"])
        if not tenants:
            return connections_redirect(error="no_organization")

        connections = await xero_sync.store_connections(session, user_id, tokens, tenants, client)
        if not connections:
            return connections_redirect(error="no_organization")
    except (XeroAPIError, XeroConfigurationError, KeyError, ValueError):
        logger.exception("Xero callback failed")
        return connections_redirect(error="callback_failed")

    logger.info("Connected %d Xero organisation(s)", len(connections))
    response = connections_redirect(success="connected")
    response.delete_cookie(STATE_COOKIE, path="/")
    return response


@router.get("/connections", response_model=list[ConnectionResponse])
async def list_connections(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    result = await session.execute(
        select(XeroConnection)
        .where(XeroConnection.user_id == user_id)
        .order_by(XeroConnection.created_at)
    )
    return result.scalars().all()


@router.get("/connections/{connection_id}", response_model=ConnectionResponse)
async def get_connection(
    connection_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return await get_connection_or_404(session, connection_id, user_id)


@router.delete("/connections/{connection_id}", status_code=204)
async def delete_connection(
    connection_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    """Disconnect: removes the connection, its mappings and sync history."""
    connection = await get_connection_or_404(session, connection_id, user_id)
    await xero_sync.disconnect(session, connection)
    logger.info("Disconnected Xero connection %s", connection_id)


@router.get("/connections/{connection_id}/mappings", response_model=list[MappingResponse])
async def list_mappings(
    connection_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    await get_connection_or_404(session, connection_id, user_id)
    result = await session.execute(
        select(XeroAccountMapping)
        .where(XeroAccountMapping.connection_id == connection_id)
        .order_by(XeroAccountMapping.xero_account_name)
    )
    return [mapping_to_response(m) for m in result.scalars().all()]


@router.get("/connections/{connection_id}/logs", response_model=list[SyncLogResponse])
async def list_sync_logs(
    connection_id: str,
    limit: int = Query(SYNC_LOG_LIMIT, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    await get_connection_or_404(session, connection_id, user_id)
    result = await session.execute(
        select(XeroSyncLog)
        .where(XeroSyncLog.connection_id == connection_id)
        .order_by(XeroSyncLog.started_at.desc())
        .limit(limit)
    )
    return result.scalars().all()


@router.post("/connections/{connection_id}/sync", response_model=SyncResponse)
async def sync(
    connection_id: str,
    request: Optional[SyncRequest] = None,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
    client: XeroClient = Depends(get_xero_client),
):
    """
    Import new bank transactions for linked accounts.

    Token problems are reported in the result rather than as an error so the
    sync log is kept.
    """
    connection = await get_connection_or_404(session, connection_id, user_id)
    if connection.status == ConnectionStatus.DISCONNECTED:
        raise HTTPException(status_code=400, detail="Connection is disconnected")

    options = request or SyncRequest()
    result = await xero_sync.sync_connection(
        session,
        connection,
        client,
        sync_type=SyncType.MANUAL,
        include_statement_lines=options.include_statement_lines,
    )
    return SyncResponse(
        success=result.success,
        accounts_synced=result.accounts_synced,
        transactions_imported=result.transactions_imported,
        transactions_skipped=result.transactions_skipped,
        transactions_updated=result.transactions_updated,
        errors=result.errors,
        sync_log_id=result.sync_log_id,
    )


@router.post("/connections/{connection_id}/refresh-accounts")
async def refresh_accounts(
    connection_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
    client: XeroClient = Depends(get_xero_client),
):
    """Re-fetch the tenant's bank accounts and update the mappings."""
    connection = await get_connection_or_404(session, connection_id, user_id)
    try:
        count = await xero_sync.refresh_accounts(session, connection, client)
    except (xero_sync.XeroTokenError, XeroAPIError, XeroConfigurationError) as e:
        raise xero_http_error(e)
    return {"accounts": count}


@router.get("/connections/{connection_id}/review", response_model=ReviewResponse)
async def review_accounts(
    connection_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
    client: XeroClient = Depends(get_xero_client),
):
    """Compare Xero bank accounts with local accounts and suggest links."""
    connection = await get_connection_or_404(session, connection_id, user_id)
    try:
        comparisons = await xero_sync.review_accounts(session, connection, client)
    except (xero_sync.XeroTokenError, XeroAPIError, XeroConfigurationError) as e:
        raise xero_http_error(e)

    items = []
    for c in comparisons:
        number = c.xero_account.get("BankAccountNumber")
        local = c.local_account
        items.append(
            ReviewItem(
                xero_account_id=c.xero_account["AccountID"],
                xero_account_name=c.xero_account.get("Name"),
                xero_account_code=c.xero_account.get("Code"),
                xero_account_type=xero_account_type(c.xero_account),
                xero_bank_account_number_masked=mask_account_number(number) if number else None,
                match_status=c.match_status,
                confidence=c.confidence,
                match_reason=c.match_reason,
                local_account=LocalAccountSummary(
                    id=local.id,
                    name=local.name,
                    account_type=local.account_type.value,
                    institution=local.institution,
                    account_number_masked=local.account_number_masked,
                )
                if local
                else None,
                mapping_id=c.mapping.id if c.mapping else None,
            )
        )

    return ReviewResponse(
        connection_id=connection.id,
        tenant_name=connection.tenant_name,
        accounts=items,
        matched=sum(1 for i in items if i.match_status == "matched"),
        suggested=sum(1 for i in items if i.match_status == "suggested"),
        unmatched=sum(1 for i in items if i.match_status == "no_match"),
    )


@router.post("/connections/{connection_id}/import", response_model=ImportAccountResponse, status_code=201)
async def import_account(
    connection_id: str,
    request: ImportAccountRequest,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
    client: XeroClient = Depends(get_xero_client),
):
    """Create a local account from a Xero bank account and link it."""
    connection = await get_connection_or_404(session, connection_id, user_id)
    return await import_local_account(session, connection, client, request.xero_account_id)


@router.put("/mappings/{mapping_id}", response_model=MappingResponse)
async def update_mapping(
    mapping_id: str,
    request: MappingUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    mapping = await get_mapping_or_404(session, mapping_id, user_id)
    fields = request.model_dump(exclude_unset=True)

    if "local_account_id" in fields:
        try:
            await xero_sync.link_mapping(
                session, mapping, user_id, fields["local_account_id"], fields.get("is_sync_enabled")
            )
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e))
    elif "is_sync_enabled" in fields and fields["is_sync_enabled"] is not None:
        mapping.is_sync_enabled = fields["is_sync_enabled"]
        await session.flush()

    return mapping_to_response(mapping)


@router.post("/mappings/{mapping_id}/import", response_model=ImportAccountResponse, status_code=201)
async def import_mapping(
    mapping_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
    client: XeroClient = Depends(get_xero_client),
):
    """Create a local account for an unlinked mapping."""
    mapping = await get_mapping_or_404(session, mapping_id, user_id)
    if mapping.local_account_id:
        raise HTTPException(status_code=409, detail="Mapping is already linked to a local account")

    connection = await get_connection_or_404(session, mapping.connection_id, user_id)
    return await import_local_account(session, connection, client, mapping.xero_account_id)
