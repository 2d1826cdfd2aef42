"""
Xero API client.

Covers the OAuth 2.0 code flow, tenant connections, bank accounts, bank
transactions and the bank statement report. Responses are returned as the
raw Xero JSON dicts; the transform helpers at the bottom turn them into
local transaction fields.
"""

import hashlib
import logging
import re
from datetime import date, datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from famfin.config import get_settings
from famfin.models.transaction import ExternalSource, TransactionType

logger = logging.getLogger(__name__)

XERO_AUTH_URL = "https://login.xero.com/identity/connect/authorize"
XERO_TOKEN_URL = "https://identity.xero.com/connect/token"
XERO_CONNECTIONS_URL = "https://api.xero.com/connections"
XERO_API_URL = "https://api.xero.com/api.xro/2.0"

XERO_SCOPES = " ".join(
    [
        "openid",
        "profile",
        "email",
        "accounting.transactions.read",
        "accounting.settings.read",
        "accounting.contacts.read",
        "offline_access",
    ]
)

# Xero returns at most this many bank transactions per page
PAGE_SIZE = 100

TOKEN_EXPIRY_BUFFER = timedelta(minutes=5)

_MS_DATE = re.compile(r"/Date\((-?\d+)([+-]\d+)?\)/")

# BankStatement report cells, e.g. "5 Jan 2026"
_REPORT_DATE_FORMATS = ("%d %b %Y", "%d %B %Y")


class XeroAPIError(Exception):
    """Non-success response from Xero."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class XeroConfigurationError(Exception):
    """Xero client id/secret are not configured."""


class XeroClient:
    """
    Thin async wrapper over the Xero identity and accounting APIs.

    An httpx.AsyncClient can be injected; otherwise one is created per call.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        settings = get_settings()
        self.client_id = client_id or settings.xero_client_id
        self.client_secret = client_secret or settings.xero_client_secret
        self.redirect_uri = redirect_uri or settings.xero_callback_url
        self.http_client = http_client
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _require_config(self) -> None:
        if not self.is_configured:
            raise XeroConfigurationError("Missing Xero client ID/secret configuration")

    # OAuth

    def authorization_url(self, state: str) -> str:
        if not self.client_id:
            raise XeroConfigurationError("Missing Xero client ID configuration")

        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": XERO_SCOPES,
            "state": state,
        }
        return f"{XERO_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """Exchange an authorization code for access and refresh tokens."""
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            }
        )

    async def refresh_tokens(self, refresh_token: str) -> dict[str, Any]:
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    async def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        self._require_config()

        response = await self._send(
            "POST",
            XERO_TOKEN_URL,
            data=form,
            auth=(self.client_id, self.client_secret),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if response.status_code != 200:
            logger.error("Xero token request failed (%s): %s", response.status_code, response.text[:500])
            raise XeroAPIError(
                f"Token request '{form['grant_type']}' failed: {response.status_code}",
                response.status_code,
            )
        return self._json(response, "Token request", dict)

    # Accounting API

    async def get_connections(self, access_token: str) -> list[dict[str, Any]]:
        """Tenants (organisations) the token has access to."""
        response = await self._send("GET", XERO_CONNECTIONS_URL, headers=self._headers(access_token))
        if response.status_code != 200:
            raise XeroAPIError(f"Failed to get connections: {response.status_code}", response.status_code)
        return self._json(response, "Get connections", list)

    async def get_bank_accounts(self, access_token: str, tenant_id: str) -> list[dict[str, Any]]:
        """Active bank accounts of a tenant."""
        response = await self._send(
            "GET",
            f"{XERO_API_URL}/Accounts",
            params={"where": 'Type=="BANK"'},
            headers=self._headers(access_token, tenant_id),
        )
        if response.status_code != 200:
            logger.error("Get accounts error: %s", response.text[:500])
            raise XeroAPIError(f"Failed to get bank accounts: {response.status_code}", response.status_code)

        accounts = self._json(response, "Get bank accounts", dict).get("Accounts") or []
        return [a for a in accounts if a.get("Status") == "ACTIVE" and a.get("AccountID")]

    async def get_bank_transactions(
        self,
        access_token: str,
        tenant_id: str,
        bank_account_id: Optional[str] = None,
        modified_since: Optional[datetime] = None,
        page: int = 1,
        include_all: bool = False,
    ) -> list[dict[str, Any]]:
        """
        One page of bank transactions, newest first.

        Args:
            access_token: OAuth access token
            tenant_id: Xero tenant id
            bank_account_id: Limit to one bank account
            modified_since: Sent as If-Modified-Since for incremental sync
            page: 1-based page number
            include_all: Include non-AUTHORISED transactions

        Returns:
            Raw BankTransactions list (empty on 304 Not Modified)
        """
        conditions = []
        if not include_all:
            conditions.append('Status=="AUTHORISED"')
        if bank_account_id:
            conditions.append(f'BankAccount.AccountID==guid("{bank_account_id}")')

        params: dict[str, Any] = {"order": "Date DESC"}
        if conditions:
            params["where"] = " AND ".join(conditions)
        if page > 1:
            params["page"] = page

        headers = self._headers(access_token, tenant_id)
        if modified_since:
            if modified_since.tzinfo is None:
                modified_since = modified_since.replace(tzinfo=timezone.utc)
            headers["If-Modified-Since"] = format_datetime(modified_since.astimezone(timezone.utc), usegmt=True)

        response = await self._send(
            "GET", f"{XERO_API_URL}/BankTransactions", params=params, headers=headers
        )
        if response.status_code == 304:
            return []
        if response.status_code != 200:
            logger.error("Get transactions error: %s", response.text[:500])
            raise XeroAPIError(
                f"Failed to get bank transactions: {response.status_code}", response.status_code
            )

        return self._json(response, "Get bank transactions", dict).get("BankTransactions") or []

    async def get_all_bank_transactions(
        self,
        access_token: str,
        tenant_id: str,
        bank_account_id: Optional[str] = None,
        modified_since: Optional[datetime] = None,
        max_pages: int = 10,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Page through bank transactions.

        Stops on an empty page, a short page, or after max_pages.

        Returns:
            (transactions, number of API calls made)
        """
        transactions: list[dict[str, Any]] = []
        calls = 0

        for page in range(1, max_pages + 1):
            batch = await self.get_bank_transactions(
                access_token,
                tenant_id,
                bank_account_id=bank_account_id,
                modified_since=modified_since,
                page=page,
            )
            calls += 1
            if not batch:
                break

            transactions.extend(batch)
            if len(batch) < PAGE_SIZE:
                break

        return transactions, calls

    async def get_bank_statement_lines(
        self,
        access_token: str,
        tenant_id: str,
        bank_account_id: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> list[dict[str, Any]]:
        """
        Statement lines from the BankStatement report, including unreconciled
        lines. Defaults to the last 90 days.
        """
        to_date = to_date or date.today()
        from_date = from_date or to_date - timedelta(days=90)

        response = await self._send(
            "GET",
            f"{XERO_API_URL}/Reports/BankStatement",
            params={
                "bankAccountID": bank_account_id,
                "fromDate": from_date.isoformat(),
                "toDate": to_date.isoformat(),
            },
            headers=self._headers(access_token, tenant_id),
        )
        if response.status_code != 200:
            raise XeroAPIError(
                f"Failed to get bank statement: {response.status_code} - {response.text[:200]}",
                response.status_code,
            )

        return parse_statement_report(self._json(response, "Get bank statement", dict))

    # HTTP plumbing

    def _headers(self, access_token: str, tenant_id: Optional[str] = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        if tenant_id:
            headers["Xero-Tenant-Id"] = tenant_id
        return headers

    @staticmethod
    def _json(response: httpx.Response, context: str, expected: type) -> Any:
        """Decoded body; XeroAPIError when it is not JSON of the expected type."""
        try:
            data = response.json()
        except ValueError as e:
            logger.error("%s returned a non-JSON body: %s", context, response.text[:200])
            raise XeroAPIError(f"{context} returned an invalid response", response.status_code) from e
        if not isinstance(data, expected):
            raise XeroAPIError(f"{context} returned an unexpected {type(data).__name__}", response.status_code)
        return data

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            if self.http_client is not None:
                return await self.http_client.request(method, url, **kwargs)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise XeroAPIError(f"Request to Xero failed: {e}") from e


def parse_statement_report(data: dict[str, Any]) -> list[dict[str, Any]]:
    """
    Flatten the BankStatement report into statement lines.

    Rows with fewer than 7 cells are ignored. Cells are, in order:
    Date, Description, Reference, Reconciled, Source, Amount, Balance.
    """
    reports = data.get("Reports") or []
    if not reports or not reports[0].get("Rows"):
        return []

    lines = []
    for section in reports[0]["Rows"]:
        if section.get("RowType") != "Section":
            continue
        for row in section.get("Rows") or []:
            cells = row.get("Cells") or []
            if row.get("RowType") != "Row" or len(cells) < 7:
                continue

            values = [cell.get("Value") or "" for cell in cells]
            lines.append(
                {
                    "Date": values[0],
                    "Description": values[1],
                    "Reference": values[2],
                    "Reconciled": values[3] == "Yes",
                    "Source": values[4],
                    "Amount": _to_float(values[5]),
                    "Balance": _to_float(values[6]),
                }
            )
    return lines


def _to_float(value: str) -> float:
    try:
        return float(value.replace(",", "")) if value else 0.0
    except ValueError:
        return 0.0


def is_token_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Treat tokens as expired 5 minutes early. Unknown expiry counts as expired."""
    if expires_at is None:
        return True
    now = now or datetime.utcnow()
    return now > expires_at - TOKEN_EXPIRY_BUFFER


def token_expiry(expires_in: int, now: Optional[datetime] = None) -> datetime:
    return (now or datetime.utcnow()) + timedelta(seconds=expires_in)


def parse_xero_date(value: str) -> date:
    """
    Parse a Xero date.

    Handles the Microsoft JSON form "/Date(1767225600000+0000)/", ISO
    datetimes, plain YYYY-MM-DD and report dates like "5 Jan 2026".

    Raises:
        ValueError: None of the known forms match
    """
    match = _MS_DATE.search(value)
    if match:
        return (datetime(1970, 1, 1) + timedelta(milliseconds=int(match.group(1)))).date()

    value = value.strip()
    try:
        return date.fromisoformat(value.split("T")[0])
    except ValueError:
        for fmt in _REPORT_DATE_FORMATS:
            try:
                return datetime.strptime(value, fmt).date()
            except ValueError:
                continue
    raise ValueError(f"Unrecognised Xero date: {value!r}")


def xero_transaction_to_local(tx: dict[str, Any], account_id: str, user_id: str) -> dict[str, Any]:
    """Map a Xero BankTransaction onto Transaction column values."""
    xero_type = tx.get("Type") or ""
    amount = float(tx.get("Total") or 0)

    if "RECEIVE" in xero_type:
        transaction_type = TransactionType.INCOME
    elif "SPEND" in xero_type:
        transaction_type = TransactionType.EXPENSE
        amount = -abs(amount)
    elif "TRANSFER" in xero_type:
        transaction_type = TransactionType.TRANSFER
    else:
        transaction_type = TransactionType.INCOME if amount >= 0 else TransactionType.EXPENSE

    line_items = tx.get("LineItems") or []
    contact_name = (tx.get("Contact") or {}).get("Name")
    description = (
        tx.get("Reference")
        or (line_items[0].get("Description") if line_items else None)
        or contact_name
        or f"{xero_type} transaction"
    )

    return {
        "account_id": account_id,
        "user_id": user_id,
        "date": parse_xero_date(tx["Date"]),
        "description": description,
        "amount": amount,
        "transaction_type": transaction_type,
        "payee": contact_name,
        "reference": tx.get("Reference") or None,
        "is_reconciled": bool(tx.get("IsReconciled")),
        "external_id": tx["BankTransactionID"],
        "external_source": ExternalSource.XERO,
    }


def statement_line_to_local(line: dict[str, Any], account_id: str, user_id: str) -> dict[str, Any]:
    """
    Map a bank statement line onto Transaction column values.

    Statement lines carry no id, so the external id is derived from date,
    description and amount.
    """
    amount = float(line.get("Amount") or 0)
    description = line.get("Description") or ""
    digest = hashlib.sha1(description.encode()).hexdigest()[:10]

    return {
        "account_id": account_id,
        "user_id": user_id,
        "date": parse_xero_date(line["Date"]),
        "description": description or "Statement line",
        "amount": amount,
        "transaction_type": TransactionType.INCOME if amount >= 0 else TransactionType.EXPENSE,
        "payee": None,
        "reference": line.get("Reference") or None,
        "is_reconciled": bool(line.get("Reconciled")),
        "external_id": f"stmt_{line['Date']}_{digest}_{amount:.2f}",
        "external_source": ExternalSource.XERO_STATEMENT,
    }
