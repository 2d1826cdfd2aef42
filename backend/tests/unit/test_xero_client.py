"""
Unit tests for the Xero API client and its transforms.
"""

from datetime import date, datetime, timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from famfin.models.transaction import ExternalSource, TransactionType
from famfin.services.xero_client import (
    PAGE_SIZE,
    XERO_TOKEN_URL,
    XeroAPIError,
    XeroClient,
    XeroConfigurationError,
    is_token_expired,
    parse_statement_report,
    parse_xero_date,
    statement_line_to_local,
    xero_transaction_to_local,
)


def make_client(handler) -> XeroClient:
    return XeroClient(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://localhost:8000/callback",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def report_row(*values):
    return {"RowType": "Row", "Cells": [{"Value": v} for v in values]}


class TestOAuth:
    """Tests for the authorization code flow."""

    def test_authorization_url(self):
        client = make_client(lambda request: httpx.Response(500))

        url = urlparse(client.authorization_url("user:abc123"))
        params = parse_qs(url.query)

        assert url.netloc == "login.xero.com"
        assert params["response_type"] == ["code"]
        assert params["client_id"] == ["client-id"]
        assert params["state"] == ["user:abc123"]
        assert params["redirect_uri"] == ["http://localhost:8000/callback"]
        assert "offline_access" in params["scope"][0]

    @pytest.mark.asyncio
    async def test_exchange_code(self):
        """Test the code is posted as a form with basic auth."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = parse_qs(request.content.decode())
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"access_token": "at", "refresh_token": "rt", "expires_in": 1800})

        tokens = await make_client(handler).exchange_code("the-code")

        assert tokens["access_token"] == "at"
        assert seen["url"] == XERO_TOKEN_URL
        assert seen["body"]["grant_type"] == ["authorization_code"]
        assert seen["body"]["code"] == ["the-code"]
        assert seen["auth"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_token_failure_raises(self):
        client = make_client(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))

        with pytest.raises(XeroAPIError) as exc_info:
            await client.refresh_tokens("expired")

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_unconfigured_client(self):
        client = make_client(lambda request: httpx.Response(200, json={}))
        client.client_id = ""
        client.client_secret = ""

        assert client.is_configured is False
        with pytest.raises(XeroConfigurationError):
            await client.exchange_code("code")
        with pytest.raises(XeroConfigurationError):
            client.authorization_url("state")

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(XeroAPIError):
            await make_client(handler).get_connections("at")


class TestAccountingAPI:
    """Tests for accounts and transactions endpoints."""

    @pytest.mark.asyncio
    async def test_non_json_token_response(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>gateway</html>"))

        with pytest.raises(XeroAPIError, match="invalid response"):
            await client.exchange_code("the-code")

    @pytest.mark.asyncio
    async def test_unexpected_json_shape(self):
        """Test connections must be a list and accounts an object."""
        client = make_client(lambda request: httpx.Response(200, json={"Accounts": []}))

        with pytest.raises(XeroAPIError, match="unexpected dict"):
            await client.get_connections("at")

        listing = make_client(lambda request: httpx.Response(200, json=[]))
        with pytest.raises(XeroAPIError, match="unexpected list"):
            await listing.get_bank_accounts("at", "tenant-1")

    @pytest.mark.asyncio
    async def test_get_bank_accounts_only_active(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Xero-Tenant-Id"] == "tenant-1"
            assert request.headers["Authorization"] == "Bearer at"
            return httpx.Response(
                200,
                json={
                    "Accounts": [
                        {"AccountID": "a1", "Name": "Everyday", "Status": "ACTIVE"},
                        {"AccountID": "a2", "Name": "Old", "Status": "ARCHIVED"},
                    ]
                },
            )

        accounts = await make_client(handler).get_bank_accounts("at", "tenant-1")

        assert [a["AccountID"] for a in accounts] == ["a1"]

    @pytest.mark.asyncio
    async def test_not_modified_returns_empty(self):
        """Test 304 responses to If-Modified-Since mean nothing new."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert "If-Modified-Since" in request.headers
            return httpx.Response(304)

        result = await make_client(handler).get_bank_transactions(
            "at", "tenant-1", modified_since=datetime(2025, 3, 1, 12, 0)
        )

        assert result == []

    @pytest.mark.asyncio
    async def test_get_all_bank_transactions_pages(self):
        """Test paging stops after the first short page."""
        pages = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params.get("page", "1"))
            pages.append(page)
            size = PAGE_SIZE if page == 1 else 3
            batch = [{"BankTransactionID": f"{page}-{i}"} for i in range(size)]
            return httpx.Response(200, json={"BankTransactions": batch})

        transactions, calls = await make_client(handler).get_all_bank_transactions("at", "tenant-1")

        assert len(transactions) == PAGE_SIZE + 3
        assert calls == 2
        assert pages == [1, 2]

    @pytest.mark.asyncio
    async def test_transactions_error(self):
        client = make_client(lambda request: httpx.Response(429, text="rate limited"))

        with pytest.raises(XeroAPIError) as exc_info:
            await client.get_bank_transactions("at", "tenant-1")

        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_get_bank_statement_lines(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["bankAccountID"] == "acc-1"
            assert request.url.params["fromDate"] == "2025-03-01"
            return httpx.Response(
                200,
                json={
                    "Reports": [
                        {
                            "Rows": [
                                {
                                    "RowType": "Section",
                                    "Rows": [
                                        report_row("2025-03-02", "EFTPOS COFFEE", "", "No", "Bank feed", "-4.50", "995.50"),
                                    ],
                                }
                            ]
                        }
                    ]
                },
            )

        lines = await make_client(handler).get_bank_statement_lines(
            "at", "tenant-1", "acc-1", from_date=date(2025, 3, 1), to_date=date(2025, 3, 31)
        )

        assert len(lines) == 1
        assert lines[0]["Amount"] == -4.5


class TestTransforms:
    """Tests for parsing and mapping Xero payloads."""

    def test_parse_statement_report(self):
        """Test header rows and short rows are skipped."""
        data = {
            "Reports": [
                {
                    "Rows": [
                        {"RowType": "Header", "Cells": [{"Value": "Date"}]},
                        {
                            "RowType": "Section",
                            "Rows": [
                                report_row("2025-03-01", "SALARY", "PAY", "Yes", "Bank feed", "1,500.00", "2,000.00"),
                                report_row("2025-03-02", "SHORT ROW"),
                                {"RowType": "SummaryRow", "Cells": [{"Value": "Total"}] * 7},
                            ],
                        },
                    ]
                }
            ]
        }

        lines = parse_statement_report(data)

        assert len(lines) == 1
        assert lines[0]["Amount"] == 1500.0
        assert lines[0]["Balance"] == 2000.0
        assert lines[0]["Reconciled"] is True

    def test_parse_statement_report_empty(self):
        assert parse_statement_report({}) == []
        assert parse_statement_report({"Reports": [{"Rows": []}]}) == []

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("/Date(1767225600000+0000)/", date(2026, 1, 1)),
            ("2025-03-01T00:00:00", date(2025, 3, 1)),
            ("2025-03-01", date(2025, 3, 1)),
            ("5 Jan 2026", date(2026, 1, 5)),
            ("05 January 2026", date(2026, 1, 5)),
        ],
    )
    def test_parse_xero_date(self, value, expected):
        assert parse_xero_date(value) == expected

    @pytest.mark.parametrize("value", ["", "not a date", "32 Jan 2026"])
    def test_parse_xero_date_rejects_unknown(self, value):
        with pytest.raises(ValueError):
            parse_xero_date(value)

    def test_is_token_expired(self):
        """Test the five minute buffer and unknown expiry."""
        now = datetime(2025, 3, 1, 12, 0)

        assert is_token_expired(None) is True
        assert is_token_expired(now + timedelta(minutes=3), now=now) is True
        assert is_token_expired(now + timedelta(minutes=10), now=now) is False

    def test_spend_transaction_is_negative(self):
        tx = {
            "BankTransactionID": "bt-1",
            "Type": "SPEND",
            "Total": 50.0,
            "Date": "/Date(1740787200000+0000)/",
            "Reference": "Office supplies",
            "Contact": {"Name": "Officeworks"},
            "IsReconciled": True,
        }

        local = xero_transaction_to_local(tx, "acc-1", "user-1")

        assert local["amount"] == -50.0
        assert local["transaction_type"] == TransactionType.EXPENSE
        assert local["description"] == "Office supplies"
        assert local["payee"] == "Officeworks"
        assert local["external_id"] == "bt-1"
        assert local["external_source"] == ExternalSource.XERO
        assert local["date"] == date(2025, 3, 1)

    def test_receive_transaction_falls_back_to_line_item(self):
        tx = {
            "BankTransactionID": "bt-2",
            "Type": "RECEIVE",
            "Total": 1200,
            "Date": "2025-03-05",
            "LineItems": [{"Description": "Rent received"}],
        }

        local = xero_transaction_to_local(tx, "acc-1", "user-1")

        assert local["amount"] == 1200
        assert local["transaction_type"] == TransactionType.INCOME
        assert local["description"] == "Rent received"
        assert local["reference"] is None

    def test_statement_line_external_id_is_stable(self):
        """Test statement lines get a deterministic id from date, text and amount."""
        line = {"Date": "2025-03-01", "Description": "EFTPOS COFFEE", "Amount": -12.5, "Reconciled": False}

        first = statement_line_to_local(line, "acc-1", "user-1")
        second = statement_line_to_local(dict(line), "acc-1", "user-1")

        assert first["external_id"] == second["external_id"]
        assert first["external_id"].startswith("stmt_2025-03-01_")
        assert first["external_id"].endswith("_-12.50")
        assert first["transaction_type"] == TransactionType.EXPENSE
        assert first["external_source"] == ExternalSource.XERO_STATEMENT
