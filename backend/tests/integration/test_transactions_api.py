"""
Integration tests for Transaction API.
"""

import pytest
from httpx import AsyncClient


class TestTransactionsAPI:
    """Integration tests for /api/v1/transactions endpoints."""

    @pytest.mark.asyncio
    async def test_list_transactions_empty(self, client: AsyncClient):
        """Test listing transactions when empty."""
        response = await client.get("/api/v1/transactions/")

        assert response.status_code == 200
        data = response.json()
        assert data["transactions"] == []
        assert data["total"] == 0
        assert data["page"] == 1

    @pytest.mark.asyncio
    async def test_list_transactions_with_data(self, client: AsyncClient, sample_transactions):
        """Test listing transactions newest first, with category names."""
        response = await client.get("/api/v1/transactions/")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 4
        assert [t["payee"] for t in data["transactions"]] == ["Telstra", "Coles", "Woolworths", "Acme Pty Ltd"]
        assert data["transactions"][1]["category_name"] == "Groceries"
        assert data["transactions"][0]["category_name"] is None

    @pytest.mark.asyncio
    async def test_list_transactions_filter_by_date(self, client: AsyncClient, sample_transactions):
        response = await client.get("/api/v1/transactions/?date_from=2025-03-02&date_to=2025-03-12")

        data = response.json()
        assert data["total"] == 2
        assert all("2025-03-02" <= t["date"] <= "2025-03-12" for t in data["transactions"])

    @pytest.mark.asyncio
    async def test_list_transactions_filters(self, client: AsyncClient, sample_transactions, groceries):
        by_category = (await client.get(f"/api/v1/transactions/?category_id={groceries.id}")).json()
        by_type = (await client.get("/api/v1/transactions/?transaction_type=income")).json()
        by_search = (await client.get("/api/v1/transactions/?search=woolworths")).json()

        assert by_category["total"] == 2
        assert by_type["total"] == 1
        assert by_search["transactions"][0]["payee"] == "Woolworths"

    @pytest.mark.asyncio
    async def test_list_transactions_pagination(self, client: AsyncClient, sample_transactions):
        """Test pagination parameters."""
        response = await client.get("/api/v1/transactions/?page=2&page_size=3")

        data = response.json()
        assert data["page"] == 2
        assert data["page_size"] == 3
        assert data["total"] == 4
        assert len(data["transactions"]) == 1

    @pytest.mark.asyncio
    async def test_create_and_update_transaction(self, client: AsyncClient, bank_account, groceries):
        response = await client.post(
            "/api/v1/transactions/",
            json={
                "account_id": bank_account.id,
                "date": "2025-04-02",
                "description": "ALDI STORES",
                "amount": 64.1,
                "transaction_type": "expense",
            },
        )

        assert response.status_code == 201
        created = response.json()
        assert created["external_source"] == "manual"
        assert created["category_name"] is None

        response = await client.put(
            f"/api/v1/transactions/{created['id']}",
            json={"category_id": groceries.id, "notes": "weekly shop"},
        )

        assert response.status_code == 200
        assert response.json()["category_name"] == "Groceries"
        assert response.json()["notes"] == "weekly shop"

    @pytest.mark.asyncio
    async def test_create_transaction_unknown_account(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/transactions/",
            json={
                "account_id": "missing",
                "date": "2025-04-02",
                "description": "Nothing",
                "amount": 1,
                "transaction_type": "expense",
            },
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_get_transaction_not_found(self, client: AsyncClient):
        """Test getting non-existent transaction."""
        response = await client.get("/api/v1/transactions/nonexistent-id")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_and_bulk_delete(self, client: AsyncClient, sample_transactions):
        first, second, third, _ = sample_transactions

        assert (await client.delete(f"/api/v1/transactions/{first.id}")).status_code == 204
        response = await client.post("/api/v1/transactions/bulk-delete", json={"ids": [second.id, third.id]})

        assert response.json() == {"deleted": 2}
        assert (await client.get("/api/v1/transactions/")).json()["total"] == 1

    @pytest.mark.asyncio
    async def test_summary(self, client: AsyncClient, sample_transactions):
        """Test cash flow totals treat negative and positive expenses alike."""
        response = await client.get("/api/v1/transactions/summary?date_from=2025-03-01&date_to=2025-03-31")

        assert response.status_code == 200
        data = response.json()
        assert data["total_income"] == 6000
        assert data["total_expenses"] == 340.75
        assert data["net_cash_flow"] == 5659.25
        assert data["top_categories"][0] == {"name": "Groceries", "amount": 275.75}
        assert data["top_payees"][0] == {"name": "Woolworths", "amount": 180.5}


class TestImportAndRules:
    """Integration tests for imports, categories and categorisation rules."""

    @pytest.mark.asyncio
    async def test_import_skips_duplicates_and_categorises(self, client: AsyncClient, bank_account, groceries):
        """Test re-importing the same rows only adds new ones."""
        await client.post(
            "/api/v1/transactions/rules",
            json={
                "category_id": groceries.id,
                "match_field": "description",
                "match_type": "contains",
                "match_value": "woolworths",
            },
        )
        rows = [
            {"date": "2025-04-01", "description": "WOOLWORTHS 1234", "amount": -52.3, "external_id": "row-1"},
            {"date": "2025-04-02", "description": "INTEREST", "amount": 3.1, "external_id": "row-2"},
        ]

        first = await client.post("/api/v1/transactions/import", json={"account_id": bank_account.id, "rows": rows})
        second = await client.post(
            "/api/v1/transactions/import",
            json={"account_id": bank_account.id, "rows": rows + [{"date": "2025-04-03", "description": "BP", "amount": -80}]},
        )

        assert first.status_code == 200
        assert first.json()["imported"] == 2
        assert first.json()["categorised"] == 1
        assert second.json()["imported"] == 1
        assert second.json()["skipped"] == 2

        account = (await client.get(f"/api/v1/accounts/{bank_account.id}")).json()
        assert account["current_balance"] == round(3.1 - 52.3 - 80, 2)

        expenses = (await client.get("/api/v1/transactions/?transaction_type=expense")).json()
        assert all(t["amount"] > 0 for t in expenses["transactions"])

    @pytest.mark.asyncio
    async def test_import_unknown_account(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/transactions/import",
            json={"account_id": "missing", "rows": [{"date": "2025-04-01", "description": "X", "amount": 1}]},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_apply_rules_first_match_wins(self, client: AsyncClient, sample_transactions):
        """Test lower priority numbers are evaluated first."""
        phone = (await client.post("/api/v1/transactions/categories", json={"name": "Phone", "category_type": "expense"})).json()
        other = (await client.post("/api/v1/transactions/categories", json={"name": "Other", "category_type": "expense"})).json()
        await client.post(
            "/api/v1/transactions/rules",
            json={"category_id": other["id"], "match_field": "payee", "match_type": "starts_with", "match_value": "tel", "priority": 50},
        )
        await client.post(
            "/api/v1/transactions/rules",
            json={"category_id": phone["id"], "match_field": "payee", "match_type": "exact", "match_value": "TELSTRA", "priority": 10},
        )

        response = await client.post("/api/v1/transactions/rules/apply")

        assert response.json() == {"categorised": 1}
        telstra = (await client.get("/api/v1/transactions/?search=telstra")).json()["transactions"][0]
        assert telstra["category_name"] == "Phone"

    @pytest.mark.asyncio
    async def test_rule_requires_known_category(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/transactions/rules",
            json={"category_id": "missing", "match_field": "payee", "match_type": "exact", "match_value": "x"},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_category_uncategorises(self, client: AsyncClient, sample_transactions, groceries):
        response = await client.delete(f"/api/v1/transactions/categories/{groceries.id}")

        assert response.status_code == 204
        assert (await client.get("/api/v1/transactions/categories")).json() == []
        listed = (await client.get("/api/v1/transactions/")).json()["transactions"]
        assert all(t["category_id"] is None for t in listed)
