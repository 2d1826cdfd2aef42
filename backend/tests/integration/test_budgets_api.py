"""
Integration tests for Budgets API.
"""

import pytest
from httpx import AsyncClient

AS_OF = {"as_of": "2025-03-20"}


async def create_budget(client: AsyncClient, **overrides) -> dict:
    body = {"name": "Groceries", "amount": 300, "period": "monthly", "start_date": "2025-01-01"}
    body.update(overrides)
    response = await client.post("/api/v1/budgets/", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestBudgetsAPI:
    """Integration tests for budget CRUD."""

    @pytest.mark.asyncio
    async def test_create_budget_with_category(self, client: AsyncClient, groceries):
        budget = await create_budget(client, category_id=groceries.id)

        assert budget["category_name"] == "Groceries"
        assert budget["alert_threshold"] == 80
        assert budget["is_active"] is True

    @pytest.mark.asyncio
    async def test_create_budget_unknown_category(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/budgets/",
            json={"name": "Fuel", "amount": 200, "period": "monthly", "category_id": "missing"},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/budgets/",
            json={
                "name": "Holiday",
                "amount": 2000,
                "period": "yearly",
                "start_date": "2025-07-01",
                "end_date": "2025-06-30",
            },
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_start_date_defaults_to_today(self, client: AsyncClient):
        response = await client.post("/api/v1/budgets/", json={"name": "Fuel", "amount": 200, "period": "weekly"})

        assert response.status_code == 201
        assert response.json()["start_date"]

    @pytest.mark.asyncio
    async def test_update_clears_category(self, client: AsyncClient, groceries):
        budget = await create_budget(client, category_id=groceries.id)

        response = await client.put(f"/api/v1/budgets/{budget['id']}", json={"category_id": None, "amount": 350})

        assert response.status_code == 200
        data = response.json()
        assert data["category_id"] is None
        assert data["category_name"] is None
        assert data["amount"] == 350

    @pytest.mark.asyncio
    async def test_delete_deactivates(self, client: AsyncClient):
        budget = await create_budget(client)

        response = await client.delete(f"/api/v1/budgets/{budget['id']}")

        assert response.status_code == 204
        assert (await client.get("/api/v1/budgets/")).json() == []
        assert (await client.get(f"/api/v1/budgets/{budget['id']}")).json()["is_active"] is False

    @pytest.mark.asyncio
    async def test_get_budget_not_found(self, client: AsyncClient):
        response = await client.get("/api/v1/budgets/missing")

        assert response.status_code == 404


class TestBudgetProgress:
    """Integration tests for progress, summary and alerts."""

    @pytest.mark.asyncio
    async def test_category_progress(self, client: AsyncClient, groceries, sample_transactions):
        """Two grocery shops in March count; salary and the phone bill do not."""
        budget = await create_budget(client, category_id=groceries.id)

        response = await client.get(f"/api/v1/budgets/{budget['id']}/progress", params=AS_OF)

        assert response.status_code == 200
        data = response.json()
        assert data["period_start"] == "2025-03-01"
        assert data["period_end"] == "2025-03-31"
        assert data["spent"] == 275.75
        assert data["remaining"] == 24.25
        assert data["percentage"] == 91.92
        assert data["is_approaching_limit"] is True
        assert data["days_remaining"] == 11
        assert data["daily_allowance"] == 2.2
        assert {tx["payee"] for tx in data["transactions"]} == {"Woolworths", "Coles"}

    @pytest.mark.asyncio
    async def test_uncategorised_budget_tracks_all_spending(self, client: AsyncClient, sample_transactions):
        """Expenses count at their absolute amount whatever their sign."""
        budget = await create_budget(client, name="Everything")

        data = (await client.get(f"/api/v1/budgets/{budget['id']}/progress", params=AS_OF)).json()

        assert data["spent"] == 340.75
        assert data["is_over_budget"] is True
        assert len(data["transactions"]) == 3

    @pytest.mark.asyncio
    async def test_weekly_period_excludes_earlier_spending(self, client: AsyncClient, groceries, sample_transactions):
        budget = await create_budget(client, period="weekly", amount=100, category_id=groceries.id)

        data = (await client.get(f"/api/v1/budgets/{budget['id']}/progress", params=AS_OF)).json()

        assert data["period_start"] == "2025-03-17"
        assert data["spent"] == 0
        assert data["transactions"] == []

    @pytest.mark.asyncio
    async def test_summary(self, client: AsyncClient, groceries, sample_transactions):
        await create_budget(client, category_id=groceries.id)
        await create_budget(client, name="Everything")

        response = await client.get("/api/v1/budgets/summary", params=AS_OF)

        assert response.status_code == 200
        data = response.json()
        assert data["total_budgeted"] == 600
        assert data["total_spent"] == 616.5
        assert data["total_remaining"] == 0
        assert data["over_budget_count"] == 1
        assert data["approaching_limit_count"] == 1
        assert [b["budget"]["name"] for b in data["budgets"]] == ["Everything", "Groceries"]
        assert all(b["transactions"] == [] for b in data["budgets"])

    @pytest.mark.asyncio
    async def test_alerts(self, client: AsyncClient, groceries, sample_transactions):
        await create_budget(client, category_id=groceries.id)
        await create_budget(client, name="Everything")

        alerts = (await client.get("/api/v1/budgets/alerts", params=AS_OF)).json()

        assert [(a["budget_name"], a["title"], a["priority"]) for a in alerts] == [
            ("Everything", "Budget Exceeded", "urgent"),
            ("Groceries", "Budget Alert", "high"),
        ]
        assert alerts[0]["message"] == "Everything is 114% spent - over budget by $41"
        assert alerts[1]["message"] == "Groceries is at 92% - $24 remaining"

    @pytest.mark.asyncio
    async def test_no_alert_when_disabled_or_under_threshold(
        self, client: AsyncClient, groceries, sample_transactions
    ):
        await create_budget(client, name="Everything", alert_enabled=False)
        await create_budget(client, amount=1000, category_id=groceries.id)

        alerts = (await client.get("/api/v1/budgets/alerts", params=AS_OF)).json()

        assert alerts == []

    @pytest.mark.asyncio
    async def test_category_delete_keeps_budget_label(self, client: AsyncClient, groceries, sample_transactions):
        budget = await create_budget(client, category_id=groceries.id)

        response = await client.delete(f"/api/v1/transactions/categories/{groceries.id}")

        assert response.status_code == 204
        data = (await client.get(f"/api/v1/budgets/{budget['id']}")).json()
        assert data["category_id"] is None
        assert data["category_name"] == "Groceries"
