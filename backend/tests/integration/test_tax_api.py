"""
Integration tests for Tax API.
"""

from io import BytesIO

import pytest
from httpx import AsyncClient
from openpyxl import load_workbook


async def add_income(client: AsyncClient, **overrides) -> dict:
    body = {
        "person": "primary",
        "income_type": "salary",
        "source": "Acme Pty Ltd",
        "amount": 100000,
        "tax_withheld": 25000,
        "date": "2025-06-30",
    }
    body.update(overrides)
    response = await client.post("/api/v1/tax/income", json=body)
    assert response.status_code == 201, response.text
    return response.json()


async def add_deduction(client: AsyncClient, **overrides) -> dict:
    body = {
        "person": "primary",
        "category": "other",
        "description": "Tax agent",
        "amount": 1000,
        "date": "2025-05-01",
        "has_receipt": True,
    }
    body.update(overrides)
    response = await client.post("/api/v1/tax/deductions", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestIncomeAPI:
    """Integration tests for /api/v1/tax/income endpoints."""

    @pytest.mark.asyncio
    async def test_create_income_derives_financial_year(self, client: AsyncClient):
        income = await add_income(client, date="2024-07-01")

        assert income["financial_year"] == "2024-25"
        assert income["franking_credits"] == 0

    @pytest.mark.asyncio
    async def test_create_income_unknown_person(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/tax/income",
            json={"person": "grandma", "income_type": "salary", "source": "X", "amount": 1, "date": "2025-01-01"},
        )

        assert response.status_code == 400
        assert "grandma" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_create_income_rejects_negative_amount(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/tax/income",
            json={"person": "primary", "income_type": "salary", "source": "X", "amount": -1, "date": "2025-01-01"},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_and_filter_income(self, client: AsyncClient):
        await add_income(client)
        await add_income(client, person="partner", amount=60000, date="2024-01-15")

        all_income = (await client.get("/api/v1/tax/income")).json()
        fy_income = (await client.get("/api/v1/tax/income?financial_year=2024-25")).json()
        partner = (await client.get("/api/v1/tax/income?person=partner")).json()

        assert len(all_income) == 2
        assert [i["person"] for i in fy_income] == ["primary"]
        assert partner[0]["financial_year"] == "2023-24"

    @pytest.mark.asyncio
    async def test_invalid_financial_year(self, client: AsyncClient):
        response = await client.get("/api/v1/tax/income?financial_year=2024-2025")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_income_moves_financial_year(self, client: AsyncClient):
        income = await add_income(client)

        response = await client.put(f"/api/v1/tax/income/{income['id']}", json={"date": "2025-07-01"})

        assert response.status_code == 200
        assert response.json()["financial_year"] == "2025-26"

    @pytest.mark.asyncio
    async def test_income_summary(self, client: AsyncClient):
        await add_income(client)
        await add_income(client, income_type="dividend", source="BHP", amount=5000, franking_credits=2000, tax_withheld=0)
        await add_income(client, income_type="other", source="Gift", amount=500, is_taxable=False, tax_withheld=0)

        data = (await client.get("/api/v1/tax/income/summary?financial_year=2024-25")).json()

        assert data["total"] == 105000
        assert data["by_type"]["dividend"] == 5000
        assert data["franking_credits"] == 2000
        assert data["tax_withheld"] == 25000

    @pytest.mark.asyncio
    async def test_delete_income(self, client: AsyncClient):
        income = await add_income(client)

        assert (await client.delete(f"/api/v1/tax/income/{income['id']}")).status_code == 204
        assert (await client.delete(f"/api/v1/tax/income/{income['id']}")).status_code == 404


class TestDeductionsAPI:
    """Integration tests for /api/v1/tax/deductions endpoints."""

    @pytest.mark.asyncio
    async def test_deduction_flagged_without_receipt(self, client: AsyncClient):
        deduction = await add_deduction(
            client, category="clothing_laundry", description="Uniforms", amount=200, has_receipt=False
        )

        assert deduction["is_flagged"] is True
        assert "$150" in deduction["flag_reason"]
        assert deduction["is_approved"] is False

    @pytest.mark.asyncio
    async def test_adding_receipt_clears_flag(self, client: AsyncClient):
        deduction = await add_deduction(client, category="phone_internet", amount=120, has_receipt=False)

        response = await client.put(f"/api/v1/tax/deductions/{deduction['id']}", json={"has_receipt": True})

        assert response.json()["is_flagged"] is False
        assert response.json()["flag_reason"] is None

    @pytest.mark.asyncio
    async def test_approve_and_summary(self, client: AsyncClient):
        first = await add_deduction(client)
        await add_deduction(client, category="donations", description="Red Cross", amount=250)

        response = await client.post(f"/api/v1/tax/deductions/{first['id']}/approve")
        assert response.json()["is_approved"] is True

        data = (await client.get("/api/v1/tax/deductions/summary?financial_year=2024-25&person=primary")).json()

        assert data["total"] == 1250
        assert data["by_category"]["donations"] == 250
        assert [d["description"] for d in data["pending_approval"]] == ["Red Cross"]

    @pytest.mark.asyncio
    async def test_wfh_calculation_only(self, client: AsyncClient):
        response = await client.post("/api/v1/tax/deductions/wfh", json={"person": "primary", "hours_per_week": 10})

        data = response.json()
        assert data["hours"] == 480
        assert data["total_deduction"] == 321.6
        assert data["deduction"] is None

    @pytest.mark.asyncio
    async def test_wfh_saved_as_deduction(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/tax/deductions/wfh",
            json={"person": "partner", "total_hours": 100, "period_end": "2025-06-30", "save": True},
        )

        deduction = response.json()["deduction"]
        assert deduction["category"] == "work_from_home"
        assert deduction["amount"] == 67.0
        assert deduction["wfh_hours"] == 100
        assert deduction["financial_year"] == "2024-25"
        assert deduction["is_flagged"] is True

    @pytest.mark.asyncio
    async def test_wfh_requires_hours(self, client: AsyncClient):
        response = await client.post("/api/v1/tax/deductions/wfh", json={"person": "primary"})

        assert response.status_code == 400


class TestTaxSummaryAPI:
    """Integration tests for summaries, export and calculators."""

    @pytest.mark.asyncio
    async def test_person_summary_refund(self, client: AsyncClient):
        """Test withheld tax above the estimate shows as a negative (refund)."""
        await add_income(client)
        await add_income(client, income_type="dividend", source="BHP", amount=5000, franking_credits=2000, tax_withheld=0)
        await add_deduction(client)

        response = await client.get("/api/v1/tax/summary?person=primary&financial_year=2024-25")

        assert response.status_code == 200
        data = response.json()
        assert data["income"]["total"] == 105000
        assert data["income"]["dividends"] == 5000
        assert data["deductions"]["total"] == 1000
        assert data["estimated_tax"]["taxable_income"] == 104000
        assert data["estimated_tax"]["grossed_up_income"] == 106000
        assert data["estimated_tax"]["net_tax_payable"] == 22708
        assert data["estimated_refund_or_owing"] == -2292

    @pytest.mark.asyncio
    async def test_summary_requires_known_person(self, client: AsyncClient):
        response = await client.get("/api/v1/tax/summary?person=nobody&financial_year=2024-25")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_household_summary(self, client: AsyncClient):
        await add_income(client)
        await add_income(client, person="partner", amount=50000, tax_withheld=5000)

        data = (await client.get("/api/v1/tax/household?financial_year=2024-25")).json()

        assert set(data["members"]) == {"primary", "partner"}
        assert data["members"]["partner"]["estimated_tax"]["net_tax_payable"] == 6788
        assert data["combined_tax"] == 22788 + 6788

    @pytest.mark.asyncio
    async def test_export_workbook(self, client: AsyncClient):
        await add_income(client)
        await add_deduction(client, category="clothing_laundry", amount=200, has_receipt=False)

        response = await client.get("/api/v1/tax/summary/export?financial_year=2024-25")

        assert response.status_code == 200
        assert "tax-summary-2024-25.xlsx" in response.headers["content-disposition"]
        wb = load_workbook(BytesIO(response.content))
        assert wb.sheetnames == ["Summary", "Income", "Deductions"]
        assert wb["Summary"]["B1"].value == "primary"
        assert wb["Summary"]["B2"].value == 100000
        assert wb["Income"]["D2"].value == "Acme Pty Ltd"
        assert "$150" in wb["Deductions"]["H2"].value

    @pytest.mark.asyncio
    async def test_calculate(self, client: AsyncClient):
        response = await client.post("/api/v1/tax/calculate", json={"gross_income": 100000})

        assert response.status_code == 200
        data = response.json()
        assert data["net_tax_payable"] == 22788
        assert data["tax_bracket"] == "$45,001 - $135,000 (30%)"

    @pytest.mark.asyncio
    async def test_calculate_with_hecs_and_no_private_health(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/tax/calculate",
            json={"gross_income": 60000, "has_hecs_debt": True, "has_private_health": False},
        )

        data = response.json()
        assert data["hecs_repayment"] == 600
        assert data["medicare_surcharge"] == 0

    @pytest.mark.asyncio
    async def test_calculate_vehicle(self, client: AsyncClient):
        response = await client.post("/api/v1/tax/calculate/vehicle", json={"kilometres": 6000})

        assert response.json() == {"kilometres": 6000, "claimable_kilometres": 5000, "deduction": 4250}
