"""
Integration tests for Family Trust API.
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient

TRUST = {"name": "Smith Family Trust", "trustee_name": "Smith Nominees Pty Ltd", "abn": "12345678901"}


@pytest_asyncio.fixture
async def trust(client: AsyncClient) -> dict:
    response = await client.post("/api/v1/trust/initialize", json=TRUST)
    assert response.status_code == 201, response.text
    return response.json()


@pytest_asyncio.fixture
async def beneficiaries(client: AsyncClient, trust) -> dict[str, dict]:
    listed = (await client.get("/api/v1/trust/beneficiaries")).json()
    return {b["person"]: b for b in listed}


async def add_trust_income(client: AsyncClient, **overrides) -> dict:
    body = {
        "source": "BHP Group",
        "income_type": "dividend",
        "amount": 10000,
        "franking_credits": 4000,
        "date": "2025-02-01",
    }
    body.update(overrides)
    response = await client.post("/api/v1/trust/income", json=body)
    assert response.status_code == 201, response.text
    return response.json()


async def add_distribution(client: AsyncClient, beneficiary_id: str, **overrides) -> dict:
    body = {
        "beneficiary_id": beneficiary_id,
        "amount": 6000,
        "franking_credits_streamed": 1500,
        "date": "2025-06-15",
    }
    body.update(overrides)
    response = await client.post("/api/v1/trust/distributions", json=body)
    assert response.status_code == 201, response.text
    return response.json()


async def add_investment(client: AsyncClient, **overrides) -> dict:
    body = {
        "asset_type": "australian_shares",
        "name": "Vanguard Australian Shares",
        "units": 800,
        "cost_base": 80000,
        "current_value": 95000,
    }
    body.update(overrides)
    response = await client.post("/api/v1/trust/investments", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestTrustAPI:
    """Integration tests for the trust record and its beneficiaries."""

    @pytest.mark.asyncio
    async def test_get_trust_not_found(self, client: AsyncClient):
        response = await client.get("/api/v1/trust/")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_initialize_adds_household_beneficiaries(self, client: AsyncClient, trust):
        listed = (await client.get("/api/v1/trust/beneficiaries")).json()

        assert trust["name"] == "Smith Family Trust"
        assert {b["person"] for b in listed} == {"primary", "partner"}
        assert all(b["beneficiary_type"] == "primary" for b in listed)

    @pytest.mark.asyncio
    async def test_only_one_trust(self, client: AsyncClient, trust):
        response = await client.post("/api/v1/trust/", json=TRUST)

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_update_trust(self, client: AsyncClient, trust):
        response = await client.put("/api/v1/trust/", json={"establishment_date": "2019-07-01"})

        assert response.status_code == 200
        assert response.json()["establishment_date"] == "2019-07-01"
        assert response.json()["trustee_name"] == "Smith Nominees Pty Ltd"

    @pytest.mark.asyncio
    async def test_add_and_deactivate_beneficiary(self, client: AsyncClient, trust):
        created = await client.post(
            "/api/v1/trust/beneficiaries",
            json={"name": "Smith Investments Pty Ltd", "beneficiary_type": "secondary"},
        )
        beneficiary = created.json()

        assert created.status_code == 201
        assert beneficiary["person"] is None

        await client.put(f"/api/v1/trust/beneficiaries/{beneficiary['id']}", json={"is_active": False})

        active = (await client.get("/api/v1/trust/beneficiaries")).json()
        everyone = (await client.get("/api/v1/trust/beneficiaries?include_inactive=true")).json()
        assert len(active) == 2
        assert len(everyone) == 3

    @pytest.mark.asyncio
    async def test_beneficiary_unknown_person(self, client: AsyncClient, trust):
        response = await client.post("/api/v1/trust/beneficiaries", json={"name": "Lodger", "person": "lodger"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_unknown_beneficiary(self, client: AsyncClient, trust):
        response = await client.put("/api/v1/trust/beneficiaries/missing", json={"name": "X"})

        assert response.status_code == 404


class TestTrustLedgerAPI:
    """Integration tests for trust income, distributions and the franking ledger."""

    @pytest.mark.asyncio
    async def test_income_adds_franking_credits(self, client: AsyncClient, trust):
        income = await add_trust_income(client)

        ledger = (await client.get("/api/v1/trust/franking-credits?financial_year=2024-25")).json()

        assert income["financial_year"] == "2024-25"
        assert ledger["credits_received"] == 4000
        assert ledger["closing_balance"] == 4000

    @pytest.mark.asyncio
    async def test_distribution_streams_franking_credits(self, client: AsyncClient, beneficiaries):
        await add_trust_income(client)
        distribution = await add_distribution(client, beneficiaries["primary"]["id"])

        ledger = (await client.get("/api/v1/trust/franking-credits?financial_year=2024-25")).json()

        assert distribution["beneficiary_name"] == "Primary"
        assert distribution["financial_year"] == "2024-25"
        assert ledger["credits_distributed"] == 1500
        assert ledger["closing_balance"] == 2500

    @pytest.mark.asyncio
    async def test_deletes_reverse_ledger(self, client: AsyncClient, beneficiaries):
        income = await add_trust_income(client)
        distribution = await add_distribution(client, beneficiaries["partner"]["id"])

        assert (await client.delete(f"/api/v1/trust/distributions/{distribution['id']}")).status_code == 204
        assert (await client.delete(f"/api/v1/trust/income/{income['id']}")).status_code == 204

        ledger = (await client.get("/api/v1/trust/franking-credits?financial_year=2024-25")).json()
        assert ledger["credits_received"] == 0
        assert ledger["credits_distributed"] == 0
        assert (await client.delete(f"/api/v1/trust/income/{income['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_empty_ledger(self, client: AsyncClient, trust):
        ledger = (await client.get("/api/v1/trust/franking-credits?financial_year=2020-21")).json()

        assert ledger == {
            "financial_year": "2020-21",
            "opening_balance": 0,
            "credits_received": 0,
            "credits_distributed": 0,
            "closing_balance": 0,
        }

    @pytest.mark.asyncio
    async def test_distribution_unknown_beneficiary(self, client: AsyncClient, trust):
        response = await client.post(
            "/api/v1/trust/distributions",
            json={"beneficiary_id": "missing", "amount": 100, "date": "2025-06-15"},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_filters_and_by_beneficiary(self, client: AsyncClient, beneficiaries):
        primary_id = beneficiaries["primary"]["id"]
        await add_trust_income(client)
        await add_trust_income(client, source="ING", income_type="interest", amount=800, franking_credits=0, date="2025-08-01")
        await add_distribution(client, primary_id)
        await add_distribution(client, primary_id, amount=2000, franking_credits_streamed=0, date="2025-06-20")

        income = (await client.get("/api/v1/trust/income?financial_year=2024-25")).json()
        distributions = (await client.get("/api/v1/trust/distributions?financial_year=2024-25")).json()
        by_beneficiary = (
            await client.get("/api/v1/trust/distributions/by-beneficiary?financial_year=2024-25")
        ).json()

        assert [i["source"] for i in income] == ["BHP Group"]
        assert [d["amount"] for d in distributions] == [2000, 6000]
        assert by_beneficiary == {primary_id: {"name": "Primary", "total": 8000, "franking": 1500}}

    @pytest.mark.asyncio
    async def test_summary(self, client: AsyncClient, beneficiaries):
        await add_trust_income(client)
        await add_distribution(client, beneficiaries["primary"]["id"])

        data = (await client.get("/api/v1/trust/summary?financial_year=2024-25")).json()

        assert data["trust"]["name"] == "Smith Family Trust"
        assert data["income_ytd"] == 10000
        assert data["franking_credits_ytd"] == 4000
        assert data["distributions_ytd"] == 6000
        assert data["distributable_amount"] == 4000
        assert len(data["beneficiaries"]) == 2


class TestTrustInvestmentsAPI:
    """Integration tests for the trust investment register."""

    @pytest.mark.asyncio
    async def test_investments_need_a_trust(self, client: AsyncClient):
        response = await client.get("/api/v1/trust/investments")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_add_and_list_largest_first(self, client: AsyncClient, trust):
        await add_investment(client, name="Term Deposit", asset_type="cash", cost_base=50000, current_value=50000)
        shares = await add_investment(client)

        listed = (await client.get("/api/v1/trust/investments")).json()

        assert [i["name"] for i in listed] == ["Vanguard Australian Shares", "Term Deposit"]
        assert shares["gain_loss"] == 15000

    @pytest.mark.asyncio
    async def test_update_revalues(self, client: AsyncClient, trust):
        investment = await add_investment(client)

        response = await client.put(
            f"/api/v1/trust/investments/{investment['id']}",
            json={"current_value": 70000, "last_valued_date": "2025-06-30"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["gain_loss"] == -10000
        assert data["last_valued_date"] == "2025-06-30"

    @pytest.mark.asyncio
    async def test_delete(self, client: AsyncClient, trust):
        investment = await add_investment(client)

        response = await client.delete(f"/api/v1/trust/investments/{investment['id']}")

        assert response.status_code == 204
        assert (await client.get("/api/v1/trust/investments")).json() == []

    @pytest.mark.asyncio
    async def test_unknown_investment(self, client: AsyncClient, trust):
        response = await client.put("/api/v1/trust/investments/missing", json={"current_value": 1})

        assert response.status_code == 404


class TestDistributionModellingAPI:
    """Integration tests for /api/v1/trust/model-distribution."""

    @pytest.mark.asyncio
    async def test_model_with_trust_beneficiaries(self, client: AsyncClient, beneficiaries):
        primary_id = beneficiaries["primary"]["id"]
        partner_id = beneficiaries["partner"]["id"]

        response = await client.post(
            "/api/v1/trust/model-distribution",
            json={
                "distributable_amount": 50000,
                "scenarios": [
                    {"name": "All to primary", "allocations": {primary_id: 100}},
                    {"name": "Even split", "allocations": {primary_id: 50, partner_id: 50}},
                ],
            },
        )

        assert response.status_code == 200
        data = response.json()
        totals = {s["name"]: s["total_tax"] for s in data["scenarios"]}
        assert totals == {"All to primary": 5788, "Even split": 2176}
        assert data["best_scenario"] == "Even split"

    @pytest.mark.asyncio
    async def test_model_with_explicit_beneficiaries(self, client: AsyncClient):
        """Test modelling works without a trust when beneficiaries are given."""
        response = await client.post(
            "/api/v1/trust/model-distribution",
            json={
                "distributable_amount": 50000,
                "beneficiaries": [
                    {"key": "alex", "name": "Alex"},
                    {"key": "sam", "name": "Sam", "other_income": 100000},
                ],
                "scenarios": [
                    {"name": "All to Alex", "allocations": {"alex": 100}},
                    {"name": "All to Sam", "allocations": {"sam": 100}},
                ],
            },
        )

        data = response.json()
        assert data["best_scenario"] == "All to Alex"
        assert data["scenarios"][1]["total_tax"] == 36838

    @pytest.mark.asyncio
    async def test_model_rejects_bad_allocations(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/trust/model-distribution",
            json={
                "distributable_amount": 1000,
                "beneficiaries": [{"key": "alex", "name": "Alex"}],
                "scenarios": [{"name": "Half", "allocations": {"alex": 50}}],
            },
        )

        assert response.status_code == 400
        assert "100%" in response.json()["detail"]
