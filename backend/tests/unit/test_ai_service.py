"""
Unit tests for the AI accountant and its tools.
"""

from types import SimpleNamespace

import httpx
import pytest
from anthropic import APIError

from famfin.config import get_settings
from famfin.services.ai_service import MOCK_MODEL, AIService, _extract_amount
from famfin.services.chat_tools import TOOL_DEFINITIONS, ChatTools
from famfin.services.document_service import DocumentService

USER_ID = get_settings().default_user_id


def text_block(text):
    return SimpleNamespace(type="text", text=text)


def tool_block(name, tool_id="tu_1", tool_input=None):
    return SimpleNamespace(type="tool_use", id=tool_id, name=name, input=tool_input or {})


class FakeMessages:
    """Replays canned Anthropic responses and records requests."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def claude_service(responses) -> AIService:
    service = AIService(api_key="test-key")
    service.client = SimpleNamespace(messages=FakeMessages(responses))
    return service


@pytest.fixture
def tools(test_session, tmp_path):
    return ChatTools(test_session, USER_ID, DocumentService(test_session, storage_dir=tmp_path))


class TestExtractAmount:
    """Tests for reading dollar amounts out of questions."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("How much tax will I pay on $120,000?", 120000.0),
            ("What if I earn 95k", 95000.0),
            ("my salary is 85000", 85000.0),
            ("tax on $1,234.50", 1234.5),
            ("between $50,000 and $90,000", 90000.0),
            ("what is my tax for 2024-25", None),
            ("tax in 2025", None),
            ("hello", None),
        ],
    )
    def test_extract_amount(self, text, expected):
        assert _extract_amount(text) == expected


class TestPickTool:
    """Tests for the rule-based tool choice."""

    @pytest.mark.parametrize(
        "question,tool",
        [
            ("How should we distribute the trust income?", "model_trust_distribution"),
            ("How is the trust going?", "get_trust_summary"),
            ("How much super room do I have?", "get_super_summary"),
            ("Tax on $150,000?", "calculate_income_tax"),
            ("What's my expected refund?", "get_tax_summary"),
            ("What did we spend last month?", "get_spending_summary"),
            ("Find my Officeworks receipt", "search_documents"),
            ("Show recent transactions", "get_transactions"),
            ("What's my account balance?", "get_accounts"),
            ("Tell me a joke", None),
        ],
    )
    def test_pick_tool(self, question, tool):
        assert AIService()._pick_tool(question)[0] == tool

    def test_every_picked_tool_is_defined(self):
        defined = {t["name"] for t in TOOL_DEFINITIONS}

        for question in ["trust split", "trust", "super", "tax $1", "refund", "spend", "receipt", "transaction", "balance"]:
            assert AIService()._pick_tool(question)[0] in defined


class TestMockReplies:
    """Tests for chat without an Anthropic key."""

    @pytest.mark.asyncio
    async def test_income_tax_question(self, tools):
        service = AIService()

        reply = await service.chat([{"role": "user", "content": "How much tax will I pay on $120,000?"}], tools)

        assert service.is_mock is True
        assert reply.model == MOCK_MODEL
        assert "$29,188.00" in reply.content
        assert reply.tool_calls == [{"round": 1, "name": "calculate_income_tax", "input": {"gross_income": 120000.0}}]

    @pytest.mark.asyncio
    async def test_accounts_question(self, tools, bank_account):
        reply = await AIService().chat([{"role": "user", "content": "What are my account balances?"}], tools)

        assert "CommBank Everyday" in reply.content
        assert "Total balance: $0.00" in reply.content

    @pytest.mark.asyncio
    async def test_help_reply(self, tools):
        reply = await AIService().chat([{"role": "user", "content": "hello there"}], tools)

        assert "I can help" in reply.content
        assert reply.tool_calls == []

    @pytest.mark.asyncio
    async def test_answers_last_user_message(self, tools):
        messages = [
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "Hi!"},
            {"role": "user", "content": "How's the trust tracking?"},
        ]

        reply = await AIService().chat(messages, tools)

        assert reply.content == "No family trust configured."


class TestClaudeReplies:
    """Tests for the Anthropic tool loop with a fake client."""

    @pytest.mark.asyncio
    async def test_tool_round_then_answer(self, tools, bank_account):
        service = claude_service(
            [
                SimpleNamespace(stop_reason="tool_use", content=[text_block("Checking."), tool_block("get_accounts")]),
                SimpleNamespace(stop_reason="end_turn", content=[text_block("You have one account.")]),
            ]
        )

        reply = await service.chat([{"role": "user", "content": "What accounts do I have?"}], tools)

        assert reply.content == "You have one account."
        assert reply.model == service.model
        assert reply.tool_calls == [{"round": 1, "name": "get_accounts", "input": {}}]

        second_request = service.client.messages.requests[1]["messages"]
        assert second_request[1]["role"] == "assistant"
        tool_result = second_request[2]["content"][0]
        assert tool_result["type"] == "tool_result"
        assert tool_result["tool_use_id"] == "tu_1"
        assert "CommBank Everyday" in tool_result["content"]
        assert tool_result["is_error"] is False

    @pytest.mark.asyncio
    async def test_tool_error_flagged(self, tools):
        service = claude_service(
            [
                SimpleNamespace(stop_reason="tool_use", content=[tool_block("no_such_tool")]),
                SimpleNamespace(stop_reason="end_turn", content=[text_block("Sorry.")]),
            ]
        )

        await service.chat([{"role": "user", "content": "?"}], tools)

        tool_result = service.client.messages.requests[1]["messages"][2]["content"][0]
        assert tool_result["is_error"] is True

    @pytest.mark.asyncio
    async def test_tool_rounds_are_bounded(self, tools):
        service = claude_service([SimpleNamespace(stop_reason="tool_use", content=[tool_block("get_accounts")])])

        reply = await service.chat([{"role": "user", "content": "loop"}], tools)

        assert len(service.client.messages.requests) == service.max_tool_rounds + 1
        assert len(reply.tool_calls) == service.max_tool_rounds
        assert reply.content == ""

    @pytest.mark.asyncio
    async def test_api_error_falls_back_to_rules(self, tools):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        service = claude_service([APIError("overloaded", request, body=None)])

        reply = await service.chat([{"role": "user", "content": "Tax on $45,000?"}], tools)

        assert reply.model == MOCK_MODEL
        assert "income tax $4,288.00" in reply.content


class TestChatTools:
    """Tests for tool execution against household data."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, tools):
        assert await tools.execute("drop_tables", {}) == {"error": "Unknown tool: drop_tables"}

    @pytest.mark.asyncio
    async def test_bad_arguments_returned_as_error(self, tools):
        unknown_person = await tools.execute("get_tax_summary", {"person": "nobody"})
        bad_year = await tools.execute("get_super_summary", {"financial_year": "2024"})
        missing_income = await tools.execute("calculate_income_tax", {})

        assert "Unknown household member" in unknown_person["error"]
        assert "Invalid financial year" in bad_year["error"]
        assert "gross_income" in missing_income["error"]

    @pytest.mark.asyncio
    async def test_get_accounts(self, tools, bank_account):
        result = await tools.execute("get_accounts", {})

        assert result["count"] == 1
        assert result["accounts"][0]["account_type"] == "bank"

    @pytest.mark.asyncio
    async def test_get_transactions_filters(self, session_maker, sample_transactions, tmp_path):
        async with session_maker() as session:
            tools = ChatTools(session, USER_ID, DocumentService(session, storage_dir=tmp_path))

            groceries = await tools.execute("get_transactions", {"category": "grocer"})
            march_second_week = await tools.execute(
                "get_transactions", {"date_from": "2025-03-02", "date_to": "2025-03-12"}
            )
            by_text = await tools.execute("get_transactions", {"search_text": "telstra"})

        assert groceries["count"] == 2
        assert march_second_week["count"] == 2
        assert by_text["transactions"][0]["payee"] == "Telstra"

    @pytest.mark.asyncio
    async def test_spending_summary(self, session_maker, sample_transactions, tmp_path):
        async with session_maker() as session:
            tools = ChatTools(session, USER_ID, DocumentService(session, storage_dir=tmp_path))
            result = await tools.execute("get_spending_summary", {"date_from": "2025-03-01"})

        assert result["total_income"] == 6000
        assert result["total_expenses"] == 340.75
        assert result["top_categories"][0] == {"name": "Groceries", "amount": 275.75}

    @pytest.mark.asyncio
    async def test_trust_tools_without_trust(self, tools):
        assert await tools.execute("get_trust_summary", {}) == {"note": "No family trust configured."}
        assert await tools.execute("model_trust_distribution", {}) == {"note": "No family trust configured."}

    @pytest.mark.asyncio
    async def test_household_tax_summary(self, tools):
        result = await tools.execute("get_tax_summary", {"financial_year": "2024-25"})

        assert result["financial_year"] == "2024-25"
        assert set(result["members"]) == {"primary", "partner"}
