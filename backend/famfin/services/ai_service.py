"""
AI accountant chat.

Uses Claude (Anthropic) with tool use when configured. Without an API key,
or when the API call fails, a rule-based responder picks a tool from the
question's keywords and summarises its result.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from anthropic import APIError, AsyncAnthropic

from famfin.config import get_settings
from famfin.services.chat_tools import TOOL_DEFINITIONS, ChatTools

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are the AI accountant for an Australian family's personal finance app.
You have read access to the household's accounts, transactions, tax records,
superannuation, family trust and documents through tools.

Principles:
1. Use the tools for any figure about the household. Never guess numbers.
2. Use 2024-25 Australian tax rules. Financial years run 1 July to 30 June.
3. Show the key figures behind an answer and state assumptions.
4. If a question needs professional judgement, say it should be confirmed
   with the family's registered tax agent.
5. Keep answers short and use Australian dollars."""

MOCK_MODEL = "mock"

_AMOUNT = re.compile(r"(\$)?\s*(\d[\d,]*(?:\.\d+)?)\s*(k)?\b", re.IGNORECASE)
_FINANCIAL_YEAR = re.compile(r"\b\d{4}-\d{2}\b")


@dataclass
class ChatReply:
    content: str
    model: str
    tool_calls: list[dict[str, Any]] = field(default_factory=list)


def _extract_amount(text: str) -> Optional[float]:
    """
    Largest dollar amount mentioned in text ("$120,000", "95k", "80000").

    Bare numbers shorter than five digits are ignored so years are not read
    as amounts.
    """
    amounts = []
    for dollar, number, thousands in _AMOUNT.findall(_FINANCIAL_YEAR.sub(" ", text)):
        digits = number.replace(",", "")
        if not (dollar or thousands or "," in number or len(digits.split(".")[0]) >= 5):
            continue
        value = float(digits)
        if thousands:
            value *= 1000
        amounts.append(value)
    return max(amounts) if amounts else None


def _tool_result_content(result: dict[str, Any]) -> str:
    return json.dumps(result, default=str)


class AIService:
    """
    Chat with the AI accountant.

    Uses the Anthropic tool loop when configured, the rule-based responder
    otherwise.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        settings = get_settings()
        self.api_key = api_key or settings.anthropic_api_key
        self.model = model or settings.ai_model
        self.max_tool_rounds = settings.ai_max_tool_rounds
        self.is_mock = not self.api_key
        self.client = None if self.is_mock else AsyncAnthropic(api_key=self.api_key)

    async def chat(self, messages: list[dict[str, Any]], tools: ChatTools) -> ChatReply:
        """
        Answer the last user message of a conversation.

        Args:
            messages: Conversation so far as {role, content} dicts
            tools: Tool executor bound to the household's data
        """
        if self.is_mock:
            return await self._mock_reply(messages, tools)

        try:
            return await self._claude_reply(messages, tools)
        except APIError:
            logger.exception("Anthropic API error, falling back to rule-based reply")
            return await self._mock_reply(messages, tools)

    async def _claude_reply(self, messages: list[dict[str, Any]], tools: ChatTools) -> ChatReply:
        conversation = [
            {"role": "assistant" if m["role"] == "assistant" else "user", "content": m["content"]}
            for m in messages
        ]
        tool_calls: list[dict[str, Any]] = []
        rounds = 0

        while True:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=2048,
                system=SYSTEM_PROMPT,
                messages=conversation,
                tools=TOOL_DEFINITIONS,
            )

            tool_uses = [block for block in response.content if block.type == "tool_use"]
            if response.stop_reason != "tool_use" or not tool_uses or rounds >= self.max_tool_rounds:
                return ChatReply(content=self._text_of(response), model=self.model, tool_calls=tool_calls)

            rounds += 1
            conversation.append({"role": "assistant", "content": [self._block_dict(b) for b in response.content]})

            results = []
            for block in tool_uses:
                logger.info("Tool call %s(%s)", block.name, block.input)
                result = await tools.execute(block.name, block.input)
                tool_calls.append({"round": rounds, "name": block.name, "input": block.input})
                results.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": block.id,
                        "content": _tool_result_content(result),
                        "is_error": "error" in result,
                    }
                )
            conversation.append({"role": "user", "content": results})

    @staticmethod
    def _block_dict(block: Any) -> dict[str, Any]:
        if block.type == "tool_use":
            return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
        return {"type": "text", "text": block.text}

    @staticmethod
    def _text_of(response: Any) -> str:
        return "\n".join(block.text for block in response.content if block.type == "text").strip()

    # === Rule-based responder ===

    def _pick_tool(self, question: str) -> tuple[Optional[str], dict[str, Any]]:
        q = question.lower()
        amount = _extract_amount(question)

        if "trust" in q and any(w in q for w in ("distribut", "split", "model")):
            return "model_trust_distribution", {}
        if "trust" in q:
            return "get_trust_summary", {}
        if "super" in q or "contribution" in q:
            return "get_super_summary", {}
        if "tax" in q and amount:
            return "calculate_income_tax", {"gross_income": amount}
        if "tax" in q or "refund" in q or "deduction" in q:
            return "get_tax_summary", {}
        if any(w in q for w in ("spend", "spent", "expense", "cash flow")):
            return "get_spending_summary", {}
        if any(w in q for w in ("document", "receipt", "invoice", "statement")):
            return "search_documents", {"query": question}
        if "transaction" in q:
            return "get_transactions", {"limit": 10}
        if "account" in q or "balance" in q or "net worth" in q:
            return "get_accounts", {}
        return None, {}

    async def _mock_reply(self, messages: list[dict[str, Any]], tools: ChatTools) -> ChatReply:
        question = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
        name, args = self._pick_tool(str(question))

        if name is None:
            return ChatReply(
                content=(
                    "I can help with your accounts, spending, tax, super, the family trust "
                    "and stored documents. Try asking \"How much tax will I pay on $120,000?\""
                ),
                model=MOCK_MODEL,
            )

        result = await tools.execute(name, args)
        return ChatReply(
            content=self._describe(name, result),
            model=MOCK_MODEL,
            tool_calls=[{"round": 1, "name": name, "input": args}],
        )

    def _describe(self, name: str, result: dict[str, Any]) -> str:
        if "error" in result:
            return f"I couldn't get that information: {result['error']}"
        if "note" in result:
            return result["note"]

        if name == "get_accounts":
            lines = [f"- {a['name']}: ${a['current_balance']:,.2f}" for a in result["accounts"]]
            return "\n".join([f"You have {result['count']} active accounts:", *lines,
                              f"Total balance: ${result['total_balance']:,.2f}"])
        if name == "get_transactions":
            lines = [f"- {t['date']} {t['description']}: ${t['amount']:,.2f}" for t in result["transactions"]]
            return "\n".join([f"Found {result['count']} transactions:", *lines])
        if name == "get_spending_summary":
            top = ", ".join(f"{c['name']} (${c['amount']:,.2f})" for c in result["top_categories"][:3])
            text = (
                f"Income ${result['total_income']:,.2f}, expenses ${result['total_expenses']:,.2f}, "
                f"net cash flow ${result['net_cash_flow']:,.2f}."
            )
            return f"{text} Top categories: {top}." if top else text
        if name == "calculate_income_tax":
            return (
                f"On ${result['gross_income']:,.2f} the estimated tax is ${result['net_tax_payable']:,.2f} "
                f"(income tax ${result['income_tax']:,.2f}, Medicare levy ${result['medicare_levy']:,.2f}). "
                f"Effective rate {result['effective_tax_rate']}%, marginal rate {result['marginal_tax_rate']}%."
            )
        if name == "get_tax_summary":
            if "members" in result:
                return (
                    f"For {result['financial_year']} the household's estimated tax is "
                    f"${result['combined_tax']:,.2f}; combined refund (negative) or owing "
                    f"${result['combined_refund']:,.2f}."
                )
            return (
                f"For {result['financial_year']} {result['person']} has taxable income of "
                f"${result['estimated_tax']['taxable_income']:,.2f} and estimated tax of "
                f"${result['estimated_tax']['net_tax_payable']:,.2f}."
            )
        if name == "get_super_summary":
            if "members" in result:
                combined = result["combined"]
                return (
                    f"In {result['financial_year']} the household made ${combined['total_concessional']:,.2f} "
                    f"concessional and ${combined['total_non_concessional']:,.2f} non-concessional contributions."
                )
            summary = result["summary"]
            alerts = " ".join(a["message"] for a in result["alerts"])
            return (
                f"{summary['person']} has ${summary['concessional_remaining']:,.2f} of concessional cap remaining. {alerts}"
            ).strip()
        if name == "get_trust_summary":
            return (
                f"{result['trust']['name']} has received ${result['income_ytd']:,.2f} this year and "
                f"${result['distributable_amount']:,.2f} is still to be distributed, "
                f"{result['days_until_eofy']} days before 30 June."
            )
        if name == "model_trust_distribution":
            lines = [f"- {s['name']}: total tax ${s['total_tax']:,.2f}" for s in result["scenarios"]]
            return "\n".join(["Distribution scenarios:", *lines, f"Lowest tax: {result['best_scenario']}"])
        if name == "search_documents":
            if not result["results"]:
                return "I couldn't find any matching documents."
            lines = [f"- {r['document_name']} (similarity {r['similarity']:.2f})" for r in result["results"]]
            return "\n".join(["Matching documents:", *lines])
        return json.dumps(result, default=str)
