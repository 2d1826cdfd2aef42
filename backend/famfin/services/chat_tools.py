"""
Tools the AI accountant can call to read household data.

TOOL_DEFINITIONS uses the Anthropic tool schema. ChatTools.execute runs a
tool for the current session and returns a JSON-serialisable dict; bad
arguments come back as {"error": ...} so the model can correct itself.
"""

import logging
from dataclasses import asdict
from datetime import date
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.config import get_settings
from famfin.models.account import Account, AccountType
from famfin.models.document import EntityType
from famfin.models.transaction import Transaction
from famfin.rules.financial_year import current_financial_year, financial_year_start
from famfin.rules.tax import calculate_tax
from famfin.rules.trust import BeneficiaryIncome, DistributionScenario, model_distribution
from famfin.services import super_service, tax_service, trust_service
from famfin.services.document_service import DocumentService
from famfin.services.spending import transactions_summary

logger = logging.getLogger(__name__)

DEFAULT_TRANSACTION_LIMIT = 50

_FY_PROPERTY = {
    "type": "string",
    "description": "Financial year in format YYYY-YY (e.g. 2024-25). Defaults to the current year.",
}
_PERSON_PROPERTY = {
    "type": "string",
    "description": "Household member. Omit for the whole household.",
}

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "get_accounts",
        "description": "Get active accounts with current balances, optionally filtered by account type",
        "input_schema": {
            "type": "object",
            "properties": {
                "account_type": {"type": "string", "enum": [t.value for t in AccountType]},
            },
        },
    },
    {
        "name": "get_transactions",
        "description": "Get transactions with optional filters for date range, category, account, amount and search text",
        "input_schema": {
            "type": "object",
            "properties": {
                "date_from": {"type": "string", "description": "Start date in YYYY-MM-DD format"},
                "date_to": {"type": "string", "description": "End date in YYYY-MM-DD format"},
                "category": {"type": "string", "description": "Category name to filter by"},
                "account_id": {"type": "string"},
                "min_amount": {"type": "number"},
                "max_amount": {"type": "number"},
                "search_text": {"type": "string", "description": "Search in description or payee"},
                "limit": {"type": "integer", "default": DEFAULT_TRANSACTION_LIMIT},
            },
        },
    },
    {
        "name": "get_spending_summary",
        "description": "Get income, expenses, net cash flow and top spending categories and payees for a period",
        "input_schema": {
            "type": "object",
            "properties": {
                "date_from": {"type": "string", "description": "Start date in YYYY-MM-DD format"},
                "date_to": {"type": "string", "description": "End date in YYYY-MM-DD format"},
            },
        },
    },
    {
        "name": "get_tax_summary",
        "description": "Get income, deductions, estimated tax and expected refund for a financial year",
        "input_schema": {
            "type": "object",
            "properties": {"financial_year": _FY_PROPERTY, "person": _PERSON_PROPERTY},
        },
    },
    {
        "name": "calculate_income_tax",
        "description": "Calculate Australian resident income tax, Medicare levy and HECS for an income using 2024-25 rates",
        "input_schema": {
            "type": "object",
            "properties": {
                "gross_income": {"type": "number"},
                "deductions": {"type": "number", "default": 0},
                "franking_credits": {"type": "number", "default": 0},
                "has_hecs_debt": {"type": "boolean", "default": False},
                "has_private_health": {"type": "boolean", "default": True},
            },
            "required": ["gross_income"],
        },
    },
    {
        "name": "get_super_summary",
        "description": "Get superannuation contributions against the caps, balances and alerts",
        "input_schema": {
            "type": "object",
            "properties": {"financial_year": _FY_PROPERTY, "person": _PERSON_PROPERTY},
        },
    },
    {
        "name": "get_trust_summary",
        "description": "Get the family trust's income, franking credits, distributions and distributable amount",
        "input_schema": {"type": "object", "properties": {"financial_year": _FY_PROPERTY}},
    },
    {
        "name": "model_trust_distribution",
        "description": (
            "Compare household tax under different splits of the trust's distributable income. "
            "Without scenarios, models an even split and 100% to each beneficiary."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "financial_year": _FY_PROPERTY,
                "distributable_amount": {"type": "number"},
                "franking_credits": {"type": "number"},
                "other_income": {
                    "type": "object",
                    "description": "Beneficiary key -> income from outside the trust",
                    "additionalProperties": {"type": "number"},
                },
                "scenarios": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string"},
                            "allocations": {
                                "type": "object",
                                "description": "Beneficiary key -> percentage; must total 100",
                                "additionalProperties": {"type": "number"},
                            },
                        },
                        "required": ["name", "allocations"],
                    },
                },
            },
        },
    },
    {
        "name": "search_documents",
        "description": "Search stored documents (receipts, statements, tax documents) by meaning",
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {"type": "string"},
                "entity_type": {"type": "string", "enum": [e.value for e in EntityType]},
                "limit": {"type": "integer", "default": 5},
            },
            "required": ["query"],
        },
    },
]

TOOL_NAMES = [t["name"] for t in TOOL_DEFINITIONS]


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _financial_year(args: dict[str, Any]) -> str:
    fy = args.get("financial_year") or current_financial_year()
    financial_year_start(fy)
    return fy


class ChatTools:
    """Executes chat tools against one database session."""

    def __init__(self, session: AsyncSession, user_id: str, documents: Optional[DocumentService] = None):
        self.session = session
        self.user_id = user_id
        self.members = get_settings().household_members
        self.documents = documents or DocumentService(session)

    async def execute(self, name: str, args: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        handler = getattr(self, f"_{name}", None)
        if name not in TOOL_NAMES or handler is None:
            return {"error": f"Unknown tool: {name}"}

        try:
            return await handler(args or {})
        except ValueError as e:
            logger.warning("Tool %s rejected arguments %s: %s", name, args, e)
            return {"error": str(e)}

    def _person(self, args: dict[str, Any]) -> Optional[str]:
        person = args.get("person")
        if person and person not in self.members:
            raise ValueError(f"Unknown household member '{person}'. Known: {', '.join(self.members)}")
        return person

    async def _get_accounts(self, args: dict[str, Any]) -> dict[str, Any]:
        stmt = select(Account).where(Account.user_id == self.user_id, Account.is_active.is_(True))
        if args.get("account_type"):
            stmt = stmt.where(Account.account_type == AccountType(args["account_type"]))
        result = await self.session.execute(stmt.order_by(Account.name))
        accounts = result.scalars().all()

        return {
            "accounts": [
                {
                    "id": a.id,
                    "name": a.name,
                    "account_type": a.account_type.value,
                    "institution": a.institution,
                    "current_balance": a.current_balance,
                    "credit_limit": a.credit_limit,
                }
                for a in accounts
            ],
            "total_balance": round(sum(a.current_balance or 0 for a in accounts), 2),
            "count": len(accounts),
        }

    async def _get_transactions(self, args: dict[str, Any]) -> dict[str, Any]:
        stmt = select(Transaction).where(Transaction.user_id == self.user_id)
        if args.get("date_from"):
            stmt = stmt.where(Transaction.date >= _parse_date(args["date_from"]))
        if args.get("date_to"):
            stmt = stmt.where(Transaction.date <= _parse_date(args["date_to"]))
        if args.get("account_id"):
            stmt = stmt.where(Transaction.account_id == args["account_id"])
        if args.get("min_amount") is not None:
            stmt = stmt.where(Transaction.amount >= args["min_amount"])
        if args.get("max_amount") is not None:
            stmt = stmt.where(Transaction.amount <= args["max_amount"])
        if args.get("search_text"):
            pattern = f"%{args['search_text']}%"
            stmt = stmt.where(or_(Transaction.description.ilike(pattern), Transaction.payee.ilike(pattern)))

        limit = int(args.get("limit") or DEFAULT_TRANSACTION_LIMIT)
        result = await self.session.execute(stmt.order_by(Transaction.date.desc()).limit(limit))
        transactions = list(result.scalars().all())

        # Category names are matched loosely
        if args.get("category"):
            needle = args["category"].lower()
            transactions = [t for t in transactions if t.category and needle in t.category.name.lower()]

        return {
            "transactions": [
                {
                    "id": t.id,
                    "date": t.date.isoformat(),
                    "description": t.description,
                    "payee": t.payee,
                    "amount": t.amount,
                    "transaction_type": t.transaction_type.value,
                    "category": t.category.name if t.category else None,
                }
                for t in transactions
            ],
            "count": len(transactions),
        }

    async def _get_spending_summary(self, args: dict[str, Any]) -> dict[str, Any]:
        summary = await transactions_summary(
            self.session,
            self.user_id,
            date_from=_parse_date(args.get("date_from")),
            date_to=_parse_date(args.get("date_to")),
        )
        summary["date_from"] = args.get("date_from")
        summary["date_to"] = args.get("date_to")
        return summary

    async def _get_tax_summary(self, args: dict[str, Any]) -> dict[str, Any]:
        fy = _financial_year(args)
        person = self._person(args)
        if person:
            return await tax_service.person_tax_summary(self.session, self.user_id, person, fy)
        return await tax_service.household_tax_summary(self.session, self.user_id, self.members, fy)

    async def _calculate_income_tax(self, args: dict[str, Any]) -> dict[str, Any]:
        if args.get("gross_income") is None:
            raise ValueError("gross_income is required")
        return calculate_tax(
            float(args["gross_income"]),
            float(args.get("deductions") or 0),
            float(args.get("franking_credits") or 0),
            has_hecs_debt=bool(args.get("has_hecs_debt", False)),
            has_private_health=bool(args.get("has_private_health", True)),
        ).to_dict()

    async def _get_super_summary(self, args: dict[str, Any]) -> dict[str, Any]:
        fy = _financial_year(args)
        person = self._person(args)
        if person:
            return await super_service.contribution_status(self.session, self.user_id, person, fy)

        household = await super_service.household_contribution_summary(
            self.session, self.user_id, self.members, fy
        )
        household["alerts"] = {
            p: super_service.contribution_alerts(s) for p, s in household["members"].items()
        }
        return household

    async def _get_trust_summary(self, args: dict[str, Any]) -> dict[str, Any]:
        trust = await trust_service.get_trust(self.session, self.user_id)
        if trust is None:
            return {"note": "No family trust configured."}

        summary = await trust_service.trust_summary(self.session, trust, _financial_year(args))
        summary["trust"] = {"name": trust.name, "abn": trust.abn, "trustee_name": trust.trustee_name}
        summary["beneficiaries"] = [
            {"id": b.id, "name": b.name, "person": b.person, "type": b.beneficiary_type.value}
            for b in summary["beneficiaries"]
        ]
        return summary

    async def _model_trust_distribution(self, args: dict[str, Any]) -> dict[str, Any]:
        trust = await trust_service.get_trust(self.session, self.user_id)
        if trust is None:
            return {"note": "No family trust configured."}

        fy = _financial_year(args)
        summary = await trust_service.trust_summary(self.session, trust, fy)
        distributable = args.get("distributable_amount")
        if distributable is None:
            distributable = summary["distributable_amount"]
        franking = args.get("franking_credits")
        if franking is None:
            franking = summary["franking_credits_ytd"]

        other_income = args.get("other_income") or {}
        beneficiaries = []
        for b in summary["beneficiaries"]:
            key = b.person or b.id
            income = other_income.get(key)
            if income is None and b.person:
                person_summary = await tax_service.person_tax_summary(self.session, self.user_id, b.person, fy)
                income = person_summary["income"]["total"] - person_summary["income"]["trust_distributions"]
            beneficiaries.append(BeneficiaryIncome(key=key, name=b.name, other_income=income or 0.0))

        if not beneficiaries:
            return {"note": "The trust has no active beneficiaries."}

        if args.get("scenarios"):
            scenarios = [
                DistributionScenario(name=s["name"], allocations=s["allocations"]) for s in args["scenarios"]
            ]
        else:
            even = 100 / len(beneficiaries)
            scenarios = [DistributionScenario("Even split", {b.key: even for b in beneficiaries})]
            scenarios += [DistributionScenario(f"All to {b.name}", {b.key: 100}) for b in beneficiaries]

        model = model_distribution(float(distributable), float(franking), beneficiaries, scenarios)
        result = asdict(model)
        result.update({"financial_year": fy, "distributable_amount": distributable, "franking_credits": franking})
        return result

    async def _search_documents(self, args: dict[str, Any]) -> dict[str, Any]:
        if not args.get("query"):
            raise ValueError("query is required")

        entity_type = EntityType(args["entity_type"]) if args.get("entity_type") else None
        hits = await self.documents.search(
            self.user_id,
            args["query"],
            limit=int(args.get("limit") or 5),
            entity_type=entity_type,
        )
        return {
            "results": [
                {
                    "document_id": h.document.id,
                    "document_name": h.document.name,
                    "document_type": h.document.document_type,
                    "financial_year": h.document.financial_year,
                    "content": h.chunk.content,
                    "similarity": h.similarity,
                }
                for h in hits
            ],
            "count": len(hits),
        }
