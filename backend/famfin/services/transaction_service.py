"""
Transaction import and rule-based categorisation.
"""

import logging
import uuid
from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.models.account import Account
from famfin.models.transaction import (
    CategorisationRule,
    ExternalSource,
    Transaction,
    TransactionType,
)
from famfin.services.balances import recalculate_account_balance

logger = logging.getLogger(__name__)


async def active_rules(session: AsyncSession, user_id: str) -> list[CategorisationRule]:
    """Active rules in evaluation order."""
    result = await session.execute(
        select(CategorisationRule)
        .where(CategorisationRule.user_id == user_id, CategorisationRule.is_active.is_(True))
        .order_by(CategorisationRule.priority, CategorisationRule.created_at)
    )
    return list(result.scalars().all())


def match_category(rules: list[CategorisationRule], transaction: Transaction) -> Optional[str]:
    """Category id of the first matching rule, if any."""
    for rule in rules:
        if rule.matches(transaction):
            return rule.category_id
    return None


async def apply_rules(
    session: AsyncSession, user_id: str, transaction_ids: Optional[list[str]] = None
) -> int:
    """
    Categorise uncategorised transactions with the active rules.

    Returns:
        Number of transactions categorised
    """
    rules = await active_rules(session, user_id)
    if not rules:
        return 0

    stmt = select(Transaction).where(
        Transaction.user_id == user_id, Transaction.category_id.is_(None)
    )
    if transaction_ids is not None:
        stmt = stmt.where(Transaction.id.in_(transaction_ids))
    result = await session.execute(stmt)

    updated = 0
    for tx in result.scalars().all():
        category_id = match_category(rules, tx)
        if category_id:
            tx.category_id = category_id
            updated += 1

    await session.flush()
    logger.info("Categorised %d transactions with %d rules", updated, len(rules))
    return updated


async def import_transactions(
    session: AsyncSession,
    user_id: str,
    account: Account,
    rows: list[dict[str, Any]],
    source: ExternalSource = ExternalSource.CSV,
) -> dict[str, Any]:
    """
    Import rows of {date, description, amount, payee?, reference?, external_id?}.

    A negative amount is an expense and a positive one income. Rows whose
    external id was already imported from the same source are skipped.
    """
    import_id = uuid.uuid4().hex

    ids = [r["external_id"] for r in rows if r.get("external_id")]
    existing: set[str] = set()
    if ids:
        result = await session.execute(
            select(Transaction.external_id).where(
                Transaction.account_id == account.id,
                Transaction.external_source == source,
                Transaction.external_id.in_(ids),
            )
        )
        existing = set(result.scalars().all())

    created = []
    skipped = 0
    for row in rows:
        if row.get("external_id") and row["external_id"] in existing:
            skipped += 1
            continue

        amount = float(row["amount"])
        tx_date = row["date"] if isinstance(row["date"], date) else date.fromisoformat(row["date"])
        tx = Transaction(
            user_id=user_id,
            account_id=account.id,
            date=tx_date,
            description=row["description"],
            amount=abs(amount),
            transaction_type=TransactionType.EXPENSE if amount < 0 else TransactionType.INCOME,
            payee=row.get("payee"),
            reference=row.get("reference"),
            external_id=row.get("external_id"),
            external_source=source,
            import_id=import_id,
        )
        session.add(tx)
        created.append(tx)

    await session.flush()
    categorised = await apply_rules(session, user_id, [tx.id for tx in created]) if created else 0
    await recalculate_account_balance(session, account)
    await session.flush()

    logger.info(
        "Imported %d transactions into account %s (%d skipped, import %s)",
        len(created), account.id, skipped, import_id,
    )
    return {
        "import_id": import_id,
        "imported": len(created),
        "skipped": skipped,
        "categorised": categorised,
    }
