"""
Pytest configuration and fixtures.
"""

import os

# Settings are read once on first import; keep tests offline and deterministic
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["XERO_CLIENT_ID"] = "test-client-id"
os.environ["XERO_CLIENT_SECRET"] = "test-client-secret"
os.environ["XERO_REDIRECT_URI"] = "http://localhost:8000/callback"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key"
os.environ["APP_URL"] = "http://localhost:3000"

from datetime import date
from typing import AsyncGenerator

import pytest_asyncio
from fastapi import Depends
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from famfin.api.documents import get_document_service
from famfin.config import get_settings
from famfin.database import Base, enable_sqlite_foreign_keys, get_session
from famfin.main import app
from famfin.models import (
    Account,
    AccountType,
    Category,
    Transaction,
    TransactionType,
)
from famfin.services.document_service import DocumentService
from famfin.utils import encrypt_value, mask_account_number

USER_ID = get_settings().default_user_id


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging and checking data outside requests."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_maker, tmp_path) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client. Each request gets its own session, as in production."""

    async def override_get_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    def override_get_document_service(session: AsyncSession = Depends(get_session)):
        return DocumentService(session, storage_dir=tmp_path / "documents")

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_document_service] = override_get_document_service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def bank_account(test_session: AsyncSession) -> Account:
    account = Account(
        user_id=USER_ID,
        name="CommBank Everyday",
        account_type=AccountType.BANK,
        institution="Commonwealth Bank",
        account_number=encrypt_value("10234567"),
        account_number_masked=mask_account_number("10234567"),
        bsb="062-000",
        current_balance=0.0,
    )
    test_session.add(account)
    await test_session.commit()
    return account


@pytest_asyncio.fixture
async def groceries(test_session: AsyncSession) -> Category:
    category = Category(user_id=USER_ID, name="Groceries", category_type=TransactionType.EXPENSE)
    test_session.add(category)
    await test_session.commit()
    return category


@pytest_asyncio.fixture
async def sample_transactions(
    test_session: AsyncSession, bank_account: Account, groceries: Category
) -> list[Transaction]:
    """Salary in, two grocery shops and a phone bill out."""
    transactions = [
        Transaction(
            user_id=USER_ID,
            account_id=bank_account.id,
            date=date(2025, 3, 1),
            description="SALARY ACME PTY LTD",
            amount=6000.0,
            transaction_type=TransactionType.INCOME,
            payee="Acme Pty Ltd",
        ),
        Transaction(
            user_id=USER_ID,
            account_id=bank_account.id,
            category_id=groceries.id,
            date=date(2025, 3, 3),
            description="WOOLWORTHS 1234 SYDNEY",
            amount=180.5,
            transaction_type=TransactionType.EXPENSE,
            payee="Woolworths",
        ),
        Transaction(
            user_id=USER_ID,
            account_id=bank_account.id,
            category_id=groceries.id,
            date=date(2025, 3, 10),
            description="COLES 0456 SYDNEY",
            amount=95.25,
            transaction_type=TransactionType.EXPENSE,
            payee="Coles",
        ),
        Transaction(
            user_id=USER_ID,
            account_id=bank_account.id,
            date=date(2025, 3, 15),
            description="TELSTRA MOBILE",
            amount=-65.0,
            transaction_type=TransactionType.EXPENSE,
            payee="Telstra",
        ),
    ]

    for tx in transactions:
        test_session.add(tx)

    await test_session.commit()

    return transactions
