"""
Pytest fixtures for Invoicer backend tests.
"""
import os

# Settings are cached on first use, so the environment has to be set
# before any invoicer module is imported.
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SESSION_SECRET", "test-session-secret")

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from invoicer.models.session import SessionContext, SessionUser
from invoicer.models.source import TokenResponse
from invoicer.models.tables import Invoice, PaymentStatus, Source, User


@pytest_asyncio.fixture
async def db_session():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def user(db_session):
    """A persisted user."""
    row = User(id="user-1", name="Test User", email="test@example.com")
    db_session.add(row)
    await db_session.commit()
    return row


@pytest_asyncio.fixture
async def other_user(db_session):
    """A second persisted user, for isolation checks."""
    row = User(id="user-2", name="Other User", email="other@example.com")
    db_session.add(row)
    await db_session.commit()
    return row


@pytest.fixture
def mock_session():
    """Session context matching the `user` fixture (request `user` to persist it)."""
    return SessionContext(
        session_id="test-session-123",
        user=SessionUser(id="user-1", name="Test User", email="test@example.com"),
        expires_at=datetime.utcnow() + timedelta(hours=1),
    )


@pytest.fixture
def mock_tokens():
    """A token endpoint response without refresh_token_expires_in."""
    return TokenResponse(
        access_token="ya29.mock-access-token",
        refresh_token="1//mock-refresh-token",
        expires_in=3599,
        id_token="mock.id.token",
        scope="openid email https://mail.google.com/",
        token_type="Bearer",
    )


async def make_source(db_session, owner, email_address="inbox@gmail.com") -> Source:
    """Persist a Gmail source for `owner`."""
    source = Source(
        user_id=owner.id,
        name=f"{owner.name}/gmail/{email_address}",
        email_address=email_address,
        oauth2_access_token="access",
        oauth2_refresh_token="refresh",
        oauth2_access_token_expires_at=datetime.utcnow() + timedelta(hours=1),
    )
    db_session.add(source)
    await db_session.commit()
    return source


async def make_invoices(db_session, owner, source, specs) -> list:
    """
    Persist invoices from (id, created_at) pairs.

    Returns the created rows in insertion order.
    """
    rows = []
    for invoice_id, created_at in specs:
        row = Invoice(
            id=invoice_id,
            user_id=owner.id,
            source_id=source.id,
            invoice_number=f"INV-{invoice_id:04d}",
            vendor_name=f"Vendor {invoice_id}",
            total_amount="10.00",
            currency="USD",
            payment_status=PaymentStatus.UNPAID,
            line_items=[{"description": "Service", "quantity": 1, "unit_price": 10.0}],
            created_at=created_at,
        )
        db_session.add(row)
        rows.append(row)
    await db_session.commit()
    return rows


@pytest_asyncio.fixture
async def source(db_session, user):
    """A persisted Gmail source for `user`."""
    return await make_source(db_session, user)
