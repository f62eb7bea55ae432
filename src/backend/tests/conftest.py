"""
Pytest fixtures for eVote backend tests.
"""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app
os.environ.setdefault("POSTGRES_PASSWORD", "test-password")
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_DB", "evote_test")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_secret")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("PAYMENT_SWEEP_ENABLED", "false")

TEST_PAYSTACK_SECRET = os.environ["PAYSTACK_SECRET_KEY"]


def nested_transaction() -> MagicMock:
    """Async context manager standing in for AsyncSession.begin_nested()."""
    tx = MagicMock()
    tx.__aenter__ = AsyncMock(return_value=tx)
    # Must not swallow exceptions raised inside the block
    tx.__aexit__ = AsyncMock(return_value=False)
    return tx


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
async def app() -> Any:
    """Create FastAPI application for testing."""
    from main import app as fastapi_app

    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def mock_db_session() -> AsyncMock:
    """Create mock database session."""
    session = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    session.begin_nested = MagicMock(side_effect=lambda: nested_transaction())
    return session


@pytest.fixture
def mock_paystack() -> MagicMock:
    """Create mock Paystack client."""
    paystack = MagicMock()
    paystack.charge_mobile_money = AsyncMock()
    paystack.submit_otp = AsyncMock()
    paystack.verify_transaction = AsyncMock()
    return paystack


@pytest.fixture
def open_event() -> MagicMock:
    """An active event inside its voting window, GHC 1.00 per vote."""
    now = datetime.now(timezone.utc)
    event = MagicMock()
    event.id = "event-1"
    event.name = "Campus Awards"
    event.vote_price = Decimal("1.00")
    event.is_active = True
    event.start_date = now - timedelta(days=1)
    event.end_date = now + timedelta(days=1)
    event.is_open_for_voting = MagicMock(return_value=True)
    return event


@pytest.fixture
def nominee_context(open_event: MagicMock) -> Any:
    """Resolved nominee AB12 in category "Best Speaker"."""
    from repositories.catalog_repository import NomineeContext

    category = MagicMock()
    category.id = "category-1"
    category.name = "Best Speaker"
    category.event_id = open_event.id

    nominee = MagicMock()
    nominee.id = "nominee-1"
    nominee.code = "AB12"
    nominee.name = "Ama Boateng"
    nominee.category_id = category.id

    return NomineeContext(nominee=nominee, category=category, event=open_event)


@pytest.fixture
def make_session() -> Any:
    """Factory for VoteSession rows."""
    from models.vote_session import VoteSession

    def _make(**overrides: Any) -> VoteSession:
        values: dict[str, Any] = {
            "session_id": "sess-1",
            "phone_number": "233241234567",
            "event_id": "event-1",
            "nominee_code": "AB12",
            "vote_price": Decimal("1.00"),
            "vote_count": None,
            "payment_reference": None,
            "payment_status": None,
            "created_at": datetime.now(timezone.utc),
        }
        values.update(overrides)
        return VoteSession(**values)

    return _make


@pytest.fixture
def make_payment() -> Any:
    """Factory for Payment rows."""
    from models.payment import Payment, PaymentSource, PaymentStatus

    def _make(**overrides: Any) -> Payment:
        values: dict[str, Any] = {
            "transaction_id": "ussd_0123456789abcdef01234567",
            "event_id": "event-1",
            "category_id": "category-1",
            "nominee_id": "nominee-1",
            "session_id": "sess-1",
            "phone_number": "233241234567",
            "amount": Decimal("5.00"),
            "vote_count": 5,
            "status": PaymentStatus.PENDING.value,
            "source": PaymentSource.USSD.value,
            "created_at": datetime.now(timezone.utc),
        }
        values.update(overrides)
        return Payment(**values)

    return _make
