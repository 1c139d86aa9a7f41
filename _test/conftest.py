# _test/conftest.py
import os

# Must be set before core.config is imported anywhere
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BUSINESS_TIMEZONE"] = "UTC"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import datetime, timezone

import httpx
import pytest

from core.clock import FrozenClock
from core.config import EngineConfig
from core.ledger import WalletLedger
from core.security import create_access_token
from core.storage import MemoryDocumentStore

START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def fund(store, clock):
    """Top up a user's wallet through the ledger."""
    async def _fund(user_id: str, amount: int):
        wallet, _ = await WalletLedger(store, clock).credit(user_id, amount, "Top up")
        return wallet
    return _fund


@pytest.fixture
def auth():
    def _headers(user_id: str, admin: bool = False):
        token = create_access_token(user_id, role="admin" if admin else "user")
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
async def app_store():
    from core.database import close_db, init_db
    store = await init_db()
    yield store
    await close_db()


@pytest.fixture
async def client(app_store, clock):
    from app import app
    from core.database import get_clock, get_label_cache

    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_label_cache] = lambda: None

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
