"""
Shared fixtures: in-memory database, a fresh expansion registry and
dispatcher, and fake interceptor services.
"""
# Load .env BEFORE any other imports (settings are cached on first use)
import os
from pathlib import Path
from dotenv import load_dotenv

# Load from repo root .env
_repo_root = Path(__file__).parent.parent.parent
load_dotenv(_repo_root / ".env")

os.environ.setdefault("DATA_ENCRYPTION_KEY", "test-data-encryption-key")
os.environ.setdefault("API_KEY", "test-api-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import copy
from typing import Any, Dict, Optional

import pytest
from unittest.mock import AsyncMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.core.database.models import Base
from backend.core.database.repository import SettingsRepository
from backend.core.expansions.dispatcher import InterceptorDispatcher
from backend.core.expansions.registry import ExpansionRegistry
from backend.core.expansions.services import EnvReader, ExpansionServices
from backend.core.security.secure_cache import MemoryStore, SecureCache
from backend.core.security.vault import CredentialVault


class FakeSettingsService:
    """SettingsService over a plain dict, merging top-level keys on update."""

    def __init__(self, settings: Optional[Dict[str, Dict[str, Any]]] = None,
                 emails: Optional[Dict[str, str]] = None):
        self.settings = settings or {}
        self.emails = emails or {}
        self.updates = []

    async def get_id_by_email(self, email: str) -> Optional[str]:
        return self.emails.get(email.lower())

    async def get_settings(self, user_id: str) -> Dict[str, Any]:
        return copy.deepcopy(self.settings.get(user_id, {}))

    async def update_settings(self, user_id: str, settings: Dict[str, Any]) -> None:
        self.updates.append((user_id, copy.deepcopy(settings)))
        self.settings.setdefault(user_id, {}).update(copy.deepcopy(settings))


class FrozenClock:
    """Settable clock returning seconds since the epoch."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def vault():
    return CredentialVault("unit-test-secret")


@pytest.fixture
def session_factory():
    """Session factory over a private in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def db_user(db_session, vault):
    """A persisted user."""
    return SettingsRepository(db_session, vault).get_or_create_user("alice@example.com", name="Alice")


@pytest.fixture
def registry():
    return ExpansionRegistry()


@pytest.fixture
def dispatcher(registry):
    return InterceptorDispatcher(registry)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def secure_cache(clock):
    return SecureCache(MemoryStore(), clock=clock)


@pytest.fixture
def settings_service():
    return FakeSettingsService()


@pytest.fixture
def env():
    """Environment visible to interceptors; tests add EXPANSION_* keys."""
    return {}


@pytest.fixture
def services(settings_service, env, secure_cache):
    """Interceptor services built from fakes."""
    ai = AsyncMock()
    ai.generate = AsyncMock(return_value="generated text")
    http = AsyncMock()
    http.post_json = AsyncMock(return_value=200)
    return ExpansionServices(
        user=settings_service,
        env=EnvReader(env),
        ai=ai,
        http=http,
        secure_cache=secure_cache,
    )
