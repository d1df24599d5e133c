"""
Test fixtures for the expansion API endpoints.

The app runs against the in-memory database and a private registry,
dispatcher and services from the parent conftest.
"""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from backend.api.dependencies import get_lifecycle, get_services
from backend.api.main import app
from backend.core.config import get_settings
from backend.core.database import get_db
from backend.core.email.lifecycle import MailLifecycle
from backend.core.email.smtp_sender import SMTPSender
from backend.core.expansions.dispatcher import get_dispatcher
from backend.core.expansions.registry import get_registry
from backend.core.expansions.services import RepositorySettingsService


@pytest.fixture
def sender():
    sender = MagicMock(spec=SMTPSender)
    sender.send_email.return_value = "<api-1@example.com>"
    return sender


@pytest.fixture
def api_services(services, session_factory):
    """Fake AI/HTTP, real settings storage so routes and interceptors agree."""
    services.user = RepositorySettingsService(session_factory)
    return services


@pytest.fixture
def lifecycle(dispatcher, api_services, sender, session_factory):
    return MailLifecycle(
        dispatcher=dispatcher,
        services=api_services,
        sender=sender,
        session_factory=session_factory,
    )


@pytest.fixture
def client(session_factory, registry, dispatcher, api_services, lifecycle):
    """Test client with database, registry and services overridden."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_services] = lambda: api_services
    app.dependency_overrides[get_lifecycle] = lambda: lifecycle

    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def headers():
    """Headers the web app sends for alice."""
    return {
        "X-API-Key": get_settings().api_key,
        "X-User-Email": "alice@example.com",
        "X-User-ID": "user-alice",
    }
