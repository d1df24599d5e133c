"""
Shared FastAPI dependencies for the expansion engine.

Services and the lifecycle are built once per process; tests swap them via
app.dependency_overrides.
"""
from typing import Optional

from backend.core.email.lifecycle import MailLifecycle, build_lifecycle
from backend.core.expansions.dispatcher import get_dispatcher
from backend.core.expansions.services import ExpansionServices, build_default_services

_services: Optional[ExpansionServices] = None
_lifecycle: Optional[MailLifecycle] = None


def get_services() -> ExpansionServices:
    global _services
    if _services is None:
        _services = build_default_services()
    return _services


def get_lifecycle() -> MailLifecycle:
    global _lifecycle
    if _lifecycle is None:
        _lifecycle = build_lifecycle(dispatcher=get_dispatcher(), services=get_services())
    return _lifecycle


def reset_dependencies() -> None:
    """Forget the cached services (for tests)."""
    global _services, _lifecycle
    _services = None
    _lifecycle = None
