"""
Expansion engine: pluggable interceptors bound to mail lifecycle triggers.

See dispatcher.py for the execution policies.
"""

from backend.core.expansions.models import (
    EMAIL_PRE_SEND,
    EMAIL_POST_SEND,
    EMAIL_RECEIVED,
    ORGANIZATION_CRON,
    ON_RECIPIENTS_CHANGE_HANDLER,
    InterceptKind,
    Priority,
    DispatchPolicy,
    DispatchOutcome,
    Interceptor,
    Expansion,
    ExpansionContext,
    ExpansionResult,
    DispatchResult,
)
from backend.core.expansions.errors import (
    ExpansionError,
    ExpansionNotFound,
    InterceptorTimeout,
    ConfigurationError,
)
from backend.core.expansions.registry import (
    ExpansionRegistry,
    expansion_registry,
    init_registry,
    get_registry,
)
from backend.core.expansions.dispatcher import (
    InterceptorDispatcher,
    get_dispatcher,
    policy_for_trigger,
)

__all__ = [
    # Triggers
    "EMAIL_PRE_SEND",
    "EMAIL_POST_SEND",
    "EMAIL_RECEIVED",
    "ORGANIZATION_CRON",
    "ON_RECIPIENTS_CHANGE_HANDLER",
    # Model
    "InterceptKind",
    "Priority",
    "DispatchPolicy",
    "DispatchOutcome",
    "Interceptor",
    "Expansion",
    "ExpansionContext",
    "ExpansionResult",
    "DispatchResult",
    # Errors
    "ExpansionError",
    "ExpansionNotFound",
    "InterceptorTimeout",
    "ConfigurationError",
    # Registry / dispatch
    "ExpansionRegistry",
    "expansion_registry",
    "init_registry",
    "get_registry",
    "InterceptorDispatcher",
    "get_dispatcher",
    "policy_for_trigger",
]
