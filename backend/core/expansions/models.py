"""
Expansion data model.

An Expansion bundles one or more Interceptors under a shared id. Each
Interceptor subscribes to exactly one trigger and declares how it runs
(InterceptKind). The trigger names below are the contract between the mail
lifecycle and the dispatcher and must not change.
"""
import copy
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

# Lifecycle triggers
EMAIL_PRE_SEND = "EMAIL_PRE_SEND"
EMAIL_POST_SEND = "EMAIL_POST_SEND"
EMAIL_RECEIVED = "email_received"
ORGANIZATION_CRON = "ORGANIZATION_CRON"
ON_RECIPIENTS_CHANGE_HANDLER = "ON_RECIPIENTS_CHANGE_HANDLER"
ON_BODY_CHANGE_HANDLER = "ON_BODY_CHANGE_HANDLER"
ON_SUBJECT_CHANGE_HANDLER = "ON_SUBJECT_CHANGE_HANDLER"

LIFECYCLE_TRIGGERS = (
    EMAIL_PRE_SEND,
    EMAIL_POST_SEND,
    EMAIL_RECEIVED,
    ORGANIZATION_CRON,
    ON_RECIPIENTS_CHANGE_HANDLER,
    ON_BODY_CHANGE_HANDLER,
    ON_SUBJECT_CHANGE_HANDLER,
)


class InterceptKind(str, Enum):
    """How an interceptor is invoked."""
    BLOCKING = "BLOCKING"      # awaited, may veto the parent operation
    BACKGROUND = "BACKGROUND"  # fire-and-forget side effect
    CRON = "CRON"              # scheduled, fire-and-forget
    API = "API"                # named action invoked from the UI
    TRANSFORM = "TRANSFORM"    # returns a rewritten context fragment


class Priority(str, Enum):
    HIGH = "HIGH"
    NORMAL = "NORMAL"
    LOW = "LOW"
    MONITOR = "MONITOR"  # runs last, observes what the others did

    @property
    def rank(self) -> int:
        """Higher rank runs first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.HIGH: 3,
    Priority.NORMAL: 2,
    Priority.LOW: 1,
    Priority.MONITOR: 0,
}


class DispatchPolicy(str, Enum):
    BLOCKING_SEQUENTIAL = "BLOCKING_SEQUENTIAL"
    FIRE_AND_FORGET = "FIRE_AND_FORGET"
    TRANSFORM_CHAIN = "TRANSFORM_CHAIN"
    SINGLE_SELECTION = "SINGLE_SELECTION"


class DispatchOutcome(str, Enum):
    ALLOWED = "ALLOWED"          # blocking: every interceptor let it through
    BLOCKED = "BLOCKED"          # blocking: vetoed (or an interceptor crashed)
    SCHEDULED = "SCHEDULED"      # fire-and-forget: tasks started
    TRANSFORMED = "TRANSFORMED"  # transform chain ran
    EXECUTED = "EXECUTED"        # single selection ran one interceptor
    SKIPPED = "SKIPPED"          # no interceptor registered for the trigger
    NOT_FOUND = "NOT_FOUND"      # single selection found no matching handler


@dataclass
class ExpansionResult:
    """Outcome of one interceptor invocation."""
    success: bool
    stop: bool = False  # Only meaningful for blocking triggers
    message: Optional[str] = None
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "stop": self.stop,
            "message": self.message,
            "data": self.data,
        }


@dataclass
class ExpansionContext:
    """
    Per-invocation data assembled by the caller.

    Shape depends on the trigger: pre-send carries the draft, cron carries a
    user id, recipient transforms carry `fragment` ({"to": [...], ...}).
    """
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    email_id: Optional[str] = None
    subject: Optional[str] = None
    email_content: Optional[str] = None
    to: List[str] = field(default_factory=list)
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    sent_email: Optional[Dict[str, Any]] = None
    data: Dict[str, Any] = field(default_factory=dict)
    fragment: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)

    # camelCase keys sent by the web client
    _PAYLOAD_KEYS = {
        "userId": "user_id",
        "userEmail": "user_email",
        "emailId": "email_id",
        "emailContent": "email_content",
        "sentEmail": "sent_email",
    }

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]], **overrides) -> "ExpansionContext":
        """
        Build a context from a JSON request body.

        Unknown keys are kept in `extra`. Keyword overrides (e.g. the
        authenticated user) win over the payload.
        """
        known = {}
        extra = {}
        for key, value in (payload or {}).items():
            name = cls._PAYLOAD_KEYS.get(key, key)
            if name == "extra" and not isinstance(value, dict):
                extra[key] = value
            elif name in _CONTEXT_FIELDS:
                known[name] = value
            else:
                extra[key] = value
        known.update({k: v for k, v in overrides.items() if v is not None})
        known["extra"] = {**known.get("extra", {}), **extra}
        return cls(**known)

    def with_fragment(self, fragment: Any) -> "ExpansionContext":
        """Copy of this context carrying a private copy of `fragment`."""
        return replace(self, fragment=copy.deepcopy(fragment))


_CONTEXT_FIELDS = {
    "user_id", "user_email", "email_id", "subject", "email_content",
    "to", "cc", "bcc", "sent_email", "data", "fragment", "extra",
}

InterceptorHandler = Callable[[ExpansionContext, Any], Awaitable[Any]]


@dataclass(frozen=True)
class Interceptor:
    """A single handler bound to one trigger."""
    trigger: str
    kind: InterceptKind
    execute: InterceptorHandler
    priority: Priority = Priority.NORMAL


@dataclass(frozen=True)
class Expansion:
    """A pluggable unit bundling interceptors under one id."""
    id: str
    name: str
    description: str = ""
    icon: Optional[str] = None
    interceptors: Tuple[Interceptor, ...] = ()

    def with_priority(self, priority: Priority) -> "Expansion":
        """Copy with every interceptor moved to `priority`."""
        return replace(
            self,
            interceptors=tuple(replace(i, priority=priority) for i in self.interceptors),
        )

    def summary(self) -> Dict[str, Any]:
        """Presentation metadata for the list endpoint."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "intercepts": [
                {"trigger": i.trigger, "type": i.kind.value, "priority": i.priority.value}
                for i in self.interceptors
            ],
        }


@dataclass
class DispatchResult:
    """
    Policy-dependent result of a dispatch.

    - blocking: outcome ALLOWED/BLOCKED, message of the vetoing interceptor
    - fire-and-forget: outcome SCHEDULED, tasks holds the started tasks
    - transform chain: outcome TRANSFORMED, fragment holds the final value
    - single selection: outcome EXECUTED/NOT_FOUND, result holds the Result
    """
    outcome: DispatchOutcome
    policy: DispatchPolicy
    message: Optional[str] = None
    result: Optional[ExpansionResult] = None
    fragment: Any = None
    results: List[ExpansionResult] = field(default_factory=list)
    tasks: List[Any] = field(default_factory=list)
    expansion_id: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return self.outcome == DispatchOutcome.BLOCKED

    @property
    def skipped(self) -> bool:
        return self.outcome == DispatchOutcome.SKIPPED
