"""
Expansion error types.

The dispatcher never lets these escape to callers; they are raised inside
interceptors and service clients and converted into dispatch outcomes.
"""


class ExpansionError(Exception):
    """Base class for expansion failures."""


class ExpansionNotFound(ExpansionError):
    """No expansion or handler matches the request."""

    def __init__(self, expansion_id: str, action: str = None):
        self.expansion_id = expansion_id
        self.action = action
        detail = f"Expansion '{expansion_id}'"
        if action:
            detail += f" has no API action '{action}'"
        else:
            detail += " not found"
        super().__init__(detail)


class InterceptorTimeout(ExpansionError):
    """An interceptor exceeded the per-interceptor timeout."""

    def __init__(self, expansion_id: str, trigger: str, timeout: float):
        self.expansion_id = expansion_id
        self.trigger = trigger
        self.timeout = timeout
        super().__init__(f"{expansion_id} ({trigger}) timed out after {timeout}s")


class ConfigurationError(ExpansionError):
    """A required secret, token or endpoint is missing."""
