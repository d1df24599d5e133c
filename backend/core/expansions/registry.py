"""
Expansion Registry

Process-wide table of expansion id -> Expansion.

Registration is idempotent: init code may run from several cold-start paths,
and registering the same id again replaces the entry in place instead of
adding a second copy of its interceptors.

Lifecycle:
- init_registry() populates the global instance with the core expansions
- reset() empties it (tests)
- Request handlers receive the instance through get_registry()
"""

import logging
import threading
from typing import Dict, List, Optional, Tuple

from backend.core.expansions.models import Expansion, Interceptor, InterceptKind

logger = logging.getLogger(__name__)


class ExpansionRegistry:
    """
    Registry of expansions keyed by id.

    Iteration order is registration order. Re-registering an id keeps its
    original position.
    """

    def __init__(self):
        self._expansions: Dict[str, Expansion] = {}
        self._lock = threading.Lock()

    def register(self, expansion: Expansion) -> None:
        """
        Insert or replace an expansion.

        Args:
            expansion: Expansion to register
        """
        with self._lock:
            replaced = expansion.id in self._expansions
            self._expansions[expansion.id] = expansion

        if replaced:
            logger.debug(f"Re-registered expansion '{expansion.id}'")
        else:
            logger.debug(
                f"Registered expansion '{expansion.id}' "
                f"({len(expansion.interceptors)} interceptors)"
            )

    def unregister(self, expansion_id: str) -> bool:
        with self._lock:
            return self._expansions.pop(expansion_id, None) is not None

    def get(self, expansion_id: str) -> Optional[Expansion]:
        """
        Get an expansion by id.

        Returns:
            Expansion if registered, None otherwise
        """
        return self._expansions.get(expansion_id)

    def get_all(self) -> List[Expansion]:
        """All expansions in registration order."""
        return list(self._expansions.values())

    def interceptors_for(
        self,
        trigger: str,
        kind: Optional[InterceptKind] = None,
        expansion_id: Optional[str] = None,
    ) -> List[Tuple[str, Interceptor]]:
        """
        Find interceptors subscribed to a trigger.

        Args:
            trigger: Trigger name to match exactly
            kind: Only return interceptors of this kind
            expansion_id: Only search this expansion

        Returns:
            (expansion_id, interceptor) pairs, higher priority first, then
            registration order
        """
        matches = []
        position = 0
        for expansion in self.get_all():
            if expansion_id is not None and expansion.id != expansion_id:
                continue
            for interceptor in expansion.interceptors:
                position += 1
                if interceptor.trigger != trigger:
                    continue
                if kind is not None and interceptor.kind != kind:
                    continue
                matches.append((position, expansion.id, interceptor))

        # Stable: equal priorities keep registration order
        matches.sort(key=lambda m: (-m[2].priority.rank, m[0]))
        return [(exp_id, interceptor) for _, exp_id, interceptor in matches]

    def api_interceptors(self, expansion_id: Optional[str] = None) -> List[Tuple[str, Interceptor]]:
        """API-kind interceptors in registration order (not priority sorted)."""
        matches = []
        for expansion in self.get_all():
            if expansion_id is not None and expansion.id != expansion_id:
                continue
            for interceptor in expansion.interceptors:
                if interceptor.kind == InterceptKind.API:
                    matches.append((expansion.id, interceptor))
        return matches

    def expansions_for_trigger(self, trigger: Optional[str] = None) -> List[Expansion]:
        """Expansions with at least one interceptor on `trigger` (all if None)."""
        if trigger is None:
            return self.get_all()
        return [
            expansion for expansion in self.get_all()
            if any(i.trigger == trigger for i in expansion.interceptors)
        ]

    def reset(self) -> None:
        """Remove every expansion."""
        with self._lock:
            self._expansions.clear()

    def list_ids(self) -> List[str]:
        return list(self._expansions.keys())

    def __len__(self) -> int:
        return len(self._expansions)

    def __contains__(self, expansion_id: str) -> bool:
        return expansion_id in self._expansions


# Global registry instance
expansion_registry = ExpansionRegistry()


def init_registry() -> ExpansionRegistry:
    """
    Populate the global registry with the core expansions.

    Safe to call more than once.

    Returns:
        The global registry
    """
    from backend.core.expansions.core import ensure_core_expansions

    ensure_core_expansions(expansion_registry)
    logger.info(f"Expansion registry ready: {len(expansion_registry)} expansions")
    return expansion_registry


def get_registry() -> ExpansionRegistry:
    """FastAPI dependency returning the global registry."""
    return expansion_registry
