"""
Interceptor Dispatch Engine

Runs the interceptors registered for a trigger under one of four policies:

BLOCKING_SEQUENTIAL (EMAIL_PRE_SEND)
    Awaited one at a time, priority then registration order. The first
    result with stop=True blocks the operation and later interceptors never
    run. An interceptor that raises (or times out) also blocks: a crashing
    policy check must not let the email through.

FIRE_AND_FORGET (EMAIL_POST_SEND, email_received, ORGANIZATION_CRON)
    Every interceptor is started as an asyncio task and the caller gets
    control back immediately. Failures are logged and never reach the
    caller. Tasks still running when the process exits are lost; there is
    no outbox.

TRANSFORM_CHAIN (ON_RECIPIENTS_CHANGE_HANDLER, ON_BODY_CHANGE_HANDLER,
                 ON_SUBJECT_CHANGE_HANDLER)
    Sequential. Each interceptor receives the fragment produced by the
    previous one and may return a replacement. An interceptor that raises is
    skipped and the chain continues with the fragment it was given. MONITOR
    interceptors run but their output is discarded.

SINGLE_SELECTION (named UI actions)
    Exactly one API-kind interceptor runs: the one whose trigger equals the
    requested action, or the first one when no action is given.

No matching interceptor is never an error: the result outcome is SKIPPED
(or NOT_FOUND for single selection) and the caller decides what it means.
"""
import asyncio
import inspect
import logging
from typing import Any, Dict, List, Optional, Set

from backend.core.expansions.errors import ExpansionNotFound, InterceptorTimeout
from backend.core.expansions.models import (
    EMAIL_POST_SEND,
    EMAIL_PRE_SEND,
    EMAIL_RECEIVED,
    ON_BODY_CHANGE_HANDLER,
    ON_RECIPIENTS_CHANGE_HANDLER,
    ON_SUBJECT_CHANGE_HANDLER,
    ORGANIZATION_CRON,
    DispatchOutcome,
    DispatchPolicy,
    DispatchResult,
    ExpansionContext,
    ExpansionResult,
    InterceptKind,
    Interceptor,
    Priority,
)
from backend.core.expansions.registry import ExpansionRegistry

logger = logging.getLogger(__name__)

DEFAULT_POLICIES: Dict[str, DispatchPolicy] = {
    EMAIL_PRE_SEND: DispatchPolicy.BLOCKING_SEQUENTIAL,
    EMAIL_POST_SEND: DispatchPolicy.FIRE_AND_FORGET,
    EMAIL_RECEIVED: DispatchPolicy.FIRE_AND_FORGET,
    ORGANIZATION_CRON: DispatchPolicy.FIRE_AND_FORGET,
    ON_RECIPIENTS_CHANGE_HANDLER: DispatchPolicy.TRANSFORM_CHAIN,
    ON_BODY_CHANGE_HANDLER: DispatchPolicy.TRANSFORM_CHAIN,
    ON_SUBJECT_CHANGE_HANDLER: DispatchPolicy.TRANSFORM_CHAIN,
}


def policy_for_trigger(trigger: Optional[str]) -> DispatchPolicy:
    """Default policy for a trigger; unknown triggers are UI action names."""
    return DEFAULT_POLICIES.get(trigger, DispatchPolicy.SINGLE_SELECTION)


def _as_result(value: Any) -> ExpansionResult:
    """
    Coerce a blocking or API handler's return value.

    Raises:
        TypeError: If the handler returned something other than an
            ExpansionResult or None
    """
    if value is None:
        return ExpansionResult(success=True)
    if isinstance(value, ExpansionResult):
        return value
    raise TypeError(f"Interceptor returned {type(value).__name__}, expected ExpansionResult")


class InterceptorDispatcher:
    """
    Dispatches lifecycle events to registered interceptors.

    Args:
        registry: Registry to look interceptors up in
        timeout_seconds: Per-interceptor timeout (None or 0 disables)
    """

    def __init__(self, registry: ExpansionRegistry, timeout_seconds: Optional[float] = None):
        self.registry = registry
        self.timeout_seconds = timeout_seconds or None
        self._background: Set[asyncio.Task] = set()

    async def dispatch(
        self,
        trigger: Optional[str],
        context: ExpansionContext,
        services: Any,
        policy: Optional[DispatchPolicy] = None,
        kind: Optional[InterceptKind] = None,
        expansion_id: Optional[str] = None,
        action: Optional[str] = None,
    ) -> DispatchResult:
        """
        Run the interceptors for a trigger.

        Args:
            trigger: Trigger name (for single selection: the action name, may be None)
            context: Per-call context
            services: Capability bag handed to every interceptor
            policy: Execution policy, inferred from the trigger when omitted
            kind: Only run interceptors of this kind
            expansion_id: Restrict single selection to one expansion
            action: Explicit action name for single selection

        Returns:
            DispatchResult whose meaning depends on the policy
        """
        policy = policy or policy_for_trigger(trigger)

        if policy == DispatchPolicy.SINGLE_SELECTION:
            return await self.select_single(
                context, services, action=action or trigger, expansion_id=expansion_id
            )

        matches = self.registry.interceptors_for(trigger, kind=kind, expansion_id=expansion_id)
        if not matches:
            logger.debug(f"No interceptors for {trigger}, skipping")
            return DispatchResult(
                outcome=DispatchOutcome.SKIPPED,
                policy=policy,
                fragment=context.fragment,
            )

        if policy == DispatchPolicy.BLOCKING_SEQUENTIAL:
            return await self._run_blocking(trigger, matches, context, services)
        if policy == DispatchPolicy.FIRE_AND_FORGET:
            return self._run_fire_and_forget(trigger, matches, context, services)
        if policy == DispatchPolicy.TRANSFORM_CHAIN:
            return await self._run_transform_chain(trigger, matches, context, services)

        raise ValueError(f"Unknown dispatch policy: {policy}")

    async def _invoke(
        self,
        expansion_id: str,
        interceptor: Interceptor,
        context: ExpansionContext,
        services: Any,
    ) -> Any:
        """Call one handler, applying the timeout when configured."""
        outcome = interceptor.execute(context, services)
        if not inspect.isawaitable(outcome):
            return outcome

        if self.timeout_seconds is None:
            return await outcome

        try:
            return await asyncio.wait_for(outcome, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise InterceptorTimeout(expansion_id, interceptor.trigger, self.timeout_seconds)

    async def _run_blocking(self, trigger, matches, context, services) -> DispatchResult:
        results: List[ExpansionResult] = []

        for expansion_id, interceptor in matches:
            try:
                result = _as_result(await self._invoke(expansion_id, interceptor, context, services))
            except Exception as e:
                # Fail closed
                logger.error(
                    f"Blocking interceptor {expansion_id} ({trigger}) failed, blocking: {e}",
                    exc_info=True,
                )
                return DispatchResult(
                    outcome=DispatchOutcome.BLOCKED,
                    policy=DispatchPolicy.BLOCKING_SEQUENTIAL,
                    message=f"Blocked: {expansion_id} could not complete its check",
                    results=results,
                    expansion_id=expansion_id,
                )

            results.append(result)

            if result.stop:
                logger.info(f"{trigger} blocked by {expansion_id}: {result.message}")
                return DispatchResult(
                    outcome=DispatchOutcome.BLOCKED,
                    policy=DispatchPolicy.BLOCKING_SEQUENTIAL,
                    message=result.message or f"Blocked by {expansion_id}",
                    result=result,
                    results=results,
                    expansion_id=expansion_id,
                )

        return DispatchResult(
            outcome=DispatchOutcome.ALLOWED,
            policy=DispatchPolicy.BLOCKING_SEQUENTIAL,
            results=results,
        )

    def _run_fire_and_forget(self, trigger, matches, context, services) -> DispatchResult:
        loop = asyncio.get_running_loop()
        tasks = []

        for expansion_id, interceptor in matches:
            task = loop.create_task(
                self._run_background(expansion_id, interceptor, context, services),
                name=f"expansion:{expansion_id}:{trigger}",
            )
            # Keep a reference until done, the loop only holds weak ones
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            tasks.append(task)

        logger.debug(f"Scheduled {len(tasks)} background interceptors for {trigger}")
        return DispatchResult(
            outcome=DispatchOutcome.SCHEDULED,
            policy=DispatchPolicy.FIRE_AND_FORGET,
            tasks=tasks,
        )

    async def _run_background(self, expansion_id, interceptor, context, services) -> Optional[ExpansionResult]:
        try:
            result = await self._invoke(expansion_id, interceptor, context, services)
        except Exception as e:
            logger.error(
                f"Background interceptor {expansion_id} ({interceptor.trigger}) failed: {e}",
                exc_info=True,
            )
            return None

        if isinstance(result, ExpansionResult) and not result.success:
            logger.warning(f"{expansion_id} ({interceptor.trigger}): {result.message}")
        return result

    async def _run_transform_chain(self, trigger, matches, context, services) -> DispatchResult:
        fragment = context.fragment
        results: List[ExpansionResult] = []

        for expansion_id, interceptor in matches:
            step_context = context.with_fragment(fragment)
            try:
                output = await self._invoke(expansion_id, interceptor, step_context, services)
            except Exception as e:
                # Fail open: ignore this transform for this call
                logger.warning(f"Transform {expansion_id} ({trigger}) failed, skipping: {e}")
                continue

            if isinstance(output, ExpansionResult):
                results.append(output)
                output = output.data if output.success else None

            if output is None or interceptor.priority == Priority.MONITOR:
                continue

            if isinstance(fragment, dict) and isinstance(output, dict):
                # Handlers may return only the keys they changed
                fragment = {**fragment, **output}
            else:
                fragment = output

        return DispatchResult(
            outcome=DispatchOutcome.TRANSFORMED,
            policy=DispatchPolicy.TRANSFORM_CHAIN,
            fragment=fragment,
            results=results,
        )

    async def select_single(
        self,
        context: ExpansionContext,
        services: Any,
        action: Optional[str] = None,
        expansion_id: Optional[str] = None,
    ) -> DispatchResult:
        """
        Run exactly one API interceptor.

        Args:
            action: Trigger name to select; first candidate when None
            expansion_id: Restrict candidates to one expansion
        """
        candidates = self.registry.api_interceptors(expansion_id)
        if action:
            candidates = [c for c in candidates if c[1].trigger == action]

        if not candidates:
            not_found = ExpansionNotFound(expansion_id or "*", action)
            logger.info(str(not_found))
            return DispatchResult(
                outcome=DispatchOutcome.NOT_FOUND,
                policy=DispatchPolicy.SINGLE_SELECTION,
                message="No matching API action found",
                expansion_id=expansion_id,
            )

        selected_id, interceptor = candidates[0]
        try:
            result = _as_result(await self._invoke(selected_id, interceptor, context, services))
        except Exception as e:
            logger.error(f"API action {selected_id}.{interceptor.trigger} failed: {e}", exc_info=True)
            result = ExpansionResult(success=False, message=str(e) or "Expansion execution failed")

        return DispatchResult(
            outcome=DispatchOutcome.EXECUTED,
            policy=DispatchPolicy.SINGLE_SELECTION,
            message=result.message,
            result=result,
            results=[result],
            expansion_id=selected_id,
        )

    @property
    def pending_count(self) -> int:
        return len(self._background)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """
        Wait for outstanding background interceptors.

        Used on shutdown and in tests; request handlers never call it.
        """
        pending = list(self._background)
        if not pending:
            return
        logger.info(f"Waiting for {len(pending)} background interceptors")
        done, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            logger.warning(f"{len(not_done)} background interceptors still running after drain timeout")


# Global dispatcher instance
_dispatcher: Optional[InterceptorDispatcher] = None


def get_dispatcher() -> InterceptorDispatcher:
    """FastAPI dependency returning the dispatcher bound to the global registry."""
    global _dispatcher
    if _dispatcher is None:
        from backend.core.config import get_settings
        from backend.core.expansions.registry import expansion_registry
        _dispatcher = InterceptorDispatcher(
            expansion_registry,
            timeout_seconds=get_settings().dispatch_timeout_seconds,
        )
    return _dispatcher
