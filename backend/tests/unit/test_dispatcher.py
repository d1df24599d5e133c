"""
Unit tests for the interceptor dispatch engine.
"""
import asyncio
import logging

import pytest

from backend.core.expansions.dispatcher import InterceptorDispatcher, policy_for_trigger
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
    Expansion,
    ExpansionContext,
    ExpansionResult,
    Interceptor,
    InterceptKind,
    Priority,
)


def register(registry, expansion_id, trigger, kind, execute, priority=Priority.NORMAL):
    registry.register(Expansion(
        id=expansion_id,
        name=expansion_id,
        interceptors=(Interceptor(trigger=trigger, kind=kind, execute=execute, priority=priority),),
    ))


class Recorder:
    """Handler factory that records which handlers ran."""

    def __init__(self):
        self.calls = []

    def result(self, name, **kwargs):
        async def handler(context, services):
            self.calls.append(name)
            return ExpansionResult(**{"success": True, **kwargs})
        return handler

    def raises(self, name, exc=RuntimeError("boom")):
        async def handler(context, services):
            self.calls.append(name)
            raise exc
        return handler


class TestPolicyInference:
    @pytest.mark.parametrize("trigger,policy", [
        (EMAIL_PRE_SEND, DispatchPolicy.BLOCKING_SEQUENTIAL),
        (EMAIL_POST_SEND, DispatchPolicy.FIRE_AND_FORGET),
        (EMAIL_RECEIVED, DispatchPolicy.FIRE_AND_FORGET),
        (ORGANIZATION_CRON, DispatchPolicy.FIRE_AND_FORGET),
        (ON_RECIPIENTS_CHANGE_HANDLER, DispatchPolicy.TRANSFORM_CHAIN),
        (ON_BODY_CHANGE_HANDLER, DispatchPolicy.TRANSFORM_CHAIN),
        (ON_SUBJECT_CHANGE_HANDLER, DispatchPolicy.TRANSFORM_CHAIN),
        ("save_to_notion", DispatchPolicy.SINGLE_SELECTION),
    ])
    def test_default_policy(self, trigger, policy):
        assert policy_for_trigger(trigger) == policy


class TestBlockingSequential:
    @pytest.mark.asyncio
    async def test_veto_short_circuits(self, registry, dispatcher):
        calls = Recorder()
        register(registry, "dlp", EMAIL_PRE_SEND, InterceptKind.BLOCKING,
                 calls.result("dlp", success=False, stop=True, message="DLP"), Priority.HIGH)
        register(registry, "audit", EMAIL_PRE_SEND, InterceptKind.BLOCKING,
                 calls.result("audit"), Priority.LOW)

        result = await dispatcher.dispatch(EMAIL_PRE_SEND, ExpansionContext(), None)

        assert result.outcome == DispatchOutcome.BLOCKED
        assert result.blocked
        assert result.message == "DLP"
        assert result.expansion_id == "dlp"
        assert calls.calls == ["dlp"]

    @pytest.mark.asyncio
    async def test_all_pass_is_allowed(self, registry, dispatcher):
        calls = Recorder()
        register(registry, "a", EMAIL_PRE_SEND, InterceptKind.BLOCKING, calls.result("a"))
        register(registry, "b", EMAIL_PRE_SEND, InterceptKind.BLOCKING, calls.result("b"), Priority.HIGH)

        result = await dispatcher.dispatch(EMAIL_PRE_SEND, ExpansionContext(), None)

        assert result.outcome == DispatchOutcome.ALLOWED
        assert calls.calls == ["b", "a"]
        assert len(result.results) == 2

    @pytest.mark.asyncio
    async def test_failure_blocks(self, registry, dispatcher, caplog):
        calls = Recorder()
        register(registry, "crashy", EMAIL_PRE_SEND, InterceptKind.BLOCKING, calls.raises("crashy"))
        register(registry, "after", EMAIL_PRE_SEND, InterceptKind.BLOCKING, calls.result("after"))

        with caplog.at_level(logging.ERROR):
            result = await dispatcher.dispatch(EMAIL_PRE_SEND, ExpansionContext(), None)

        assert result.outcome == DispatchOutcome.BLOCKED
        assert "crashy" in result.message
        assert calls.calls == ["crashy"]
        assert any("crashy" in r.message for r in caplog.records)

    @pytest.mark.asyncio
    async def test_timeout_blocks(self, registry):
        async def slow(context, services):
            await asyncio.sleep(5)

        register(registry, "slow", EMAIL_PRE_SEND, InterceptKind.BLOCKING, slow)
        dispatcher = InterceptorDispatcher(registry, timeout_seconds=0.01)

        result = await dispatcher.dispatch(EMAIL_PRE_SEND, ExpansionContext(), None)

        assert result.outcome == DispatchOutcome.BLOCKED

    @pytest.mark.asyncio
    async def test_sync_handler_and_none_result(self, registry, dispatcher):
        register(registry, "sync", EMAIL_PRE_SEND, InterceptKind.BLOCKING, lambda c, s: None)

        result = await dispatcher.dispatch(EMAIL_PRE_SEND, ExpansionContext(), None)

        assert result.outcome == DispatchOutcome.ALLOWED

    @pytest.mark.asyncio
    async def test_non_result_return_blocks(self, registry, dispatcher):
        calls = Recorder()

        async def returns_dict(context, services):
            return {"stop": False, "message": "looks fine"}

        register(registry, "sloppy", EMAIL_PRE_SEND, InterceptKind.BLOCKING, returns_dict, Priority.HIGH)
        register(registry, "after", EMAIL_PRE_SEND, InterceptKind.BLOCKING, calls.result("after"))

        result = await dispatcher.dispatch(EMAIL_PRE_SEND, ExpansionContext(), None)

        assert result.outcome == DispatchOutcome.BLOCKED
        assert result.message == "Blocked: sloppy could not complete its check"
        assert calls.calls == []


class TestFireAndForget:
    @pytest.mark.asyncio
    async def test_returns_before_handlers_finish(self, registry, dispatcher):
        release = asyncio.Event()
        finished = []

        async def waits(context, services):
            await release.wait()
            finished.append(context.email_id)
            return ExpansionResult(success=True)

        register(registry, "slow", EMAIL_POST_SEND, InterceptKind.BACKGROUND, waits)

        result = await dispatcher.dispatch(EMAIL_POST_SEND, ExpansionContext(email_id="e1"), None)

        assert result.outcome == DispatchOutcome.SCHEDULED
        assert len(result.tasks) == 1
        assert finished == []
        assert dispatcher.pending_count == 1

        release.set()
        await dispatcher.drain()

        assert finished == ["e1"]
        assert dispatcher.pending_count == 0

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, registry, dispatcher, caplog):
        calls = Recorder()
        register(registry, "bad", EMAIL_POST_SEND, InterceptKind.BACKGROUND, calls.raises("bad"))
        register(registry, "good", EMAIL_POST_SEND, InterceptKind.BACKGROUND, calls.result("good"))

        with caplog.at_level(logging.ERROR):
            result = await dispatcher.dispatch(EMAIL_POST_SEND, ExpansionContext(), None)
            await dispatcher.drain()

        assert result.outcome == DispatchOutcome.SCHEDULED
        assert sorted(calls.calls) == ["bad", "good"]
        assert any("bad" in r.message for r in caplog.records)

    @pytest.mark.asyncio
    async def test_cron_kind(self, registry, dispatcher):
        calls = Recorder()
        register(registry, "cron", ORGANIZATION_CRON, InterceptKind.CRON, calls.result("cron"))

        await dispatcher.dispatch(ORGANIZATION_CRON, ExpansionContext(user_id="u1"), None)
        await dispatcher.drain()

        assert calls.calls == ["cron"]


class TestTransformChain:
    @pytest.mark.asyncio
    async def test_each_step_sees_previous_output(self, registry, dispatcher):
        async def add_team(context, services):
            return {"to": context.fragment["to"] + ["team@x.com"]}

        async def upper(context, services):
            return {"to": [a.upper() for a in context.fragment["to"]]}

        register(registry, "first", ON_RECIPIENTS_CHANGE_HANDLER, InterceptKind.TRANSFORM, add_team, Priority.HIGH)
        register(registry, "second", ON_RECIPIENTS_CHANGE_HANDLER, InterceptKind.TRANSFORM, upper)

        result = await dispatcher.dispatch(
            ON_RECIPIENTS_CHANGE_HANDLER,
            ExpansionContext(fragment={"to": ["a@x.com"], "cc": ["c@x.com"]}),
            None,
        )

        assert result.outcome == DispatchOutcome.TRANSFORMED
        assert result.fragment == {"to": ["A@X.COM", "TEAM@X.COM"], "cc": ["c@x.com"]}

    @pytest.mark.asyncio
    async def test_failing_step_is_skipped(self, registry, dispatcher):
        async def mutate_then_fail(context, services):
            context.fragment["to"].append("half-done@x.com")
            raise ValueError("typo in plugin")

        async def add(context, services):
            return {"to": context.fragment["to"] + ["b@x.com"]}

        register(registry, "broken", ON_RECIPIENTS_CHANGE_HANDLER, InterceptKind.TRANSFORM,
                 mutate_then_fail, Priority.HIGH)
        register(registry, "works", ON_RECIPIENTS_CHANGE_HANDLER, InterceptKind.TRANSFORM, add)

        original = {"to": ["a@x.com"]}
        result = await dispatcher.dispatch(
            ON_RECIPIENTS_CHANGE_HANDLER, ExpansionContext(fragment=original), None
        )

        assert result.fragment == {"to": ["a@x.com", "b@x.com"]}
        assert original == {"to": ["a@x.com"]}

    @pytest.mark.asyncio
    async def test_result_wrapped_fragment(self, registry, dispatcher):
        async def wrapped(context, services):
            return ExpansionResult(success=True, data={"to": ["x@x.com"]})

        register(registry, "wrapped", ON_RECIPIENTS_CHANGE_HANDLER, InterceptKind.TRANSFORM, wrapped)

        result = await dispatcher.dispatch(
            ON_RECIPIENTS_CHANGE_HANDLER, ExpansionContext(fragment={"to": ["@team"]}), None
        )

        assert result.fragment == {"to": ["x@x.com"]}

    @pytest.mark.asyncio
    async def test_monitor_output_is_discarded(self, registry, dispatcher):
        seen = []

        async def monitor(context, services):
            seen.append(context.fragment)
            return {"to": ["hijacked@x.com"]}

        async def add(context, services):
            return {"to": context.fragment["to"] + ["b@x.com"]}

        register(registry, "audit", ON_RECIPIENTS_CHANGE_HANDLER, InterceptKind.TRANSFORM, monitor, Priority.MONITOR)
        register(registry, "works", ON_RECIPIENTS_CHANGE_HANDLER, InterceptKind.TRANSFORM, add)

        result = await dispatcher.dispatch(
            ON_RECIPIENTS_CHANGE_HANDLER, ExpansionContext(fragment={"to": ["a@x.com"]}), None
        )

        assert result.fragment == {"to": ["a@x.com", "b@x.com"]}
        assert seen == [{"to": ["a@x.com", "b@x.com"]}]

    @pytest.mark.asyncio
    async def test_body_and_subject_chains_replace_strings(self, registry, dispatcher):
        async def sign(context, services):
            return context.fragment + "\n-- A"

        async def tag(context, services):
            return f"[ext] {context.fragment}"

        register(registry, "signature", ON_BODY_CHANGE_HANDLER, InterceptKind.TRANSFORM, sign)
        register(registry, "tagger", ON_SUBJECT_CHANGE_HANDLER, InterceptKind.TRANSFORM, tag)

        body = await dispatcher.dispatch(ON_BODY_CHANGE_HANDLER, ExpansionContext(fragment="Hi"), None)
        subject = await dispatcher.dispatch(ON_SUBJECT_CHANGE_HANDLER, ExpansionContext(fragment="Plans"), None)

        assert body.outcome == DispatchOutcome.TRANSFORMED
        assert body.fragment == "Hi\n-- A"
        assert subject.fragment == "[ext] Plans"


class TestSingleSelection:
    @pytest.fixture
    def calls(self, registry):
        calls = Recorder()
        registry.register(Expansion(
            id="notion",
            name="Notion",
            interceptors=(Interceptor(trigger="save_to_notion", kind=InterceptKind.API,
                                      execute=calls.result("save_to_notion", data="notion")),),
        ))
        registry.register(Expansion(
            id="slack",
            name="Slack",
            interceptors=(Interceptor(trigger="share_to_slack", kind=InterceptKind.API,
                                      execute=calls.result("share_to_slack", data="slack")),),
        ))
        return calls

    @pytest.mark.asyncio
    async def test_explicit_trigger_selects_only_that_one(self, dispatcher, calls):
        result = await dispatcher.dispatch("share_to_slack", ExpansionContext(), None)

        assert result.outcome == DispatchOutcome.EXECUTED
        assert result.result.data == "slack"
        assert result.expansion_id == "slack"
        assert calls.calls == ["share_to_slack"]

    @pytest.mark.asyncio
    async def test_first_match_without_action(self, dispatcher, calls):
        result = await dispatcher.select_single(ExpansionContext(), None, expansion_id="notion")

        assert result.result.data == "notion"
        assert calls.calls == ["save_to_notion"]

    @pytest.mark.asyncio
    async def test_action_scoped_to_expansion(self, dispatcher, calls):
        result = await dispatcher.select_single(
            ExpansionContext(), None, action="share_to_slack", expansion_id="notion"
        )

        assert result.outcome == DispatchOutcome.NOT_FOUND
        assert result.message == "No matching API action found"
        assert calls.calls == []

    @pytest.mark.asyncio
    async def test_only_api_kind_is_selected(self, registry, dispatcher):
        calls = Recorder()
        register(registry, "bg", "share_to_slack", InterceptKind.BACKGROUND, calls.result("bg"))

        result = await dispatcher.dispatch("share_to_slack", ExpansionContext(), None)

        assert result.outcome == DispatchOutcome.NOT_FOUND
        assert calls.calls == []

    @pytest.mark.asyncio
    async def test_exception_becomes_failed_result(self, registry, dispatcher):
        calls = Recorder()
        register(registry, "x", "explode", InterceptKind.API, calls.raises("x", RuntimeError("Slack down")))

        result = await dispatcher.dispatch("explode", ExpansionContext(), None)

        assert result.outcome == DispatchOutcome.EXECUTED
        assert result.result.success is False
        assert result.result.message == "Slack down"

    @pytest.mark.asyncio
    async def test_non_result_return_becomes_failed_result(self, registry, dispatcher):
        async def returns_list(context, services):
            return [{"id": "C1"}]

        register(registry, "x", "get_channels", InterceptKind.API, returns_list)

        result = await dispatcher.dispatch("get_channels", ExpansionContext(), None)

        assert result.outcome == DispatchOutcome.EXECUTED
        assert result.result.success is False
        assert result.result.message == "Interceptor returned list, expected ExpansionResult"


class TestNoHandlers:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("trigger,policy", [
        (EMAIL_PRE_SEND, DispatchPolicy.BLOCKING_SEQUENTIAL),
        (EMAIL_POST_SEND, DispatchPolicy.FIRE_AND_FORGET),
        (ON_RECIPIENTS_CHANGE_HANDLER, DispatchPolicy.TRANSFORM_CHAIN),
    ])
    async def test_skipped_not_error(self, dispatcher, trigger, policy):
        result = await dispatcher.dispatch(trigger, ExpansionContext(fragment={"to": ["a@x.com"]}), None)

        assert result.outcome == DispatchOutcome.SKIPPED
        assert result.policy == policy
        assert not result.blocked
        assert result.fragment == {"to": ["a@x.com"]}

    @pytest.mark.asyncio
    async def test_single_selection_not_found(self, dispatcher):
        result = await dispatcher.dispatch("summarize", ExpansionContext(), None)

        assert result.outcome == DispatchOutcome.NOT_FOUND
        assert result.result is None
