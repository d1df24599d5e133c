"""
Unit tests for the expansion registry and core expansion registration.
"""
import pytest

from backend.core.expansions.core import (
    CORE_EXPANSIONS,
    ensure_core_expansions,
    env_key,
    is_enabled,
)
from backend.core.expansions.errors import ConfigurationError
from backend.core.expansions.models import (
    EMAIL_POST_SEND,
    EMAIL_PRE_SEND,
    Expansion,
    ExpansionResult,
    Interceptor,
    InterceptKind,
    Priority,
)


async def _noop(context, services):
    return ExpansionResult(success=True)


def make_expansion(expansion_id, *interceptors, name=None):
    return Expansion(id=expansion_id, name=name or expansion_id, interceptors=tuple(interceptors))


def blocking(priority=Priority.NORMAL, trigger=EMAIL_PRE_SEND):
    return Interceptor(trigger=trigger, kind=InterceptKind.BLOCKING, execute=_noop, priority=priority)


class TestRegistration:
    def test_get_unknown_returns_none(self, registry):
        assert registry.get("missing") is None

    def test_register_and_get(self, registry):
        expansion = make_expansion("a", blocking())
        registry.register(expansion)

        assert registry.get("a") is expansion
        assert "a" in registry
        assert len(registry) == 1

    def test_get_all_in_registration_order(self, registry):
        for expansion_id in ("c", "a", "b"):
            registry.register(make_expansion(expansion_id))

        assert [e.id for e in registry.get_all()] == ["c", "a", "b"]

    def test_register_is_idempotent(self, registry):
        registry.register(make_expansion("a", name="first"))
        registry.register(make_expansion("b"))
        registry.register(make_expansion("a", name="second"))

        assert len(registry) == 2
        assert registry.get("a").name == "second"
        # Replacement keeps the original slot
        assert registry.list_ids() == ["a", "b"]

    def test_unregister_and_reset(self, registry):
        registry.register(make_expansion("a"))
        registry.register(make_expansion("b"))

        assert registry.unregister("a") is True
        assert registry.unregister("a") is False
        registry.reset()
        assert len(registry) == 0


class TestInterceptorLookup:
    def test_priority_then_registration_order(self, registry):
        registry.register(make_expansion("normal-1", blocking()))
        registry.register(make_expansion("monitor", blocking(Priority.MONITOR)))
        registry.register(make_expansion("high", blocking(Priority.HIGH)))
        registry.register(make_expansion("normal-2", blocking()))
        registry.register(make_expansion("low", blocking(Priority.LOW)))

        ids = [expansion_id for expansion_id, _ in registry.interceptors_for(EMAIL_PRE_SEND)]

        assert ids == ["high", "normal-1", "normal-2", "low", "monitor"]

    def test_filters_by_trigger_and_kind(self, registry):
        background = Interceptor(trigger=EMAIL_POST_SEND, kind=InterceptKind.BACKGROUND, execute=_noop)
        registry.register(make_expansion("a", blocking(), background))

        assert [i.kind for _, i in registry.interceptors_for(EMAIL_POST_SEND)] == [InterceptKind.BACKGROUND]
        assert registry.interceptors_for(EMAIL_POST_SEND, kind=InterceptKind.BLOCKING) == []
        assert registry.interceptors_for("unknown") == []

    def test_api_interceptors_scoped_to_expansion(self, registry):
        notion = Interceptor(trigger="save_to_notion", kind=InterceptKind.API, execute=_noop)
        slack = Interceptor(trigger="share_to_slack", kind=InterceptKind.API, execute=_noop)
        registry.register(make_expansion("notion", notion))
        registry.register(make_expansion("slack", slack, blocking()))

        assert [i.trigger for _, i in registry.api_interceptors()] == ["save_to_notion", "share_to_slack"]
        assert registry.api_interceptors("slack") == [("slack", slack)]

    def test_expansions_for_trigger(self, registry):
        registry.register(make_expansion("a", blocking()))
        registry.register(make_expansion("b"))

        assert [e.id for e in registry.expansions_for_trigger(EMAIL_PRE_SEND)] == ["a"]
        assert [e.id for e in registry.expansions_for_trigger(None)] == ["a", "b"]

    def test_summary(self):
        summary = make_expansion("a", blocking(Priority.HIGH)).summary()
        assert summary["intercepts"] == [
            {"trigger": EMAIL_PRE_SEND, "type": "BLOCKING", "priority": "HIGH"}
        ]


class TestCoreExpansions:
    def test_env_key(self):
        assert env_key("core-server-calendar") == "EXPANSION_CORE_SERVER_CALENDAR"

    @pytest.mark.parametrize("value,enabled", [
        (None, True),
        ("true", True),
        ("0", True),
        ("FALSE", True),
        ("false", False),
    ])
    def test_only_literal_false_disables(self, value, enabled):
        env = {} if value is None else {"EXPANSION_CORE_DLP": value}
        assert is_enabled("core-dlp", env) is enabled

    def test_registers_all_by_default(self, registry, tmp_path):
        ensure_core_expansions(registry, env={}, config_path=tmp_path / "none.yaml")

        assert registry.list_ids() == [e.id for e in CORE_EXPANSIONS]

    def test_integration_expansions_included(self, registry, tmp_path):
        ensure_core_expansions(registry, env={}, config_path=tmp_path / "none.yaml")

        for expansion_id in ("core-hubspot", "core-smart-reply", "core-composer-helper",
                             "core-templates", "core-zoom", "core-trello"):
            assert expansion_id in registry
        assert [i.trigger for i in registry.get("core-templates").interceptors] == [
            "list_templates", "save_template", "delete_template"
        ]

    def test_idempotent(self, registry, tmp_path):
        ensure_core_expansions(registry, env={}, config_path=tmp_path / "none.yaml")
        ensure_core_expansions(registry, env={}, config_path=tmp_path / "none.yaml")

        assert len(registry) == len(CORE_EXPANSIONS)

    def test_env_toggle_disables(self, registry, tmp_path):
        ensure_core_expansions(
            registry, env={"EXPANSION_CORE_CRM": "false"}, config_path=tmp_path / "none.yaml"
        )

        assert "core-crm" not in registry
        assert "core-dlp" in registry

    def test_yaml_overrides(self, registry, tmp_path):
        config = tmp_path / "expansions.yaml"
        config.write_text(
            "disabled:\n"
            "  - core-webhooks\n"
            "priorities:\n"
            "  core-followup: low\n"
        )

        ensure_core_expansions(registry, env={}, config_path=config)

        assert "core-webhooks" not in registry
        followup = registry.get("core-followup")
        assert {i.priority for i in followup.interceptors} == {Priority.LOW}

    def test_yaml_invalid_priority(self, registry, tmp_path):
        config = tmp_path / "expansions.yaml"
        config.write_text("priorities:\n  core-dlp: URGENT\n")

        with pytest.raises(ConfigurationError):
            ensure_core_expansions(registry, env={}, config_path=config)
