"""
Built-in expansions.

Every expansion is enabled unless EXPANSION_<ID> is set to "false"
(core-dlp -> EXPANSION_CORE_DLP). An optional expansions.yaml in the config
directory can disable ids and override priorities:

    disabled:
      - core-crm
    priorities:
      core-followup: LOW
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from backend.core.expansions.core.calendar import CalendarServerExpansion
from backend.core.expansions.core.composer_helper import ComposerHelperExpansion
from backend.core.expansions.core.crm import CRMExpansion
from backend.core.expansions.core.dlp import DLPExpansion
from backend.core.expansions.core.followup import FollowupExpansion
from backend.core.expansions.core.hubspot import HubSpotExpansion
from backend.core.expansions.core.mail_groups import MailGroupsExpansion
from backend.core.expansions.core.notion import NotionExpansion
from backend.core.expansions.core.slack import SlackExpansion
from backend.core.expansions.core.smart_reply import SmartReplyExpansion
from backend.core.expansions.core.summarizer import SummarizerExpansion
from backend.core.expansions.core.templates import TemplatesExpansion
from backend.core.expansions.core.translator import TranslatorExpansion
from backend.core.expansions.core.trello import TrelloExpansion
from backend.core.expansions.core.webhooks import WebhookExpansion
from backend.core.expansions.core.zoom import ZoomExpansion
from backend.core.expansions.errors import ConfigurationError
from backend.core.expansions.models import Priority
from backend.core.expansions.registry import ExpansionRegistry
from backend.core.paths import get_config_path

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "expansions.yaml"

CORE_EXPANSIONS = (
    SummarizerExpansion,
    SmartReplyExpansion,
    ComposerHelperExpansion,
    TranslatorExpansion,
    WebhookExpansion,
    TemplatesExpansion,
    CRMExpansion,
    NotionExpansion,
    DLPExpansion,
    FollowupExpansion,
    CalendarServerExpansion,
    SlackExpansion,
    TrelloExpansion,
    HubSpotExpansion,
    ZoomExpansion,
    MailGroupsExpansion,
)


def env_key(expansion_id: str) -> str:
    """core-dlp -> EXPANSION_CORE_DLP"""
    return f"EXPANSION_{expansion_id.upper().replace('-', '_')}"


def is_enabled(expansion_id: str, env: Optional[Mapping[str, str]] = None) -> bool:
    """Enabled unless explicitly set to 'false'."""
    env = os.environ if env is None else env
    return env.get(env_key(expansion_id)) != 'false'


def load_overrides(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Read expansions.yaml.

    Args:
        config_path: Explicit file, resolved via get_config_path when None

    Returns:
        {"disabled": set of ids, "priorities": {id: Priority}}

    Raises:
        ConfigurationError: If the file holds an unknown priority
    """
    overrides: Dict[str, Any] = {"disabled": set(), "priorities": {}}

    path = config_path or get_config_path(CONFIG_FILENAME)
    if path is None or not Path(path).exists():
        return overrides

    with open(path) as f:
        config = yaml.safe_load(f) or {}

    overrides["disabled"] = set(config.get("disabled") or [])
    for expansion_id, value in (config.get("priorities") or {}).items():
        try:
            overrides["priorities"][expansion_id] = Priority(str(value).upper())
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid priority '{value}' for expansion '{expansion_id}' in {path}"
            ) from e

    logger.debug(f"Loaded expansion overrides from {path}")
    return overrides


def ensure_core_expansions(
    registry: ExpansionRegistry,
    env: Optional[Mapping[str, str]] = None,
    config_path: Optional[Path] = None,
) -> ExpansionRegistry:
    """
    Register the built-in expansions. Idempotent.

    Args:
        registry: Registry to populate
        env: Environment mapping (os.environ when None)
        config_path: expansions.yaml override location

    Returns:
        The registry, for chaining
    """
    overrides = load_overrides(config_path)

    for expansion in CORE_EXPANSIONS:
        if not is_enabled(expansion.id, env) or expansion.id in overrides["disabled"]:
            logger.info(f"Expansion {expansion.id} disabled")
            registry.unregister(expansion.id)
            continue

        priority = overrides["priorities"].get(expansion.id)
        registry.register(expansion.with_priority(priority) if priority else expansion)

    return registry


__all__ = [
    "CORE_EXPANSIONS",
    "ensure_core_expansions",
    "env_key",
    "is_enabled",
    "load_overrides",
]
