"""
Config file resolution.

Supports:
- Local config: ./config/*.yaml
- External overlay: CONFIG_DIR=/path/to/private/config
- Fallback to .example.yaml when .yaml missing

Usage:
    from backend.core.paths import get_config_path

    overrides = get_config_path("expansions.yaml")
"""
import os
import logging
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

# backend/core/paths.py -> backend/core -> backend -> repo root
_REPO_ROOT = Path(__file__).parent.parent.parent
_DEFAULT_CONFIG_DIR = _REPO_ROOT / "config"


def get_config_dir() -> Path:
    """Config directory, re-read from CONFIG_DIR on every call."""
    return Path(os.getenv("CONFIG_DIR", str(_DEFAULT_CONFIG_DIR)))


def _candidates(config_dir: Path, filename: str) -> List[Path]:
    paths = [config_dir / filename]
    if filename.endswith('.yaml'):
        paths.append(config_dir / filename.replace('.yaml', '.example.yaml'))
    return paths


def get_config_path(filename: str, required: bool = False) -> Optional[Path]:
    """
    Resolve config file path with fallback logic.

    Resolution order:
    1. CONFIG_DIR / filename, then its .example.yaml sibling
    2. Default config dir / filename, then its .example.yaml sibling

    Raises:
        FileNotFoundError: If required=True and file not found
    """
    config_dir = get_config_dir()
    candidates = _candidates(config_dir, filename)
    if config_dir != _DEFAULT_CONFIG_DIR:
        candidates.extend(_candidates(_DEFAULT_CONFIG_DIR, filename))

    for path in candidates:
        if path.exists():
            logger.debug(f"Config '{filename}' resolved to: {path}")
            return path

    if required:
        searched = [str(c) for c in candidates]
        raise FileNotFoundError(
            f"Required config file '{filename}' not found.\n"
            f"Searched: {searched}"
        )

    logger.debug(f"Config '{filename}' not found (optional)")
    return None
