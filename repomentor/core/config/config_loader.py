"""YAML configuration loader.

Config files live in ``config/`` at the project root (override with
``REPOMENTOR_CONFIG_DIR``). Each ``<name>.yaml`` file is addressed by its
stem as the first key of ``get_config_value``::

    batch = get_config_value("repomentor", "ingestion", "batch_size", default=3)

Secrets are never read from YAML; they come from the environment, with a
``.env`` file loaded on import.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_configs: Optional[Dict[str, Dict[str, Any]]] = None
_lock = threading.Lock()


def get_config_path() -> Path:
    """Return the directory holding the YAML config files."""
    override = os.getenv("REPOMENTOR_CONFIG_DIR")
    if override:
        return Path(override)
    return Path(__file__).parent.parent.parent.parent / "config"


def load_unified_config() -> Dict[str, Dict[str, Any]]:
    """Load every ``*.yaml`` file in the config directory, keyed by file stem."""
    config_dir = get_config_path()
    configs: Dict[str, Dict[str, Any]] = {}

    if not config_dir.is_dir():
        logger.warning(f"Config directory not found at {config_dir}, using defaults")
        return configs

    for path in sorted(config_dir.glob("*.yaml")):
        try:
            with open(path, "r") as f:
                configs[path.stem] = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse {path}: {e}")
            configs[path.stem] = {}

    return configs


def _get_configs() -> Dict[str, Dict[str, Any]]:
    global _configs
    with _lock:
        if _configs is None:
            _configs = load_unified_config()
        return _configs


def reload_configs() -> None:
    """Drop the cached configs so the next lookup re-reads the files."""
    global _configs
    with _lock:
        _configs = None
    logger.info("Configuration cache cleared")


def get_config_value(*keys: str, default: Any = None) -> Any:
    """Look up a nested config value.

    Args:
        *keys: Config file stem followed by the nested key path
        default: Returned when any key along the path is missing

    Returns:
        The configured value, or ``default``
    """
    node: Any = _get_configs()
    for key in keys:
        if not isinstance(node, dict) or key not in node:
            return default
        node = node[key]
    return default if node is None else node

