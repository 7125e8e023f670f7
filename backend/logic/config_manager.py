"""
Configuration Manager for Ledger Insight

Loads analysis settings from a user-editable JSON file so thresholds can be
tuned without modifying code.

Config file locations (checked in order):
1. ./config.json (current working directory)
2. ~/.config/ledger-insight/config.json
3. backend/config.json (development)

Environment variables always win over file values. Unlike a desktop install,
no template is written when no file exists; defaults are used instead.
"""

import os
import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any, List

from .constants import (
    HEADER_SCAN_ROWS,
    HEADER_LOOKAHEAD_ROWS,
    BENFORD_MIN_SAMPLE,
    DEFAULT_KRW_PER_USD,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "_comment": "Ledger Insight Configuration - Edit this file to tune ledger analysis",
    "header_scan_rows": HEADER_SCAN_ROWS,
    "header_lookahead_rows": HEADER_LOOKAHEAD_ROWS,
    "benford_min_sample": BENFORD_MIN_SAMPLE,
    "fuzzy_header_matching": False,
    "fuzzy_match_threshold": 85,
    "krw_per_usd": DEFAULT_KRW_PER_USD,
    "log_level": "INFO",
    "server_port": 8000,
}

# config key -> (environment variable, type)
ENV_OVERRIDES = {
    "header_scan_rows": ("LEDGER_HEADER_SCAN_ROWS", int),
    "header_lookahead_rows": ("LEDGER_HEADER_LOOKAHEAD_ROWS", int),
    "benford_min_sample": ("LEDGER_BENFORD_MIN_SAMPLE", int),
    "fuzzy_header_matching": ("LEDGER_FUZZY_HEADERS", bool),
    "fuzzy_match_threshold": ("LEDGER_FUZZY_THRESHOLD", int),
    "krw_per_usd": ("LEDGER_KRW_PER_USD", float),
    "log_level": ("LOG_LEVEL", str),
    "server_port": ("SERVER_PORT", int),
}

_config_cache: Optional[Dict[str, Any]] = None


def get_config_paths() -> List[Path]:
    """Get list of possible config file locations, in priority order."""
    return [
        Path.cwd() / "config.json",
        Path.home() / ".config" / "ledger-insight" / "config.json",
        Path(__file__).parent.parent / "config.json",
    ]


def find_config_file() -> Optional[Path]:
    """Find the first existing config file."""
    for path in get_config_paths():
        if path.exists():
            logger.info(f"Found config file: {path}")
            return path
    return None


def _coerce(value: str, kind: type) -> Any:
    if kind is bool:
        return value.strip().lower() in ("1", "true", "yes", "on")
    return kind(value)


def apply_environment_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay environment variables onto a config dict (env vars take precedence)."""
    merged = dict(config)
    for config_key, (env_key, kind) in ENV_OVERRIDES.items():
        raw = os.environ.get(env_key)
        if raw is None or raw == "":
            continue
        try:
            merged[config_key] = _coerce(raw, kind)
            logger.debug(f"Set {config_key} from {env_key}")
        except ValueError:
            logger.warning(f"Ignoring invalid value for {env_key}: {raw!r}")
    return merged


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from file.
    Returns merged config (defaults < file < environment).
    """
    config = DEFAULT_CONFIG.copy()

    config_path = path or find_config_file()
    if config_path is not None:
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                file_config = json.load(f)

            for key, value in file_config.items():
                if not key.startswith('_'):  # Skip comments
                    config[key] = value

            logger.info(f"Loaded config from: {config_path}")

        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config from {config_path}: {e}")

    return apply_environment_overrides(config)


def get_config() -> Dict[str, Any]:
    """Get the cached configuration (loads on first call)."""
    global _config_cache
    if _config_cache is None:
        _config_cache = load_config()
    return _config_cache


def get_config_value(key: str, default: Any = None) -> Any:
    """Get a specific config value."""
    return get_config().get(key, default)


def reset_config() -> None:
    """Drop the cached configuration so the next read reloads it."""
    global _config_cache
    _config_cache = None
