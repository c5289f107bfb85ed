"""Runtime configuration registry for the editor and simulation layers.

Environment variables take precedence over YAML config.

Usage:
    from leadflow.config.runtime_config import get_max_turns, get_resolver_mode

    max_turns = get_max_turns()  # 15 unless overridden
    if get_resolver_mode() == "stub":
        # Use the graph-walking stub resolver
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent / "runtime.yaml"
_cached_config: Optional[Dict[str, Any]] = None

VALID_RESOLVER_MODES = ("stub", "http")


def _load_config() -> Dict[str, Any]:
    """Load runtime.yaml configuration, with caching."""
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            _cached_config = yaml.safe_load(f) or _default_config()
    else:
        _cached_config = _default_config()

    return _cached_config


def _default_config() -> Dict[str, Any]:
    """Return default configuration if runtime.yaml doesn't exist."""
    return {
        "version": "1.0",
        "editor": {"history_cap": 30},
        "simulation": {
            "max_turns": 15,
            "turn_delay_seconds": 0.3,
            "batch_run_delay_seconds": 0.2,
        },
        "resolver": {
            "mode": "stub",
            "base_url": "http://127.0.0.1:3000",
            "timeout_seconds": 30,
        },
    }


def reset_config() -> None:
    """Reset cached config (for testing)."""
    global _cached_config
    _cached_config = None


def _section_value(section: str, key: str, fallback: Any) -> Any:
    config = _load_config()
    value = (config.get(section) or {}).get(key)
    return fallback if value is None else value


def _env_number(env_var: str, cast, minimum: float) -> Optional[Any]:
    """Read a numeric env override, ignoring invalid or out-of-range values."""
    raw = os.environ.get(env_var)
    if raw is None or raw == "":
        return None
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("Invalid %s value '%s'. Ignoring override.", env_var, raw)
        return None
    if value < minimum:
        logger.warning(
            "%s value %s is below minimum %s. Ignoring override.", env_var, raw, minimum
        )
        return None
    return value


def get_max_turns() -> int:
    """Maximum number of turns per simulation run.

    Environment variable precedence (highest to lowest):
    1. LEADFLOW_MAX_TURNS
    2. Config file value (simulation.max_turns)
    3. Default: 15
    """
    override = _env_number("LEADFLOW_MAX_TURNS", int, 1)
    if override is not None:
        return override
    return int(_section_value("simulation", "max_turns", 15))


def get_turn_delay_seconds() -> float:
    """Pacing delay inserted between simulation turns."""
    override = _env_number("LEADFLOW_TURN_DELAY", float, 0.0)
    if override is not None:
        return override
    return float(_section_value("simulation", "turn_delay_seconds", 0.3))


def get_batch_run_delay_seconds() -> float:
    """Pacing delay inserted between persona runs of a batch."""
    override = _env_number("LEADFLOW_BATCH_DELAY", float, 0.0)
    if override is not None:
        return override
    return float(_section_value("simulation", "batch_run_delay_seconds", 0.2))


def get_history_cap() -> int:
    """Maximum number of undo snapshots kept by the graph model."""
    override = _env_number("LEADFLOW_HISTORY_CAP", int, 1)
    if override is not None:
        return override
    return int(_section_value("editor", "history_cap", 30))


def get_resolver_mode() -> str:
    """Turn resolver mode: "stub" or "http".

    Logs a warning and returns "stub" if an invalid value is configured.
    """
    mode = os.environ.get("LEADFLOW_RESOLVER_MODE") or _section_value(
        "resolver", "mode", "stub"
    )
    mode_lower = str(mode).lower()
    if mode_lower not in VALID_RESOLVER_MODES:
        logger.warning(
            "Invalid resolver mode '%s' (valid: %s). Falling back to 'stub'.",
            mode,
            ", ".join(VALID_RESOLVER_MODES),
        )
        return "stub"
    return mode_lower


def is_stub_mode() -> bool:
    """Check if simulations should use the zero-cost stub resolver."""
    return get_resolver_mode() == "stub"


def get_resolver_base_url() -> str:
    """Base URL of the turn-resolution and summary service."""
    url = os.environ.get("LEADFLOW_RESOLVER_URL") or _section_value(
        "resolver", "base_url", "http://127.0.0.1:3000"
    )
    return str(url).rstrip("/")


def get_resolver_timeout_seconds() -> float:
    """HTTP timeout for collaborator calls."""
    override = _env_number("LEADFLOW_RESOLVER_TIMEOUT", float, 0.0)
    if override is not None:
        return override
    return float(_section_value("resolver", "timeout_seconds", 30))
