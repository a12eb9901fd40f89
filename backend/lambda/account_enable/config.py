"""config.py — Environment configuration, constants and logging for account_enable.

Per-job overrides arrive in ``context["environment"]``; the process environment
supplies the defaults.
"""
from __future__ import annotations

import logging
import os
from typing import Mapping, Optional


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logging.getLogger().warning("ignoring non-integer %s=%r, using %d", name, raw, default)
        return default
    if value < 0:
        logging.getLogger().warning("ignoring negative %s=%r, using %d", name, raw, default)
        return default
    return value


__all__ = [
    "ACCOUNT_ENABLE_PATH",
    "DEFAULT_SUCCESS_MESSAGE",
    "HTTP_TIMEOUT_SECONDS",
    "RATE_LIMIT_BACKOFF_MS",
    "SAILPOINT_DOMAIN",
    "SERVICE_ERROR_BACKOFF_MS",
    "_backoff_setting",
    "_env_value",
    "logger",
]

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

RATE_LIMIT_BACKOFF_MS = _int_env("RATE_LIMIT_BACKOFF_MS", 30000)
SERVICE_ERROR_BACKOFF_MS = _int_env("SERVICE_ERROR_BACKOFF_MS", 10000)
HTTP_TIMEOUT_SECONDS = float(_int_env("HTTP_TIMEOUT_SECONDS", 30))
SAILPOINT_DOMAIN = os.environ.get("SAILPOINT_DOMAIN", "")

ACCOUNT_ENABLE_PATH = "/v3/accounts/{account_id}/enable"
DEFAULT_SUCCESS_MESSAGE = "Account enable operation initiated"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _env_value(env: Optional[Mapping[str, str]], name: str, default: str = "") -> str:
    """Job environment value, falling back to the process environment."""
    value = (env or {}).get(name)
    if value in (None, ""):
        value = os.environ.get(name, default)
    return str(value) if value is not None else default


def _backoff_setting(env: Optional[Mapping[str, str]], name: str, default: int) -> int:
    """Milliseconds to wait before a retry, from the job environment when set."""
    raw = (env or {}).get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("ignoring non-integer %s=%r, using %d", name, raw, default)
        return default
    if value < 0:
        logger.warning("ignoring negative %s=%r, using %d", name, raw, default)
        return default
    return value
