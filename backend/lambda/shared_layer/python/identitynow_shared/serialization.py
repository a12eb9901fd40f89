"""identitynow_shared.serialization — Timestamp helpers shared by action Lambdas."""

from __future__ import annotations

import datetime as dt


def _now_z() -> str:
    """Current UTC timestamp in ISO 8601 format with milliseconds and Z suffix."""
    now = dt.datetime.now(dt.timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
