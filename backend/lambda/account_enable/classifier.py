"""classifier.py — Turns an enable response into an Outcome and a failure into a Disposition.

Outcome:      Enabled | Failure
Disposition:  Retryable(kind, backoff_ms) | Fatal(message)

Status to disposition:
    429            -> Retryable(RATE_LIMIT)
    502, 503, 504  -> Retryable(SERVICE_ERROR)
    anything else  -> Fatal

A failure without a status code is still treated as rate limited when its
message mentions "429" or "rate limit".
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from identitynow_shared.serialization import _now_z

from config import DEFAULT_SUCCESS_MESSAGE
from transport import TransportResponse

logger = logging.getLogger(__name__)

FAILURE_PREFIX = "Failed to enable account"
SERVICE_ERROR_STATUSES = frozenset({502, 503, 504})


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Enabled:
    account_id: str
    task_id: Optional[str]
    message: str
    enabled_at: str

    def to_result(self, address: Optional[str] = None) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "accountId": self.account_id,
            "enabled": True,
            "taskId": self.task_id,
            "message": self.message,
            "enabledAt": self.enabled_at,
        }
        if address:
            result["address"] = address
        return result


@dataclass(frozen=True)
class Failure:
    status_code: Optional[int]
    message: str
    raw_body: Optional[str] = None


Outcome = Union[Enabled, Failure]


def _parse_json(text: str) -> Any:
    if not text:
        raise ValueError("empty body")
    return json.loads(text)


def _failure_message(status_code: int, body: str) -> str:
    try:
        error_body = _parse_json(body)
    except ValueError:
        if body:
            return f"{FAILURE_PREFIX}: {body}"
        return f"{FAILURE_PREFIX}: HTTP {status_code}"

    logger.error("IdentityNow API error response (%s): %s", status_code, error_body)
    if isinstance(error_body, dict):
        if error_body.get("detailCode"):
            tracking_id = error_body.get("trackingId") or ""
            return f"{FAILURE_PREFIX}: {error_body['detailCode']} - {tracking_id}"
        if error_body.get("message"):
            return f"{FAILURE_PREFIX}: {error_body['message']}"
    return f"{FAILURE_PREFIX}: HTTP {status_code}"


def classify_response(account_id: str, response: TransportResponse) -> Outcome:
    """Map a raw transport response to Enabled or Failure."""
    if response.ok:
        try:
            data = _parse_json(response.body)
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        return Enabled(
            account_id=account_id,
            task_id=data.get("id") or data.get("taskId") or None,
            message=data.get("message") or DEFAULT_SUCCESS_MESSAGE,
            enabled_at=_now_z(),
        )

    return Failure(
        status_code=response.status,
        message=_failure_message(response.status, response.body),
        raw_body=response.body or None,
    )


# ---------------------------------------------------------------------------
# Disposition
# ---------------------------------------------------------------------------


class RecoveryClass(str, Enum):
    RATE_LIMIT = "rate_limit"
    SERVICE_ERROR = "service_error"

    @property
    def recovery_method(self) -> str:
        if self is RecoveryClass.RATE_LIMIT:
            return "rate_limit_retry"
        return "service_retry"


@dataclass(frozen=True)
class Retryable:
    kind: RecoveryClass
    backoff_ms: int


@dataclass(frozen=True)
class Fatal:
    message: str


Disposition = Union[Retryable, Fatal]


def _recovery_class(status_code: Optional[int], message: str) -> Optional[RecoveryClass]:
    if status_code is not None:
        if status_code == 429:
            return RecoveryClass.RATE_LIMIT
        if status_code in SERVICE_ERROR_STATUSES:
            return RecoveryClass.SERVICE_ERROR
        return None
    lowered = (message or "").lower()
    if "429" in lowered or "rate limit" in lowered:
        return RecoveryClass.RATE_LIMIT
    return None


def classify_failure(
    status_code: Optional[int],
    message: str,
    *,
    rate_limit_backoff_ms: int,
    service_error_backoff_ms: int,
) -> Disposition:
    """Decide whether a failure earns its single retry, and after how long."""
    kind = _recovery_class(status_code, message)
    if kind is RecoveryClass.RATE_LIMIT:
        return Retryable(kind=kind, backoff_ms=rate_limit_backoff_ms)
    if kind is RecoveryClass.SERVICE_ERROR:
        return Retryable(kind=kind, backoff_ms=service_error_backoff_ms)
    return Fatal(message=message)
