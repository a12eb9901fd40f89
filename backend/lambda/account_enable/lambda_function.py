"""account_enable/lambda_function.py

Job action Lambda that re-enables a disabled account in SailPoint IdentityNow
via POST /v3/accounts/{id}/enable (202 Accepted, asynchronous provisioning).

Event shape (sent by the job harness):
    {
        "phase":   "invoke" | "error" | "halt",
        "params":  {"accountId", "sailpointDomain", "externalVerificationId"?,
                    "forceProvisioning"?, "error"? (phase=error), "reason"? (phase=halt)},
        "context": {"environment": {...}, "secrets": {...}}
    }

The harness calls invoke first. When invoke raises, it may call error with the
failure; error retries once for 429 / 502 / 503 / 504 and raises otherwise.
halt may be called at any time.

Environment variables:
    RATE_LIMIT_BACKOFF_MS      default: 30000
    SERVICE_ERROR_BACKOFF_MS   default: 10000
    HTTP_TIMEOUT_SECONDS       default: 30
    SAILPOINT_DOMAIN           fallback for params.sailpointDomain
    SECRETS_MANAGER_SECRET_ID  optional JSON secret map with credentials
    SECRETS_REGION             default: us-west-2

Secrets (context.secrets or the Secrets Manager map), first match wins:
    BEARER_AUTH_TOKEN
    BASIC_USERNAME / BASIC_PASSWORD
    OAUTH2_AUTHORIZATION_CODE_ACCESS_TOKEN
    OAUTH2_CLIENT_CREDENTIALS_CLIENT_SECRET (+ OAUTH2_CLIENT_CREDENTIALS_* env)
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional

from config import logger
from errors import InvalidInputError
from handlers import error, halt, invoke

_PHASES: Dict[str, Callable[[Optional[Mapping[str, Any]], Optional[Mapping[str, Any]]], Dict[str, Any]]] = {
    "invoke": invoke,
    "error": error,
    "halt": halt,
}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    event = event or {}
    phase = str(event.get("phase") or "invoke").strip().lower()
    handler = _PHASES.get(phase)
    if handler is None:
        raise InvalidInputError(f"Unsupported phase '{phase}'. Use invoke, error or halt.")

    logger.info("account_enable %s", phase)
    return handler(event.get("params") or {}, event.get("context") or {})
