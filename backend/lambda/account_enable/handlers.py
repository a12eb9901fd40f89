"""handlers.py — Job lifecycle entry points: invoke, error, halt.

invoke   Primary attempt. Returns the success document or raises
         AccountEnableError carrying the upstream status code.
error    Recovery entry point. Receives the failure raised by invoke and
         performs at most one retry for 429 / 502 / 503 / 504.
halt     Reports cleanup status. Takes no network action.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from identitynow_shared.auth import get_authorization_header
from identitynow_shared.serialization import _now_z

from classifier import Enabled, Failure, Retryable, classify_response
from config import (
    RATE_LIMIT_BACKOFF_MS,
    SAILPOINT_DOMAIN,
    SERVICE_ERROR_BACKOFF_MS,
    _backoff_setting,
    _env_value,
)
from errors import AccountEnableError
from recovery import RecoveryAttempt
from request_builder import EnableRequest, build_enable_request, validate_target
from transport import post_enable_request

logger = logging.getLogger(__name__)

__all__ = ["error", "halt", "invoke"]


def _environment(context: Optional[Mapping[str, Any]]) -> Mapping[str, str]:
    return (context or {}).get("environment") or {}


def _domain(params: Mapping[str, Any], context: Optional[Mapping[str, Any]]) -> Any:
    return params.get("sailpointDomain") or _env_value(
        _environment(context), "SAILPOINT_DOMAIN", SAILPOINT_DOMAIN
    )


def _check_inputs(params: Mapping[str, Any], context: Optional[Mapping[str, Any]]) -> str:
    return validate_target(
        params.get("accountId"), _domain(params, context), params.get("forceProvisioning")
    )


def _build_request(params: Mapping[str, Any], context: Optional[Mapping[str, Any]]) -> EnableRequest:
    _check_inputs(params, context)
    return build_enable_request(
        params["accountId"],
        _domain(params, context),
        get_authorization_header(context),
        external_verification_id=params.get("externalVerificationId"),
        force_provisioning=params.get("forceProvisioning"),
    )


def _status_code(raw: Any) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def _failure_from(err: Any) -> Failure:
    """Normalize the prior failure handed to the recovery entry point.

    Accepts the exception raised by invoke, or the serialized mapping a
    harness passes between invocations.
    """
    if err is None:
        return Failure(status_code=None, message="Unknown error")
    if isinstance(err, BaseException):
        status = getattr(err, "status_code", None)
        if status is None:
            status = getattr(err, "statusCode", None)
        return Failure(
            status_code=_status_code(status),
            message=str(err),
            raw_body=getattr(err, "raw_body", None),
        )
    if isinstance(err, Mapping):
        status = err.get("statusCode")
        if status is None:
            status = err.get("status_code")
        message = err.get("message") or err.get("errorMessage") or "Unknown error"
        return Failure(status_code=_status_code(status), message=str(message))
    return Failure(status_code=None, message=str(err))


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def invoke(params: Optional[Mapping[str, Any]], context: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    params = params or {}
    account_id = params.get("accountId")
    logger.info("Starting IdentityNow account enable for account: %s", account_id)

    request = _build_request(params, context)
    response = post_enable_request(request)
    outcome = classify_response(request.account_id, response)

    if isinstance(outcome, Enabled):
        logger.info(
            "Successfully initiated account enable for account %s (task %s)",
            request.account_id,
            outcome.task_id,
        )
        return outcome.to_result(request.base_address)

    logger.error(
        "account enable failed for %s: HTTP %s", request.account_id, outcome.status_code
    )
    raise AccountEnableError(
        outcome.message, status_code=outcome.status_code, raw_body=outcome.raw_body
    )


def error(params: Optional[Mapping[str, Any]], context: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    params = params or {}
    failure = _failure_from(params.get("error"))
    account_id = params.get("accountId")
    logger.info(
        "Recovery requested for account %s after HTTP %s: %s",
        account_id,
        failure.status_code,
        failure.message,
    )

    env = _environment(context)
    attempt = RecoveryAttempt(
        str(account_id) if account_id else "unknown",
        failure,
        build_request=lambda: _build_request(params, context),
        rate_limit_backoff_ms=_backoff_setting(env, "RATE_LIMIT_BACKOFF_MS", RATE_LIMIT_BACKOFF_MS),
        service_error_backoff_ms=_backoff_setting(
            env, "SERVICE_ERROR_BACKOFF_MS", SERVICE_ERROR_BACKOFF_MS
        ),
        send=post_enable_request,
    )
    if isinstance(attempt.disposition, Retryable):
        _check_inputs(params, context)
    return attempt.run()


def halt(params: Optional[Mapping[str, Any]], context: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    # The POST either completed or was never sent; neither can be undone here.
    params = params or {}
    reason = params.get("reason")
    account_id = params.get("accountId")
    logger.info("Account enable job is being halted (%s) for account %s", reason, account_id)
    return {
        "accountId": account_id or "unknown",
        "reason": reason,
        "haltedAt": _now_z(),
        "cleanupCompleted": True,
    }
