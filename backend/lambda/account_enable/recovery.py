"""recovery.py — Single bounded retry for a failed enable request.

States:
    RECEIVED -> BACKOFF_WAIT -> RETRYING -> RECOVERED_SUCCESS
    RECEIVED -> RECOVERED_FATAL                    (failure is not retryable)
    RETRYING -> RECOVERED_FATAL                    (rebuild or retry failed, any cause)

At most one extra POST is issued per RecoveryAttempt. The POST is not
idempotent on the platform side, so a second failure is always terminal.
"""
from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from classifier import (
    Enabled,
    Failure,
    Fatal,
    classify_failure,
    classify_response,
)
from errors import TransportError, UnrecoverableError
from request_builder import EnableRequest
from transport import TransportResponse, post_enable_request

logger = logging.getLogger(__name__)


class RecoveryState(str, Enum):
    RECEIVED = "received"
    BACKOFF_WAIT = "backoff_wait"
    RETRYING = "retrying"
    RECOVERED_SUCCESS = "recovered_success"
    RECOVERED_FATAL = "recovered_fatal"


_ALLOWED_TRANSITIONS = {
    RecoveryState.RECEIVED: {RecoveryState.BACKOFF_WAIT, RecoveryState.RECOVERED_FATAL},
    RecoveryState.BACKOFF_WAIT: {RecoveryState.RETRYING},
    RecoveryState.RETRYING: {RecoveryState.RECOVERED_SUCCESS, RecoveryState.RECOVERED_FATAL},
    RecoveryState.RECOVERED_SUCCESS: set(),
    RecoveryState.RECOVERED_FATAL: set(),
}


class RecoveryAttempt:
    """Drives one failure through the recovery state machine.

    ``build_request`` is called once, after the backoff, so credentials and
    the request body are rebuilt for the retry.
    """

    def __init__(
        self,
        account_id: str,
        failure: Failure,
        *,
        build_request: Callable[[], EnableRequest],
        rate_limit_backoff_ms: int,
        service_error_backoff_ms: int,
        send: Callable[[EnableRequest], TransportResponse] = post_enable_request,
    ) -> None:
        self.account_id = account_id
        self.failure = failure
        self.state = RecoveryState.RECEIVED
        self.transitions: List[RecoveryState] = [RecoveryState.RECEIVED]
        self.disposition = classify_failure(
            failure.status_code,
            failure.message,
            rate_limit_backoff_ms=rate_limit_backoff_ms,
            service_error_backoff_ms=service_error_backoff_ms,
        )
        self.retries = 0
        self._build_request = build_request
        self._send = send
        self._address: Optional[str] = None

    def _transition(self, state: RecoveryState) -> None:
        if state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"invalid recovery transition {self.state.value} -> {state.value}")
        logger.info(
            "[RECOVERY] account %s: %s -> %s", self.account_id, self.state.value, state.value
        )
        self.state = state
        self.transitions.append(state)

    def _fail(self, message: str, status_code: Optional[int], raw_body: Optional[str] = None) -> UnrecoverableError:
        self._transition(RecoveryState.RECOVERED_FATAL)
        return UnrecoverableError(
            f"Unrecoverable error enabling account {self.account_id}: {message}",
            status_code=status_code,
            raw_body=raw_body,
        )

    def run(self) -> Dict[str, Any]:
        """Return the recovered success document, or raise UnrecoverableError."""
        if self.state is not RecoveryState.RECEIVED:
            raise RuntimeError("recovery attempt already ran")

        disposition = self.disposition
        if isinstance(disposition, Fatal):
            raise self._fail(self.failure.message, self.failure.status_code, self.failure.raw_body)

        self._transition(RecoveryState.BACKOFF_WAIT)
        logger.info(
            "[RECOVERY] account %s: %s, waiting %d ms before retry",
            self.account_id,
            disposition.kind.value,
            disposition.backoff_ms,
        )
        time.sleep(disposition.backoff_ms / 1000.0)

        self._transition(RecoveryState.RETRYING)
        try:
            request = self._build_request()
        except Exception as exc:
            logger.error("[RECOVERY] account %s: rebuilding the request failed: %s", self.account_id, exc)
            raise self._fail(str(exc), getattr(exc, "status_code", None)) from exc
        self._address = request.base_address
        self.retries += 1
        try:
            response = self._send(request)
        except TransportError as exc:
            raise self._fail(exc.message, exc.status_code) from exc

        outcome = classify_response(self.account_id, response)
        if isinstance(outcome, Enabled):
            self._transition(RecoveryState.RECOVERED_SUCCESS)
            logger.info(
                "[RECOVERY] account %s recovered via %s (task %s)",
                self.account_id,
                disposition.kind.recovery_method,
                outcome.task_id,
            )
            result = outcome.to_result(self._address)
            result["recoveryMethod"] = disposition.kind.recovery_method
            return result

        raise self._fail(outcome.message, outcome.status_code, outcome.raw_body)
