"""errors.py — Failure types raised by the account_enable entry points."""
from __future__ import annotations

from typing import Optional


class InvalidInputError(ValueError):
    """A required parameter is missing or malformed. Never retried."""


class AccountEnableError(RuntimeError):
    """The enable request did not succeed.

    ``status_code`` is the upstream HTTP status, or None when no response was
    received. ``raw_body`` keeps the upstream body for diagnostics.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        raw_body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.raw_body = raw_body


class TransportError(AccountEnableError):
    """No HTTP response was received (DNS, TLS, timeout, connection reset)."""


class UnrecoverableError(AccountEnableError):
    """The recovery entry point gave up; the job ends in error."""
