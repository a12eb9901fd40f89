"""request_builder.py — Builds the POST /v3/accounts/{id}/enable request.

A fresh EnableRequest is built for every attempt (the primary call and the
single recovery retry each get their own instance).
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

from identitynow_shared.auth import BASIC_PREFIX, BEARER_PREFIX

from config import ACCOUNT_ENABLE_PATH
from errors import InvalidInputError

# Bare host name, optional port. No scheme, path, query or whitespace.
_DOMAIN_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9.-]*[A-Za-z0-9])?(?::\d{1,5})?$")


def _encode_path_segment(value: str) -> str:
    """Percent-encode a value as a single path segment (``/``, ``&``, ``=`` included)."""
    return quote(value, safe="")


def _normalize_authorization(auth_token: str) -> str:
    if auth_token.startswith(BEARER_PREFIX) or auth_token.startswith(BASIC_PREFIX):
        return auth_token
    return f"{BEARER_PREFIX}{auth_token}"


def _base_address(domain: Any) -> str:
    if not isinstance(domain, str) or not domain.strip():
        raise InvalidInputError("sailpointDomain is required and must be a string")
    host = domain.strip()
    if host.endswith("/"):
        host = host[:-1]
    if not _DOMAIN_RE.match(host):
        raise InvalidInputError(
            f"sailpointDomain must be a bare host name without scheme or path: {domain!r}"
        )
    return f"https://{host}"


@dataclass(frozen=True)
class EnableRequest:
    account_id: str
    base_address: str
    authorization: str
    external_verification_id: Optional[str] = None
    force_provisioning: Optional[bool] = None

    @property
    def url(self) -> str:
        path = ACCOUNT_ENABLE_PATH.format(account_id=_encode_path_segment(self.account_id))
        return f"{self.base_address}{path}"

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": self.authorization,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def body(self) -> Dict[str, Any]:
        """JSON payload; optional keys are present only when supplied."""
        payload: Dict[str, Any] = {}
        if self.external_verification_id:
            payload["externalVerificationId"] = self.external_verification_id
        if self.force_provisioning is not None:
            payload["forceProvisioning"] = self.force_provisioning
        return payload

    def encoded_body(self) -> bytes:
        return json.dumps(self.body()).encode("utf-8")


def validate_target(account_id: Any, domain: Any, force_provisioning: Any = None) -> str:
    """Check the credential-independent inputs and return the base address."""
    if not isinstance(account_id, str) or not account_id:
        raise InvalidInputError("accountId is required and must be a string")
    base_address = _base_address(domain)
    if force_provisioning is not None and not isinstance(force_provisioning, bool):
        raise InvalidInputError("forceProvisioning must be a boolean when provided")
    return base_address


def build_enable_request(
    account_id: Any,
    domain: Any,
    auth_token: Any,
    external_verification_id: Any = None,
    force_provisioning: Any = None,
) -> EnableRequest:
    """Validate job inputs and build an EnableRequest.

    Raises InvalidInputError for a missing account id or domain, a missing
    credential, or a non-boolean forceProvisioning.
    """
    base_address = validate_target(account_id, domain, force_provisioning)
    if not isinstance(auth_token, str) or not auth_token.strip():
        raise InvalidInputError("An authorization credential is required")

    return EnableRequest(
        account_id=account_id,
        base_address=base_address,
        authorization=_normalize_authorization(auth_token),
        external_verification_id=external_verification_id or None,
        force_provisioning=force_provisioning,
    )
