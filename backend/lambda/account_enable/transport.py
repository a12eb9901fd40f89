"""transport.py — Issues the enable POST and returns the raw response.

Status codes are not interpreted here; a non-2xx reply comes back as a
TransportResponse like any other. Only a missing or truncated response (DNS, TLS, timeout,
connection reset, short read) raises.
"""
from __future__ import annotations

import http.client
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Optional

from identitynow_shared.http_utils import _read_error_body, _ssl_context

from config import HTTP_TIMEOUT_SECONDS
from errors import TransportError
from request_builder import EnableRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportResponse:
    status: int
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def post_enable_request(
    request: EnableRequest, timeout: Optional[float] = None
) -> TransportResponse:
    """Send exactly one POST for ``request``."""
    req = urllib.request.Request(
        request.url,
        method="POST",
        data=request.encoded_body(),
        headers=request.headers,
    )

    try:
        with urllib.request.urlopen(
            req, timeout=timeout or HTTP_TIMEOUT_SECONDS, context=_ssl_context()
        ) as resp:
            raw = resp.read()
            status = getattr(resp, "status", None) or resp.getcode()
    except urllib.error.HTTPError as exc:
        return TransportResponse(status=exc.code, body=_read_error_body(exc))
    except (urllib.error.URLError, http.client.HTTPException, OSError) as exc:
        reason = getattr(exc, "reason", None) or exc
        logger.error("enable request to %s failed without a response: %s", request.base_address, reason)
        raise TransportError(f"Failed to enable account: {reason}") from exc

    if isinstance(raw, bytes):
        body = raw.decode("utf-8", errors="replace")
    else:
        body = str(raw or "")
    return TransportResponse(status=int(status), body=body)
