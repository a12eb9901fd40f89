"""identitynow_shared.http_utils — urllib helpers shared by outbound API calls."""

from __future__ import annotations

import ssl
import urllib.error

import certifi

_SSL_CONTEXT = None


def _ssl_context() -> ssl.SSLContext:
    """TLS context backed by the certifi CA bundle (Lambda images ship a stale one)."""
    global _SSL_CONTEXT
    if _SSL_CONTEXT is None:
        _SSL_CONTEXT = ssl.create_default_context(cafile=certifi.where())
    return _SSL_CONTEXT


def _read_error_body(exc: urllib.error.HTTPError) -> str:
    """Return the body of an HTTPError as text, or '' when it has none."""
    try:
        raw = exc.read()
    except (AttributeError, OSError):
        return ""
    if not raw:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return str(raw)
