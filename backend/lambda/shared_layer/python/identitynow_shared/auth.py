"""identitynow_shared.auth — Authorization header resolution for action Lambdas.

The job harness hands each invocation a context mapping with ``secrets`` and
``environment``. Exactly one credential scheme is used, picked by the first
resolver whose secrets are present:

    1. BEARER_AUTH_TOKEN                          -> Bearer <token>
    2. BASIC_USERNAME + BASIC_PASSWORD            -> Basic base64(user:pass)
    3. OAUTH2_AUTHORIZATION_CODE_ACCESS_TOKEN     -> Bearer <token>
    4. OAUTH2_CLIENT_CREDENTIALS_CLIENT_SECRET    -> Bearer <token from token URL>

Client credentials environment:
    OAUTH2_CLIENT_CREDENTIALS_TOKEN_URL   required
    OAUTH2_CLIENT_CREDENTIALS_CLIENT_ID   required
    OAUTH2_CLIENT_CREDENTIALS_SCOPE       optional
    OAUTH2_CLIENT_CREDENTIALS_AUDIENCE    optional
    OAUTH2_CLIENT_CREDENTIALS_AUTH_STYLE  InHeader (default) | InParams

Optional process environment:
    SECRETS_MANAGER_SECRET_ID  JSON secret map merged underneath context secrets
"""

from __future__ import annotations

import base64
import json
import logging
import os
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, Mapping, Optional, Tuple

from .aws_clients import _get_secretsmanager
from .http_utils import _read_error_body, _ssl_context

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
BASIC_PREFIX = "Basic "

SECRETS_MANAGER_SECRET_ID: str = os.environ.get("SECRETS_MANAGER_SECRET_ID", "")
TOKEN_REQUEST_TIMEOUT_SECONDS: float = 15.0


class CredentialError(ValueError):
    """Raised when no usable credential can be resolved from the job context."""


def _normalize_bearer(token: str) -> str:
    return token if token.startswith(BEARER_PREFIX) else f"{BEARER_PREFIX}{token}"


# ---------------------------------------------------------------------------
# Secrets Manager secret map (cached per container)
# ---------------------------------------------------------------------------

_managed_secrets_cache: Dict[str, str] = {}
_managed_secrets_fetched_at: float = 0.0
_MANAGED_SECRETS_TTL: float = 3600.0


def _load_managed_secrets() -> Dict[str, str]:
    """Fetch the JSON secret map named by SECRETS_MANAGER_SECRET_ID (cached)."""
    global _managed_secrets_cache, _managed_secrets_fetched_at
    if not SECRETS_MANAGER_SECRET_ID:
        return {}

    now = time.time()
    if _managed_secrets_cache and (now - _managed_secrets_fetched_at) < _MANAGED_SECRETS_TTL:
        return _managed_secrets_cache

    sm = _get_secretsmanager()
    resp = sm.get_secret_value(SecretId=SECRETS_MANAGER_SECRET_ID)
    try:
        data = json.loads(resp.get("SecretString") or "{}")
    except json.JSONDecodeError as exc:
        raise CredentialError(
            f"Secret {SECRETS_MANAGER_SECRET_ID} is not a JSON object"
        ) from exc
    if not isinstance(data, dict):
        raise CredentialError(f"Secret {SECRETS_MANAGER_SECRET_ID} is not a JSON object")

    _managed_secrets_cache = {str(k): str(v) for k, v in data.items() if v not in (None, "")}
    _managed_secrets_fetched_at = now
    return _managed_secrets_cache


def _context_maps(context: Optional[Mapping[str, Any]]) -> Tuple[Dict[str, str], Dict[str, str]]:
    """Return (environment, secrets) for a job context; context secrets win."""
    context = context or {}
    env = dict(context.get("environment") or {})
    secrets = dict(_load_managed_secrets())
    secrets.update({k: v for k, v in (context.get("secrets") or {}).items() if v})
    return env, secrets


# ---------------------------------------------------------------------------
# OAuth2 client credentials
# ---------------------------------------------------------------------------


def _get_client_credentials_token(
    *,
    token_url: str,
    client_id: str,
    client_secret: str,
    scope: Optional[str] = None,
    audience: Optional[str] = None,
    auth_style: Optional[str] = None,
) -> str:
    """Exchange client credentials for an access token at ``token_url``."""
    if not token_url or not client_id or not client_secret:
        raise CredentialError(
            "OAuth2 Client Credentials flow requires tokenUrl, clientId, and clientSecret"
        )

    form = [("grant_type", "client_credentials")]
    if scope:
        form.append(("scope", scope))
    if audience:
        form.append(("audience", audience))

    headers = {
        "Content-Type": "application/x-www-form-urlencoded",
        "Accept": "application/json",
    }
    if auth_style == "InParams":
        form.append(("client_id", client_id))
        form.append(("client_secret", client_secret))
    else:
        raw = f"{client_id}:{client_secret}".encode("utf-8")
        headers["Authorization"] = f"{BASIC_PREFIX}{base64.b64encode(raw).decode('ascii')}"

    req = urllib.request.Request(
        token_url,
        method="POST",
        data=urllib.parse.urlencode(form).encode("utf-8"),
        headers=headers,
    )

    try:
        with urllib.request.urlopen(
            req, timeout=TOKEN_REQUEST_TIMEOUT_SECONDS, context=_ssl_context()
        ) as resp:
            raw_body = resp.read()
    except urllib.error.HTTPError as exc:
        body_text = _read_error_body(exc)
        try:
            body_text = json.dumps(json.loads(body_text))
        except (json.JSONDecodeError, TypeError):
            pass
        logger.error("OAuth2 token request failed: %s %s", exc.code, exc.reason)
        raise CredentialError(
            f"OAuth2 token request failed: {exc.code} {exc.reason} - {body_text}"
        ) from exc

    try:
        data = json.loads(raw_body or b"{}")
    except json.JSONDecodeError as exc:
        raise CredentialError("No access_token in OAuth2 response") from exc
    token = data.get("access_token") if isinstance(data, dict) else None
    if not token:
        raise CredentialError("No access_token in OAuth2 response")
    return token


# ---------------------------------------------------------------------------
# Resolvers (ordered, first match wins)
# ---------------------------------------------------------------------------


class _BearerTokenResolver:
    name = "bearer"

    def matches(self, env: Mapping[str, str], secrets: Mapping[str, str]) -> bool:
        return bool(secrets.get("BEARER_AUTH_TOKEN"))

    def resolve(self, env: Mapping[str, str], secrets: Mapping[str, str]) -> str:
        return _normalize_bearer(secrets["BEARER_AUTH_TOKEN"])


class _BasicAuthResolver:
    name = "basic"

    def matches(self, env: Mapping[str, str], secrets: Mapping[str, str]) -> bool:
        return bool(secrets.get("BASIC_USERNAME") and secrets.get("BASIC_PASSWORD"))

    def resolve(self, env: Mapping[str, str], secrets: Mapping[str, str]) -> str:
        raw = f"{secrets['BASIC_USERNAME']}:{secrets['BASIC_PASSWORD']}".encode("utf-8")
        return f"{BASIC_PREFIX}{base64.b64encode(raw).decode('ascii')}"


class _AuthorizationCodeResolver:
    name = "oauth2_authorization_code"

    def matches(self, env: Mapping[str, str], secrets: Mapping[str, str]) -> bool:
        return bool(secrets.get("OAUTH2_AUTHORIZATION_CODE_ACCESS_TOKEN"))

    def resolve(self, env: Mapping[str, str], secrets: Mapping[str, str]) -> str:
        return _normalize_bearer(secrets["OAUTH2_AUTHORIZATION_CODE_ACCESS_TOKEN"])


class _ClientCredentialsResolver:
    name = "oauth2_client_credentials"

    def matches(self, env: Mapping[str, str], secrets: Mapping[str, str]) -> bool:
        return bool(secrets.get("OAUTH2_CLIENT_CREDENTIALS_CLIENT_SECRET"))

    def resolve(self, env: Mapping[str, str], secrets: Mapping[str, str]) -> str:
        token_url = env.get("OAUTH2_CLIENT_CREDENTIALS_TOKEN_URL")
        client_id = env.get("OAUTH2_CLIENT_CREDENTIALS_CLIENT_ID")
        if not token_url or not client_id:
            raise CredentialError(
                "OAuth2 Client Credentials flow requires TOKEN_URL and CLIENT_ID in env"
            )
        token = _get_client_credentials_token(
            token_url=token_url,
            client_id=client_id,
            client_secret=secrets["OAUTH2_CLIENT_CREDENTIALS_CLIENT_SECRET"],
            scope=env.get("OAUTH2_CLIENT_CREDENTIALS_SCOPE"),
            audience=env.get("OAUTH2_CLIENT_CREDENTIALS_AUDIENCE"),
            auth_style=env.get("OAUTH2_CLIENT_CREDENTIALS_AUTH_STYLE"),
        )
        return f"{BEARER_PREFIX}{token}"


_RESOLVERS = (
    _BearerTokenResolver(),
    _BasicAuthResolver(),
    _AuthorizationCodeResolver(),
    _ClientCredentialsResolver(),
)


def get_authorization_header(context: Optional[Mapping[str, Any]]) -> str:
    """Resolve the Authorization header value for a job context.

    Raises CredentialError when no scheme is configured or the configured
    scheme cannot produce a credential.
    """
    env, secrets = _context_maps(context)
    for resolver in _RESOLVERS:
        if resolver.matches(env, secrets):
            logger.info("authorization resolved via %s", resolver.name)
            return resolver.resolve(env, secrets)

    raise CredentialError(
        "No authentication configured. Provide one of: "
        "BEARER_AUTH_TOKEN, BASIC_USERNAME/BASIC_PASSWORD, "
        "OAUTH2_AUTHORIZATION_CODE_ACCESS_TOKEN, or OAUTH2_CLIENT_CREDENTIALS_*"
    )
