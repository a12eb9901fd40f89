"""test_layer.py — Unit tests for identitynow_shared layer modules.

Run from the repository root:
    python3 -m pytest backend/lambda/shared_layer/test_layer.py -v
"""

from __future__ import annotations

import base64
import io
import json
import pathlib
import re
import sys
import unittest
import urllib.error
import urllib.parse
from unittest.mock import MagicMock, patch

# Ensure the layer's python/ directory is importable.
_LAYER_PATH = pathlib.Path(__file__).resolve().parent / "python"
if str(_LAYER_PATH) not in sys.path:
    sys.path.insert(0, str(_LAYER_PATH))

import identitynow_shared.auth as auth_mod  # noqa: E402
from identitynow_shared.auth import CredentialError, get_authorization_header  # noqa: E402
from identitynow_shared.http_utils import _read_error_body  # noqa: E402
from identitynow_shared.serialization import _now_z  # noqa: E402

TOKEN_URL = "https://auth.example.com/oauth/token"


def _token_response(payload):
    resp = MagicMock()
    resp.__enter__ = MagicMock(return_value=resp)
    resp.__exit__ = MagicMock(return_value=False)
    resp.read.return_value = json.dumps(payload).encode()
    return resp


def _client_credentials_context(**env):
    environment = {
        "OAUTH2_CLIENT_CREDENTIALS_TOKEN_URL": TOKEN_URL,
        "OAUTH2_CLIENT_CREDENTIALS_CLIENT_ID": "client-1",
    }
    environment.update(env)
    return {
        "secrets": {"OAUTH2_CLIENT_CREDENTIALS_CLIENT_SECRET": "s3cret"},
        "environment": environment,
    }


class ResolverOrderTests(unittest.TestCase):
    def test_bearer_token_gets_prefix(self):
        header = get_authorization_header({"secrets": {"BEARER_AUTH_TOKEN": "abc"}})
        self.assertEqual(header, "Bearer abc")

    def test_bearer_prefix_not_doubled(self):
        header = get_authorization_header({"secrets": {"BEARER_AUTH_TOKEN": "Bearer abc"}})
        self.assertEqual(header, "Bearer abc")

    def test_basic_auth(self):
        header = get_authorization_header(
            {"secrets": {"BASIC_USERNAME": "user", "BASIC_PASSWORD": "pass"}}
        )
        self.assertEqual(header, "Basic " + base64.b64encode(b"user:pass").decode())

    def test_basic_auth_requires_both_parts(self):
        with self.assertRaises(CredentialError):
            get_authorization_header({"secrets": {"BASIC_USERNAME": "user"}})

    def test_authorization_code_token(self):
        header = get_authorization_header(
            {"secrets": {"OAUTH2_AUTHORIZATION_CODE_ACCESS_TOKEN": "ac-token"}}
        )
        self.assertEqual(header, "Bearer ac-token")

    def test_bearer_wins_over_basic(self):
        header = get_authorization_header(
            {
                "secrets": {
                    "BEARER_AUTH_TOKEN": "abc",
                    "BASIC_USERNAME": "user",
                    "BASIC_PASSWORD": "pass",
                }
            }
        )
        self.assertEqual(header, "Bearer abc")

    def test_basic_wins_over_oauth(self):
        header = get_authorization_header(
            {
                "secrets": {
                    "BASIC_USERNAME": "user",
                    "BASIC_PASSWORD": "pass",
                    "OAUTH2_AUTHORIZATION_CODE_ACCESS_TOKEN": "ac-token",
                }
            }
        )
        self.assertTrue(header.startswith("Basic "))

    def test_nothing_configured(self):
        with self.assertRaises(CredentialError) as ctx:
            get_authorization_header({})
        self.assertIn("No authentication configured", str(ctx.exception))


class ClientCredentialsTests(unittest.TestCase):
    @patch("urllib.request.urlopen")
    def test_header_auth_style(self, mock_urlopen):
        mock_urlopen.return_value = _token_response({"access_token": "cc-token"})

        header = get_authorization_header(
            _client_credentials_context(OAUTH2_CLIENT_CREDENTIALS_SCOPE="sp:scopes:all")
        )

        self.assertEqual(header, "Bearer cc-token")
        req = mock_urlopen.call_args[0][0]
        self.assertEqual(req.full_url, TOKEN_URL)
        self.assertEqual(req.get_method(), "POST")
        self.assertEqual(
            req.get_header("Authorization"),
            "Basic " + base64.b64encode(b"client-1:s3cret").decode(),
        )
        form = urllib.parse.parse_qs(req.data.decode())
        self.assertEqual(form["grant_type"], ["client_credentials"])
        self.assertEqual(form["scope"], ["sp:scopes:all"])
        self.assertNotIn("client_secret", form)

    @patch("urllib.request.urlopen")
    def test_in_params_auth_style(self, mock_urlopen):
        mock_urlopen.return_value = _token_response({"access_token": "cc-token"})

        get_authorization_header(
            _client_credentials_context(
                OAUTH2_CLIENT_CREDENTIALS_AUTH_STYLE="InParams",
                OAUTH2_CLIENT_CREDENTIALS_AUDIENCE="api://identitynow",
            )
        )

        req = mock_urlopen.call_args[0][0]
        self.assertIsNone(req.get_header("Authorization"))
        form = urllib.parse.parse_qs(req.data.decode())
        self.assertEqual(form["client_id"], ["client-1"])
        self.assertEqual(form["client_secret"], ["s3cret"])
        self.assertEqual(form["audience"], ["api://identitynow"])

    @patch("urllib.request.urlopen")
    def test_missing_token_url(self, mock_urlopen):
        context = _client_credentials_context()
        del context["environment"]["OAUTH2_CLIENT_CREDENTIALS_TOKEN_URL"]
        with self.assertRaises(CredentialError):
            get_authorization_header(context)
        mock_urlopen.assert_not_called()

    @patch("urllib.request.urlopen")
    def test_token_endpoint_error(self, mock_urlopen):
        mock_urlopen.side_effect = urllib.error.HTTPError(
            TOKEN_URL, 401, "Unauthorized", {}, io.BytesIO(b'{"error": "invalid_client"}')
        )
        with self.assertRaises(CredentialError) as ctx:
            get_authorization_header(_client_credentials_context())
        self.assertEqual(
            str(ctx.exception),
            'OAuth2 token request failed: 401 Unauthorized - {"error": "invalid_client"}',
        )

    @patch("urllib.request.urlopen")
    def test_response_without_access_token(self, mock_urlopen):
        mock_urlopen.return_value = _token_response({"token_type": "bearer"})
        with self.assertRaises(CredentialError) as ctx:
            get_authorization_header(_client_credentials_context())
        self.assertEqual(str(ctx.exception), "No access_token in OAuth2 response")


class ManagedSecretsTests(unittest.TestCase):
    def setUp(self):
        self._orig_id = auth_mod.SECRETS_MANAGER_SECRET_ID
        auth_mod.SECRETS_MANAGER_SECRET_ID = "identitynow/enable-account"
        auth_mod._managed_secrets_cache = {}
        auth_mod._managed_secrets_fetched_at = 0.0

    def tearDown(self):
        auth_mod.SECRETS_MANAGER_SECRET_ID = self._orig_id
        auth_mod._managed_secrets_cache = {}
        auth_mod._managed_secrets_fetched_at = 0.0

    def test_secret_map_supplies_credentials(self):
        fake_sm = MagicMock()
        fake_sm.get_secret_value.return_value = {
            "SecretString": json.dumps({"BEARER_AUTH_TOKEN": "from-sm"})
        }
        with patch.object(auth_mod, "_get_secretsmanager", return_value=fake_sm):
            header = get_authorization_header({"secrets": {}})
            get_authorization_header({"secrets": {}})

        self.assertEqual(header, "Bearer from-sm")
        fake_sm.get_secret_value.assert_called_once_with(SecretId="identitynow/enable-account")

    def test_context_secrets_win(self):
        fake_sm = MagicMock()
        fake_sm.get_secret_value.return_value = {
            "SecretString": json.dumps({"BEARER_AUTH_TOKEN": "from-sm"})
        }
        with patch.object(auth_mod, "_get_secretsmanager", return_value=fake_sm):
            header = get_authorization_header({"secrets": {"BEARER_AUTH_TOKEN": "from-ctx"}})
        self.assertEqual(header, "Bearer from-ctx")

    def test_non_json_secret_rejected(self):
        fake_sm = MagicMock()
        fake_sm.get_secret_value.return_value = {"SecretString": "plain-text"}
        with patch.object(auth_mod, "_get_secretsmanager", return_value=fake_sm):
            with self.assertRaises(CredentialError):
                get_authorization_header({})


class HttpUtilsTests(unittest.TestCase):
    def test_read_error_body(self):
        exc = urllib.error.HTTPError("https://x", 500, "err", {}, io.BytesIO(b"boom"))
        self.assertEqual(_read_error_body(exc), "boom")

    def test_read_error_body_empty(self):
        exc = urllib.error.HTTPError("https://x", 500, "err", {}, io.BytesIO(b""))
        self.assertEqual(_read_error_body(exc), "")


class SerializationTests(unittest.TestCase):
    def test_now_z_format(self):
        self.assertRegex(_now_z(), re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$"))


if __name__ == "__main__":
    unittest.main()
