"""Tests for the Globus Auth client using httpx.MockTransport."""

import base64
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from gcs_cli.auth_client import GlobusAuthClient
from gcs_cli.config import ClientConfig
from gcs_cli.exceptions import AuthServiceError, RefreshFailedError


def _client(handler, secret=None):
    return GlobusAuthClient(
        client_id="client-123",
        client_secret=secret,
        base_url="https://auth.example.org/",
        transport=httpx.MockTransport(handler),
    )


def _form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


class TestRefreshToken:
    def test_success(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "access_token": "new-access",
                    "refresh_token": "new-refresh",
                    "expires_in": 3600,
                    "resource_server": "auth.globus.org",
                    "token_type": "Bearer",
                },
            )

        with _client(handler) as client:
            response = client.refresh_token("old-refresh")

        assert response.access_token == "new-access"
        assert response.expires_in == 3600
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v2/oauth2/token"
        assert _form(request) == {
            "grant_type": "refresh_token",
            "refresh_token": "old-refresh",
            "client_id": "client-123",
        }

    def test_confidential_client_uses_basic_auth(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"access_token": "a", "expires_in": 60})

        with _client(handler, secret="s3cret") as client:
            client.refresh_token("rt")

        expected = base64.b64encode(b"client-123:s3cret").decode()
        assert seen[0].headers["Authorization"] == f"Basic {expected}"
        assert "client_id" not in _form(seen[0])

    def test_rejected(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant"})

        with _client(handler) as client:
            with pytest.raises(RefreshFailedError) as exc_info:
                client.refresh_token("rt")

        assert exc_info.value.status_code == 400
        assert "status: 400" in exc_info.value.message

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with _client(handler) as client:
            with pytest.raises(RefreshFailedError) as exc_info:
                client.refresh_token("rt")

        assert exc_info.value.status_code is None

    def test_malformed_reply(self):
        def handler(request):
            return httpx.Response(200, json={"token_type": "Bearer"})

        with _client(handler) as client:
            with pytest.raises(RefreshFailedError):
                client.refresh_token("rt")


class TestAuthorizationCodeFlow:
    def test_authorization_url(self):
        client = _client(lambda request: httpx.Response(500))

        url = urlparse(client.authorization_url("state-1", "openid email"))
        params = {k: v[0] for k, v in parse_qs(url.query).items()}

        assert url.netloc == "auth.example.org"
        assert url.path == "/v2/oauth2/authorize"
        assert params["client_id"] == "client-123"
        assert params["state"] == "state-1"
        assert params["scope"] == "openid email"
        assert params["response_type"] == "code"
        assert params["redirect_uri"] == "https://auth.example.org/v2/web/auth-code"
        client.close()

    def test_exchange_code(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={"access_token": "a", "refresh_token": "r", "expires_in": 172800, "scope": "openid"},
            )

        with _client(handler) as client:
            response = client.exchange_code("the-code")

        assert response.refresh_token == "r"
        form = _form(seen[0])
        assert form["grant_type"] == "authorization_code"
        assert form["code"] == "the-code"
        assert form["redirect_uri"] == "https://auth.example.org/v2/web/auth-code"

    def test_exchange_code_rejected(self):
        with _client(lambda request: httpx.Response(401, text="bad code")) as client:
            with pytest.raises(AuthServiceError) as exc_info:
                client.exchange_code("nope")

        assert exc_info.value.status_code == 401


class TestIntrospect:
    def test_introspect(self):
        def handler(request):
            assert request.url.path == "/v2/oauth2/token/introspect"
            assert _form(request) == {"token": "access"}
            return httpx.Response(
                200, json={"active": True, "username": "alice@example.org", "sub": "abc"}
            )

        with _client(handler) as client:
            identity = client.introspect_token("access")

        assert identity.active is True
        assert identity.username == "alice@example.org"
        assert identity.email is None

    def test_introspect_failure(self):
        with _client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(AuthServiceError):
                client.introspect_token("access")


def test_from_config():
    config = ClientConfig(client_id="from-config", auth_url="https://auth.example.org", timeout_s=5)
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"access_token": "a", "expires_in": 60})

    with GlobusAuthClient.from_config(config, transport=httpx.MockTransport(handler)) as client:
        client.refresh_token("rt")

    assert seen[0].url.host == "auth.example.org"
    assert _form(seen[0])["client_id"] == "from-config"
