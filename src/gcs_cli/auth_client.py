"""Globus Auth client: code exchange, token refresh and introspection.

Thin wrapper over ``httpx``. Only the manual copy/paste authorization code
flow is supported; the resulting ``TokenResponse`` is what gets stored.
"""

from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import ClientConfig
from .exceptions import AuthServiceError, RefreshFailedError
from .logging_config import get_logger

logger = get_logger("auth_client")

TOKEN_PATH = "/v2/oauth2/token"
INTROSPECT_PATH = "/v2/oauth2/token/introspect"
AUTHORIZE_PATH = "/v2/oauth2/authorize"
AUTH_CODE_PAGE = "/v2/web/auth-code"
DEFAULT_SCOPES = (
    "openid profile email "
    "urn:globus:auth:scope:auth.globus.org:view_identities "
    "urn:globus:auth:scope:transfer.api.globus.org:all"
)
USER_AGENT = "globus-connect-server-cli"


class TokenResponse(BaseModel):
    """OAuth2 token endpoint reply."""
    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1, repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    expires_in: int
    resource_server: Optional[str] = None
    scope: Optional[str] = None
    token_type: str = "Bearer"


class IntrospectResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    active: bool = False
    username: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    sub: Optional[str] = None
    scope: Optional[str] = None


class GlobusAuthClient:
    """Client for the Globus Auth OAuth2 endpoints."""

    def __init__(
        self,
        client_id: str,
        client_secret: Optional[str] = None,
        base_url: str = "https://auth.globus.org",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._base_url = base_url.rstrip("/")
        auth = (client_id, client_secret) if client_secret else None
        self._http = httpx.Client(
            base_url=self._base_url,
            timeout=timeout,
            auth=auth,
            headers={"User-Agent": USER_AGENT},
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: ClientConfig, transport: Optional[httpx.BaseTransport] = None):
        return cls(
            client_id=config.client_id,
            client_secret=config.client_secret,
            base_url=config.auth_url,
            timeout=config.timeout_s,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def native_redirect_uri(self) -> str:
        """Globus page that displays the code for manual copy/paste."""
        return self._base_url + AUTH_CODE_PAGE

    def authorization_url(self, state: str, scopes: str, redirect_uri: Optional[str] = None) -> str:
        params = {
            "client_id": self._client_id,
            "redirect_uri": redirect_uri or self.native_redirect_uri,
            "scope": scopes,
            "state": state,
            "response_type": "code",
            "access_type": "offline",
        }
        return str(httpx.URL(self._base_url + AUTHORIZE_PATH, params=params))

    def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> TokenResponse:
        """Exchange an authorization code for tokens.

        Raises:
            AuthServiceError: If the exchange is rejected or the reply is malformed.
        """
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri or self.native_redirect_uri,
        }
        if not self._client_secret:
            form["client_id"] = self._client_id
        try:
            response = self._http.post(TOKEN_PATH, data=form)
            response.raise_for_status()
            return TokenResponse.model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            raise AuthServiceError(
                "exchange code", exc.response.text, exc.response.status_code
            ) from exc
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            raise AuthServiceError("exchange code", str(exc)) from exc

    def refresh_token(self, refresh_token: str) -> TokenResponse:
        """Exchange a refresh token for a new access token.

        Raises:
            RefreshFailedError: On transport errors, non-2xx replies or a
                malformed body.
        """
        form = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        if not self._client_secret:
            form["client_id"] = self._client_id
        try:
            response = self._http.post(TOKEN_PATH, data=form)
            response.raise_for_status()
            return TokenResponse.model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            logger.debug(f"Refresh rejected with status {exc.response.status_code}")
            raise RefreshFailedError(exc, exc.response.status_code) from exc
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            raise RefreshFailedError(exc) from exc

    def introspect_token(self, token: str) -> IntrospectResponse:
        """Look up the identity behind an access token.

        Raises:
            AuthServiceError: If the request fails or the reply is malformed.
        """
        try:
            response = self._http.post(INTROSPECT_PATH, data={"token": token})
            response.raise_for_status()
            return IntrospectResponse.model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            raise AuthServiceError(
                "introspect token", exc.response.text, exc.response.status_code
            ) from exc
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            raise AuthServiceError("introspect token", str(exc)) from exc
