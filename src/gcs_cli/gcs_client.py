"""Minimal Globus Connect Server endpoint API client."""

from typing import Any, Dict, Optional

import httpx

from .exceptions import RemoteError, RemoteServiceError
from .logging_config import get_logger
from .secure_input import SecureString

logger = get_logger("gcs_client")

USER_AGENT = "globus-connect-server-cli"


class GCSClient:
    """Bearer-authenticated client for ``https://<endpoint>/api/``."""

    def __init__(
        self,
        endpoint_fqdn: str,
        access_token: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not endpoint_fqdn:
            raise ValueError("endpoint FQDN is required")
        self._http = httpx.Client(
            base_url=f"https://{endpoint_fqdn}/api/",
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {access_token}",
                "User-Agent": USER_AGENT,
            },
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, json: Any = None) -> Dict[str, Any]:
        try:
            response = self._http.request(method, path.lstrip("/"), json=json)
        except httpx.HTTPError as exc:
            raise RemoteError(f"{method} {path}: {exc}") from exc
        if response.status_code >= 400:
            raise RemoteServiceError(response.status_code, response.text)
        if not response.content:
            return {}
        return response.json()

    def update_s3_key(
        self, credential_id: str, access_key_id: str, secret_access_key: SecureString
    ) -> Dict[str, Any]:
        """Replace the secret for an existing S3 IAM access key."""
        if not credential_id:
            raise ValueError("credential ID is required")
        if not access_key_id:
            raise ValueError("access key ID is required")
        logger.debug(f"Updating S3 key {access_key_id} (secret {secret_access_key})")
        body = {
            "access_key_id": access_key_id,
            "secret_access_key": secret_access_key.value,
        }
        return self._request(
            "PATCH", f"user-credentials/{credential_id}/s3-keys/{access_key_id}", json=body
        )
