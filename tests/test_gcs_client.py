"""Tests for the GCS endpoint API client."""

import json

import httpx
import pytest

from gcs_cli.exceptions import RemoteError, RemoteServiceError
from gcs_cli.gcs_client import GCSClient
from gcs_cli.secure_input import SecureString


def _client(handler):
    return GCSClient(
        "abc.def.data.globus.org", "access-token", transport=httpx.MockTransport(handler)
    )


class TestUpdateS3Key:
    def test_request_shape(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"code": "success"})

        with _client(handler) as client:
            result = client.update_s3_key("cred-1", "AKIAEXAMPLE", SecureString("newSecret"))

        assert result == {"code": "success"}
        request = seen[0]
        assert request.method == "PATCH"
        assert str(request.url) == (
            "https://abc.def.data.globus.org/api/user-credentials/cred-1/s3-keys/AKIAEXAMPLE"
        )
        assert request.headers["Authorization"] == "Bearer access-token"
        assert json.loads(request.content) == {
            "access_key_id": "AKIAEXAMPLE",
            "secret_access_key": "newSecret",
        }

    def test_empty_reply(self):
        with _client(lambda request: httpx.Response(204)) as client:
            assert client.update_s3_key("cred-1", "AKIA", SecureString("s")) == {}

    def test_error_status(self):
        with _client(lambda request: httpx.Response(404, text="no such credential")) as client:
            with pytest.raises(RemoteServiceError) as exc_info:
                client.update_s3_key("cred-1", "AKIA", SecureString("s"))

        assert exc_info.value.status_code == 404
        assert "no such credential" in exc_info.value.message

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        with _client(handler) as client:
            with pytest.raises(RemoteError):
                client.update_s3_key("cred-1", "AKIA", SecureString("s"))

    @pytest.mark.parametrize("credential,key_id", [("", "AKIA"), ("cred-1", "")])
    def test_required_arguments(self, credential, key_id):
        with _client(lambda request: httpx.Response(200)) as client:
            with pytest.raises(ValueError):
                client.update_s3_key(credential, key_id, SecureString("s"))


def test_endpoint_required():
    with pytest.raises(ValueError):
        GCSClient("", "token")
