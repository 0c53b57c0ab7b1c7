"""Tests for the Vault secrets manager against a mocked KV v2 HTTP API."""

from __future__ import annotations

import json

import httpx
import pytest

from rekey.errors import SecretCodecError
from rekey.secrets.vault import VaultSecretsManager

CONFIG = {"hostPort": "db:5432", "password": "pg-pass"}


class FakeVault:
    """Minimal KV v2 endpoint: POST/GET <mount>/data/<path>."""

    def __init__(self):
        self.secrets: dict[str, str] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("X-Vault-Token") != "root":
            return httpx.Response(403, json={"errors": ["permission denied"]})
        path = request.url.path
        if request.method == "POST":
            self.secrets[path] = json.loads(request.content)["data"]["value"]
            return httpx.Response(200, json={"data": {"version": 1}})
        if path not in self.secrets:
            return httpx.Response(404, json={"errors": []})
        return httpx.Response(200, json={"data": {"data": {"value": self.secrets[path]}}})


@pytest.fixture
def vault():
    return FakeVault()


def _manager(fake, token="root", **kwargs):
    client = httpx.Client(base_url="http://vault:8200", transport=httpx.MockTransport(fake))
    return VaultSecretsManager("cluster-a", url="http://vault:8200", token=token, client=client, **kwargs)


class TestVaultSecretsManager:
    def test_service_roundtrip(self, vault):
        manager = _manager(vault)
        encrypted = manager.encrypt_service_connection(CONFIG, "Postgres", "pg_prod", "database")

        assert encrypted["password"] == "secret:/cluster-a/database/Postgres/pg_prod/password"
        assert encrypted["hostPort"] == "db:5432"
        assert vault.secrets == {"/v1/secret/data/cluster-a/database/Postgres/pg_prod/password": "pg-pass"}
        assert manager.decrypt_service_connection(encrypted, "Postgres", "database") == CONFIG

    def test_custom_mount_and_namespace(self, vault):
        manager = _manager(vault, mount="/kv/", namespace="team-a")
        manager.encrypt_auth_mechanism("bot", {"authType": "JWT", "config": {"jwtToken": "t"}})

        request = vault.requests[0]
        assert request.url.path == "/v1/kv/data/cluster-a/bot/JWT/bot/config.jwtToken"
        assert request.headers["X-Vault-Namespace"] == "team-a"

    def test_already_referenced_not_rewritten(self, vault):
        manager = _manager(vault)
        encrypted = manager.encrypt_service_connection(CONFIG, "Postgres", "pg", "database")
        vault.requests.clear()

        assert manager.encrypt_service_connection(encrypted, "Postgres", "pg", "database") == encrypted
        assert vault.requests == []

    def test_missing_secret(self, vault):
        manager = _manager(vault)
        with pytest.raises(SecretCodecError, match="not found"):
            manager.decrypt_service_connection({"password": "secret:/cluster-a/nope"}, "Postgres", "database")

    def test_permission_denied(self, vault):
        manager = _manager(vault, token="wrong")
        with pytest.raises(SecretCodecError, match="403") as exc_info:
            manager.encrypt_service_connection(CONFIG, "Postgres", "pg", "database")
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    def test_unreachable(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        manager = _manager(refuse)
        with pytest.raises(SecretCodecError, match="Cannot reach Vault"):
            manager.decrypt_service_connection({"password": "secret:/cluster-a/x"}, "Postgres", "database")

    def test_plaintext_decrypt_needs_no_vault(self, vault):
        manager = _manager(vault)
        assert manager.decrypt_service_connection(CONFIG, "Postgres", "database") == CONFIG
        assert vault.requests == []
