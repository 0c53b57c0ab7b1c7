"""
HashiCorp Vault secrets manager (KV version 2 over the HTTP API).

Each secret is written to ``<mount>/data/<secret id>`` as ``{"value": ...}``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

import httpx

from rekey.errors import SecretCodecError
from rekey.secrets.base import ExternalSecretsManager
from rekey.secrets.config import SecretsManagerProvider

logger = logging.getLogger(__name__)


class VaultSecretsManager(ExternalSecretsManager):
    provider = SecretsManagerProvider.VAULT

    def __init__(
        self,
        cluster_name: str,
        *,
        url: str,
        token: str,
        mount: str = "secret",
        namespace: str | None = None,
        timeout: float = 10.0,
        prefix: str = "",
        secret_fields: Iterable[str] = (),
        client: httpx.Client | None = None,
    ) -> None:
        super().__init__(cluster_name, prefix=prefix, secret_fields=secret_fields)
        self.mount = mount.strip("/")
        headers = {"X-Vault-Token": token}
        if namespace:
            headers["X-Vault-Namespace"] = namespace
        if client is None:
            client = httpx.Client(base_url=url.rstrip("/"), timeout=timeout)
        client.headers.update(headers)
        self._client = client

    def _path(self, secret_id: str) -> str:
        return f"/v1/{self.mount}/data/{secret_id.lstrip('/')}"

    def store_secret(self, secret_id: str, value: str) -> None:
        try:
            resp = self._client.post(self._path(secret_id), json={"data": {"value": value}})
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SecretCodecError(
                f"Vault rejected write of {secret_id}: HTTP {e.response.status_code}", e
            ) from e
        except httpx.HTTPError as e:
            raise SecretCodecError(f"Cannot reach Vault to write {secret_id}: {e}", e) from e

    def fetch_secret(self, secret_id: str) -> str:
        try:
            resp = self._client.get(self._path(secret_id))
        except httpx.HTTPError as e:
            raise SecretCodecError(f"Cannot reach Vault to read {secret_id}: {e}", e) from e
        if resp.status_code == 404:
            raise SecretCodecError(f"Secret {secret_id} not found in Vault")
        try:
            resp.raise_for_status()
            value = resp.json()["data"]["data"]["value"]
        except httpx.HTTPStatusError as e:
            raise SecretCodecError(f"Vault rejected read of {secret_id}: HTTP {resp.status_code}", e) from e
        except (ValueError, KeyError, TypeError) as e:
            raise SecretCodecError(f"Unexpected Vault response for {secret_id}: {e}", e) from e
        if not isinstance(value, str):
            raise SecretCodecError(f"Vault secret {secret_id} has a non-string value")
        return value

    def close(self) -> None:
        self._client.close()
