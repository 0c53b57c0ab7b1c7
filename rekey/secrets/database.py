"""
Database secrets manager — secrets kept encrypted in the vault_secrets table.

Payloads hold ``secret:<id>`` references; the value is AES-256-GCM encrypted
with the master key and upserted under (cluster, secret id). The table is
created by ``rekey migrate``.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

import psycopg2

from rekey.db.connection import get_connection
from rekey.errors import SecretCodecError
from rekey.secrets import crypto
from rekey.secrets.base import ExternalSecretsManager
from rekey.secrets.config import SecretsManagerProvider


class DatabaseSecretsManager(ExternalSecretsManager):
    provider = SecretsManagerProvider.DATABASE

    def __init__(
        self,
        cluster_name: str,
        *,
        master_key: bytes | None = None,
        master_key_path: Path | str | None = None,
        prefix: str = "",
        secret_fields: Iterable[str] = (),
    ) -> None:
        super().__init__(cluster_name, prefix=prefix, secret_fields=secret_fields)
        if master_key is None:
            if master_key_path is None:
                raise SecretCodecError("database secrets manager needs a master key or master_key_path")
            try:
                master_key = crypto.load_master_key(master_key_path)
            except (OSError, ValueError) as e:
                raise SecretCodecError(f"Cannot load master key: {e}", e) from e
        self._master_key = master_key

    def store_secret(self, secret_id: str, value: str) -> None:
        encrypted = crypto.encrypt(value, self._master_key)
        try:
            with get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO vault_secrets (tenant_id, key, encrypted_value, category, metadata, updated_at)
                        VALUES (%s, %s, %s, %s, %s::jsonb, %s)
                        ON CONFLICT (tenant_id, key)
                        DO UPDATE SET encrypted_value = EXCLUDED.encrypted_value,
                                      category = EXCLUDED.category,
                                      metadata = EXCLUDED.metadata,
                                      updated_at = EXCLUDED.updated_at
                        """,
                        (
                            self.cluster_name,
                            secret_id,
                            psycopg2.Binary(encrypted),
                            "credential",
                            json.dumps({"source": "rekey"}),
                            datetime.now(UTC),
                        ),
                    )
        except psycopg2.Error as e:
            raise SecretCodecError(f"Cannot store secret {secret_id}: {e}", e) from e

    def fetch_secret(self, secret_id: str) -> str:
        try:
            with get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "SELECT encrypted_value FROM vault_secrets WHERE tenant_id = %s AND key = %s",
                        (self.cluster_name, secret_id),
                    )
                    row = cur.fetchone()
        except psycopg2.Error as e:
            raise SecretCodecError(f"Cannot read secret {secret_id}: {e}", e) from e
        if not row:
            raise SecretCodecError(f"Secret {secret_id} not found in vault_secrets")
        try:
            return crypto.decrypt(bytes(row[0]), self._master_key)
        except ValueError as e:
            raise SecretCodecError(f"Cannot decrypt secret {secret_id}: {e}", e) from e


def count_secrets(cluster_name: str) -> int:
    """Count secrets stored for a cluster."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT count(*) FROM vault_secrets WHERE tenant_id = %s", (cluster_name,))
            row = cur.fetchone()
            return row[0] if row else 0
