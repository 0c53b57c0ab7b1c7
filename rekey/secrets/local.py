"""Local secrets manager: secrets encrypted in place with a master key file."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from rekey.errors import SecretCodecError
from rekey.secrets import crypto
from rekey.secrets.base import SecretsManager
from rekey.secrets.config import SecretsManagerProvider


class LocalSecretsManager(SecretsManager):
    """AES-256-GCM tokens (``enc:v1:...``) stored inside the payload itself.

    The secret id is not used: the ciphertext travels with the record.
    """

    provider = SecretsManagerProvider.LOCAL

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
                raise SecretCodecError("local secrets manager needs a master key or master_key_path")
            try:
                master_key = crypto.load_master_key(master_key_path)
            except (OSError, ValueError) as e:
                raise SecretCodecError(f"Cannot load master key: {e}", e) from e
        if len(master_key) != crypto.KEY_SIZE:
            raise SecretCodecError(f"Master key must be {crypto.KEY_SIZE} bytes, got {len(master_key)}")
        self._master_key = master_key

    def encrypt_value(self, secret_id: str, value: str) -> str:
        return crypto.encrypt_token(value, self._master_key)

    def decrypt_value(self, value: str) -> str:
        if not crypto.is_token(value):
            return value
        try:
            return crypto.decrypt_token(value, self._master_key)
        except ValueError as e:
            raise SecretCodecError(f"Cannot decrypt local secret: {e}", e) from e

    def is_encoded(self, value: str) -> bool:
        """Only tokens that authenticate under this manager's key count as encoded."""
        if not crypto.is_token(value):
            return False
        try:
            crypto.decrypt_token(value, self._master_key)
        except ValueError:
            return False
        return True
