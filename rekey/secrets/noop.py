"""Passthrough secrets manager: payloads are stored as plaintext."""

from __future__ import annotations

from rekey.secrets.base import SecretsManager
from rekey.secrets.config import SecretsManagerProvider


class NoopSecretsManager(SecretsManager):
    """Encrypt and decrypt are both the identity."""

    provider = SecretsManagerProvider.NOOP

    def encrypt_value(self, secret_id: str, value: str) -> str:
        return value

    def decrypt_value(self, value: str) -> str:
        return value
