"""
AWS Secrets Manager backend.

Requires the optional ``aws`` dependency group:
    pip install rekey[aws]
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from rekey.errors import SecretCodecError
from rekey.secrets.base import ExternalSecretsManager
from rekey.secrets.config import SecretsManagerProvider

logger = logging.getLogger(__name__)


def _create_client(region: str, access_key_id: str | None, secret_access_key: str | None) -> Any:
    try:
        import boto3
    except ImportError as e:
        raise SecretCodecError("boto3 is required for the aws provider: pip install rekey[aws]", e) from e

    kwargs: dict[str, str] = {"region_name": region}
    if access_key_id and secret_access_key:
        kwargs["aws_access_key_id"] = access_key_id
        kwargs["aws_secret_access_key"] = secret_access_key
    return boto3.client("secretsmanager", **kwargs)


class AwsSecretsManager(ExternalSecretsManager):
    provider = SecretsManagerProvider.AWS

    def __init__(
        self,
        cluster_name: str,
        *,
        region: str = "",
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        prefix: str = "",
        secret_fields: Iterable[str] = (),
        client: Any = None,
    ) -> None:
        super().__init__(cluster_name, prefix=prefix, secret_fields=secret_fields)
        self._client = client or _create_client(region, access_key_id, secret_access_key)
        self._not_found = self._client.exceptions.ResourceNotFoundException

    def store_secret(self, secret_id: str, value: str) -> None:
        try:
            self._client.put_secret_value(SecretId=secret_id, SecretString=value)
            return
        except self._not_found:
            pass
        except Exception as e:
            raise SecretCodecError(f"Cannot write secret {secret_id} to AWS: {e}", e) from e

        logger.debug("Secret %s does not exist yet, creating it", secret_id)
        try:
            self._client.create_secret(Name=secret_id, SecretString=value)
        except Exception as e:
            raise SecretCodecError(f"Cannot create secret {secret_id} in AWS: {e}", e) from e

    def fetch_secret(self, secret_id: str) -> str:
        try:
            response = self._client.get_secret_value(SecretId=secret_id)
        except self._not_found as e:
            raise SecretCodecError(f"Secret {secret_id} not found in AWS", e) from e
        except Exception as e:
            raise SecretCodecError(f"Cannot read secret {secret_id} from AWS: {e}", e) from e
        value = response.get("SecretString")
        if value is None:
            raise SecretCodecError(f"AWS secret {secret_id} has no string value")
        return value
