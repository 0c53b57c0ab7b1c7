"""Build a secrets manager from its configuration."""

from __future__ import annotations

import logging

from rekey.secrets.aws import AwsSecretsManager
from rekey.secrets.base import SecretsManager
from rekey.secrets.config import SecretsManagerConfig, SecretsManagerProvider
from rekey.secrets.database import DatabaseSecretsManager
from rekey.secrets.local import LocalSecretsManager
from rekey.secrets.noop import NoopSecretsManager
from rekey.secrets.vault import VaultSecretsManager

logger = logging.getLogger(__name__)


def create_secrets_manager(config: SecretsManagerConfig, cluster_name: str) -> SecretsManager:
    """Instantiate the manager for ``config.provider``."""
    common = {"prefix": config.prefix, "secret_fields": config.secret_fields}
    provider = config.provider

    manager: SecretsManager
    if provider == SecretsManagerProvider.NOOP:
        manager = NoopSecretsManager(cluster_name, **common)
    elif provider == SecretsManagerProvider.LOCAL:
        manager = LocalSecretsManager(cluster_name, master_key_path=config.master_key_path, **common)
    elif provider == SecretsManagerProvider.DATABASE:
        manager = DatabaseSecretsManager(cluster_name, master_key_path=config.master_key_path, **common)
    elif provider == SecretsManagerProvider.VAULT:
        manager = VaultSecretsManager(
            cluster_name,
            url=config.vault_url or "",
            token=config.vault_token or "",
            mount=config.vault_mount,
            namespace=config.vault_namespace,
            timeout=config.vault_timeout,
            **common,
        )
    elif provider == SecretsManagerProvider.AWS:
        manager = AwsSecretsManager(
            cluster_name,
            region=config.aws_region or "",
            access_key_id=config.aws_access_key_id,
            secret_access_key=config.aws_secret_access_key,
            **common,
        )
    else:  # pragma: no cover - enum is exhaustive
        raise ValueError(f"Unsupported secrets manager provider: {provider}")

    logger.debug("Created %r", manager)
    return manager
