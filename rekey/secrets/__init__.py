"""
Secrets managers — pluggable codecs for the secret payload of every record.

Public API:
    create_secrets_manager(config, cluster)  → SecretsManager for config.provider
    SecretsManagerConfig.from_env(provider)  → backend config from the environment
    load_rotation_plan(path)                 → source/target backends from YAML
"""

from __future__ import annotations

from rekey.secrets.base import ExternalSecretsManager, SecretsManager
from rekey.secrets.config import (
    RotationPlan,
    SecretsManagerConfig,
    SecretsManagerProvider,
    load_rotation_plan,
    parse_provider,
)
from rekey.secrets.factory import create_secrets_manager

__all__ = [
    "ExternalSecretsManager",
    "RotationPlan",
    "SecretsManager",
    "SecretsManagerConfig",
    "SecretsManagerProvider",
    "create_secrets_manager",
    "load_rotation_plan",
    "parse_provider",
]
