"""
Secrets manager configuration and YAML rotation plans.

A rotation plan names the backend the payloads are currently encrypted with
(``source``) and the one they should end up in (``target``):

    # rotation.yaml
    cluster_name: prod
    max_workers: 4
    source:
      provider: noop
    target:
      provider: vault
      vault_url: https://vault.internal:8200
      vault_token: s.xxxxx
      prefix: metadata

Unset backend parameters fall back to the environment (rekey.config).
"""

from __future__ import annotations

import logging
from enum import StrEnum
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from rekey.config import Config, get_config
from rekey.errors import ConfigurationError

logger = logging.getLogger(__name__)


class SecretsManagerProvider(StrEnum):
    NOOP = "noop"
    LOCAL = "local"
    DATABASE = "database"
    VAULT = "vault"
    AWS = "aws"


# Names accepted on the command line and in plans besides the canonical ones
_PROVIDER_ALIASES = {
    "db": SecretsManagerProvider.NOOP,
    "none": SecretsManagerProvider.NOOP,
    "passthrough": SecretsManagerProvider.NOOP,
    "hashicorp-vault": SecretsManagerProvider.VAULT,
    "aws-secrets-manager": SecretsManagerProvider.AWS,
}


def parse_provider(value: str | SecretsManagerProvider | None) -> SecretsManagerProvider:
    if value is None or value == "":
        return SecretsManagerProvider.NOOP
    if isinstance(value, SecretsManagerProvider):
        return value
    name = str(value).strip().lower()
    if name in _PROVIDER_ALIASES:
        return _PROVIDER_ALIASES[name]
    try:
        return SecretsManagerProvider(name)
    except ValueError:
        choices = ", ".join(p.value for p in SecretsManagerProvider)
        raise ValueError(f"Unknown secrets manager provider '{value}' (expected one of: {choices})") from None


class SecretsManagerConfig(BaseModel):
    """Parameters of one secrets backend."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: SecretsManagerProvider = SecretsManagerProvider.NOOP
    prefix: str = ""
    secret_fields: tuple[str, ...] = ()

    # local / database
    master_key_path: Path | None = None

    # vault
    vault_url: str | None = None
    vault_token: str | None = None
    vault_mount: str = "secret"
    vault_namespace: str | None = None
    vault_timeout: float = Field(default=10.0, gt=0)

    # aws
    aws_region: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None

    @field_validator("provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value: object) -> SecretsManagerProvider:
        return parse_provider(value)  # type: ignore[arg-type]

    @model_validator(mode="after")
    def _check_required(self) -> SecretsManagerConfig:
        if self.provider == SecretsManagerProvider.VAULT and not (self.vault_url and self.vault_token):
            raise ValueError("vault provider requires vault_url and vault_token")
        if self.provider == SecretsManagerProvider.AWS and not self.aws_region:
            raise ValueError("aws provider requires aws_region")
        return self

    @classmethod
    def from_env(
        cls,
        provider: str | SecretsManagerProvider | None,
        config: Config | None = None,
        **overrides: object,
    ) -> SecretsManagerConfig:
        """Build a backend config from rekey.config, with explicit overrides winning."""
        cfg = config or get_config()
        values: dict[str, object] = {
            "provider": provider,
            "prefix": cfg.rotation.secret_prefix,
            "secret_fields": cfg.secret_fields,
            "master_key_path": cfg.master_key_path,
            "vault_url": cfg.vault.url or None,
            "vault_token": cfg.vault.token or None,
            "vault_mount": cfg.vault.mount,
            "vault_namespace": cfg.vault.namespace or None,
            "vault_timeout": cfg.vault.timeout,
            "aws_region": cfg.aws.region or None,
            "aws_access_key_id": cfg.aws.access_key_id or None,
            "aws_secret_access_key": cfg.aws.secret_access_key or None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return _validate(cls, values, f"{provider} secrets manager")


class RotationPlan(BaseModel):
    """Source and target backends of one rotation run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    cluster_name: str = Field(min_length=1)
    source: SecretsManagerConfig = Field(default_factory=SecretsManagerConfig)
    target: SecretsManagerConfig
    max_workers: int = Field(default=1, ge=1)


def _validate(model: type[BaseModel], data: object, what: str):  # type: ignore[no-untyped-def]
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {what} configuration: {e}", e) from e


def load_rotation_plan(path: Path | str, config: Config | None = None) -> RotationPlan:
    """Load a YAML rotation plan, filling unset backend parameters from the environment."""
    plan_path = Path(path)
    try:
        with open(plan_path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read rotation plan {plan_path}: {e}", e) from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Rotation plan {plan_path} must be a mapping")

    if "target" not in data:
        raise ConfigurationError(f"Rotation plan {plan_path} has no 'target' backend")

    cfg = config or get_config()
    data.setdefault("cluster_name", cfg.rotation.cluster_name)
    for side in ("source", "target"):
        backend = data.get(side) or {}
        if not isinstance(backend, dict):
            raise ConfigurationError(f"Rotation plan '{side}' must be a mapping")
        provider = backend.pop("provider", None)
        data[side] = SecretsManagerConfig.from_env(provider, cfg, **backend)

    plan: RotationPlan = _validate(RotationPlan, data, "rotation plan")
    logger.info(
        "Loaded rotation plan %s: %s -> %s (cluster %s)",
        plan_path,
        plan.source.provider.value,
        plan.target.provider.value,
        plan.cluster_name,
    )
    return plan
