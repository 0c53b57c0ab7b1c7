"""
Centralized configuration for rekey.

Everything is loaded from environment variables with sensible defaults.
Secrets manager parameters (vault address, AWS region, ...) live here too so a
rotation can be driven entirely from the environment; a YAML rotation plan
(see rekey.secrets.config) overrides them per run.

Usage:
    from rekey.config import get_config
    cfg = get_config()
    print(cfg.rotation.cluster_name)   # "rekey"
    print(cfg.db.dsn)                   # "dbname=metadata port=5432 user=..."
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection parameters for the metadata store."""

    host: str = ""  # empty = Unix socket
    port: int = 5432
    name: str = "metadata"
    user: str = "rekey"
    password: str = ""

    @property
    def dsn(self) -> str:
        """Return a psycopg2-compatible DSN string."""
        parts = [f"dbname={self.name}"]
        if self.host:
            parts.append(f"host={self.host}")
        parts.append(f"port={self.port}")
        if self.user:
            parts.append(f"user={self.user}")
        if self.password:
            parts.append(f"password={self.password}")
        return " ".join(parts)

    @property
    def dict(self) -> dict[str, str | int]:
        """Return a psycopg2.connect() kwargs dict."""
        d: dict[str, str | int] = {
            "dbname": self.name,
            "port": self.port,
        }
        if self.host:
            d["host"] = self.host
        if self.user:
            d["user"] = self.user
        if self.password:
            d["password"] = self.password
        return d


@dataclass(frozen=True)
class VaultConfig:
    """HashiCorp Vault (KV v2) parameters."""

    url: str = "http://127.0.0.1:8200"
    token: str = ""
    mount: str = "secret"
    namespace: str = ""
    timeout: float = 10.0


@dataclass(frozen=True)
class AwsConfig:
    """AWS Secrets Manager parameters."""

    region: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""


@dataclass(frozen=True)
class RotationConfig:
    """Which backends a rotation moves between, and how."""

    cluster_name: str = "rekey"
    source_provider: str = "noop"
    target_provider: str = "noop"
    secret_prefix: str = ""
    max_workers: int = 1


@dataclass(frozen=True)
class Config:
    """Top-level rekey configuration."""

    workspace: Path = field(default_factory=lambda: Path.home() / ".rekey")

    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    vault: VaultConfig = field(default_factory=VaultConfig)
    aws: AwsConfig = field(default_factory=AwsConfig)
    rotation: RotationConfig = field(default_factory=RotationConfig)

    # Extra payload keys treated as secrets, on top of the built-in set
    secret_fields: tuple[str, ...] = ()

    @property
    def master_key_path(self) -> Path:
        return self.workspace / ".master-key"


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    workspace = Path(os.environ.get("REKEY_WORKSPACE", Path.home() / ".rekey"))

    db = DatabaseConfig(
        host=os.environ.get("REKEY_DB_HOST", ""),
        port=int(os.environ.get("REKEY_DB_PORT", "5432")),
        name=os.environ.get("REKEY_DB_NAME", "metadata"),
        user=os.environ.get("REKEY_DB_USER", os.environ.get("USER", "rekey")),
        password=os.environ.get("REKEY_DB_PASSWORD", ""),
    )

    vault = VaultConfig(
        url=os.environ.get("REKEY_VAULT_URL", os.environ.get("VAULT_ADDR", "http://127.0.0.1:8200")),
        token=os.environ.get("REKEY_VAULT_TOKEN", os.environ.get("VAULT_TOKEN", "")),
        mount=os.environ.get("REKEY_VAULT_MOUNT", "secret"),
        namespace=os.environ.get("REKEY_VAULT_NAMESPACE", ""),
        timeout=float(os.environ.get("REKEY_VAULT_TIMEOUT", "10")),
    )

    aws = AwsConfig(
        region=os.environ.get("REKEY_AWS_REGION", os.environ.get("AWS_DEFAULT_REGION", "")),
        access_key_id=os.environ.get("REKEY_AWS_ACCESS_KEY_ID", ""),
        secret_access_key=os.environ.get("REKEY_AWS_SECRET_ACCESS_KEY", ""),
    )

    rotation = RotationConfig(
        cluster_name=os.environ.get("REKEY_CLUSTER_NAME", "rekey"),
        source_provider=os.environ.get("REKEY_SOURCE_PROVIDER", "noop"),
        target_provider=os.environ.get("REKEY_TARGET_PROVIDER", "noop"),
        secret_prefix=os.environ.get("REKEY_SECRET_PREFIX", ""),
        max_workers=int(os.environ.get("REKEY_ROTATION_WORKERS", "1")),
    )

    return Config(
        workspace=workspace,
        db=db,
        vault=vault,
        aws=aws,
        rotation=rotation,
        secret_fields=_split_csv(os.environ.get("REKEY_SECRET_FIELDS", "")),
    )
