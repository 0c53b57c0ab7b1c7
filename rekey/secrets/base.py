"""
Base secrets manager — the codec contract used by rotation.

One operation family per record category. The category operations are
implemented here once; providers only say how a single secret value is
protected and recovered.

Usage:
    class MyManager(SecretsManager):
        provider = SecretsManagerProvider.LOCAL

        def encrypt_value(self, secret_id: str, value: str) -> str:
            ...

        def decrypt_value(self, value: str) -> str:
            ...

Every operation returns a new value and leaves its argument untouched, so a
failed call never half-rewrites a payload.
"""

from __future__ import annotations

import copy
import dataclasses
import hashlib
import logging
import re
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from rekey.errors import SecretCodecError
from rekey.models import IngestionPipelineRecord, WorkflowRecord
from rekey.secrets.config import SecretsManagerProvider
from rekey.secrets.fields import secret_field_names, transform_secrets

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Prefix of a value that references a secret held in an external store
SECRET_REFERENCE_PREFIX = "secret:"

BOT_CATEGORY = "bot"
PIPELINE_CATEGORY = "ingestion-pipeline"
WORKFLOW_CATEGORY = "workflow"
SERVER_CONNECTION = "openMetadataServerConnection"

# Characters kept verbatim in a secret id component; every other byte is escaped as +XX
_ID_ESCAPED_CHARS = re.compile(r"[^A-Za-z0-9_.\-]+")


class SecretsManager(ABC):
    """Encrypts and decrypts the secret payload of every rotatable record.

    Attributes:
        provider: Backend identity of this manager
        cluster_name: Deployment identity, a component of every secret id
        prefix: Optional leading secret id component
    """

    provider: SecretsManagerProvider

    def __init__(
        self,
        cluster_name: str,
        *,
        prefix: str = "",
        secret_fields: Iterable[str] = (),
    ) -> None:
        self.cluster_name = cluster_name
        self.prefix = prefix
        self.secret_fields = secret_field_names(secret_fields)

    # ── Provider hooks ──────────────────────────────────────────────────

    @abstractmethod
    def encrypt_value(self, secret_id: str, value: str) -> str:
        """Protect one plaintext secret and return its stored form."""

    @abstractmethod
    def decrypt_value(self, value: str) -> str:
        """Recover the plaintext of one stored secret.

        Values not in this provider's encoded form are plaintext and are
        returned unchanged.
        """

    def is_encoded(self, value: str) -> bool:
        """True if ``value`` is already in this provider's stored form."""
        return False

    def close(self) -> None:
        """Release backend connections. Nothing to release by default."""

    # ── Secret ids ──────────────────────────────────────────────────────

    def build_secret_id(self, *parts: str) -> str:
        """Join id components as ``/prefix/cluster/part/...``.

        Components keep their case; characters outside ``[A-Za-z0-9_.-]`` are
        escaped as ``+XX`` per UTF-8 byte, so distinct names never share an id.
        The prefix may hold several ``/``-separated segments. Empty components
        are dropped.
        """
        segments = [s for s in self.prefix.split("/") if s]
        components = [*segments, self.cluster_name, *parts]
        return "/" + "/".join(_escape_id_component(str(p)) for p in components if str(p))

    def owns_reference(self, secret_id: str) -> bool:
        """True if ``secret_id`` lies under this manager's ``/prefix/cluster`` root."""
        return secret_id.startswith(self.build_secret_id() + "/")

    # ── Services ────────────────────────────────────────────────────────

    def encrypt_service_connection(
        self,
        config: dict,
        service_type: str,
        service_name: str,
        service_category: str,
    ) -> dict:
        return self._encrypt_payload(config, service_category, service_type, service_name)

    def decrypt_service_connection(
        self,
        config: dict,
        service_type: str,
        service_category: str,
    ) -> dict:
        return self._decrypt_payload(config)

    # ── Bot users ───────────────────────────────────────────────────────

    def encrypt_auth_mechanism(self, name: str, mechanism: dict) -> dict:
        auth_type = str(mechanism.get("authType") or "")
        return self._encrypt_payload(mechanism, BOT_CATEGORY, auth_type, name)

    def decrypt_auth_mechanism(self, name: str, mechanism: dict) -> dict:
        return self._decrypt_payload(mechanism)

    # ── Ingestion pipelines ─────────────────────────────────────────────

    def encrypt_ingestion_pipeline(self, pipeline: IngestionPipelineRecord) -> IngestionPipelineRecord:
        parts = (PIPELINE_CATEGORY, pipeline.pipeline_type, pipeline.name)
        return dataclasses.replace(
            pipeline,
            source_config=self._encrypt_optional(pipeline.source_config, *parts),
            server_connection=self._encrypt_optional(pipeline.server_connection, *parts, SERVER_CONNECTION),
            extra=copy.deepcopy(pipeline.extra),
        )

    def decrypt_ingestion_pipeline(self, pipeline: IngestionPipelineRecord) -> IngestionPipelineRecord:
        return dataclasses.replace(
            pipeline,
            source_config=self._decrypt_optional(pipeline.source_config),
            server_connection=self._decrypt_optional(pipeline.server_connection),
            extra=copy.deepcopy(pipeline.extra),
        )

    # ── Workflows ───────────────────────────────────────────────────────

    def encrypt_workflow(self, workflow: WorkflowRecord) -> WorkflowRecord:
        parts = (WORKFLOW_CATEGORY, workflow.workflow_type, workflow.name)
        return dataclasses.replace(
            workflow,
            request=self._encrypt_optional(workflow.request, *parts),
            server_connection=self._encrypt_optional(workflow.server_connection, *parts, SERVER_CONNECTION),
            extra=copy.deepcopy(workflow.extra),
        )

    def decrypt_workflow(self, workflow: WorkflowRecord) -> WorkflowRecord:
        return dataclasses.replace(
            workflow,
            request=self._decrypt_optional(workflow.request),
            server_connection=self._decrypt_optional(workflow.server_connection),
            extra=copy.deepcopy(workflow.extra),
        )

    # ── Payload helpers ─────────────────────────────────────────────────

    def _encrypt_payload(self, payload: dict, *id_parts: str) -> dict:
        def encrypt(path: str, value: str) -> str:
            if self.is_encoded(value):
                return value
            return self.encrypt_value(self.build_secret_id(*id_parts, path), value)

        return self._guarded("encrypt", lambda: transform_secrets(payload, encrypt, self.secret_fields))

    def _decrypt_payload(self, payload: dict) -> dict:
        def decrypt(_path: str, value: str) -> str:
            return self.decrypt_value(value)

        return self._guarded("decrypt", lambda: transform_secrets(payload, decrypt, self.secret_fields))

    def _encrypt_optional(self, payload: dict | None, *id_parts: str) -> dict | None:
        return None if payload is None else self._encrypt_payload(payload, *id_parts)

    def _decrypt_optional(self, payload: dict | None) -> dict | None:
        return None if payload is None else self._decrypt_payload(payload)

    def _guarded(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except SecretCodecError:
            raise
        except Exception as e:
            raise SecretCodecError(
                f"{self.provider.value} secrets manager failed to {operation} payload: {e}", e
            ) from e

    def __repr__(self) -> str:
        return f"<{type(self).__name__} provider={self.provider.value} cluster={self.cluster_name}>"


def _escape_id_component(part: str) -> str:
    return _ID_ESCAPED_CHARS.sub(lambda m: "".join(f"+{b:02X}" for b in m.group().encode("utf-8")), part)


def is_secret_reference(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(SECRET_REFERENCE_PREFIX)


class ExternalSecretsManager(SecretsManager):
    """A manager that keeps secret values in an external store.

    Payloads only hold ``secret:<id>`` references; subclasses implement the
    store's read and write. Only references under this manager's own
    ``/prefix/cluster`` root are treated as encoded: any other value, even one
    starting with ``secret:``, is plaintext.

    Two different values written to one secret id by the same manager raise
    SecretCodecError instead of overwriting each other.
    """

    def __init__(
        self,
        cluster_name: str,
        *,
        prefix: str = "",
        secret_fields: Iterable[str] = (),
    ) -> None:
        super().__init__(cluster_name, prefix=prefix, secret_fields=secret_fields)
        self._written: dict[str, str] = {}
        self._written_lock = threading.Lock()

    @abstractmethod
    def store_secret(self, secret_id: str, value: str) -> None:
        """Create or overwrite a secret."""

    @abstractmethod
    def fetch_secret(self, secret_id: str) -> str:
        """Read a secret. Raises SecretCodecError if it does not exist."""

    def encrypt_value(self, secret_id: str, value: str) -> str:
        self._claim(secret_id, value)
        self.store_secret(secret_id, value)
        logger.debug("Stored secret %s in %s", secret_id, self.provider.value)
        return SECRET_REFERENCE_PREFIX + secret_id

    def decrypt_value(self, value: str) -> str:
        if not self.is_encoded(value):
            return value
        return self.fetch_secret(value[len(SECRET_REFERENCE_PREFIX) :])

    def is_encoded(self, value: str) -> bool:
        return is_secret_reference(value) and self.owns_reference(value[len(SECRET_REFERENCE_PREFIX) :])

    def _claim(self, secret_id: str, value: str) -> None:
        digest = hashlib.sha256(value.encode("utf-8")).hexdigest()
        with self._written_lock:
            previous = self._written.setdefault(secret_id, digest)
        if previous != digest:
            raise SecretCodecError(f"Secret id {secret_id} was already written with a different value")
