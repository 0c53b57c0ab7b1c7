"""
Root-level shared test fixtures.

In-memory repositories stand in for PostgreSQL so rotation can be tested end
to end; every call is appended to a shared journal for ordering assertions.
"""

from __future__ import annotations

import copy
from typing import Any

import pytest

from rekey.config import reset_config
from rekey.errors import RecordNotFoundError
from rekey.models import ServiceConnection, ServiceRecord
from rekey.registry import (
    INGESTION_PIPELINE,
    USER,
    WORKFLOW,
    ConnectionTypeRegistry,
    EntityDescriptor,
)
from rekey.secrets import crypto
from rekey.store.base import EntityRepository, ServiceRepository


class InMemoryRepository(EntityRepository[Any]):
    """Dict-backed repository; records are copied in and out."""

    def __init__(self, entity_type: str, records=(), journal: list | None = None):
        self.entity_type = entity_type
        self.records = {r.id: copy.deepcopy(r) for r in records}
        self.journal = journal if journal is not None else []
        self.updates: list[Any] = []
        self.fail_on: dict[str, Exception] = {}

    def list_all(self):
        self.journal.append(("list", self.entity_type))
        return [copy.deepcopy(r) for r in self.records.values()]

    def get_by_id(self, record_id):
        self.journal.append(("get", self.entity_type, record_id))
        if record_id not in self.records:
            raise RecordNotFoundError(self.entity_type, record_id)
        return copy.deepcopy(self.records[record_id])

    def update(self, record):
        if record.id in self.fail_on:
            raise self.fail_on[record.id]
        self.journal.append(("update", self.entity_type, record.id))
        self.updates.append(copy.deepcopy(record))
        self.records[record.id] = copy.deepcopy(record)


class InMemoryServiceRepository(InMemoryRepository, ServiceRepository[Any]):
    def __init__(self, entity_type, service_category, connection_type, records=(), journal=None):
        super().__init__(entity_type, records, journal)
        self.service_category = service_category
        self.connection_type = connection_type


def service(record_id: str, name: str, service_type: str, connection_type: str, config: dict | None):
    return ServiceRecord(
        id=record_id,
        name=name,
        service_type=service_type,
        connection=ServiceConnection(config=config, connection_type=connection_type),
    )


def build_registry(services, users=None, pipelines=None, workflows=None, journal=None):
    """Registry over in-memory repositories; ``services`` is a list of service repositories."""
    journal = journal if journal is not None else []
    users = users or InMemoryRepository(USER, journal=journal)
    pipelines = pipelines or InMemoryRepository(INGESTION_PIPELINE, journal=journal)
    workflows = workflows or InMemoryRepository(WORKFLOW, journal=journal)
    descriptors = [EntityDescriptor(r.entity_type, r, r.connection_type) for r in services]
    descriptors += [
        EntityDescriptor(USER, users),
        EntityDescriptor(INGESTION_PIPELINE, pipelines),
        EntityDescriptor(WORKFLOW, workflows),
    ]
    return ConnectionTypeRegistry.from_descriptors(descriptors)


@pytest.fixture(autouse=True)
def _reset_caches():
    reset_config()
    crypto.reset_key_cache()
    yield
    reset_config()
    crypto.reset_key_cache()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove env vars that leak between tests."""
    for key in [
        "REKEY_WORKSPACE",
        "REKEY_DB_HOST",
        "REKEY_DB_PORT",
        "REKEY_DB_NAME",
        "REKEY_DB_USER",
        "REKEY_DB_PASSWORD",
        "REKEY_CLUSTER_NAME",
        "REKEY_SOURCE_PROVIDER",
        "REKEY_TARGET_PROVIDER",
        "REKEY_SECRET_PREFIX",
        "REKEY_SECRET_FIELDS",
        "REKEY_ROTATION_WORKERS",
        "REKEY_VAULT_URL",
        "REKEY_VAULT_TOKEN",
        "REKEY_VAULT_MOUNT",
        "REKEY_VAULT_NAMESPACE",
        "REKEY_VAULT_TIMEOUT",
        "REKEY_AWS_REGION",
        "REKEY_AWS_ACCESS_KEY_ID",
        "REKEY_AWS_SECRET_ACCESS_KEY",
        "VAULT_ADDR",
        "VAULT_TOKEN",
        "AWS_DEFAULT_REGION",
    ]:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def master_key() -> bytes:
    return b"k" * crypto.KEY_SIZE


@pytest.fixture
def journal() -> list:
    return []
