"""
Connection type registry — routes each record to the repository that owns it.

Built once from explicit entity descriptors. Service-style descriptors (those
declaring a connection type) are indexed by connection type; the user,
ingestion pipeline and workflow repositories are resolved by entity type.

Usage:
    from rekey.registry import default_registry

    registry = default_registry()
    repo = registry.lookup("DatabaseConnection")
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from rekey.errors import RegistryEmptyError, RegistryError, UnmappedConnectionTypeError
from rekey.store.base import EntityRepository, ServiceRepository
from rekey.store.postgres import (
    PostgresServiceRepository,
    ingestion_pipeline_repository,
    user_repository,
    workflow_repository,
)

logger = logging.getLogger(__name__)

USER = "user"
INGESTION_PIPELINE = "ingestionPipeline"
WORKFLOW = "workflow"


@dataclass(frozen=True)
class EntityDescriptor:
    """One registered entity type.

    A descriptor with a ``connection_type`` is service-style: its repository
    owns every service record whose connection config has that type.
    """

    entity_type: str
    repository: EntityRepository[Any]
    connection_type: str | None = None

    @property
    def is_service(self) -> bool:
        return self.connection_type is not None


class ConnectionTypeRegistry:
    """Immutable index of repositories, built by ``from_descriptors``."""

    def __init__(
        self,
        services: dict[str, ServiceRepository[Any]],
        users: EntityRepository[Any],
        ingestion_pipelines: EntityRepository[Any],
        workflows: EntityRepository[Any],
    ) -> None:
        self._services = dict(services)
        self.users = users
        self.ingestion_pipelines = ingestion_pipelines
        self.workflows = workflows

    @classmethod
    def from_descriptors(cls, descriptors: Iterable[EntityDescriptor]) -> ConnectionTypeRegistry:
        services: dict[str, ServiceRepository[Any]] = {}
        others: dict[str, EntityRepository[Any]] = {}

        for descriptor in descriptors:
            connection_type = descriptor.connection_type
            if connection_type is not None:
                if connection_type in services:
                    raise RegistryError(
                        f"Connection type '{connection_type}' is registered twice "
                        f"({services[connection_type].entity_type} and {descriptor.entity_type})"
                    )
                services[connection_type] = descriptor.repository  # type: ignore[assignment]
            else:
                if descriptor.entity_type in others:
                    raise RegistryError(f"Entity type '{descriptor.entity_type}' is registered twice")
                others[descriptor.entity_type] = descriptor.repository

        if not services:
            raise RegistryEmptyError("No service entity types are registered")

        missing = [name for name in (USER, INGESTION_PIPELINE, WORKFLOW) if name not in others]
        if missing:
            raise RegistryError(f"Missing repositories for: {', '.join(missing)}")

        logger.debug("Registry built with %d connection types", len(services))
        return cls(services, others[USER], others[INGESTION_PIPELINE], others[WORKFLOW])

    def lookup(self, connection_type: str) -> ServiceRepository[Any]:
        try:
            return self._services[connection_type]
        except KeyError:
            raise UnmappedConnectionTypeError(connection_type) from None

    @property
    def connection_types(self) -> list[str]:
        """Registered connection types, in registration order."""
        return list(self._services)

    def service_repositories(self) -> list[ServiceRepository[Any]]:
        return list(self._services.values())

    def __len__(self) -> int:
        return len(self._services)


# ─── Platform catalog ────────────────────────────────────────────────────

# (entity type, table, service category, connection type)
SERVICE_CATALOG: tuple[tuple[str, str, str, str], ...] = (
    ("databaseService", "dbservice_entity", "database", "DatabaseConnection"),
    ("dashboardService", "dashboard_service_entity", "dashboard", "DashboardConnection"),
    ("messagingService", "messaging_service_entity", "messaging", "MessagingConnection"),
    ("pipelineService", "pipeline_service_entity", "pipeline", "PipelineConnection"),
    ("mlmodelService", "mlmodel_service_entity", "mlmodel", "MlModelConnection"),
    ("storageService", "storage_service_entity", "storage", "StorageConnection"),
    ("searchService", "search_service_entity", "search", "SearchConnection"),
    ("metadataService", "metadata_service_entity", "metadata", "MetadataConnection"),
    ("apiService", "api_service_entity", "api", "ApiConnection"),
)


def default_descriptors() -> list[EntityDescriptor]:
    descriptors = [
        EntityDescriptor(
            entity_type,
            PostgresServiceRepository(
                entity_type, table, service_category=category, connection_type=connection_type
            ),
            connection_type,
        )
        for entity_type, table, category, connection_type in SERVICE_CATALOG
    ]
    descriptors.append(EntityDescriptor(USER, user_repository()))
    descriptors.append(EntityDescriptor(INGESTION_PIPELINE, ingestion_pipeline_repository()))
    descriptors.append(EntityDescriptor(WORKFLOW, workflow_repository()))
    return descriptors


def default_registry() -> ConnectionTypeRegistry:
    """Registry over the PostgreSQL metadata store."""
    return ConnectionTypeRegistry.from_descriptors(default_descriptors())
