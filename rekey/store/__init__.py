"""Entity stores: the read/write boundary of rotation."""

from rekey.store.base import EntityRepository, ServiceRepository
from rekey.store.postgres import (
    PostgresRepository,
    PostgresServiceRepository,
    ingestion_pipeline_repository,
    user_repository,
    workflow_repository,
)

__all__ = [
    "EntityRepository",
    "PostgresRepository",
    "PostgresServiceRepository",
    "ServiceRepository",
    "ingestion_pipeline_repository",
    "user_repository",
    "workflow_repository",
]
