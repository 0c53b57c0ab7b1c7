"""
PostgreSQL repositories — entities stored as JSON documents, one table per category.

Every entity table has the same shape:

    id      VARCHAR PRIMARY KEY
    name    VARCHAR
    json    JSONB          -- the full entity document
    deleted BOOLEAN

Usage:
    from rekey.store.postgres import PostgresServiceRepository

    repo = PostgresServiceRepository(
        "databaseService", "dbservice_entity",
        service_category="database", connection_type="DatabaseConnection",
    )
    for record in repo.list_all():
        ...
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import TypeVar

from psycopg2.extras import Json, RealDictCursor

from rekey.db.connection import get_connection
from rekey.errors import RecordNotFoundError
from rekey.models import (
    IngestionPipelineRecord,
    ServiceRecord,
    UserRecord,
    WorkflowRecord,
    pipeline_from_json,
    pipeline_to_json,
    service_from_json,
    service_to_json,
    user_from_json,
    user_to_json,
    workflow_from_json,
    workflow_to_json,
)
from rekey.store.base import EntityRepository, ServiceRepository

logger = logging.getLogger(__name__)

R = TypeVar("R")

_TABLE_NAME = re.compile(r"^[a-z_][a-z0-9_]*$")


class PostgresRepository(EntityRepository[R]):
    """Generic JSON-document repository over one table."""

    def __init__(
        self,
        entity_type: str,
        table: str,
        from_json: Callable[[dict], R],
        to_json: Callable[[R], dict],
    ) -> None:
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self.entity_type = entity_type
        self.table = table
        self._from_json = from_json
        self._to_json = to_json

    def list_all(self) -> list[R]:
        with get_connection() as conn:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(
                f"SELECT json FROM {self.table} WHERE deleted IS NOT TRUE ORDER BY name, id"  # noqa: S608
            )
            rows = cur.fetchall()
        records = [self._from_json(row["json"]) for row in rows]
        logger.debug("Listed %d %s records", len(records), self.entity_type)
        return records

    def get_by_id(self, record_id: str) -> R:
        with get_connection() as conn:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(
                f"SELECT json FROM {self.table} WHERE id = %s AND deleted IS NOT TRUE",  # noqa: S608
                (record_id,),
            )
            row = cur.fetchone()
        if not row:
            raise RecordNotFoundError(self.entity_type, record_id)
        return self._from_json(row["json"])

    def update(self, record: R) -> None:
        doc = self._to_json(record)
        with get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                f"UPDATE {self.table} SET json = %s WHERE id = %s",  # noqa: S608
                (Json(doc), doc["id"]),
            )
            if cur.rowcount == 0:
                raise RecordNotFoundError(self.entity_type, doc["id"])

    def count(self) -> int:
        with get_connection() as conn:
            cur = conn.cursor()
            cur.execute(f"SELECT count(*) FROM {self.table} WHERE deleted IS NOT TRUE")  # noqa: S608
            row = cur.fetchone()
        return row[0] if row else 0


class PostgresServiceRepository(PostgresRepository[ServiceRecord], ServiceRepository[ServiceRecord]):
    """Services of one category; the table implies the connection type."""

    def __init__(
        self,
        entity_type: str,
        table: str,
        *,
        service_category: str,
        connection_type: str,
    ) -> None:
        super().__init__(
            entity_type,
            table,
            lambda doc: service_from_json(doc, connection_type),
            service_to_json,
        )
        self.service_category = service_category
        self.connection_type = connection_type


def user_repository(table: str = "user_entity") -> PostgresRepository[UserRecord]:
    return PostgresRepository("user", table, user_from_json, user_to_json)


def ingestion_pipeline_repository(
    table: str = "ingestion_pipeline_entity",
) -> PostgresRepository[IngestionPipelineRecord]:
    return PostgresRepository("ingestionPipeline", table, pipeline_from_json, pipeline_to_json)


def workflow_repository(table: str = "automations_workflow") -> PostgresRepository[WorkflowRecord]:
    return PostgresRepository("workflow", table, workflow_from_json, workflow_to_json)
