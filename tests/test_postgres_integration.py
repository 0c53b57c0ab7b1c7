"""
End-to-end rotation against a real PostgreSQL database.

Uses a dedicated test database (rekey_test by default, override with
REKEY_TEST_DB_NAME). Entity tables are created for the module and truncated
between tests; the module is skipped when PostgreSQL is unreachable.
"""

from __future__ import annotations

import os
from pathlib import Path

import psycopg2
import pytest
from psycopg2.extras import Json

from rekey.config import get_config, reset_config
from rekey.db.connection import close_pool, get_connection
from rekey.registry import SERVICE_CATALOG, default_registry
from rekey.rotation import rotate
from rekey.secrets import SecretsManagerConfig
from rekey.secrets.crypto import init_master_key

pytestmark = pytest.mark.integration

MIGRATION_SQL = Path(__file__).parent.parent / "rekey" / "migrations" / "001_init.sql"

ENTITY_TABLES = [table for _, table, _, _ in SERVICE_CATALOG] + [
    "user_entity",
    "ingestion_pipeline_entity",
    "automations_workflow",
]


@pytest.fixture(scope="module", autouse=True)
def database():
    previous = os.environ.get("REKEY_DB_NAME")
    os.environ["REKEY_DB_NAME"] = os.environ.get("REKEY_TEST_DB_NAME", "rekey_test")
    reset_config()
    close_pool()
    try:
        psycopg2.connect(**get_config().db.dict, connect_timeout=3).close()
    except psycopg2.Error as e:
        _restore(previous)
        pytest.skip(f"PostgreSQL unavailable: {e}")

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(MIGRATION_SQL.read_text())
            for table in ENTITY_TABLES:
                cur.execute(
                    f"CREATE TABLE IF NOT EXISTS {table} "
                    "(id VARCHAR(64) PRIMARY KEY, name VARCHAR(256), json JSONB NOT NULL, deleted BOOLEAN)"
                )
    yield
    close_pool()
    _restore(previous)


def _restore(previous: str | None) -> None:
    if previous is None:
        os.environ.pop("REKEY_DB_NAME", None)
    else:
        os.environ["REKEY_DB_NAME"] = previous
    reset_config()


@pytest.fixture(autouse=True)
def clean_tables(database):
    yield
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(f"TRUNCATE {', '.join(ENTITY_TABLES)}, vault_secrets")


def _insert(table: str, doc: dict, deleted: bool = False) -> None:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"INSERT INTO {table} (id, name, json, deleted) VALUES (%s, %s, %s, %s)",
                (doc["id"], doc["name"], Json(doc), deleted),
            )


def _load(table: str, record_id: str) -> dict:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT json FROM {table} WHERE id = %s", (record_id,))
            return cur.fetchone()[0]


def _seed() -> None:
    _insert(
        "dbservice_entity",
        {
            "id": "s1",
            "name": "mysql_prod",
            "serviceType": "Mysql",
            "connection": {"config": {"hostPort": "db:3306", "authType": {"password": "mysql-pass"}}},
        },
    )
    _insert(
        "dbservice_entity",
        {"id": "s2", "name": "retired", "serviceType": "Mysql", "connection": {"config": {"password": "x"}}},
        deleted=True,
    )
    _insert(
        "user_entity",
        {
            "id": "u1",
            "name": "ingestion-bot",
            "isBot": True,
            "authenticationMechanism": {"authType": "JWT", "config": {"jwtToken": "bot-jwt"}},
        },
    )
    _insert(
        "ingestion_pipeline_entity",
        {
            "id": "p1",
            "name": "mysql_prod_metadata",
            "pipelineType": "metadata",
            "sourceConfig": {"config": {"type": "DatabaseMetadata"}},
            "openMetadataServerConnection": {"securityConfig": {"jwtToken": "server-jwt"}},
        },
    )
    _insert(
        "automations_workflow",
        {
            "id": "w1",
            "name": "test-connection",
            "workflowType": "TEST_CONNECTION",
            "request": {"connection": {"config": {"password": "wf-pass"}}},
        },
    )


class TestRotationOverPostgres:
    def test_noop_to_database_and_back(self, tmp_path):
        _seed()
        key_path = init_master_key(tmp_path / ".master-key")
        db_backend = SecretsManagerConfig(provider="database", master_key_path=key_path)

        rotate(SecretsManagerConfig(), db_backend, "it", registry=default_registry())

        service = _load("dbservice_entity", "s1")
        assert service["connection"]["config"]["authType"]["password"] == (
            "secret:/it/database/Mysql/mysql_prod/authType.password"
        )
        assert service["connection"]["config"]["hostPort"] == "db:3306"
        assert _load("dbservice_entity", "s2")["connection"]["config"]["password"] == "x"
        assert _load("user_entity", "u1")["authenticationMechanism"]["config"]["jwtToken"].startswith("secret:")

        rotate(db_backend, SecretsManagerConfig(), "it", registry=default_registry())

        assert _load("dbservice_entity", "s1")["connection"]["config"]["authType"]["password"] == "mysql-pass"
        pipeline = _load("ingestion_pipeline_entity", "p1")
        assert pipeline["openMetadataServerConnection"]["securityConfig"]["jwtToken"] == "server-jwt"
        assert _load("automations_workflow", "w1")["request"]["connection"]["config"]["password"] == "wf-pass"
