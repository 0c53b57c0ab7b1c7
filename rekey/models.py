"""
Record models for the four rotatable categories.

Records are plain dataclasses. Entities are stored as JSON documents; the
converters below pull out the fields rotation cares about and keep every
other key in ``extra`` so writing a record back never drops data.

Usage:
    from rekey.models import service_from_json, service_to_json

    record = service_from_json(row["json"], connection_type="DatabaseConnection")
    row_json = service_to_json(record)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

_SERVICE_KEYS = ("id", "name", "serviceType", "connection")
_USER_KEYS = ("id", "name", "isBot", "authenticationMechanism")
_PIPELINE_KEYS = ("id", "name", "pipelineType", "sourceConfig", "openMetadataServerConnection")
_WORKFLOW_KEYS = ("id", "name", "workflowType", "request", "openMetadataServerConnection")


@dataclass
class ServiceConnection:
    config: dict | None = None
    connection_type: str = ""
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class ServiceRecord:
    """A service entity; its connection config is the secret payload."""

    id: str
    name: str
    service_type: str
    connection: ServiceConnection | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def has_config(self) -> bool:
        return self.connection is not None and self.connection.config is not None


@dataclass
class UserRecord:
    """A user; only bots carry a rotatable authentication mechanism."""

    id: str
    name: str
    is_bot: bool = False
    authentication_mechanism: dict | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class IngestionPipelineRecord:
    id: str
    name: str
    pipeline_type: str = ""
    source_config: dict | None = None
    server_connection: dict | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkflowRecord:
    id: str
    name: str
    workflow_type: str = ""
    request: dict | None = None
    server_connection: dict | None = None
    extra: dict[str, Any] = field(default_factory=dict)


def _extra(doc: dict, known: tuple[str, ...], payloads: tuple[str, ...] = ()) -> dict[str, Any]:
    """Keys the record does not model. Payload keys that are present but null stay here too."""
    return {k: v for k, v in doc.items() if k not in known or (k in payloads and v is None)}


# ─── Services ────────────────────────────────────────────────────────────


def service_from_json(doc: dict, connection_type: str) -> ServiceRecord:
    """Convert a service entity document into a ServiceRecord.

    The connection type is not part of the document: it is implied by the
    repository (table) the entity was read from.
    """
    conn = doc.get("connection")
    connection = None
    if conn is not None:
        connection = ServiceConnection(
            config=conn.get("config"),
            connection_type=connection_type,
            extra=_extra(conn, ("config",), ("config",)),
        )
    return ServiceRecord(
        id=str(doc["id"]),
        name=doc.get("name") or "",
        service_type=doc.get("serviceType") or "",
        connection=connection,
        extra=_extra(doc, _SERVICE_KEYS, ("connection",)),
    )


def service_to_json(record: ServiceRecord) -> dict:
    doc = dict(record.extra)
    doc.update({"id": record.id, "name": record.name, "serviceType": record.service_type})
    if record.connection is not None:
        conn = dict(record.connection.extra)
        if record.connection.config is not None:
            conn["config"] = record.connection.config
        doc["connection"] = conn
    return doc


# ─── Users ───────────────────────────────────────────────────────────────


def user_from_json(doc: dict) -> UserRecord:
    return UserRecord(
        id=str(doc["id"]),
        name=doc.get("name") or "",
        is_bot=doc.get("isBot") is True,
        authentication_mechanism=doc.get("authenticationMechanism"),
        extra=_extra(doc, _USER_KEYS, ("authenticationMechanism",)),
    )


def user_to_json(record: UserRecord) -> dict:
    doc = dict(record.extra)
    doc.update({"id": record.id, "name": record.name, "isBot": record.is_bot})
    if record.authentication_mechanism is not None:
        doc["authenticationMechanism"] = record.authentication_mechanism
    return doc


# ─── Ingestion pipelines ─────────────────────────────────────────────────


def pipeline_from_json(doc: dict) -> IngestionPipelineRecord:
    return IngestionPipelineRecord(
        id=str(doc["id"]),
        name=doc.get("name") or "",
        pipeline_type=doc.get("pipelineType") or "",
        source_config=doc.get("sourceConfig"),
        server_connection=doc.get("openMetadataServerConnection"),
        extra=_extra(doc, _PIPELINE_KEYS, ("sourceConfig", "openMetadataServerConnection")),
    )


def pipeline_to_json(record: IngestionPipelineRecord) -> dict:
    doc = dict(record.extra)
    doc.update(
        {
            "id": record.id,
            "name": record.name,
            "pipelineType": record.pipeline_type,
        }
    )
    if record.source_config is not None:
        doc["sourceConfig"] = record.source_config
    if record.server_connection is not None:
        doc["openMetadataServerConnection"] = record.server_connection
    return doc


# ─── Workflows ───────────────────────────────────────────────────────────


def workflow_from_json(doc: dict) -> WorkflowRecord:
    return WorkflowRecord(
        id=str(doc["id"]),
        name=doc.get("name") or "",
        workflow_type=doc.get("workflowType") or "",
        request=doc.get("request"),
        server_connection=doc.get("openMetadataServerConnection"),
        extra=_extra(doc, _WORKFLOW_KEYS, ("request", "openMetadataServerConnection")),
    )


def workflow_to_json(record: WorkflowRecord) -> dict:
    doc = dict(record.extra)
    doc.update(
        {
            "id": record.id,
            "name": record.name,
            "workflowType": record.workflow_type,
        }
    )
    if record.request is not None:
        doc["request"] = record.request
    if record.server_connection is not None:
        doc["openMetadataServerConnection"] = record.server_connection
    return doc
