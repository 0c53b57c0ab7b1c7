"""
Entity repositories — read and rewrite one category of records.

Rotation only needs three operations per category: list every record,
reload one by id, and write one back. Concrete repositories live in
rekey.store.postgres; tests use in-memory fakes implementing the same ABC.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

R = TypeVar("R")


class EntityRepository(ABC, Generic[R]):
    """Storage for one record category.

    Attributes:
        entity_type: Registry name of the category (e.g. "databaseService")
    """

    entity_type: str

    @abstractmethod
    def list_all(self) -> list[R]:
        """Every live record. May be a partial projection."""

    @abstractmethod
    def get_by_id(self, record_id: str) -> R:
        """Current persisted copy. Raises RecordNotFoundError if missing."""

    @abstractmethod
    def update(self, record: R) -> None:
        """Persist ``record`` over the stored copy with the same id."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.entity_type}>"


class ServiceRepository(EntityRepository[R]):
    """A repository for one service category.

    Attributes:
        service_category: Codec hint and secret id category (e.g. "database")
        connection_type: Connection config type owned here (e.g. "DatabaseConnection")
    """

    service_category: str
    connection_type: str
