"""
Secrets rotation — re-encrypt every stored secret payload under a new backend.

The run is four sequential phases:

    services -> bot users -> ingestion pipelines -> workflows

Each record in a phase is reloaded by id, decrypted with the ``source``
manager (the backend the payload was written with), encrypted with the
``target`` manager, and written back through the repository that owns it.
The first failure stops the run: the failing record, the rest of its phase,
and every later phase are left untouched.

Usage:
    from rekey import rotate
    from rekey.secrets import SecretsManagerConfig

    rotate(
        SecretsManagerConfig(provider="noop"),
        SecretsManagerConfig(provider="vault", vault_url=..., vault_token=...),
        "prod",
    )
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeVar

from rekey.errors import RotationCancelledError, SecretCodecError, SecretsRotationError, StoreError
from rekey.models import IngestionPipelineRecord, ServiceRecord, UserRecord, WorkflowRecord
from rekey.registry import ConnectionTypeRegistry, default_registry
from rekey.secrets.base import SecretsManager
from rekey.secrets.config import SecretsManagerConfig
from rekey.secrets.factory import create_secrets_manager
from rekey.store.base import EntityRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Log progress every N records within a phase
PROGRESS_INTERVAL = 50


class RotationPhase(StrEnum):
    SERVICES = "services"
    BOT_USERS = "bot users"
    INGESTION_PIPELINES = "ingestion pipelines"
    WORKFLOWS = "workflows"


@dataclass(frozen=True)
class _Task:
    """One record to rotate: reload, transform and persist happen in ``run``."""

    record_id: str
    name: str
    run: Callable[[], None]


class SecretsRotationService:
    """Moves every secret payload from ``source`` to ``target``.

    Args:
        source: Manager the payloads are currently encrypted with
        target: Manager the payloads should be encrypted with
        registry: Repositories for every record category
        max_workers: Records rotated concurrently within a phase (1 = sequential)
        stop_event: When set, the run stops at the next record boundary
    """

    def __init__(
        self,
        source: SecretsManager,
        target: SecretsManager,
        registry: ConnectionTypeRegistry,
        *,
        max_workers: int = 1,
        stop_event: threading.Event | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.source = source
        self.target = target
        self.registry = registry
        self.max_workers = max_workers
        self._stop_event = stop_event

    def rotate_all(self) -> None:
        logger.info(
            "Rotating secrets: %s -> %s (%d service repositories, workers=%d)",
            self.source.provider.value,
            self.target.provider.value,
            len(self.registry),
            self.max_workers,
        )
        self.rotate_services()
        self.rotate_bot_users()
        self.rotate_ingestion_pipelines()
        self.rotate_workflows()
        logger.info("Secrets rotation complete")

    # ── Phases ──────────────────────────────────────────────────────────

    def rotate_services(self) -> None:
        self._check_cancelled()
        tasks = []
        for repository in self.registry.service_repositories():
            for record in self._list(repository):
                if not record.has_config:
                    logger.debug("Skipping service %s: no connection config", record.name)
                    continue
                tasks.append(_Task(record.id, record.name, self._service_task(record)))
        self._run_phase(RotationPhase.SERVICES, tasks)

    def rotate_bot_users(self) -> None:
        self._check_cancelled()
        repository = self.registry.users
        tasks = [
            _Task(user.id, user.name, lambda user=user: self._rotate_bot_user(repository, user.id))
            for user in self._list(repository)
            if user.is_bot
        ]
        self._run_phase(RotationPhase.BOT_USERS, tasks)

    def rotate_ingestion_pipelines(self) -> None:
        self._check_cancelled()
        repository = self.registry.ingestion_pipelines
        tasks = [
            _Task(p.id, p.name, lambda p=p: self._rotate_pipeline(repository, p.id))
            for p in self._list(repository)
        ]
        self._run_phase(RotationPhase.INGESTION_PIPELINES, tasks)

    def rotate_workflows(self) -> None:
        self._check_cancelled()
        repository = self.registry.workflows
        tasks = [
            _Task(w.id, w.name, lambda w=w: self._rotate_workflow(repository, w.id))
            for w in self._list(repository)
        ]
        self._run_phase(RotationPhase.WORKFLOWS, tasks)

    # ── Per-record rotation ─────────────────────────────────────────────

    def _service_task(self, record: ServiceRecord) -> Callable[[], None]:
        connection_type = record.connection.connection_type if record.connection else ""

        def run() -> None:
            self._rotate_service(self.registry.lookup(connection_type), record.id)

        return run

    def _rotate_service(self, repository: Any, record_id: str) -> None:
        current: ServiceRecord = self._reload(repository, record_id)
        connection = current.connection
        if connection is None or connection.config is None:
            logger.debug("Service %s lost its connection config since listing", current.name)
            return
        config = connection.config

        category = repository.service_category
        plain = self._codec(
            lambda: self.source.decrypt_service_connection(config, current.service_type, category),
            "decrypt",
            current,
        )
        encrypted = self._codec(
            lambda: self.target.encrypt_service_connection(plain, current.service_type, current.name, category),
            "encrypt",
            current,
        )
        updated = dataclasses.replace(current, connection=dataclasses.replace(connection, config=encrypted))
        self._update(repository, updated)

    def _rotate_bot_user(self, repository: EntityRepository[UserRecord], record_id: str) -> None:
        current = self._reload(repository, record_id)
        mechanism = current.authentication_mechanism
        if mechanism is None:
            logger.debug("Bot %s has no authentication mechanism", current.name)
            return
        plain = self._codec(lambda: self.source.decrypt_auth_mechanism(current.name, mechanism), "decrypt", current)
        encrypted = self._codec(lambda: self.target.encrypt_auth_mechanism(current.name, plain), "encrypt", current)
        self._update(repository, dataclasses.replace(current, authentication_mechanism=encrypted))

    def _rotate_pipeline(self, repository: EntityRepository[IngestionPipelineRecord], record_id: str) -> None:
        current = self._reload(repository, record_id)
        plain = self._codec(lambda: self.source.decrypt_ingestion_pipeline(current), "decrypt", current)
        encrypted = self._codec(lambda: self.target.encrypt_ingestion_pipeline(plain), "encrypt", current)
        self._update(repository, encrypted)

    def _rotate_workflow(self, repository: EntityRepository[WorkflowRecord], record_id: str) -> None:
        current = self._reload(repository, record_id)
        plain = self._codec(lambda: self.source.decrypt_workflow(current), "decrypt", current)
        encrypted = self._codec(lambda: self.target.encrypt_workflow(plain), "encrypt", current)
        self._update(repository, encrypted)

    # ── Execution ───────────────────────────────────────────────────────

    def _run_phase(self, phase: RotationPhase, tasks: list[_Task]) -> None:
        tasks = _dedupe(tasks)
        total = len(tasks)
        logger.info("Rotating %d %s", total, phase.value)
        if not tasks:
            return
        if self.max_workers == 1:
            for done, task in enumerate(tasks, start=1):
                self._check_cancelled()
                task.run()
                _log_progress(phase, done, total)
            return
        self._run_parallel(phase, tasks)

    def _run_parallel(self, phase: RotationPhase, tasks: list[_Task]) -> None:
        failed = threading.Event()
        errors: list[Exception] = []
        lock = threading.Lock()
        done = 0
        total = len(tasks)

        def work(task: _Task) -> bool:
            if failed.is_set() or self._cancelled():
                return False
            try:
                task.run()
            except Exception as e:
                with lock:
                    errors.append(e)
                failed.set()
                return False
            return True

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="rekey-rotate") as pool:
            futures = [pool.submit(work, task) for task in tasks]
            for future in as_completed(futures):
                if future.result():
                    done += 1
                    _log_progress(phase, done, total)

        if errors:
            if len(errors) > 1:
                logger.warning("%d %s failed; raising the first", len(errors), phase.value)
            raise errors[0]
        if done < total:
            self._check_cancelled()

    def _cancelled(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    def _check_cancelled(self) -> None:
        if self._cancelled():
            logger.warning("Secrets rotation cancelled")
            raise RotationCancelledError("Secrets rotation was cancelled before completion")

    # ── Boundary wrappers ───────────────────────────────────────────────

    def _list(self, repository: EntityRepository[T]) -> list[T]:
        return _wrap(StoreError, f"list {repository.entity_type} records", repository.list_all)

    def _reload(self, repository: EntityRepository[T], record_id: str) -> T:
        return _wrap(
            StoreError,
            f"load {repository.entity_type} {record_id}",
            lambda: repository.get_by_id(record_id),
        )

    def _update(self, repository: EntityRepository[T], record: Any) -> None:
        _wrap(
            StoreError,
            f"update {repository.entity_type} {record.name}",
            lambda: repository.update(record),
        )

    def _codec(self, fn: Callable[[], T], operation: str, record: Any) -> T:
        return _wrap(SecretCodecError, f"{operation} secrets of {record.name}", fn)


def _wrap(error: type[SecretsRotationError], description: str, fn: Callable[[], T]) -> T:
    try:
        return fn()
    except SecretsRotationError:
        raise
    except Exception as e:
        raise error(f"Failed to {description}: {e}", e) from e


def _dedupe(tasks: list[_Task]) -> list[_Task]:
    seen: set[str] = set()
    unique = []
    for task in tasks:
        if task.record_id in seen:
            logger.debug("Skipping duplicate record %s (%s)", task.record_id, task.name)
            continue
        seen.add(task.record_id)
        unique.append(task)
    return unique


def _log_progress(phase: RotationPhase, done: int, total: int) -> None:
    if done == total or done % PROGRESS_INTERVAL == 0:
        logger.info("Rotated %d/%d %s", done, total, phase.value)


def _as_manager(
    value: SecretsManager | SecretsManagerConfig, cluster_name: str, created: list[SecretsManager]
) -> SecretsManager:
    if isinstance(value, SecretsManager):
        return value
    manager = create_secrets_manager(value, cluster_name)
    created.append(manager)
    return manager


def rotate(
    source_config: SecretsManagerConfig | SecretsManager,
    target_config: SecretsManagerConfig | SecretsManager,
    cluster_name: str,
    *,
    registry: ConnectionTypeRegistry | None = None,
    max_workers: int = 1,
    stop_event: threading.Event | None = None,
) -> None:
    """Rotate every secret payload from the source backend to the target backend.

    Returns on full completion. Raises the first SecretsRotationError
    otherwise; records may then be split between the old and new encoding.
    Managers built here from a config are closed before returning; managers
    passed in are left open.
    """
    if registry is None:
        registry = default_registry()
    created: list[SecretsManager] = []
    try:
        source = _as_manager(source_config, cluster_name, created)
        target = _as_manager(target_config, cluster_name, created)
        service = SecretsRotationService(
            source,
            target,
            registry,
            max_workers=max_workers,
            stop_event=stop_event,
        )
        service.rotate_all()
    finally:
        for manager in created:
            manager.close()
