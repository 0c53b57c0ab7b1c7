"""
rekey CLI — entry point for all operations.

Usage:
    rekey rotate --from noop --to vault   # Re-encrypt every secret payload
    rekey rotate --plan rotation.yaml     # Same, backends from a YAML plan
    rekey init-key                        # Create the local master key
    rekey migrate                         # Create vault_secrets and audit_log
    rekey status                          # Count rotatable records
    rekey version                         # Show version
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

logger = logging.getLogger("rekey")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="rekey",
        description="rekey — rotate metadata secrets between secrets manager backends.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # rotate
    rotate_parser = subparsers.add_parser("rotate", help="Re-encrypt secrets under a new backend")
    rotate_parser.add_argument("--from", dest="source", help="Current provider (default: REKEY_SOURCE_PROVIDER)")
    rotate_parser.add_argument("--to", dest="target", help="New provider (default: REKEY_TARGET_PROVIDER)")
    rotate_parser.add_argument("--cluster", help="Cluster name (default: REKEY_CLUSTER_NAME)")
    rotate_parser.add_argument("--plan", type=str, help="YAML rotation plan (overrides --from/--to)")
    rotate_parser.add_argument("--workers", type=int, help="Records rotated concurrently per phase")

    # init-key
    key_parser = subparsers.add_parser("init-key", help="Create the local master key")
    key_parser.add_argument("--workspace", type=str, help="Workspace dir (default: ~/.rekey)")

    # migrate
    migrate_parser = subparsers.add_parser("migrate", help="Create rekey tables")
    migrate_parser.add_argument("--dry-run", action="store_true", help="Print SQL without executing")

    # status
    subparsers.add_parser("status", help="Count rotatable records per category")

    # version
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.version or args.command == "version":
        from rekey import __version__

        print(f"rekey {__version__}")
        return 0

    if args.command == "rotate":
        return _cmd_rotate(args)
    elif args.command == "init-key":
        return _cmd_init_key(args)
    elif args.command == "migrate":
        return _cmd_migrate(args)
    elif args.command == "status":
        return _cmd_status(args)
    else:
        parser.print_help()
        return 0


def _load_plan(args: argparse.Namespace):  # type: ignore[no-untyped-def]
    from rekey.config import get_config
    from rekey.secrets.config import RotationPlan, SecretsManagerConfig, load_rotation_plan

    cfg = get_config()
    if args.plan:
        plan = load_rotation_plan(args.plan, cfg)
        updates: dict[str, object] = {}
        if args.cluster:
            updates["cluster_name"] = args.cluster
        if args.workers:
            updates["max_workers"] = args.workers
        return plan.model_copy(update=updates) if updates else plan

    return RotationPlan(
        cluster_name=args.cluster or cfg.rotation.cluster_name,
        source=SecretsManagerConfig.from_env(args.source or cfg.rotation.source_provider, cfg),
        target=SecretsManagerConfig.from_env(args.target or cfg.rotation.target_provider, cfg),
        max_workers=args.workers or cfg.rotation.max_workers,
    )


def _cmd_rotate(args: argparse.Namespace) -> int:
    from rekey.audit import log_rotation
    from rekey.db.connection import close_pool
    from rekey.errors import RotationCancelledError, SecretsRotationError
    from rekey.rotation import rotate

    try:
        plan = _load_plan(args)
    except SecretsRotationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    source = plan.source.provider.value
    target = plan.target.provider.value
    stop_event = threading.Event()

    def _stop(signum, frame):  # type: ignore[no-untyped-def]
        logger.warning("Received signal %d, stopping after the current record", signum)
        stop_event.set()

    previous = signal.signal(signal.SIGTERM, _stop)
    previous_int = signal.signal(signal.SIGINT, _stop)

    log_rotation("Rotation started", plan.cluster_name, source, target)
    try:
        rotate(
            plan.source,
            plan.target,
            plan.cluster_name,
            max_workers=plan.max_workers,
            stop_event=stop_event,
        )
        log_rotation("Rotation completed", plan.cluster_name, source, target)
    except RotationCancelledError as e:
        log_rotation("Rotation cancelled", plan.cluster_name, source, target, status="cancelled")
        print(f"Cancelled: {e}", file=sys.stderr)
        return 1
    except SecretsRotationError as e:
        logger.error("Secrets rotation failed: %s", e)
        log_rotation("Rotation failed", plan.cluster_name, source, target, status="error", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        print("Records may be split between the old and new backend; fix the cause and re-run.", file=sys.stderr)
        return 1
    finally:
        signal.signal(signal.SIGTERM, previous)
        signal.signal(signal.SIGINT, previous_int)
        close_pool()

    print(f"Rotated secrets of cluster '{plan.cluster_name}' from {source} to {target}.")
    return 0


def _cmd_init_key(args: argparse.Namespace) -> int:
    from rekey.config import get_config
    from rekey.secrets.crypto import init_master_key

    cfg = get_config()
    key_path = Path(args.workspace) / ".master-key" if args.workspace else cfg.master_key_path
    existed = key_path.exists()
    try:
        init_master_key(key_path)
    except OSError as e:
        print(f"Error: Cannot create master key: {e}", file=sys.stderr)
        return 1
    if existed:
        print(f"Master key already exists at {key_path}")
    else:
        print(f"Created master key at {key_path}")
        print("Back it up: secrets encrypted with it cannot be recovered without it.")
    return 0


def _find_migration_sql() -> str | None:
    """Find the migration SQL file bundled with the package."""
    bundled = Path(__file__).parent / "migrations" / "001_init.sql"
    if bundled.exists():
        return bundled.read_text()
    return None


def _cmd_migrate(args: argparse.Namespace) -> int:
    sql = _find_migration_sql()
    if sql is None:
        print("Error: Migration SQL not found.")
        print("Expected at: rekey/migrations/001_init.sql")
        return 1

    if args.dry_run:
        print("-- Dry run: the following SQL would be executed --")
        print(sql)
        return 0

    import psycopg2

    from rekey.config import get_config

    cfg = get_config().db
    print(f"Connecting to {cfg.host or '<socket>'}:{cfg.port}/{cfg.name}...")
    try:
        conn = psycopg2.connect(**cfg.dict, connect_timeout=5)
        try:
            conn.autocommit = True
            with conn.cursor() as cur:
                cur.execute(sql)
        finally:
            conn.close()
    except psycopg2.Error as e:
        print(f"Error: Migration failed: {e}")
        print("Check REKEY_DB_* environment variables and ensure PostgreSQL is running.")
        return 1
    print("Migration completed successfully.")
    return 0


def _cmd_status(args: argparse.Namespace) -> int:
    import psycopg2

    from rekey import __version__
    from rekey.config import get_config
    from rekey.registry import default_registry
    from rekey.secrets.database import count_secrets

    cfg = get_config()
    print(f"rekey v{__version__}")
    print()
    print(f"  PostgreSQL:  {cfg.db.host or '<socket>'}:{cfg.db.port}/{cfg.db.name}")
    print(f"  Cluster:     {cfg.rotation.cluster_name}")
    print(f"  Rotation:    {cfg.rotation.source_provider} -> {cfg.rotation.target_provider}")
    print()

    registry = default_registry()
    repositories = [
        *registry.service_repositories(),
        registry.users,
        registry.ingestion_pipelines,
        registry.workflows,
    ]
    failed = False
    for repo in repositories:
        try:
            count = repo.count()  # type: ignore[attr-defined]
        except Exception as e:
            print(f"  {repo.entity_type:<20} UNREACHABLE — {e}")
            failed = True
            continue
        print(f"  {repo.entity_type:<20} {count}")

    try:
        stored = count_secrets(cfg.rotation.cluster_name)
    except (psycopg2.Error, ConnectionError) as e:
        print(f"  {'vault_secrets':<20} UNREACHABLE — {e}")
        failed = True
    else:
        print(f"  {'vault_secrets':<20} {stored}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
