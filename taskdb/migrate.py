from __future__ import annotations

import argparse
import hashlib
import re
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

import sqlalchemy as sa

from taskdb.cli import run_command
from taskdb.connection import open_connection
from taskdb.errors import MigrationError
from taskdb.logging import logger
from taskdb.settings import DbSettings


# 001.do.users.sql, 001.undo.users.sql, 002.do.sql
_FILE_RE = re.compile(r"^(?P<version>\d+)\.(?P<action>do|undo)(?:\.(?P<name>.+))?\.sql$")


def _now() -> datetime:
    return datetime.now(tz=UTC)


def checksum(sql: str) -> str:
    # Line endings are normalized so a checkout on Windows does not look like drift.
    return hashlib.md5(sql.replace("\r\n", "\n").encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Migration:
    version: int
    action: Literal["do", "undo"]
    name: str
    path: Path

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8")

    @property
    def md5(self) -> str:
        return checksum(self.read())


@dataclass(frozen=True)
class MigrationSet:
    do: list[Migration]
    undo: dict[int, Migration] = field(default_factory=dict)

    @property
    def latest(self) -> int:
        return self.do[-1].version if self.do else 0

    def by_version(self) -> dict[int, Migration]:
        return {m.version: m for m in self.do}


@dataclass(frozen=True)
class AppliedMigration:
    version: int
    name: str | None
    md5: str | None
    run_at: datetime | None = None


@dataclass(frozen=True)
class MigrationPlan:
    direction: Literal["up", "down"]
    current: int
    target: int
    steps: list[Migration]


def discover_migrations(directory: Path) -> MigrationSet:
    if not directory.is_dir():
        raise MigrationError(f'Migration directory "{directory}" does not exist.')

    do: dict[int, Migration] = {}
    undo: dict[int, Migration] = {}
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix != ".sql":
            continue
        m = _FILE_RE.match(path.name)
        if not m:
            raise MigrationError(f"invalid migration file name {path.name!r} (expected <version>.<do|undo>.<name>.sql)")
        migration = Migration(
            version=int(m.group("version")),
            action=m.group("action"),  # type: ignore[arg-type]
            name=m.group("name") or "",
            path=path,
        )
        bucket = do if migration.action == "do" else undo
        if migration.version in bucket:
            raise MigrationError(
                f"duplicate {migration.action} migration for version {migration.version}: "
                f"{bucket[migration.version].path.name}, {path.name}"
            )
        bucket[migration.version] = migration

    return MigrationSet(do=[do[v] for v in sorted(do)], undo=undo)


def current_version(applied: dict[int, AppliedMigration]) -> int:
    return max(applied, default=0)


def validate(migrations: MigrationSet, applied: dict[int, AppliedMigration]) -> None:
    """
    Reject a ledger that no longer matches the files on disk.

    - an applied migration whose file body changed since it ran
    - a migration below the current version that was never applied
    """
    files = migrations.by_version()
    for version in sorted(applied):
        row = applied[version]
        m = files.get(version)
        if m is not None and row.md5 and m.md5 != row.md5:
            raise MigrationError(f"checksum mismatch for applied migration {version} ({m.path.name})")

    current = current_version(applied)
    for m in migrations.do:
        if m.version <= current and m.version not in applied:
            raise MigrationError(
                f"migration {m.version} ({m.path.name}) is older than the current version {current} but was never applied"
            )


def plan_migrations(
    migrations: MigrationSet, applied: dict[int, AppliedMigration], target: int | None = None
) -> MigrationPlan:
    validate(migrations, applied)
    current = current_version(applied)
    if target is None:
        target = max(migrations.latest, current)
    elif target != 0 and target not in migrations.by_version() and target not in applied:
        raise MigrationError(f"unknown target version {target}")

    if target >= current:
        steps = [m for m in migrations.do if current < m.version <= target]
        return MigrationPlan(direction="up", current=current, target=target, steps=steps)

    steps = []
    for version in sorted(applied, reverse=True):
        if version <= target:
            break
        undo = migrations.undo.get(version)
        if undo is None:
            raise MigrationError(f"cannot migrate down to {target}: no undo migration for version {version}")
        steps.append(undo)
    return MigrationPlan(direction="down", current=current, target=target, steps=steps)


def _table(conn: sa.Connection, settings: DbSettings) -> str:
    return conn.dialect.identifier_preparer.quote(settings.schema_table)


def ensure_ledger(conn: sa.Connection, settings: DbSettings) -> None:
    conn.execute(
        sa.text(
            f"CREATE TABLE IF NOT EXISTS {_table(conn, settings)} ("
            "version BIGINT PRIMARY KEY, name TEXT, md5 TEXT, run_at TIMESTAMPTZ NOT NULL DEFAULT now())"
        )
    )


def read_ledger(conn: sa.Connection, settings: DbSettings) -> dict[int, AppliedMigration]:
    rows = conn.execute(sa.text(f"SELECT version, name, md5, run_at FROM {_table(conn, settings)}")).mappings()
    return {int(r["version"]): AppliedMigration(int(r["version"]), r["name"], r["md5"], r["run_at"]) for r in rows}


def _execute_body(conn: sa.Connection, migration: Migration) -> None:
    sql = migration.read()
    if not sql.strip():
        return
    # Bodies hold several statements and plpgsql `$$` blocks; send them as-is without parameter parsing.
    conn.exec_driver_sql(sql, execution_options={"no_parameters": True})


def apply_step(conn: sa.Connection, settings: DbSettings, migration: Migration) -> None:
    table = _table(conn, settings)
    try:
        with conn.begin():
            _execute_body(conn, migration)
            if migration.action == "do":
                conn.execute(
                    sa.text(f"INSERT INTO {table} (version, name, md5, run_at) VALUES (:v, :n, :m, :ts)"),
                    {"v": migration.version, "n": migration.name, "m": migration.md5, "ts": _now()},
                )
            else:
                conn.execute(sa.text(f"DELETE FROM {table} WHERE version = :v"), {"v": migration.version})
    except sa.exc.DBAPIError as exc:
        raise MigrationError(f"migration {migration.path.name} failed: {exc.orig}") from exc


def migrate(settings: DbSettings, target: int | None = None) -> list[Migration]:
    migrations = discover_migrations(settings.migrations_dir)

    with open_connection(settings) as conn:
        with conn.begin():
            ensure_ledger(conn, settings)
            applied = read_ledger(conn, settings)

        plan = plan_migrations(migrations, applied, target)
        if not plan.steps:
            logger.info("migrations_up_to_date", version=plan.current)
            return []

        logger.info(
            "migrations_pending",
            direction=plan.direction,
            current=plan.current,
            target=plan.target,
            count=len(plan.steps),
        )
        for step in plan.steps:
            apply_step(conn, settings, step)
            logger.info("migration_applied", version=step.version, action=step.action, file=step.path.name)

    logger.info("migration_completed", version=plan.target)
    return plan.steps


@dataclass(frozen=True)
class MigrationState:
    version: int
    name: str
    applied: bool
    run_at: datetime | None


def status(settings: DbSettings) -> tuple[int, list[MigrationState]]:
    migrations = discover_migrations(settings.migrations_dir)

    with open_connection(settings) as conn:
        # Read-only: a database that never ran a migration has no ledger yet.
        applied: dict[int, AppliedMigration] = {}
        if sa.inspect(conn).has_table(settings.schema_table):
            applied = read_ledger(conn, settings)

    states = []
    for m in migrations.do:
        row = applied.get(m.version)
        states.append(MigrationState(m.version, m.name, row is not None, row.run_at if row else None))
    return current_version(applied), states


def _status_summary(settings: DbSettings) -> dict:
    current, states = status(settings)
    for s in states:
        logger.info("migration_status", version=s.version, name=s.name, applied=s.applied, run_at=s.run_at)
    return {"current": current, "pending": [s.version for s in states if not s.applied]}


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="db-migrate", description="Apply versioned SQL migrations.")
    parser.add_argument("--target", type=int, default=None, help="Migrate up or down to this version (default: latest).")
    parser.add_argument("--status", action="store_true", help="Report applied and pending migrations without changing anything.")
    parser.add_argument("--migrations-dir", type=Path, default=None, help="Directory holding <version>.<do|undo>.<name>.sql files.")
    args = parser.parse_args(argv)

    if args.status:
        action = _status_summary
    else:
        def action(settings: DbSettings) -> dict:
            return {"steps": [m.path.name for m in migrate(settings, target=args.target)]}

    sys.exit(run_command("db-migrate", action, migrations_dir=args.migrations_dir))


if __name__ == "__main__":
    main()
