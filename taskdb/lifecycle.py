from __future__ import annotations

import argparse
import sys
from enum import Enum

import sqlalchemy as sa

from taskdb.cli import run_command
from taskdb.connection import open_connection
from taskdb.errors import StoreErrorKind, classify, store_error
from taskdb.gate import require_permission
from taskdb.logging import logger
from taskdb.settings import DbSettings


class LifecycleOutcome(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    DROPPED = "dropped"
    NOT_FOUND = "not_found"


def _quote(conn: sa.Connection, name: str) -> str:
    return conn.dialect.identifier_preparer.quote_identifier(name)


def create_database(settings: DbSettings) -> LifecycleOutcome:
    require_permission(settings, "create")
    name = settings.postgres_database

    with open_connection(settings, database=settings.postgres_maintenance_database, autocommit=True) as conn:
        try:
            conn.exec_driver_sql(f"CREATE DATABASE {_quote(conn, name)}")
        except sa.exc.DBAPIError as exc:
            match classify(exc):
                case StoreErrorKind.DUPLICATE_DATABASE:
                    logger.info("database_already_exists", database=name)
                    return LifecycleOutcome.ALREADY_EXISTS
                case _:
                    raise store_error(exc, f"creating database {name}") from exc

    logger.info("database_created", database=name)
    return LifecycleOutcome.CREATED


def drop_database(settings: DbSettings) -> LifecycleOutcome:
    require_permission(settings, "drop")
    name = settings.postgres_database

    with open_connection(settings, database=settings.postgres_maintenance_database, autocommit=True) as conn:
        try:
            conn.exec_driver_sql(f"DROP DATABASE {_quote(conn, name)}")
        except sa.exc.DBAPIError as exc:
            match classify(exc):
                case StoreErrorKind.UNDEFINED_DATABASE:
                    logger.info("database_does_not_exist", database=name)
                    return LifecycleOutcome.NOT_FOUND
                case _:
                    raise store_error(exc, f"dropping database {name}") from exc

    logger.info("database_dropped", database=name)
    return LifecycleOutcome.DROPPED


def _parser(command: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=f"db-{command}", description=f"{command.capitalize()} the application database.")
    parser.add_argument("--database", default=None, help="Database name (defaults to POSTGRES_DATABASE).")
    return parser


def create_main(argv: list[str] | None = None) -> None:
    args = _parser("create").parse_args(argv)
    sys.exit(run_command("db-create", lambda s: create_database(s).value, postgres_database=args.database))


def drop_main(argv: list[str] | None = None) -> None:
    args = _parser("drop").parse_args(argv)
    sys.exit(run_command("db-drop", lambda s: drop_database(s).value, postgres_database=args.database))
