from __future__ import annotations

from enum import Enum

from sqlalchemy.exc import DBAPIError


class StoreErrorKind(str, Enum):
    DUPLICATE_DATABASE = "duplicate_database"
    UNDEFINED_DATABASE = "undefined_database"
    UNDEFINED_TABLE = "undefined_table"
    OTHER = "other"


_SQLSTATE_KINDS = {
    "42P04": StoreErrorKind.DUPLICATE_DATABASE,
    "3D000": StoreErrorKind.UNDEFINED_DATABASE,
    "42P01": StoreErrorKind.UNDEFINED_TABLE,
}


class TaskDbError(RuntimeError):
    pass


class ConfigError(TaskDbError):
    pass


class PermissionDenied(TaskDbError):
    pass


class ConnectivityError(TaskDbError):
    pass


class MigrationError(TaskDbError):
    pass


class StoreError(TaskDbError):
    def __init__(self, message: str, kind: StoreErrorKind = StoreErrorKind.OTHER, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.sqlstate = sqlstate


class SeedError(StoreError):
    pass


def sqlstate_of(exc: BaseException) -> str | None:
    # psycopg 3 exposes `sqlstate`; psycopg2 exposes `pgcode`.
    orig = exc.orig if isinstance(exc, DBAPIError) else exc
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def classify(exc: BaseException) -> StoreErrorKind:
    return _SQLSTATE_KINDS.get(sqlstate_of(exc) or "", StoreErrorKind.OTHER)


def store_error(exc: DBAPIError, context: str) -> StoreError:
    orig = exc.orig if exc.orig is not None else exc
    return StoreError(f"{context}: {orig}", kind=classify(exc), sqlstate=sqlstate_of(exc))
