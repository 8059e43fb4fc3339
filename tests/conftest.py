from __future__ import annotations

import sys
import uuid
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest


# Ensure the repo root is importable (so `import taskdb` works without an install).
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

ENV_VARS = [
    "POSTGRES_HOST",
    "POSTGRES_PORT",
    "POSTGRES_DATABASE",
    "POSTGRES_USER",
    "POSTGRES_PASSWORD",
    "POSTGRES_MAINTENANCE_DATABASE",
    "CAN_CREATE_DATABASE",
    "CAN_DROP_DATABASE",
    "CAN_SEED_DATABASE",
    "MIGRATIONS_DIR",
    "SCHEMA_TABLE",
    "SEED_PASSWORD",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # An operator shell with CAN_*_DATABASE=1 exported must not leak into gate tests.
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(scope="session")
def postgres() -> Iterator[object]:
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:16") as pg:
        yield pg


@pytest.fixture(scope="session")
def server(postgres) -> dict[str, object]:
    return {
        "postgres_host": postgres.get_container_host_ip(),
        "postgres_port": int(postgres.get_exposed_port(5432)),
        "postgres_user": postgres.username,
        "postgres_password": postgres.password,
        "postgres_maintenance_database": postgres.dbname,
    }


@pytest.fixture()
def make_settings(server: dict[str, object]) -> Callable[..., object]:
    from taskdb.settings import DbSettings

    def _make(**overrides: object) -> DbSettings:
        values = {**server, "postgres_database": "unused", **overrides}
        return DbSettings(**values)

    return _make


@pytest.fixture()
def fresh_db(make_settings) -> Iterator[object]:
    """A brand-new empty database per test, dropped afterwards."""
    from taskdb.lifecycle import create_database, drop_database

    name = f"taskdb_test_{uuid.uuid4().hex[:12]}"
    create_database(make_settings(postgres_database=name, can_create_database="1"))
    yield make_settings(postgres_database=name)
    drop_database(make_settings(postgres_database=name, can_drop_database="1"))
