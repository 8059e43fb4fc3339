from __future__ import annotations

import pytest


@pytest.fixture()
def settings_kwargs(tmp_path) -> dict[str, object]:
    # Unit tests never connect; port 1 makes an accidental connection fail fast.
    return {
        "postgres_host": "127.0.0.1",
        "postgres_port": 1,
        "postgres_database": "tasks",
        "postgres_user": "app",
        "postgres_password": "app",
        "migrations_dir": tmp_path,
    }
