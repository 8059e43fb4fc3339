from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from taskdb.errors import ConfigError


MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


class DbSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="forbid")

    postgres_host: str
    postgres_port: int
    postgres_database: str
    postgres_user: str
    postgres_password: str
    # CREATE/DROP DATABASE cannot run while connected to the target itself.
    postgres_maintenance_database: str = "postgres"

    # Permission flags. Only a numeric value of exactly 1 allows the operation.
    can_create_database: str | None = None
    can_drop_database: str | None = None
    can_seed_database: str | None = None

    migrations_dir: Path = MIGRATIONS_DIR
    schema_table: str = "schemaversion"
    seed_password: str = "Password123$"

    log_level: Literal["debug", "info", "warning", "error", "critical"] = "info"

    @field_validator("log_level", mode="before")
    @classmethod
    def _lower_log_level(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v


def load_settings(**overrides: object) -> DbSettings:
    try:
        return DbSettings(**overrides)
    except ValidationError as exc:
        missing = sorted(str(e["loc"][0]).upper() for e in exc.errors() if e["type"] == "missing")
        if missing:
            raise ConfigError(f"missing required environment variables: {', '.join(missing)}") from exc
        raise ConfigError(str(exc)) from exc
