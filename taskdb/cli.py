from __future__ import annotations

from collections.abc import Callable
from typing import Any

from taskdb.errors import ConfigError, StoreError, TaskDbError
from taskdb.logging import configure_logging, logger
from taskdb.settings import DbSettings, load_settings


def run_command(command: str, action: Callable[[DbSettings], Any], **overrides: Any) -> int:
    """
    Shared process boundary for the db-* commands.

    Known failures are logged and mapped to exit status 1; anything else propagates with its traceback.
    """
    try:
        settings = load_settings(**{k: v for k, v in overrides.items() if v is not None})
    except ConfigError as exc:
        configure_logging("info", command=command)
        logger.error("command_failed", error=str(exc), error_type=type(exc).__name__)
        return 1

    configure_logging(settings.log_level, command=command)
    logger.info("command_started", database=settings.postgres_database, host=settings.postgres_host)
    try:
        result = action(settings)
    except StoreError as exc:
        logger.error("command_failed", error=str(exc), error_type=type(exc).__name__, kind=exc.kind.value, sqlstate=exc.sqlstate)
        return 1
    except TaskDbError as exc:
        logger.error("command_failed", error=str(exc), error_type=type(exc).__name__)
        return 1

    logger.info("command_completed", result=result)
    return 0
