from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import sqlalchemy as sa
from sqlalchemy.engine import URL
from sqlalchemy.pool import NullPool

from taskdb.errors import ConnectivityError
from taskdb.logging import logger
from taskdb.settings import DbSettings


def database_url(settings: DbSettings, database: str | None = None) -> URL:
    return URL.create(
        "postgresql+psycopg",
        username=settings.postgres_user,
        password=settings.postgres_password,
        host=settings.postgres_host,
        port=settings.postgres_port,
        database=database or settings.postgres_database,
    )


@contextmanager
def open_connection(
    settings: DbSettings, *, database: str | None = None, autocommit: bool = False
) -> Iterator[sa.Connection]:
    """
    Open exactly one connection for the lifetime of a command.

    NullPool means closing the connection closes the socket; the engine is disposed on every exit path.
    """
    url = database_url(settings, database)
    engine = sa.create_engine(url, poolclass=NullPool)
    try:
        try:
            conn = engine.connect()
        except sa.exc.OperationalError as exc:
            raise ConnectivityError(
                f"could not connect to {url.host}:{url.port}/{url.database} as {url.username}: {exc.orig}"
            ) from exc
        logger.debug("db_connected", host=url.host, port=url.port, database=url.database)
        with conn:
            if autocommit:
                conn.execution_options(isolation_level="AUTOCOMMIT")
            yield conn
    finally:
        engine.dispose()
