from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from dataclasses import dataclass

import sqlalchemy as sa

from taskdb.cli import run_command
from taskdb.connection import open_connection
from taskdb.errors import SeedError, StoreErrorKind, classify, store_error
from taskdb.gate import require_permission
from taskdb.logging import logger
from taskdb.passwords import scrypt_hash
from taskdb.settings import DbSettings


@dataclass(frozen=True)
class DemoUser:
    username: str
    email: str


# Order matters: each user inherits the roles of everyone listed before it.
ROSTER: list[DemoUser] = [
    DemoUser(username="basic", email="basic@example.com"),
    DemoUser(username="moderator", email="moderator@example.com"),
    DemoUser(username="admin", email="admin@example.com"),
]

# roles/user_roles are owned by the auth schema, not by the migrations in this package.
REQUIRED_TABLES = ("users", "roles", "user_roles")

meta = sa.MetaData()

users = sa.Table(
    "users",
    meta,
    sa.Column("id", sa.Integer(), primary_key=True),
    sa.Column("email", sa.String(255), nullable=False),
    sa.Column("username", sa.String(255), nullable=False),
    sa.Column("password", sa.String(255), nullable=False),
)
roles = sa.Table(
    "roles",
    meta,
    sa.Column("id", sa.Integer(), primary_key=True),
    sa.Column("name", sa.String(255), nullable=False),
)
user_roles = sa.Table(
    "user_roles",
    meta,
    sa.Column("user_id", sa.Integer(), nullable=False),
    sa.Column("role_id", sa.Integer(), nullable=False),
)


def plan_role_grants(roster: Sequence[DemoUser]) -> dict[str, list[str]]:
    """Role names each user ends up with: its own role plus every role created before it."""
    accumulated: list[str] = []
    grants: dict[str, list[str]] = {}
    for user in roster:
        accumulated.append(user.username)
        grants[user.username] = list(accumulated)
    return grants


def list_tables(conn: sa.Connection, exclude: Sequence[str] = ()) -> list[str]:
    rows = conn.execute(
        sa.text(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_type = 'BASE TABLE' ORDER BY table_name"
        )
    ).scalars()
    return [t for t in rows if t not in exclude]


def truncate_tables(conn: sa.Connection, tables: Sequence[str]) -> None:
    if not tables:
        return
    quote = conn.dialect.identifier_preparer.quote_identifier
    conn.execute(sa.text(f"TRUNCATE TABLE {', '.join(quote(t) for t in tables)} RESTART IDENTITY CASCADE"))
    logger.info("tables_truncated", tables=list(tables))


def seed_users(conn: sa.Connection, roster: Sequence[DemoUser], password_hash: str) -> dict[str, int]:
    grants = plan_role_grants(roster)
    role_ids: dict[str, int] = {}
    user_ids: dict[str, int] = {}

    for user in roster:
        user_id = conn.execute(
            users.insert().returning(users.c.id),
            {"username": user.username, "email": user.email, "password": password_hash},
        ).scalar_one()
        role_ids[user.username] = conn.execute(
            roles.insert().returning(roles.c.id), {"name": user.username}
        ).scalar_one()

        conn.execute(
            user_roles.insert(),
            [{"user_id": user_id, "role_id": role_ids[name]} for name in grants[user.username]],
        )
        user_ids[user.username] = user_id
        logger.info("user_seeded", username=user.username, user_id=user_id, roles=grants[user.username])

    return user_ids


def seed(settings: DbSettings, roster: Sequence[DemoUser] = ROSTER) -> dict[str, list[str]]:
    require_permission(settings, "seed")
    # Hash once up front; scrypt is deliberately slow and every demo user shares the password.
    password_hash = scrypt_hash(settings.seed_password)

    with open_connection(settings) as conn:
        try:
            # One transaction: readers see either the old rows or the fully seeded ones.
            with conn.begin():
                # The ledger survives so the next migrate still knows which versions ran.
                tables = list_tables(conn, exclude=[settings.schema_table])
                missing = [t for t in REQUIRED_TABLES if t not in tables]
                if missing:
                    raise SeedError(
                        f"cannot seed: missing tables {', '.join(missing)} in database {settings.postgres_database}",
                        kind=StoreErrorKind.UNDEFINED_TABLE,
                    )
                truncate_tables(conn, tables)
                seed_users(conn, roster, password_hash)
        except sa.exc.DBAPIError as exc:
            match classify(exc):
                case StoreErrorKind.UNDEFINED_TABLE:
                    err = store_error(exc, "seeding database")
                    raise SeedError(str(err), kind=err.kind, sqlstate=err.sqlstate) from exc
                case _:
                    raise store_error(exc, "seeding database") from exc

    logger.info("users_seeded", count=len(roster))
    return plan_role_grants(roster)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="db-seed", description="Truncate every table and insert the demo users.")
    parser.add_argument("--database", default=None, help="Database name (defaults to POSTGRES_DATABASE).")
    args = parser.parse_args(argv)
    sys.exit(run_command("db-seed", seed, postgres_database=args.database))


if __name__ == "__main__":
    main()
