from __future__ import annotations

from taskdb.errors import PermissionDenied
from taskdb.settings import DbSettings


# operation -> (settings field, environment variable)
GATES: dict[str, tuple[str, str]] = {
    "create": ("can_create_database", "CAN_CREATE_DATABASE"),
    "drop": ("can_drop_database", "CAN_DROP_DATABASE"),
    "seed": ("can_seed_database", "CAN_SEED_DATABASE"),
}


def flag_enabled(value: str | None) -> bool:
    """A gate flag is on only when its numeric value is exactly 1 ("1", " 1 ", "1.0")."""
    if value is None:
        return False
    try:
        return float(value.strip()) == 1
    except ValueError:
        return False


def require_permission(settings: DbSettings, operation: str) -> None:
    field, env_var = GATES[operation]
    if not flag_enabled(getattr(settings, field)):
        raise PermissionDenied(
            f"You can't {operation} the database. Set `{env_var}=1` environment variable to allow this operation."
        )
