from __future__ import annotations

import pytest


@pytest.mark.parametrize("value", ["1", " 1 ", "1.0", "01"])
def test_flag_enabled_accepts_numeric_one(value: str) -> None:
    from taskdb.gate import flag_enabled

    assert flag_enabled(value) is True


@pytest.mark.parametrize("value", [None, "", "0", "true", "yes", "2", "-1", "nan"])
def test_flag_enabled_rejects_everything_else(value: str | None) -> None:
    from taskdb.gate import flag_enabled

    assert flag_enabled(value) is False


@pytest.mark.parametrize(
    ("operation", "env_var"),
    [("create", "CAN_CREATE_DATABASE"), ("drop", "CAN_DROP_DATABASE"), ("seed", "CAN_SEED_DATABASE")],
)
def test_require_permission_names_the_flag(settings_kwargs, operation: str, env_var: str) -> None:
    from taskdb.errors import PermissionDenied
    from taskdb.gate import require_permission
    from taskdb.settings import DbSettings

    settings = DbSettings(**settings_kwargs)
    with pytest.raises(PermissionDenied, match=f"`{env_var}=1`"):
        require_permission(settings, operation)


def test_require_permission_flags_are_independent(settings_kwargs) -> None:
    from taskdb.errors import PermissionDenied
    from taskdb.gate import require_permission
    from taskdb.settings import DbSettings

    settings = DbSettings(**settings_kwargs, can_seed_database="1")
    require_permission(settings, "seed")
    with pytest.raises(PermissionDenied):
        require_permission(settings, "drop")


def test_gated_commands_never_connect_when_denied(settings_kwargs, monkeypatch: pytest.MonkeyPatch) -> None:
    from taskdb import lifecycle, seed
    from taskdb.errors import PermissionDenied
    from taskdb.settings import DbSettings

    def boom(*args, **kwargs):
        raise AssertionError("connection opened despite a closed gate")

    monkeypatch.setattr(lifecycle, "open_connection", boom)
    monkeypatch.setattr(seed, "open_connection", boom)

    settings = DbSettings(**settings_kwargs, can_create_database="true", can_drop_database="0")
    for op in (lifecycle.create_database, lifecycle.drop_database, seed.seed):
        with pytest.raises(PermissionDenied):
            op(settings)
