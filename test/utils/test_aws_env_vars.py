import pytest

from procure_flow.utils.aws_env_vars import (
    get_grant_validity_hours,
    get_pending_request_expire_hours,
    get_permissions_table_name,
    is_block_on_active_grant_enabled,
)
from procure_flow.workflow.permission_workflow import WorkflowPolicy


def test_table_name_from_env():
    assert get_permissions_table_name() == "test-permissions-table"


def test_missing_table_name(monkeypatch):
    monkeypatch.delenv("PERMISSIONS_TABLE_NAME")
    with pytest.raises(ValueError, match="PERMISSIONS_TABLE_NAME"):
        get_permissions_table_name()


def test_policy_defaults(monkeypatch):
    for name in ("GRANT_VALIDITY_HOURS", "PENDING_REQUEST_EXPIRE_HOURS", "BLOCK_REQUEST_ON_ACTIVE_GRANT"):
        monkeypatch.delenv(name, raising=False)

    assert WorkflowPolicy.from_env() == WorkflowPolicy(
        grant_validity_hours=24, pending_request_expire_hours=0, block_on_active_grant=True
    )


def test_policy_overrides(monkeypatch):
    monkeypatch.setenv("GRANT_VALIDITY_HOURS", "72")
    monkeypatch.setenv("PENDING_REQUEST_EXPIRE_HOURS", "168")
    monkeypatch.setenv("BLOCK_REQUEST_ON_ACTIVE_GRANT", "False")

    assert get_grant_validity_hours() == 72
    assert get_pending_request_expire_hours() == 168
    assert not is_block_on_active_grant_enabled()


@pytest.mark.parametrize("value", ["0", "-1", "soon"])
def test_invalid_grant_validity(monkeypatch, value):
    monkeypatch.setenv("GRANT_VALIDITY_HOURS", value)
    with pytest.raises(ValueError):
        get_grant_validity_hours()


@pytest.mark.parametrize("value, expected", [("true", True), ("yes", True), ("0", False), ("no", False), ("", True)])
def test_block_on_active_grant_flag(monkeypatch, value, expected):
    monkeypatch.setenv("BLOCK_REQUEST_ON_ACTIVE_GRANT", value)
    assert is_block_on_active_grant_enabled() is expected
