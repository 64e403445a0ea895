from datetime import timedelta
from unittest.mock import Mock

import pytest

from procure_flow.dynamodb.pengadaan_table import PengadaanTable
from procure_flow.dynamodb.permissions_table import PermissionsTable
from procure_flow.models.permission_models import PermissionItemModel, make_request_key
from procure_flow.utils.base_types import PengadaanId, PermissionId, UserId
from procure_flow.utils.time_utils import to_iso
from procure_flow.workflow.access_guard import AccessGuard
from test_utils.clock import MutableClock

USER = UserId("U1")
OWNER = UserId("owner-1")
PGD = PengadaanId("PGD-007")


def make_grant(clock: MutableClock, expires_in: timedelta, permission_type="edit_form") -> PermissionItemModel:
    now_iso = to_iso(clock.now)
    return PermissionItemModel(
        permissionId=PermissionId("PRM-1"),
        userId=USER,
        adminId=UserId("A1"),
        pengadaanId=PGD,
        permissionType=permission_type,
        status="approved",
        reason="typo fix",
        requestKey=make_request_key(USER, PGD, permission_type),
        requestedAt=now_iso,
        respondedAt=now_iso,
        expiresAt=to_iso(clock.now + expires_in),
        createdAt=now_iso,
        updatedAt=now_iso,
    )


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def permissions_table() -> Mock:
    table = Mock(spec=PermissionsTable)
    table.find_active_grant.return_value = None
    return table


@pytest.fixture
def pengadaan_table() -> Mock:
    table = Mock(spec=PengadaanTable)
    table.get_owner.return_value = OWNER
    return table


@pytest.fixture
def guard(permissions_table, pengadaan_table, clock) -> AccessGuard:
    return AccessGuard(permissions_table, pengadaan_table, clock=clock)


def test_admin_is_always_allowed(guard: AccessGuard, pengadaan_table: Mock, permissions_table: Mock):
    result = guard.explain(UserId("A1"), "admin", PGD, "delete_form")

    assert result.hasPermission and result.isAdmin
    pengadaan_table.get_owner.assert_not_called()
    permissions_table.find_active_grant.assert_not_called()


def test_owner_is_allowed_without_grant(guard: AccessGuard, permissions_table: Mock):
    result = guard.explain(OWNER, "user", PGD, "delete_form")

    assert result.hasPermission and result.isOwner
    permissions_table.find_active_grant.assert_not_called()


def test_active_grant_allows_matching_action(guard: AccessGuard, permissions_table: Mock, clock: MutableClock):
    permissions_table.find_active_grant.return_value = make_grant(clock, timedelta(hours=1))

    result = guard.explain(USER, "user", PGD, "edit_form")

    assert result.hasPermission
    assert result.permission is not None and result.permission["id"] == "PRM-1"
    permissions_table.find_active_grant.assert_called_once_with(USER, PGD, "edit_form", to_iso(clock.now))


def test_lapsed_grant_denied_even_if_store_returns_it(
    guard: AccessGuard, permissions_table: Mock, clock: MutableClock
):
    permissions_table.find_active_grant.return_value = make_grant(clock, timedelta(hours=1))
    clock.advance(hours=2)

    assert not guard.authorize(USER, "user", PGD, "edit_form")


def test_grant_for_other_action_is_denied(guard: AccessGuard, permissions_table: Mock, clock: MutableClock):
    permissions_table.find_active_grant.return_value = make_grant(clock, timedelta(hours=1), "delete_form")

    assert not guard.authorize(USER, "user", PGD, "edit_form")


def test_no_owner_no_grant_is_denied(guard: AccessGuard, pengadaan_table: Mock):
    pengadaan_table.get_owner.return_value = None

    result = guard.explain(USER, "user", PGD, "edit_form")
    assert not result.hasPermission
    assert not result.isOwner and not result.isAdmin
