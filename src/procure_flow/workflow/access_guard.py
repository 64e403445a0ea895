import logging
import typing
from datetime import datetime

from procure_flow.dynamodb.pengadaan_table import PengadaanTable
from procure_flow.dynamodb.permissions_table import PermissionsTable
from procure_flow.models.permission_models import GrantCheckModel, PermissionType
from procure_flow.models.user_models import UserRole
from procure_flow.utils.base_types import PengadaanId, UserId
from procure_flow.utils.time_utils import to_iso, utc_now

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class AccessGuard:
    """
    Decides whether a user may edit or delete a procurement record right now.

    Rules, first match wins: admins, then the record's owner, then a matching
    approved grant whose expiresAt is still ahead. Everything else is denied.
    Read-only, and backed by key lookups only.
    """

    def __init__(
        self,
        permissions_table: PermissionsTable,
        pengadaan_table: PengadaanTable,
        clock: typing.Callable[[], datetime] = utc_now,
    ) -> None:
        self.permissions_table = permissions_table
        self.pengadaan_table = pengadaan_table
        self.clock = clock

    def authorize(self, user_id: UserId, role: UserRole, pengadaan_id: PengadaanId, action: PermissionType) -> bool:
        return self.explain(user_id, role, pengadaan_id, action).hasPermission

    def explain(
        self,
        user_id: UserId,
        role: UserRole,
        pengadaan_id: PengadaanId,
        action: PermissionType,
    ) -> GrantCheckModel:
        if role == "admin":
            return GrantCheckModel(pengadaanId=pengadaan_id, action=action, hasPermission=True, isAdmin=True)

        owner_id = self.pengadaan_table.get_owner(pengadaan_id)
        if owner_id is not None and owner_id == user_id:
            return GrantCheckModel(pengadaanId=pengadaan_id, action=action, hasPermission=True, isOwner=True)

        now = self.clock()
        grant = self.permissions_table.find_active_grant(user_id, pengadaan_id, action, to_iso(now))
        # stored status alone never grants access; expiry is re-checked against now
        if grant is not None and grant.permissionType == action and grant.is_active_grant(now):
            return GrantCheckModel(
                pengadaanId=pengadaan_id,
                action=action,
                hasPermission=True,
                permission=grant.to_response(now),
            )

        _LOGGER.debug(f"Denied {action} on {pengadaan_id} for user {user_id}")
        return GrantCheckModel(pengadaanId=pengadaan_id, action=action, hasPermission=False)
