import logging
import typing
import uuid
from datetime import datetime, timedelta

from procure_flow.dynamodb.pengadaan_table import PengadaanTable
from procure_flow.dynamodb.permissions_table import PermissionsTable
from procure_flow.models.permission_models import (
    PERMISSION_TYPES,
    BulkRespondErrorModel,
    BulkRespondResultModel,
    Decision,
    GrantCheckModel,
    PermissionItemModel,
    PermissionStatsModel,
    PermissionType,
    can_transition,
    make_request_key,
)
from procure_flow.models.user_models import CallerIdentity
from procure_flow.utils.aws_env_vars import (
    DEFAULT_GRANT_VALIDITY_HOURS,
    DEFAULT_PENDING_REQUEST_EXPIRE_HOURS,
    get_grant_validity_hours,
    get_pending_request_expire_hours,
    is_block_on_active_grant_enabled,
)
from procure_flow.utils.base_types import PengadaanId, PermissionId
from procure_flow.utils.errors import (
    ActiveGrantExistsError,
    AlreadyResolvedError,
    DuplicatePendingRequestError,
    ForbiddenError,
    InactiveAccountError,
    NotFoundError,
    NotPendingError,
    PermissionWorkflowError,
    RequestValidationError,
)
from procure_flow.utils.input_validator import InputValidator
from procure_flow.utils.time_utils import to_iso, utc_now
from procure_flow.workflow.access_guard import AccessGuard

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

DECISIONS: tuple[Decision, ...] = typing.get_args(Decision)


class WorkflowPolicy(typing.NamedTuple):
    grant_validity_hours: int = DEFAULT_GRANT_VALIDITY_HOURS
    pending_request_expire_hours: int = DEFAULT_PENDING_REQUEST_EXPIRE_HOURS
    block_on_active_grant: bool = True

    @classmethod
    def from_env(cls) -> "WorkflowPolicy":
        return cls(
            grant_validity_hours=get_grant_validity_hours(),
            pending_request_expire_hours=get_pending_request_expire_hours(),
            block_on_active_grant=is_block_on_active_grant_enabled(),
        )


def new_permission_id() -> PermissionId:
    return PermissionId(f"PRM-{uuid.uuid4().hex}")


class PermissionWorkflow:
    """
    State machine for edit/delete permission requests on procurement records.

    pending -> approved | rejected | expired, all three terminal. Every
    transition out of pending is a conditional write against the stored status,
    so concurrent responders on one request see exactly one winner; the losers
    get AlreadyResolvedError. Nothing here retries.
    """

    def __init__(
        self,
        permissions_table: PermissionsTable,
        pengadaan_table: PengadaanTable,
        access_guard: AccessGuard,
        policy: WorkflowPolicy = WorkflowPolicy(),
        clock: typing.Callable[[], datetime] = utc_now,
        id_factory: typing.Callable[[], PermissionId] = new_permission_id,
    ) -> None:
        self.permissions_table = permissions_table
        self.pengadaan_table = pengadaan_table
        self.access_guard = access_guard
        self.policy = policy
        self.clock = clock
        self.id_factory = id_factory

    def _require_active(self, caller: CallerIdentity) -> None:
        if not caller.is_active:
            _LOGGER.warning(f"Inactive account {caller.userId} attempted a state-changing operation.")
            raise InactiveAccountError("Account is not active")

    def _require_admin(self, caller: CallerIdentity) -> None:
        if not caller.is_admin:
            _LOGGER.warning(f"Non-admin {caller.userId} attempted an admin-only operation.")
            raise ForbiddenError("Access denied. Admin role required.")

    def _clean_pengadaan_id(self, pengadaan_id: typing.Any) -> PengadaanId:
        if not isinstance(pengadaan_id, str) or not pengadaan_id.strip():
            raise RequestValidationError("pengadaanId is required")
        cleaned = pengadaan_id.strip()
        InputValidator.validate_field(cleaned, "pengadaanId")
        return PengadaanId(cleaned)

    def _clean_permission_type(self, permission_type: typing.Any) -> PermissionType:
        if permission_type not in PERMISSION_TYPES:
            raise RequestValidationError(f"Invalid permission type. Must be one of: {', '.join(PERMISSION_TYPES)}")
        return permission_type

    def _clean_decision(self, decision: typing.Any, response: typing.Any) -> typing.Optional[str]:
        if decision not in DECISIONS:
            raise RequestValidationError("Invalid status. Must be approved or rejected.")
        return InputValidator.clean_admin_response(response, required=decision == "rejected")

    def request_permission(
        self,
        caller: CallerIdentity,
        pengadaan_id: typing.Any,
        permission_type: typing.Any,
        reason: typing.Any,
    ) -> PermissionItemModel:
        """
        Files a new pending request for the caller.

        :raises InactiveAccountError: Caller account is inactive
        :raises RequestValidationError: Bad reason, pengadaan id or permission type
        :raises NotFoundError: Unknown procurement record
        :raises DuplicatePendingRequestError: Tuple already has a pending request
        :raises ActiveGrantExistsError: Caller already holds an unexpired grant (when the policy blocks it)
        """
        self._require_active(caller)
        cleaned_pengadaan_id = self._clean_pengadaan_id(pengadaan_id)
        cleaned_type = self._clean_permission_type(permission_type)
        cleaned_reason = InputValidator.clean_reason(reason)

        if not self.pengadaan_table.exists(cleaned_pengadaan_id):
            raise NotFoundError(f"Pengadaan {cleaned_pengadaan_id} not found")

        if self.permissions_table.find_pending(caller.userId, cleaned_pengadaan_id, cleaned_type):
            raise DuplicatePendingRequestError("You already have a pending request for this form")

        now = self.clock()
        now_iso = to_iso(now)
        if self.policy.block_on_active_grant:
            if self.permissions_table.find_active_grant(caller.userId, cleaned_pengadaan_id, cleaned_type, now_iso):
                raise ActiveGrantExistsError("You already have active permission for this form")

        permission = PermissionItemModel(
            permissionId=self.id_factory(),
            userId=caller.userId,
            pengadaanId=cleaned_pengadaan_id,
            permissionType=cleaned_type,
            status="pending",
            reason=cleaned_reason,
            requestKey=make_request_key(caller.userId, cleaned_pengadaan_id, cleaned_type),
            requestedAt=now_iso,
            createdAt=now_iso,
            updatedAt=now_iso,
        )
        self.permissions_table.insert(permission)
        _LOGGER.info(
            f"Permission {permission.permissionId} requested by {caller.userId} for {cleaned_type} on "
            f"{cleaned_pengadaan_id}: '{InputValidator.sanitize_for_logging(cleaned_reason)}'"
        )
        return permission

    def _apply_decision(
        self,
        caller: CallerIdentity,
        permission_id: typing.Any,
        decision: Decision,
        response: typing.Optional[str],
    ) -> PermissionItemModel:
        if not isinstance(permission_id, str) or not permission_id.strip():
            raise RequestValidationError("Permission ID is required")
        permission_id = PermissionId(permission_id.strip())

        current = self.permissions_table.get_by_id(permission_id)
        if current is None:
            raise NotFoundError(f"Permission {permission_id} not found")
        if not can_transition(current.status, decision):
            raise AlreadyResolvedError(f"Permission {permission_id} has already been {current.status}")

        now = self.clock()
        now_iso = to_iso(now)
        new_fields: dict[str, typing.Any] = {
            "status": decision,
            "adminId": caller.userId,
            "adminResponse": response,
            "respondedAt": now_iso,
            "updatedAt": now_iso,
        }
        if decision == "approved":
            new_fields["expiresAt"] = to_iso(now + timedelta(hours=self.policy.grant_validity_hours))

        updated = self.permissions_table.compare_and_set_status(
            permission_id,
            "pending",
            new_fields,
            request_key=current.requestKey,
        )
        _LOGGER.info(f"Permission {permission_id} {decision} by admin {caller.userId}")
        return updated

    def respond(
        self,
        caller: CallerIdentity,
        permission_id: typing.Any,
        decision: typing.Any,
        response: typing.Any = None,
    ) -> PermissionItemModel:
        """
        Approves or rejects one pending request.

        :raises ForbiddenError: Caller is not an active admin
        :raises RequestValidationError: Bad decision, or a rejection without a note
        :raises NotFoundError: Unknown permission id
        :raises AlreadyResolvedError: The request is no longer pending
        """
        self._require_admin(caller)
        self._require_active(caller)
        cleaned_response = self._clean_decision(decision, response)
        return self._apply_decision(caller, permission_id, decision, cleaned_response)

    def bulk_respond(
        self,
        caller: CallerIdentity,
        permission_ids: typing.Any,
        decision: typing.Any,
        response: typing.Any = None,
    ) -> BulkRespondResultModel:
        """
        Applies one decision to many requests. Preconditions are checked before
        any write; after that each id succeeds or fails on its own, so
        processed + failed always equals len(permission_ids).
        """
        self._require_admin(caller)
        self._require_active(caller)
        if not isinstance(permission_ids, list) or not permission_ids:
            raise RequestValidationError("Permission IDs must be a non-empty array")
        cleaned_response = self._clean_decision(decision, response)

        results: list[dict[str, typing.Any]] = []
        errors: list[BulkRespondErrorModel] = []
        for permission_id in permission_ids:
            try:
                updated = self._apply_decision(caller, permission_id, decision, cleaned_response)
                results.append(updated.to_response(self.clock()))
            except PermissionWorkflowError as e:
                _LOGGER.info(f"Bulk {decision} skipped {permission_id}: {e.message}")
                errors.append(
                    BulkRespondErrorModel(permissionId=str(permission_id), error=e.error_code, message=e.message)
                )

        _LOGGER.info(f"Bulk {decision} by {caller.userId}: {len(results)} processed, {len(errors)} failed")
        return BulkRespondResultModel(processed=len(results), failed=len(errors), results=results, errors=errors)

    def check_grant(self, caller: CallerIdentity, pengadaan_id: typing.Any, action: typing.Any) -> GrantCheckModel:
        """Whether the caller may perform action on the record right now. Read-only."""
        cleaned_pengadaan_id = self._clean_pengadaan_id(pengadaan_id)
        cleaned_action = self._clean_permission_type(action)
        return self.access_guard.explain(caller.userId, caller.role, cleaned_pengadaan_id, cleaned_action)

    def stats(self, caller: CallerIdentity) -> PermissionStatsModel:
        """
        Counts by effective status. Approved grants past their horizon are
        reported as expired whether or not cleanup has persisted that yet.
        """
        self._require_admin(caller)
        counts = self.permissions_table.aggregate_by_status()
        lapsed = self.permissions_table.count_lapsed_grants(to_iso(self.clock()))

        approved = max(counts.get("approved", 0) - lapsed, 0)
        expired = counts.get("expired", 0) + lapsed
        return PermissionStatsModel(
            totalRequests=sum(counts.values()),
            pendingRequests=counts.get("pending", 0),
            approvedRequests=approved,
            rejectedRequests=counts.get("rejected", 0),
            expiredRequests=expired,
        )

    def get_permission(self, caller: CallerIdentity, permission_id: typing.Any) -> PermissionItemModel:
        if not isinstance(permission_id, str) or not permission_id.strip():
            raise RequestValidationError("Permission ID is required")
        permission = self.permissions_table.get_by_id(PermissionId(permission_id.strip()))
        if permission is None:
            raise NotFoundError(f"Permission {permission_id} not found")
        if not caller.is_admin and permission.userId != caller.userId:
            raise ForbiddenError("Access denied. You can only view your own permissions.")
        return permission

    def list_user_permissions(
        self,
        caller: CallerIdentity,
        limit: typing.Optional[int] = None,
        last_evaluated_key: typing.Optional[dict] = None,
    ) -> typing.Tuple[list[PermissionItemModel], typing.Optional[dict]]:
        return self.permissions_table.list_by_filter(
            user_id=caller.userId, limit=limit, last_evaluated_key=last_evaluated_key
        )

    def list_pending_requests(
        self,
        caller: CallerIdentity,
        limit: typing.Optional[int] = None,
        last_evaluated_key: typing.Optional[dict] = None,
    ) -> typing.Tuple[list[PermissionItemModel], typing.Optional[dict]]:
        self._require_admin(caller)
        return self.permissions_table.list_by_filter(
            status="pending", limit=limit, last_evaluated_key=last_evaluated_key
        )

    def list_pengadaan_permissions(
        self,
        caller: CallerIdentity,
        pengadaan_id: typing.Any,
        limit: typing.Optional[int] = None,
        last_evaluated_key: typing.Optional[dict] = None,
    ) -> typing.Tuple[list[PermissionItemModel], typing.Optional[dict]]:
        self._require_admin(caller)
        return self.permissions_table.list_by_filter(
            pengadaan_id=self._clean_pengadaan_id(pengadaan_id),
            limit=limit,
            last_evaluated_key=last_evaluated_key,
        )

    def revoke_permission(self, caller: CallerIdentity, permission_id: typing.Any) -> PermissionItemModel:
        """
        Deletes a request outside the state machine. Requesters may cancel their
        own pending requests; admins may also withdraw a live grant. Rejected
        and expired records are history and stay.

        :return: The record as it was before deletion
        """
        self._require_active(caller)
        permission = self.get_permission(caller, permission_id)

        effective_status = permission.effective_status(self.clock())
        deletable = ("pending", "approved") if caller.is_admin else ("pending",)
        if effective_status not in deletable:
            raise NotPendingError(f"Permission {permission.permissionId} is {effective_status} and cannot be revoked")

        self.permissions_table.delete_if_status(
            permission.permissionId,
            permission.status,
            request_key=permission.requestKey,
        )
        _LOGGER.info(f"Permission {permission.permissionId} ({effective_status}) revoked by {caller.userId}")
        return permission

    def cleanup_expired(self, caller: CallerIdentity) -> int:
        """
        Housekeeping: persists 'expired' on lapsed grants and, when a pending
        horizon is configured, on requests nobody answered in time.
        Returns the number of records updated.
        """
        self._require_admin(caller)
        self._require_active(caller)

        now = self.clock()
        now_iso = to_iso(now)
        cleaned = 0
        for grant in self.permissions_table.list_lapsed_grants(now_iso):
            if self.permissions_table.expire_lapsed_grant(grant.permissionId, now_iso):
                cleaned += 1

        if self.policy.pending_request_expire_hours > 0:
            cutoff_iso = to_iso(now - timedelta(hours=self.policy.pending_request_expire_hours))
            for stale in self.permissions_table.list_stale_pending(cutoff_iso):
                try:
                    self.permissions_table.compare_and_set_status(
                        stale.permissionId,
                        "pending",
                        {"status": "expired", "respondedAt": now_iso, "updatedAt": now_iso},
                        request_key=stale.requestKey,
                    )
                    cleaned += 1
                except (AlreadyResolvedError, NotFoundError):
                    _LOGGER.info(f"Stale request {stale.permissionId} was resolved concurrently, skipping.")

        _LOGGER.info(f"Cleaned up {cleaned} expired permissions")
        return cleaned
