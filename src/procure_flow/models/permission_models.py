import typing
from datetime import datetime

import pydantic

from procure_flow.utils.base_types import IsoTimestamp, PengadaanId, PermissionId, UserId
from procure_flow.utils.time_utils import from_iso

PermissionType = typing.Literal[
    "edit_form",
    "delete_form",
]

PermissionStatus = typing.Literal[
    "pending",
    "approved",
    "rejected",
    "expired",
]

Decision = typing.Literal["approved", "rejected"]

PERMISSION_TYPES: tuple[PermissionType, ...] = typing.get_args(PermissionType)
PERMISSION_STATUSES: tuple[PermissionStatus, ...] = typing.get_args(PermissionStatus)

# pending is the only non-terminal state
ALLOWED_TRANSITIONS: dict[PermissionStatus, frozenset[PermissionStatus]] = {
    "pending": frozenset({"approved", "rejected", "expired"}),
    "approved": frozenset(),
    "rejected": frozenset(),
    "expired": frozenset(),
}


def can_transition(current: PermissionStatus, target: PermissionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def make_request_key(user_id: UserId, pengadaan_id: PengadaanId, permission_type: PermissionType) -> str:
    return f"{user_id}#{pengadaan_id}#{permission_type}"


class PermissionItemModel(pydantic.BaseModel):
    """
    A permission request as stored in the Permissions DynamoDB table.
    """

    permissionId: PermissionId = pydantic.Field(description="Partition Key, PRM-<hex>")
    userId: UserId = pydantic.Field(description="Requester")
    adminId: typing.Optional[UserId] = pydantic.Field(default=None, description="Admin who answered the request")
    pengadaanId: PengadaanId
    permissionType: PermissionType
    status: PermissionStatus
    reason: str = pydantic.Field(min_length=1, max_length=500)
    adminResponse: typing.Optional[str] = pydantic.Field(default=None, max_length=500)
    requestKey: str = pydantic.Field(description="userId#pengadaanId#permissionType, RequestKeyIndex partition key")
    requestedAt: IsoTimestamp
    respondedAt: typing.Optional[IsoTimestamp] = None
    expiresAt: typing.Optional[IsoTimestamp] = None
    createdAt: IsoTimestamp
    updatedAt: IsoTimestamp

    model_config = pydantic.ConfigDict(extra="ignore")

    @pydantic.model_validator(mode="after")
    def check_status_fields(self) -> "PermissionItemModel":
        if self.status == "rejected" and not (self.adminResponse and self.adminResponse.strip()):
            raise ValueError("adminResponse must be set on a rejected permission")
        if self.status == "pending" and self.adminId is not None:
            raise ValueError("adminId must not be set while a permission is pending")
        return self

    def is_expired(self, now: datetime) -> bool:
        """
        Lazy expiry: an approved grant past its horizon counts as expired even
        when the stored status still says approved.
        """
        if self.status == "expired":
            return True
        if self.status != "approved" or not self.expiresAt:
            return False
        return from_iso(self.expiresAt) <= now

    def effective_status(self, now: datetime) -> PermissionStatus:
        if self.status == "approved" and self.is_expired(now):
            return "expired"
        return self.status

    def is_active_grant(self, now: datetime) -> bool:
        return self.status == "approved" and not self.is_expired(now)

    def to_response(self, now: datetime) -> dict[str, typing.Any]:
        body = self.model_dump(by_alias=True, exclude_none=True, exclude={"permissionId", "requestKey"})
        body["id"] = self.permissionId
        body["isExpired"] = self.is_expired(now)
        return body


class PermissionRequestInputModel(pydantic.BaseModel):
    """Body of POST /permissions/request."""

    pengadaanId: str = pydantic.Field(min_length=1)
    permissionType: PermissionType = "edit_form"
    reason: str

    model_config = pydantic.ConfigDict(extra="forbid")


class PermissionRespondInputModel(pydantic.BaseModel):
    """Body of PUT /permissions/{permissionId}/respond."""

    status: Decision
    response: typing.Optional[str] = None

    model_config = pydantic.ConfigDict(extra="forbid")


class BulkRespondInputModel(pydantic.BaseModel):
    """Body of POST /permissions/bulk-respond."""

    permissionIds: list[str]
    status: Decision
    response: typing.Optional[str] = None

    model_config = pydantic.ConfigDict(extra="forbid")


class BulkRespondErrorModel(pydantic.BaseModel):
    permissionId: str
    error: str
    message: str


class BulkRespondResultModel(pydantic.BaseModel):
    processed: int
    failed: int
    results: list[dict[str, typing.Any]] = pydantic.Field(default_factory=list)
    errors: list[BulkRespondErrorModel] = pydantic.Field(default_factory=list)


class PermissionStatsModel(pydantic.BaseModel):
    totalRequests: int = 0
    pendingRequests: int = 0
    approvedRequests: int = 0
    rejectedRequests: int = 0
    expiredRequests: int = 0


class GrantCheckModel(pydantic.BaseModel):
    pengadaanId: PengadaanId
    action: PermissionType
    hasPermission: bool
    isAdmin: bool = False
    isOwner: bool = False
    permission: typing.Optional[dict[str, typing.Any]] = None


class PermissionListResponseModel(pydantic.BaseModel):
    permissions: list[dict[str, typing.Any]]
    lastEvaluatedKey: typing.Optional[dict[str, typing.Any]] = None
