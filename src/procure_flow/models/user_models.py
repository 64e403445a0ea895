import typing

import pydantic

from procure_flow.utils.base_types import IsoTimestamp, UserId

UserRole = typing.Literal["user", "admin"]
UserStatus = typing.Literal["active", "inactive"]


class UserModel(pydantic.BaseModel):
    """
    A procurement system account as stored in the Users DynamoDB table.
    Owned by the identity provider; the permission workflow only reads it.
    """

    userId: UserId = pydantic.Field(description="Partition Key")
    username: str
    email: str
    role: UserRole = "user"
    status: UserStatus = "active"
    createdAt: typing.Optional[IsoTimestamp] = None
    updatedAt: typing.Optional[IsoTimestamp] = None

    model_config = pydantic.ConfigDict(extra="ignore")


class CallerIdentity(typing.NamedTuple):
    """Result of authenticating a session credential."""

    userId: UserId
    role: UserRole
    status: UserStatus

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class LogoutResponseModel(pydantic.BaseModel):
    message: str
