"""
Typed failures raised by the permission workflow and its collaborators.

Every failure carries a stable ``error_code`` so transport adapters can map it
without inspecting messages. None of these are retried by the workflow; only
``StoreUnavailableError`` is safe for a caller to retry.
"""

import typing


class PermissionWorkflowError(Exception):
    error_code: typing.ClassVar[str] = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RequestValidationError(PermissionWorkflowError):
    error_code = "VALIDATION_ERROR"


class ForbiddenError(PermissionWorkflowError):
    error_code = "AUTHORIZATION_FAILED"


class InactiveAccountError(ForbiddenError):
    pass


class NotFoundError(PermissionWorkflowError):
    error_code = "RESOURCE_NOT_FOUND"


class NotPendingError(PermissionWorkflowError):
    error_code = "NOT_PENDING"


class AlreadyResolvedError(NotPendingError):
    error_code = "ALREADY_RESOLVED"


class DuplicatePendingRequestError(PermissionWorkflowError):
    error_code = "DUPLICATE_PENDING_REQUEST"


class ActiveGrantExistsError(DuplicatePendingRequestError):
    error_code = "ACTIVE_GRANT_EXISTS"


class AuthenticationError(PermissionWorkflowError):
    error_code = "AUTHENTICATION_FAILED"


class InvalidCredentialError(AuthenticationError):
    pass


class ExpiredCredentialError(AuthenticationError):
    error_code = "CREDENTIAL_EXPIRED"


class StoreUnavailableError(PermissionWorkflowError):
    error_code = "STORE_UNAVAILABLE"
