import logging
import typing

from pydantic import ValidationError

from procure_flow.cloudwatch.metrics import MetricsManager
from procure_flow.dynamodb.pengadaan_table import PengadaanTable
from procure_flow.dynamodb.permissions_table import PermissionsTable
from procure_flow.dynamodb.secrets_table import SecretsTable
from procure_flow.dynamodb.sessions_table import SessionsTable
from procure_flow.dynamodb.users_table import UsersTable
from procure_flow.models.permission_models import (
    BulkRespondInputModel,
    PermissionItemModel,
    PermissionListResponseModel,
    PermissionRequestInputModel,
    PermissionRespondInputModel,
)
from procure_flow.models.user_models import CallerIdentity, LogoutResponseModel
from procure_flow.utils.apig_utils import (
    ErrorCode,
    create_error_response,
    format_lambda_response,
    get_bearer_token,
    get_event_body,
    get_last_evaluated_key,
    get_method,
    get_pagination_limit,
    get_path,
    get_query_string_parameters,
)
from procure_flow.utils.aws_env_vars import (
    get_pengadaan_table_name,
    get_permissions_table_name,
    get_secrets_table_name,
    get_sessions_table_name,
    get_users_table_name,
)
from procure_flow.utils.errors import (
    AuthenticationError,
    DuplicatePendingRequestError,
    NotPendingError,
    PermissionWorkflowError,
    StoreUnavailableError,
)
from procure_flow.utils.jwt_utils import JwtWrapper
from procure_flow.workflow.access_guard import AccessGuard
from procure_flow.workflow.permission_workflow import PermissionWorkflow, WorkflowPolicy
from procure_flow.workflow.session_authenticator import SessionAuthenticator

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

DEFAULT_CHECK_ACTION = "edit_form"


class PermissionsApiHandler:
    def __init__(
        self,
        authenticator: SessionAuthenticator,
        workflow: PermissionWorkflow,
        metrics_manager: MetricsManager,
    ):
        self.authenticator = authenticator
        self.workflow = workflow
        self.metrics_manager = metrics_manager

    def _list_response(
        self,
        permissions: list[PermissionItemModel],
        last_evaluated_key: typing.Optional[dict],
    ) -> dict:
        now = self.workflow.clock()
        response_model = PermissionListResponseModel(
            permissions=[permission.to_response(now) for permission in permissions],
            lastEvaluatedKey=last_evaluated_key,
        )
        return format_lambda_response(200, response_model.model_dump(by_alias=True, exclude_none=True))

    def _handle_request_permission(self, caller: CallerIdentity, event: dict) -> dict:
        body = PermissionRequestInputModel.model_validate_json(get_event_body(event) or "{}")
        permission = self.workflow.request_permission(caller, body.pengadaanId, body.permissionType, body.reason)
        self.metrics_manager.put_metric("PermissionRequested", 1)
        return format_lambda_response(
            201,
            {
                "message": "Permission request submitted successfully",
                "permission": permission.to_response(self.workflow.clock()),
            },
        )

    def _handle_get_my_requests(self, caller: CallerIdentity, event: dict) -> dict:
        query_params = get_query_string_parameters(event)
        permissions, last_key = self.workflow.list_user_permissions(
            caller,
            limit=get_pagination_limit(query_params),
            last_evaluated_key=get_last_evaluated_key(query_params),
        )
        return self._list_response(permissions, last_key)

    def _handle_check_permission(self, caller: CallerIdentity, pengadaan_id: str, event: dict) -> dict:
        query_params = get_query_string_parameters(event)
        action = query_params.get("action") or DEFAULT_CHECK_ACTION
        grant_check = self.workflow.check_grant(caller, pengadaan_id, action)
        return format_lambda_response(200, grant_check.model_dump(by_alias=True, exclude_none=True))

    def _handle_get_pending(self, caller: CallerIdentity, event: dict) -> dict:
        query_params = get_query_string_parameters(event)
        permissions, last_key = self.workflow.list_pending_requests(
            caller,
            limit=get_pagination_limit(query_params),
            last_evaluated_key=get_last_evaluated_key(query_params),
        )
        return self._list_response(permissions, last_key)

    def _handle_get_stats(self, caller: CallerIdentity) -> dict:
        stats = self.workflow.stats(caller)
        return format_lambda_response(200, stats.model_dump(by_alias=True))

    def _handle_get_pengadaan_permissions(self, caller: CallerIdentity, pengadaan_id: str, event: dict) -> dict:
        query_params = get_query_string_parameters(event)
        permissions, last_key = self.workflow.list_pengadaan_permissions(
            caller,
            pengadaan_id,
            limit=get_pagination_limit(query_params),
            last_evaluated_key=get_last_evaluated_key(query_params),
        )
        return self._list_response(permissions, last_key)

    def _handle_get_permission(self, caller: CallerIdentity, permission_id: str) -> dict:
        permission = self.workflow.get_permission(caller, permission_id)
        return format_lambda_response(200, permission.to_response(self.workflow.clock()))

    def _handle_respond(self, caller: CallerIdentity, permission_id: str, event: dict) -> dict:
        body = PermissionRespondInputModel.model_validate_json(get_event_body(event) or "{}")
        permission = self.workflow.respond(caller, permission_id, body.status, body.response)
        self.metrics_manager.put_metric(f"Permission{body.status.capitalize()}", 1)
        return format_lambda_response(
            200,
            {
                "message": f"Permission {body.status} successfully",
                "permission": permission.to_response(self.workflow.clock()),
            },
        )

    def _handle_bulk_respond(self, caller: CallerIdentity, event: dict) -> dict:
        body = BulkRespondInputModel.model_validate_json(get_event_body(event) or "{}")
        result = self.workflow.bulk_respond(caller, body.permissionIds, body.status, body.response)
        self.metrics_manager.put_metric("BulkRespondProcessed", result.processed)
        self.metrics_manager.put_metric("BulkRespondFailed", result.failed)
        return format_lambda_response(200, result.model_dump(by_alias=True, exclude_none=True))

    def _handle_cleanup(self, caller: CallerIdentity) -> dict:
        cleaned = self.workflow.cleanup_expired(caller)
        self.metrics_manager.put_metric("PermissionsExpired", cleaned)
        return format_lambda_response(200, {"message": f"Cleaned up {cleaned} expired permissions", "cleaned": cleaned})

    def _handle_revoke(self, caller: CallerIdentity, permission_id: str) -> dict:
        permission = self.workflow.revoke_permission(caller, permission_id)
        self.metrics_manager.put_metric("PermissionRevoked", 1)
        return format_lambda_response(
            200,
            {
                "message": "Permission revoked successfully",
                "permission": permission.to_response(self.workflow.clock()),
            },
        )

    def _handle_logout(self, event: dict) -> dict:
        if self.authenticator.end_session(get_bearer_token(event)):
            self.metrics_manager.put_metric("LogoutSuccess", 1)
        return format_lambda_response(200, LogoutResponseModel(message="Logged out").model_dump(by_alias=True))

    def _route(self, caller: CallerIdentity, method: str, path_parts: list[str], event: dict) -> dict:
        # path_parts[0] == "permissions"
        if method == "POST" and path_parts == ["permissions", "request"]:
            return self._handle_request_permission(caller, event)
        if method == "POST" and path_parts == ["permissions", "bulk-respond"]:
            return self._handle_bulk_respond(caller, event)

        if method == "GET":
            if path_parts == ["permissions", "my-requests"]:
                return self._handle_get_my_requests(caller, event)
            if path_parts == ["permissions", "pending"]:
                return self._handle_get_pending(caller, event)
            if path_parts == ["permissions", "stats"]:
                return self._handle_get_stats(caller)
            if len(path_parts) == 3 and path_parts[1] == "check":
                return self._handle_check_permission(caller, path_parts[2], event)
            if len(path_parts) == 3 and path_parts[1] == "pengadaan":
                return self._handle_get_pengadaan_permissions(caller, path_parts[2], event)
            if len(path_parts) == 2:
                return self._handle_get_permission(caller, path_parts[1])

        if method == "PUT" and len(path_parts) == 3 and path_parts[2] == "respond":
            return self._handle_respond(caller, path_parts[1], event)

        if method == "DELETE":
            if path_parts == ["permissions", "cleanup"]:
                return self._handle_cleanup(caller)
            if len(path_parts) == 2:
                return self._handle_revoke(caller, path_parts[1])

        _LOGGER.warning(f"Unsupported path or method for permissions API: {method} /{'/'.join(path_parts)}")
        return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Permissions route not found")

    def handle(self, event: dict) -> dict:
        path = get_path(event)
        method = get_method(event).upper()
        _LOGGER.info(f"PermissionsApiHandler.handle invoked for {method} {path}")
        path_parts = [part for part in path.strip("/").split("/") if part]

        try:
            if method == "POST" and path_parts == ["auth", "logout"]:
                return self._handle_logout(event)

            if not path_parts or path_parts[0] != "permissions":
                return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Route not found")

            caller = self.authenticator.authenticate(get_bearer_token(event))
            return self._route(caller, method, path_parts, event)

        except ValidationError as e:
            _LOGGER.info(f"Request body failed validation: {e}")
            return create_error_response(ErrorCode.VALIDATION_ERROR, details=e.errors(include_url=False))
        except PermissionWorkflowError as e:
            if isinstance(e, AuthenticationError):
                self.metrics_manager.put_metric("AuthenticationFailure", 1)
            elif isinstance(e, (NotPendingError, DuplicatePendingRequestError)):
                self.metrics_manager.put_metric("ConflictRejected", 1)
            elif isinstance(e, StoreUnavailableError):
                self.metrics_manager.put_metric("StoreUnavailable", 1)
            _LOGGER.info(f"{method} {path} failed with {e.error_code}: {e.message}")
            return create_error_response(ErrorCode.from_code(e.error_code), e.message)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in PermissionsApiHandler for {method} {path}: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR)


def permissions_lambda_handler(event: dict, context: typing.Any) -> dict:
    _LOGGER.info(f"permissions_lambda_handler invoked. Method: {get_method(event)}, Path: {get_path(event)}")
    metrics_manager = MetricsManager()

    try:
        permissions_table = PermissionsTable(get_permissions_table_name())
        pengadaan_table = PengadaanTable(get_pengadaan_table_name())
        access_guard = AccessGuard(permissions_table, pengadaan_table)
        api_handler = PermissionsApiHandler(
            authenticator=SessionAuthenticator(
                jwt_wrapper=JwtWrapper(),
                secrets_table=SecretsTable(get_secrets_table_name()),
                sessions_table=SessionsTable(get_sessions_table_name()),
                users_table=UsersTable(get_users_table_name()),
            ),
            workflow=PermissionWorkflow(
                permissions_table=permissions_table,
                pengadaan_table=pengadaan_table,
                access_guard=access_guard,
                policy=WorkflowPolicy.from_env(),
            ),
            metrics_manager=metrics_manager,
        )
        return api_handler.handle(event)

    except Exception as e:
        _LOGGER.critical(f"Error in global handler setup: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
    finally:
        metrics_manager.flush()
