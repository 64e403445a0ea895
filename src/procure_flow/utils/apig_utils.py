import base64
import enum
import json
import logging
import typing

_LOGGER = logging.getLogger(__name__)


QueryParams = typing.NewType("QueryParams", dict[str, str])

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100


class ErrorCode(enum.Enum):
    VALIDATION_ERROR = ("VALIDATION_ERROR", 400, "Invalid request.")
    AUTHENTICATION_FAILED = ("AUTHENTICATION_FAILED", 401, "Authentication failed.")
    CREDENTIAL_EXPIRED = ("CREDENTIAL_EXPIRED", 401, "Session has expired.")
    AUTHORIZATION_FAILED = ("AUTHORIZATION_FAILED", 403, "You are not allowed to perform this action.")
    RESOURCE_NOT_FOUND = ("RESOURCE_NOT_FOUND", 404, "Resource not found.")
    NOT_PENDING = ("NOT_PENDING", 409, "Permission request is no longer pending.")
    ALREADY_RESOLVED = ("ALREADY_RESOLVED", 409, "Permission request has already been processed.")
    DUPLICATE_PENDING_REQUEST = ("DUPLICATE_PENDING_REQUEST", 409, "A matching request is already open.")
    ACTIVE_GRANT_EXISTS = ("ACTIVE_GRANT_EXISTS", 409, "A matching permission is already granted.")
    STORE_UNAVAILABLE = ("STORE_UNAVAILABLE", 503, "Permission store is temporarily unavailable.")
    INTERNAL_ERROR = ("INTERNAL_ERROR", 500, "An unexpected error occurred.")

    def __init__(self, code: str, status_code: int, default_message: str) -> None:
        self.code = code
        self.status_code = status_code
        self.default_message = default_message

    @classmethod
    def from_code(cls, code: str) -> "ErrorCode":
        for member in cls:
            if member.code == code:
                return member
        return cls.INTERNAL_ERROR


def get_event_body(event: dict) -> str:
    raw_body = event.get("body")
    if not raw_body:
        return ""
    if event.get("isBase64Encoded"):
        return base64.b64decode(raw_body).decode("utf-8")
    return raw_body


def get_method(event: dict) -> str:
    return event.get("requestContext", {}).get("http", {}).get("method", "UNKNOWN")


def get_path(event: dict) -> str:
    return event.get("requestContext", {}).get("http", {}).get("path", "")


def get_query_string_parameters(event: dict) -> QueryParams:
    return QueryParams(event.get("queryStringParameters") or {})


def get_bearer_token(event: dict[str, typing.Any]) -> typing.Optional[str]:
    """
    Extracts the credential from an 'Authorization: Bearer <token>' header.
    Header names are matched case-insensitively.
    """
    headers = event.get("headers") or {}
    for name, value in headers.items():
        if name.lower() != "authorization" or not isinstance(value, str):
            continue
        scheme, _, token = value.strip().partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
        _LOGGER.warning("Authorization header present but not a bearer token.")
        return None
    return None


def get_pagination_limit(query_params: typing.Optional[QueryParams]) -> int:
    limit = DEFAULT_PAGE_LIMIT
    if query_params and "limit" in query_params:
        try:
            limit = int(query_params["limit"])
        except (ValueError, TypeError):
            _LOGGER.warning(f"Invalid limit query param: {query_params.get('limit')}")
    return max(1, min(limit, MAX_PAGE_LIMIT))


def get_last_evaluated_key(query_params: typing.Optional[QueryParams]) -> typing.Optional[dict[str, typing.Any]]:
    if not query_params:
        return None

    if "lastEvaluatedKey" in query_params:
        try:
            last_key = json.loads(query_params["lastEvaluatedKey"])
            if isinstance(last_key, dict):
                return last_key
        except json.JSONDecodeError:
            pass
        _LOGGER.warning("Invalid lastEvaluatedKey query param.")

    return None


def format_lambda_response(
    status_code: int,
    body: typing.Any,
    *,
    additional_headers: typing.Optional[dict[str, str]] = None,
) -> dict[str, typing.Any]:
    """
    Formats API Gateway proxy responses with CORS headers.
    """
    headers = {
        "Content-Type": "application/json",
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Headers": "Content-Type,Authorization",
        "Access-Control-Allow-Methods": "OPTIONS,GET,POST,PUT,DELETE",
    }
    if additional_headers:
        headers.update(additional_headers)

    return {
        "statusCode": status_code,
        "headers": headers,
        "body": json.dumps(body, default=str) if body is not None else None,
    }


def create_error_response(
    error_code: ErrorCode,
    message: typing.Optional[str] = None,
    *,
    details: typing.Any = None,
) -> dict[str, typing.Any]:
    body: dict[str, typing.Any] = {
        "error": error_code.code,
        "message": message or error_code.default_message,
    }
    if details is not None:
        body["details"] = details
    return format_lambda_response(error_code.status_code, body)
