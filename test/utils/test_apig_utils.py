import json

import pytest

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


def test_get_event_body_1() -> None:
    assert get_event_body({"body": "hello everyone"}) == "hello everyone"


def test_get_event_body_2() -> None:
    event = {"body": "aGVsbG8gZXZlcnlvbmU=", "isBase64Encoded": True}
    assert get_event_body(event) == "hello everyone"


def test_get_event_body_3() -> None:
    assert get_event_body({"body": None}) == ""


def test_get_method_and_path() -> None:
    event = {"requestContext": {"http": {"method": "PUT", "path": "/permissions/PRM-1/respond"}}}
    assert get_method(event) == "PUT"
    assert get_path(event) == "/permissions/PRM-1/respond"

    assert get_method({"requestContext": {}}) == "UNKNOWN"
    assert get_path({"requestContext": {}}) == ""


def test_get_query_string_parameters() -> None:
    assert get_query_string_parameters({"queryStringParameters": None}) == {}
    assert get_query_string_parameters({"queryStringParameters": {"action": "edit_form"}}) == {"action": "edit_form"}


@pytest.mark.parametrize(
    "headers, expected",
    [
        ({"authorization": "Bearer abc.def.ghi"}, "abc.def.ghi"),
        ({"Authorization": "bearer   abc "}, "abc"),
        ({"Authorization": "Basic dXNlcjpwYXNz"}, None),
        ({"Authorization": "Bearer "}, None),
        ({"Content-Type": "application/json"}, None),
        (None, None),
    ],
)
def test_get_bearer_token(headers, expected) -> None:
    assert get_bearer_token({"headers": headers}) == expected


@pytest.mark.parametrize(
    "query, expected",
    [(None, 10), ({}, 10), ({"limit": "25"}, 25), ({"limit": "0"}, 1), ({"limit": "1000"}, 100), ({"limit": "ten"}, 10)],
)
def test_get_pagination_limit(query, expected) -> None:
    assert get_pagination_limit(query) == expected


def test_get_last_evaluated_key() -> None:
    assert get_last_evaluated_key(None) is None
    assert get_last_evaluated_key({"lastEvaluatedKey": json.dumps({"permissionId": "PRM-1"})}) == {
        "permissionId": "PRM-1"
    }
    assert get_last_evaluated_key({"lastEvaluatedKey": "{broken"}) is None
    assert get_last_evaluated_key({"lastEvaluatedKey": "[1, 2]"}) is None


def test_format_lambda_response_1() -> None:
    ret = format_lambda_response(200, {"hey": "there"})
    assert ret["statusCode"] == 200
    assert len(ret["headers"]) == 4
    assert ret["headers"]["Content-Type"] == "application/json"
    assert ret["headers"]["Access-Control-Allow-Origin"] == "*"
    assert ret["headers"]["Access-Control-Allow-Methods"] == "OPTIONS,GET,POST,PUT,DELETE"
    assert json.loads(ret["body"]) == {"hey": "there"}


def test_format_lambda_response_2() -> None:
    ret = format_lambda_response(204, None, additional_headers={"X-Request-Id": "r-1"})
    assert ret["body"] is None
    assert ret["headers"]["X-Request-Id"] == "r-1"


def test_create_error_response() -> None:
    ret = create_error_response(ErrorCode.ALREADY_RESOLVED)
    assert ret["statusCode"] == 409
    assert json.loads(ret["body"]) == {
        "error": "ALREADY_RESOLVED",
        "message": "Permission request has already been processed.",
    }

    ret = create_error_response(ErrorCode.VALIDATION_ERROR, "reason is required", details=[{"loc": ["reason"]}])
    assert ret["statusCode"] == 400
    assert json.loads(ret["body"])["details"] == [{"loc": ["reason"]}]


@pytest.mark.parametrize(
    "code, status_code",
    [
        ("VALIDATION_ERROR", 400),
        ("AUTHENTICATION_FAILED", 401),
        ("CREDENTIAL_EXPIRED", 401),
        ("AUTHORIZATION_FAILED", 403),
        ("RESOURCE_NOT_FOUND", 404),
        ("NOT_PENDING", 409),
        ("ALREADY_RESOLVED", 409),
        ("DUPLICATE_PENDING_REQUEST", 409),
        ("ACTIVE_GRANT_EXISTS", 409),
        ("STORE_UNAVAILABLE", 503),
        ("SOMETHING_ELSE", 500),
    ],
)
def test_error_code_from_code(code, status_code) -> None:
    assert ErrorCode.from_code(code).status_code == status_code
