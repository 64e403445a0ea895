import json
import typing


def create_mock_event(
    method: str,
    path: str,
    body: typing.Any = None,
    *,
    token: typing.Optional[str] = "valid-token",
    query: typing.Optional[dict[str, str]] = None,
) -> dict:
    """Creates a mock API Gateway HTTP API event dictionary."""
    event: dict[str, typing.Any] = {
        "requestContext": {"http": {"method": method, "path": path}},
        "headers": {},
        "body": json.dumps(body) if body is not None else None,
        "queryStringParameters": query,
    }
    if token is not None:
        event["headers"]["authorization"] = f"Bearer {token}"
    return event
