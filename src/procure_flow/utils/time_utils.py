from datetime import datetime, timezone

from procure_flow.utils.base_types import IsoTimestamp


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> IsoTimestamp:
    """
    Fixed-width UTC ISO-8601 string. Stored timestamps are compared as strings
    inside DynamoDB condition expressions, so the width must never vary.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return IsoTimestamp(value.astimezone(timezone.utc).isoformat(timespec="microseconds"))


def from_iso(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
