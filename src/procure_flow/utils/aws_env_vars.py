import logging
import os

_LOGGER = logging.getLogger(__name__)

DEFAULT_GRANT_VALIDITY_HOURS = 24
DEFAULT_PENDING_REQUEST_EXPIRE_HOURS = 0


def _get_resource_by_env_var(env_var: str) -> str:
    table_name = os.environ.get(env_var)
    if not table_name:
        raise ValueError(f"Missing environment variable: {env_var}")
    return table_name


def _get_int_env_var(env_var: str, default: int) -> int:
    raw_value = os.environ.get(env_var)
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        value = int(raw_value)
    except ValueError:
        raise ValueError(f"Environment variable {env_var} must be an integer, got '{raw_value}'")
    if value < 0:
        raise ValueError(f"Environment variable {env_var} must not be negative, got {value}")
    return value


def get_permissions_table_name() -> str:
    return _get_resource_by_env_var("PERMISSIONS_TABLE_NAME")


def get_users_table_name() -> str:
    return _get_resource_by_env_var("USERS_TABLE_NAME")


def get_sessions_table_name() -> str:
    return _get_resource_by_env_var("SESSIONS_TABLE_NAME")


def get_pengadaan_table_name() -> str:
    return _get_resource_by_env_var("PENGADAAN_TABLE_NAME")


def get_secrets_table_name() -> str:
    return _get_resource_by_env_var("SECRETS_TABLE_NAME")


def get_grant_validity_hours() -> int:
    """
    How long an approved permission stays usable. Zero is rejected because an
    approval that expires at the moment it is granted is never useful.
    """
    hours = _get_int_env_var("GRANT_VALIDITY_HOURS", DEFAULT_GRANT_VALIDITY_HOURS)
    if hours == 0:
        raise ValueError("GRANT_VALIDITY_HOURS must be greater than zero")
    return hours


def get_pending_request_expire_hours() -> int:
    """
    Age after which the cleanup pass expires unanswered requests. 0 disables it.
    """
    return _get_int_env_var("PENDING_REQUEST_EXPIRE_HOURS", DEFAULT_PENDING_REQUEST_EXPIRE_HOURS)


def is_block_on_active_grant_enabled() -> bool:
    """
    Whether a user holding an unexpired grant may file another request for the
    same form and action. Defaults to True if not set or invalid value.
    """
    value = os.environ.get("BLOCK_REQUEST_ON_ACTIVE_GRANT", "true").lower()
    return value not in ("false", "0", "no")
