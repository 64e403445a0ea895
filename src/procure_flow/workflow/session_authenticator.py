import logging
import typing

from procure_flow.dynamodb.secrets_table import SecretsTable
from procure_flow.dynamodb.sessions_table import SessionsTable
from procure_flow.dynamodb.users_table import UsersTable
from procure_flow.models.user_models import CallerIdentity
from procure_flow.utils.base_types import SessionId, UserId
from procure_flow.utils.errors import InvalidCredentialError
from procure_flow.utils.jwt_utils import JwtWrapper

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class SessionAuthenticator:
    """
    Resolves a bearer credential to the caller's identity, role and status.

    Nothing downstream trusts a role that did not come out of ``authenticate``.
    The lookup is a pure function of the credential: no session state is kept
    between calls. Inactive accounts still authenticate; state-changing
    operations reject them separately.
    """

    def __init__(
        self,
        jwt_wrapper: JwtWrapper,
        secrets_table: SecretsTable,
        sessions_table: SessionsTable,
        users_table: UsersTable,
    ) -> None:
        self.jwt_wrapper = jwt_wrapper
        self.secrets_table = secrets_table
        self.sessions_table = sessions_table
        self.users_table = users_table

    def authenticate(self, credential: typing.Optional[str]) -> CallerIdentity:
        """
        :raises InvalidCredentialError: Missing, malformed, logged out, or unknown user
        :raises ExpiredCredentialError: Token decoded but is past its validity
        :raises StoreUnavailableError: The signing key or session store cannot be read
        """
        if not credential:
            raise InvalidCredentialError("Access token is required")

        payload = self.jwt_wrapper.decode_token(credential, self.secrets_table)
        user_id = UserId(payload["sub"])

        session_id = payload.get("jti")
        if not session_id:
            _LOGGER.warning(f"Token for user {user_id} carries no session id.")
            raise InvalidCredentialError("Session token is invalid")

        if not self.sessions_table.get_session(user_id, SessionId(session_id)):
            _LOGGER.warning(f"Session {session_id} for user {user_id} not found (logged out or expired).")
            raise InvalidCredentialError("Session is no longer valid")

        user = self.users_table.get_user(user_id)
        if user is None:
            _LOGGER.warning(f"Token subject {user_id} does not match any user.")
            raise InvalidCredentialError("User not found")

        _LOGGER.debug(f"Authenticated user {user_id} with role '{user.role}' and status '{user.status}'")
        return CallerIdentity(userId=user.userId, role=user.role, status=user.status)

    def end_session(self, credential: typing.Optional[str]) -> bool:
        """
        Logs a session out. Unknown or already invalid credentials are a no-op.
        Returns True when a session record was removed.
        """
        if not credential:
            return False

        payload = self.jwt_wrapper.verify_token(credential, self.secrets_table)
        if not payload or "jti" not in payload:
            _LOGGER.info("Logout called with an invalid token, nothing to do.")
            return False

        return self.sessions_table.delete_session(UserId(payload["sub"]), SessionId(payload["jti"]))
