import uuid
from datetime import datetime, timedelta, timezone

import jwt

from procure_flow.dynamodb.secrets_table import SecretsTable
from procure_flow.utils.base_types import AccessTokenId, SessionId, UserId
from procure_flow.utils.errors import ExpiredCredentialError, InvalidCredentialError

ACCESS_TOKEN_EXPIRE_HOURS = 6
JWT_ALGORITHM = "HS256"


class JwtWrapper:
    def __init__(self, expire_hours: int = ACCESS_TOKEN_EXPIRE_HOURS) -> None:
        self.expire_hours = expire_hours

    def create_access_token(
        self,
        user_id: UserId,
        secrets_table: SecretsTable,
        issued_at: datetime | None = None,
    ) -> tuple[AccessTokenId, SessionId, int]:
        """
        Issues a session token for the external identity provider.
        Returns the token, its session id (jti) and its expiry as epoch seconds.
        """
        issued_at = issued_at or datetime.now(timezone.utc)
        expire = issued_at + timedelta(hours=self.expire_hours)
        session_id = SessionId(str(uuid.uuid4()))
        to_encode = {"exp": expire, "iat": issued_at, "sub": user_id, "jti": session_id}
        jwt_secret = secrets_table.get_jwt_secret_key()
        token = jwt.encode(to_encode, jwt_secret, algorithm=JWT_ALGORITHM)
        return AccessTokenId(token), session_id, int(expire.timestamp())

    def decode_token(self, token: str, secrets_table: SecretsTable) -> dict:
        """
        Decodes and verifies a session token.

        :raises ExpiredCredentialError: If the signature is valid but the token has expired
        :raises InvalidCredentialError: For any other decoding failure, or when no signing key is configured
        :raises StoreUnavailableError: If the signing key cannot be read
        """
        try:
            jwt_secret = secrets_table.get_jwt_secret_key()
        except KeyError as e:
            raise InvalidCredentialError("Token signing key is unavailable") from e

        try:
            payload = jwt.decode(
                token,
                jwt_secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise ExpiredCredentialError("Session token has expired") from e
        except jwt.PyJWTError as e:
            raise InvalidCredentialError("Session token is invalid") from e

        if not isinstance(payload.get("sub"), str) or not payload["sub"]:
            raise InvalidCredentialError("Session token has no subject")
        return payload

    def verify_token(self, token: str, secrets_table: SecretsTable) -> dict | None:
        try:
            return self.decode_token(token, secrets_table)
        except (InvalidCredentialError, ExpiredCredentialError):
            return None
