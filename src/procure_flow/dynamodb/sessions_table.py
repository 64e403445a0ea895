import logging
import typing

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from procure_flow.utils.base_types import SessionId, UserId
from procure_flow.utils.errors import StoreUnavailableError

_LOGGER = logging.getLogger(__name__)


class SessionsTable:
    """
    Live login sessions. A session token is honoured only while its record exists.

    Table Schema:
      - PK: userId
      - SK: sessionId (the token's jti)
      - ttl: epoch seconds, lets DynamoDB drop naturally expired sessions
    """

    def __init__(self, table_name: str):
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def save_session(self, user_id: UserId, session_id: SessionId, ttl: int) -> bool:
        try:
            self.table.put_item(Item={"userId": user_id, "sessionId": session_id, "ttl": ttl})
            _LOGGER.info(f"Saved session {session_id} for user {user_id}.")
            return True
        except ClientError as e:
            _LOGGER.error(f"Error saving session for user {user_id}: {e}")
            return False

    def get_session(self, user_id: UserId, session_id: SessionId) -> typing.Optional[dict]:
        try:
            response = self.table.get_item(Key={"userId": user_id, "sessionId": session_id})
            return response.get("Item")
        except (ClientError, BotoCoreError) as e:
            _LOGGER.error(f"Error getting session {session_id} for user {user_id}: {e}")
            raise StoreUnavailableError("Could not read session record") from e

    def delete_session(self, user_id: UserId, session_id: SessionId) -> bool:
        """Deletes a session, logging it out. Deleting a missing session succeeds."""
        try:
            self.table.delete_item(Key={"userId": user_id, "sessionId": session_id})
            _LOGGER.info(f"Deleted session {session_id} for user {user_id}.")
            return True
        except ClientError as e:
            _LOGGER.error(f"Error deleting session {session_id} for user {user_id}: {e}")
            return False
