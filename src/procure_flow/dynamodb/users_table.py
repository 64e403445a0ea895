import logging
import typing

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from procure_flow.models.user_models import UserModel
from procure_flow.utils.base_types import UserId
from procure_flow.utils.errors import StoreUnavailableError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class UsersTable:
    """
    Read-only Data Abstraction Layer over the Users DynamoDB table.

    Table Schema:
      - PK: userId
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def get_user(self, user_id: UserId) -> typing.Optional[UserModel]:
        """
        :return: UserModel if found and well formed, else None.
        :raises StoreUnavailableError: If DynamoDB cannot be reached.
        """
        try:
            response = self.table.get_item(Key={"userId": user_id})
        except (ClientError, BotoCoreError) as e:
            _LOGGER.error(f"Failed to get user {user_id}: {e}")
            raise StoreUnavailableError("Could not read user record") from e

        item_data = response.get("Item")
        if not item_data:
            _LOGGER.debug(f"No user found for user_id: {user_id}")
            return None
        try:
            return UserModel.model_validate(item_data)
        except ValidationError as ve:
            _LOGGER.error(f"Failed to validate user data for user_id {user_id}: {ve}", exc_info=True)
            return None
