import logging
import typing

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from procure_flow.utils.errors import StoreUnavailableError

_LOGGER = logging.getLogger(__name__)

JWT_SECRET_KEY = "JWT_SECRET"


class SecretsTable:
    """
    Read-only access to the Secrets DynamoDB table.

    Schema:
        - PK: secretKey (String), e.g. "JWT_SECRET"
        - Attributes: secretValue (String), description (String), updatedAt (String)

    Values are written by deployment tooling. Lookups are cached for the lifetime
    of the Lambda container so token verification does not hit DynamoDB on every call.
    """

    _cache: typing.ClassVar[dict[tuple[str, str], str]] = {}

    def __init__(self, table_name: str):
        self.table_name = table_name
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def get_secret(self, secret_key: str) -> str:
        """
        :raises KeyError: If the secret is missing or empty
        :raises StoreUnavailableError: If the secrets table cannot be read
        """
        cache_key = (self.table_name, secret_key)
        if cache_key in self._cache:
            return self._cache[cache_key]

        _LOGGER.info(f"Fetching secret '{secret_key}' from {self.table_name}.")
        try:
            response = self.table.get_item(Key={"secretKey": secret_key})
        except (ClientError, BotoCoreError) as e:
            _LOGGER.error(f"Error retrieving secret {secret_key}: {e}")
            raise StoreUnavailableError(f"Failed to retrieve secret '{secret_key}'") from e

        secret_value = (response.get("Item") or {}).get("secretValue")
        if not secret_value:
            _LOGGER.error(f"Secret not found or empty: {secret_key}")
            raise KeyError(f"Secret '{secret_key}' not found in secrets table")

        self._cache[cache_key] = secret_value
        return secret_value

    def get_jwt_secret_key(self) -> str:
        return self.get_secret(JWT_SECRET_KEY)

    @classmethod
    def clear_cache(cls) -> None:
        cls._cache.clear()
