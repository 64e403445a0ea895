import logging
import typing

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from procure_flow.utils.base_types import PengadaanId, UserId
from procure_flow.utils.errors import StoreUnavailableError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class PengadaanTable:
    """
    Ownership lookup against the procurement (pengadaan) records table, which is
    managed by the CRUD service. Only the owner attribute is read here.

    Table Schema:
      - PK: id (e.g. "PGD-007")
      - createdBy: userId of the record's owner
    """

    OWNER_ATTRIBUTE = "createdBy"

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def exists(self, pengadaan_id: PengadaanId) -> bool:
        return self._get_item(pengadaan_id) is not None

    def get_owner(self, pengadaan_id: PengadaanId) -> typing.Optional[UserId]:
        item = self._get_item(pengadaan_id)
        if not item or not item.get(self.OWNER_ATTRIBUTE):
            return None
        return UserId(str(item[self.OWNER_ATTRIBUTE]))

    def _get_item(self, pengadaan_id: PengadaanId) -> typing.Optional[dict]:
        try:
            response = self.table.get_item(
                Key={"id": pengadaan_id},
                ProjectionExpression="#id, #owner",
                ExpressionAttributeNames={"#id": "id", "#owner": self.OWNER_ATTRIBUTE},
            )
        except (ClientError, BotoCoreError) as e:
            _LOGGER.error(f"Failed to read pengadaan {pengadaan_id}: {e}")
            raise StoreUnavailableError("Could not read procurement record") from e
        return response.get("Item")
