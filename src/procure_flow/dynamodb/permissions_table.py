import logging
import re
import typing

import boto3
from boto3.dynamodb.conditions import Attr, ConditionBase, Key
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from procure_flow.models.permission_models import (
    PermissionItemModel,
    PermissionStatus,
    PermissionType,
    make_request_key,
)
from procure_flow.utils.base_types import IsoTimestamp, PengadaanId, PermissionId, UserId
from procure_flow.utils.errors import (
    AlreadyResolvedError,
    DuplicatePendingRequestError,
    NotFoundError,
    NotPendingError,
    PermissionWorkflowError,
    StoreUnavailableError,
)

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

CONDITION_FAILED_REASON = "ConditionalCheckFailed"
PENDING_LOCK_PREFIX = "PENDING#"


def _cancellation_reasons(error: ClientError) -> list[str]:
    reasons = error.response.get("CancellationReasons")
    if reasons:
        return [reason.get("Code", "None") for reason in reasons]
    # without modeled reasons, DynamoDB lists them in the message: "... reasons [ConditionalCheckFailed, None]"
    match = re.search(r"\[([^\]]*)\]", error.response.get("Error", {}).get("Message", ""))
    return [code.strip() for code in match.group(1).split(",")] if match else []


def _is_conditional_failure(error: ClientError) -> bool:
    """
    True only when a condition was refused. A cancelled transaction counts when
    every cancelled operation failed its condition. Any other cancellation
    reason, such as TransactionConflict, is a store failure.
    """
    code = error.response.get("Error", {}).get("Code")
    if code == "ConditionalCheckFailedException":
        return True
    if code != "TransactionCanceledException":
        return False
    reasons = _cancellation_reasons(error)
    return CONDITION_FAILED_REASON in reasons and all(
        reason in (CONDITION_FAILED_REASON, "None") for reason in reasons
    )


class PermissionsTable:
    """
    Data Abstraction Layer for the Permissions DynamoDB table.

    Table Schema:
      - PK: permissionId (e.g. PRM-3f2a...)
    GSIs (all sorted by requestedAt):
      - UserPermissionsIndex: userId
      - PengadaanPermissionsIndex: pengadaanId
      - StatusPermissionsIndex: status
      - RequestKeyIndex: requestKey (userId#pengadaanId#permissionType)

    Pending locks: while a request is pending, an item keyed
    PENDING#<requestKey> records which permission holds the tuple. The lock is
    written and released in the same transaction as the permission itself, so
    at most one pending request per tuple can exist. Lock items carry none of
    the GSI key attributes and therefore never appear in index queries.
    """

    USER_INDEX = "UserPermissionsIndex"
    PENGADAAN_INDEX = "PengadaanPermissionsIndex"
    STATUS_INDEX = "StatusPermissionsIndex"
    REQUEST_KEY_INDEX = "RequestKeyIndex"

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)
        self.table_name = table_name

    def _lock_key(self, request_key: str) -> str:
        return f"{PENDING_LOCK_PREFIX}{request_key}"

    def _to_model(self, item: dict) -> typing.Optional[PermissionItemModel]:
        try:
            return PermissionItemModel.model_validate(item)
        except ValidationError as ve:
            _LOGGER.error(f"Skipping malformed permission item {item.get('permissionId')}: {ve}")
            return None

    def _transact(self, operations: list[dict]) -> None:
        self.client.meta.client.transact_write_items(TransactItems=operations)

    def _store_unavailable(self, action: str, error: Exception) -> StoreUnavailableError:
        _LOGGER.error(f"DynamoDB error while trying to {action}: {error}")
        return StoreUnavailableError(f"Permission store unavailable while trying to {action}")

    def _resolution_error(
        self,
        permission_id: PermissionId,
        action: str,
        expected_status: PermissionStatus,
    ) -> PermissionWorkflowError:
        """
        Works out why a conditional write on permission_id was refused. A record
        still in expected_status means the write lost to something other than a
        status change, which the caller may retry.
        """
        current = self.get_by_id(permission_id)
        if current is None:
            return NotFoundError(f"Permission {permission_id} not found")
        if current.status == expected_status:
            _LOGGER.warning(f"Refused to {action} {permission_id} while still '{expected_status}'")
            return StoreUnavailableError(f"Could not {action} permission {permission_id}, try again")
        _LOGGER.info(f"Refused to {action} permission {permission_id}: status is '{current.status}'")
        return AlreadyResolvedError(f"Permission {permission_id} has already been {current.status}")

    def insert(self, permission: PermissionItemModel) -> PermissionItemModel:
        """
        Stores a new pending permission together with its pending lock.

        :raises DuplicatePendingRequestError: If the tuple already has a pending request
        """
        if permission.status != "pending":
            raise ValueError("Only pending permissions can be inserted")

        item = permission.model_dump(exclude_none=True)
        lock_item = {
            "permissionId": self._lock_key(permission.requestKey),
            "heldBy": permission.permissionId,
            "lockedAt": permission.requestedAt,
        }
        try:
            self._transact(
                [
                    {
                        "Put": {
                            "TableName": self.table_name,
                            "Item": item,
                            "ConditionExpression": "attribute_not_exists(permissionId)",
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.table_name,
                            "Item": lock_item,
                            "ConditionExpression": "attribute_not_exists(permissionId)",
                        }
                    },
                ]
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                _LOGGER.info(f"Pending lock already held for {permission.requestKey}")
                raise DuplicatePendingRequestError("You already have a pending request for this form") from e
            raise self._store_unavailable("insert permission", e) from e
        except BotoCoreError as e:
            raise self._store_unavailable("insert permission", e) from e

        _LOGGER.info(f"Inserted permission {permission.permissionId} for {permission.requestKey}")
        return permission

    def get_by_id(self, permission_id: PermissionId) -> typing.Optional[PermissionItemModel]:
        if not permission_id or permission_id.startswith(PENDING_LOCK_PREFIX):
            return None
        try:
            response = self.table.get_item(Key={"permissionId": permission_id}, ConsistentRead=True)
        except (ClientError, BotoCoreError) as e:
            raise self._store_unavailable(f"read permission {permission_id}", e) from e

        item = response.get("Item")
        if not item:
            _LOGGER.debug(f"No permission found for id {permission_id}")
            return None
        return self._to_model(item)

    def _query_all(self, condition: ConditionBase, index_name: str, filter_expression=None, **kwargs) -> list[dict]:
        query_kwargs: dict[str, typing.Any] = {"IndexName": index_name, "KeyConditionExpression": condition, **kwargs}
        if filter_expression is not None:
            query_kwargs["FilterExpression"] = filter_expression

        items: list[dict] = []
        try:
            response = self.table.query(**query_kwargs)
            items.extend(response.get("Items", []))
            while "LastEvaluatedKey" in response:
                response = self.table.query(**query_kwargs, ExclusiveStartKey=response["LastEvaluatedKey"])
                items.extend(response.get("Items", []))
        except (ClientError, BotoCoreError) as e:
            raise self._store_unavailable(f"query {index_name}", e) from e
        return items

    def _count_all(self, condition: ConditionBase, index_name: str, filter_expression=None) -> int:
        query_kwargs: dict[str, typing.Any] = {
            "IndexName": index_name,
            "KeyConditionExpression": condition,
            "Select": "COUNT",
        }
        if filter_expression is not None:
            query_kwargs["FilterExpression"] = filter_expression

        try:
            response = self.table.query(**query_kwargs)
            total = int(response.get("Count", 0))
            while "LastEvaluatedKey" in response:
                response = self.table.query(**query_kwargs, ExclusiveStartKey=response["LastEvaluatedKey"])
                total += int(response.get("Count", 0))
        except (ClientError, BotoCoreError) as e:
            raise self._store_unavailable(f"count {index_name}", e) from e
        return total

    def find_pending(
        self,
        user_id: UserId,
        pengadaan_id: PengadaanId,
        permission_type: PermissionType,
    ) -> typing.Optional[PermissionItemModel]:
        request_key = make_request_key(user_id, pengadaan_id, permission_type)
        items = self._query_all(
            Key("requestKey").eq(request_key),
            self.REQUEST_KEY_INDEX,
            Attr("status").eq("pending"),
        )
        for item in items:
            model = self._to_model(item)
            if model:
                return model
        return None

    def find_active_grant(
        self,
        user_id: UserId,
        pengadaan_id: PengadaanId,
        permission_type: PermissionType,
        now_iso: IsoTimestamp,
    ) -> typing.Optional[PermissionItemModel]:
        """
        Newest approved permission for the tuple whose expiresAt is still ahead
        of now_iso. The stored status is not trusted on its own.
        """
        request_key = make_request_key(user_id, pengadaan_id, permission_type)
        items = self._query_all(
            Key("requestKey").eq(request_key),
            self.REQUEST_KEY_INDEX,
            Attr("status").eq("approved") & Attr("expiresAt").gt(now_iso),
            ScanIndexForward=False,
        )
        for item in items:
            model = self._to_model(item)
            if model:
                return model
        return None

    def compare_and_set_status(
        self,
        permission_id: PermissionId,
        expected_status: PermissionStatus,
        new_fields: dict[str, typing.Any],
        *,
        request_key: typing.Optional[str] = None,
    ) -> PermissionItemModel:
        """
        Atomically applies new_fields if, and only if, the stored status still
        equals expected_status. Leaving pending also releases the pending lock
        when request_key is given.

        :raises NotFoundError: If the permission does not exist
        :raises AlreadyResolvedError: If the stored status no longer matches
        """
        if "status" not in new_fields:
            raise ValueError("new_fields must include the target status")

        names = {"#status": "status"}
        values: dict[str, typing.Any] = {":expected": expected_status}
        set_parts = []
        for index, (field_name, value) in enumerate(sorted(new_fields.items())):
            if value is None:
                continue
            if field_name == "status":
                values[":new_status"] = value
                set_parts.append("#status = :new_status")
                continue
            names[f"#f{index}"] = field_name
            values[f":v{index}"] = value
            set_parts.append(f"#f{index} = :v{index}")

        update_expression = "SET " + ", ".join(set_parts)
        condition_expression = "attribute_exists(permissionId) AND #status = :expected"

        try:
            if expected_status == "pending" and request_key:
                self._transact(
                    [
                        {
                            "Update": {
                                "TableName": self.table_name,
                                "Key": {"permissionId": permission_id},
                                "UpdateExpression": update_expression,
                                "ConditionExpression": condition_expression,
                                "ExpressionAttributeNames": names,
                                "ExpressionAttributeValues": values,
                            }
                        },
                        {
                            "Delete": {
                                "TableName": self.table_name,
                                "Key": {"permissionId": self._lock_key(request_key)},
                            }
                        },
                    ]
                )
            else:
                self.table.update_item(
                    Key={"permissionId": permission_id},
                    UpdateExpression=update_expression,
                    ConditionExpression=condition_expression,
                    ExpressionAttributeNames=names,
                    ExpressionAttributeValues=values,
                )
        except ClientError as e:
            if _is_conditional_failure(e):
                raise self._resolution_error(
                    permission_id, f"move to '{new_fields['status']}'", expected_status
                ) from e
            raise self._store_unavailable(f"update permission {permission_id}", e) from e
        except BotoCoreError as e:
            raise self._store_unavailable(f"update permission {permission_id}", e) from e

        updated = self.get_by_id(permission_id)
        if updated is None:
            raise NotFoundError(f"Permission {permission_id} disappeared after update")
        _LOGGER.info(f"Permission {permission_id} moved from '{expected_status}' to '{updated.status}'")
        return updated

    def expire_lapsed_grant(self, permission_id: PermissionId, now_iso: IsoTimestamp) -> bool:
        """
        Persists 'expired' on an approved grant whose horizon has passed.
        Returns False when the record no longer qualifies.
        """
        try:
            self.table.update_item(
                Key={"permissionId": permission_id},
                UpdateExpression="SET #status = :expired, #updatedAt = :now",
                ConditionExpression="#status = :approved AND #expiresAt <= :now",
                ExpressionAttributeNames={"#status": "status", "#updatedAt": "updatedAt", "#expiresAt": "expiresAt"},
                ExpressionAttributeValues={":expired": "expired", ":approved": "approved", ":now": now_iso},
            )
            return True
        except ClientError as e:
            if _is_conditional_failure(e):
                _LOGGER.debug(f"Permission {permission_id} no longer a lapsed grant, skipping.")
                return False
            raise self._store_unavailable(f"expire permission {permission_id}", e) from e
        except BotoCoreError as e:
            raise self._store_unavailable(f"expire permission {permission_id}", e) from e

    def delete_if_status(
        self,
        permission_id: PermissionId,
        expected_status: PermissionStatus,
        *,
        request_key: typing.Optional[str] = None,
    ) -> None:
        """
        Physically removes a permission, but only while its stored status still
        equals expected_status.

        :raises NotFoundError: If the permission does not exist
        :raises NotPendingError: If its status changed since it was read
        """
        key = {"permissionId": permission_id}
        condition_expression = "attribute_exists(permissionId) AND #status = :expected"
        try:
            if expected_status == "pending" and request_key:
                self._transact(
                    [
                        {
                            "Delete": {
                                "TableName": self.table_name,
                                "Key": key,
                                "ConditionExpression": condition_expression,
                                "ExpressionAttributeNames": {"#status": "status"},
                                "ExpressionAttributeValues": {":expected": expected_status},
                            }
                        },
                        {
                            "Delete": {
                                "TableName": self.table_name,
                                "Key": {"permissionId": self._lock_key(request_key)},
                            }
                        },
                    ]
                )
            else:
                self.table.delete_item(
                    Key=key,
                    ConditionExpression=condition_expression,
                    ExpressionAttributeNames={"#status": "status"},
                    ExpressionAttributeValues={":expected": expected_status},
                )
        except ClientError as e:
            if _is_conditional_failure(e):
                error = self._resolution_error(permission_id, "delete", expected_status)
                if isinstance(error, AlreadyResolvedError):
                    raise NotPendingError(error.message) from e
                raise error from e
            raise self._store_unavailable(f"delete permission {permission_id}", e) from e
        except BotoCoreError as e:
            raise self._store_unavailable(f"delete permission {permission_id}", e) from e

        _LOGGER.info(f"Deleted permission {permission_id} (was '{expected_status}')")

    def list_by_filter(
        self,
        *,
        user_id: typing.Optional[UserId] = None,
        pengadaan_id: typing.Optional[PengadaanId] = None,
        status: typing.Optional[PermissionStatus] = None,
        limit: typing.Optional[int] = None,
        last_evaluated_key: typing.Optional[dict] = None,
    ) -> typing.Tuple[list[PermissionItemModel], typing.Optional[dict]]:
        """
        Lists permissions newest first through the most selective index.
        Remaining filters are applied as DynamoDB filter expressions.

        Returns:
            Tuple of (permissions, next pagination token)
        """
        filters: list[ConditionBase] = []
        if user_id is not None:
            index_name, key_condition = self.USER_INDEX, Key("userId").eq(user_id)
            if pengadaan_id is not None:
                filters.append(Attr("pengadaanId").eq(pengadaan_id))
            if status is not None:
                filters.append(Attr("status").eq(status))
        elif pengadaan_id is not None:
            index_name, key_condition = self.PENGADAAN_INDEX, Key("pengadaanId").eq(pengadaan_id)
            if status is not None:
                filters.append(Attr("status").eq(status))
        elif status is not None:
            index_name, key_condition = self.STATUS_INDEX, Key("status").eq(status)
        else:
            raise ValueError("list_by_filter needs at least one of user_id, pengadaan_id or status")

        query_kwargs: dict[str, typing.Any] = {
            "IndexName": index_name,
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": False,
        }
        if filters:
            filter_expression = filters[0]
            for extra in filters[1:]:
                filter_expression = filter_expression & extra
            query_kwargs["FilterExpression"] = filter_expression
        if limit:
            query_kwargs["Limit"] = limit
        if last_evaluated_key:
            query_kwargs["ExclusiveStartKey"] = last_evaluated_key

        try:
            response = self.table.query(**query_kwargs)
        except (ClientError, BotoCoreError) as e:
            raise self._store_unavailable(f"list permissions via {index_name}", e) from e

        permissions = [model for model in map(self._to_model, response.get("Items", [])) if model]
        _LOGGER.info(f"Fetched {len(permissions)} permissions via {index_name}.")
        return permissions, response.get("LastEvaluatedKey")

    def aggregate_by_status(self) -> dict[PermissionStatus, int]:
        """Stored status counts, one COUNT query per status partition."""
        counts: dict[PermissionStatus, int] = {}
        for status in typing.get_args(PermissionStatus):
            counts[status] = self._count_all(Key("status").eq(status), self.STATUS_INDEX)
        return counts

    def count_lapsed_grants(self, now_iso: IsoTimestamp) -> int:
        return self._count_all(
            Key("status").eq("approved"),
            self.STATUS_INDEX,
            Attr("expiresAt").lte(now_iso),
        )

    def list_lapsed_grants(self, now_iso: IsoTimestamp) -> list[PermissionItemModel]:
        items = self._query_all(
            Key("status").eq("approved"),
            self.STATUS_INDEX,
            Attr("expiresAt").lte(now_iso),
        )
        return [model for model in map(self._to_model, items) if model]

    def list_stale_pending(self, requested_before_iso: IsoTimestamp) -> list[PermissionItemModel]:
        items = self._query_all(
            Key("status").eq("pending") & Key("requestedAt").lt(requested_before_iso),
            self.STATUS_INDEX,
        )
        return [model for model in map(self._to_model, items) if model]
