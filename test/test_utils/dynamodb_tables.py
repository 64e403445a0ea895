def _index(name: str, hash_key: str, range_key: str = "requestedAt") -> dict:
    return {
        "IndexName": name,
        "KeySchema": [
            {"AttributeName": hash_key, "KeyType": "HASH"},
            {"AttributeName": range_key, "KeyType": "RANGE"},
        ],
        "Projection": {"ProjectionType": "ALL"},
    }


def create_permissions_table(dynamodb, table_name: str):
    table = dynamodb.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "permissionId", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "permissionId", "AttributeType": "S"},
            {"AttributeName": "userId", "AttributeType": "S"},
            {"AttributeName": "pengadaanId", "AttributeType": "S"},
            {"AttributeName": "status", "AttributeType": "S"},
            {"AttributeName": "requestKey", "AttributeType": "S"},
            {"AttributeName": "requestedAt", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            _index("UserPermissionsIndex", "userId"),
            _index("PengadaanPermissionsIndex", "pengadaanId"),
            _index("StatusPermissionsIndex", "status"),
            _index("RequestKeyIndex", "requestKey"),
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    table.meta.client.get_waiter("table_exists").wait(TableName=table_name)
    return table


def create_users_table(dynamodb, table_name: str):
    return dynamodb.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "userId", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "userId", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )


def create_sessions_table(dynamodb, table_name: str):
    return dynamodb.create_table(
        TableName=table_name,
        KeySchema=[
            {"AttributeName": "userId", "KeyType": "HASH"},
            {"AttributeName": "sessionId", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "userId", "AttributeType": "S"},
            {"AttributeName": "sessionId", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )


def create_pengadaan_table(dynamodb, table_name: str):
    return dynamodb.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )


def create_secrets_table(dynamodb, table_name: str):
    return dynamodb.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "secretKey", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "secretKey", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
