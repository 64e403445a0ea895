"""
Pytest configuration and fixtures for all tests.

This file contains fixtures that are automatically available to all test files.
"""

import os
import typing

import boto3
import pytest
from moto import mock_aws

from procure_flow.dynamodb.secrets_table import SecretsTable
from test_utils.dynamodb_tables import (
    create_pengadaan_table,
    create_permissions_table,
    create_secrets_table,
    create_sessions_table,
    create_users_table,
)

REGION = "us-west-1"

# read by aws_embedded_metrics when its config loads, before any fixture runs
os.environ["AWS_EMF_ENVIRONMENT"] = "Local"


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """
    Sets up environment variables required for all tests.

    Session scoped and autouse: the application reads these at runtime and they
    never change between tests.
    """
    # AWS Configuration
    os.environ["AWS_REGION"] = REGION

    # DynamoDB Table Names
    os.environ["PERMISSIONS_TABLE_NAME"] = "test-permissions-table"
    os.environ["USERS_TABLE_NAME"] = "test-users-table"
    os.environ["SESSIONS_TABLE_NAME"] = "test-sessions-table"
    os.environ["PENGADAAN_TABLE_NAME"] = "test-pengadaan-table"
    os.environ["SECRETS_TABLE_NAME"] = "test-secrets-table"

    yield


@pytest.fixture(scope="function")
def aws_credentials() -> typing.Iterator[None]:
    """
    Mocks AWS credentials for moto.

    AWS_REGION above is what application code reads; these are what boto3 and
    moto read.
    """
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = REGION
    yield
    del os.environ["AWS_ACCESS_KEY_ID"]
    del os.environ["AWS_SECRET_ACCESS_KEY"]
    del os.environ["AWS_SECURITY_TOKEN"]
    del os.environ["AWS_SESSION_TOKEN"]
    del os.environ["AWS_DEFAULT_REGION"]


class MockedTables(typing.NamedTuple):
    permissions: typing.Any
    users: typing.Any
    sessions: typing.Any
    pengadaan: typing.Any
    secrets: typing.Any


@pytest.fixture
def dynamodb_tables(aws_credentials) -> typing.Iterator[MockedTables]:
    """Creates every table the permissions service touches inside one moto context."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name=REGION)
        tables = MockedTables(
            permissions=create_permissions_table(dynamodb, os.environ["PERMISSIONS_TABLE_NAME"]),
            users=create_users_table(dynamodb, os.environ["USERS_TABLE_NAME"]),
            sessions=create_sessions_table(dynamodb, os.environ["SESSIONS_TABLE_NAME"]),
            pengadaan=create_pengadaan_table(dynamodb, os.environ["PENGADAAN_TABLE_NAME"]),
            secrets=create_secrets_table(dynamodb, os.environ["SECRETS_TABLE_NAME"]),
        )
        SecretsTable.clear_cache()
        yield tables
        SecretsTable.clear_cache()
