from __future__ import annotations

import boto3
import pytest
from moto import mock_aws

from kaartavond.store import DynamoDBStore, InMemoryStore

TABLE_NAME = "kaartavond-test"


@pytest.fixture
def dynamodb_store(monkeypatch) -> DynamoDBStore:
    monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-west-1")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    with mock_aws():
        boto3.client("dynamodb").create_table(
            TableName=TABLE_NAME,
            AttributeDefinitions=[
                {"AttributeName": "pk", "AttributeType": "S"},
                {"AttributeName": "sk", "AttributeType": "S"},
            ],
            KeySchema=[
                {"AttributeName": "pk", "KeyType": "HASH"},
                {"AttributeName": "sk", "KeyType": "RANGE"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        yield DynamoDBStore(table_name=TABLE_NAME)


@pytest.fixture(params=["inmemory", "dynamodb"])
def store(request):
    """Every store rule holds for the in-process and the DynamoDB backend."""

    if request.param == "dynamodb":
        return request.getfixturevalue("dynamodb_store")
    return InMemoryStore.create()
