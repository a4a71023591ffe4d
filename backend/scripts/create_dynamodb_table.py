from __future__ import annotations

import sys

import boto3

from kaartavond.config import Settings


def main() -> None:
    settings = Settings.from_env()
    table_name = sys.argv[1] if len(sys.argv) > 1 else settings.ddb_table_name
    if not table_name:
        raise SystemExit("DDB_TABLE_NAME is required (or pass the table name as argument)")

    ddb = boto3.client("dynamodb")
    existing = ddb.list_tables().get("TableNames", [])
    if table_name in existing:
        print(f"Table already exists: {table_name}")
        return

    # Every entity lives under pk/sk; see DynamoDBStore for the key layout.
    ddb.create_table(
        TableName=table_name,
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

    ddb.get_waiter("table_exists").wait(TableName=table_name)
    print(f"Created table: {table_name}")


if __name__ == "__main__":
    main()
