"""
Create the DynamoDB metadata table (pk/sk, on-demand) and enable TTL on ``ttl``.

Run from the project root:
    python -m scripts.create_table

Uses DYNAMODB_TABLE_NAME, AWS_REGION and AWS_ENDPOINT_URL (LocalStack) from
the environment / .env file. Safe to re-run: an existing table is left as is.
"""

import sys

import boto3
from botocore.exceptions import ClientError

from shared_utils.config_loader import get_settings


def create_table() -> int:
    settings = get_settings()
    table_name = settings.dynamodb_table_name
    if not table_name:
        print("Error: DYNAMODB_TABLE_NAME is not set.")
        return 1

    client_kwargs = {"region_name": settings.aws_region}
    if settings.aws_endpoint_url:
        client_kwargs["endpoint_url"] = settings.aws_endpoint_url
    client = boto3.client("dynamodb", **client_kwargs)

    print(f"Targeting table: {table_name} ({settings.aws_region})")
    try:
        client.create_table(
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
        client.get_waiter("table_exists").wait(TableName=table_name)
        print("Table created.")
    except ClientError as e:
        if e.response["Error"]["Code"] != "ResourceInUseException":
            print(f"Error creating table: {e}")
            return 1
        print("Table already exists.")

    try:
        client.update_time_to_live(
            TableName=table_name,
            TimeToLiveSpecification={"Enabled": True, "AttributeName": "ttl"},
        )
        print("TTL enabled on 'ttl'.")
    except ClientError as e:
        # Re-enabling an already enabled TTL is rejected
        if "already enabled" not in str(e):
            print(f"Error enabling TTL: {e}")
            return 1
        print("TTL already enabled.")
    return 0


if __name__ == "__main__":
    sys.exit(create_table())
