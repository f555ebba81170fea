#!/usr/bin/env python3
"""Create the PMS sync DynamoDB tables for local development.

Creates the mirror, intake and audit tables with on-demand billing, plus the
time-ordered index the intake and audit listings read from. Tables
that already exist are left untouched.

Usage:
    python scripts/create_tables.py --env dev
    python scripts/create_tables.py --env dev --endpoint-url http://localhost:8000
    python scripts/create_tables.py --prefix my-sandbox
"""

import argparse
import os
import sys

import boto3
from botocore.exceptions import ClientError

from pms_sync.services.dynamodb import TABLE_KEYS, table_definition


def create_table(client, table: str, table_name: str) -> bool:
    """Create one table with its indexes; returns False if it already exists."""
    try:
        client.create_table(TableName=table_name, **table_definition(table))
    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceInUseException":
            return False
        raise
    client.get_waiter("table_exists").wait(TableName=table_name)
    return True


def main() -> int:
    parser = argparse.ArgumentParser(description="Create PMS sync DynamoDB tables")
    parser.add_argument(
        "--env",
        choices=["dev", "staging", "prod"],
        default="dev",
        help="Target environment (default: dev)",
    )
    parser.add_argument(
        "--prefix",
        default=os.environ.get("DYNAMODB_TABLE_PREFIX"),
        help="Table name prefix (default: DYNAMODB_TABLE_PREFIX or pms-sync-<env>)",
    )
    parser.add_argument(
        "--region",
        default=os.environ.get("AWS_DEFAULT_REGION", "eu-west-1"),
        help="AWS region (default: eu-west-1 or AWS_DEFAULT_REGION env var)",
    )
    parser.add_argument(
        "--endpoint-url",
        default=None,
        help="DynamoDB endpoint, e.g. DynamoDB Local",
    )
    args = parser.parse_args()

    prefix = args.prefix or f"pms-sync-{args.env}"
    client = boto3.client(
        "dynamodb", region_name=args.region, endpoint_url=args.endpoint_url
    )

    print(f"\nCreating tables with prefix {prefix} (region: {args.region})\n")
    for table in TABLE_KEYS:
        table_name = f"{prefix}-{table}"
        try:
            created = create_table(client, table, table_name)
        except ClientError as e:
            print(f"  ❌ {table_name}: {e}")
            return 1
        print(f"  {'✅ created' if created else '•  exists '} {table_name}")

    print("\nDone.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
