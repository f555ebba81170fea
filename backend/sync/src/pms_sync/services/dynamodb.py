"""DynamoDB service wrapper for the sync tables."""

import os
from datetime import datetime, timezone
from decimal import Decimal, DecimalException
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

# Errors a caller should translate into StorageError
STORAGE_EXCEPTIONS: tuple[type[Exception], ...] = (ClientError, BotoCoreError)

# Raised by boto3's serializer for values DynamoDB cannot hold
# (e.g. decimal.Rounded for numbers beyond 38 significant digits)
SERIALIZATION_EXCEPTIONS: tuple[type[Exception], ...] = (DecimalException, TypeError)

PROPERTIES_TABLE = "external-properties"
RESERVATIONS_TABLE = "external-reservations"
WEBHOOK_EVENTS_TABLE = "webhook-events"
SYNC_LOGS_TABLE = "sync-logs"

# Table name (without prefix) -> partition key
TABLE_KEYS: dict[str, str] = {
    PROPERTIES_TABLE: "upstream_id",
    RESERVATIONS_TABLE: "upstream_id",
    WEBHOOK_EVENTS_TABLE: "event_id",
    SYNC_LOGS_TABLE: "log_id",
}

# Append-only tables listed newest first through RECENT_INDEX.
# Every item carries RECENT_PARTITION_KEY = <table name>; value is the sort key.
RECENT_INDEX = "recent-index"
RECENT_PARTITION_KEY = "stream"
TIME_ORDERED_TABLES: dict[str, str] = {
    WEBHOOK_EVENTS_TABLE: "received_at",
    SYNC_LOGS_TABLE: "timestamp",
}

# Module-level singleton for connection reuse
_dynamodb_service_instance: "DynamoDBService | None" = None


def get_dynamodb_service(environment: str | None = None) -> "DynamoDBService":
    """Get or create the singleton DynamoDB service instance.

    Args:
        environment: Environment name. Only used on first call.

    Returns:
        Shared DynamoDBService instance
    """
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(environment)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Reset the singleton instance (for testing only).

    This allows tests to create a fresh DynamoDBService inside
    a mock_aws context.
    """
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


def to_dynamodb(value: Any) -> Any:
    """Convert floats (recursively) to Decimal; boto3 rejects float values."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamodb(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamodb(v) for v in value]
    return value


def is_validation_exception(error: Exception) -> bool:
    """True when DynamoDB rejected the request itself (retrying cannot help)."""
    return (
        isinstance(error, ClientError)
        and error.response.get("Error", {}).get("Code") == "ValidationException"
    )


def table_definition(table: str) -> dict[str, Any]:
    """create_table arguments (minus TableName) for a sync table."""
    key = TABLE_KEYS[table]
    definition: dict[str, Any] = {
        "KeySchema": [{"AttributeName": key, "KeyType": "HASH"}],
        "AttributeDefinitions": [{"AttributeName": key, "AttributeType": "S"}],
        "BillingMode": "PAY_PER_REQUEST",
    }
    sort_key = TIME_ORDERED_TABLES.get(table)
    if sort_key:
        definition["AttributeDefinitions"] += [
            {"AttributeName": RECENT_PARTITION_KEY, "AttributeType": "S"},
            {"AttributeName": sort_key, "AttributeType": "S"},
        ]
        definition["GlobalSecondaryIndexes"] = [
            {
                "IndexName": RECENT_INDEX,
                "KeySchema": [
                    {"AttributeName": RECENT_PARTITION_KEY, "KeyType": "HASH"},
                    {"AttributeName": sort_key, "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            }
        ]
    return definition


class DynamoDBService:
    """Service for DynamoDB operations with environment-aware table names."""

    def __init__(self, environment: str | None = None) -> None:
        """Initialize DynamoDB service.

        Args:
            environment: Environment name (dev/prod). Defaults to ENVIRONMENT env var.
        """
        self.environment = environment or os.getenv("ENVIRONMENT", "dev")
        # Allow override via DYNAMODB_TABLE_PREFIX for testing
        self.name_prefix = os.getenv(
            "DYNAMODB_TABLE_PREFIX", f"pms-sync-{self.environment}"
        )
        self._dynamodb = boto3.resource("dynamodb")

    def table_name(self, table: str) -> str:
        """Get full table name with prefix."""
        return f"{self.name_prefix}-{table}"

    def _get_table(self, table: str) -> Any:
        return self._dynamodb.Table(self.table_name(table))

    # Generic CRUD operations

    def get_item(self, table: str, key: dict[str, Any]) -> dict[str, Any] | None:
        """Get a single item by key, or None if not found."""
        response = self._get_table(table).get_item(Key=key)
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
    ) -> bool:
        """Put an item into the table.

        Args:
            table: Table name without prefix
            item: Item to store
            condition_expression: Optional condition for write

        Returns:
            True if successful, False if condition failed
        """
        try:
            kwargs: dict[str, Any] = {"Item": to_dynamodb(item)}
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression

            self._get_table(table).put_item(**kwargs)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return False
            raise

    def update_item(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any],
        expression_attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
        return_values: str = "ALL_NEW",
    ) -> dict[str, Any] | None:
        """Update an item with expressions.

        Args:
            table: Table name without prefix
            key: Primary key dict
            update_expression: DynamoDB update expression
            expression_attribute_values: Values for expression
            expression_attribute_names: Names for expression (for reserved words)
            condition_expression: Optional condition for update
            return_values: ALL_NEW, ALL_OLD, UPDATED_NEW, ...

        Returns:
            Returned attributes ({} when there are none) or None if the
            condition failed
        """
        try:
            kwargs: dict[str, Any] = {
                "Key": key,
                "UpdateExpression": update_expression,
                "ExpressionAttributeValues": to_dynamodb(expression_attribute_values),
                "ReturnValues": return_values,
            }
            if expression_attribute_names:
                kwargs["ExpressionAttributeNames"] = expression_attribute_names
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression

            response = self._get_table(table).update_item(**kwargs)
            attrs: dict[str, Any] = response.get("Attributes") or {}
            return attrs
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return None
            raise

    def delete_item(self, table: str, key: dict[str, Any]) -> dict[str, Any] | None:
        """Delete an item by key.

        Returns:
            The deleted item, or None if it did not exist
        """
        response = self._get_table(table).delete_item(Key=key, ReturnValues="ALL_OLD")
        attrs: dict[str, Any] | None = response.get("Attributes")
        return attrs

    def query(
        self,
        table: str,
        key_condition: Any,
        index_name: str | None = None,
        limit: int | None = None,
        scan_index_forward: bool = True,
    ) -> list[dict[str, Any]]:
        """Query table or GSI.

        Args:
            table: Table name without prefix
            key_condition: Boto3 Key condition
            index_name: GSI name (optional)
            limit: Max items to return
            scan_index_forward: Sort order (True=ascending)
        """
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": scan_index_forward,
        }
        if index_name:
            kwargs["IndexName"] = index_name
        if limit:
            kwargs["Limit"] = limit

        response = self._get_table(table).query(**kwargs)
        items: list[dict[str, Any]] = response.get("Items", [])
        return items

    # =========================================================================
    # Append-only tables (intake log, audit log)
    # =========================================================================

    def put_time_ordered(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
    ) -> bool:
        """Put an item so that it shows up in recent() listings of its table."""
        return self.put_item(
            table, {**item, RECENT_PARTITION_KEY: table}, condition_expression
        )

    def recent(self, table: str, limit: int) -> list[dict[str, Any]]:
        """Newest items of an append-only table, read from its time index."""
        return self.query(
            table,
            Key(RECENT_PARTITION_KEY).eq(table),
            index_name=RECENT_INDEX,
            limit=limit,
            scan_index_forward=False,
        )

    # =========================================================================
    # External entity mirrors
    # =========================================================================

    def find_by_upstream_id(self, table: str, upstream_id: str) -> dict[str, Any] | None:
        """Get a mirrored property or reservation by upstream id."""
        return self.get_item(table, {"upstream_id": upstream_id})

    def upsert_by_upstream_id(
        self, table: str, upstream_id: str, fields: dict[str, Any]
    ) -> bool:
        """Insert or update a mirror row in a single atomic write.

        Only the given fields are written; other attributes (such as a
        locally configured ical_url) survive. created_at is set on insert
        only.

        Returns:
            True if the row was created, False if an existing row was updated
        """
        now = datetime.now(timezone.utc).isoformat()
        names: dict[str, str] = {}
        values: dict[str, Any] = {":now": now}
        assignments = ["updated_at = :now", "created_at = if_not_exists(created_at, :now)"]

        for index, (name, value) in enumerate(sorted(fields.items())):
            names[f"#f{index}"] = name
            values[f":v{index}"] = value
            assignments.append(f"#f{index} = :v{index}")

        old = self.update_item(
            table,
            {"upstream_id": upstream_id},
            "SET " + ", ".join(assignments),
            values,
            names or None,
            return_values="ALL_OLD",
        )
        return not old

    def delete_by_upstream_id(self, table: str, upstream_id: str) -> dict[str, Any] | None:
        """Delete a mirror row; returns the removed row or None if absent."""
        return self.delete_item(table, {"upstream_id": upstream_id})

    def set_property_ical_url(
        self, upstream_id: str, ical_url: str | None
    ) -> dict[str, Any] | None:
        """Set (or clear) a property's calendar feed URL.

        Returns:
            The updated property, or None if the property does not exist
        """
        now = datetime.now(timezone.utc).isoformat()
        if ical_url:
            expression = "SET ical_url = :url, updated_at = :now"
            values: dict[str, Any] = {":url": ical_url, ":now": now}
        else:
            expression = "SET updated_at = :now REMOVE ical_url"
            values = {":now": now}
        return self.update_item(
            PROPERTIES_TABLE,
            {"upstream_id": upstream_id},
            expression,
            values,
            condition_expression="attribute_exists(upstream_id)",
        )
