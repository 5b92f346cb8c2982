"""DynamoDB repositories for the webhook ingress log and the sync log."""

import logging

from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from marketplace_bridge.models.sync_models import SyncLogEntry
from marketplace_bridge.models.webhook_models import WebhookLogEntry

logger = logging.getLogger(__name__)

WEBHOOKS_BY_TENANT_INDEX = "tenant_id-received_at-index"


class WebhookLogRepository:
    """Repository for webhook log entries keyed by log_id.

    Entries are written once on arrival; afterwards only the processed
    flag and error text change.
    """

    def __init__(self, dynamodb_resource: DynamoDBServiceResource, table_name: str) -> None:
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)

    def append(self, entry: WebhookLogEntry) -> bool:
        """Record an inbound webhook.

        Args:
            entry: Log entry to store

        Returns:
            bool: True if save succeeded, False otherwise
        """
        try:
            self.table.put_item(Item=entry.to_dynamodb_item())
            return True
        except ClientError as e:
            logger.error(f"Failed to append webhook log {entry.log_id}: {e}")  # pragma: no cover
            return False

    def mark_processed(self, log_id: str, error: str | None = None) -> bool:
        """Flag an entry as processed, recording the error text if any."""
        if error is None:
            expression = "SET processed = :true REMOVE #error"
            values = {":true": True}
        else:
            expression = "SET processed = :true, #error = :error"
            values = {":true": True, ":error": error}

        try:
            self.table.update_item(
                Key={"log_id": log_id},
                UpdateExpression=expression,
                ExpressionAttributeNames={"#error": "error"},
                ExpressionAttributeValues=values,
            )
            return True
        except ClientError as e:
            logger.error(f"Failed to mark webhook log {log_id} processed: {e}")  # pragma: no cover
            return False

    def list_recent(self, tenant_id: str, limit: int = 50) -> list[WebhookLogEntry]:
        """List a tenant's most recent webhook entries, newest first.

        Uses a Global Secondary Index on (tenant_id, received_at).
        """
        try:
            response = self.table.query(
                IndexName=WEBHOOKS_BY_TENANT_INDEX,
                KeyConditionExpression="tenant_id = :tid",
                ExpressionAttributeValues={":tid": tenant_id},
                Limit=limit,
                ScanIndexForward=False,
            )
        except ClientError as e:
            logger.error(f"Failed to list webhook logs for tenant {tenant_id}: {e}")  # pragma: no cover
            return []

        return [WebhookLogEntry.from_dynamodb_item(item) for item in response.get("Items", [])]


class SyncLogRepository:
    """Repository for sync log entries keyed by (tenant_id, created_at)."""

    def __init__(self, dynamodb_resource: DynamoDBServiceResource, table_name: str) -> None:
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)

    def save_entry(self, entry: SyncLogEntry) -> bool:
        try:
            self.table.put_item(Item=entry.to_dynamodb_item())
            return True
        except ClientError as e:
            logger.error(f"Failed to save sync log entry: {e}")  # pragma: no cover
            return False

    def list_for_tenant(self, tenant_id: str, limit: int = 50) -> list[SyncLogEntry]:
        """List a tenant's most recent sync log entries.

        Args:
            tenant_id: Tenant identifier
            limit: Maximum number of entries to return

        Returns:
            list: Entries, newest first (empty list on error)
        """
        try:
            response = self.table.query(
                KeyConditionExpression="tenant_id = :tid",
                ExpressionAttributeValues={":tid": tenant_id},
                Limit=limit,
                ScanIndexForward=False,
            )
        except ClientError as e:
            logger.error(f"Failed to list sync log for tenant {tenant_id}: {e}")  # pragma: no cover
            return []

        return [SyncLogEntry.from_dynamodb_item(item) for item in response.get("Items", [])]
