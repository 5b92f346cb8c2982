"""DynamoDB repository for bridged orders.

Order creation and status transitions are conditional writes, so duplicate
webhook deliveries and racing handlers cannot create a second record or move
an order out of a terminal state.
"""

import logging
from datetime import datetime
from typing import Any

from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from marketplace_bridge.models.order_models import ALLOWED_PREVIOUS_STATUSES, Order, OrderStatusEnum
from marketplace_bridge.repositories.menu_repositories import is_conditional_check_failure

logger = logging.getLogger(__name__)

ORDERS_BY_CREATED_INDEX = "tenant_id-created_at-index"


class OrderRepository:
    """Repository for orders keyed by (tenant_id, marketplace_order_id)."""

    def __init__(self, dynamodb_resource: DynamoDBServiceResource, table_name: str) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_name: Name of the DynamoDB table
        """
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)

    def create_order(self, order: Order) -> bool:
        """Insert a new order if none exists for the same key.

        Args:
            order: Order to insert

        Returns:
            bool: True if inserted, False if the order already exists

        Raises:
            ClientError: For any failure other than the duplicate-key condition
        """
        try:
            self.table.put_item(
                Item=order.to_dynamodb_item(),
                ConditionExpression="attribute_not_exists(marketplace_order_id)",
            )
            return True
        except ClientError as e:
            if is_conditional_check_failure(e):
                logger.info(f"Order {order.marketplace_order_id} already recorded")
                return False
            raise

    def get_order(self, tenant_id: str, marketplace_order_id: str) -> Order | None:
        """Retrieve an order.

        Returns:
            Order if found, None otherwise
        """
        try:
            response = self.table.get_item(
                Key={"tenant_id": tenant_id, "marketplace_order_id": marketplace_order_id},
                ConsistentRead=True,
            )
        except ClientError as e:
            logger.error(f"Failed to get order {marketplace_order_id}: {e}")  # pragma: no cover
            return None

        if "Item" not in response:
            return None
        return Order.from_dynamodb_item(response["Item"])

    def update_status(
        self,
        tenant_id: str,
        marketplace_order_id: str,
        status: OrderStatusEnum,
        updated_at: datetime,
        pos_order_id: str | None = None,
    ) -> bool:
        """Move an order to `status` if the transition is allowed.

        Args:
            tenant_id: Tenant identifier
            marketplace_order_id: Uber Eats order id
            status: Target status
            updated_at: Timestamp of the change
            pos_order_id: Square order id to record, if any

        Returns:
            bool: True if updated, False if the order is missing, the
            transition is not allowed, or on error
        """
        set_clauses = ["#status = :status", "updated_at = :updated_at"]
        values: dict[str, Any] = {":status": status.value, ":updated_at": updated_at.isoformat()}
        if pos_order_id is not None:
            set_clauses.append("pos_order_id = :pos_order_id")
            values[":pos_order_id"] = pos_order_id

        condition = "attribute_exists(marketplace_order_id)"
        allowed = ALLOWED_PREVIOUS_STATUSES.get(status, ())
        if allowed is not None:
            placeholders = []
            for index, previous in enumerate(allowed):
                values[f":from{index}"] = previous.value
                placeholders.append(f":from{index}")
            condition += f" AND #status IN ({', '.join(placeholders)})"

        try:
            self.table.update_item(
                Key={"tenant_id": tenant_id, "marketplace_order_id": marketplace_order_id},
                UpdateExpression="SET " + ", ".join(set_clauses),
                ConditionExpression=condition,
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues=values,
            )
            return True
        except ClientError as e:
            if is_conditional_check_failure(e):
                logger.warning(f"Order {marketplace_order_id} cannot move to {status.value}")
            else:
                logger.error(f"Failed to update order {marketplace_order_id}: {e}")  # pragma: no cover
            return False

    def list_orders(self, tenant_id: str, limit: int = 50) -> list[Order]:
        """List a tenant's most recent orders.

        Uses a Global Secondary Index on (tenant_id, created_at).

        Returns:
            list: Orders, newest first (empty list on error)
        """
        try:
            response = self.table.query(
                IndexName=ORDERS_BY_CREATED_INDEX,
                KeyConditionExpression="tenant_id = :tid",
                ExpressionAttributeValues={":tid": tenant_id},
                Limit=limit,
                ScanIndexForward=False,
            )
        except ClientError as e:
            logger.error(f"Failed to list orders for tenant {tenant_id}: {e}")  # pragma: no cover
            return []

        return [Order.from_dynamodb_item(item) for item in response.get("Items", [])]
