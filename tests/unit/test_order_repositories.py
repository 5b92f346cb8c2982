"""Unit tests for the order repository."""

from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from marketplace_bridge.models.order_models import Order, OrderStatusEnum
from marketplace_bridge.repositories.order_repositories import OrderRepository


@pytest.fixture
def order(tenant_id: str, now: datetime) -> Order:
    """A freshly received order."""
    return Order(
        tenant_id=tenant_id,
        marketplace_order_id="uber_order_1",
        customer_name="Sam",
        total_amount=Decimal("13.00"),
        raw_payload="{}",
        created_at=now,
    )


@pytest.mark.unit
class TestOrderRepository:
    """Test suite for OrderRepository."""

    @pytest.fixture
    def mock_dynamodb(self) -> MagicMock:
        """Create a mock DynamoDB resource."""
        return MagicMock()

    @pytest.fixture
    def repository(self, mock_dynamodb: MagicMock) -> OrderRepository:
        return OrderRepository(dynamodb_resource=mock_dynamodb, table_name="test-orders")

    @pytest.fixture
    def table(self, mock_dynamodb: MagicMock) -> MagicMock:
        return mock_dynamodb.Table.return_value

    def test_create_order_is_conditional(
        self, repository: OrderRepository, table: MagicMock, order: Order
    ) -> None:
        """Test that orders are inserted only when absent."""
        assert repository.create_order(order) is True
        table.put_item.assert_called_once_with(
            Item=order.to_dynamodb_item(),
            ConditionExpression="attribute_not_exists(marketplace_order_id)",
        )

    def test_create_duplicate_order_returns_false(
        self, repository: OrderRepository, table: MagicMock, order: Order
    ) -> None:
        table.put_item.side_effect = ClientError(
            {"Error": {"Code": "ConditionalCheckFailedException", "Message": "exists"}}, "PutItem"
        )

        assert repository.create_order(order) is False

    def test_create_order_other_errors_propagate(
        self, repository: OrderRepository, table: MagicMock, order: Order
    ) -> None:
        """Test that storage failures are not mistaken for duplicates."""
        table.put_item.side_effect = ClientError(
            {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow"}},
            "PutItem",
        )

        with pytest.raises(ClientError):
            repository.create_order(order)

    def test_get_order(self, repository: OrderRepository, table: MagicMock, order: Order) -> None:
        table.get_item.return_value = {"Item": order.to_dynamodb_item()}

        assert repository.get_order("tenant_123", "uber_order_1") == order

    def test_get_order_not_found(self, repository: OrderRepository, table: MagicMock) -> None:
        table.get_item.return_value = {}

        assert repository.get_order("tenant_123", "missing") is None

    def test_update_status_accepted_requires_pending(
        self, repository: OrderRepository, table: MagicMock, now: datetime
    ) -> None:
        """Test the transition guard for accepting an order."""
        result = repository.update_status(
            "tenant_123", "uber_order_1", OrderStatusEnum.ACCEPTED, now, pos_order_id="sq_1"
        )

        assert result is True
        kwargs = table.update_item.call_args.kwargs
        assert kwargs["ConditionExpression"] == (
            "attribute_exists(marketplace_order_id) AND #status IN (:from0)"
        )
        assert kwargs["ExpressionAttributeValues"][":from0"] == "pending"
        assert kwargs["ExpressionAttributeValues"][":pos_order_id"] == "sq_1"
        assert "pos_order_id = :pos_order_id" in kwargs["UpdateExpression"]

    def test_update_status_failed_allows_pending_or_accepted(
        self, repository: OrderRepository, table: MagicMock, now: datetime
    ) -> None:
        repository.update_status("tenant_123", "uber_order_1", OrderStatusEnum.FAILED, now)

        kwargs = table.update_item.call_args.kwargs
        assert kwargs["ConditionExpression"].endswith("#status IN (:from0, :from1)")
        assert kwargs["ExpressionAttributeValues"][":from0"] == "pending"
        assert kwargs["ExpressionAttributeValues"][":from1"] == "accepted"

    def test_update_status_cancelled_only_requires_existence(
        self, repository: OrderRepository, table: MagicMock, now: datetime
    ) -> None:
        """Test that cancellation applies from any status."""
        repository.update_status("tenant_123", "uber_order_1", OrderStatusEnum.CANCELLED, now)

        kwargs = table.update_item.call_args.kwargs
        assert kwargs["ConditionExpression"] == "attribute_exists(marketplace_order_id)"
        assert "pos_order_id" not in kwargs["UpdateExpression"]

    def test_update_status_rejected_transition(
        self, repository: OrderRepository, table: MagicMock, now: datetime
    ) -> None:
        table.update_item.side_effect = ClientError(
            {"Error": {"Code": "ConditionalCheckFailedException", "Message": "no"}}, "UpdateItem"
        )

        assert (
            repository.update_status("tenant_123", "uber_order_1", OrderStatusEnum.COMPLETED, now)
            is False
        )

    def test_list_orders_newest_first(
        self, repository: OrderRepository, table: MagicMock, order: Order
    ) -> None:
        table.query.return_value = {"Items": [order.to_dynamodb_item()]}

        orders = repository.list_orders("tenant_123", limit=10)

        assert orders == [order]
        kwargs = table.query.call_args.kwargs
        assert kwargs["IndexName"] == "tenant_id-created_at-index"
        assert kwargs["ScanIndexForward"] is False
        assert kwargs["Limit"] == 10

    def test_list_orders_error_returns_empty(self, repository: OrderRepository, table: MagicMock) -> None:
        table.query.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "Server error"}}, "Query"
        )

        assert repository.list_orders("tenant_123") == []
