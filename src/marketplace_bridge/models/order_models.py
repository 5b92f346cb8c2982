"""Marketplace orders bridged into the POS.

Order status follows a small state machine:

    pending -> accepted -> completed
    pending | accepted -> failed       (POS order creation error)
    pending | accepted -> cancelled    (inbound cancellation)

failed, cancelled and completed are terminal for the bridge. Cancellation is
applied unconditionally, so it also overwrites terminal states.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class OrderStatusEnum(str, Enum):
    """Enumeration of order status values."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Statuses each target status may be entered from. None means unconditional.
ALLOWED_PREVIOUS_STATUSES: dict[OrderStatusEnum, tuple[OrderStatusEnum, ...] | None] = {
    OrderStatusEnum.ACCEPTED: (OrderStatusEnum.PENDING,),
    OrderStatusEnum.COMPLETED: (OrderStatusEnum.ACCEPTED,),
    OrderStatusEnum.FAILED: (OrderStatusEnum.PENDING, OrderStatusEnum.ACCEPTED),
    OrderStatusEnum.CANCELLED: None,
}


def can_transition(current: OrderStatusEnum, target: OrderStatusEnum) -> bool:
    """Return True if an order in `current` may move to `target`."""
    allowed = ALLOWED_PREVIOUS_STATUSES.get(target, ())
    return allowed is None or current in allowed


class OrderLineItem(BaseModel):
    """One line of a bridged order."""

    name: str = Field(..., description="Item title as sent by the Marketplace")
    quantity: int = Field(default=1, ge=0)
    unit_price: Decimal = Field(..., description="Unit price in currency units", ge=0)


class Order(BaseModel):
    """A Marketplace order and the outcome of bridging it into the POS.

    Stored in DynamoDB with (tenant_id, marketplace_order_id) as composite key.
    """

    tenant_id: str = Field(..., description="Tenant identifier")
    marketplace_order_id: str = Field(..., description="Uber Eats order id")
    pos_order_id: str | None = Field(None, description="Square order id once bridged")
    customer_name: str = Field(..., description="Customer display name")
    status: OrderStatusEnum = Field(default=OrderStatusEnum.PENDING)
    total_amount: Decimal = Field(default=Decimal("0"), ge=0)
    raw_payload: str = Field(..., description="Inbound webhook body, verbatim")
    line_items: list[OrderLineItem] = Field(default_factory=list)
    created_at: datetime = Field(..., description="When the order was first received")
    updated_at: datetime | None = Field(None, description="Last status change")

    def to_dynamodb_item(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "tenant_id": self.tenant_id,
            "marketplace_order_id": self.marketplace_order_id,
            "customer_name": self.customer_name,
            "status": self.status.value,
            "total_amount": self.total_amount,
            "raw_payload": self.raw_payload,
            "line_items": [
                {"name": li.name, "quantity": li.quantity, "unit_price": li.unit_price}
                for li in self.line_items
            ],
            "created_at": self.created_at.isoformat(),
        }

        if self.pos_order_id is not None:
            item["pos_order_id"] = self.pos_order_id
        if self.updated_at is not None:
            item["updated_at"] = self.updated_at.isoformat()

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "Order":
        data: dict[str, Any] = {
            "tenant_id": item["tenant_id"],
            "marketplace_order_id": item["marketplace_order_id"],
            "customer_name": item["customer_name"],
            "status": OrderStatusEnum(item["status"]),
            "total_amount": Decimal(str(item.get("total_amount", "0"))),
            "raw_payload": item.get("raw_payload", ""),
            "line_items": [
                OrderLineItem(
                    name=li["name"],
                    quantity=int(li.get("quantity", 1)),
                    unit_price=Decimal(str(li.get("unit_price", "0"))),
                )
                for li in item.get("line_items", [])
            ],
            "created_at": datetime.fromisoformat(item["created_at"]),
        }

        if "pos_order_id" in item:
            data["pos_order_id"] = item["pos_order_id"]
        if "updated_at" in item:
            data["updated_at"] = datetime.fromisoformat(item["updated_at"])

        return cls(**data)
