"""Sync outcome and audit log models.

SyncLogEntry is the durable record of one catalog pull or publish batch.
ItemSyncResult and PublishResult are the in-memory results of a publish.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SyncTypeEnum(str, Enum):
    """Kind of sync operation."""

    MENU_PULL = "menu_pull"
    MENU_PUSH = "menu_push"


class SyncOutcomeEnum(str, Enum):
    """Outcome of a sync operation."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class SyncLogEntry(BaseModel):
    """Append-only record of one pull or publish.

    Stored in DynamoDB with (tenant_id, created_at) as composite key.
    """

    tenant_id: str = Field(..., description="Tenant identifier")
    created_at: datetime = Field(..., description="When the operation finished")
    sync_type: SyncTypeEnum = Field(..., description="Pull from POS or push to Marketplace")
    outcome: SyncOutcomeEnum = Field(..., description="Overall outcome")
    items_synced: int = Field(default=0, description="Number of items successfully synced", ge=0)
    message: str = Field(default="", description="Summary or aggregated error text")

    def to_dynamodb_item(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "created_at": self.created_at.isoformat(),
            "sync_type": self.sync_type.value,
            "outcome": self.outcome.value,
            "items_synced": self.items_synced,
            "message": self.message,
        }

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "SyncLogEntry":
        return cls(
            tenant_id=item["tenant_id"],
            created_at=datetime.fromisoformat(item["created_at"]),
            sync_type=SyncTypeEnum(item["sync_type"]),
            outcome=SyncOutcomeEnum(item["outcome"]),
            items_synced=int(item.get("items_synced", 0)),
            message=item.get("message", ""),
        )


@dataclass(frozen=True)
class ItemSyncResult:
    """Result of publishing a single item.

    Attributes:
        item_id: POS item id of the item
        item_name: Display name used in error messages
        error: Error text if the push failed, None on success
    """

    item_id: str
    item_name: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PublishResult:
    """Result of a publish batch returned to the caller.

    Attributes:
        synced_count: Number of items pushed successfully
        errors: "<item name>: <error>" for each failed item
        outcome: Overall batch outcome
    """

    synced_count: int
    errors: list[str] = field(default_factory=list)
    outcome: SyncOutcomeEnum = SyncOutcomeEnum.SUCCESS


def summarize_outcome(synced_count: int, error_count: int) -> SyncOutcomeEnum:
    """Classify a batch: success if no errors, partial if any succeeded, else failed."""
    if error_count == 0:
        return SyncOutcomeEnum.SUCCESS
    if synced_count > 0:
        return SyncOutcomeEnum.PARTIAL
    return SyncOutcomeEnum.FAILED
