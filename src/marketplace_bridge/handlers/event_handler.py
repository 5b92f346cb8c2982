"""EventBridge event handler for scheduled catalog pulls."""

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from marketplace_bridge.exceptions import BridgeError
from marketplace_bridge.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)

CATALOG_EVENT_SOURCE = "com.marketplace-bridge.catalog"
CATALOG_PULL_DETAIL_TYPE = "CatalogPullRequested"


class CatalogPullEvent(BaseModel):
    """Model for catalog pull requests from EventBridge.

    Attributes:
        tenant_id: The tenant whose POS catalog should be pulled
        requested_at: ISO 8601 timestamp of the schedule tick, if provided
    """

    tenant_id: str = Field(..., min_length=1)
    requested_at: str | None = None


def parse_eventbridge_event(event: dict[str, Any]) -> CatalogPullEvent | None:
    """Parse an EventBridge event into a CatalogPullEvent.

    Returns:
        CatalogPullEvent if parsing succeeds, None otherwise
    """
    try:
        return CatalogPullEvent(**(event.get("detail") or {}))
    except (ValidationError, TypeError) as e:
        logger.error(f"Failed to parse EventBridge event: {e}")
        return None


class CatalogEventHandler:
    """Runs catalog pulls requested by scheduled EventBridge rules."""

    def __init__(self, catalog_service: CatalogService) -> None:
        self.catalog_service = catalog_service

    async def handle_catalog_pull(self, event: CatalogPullEvent) -> bool:
        """Pull the catalog for the event's tenant.

        Args:
            event: The catalog pull request

        Returns:
            True if the pull succeeded, False otherwise
        """
        logger.info(f"Processing scheduled catalog pull for tenant {event.tenant_id}")
        try:
            count = await self.catalog_service.pull(tenant_id=event.tenant_id)
        except BridgeError as e:
            logger.error(f"Scheduled catalog pull failed for tenant {event.tenant_id}: {e}")
            return False

        logger.info(f"Scheduled catalog pull for tenant {event.tenant_id} upserted {count} items")
        return True

    async def handle_eventbridge_event(self, event: dict[str, Any], _context: Any) -> dict[str, Any]:
        """Lambda-style entry point for a raw EventBridge event.

        Returns:
            Dictionary with statusCode and body for Lambda response
        """
        pull_event = parse_eventbridge_event(event)
        if not pull_event:
            return {"statusCode": 400, "body": "Invalid event format"}

        if await self.handle_catalog_pull(pull_event):
            return {
                "statusCode": 200,
                "body": f"Pulled catalog for tenant {pull_event.tenant_id}",
            }
        return {
            "statusCode": 500,
            "body": f"Failed to pull catalog for tenant {pull_event.tenant_id}",
        }
