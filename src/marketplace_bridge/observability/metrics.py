"""Custom metrics for the marketplace bridge."""

from opentelemetry import metrics

meter = metrics.get_meter("marketplace-bridge")

catalog_items_pulled_counter = meter.create_counter(
    name="catalog_items_pulled_total",
    description="Total number of POS catalog items upserted by catalog pulls",
    unit="1",
)

items_published_counter = meter.create_counter(
    name="menu_items_published_total",
    description="Total number of menu items pushed to the marketplace",
    unit="1",
)

item_publish_failure_counter = meter.create_counter(
    name="menu_item_publish_failure_total",
    description="Total number of menu items that failed to push",
    unit="1",
)

orders_bridged_counter = meter.create_counter(
    name="orders_bridged_total",
    description="Marketplace orders processed by the order bridge, by outcome",
    unit="1",
)

webhooks_received_counter = meter.create_counter(
    name="webhooks_received_total",
    description="Inbound webhooks by source and event type",
    unit="1",
)

pause_calls_counter = meter.create_counter(
    name="marketplace_pause_calls_total",
    description="Pause/unpause calls issued to the marketplace, by outcome",
    unit="1",
)

platform_api_response_time = meter.create_histogram(
    name="platform_api_response_time_seconds",
    description="Response time for POS and marketplace API calls",
    unit="s",
)


def record_catalog_pull(item_count: int) -> None:
    catalog_items_pulled_counter.add(item_count)


def record_publish_batch(synced_count: int, failed_count: int) -> None:
    """Record the per-item results of one publish batch.

    Args:
        synced_count: Items pushed successfully
        failed_count: Items that failed
    """
    if synced_count:
        items_published_counter.add(synced_count)
    if failed_count:
        item_publish_failure_counter.add(failed_count)


def record_order_bridged(outcome: str) -> None:
    """Record an order bridge attempt.

    Args:
        outcome: Resulting order status (e.g., "accepted", "failed")
    """
    orders_bridged_counter.add(1, {"outcome": outcome})


def record_webhook_received(source: str, event_type: str) -> None:
    webhooks_received_counter.add(1, {"source": source, "event_type": event_type})


def record_pause_call(paused: bool, success: bool) -> None:
    pause_calls_counter.add(
        1, {"paused": str(paused).lower(), "outcome": "success" if success else "failure"}
    )


def record_platform_api_call(platform: str, operation: str, duration_seconds: float) -> None:
    """Record a platform API call.

    Args:
        platform: The platform API that was called ("square" or "ubereats")
        operation: The operation performed (e.g., "list_catalog", "create_item")
        duration_seconds: Duration in seconds
    """
    platform_api_response_time.record(
        duration_seconds, {"platform": platform, "operation": operation}
    )
