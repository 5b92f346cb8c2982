"""AWS Lambda handler for both API Gateway and EventBridge events.

This module provides a single Lambda entry point that handles:
1. API Gateway requests: admin API and webhooks (via Mangum ASGI adapter for FastAPI)
2. EventBridge scheduled catalog pulls (direct handling)

The handler automatically detects the event type and routes accordingly.
"""

import asyncio
import logging
import os
from typing import Any

from mangum import Mangum

from lambda_dependencies import get_event_handler, get_fastapi_app, initialize_lambda_environment
from marketplace_bridge.handlers.event_handler import (
    CATALOG_EVENT_SOURCE,
    CATALOG_PULL_DETAIL_TYPE,
    parse_eventbridge_event,
)

# Initialize Lambda environment during cold start (skip in test mode)
if os.getenv("ENVIRONMENT") != "test":
    initialize_lambda_environment()

logger = logging.getLogger(__name__)

# Create FastAPI app and Mangum adapter (cached for warm starts, skip in test mode)
if os.getenv("ENVIRONMENT") != "test":
    app = get_fastapi_app()
    mangum_handler = Mangum(app, lifespan="off")
else:
    app = None  # type: ignore
    mangum_handler = None  # type: ignore


def is_eventbridge_event(event: dict[str, Any]) -> bool:
    """Determine if the event is from EventBridge.

    Args:
        event: The Lambda event payload

    Returns:
        True if this is an EventBridge event, False otherwise
    """
    return "source" in event and "detail-type" in event and "detail" in event


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Multi-purpose Lambda handler for API Gateway and EventBridge events.

    Routes incoming events to the appropriate handler:
    - EventBridge events -> CatalogEventHandler
    - API Gateway requests -> FastAPI via Mangum

    Args:
        event: The Lambda event payload (EventBridge or API Gateway)
        context: The Lambda context object

    Returns:
        Response dict with statusCode and body
    """
    logger.info(f"Received Lambda invocation, request_id: {getattr(context, 'aws_request_id', None)}")

    try:
        if is_eventbridge_event(event):
            logger.info(
                f"Processing EventBridge event: {event.get('source')} - {event.get('detail-type')}"
            )
            return handle_eventbridge_event(event)

        logger.info("Processing API Gateway request via Mangum")
        result: dict[str, Any] = mangum_handler(event, context)
        return result

    except Exception as e:
        logger.exception(f"Unhandled error in Lambda handler: {e}")
        return {
            "statusCode": 500,
            "body": f"Internal server error: {str(e)}",
        }


def handle_eventbridge_event(event: dict[str, Any]) -> dict[str, Any]:
    """Handle EventBridge catalog pull requests.

    Args:
        event: The EventBridge event payload

    Returns:
        Response dict with statusCode and body
    """
    source = event.get("source", "")
    detail_type = event.get("detail-type", "")

    if source != CATALOG_EVENT_SOURCE or detail_type != CATALOG_PULL_DETAIL_TYPE:
        logger.warning(f"Unsupported event type: {source}/{detail_type}")
        return {
            "statusCode": 400,
            "body": f"Unsupported event type: {source}/{detail_type}",
        }

    pull_event = parse_eventbridge_event(event)
    if pull_event is None:
        return {"statusCode": 400, "body": "Invalid event format"}

    try:
        success = asyncio.run(get_event_handler().handle_catalog_pull(pull_event))
    except Exception as e:
        logger.exception(f"Error processing EventBridge event: {e}")
        return {
            "statusCode": 500,
            "body": f"Error processing event: {str(e)}",
        }

    if success:
        return {
            "statusCode": 200,
            "body": f"Pulled catalog for tenant {pull_event.tenant_id}",
        }
    return {
        "statusCode": 500,
        "body": f"Failed to pull catalog for tenant {pull_event.tenant_id}",
    }
