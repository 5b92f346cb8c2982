"""Shared dependency factory for the Lambda handler and the local server.

Dependencies are created once and reused across invocations within the same
Lambda container.
"""

import functools
import logging
import os
from typing import Any

import boto3
from fastapi import FastAPI

from marketplace_bridge.adapters.square_adapter import SquareAdapter
from marketplace_bridge.adapters.ubereats_adapter import UberEatsAdapter
from marketplace_bridge.handlers.api_handler import create_app
from marketplace_bridge.handlers.event_handler import CatalogEventHandler
from marketplace_bridge.handlers.webhook_handler import WebhookHandler
from marketplace_bridge.observability import configure_logging, setup_observability
from marketplace_bridge.repositories.log_repositories import SyncLogRepository, WebhookLogRepository
from marketplace_bridge.repositories.menu_repositories import MenuItemRepository, SettingsRepository
from marketplace_bridge.repositories.order_repositories import OrderRepository
from marketplace_bridge.services.availability_service import AvailabilityService
from marketplace_bridge.services.catalog_service import CatalogService
from marketplace_bridge.services.markup_service import MarkupService
from marketplace_bridge.services.order_service import OrderService
from marketplace_bridge.services.settings_service import SettingsService
from marketplace_bridge.services.sync_service import SyncService
from marketplace_bridge.services.token_service import TokenService

logger = logging.getLogger(__name__)

# Module-level caches for Lambda container reuse
_dynamodb_resource: Any | None = None
_repositories: dict[str, Any] | None = None
_services: dict[str, Any] | None = None
_event_handler: CatalogEventHandler | None = None
_fastapi_app: FastAPI | None = None


def get_dynamodb_resource() -> Any:
    """Create or retrieve cached DynamoDB resource.

    Returns:
        Boto3 DynamoDB resource configured for environment
    """
    global _dynamodb_resource

    if _dynamodb_resource is not None:
        return _dynamodb_resource

    endpoint_url = os.getenv("DYNAMODB_ENDPOINT")
    region = os.getenv("AWS_REGION", "us-east-1")

    if endpoint_url:
        # Local DynamoDB - use environment variables
        logger.info(f"Using local DynamoDB at {endpoint_url}")
        _dynamodb_resource = boto3.resource(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )
    else:
        logger.info(f"Using AWS DynamoDB in region {region}")
        _dynamodb_resource = boto3.resource("dynamodb", region_name=region)

    return _dynamodb_resource


def get_repositories() -> dict[str, Any]:
    """Create or retrieve cached repositories, keyed by name.

    Table names come from DYNAMODB_*_TABLE environment variables.
    """
    global _repositories

    if _repositories is not None:
        return _repositories

    dynamodb_resource = get_dynamodb_resource()
    _repositories = {
        "menu_items": MenuItemRepository(
            dynamodb_resource, os.getenv("DYNAMODB_MENU_ITEMS_TABLE", "marketplace-bridge-menu-items")
        ),
        "settings": SettingsRepository(
            dynamodb_resource, os.getenv("DYNAMODB_SETTINGS_TABLE", "marketplace-bridge-settings")
        ),
        "orders": OrderRepository(
            dynamodb_resource, os.getenv("DYNAMODB_ORDERS_TABLE", "marketplace-bridge-orders")
        ),
        "webhook_log": WebhookLogRepository(
            dynamodb_resource, os.getenv("DYNAMODB_WEBHOOK_LOG_TABLE", "marketplace-bridge-webhook-log")
        ),
        "sync_log": SyncLogRepository(
            dynamodb_resource, os.getenv("DYNAMODB_SYNC_LOG_TABLE", "marketplace-bridge-sync-log")
        ),
    }

    logger.info("Repositories initialized")
    return _repositories


def get_services() -> dict[str, Any]:
    """Create or retrieve cached services, keyed by name.

    Returns:
        Dictionary with settings, catalog, token, sync, markup, order,
        availability and webhook entries
    """
    global _services

    if _services is not None:
        return _services

    repositories = get_repositories()
    settings_repository = repositories["settings"]
    menu_repository = repositories["menu_items"]

    timeout_seconds = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))
    max_concurrency = int(os.getenv("PUBLISH_MAX_CONCURRENCY", "5"))

    pos_adapter_factory = functools.partial(SquareAdapter.from_settings, timeout_seconds=timeout_seconds)
    marketplace_adapter_factory = functools.partial(
        UberEatsAdapter.from_settings,
        redirect_uri=os.getenv("UBER_REDIRECT_URI", ""),
        timeout_seconds=timeout_seconds,
    )

    token_service = TokenService(settings_repository, marketplace_adapter_factory)
    order_service = OrderService(settings_repository, repositories["orders"], pos_adapter_factory)
    availability_service = AvailabilityService(
        settings_repository, menu_repository, token_service, marketplace_adapter_factory
    )

    _services = {
        "settings": SettingsService(settings_repository),
        "catalog": CatalogService(
            settings_repository, menu_repository, repositories["sync_log"], pos_adapter_factory
        ),
        "token": token_service,
        "sync": SyncService(
            settings_repository,
            menu_repository,
            repositories["sync_log"],
            token_service,
            marketplace_adapter_factory,
            max_concurrency=max_concurrency,
        ),
        "markup": MarkupService(settings_repository, menu_repository),
        "order": order_service,
        "availability": availability_service,
        "webhook": WebhookHandler(
            settings_repository,
            repositories["webhook_log"],
            order_service,
            availability_service,
            pos_signature_key=os.getenv("POS_WEBHOOK_SIGNATURE_KEY") or None,
            marketplace_webhook_secret=os.getenv("MARKETPLACE_WEBHOOK_SECRET") or None,
        ),
    }

    logger.info("Services initialized")
    return _services


def get_event_handler() -> CatalogEventHandler:
    """Create or retrieve cached event handler.

    Returns:
        Configured CatalogEventHandler instance
    """
    global _event_handler

    if _event_handler is not None:
        return _event_handler

    _event_handler = CatalogEventHandler(catalog_service=get_services()["catalog"])

    logger.info("Event handler initialized")
    return _event_handler


def get_api_keys() -> list[str]:
    """Read admin API keys from the comma-separated ADMIN_API_KEY variable."""
    api_keys_str = os.getenv("ADMIN_API_KEY", "")
    api_keys = [key.strip() for key in api_keys_str.split(",") if key.strip()]

    if not api_keys:
        logger.warning("No ADMIN_API_KEY configured - using development key")
        api_keys = ["dummy-key-for-development"]

    return api_keys


def get_fastapi_app() -> FastAPI:
    """Create or retrieve cached FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    global _fastapi_app

    if _fastapi_app is not None:
        return _fastapi_app

    services = get_services()
    _fastapi_app = create_app(
        settings_service=services["settings"],
        catalog_service=services["catalog"],
        sync_service=services["sync"],
        markup_service=services["markup"],
        token_service=services["token"],
        order_service=services["order"],
        webhook_handler=services["webhook"],
        api_keys=get_api_keys(),
        public_base_url=os.getenv("PUBLIC_BASE_URL") or None,
    )

    logger.info("FastAPI application initialized")
    return _fastapi_app


def initialize_lambda_environment() -> None:
    """Initialize Lambda environment with logging and observability.

    Should be called once during Lambda cold start.
    """
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))
    setup_observability()

    logger.info("Lambda environment initialized")
