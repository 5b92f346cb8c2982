"""DynamoDB repositories for menu items and tenant settings.

Following the rest of the service, expected failures are reported with
simple return values (None/False/[]) and logged, rather than raised.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from marketplace_bridge.exceptions import StorageError
from marketplace_bridge.models.menu_models import (
    AutomaticPrice,
    CatalogItem,
    ManualPrice,
    MenuItem,
    price_mode_to_dynamodb,
)
from marketplace_bridge.models.settings_models import TenantSettings

logger = logging.getLogger(__name__)


def is_conditional_check_failure(error: ClientError) -> bool:
    """Return True if a ClientError came from a failed ConditionExpression."""
    return error.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class MenuItemRepository:
    """Repository for menu items.

    Items live in DynamoDB with composite key (tenant_id, pos_item_id). Each
    writer touches only the attributes it owns: catalog pulls write provider
    fields, markup edits write price_mode, publishes write linkage fields.
    """

    def __init__(self, dynamodb_resource: DynamoDBServiceResource, table_name: str) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_name: Name of the DynamoDB table
        """
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)

    def _key(self, tenant_id: str, pos_item_id: str) -> dict[str, str]:
        return {"tenant_id": tenant_id, "pos_item_id": pos_item_id}

    def get_item(self, tenant_id: str, pos_item_id: str) -> MenuItem | None:
        """Retrieve one menu item.

        Returns:
            MenuItem if found, None otherwise
        """
        try:
            response = self.table.get_item(Key=self._key(tenant_id, pos_item_id))
        except ClientError as e:
            logger.error(f"Failed to get menu item {pos_item_id}: {e}")  # pragma: no cover
            return None

        if "Item" not in response:
            return None
        return MenuItem.from_dynamodb_item(response["Item"])

    def list_items(self, tenant_id: str) -> list[MenuItem]:
        """List every menu item of a tenant, following query pagination.

        Returns:
            list: MenuItems sorted by name (empty list on error)
        """
        items: list[MenuItem] = []
        query_args: dict[str, Any] = {
            "KeyConditionExpression": "tenant_id = :tid",
            "ExpressionAttributeValues": {":tid": tenant_id},
        }

        try:
            while True:
                response = self.table.query(**query_args)
                items.extend(MenuItem.from_dynamodb_item(i) for i in response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                query_args["ExclusiveStartKey"] = last_key
        except ClientError as e:
            logger.error(f"Failed to list menu items for tenant {tenant_id}: {e}")  # pragma: no cover
            return []

        return sorted(items, key=lambda item: item.name.lower())

    def upsert_catalog_item(self, tenant_id: str, item: CatalogItem, pulled_at: datetime) -> bool:
        """Create or update the provider-sourced fields of an item.

        Price mode and sync flag are only initialised when the item is new,
        and marketplace linkage is never written, so a re-pull preserves
        operator markup and publish state.

        Args:
            tenant_id: Tenant identifier
            item: Normalized catalog fields
            pulled_at: Timestamp of the pull

        Returns:
            bool: True if the upsert succeeded, False otherwise
        """
        names = {
            "#name": "name",
            "#base_price": "base_price",
            "#available": "available",
            "#updated_at": "updated_at",
            "#price_mode": "price_mode",
            "#synced": "synced",
        }
        values: dict[str, Any] = {
            ":name": item.name,
            ":base_price": item.base_price,
            ":available": item.available,
            ":updated_at": pulled_at.isoformat(),
            ":default_price_mode": price_mode_to_dynamodb(AutomaticPrice()),
            ":false": False,
        }
        set_clauses = [
            "#name = :name",
            "#base_price = :base_price",
            "#available = :available",
            "#updated_at = :updated_at",
            "#price_mode = if_not_exists(#price_mode, :default_price_mode)",
            "#synced = if_not_exists(#synced, :false)",
        ]
        remove_clauses: list[str] = []

        # Optional provider fields are cleared when the POS no longer has them
        for field in ("description", "image_url", "category_name"):
            names[f"#{field}"] = field
            value = getattr(item, field)
            if value is None:
                remove_clauses.append(f"#{field}")
            else:
                values[f":{field}"] = value
                set_clauses.append(f"#{field} = :{field}")

        expression = "SET " + ", ".join(set_clauses)
        if remove_clauses:
            expression += " REMOVE " + ", ".join(remove_clauses)

        try:
            self.table.update_item(
                Key=self._key(tenant_id, item.pos_item_id),
                UpdateExpression=expression,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
            return True
        except ClientError as e:
            logger.error(f"Failed to upsert menu item {item.pos_item_id}: {e}")  # pragma: no cover
            return False

    def save_price_mode(
        self, tenant_id: str, pos_item_id: str, price_mode: AutomaticPrice | ManualPrice
    ) -> bool:
        """Replace the price mode of an existing item.

        Returns:
            bool: True if updated, False if the item does not exist or on error
        """
        try:
            self.table.update_item(
                Key=self._key(tenant_id, pos_item_id),
                UpdateExpression="SET price_mode = :price_mode",
                ConditionExpression="attribute_exists(pos_item_id)",
                ExpressionAttributeValues={":price_mode": price_mode_to_dynamodb(price_mode)},
            )
            return True
        except ClientError as e:
            if is_conditional_check_failure(e):
                logger.warning(f"Menu item {pos_item_id} not found for tenant {tenant_id}")
            else:
                logger.error(f"Failed to save price mode for {pos_item_id}: {e}")  # pragma: no cover
            return False

    def mark_synced(
        self,
        tenant_id: str,
        pos_item_id: str,
        marketplace_item_id: str,
        synced_at: datetime,
        cached_price: Decimal | None = None,
    ) -> bool:
        """Record a successful push: linkage id, synced flag and time.

        The published price is cached on `price_mode` only while the stored
        mode is still automatic, so a manual price saved during the push
        is kept.

        Returns:
            bool: True if the linkage was recorded, False otherwise
        """
        try:
            self.table.update_item(
                Key=self._key(tenant_id, pos_item_id),
                UpdateExpression="SET marketplace_item_id = :mid, synced = :true, last_synced_at = :synced_at",
                ExpressionAttributeValues={
                    ":mid": marketplace_item_id,
                    ":true": True,
                    ":synced_at": synced_at.isoformat(),
                },
            )
        except ClientError as e:
            logger.error(f"Failed to mark menu item {pos_item_id} as synced: {e}")
            return False

        if cached_price is not None:
            self._cache_automatic_price(tenant_id, pos_item_id, cached_price)
        return True

    def _cache_automatic_price(self, tenant_id: str, pos_item_id: str, price: Decimal) -> None:
        try:
            self.table.update_item(
                Key=self._key(tenant_id, pos_item_id),
                UpdateExpression="SET price_mode.cached_price = :price",
                ConditionExpression="price_mode.#mode = :automatic",
                ExpressionAttributeNames={"#mode": "mode"},
                ExpressionAttributeValues={":price": price, ":automatic": "automatic"},
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                logger.info(f"Menu item {pos_item_id} is no longer automatically priced; cache not written")
            else:
                logger.error(f"Failed to cache published price for {pos_item_id}: {e}")

    def update_availability(self, tenant_id: str, pos_item_id: str, available: bool) -> MenuItem | None:
        """Set the availability flag of an existing item.

        Returns:
            The updated MenuItem, or None if the item does not exist or on error
        """
        try:
            response = self.table.update_item(
                Key=self._key(tenant_id, pos_item_id),
                UpdateExpression="SET available = :available",
                ConditionExpression="attribute_exists(pos_item_id)",
                ExpressionAttributeValues={":available": available},
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                logger.debug(f"No local menu item for catalog object {pos_item_id}")
            else:
                logger.error(f"Failed to update availability for {pos_item_id}: {e}")  # pragma: no cover
            return None

        return MenuItem.from_dynamodb_item(response["Attributes"])


class SettingsRepository:
    """Repository for per-tenant settings, keyed by tenant_id."""

    def __init__(self, dynamodb_resource: DynamoDBServiceResource, table_name: str) -> None:
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)

    def get_settings(self, tenant_id: str, strict: bool = False) -> TenantSettings | None:
        """Retrieve settings for a tenant.

        Args:
            tenant_id: Tenant identifier
            strict: Raise instead of returning None when the read fails, so
                callers can tell an unconfigured tenant from an unreadable one

        Returns:
            TenantSettings if found, None otherwise

        Raises:
            StorageError: If `strict` and the read failed
        """
        try:
            response = self.table.get_item(Key={"tenant_id": tenant_id}, ConsistentRead=True)
        except ClientError as e:
            logger.error(f"Failed to get settings for tenant {tenant_id}: {e}")
            if strict:
                raise StorageError(f"Settings for tenant {tenant_id} could not be read") from e
            return None

        if "Item" not in response:
            return None
        return TenantSettings.from_dynamodb_item(response["Item"])

    def update_fields(self, tenant_id: str, fields: dict[str, Any]) -> TenantSettings | None:
        """Write only the given attributes, creating the row if needed.

        Attributes not named in `fields` are left untouched, so tokens
        written concurrently by a refresh survive. A None value removes
        the attribute.

        Args:
            tenant_id: Tenant identifier
            fields: DynamoDB attribute values keyed by attribute name

        Returns:
            The stored settings after the update, or None on error
        """
        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        set_clauses: list[str] = []
        remove_clauses: list[str] = []

        for index, (field, value) in enumerate(sorted(fields.items())):
            names[f"#f{index}"] = field
            if value is None:
                remove_clauses.append(f"#f{index}")
            else:
                values[f":v{index}"] = value
                set_clauses.append(f"#f{index} = :v{index}")

        expression_parts: list[str] = []
        if set_clauses:
            expression_parts.append("SET " + ", ".join(set_clauses))
        if remove_clauses:
            expression_parts.append("REMOVE " + ", ".join(remove_clauses))

        update_args: dict[str, Any] = {
            "Key": {"tenant_id": tenant_id},
            "UpdateExpression": " ".join(expression_parts),
            "ExpressionAttributeNames": names,
            "ReturnValues": "ALL_NEW",
        }
        if values:
            update_args["ExpressionAttributeValues"] = values

        try:
            response = self.table.update_item(**update_args)
        except ClientError as e:
            logger.error(f"Failed to update settings for tenant {tenant_id}: {e}")
            return None

        return TenantSettings.from_dynamodb_item(response["Attributes"])

    def save_marketplace_tokens(
        self,
        tenant_id: str,
        access_token: str,
        refresh_token: str | None,
        expiry: datetime,
        expected_expiry: datetime | None = None,
        guarded: bool = True,
    ) -> bool:
        """Store a new marketplace token set.

        When `guarded`, the write only succeeds if the stored expiry still
        equals `expected_expiry` (or is absent when that is None). Concurrent
        refreshers therefore converge on whichever token was written first.

        Args:
            tenant_id: Tenant identifier
            access_token: New access token
            refresh_token: New refresh token, or None to keep the stored one
            expiry: Expiry of the new access token
            expected_expiry: Expiry observed before refreshing
            guarded: Whether to apply the compare-and-swap condition

        Returns:
            bool: True if written, False if another writer won or on error
        """
        set_clauses = ["marketplace_access_token = :access", "marketplace_token_expiry = :expiry"]
        values: dict[str, Any] = {":access": access_token, ":expiry": expiry.isoformat()}
        if refresh_token:
            set_clauses.append("marketplace_refresh_token = :refresh")
            values[":refresh"] = refresh_token

        update_args: dict[str, Any] = {
            "Key": {"tenant_id": tenant_id},
            "UpdateExpression": "SET " + ", ".join(set_clauses),
            "ExpressionAttributeValues": values,
        }
        if guarded:
            if expected_expiry is None:
                update_args["ConditionExpression"] = "attribute_not_exists(marketplace_token_expiry)"
            else:
                update_args["ConditionExpression"] = "marketplace_token_expiry = :expected"
                values[":expected"] = expected_expiry.isoformat()

        try:
            self.table.update_item(**update_args)
            return True
        except ClientError as e:
            if is_conditional_check_failure(e):
                logger.info(f"Marketplace token for tenant {tenant_id} was refreshed concurrently")
            else:
                logger.error(f"Failed to save marketplace tokens for tenant {tenant_id}: {e}")  # pragma: no cover
            return False
