"""Component tests for the Uber Eats marketplace adapter."""

import json
from decimal import Decimal
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from marketplace_bridge.adapters.base_adapter import MarketplaceListing
from marketplace_bridge.adapters.ubereats_adapter import UberEatsAdapter
from marketplace_bridge.exceptions import AuthError, ConfigurationError, UpstreamError

TOKEN_URL = "https://login.uber.com/oauth/v2/token"
ITEMS_URL = "https://api.uber.com/v1/eats/stores/store_1/menus/items"


@pytest.mark.component
class TestUberEatsAdapter:
    """Test suite for Uber Eats adapter."""

    @pytest.fixture
    def adapter(self) -> UberEatsAdapter:
        """Create an Uber Eats adapter instance for testing."""
        return UberEatsAdapter(
            client_id="uber_client",
            client_secret="uber_secret",
            store_id="store_1",
            redirect_uri="https://bridge.example.com/oauth/callback",
        )

    @pytest.fixture
    def listing(self) -> MarketplaceListing:
        return MarketplaceListing(
            name="Flat White",
            description="Double shot",
            price_minor=1300,
            currency_code="AUD",
            tax_rate=Decimal("10"),
            tax_type="GST",
        )

    def test_format_item(self, adapter: UberEatsAdapter, listing: MarketplaceListing) -> None:
        """Test localized text, minor-unit price and tax info."""
        payload = adapter.format_item(listing)

        assert payload == {
            "title": {"translations": {"en": "Flat White"}},
            "description": {"translations": {"en": "Double shot"}},
            "price_info": {"price": 1300, "currency_code": "AUD"},
            "tax_info": {"tax_rate": 10.0, "tax_type": "GST"},
        }

    def test_format_item_omits_empty_description_and_adds_image(self, adapter: UberEatsAdapter) -> None:
        listing = MarketplaceListing(
            name="Muffin",
            description=None,
            price_minor=550,
            currency_code="AUD",
            tax_rate=Decimal("10"),
            tax_type="GST",
            image_url="https://img.example.com/muffin.jpg",
        )

        payload = adapter.format_item(listing)

        assert "description" not in payload
        assert payload["image_url"] == "https://img.example.com/muffin.jpg"

    def test_authorization_url(self, adapter: UberEatsAdapter) -> None:
        url = adapter.authorization_url("tenant_123")

        query = parse_qs(urlsplit(url).query)
        assert url.startswith("https://login.uber.com/oauth/v2/authorize?")
        assert query["client_id"] == ["uber_client"]
        assert query["state"] == ["tenant_123"]
        assert query["scope"] == ["eats.store eats.order"]
        assert query["redirect_uri"] == ["https://bridge.example.com/oauth/callback"]

    @pytest.mark.asyncio
    async def test_create_item(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        httpx_mock.add_response(url=ITEMS_URL, method="POST", json={"id": "UBER_1"})

        item_id = await adapter.create_item("uber_access", {"title": {"translations": {"en": "X"}}})

        assert item_id == "UBER_1"
        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer uber_access"
        assert json.loads(request.content) == {"title": {"translations": {"en": "X"}}}

    @pytest.mark.asyncio
    async def test_create_item_without_id_fails(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        httpx_mock.add_response(url=ITEMS_URL, method="POST", json={})

        with pytest.raises(UpstreamError):
            await adapter.create_item("uber_access", {})

    @pytest.mark.asyncio
    async def test_update_item_with_empty_response(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        httpx_mock.add_response(url=f"{ITEMS_URL}/UBER_1", method="PUT", status_code=204)

        await adapter.update_item("uber_access", "UBER_1", {"price_info": {"price": 1300}})

        assert httpx_mock.get_request().method == "PUT"

    @pytest.mark.asyncio
    async def test_update_item_error(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        httpx_mock.add_response(url=f"{ITEMS_URL}/UBER_1", method="PUT", status_code=500)

        with pytest.raises(UpstreamError) as exc_info:
            await adapter.update_item("uber_access", "UBER_1", {})

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_set_item_paused(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        httpx_mock.add_response(url=f"{ITEMS_URL}/UBER_1/pause", method="PATCH", json={})

        await adapter.set_item_paused("uber_access", "UBER_1", True)

        assert json.loads(httpx_mock.get_request().content) == {"paused": True}

    @pytest.mark.asyncio
    async def test_set_item_paused_with_plain_text_ack(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        """Test that a 2xx acknowledgement without a JSON body counts as success."""
        httpx_mock.add_response(url=f"{ITEMS_URL}/UBER_1/pause", method="PATCH", text="OK")

        await adapter.set_item_paused("uber_access", "UBER_1", True)

    @pytest.mark.asyncio
    async def test_create_item_with_plain_text_body_fails(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        httpx_mock.add_response(url=ITEMS_URL, method="POST", text="OK")

        with pytest.raises(UpstreamError, match="did not include an id"):
            await adapter.create_item("uber_access", {})

    @pytest.mark.asyncio
    async def test_missing_store_id_raises_configuration_error(self) -> None:
        adapter = UberEatsAdapter(client_id="uber_client", client_secret="uber_secret")

        with pytest.raises(ConfigurationError):
            await adapter.create_item("uber_access", {})

    @pytest.mark.asyncio
    async def test_refresh_access_token(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        """Test the refresh grant sends client credentials as a form."""
        httpx_mock.add_response(
            url=TOKEN_URL,
            method="POST",
            json={"access_token": "new_access", "refresh_token": "new_refresh", "expires_in": 2592000},
        )

        grant = await adapter.refresh_access_token("uber_refresh")

        assert grant.access_token == "new_access"
        assert grant.refresh_token == "new_refresh"
        assert grant.expires_in == 2592000
        form = parse_qs(httpx_mock.get_request().content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["uber_refresh"]
        assert form["client_secret"] == ["uber_secret"]

    @pytest.mark.asyncio
    async def test_exchange_code(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        httpx_mock.add_response(
            url=TOKEN_URL,
            method="POST",
            json={"access_token": "access", "expires_in": 3600},
        )

        grant = await adapter.exchange_code("auth_code")

        assert grant.refresh_token is None
        form = parse_qs(httpx_mock.get_request().content.decode())
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["auth_code"]

    @pytest.mark.asyncio
    async def test_rejected_grant_raises_auth_error(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        httpx_mock.add_response(url=TOKEN_URL, method="POST", status_code=401)

        with pytest.raises(AuthError):
            await adapter.refresh_access_token("expired_refresh")

    @pytest.mark.asyncio
    async def test_token_server_error_raises_upstream_error(
        self, adapter: UberEatsAdapter, httpx_mock
    ) -> None:
        httpx_mock.add_response(url=TOKEN_URL, method="POST", status_code=502)

        with pytest.raises(UpstreamError):
            await adapter.refresh_access_token("uber_refresh")

    @pytest.mark.asyncio
    async def test_token_network_error(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        httpx_mock.add_exception(httpx.ConnectError("Connection failed"), url=TOKEN_URL)

        with pytest.raises(UpstreamError):
            await adapter.refresh_access_token("uber_refresh")

    @pytest.mark.asyncio
    async def test_token_response_without_access_token(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        httpx_mock.add_response(url=TOKEN_URL, method="POST", json={"refresh_token": "r", "expires_in": 3600})

        with pytest.raises(UpstreamError, match="unreadable token response"):
            await adapter.refresh_access_token("uber_refresh")

    @pytest.mark.asyncio
    async def test_token_response_not_json(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        httpx_mock.add_response(url=TOKEN_URL, method="POST", text="<html>maintenance</html>")

        with pytest.raises(UpstreamError, match="unreadable token response"):
            await adapter.exchange_code("auth_code")

    @pytest.mark.asyncio
    async def test_token_response_with_bad_expiry(self, adapter: UberEatsAdapter, httpx_mock) -> None:
        httpx_mock.add_response(
            url=TOKEN_URL, method="POST", json={"access_token": "a", "expires_in": "soon"}
        )

        with pytest.raises(UpstreamError):
            await adapter.refresh_access_token("uber_refresh")
