"""
Tests for the commerce registry client.
"""
import json
from typing import List

import httpx
import pytest

from fulcrum_shipping.core.exceptions import ConfigurationError, RegistryAuthError
from fulcrum_shipping.services.commerce_client import (
    CommerceRegistryClient,
    RegistryCredentials,
    parse_customer_groups,
    parse_store_configs,
)

from tests.conftest import registry_response

BASE_URL = "https://commerce.test/rest"
TOKEN_URL = "https://auth.test/token"


class RecordingHandler:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, responses=None):
        self.requests: List[httpx.Request] = []
        self.responses = responses or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key in self.responses:
            return self.responses[key]
        if request.url.path == "/token":
            return httpx.Response(200, json={"access_token": "oauth-token", "expires_in": 3600})
        return httpx.Response(200, json=[])


def make_client(handler, **credentials) -> CommerceRegistryClient:
    values = {"base_url": BASE_URL, "access_token": "static-token"}
    values.update(credentials)
    return CommerceRegistryClient(RegistryCredentials(**values), transport=httpx.MockTransport(handler))


def test_requires_base_url():
    with pytest.raises(ConfigurationError):
        CommerceRegistryClient(RegistryCredentials(base_url=""))


class TestCarrierCalls:
    @pytest.mark.asyncio
    async def test_list_carriers(self):
        handler = RecordingHandler({
            ("GET", "/rest/V1/oope_shipping_carrier"): httpx.Response(200, json=[{"code": "ups"}]),
        })
        client = make_client(handler)

        response = await client.list_carriers()
        await client.close()

        assert response.success is True
        assert response.body == [{"code": "ups"}]
        assert handler.requests[0].headers["Authorization"] == "Bearer static-token"

    @pytest.mark.asyncio
    async def test_carrier_code_is_path_encoded(self):
        handler = RecordingHandler()
        client = make_client(handler)

        await client.get_carrier("ups/ground")

        assert handler.requests[0].url.raw_path.endswith(b"/V1/oope_shipping_carrier/ups%2Fground")

    @pytest.mark.asyncio
    async def test_create_and_update_wrap_record(self):
        handler = RecordingHandler()
        client = make_client(handler)

        await client.create_carrier({"code": "ups", "title": "UPS"})
        await client.update_carrier("ups", {"code": "ups", "title": "UPS"})

        create, update = handler.requests
        assert create.method == "POST"
        assert json.loads(create.content) == {"carrier": {"code": "ups", "title": "UPS"}}
        assert update.method == "PUT"
        assert update.url.path == "/rest/V1/oope_shipping_carrier/ups"

    @pytest.mark.asyncio
    async def test_replace_deletes_then_creates(self):
        handler = RecordingHandler({
            ("DELETE", "/rest/V1/oope_shipping_carrier/ups"): httpx.Response(404, json={"message": "gone"}),
        })
        client = make_client(handler)

        response = await client.replace_carrier("ups", {"code": "ups"})

        assert [r.method for r in handler.requests] == ["DELETE", "POST"]
        assert response.success is True

    @pytest.mark.asyncio
    async def test_not_found_is_a_response(self):
        handler = RecordingHandler({
            ("GET", "/rest/V1/oope_shipping_carrier/dhl"): httpx.Response(404, json={"message": "No such entity"}),
        })
        client = make_client(handler)

        response = await client.get_carrier("dhl")

        assert response.success is False
        assert response.is_not_found is True
        assert response.message == "No such entity"

    @pytest.mark.asyncio
    async def test_network_error_becomes_500(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        response = await client.list_carriers()

        assert response.success is False
        assert response.status_code == 500
        assert "connection refused" in response.message

    @pytest.mark.asyncio
    async def test_customer_group_search_is_paged(self):
        handler = RecordingHandler()
        client = make_client(handler)

        await client.list_customer_groups()

        assert handler.requests[0].url.params["searchCriteria[page_size]"] == "1000"


class TestTokens:
    @pytest.mark.asyncio
    async def test_client_credentials_token_is_cached(self):
        handler = RecordingHandler()
        client = make_client(
            handler,
            access_token="",
            client_id="client",
            client_secret="secret",
            scopes="commerce_api, openid",
            token_url=TOKEN_URL,
        )

        await client.list_carriers()
        await client.list_stores()

        token_requests = [r for r in handler.requests if r.url.path == "/token"]
        assert len(token_requests) == 1
        form = dict(httpx.QueryParams(token_requests[0].content.decode()))
        assert form["grant_type"] == "client_credentials"
        assert form["scope"] == "commerce_api openid"

        api_request = handler.requests[-1]
        assert api_request.headers["Authorization"] == "Bearer oauth-token"
        assert api_request.headers["x-api-key"] == "client"

    @pytest.mark.asyncio
    async def test_token_failure_raises(self):
        handler = RecordingHandler({("POST", "/token"): httpx.Response(401, text="invalid_client")})
        client = make_client(handler, access_token="", client_id="client", client_secret="bad", token_url=TOKEN_URL)

        with pytest.raises(RegistryAuthError) as exc_info:
            await client.list_carriers()
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_missing_credentials_raise(self):
        client = make_client(RecordingHandler(), access_token="")
        with pytest.raises(RegistryAuthError):
            await client.list_carriers()


class TestResponseMessages:
    def test_positional_parameters(self):
        response = registry_response(400, {"message": "Carrier %1 exists in %2", "parameters": ["ups", "default"]})
        assert response.message == "Carrier ups exists in default"

    def test_named_parameters(self):
        response = registry_response(400, {"message": "Field %fieldName is required", "parameters": {"fieldName": "title"}})
        assert response.message == "Field title is required"

    def test_text_fallback(self):
        response = registry_response(502, None, "x" * 400)
        assert response.message == "x" * 160
        assert registry_response(502, None, "").message == "HTTP 502"


class TestParsers:
    def test_store_configs_sorted_newest_first(self):
        stores = parse_store_configs([
            {"id": 1, "code": "default", "website_id": "1", "locale": "en_US"},
            {"id": "3", "code": "eu"},
            {"code": "no-id"},
            "junk",
        ])
        assert [store["id"] for store in stores] == [3, 1]
        assert stores[1] == {"id": 1, "code": "default", "website_id": 1, "locale": "en_US"}

    def test_store_configs_accept_items_envelope(self):
        assert parse_store_configs({"items": [{"store_id": 2}]}) == [{"id": 2, "code": "2"}]
        assert parse_store_configs(None) == []

    def test_customer_groups(self):
        groups = parse_customer_groups({"items": [{"id": 0, "code": "NOT LOGGED IN"}, {"id": "4"}, {"code": "x"}]})
        assert groups == [{"id": 0, "code": "NOT LOGGED IN"}, {"id": 4, "code": "Group 4"}]
        assert parse_customer_groups([]) == []
