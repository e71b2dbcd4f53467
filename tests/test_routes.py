"""
Tests for the webhook and admin HTTP routes.
"""
import pytest
from fastapi.testclient import TestClient

from fulcrum_shipping.api.deps import (
    get_customization_repository,
    get_registry_client,
    get_resolution_config,
)
from fulcrum_shipping.core.config import ResolutionConfig
from fulcrum_shipping.main import app

from tests.conftest import registry_response


@pytest.fixture
def client(mock_registry_client, repository, resolution_config):
    app.dependency_overrides[get_registry_client] = lambda: mock_registry_client
    app.dependency_overrides[get_customization_repository] = lambda: repository
    app.dependency_overrides[get_resolution_config] = lambda: resolution_config
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestShippingMethodsWebhook:
    def test_returns_offers(self, client, repository):
        client.post("/admin/carriers", json={"code": "ups", "title": "UPS", "stores": ["default"], "value": 6})

        response = client.post(
            "/webhooks/shipping-methods",
            json={"rateRequest": {"store_code": "default", "grand_total": 30}},
        )

        assert response.status_code == 200
        operations = response.json()
        # fedex has no customization and therefore no configured stores
        assert len(operations) == 1
        assert operations[0]["value"]["carrier_code"] == "ups"
        assert operations[0]["value"]["price"] == 6

    def test_invalid_json_still_answers(self, client):
        response = client.post(
            "/webhooks/shipping-methods",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()[0]["value"]["method"] == "fulcrum_error"

    def test_registry_failure_renders_diagnostic(self, client, mock_registry_client):
        mock_registry_client.list_carriers.return_value = registry_response(500, None, "upstream down")

        response = client.post("/webhooks/shipping-methods", json={})

        assert response.status_code == 200
        value = response.json()[0]["value"]
        assert value["method_title"] == "REST HTTP 500 upstream down"
        assert value["carrier_title"] == "Fulcrum Custom Shipping (ERROR)"

    def test_unexpected_error_is_contained(self, client, mock_registry_client):
        mock_registry_client.list_carriers.side_effect = RuntimeError("kaboom")

        response = client.post("/webhooks/shipping-methods", json={})

        assert response.status_code == 200
        assert "kaboom" in response.json()[0]["value"]["method_title"]

    def test_missing_base_url(self, client):
        app.dependency_overrides[get_resolution_config] = lambda: ResolutionConfig()

        response = client.post("/webhooks/shipping-methods", json={})

        assert response.status_code == 200
        assert response.json()[0]["value"]["method_title"] == "Missing COMMERCE_BASE_URL"


class TestCarrierAdmin:
    def test_upsert_creates_carrier(self, client, mock_registry_client):
        response = client.post(
            "/admin/carriers",
            json={"carrier": {"code": "dhl", "title": "DHL", "variables": {"value": 4, "minimum": 10}}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["method"] == "POST"
        assert body["saved_custom"]["value"] == 4
        assert body["saved_custom"]["minimum"] == 10
        mock_registry_client.create_carrier.assert_awaited_once()

    def test_upsert_without_title_is_400(self, client, mock_registry_client):
        response = client.post("/admin/carriers", json={"code": "dhl"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Title is required by the REST API (POST/PUT)"
        mock_registry_client.get_carrier.assert_not_called()

    def test_registry_rejection_is_reported_in_body(self, client, mock_registry_client):
        mock_registry_client.create_carrier.return_value = registry_response(
            400, {"message": "Invalid country %1", "parameters": ["XX"]}
        )

        response = client.post("/admin/carriers", json={"code": "dhl", "title": "DHL", "countries": ["XX"]})

        assert response.status_code == 200
        assert response.json()["ok"] is False
        assert response.json()["status"] == 400
        assert response.json()["message"] == "Invalid country XX"

    def test_list_carriers(self, client, repository):
        client.post("/admin/carriers", json={"code": "ups", "title": "UPS", "value": 5, "customer_groups": "1,2"})

        response = client.get("/admin/carriers")

        assert response.status_code == 200
        carriers = {carrier["code"]: carrier for carrier in response.json()["carriers"]}
        assert carriers["ups"]["value"] == 5
        assert carriers["ups"]["customer_groups"] == [1, 2]
        assert carriers["fedex"]["value"] is None

    def test_list_carriers_registry_failure_is_502(self, client, mock_registry_client):
        mock_registry_client.list_carriers.return_value = registry_response(503, {"message": "maintenance"})

        response = client.get("/admin/carriers")

        assert response.status_code == 502
        assert response.json()["detail"] == "maintenance"

    def test_delete_carrier(self, client, mock_registry_client):
        client.post("/admin/carriers", json={"code": "ups", "title": "UPS", "value": 5})

        response = client.delete("/admin/carriers/ups")

        assert response.status_code == 200
        assert response.json()["deleted_in_registry"] is True
        assert response.json()["state_deleted"] is True

    def test_list_customizations(self, client, repository):
        client.post("/admin/carriers", json={"code": "ups", "title": "UPS", "value": 5})

        response = client.get("/admin/customizations")

        assert response.json()["store_key"] == "default"
        assert [item["code"] for item in response.json()["items"]] == ["ups"]

    def test_customizations_for_store_list(self, client):
        response = client.get("/admin/customizations", params={"store": "us,eu"})
        assert response.json() == {"store_key": "eu,us", "items": []}

    def test_stores(self, client, mock_registry_client):
        mock_registry_client.list_stores.return_value = registry_response(200, [{"id": 1, "code": "default"}])

        response = client.get("/admin/stores")

        assert response.json() == {"items": [{"id": 1, "code": "default"}]}

    def test_customer_groups_failure_keeps_status(self, client, mock_registry_client):
        mock_registry_client.list_customer_groups.return_value = registry_response(403, {"message": "forbidden"})

        response = client.get("/admin/customer-groups")

        assert response.status_code == 403
        assert response.json()["detail"] == "forbidden"

    def test_admin_requires_registry(self, client):
        app.dependency_overrides[get_registry_client] = lambda: None

        response = client.get("/admin/carriers")

        assert response.status_code == 500
        assert response.json()["detail"] == "Missing COMMERCE_BASE_URL"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["storage_backend"] == "memory"
