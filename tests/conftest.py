"""
Pytest configuration and fixtures for Fulcrum Shipping tests.
"""
import os
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

# Set test environment before importing package modules
os.environ["ENVIRONMENT"] = "development"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["COMMERCE_BASE_URL"] = "https://commerce.test/rest"
os.environ["COMMERCE_ACCESS_TOKEN"] = "test-access-token"
os.environ["LOG_LEVEL"] = "DEBUG"

from fulcrum_shipping.core.config import ResolutionConfig  # noqa: E402
from fulcrum_shipping.services.commerce_client import RegistryResponse  # noqa: E402
from fulcrum_shipping.services.customization_repository import CustomizationRepository  # noqa: E402
from fulcrum_shipping.services.storage import InMemoryByteStore  # noqa: E402


def registry_response(status_code: int = 200, body: Any = None, text: Optional[str] = None) -> RegistryResponse:
    """Build a RegistryResponse the way the client would for a given status."""
    return RegistryResponse(
        success=200 <= status_code < 300,
        status_code=status_code,
        body=body,
        text=text if text is not None else ("" if body is None else str(body)),
    )


def make_carrier(code: str = "ups", **overrides) -> Dict[str, Any]:
    carrier = {
        "code": code,
        "title": code.upper(),
        "active": True,
        "stores": ["default"],
        "countries": ["US"],
        "sort_order": 10,
    }
    carrier.update(overrides)
    return carrier


@pytest.fixture
def resolution_config() -> ResolutionConfig:
    return ResolutionConfig(commerce_base_url="https://commerce.test/rest")


@pytest.fixture
def memory_store() -> InMemoryByteStore:
    return InMemoryByteStore()


@pytest.fixture
def repository(memory_store) -> CustomizationRepository:
    return CustomizationRepository(memory_store)


@pytest.fixture
def carriers() -> List[Dict[str, Any]]:
    return [make_carrier("ups"), make_carrier("fedex", title="FedEx")]


@pytest.fixture
def mock_registry_client(carriers) -> AsyncMock:
    """Registry client answering with the `carriers` fixture."""
    client = AsyncMock()
    client.list_carriers = AsyncMock(return_value=registry_response(200, carriers))
    client.get_carrier = AsyncMock(return_value=registry_response(404, {"message": "not found"}))
    client.create_carrier = AsyncMock(return_value=registry_response(200, {"success": True}))
    client.replace_carrier = AsyncMock(return_value=registry_response(200, {"success": True}))
    client.update_carrier = AsyncMock(return_value=registry_response(200, {"success": True}))
    client.delete_carrier = AsyncMock(return_value=registry_response(200, True))
    client.close = AsyncMock()
    return client
