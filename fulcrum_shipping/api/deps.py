"""
API dependencies

Builds services from settings once per process (storage, repository) or once
per request (registry client, which owns an HTTP connection pool).
"""
import logging
from functools import lru_cache
from typing import AsyncGenerator, Optional

from fastapi import Depends, HTTPException, status

from fulcrum_shipping.core.config import ResolutionConfig, settings
from fulcrum_shipping.core.exceptions import ConfigurationError
from fulcrum_shipping.services.commerce_client import CommerceRegistryClient, create_registry_client
from fulcrum_shipping.services.customization_repository import CustomizationRepository
from fulcrum_shipping.services.offer_resolution import ShippingMethodsService
from fulcrum_shipping.services.reconciliation import CarrierReconciliationManager
from fulcrum_shipping.services.storage import create_byte_store

logger = logging.getLogger(__name__)


@lru_cache()
def get_resolution_config() -> ResolutionConfig:
    return ResolutionConfig.from_settings(settings)


@lru_cache()
def get_customization_repository() -> Optional[CustomizationRepository]:
    """
    Repository over the configured byte store.

    Returns None when storage is not configured; checkout then resolves
    without customizations.
    """
    try:
        store = create_byte_store(settings)
    except ConfigurationError as e:
        logger.warning(f"Customization storage unavailable: {e.message}")
        return None
    return CustomizationRepository(
        store,
        prefix=settings.CUSTOMIZATION_PREFIX,
        legacy_key_patterns=settings.LEGACY_CUSTOM_KEYS,
    )


async def get_registry_client() -> AsyncGenerator[Optional[CommerceRegistryClient], None]:
    """Registry client for this request, or None when COMMERCE_BASE_URL is unset."""
    try:
        client = create_registry_client(settings)
    except ConfigurationError as e:
        logger.error(f"Registry client unavailable: {e.message}")
        yield None
        return
    try:
        yield client
    finally:
        await client.close()


def get_shipping_methods_service(
    registry_client: Optional[CommerceRegistryClient] = Depends(get_registry_client),
    repository: Optional[CustomizationRepository] = Depends(get_customization_repository),
    config: ResolutionConfig = Depends(get_resolution_config),
) -> ShippingMethodsService:
    return ShippingMethodsService(config, registry_client, repository)


def require_registry_client(
    registry_client: Optional[CommerceRegistryClient] = Depends(get_registry_client),
) -> CommerceRegistryClient:
    if registry_client is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Missing COMMERCE_BASE_URL",
        )
    return registry_client


def require_repository(
    repository: Optional[CustomizationRepository] = Depends(get_customization_repository),
) -> CustomizationRepository:
    if repository is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Customization storage is not configured",
        )
    return repository


def get_reconciliation_manager(
    registry_client: CommerceRegistryClient = Depends(require_registry_client),
    repository: CustomizationRepository = Depends(require_repository),
    config: ResolutionConfig = Depends(get_resolution_config),
) -> CarrierReconciliationManager:
    return CarrierReconciliationManager(registry_client, repository, config)
