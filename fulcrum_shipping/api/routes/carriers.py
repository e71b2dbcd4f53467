"""
Carrier Admin Routes

Provides endpoints for:
- Listing registry carriers with their custom fields
- Creating or rewriting a carrier (registry + customization)
- Deleting a carrier
- Listing stored customization records
- Store and customer group lookups for the carrier form
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from fulcrum_shipping.api.deps import (
    get_reconciliation_manager,
    require_registry_client,
    require_repository,
)
from fulcrum_shipping.core.exceptions import CarrierPayloadError, RegistryError
from fulcrum_shipping.services.commerce_client import (
    CommerceRegistryClient,
    parse_customer_groups,
    parse_store_configs,
)
from fulcrum_shipping.services.customization_repository import (
    CustomizationRepository,
    normalize_store_key,
)
from fulcrum_shipping.services.reconciliation import CarrierReconciliationManager
from fulcrum_shipping.schemas.shipping import (
    CarrierListResponse,
    CarrierUpsertRequest,
    CustomerGroupListResponse,
    CustomizationListResponse,
    DeletionResponse,
    ReconciliationResponse,
    StoreListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/carriers", response_model=CarrierListResponse)
async def list_carriers(
    manager: CarrierReconciliationManager = Depends(get_reconciliation_manager),
):
    """List registry carriers enriched with customization fields."""
    try:
        carriers = await manager.list_carriers()
    except RegistryError as e:
        logger.error(f"Carrier list failed: {e.message}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    return CarrierListResponse(carriers=carriers)


@router.post("/carriers", response_model=ReconciliationResponse)
async def upsert_carrier(
    request: CarrierUpsertRequest,
    manager: CarrierReconciliationManager = Depends(get_reconciliation_manager),
):
    """
    Create or rewrite a carrier.

    Registry rejections are reported in the body with ok=false rather than as
    an HTTP error, so the admin form can show the registry's own message.
    """
    try:
        result = await manager.upsert(request.to_payload())
    except CarrierPayloadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except RegistryError as e:
        logger.error(f"Carrier upsert failed: {e.message}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    return result.to_dict()


@router.delete("/carriers/{code}", response_model=DeletionResponse)
async def delete_carrier(
    code: str,
    manager: CarrierReconciliationManager = Depends(get_reconciliation_manager),
):
    try:
        result = await manager.delete(code)
    except CarrierPayloadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except RegistryError as e:
        logger.error(f"Carrier delete failed: {e.message}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    return result.to_dict()


@router.get("/customizations", response_model=CustomizationListResponse)
async def list_customizations(
    store: Optional[str] = Query(None, description="Store key or comma-separated store codes"),
    repository: CustomizationRepository = Depends(require_repository),
):
    store_selector = store.split(",") if store and "," in store else store
    return CustomizationListResponse(
        store_key=normalize_store_key(store_selector),
        items=await repository.list(store_selector),
    )


@router.get("/stores", response_model=StoreListResponse)
async def list_stores(
    registry_client: CommerceRegistryClient = Depends(require_registry_client),
):
    try:
        response = await registry_client.list_stores()
    except RegistryError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    if not response.success:
        raise HTTPException(
            status_code=response.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=response.message or "Failed to load stores",
        )
    return StoreListResponse(items=parse_store_configs(response.body))


@router.get("/customer-groups", response_model=CustomerGroupListResponse)
async def list_customer_groups(
    registry_client: CommerceRegistryClient = Depends(require_registry_client),
):
    try:
        response = await registry_client.list_customer_groups()
    except RegistryError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    if not response.success:
        raise HTTPException(
            status_code=response.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=response.message or "Failed to load customer groups",
        )
    return CustomerGroupListResponse(items=parse_customer_groups(response.body))
