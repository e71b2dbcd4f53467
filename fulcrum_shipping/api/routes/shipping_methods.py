"""
Shipping Methods Webhook

Called synchronously by checkout when shipping rates are collected. Always
answers 200 with an operation list: a failure here must never block checkout,
so problems are reported as a zero-priced diagnostic method instead.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Request

from fulcrum_shipping.api.deps import get_shipping_methods_service
from fulcrum_shipping.models.offer import ResolutionResult
from fulcrum_shipping.schemas.shipping import OfferOperation
from fulcrum_shipping.services.offer_resolution import ShippingMethodsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/shipping-methods", response_model=List[OfferOperation])
async def shipping_methods(
    request: Request,
    service: ShippingMethodsService = Depends(get_shipping_methods_service),
):
    """Resolve shipping offers for a checkout rate request."""
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Shipping methods request body is not JSON; resolving with defaults")
        payload = {}

    try:
        result = await service.resolve_payload(payload)
    except Exception as e:
        logger.exception(f"Shipping method resolution failed: {e}")
        result = ResolutionResult.skipped(str(e) or type(e).__name__)

    if result.is_sentinel:
        logger.warning(f"Shipping methods returned {result.status.value}: {result.message}")

    return service.to_operations(result)
