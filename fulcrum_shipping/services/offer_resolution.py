"""
Shipping Offer Resolution

Combines native carriers from the commerce registry with local customization
records and returns the offers available for a checkout request.

Resolution degrades instead of failing: a broken carrier is excluded, an
unreachable customization store means "no customizations", and registry or
configuration problems produce a sentinel result that still renders as a
valid webhook response.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from fulcrum_shipping.core.config import ResolutionConfig
from fulcrum_shipping.core.exceptions import FulcrumBaseError
from fulcrum_shipping.core.utils import first_text, truncate
from fulcrum_shipping.models.cart import CartContext
from fulcrum_shipping.models.carrier import NativeCarrierRecord
from fulcrum_shipping.models.customization import CustomizationRecord
from fulcrum_shipping.models.offer import (
    Exclusion,
    ExclusionReason,
    Offer,
    ResolutionResult,
    ResolutionStatus,
)
from fulcrum_shipping.services.commerce_client import CommerceRegistryClient
from fulcrum_shipping.services.customization_repository import CustomizationRepository
from fulcrum_shipping.services.offer_evaluator import OfferEvaluator
from fulcrum_shipping.services.signal_extractor import CartSignalExtractor

logger = logging.getLogger(__name__)

SOURCE_WITH_CUSTOMIZATIONS = "registry+customizations"
SOURCE_REGISTRY_ONLY = "registry"
RATE_REQUEST_KEY = "rateRequest"
ERROR_SNIPPET_LENGTH = 160


class ShippingOfferResolver:
    """Evaluate every native carrier in registry order."""

    def __init__(
        self,
        evaluator: OfferEvaluator,
        repository: Optional[CustomizationRepository],
        config: ResolutionConfig,
    ):
        self.evaluator = evaluator
        self.repository = repository
        self.config = config

    async def _load_customization(self, code: str) -> Tuple[Dict[str, Any], str]:
        """Customization record and the source label its offer should carry."""
        if self.repository is None:
            return {}, SOURCE_REGISTRY_ONLY
        try:
            record = await self.repository.get(self.config.customization_store_key, code)
        except Exception as e:
            logger.warning(f"Customization lookup failed for {code}, using defaults: {e}")
            return {}, SOURCE_REGISTRY_ONLY
        return record, SOURCE_WITH_CUSTOMIZATIONS

    async def resolve(
        self,
        native_carriers: Iterable[Union[Dict[str, Any], NativeCarrierRecord]],
        context: CartContext,
    ) -> ResolutionResult:
        """
        Resolve offers for a cart.

        Args:
            native_carriers: Registry carriers, as mappings or records
            context: Signals extracted from the checkout request

        Returns:
            ResolutionResult with offers in registry order, or the
            no-match sentinel when every carrier was excluded
        """
        offers: List[Offer] = []
        exclusions: List[Exclusion] = []

        for entry in native_carriers:
            if not isinstance(entry, (NativeCarrierRecord, dict)):
                continue

            code = first_text(entry.get("code")) if isinstance(entry, dict) else entry.code
            try:
                native = entry if isinstance(entry, NativeCarrierRecord) else NativeCarrierRecord.from_dict(entry)
                code = native.customization_key
                record, source = await self._load_customization(code)
                customization = CustomizationRecord.from_dict(record)
                outcome = self.evaluator.evaluate(native, customization, context, source=source)
            except Exception as e:
                logger.error(f"Failed to evaluate carrier {code}: {e}")
                exclusions.append(Exclusion(code or "", ExclusionReason.EVALUATION_ERROR, str(e)))
                continue

            if isinstance(outcome, Offer):
                offers.append(outcome)
            else:
                exclusions.append(outcome)

        logger.info(
            f"Resolved {len(offers)} offers, {len(exclusions)} exclusions "
            f"(total={context.total}, store={context.store_token}, group={context.customer_group_id})"
        )

        if not offers:
            return ResolutionResult.no_match(exclusions, context)

        return ResolutionResult(
            status=ResolutionStatus.OFFERS,
            offers=offers,
            exclusions=exclusions,
            context=context,
        )


class ShippingMethodsService:
    """
    Checkout-facing entry point: fetch registry carriers, extract cart
    signals and run the resolver.
    """

    def __init__(
        self,
        config: ResolutionConfig,
        registry_client: Optional[CommerceRegistryClient],
        repository: Optional[CustomizationRepository],
        extractor: Optional[CartSignalExtractor] = None,
    ):
        self.config = config
        self.registry_client = registry_client
        self.extractor = extractor or CartSignalExtractor()
        self.resolver = ShippingOfferResolver(OfferEvaluator(config), repository, config)

    async def fetch_native_carriers(self) -> Union[List[Any], ResolutionResult]:
        """Registry carriers, or the skipped sentinel when the registry call fails."""
        try:
            response = await self.registry_client.list_carriers()
        except FulcrumBaseError as e:
            logger.error(f"Registry fetch failed: {e.message}")
            return ResolutionResult.skipped(f"REST fetch error: {e.message}")
        except Exception as e:
            logger.error(f"Registry fetch failed: {e}")
            return ResolutionResult.skipped(f"REST fetch error: {e}")

        if not response.success:
            snippet = truncate(response.text, ERROR_SNIPPET_LENGTH)
            logger.warning(f"Registry returned HTTP {response.status_code}; skipping resolution")
            return ResolutionResult.skipped(f"REST HTTP {response.status_code} {snippet}".strip())

        body = response.body
        if isinstance(body, dict):
            body = body.get("items") or []
        return body if isinstance(body, list) else []

    async def resolve_payload(self, payload: Any) -> ResolutionResult:
        """
        Resolve offers for an inbound checkout payload.

        The payload may wrap the request as {"rateRequest": {...}}.
        """
        if not self.config.commerce_base_url or self.registry_client is None:
            return ResolutionResult.configuration_error("Missing COMMERCE_BASE_URL")

        carriers = await self.fetch_native_carriers()
        if isinstance(carriers, ResolutionResult):
            return carriers

        request = payload
        if isinstance(payload, dict) and isinstance(payload.get(RATE_REQUEST_KEY), dict):
            request = payload[RATE_REQUEST_KEY]

        context = self.extractor.extract(request)
        return await self.resolver.resolve(carriers, context)

    def to_operations(self, result: ResolutionResult) -> List[Dict[str, Any]]:
        return result.to_operations(
            diagnostic_enabled=self.config.diagnostic_offer_enabled,
            diagnostic_carrier_code=self.config.diagnostic_carrier_code,
            diagnostic_carrier_title=self.config.fallback_carrier_title,
        )
