"""
Offer Evaluator

Decides, for one native carrier plus its customization, whether an offer is
produced for a cart and at what price. Filters run in a fixed order and the
first failing filter decides the exclusion reason:

    activity -> thresholds -> store -> customer group -> pricing -> titles

The evaluator is pure: same inputs, same output, no I/O.
"""
import logging
from decimal import Decimal
from typing import List, Optional, Union

from fulcrum_shipping.core.config import ResolutionConfig
from fulcrum_shipping.core.utils import first_text, slugify
from fulcrum_shipping.models.cart import CartContext
from fulcrum_shipping.models.carrier import NativeCarrierRecord
from fulcrum_shipping.models.customization import CustomizationRecord
from fulcrum_shipping.models.offer import Exclusion, ExclusionReason, Offer
from fulcrum_shipping.models.policy import GroupFilterPolicy, StoreFilterPolicy

logger = logging.getLogger(__name__)

STORE_WILDCARDS = {"*", "all"}
GUEST_GROUP_ID = "0"
DEFAULT_METHOD_TITLE = "Shipping Method"
DEFAULT_CARRIER_CODE = "CUSTOM"


def canonical_store_token(token: Optional[str]) -> str:
    """Lower-cased store token; store id "1" is the default store."""
    text = (token or "").strip().lower()
    return "default" if text == "1" else text


def format_limit(value: Optional[float]) -> str:
    if value is None:
        return "none"
    return format_number(value)


def format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


class OfferEvaluator:
    """Evaluate carriers against a cart under a fixed configuration."""

    def __init__(self, config: ResolutionConfig):
        self.config = config

    def evaluate(
        self,
        native: NativeCarrierRecord,
        customization: CustomizationRecord,
        context: CartContext,
        source: str = "registry+customizations",
    ) -> Union[Offer, Exclusion]:
        """
        Produce an offer or an exclusion for one carrier.

        Args:
            native: Carrier as returned by the registry
            customization: Customization for the carrier (empty record if none)
            context: Signals extracted from the checkout request
            source: Provenance recorded in the offer metadata

        Returns:
            Offer when every filter passes, otherwise the first Exclusion
        """
        code = native.customization_key

        if not native.active:
            return Exclusion(code, ExclusionReason.INACTIVE)

        exclusion = (
            self._check_thresholds(code, customization, context)
            or self._check_store(code, customization, context)
            or self._check_customer_group(code, customization, context)
        )
        if exclusion:
            logger.debug(f"Carrier {code} excluded: {exclusion.reason.value} ({exclusion.detail})")
            return exclusion

        price = self._price(customization, context)
        method_title = first_text(
            customization.method_name,
            native.method_name,
            native.title,
        ) or DEFAULT_METHOD_TITLE
        method_code = slugify(
            first_text(customization.method_name, native.method_name, native.code, method_title),
            f"{native.code or 'custom'}_shipping",
        )
        carrier_title = first_text(
            customization.carrier_title,
            native.title,
        ) or self.config.fallback_carrier_title

        metadata = {
            "source": source,
            "code_key": code,
            "cart_total": format_number(context.total),
            "min": format_limit(customization.minimum),
            "max": format_limit(customization.maximum),
            "req_store": context.store_token or "unknown",
            "cfg_stores": ",".join(customization.stores) or "none",
            "customer_group": context.customer_group_id or "unknown",
            "item_count": str(context.item_count),
        }
        if native.sort_order is not None:
            metadata["sort_order"] = format_number(native.sort_order)

        return Offer(
            carrier_code=native.code or DEFAULT_CARRIER_CODE,
            carrier_title=carrier_title,
            method_code=method_code,
            method_title=method_title,
            price=price,
            metadata=metadata,
        )

    # ==================== Filters ====================

    def _check_thresholds(
        self,
        code: str,
        customization: CustomizationRecord,
        context: CartContext,
    ) -> Optional[Exclusion]:
        # minimum is inclusive, maximum exclusive
        if customization.minimum is not None and context.total < customization.minimum:
            return Exclusion(
                code,
                ExclusionReason.BELOW_MINIMUM,
                f"total {format_number(context.total)} < minimum {format_number(customization.minimum)}",
            )
        if customization.maximum is not None and context.total >= customization.maximum:
            return Exclusion(
                code,
                ExclusionReason.AT_OR_ABOVE_MAXIMUM,
                f"total {format_number(context.total)} >= maximum {format_number(customization.maximum)}",
            )
        return None

    def _check_store(
        self,
        code: str,
        customization: CustomizationRecord,
        context: CartContext,
    ) -> Optional[Exclusion]:
        policy = self.config.store_filter_policy

        if policy is StoreFilterPolicy.STRICT:
            allowed = [canonical_store_token(s) for s in customization.stores]
            allowed = [s for s in allowed if s]
            if not allowed:
                return Exclusion(code, ExclusionReason.STORE_NOT_CONFIGURED, "no stores configured")
            if context.store_token is None:
                return None
            requested = canonical_store_token(context.store_token)
            if any(s in STORE_WILDCARDS or s == requested for s in allowed):
                return None
        else:
            allowed = [s.strip().lower() for s in customization.stores if s.strip()]
            if not allowed or context.store_token is None:
                return None
            requested = context.store_token.strip().lower()
            if requested in allowed:
                return None

        return Exclusion(
            code,
            ExclusionReason.STORE_MISMATCH,
            f"store {context.store_token} not in {','.join(customization.stores)}",
        )

    def _check_customer_group(
        self,
        code: str,
        customization: CustomizationRecord,
        context: CartContext,
    ) -> Optional[Exclusion]:
        policy = self.config.group_filter_policy
        groups: List[str] = [g.strip().lower() for g in customization.customer_groups if g.strip()]

        if not groups:
            if policy is GroupFilterPolicy.STRICT:
                return Exclusion(
                    code,
                    ExclusionReason.CUSTOMER_GROUP_NOT_CONFIGURED,
                    "no customer groups configured",
                )
            return None

        if context.customer_group_id is None:
            if (
                policy is GroupFilterPolicy.GUEST_GATED
                and context.is_guest is False
                and groups == [GUEST_GROUP_ID]
            ):
                return Exclusion(code, ExclusionReason.GUEST_ONLY, "carrier limited to guests")
            return None

        if context.customer_group_id.strip().lower() in groups:
            return None

        return Exclusion(
            code,
            ExclusionReason.CUSTOMER_GROUP_MISMATCH,
            f"group {context.customer_group_id} not in {','.join(customization.customer_groups)}",
        )

    # ==================== Pricing ====================

    def _price(self, customization: CustomizationRecord, context: CartContext) -> float:
        unit_price = customization.price
        if unit_price is None:
            unit_price = self.config.default_price
        if not customization.price_per_item:
            return unit_price
        return float(Decimal(str(unit_price)) * context.item_count)
