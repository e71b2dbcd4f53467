"""
Offer resolution results.

A resolution either yields concrete offers or one of the sentinels
(no matching carriers, skipped, configuration error). Sentinels are not
exceptions: checkout must keep working, so they render as a single
zero-priced diagnostic offer in the webhook response.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from fulcrum_shipping.core.utils import truncate
from fulcrum_shipping.models.cart import CartContext

DIAGNOSTIC_METHOD_CODE = "fulcrum_error"
DIAGNOSTIC_TITLE_LENGTH = 140
NO_MATCH_MESSAGE = "No matching carriers after filters"


class ExclusionReason(str, Enum):
    INACTIVE = "inactive"
    BELOW_MINIMUM = "below_minimum"
    AT_OR_ABOVE_MAXIMUM = "at_or_above_maximum"
    STORE_NOT_CONFIGURED = "store_not_configured"
    STORE_MISMATCH = "store_mismatch"
    CUSTOMER_GROUP_NOT_CONFIGURED = "customer_group_not_configured"
    CUSTOMER_GROUP_MISMATCH = "customer_group_mismatch"
    GUEST_ONLY = "guest_only"
    EVALUATION_ERROR = "evaluation_error"


class ResolutionStatus(str, Enum):
    OFFERS = "offers"
    NO_MATCH = "no_matching_carriers"
    SKIPPED = "skipped"
    CONFIGURATION_ERROR = "configuration_error"


@dataclass
class Offer:
    """A priced shipping option presented to checkout."""
    carrier_code: str
    carrier_title: str
    method_code: str
    method_title: str
    price: float
    metadata: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        # amount, price and cost are read by different consumers; keep them equal
        return {
            "carrier_code": self.carrier_code,
            "method": self.method_code,
            "method_title": self.method_title,
            "price": self.price,
            "cost": self.price,
            "amount": self.price,
            "carrier_title": self.carrier_title,
            "additional_data": [
                {"key": key, "value": value} for key, value in self.metadata.items()
            ],
        }


@dataclass
class Exclusion:
    """Why a carrier produced no offer."""
    carrier_code: str
    reason: ExclusionReason
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "carrier_code": self.carrier_code,
            "reason": self.reason.value,
            "detail": self.detail,
        }


@dataclass
class ResolutionResult:
    status: ResolutionStatus
    offers: List[Offer] = field(default_factory=list)
    exclusions: List[Exclusion] = field(default_factory=list)
    message: Optional[str] = None
    context: Optional[CartContext] = None

    @classmethod
    def no_match(cls, exclusions: List[Exclusion], context: Optional[CartContext] = None) -> "ResolutionResult":
        return cls(
            status=ResolutionStatus.NO_MATCH,
            exclusions=exclusions,
            message=NO_MATCH_MESSAGE,
            context=context,
        )

    @classmethod
    def skipped(cls, message: str) -> "ResolutionResult":
        return cls(status=ResolutionStatus.SKIPPED, message=message)

    @classmethod
    def configuration_error(cls, message: str) -> "ResolutionResult":
        return cls(status=ResolutionStatus.CONFIGURATION_ERROR, message=message)

    @property
    def is_sentinel(self) -> bool:
        return self.status is not ResolutionStatus.OFFERS

    def diagnostic_offer(self, carrier_code: str, carrier_title: str) -> Offer:
        return Offer(
            carrier_code=carrier_code,
            carrier_title=f"{carrier_title} (ERROR)",
            method_code=DIAGNOSTIC_METHOD_CODE,
            method_title=truncate(self.message or self.status.value, DIAGNOSTIC_TITLE_LENGTH),
            price=0,
            metadata={"source": "shipping-methods error"},
        )

    def to_operations(
        self,
        diagnostic_enabled: bool = True,
        diagnostic_carrier_code: str = "FULCRUM",
        diagnostic_carrier_title: str = "Fulcrum Custom Shipping",
    ) -> List[Dict[str, Any]]:
        """Render as the webhook operation list ({op, path, value} per offer)."""
        if self.is_sentinel:
            if not diagnostic_enabled:
                return []
            offers = [self.diagnostic_offer(diagnostic_carrier_code, diagnostic_carrier_title)]
        else:
            offers = self.offers
        return [{"op": "add", "path": "result", "value": offer.to_dict()} for offer in offers]
