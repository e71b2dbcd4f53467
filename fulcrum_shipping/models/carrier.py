"""
Native carrier records as owned by the commerce platform's carrier registry.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fulcrum_shipping.core.utils import (
    first_text,
    is_active_flag,
    slugify,
    to_bool,
    to_number,
    to_string_set,
)


@dataclass
class NativeCarrierRecord:
    """
    Carrier as returned by the registry.

    `active` is parsed tolerantly because registries and admin forms send
    True, 1, "1", "yes" or "on" interchangeably.
    """
    code: Optional[str] = None
    title: Optional[str] = None
    active: bool = False
    stores: List[str] = field(default_factory=list)
    countries: List[str] = field(default_factory=list)
    sort_order: Optional[float] = None
    method_name: Optional[str] = None
    tracking_available: Optional[bool] = None
    shipping_labels_available: Optional[bool] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NativeCarrierRecord":
        return cls(
            code=first_text(data.get("code")),
            title=first_text(data.get("title")),
            active=is_active_flag(data.get("active")),
            stores=to_string_set(data.get("stores")),
            countries=to_string_set(data.get("countries")),
            sort_order=to_number(data.get("sort_order")),
            method_name=first_text(data.get("method_name")),
            tracking_available=to_bool(data.get("tracking_available")),
            shipping_labels_available=to_bool(data.get("shipping_labels_available")),
            raw=dict(data),
        )

    @property
    def customization_key(self) -> str:
        """Key used to look up this carrier's customization record."""
        if self.code:
            return self.code
        return slugify(self.method_name or self.title, "custom")
