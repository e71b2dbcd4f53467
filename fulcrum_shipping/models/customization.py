"""
Customization records: locally owned pricing and eligibility rules layered on
top of native carriers.

Field normalization is driven by a FieldKind per field so that the admin
reconciliation path and the repository write path coerce values the same way.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from fulcrum_shipping.core.utils import (
    first_text,
    pick_limit,
    pick_number,
    to_bool,
    to_int_set,
    to_number,
    to_string_set,
)


class FieldKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    INT_SET = "int_set"
    STRING_SET = "string_set"


def normalize_field(kind: FieldKind, raw: Any) -> Any:
    """Coerce a raw value to the field kind; idempotent for every kind."""
    if kind is FieldKind.STRING:
        return None if raw is None or raw == "" else str(raw)
    if kind is FieldKind.NUMBER:
        return to_number(raw)
    if kind is FieldKind.BOOLEAN:
        return to_bool(raw)
    if kind is FieldKind.INT_SET:
        return to_int_set(raw)
    if kind is FieldKind.STRING_SET:
        return to_string_set(raw)
    raise ValueError(f"Unknown field kind: {kind}")


def clear_value(kind: FieldKind) -> Any:
    """Empty sentinel written when a field is explicitly cleared."""
    if kind in (FieldKind.INT_SET, FieldKind.STRING_SET):
        return []
    return None


# Fields managed by the admin carrier form; absent fields are cleared when the
# form sends its "variables" envelope.
RECONCILED_FIELD_KINDS: Dict[str, FieldKind] = {
    "method_name": FieldKind.STRING,
    "value": FieldKind.NUMBER,
    "minimum": FieldKind.NUMBER,
    "maximum": FieldKind.NUMBER,
    "customer_groups": FieldKind.INT_SET,
    "price_per_item": FieldKind.BOOLEAN,
    "stores": FieldKind.STRING_SET,
}

# Fields coerced on every repository write. Unknown keys pass through.
STORED_FIELD_KINDS: Dict[str, FieldKind] = {
    **RECONCILED_FIELD_KINDS,
    "price": FieldKind.NUMBER,
    "sort_order": FieldKind.NUMBER,
    "enabled": FieldKind.BOOLEAN,
    "countries": FieldKind.STRING_SET,
    "carrier_title": FieldKind.STRING,
    "title": FieldKind.STRING,
    "hint": FieldKind.STRING,
}


def normalize_record(record: Dict[str, Any], kinds: Optional[Dict[str, FieldKind]] = None) -> Dict[str, Any]:
    kinds = STORED_FIELD_KINDS if kinds is None else kinds
    normalized = {}
    for key, value in record.items():
        kind = kinds.get(key)
        normalized[key] = normalize_field(kind, value) if kind else value
    return normalized


@dataclass
class CustomizationRecord:
    """
    Evaluation view of a stored customization document.

    Thresholds are already normalized: zero or blank means no restriction and
    is represented as None.
    """
    code: Optional[str] = None
    id: Optional[str] = None
    method_name: Optional[str] = None
    carrier_title: Optional[str] = None
    price: Optional[float] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    customer_groups: List[str] = field(default_factory=list)
    stores: List[str] = field(default_factory=list)
    price_per_item: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CustomizationRecord":
        data = data or {}
        return cls(
            code=first_text(data.get("code")),
            id=first_text(data.get("id")),
            method_name=first_text(data.get("method_name")),
            carrier_title=first_text(data.get("carrier_title")),
            price=pick_number(data.get("price"), data.get("value")),
            minimum=pick_limit(data.get("minimum"), data.get("min"), data.get("minimum_amount")),
            maximum=pick_limit(data.get("maximum"), data.get("max"), data.get("maximum_amount")),
            customer_groups=to_string_set(data.get("customer_groups")),
            stores=to_string_set(data.get("stores")),
            price_per_item=bool(to_bool(data.get("price_per_item"))),
        )
