"""
Cart Signal Extractor

Derives a CartContext (total, item count, store, customer group, guest flag)
from an inbound checkout payload whose shape varies by caller. Each signal is
resolved by walking an ordered list of key paths; the first usable value wins.
The probe lists are plain module constants so deployments and tests can pass
their own.

Extraction never raises. Anything that cannot be resolved falls back to the
CartContext defaults.
"""
import logging
import math
from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from fulcrum_shipping.core.utils import FALSE_TOKENS, TRUE_TOKENS, to_bool, to_number
from fulcrum_shipping.models.cart import CartContext

logger = logging.getLogger(__name__)

ProbePath = Tuple[str, ...]

TOTAL_PROBES: Sequence[ProbePath] = (
    ("totals", "grand_total"),
    ("totals", "base_grand_total"),
    ("grand_total",),
    ("base_grand_total",),
    ("package_value_with_discount",),
    ("packageValueWithDiscount",),
    ("package_value",),
    ("packageValue",),
    ("subtotal_incl_tax",),
    ("base_subtotal_incl_tax",),
    ("totals", "subtotal_with_discount"),
    ("totals", "base_subtotal_with_discount"),
    ("subtotal_with_discount",),
    ("base_subtotal_with_discount",),
    ("subtotal",),
    ("base_subtotal",),
)

ITEM_ARRAY_PROBES: Sequence[ProbePath] = (
    ("items",),
    ("quote", "items"),
    ("cart", "items"),
    ("all_items",),
    ("quote", "all_items"),
    ("order", "items"),
)

# Discount-aware, then tax-inclusive, then tax-exclusive, then base currency
ROW_TOTAL_FIELDS: Sequence[str] = (
    "row_total_with_discount",
    "row_total_incl_tax",
    "row_total",
    "base_row_total_with_discount",
    "base_row_total_incl_tax",
    "base_row_total",
)

UNIT_PRICE_FIELDS: Sequence[str] = (
    "price",
    "price_incl_tax",
    "base_price",
    "base_price_incl_tax",
)

QUANTITY_FIELDS: Sequence[str] = ("qty", "quantity", "qty_ordered", "qty_to_ship")

ITEM_COUNT_PROBES: Sequence[ProbePath] = (
    ("items_qty",),
    ("itemsQty",),
    ("items_count",),
    ("itemsCount",),
    ("totals", "items_qty"),
    ("quote", "items_qty"),
    ("quote", "items_count"),
    ("cart", "items_qty"),
)

STORE_PROBES: Sequence[ProbePath] = (
    ("store_code",),
    ("storeCode",),
    ("store", "code"),
    ("storeId",),
    ("store_id",),
    ("quote", "store_id"),
    ("extension_attributes", "store_id"),
    ("address", "store_id"),
)
STORE_SCAN_KEYS = ("store_code", "storeCode", "store_id", "storeId")

CUSTOMER_GROUP_PROBES: Sequence[ProbePath] = (
    ("customer_group_id",),
    ("customer_group",),
    ("customerGroupId",),
    ("customer", "group_id"),
    ("quote", "customer_group_id"),
    ("extension_attributes", "customer_group_id"),
)
CUSTOMER_GROUP_SCAN_KEYS = ("customer_group_id", "customerGroupId")

GUEST_PROBES: Sequence[ProbePath] = (
    ("customer_is_guest",),
    ("is_guest",),
    ("isGuest",),
    ("customer", "is_guest"),
    ("quote", "customer_is_guest"),
    ("extension_attributes", "customer_is_guest"),
)
GUEST_SCAN_KEYS = ("customer_is_guest", "is_guest", "isGuest")

CUSTOMER_ID_PROBES: Sequence[ProbePath] = (
    ("customer_id",),
    ("customerId",),
    ("customer", "id"),
    ("quote", "customer_id"),
    ("extension_attributes", "customer_id"),
)

MAX_SCAN_DEPTH = 8


def probe(payload: Any, path: ProbePath) -> Any:
    """Follow a key path through nested mappings; None when any step is missing."""
    node = payload
    for key in path:
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node


def scalar_text(value: Any) -> Optional[str]:
    """Trimmed text for a non-blank string or number; None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, (str, int, float)):
        text = str(value).strip()
        return text or None
    return None


def explicit_flag(value: Any) -> Optional[bool]:
    """Boolean from an explicit true/false value; None for anything ambiguous."""
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, (bool, int, float)):
        return to_bool(value)
    token = str(value).strip().lower()
    if token in TRUE_TOKENS:
        return True
    if token in FALSE_TOKENS:
        return False
    return None


def positive_quantity(item: Dict[str, Any], fields: Iterable[str]) -> float:
    for name in fields:
        qty = to_number(item.get(name))
        if qty is not None:
            return qty if qty > 0 else 1.0
    return 1.0


class CartSignalExtractor:
    """Resolve checkout signals from a payload using ordered probe lists."""

    def __init__(
        self,
        total_probes: Sequence[ProbePath] = TOTAL_PROBES,
        item_array_probes: Sequence[ProbePath] = ITEM_ARRAY_PROBES,
        row_total_fields: Sequence[str] = ROW_TOTAL_FIELDS,
        unit_price_fields: Sequence[str] = UNIT_PRICE_FIELDS,
        quantity_fields: Sequence[str] = QUANTITY_FIELDS,
        item_count_probes: Sequence[ProbePath] = ITEM_COUNT_PROBES,
        store_probes: Sequence[ProbePath] = STORE_PROBES,
        customer_group_probes: Sequence[ProbePath] = CUSTOMER_GROUP_PROBES,
        guest_probes: Sequence[ProbePath] = GUEST_PROBES,
        customer_id_probes: Sequence[ProbePath] = CUSTOMER_ID_PROBES,
        max_scan_depth: int = MAX_SCAN_DEPTH,
    ):
        self.total_probes = total_probes
        self.item_array_probes = item_array_probes
        self.row_total_fields = row_total_fields
        self.unit_price_fields = unit_price_fields
        self.quantity_fields = quantity_fields
        self.item_count_probes = item_count_probes
        self.store_probes = store_probes
        self.customer_group_probes = customer_group_probes
        self.guest_probes = guest_probes
        self.customer_id_probes = customer_id_probes
        self.max_scan_depth = max_scan_depth

    def extract(self, payload: Any) -> CartContext:
        if not isinstance(payload, dict):
            return CartContext()

        context = CartContext(
            total=self.extract_total(payload),
            item_count=self.extract_item_count(payload),
            store_token=self.extract_store(payload),
            customer_group_id=self.extract_customer_group(payload),
            is_guest=self.extract_guest(payload),
        )
        logger.debug(f"Extracted cart context: {context.to_dict()}")
        return context

    # ==================== Totals ====================

    def extract_total(self, payload: Dict[str, Any]) -> float:
        for path in self.total_probes:
            number = to_number(probe(payload, path))
            if number is not None and number >= 0:
                return number

        for items in self._item_arrays(payload):
            total = sum(self._row_total(item) for item in items if isinstance(item, dict))
            if total > 0 and math.isfinite(total):
                return total

        return 0.0

    def _row_total(self, item: Dict[str, Any]) -> float:
        for name in self.row_total_fields:
            number = to_number(item.get(name))
            if number is not None:
                return number
        for name in self.unit_price_fields:
            price = to_number(item.get(name))
            if price is not None:
                return price * positive_quantity(item, self.quantity_fields)
        return 0.0

    def _item_arrays(self, payload: Dict[str, Any]) -> List[List[Any]]:
        arrays = []
        for path in self.item_array_probes:
            value = probe(payload, path)
            if isinstance(value, list) and value:
                arrays.append(value)
        return arrays

    # ==================== Item count ====================

    def extract_item_count(self, payload: Dict[str, Any]) -> int:
        for path in self.item_count_probes:
            number = to_number(probe(payload, path))
            if number is not None and number > 0:
                return max(1, math.ceil(number))

        arrays = self._item_arrays(payload)
        if arrays:
            return self._count_quantities(arrays[0])

        scanned = self._scan_item_list(payload)
        if scanned:
            return self._count_quantities(scanned)

        return 1

    def _count_quantities(self, items: List[Any]) -> int:
        total = 0.0
        for item in items:
            if isinstance(item, dict):
                total += positive_quantity(item, self.quantity_fields)
            else:
                total += 1
        if not math.isfinite(total):
            return 1
        return max(1, math.ceil(total))

    def _scan_item_list(self, payload: Dict[str, Any]) -> Optional[List[Any]]:
        """First non-empty list under a key containing "items", breadth first."""
        for key, value, _depth in self._walk(payload):
            if isinstance(value, list) and value and "items" in key.lower():
                return value
        return None

    # ==================== Store / group / guest ====================

    def extract_store(self, payload: Dict[str, Any]) -> Optional[str]:
        return self._first_scalar(payload, self.store_probes, STORE_SCAN_KEYS)

    def extract_customer_group(self, payload: Dict[str, Any]) -> Optional[str]:
        return self._first_scalar(payload, self.customer_group_probes, CUSTOMER_GROUP_SCAN_KEYS)

    def extract_guest(self, payload: Dict[str, Any]) -> Optional[bool]:
        for path in self.guest_probes:
            flag = explicit_flag(probe(payload, path))
            if flag is not None:
                return flag

        for _key, value, _depth in self._walk(payload, GUEST_SCAN_KEYS):
            flag = explicit_flag(value)
            if flag is not None:
                return flag

        for path in self.customer_id_probes:
            customer_id = to_number(probe(payload, path))
            if customer_id is not None and customer_id > 0:
                return False

        return None

    def _first_scalar(
        self,
        payload: Dict[str, Any],
        probes: Sequence[ProbePath],
        scan_keys: Sequence[str],
    ) -> Optional[str]:
        for path in probes:
            text = scalar_text(probe(payload, path))
            if text is not None:
                return text

        for _key, value, _depth in self._walk(payload, scan_keys):
            text = scalar_text(value)
            if text is not None:
                return text

        return None

    def _walk(self, payload: Any, keys: Optional[Sequence[str]] = None):
        """
        Breadth-first (key, value, depth) over nested mappings and lists.

        When `keys` is given only entries with those key names are yielded,
        but the walk still descends through every container.
        """
        queue = deque([(payload, 0)])
        while queue:
            node, depth = queue.popleft()
            if depth > self.max_scan_depth:
                continue
            if isinstance(node, dict):
                for key, value in node.items():
                    if keys is None or key in keys:
                        yield str(key), value, depth
                    if isinstance(value, (dict, list)):
                        queue.append((value, depth + 1))
            elif isinstance(node, list):
                for value in node:
                    if isinstance(value, (dict, list)):
                        queue.append((value, depth + 1))
