from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class CartContext:
    """Normalized view of an inbound checkout request."""
    total: float = 0.0
    item_count: int = 1
    store_token: Optional[str] = None
    customer_group_id: Optional[str] = None
    is_guest: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "item_count": self.item_count,
            "store_token": self.store_token,
            "customer_group_id": self.customer_group_id,
            "is_guest": self.is_guest,
        }
