"""
Shipping Schemas

Pydantic models for the webhook and admin API responses.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ==================== Webhook Schemas ====================


class AdditionalDataEntry(BaseModel):
    key: str
    value: str


class OfferValue(BaseModel):
    """Shipping method offered to checkout."""
    carrier_code: str
    method: str
    method_title: str
    price: float
    cost: float
    amount: float
    carrier_title: str
    additional_data: List[AdditionalDataEntry] = []


class OfferOperation(BaseModel):
    """Webhook operation adding one method to the result."""
    op: str = "add"
    path: str = "result"
    value: OfferValue


# ==================== Admin Schemas ====================


class CarrierUpsertRequest(BaseModel):
    """
    Admin carrier payload.

    Native fields go to the registry, custom fields to local storage. Unknown
    fields are accepted so the "variables" envelope and legacy keys pass
    through to reconciliation untouched. The payload may also arrive wrapped
    as {"carrier": {...}}.
    """
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    carrier: Optional[Dict[str, Any]] = None
    code: Optional[str] = None
    title: Optional[str] = None
    stores: Optional[Any] = None
    countries: Optional[Any] = None
    sort_order: Optional[Any] = None
    active: Optional[Any] = None
    variables: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        if self.carrier is not None:
            return dict(self.carrier)
        # exclude_unset keeps "field absent" distinct from "field: null"
        return self.model_dump(exclude_unset=True)


class ReconciliationResponse(BaseModel):
    ok: bool
    status: int
    method: str
    carrier: Dict[str, Any]
    commerce: str = ""
    message: Optional[str] = None
    received_custom: Dict[str, Any] = {}
    saved_custom: Dict[str, Any] = {}
    custom_saved: bool = False


class DeletionResponse(BaseModel):
    ok: bool = True
    code: str
    deleted_in_registry: bool
    state_deleted: bool
    registry_status: int
    registry_body: Any = None


class CarrierSummary(BaseModel):
    """Registry carrier with its custom fields."""
    model_config = ConfigDict(extra="allow")

    id: Optional[Any] = None
    code: Optional[str] = None
    title: Optional[str] = None
    stores: Optional[Any] = None
    countries: Optional[Any] = None
    sort_order: Optional[Any] = None
    active: Optional[Any] = None
    tracking_available: Optional[Any] = None
    shipping_labels_available: Optional[Any] = None
    method_name: Optional[str] = None
    value: Optional[float] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    customer_groups: List[int] = []
    price_per_item: bool = False


class CarrierListResponse(BaseModel):
    ok: bool = True
    carriers: List[CarrierSummary]


class CustomizationListResponse(BaseModel):
    store_key: str
    items: List[Dict[str, Any]]


class StoreListResponse(BaseModel):
    items: List[Dict[str, Any]]


class CustomerGroup(BaseModel):
    id: int
    code: str


class CustomerGroupListResponse(BaseModel):
    items: List[CustomerGroup]


class HealthResponse(BaseModel):
    status: str = Field(..., description="ok or degraded")
    environment: str
    registry_configured: bool
    storage_backend: str
