"""
Carrier Reconciliation

Admin-side upsert of a carrier: the native part is written to the commerce
registry, the custom part (pricing, thresholds, eligibility) to the
customization repository.

Registry state machine:

    probe GET  ── 404 ──────────► ABSENT ──► create (POST)
               ── 2xx ──────────► PRESENT ─► replace (DELETE + POST) ─► REPLACED
               │                                 └─ failed ─► update (PUT)
               └─ anything else ─► INDETERMINATE ─► report failure, write nothing
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from fulcrum_shipping.core.config import ResolutionConfig
from fulcrum_shipping.core.exceptions import CarrierPayloadError, RegistryError, StorageError
from fulcrum_shipping.core.utils import to_bool, to_number, to_string_set
from fulcrum_shipping.models.customization import (
    RECONCILED_FIELD_KINDS,
    clear_value,
    normalize_field,
)
from fulcrum_shipping.services.commerce_client import CommerceRegistryClient, RegistryResponse
from fulcrum_shipping.services.customization_repository import CustomizationRepository

logger = logging.getLogger(__name__)

VARIABLES_KEY = "variables"
NATIVE_FLAGS = ("active", "tracking_available", "shipping_labels_available")

# Custom fields surfaced on the admin carrier list, with their empty values
LISTED_CUSTOM_FIELDS = {
    "method_name": None,
    "value": None,
    "minimum": None,
    "maximum": None,
    "customer_groups": [],
    "price_per_item": False,
}


class ProbeState(str, Enum):
    ABSENT = "absent"
    PRESENT = "present"
    INDETERMINATE = "indeterminate"


class ReconciliationMethod(str, Enum):
    POST = "POST"
    REPLACED = "REPLACED"
    PUT = "PUT"
    GET = "GET"


@dataclass
class RegistryUpsert:
    ok: bool
    status: int
    method: ReconciliationMethod
    text: str = ""
    body: Any = None

    @classmethod
    def from_response(cls, response: RegistryResponse, method: ReconciliationMethod) -> "RegistryUpsert":
        return cls(
            ok=response.success,
            status=response.status_code,
            method=method,
            text=response.text,
            body=response.body,
        )

    @property
    def message(self) -> str:
        if isinstance(self.body, dict):
            if self.body.get("message"):
                return RegistryResponse(False, self.status, self.body, self.text).message
            if self.body.get("parameters"):
                return str(self.body["parameters"])
        return self.text or "Commerce API error"


@dataclass
class ReconciliationResult:
    """Outcome of an admin carrier upsert."""
    ok: bool
    status: int
    method: ReconciliationMethod
    carrier: Dict[str, Any]
    commerce: str = ""
    message: Optional[str] = None
    received_custom: Dict[str, Any] = field(default_factory=dict)
    saved_custom: Dict[str, Any] = field(default_factory=dict)
    custom_saved: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "status": self.status,
            "method": self.method.value,
            "carrier": self.carrier,
            "commerce": self.commerce,
            "message": self.message,
            "received_custom": self.received_custom,
            "saved_custom": self.saved_custom,
            "custom_saved": self.custom_saved,
        }


@dataclass
class DeletionResult:
    code: str
    deleted_in_registry: bool
    state_deleted: bool
    registry_status: int
    registry_body: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "code": self.code,
            "deleted_in_registry": self.deleted_in_registry,
            "state_deleted": self.state_deleted,
            "registry_status": self.registry_status,
            "registry_body": self.registry_body,
        }


def build_native_payload(carrier: Dict[str, Any]) -> Dict[str, Any]:
    """Registry payload: only the fields the registry owns, typed."""
    payload: Dict[str, Any] = {"code": str(carrier.get("code") or "").strip()}
    if carrier.get("title") is not None:
        payload["title"] = str(carrier["title"])
    if "stores" in carrier:
        payload["stores"] = to_string_set(carrier["stores"])
    if "countries" in carrier:
        payload["countries"] = to_string_set(carrier["countries"])
    sort_order = to_number(carrier.get("sort_order"))
    if sort_order is not None:
        payload["sort_order"] = sort_order
    for flag in NATIVE_FLAGS:
        if flag in carrier:
            payload[flag] = bool(to_bool(carrier[flag]))
    return payload


def build_custom_patch(carrier: Dict[str, Any]) -> Dict[str, Any]:
    """
    Custom fields from an admin payload.

    A top-level value wins over the same field inside "variables". When the
    "variables" envelope is present, fields missing from both places are
    cleared; without the envelope they are left untouched.
    """
    variables = carrier.get(VARIABLES_KEY)
    if not isinstance(variables, dict):
        variables = {}
    has_envelope = VARIABLES_KEY in carrier

    patch: Dict[str, Any] = {}
    for name, kind in RECONCILED_FIELD_KINDS.items():
        if name in carrier:
            patch[name] = normalize_field(kind, carrier[name])
        elif name in variables:
            patch[name] = normalize_field(kind, variables[name])
        elif has_envelope:
            patch[name] = clear_value(kind)
    return patch


def validate_carrier_payload(carrier: Any) -> Dict[str, Any]:
    if not isinstance(carrier, dict) or not str(carrier.get("code") or "").strip():
        raise CarrierPayloadError("Missing carrier payload", field="code")
    if carrier.get("title") is None or not str(carrier["title"]).strip():
        raise CarrierPayloadError("Title is required by the REST API (POST/PUT)", field="title")
    return carrier


class CarrierReconciliationManager:
    """Keep registry carriers and local customizations in step."""

    def __init__(
        self,
        registry_client: CommerceRegistryClient,
        repository: CustomizationRepository,
        config: ResolutionConfig,
    ):
        self.registry_client = registry_client
        self.repository = repository
        self.config = config

    @property
    def store_key(self) -> str:
        return self.config.customization_store_key

    # ==================== Registry state machine ====================

    async def probe(self, code: str) -> Tuple[ProbeState, RegistryResponse]:
        response = await self.registry_client.get_carrier(code)
        if response.is_not_found:
            return ProbeState.ABSENT, response
        if response.success:
            return ProbeState.PRESENT, response
        return ProbeState.INDETERMINATE, response

    async def upsert_native(self, payload: Dict[str, Any]) -> RegistryUpsert:
        code = payload["code"]
        state, probe_response = await self.probe(code)
        logger.info(f"Carrier {code} probe: {state.value} (HTTP {probe_response.status_code})")

        if state is ProbeState.ABSENT:
            created = await self.registry_client.create_carrier(payload)
            return RegistryUpsert.from_response(created, ReconciliationMethod.POST)

        if state is ProbeState.PRESENT:
            replaced = RegistryUpsert.from_response(
                await self.registry_client.replace_carrier(code, payload),
                ReconciliationMethod.REPLACED,
            )
            if replaced.ok:
                return replaced

            logger.warning(f"Replace of carrier {code} failed ({replaced.status}); falling back to update")
            updated = RegistryUpsert.from_response(
                await self.registry_client.update_carrier(code, payload),
                ReconciliationMethod.PUT,
            )
            return updated if updated.ok else replaced

        return RegistryUpsert(
            ok=False,
            status=probe_response.status_code or 500,
            method=ReconciliationMethod.GET,
            text=probe_response.text or "Unable to determine existence (GET failed)",
            body=probe_response.body,
        )

    # ==================== Admin operations ====================

    async def upsert(self, carrier: Any) -> ReconciliationResult:
        """
        Create or rewrite a carrier and merge its custom fields.

        Args:
            carrier: Admin payload (native fields, custom fields, optional
                "variables" envelope)

        Returns:
            ReconciliationResult; ok=False carries the registry status and message

        Raises:
            CarrierPayloadError: code or title missing
        """
        carrier = validate_carrier_payload(carrier)
        payload = build_native_payload(carrier)
        code = payload["code"]

        upserted = await self.upsert_native(payload)
        if not upserted.ok:
            logger.error(f"Registry upsert failed for {code}: {upserted.method.value} HTTP {upserted.status}")
            return ReconciliationResult(
                ok=False,
                status=upserted.status,
                method=upserted.method,
                carrier=payload,
                commerce=upserted.text,
                message=upserted.message,
            )

        patch = build_custom_patch(carrier)
        custom_saved = True
        try:
            await self.repository.merge_customization(self.store_key, code, patch)
        except StorageError as e:
            custom_saved = False
            logger.error(f"Customization write failed for {code}: {e.message}")

        saved = await self.repository.get(self.store_key, code)

        return ReconciliationResult(
            ok=True,
            status=upserted.status,
            method=upserted.method,
            carrier=payload,
            commerce=upserted.text,
            received_custom=patch,
            saved_custom=saved,
            custom_saved=custom_saved,
        )

    async def delete(self, code: str) -> DeletionResult:
        """Delete a carrier from the registry and drop its customization state."""
        code = (code or "").strip()
        if not code:
            raise CarrierPayloadError("Missing code", field="code")

        response = await self.registry_client.delete_carrier(code)
        if not response.success:
            logger.warning(f"Registry delete of {code} returned HTTP {response.status_code}")

        state_deleted = False
        try:
            state_deleted = await self.repository.delete_by_code(self.store_key, code)
        except StorageError as e:
            logger.warning(f"Customization delete failed for {code}: {e.message}")

        return DeletionResult(
            code=code,
            deleted_in_registry=response.success,
            state_deleted=state_deleted,
            registry_status=response.status_code,
            registry_body=response.body,
        )

    async def list_carriers(self) -> List[Dict[str, Any]]:
        """
        Registry carriers enriched with their custom fields.

        Raises:
            RegistryError: registry list call failed
        """
        response = await self.registry_client.list_carriers()
        if not response.success or not isinstance(response.body, list):
            raise RegistryError(
                response.message if not response.success else "Failed to fetch carriers",
                status_code=response.status_code if not response.success else 502,
                body=response.body,
            )

        enriched = []
        for carrier in response.body:
            if not isinstance(carrier, dict):
                continue
            custom = await self.repository.get(self.store_key, carrier.get("code") or "")
            enriched.append(self._enrich(carrier, custom))
        return enriched

    @staticmethod
    def _enrich(carrier: Dict[str, Any], custom: Dict[str, Any]) -> Dict[str, Any]:
        row = {
            "id": carrier.get("id"),
            "code": carrier.get("code"),
            "title": carrier.get("title"),
            "stores": carrier.get("stores"),
            "countries": carrier.get("countries"),
            "sort_order": carrier.get("sort_order"),
            "active": carrier.get("active"),
            "tracking_available": carrier.get("tracking_available"),
            "shipping_labels_available": carrier.get("shipping_labels_available"),
        }
        for name, empty in LISTED_CUSTOM_FIELDS.items():
            kind = RECONCILED_FIELD_KINDS[name]
            value = normalize_field(kind, custom[name]) if name in custom else None
            row[name] = empty if value is None else value
        if isinstance(custom.get("stores"), list):
            row["stores"] = to_string_set(custom["stores"])
        return row
