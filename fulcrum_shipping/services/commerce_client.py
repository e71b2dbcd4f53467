"""
Commerce Registry Client

Async client for the commerce platform's REST API:
- Out-of-process shipping carriers (V1/oope_shipping_carrier)
- Store configuration lookup (V1/store/storeConfigs)
- Customer group lookup (V1/customerGroups/search)

Every call returns a RegistryResponse instead of raising on HTTP errors, so
callers can branch on status codes (404 means "carrier absent" during
reconciliation). Transport failures become status 500 responses. Only token
acquisition failures raise.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from fulcrum_shipping.core.config import Settings, settings
from fulcrum_shipping.core.exceptions import ConfigurationError, RegistryAuthError
from fulcrum_shipping.core.utils import to_number, truncate, utcnow

logger = logging.getLogger(__name__)

CARRIER_PATH = "V1/oope_shipping_carrier"
STORE_CONFIGS_PATH = "V1/store/storeConfigs"
CUSTOMER_GROUPS_PATH = "V1/customerGroups/search"

HTTP_INTERNAL_ERROR = 500
HTTP_NOT_FOUND = 404

STORE_STRING_FIELDS = (
    "locale",
    "base_currency_code",
    "default_display_currency_code",
    "timezone",
    "weight_unit",
    "base_url",
    "base_link_url",
    "base_static_url",
    "base_media_url",
    "secure_base_url",
    "secure_base_link_url",
    "secure_base_static_url",
    "secure_base_media_url",
)


@dataclass
class RegistryResponse:
    """Outcome of one registry call."""
    success: bool
    status_code: int
    body: Any = None
    text: str = ""

    @property
    def is_not_found(self) -> bool:
        return self.status_code == HTTP_NOT_FOUND

    @property
    def message(self) -> str:
        """Registry error message, with %1-style parameters substituted."""
        if isinstance(self.body, dict):
            message = self.body.get("message")
            if isinstance(message, str) and message:
                parameters = self.body.get("parameters")
                if isinstance(parameters, list):
                    for index, value in enumerate(parameters, start=1):
                        message = message.replace(f"%{index}", str(value))
                elif isinstance(parameters, dict):
                    for name, value in parameters.items():
                        message = message.replace(f"%{name}", str(value))
                return message
        return truncate(self.text, 160) or f"HTTP {self.status_code}"


@dataclass
class RegistryCredentials:
    """Commerce API credentials."""
    base_url: str
    access_token: str = ""
    client_id: str = ""
    client_secret: str = ""
    scopes: str = "commerce_api"
    token_url: str = ""
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "RegistryCredentials":
        source = source or settings
        return cls(
            base_url=source.COMMERCE_BASE_URL,
            access_token=source.COMMERCE_ACCESS_TOKEN,
            client_id=source.OAUTH_CLIENT_ID,
            client_secret=source.OAUTH_CLIENT_SECRET,
            scopes=source.OAUTH_SCOPES,
            token_url=source.OAUTH_TOKEN_URL,
            timeout=source.REGISTRY_TIMEOUT_SECONDS,
        )


class CommerceRegistryClient:
    """
    Commerce REST client with bearer authentication.

    Uses a static access token when configured, otherwise obtains a
    client-credentials token and refreshes it shortly before expiry.
    """

    def __init__(
        self,
        credentials: RegistryCredentials,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not credentials.base_url:
            raise ConfigurationError("Missing COMMERCE_BASE_URL", setting="COMMERCE_BASE_URL")
        self.credentials = credentials
        self._transport = transport
        self._access_token: Optional[str] = credentials.access_token or None
        self._token_expires_at: Optional[datetime] = None
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.credentials.base_url.rstrip("/") + "/",
                timeout=self.credentials.timeout,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _ensure_token(self) -> str:
        """Ensure we have a valid bearer token."""
        if self.credentials.access_token:
            return self.credentials.access_token

        if self._access_token and self._token_expires_at:
            # Refresh 5 minutes before expiry
            if utcnow() < self._token_expires_at - timedelta(minutes=5):
                return self._access_token

        if not (self.credentials.client_id and self.credentials.client_secret):
            raise RegistryAuthError(
                "Missing registry credentials. Set COMMERCE_ACCESS_TOKEN or OAUTH_CLIENT_ID/OAUTH_CLIENT_SECRET."
            )

        client = await self._get_http_client()
        try:
            response = await client.post(
                self.credentials.token_url,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.credentials.client_id,
                    "client_secret": self.credentials.client_secret,
                    "scope": " ".join(self.credentials.scopes.replace(",", " ").split()),
                },
            )
        except httpx.RequestError as e:
            logger.error(f"Registry token request failed: {e}")
            raise RegistryAuthError(f"Network error during authentication: {e}") from e

        if response.status_code != 200:
            logger.error(f"Registry OAuth failed: {response.status_code} - {response.text[:500]}")
            raise RegistryAuthError(
                "Failed to authenticate with the commerce platform",
                status_code=response.status_code,
                body=response.text[:500],
            )

        data = response.json()
        self._access_token = data["access_token"]
        expires_in = int(data.get("expires_in", 3600))
        self._token_expires_at = utcnow() + timedelta(seconds=expires_in)

        logger.info(f"Registry OAuth token obtained, expires in {expires_in}s")
        return self._access_token

    async def _make_request(
        self,
        method: str,
        path: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> RegistryResponse:
        """Make authenticated API request."""
        token = await self._ensure_token()
        client = await self._get_http_client()

        headers = {"Authorization": f"Bearer {token}"}
        if self.credentials.client_id:
            headers["x-api-key"] = self.credentials.client_id

        try:
            response = await client.request(
                method.upper(),
                path,
                headers=headers,
                json=data,
                params=params,
            )
        except httpx.RequestError as e:
            logger.error(f"Registry {method} {path} failed: {e}")
            return RegistryResponse(
                success=False,
                status_code=HTTP_INTERNAL_ERROR,
                body={"message": f"Unexpected error, check logs. Original error \"{e}\""},
                text=str(e),
            )

        logger.debug(f"Registry {method} {path} -> {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            body = None

        return RegistryResponse(
            success=response.is_success,
            status_code=response.status_code,
            body=body,
            text=response.text,
        )

    # ==================== Carriers ====================

    def _carrier_path(self, code: str) -> str:
        return f"{CARRIER_PATH}/{quote(code, safe='')}"

    async def list_carriers(self) -> RegistryResponse:
        return await self._make_request("GET", CARRIER_PATH)

    async def get_carrier(self, code: str) -> RegistryResponse:
        return await self._make_request("GET", self._carrier_path(code))

    async def create_carrier(self, record: Dict[str, Any]) -> RegistryResponse:
        return await self._make_request("POST", CARRIER_PATH, data={"carrier": record})

    async def update_carrier(self, code: str, record: Dict[str, Any]) -> RegistryResponse:
        return await self._make_request("PUT", self._carrier_path(code), data={"carrier": record})

    async def delete_carrier(self, code: str) -> RegistryResponse:
        return await self._make_request("DELETE", self._carrier_path(code))

    async def replace_carrier(self, code: str, record: Dict[str, Any]) -> RegistryResponse:
        """
        Hard replace: delete then create.

        Some registry versions ignore field changes on update, so a delete
        followed by a create is the only reliable way to rewrite a carrier.
        A failed delete is logged and the create is attempted regardless.
        """
        deleted = await self.delete_carrier(code)
        if not deleted.success and not deleted.is_not_found:
            logger.warning(f"Delete before replace failed for {code}: {deleted.status_code} {deleted.message}")
        return await self.create_carrier(record)

    # ==================== Lookups ====================

    async def list_stores(self) -> RegistryResponse:
        return await self._make_request("GET", STORE_CONFIGS_PATH)

    async def list_customer_groups(self) -> RegistryResponse:
        return await self._make_request(
            "GET",
            CUSTOMER_GROUPS_PATH,
            params={"searchCriteria[page_size]": 1000},
        )


def parse_store_configs(body: Any) -> List[Dict[str, Any]]:
    """Store configs with numeric ids, newest (highest id) first."""
    if isinstance(body, list):
        entries = body
    elif isinstance(body, dict):
        entries = body.get("items") or []
    else:
        entries = []
    stores = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        store_id = to_number(entry.get("id", entry.get("store_id", entry.get("storeId"))))
        if store_id is None:
            continue
        store: Dict[str, Any] = {
            "id": int(store_id),
            "code": str(entry.get("code") or int(store_id)),
        }
        website_id = to_number(entry.get("website_id", entry.get("websiteId")))
        if website_id is not None:
            store["website_id"] = int(website_id)
        for name in STORE_STRING_FIELDS:
            if entry.get(name) is not None:
                store[name] = str(entry[name])
        stores.append(store)
    return sorted(stores, key=lambda s: s["id"], reverse=True)


def parse_customer_groups(body: Any) -> List[Dict[str, Any]]:
    items = body.get("items", []) if isinstance(body, dict) else []
    groups = []
    for item in items:
        if not isinstance(item, dict):
            continue
        group_id = to_number(item.get("id"))
        if group_id is None:
            continue
        groups.append({
            "id": int(group_id),
            "code": item.get("code") or f"Group {int(group_id)}",
        })
    return groups


def create_registry_client(config: Optional[Settings] = None) -> CommerceRegistryClient:
    """Create registry client from application settings."""
    return CommerceRegistryClient(RegistryCredentials.from_settings(config))
