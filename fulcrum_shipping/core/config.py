"""
Application configuration

Settings are read from the environment (and an optional .env file) once per
process. Services never read `settings` directly in their hot paths: the
relevant values are copied into a frozen ResolutionConfig that is passed into
constructors.
"""
import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fulcrum_shipping.models.policy import GroupFilterPolicy, StoreFilterPolicy

logger = logging.getLogger(__name__)

DEFAULT_LEGACY_CUSTOM_KEYS = [
    "carrier_custom_{code}.json",
    "carrier_custom_{code}",
]

STORAGE_BACKENDS = ("s3", "local", "memory")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # App - defaults are production safe
    APP_NAME: str = "Fulcrum Shipping"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"

    # Commerce registry
    COMMERCE_BASE_URL: str = ""
    COMMERCE_ACCESS_TOKEN: str = ""
    OAUTH_CLIENT_ID: str = ""
    OAUTH_CLIENT_SECRET: str = ""
    OAUTH_SCOPES: str = "commerce_api"
    OAUTH_TOKEN_URL: str = "https://ims-na1.adobelogin.com/ims/token/v3"
    REGISTRY_TIMEOUT_SECONDS: float = 30.0

    # Offer resolution
    DEFAULT_PRICE: float = 0.0
    STORE_FILTER_POLICY: StoreFilterPolicy = StoreFilterPolicy.STRICT
    GROUP_FILTER_POLICY: GroupFilterPolicy = GroupFilterPolicy.PERMISSIVE
    DIAGNOSTIC_OFFER_ENABLED: bool = True
    DIAGNOSTIC_CARRIER_CODE: str = "FULCRUM"
    FALLBACK_CARRIER_TITLE: str = "Fulcrum Custom Shipping"

    # Customization storage
    CUSTOMIZATION_STORE_KEY: str = "default"
    CUSTOMIZATION_PREFIX: str = "fulcrum/carriers"
    LEGACY_CUSTOM_KEYS: Union[str, List[str]] = DEFAULT_LEGACY_CUSTOM_KEYS
    STORAGE_BACKEND: str = "s3"
    LOCAL_STORAGE_PATH: str = "./data"

    # Storage (S3 compatible)
    S3_BUCKET: str = ""
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY: str = ""
    S3_SECRET_KEY: str = ""
    S3_ENDPOINT: str = ""  # Leave empty for AWS, set for R2/MinIO

    @field_validator("STORE_FILTER_POLICY", "GROUP_FILTER_POLICY", mode="before")
    @classmethod
    def parse_policy(cls, v):
        if isinstance(v, str):
            return v.strip().lower().replace("-", "_")
        return v

    @field_validator("STORAGE_BACKEND", mode="before")
    @classmethod
    def parse_storage_backend(cls, v):
        backend = (v or "s3").strip().lower()
        if backend not in STORAGE_BACKENDS:
            raise ValueError(f"STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}")
        return backend

    # Accepts JSON array or comma-separated string
    @field_validator("LEGACY_CUSTOM_KEYS", mode="before")
    @classmethod
    def parse_legacy_custom_keys(cls, v):
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            if not v.strip():
                return []
            if v.startswith("["):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [pattern.strip() for pattern in v.split(",") if pattern.strip()]
        return v

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Reject configurations that would silently lose customization data."""
        if self.is_production and self.STORAGE_BACKEND == "memory":
            raise ValueError("STORAGE_BACKEND=memory is not allowed in production")
        if self.OAUTH_CLIENT_ID and not self.OAUTH_CLIENT_SECRET:
            logger.warning("OAUTH_CLIENT_ID is set without OAUTH_CLIENT_SECRET; token requests will fail")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


settings = Settings()


@dataclass(frozen=True)
class ResolutionConfig:
    """Immutable slice of settings consumed by the resolution engine."""
    commerce_base_url: Optional[str] = None
    default_price: float = 0.0
    store_filter_policy: StoreFilterPolicy = StoreFilterPolicy.STRICT
    group_filter_policy: GroupFilterPolicy = GroupFilterPolicy.PERMISSIVE
    customization_store_key: str = "default"
    diagnostic_offer_enabled: bool = True
    diagnostic_carrier_code: str = "FULCRUM"
    fallback_carrier_title: str = "Fulcrum Custom Shipping"

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "ResolutionConfig":
        source = source or settings
        return cls(
            commerce_base_url=source.COMMERCE_BASE_URL.strip() or None,
            default_price=source.DEFAULT_PRICE,
            store_filter_policy=source.STORE_FILTER_POLICY,
            group_filter_policy=source.GROUP_FILTER_POLICY,
            customization_store_key=source.CUSTOMIZATION_STORE_KEY or "default",
            diagnostic_offer_enabled=source.DIAGNOSTIC_OFFER_ENABLED,
            diagnostic_carrier_code=source.DIAGNOSTIC_CARRIER_CODE,
            fallback_carrier_title=source.FALLBACK_CARRIER_TITLE,
        )
