"""
Fulcrum Shipping Exception Hierarchy

Structured exception classes for offer resolution, customization storage and
carrier registry reconciliation. All exceptions include code, message and
details for logging and admin responses.

Exception Hierarchy:
    FulcrumBaseError
    ├── ConfigurationError
    ├── StorageError
    │   └── InvalidCustomizationError
    └── RegistryError
        ├── RegistryAuthError
        └── ReconciliationError
            └── CarrierPayloadError
"""
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class FulcrumBaseError(Exception):
    """
    Base exception for all Fulcrum Shipping errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging
        severity: P0-P3 severity level
    """

    default_code: str = "FULCRUM_ERROR"
    default_severity: str = "P2"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(FulcrumBaseError):
    """Required setting missing or invalid (e.g. COMMERCE_BASE_URL)."""
    default_code = "CONFIGURATION_ERROR"
    default_severity = "P1"

    def __init__(self, message: str, setting: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details.update({"setting": setting})
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# STORAGE ERRORS
# =============================================================================

class StorageError(FulcrumBaseError):
    """Byte store read/write failure."""
    default_code = "STORAGE_ERROR"
    default_severity = "P2"

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details.update({"key": key})
        super().__init__(message, details=details, **kwargs)


class InvalidCustomizationError(StorageError):
    """Customization record cannot be addressed (no id and no code)."""
    default_code = "INVALID_CUSTOMIZATION"
    default_severity = "P3"


# =============================================================================
# REGISTRY ERRORS
# =============================================================================

class RegistryError(FulcrumBaseError):
    """Commerce carrier registry call failed."""
    default_code = "REGISTRY_ERROR"
    default_severity = "P1"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "status_code": status_code,
            "body": body,
        })
        self.status_code = status_code
        super().__init__(message, details=details, **kwargs)


class RegistryAuthError(RegistryError):
    """Token acquisition against the OAuth endpoint failed."""
    default_code = "REGISTRY_AUTH_FAILED"
    default_severity = "P0"


class ReconciliationError(RegistryError):
    """Carrier create/replace/update sequence failed."""
    default_code = "RECONCILIATION_FAILED"
    default_severity = "P1"


class CarrierPayloadError(ReconciliationError):
    """Admin payload is missing required carrier fields."""
    default_code = "INVALID_CARRIER_PAYLOAD"
    default_severity = "P3"

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details.update({"field": field})
        super().__init__(message, status_code=400, details=details, **kwargs)
