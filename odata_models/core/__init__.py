"""
odata_models.core - Core connectivity, configuration and errors
================================================================

- ODataAuth: Authentication configuration (basic or bearer token)
- ODataConfig: Full connection configuration
- ODataSession: HTTP transport with retry, CSRF and version-token handling
- ConnectionContext: Environment-driven connection manager
- Error taxonomy: UsageError, TransportError, MalformedResponse and friends

"""

from odata_models.core.errors import (
    ODataError,
    UsageError,
    MissingKey,
    ModelDestroyed,
    MalformedResponse,
    TransportError,
    NotFound,
    ConcurrencyConflict,
    classify_transport_error,
)
from odata_models.core.session import ODataAuth, ODataConfig, ODataSession, Transport
from odata_models.core.connection import ConnectionContext

__all__ = [
    "ODataError",
    "UsageError",
    "MissingKey",
    "ModelDestroyed",
    "MalformedResponse",
    "TransportError",
    "NotFound",
    "ConcurrencyConflict",
    "classify_transport_error",
    "ODataAuth",
    "ODataConfig",
    "ODataSession",
    "Transport",
    "ConnectionContext",
]
