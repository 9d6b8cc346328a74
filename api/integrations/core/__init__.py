"""Core export infrastructure: types, errors, transport and token encryption."""

from .errors import (
    ExportError,
    NetworkError,
    ProxyActivationRequired,
    AuthenticationError,
    ValidationError,
    QuotaExceeded,
    PlatformAPIError,
    PartialFailure,
)
from .tokens import TokenManager
from .transport import ProxyTransport, ProxyProvider, ProxyAttempt, RequestSpec, get_transport
from .types import (
    Platform,
    ExportMode,
    ExportStatus,
    ExportResult,
    IntegrationConfig,
    Slide,
    Annotation,
    DiscoveredResource,
)

__all__ = [
    "ExportError",
    "NetworkError",
    "ProxyActivationRequired",
    "AuthenticationError",
    "ValidationError",
    "QuotaExceeded",
    "PlatformAPIError",
    "PartialFailure",
    "TokenManager",
    "ProxyTransport",
    "ProxyProvider",
    "ProxyAttempt",
    "RequestSpec",
    "get_transport",
    "Platform",
    "ExportMode",
    "ExportStatus",
    "ExportResult",
    "IntegrationConfig",
    "Slide",
    "Annotation",
    "DiscoveredResource",
]
