"""
Export error taxonomy.

Every error raised by the transport, the platform strategies and the
orchestrator derives from ExportError and carries a stable `kind` that ends
up in ExportResult.error_kind.
"""

from typing import Optional, Any


class ExportError(Exception):
    """Base class for all export failures."""

    kind = "error"

    def __init__(self, message: str, platform: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.platform = platform

    def __str__(self) -> str:
        if self.platform:
            return f"{self.platform}: {self.message}"
        return self.message


class NetworkError(ExportError):
    """The transport exhausted every provider with low-level failures."""

    kind = "network"

    def __init__(self, message: str, attempts: Optional[list] = None, platform: Optional[str] = None):
        super().__init__(message, platform)
        self.attempts = attempts or []


class ProxyActivationRequired(ExportError):
    """A relay needs a one-time manual unlock before it will forward requests."""

    kind = "proxy_activation"

    def __init__(self, provider_name: str, activation_url: str):
        super().__init__(
            f"The {provider_name} proxy must be activated once before use. "
            f"Open {activation_url} and request temporary access, then retry."
        )
        self.provider_name = provider_name
        self.activation_url = activation_url


class AuthenticationError(ExportError):
    kind = "authentication"


class ValidationError(ExportError):
    """Malformed or missing input, detected before any network call."""

    kind = "validation"


class QuotaExceeded(ExportError):
    kind = "quota"


class PlatformAPIError(ExportError):
    """A destination rejected a request for a reason other than auth or quota."""

    kind = "platform"

    def __init__(self, message: str, status_code: Optional[int] = None, platform: Optional[str] = None):
        super().__init__(message, platform)
        self.status_code = status_code


class PartialFailure(ExportError):
    """The parent resource exists but some attachments, children or replies do not."""

    kind = "partial_failure"

    def __init__(self, message: str, failures: list[dict[str, Any]], platform: Optional[str] = None):
        super().__init__(message, platform)
        self.failures = failures
