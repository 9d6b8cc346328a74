"""
Base classes for export strategies.

Defines the ExportStrategy abstract interface and supporting types. Every
destination platform implements one strategy; the orchestrator drives them
all through the same steps:

    resolve_destination -> create_parent -> upload_attachment*
                        -> create_child* | post_reply*

Strategies are stateless. Credentials and the transport are passed in via
ExporterContext, one per job.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Any

import httpx

from integrations.core.errors import (
    ExportError,
    AuthenticationError,
    ValidationError,
    QuotaExceeded,
    PlatformAPIError,
    ProxyActivationRequired,
)
from integrations.core.transport import ProxyTransport, RequestSpec
from integrations.core.types import ExportMode, IntegrationConfig
from integrations.credentials import extract_destination_id, destination_error_hint
from integrations.discovery import DiscoveryReport
from services.media import Attachment
from services.platform_output import FormattedContent

logger = logging.getLogger(__name__)

# Attachment failure policies
DEGRADE = "degrade"
FAIL = "fail"

# Timeout for create/upload calls; discovery uses DISCOVERY_TIMEOUT_SECONDS
WRITE_TIMEOUT_SECONDS = 60.0


@dataclass
class ExporterContext:
    """
    Per-job context passed to strategies.

    Holds the normalized config, the transport every call goes through and
    the destination once it is resolved.
    """
    config: IntegrationConfig
    transport: ProxyTransport
    destination_id: Optional[str] = None


@dataclass
class CreatedResource:
    """A remote resource created by a strategy (task, issue, message, card)."""
    external_id: str
    url: Optional[str] = None
    # Slack: ts of the thread parent; replies and uploads attach to it
    thread_token: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


class ExportStrategy(ABC):
    """
    Abstract base class for all platform export strategies.

    Class attributes describe what the platform supports; the orchestrator
    reads them instead of branching on the platform name.
    """

    display_name: str = ""
    # Config fields that must all be present before any network call
    required_fields: tuple[str, ...] = ()
    supported_modes: tuple[ExportMode, ...] = (ExportMode.SINGLE, ExportMode.BATCH_ATTACHMENT)
    supports_attachments: bool = True
    # Attachments travel inside the create payload instead of separate uploads
    inline_attachments: bool = False
    attachment_failure_policy: str = DEGRADE
    supports_discovery: bool = False
    # Config fields holding a stored destination id / name
    destination_field: Optional[str] = None
    destination_name_field: Optional[str] = None
    title_prefix: str = ""
    include_footer: bool = True

    @property
    @abstractmethod
    def platform(self) -> str:
        """The platform identifier this strategy handles (Platform value)."""
        pass

    @property
    def log_tag(self) -> str:
        return f"[{self.platform.upper()}_EXPORT]"

    # =========================================================================
    # Credentials
    # =========================================================================

    def check_config(self, config: IntegrationConfig) -> None:
        """
        Verify the full required field set is present. No network.

        Raises:
            ValidationError: Listing the missing settings
        """
        missing = [name for name in self.required_fields if not getattr(config, name)]
        if missing:
            fields = IntegrationConfig.model_fields
            labels = ", ".join(fields[name].alias or name for name in missing)
            raise ValidationError(
                f"{self.display_name} is not fully configured. Missing: {labels}",
                platform=self.platform,
            )

    async def validate_credentials(self, config: IntegrationConfig, transport: ProxyTransport) -> bool:
        """
        Lightweight authenticated read ("who am I").

        Returns False for any failure except ProxyActivationRequired, which is
        re-raised so the caller can show the unlock link.
        """
        ctx = ExporterContext(config=config, transport=transport)
        try:
            self.check_config(config)
            await self.check_access(ctx)
            return True
        except ProxyActivationRequired:
            raise
        except ExportError as e:
            logger.warning(f"{self.log_tag} Credential check failed: {e}")
            return False

    async def check_access(self, ctx: ExporterContext) -> None:
        """Authenticated read used by validate_credentials. Raises on failure."""
        pass

    # =========================================================================
    # Destination
    # =========================================================================

    def extract_destination(self, raw: Optional[str]) -> Optional[str]:
        return extract_destination_id(self.platform, raw)

    async def resolve_destination(self, ctx: ExporterContext, requested: Optional[str] = None) -> str:
        """
        Resolve the destination id for a job.

        Order: the requested id/link, the stored config id, then discovery
        (matched by the stored destination name, or the only resource found).

        Raises:
            ValidationError: A supplied id/link is malformed, or nothing matches
        """
        hint = destination_error_hint(self.platform)

        if requested and requested.strip():
            destination_id = self.extract_destination(requested)
            if not destination_id:
                raise ValidationError(f"Invalid destination '{requested.strip()}'. {hint}", platform=self.platform)
            return destination_id

        stored = getattr(ctx.config, self.destination_field) if self.destination_field else None
        if stored:
            destination_id = self.extract_destination(stored)
            if not destination_id:
                raise ValidationError(f"Invalid stored destination '{stored}'. {hint}", platform=self.platform)
            return destination_id

        if not self.supports_discovery:
            raise ValidationError(f"No {self.display_name} destination configured. {hint}", platform=self.platform)

        report = await self.discover(ctx)
        name = getattr(ctx.config, self.destination_name_field) if self.destination_name_field else None

        matches = report.find_by_name(name) if name else []
        if not matches and not name and len(report.resources) == 1:
            matches = report.resources

        if len(matches) == 1:
            logger.info(f"{self.log_tag} Resolved destination via discovery: {matches[0].group_path} / {matches[0].name}")
            return matches[0].id

        if name and not matches:
            raise ValidationError(f"No {self.display_name} destination named '{name}' was found.", platform=self.platform)
        raise ValidationError(
            f"Choose a {self.display_name} destination ({len(report.resources)} available).",
            platform=self.platform,
        )

    async def discover(self, ctx: ExporterContext) -> DiscoveryReport:
        """Enumerate reachable destinations."""
        raise ValidationError(
            f"{self.display_name} has no destination hierarchy to discover.",
            platform=self.platform,
        )

    # =========================================================================
    # Submission
    # =========================================================================

    @abstractmethod
    async def create_parent(
        self,
        ctx: ExporterContext,
        content: FormattedContent,
        attachments: Optional[list[Attachment]] = None,
    ) -> CreatedResource:
        """
        Create the parent resource.

        `attachments` is only passed to strategies with inline_attachments.
        """
        pass

    async def upload_attachment(self, ctx: ExporterContext, target: CreatedResource, attachment: Attachment) -> None:
        raise ValidationError(f"{self.display_name} does not support attachments.", platform=self.platform)

    async def create_child(self, ctx: ExporterContext, parent: CreatedResource, content: FormattedContent) -> CreatedResource:
        raise ValidationError(f"{self.display_name} does not support subtasks.", platform=self.platform)

    async def post_reply(self, ctx: ExporterContext, parent: CreatedResource, content: FormattedContent) -> CreatedResource:
        raise ValidationError(f"{self.display_name} does not support threaded replies.", platform=self.platform)

    def map_upload_error(self, error: ExportError, attachment: Attachment) -> ExportError:
        """Translate a failed upload into the error reported for it."""
        return error

    async def recover_upload(
        self,
        ctx: ExporterContext,
        target: CreatedResource,
        attachment: Attachment,
        error: ExportError,
    ) -> Optional[str]:
        """
        Store a rejected attachment somewhere else and link it from the target.

        Returns the backup link, or None when the platform has no fallback for
        this error. Raises if the fallback itself fails.
        """
        return None

    # =========================================================================
    # HTTP helpers
    # =========================================================================

    async def request(
        self,
        ctx: ExporterContext,
        url: str,
        spec: Optional[RequestSpec] = None,
    ) -> httpx.Response:
        """Send through the transport and raise for error statuses."""
        spec = spec or RequestSpec()
        if spec.timeout is None:
            spec.timeout = WRITE_TIMEOUT_SECONDS
        response = await ctx.transport.send(url, spec)
        self.raise_for_status(response)
        return response

    async def request_json(self, ctx: ExporterContext, url: str, spec: Optional[RequestSpec] = None) -> Any:
        response = await self.request(ctx, url, spec)
        return self.parse_json(response)

    def parse_json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise PlatformAPIError(
                f"Unexpected non-JSON response ({response.status_code})",
                status_code=response.status_code,
                platform=self.platform,
            ) from e

    def error_message(self, response: httpx.Response) -> str:
        """
        Best-effort extraction of the platform's error message.

        Understands the common shapes: Jira errorMessages/errors, ClickUp
        err/ECODE, Slack error, Asana errors[].message, plain message.
        """
        try:
            body = response.json()
        except ValueError:
            text = response.text.strip()
            return text[:300] if text else f"HTTP {response.status_code}"

        if isinstance(body, dict):
            if body.get("errorMessages"):
                return "; ".join(str(m) for m in body["errorMessages"])
            errors = body.get("errors")
            if isinstance(errors, dict) and errors:
                return "; ".join(f"{k}: {v}" for k, v in errors.items())
            if isinstance(errors, list) and errors:
                return "; ".join(
                    str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors
                )
            if body.get("err"):
                code = f" ({body['ECODE']})" if body.get("ECODE") else ""
                return f"{body['err']}{code}"
            for key in ("error", "message", "error_description"):
                if isinstance(body.get(key), str):
                    return body[key]

        return f"HTTP {response.status_code}"

    def is_quota_error(self, response: httpx.Response, message: str) -> bool:
        return response.status_code == 429

    def raise_for_status(self, response: httpx.Response) -> None:
        """
        Classify an HTTP error response.

        Raises:
            AuthenticationError: 401 / 403
            QuotaExceeded: 429 or a platform-specific quota message
            PlatformAPIError: Any other status >= 400
        """
        if response.status_code < 400:
            return

        message = self.error_message(response)

        if self.is_quota_error(response, message):
            raise QuotaExceeded(message, platform=self.platform)
        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"{self.display_name} rejected the credentials ({response.status_code}): {message}",
                platform=self.platform,
            )
        raise PlatformAPIError(message, status_code=response.status_code, platform=self.platform)
