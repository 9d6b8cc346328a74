"""
Custom Webhook Exporter

POSTs one JSON document per export to a user-supplied URL (Zapier, Make,
an internal service). Screenshots travel inside the payload as base64.

Payload:
    {
        "title": str,
        "description": str,           # markdown
        "source": "BugSnap",
        "timestamp": str,             # ISO 8601, UTC
        "attachments": [{"filename", "content", "mimeType"}]
    }
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from integrations.core.errors import ValidationError
from integrations.core.transport import RequestSpec
from integrations.core.types import IntegrationConfig, Platform
from integrations.credentials import validate_webhook_url
from services.media import Attachment
from services.platform_output import FormattedContent
from .base import ExportStrategy, ExporterContext, CreatedResource

logger = logging.getLogger(__name__)

SOURCE = "BugSnap"


def build_payload(content: FormattedContent, attachments: list[Attachment]) -> dict[str, Any]:
    return {
        "title": content.title,
        "description": content.description,
        "source": SOURCE,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "attachments": [
            {
                "filename": attachment.filename,
                "content": attachment.to_base64(),
                "mimeType": attachment.mime_type,
            }
            for attachment in attachments
        ],
    }


class WebhookExporter(ExportStrategy):
    """Exports slides as a single JSON POST with inlined attachments."""

    display_name = "Webhook"
    required_fields = ("webhook_url",)
    inline_attachments = True
    destination_field = "webhook_url"
    include_footer = False

    @property
    def platform(self) -> str:
        return Platform.WEBHOOK.value

    def check_config(self, config: IntegrationConfig) -> None:
        super().check_config(config)
        if not validate_webhook_url(config.webhook_url):
            raise ValidationError(
                f"Webhook URL '{config.webhook_url}' is not a valid http(s) URL.",
                platform=self.platform,
            )

    def extract_destination(self, raw: Optional[str]) -> Optional[str]:
        value = (raw or "").strip()
        return value if validate_webhook_url(value) else None

    async def create_parent(
        self,
        ctx: ExporterContext,
        content: FormattedContent,
        attachments: Optional[list[Attachment]] = None,
    ) -> CreatedResource:
        response = await self.request(
            ctx,
            ctx.destination_id,
            RequestSpec(method="POST", json=build_payload(content, attachments or [])),
        )

        # Many receivers answer with plain text ("ok", "Accepted")
        try:
            data = response.json()
        except ValueError:
            data = {"status": "ok"}

        logger.info(f"{self.log_tag} Delivered '{content.title}' with {len(attachments or [])} attachments")
        external_id = str(data.get("id", "")) if isinstance(data, dict) else ""
        return CreatedResource(external_id=external_id, metadata={"response": data})
