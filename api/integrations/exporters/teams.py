"""
Microsoft Teams Exporter

Posts an Adaptive Card to a channel through an incoming webhook. Webhooks
cannot carry files, so slides are summarized in the card only.
"""

import logging
from typing import Any, Optional

from integrations.core.errors import ValidationError
from integrations.core.transport import RequestSpec
from integrations.core.types import IntegrationConfig, Platform
from integrations.credentials import validate_teams_webhook_url
from services.media import Attachment
from services.platform_output import FOOTER_TEXT, FormattedContent, to_adaptive_card_body
from .base import ExportStrategy, ExporterContext, CreatedResource

logger = logging.getLogger(__name__)

ADAPTIVE_CARD_SCHEMA = "http://adaptivecards.io/schemas/adaptive-card.json"
ADAPTIVE_CARD_VERSION = "1.2"


def build_card(content: FormattedContent) -> dict[str, Any]:
    """Incoming-webhook message wrapping one Adaptive Card."""
    body: list[dict[str, Any]] = [
        {
            "type": "TextBlock",
            "size": "Medium",
            "weight": "Bolder",
            "text": f"🐛 {content.title}",
            "wrap": True,
        }
    ]
    body.extend(to_adaptive_card_body(content.blocks))
    body.append({
        "type": "TextBlock",
        "text": FOOTER_TEXT,
        "size": "Small",
        "isSubtle": True,
        "spacing": "Large",
        "separator": True,
    })

    return {
        "type": "message",
        "attachments": [
            {
                "contentType": "application/vnd.microsoft.card.adaptive",
                "contentUrl": None,
                "content": {
                    "$schema": ADAPTIVE_CARD_SCHEMA,
                    "type": "AdaptiveCard",
                    "version": ADAPTIVE_CARD_VERSION,
                    "body": body,
                },
            }
        ],
    }


class TeamsExporter(ExportStrategy):
    """Exports slides to a Teams channel as a single Adaptive Card."""

    display_name = "Microsoft Teams"
    required_fields = ("teams_webhook_url",)
    supports_attachments = False
    destination_field = "teams_webhook_url"
    include_footer = False

    @property
    def platform(self) -> str:
        return Platform.TEAMS.value

    def check_config(self, config: IntegrationConfig) -> None:
        super().check_config(config)
        if not validate_teams_webhook_url(config.teams_webhook_url):
            raise ValidationError(
                "Teams webhook URL must be an https://…webhook.office.com (or Workflows) URL.",
                platform=self.platform,
            )

    def extract_destination(self, raw: Optional[str]) -> Optional[str]:
        value = (raw or "").strip()
        return value if validate_teams_webhook_url(value) else None

    async def create_parent(
        self,
        ctx: ExporterContext,
        content: FormattedContent,
        attachments: Optional[list[Attachment]] = None,
    ) -> CreatedResource:
        await self.request(
            ctx,
            ctx.destination_id,
            RequestSpec(method="POST", json=build_card(content)),
        )
        logger.info(f"{self.log_tag} Posted card '{content.title}'")
        return CreatedResource(external_id="")
