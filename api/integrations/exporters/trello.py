"""
Trello Exporter

Creates Trello cards in a list and attaches slide screenshots.

Auth: API key + token, passed as query parameters on every call.
"""

import logging
from typing import Any, Optional

from integrations.core.transport import RequestSpec
from integrations.core.types import Platform
from integrations.discovery import (
    DISCOVERY_TIMEOUT_SECONDS,
    DiscoveryReport,
    fetch_root,
    gather_branches,
)
from services.media import Attachment
from services.platform_output import FormattedContent
from .base import ExportStrategy, ExporterContext, CreatedResource

logger = logging.getLogger(__name__)

TRELLO_API_BASE = "https://api.trello.com/1"


class TrelloExporter(ExportStrategy):
    """Exports slides to a Trello list as cards with attachments."""

    display_name = "Trello"
    required_fields = ("trello_api_key", "trello_token")
    supports_discovery = True
    destination_field = "trello_list_id"
    destination_name_field = "trello_list_name"

    @property
    def platform(self) -> str:
        return Platform.TRELLO.value

    def _auth(self, ctx: ExporterContext, **params: Any) -> dict[str, Any]:
        return {"key": ctx.config.trello_api_key, "token": ctx.config.trello_token, **params}

    async def _get(self, ctx: ExporterContext, path: str, **params: Any) -> Any:
        return await self.request_json(
            ctx,
            f"{TRELLO_API_BASE}{path}",
            RequestSpec(params=self._auth(ctx, **params), timeout=DISCOVERY_TIMEOUT_SECONDS),
        )

    async def check_access(self, ctx: ExporterContext) -> None:
        await self._get(ctx, "/members/me", fields="id")

    async def discover(self, ctx: ExporterContext) -> DiscoveryReport:
        """boards -> lists"""
        report = DiscoveryReport(platform=self.platform)
        boards = await fetch_root(
            "Trello boards",
            self._get(ctx, "/members/me/boards", filter="open", fields="name,url"),
            platform=self.platform,
        )

        branches = await gather_branches([
            (board.get("name") or board["id"], self._get(ctx, f"/boards/{board['id']}/lists", filter="open", fields="name"))
            for board in boards
            if board.get("id")
        ])

        for branch in branches:
            if not branch.ok:
                report.skip(branch)
                continue
            report.add_all(branch.value, branch.label)

        logger.info(f"[DISCOVERY] Trello: {len(report.resources)} lists")
        return report

    async def create_parent(
        self,
        ctx: ExporterContext,
        content: FormattedContent,
        attachments: Optional[list[Attachment]] = None,
    ) -> CreatedResource:
        card = await self.request_json(
            ctx,
            f"{TRELLO_API_BASE}/cards",
            RequestSpec(
                method="POST",
                params=self._auth(ctx, idList=ctx.destination_id),
                json={"name": content.title, "desc": content.description},
            ),
        )

        logger.info(f"{self.log_tag} Created card {card['id']} in list {ctx.destination_id}")
        return CreatedResource(external_id=card["id"], url=card.get("shortUrl") or card.get("url"))

    async def upload_attachment(self, ctx: ExporterContext, target: CreatedResource, attachment: Attachment) -> None:
        await self.request(
            ctx,
            f"{TRELLO_API_BASE}/cards/{target.external_id}/attachments",
            RequestSpec(
                method="POST",
                params=self._auth(ctx),
                files={"file": (attachment.filename, attachment.content, attachment.mime_type)},
            ),
        )
        logger.info(f"{self.log_tag} Uploaded {attachment.filename} to card {target.external_id}")
