"""
Zoho Sprints Exporter

Creates work items in a Zoho Sprints project and uploads screenshots as
item attachments. The API host depends on the account's data center
(sprintsapi.zoho.com, .eu, .in, .com.au, .jp).

Auth: OAuth access token ("Zoho-oauthtoken" scheme).

Zoho rejects the whole item when its attachments cannot be stored, so an
upload failure fails the job instead of degrading it.
"""

import logging
from typing import Any, Optional

from integrations.core.errors import PlatformAPIError, ValidationError
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
from .base import ExportStrategy, ExporterContext, CreatedResource, FAIL

logger = logging.getLogger(__name__)

DEFAULT_DC = "com"
PREFERRED_ITEM_TYPE = "bug"


def _as_list(data: Any, key: str) -> list[dict[str, Any]]:
    """Zoho returns either a bare list or an object wrapping one."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get(key) or []
    return []


class ZohoSprintsExporter(ExportStrategy):
    """Exports slides to Zoho Sprints as work items with attachments."""

    display_name = "Zoho Sprints"
    required_fields = ("zoho_sprints_token", "zoho_sprints_team_id")
    supports_discovery = True
    destination_field = "zoho_sprints_project_id"
    attachment_failure_policy = FAIL

    @property
    def platform(self) -> str:
        return Platform.ZOHO_SPRINTS.value

    def _base_url(self, ctx: ExporterContext) -> str:
        dc = ctx.config.zoho_sprints_dc or DEFAULT_DC
        return f"https://sprintsapi.zoho.{dc}/resourceapi/v1"

    def _headers(self, ctx: ExporterContext) -> dict[str, str]:
        return {"Authorization": f"Zoho-oauthtoken {ctx.config.zoho_sprints_token}"}

    def _project_path(self, ctx: ExporterContext) -> str:
        return f"/teams/{ctx.config.zoho_sprints_team_id}/projects/{ctx.destination_id}"

    async def _get(self, ctx: ExporterContext, path: str) -> Any:
        return await self.request_json(
            ctx,
            f"{self._base_url(ctx)}{path}",
            RequestSpec(headers=self._headers(ctx), timeout=DISCOVERY_TIMEOUT_SECONDS),
        )

    async def check_access(self, ctx: ExporterContext) -> None:
        await self._get(ctx, "/teams")

    async def discover(self, ctx: ExporterContext) -> DiscoveryReport:
        """teams -> projects"""
        report = DiscoveryReport(platform=self.platform)
        data = await fetch_root("Zoho Sprints teams", self._get(ctx, "/teams"), platform=self.platform)

        teams = _as_list(data, "teams")
        branches = await gather_branches([
            (team.get("name") or str(team["id"]), self._get(ctx, f"/teams/{team['id']}/projects"))
            for team in teams
            if team.get("id")
        ])

        for branch in branches:
            if not branch.ok:
                report.skip(branch)
                continue
            report.add_all(_as_list(branch.value, "projects"), branch.label)

        logger.info(f"[DISCOVERY] Zoho Sprints: {len(report.resources)} projects")
        return report

    async def _resolve_item_type(self, ctx: ExporterContext) -> str:
        """Configured item type, else "Bug", else the first type listed."""
        if ctx.config.zoho_sprints_item_type_id:
            return ctx.config.zoho_sprints_item_type_id

        types = _as_list(await self._get(ctx, f"{self._project_path(ctx)}/itemtypes"), "itemtypes")
        if not types:
            raise ValidationError(
                f"Project {ctx.destination_id} has no item types.",
                platform=self.platform,
            )
        for item_type in types:
            if str(item_type.get("name", "")).lower() == PREFERRED_ITEM_TYPE:
                return str(item_type["id"])
        return str(types[0]["id"])

    async def create_parent(
        self,
        ctx: ExporterContext,
        content: FormattedContent,
        attachments: Optional[list[Attachment]] = None,
    ) -> CreatedResource:
        item_type_id = await self._resolve_item_type(ctx)

        data = await self.request_json(
            ctx,
            f"{self._base_url(ctx)}{self._project_path(ctx)}/items",
            RequestSpec(
                method="POST",
                headers=self._headers(ctx),
                data={
                    "name": content.title,
                    "description": content.description,
                    "itemtypeId": item_type_id,
                },
            ),
        )

        # Bulk-style endpoint: may answer with a list of created items
        item = data[0] if isinstance(data, list) and data else data
        item_id = (item.get("id") or item.get("itemId")) if isinstance(item, dict) else None
        if not item_id:
            raise PlatformAPIError(
                "Zoho Sprints did not return the id of the created item.",
                platform=self.platform,
            )
        item_id = str(item_id)

        logger.info(f"{self.log_tag} Created item {item_id} in project {ctx.destination_id}")
        return CreatedResource(external_id=item_id, url=item.get("link"))

    async def upload_attachment(self, ctx: ExporterContext, target: CreatedResource, attachment: Attachment) -> None:
        await self.request(
            ctx,
            f"{self._base_url(ctx)}{self._project_path(ctx)}/items/{target.external_id}/attachments",
            RequestSpec(
                method="POST",
                headers=self._headers(ctx),
                files={"file": (attachment.filename, attachment.content, attachment.mime_type)},
            ),
        )
        logger.info(f"{self.log_tag} Uploaded {attachment.filename} to item {target.external_id}")
