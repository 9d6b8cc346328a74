"""
Asana Exporter

Creates Asana tasks in a project (rich text via html_notes) and uploads
slide screenshots as task attachments.

Auth: personal access token (Bearer).
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
from services.platform_output import FormattedContent, to_asana_html
from .base import ExportStrategy, ExporterContext, CreatedResource

logger = logging.getLogger(__name__)

ASANA_API_BASE = "https://app.asana.com/api/1.0"


class AsanaExporter(ExportStrategy):
    """Exports slides to an Asana project as tasks with attachments."""

    display_name = "Asana"
    required_fields = ("asana_token",)
    supports_discovery = True
    destination_field = "asana_project_id"
    destination_name_field = "asana_project_name"

    @property
    def platform(self) -> str:
        return Platform.ASANA.value

    def _headers(self, ctx: ExporterContext) -> dict[str, str]:
        return {"Authorization": f"Bearer {ctx.config.asana_token}", "Accept": "application/json"}

    async def _get(self, ctx: ExporterContext, path: str, params: Optional[dict] = None) -> Any:
        data = await self.request_json(
            ctx,
            f"{ASANA_API_BASE}{path}",
            RequestSpec(headers=self._headers(ctx), params=params, timeout=DISCOVERY_TIMEOUT_SECONDS),
        )
        return data.get("data", [])

    async def check_access(self, ctx: ExporterContext) -> None:
        await self._get(ctx, "/users/me")

    async def discover(self, ctx: ExporterContext) -> DiscoveryReport:
        """workspace -> projects"""
        report = DiscoveryReport(platform=self.platform)
        workspaces = await fetch_root("Asana workspaces", self._get(ctx, "/workspaces"), platform=self.platform)

        branches = await gather_branches([
            (
                workspace.get("name") or workspace["gid"],
                self._get(ctx, f"/workspaces/{workspace['gid']}/projects", {"archived": "false"}),
            )
            for workspace in workspaces
            if workspace.get("gid")
        ])

        for branch in branches:
            if not branch.ok:
                report.skip(branch)
                continue
            report.add_all(branch.value, branch.label, id_key="gid")

        logger.info(f"[DISCOVERY] Asana: {len(report.resources)} projects")
        return report

    async def create_parent(
        self,
        ctx: ExporterContext,
        content: FormattedContent,
        attachments: Optional[list[Attachment]] = None,
    ) -> CreatedResource:
        payload = {
            "data": {
                "projects": [ctx.destination_id],
                "name": content.title,
                "html_notes": to_asana_html(content.blocks),
            }
        }

        data = await self.request_json(
            ctx,
            f"{ASANA_API_BASE}/tasks",
            RequestSpec(method="POST", headers=self._headers(ctx), json=payload),
        )
        task = data["data"]

        logger.info(f"{self.log_tag} Created task {task['gid']} in project {ctx.destination_id}")
        return CreatedResource(external_id=str(task["gid"]), url=task.get("permalink_url"))

    async def upload_attachment(self, ctx: ExporterContext, target: CreatedResource, attachment: Attachment) -> None:
        await self.request(
            ctx,
            f"{ASANA_API_BASE}/tasks/{target.external_id}/attachments",
            RequestSpec(
                method="POST",
                headers=self._headers(ctx),
                files={"file": (attachment.filename, attachment.content, attachment.mime_type)},
            ),
        )
        logger.info(f"{self.log_tag} Uploaded {attachment.filename} to task {target.external_id}")
