"""
ClickUp Exporter

Creates ClickUp tasks in a list, uploads slide screenshots as task
attachments, and creates one subtask per slide in hierarchical mode.

Auth: personal API token sent verbatim in the Authorization header.

Hierarchy walked by discovery:
    team -> space -> (folders || folderless lists) -> folder lists

When the workspace storage is full and a Google Drive token is configured,
a rejected screenshot goes to Drive instead and the task description gets
a link to it.
"""

import logging
from typing import Any, Optional

import httpx

from integrations.core.errors import ExportError, QuotaExceeded
from integrations.core.google_drive import GoogleDriveClient
from integrations.core.transport import RequestSpec
from integrations.core.types import ExportMode, Platform
from integrations.discovery import (
    DISCOVERY_TIMEOUT_SECONDS,
    DiscoveryReport,
    fetch_root,
    gather_branches,
)
from services.media import Attachment
from services.platform_output import DESCRIPTION_MAX, FormattedContent, truncate
from .base import ExportStrategy, ExporterContext, CreatedResource

logger = logging.getLogger(__name__)

CLICKUP_API_BASE = "https://api.clickup.com/api/v2"
STORAGE_FULL_MARKER = "Over allocated storage"
STORAGE_FULL_MESSAGE = "ClickUp Workspace Storage Full."


class ClickUpExporter(ExportStrategy):
    """
    Exports slides to ClickUp.

    Supports:
    - single: one task, one attachment
    - batch_attachment: one task, one attachment per slide
    - hierarchical: a summary task with one subtask per slide
    """

    display_name = "ClickUp"
    required_fields = ("clickup_token",)
    supported_modes = (ExportMode.SINGLE, ExportMode.BATCH_ATTACHMENT, ExportMode.HIERARCHICAL)
    supports_discovery = True
    destination_field = "clickup_list_id"
    destination_name_field = "clickup_list_name"
    title_prefix = "[BugSnap] "

    @property
    def platform(self) -> str:
        return Platform.CLICKUP.value

    def _headers(self, ctx: ExporterContext) -> dict[str, str]:
        return {"Authorization": ctx.config.clickup_token}

    async def _get(self, ctx: ExporterContext, path: str, params: Optional[dict] = None) -> Any:
        return await self.request_json(
            ctx,
            f"{CLICKUP_API_BASE}{path}",
            RequestSpec(headers=self._headers(ctx), params=params, timeout=DISCOVERY_TIMEOUT_SECONDS),
        )

    async def check_access(self, ctx: ExporterContext) -> None:
        """/user first; some token roles can only read /team."""
        response = await ctx.transport.send(
            f"{CLICKUP_API_BASE}/user",
            RequestSpec(headers=self._headers(ctx), timeout=DISCOVERY_TIMEOUT_SECONDS),
        )
        if response.is_success:
            return
        await self._get(ctx, "/team")

    # =========================================================================
    # Discovery
    # =========================================================================

    async def discover(self, ctx: ExporterContext) -> DiscoveryReport:
        report = DiscoveryReport(platform=self.platform)
        root = await fetch_root("ClickUp teams", self._get(ctx, "/team"), platform=self.platform)

        teams = [team for team in root.get("teams", []) if team.get("id")]
        space_branches = await gather_branches([
            (f"team {team.get('name') or team['id']}", self._get(ctx, f"/team/{team['id']}/space", {"archived": "false"}))
            for team in teams
        ])

        spaces: list[dict[str, Any]] = []
        for branch in space_branches:
            if branch.ok:
                spaces.extend(space for space in branch.value.get("spaces", []) if space.get("id"))
            else:
                report.skip(branch)

        space_results = await gather_branches([
            (f"space {space.get('name') or space['id']}", self._walk_space(ctx, space, report))
            for space in spaces
        ])
        for branch in space_results:
            if not branch.ok:
                report.skip(branch)

        logger.info(
            f"[DISCOVERY] ClickUp: {len(report.resources)} lists, {len(report.skipped)} branches skipped"
        )
        return report

    async def _walk_space(self, ctx: ExporterContext, space: dict[str, Any], report: DiscoveryReport) -> None:
        space_name = space.get("name") or space["id"]
        params = {"archived": "false"}

        folders_branch, lists_branch = await gather_branches([
            (f"{space_name} folders", self._get(ctx, f"/space/{space['id']}/folder", params)),
            (f"{space_name} lists", self._get(ctx, f"/space/{space['id']}/list", params)),
        ])

        if lists_branch.ok:
            report.add_all(lists_branch.value.get("lists", []), space_name)
        else:
            report.skip(lists_branch)

        if not folders_branch.ok:
            report.skip(folders_branch)
            return

        folders = [folder for folder in folders_branch.value.get("folders", []) if folder.get("id")]
        folder_branches = await gather_branches([
            (f"{space_name} > {folder.get('name') or folder['id']}", self._get(ctx, f"/folder/{folder['id']}/list", params))
            for folder in folders
        ])
        for branch in folder_branches:
            if branch.ok:
                report.add_all(branch.value.get("lists", []), branch.label)
            else:
                report.skip(branch)

    # =========================================================================
    # Submission
    # =========================================================================

    async def _create_task(
        self,
        ctx: ExporterContext,
        content: FormattedContent,
        parent_id: Optional[str] = None,
    ) -> CreatedResource:
        payload: dict[str, Any] = {
            "name": content.title,
            "markdown_description": content.description,
            "tags": ["BugSnap"],
        }
        if parent_id:
            payload["parent"] = parent_id

        data = await self.request_json(
            ctx,
            f"{CLICKUP_API_BASE}/list/{ctx.destination_id}/task",
            RequestSpec(method="POST", headers=self._headers(ctx), json=payload),
        )

        task_id = str(data["id"])
        logger.info(f"{self.log_tag} Created task {task_id} in list {ctx.destination_id}")
        # Kept so a Drive backup link can be appended without re-reading the task
        return CreatedResource(external_id=task_id, url=data.get("url"), metadata={"description": content.description})

    async def create_parent(
        self,
        ctx: ExporterContext,
        content: FormattedContent,
        attachments: Optional[list[Attachment]] = None,
    ) -> CreatedResource:
        return await self._create_task(ctx, content)

    async def create_child(self, ctx: ExporterContext, parent: CreatedResource, content: FormattedContent) -> CreatedResource:
        return await self._create_task(ctx, content, parent_id=parent.external_id)

    async def upload_attachment(self, ctx: ExporterContext, target: CreatedResource, attachment: Attachment) -> None:
        await self.request(
            ctx,
            f"{CLICKUP_API_BASE}/task/{target.external_id}/attachment",
            RequestSpec(
                method="POST",
                headers=self._headers(ctx),
                files={"attachment": (attachment.filename, attachment.content, attachment.mime_type)},
            ),
        )
        logger.info(f"{self.log_tag} Uploaded {attachment.filename} to task {target.external_id}")

    def is_quota_error(self, response: httpx.Response, message: str) -> bool:
        return super().is_quota_error(response, message) or STORAGE_FULL_MARKER in message

    def map_upload_error(self, error: ExportError, attachment: Attachment) -> ExportError:
        if isinstance(error, QuotaExceeded) and STORAGE_FULL_MARKER in error.message:
            return QuotaExceeded(
                f"{STORAGE_FULL_MESSAGE} This file is {attachment.size_mb:.2f}MB. "
                "Please delete old files or upgrade plan.",
                platform=self.platform,
            )
        return error

    # =========================================================================
    # Drive backup
    # =========================================================================

    async def recover_upload(
        self,
        ctx: ExporterContext,
        target: CreatedResource,
        attachment: Attachment,
        error: ExportError,
    ) -> Optional[str]:
        if not isinstance(error, QuotaExceeded) or not error.message.startswith(STORAGE_FULL_MESSAGE):
            return None
        if not ctx.config.google_drive_token:
            return None

        drive_file = await GoogleDriveClient(ctx.transport).upload(
            ctx.config.google_drive_token,
            f"BugSnap_{attachment.filename}",
            attachment.content,
            attachment.mime_type,
        )

        link = f"\n\n**[Backup] Image:** [{attachment.filename}]({drive_file.web_view_link})"
        description = truncate(target.metadata.get("description", ""), DESCRIPTION_MAX - len(link)) + link
        await self.update_task_description(ctx, target.external_id, description)
        target.metadata["description"] = description

        logger.info(f"{self.log_tag} Storage full, linked Drive backup of {attachment.filename} on task {target.external_id}")
        return drive_file.web_view_link

    async def update_task_description(self, ctx: ExporterContext, task_id: str, description: str) -> None:
        await self.request(
            ctx,
            f"{CLICKUP_API_BASE}/task/{task_id}",
            RequestSpec(method="PUT", headers=self._headers(ctx), json={"markdown_content": description}),
        )
