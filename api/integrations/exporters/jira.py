"""
Jira Exporter

Creates Jira Cloud issues through REST API v3 and uploads slide
screenshots as issue attachments. Descriptions are sent as Atlassian
Document Format, which v3 requires.

Auth: Basic (email:API token).
"""

import base64
import logging
from typing import Any, Optional

from integrations.core.errors import ValidationError
from integrations.core.transport import RequestSpec
from integrations.core.types import Platform
from integrations.discovery import (
    DISCOVERY_TIMEOUT_SECONDS,
    DiscoveryReport,
    fetch_branch,
    fetch_root,
)
from services.media import Attachment
from services.platform_output import FormattedContent, to_adf
from .base import ExportStrategy, ExporterContext, CreatedResource

logger = logging.getLogger(__name__)

PAGE_SIZE = 50
# Upper bound on project search pages (PAGE_SIZE * MAX_PAGES projects)
MAX_PAGES = 20
DEFAULT_CATEGORY = "Projects"
PREFERRED_ISSUE_TYPE = "bug"


class JiraExporter(ExportStrategy):
    """Exports slides to a Jira project as issues with attachments."""

    display_name = "Jira"
    required_fields = ("jira_url", "jira_email", "jira_token")
    supports_discovery = True
    destination_field = "jira_project_id"

    @property
    def platform(self) -> str:
        return Platform.JIRA.value

    def _headers(self, ctx: ExporterContext) -> dict[str, str]:
        credentials = f"{ctx.config.jira_email}:{ctx.config.jira_token}"
        return {
            "Authorization": f"Basic {base64.b64encode(credentials.encode()).decode()}",
            "Accept": "application/json",
            "X-Atlassian-Token": "no-check",
        }

    def _url(self, ctx: ExporterContext, path: str) -> str:
        return f"{ctx.config.jira_url}/rest/api/3{path}"

    async def _get(self, ctx: ExporterContext, path: str, params: Optional[dict] = None) -> Any:
        return await self.request_json(
            ctx,
            self._url(ctx, path),
            RequestSpec(headers=self._headers(ctx), params=params, timeout=DISCOVERY_TIMEOUT_SECONDS),
        )

    async def check_access(self, ctx: ExporterContext) -> None:
        await self._get(ctx, "/myself")

    # =========================================================================
    # Discovery
    # =========================================================================

    async def discover(self, ctx: ExporterContext) -> DiscoveryReport:
        """Paginated project search, grouped by project category."""
        report = DiscoveryReport(platform=self.platform)

        page = await fetch_root(
            "Jira projects",
            self._get(ctx, "/project/search", {"startAt": 0, "maxResults": PAGE_SIZE}),
            platform=self.platform,
        )

        for page_number in range(1, MAX_PAGES + 1):
            values = page.get("values", [])
            for project in values:
                category = (project.get("projectCategory") or {}).get("name") or DEFAULT_CATEGORY
                report.add_all([project], category, id_key="key")

            if page.get("isLast", True) or not values or page_number == MAX_PAGES:
                break

            start_at = page.get("startAt", 0) + len(values)
            branch = await fetch_branch(
                f"projects from {start_at}",
                self._get(ctx, "/project/search", {"startAt": start_at, "maxResults": PAGE_SIZE}),
            )
            if not branch.ok:
                report.skip(branch)
                break
            page = branch.value

        logger.info(f"[DISCOVERY] Jira: {len(report.resources)} projects")
        return report

    # =========================================================================
    # Submission
    # =========================================================================

    def _project_ref(self, destination_id: str) -> dict[str, str]:
        return {"id": destination_id} if destination_id.isdigit() else {"key": destination_id}

    async def _resolve_issue_type(self, ctx: ExporterContext) -> str:
        """Configured issue type, else "Bug", else the first non-subtask type."""
        if ctx.config.jira_issue_type_id:
            return ctx.config.jira_issue_type_id

        project = await self._get(ctx, f"/project/{ctx.destination_id}")
        candidates = [t for t in project.get("issueTypes", []) if not t.get("subtask")]
        if not candidates:
            raise ValidationError(
                f"Project {ctx.destination_id} has no issue types that can be created.",
                platform=self.platform,
            )

        for issue_type in candidates:
            if issue_type.get("name", "").lower() == PREFERRED_ISSUE_TYPE:
                return str(issue_type["id"])
        return str(candidates[0]["id"])

    async def create_parent(
        self,
        ctx: ExporterContext,
        content: FormattedContent,
        attachments: Optional[list[Attachment]] = None,
    ) -> CreatedResource:
        issue_type_id = await self._resolve_issue_type(ctx)

        payload = {
            "fields": {
                "project": self._project_ref(ctx.destination_id),
                "summary": content.title,
                "issuetype": {"id": issue_type_id},
                "description": to_adf(content.blocks),
            }
        }

        data = await self.request_json(
            ctx,
            self._url(ctx, "/issue"),
            RequestSpec(method="POST", headers=self._headers(ctx), json=payload),
        )

        key = data["key"]
        logger.info(f"{self.log_tag} Created issue {key}")
        return CreatedResource(
            external_id=key,
            url=f"{ctx.config.jira_url}/browse/{key}",
            metadata={"id": data.get("id")},
        )

    async def upload_attachment(self, ctx: ExporterContext, target: CreatedResource, attachment: Attachment) -> None:
        await self.request(
            ctx,
            self._url(ctx, f"/issue/{target.external_id}/attachments"),
            RequestSpec(
                method="POST",
                headers=self._headers(ctx),
                files={"file": (attachment.filename, attachment.content, attachment.mime_type)},
            ),
        )
        logger.info(f"{self.log_tag} Uploaded {attachment.filename} to {target.external_id}")
