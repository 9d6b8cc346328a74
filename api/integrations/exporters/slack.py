"""
Slack Exporter

Delivers bug reports to a Slack channel via the Web API.

- single / batch_attachment: one message, screenshots uploaded into its thread
- threaded: a session header message, then one reply per slide under the
  header's ts, each reply followed by its screenshot in the same thread

Slack reports most failures inside HTTP 200 bodies ({"ok": false, "error"}),
so every call is checked with _check() in addition to the HTTP status.

Files use the external upload flow:
    files.getUploadURLExternal -> POST bytes -> files.completeUploadExternal
"""

import re
import logging
from typing import Any, Optional

from integrations.core.errors import AuthenticationError, PlatformAPIError, QuotaExceeded, ValidationError
from integrations.core.transport import RequestSpec
from integrations.core.types import ExportMode, Platform
from integrations.discovery import DISCOVERY_TIMEOUT_SECONDS
from services.media import Attachment
from services.platform_output import FormattedContent, to_slack_mrkdwn
from .base import ExportStrategy, ExporterContext, CreatedResource

logger = logging.getLogger(__name__)

SLACK_API_BASE = "https://slack.com/api"

AUTH_ERRORS = {"invalid_auth", "not_authed", "token_revoked", "token_expired", "account_inactive"}
QUOTA_ERRORS = {"ratelimited", "rate_limited"}

# chat.postMessage also takes a channel name ("#bugs" or "bugs")
CHANNEL_NAME_RE = re.compile(r"^#?([a-z0-9][a-z0-9._-]{0,79})$")


def archive_url(channel: str, ts: str) -> str:
    return f"https://slack.com/archives/{channel}/p{ts.replace('.', '')}"


class SlackExporter(ExportStrategy):
    """
    Exports slides to Slack.

    Supports:
    - Posting to channels (public and private) the bot was invited to
    - Threading (session header + one reply per slide)
    - Screenshot uploads into the message thread
    """

    display_name = "Slack"
    required_fields = ("slack_token",)
    supported_modes = (ExportMode.SINGLE, ExportMode.BATCH_ATTACHMENT, ExportMode.THREADED)
    destination_field = "slack_channel"
    include_footer = False

    @property
    def platform(self) -> str:
        return Platform.SLACK.value

    def _headers(self, ctx: ExporterContext) -> dict[str, str]:
        return {"Authorization": f"Bearer {ctx.config.slack_token}"}

    def extract_destination(self, raw: Optional[str]) -> Optional[str]:
        """Channel id or link, else a channel name as "#name"."""
        channel_id = super().extract_destination(raw)
        if channel_id:
            return channel_id
        match = CHANNEL_NAME_RE.match((raw or "").strip())
        return f"#{match.group(1)}" if match else None

    def _check(self, data: Any, channel: Optional[str] = None) -> dict[str, Any]:
        """Raise for an {"ok": false} body."""
        if not isinstance(data, dict):
            raise PlatformAPIError("Unexpected Slack response", platform=self.platform)
        if data.get("ok"):
            return data

        error = data.get("error", "unknown_error")
        logger.error(f"{self.log_tag} API error: {error}")

        if error == "not_in_channel":
            raise ValidationError(
                f"Bot is not in the channel. Please type /invite @BugSnap in channel {channel}",
                platform=self.platform,
            )
        if error == "channel_not_found":
            raise ValidationError(
                f"Channel '{channel}' not found or bot not added",
                platform=self.platform,
            )
        if error in AUTH_ERRORS:
            raise AuthenticationError(f"Slack rejected the token ({error})", platform=self.platform)
        if error in QUOTA_ERRORS:
            raise QuotaExceeded("Slack rate limit reached. Try again in a minute.", platform=self.platform)
        raise PlatformAPIError(f"Slack API error: {error}", platform=self.platform)

    async def _call(
        self,
        ctx: ExporterContext,
        method: str,
        spec: RequestSpec,
        channel: Optional[str] = None,
    ) -> dict[str, Any]:
        data = await self.request_json(ctx, f"{SLACK_API_BASE}/{method}", spec)
        return self._check(data, channel)

    async def check_access(self, ctx: ExporterContext) -> None:
        await self._call(
            ctx,
            "auth.test",
            RequestSpec(method="POST", headers=self._headers(ctx), timeout=DISCOVERY_TIMEOUT_SECONDS),
        )

    # =========================================================================
    # Messages
    # =========================================================================

    async def _post_message(self, ctx: ExporterContext, text: str, thread_ts: Optional[str] = None) -> str:
        channel = ctx.destination_id
        payload: dict[str, Any] = {"channel": channel, "text": text, "link_names": True}
        if thread_ts:
            payload["thread_ts"] = thread_ts

        data = await self._call(
            ctx,
            "chat.postMessage",
            RequestSpec(method="POST", headers=self._headers(ctx), json=payload),
            channel=channel,
        )

        # A channel name resolves to its id on the first post; uploads and links need the id
        channel_id = data.get("channel")
        if channel_id and channel_id != channel:
            logger.info(f"{self.log_tag} Channel {channel} resolved to {channel_id}")
            ctx.destination_id = channel_id
        return data["ts"]

    async def create_parent(
        self,
        ctx: ExporterContext,
        content: FormattedContent,
        attachments: Optional[list[Attachment]] = None,
    ) -> CreatedResource:
        ts = await self._post_message(ctx, to_slack_mrkdwn(content.blocks))
        logger.info(f"{self.log_tag} Posted to {ctx.destination_id}, ts={ts}")
        return CreatedResource(
            external_id=ts,
            url=archive_url(ctx.destination_id, ts),
            thread_token=ts,
        )

    async def post_reply(self, ctx: ExporterContext, parent: CreatedResource, content: FormattedContent) -> CreatedResource:
        ts = await self._post_message(ctx, to_slack_mrkdwn(content.blocks), thread_ts=parent.thread_token)
        logger.info(f"{self.log_tag} Replied in thread {parent.thread_token}, ts={ts}")
        return CreatedResource(
            external_id=ts,
            url=archive_url(ctx.destination_id, ts),
            thread_token=parent.thread_token,
        )

    # =========================================================================
    # Files
    # =========================================================================

    async def upload_attachment(self, ctx: ExporterContext, target: CreatedResource, attachment: Attachment) -> None:
        channel = ctx.destination_id

        ticket = await self._call(
            ctx,
            "files.getUploadURLExternal",
            RequestSpec(
                method="POST",
                headers=self._headers(ctx),
                data={"filename": attachment.filename, "length": str(len(attachment.content))},
            ),
            channel=channel,
        )

        await self.request(
            ctx,
            ticket["upload_url"],
            RequestSpec(
                method="POST",
                files={"file": (attachment.filename, attachment.content, attachment.mime_type)},
            ),
        )

        completion: dict[str, Any] = {
            "files": [{"id": ticket["file_id"], "title": attachment.filename}],
            "channel_id": channel,
        }
        if target.thread_token:
            completion["thread_ts"] = target.thread_token

        await self._call(
            ctx,
            "files.completeUploadExternal",
            RequestSpec(method="POST", headers=self._headers(ctx), json=completion),
            channel=channel,
        )
        logger.info(f"{self.log_tag} Uploaded {attachment.filename} to thread {target.thread_token}")
