"""
Export Orchestrator - drives one export job through its states.

    RESOLVE_DESTINATION -> FORMAT_CONTENT -> CREATE_PARENT -> UPLOAD_ATTACHMENTS
        -> [CREATE_CHILDREN | THREAD_REPLIES] -> COMPLETE

FAILED is reachable from any state and absorbs the job. States only move
forward; ExportJob.advance() refuses anything else.

Steps with a data dependency run strictly in order: the parent is created
before its attachments, children or replies, and replies are posted in slide
order. Content for each unit (parent, child, reply) is formatted right
before the call that creates it.

Nothing is retried and nothing already created is rolled back. When the
parent exists but some attachments/children/replies do not, the job still
completes and the result is marked partial (unless the platform's policy is
to fail on attachment errors).

Usage:
    orchestrator = ExportOrchestrator(config_provider, media_store)
    result = await orchestrator.export(ExportRequest(
        platform="clickup", mode="single", slides=[slide],
    ))
    result.to_dict()  # {"success": True, "destinationUrl": ...}
"""

import re
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from integrations.core.errors import ExportError, PartialFailure, ProxyActivationRequired, ValidationError
from integrations.core.transport import ProxyTransport, get_transport
from integrations.core.types import ExportMode, ExportResult, ExportStatus, Platform, Slide
from integrations.credentials import normalize_config
from integrations.exporters.base import CreatedResource, ExportStrategy, ExporterContext, FAIL
from integrations.exporters.registry import ExporterRegistry, get_exporter_registry
from services.config_store import ConfigProvider, get_config_provider
from services.media import Attachment, MediaStore, get_media_store
from services.platform_output import (
    FormattedContent,
    default_title,
    format_content,
    generate_batch_description,
    generate_slide_description,
    generate_thread_header,
)

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    RESOLVE_DESTINATION = "resolve_destination"
    FORMAT_CONTENT = "format_content"
    CREATE_PARENT = "create_parent"
    UPLOAD_ATTACHMENTS = "upload_attachments"
    CREATE_CHILDREN = "create_children"
    THREAD_REPLIES = "thread_replies"
    COMPLETE = "complete"
    FAILED = "failed"


# CREATE_CHILDREN and THREAD_REPLIES are alternatives and share a rank
_RANK = {
    JobState.RESOLVE_DESTINATION: 0,
    JobState.FORMAT_CONTENT: 1,
    JobState.CREATE_PARENT: 2,
    JobState.UPLOAD_ATTACHMENTS: 3,
    JobState.CREATE_CHILDREN: 4,
    JobState.THREAD_REPLIES: 4,
    JobState.COMPLETE: 5,
}

TERMINAL_STATES = (JobState.COMPLETE, JobState.FAILED)


class ExportRequest(BaseModel):
    """What the caller asks for: slides, a platform, a mode and optional overrides."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    platform: Platform
    mode: ExportMode = ExportMode.SINGLE
    slides: list[Slide]
    # Manual destination id or link; overrides the stored destination
    destination: Optional[str] = None
    # Edited (e.g. AI-drafted) title and description
    title: Optional[str] = None
    description: Optional[str] = None


@dataclass
class ExportJob:
    """State of one export invocation. Lives only for the duration of the call."""
    platform: str
    mode: ExportMode
    slides: list[Slide]
    destination_id: Optional[str] = None
    formatted_content: Optional[FormattedContent] = None
    parent: Optional[CreatedResource] = None
    state: JobState = JobState.RESOLVE_DESTINATION
    history: list[JobState] = field(default_factory=lambda: [JobState.RESOLVE_DESTINATION])

    def advance(self, state: JobState) -> None:
        """
        Move to a later state (or FAILED).

        Raises:
            ValueError: On a backward/repeated transition or out of a terminal state
        """
        if self.state in TERMINAL_STATES:
            raise ValueError(f"Job is already {self.state.value}")
        if state != JobState.FAILED and _RANK[state] <= _RANK[self.state]:
            raise ValueError(f"Cannot move from {self.state.value} back to {state.value}")

        self.state = state
        self.history.append(state)
        logger.info(f"[EXPORT] {self.platform}/{self.mode.value} -> {state.value}")


def _attachment_stem(slide: Slide, index: int) -> str:
    name = re.sub(r"[^A-Za-z0-9_-]+", "-", slide.name).strip("-")[:50]
    return f"bugsnap-{index:02d}-{name or 'slide'}"


class ExportOrchestrator:
    """
    Runs export jobs. Never raises: every outcome becomes an ExportResult.

    All collaborators are injected; defaults are the process-wide instances.
    """

    def __init__(
        self,
        config_provider: Optional[ConfigProvider] = None,
        media_store: Optional[MediaStore] = None,
        transport: Optional[ProxyTransport] = None,
        registry: Optional[ExporterRegistry] = None,
    ):
        self.config_provider = config_provider or get_config_provider()
        self.media_store = media_store or get_media_store()
        self.transport = transport or get_transport()
        self.registry = registry or get_exporter_registry()

    async def export(self, request: ExportRequest) -> ExportResult:
        job = ExportJob(platform=request.platform.value, mode=request.mode, slides=list(request.slides))
        logger.info(f"[EXPORT] Starting {job.platform}/{job.mode.value} export of {len(job.slides)} slides")

        try:
            return await self._run(job, request)
        except ProxyActivationRequired as e:
            return self._failed(job, e, activation_url=e.activation_url)
        except ExportError as e:
            return self._failed(job, e)
        except Exception as e:
            logger.exception(f"[EXPORT] Unexpected failure in {job.platform} export")
            return self._failed(job, ExportError(f"Unexpected error: {e}", platform=job.platform))

    # =========================================================================
    # Job steps
    # =========================================================================

    async def _run(self, job: ExportJob, request: ExportRequest) -> ExportResult:
        strategy = self.registry.get(job.platform)
        if strategy is None:
            raise ValidationError(f"Unsupported platform '{job.platform}'")
        self._check_request(strategy, job)

        # Nothing below this point may run before the config is complete
        config = normalize_config(self.config_provider.load())
        strategy.check_config(config)
        ctx = ExporterContext(config=config, transport=self.transport)

        ctx.destination_id = await strategy.resolve_destination(ctx, request.destination)
        job.destination_id = ctx.destination_id

        job.advance(JobState.FORMAT_CONTENT)
        job.formatted_content = self._parent_content(strategy, job, request)
        inline = None
        if strategy.inline_attachments:
            inline = [
                self.media_store.load(slide, _attachment_stem(slide, index))
                for index, slide in enumerate(job.slides, start=1)
            ]

        job.advance(JobState.CREATE_PARENT)
        job.parent = await strategy.create_parent(ctx, job.formatted_content, inline)

        failures: list[dict[str, Any]] = []

        job.advance(JobState.UPLOAD_ATTACHMENTS)
        if (
            job.mode in (ExportMode.SINGLE, ExportMode.BATCH_ATTACHMENT)
            and strategy.supports_attachments
            and not strategy.inline_attachments
        ):
            for index, slide in enumerate(job.slides, start=1):
                failure = await self._upload(strategy, ctx, job.parent, slide, index)
                if failure:
                    failures.append(failure)

        if job.mode == ExportMode.HIERARCHICAL:
            job.advance(JobState.CREATE_CHILDREN)
            for index, slide in enumerate(job.slides, start=1):
                failures.extend(await self._child(strategy, ctx, job.parent, slide, index))

        elif job.mode == ExportMode.THREADED:
            job.advance(JobState.THREAD_REPLIES)
            for index, slide in enumerate(job.slides, start=1):
                failures.extend(await self._reply(strategy, ctx, job.parent, slide, index))

        job.advance(JobState.COMPLETE)

        if failures:
            partial = PartialFailure(self._partial_message(strategy, failures, len(job.slides)), failures, job.platform)
            logger.warning(f"[EXPORT] {job.platform} export completed with {len(failures)} failures")
            return self._result(job, ExportStatus.PARTIAL, error_kind=partial.kind, message=partial.message, failures=failures)

        logger.info(f"[EXPORT] {job.platform} export complete: {job.parent.url or job.parent.external_id}")
        return self._result(job, ExportStatus.SUCCESS)

    def _check_request(self, strategy: ExportStrategy, job: ExportJob) -> None:
        if not job.slides:
            raise ValidationError("Select at least one slide to export.", platform=job.platform)
        if job.mode not in strategy.supported_modes:
            supported = ", ".join(m.value for m in strategy.supported_modes)
            raise ValidationError(
                f"{strategy.display_name} does not support {job.mode.value} exports (supported: {supported}).",
                platform=job.platform,
            )
        if job.mode == ExportMode.SINGLE and len(job.slides) != 1:
            raise ValidationError(
                f"Single export takes exactly one slide ({len(job.slides)} given). Use batch_attachment instead.",
                platform=job.platform,
            )

    async def _upload(
        self,
        strategy: ExportStrategy,
        ctx: ExporterContext,
        target: CreatedResource,
        slide: Slide,
        index: int,
    ) -> Optional[dict[str, Any]]:
        """Load and upload one slide's media. Returns a failure record, or None."""
        if not strategy.supports_attachments:
            return None

        attachment: Optional[Attachment] = None
        try:
            attachment = self.media_store.load(slide, _attachment_stem(slide, index))
            await strategy.upload_attachment(ctx, target, attachment)
            return None
        except ProxyActivationRequired:
            raise
        except ExportError as e:
            error = strategy.map_upload_error(e, attachment) if attachment else e
            if attachment and await self._recover(strategy, ctx, target, attachment, error):
                return None
            if strategy.attachment_failure_policy == FAIL:
                if error is e:
                    raise
                raise error from e
            logger.warning(f"[EXPORT] Attachment for slide {index} failed: {error}")
            return self._failure(slide, index, "attachment", error)

    async def _recover(
        self,
        strategy: ExportStrategy,
        ctx: ExporterContext,
        target: CreatedResource,
        attachment: Attachment,
        error: ExportError,
    ) -> Optional[str]:
        """Try the platform's backup storage. A failed backup leaves the original error in place."""
        try:
            return await strategy.recover_upload(ctx, target, attachment, error)
        except ProxyActivationRequired:
            raise
        except ExportError as e:
            logger.warning(f"[EXPORT] Backup of {attachment.filename} failed: {e}")
            return None

    async def _child(
        self,
        strategy: ExportStrategy,
        ctx: ExporterContext,
        parent: CreatedResource,
        slide: Slide,
        index: int,
    ) -> list[dict[str, Any]]:
        content = self._unit_content(strategy, slide, index)
        try:
            child = await strategy.create_child(ctx, parent, content)
        except ProxyActivationRequired:
            raise
        except ExportError as e:
            logger.warning(f"[EXPORT] Subtask for slide {index} failed: {e}")
            return [self._failure(slide, index, "child", e)]

        failure = await self._upload(strategy, ctx, child, slide, index)
        return [failure] if failure else []

    async def _reply(
        self,
        strategy: ExportStrategy,
        ctx: ExporterContext,
        parent: CreatedResource,
        slide: Slide,
        index: int,
    ) -> list[dict[str, Any]]:
        content = self._unit_content(strategy, slide, index)
        try:
            reply = await strategy.post_reply(ctx, parent, content)
        except ProxyActivationRequired:
            raise
        except ExportError as e:
            logger.warning(f"[EXPORT] Reply for slide {index} failed: {e}")
            return [self._failure(slide, index, "reply", e)]

        failure = await self._upload(strategy, ctx, reply, slide, index)
        return [failure] if failure else []

    # =========================================================================
    # Content
    # =========================================================================

    def _parent_content(self, strategy: ExportStrategy, job: ExportJob, request: ExportRequest) -> FormattedContent:
        if job.mode == ExportMode.SINGLE:
            title = request.title or default_title(job.slides, batch=False)
            description = request.description or generate_slide_description(job.slides[0])
        elif job.mode == ExportMode.THREADED:
            title = request.title or default_title(job.slides, batch=True)
            description = request.description or generate_thread_header(job.slides)
        else:
            title = request.title or default_title(job.slides, batch=True)
            description = request.description or generate_batch_description(job.slides)

        return format_content(
            title=title,
            description=description,
            title_prefix=strategy.title_prefix,
            include_footer=strategy.include_footer,
        )

    def _unit_content(self, strategy: ExportStrategy, slide: Slide, index: int) -> FormattedContent:
        return format_content(
            title=slide.name.strip() or f"Slide {index}",
            description=generate_slide_description(slide),
            title_prefix=strategy.title_prefix,
            include_footer=strategy.include_footer,
        )

    # =========================================================================
    # Results
    # =========================================================================

    @staticmethod
    def _failure(slide: Slide, index: int, step: str, error: ExportError) -> dict[str, Any]:
        return {
            "slideId": slide.id,
            "slideIndex": index,
            "step": step,
            "errorKind": error.kind,
            "message": error.message,
        }

    @staticmethod
    def _partial_message(strategy: ExportStrategy, failures: list[dict[str, Any]], total: int) -> str:
        messages = list(dict.fromkeys(f["message"] for f in failures))
        return (
            f"Exported to {strategy.display_name}, but {len(failures)} of {total} "
            f"slide items failed: {'; '.join(messages)}"
        )

    def _result(self, job: ExportJob, status: ExportStatus, **kwargs: Any) -> ExportResult:
        return ExportResult(
            status=status,
            platform=job.platform,
            external_id=job.parent.external_id if job.parent else None,
            destination_url=job.parent.url if job.parent else None,
            states=[s.value for s in job.history],
            **kwargs,
        )

    def _failed(self, job: ExportJob, error: ExportError, activation_url: Optional[str] = None) -> ExportResult:
        if job.state not in TERMINAL_STATES:
            job.advance(JobState.FAILED)
        logger.error(f"[EXPORT] {job.platform} export failed ({error.kind}): {error}")
        return self._result(
            job,
            ExportStatus.FAILED,
            error_kind=error.kind,
            message=str(error),
            activation_url=activation_url,
        )
