"""
Export Routes

Endpoints:
- POST /exports - Run one export job, returns {success, destinationUrl} or {success: false, errorKind, message}
- POST /exports/draft - AI-drafted, editable title and description
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from integrations.core.types import ExportMode, Slide
from integrations.orchestrator import ExportOrchestrator, ExportRequest
from services.drafting import draft_report

logger = logging.getLogger(__name__)

router = APIRouter()


def get_orchestrator() -> ExportOrchestrator:
    """Orchestrator wired to the process-wide config, media store and transport."""
    return ExportOrchestrator()


class DraftRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    slides: list[Slide]
    mode: ExportMode = ExportMode.SINGLE


class DraftResponse(BaseModel):
    title: str
    description: str


@router.post("/exports")
async def run_export(
    request: ExportRequest,
    orchestrator: ExportOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """
    Export slides to a platform.

    Always answers 200: success and failure are both reported in the body,
    so the client can render the error kind (and activation link) itself.
    """
    result = await orchestrator.export(request)
    return result.to_dict()


@router.post("/exports/draft")
async def draft_export(request: DraftRequest) -> DraftResponse:
    draft = await draft_report(request.slides, request.mode)
    return DraftResponse(**draft)
