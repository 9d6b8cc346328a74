"""
AI drafting for bug reports.

Drafts an editable title (and cleaned-up annotation comments) with Claude.
The caller shows the draft to the user, who may edit it before exporting;
the edited title/description are passed back as ExportRequest overrides.

Drafting is optional. Without ANTHROPIC_API_KEY, or when the API call fails,
every function returns a deterministic fallback instead of raising.
"""

import os
import asyncio
import logging
from typing import Optional, Sequence

from anthropic import AsyncAnthropic, APIError

from integrations.core.types import ExportMode, Slide
from services.platform_output import (
    TITLE_MAX,
    COMMENT_MAX,
    default_title,
    generate_batch_description,
    generate_slide_description,
    generate_thread_header,
    truncate,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

TITLE_SYSTEM_PROMPT = """You write titles for bug reports filed from annotated screenshots.
Reply with the title only: one line, at most 80 characters, no quotes, no trailing period.
Name the broken behavior and where it happens."""

COMMENT_SYSTEM_PROMPT = """You rewrite a tester's note on a screenshot into a clear bug observation.
Keep every fact, add nothing. One or two sentences. Reply with the rewritten note only."""


def get_anthropic_client() -> AsyncAnthropic:
    """Get Anthropic client with API key from environment."""
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise ValueError("ANTHROPIC_API_KEY must be set")
    return AsyncAnthropic(api_key=api_key)


def is_enabled() -> bool:
    return bool(os.environ.get("ANTHROPIC_API_KEY"))


async def _complete(system: str, prompt: str, max_tokens: int = 200) -> str:
    client = get_anthropic_client()
    response = await client.messages.create(
        model=os.environ.get("BUGSNAP_DRAFT_MODEL", DEFAULT_MODEL),
        max_tokens=max_tokens,
        system=system,
        messages=[{"role": "user", "content": prompt}],
    )
    return "".join(block.text for block in response.content if block.type == "text").strip()


def _describe_slides(slides: Sequence[Slide]) -> str:
    lines = []
    for index, slide in enumerate(slides, start=1):
        lines.append(f"Slide {index}: {slide.name or 'Untitled'}")
        for annotation in slide.annotations:
            if annotation.comment.strip():
                lines.append(f"- {annotation.comment.strip()}")
    return "\n".join(lines)


def _clean_line(text: str) -> str:
    line = text.strip().splitlines()[0] if text.strip() else ""
    return line.strip().strip('"').strip("'").rstrip(".").strip()


async def draft_title(slides: Sequence[Slide]) -> str:
    """Suggested report title; falls back to the slide-based default."""
    batch = len(slides) > 1
    fallback = default_title(slides, batch=batch)

    if not slides or not is_enabled():
        return fallback

    try:
        title = _clean_line(await _complete(TITLE_SYSTEM_PROMPT, _describe_slides(slides)))
    except APIError as e:
        logger.warning(f"[DRAFTING] Title draft failed, using fallback: {e}")
        return fallback

    return truncate(title, TITLE_MAX) or fallback


async def refine_comment(text: str, context: Optional[str] = None) -> str:
    """Clearer wording for one annotation comment; unchanged on any failure."""
    if not text.strip() or not is_enabled():
        return text

    prompt = f"Screen: {context}\nNote: {text}" if context else f"Note: {text}"
    try:
        refined = await _complete(COMMENT_SYSTEM_PROMPT, prompt, max_tokens=300)
    except APIError as e:
        logger.warning(f"[DRAFTING] Comment refinement failed: {e}")
        return text

    return truncate(refined, COMMENT_MAX) or text


async def refine_slide(slide: Slide) -> Slide:
    """Copy of the slide with every annotation comment refined."""
    comments = await asyncio.gather(
        *(refine_comment(annotation.comment, slide.name or None) for annotation in slide.annotations)
    )
    annotations = [
        annotation.model_copy(update={"comment": comment})
        for annotation, comment in zip(slide.annotations, comments)
    ]
    return slide.model_copy(update={"annotations": annotations})


async def draft_report(slides: Sequence[Slide], mode: ExportMode) -> dict[str, str]:
    """
    Editable {title, description} for an export of these slides.

    Annotation comments are refined first, so the description is generated
    from the cleaned-up notes.
    """
    if is_enabled():
        slides = list(await asyncio.gather(*(refine_slide(slide) for slide in slides)))

    if mode == ExportMode.SINGLE and len(slides) == 1:
        description = generate_slide_description(slides[0])
    elif mode == ExportMode.THREADED:
        description = generate_thread_header(slides)
    else:
        description = generate_batch_description(slides)

    return {
        "title": await draft_title(slides),
        "description": description,
    }
