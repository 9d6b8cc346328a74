"""
Platform-Native Output - bug report content for each destination.

Generates the markdown body of a bug report from slide annotations, applies
the size caps destinations enforce, then renders the body into each
platform's native representation.

Rendering is a structural transform: the markdown is parsed once into a small
block list (heading / paragraph / list item) and every renderer walks that
list. No renderer rewrites markdown with string substitution.

Supported formats:
- Atlassian Document Format (Jira)
- HTML (Asana html_notes)
- Slack mrkdwn
- Adaptive Card body (Teams)
- Markdown (ClickUp, Trello, Zoho Sprints and webhook send the capped body as is)

Usage:
    from services.platform_output import format_content, generate_slide_description

    content = format_content(
        title=slide.name,
        description=generate_slide_description(slide),
        title_prefix="[BugSnap] ",
    )
    adf = to_adf(content.blocks)
"""

from __future__ import annotations

import html
import re
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Any, Sequence

from integrations.core.types import Slide

logger = logging.getLogger(__name__)

# Destinations reject oversized payloads with a 4xx; every platform shares these caps
TITLE_MAX = 180
DESCRIPTION_MAX = 5000
COMMENT_MAX = 500

ELLIPSIS = "..."
NO_COMMENT_PLACEHOLDER = "No comment provided"
NO_ANNOTATIONS_TEXT = "No annotations provided."
FOOTER_TEXT = "Reported via BugSnap"


def truncate(text: Optional[str], limit: int) -> str:
    """Truncate to at most `limit` characters, ellipsis included."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    if limit <= len(ELLIPSIS):
        return text[:limit]
    return text[: limit - len(ELLIPSIS)].rstrip() + ELLIPSIS


# =============================================================================
# Content Generation
# =============================================================================

def _format_offset(seconds: float) -> str:
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


def _annotation_lines(slide: Slide) -> list[str]:
    if not slide.annotations:
        return [NO_ANNOTATIONS_TEXT]

    lines = []
    for index, annotation in enumerate(slide.annotations, start=1):
        comment = " ".join(annotation.comment.split())
        text = f'"{truncate(comment, COMMENT_MAX)}"' if comment else NO_COMMENT_PLACEHOLDER
        if annotation.timestamp is not None:
            text += f" (at {_format_offset(annotation.timestamp)})"
        lines.append(f"{index}. {text}")
    return lines


def slide_heading(slide: Slide) -> str:
    return truncate(slide.name.strip(), TITLE_MAX) or "Untitled slide"


def generate_slide_description(slide: Slide) -> str:
    """Markdown body for a single slide: heading, one line per annotation, capture time."""
    lines = [f"## {slide_heading(slide)}", ""]
    lines.extend(_annotation_lines(slide))
    lines.append("")
    lines.append(f"Captured: {slide.created.strftime('%Y-%m-%d %H:%M UTC')}")
    return "\n".join(lines)


def generate_batch_description(slides: Sequence[Slide]) -> str:
    """Markdown body summarizing every slide of a batch, in slide order."""
    lines = ["# Bug Report Summary", "", f"Total slides: {len(slides)}", ""]
    for index, slide in enumerate(slides, start=1):
        lines.append(f"## Slide {index}: {slide_heading(slide)}")
        lines.extend(_annotation_lines(slide))
        lines.append("")
    return "\n".join(lines).rstrip()


def generate_thread_header(slides: Sequence[Slide], now: Optional[datetime] = None) -> str:
    """Opening message of a threaded export."""
    now = now or datetime.now(timezone.utc)
    count = len(slides)
    noun = "issue" if count == 1 else "issues"
    return f"# Bug Report Session - {now.strftime('%Y-%m-%d %H:%M UTC')}\n\nContains {count} {noun}."


def default_title(slides: Sequence[Slide], batch: bool, now: Optional[datetime] = None) -> str:
    if not batch and slides and slides[0].name.strip():
        return slides[0].name.strip()
    if not batch:
        return "Bug Report"
    now = now or datetime.now(timezone.utc)
    return f"Bug Report - {now.strftime('%Y-%m-%d %H:%M UTC')}"


# =============================================================================
# Block Parsing
# =============================================================================

class BlockKind(str, Enum):
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST_ITEM = "list_item"


@dataclass(frozen=True)
class Block:
    kind: BlockKind
    text: str
    level: int = 0
    # List item number; None for a bullet
    ordinal: Optional[int] = None


_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
_BULLET_RE = re.compile(r"^[-*•]\s+(.+)$")
_NUMBERED_RE = re.compile(r"^(\d+)[.)]\s+(.+)$")
_RULE_RE = re.compile(r"^(?:-{3,}|\*{3,}|_{3,})$")


def parse_blocks(markdown: str) -> list[Block]:
    """Parse markdown into a flat block list. Blank lines and rules are dropped."""
    blocks: list[Block] = []

    for raw_line in markdown.splitlines():
        line = raw_line.strip()
        if not line or _RULE_RE.match(line):
            continue

        match = _HEADING_RE.match(line)
        if match:
            blocks.append(Block(BlockKind.HEADING, match.group(2).strip(), level=len(match.group(1))))
            continue

        match = _NUMBERED_RE.match(line)
        if match:
            blocks.append(Block(BlockKind.LIST_ITEM, match.group(2).strip(), ordinal=int(match.group(1))))
            continue

        match = _BULLET_RE.match(line)
        if match:
            blocks.append(Block(BlockKind.LIST_ITEM, match.group(1).strip()))
            continue

        blocks.append(Block(BlockKind.PARAGRAPH, line))

    return blocks


def _group_lists(blocks: Sequence[Block]) -> list[Block | list[Block]]:
    """Group consecutive list items of the same kind (ordered / bullet) together."""
    grouped: list[Block | list[Block]] = []
    for block in blocks:
        if block.kind == BlockKind.LIST_ITEM:
            last = grouped[-1] if grouped else None
            if isinstance(last, list) and (last[0].ordinal is None) == (block.ordinal is None):
                last.append(block)
                continue
            grouped.append([block])
        else:
            grouped.append(block)
    return grouped


# =============================================================================
# Formatted Content
# =============================================================================

@dataclass
class FormattedContent:
    """Title and body for one target unit (parent, child or reply), caps applied."""
    title: str
    description: str
    blocks: list[Block] = field(default_factory=list)


def format_content(
    title: str,
    description: str,
    title_prefix: str = "",
    include_footer: bool = True,
) -> FormattedContent:
    """
    Apply caps and parse the body.

    The title prefix is added before the title cap; the footer is reserved
    inside the description cap so it survives truncation.
    """
    title = " ".join(title.split())
    if title_prefix and not title.startswith(title_prefix.strip()):
        title = title_prefix + title
    title = truncate(title, TITLE_MAX)

    body = description.strip()
    if include_footer:
        footer = f"\n\n{FOOTER_TEXT}"
        body = truncate(body, DESCRIPTION_MAX - len(footer)) + footer
    else:
        body = truncate(body, DESCRIPTION_MAX)

    return FormattedContent(title=title, description=body, blocks=parse_blocks(body))


# =============================================================================
# Renderers
# =============================================================================

def _adf_text(text: str) -> list[dict[str, Any]]:
    return [{"type": "text", "text": text}]


def to_adf(blocks: Sequence[Block]) -> dict[str, Any]:
    """Atlassian Document Format, required by Jira REST API v3 descriptions."""
    content: list[dict[str, Any]] = []

    for item in _group_lists(blocks):
        if isinstance(item, list):
            list_type = "bulletList" if item[0].ordinal is None else "orderedList"
            node: dict[str, Any] = {
                "type": list_type,
                "content": [
                    {"type": "listItem", "content": [{"type": "paragraph", "content": _adf_text(b.text)}]}
                    for b in item
                ],
            }
            if list_type == "orderedList":
                node["attrs"] = {"order": item[0].ordinal}
            content.append(node)
        elif item.kind == BlockKind.HEADING:
            content.append({
                "type": "heading",
                "attrs": {"level": min(item.level, 6)},
                "content": _adf_text(item.text),
            })
        else:
            content.append({"type": "paragraph", "content": _adf_text(item.text)})

    return {"type": "doc", "version": 1, "content": content}


def to_html(blocks: Sequence[Block], max_heading: int = 6, paragraph_tag: Optional[str] = "p") -> str:
    """
    HTML rendering.

    max_heading caps heading levels for targets with few heading tags;
    paragraph_tag=None emits paragraphs as bare lines.
    """
    parts: list[str] = []

    for item in _group_lists(blocks):
        if isinstance(item, list):
            tag = "ul" if item[0].ordinal is None else "ol"
            items = "".join(f"<li>{html.escape(b.text)}</li>" for b in item)
            parts.append(f"<{tag}>{items}</{tag}>")
        elif item.kind == BlockKind.HEADING:
            level = min(item.level, max_heading)
            parts.append(f"<h{level}>{html.escape(item.text)}</h{level}>")
        elif paragraph_tag:
            parts.append(f"<{paragraph_tag}>{html.escape(item.text)}</{paragraph_tag}>")
        else:
            parts.append(html.escape(item.text) + "\n")

    return "".join(parts)


def to_asana_html(blocks: Sequence[Block]) -> str:
    """Asana html_notes: wrapped in <body>, only h1/h2, no <p>."""
    return f"<body>{to_html(blocks, max_heading=2, paragraph_tag=None)}</body>"


def _slack_escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def to_slack_mrkdwn(blocks: Sequence[Block]) -> str:
    """Slack mrkdwn: headings become bold lines; lists keep their markers."""
    lines: list[str] = []
    previous: Optional[Block] = None

    for block in blocks:
        text = _slack_escape(block.text)
        if block.kind == BlockKind.HEADING:
            if lines:
                lines.append("")
            lines.append(f"*{text}*")
        elif block.kind == BlockKind.LIST_ITEM:
            marker = f"{block.ordinal}." if block.ordinal is not None else "•"
            lines.append(f"{marker} {text}")
        else:
            if previous is not None and previous.kind == BlockKind.LIST_ITEM:
                lines.append("")
            lines.append(text)
        previous = block

    return "\n".join(lines)


def to_adaptive_card_body(blocks: Sequence[Block]) -> list[dict[str, Any]]:
    """Adaptive Card TextBlocks; consecutive list items share one markdown TextBlock."""
    body: list[dict[str, Any]] = []

    for item in _group_lists(blocks):
        if isinstance(item, list):
            text = "\n".join(
                f"{b.ordinal}. {b.text}" if b.ordinal is not None else f"- {b.text}"
                for b in item
            )
            body.append({"type": "TextBlock", "text": text, "wrap": True})
        elif item.kind == BlockKind.HEADING:
            body.append({
                "type": "TextBlock",
                "text": item.text,
                "size": "Medium" if item.level <= 2 else "Default",
                "weight": "Bolder",
                "wrap": True,
            })
        else:
            body.append({"type": "TextBlock", "text": item.text, "wrap": True})

    return body


def to_markdown(blocks: Sequence[Block]) -> str:
    """
    Markdown passthrough, re-serialized one line per block.

    Never longer than the markdown the blocks were parsed from, so a body
    within DESCRIPTION_MAX stays within it.
    """
    lines: list[str] = []

    for block in blocks:
        if block.kind == BlockKind.HEADING:
            lines.append(f"{'#' * block.level} {block.text}")
        elif block.kind == BlockKind.LIST_ITEM:
            marker = f"{block.ordinal}." if block.ordinal is not None else "-"
            lines.append(f"{marker} {block.text}")
        else:
            lines.append(block.text)

    return "\n".join(lines)


# =============================================================================
# Unified Interface
# =============================================================================

RENDERERS = {
    "adf": to_adf,
    "html": to_html,
    "asana_html": to_asana_html,
    "slack": to_slack_mrkdwn,
    "adaptive_card": to_adaptive_card_body,
    "markdown": to_markdown,
}


def render(content: FormattedContent, output_format: str) -> Any:
    """
    Render formatted content into a named output format.

    Raises:
        ValueError: If the format is unknown
    """
    renderer = RENDERERS.get(output_format)
    if renderer is None:
        raise ValueError(f"Unknown output format '{output_format}'. Available: {list(RENDERERS)}")
    return renderer(content.blocks)
