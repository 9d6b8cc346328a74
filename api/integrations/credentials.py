"""
Credential normalization and destination ID extraction.

Everything here is pure: no network. Normalization runs before a config is
validated or saved; extraction turns a pasted link or raw identifier into the
canonical ID a platform API expects.

Usage:
    from integrations.credentials import normalize_config, extract_destination_id

    config = normalize_config(config)
    list_id = extract_destination_id("clickup", "https://app.clickup.com/123/v/li/901")
"""

import re
import logging
from typing import Any, Optional
from urllib.parse import urlparse

from integrations.core.types import IntegrationConfig

logger = logging.getLogger(__name__)


# =============================================================================
# Extraction Patterns
# =============================================================================

# id_pattern: fast path, the input already is a canonical ID
# url_patterns: tried in order against a pasted link; group 1 is the ID
DESTINATION_PATTERNS: dict[str, dict[str, Any]] = {
    "clickup": {
        "id_pattern": r"^\d+$",
        "url_patterns": [
            r"/li/(\d+)",
            r"/l/(\d+)",
        ],
        "error_hint": "Paste a ClickUp list link (…/li/901234) or the numeric list ID.",
    },
    "slack": {
        "id_pattern": r"^[CDG][A-Z0-9]{8,15}$",
        "url_patterns": [
            r"/archives/([CDG][A-Z0-9]{8,15})(?:/|$)",
            r"/client/T[A-Z0-9]+/([CDG][A-Z0-9]{8,15})(?:/|$)",
        ],
        "error_hint": "Use a channel ID (C0123ABC456), a channel link from 'Copy link' or a channel name (#bugs).",
    },
    "jira": {
        "id_pattern": r"^(?:[A-Z][A-Z0-9_]+|\d+)$",
        "url_patterns": [
            r"/projects/([A-Z][A-Z0-9_]+)(?:/|$|\?)",
            r"/browse/([A-Z][A-Z0-9_]+)-\d+",
            r"[?&]project(?:Key)?=([A-Z][A-Z0-9_]+)",
        ],
        "error_hint": "Use a project key (e.g. BUG) or a link to the project board.",
    },
    "asana": {
        "id_pattern": r"^\d+$",
        "url_patterns": [
            r"/project/(\d+)(?:/|$)",
            r"app\.asana\.com/0/(\d+)(?:/|$)",
        ],
        "error_hint": "Paste an Asana project link or the numeric project ID.",
    },
    "trello": {
        "id_pattern": r"^[0-9a-f]{24}$",
        "url_patterns": [
            r"[?&]idList=([0-9a-f]{24})",
            r"/lists/([0-9a-f]{24})(?:/|$)",
        ],
        "error_hint": "Use the 24-character Trello list ID.",
    },
    "zoho_sprints": {
        "id_pattern": r"^\d+$",
        "url_patterns": [
            r"/project/(\d+)(?:/|$|#)",
            r"/projects/(\d+)(?:/|$)",
        ],
        "error_hint": "Paste a Zoho Sprints project link or the numeric project ID.",
    },
}


def extract_destination_id(platform: str, raw: Optional[str]) -> Optional[str]:
    """
    Extract a canonical destination ID for a platform.

    Returns None (not an exception) when the input matches neither the ID
    shape nor a known URL shape, so the caller can show a validation message.
    Idempotent: a canonical ID maps to itself.
    """
    if not raw:
        return None

    patterns = DESTINATION_PATTERNS.get(platform)
    if not patterns:
        return None

    value = raw.strip()
    if re.match(patterns["id_pattern"], value):
        return value

    for pattern in patterns["url_patterns"]:
        match = re.search(pattern, value)
        if match:
            return match.group(1)

    return None


def extract_list_id(raw: Optional[str]) -> Optional[str]:
    """ClickUp list ID from a list link or a raw ID."""
    return extract_destination_id("clickup", raw)


def extract_channel_id(raw: Optional[str]) -> Optional[str]:
    """Slack channel ID from a channel link or a raw ID."""
    return extract_destination_id("slack", raw)


def extract_project_key(raw: Optional[str]) -> Optional[str]:
    """Jira project key (or numeric ID) from a project/issue link or a raw key."""
    return extract_destination_id("jira", raw)


def destination_error_hint(platform: str) -> str:
    patterns = DESTINATION_PATTERNS.get(platform, {})
    return patterns.get("error_hint", "Check the destination ID or link.")


# =============================================================================
# URL Normalization
# =============================================================================

# Near-miss domain suffixes: a user typing "acme.atlassian" means "acme.atlassian.net"
DOMAIN_SUFFIX_FIXES = {
    ".atlassian": ".atlassian.net",
}


def normalize_base_url(url: Optional[str]) -> Optional[str]:
    """
    Normalize a user-entered site URL to scheme://host.

    - Adds https:// when no scheme is present
    - Completes a known near-miss domain suffix
    - Drops path, query and trailing slash
    """
    if not url:
        return None

    value = url.strip()
    if not value:
        return None

    if not re.match(r"^https?://", value, re.IGNORECASE):
        value = "https://" + value

    parsed = urlparse(value)
    host = parsed.hostname or ""
    if not host:
        return value.rstrip("/")

    for near_miss, suffix in DOMAIN_SUFFIX_FIXES.items():
        if host.endswith(near_miss):
            host = host[: -len(near_miss)] + suffix

    port = f":{parsed.port}" if parsed.port else ""
    return f"{parsed.scheme.lower()}://{host}{port}"


def is_http_url(url: Optional[str]) -> bool:
    """True for an absolute http(s) URL with a host."""
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


# Incoming webhook hosts: legacy connectors and the newer Workflows endpoints
TEAMS_WEBHOOK_HOSTS = (
    "webhook.office.com",
    "outlook.office.com",
    "logic.azure.com",
    "api.powerplatform.com",
)


def validate_webhook_url(url: Optional[str]) -> bool:
    return is_http_url(url)


def validate_teams_webhook_url(url: Optional[str]) -> bool:
    if not is_http_url(url) or not url.startswith("https://"):
        return False
    host = urlparse(url).hostname or ""
    return any(host == h or host.endswith("." + h) for h in TEAMS_WEBHOOK_HOSTS)


# =============================================================================
# Config Normalization
# =============================================================================

def normalize_config(config: IntegrationConfig) -> IntegrationConfig:
    """
    Return a normalized copy of the config.

    Trims every string field (blank becomes None), normalizes the Jira site
    URL and the Zoho data-center suffix.
    """
    updates: dict[str, Any] = {}

    for name, value in config.model_dump().items():
        if isinstance(value, str):
            trimmed = value.strip()
            updates[name] = trimmed or None

    if updates.get("jira_url"):
        updates["jira_url"] = normalize_base_url(updates["jira_url"])

    if updates.get("zoho_sprints_dc"):
        updates["zoho_sprints_dc"] = updates["zoho_sprints_dc"].lower().lstrip(".")

    return config.model_copy(update=updates)
