"""
Export Strategies

One strategy per destination platform, all behind the ExportStrategy
interface so the orchestrator never branches on the platform name.

Each strategy implements:
- validate_credentials(config, transport) → bool
- resolve_destination(ctx, requested) → destination id
- discover(ctx) → DiscoveryReport (hierarchical platforms)
- create_parent / upload_attachment / create_child / post_reply

Usage:
    from integrations.exporters import get_exporter_registry

    registry = get_exporter_registry()
    strategy = registry.get("clickup")
    parent = await strategy.create_parent(ctx, content)
"""

from .base import ExportStrategy, ExporterContext, CreatedResource
from .registry import ExporterRegistry, get_exporter_registry
from .clickup import ClickUpExporter
from .jira import JiraExporter
from .slack import SlackExporter
from .asana import AsanaExporter
from .trello import TrelloExporter
from .zoho_sprints import ZohoSprintsExporter
from .teams import TeamsExporter
from .webhook import WebhookExporter

__all__ = [
    "ExportStrategy",
    "ExporterContext",
    "CreatedResource",
    "ExporterRegistry",
    "get_exporter_registry",
    "ClickUpExporter",
    "JiraExporter",
    "SlackExporter",
    "AsanaExporter",
    "TrelloExporter",
    "ZohoSprintsExporter",
    "TeamsExporter",
    "WebhookExporter",
]
