"""
Exporter Registry

Central registry for all export strategies.
Provides a unified way to get a strategy by platform name.
"""

import logging
from typing import Optional

from .base import ExportStrategy

logger = logging.getLogger(__name__)


class ExporterRegistry:
    """
    Registry of all available export strategies.

    Usage:
        registry = ExporterRegistry()
        registry.register(ClickUpExporter())
        registry.register(SlackExporter())

        strategy = registry.get("slack")
        if strategy:
            parent = await strategy.create_parent(ctx, content)
    """

    def __init__(self):
        self._exporters: dict[str, ExportStrategy] = {}

    def register(self, exporter: ExportStrategy) -> None:
        platform = exporter.platform
        if platform in self._exporters:
            logger.warning(f"[EXPORTERS] Overwriting existing exporter for {platform}")
        self._exporters[platform] = exporter
        logger.debug(f"[EXPORTERS] Registered exporter for {platform}")

    def get(self, platform: str) -> Optional[ExportStrategy]:
        """
        Get a strategy by platform name.

        Args:
            platform: The platform identifier (e.g., "clickup", "jira")

        Returns:
            The strategy instance, or None if not found
        """
        return self._exporters.get(platform)

    def list_platforms(self) -> list[str]:
        return list(self._exporters.keys())


# Global registry instance
_registry: Optional[ExporterRegistry] = None


def get_exporter_registry() -> ExporterRegistry:
    """
    Get the global exporter registry.

    The registry is lazily initialized with all available strategies.
    """
    global _registry
    if _registry is None:
        _registry = ExporterRegistry()
        _initialize_default_exporters(_registry)
    return _registry


def _initialize_default_exporters(registry: ExporterRegistry) -> None:
    """
    Initialize the registry with default strategies.

    Called once when the registry is first accessed.
    """
    # Import here to avoid circular imports
    from .clickup import ClickUpExporter
    from .jira import JiraExporter
    from .slack import SlackExporter
    from .asana import AsanaExporter
    from .trello import TrelloExporter
    from .zoho_sprints import ZohoSprintsExporter
    from .teams import TeamsExporter
    from .webhook import WebhookExporter

    registry.register(ClickUpExporter())
    registry.register(JiraExporter())
    registry.register(SlackExporter())
    registry.register(AsanaExporter())
    registry.register(TrelloExporter())
    registry.register(ZohoSprintsExporter())
    registry.register(TeamsExporter())
    registry.register(WebhookExporter())

    logger.info(f"[EXPORTERS] Initialized registry with: {registry.list_platforms()}")
