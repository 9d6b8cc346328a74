"""
Integration type definitions.

Shared types for the export subsystem: the integration config record, slides
and their annotations, discovered destinations and the result of an export.
"""

from enum import Enum
from typing import Optional, Any
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Platform(str, Enum):
    """Supported export destinations."""
    CLICKUP = "clickup"
    JIRA = "jira"
    SLACK = "slack"
    ASANA = "asana"
    TRELLO = "trello"
    ZOHO_SPRINTS = "zoho_sprints"
    TEAMS = "teams"
    WEBHOOK = "webhook"


class ExportMode(str, Enum):
    """How a set of slides maps onto destination resources."""
    SINGLE = "single"
    BATCH_ATTACHMENT = "batch_attachment"
    HIERARCHICAL = "hierarchical"
    THREADED = "threaded"


class ExportStatus(str, Enum):
    """Status of an export operation."""
    PENDING = "pending"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class ShapeType(str, Enum):
    RECTANGLE = "RECTANGLE"
    CIRCLE = "CIRCLE"
    SELECT = "SELECT"


class Point(BaseModel):
    x: float
    y: float


# Fields whose camelCase alias does not follow to_camel() ("clickUpToken"
# rather than "clickupToken").
_CONFIG_ALIASES = {
    "clickup_token": "clickUpToken",
    "clickup_list_id": "clickUpListId",
    "clickup_list_name": "clickUpListName",
}


def _config_alias(name: str) -> str:
    return _CONFIG_ALIASES.get(name) or to_camel(name)


class IntegrationConfig(BaseModel):
    """
    Per-platform credential and destination fields.

    Frozen: normalization returns a new instance. Serialized with camelCase
    keys so the persisted record keeps the shape the settings UI writes.
    """
    model_config = ConfigDict(
        frozen=True,
        alias_generator=_config_alias,
        populate_by_name=True,
        extra="ignore",
    )

    jira_url: Optional[str] = None
    jira_email: Optional[str] = None
    jira_token: Optional[str] = None
    jira_project_id: Optional[str] = None
    jira_issue_type_id: Optional[str] = None

    clickup_token: Optional[str] = None
    clickup_list_id: Optional[str] = None
    clickup_list_name: Optional[str] = None

    slack_token: Optional[str] = None
    slack_channel: Optional[str] = None

    teams_webhook_url: Optional[str] = None

    asana_token: Optional[str] = None
    asana_project_id: Optional[str] = None
    asana_project_name: Optional[str] = None

    trello_api_key: Optional[str] = None
    trello_token: Optional[str] = None
    trello_list_id: Optional[str] = None
    trello_list_name: Optional[str] = None

    zoho_sprints_dc: Optional[str] = None
    zoho_sprints_token: Optional[str] = None
    zoho_sprints_team_id: Optional[str] = None
    zoho_sprints_project_id: Optional[str] = None
    zoho_sprints_item_type_id: Optional[str] = None

    webhook_url: Optional[str] = None

    # Drive backup for screenshots ClickUp cannot store
    google_drive_token: Optional[str] = None


# Credential fields that are encrypted at rest and masked in API responses
SECRET_FIELDS = (
    "jira_token",
    "clickup_token",
    "slack_token",
    "asana_token",
    "trello_token",
    "zoho_sprints_token",
    "google_drive_token",
)


class Annotation(BaseModel):
    """A single mark drawn on a slide."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    shape: ShapeType = Field(default=ShapeType.RECTANGLE, alias="type")
    start: Point
    end: Point
    comment: str = ""
    color: str = "#ef4444"
    timestamp: Optional[float] = None  # seconds into a video slide


class Slide(BaseModel):
    """
    A captured screenshot (or recording) with its annotations.

    `media` is a reference into the slide media store: a data URL or a
    file path. Annotations are kept in creation order.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    media: str = Field(alias="src")
    name: str = ""
    annotations: list[Annotation] = []
    created_at: int  # epoch milliseconds

    @property
    def created(self) -> datetime:
        return datetime.fromtimestamp(self.created_at / 1000, tz=timezone.utc)


class DiscoveredResource(BaseModel):
    """A leaf destination (list, project, board list) the credential can read."""
    id: str
    name: str
    group_path: str


class ExportResult(BaseModel):
    """Result of an export job."""
    status: ExportStatus
    platform: Optional[Platform] = None
    external_id: Optional[str] = None
    destination_url: Optional[str] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    activation_url: Optional[str] = None
    failures: list[dict[str, Any]] = []
    states: list[str] = []

    @property
    def success(self) -> bool:
        return self.status in (ExportStatus.SUCCESS, ExportStatus.PARTIAL)

    def to_dict(self) -> dict[str, Any]:
        """Render the caller-facing result shape."""
        if not self.success:
            payload: dict[str, Any] = {
                "success": False,
                "errorKind": self.error_kind,
                "message": self.message,
            }
            if self.activation_url:
                payload["activationUrl"] = self.activation_url
            return payload

        payload = {
            "success": True,
            "destinationUrl": self.destination_url,
        }
        if self.status == ExportStatus.PARTIAL:
            payload["errorKind"] = self.error_kind
            payload["message"] = self.message
            payload["failures"] = self.failures
        return payload
