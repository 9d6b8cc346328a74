"""
BugSnap Export System

Pushes annotated slides to external collaboration platforms as bug reports.

Modules:
- core/: Types, error taxonomy, proxy transport, token encryption
- credentials.py: Config normalization and destination ID extraction
- discovery.py: Hierarchy walking with per-branch results
- exporters/: One export strategy per destination platform
- orchestrator.py: The per-job submission state machine
"""

from .core.tokens import TokenManager
from .core.types import (
    Platform,
    ExportMode,
    ExportResult,
    ExportStatus,
    IntegrationConfig,
)

__all__ = [
    "TokenManager",
    "Platform",
    "ExportMode",
    "ExportResult",
    "ExportStatus",
    "IntegrationConfig",
]
