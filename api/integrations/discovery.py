"""
Resource Discovery - walk a platform's destination hierarchy.

Each level is fetched independently. A branch that fails is recorded as
skipped (with its reason) and the walk continues, so the caller gets every
destination it can reach plus a list of what it could not. Sibling branches
are fetched concurrently.

The root listing is different: if it fails, the credential is almost
certainly wrong, so the failure is raised as an AuthenticationError rather
than reported as an empty account.

Usage:
    root = await fetch_root("teams", self._get_json(ctx, url))
    branches = await gather_branches([
        (team["name"], self._list_spaces(ctx, team)) for team in root["teams"]
    ])
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Generic, Optional, TypeVar

from integrations.core.errors import (
    AuthenticationError,
    ExportError,
    NetworkError,
    ProxyActivationRequired,
)
from integrations.core.types import DiscoveredResource

logger = logging.getLogger(__name__)

# Per-attempt timeout for every discovery call
DISCOVERY_TIMEOUT_SECONDS = 15.0

T = TypeVar("T")


@dataclass
class BranchResult(Generic[T]):
    """Outcome of one branch fetch: a value, or the reason it was skipped."""
    label: str
    value: Optional[T] = None
    skipped_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.skipped_reason is None


@dataclass
class DiscoveryReport:
    """Every reachable leaf destination, plus the branches that were skipped."""
    platform: str
    resources: list[DiscoveredResource] = field(default_factory=list)
    skipped: list[BranchResult] = field(default_factory=list)

    def add(self, resource_id: Any, name: str, group_path: str) -> None:
        self.resources.append(
            DiscoveredResource(id=str(resource_id), name=name, group_path=group_path)
        )

    def add_all(
        self,
        items: Any,
        group_path: str,
        id_key: str = "id",
        name_key: str = "name",
    ) -> None:
        """Add every listed item; entries without an id are left out."""
        for item in items or []:
            if not isinstance(item, dict) or not item.get(id_key):
                logger.warning(f"[DISCOVERY] Ignored malformed entry under '{group_path}': {item!r}")
                continue
            self.add(item[id_key], str(item.get(name_key) or item[id_key]), group_path)

    def skip(self, branch: BranchResult) -> None:
        self.skipped.append(branch)

    def find_by_name(self, name: str) -> list[DiscoveredResource]:
        wanted = name.strip().lower()
        return [r for r in self.resources if r.name.strip().lower() == wanted]

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "resources": [r.model_dump(by_alias=True) for r in self.resources],
            "skipped": [{"branch": b.label, "reason": b.skipped_reason} for b in self.skipped],
        }


async def fetch_branch(label: str, awaitable: Awaitable[T]) -> BranchResult[T]:
    """
    Await one branch, converting failure into a skipped BranchResult.

    ProxyActivationRequired is never swallowed: the whole walk stops so the
    caller can show the unlock link.
    """
    try:
        return BranchResult(label=label, value=await awaitable)
    except ProxyActivationRequired:
        raise
    except (ExportError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"[DISCOVERY] Skipped branch '{label}': {e}")
        return BranchResult(label=label, skipped_reason=str(e) or type(e).__name__)


async def gather_branches(branches: list[tuple[str, Awaitable[T]]]) -> list[BranchResult[T]]:
    """
    Fetch sibling branches concurrently. Result order follows input order.

    Every sibling runs to completion before an error (ProxyActivationRequired)
    is re-raised, so no branch is left running in the background.
    """
    if not branches:
        return []
    results = await asyncio.gather(
        *(fetch_branch(label, aw) for label, aw in branches),
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


async def fetch_root(label: str, awaitable: Awaitable[T], platform: Optional[str] = None) -> T:
    """
    Await the root listing of a hierarchy.

    Raises:
        ProxyActivationRequired: Propagated unchanged
        NetworkError: Propagated unchanged (the platform was never reached)
        AuthenticationError: Any other failure of the root call
    """
    try:
        return await awaitable
    except (ProxyActivationRequired, NetworkError, AuthenticationError):
        raise
    except (ExportError, ValueError, KeyError, TypeError) as e:
        logger.error(f"[DISCOVERY] Root listing '{label}' failed: {e}")
        raise AuthenticationError(
            f"Could not list {label}. Check your credentials. ({e})",
            platform=platform,
        ) from e
