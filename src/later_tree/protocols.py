"""Protocols for the collaborators the content tree talks to."""

from collections.abc import Collection, Iterable
from typing import Protocol, runtime_checkable

from later_tree.models.node import EntityKind, MatchHit


@runtime_checkable
class MatcherProtocol(Protocol):
    """Full-text matcher supplying matched entity ids to search."""

    def match(
        self,
        query: str,
        *,
        workspace_id: str | None = None,
        kinds: Collection[EntityKind] | None = None,
        tags: Iterable[str] | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[MatchHit], int]:
        """Return one page of hits and the total hit count."""
        ...


@runtime_checkable
class ScopeListener(Protocol):
    """Observer notified after a scope's committed change."""

    def __call__(self, scope_id: str) -> None: ...
