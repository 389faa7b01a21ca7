"""Fake collaborators for testing the content tree."""

from collections.abc import Collection, Iterable

from later_tree.models.node import EntityKind, MatchHit


class RecordingListener:
    """Scope listener that keeps every scope id it was told about."""

    def __init__(self) -> None:
        self.scope_ids: list[str] = []

    def __call__(self, scope_id: str) -> None:
        self.scope_ids.append(scope_id)


class FailingListener:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self, scope_id: str) -> None:
        self.calls += 1
        msg = f"listener broke on {scope_id}"
        raise RuntimeError(msg)


class FakeMatcher:
    """In-memory matcher returning predefined hits.

    Records every query so tests can assert what was asked.
    """

    def __init__(self, hits: list[MatchHit] | None = None) -> None:
        self.hits = hits or []
        self.calls: list[tuple[str, str | None]] = []
        self.tag_filters: list[tuple[str, ...]] = []

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
        self.calls.append((query, workspace_id))
        self.tag_filters.append(tuple(tags or ()))
        wanted = [h for h in self.hits if kinds is None or h.kind in kinds]
        return wanted[offset : offset + limit], len(wanted)
