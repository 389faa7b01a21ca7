"""Attach hierarchy context to already-matched search hits."""

from later_tree.core.tags import get_tags
from later_tree.core.tree.navigation import TreeQueryEngine
from later_tree.core.workspace import get_entity, get_workspace
from later_tree.models.node import EntityKind, MatchHit, SearchResult


class SearchProjector:
    """Turns matched ids into :class:`SearchResult` records.

    Nodes get their breadcrumb (ancestors plus themselves), their depth and the
    title of the container holding them. Workspace members have no ancestors:
    their breadcrumb is empty, depth is 0 and ``container_name`` is the
    workspace name. Both carry their tags.
    """

    def __init__(self, queries: TreeQueryEngine) -> None:
        self.queries = queries
        self.conn = queries.conn

    def project(self, matched_entity_id: str, *, snippet: str = "") -> SearchResult:
        node = self.queries.store.find(matched_entity_id)
        if node is not None:
            container = get_entity(self.conn, node.container_id)
            return SearchResult(
                id=node.id,
                kind=EntityKind.NODE,
                title=node.title,
                breadcrumb=tuple(self.queries.breadcrumb(node.id)),
                depth=node.depth,
                container_name=container.title,
                snippet=snippet,
                tags=get_tags(self.conn, node.ref),
            )

        entity = get_entity(self.conn, matched_entity_id)
        workspace = get_workspace(self.conn, entity.workspace_id)
        return SearchResult(
            id=entity.id,
            kind=entity.kind,
            title=entity.title,
            breadcrumb=(),
            depth=0,
            container_name=workspace.name,
            snippet=snippet,
            tags=get_tags(self.conn, entity.ref),
        )

    def project_hits(self, hits: list[MatchHit]) -> list[SearchResult]:
        return [self.project(hit.id, snippet=hit.snippet) for hit in hits]
