"""Tree navigation: roots, children, subtrees, breadcrumbs, siblings.

Reads never mutate. Missing containers and nodes raise ``NotFoundError``
rather than returning an empty result, so a deleted parent is never mistaken
for an empty one.
"""

from later_tree.core.tree.store import NodeStore
from later_tree.models.node import Node, Progress, SiblingScope


class TreeQueryEngine:
    """Read-side projections over a :class:`NodeStore`."""

    def __init__(self, store: NodeStore) -> None:
        self.store = store
        self.conn = store.conn
        self.collection = store.collection

    def _ordered(self, scope: SiblingScope, *, depth: int) -> list[Node]:
        ids = [ref.id for ref in self.collection.list_ordered(scope)]
        return self.store.load(ids, depth=depth)

    def root_nodes(self, container_id: str) -> list[Node]:
        self.store.require_container(container_id)
        return self._ordered(SiblingScope(container_id, None), depth=0)

    def children(self, node_id: str) -> list[Node]:
        node = self.store.get(node_id)
        return self._ordered(SiblingScope(node.container_id, node.id), depth=node.depth + 1)

    def subtree(self, node_id: str, max_depth_from_here: int | None = None) -> list[tuple[Node, int]]:
        """Depth-first, pre-order expansion of a node.

        The node itself comes first with relative depth 0, its children at 1,
        and so on. ``max_depth_from_here`` caps the relative depth.
        """
        return self._expand(self.store.get(node_id), max_depth_from_here)

    def _expand(self, start: Node, limit: int | None) -> list[tuple[Node, int]]:
        result: list[tuple[Node, int]] = []
        stack: list[tuple[Node, int]] = [(start, 0)]
        while stack:
            node, relative = stack.pop()
            result.append((node, relative))
            if limit is not None and relative >= limit:
                continue
            if node.depth >= self.store.max_depth - 1:
                continue
            kids = self._ordered(SiblingScope(node.container_id, node.id), depth=node.depth + 1)
            stack.extend((kid, relative + 1) for kid in reversed(kids))
        return result

    def container_tree(
        self, container_id: str, max_depth: int | None = None
    ) -> list[tuple[Node, int]]:
        """Every root's subtree in order: the container as a flattened outline.

        Relative depths equal absolute depths here, since roots sit at 0.
        """
        rows: list[tuple[Node, int]] = []
        for root in self.root_nodes(container_id):
            rows.extend(self._expand(root, max_depth))
        return rows

    def breadcrumb(self, node_id: str) -> list[str]:
        """Titles from the root down to the node itself."""
        node = self.store.get(node_id)
        return [a.title for a in self.store.get_ancestors(node_id)] + [node.title]

    def siblings(self, node_id: str, count: int = 3) -> tuple[list[Node], list[Node]]:
        """Up to ``count`` siblings before and after a node, in display order."""
        node = self.store.get(node_id)
        ordered = self._ordered(node.scope, depth=node.depth)
        index = next(i for i, n in enumerate(ordered) if n.id == node_id)
        return ordered[max(0, index - count) : index], ordered[index + 1 : index + 1 + count]

    def child_count(self, node_id: str) -> int:
        return self.conn.execute(
            "SELECT COUNT(*) FROM nodes WHERE parent_id = ?", (node_id,)
        ).fetchone()[0]

    def container_progress(self, container_id: str) -> Progress:
        """Completed versus total nodes across every level of the container."""
        self.store.require_container(container_id)
        total, done = self.conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(is_done), 0) FROM nodes WHERE container_id = ?",
            (container_id,),
        ).fetchone()
        return Progress(done=done, total=total)
