"""Node storage with depth and cycle rules enforced at write time.

Every check runs before the first write, so a rejected operation leaves the
tables untouched. Parent walks are bounded by ``max_depth`` hops, which keeps
them O(max_depth) regardless of container size.
"""

import sqlite3
from collections.abc import Iterable

from loguru import logger

from later_tree.config import MAX_DEPTH
from later_tree.core.ids import new_id, now_ms
from later_tree.core.ordering.collection import OrderedCollection
from later_tree.errors import (
    CycleDetectedError,
    DepthExceededError,
    InvalidParentError,
    NotFoundError,
)
from later_tree.models.node import EntityKind, Node, SiblingScope

_NODE_COLUMNS = (
    "id, container_id, parent_id, title, is_done, sort_order, created_at, updated_at, description"
)

NodeRow = tuple[str, str, str | None, str, int, int, int, int, str]


def row_to_node(row: NodeRow, *, depth: int) -> Node:
    return Node(
        id=row[0],
        container_id=row[1],
        parent_id=row[2],
        title=row[3],
        is_done=bool(row[4]),
        sort_key=row[5],
        depth=depth,
        created_at=row[6],
        updated_at=row[7],
        description=row[8],
    )


def clean_title(title: str) -> str:
    stripped = title.strip()
    if not stripped:
        msg = "Title cannot be empty"
        raise ValueError(msg)
    return stripped


class NodeStore:
    """Nodes with parent links, for one database."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        max_depth: int = MAX_DEPTH,
        collection: OrderedCollection | None = None,
    ) -> None:
        self.conn = conn
        self.max_depth = max_depth
        self.collection = collection or OrderedCollection(conn)

    # --- reads ---

    def _fetch_row(self, node_id: str) -> NodeRow | None:
        return self.conn.execute(
            f"SELECT {_NODE_COLUMNS} FROM nodes WHERE id = ?", (node_id,)
        ).fetchone()

    def find(self, node_id: str) -> Node | None:
        row = self._fetch_row(node_id)
        if row is None:
            return None
        return row_to_node(row, depth=len(self._ancestor_rows(row)))

    def get(self, node_id: str) -> Node:
        node = self.find(node_id)
        if node is None:
            msg = f"Node {node_id!r} does not exist"
            raise NotFoundError(msg)
        return node

    def load(self, node_ids: Iterable[str], *, depth: int) -> list[Node]:
        """Fetch nodes known to share ``depth``, preserving the order of ``node_ids``."""
        ids = list(node_ids)
        if not ids:
            return []
        placeholders = ",".join("?" * len(ids))
        rows = self.conn.execute(
            f"SELECT {_NODE_COLUMNS} FROM nodes WHERE id IN ({placeholders})", ids
        ).fetchall()
        by_id = {row[0]: row for row in rows}
        return [row_to_node(by_id[i], depth=depth) for i in ids if i in by_id]

    def require_container(self, container_id: str) -> EntityKind:
        """Return the container's kind; notes and unknown ids are rejected."""
        row = self.conn.execute(
            "SELECT kind FROM entities WHERE id = ?", (container_id,)
        ).fetchone()
        if row is None:
            msg = f"Container {container_id!r} does not exist"
            raise NotFoundError(msg)
        kind = EntityKind(row[0])
        if not kind.is_container:
            msg = f"{container_id!r} is a {kind}, which cannot hold items"
            raise InvalidParentError(msg)
        return kind

    def _ancestor_rows(self, row: NodeRow) -> list[NodeRow]:
        """Rows above ``row``, nearest first."""
        chain: list[NodeRow] = []
        parent_id = row[2]
        while parent_id is not None:
            if len(chain) >= self.max_depth or parent_id == row[0]:
                msg = f"Parent chain of {row[0]!r} does not terminate within {self.max_depth} hops"
                raise CycleDetectedError(msg)
            parent = self._fetch_row(parent_id)
            if parent is None:
                msg = f"Node {row[0]!r} points at missing parent {parent_id!r}"
                raise NotFoundError(msg)
            chain.append(parent)
            parent_id = parent[2]
        return chain

    def get_depth(self, node_id: str) -> int:
        """Hops from the node up to a root node (0 for roots)."""
        row = self._fetch_row(node_id)
        if row is None:
            msg = f"Node {node_id!r} does not exist"
            raise NotFoundError(msg)
        return len(self._ancestor_rows(row))

    def get_ancestors(self, node_id: str) -> list[Node]:
        """Ancestors of the node, root first."""
        row = self._fetch_row(node_id)
        if row is None:
            msg = f"Node {node_id!r} does not exist"
            raise NotFoundError(msg)
        chain = list(reversed(self._ancestor_rows(row)))
        return [row_to_node(r, depth=depth) for depth, r in enumerate(chain)]

    def descendant_levels(self, node_id: str) -> list[list[str]]:
        """Descendant ids grouped by level below the node (children first)."""
        levels: list[list[str]] = []
        seen = {node_id}
        frontier = [node_id]
        while frontier:
            placeholders = ",".join("?" * len(frontier))
            rows = self.conn.execute(
                f"SELECT id FROM nodes WHERE parent_id IN ({placeholders})", frontier
            ).fetchall()
            frontier = [r[0] for r in rows if r[0] not in seen]
            if frontier:
                seen.update(frontier)
                levels.append(frontier)
        return levels

    def subtree_height(self, node_id: str) -> int:
        """Levels below the node: 0 for a node without children."""
        return len(self.descendant_levels(node_id))

    # --- writes ---

    def create(
        self,
        container_id: str,
        title: str,
        parent_id: str | None = None,
        *,
        description: str = "",
    ) -> Node:
        """Create a node at the end of its sibling set."""
        title = clean_title(title)
        description = description.strip()
        self.require_container(container_id)

        depth = 0
        if parent_id is not None:
            parent = self._fetch_row(parent_id)
            if parent is None:
                msg = f"Parent {parent_id!r} does not exist"
                raise InvalidParentError(msg)
            if parent[1] != container_id:
                msg = f"Parent {parent_id!r} belongs to container {parent[1]!r}, not {container_id!r}"
                raise InvalidParentError(msg)
            depth = len(self._ancestor_rows(parent)) + 1
        if depth > self.max_depth - 1:
            msg = f"Node would sit at depth {depth}; the limit is {self.max_depth - 1}"
            raise DepthExceededError(msg)

        scope = SiblingScope(container_id, parent_id)
        sort_key = self.collection.next_key(scope)
        node_id = new_id()
        now = now_ms()
        self.conn.execute(
            f"INSERT INTO nodes ({_NODE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (node_id, container_id, parent_id, title, 0, sort_key, now, now, description),
        )
        logger.debug("Created node {} in {} at depth {}", node_id, scope.scope_id, depth)
        return Node(
            id=node_id,
            container_id=container_id,
            parent_id=parent_id,
            title=title,
            is_done=False,
            sort_key=sort_key,
            depth=depth,
            created_at=now,
            updated_at=now,
            description=description,
        )

    def reparent(self, node_id: str, new_parent_id: str | None = None) -> Node:
        """Move a node (with its subtree) under a new parent, or to the root level.

        The node lands at the end of its new sibling set.
        """
        node = self.get(node_id)
        if new_parent_id == node.parent_id:
            return node

        new_depth = 0
        if new_parent_id is not None:
            if new_parent_id == node_id:
                msg = f"Node {node_id!r} cannot be its own parent"
                raise CycleDetectedError(msg)
            parent = self._fetch_row(new_parent_id)
            if parent is None:
                msg = f"Parent {new_parent_id!r} does not exist"
                raise InvalidParentError(msg)
            if parent[1] != node.container_id:
                msg = f"Parent {new_parent_id!r} is in another container"
                raise InvalidParentError(msg)
            ancestors = self._ancestor_rows(parent)
            if any(a[0] == node_id for a in ancestors):
                msg = f"{new_parent_id!r} is a descendant of {node_id!r}"
                raise CycleDetectedError(msg)
            new_depth = len(ancestors) + 1

        deepest = new_depth + self.subtree_height(node_id)
        if deepest > self.max_depth - 1:
            msg = (
                f"Moving {node_id!r} would put its subtree at depth {deepest}; "
                f"the limit is {self.max_depth - 1}"
            )
            raise DepthExceededError(msg)

        self.collection.append(SiblingScope(node.container_id, new_parent_id), node.ref)
        logger.debug("Reparented {} from {} to {}", node_id, node.parent_id, new_parent_id)
        return self.get(node_id)

    def delete(self, node_id: str) -> int:
        """Delete the node and every descendant. Absent ids are a no-op.

        Returns the number of nodes removed.
        """
        node = self.find(node_id)
        if node is None:
            logger.debug("Delete of absent node {} ignored", node_id)
            return 0
        descendants = [i for level in self.descendant_levels(node_id) for i in level]
        if descendants:
            placeholders = ",".join("?" * len(descendants))
            self.conn.execute(f"DELETE FROM nodes WHERE id IN ({placeholders})", descendants)
        self.collection.remove(node.scope, node.ref)
        logger.debug("Deleted node {} and {} descendants", node_id, len(descendants))
        return len(descendants) + 1

    def set_done(self, node_id: str, is_done: bool) -> Node:
        cursor = self.conn.execute(
            "UPDATE nodes SET is_done = ?, updated_at = ? WHERE id = ?",
            (int(is_done), now_ms(), node_id),
        )
        if cursor.rowcount == 0:
            msg = f"Node {node_id!r} does not exist"
            raise NotFoundError(msg)
        return self.get(node_id)

    def rename(self, node_id: str, title: str) -> Node:
        cursor = self.conn.execute(
            "UPDATE nodes SET title = ?, updated_at = ? WHERE id = ?",
            (clean_title(title), now_ms(), node_id),
        )
        if cursor.rowcount == 0:
            msg = f"Node {node_id!r} does not exist"
            raise NotFoundError(msg)
        return self.get(node_id)

    def set_description(self, node_id: str, description: str) -> Node:
        cursor = self.conn.execute(
            "UPDATE nodes SET description = ?, updated_at = ? WHERE id = ?",
            (description.strip(), now_ms(), node_id),
        )
        if cursor.rowcount == 0:
            msg = f"Node {node_id!r} does not exist"
            raise NotFoundError(msg)
        return self.get(node_id)
