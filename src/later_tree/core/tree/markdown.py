"""Render containers and node subtrees as markdown."""

import io

from later_tree.core.tree.navigation import TreeQueryEngine
from later_tree.models.node import EntityKind, Node


def _write_rows(
    out: io.StringIO,
    queries: TreeQueryEngine,
    rows: list[tuple[Node, int]],
    *,
    checkboxes: bool,
    max_depth: int | None,
) -> None:
    for node, relative_depth in rows:
        indent = "    " * relative_depth

        # Todo items get checkboxes, list items get a strike-through when done
        if checkboxes:
            line = f"- [x] {node.title}" if node.is_done else f"- [ ] {node.title}"
        else:
            line = f"- ~~{node.title}~~" if node.is_done else f"- {node.title}"
        out.write(f"{indent}{line}\n")

        # Truncation indicator when children are cut off by max_depth
        if max_depth is not None and relative_depth == max_depth:
            child_count = queries.child_count(node.id)
            if child_count > 0:
                child_indent = "    " * (relative_depth + 1)
                noun = "child" if child_count == 1 else "children"
                out.write(f"{child_indent}- ... ({child_count} more {noun}, id={node.id})\n")


def render_container_as_markdown(
    queries: TreeQueryEngine,
    *,
    container_id: str,
    max_depth: int | None = None,
    include_title: bool = True,
) -> str:
    """Render every item of a container as an indented bullet list.

    Args:
        queries: Query engine for the database.
        container_id: Todo list or custom list to render.
        max_depth: Deepest level to include (0 = root items only, None = all).
        include_title: Whether to start with a ``#`` heading of the container title.

    Returns:
        Markdown string with bullet-list hierarchy.
    """
    kind = queries.store.require_container(container_id)
    rows = queries.container_tree(container_id, max_depth)

    out = io.StringIO()
    if include_title:
        title = queries.conn.execute(
            "SELECT title FROM entities WHERE id = ?", (container_id,)
        ).fetchone()[0]
        out.write(f"# {title}\n\n")
    _write_rows(
        out, queries, rows, checkboxes=kind is EntityKind.TODO_LIST, max_depth=max_depth
    )
    return out.getvalue()


def render_subtree_as_markdown(
    queries: TreeQueryEngine, *, node_id: str, max_depth: int | None = None
) -> str:
    """Render a node and its descendants, the node itself unindented."""
    node = queries.store.get(node_id)
    kind = queries.store.require_container(node.container_id)
    out = io.StringIO()
    _write_rows(
        out,
        queries,
        queries.subtree(node_id, max_depth),
        checkboxes=kind is EntityKind.TODO_LIST,
        max_depth=max_depth,
    )
    return out.getvalue()
