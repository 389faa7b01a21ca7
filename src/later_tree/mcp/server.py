"""MCP server exposing later-tree content, ordering and search tools."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from later_tree.config import SEARCH_PAGE_SIZE, resolve_data_directory, resolve_database_path
from later_tree.errors import TreeError
from later_tree.models.node import Container, EntityKind, Node
from later_tree.service import ContentTree


def _tree_error(exc: TreeError) -> dict[str, Any]:
    return {"error": exc.action_hint, "kind": str(exc.kind), "detail": exc.message}


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=UTC).isoformat()


def _node_entry(tree: ContentTree, node: Node) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "id": node.id,
        "title": node.title,
        "done": node.is_done,
        "depth": node.depth,
        "child_count": tree.queries.child_count(node.id),
    }
    if node.description:
        entry["description"] = node.description
    return entry


# --- Core functions (testable without MCP context) ---


def later_list_content(tree: ContentTree, *, workspace_id: str | None = None) -> dict[str, Any]:
    """List workspaces, or the ordered members of one workspace.

    Args:
        workspace_id: Workspace to open. Omit to list all workspaces.
    """
    if workspace_id is None:
        workspaces = tree.list_workspaces()
        return {
            "workspaces": [
                {"id": w.id, "name": w.name, "modified": _iso(w.updated_at)} for w in workspaces
            ],
            "count": len(workspaces),
        }

    try:
        workspace = tree.get_workspace(workspace_id)
        members = tree.list_entities(workspace_id)
        entries = []
        for entity in members:
            entry: dict[str, Any] = {
                "id": entity.id,
                "kind": str(entity.kind),
                "title": entity.title,
                "modified": _iso(entity.updated_at),
            }
            if isinstance(entity, Container):
                progress = tree.progress(entity.id)
                entry["done"] = progress.done
                entry["total"] = progress.total
            entries.append(entry)
    except TreeError as e:
        return _tree_error(e)
    return {"workspace": {"id": workspace.id, "name": workspace.name}, "entries": entries}


def later_read_container(
    tree: ContentTree,
    *,
    container_id: str,
    max_depth: int | None = None,
    output_format: str = "markdown",
) -> dict[str, Any]:
    """Read a todo list or list as a markdown outline or structured JSON.

    Args:
        container_id: Container ID.
        max_depth: Deepest item level to include (0 = root items only).
        output_format: "markdown" or "json".
    """
    try:
        entity = tree.get_entity(container_id)
        if not isinstance(entity, Container):
            return {
                "id": entity.id,
                "kind": str(entity.kind),
                "title": entity.title,
                "body": entity.body,
            }

        progress = tree.progress(container_id)
        result: dict[str, Any] = {
            "id": entity.id,
            "kind": str(entity.kind),
            "title": entity.title,
            "done": progress.done,
            "total": progress.total,
        }
        if output_format == "markdown":
            result["content"] = tree.render_markdown(container_id=container_id, max_depth=max_depth)
            return result

        def _build_children(nodes: list[Node], remaining_depth: int | None) -> list[dict[str, Any]]:
            result_list = []
            for node in nodes:
                entry = _node_entry(tree, node)
                if remaining_depth is None or remaining_depth > 0:
                    next_depth = None if remaining_depth is None else remaining_depth - 1
                    entry["children"] = _build_children(tree.list_children(node.id), next_depth)
                result_list.append(entry)
            return result_list

        result["items"] = _build_children(tree.list_roots(container_id), max_depth)
    except TreeError as e:
        return _tree_error(e)
    return result


def later_get_item_context(
    tree: ContentTree,
    *,
    node_id: str,
    sibling_count: int = 3,
    child_limit: int = 20,
) -> dict[str, Any]:
    """Get an item with breadcrumb, siblings, and children.

    Args:
        node_id: Item ID.
        sibling_count: Number of siblings before/after to include.
        child_limit: Max direct children to show.
    """
    try:
        node = tree.get_node(node_id)
        container = tree.get_entity(node.container_id)
        breadcrumb = tree.breadcrumb(node_id)
        before, after = tree.siblings(node_id, sibling_count)
        children = tree.list_children(node_id)
    except TreeError as e:
        return _tree_error(e)

    return {
        "item": {**_node_entry(tree, node), "modified": _iso(node.updated_at)},
        "container": {"id": container.id, "title": container.title},
        "breadcrumb": " > ".join(breadcrumb),
        "siblings_before": [{"id": s.id, "title": s.title[:80]} for s in before],
        "siblings_after": [{"id": s.id, "title": s.title[:80]} for s in after],
        "children": [_node_entry(tree, c) for c in children[:child_limit]],
    }


def later_search(
    tree: ContentTree,
    *,
    query: str = "",
    workspace_id: str | None = None,
    kinds: list[str] | None = None,
    tags: list[str] | None = None,
    limit: int = SEARCH_PAGE_SIZE,
    offset: int = 0,
) -> dict[str, Any]:
    """Search titles, item descriptions and note bodies; item hits carry their breadcrumb.

    Args:
        query: Search text.
        workspace_id: Restrict to one workspace.
        kinds: Restrict to entry kinds ("note", "todo_list", "list", "node").
        tags: Keep only hits carrying all of these tags.
        limit: Max results (1-50, default 20).
        offset: Pagination offset.
    """
    if not query.strip():
        return {"error": "No search query provided.", "results": [], "count": 0, "total": 0}

    try:
        wanted = [EntityKind(k) for k in kinds] if kinds else None
    except ValueError:
        return {"error": f"Unknown kind in {kinds!r}.", "results": [], "count": 0, "total": 0}

    try:
        results, total = tree.search_text(
            workspace_id, query, kinds=wanted, tags=tags, limit=limit, offset=offset
        )
    except TreeError as e:
        return _tree_error(e)

    serialized = [
        {
            "id": r.id,
            "kind": str(r.kind),
            "title": r.title[:120],
            "breadcrumb": " > ".join(r.breadcrumb),
            "depth": r.depth,
            "container": r.container_name,
            "snippet": r.snippet,
            "tags": list(r.tags),
        }
        for r in results
    ]
    output: dict[str, Any] = {
        "results": serialized,
        "count": len(serialized),
        "total": total,
        "has_more": offset + len(serialized) < total,
    }
    if output["has_more"]:
        output["next_offset"] = offset + len(serialized)
    return output


# --- Write core functions ---


def later_add_item(
    tree: ContentTree,
    *,
    container_id: str,
    title: str,
    parent_id: str | None = None,
    index: int = -1,
    description: str = "",
) -> dict[str, Any]:
    """Add an item to a container. A refused position adds nothing.

    Args:
        container_id: Todo list or list ID.
        title: Item text.
        parent_id: Parent item ID (None = root level).
        index: Position among siblings (-1 = last).
        description: Longer text shown under the item.
    """
    try:
        node = tree.create_node(
            container_id,
            title,
            parent_id=parent_id,
            description=description,
            index=index if index >= 0 else None,
        )
    except TreeError as e:
        return _tree_error(e)
    except ValueError as e:
        return {"error": str(e)}
    return {"created": _node_entry(tree, node)}


def later_move_item(
    tree: ContentTree,
    *,
    node_id: str,
    parent_id: str | None = None,
    index: int | None = None,
    above_id: str | None = None,
    below_id: str | None = None,
) -> dict[str, Any]:
    """Move an item (with its children).

    Either give the rendered neighbors (``above_id`` / ``below_id``) the item
    was dropped between, or an explicit ``parent_id`` and ``index``.
    """
    try:
        if above_id is not None or below_id is not None:
            outcome = tree.drop_node(node_id, above_id=above_id, below_id=below_id)
        elif index is None:
            node = tree.reparent_node(node_id, parent_id)
            return {"state": "committed", "parent_id": node.parent_id, "depth": node.depth}
        else:
            outcome = tree.move_node(node_id, new_parent_id=parent_id, to_index=index)
    except TreeError as e:
        return _tree_error(e)
    return {
        "state": str(outcome.state),
        "parent_id": outcome.parent_id,
        "index": outcome.index,
        "cross_parent": outcome.cross_parent,
    }


def later_set_done(tree: ContentTree, *, node_id: str, done: bool = True) -> dict[str, Any]:
    try:
        node = tree.set_done(node_id, done)
    except TreeError as e:
        return _tree_error(e)
    return {"id": node.id, "done": node.is_done}


def later_set_tags(tree: ContentTree, *, entry_id: str, tags: list[str]) -> dict[str, Any]:
    """Replace the tags of an item, container or note. An empty list clears them."""
    try:
        result = tree.set_tags(entry_id, tags)
    except TreeError as e:
        return _tree_error(e)
    return {"id": entry_id, "tags": list(result)}


def later_delete_item(tree: ContentTree, *, node_id: str) -> dict[str, Any]:
    """Delete an item and everything below it. Deleting a missing item is not an error."""
    tree.delete_node(node_id)
    return {"deleted": node_id}


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    tree: ContentTree
    data_dir: Path
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open database on startup, close on shutdown."""
    data_dir = resolve_data_directory()
    data_dir.mkdir(parents=True, exist_ok=True)
    tree = ContentTree.open(resolve_database_path(data_dir))
    logger.debug("MCP server using {}", data_dir)
    try:
        yield ServerContext(tree=tree, data_dir=data_dir)
    finally:
        tree.close()


mcp_server = FastMCP(
    "later-tree",
    instructions="""\
Later keeps workspaces holding notes, todo lists and lists. Lists hold items
nested at most three levels deep (root items, their children, grandchildren).

## Typical flow
1. later_list_content_tool without arguments to find a workspace, then with
   its workspace_id to see the notes and lists inside.
2. later_read_container_tool to see a list's items as an outline.
3. later_search_tool to find items anywhere; each hit has a breadcrumb.

Moves that would nest deeper than three levels, or put an item inside
itself, are refused with an "error" and a "kind".
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def later_list_content_tool(ctx: Context, workspace_id: str | None = None) -> dict[str, Any]:
    """List workspaces, or the notes and lists of one workspace in manual order.

    Args:
        workspace_id: Workspace to open. Omit to list all workspaces.
    """
    async with _ctx(ctx).lock:
        return later_list_content(_ctx(ctx).tree, workspace_id=workspace_id)


@mcp_server.tool()
async def later_read_container_tool(
    ctx: Context,
    container_id: str,
    max_depth: int | None = None,
    output_format: str = "markdown",
) -> dict[str, Any]:
    """Read a todo list or list as a markdown outline or structured JSON.

    Args:
        container_id: Container ID.
        max_depth: Deepest item level to include (0 = root items only).
        output_format: "markdown" (human-readable) or "json" (structured).
    """
    async with _ctx(ctx).lock:
        return later_read_container(
            _ctx(ctx).tree,
            container_id=container_id,
            max_depth=max_depth,
            output_format=output_format,
        )


@mcp_server.tool()
async def later_get_item_context_tool(
    ctx: Context,
    node_id: str,
    sibling_count: int = 3,
    child_limit: int = 20,
) -> dict[str, Any]:
    """Get an item with its breadcrumb, siblings and children.

    Args:
        node_id: Item ID from search results.
        sibling_count: Siblings before/after to include.
        child_limit: Max direct children to show.
    """
    async with _ctx(ctx).lock:
        return later_get_item_context(
            _ctx(ctx).tree, node_id=node_id, sibling_count=sibling_count, child_limit=child_limit
        )


@mcp_server.tool()
async def later_search_tool(
    ctx: Context,
    query: str = "",
    workspace_id: str | None = None,
    kinds: list[str] | None = None,
    tags: list[str] | None = None,
    limit: int = SEARCH_PAGE_SIZE,
    offset: int = 0,
) -> dict[str, Any]:
    """Search titles, item descriptions and note bodies.

    Query syntax: Words are ANDed. Use "quoted phrases" for exact matches.
    Prefix matching is automatic for 3+ char words.

    Pagination: When has_more is true, use next_offset in a follow-up call.

    Args:
        query: Search text.
        workspace_id: Restrict to one workspace.
        kinds: Restrict to "note", "todo_list", "list" or "node" (items).
        tags: Keep only hits carrying all of these tags.
        limit: Max results (1-50, default 20).
        offset: Pagination offset.
    """
    async with _ctx(ctx).lock:
        return later_search(
            _ctx(ctx).tree,
            query=query,
            workspace_id=workspace_id,
            kinds=kinds,
            tags=tags,
            limit=limit,
            offset=offset,
        )


@mcp_server.tool()
async def later_add_item_tool(
    ctx: Context,
    container_id: str,
    title: str,
    parent_id: str | None = None,
    index: int = -1,
    description: str = "",
) -> dict[str, Any]:
    """Add an item to a todo list or list.

    Args:
        container_id: Container ID.
        title: Item text.
        parent_id: Parent item ID (omit for a root item).
        index: Position among siblings (-1 = last).
        description: Longer text shown under the item.
    """
    async with _ctx(ctx).lock:
        return later_add_item(
            _ctx(ctx).tree,
            container_id=container_id,
            title=title,
            parent_id=parent_id,
            index=index,
            description=description,
        )


@mcp_server.tool()
async def later_move_item_tool(
    ctx: Context,
    node_id: str,
    parent_id: str | None = None,
    index: int | None = None,
    above_id: str | None = None,
    below_id: str | None = None,
) -> dict[str, Any]:
    """Move an item, with its children, within its list.

    Args:
        node_id: Item to move.
        parent_id: New parent item (omit for root level).
        index: Position among the new siblings (omit to append).
        above_id: Item now directly above the moved one (alternative to parent_id/index).
        below_id: Item now directly below the moved one (alternative to parent_id/index).
    """
    async with _ctx(ctx).lock:
        return later_move_item(
            _ctx(ctx).tree,
            node_id=node_id,
            parent_id=parent_id,
            index=index,
            above_id=above_id,
            below_id=below_id,
        )


@mcp_server.tool()
async def later_set_done_tool(ctx: Context, node_id: str, done: bool = True) -> dict[str, Any]:
    """Mark an item as done (or not done).

    Args:
        node_id: Item ID.
        done: New completion state.
    """
    async with _ctx(ctx).lock:
        return later_set_done(_ctx(ctx).tree, node_id=node_id, done=done)


@mcp_server.tool()
async def later_set_tags_tool(ctx: Context, entry_id: str, tags: list[str]) -> dict[str, Any]:
    """Replace the tags of an item, container or note.

    Args:
        entry_id: Item, container or note ID.
        tags: New tags; an empty list clears them. Search can filter by them.
    """
    async with _ctx(ctx).lock:
        return later_set_tags(_ctx(ctx).tree, entry_id=entry_id, tags=tags)


@mcp_server.tool()
async def later_delete_item_tool(ctx: Context, node_id: str) -> dict[str, Any]:
    """Delete an item and all items below it.

    Args:
        node_id: Item ID.
    """
    async with _ctx(ctx).lock:
        return later_delete_item(_ctx(ctx).tree, node_id=node_id)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from later_tree.logging_config import configure_logging

    configure_logging(verbose=False, log_file=resolve_data_directory() / "mcp.log")
    mcp_server.run(transport="stdio")
