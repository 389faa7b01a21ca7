"""CLI for later-tree: workspaces, lists, items and search from the terminal."""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from later_tree.config import resolve_data_directory, resolve_database_path
from later_tree.core.importer.loader import export_workspace, import_file
from later_tree.errors import TreeError
from later_tree.logging_config import configure_logging
from later_tree.models.node import (
    Container,
    EntityKind,
    EntityRef,
    Scope,
    SiblingScope,
    WorkspaceScope,
)
from later_tree.service import ContentTree

app = typer.Typer(help="Later: ordered workspaces of notes, todo lists and lists.")

DataDirOption = Annotated[
    Path | None,
    typer.Option("--data-dir", "-d", help="Directory holding later.db"),
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


@contextmanager
def _open_tree(data_dir: Path | None) -> Iterator[ContentTree]:
    """Open the database, turning tree errors into a one-line message and exit 1."""
    db_path = resolve_database_path(data_dir)
    if not db_path.exists():
        logger.error("Database not found: {}. Run 'init' first.", db_path)
        raise typer.Exit(1)
    tree = ContentTree.open(db_path)
    try:
        yield tree
    except TreeError as exc:
        logger.debug("{}: {}", exc.kind, exc.message)
        typer.echo(exc.action_hint, err=True)
        raise typer.Exit(1) from None
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from None
    finally:
        tree.close()


@app.command()
def init(data_dir: DataDirOption = None) -> None:
    """Create the database."""
    dst = data_dir or resolve_data_directory()
    dst.mkdir(parents=True, exist_ok=True)
    db_path = resolve_database_path(dst)
    ContentTree.open(db_path).close()
    typer.echo(f"Database ready at {db_path}")


@app.command()
def workspace(
    name: str = typer.Argument(..., help="Workspace name"),
    data_dir: DataDirOption = None,
) -> None:
    """Create a workspace."""
    with _open_tree(data_dir) as tree:
        created = tree.create_workspace(name)
        typer.echo(f"Created workspace {created.name}  [id={created.id}]")


@app.command()
def workspaces(
    data_dir: DataDirOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List workspaces."""
    with _open_tree(data_dir) as tree:
        rows = tree.list_workspaces()
        if output_json:
            typer.echo(json.dumps([{"id": w.id, "name": w.name} for w in rows], indent=2))
            return
        typer.echo(f"{len(rows)} workspaces:\n")
        for w in rows:
            typer.echo(f"  {w.name}  [id={w.id}]")


@app.command()
def add(
    workspace_id: str = typer.Argument(..., help="Workspace ID"),
    kind: EntityKind = typer.Argument(..., help="note, todo_list or list"),
    title: str = typer.Argument(..., help="Title"),
    body: str = typer.Option("", "--body", "-b", help="Note body"),
    data_dir: DataDirOption = None,
) -> None:
    """Add a note, todo list or list at the end of a workspace."""
    with _open_tree(data_dir) as tree:
        entity = tree.create_entity(workspace_id, kind=kind, title=title, body=body)
        typer.echo(f"Added {entity.kind} {entity.title}  [id={entity.id}]")


@app.command()
def item(
    container_id: str = typer.Argument(..., help="Todo list or list ID"),
    title: str = typer.Argument(..., help="Item text"),
    parent: Annotated[
        str | None,
        typer.Option("--parent", "-p", help="Parent item ID (root level when omitted)"),
    ] = None,
    description: str = typer.Option("", "--description", "-D", help="Item description"),
    index: Annotated[
        int | None,
        typer.Option("--index", "-i", help="Position among siblings (end when omitted)"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Add an item to a container."""
    with _open_tree(data_dir) as tree:
        node = tree.create_node(
            container_id, title, parent_id=parent, description=description, index=index
        )
        typer.echo(f"Added item {node.title}  [id={node.id} depth={node.depth}]")


@app.command()
def move(
    node_id: str = typer.Argument(..., help="Item ID"),
    parent: Annotated[
        str | None,
        typer.Option("--parent", "-p", help="New parent item ID (root level when omitted)"),
    ] = None,
    index: Annotated[
        int | None,
        typer.Option("--index", "-i", help="Position among the new siblings (end when omitted)"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Move an item, with its children, under a new parent."""
    with _open_tree(data_dir) as tree:
        if index is None:
            node = tree.reparent_node(node_id, parent)
            typer.echo(f"Moved {node.title} to depth {node.depth}")
        else:
            outcome = tree.move_node(node_id, new_parent_id=parent, to_index=index)
            typer.echo(f"Moved to index {outcome.index} ({outcome.state})")


@app.command()
def reorder(
    ref_id: str = typer.Argument(..., help="ID of the entry being moved"),
    from_index: int = typer.Argument(..., help="Current position"),
    to_index: int = typer.Argument(..., help="New position"),
    workspace_id: Annotated[
        str | None,
        typer.Option("--workspace", "-w", help="Reorder the top level of this workspace"),
    ] = None,
    container_id: Annotated[
        str | None,
        typer.Option("--container", "-c", help="Reorder items of this container"),
    ] = None,
    parent: Annotated[
        str | None,
        typer.Option("--parent", "-p", help="Reorder the children of this item"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Move an entry to a new position within its own scope."""
    with _open_tree(data_dir) as tree:
        scope: Scope
        if workspace_id is not None:
            scope = WorkspaceScope(workspace_id)
            ref = EntityRef(tree.get_entity(ref_id).kind, ref_id)
        elif container_id is not None:
            scope = SiblingScope(container_id, parent)
            ref = EntityRef(EntityKind.NODE, ref_id)
        else:
            typer.echo("Pass --workspace or --container.", err=True)
            raise typer.Exit(1)
        tree.reorder(scope, ref, from_index, to_index)
        typer.echo(f"Reordered {scope.scope_id}: {from_index} -> {to_index}")


@app.command()
def done(
    node_id: str = typer.Argument(..., help="Item ID"),
    undo: bool = typer.Option(False, "--undo", "-u", help="Mark as not done"),
    data_dir: DataDirOption = None,
) -> None:
    """Mark an item as done."""
    with _open_tree(data_dir) as tree:
        node = tree.set_done(node_id, not undo)
        typer.echo(f"{'[x]' if node.is_done else '[ ]'} {node.title}")


@app.command()
def delete(
    entity_id: str = typer.Argument(..., help="Item, container, note or workspace ID"),
    data_dir: DataDirOption = None,
) -> None:
    """Delete an item, container, note or workspace with everything below it."""
    with _open_tree(data_dir) as tree:
        if tree.find_node(entity_id) is not None:
            tree.delete_node(entity_id)
        elif tree.find_workspace(entity_id) is not None:
            tree.delete_workspace(entity_id)
        else:
            tree.delete_entity(entity_id)
        typer.echo(f"Deleted {entity_id}")


@app.command()
def tag(
    entry_id: str = typer.Argument(..., help="Item, container or note ID"),
    tags: Annotated[
        list[str] | None,
        typer.Argument(help="Tags to set (none clears them)"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Replace the tags of an item, container or note."""
    with _open_tree(data_dir) as tree:
        result = tree.set_tags(entry_id, tags or [])
        typer.echo(f"Tags of {entry_id}: {', '.join(result) or '(none)'}")


def _show_workspace(tree: ContentTree, workspace_id: str) -> None:
    ws = tree.get_workspace(workspace_id)
    members = tree.list_entities(workspace_id)
    typer.echo(f"{ws.name} ({len(members)} entries):\n")
    for entity in members:
        line = f"  {entity.kind:<9} {entity.title}"
        if isinstance(entity, Container):
            progress = tree.progress(entity.id)
            line += f"  {progress.done}/{progress.total}"
        typer.echo(f"{line}  [id={entity.id}]")


@app.command()
def show(
    entity_id: str = typer.Argument(..., help="Workspace, container, note or item ID"),
    max_depth: Annotated[
        int | None,
        typer.Option("--max-depth", "-m", help="Max depth levels to render"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Show a workspace, a container outline, a note, or an item subtree."""
    with _open_tree(data_dir) as tree:
        node = tree.find_node(entity_id)
        if node is not None:
            breadcrumb = tree.breadcrumb(entity_id)
            if len(breadcrumb) > 1:
                typer.echo(" > ".join(breadcrumb[:-1]))
            typer.echo(tree.render_markdown(node_id=entity_id, max_depth=max_depth))
            if node.description:
                typer.echo(f"\n{node.description}")
        elif tree.find_workspace(entity_id) is not None:
            _show_workspace(tree, entity_id)
        else:
            entity = tree.get_entity(entity_id)
            if isinstance(entity, Container):
                typer.echo(tree.render_markdown(container_id=entity_id, max_depth=max_depth))
            else:
                typer.echo(f"# {entity.title}\n\n{entity.body}")


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    workspace_id: Annotated[
        str | None,
        typer.Option("--workspace", "-w", help="Restrict to a workspace"),
    ] = None,
    tags: Annotated[
        list[str] | None,
        typer.Option("--tag", "-t", help="Only hits carrying this tag (repeatable)"),
    ] = None,
    limit: int = typer.Option(10, "--limit", "-n", help="Max results"),
    data_dir: DataDirOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Search titles, item descriptions and note bodies."""
    with _open_tree(data_dir) as tree:
        results, total = tree.search_text(workspace_id, query, tags=tags, limit=limit)
        if output_json:
            data = {
                "results": [
                    {
                        "id": r.id,
                        "kind": str(r.kind),
                        "title": r.title,
                        "breadcrumb": list(r.breadcrumb),
                        "depth": r.depth,
                        "container": r.container_name,
                        "snippet": r.snippet,
                        "tags": list(r.tags),
                    }
                    for r in results
                ],
                "total": total,
            }
            typer.echo(json.dumps(data, indent=2))
            return
        typer.echo(f"Found {total} results (showing {len(results)}):\n")
        for r in results:
            typer.echo(f"  [{r.container_name}] {r.title[:80]}")
            if r.breadcrumb:
                typer.echo(f"    {' > '.join(r.breadcrumb)}")
            if r.tags:
                typer.echo(f"    tags: {', '.join(r.tags)}")
            typer.echo(f"    {r.kind}  id={r.id}")
            typer.echo()


@app.command(name="import")
def import_cmd(
    source: Path = typer.Argument(..., help="Workspace JSON file"),
    data_dir: DataDirOption = None,
) -> None:
    """Import a workspace from a JSON file."""
    if not source.exists():
        logger.error("File not found: {}", source)
        raise typer.Exit(1)
    with _open_tree(data_dir) as tree:
        stats = import_file(tree, source)
        typer.echo(
            f"Imported {stats.entities_imported} entries "
            f"({stats.items_imported} items)  [id={stats.workspace_id}]"
        )


@app.command()
def export(
    workspace_id: str = typer.Argument(..., help="Workspace ID"),
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write to this file instead of stdout"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Export a workspace as JSON (the format 'import' reads)."""
    with _open_tree(data_dir) as tree:
        text = json.dumps(export_workspace(tree, workspace_id), indent=2, ensure_ascii=False)
    if output is None:
        typer.echo(text)
    else:
        output.write_text(text + "\n")
        typer.echo(f"Wrote {output}")


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from later_tree.mcp.server import run_mcp_server

    run_mcp_server()
