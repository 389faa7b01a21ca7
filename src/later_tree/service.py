"""ContentTree: the public surface of the store.

Every call resolves the workspace it touches and holds that workspace's lock,
then the lock of the shared connection. Lookups that only resolve an id hold
the connection lock alone.
Mutations additionally run as one transaction and, once committed, report the
scope ids they changed to the subscribed listeners.
"""

import sqlite3
from collections.abc import Collection, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from later_tree.config import MAX_DEPTH, SEARCH_PAGE_SIZE, SEARCH_PAGE_SIZE_MAX
from later_tree.core import tags as tagging
from later_tree.core import workspace as content
from later_tree.core.database.schema import migrate_schema, open_database
from later_tree.core.database.transaction import atomic
from later_tree.core.ids import new_id
from later_tree.core.locking import ChangeNotifier, ScopeLocks
from later_tree.core.ordering.collection import OrderedCollection
from later_tree.core.reorder.coordinator import MoveOutcome, ReorderCoordinator
from later_tree.core.search.projector import SearchProjector
from later_tree.core.search.searcher import FtsMatcher
from later_tree.core.tree.markdown import render_container_as_markdown, render_subtree_as_markdown
from later_tree.core.tree.navigation import TreeQueryEngine
from later_tree.core.tree.store import NodeStore
from later_tree.errors import NotFoundError
from later_tree.models.node import (
    Container,
    Entity,
    EntityKind,
    EntityRef,
    Node,
    Progress,
    Scope,
    SearchResult,
    SiblingScope,
    Workspace,
    WorkspaceScope,
)
from later_tree.protocols import MatcherProtocol, ScopeListener


class ContentTree:
    """Ordered, depth-bounded content of every workspace in one database."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        max_depth: int = MAX_DEPTH,
        matcher: MatcherProtocol | None = None,
    ) -> None:
        self.conn = conn
        self.collection = OrderedCollection(conn)
        self.store = NodeStore(conn, max_depth=max_depth, collection=self.collection)
        self.queries = TreeQueryEngine(self.store)
        self.coordinator = ReorderCoordinator(self.store)
        self.projector = SearchProjector(self.queries)
        self.matcher = matcher or FtsMatcher(conn)
        self.locks = ScopeLocks()
        self.notifier = ChangeNotifier()

    @classmethod
    def open(cls, path: Path | str, **kwargs) -> "ContentTree":
        """Open (creating or migrating as needed) the database at ``path``."""
        conn = open_database(path)
        migrate_schema(conn)
        return cls(conn, **kwargs)

    def close(self) -> None:
        self.conn.close()

    # --- plumbing ---

    def _entity_workspace(self, entity_id: str) -> str:
        with self.locks.database:
            row = self.conn.execute(
                "SELECT workspace_id FROM entities WHERE id = ?", (entity_id,)
            ).fetchone()
        if row is None:
            msg = f"Entity {entity_id!r} does not exist"
            raise NotFoundError(msg)
        return row[0]

    def _node_workspace(self, node_id: str) -> str:
        with self.locks.database:
            row = self.conn.execute(
                "SELECT c.workspace_id FROM nodes n JOIN entities c ON c.id = n.container_id "
                "WHERE n.id = ?",
                (node_id,),
            ).fetchone()
        if row is None:
            msg = f"Node {node_id!r} does not exist"
            raise NotFoundError(msg)
        return row[0]

    def _scope_workspace(self, scope: Scope) -> str:
        if isinstance(scope, WorkspaceScope):
            return scope.workspace_id
        return self._entity_workspace(scope.container_id)

    @contextmanager
    def _reading(self, workspace_id: str) -> Iterator[None]:
        with self.locks.hold(workspace_id):
            yield

    @contextmanager
    def _mutating(self, workspace_id: str) -> Iterator[list[str]]:
        """Lock, run one transaction, then announce the changed scopes."""
        changed: list[str] = []
        with self.locks.hold(workspace_id), atomic(self.conn, "tree"):
            yield changed
        self.notifier.notify(changed)

    # --- change notification ---

    def on_scope_changed(self, listener: ScopeListener) -> None:
        self.notifier.subscribe(listener)

    def remove_listener(self, listener: ScopeListener) -> None:
        self.notifier.unsubscribe(listener)

    # --- workspaces and their members ---

    def create_workspace(self, name: str) -> Workspace:
        workspace_id = new_id()
        with self._mutating(workspace_id) as changed:
            workspace = content.create_workspace(self.conn, name=name, workspace_id=workspace_id)
            changed.append(WorkspaceScope(workspace_id).scope_id)
        return workspace

    def get_workspace(self, workspace_id: str) -> Workspace:
        with self._reading(workspace_id):
            return content.get_workspace(self.conn, workspace_id)

    def find_workspace(self, workspace_id: str) -> Workspace | None:
        with self.locks.database:
            return content.find_workspace(self.conn, workspace_id)

    def list_workspaces(self) -> list[Workspace]:
        with self.locks.database:
            return content.list_workspaces(self.conn)

    def delete_workspace(self, workspace_id: str) -> bool:
        with self._mutating(workspace_id) as changed:
            deleted = content.delete_workspace(self.conn, workspace_id)
            if deleted:
                changed.append(WorkspaceScope(workspace_id).scope_id)
        self.locks.forget(workspace_id)
        return deleted

    def create_entity(
        self, workspace_id: str, *, kind: EntityKind, title: str, body: str = ""
    ) -> Entity:
        with self._mutating(workspace_id) as changed:
            entity = content.create_entity(
                self.conn,
                self.collection,
                workspace_id=workspace_id,
                kind=kind,
                title=title,
                body=body,
            )
            changed.append(WorkspaceScope(workspace_id).scope_id)
        return entity

    def get_entity(self, entity_id: str) -> Entity:
        with self._reading(self._entity_workspace(entity_id)):
            return content.get_entity(self.conn, entity_id)

    def list_entities(self, workspace_id: str) -> list[Entity]:
        with self._reading(workspace_id):
            return content.list_entities(self.conn, self.collection, workspace_id)

    def rename_entity(self, entity_id: str, title: str) -> Entity:
        workspace_id = self._entity_workspace(entity_id)
        with self._mutating(workspace_id) as changed:
            entity = content.rename_entity(self.conn, entity_id, title)
            changed.append(WorkspaceScope(workspace_id).scope_id)
        return entity

    def delete_entity(self, entity_id: str) -> None:
        """Delete a container (with its items) or a note. Absent ids are a no-op."""
        with self.locks.database:
            entity = content.find_entity(self.conn, entity_id)
        if entity is None:
            return
        with self._mutating(entity.workspace_id) as changed:
            if content.delete_entity(self.conn, self.collection, entity_id):
                changed.append(WorkspaceScope(entity.workspace_id).scope_id)
                if isinstance(entity, Container):
                    changed.append(SiblingScope(entity_id).scope_id)

    # --- nodes ---

    def create_node(
        self,
        container_id: str,
        title: str,
        parent_id: str | None = None,
        *,
        description: str = "",
        index: int | None = None,
    ) -> Node:
        """Create a node at the end of its sibling set, or at ``index`` in it.

        Creation and positioning are one unit: an out-of-range ``index``
        leaves no node behind.
        """
        with self._mutating(self._entity_workspace(container_id)) as changed:
            node = self.store.create(container_id, title, parent_id, description=description)
            if index is not None:
                self.coordinator.move_node(node.id, new_parent_id=parent_id, to_index=index)
                node = self.store.get(node.id)
            changed.append(node.scope.scope_id)
        return node

    def reparent_node(self, node_id: str, new_parent_id: str | None = None) -> Node:
        with self._mutating(self._node_workspace(node_id)) as changed:
            old_scope = self.store.get(node_id).scope
            node = self.store.reparent(node_id, new_parent_id)
            changed.extend([old_scope.scope_id, node.scope.scope_id])
        return node

    def delete_node(self, node_id: str) -> None:
        """Delete a node and its descendants. Absent ids are a no-op."""
        node = self.find_node(node_id)
        if node is None:
            return
        with self._mutating(self._entity_workspace(node.container_id)) as changed:
            if self.store.delete(node_id):
                changed.append(node.scope.scope_id)

    def set_done(self, node_id: str, is_done: bool) -> Node:
        with self._mutating(self._node_workspace(node_id)) as changed:
            node = self.store.set_done(node_id, is_done)
            changed.append(node.scope.scope_id)
        return node

    def rename_node(self, node_id: str, title: str) -> Node:
        with self._mutating(self._node_workspace(node_id)) as changed:
            node = self.store.rename(node_id, title)
            changed.append(node.scope.scope_id)
        return node

    def set_description(self, node_id: str, description: str) -> Node:
        with self._mutating(self._node_workspace(node_id)) as changed:
            node = self.store.set_description(node_id, description)
            changed.append(node.scope.scope_id)
        return node

    # --- tags ---

    def _owner(self, entry_id: str) -> tuple[EntityRef, str, str]:
        """Ref, workspace and changed scope id of a node or workspace member."""
        node = self.find_node(entry_id)
        if node is not None:
            return node.ref, self._entity_workspace(node.container_id), node.scope.scope_id
        workspace_id = self._entity_workspace(entry_id)
        with self.locks.database:
            entity = content.get_entity(self.conn, entry_id)
        return entity.ref, workspace_id, WorkspaceScope(workspace_id).scope_id

    def get_tags(self, entry_id: str) -> tuple[str, ...]:
        owner, workspace_id, _ = self._owner(entry_id)
        with self._reading(workspace_id):
            return tagging.get_tags(self.conn, owner)

    def set_tags(self, entry_id: str, new_tags: Iterable[str]) -> tuple[str, ...]:
        """Replace the tags of a node or workspace member; returns them normalized."""
        owner, workspace_id, scope_id = self._owner(entry_id)
        with self._mutating(workspace_id) as changed:
            result = tagging.set_tags(self.conn, owner, new_tags)
            changed.append(scope_id)
        return result

    # --- ordering ---

    def reorder(self, scope: Scope, ref: EntityRef, from_index: int, to_index: int) -> MoveOutcome:
        with self._mutating(self._scope_workspace(scope)) as changed:
            outcome = self.coordinator.reorder(scope, ref, from_index, to_index)
            changed.append(scope.scope_id)
        return outcome

    def move_node(self, node_id: str, *, new_parent_id: str | None, to_index: int) -> MoveOutcome:
        with self._mutating(self._node_workspace(node_id)) as changed:
            old_scope = self.store.get(node_id).scope
            outcome = self.coordinator.move_node(
                node_id, new_parent_id=new_parent_id, to_index=to_index
            )
            changed.extend([old_scope.scope_id, self.store.get(node_id).scope.scope_id])
        return outcome

    def drop_node(
        self, node_id: str, *, above_id: str | None = None, below_id: str | None = None
    ) -> MoveOutcome:
        with self._mutating(self._node_workspace(node_id)) as changed:
            old_scope = self.store.get(node_id).scope
            outcome = self.coordinator.drop_node(node_id, above_id=above_id, below_id=below_id)
            changed.extend([old_scope.scope_id, self.store.get(node_id).scope.scope_id])
        return outcome

    def compact(self, scope: Scope) -> None:
        """Renumber a scope's keys to 0..n-1 without changing its order."""
        with self._mutating(self._scope_workspace(scope)) as changed:
            self.collection.compact(scope)
            changed.append(scope.scope_id)

    # --- queries ---

    def find_node(self, node_id: str) -> Node | None:
        with self.locks.database:
            return self.store.find(node_id)

    def get_node(self, node_id: str) -> Node:
        with self._reading(self._node_workspace(node_id)):
            return self.store.get(node_id)

    def list_roots(self, container_id: str) -> list[Node]:
        with self._reading(self._entity_workspace(container_id)):
            return self.queries.root_nodes(container_id)

    def list_children(self, node_id: str) -> list[Node]:
        with self._reading(self._node_workspace(node_id)):
            return self.queries.children(node_id)

    def subtree(self, node_id: str, max_depth_from_here: int | None = None) -> list[tuple[Node, int]]:
        with self._reading(self._node_workspace(node_id)):
            return self.queries.subtree(node_id, max_depth_from_here)

    def container_tree(self, container_id: str, max_depth: int | None = None) -> list[tuple[Node, int]]:
        with self._reading(self._entity_workspace(container_id)):
            return self.queries.container_tree(container_id, max_depth)

    def breadcrumb(self, node_id: str) -> list[str]:
        with self._reading(self._node_workspace(node_id)):
            return self.queries.breadcrumb(node_id)

    def siblings(self, node_id: str, count: int = 3) -> tuple[list[Node], list[Node]]:
        with self._reading(self._node_workspace(node_id)):
            return self.queries.siblings(node_id, count)

    def progress(self, container_id: str) -> Progress:
        with self._reading(self._entity_workspace(container_id)):
            return self.queries.container_progress(container_id)

    def render_markdown(
        self,
        *,
        container_id: str | None = None,
        node_id: str | None = None,
        max_depth: int | None = None,
    ) -> str:
        """Markdown outline of a whole container, or of one node's subtree."""
        if node_id is not None:
            with self._reading(self._node_workspace(node_id)):
                return render_subtree_as_markdown(self.queries, node_id=node_id, max_depth=max_depth)
        if container_id is None:
            msg = "Either container_id or node_id is required"
            raise ValueError(msg)
        with self._reading(self._entity_workspace(container_id)):
            return render_container_as_markdown(
                self.queries, container_id=container_id, max_depth=max_depth
            )

    # --- search ---

    def search(self, matched_entity_id: str) -> SearchResult:
        """Attach hierarchy context to one matched id."""
        node = self.find_node(matched_entity_id)
        if node is not None:
            workspace_id = self._entity_workspace(node.container_id)
        else:
            workspace_id = self._entity_workspace(matched_entity_id)
        with self._reading(workspace_id):
            return self.projector.project(matched_entity_id)

    def search_text(
        self,
        workspace_id: str | None,
        query: str,
        *,
        kinds: Collection[EntityKind] | None = None,
        tags: Iterable[str] | None = None,
        limit: int = SEARCH_PAGE_SIZE,
        offset: int = 0,
    ) -> tuple[list[SearchResult], int]:
        """Full-text search, each hit projected with its breadcrumb.

        ``workspace_id=None`` searches every workspace. ``tags`` keeps only
        hits carrying all of them.
        """
        limit = max(1, min(limit, SEARCH_PAGE_SIZE_MAX))
        guard = self.locks.database if workspace_id is None else self._reading(workspace_id)
        with guard:
            hits, total = self.matcher.match(
                query,
                workspace_id=workspace_id,
                kinds=kinds,
                tags=tags,
                limit=limit,
                offset=offset,
            )
            return self.projector.project_hits(hits), total
