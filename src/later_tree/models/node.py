"""Domain models for the content tree."""

from dataclasses import dataclass
from enum import StrEnum


class EntityKind(StrEnum):
    """Discriminator for everything that can be ordered."""

    NOTE = "note"
    TODO_LIST = "todo_list"
    LIST = "list"
    NODE = "node"

    @property
    def is_container(self) -> bool:
        return self in (EntityKind.TODO_LIST, EntityKind.LIST)


@dataclass(frozen=True)
class EntityRef:
    """Reference to an orderable entity: a workspace member or a node."""

    kind: EntityKind
    id: str


@dataclass(frozen=True)
class WorkspaceScope:
    """Top-level order of containers and leaves inside a workspace."""

    workspace_id: str

    @property
    def scope_id(self) -> str:
        return f"workspace:{self.workspace_id}"


@dataclass(frozen=True)
class SiblingScope:
    """One sibling set of nodes: the roots of a container or one node's children."""

    container_id: str
    parent_id: str | None = None

    @property
    def scope_id(self) -> str:
        if self.parent_id is None:
            return f"container:{self.container_id}"
        return f"node:{self.parent_id}"


Scope = WorkspaceScope | SiblingScope


@dataclass(frozen=True)
class Workspace:
    """A space holding an ordered mix of containers and notes."""

    id: str
    name: str
    created_at: int
    updated_at: int


@dataclass(frozen=True)
class Container:
    """A todo list or custom list; holds nested nodes."""

    id: str
    workspace_id: str
    kind: EntityKind
    title: str
    sort_key: int
    created_at: int
    updated_at: int

    @property
    def ref(self) -> EntityRef:
        return EntityRef(self.kind, self.id)


@dataclass(frozen=True)
class Leaf:
    """A note. Has a body and never has children."""

    id: str
    workspace_id: str
    title: str
    body: str
    sort_key: int
    created_at: int
    updated_at: int

    @property
    def kind(self) -> EntityKind:
        return EntityKind.NOTE

    @property
    def ref(self) -> EntityRef:
        return EntityRef(EntityKind.NOTE, self.id)


Entity = Container | Leaf


@dataclass(frozen=True)
class Node:
    """An item inside a container (todo item or list item).

    ``depth`` is derived from the parent chain when the node is read; it is
    never stored. ``description`` is free text shown under the title.
    """

    id: str
    container_id: str
    parent_id: str | None
    title: str
    is_done: bool
    sort_key: int
    depth: int
    created_at: int
    updated_at: int
    description: str = ""

    @property
    def ref(self) -> EntityRef:
        return EntityRef(EntityKind.NODE, self.id)

    @property
    def scope(self) -> SiblingScope:
        return SiblingScope(self.container_id, self.parent_id)


@dataclass(frozen=True)
class Progress:
    """Completed and total node counts for a container."""

    done: int
    total: int


@dataclass(frozen=True)
class MatchHit:
    """A raw full-text hit, before tree context is attached."""

    id: str
    kind: EntityKind
    snippet: str = ""


@dataclass(frozen=True)
class SearchResult:
    """A search hit enriched with its place in the hierarchy."""

    id: str
    kind: EntityKind
    title: str
    breadcrumb: tuple[str, ...]
    depth: int
    container_name: str
    snippet: str = ""
    tags: tuple[str, ...] = ()
