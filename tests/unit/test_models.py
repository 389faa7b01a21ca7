"""Tests for domain models and errors."""

from later_tree.errors import (
    CycleDetectedError,
    DepthExceededError,
    ErrorKind,
    NotFoundError,
    TreeError,
)
from later_tree.models.node import (
    Container,
    EntityKind,
    EntityRef,
    Leaf,
    Node,
    SiblingScope,
    WorkspaceScope,
)


def test_container_kinds() -> None:
    assert EntityKind.TODO_LIST.is_container
    assert EntityKind.LIST.is_container
    assert not EntityKind.NOTE.is_container
    assert not EntityKind.NODE.is_container


def test_scope_ids() -> None:
    assert WorkspaceScope("w1").scope_id == "workspace:w1"
    assert SiblingScope("c1").scope_id == "container:c1"
    assert SiblingScope("c1", "n1").scope_id == "node:n1"


def test_entity_refs_carry_their_kind() -> None:
    container = Container(
        id="c1",
        workspace_id="w1",
        kind=EntityKind.LIST,
        title="Ideas",
        sort_key=0,
        created_at=1,
        updated_at=1,
    )
    leaf = Leaf(
        id="l1", workspace_id="w1", title="Journal", body="", sort_key=1, created_at=1, updated_at=1
    )
    assert container.ref == EntityRef(EntityKind.LIST, "c1")
    assert leaf.ref == EntityRef(EntityKind.NOTE, "l1")
    assert leaf.kind is EntityKind.NOTE


def test_node_scope_is_its_sibling_set() -> None:
    node = Node(
        id="n2",
        container_id="c1",
        parent_id="n1",
        title="Milk",
        is_done=False,
        sort_key=0,
        depth=1,
        created_at=1,
        updated_at=1,
    )
    assert node.scope == SiblingScope("c1", "n1")
    assert node.ref == EntityRef(EntityKind.NODE, "n2")


def test_errors_expose_kind_and_action_hint() -> None:
    err = DepthExceededError("too deep")
    assert isinstance(err, TreeError)
    assert err.kind is ErrorKind.DEPTH_EXCEEDED
    assert err.action_hint == "Can't nest here, maximum depth reached."
    assert err.message == "too deep"
    assert str(err) == "too deep"
    assert CycleDetectedError("x").kind is ErrorKind.CYCLE_DETECTED
    assert NotFoundError("x").kind == "not_found"
