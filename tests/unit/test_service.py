"""Tests for the ContentTree facade: notifications, workspaces, locking."""

import threading
from pathlib import Path

import pytest

from later_tree.core.locking import ChangeNotifier, ScopeLocks
from later_tree.errors import (
    CycleDetectedError,
    DepthExceededError,
    InvalidRangeError,
    NotFoundError,
    TreeError,
)
from later_tree.models.node import EntityKind, Leaf, Node, SiblingScope, WorkspaceScope
from later_tree.service import ContentTree
from tests.unit.conftest import Sample
from tests.unit.fakes import FailingListener, RecordingListener


def test_mutations_announce_changed_scopes(tree: ContentTree, sample: Sample) -> None:
    listener = RecordingListener()
    tree.on_scope_changed(listener)

    eggs = tree.create_node(sample.groceries_id, "Eggs")
    tree.set_done(sample.oat_id, True)
    tree.reparent_node(eggs.id, sample.buy_id)

    assert listener.scope_ids == [
        f"container:{sample.groceries_id}",
        f"node:{sample.milk_id}",
        f"container:{sample.groceries_id}",
        f"node:{sample.buy_id}",
    ]


def test_rejected_mutation_announces_nothing(tree: ContentTree, sample: Sample) -> None:
    listener = RecordingListener()
    tree.on_scope_changed(listener)
    with pytest.raises(DepthExceededError):
        tree.create_node(sample.groceries_id, "Too deep", parent_id=sample.oat_id)
    assert listener.scope_ids == []


def test_removed_listener_is_not_called(tree: ContentTree, sample: Sample) -> None:
    listener = RecordingListener()
    tree.on_scope_changed(listener)
    tree.remove_listener(listener)
    tree.create_node(sample.groceries_id, "Eggs")
    assert listener.scope_ids == []


def test_failing_listener_does_not_block_others(tree: ContentTree, sample: Sample) -> None:
    failing = FailingListener()
    recording = RecordingListener()
    tree.on_scope_changed(failing)
    tree.on_scope_changed(recording)

    node = tree.create_node(sample.groceries_id, "Eggs")

    assert failing.calls == 1
    assert recording.scope_ids == [f"container:{sample.groceries_id}"]
    assert tree.store.get(node.id).title == "Eggs"


def test_workspace_members_keep_manual_order(tree: ContentTree, sample: Sample) -> None:
    members = tree.list_entities(sample.workspace_id)
    assert [(m.kind, m.title) for m in members] == [
        (EntityKind.TODO_LIST, "Groceries"),
        (EntityKind.LIST, "Ideas"),
        (EntityKind.NOTE, "Journal"),
    ]
    journal = members[2]
    assert isinstance(journal, Leaf)
    assert journal.body == "Remember the farmers market"


def test_nodes_cannot_be_workspace_members(tree: ContentTree, sample: Sample) -> None:
    with pytest.raises(ValueError, match="inside containers"):
        tree.create_entity(sample.workspace_id, kind=EntityKind.NODE, title="Loose item")


def test_entity_in_missing_workspace(tree: ContentTree) -> None:
    with pytest.raises(NotFoundError):
        tree.create_entity("missing", kind=EntityKind.NOTE, title="Orphan")


def test_delete_container_removes_its_items(tree: ContentTree, sample: Sample) -> None:
    listener = RecordingListener()
    tree.on_scope_changed(listener)

    tree.delete_entity(sample.groceries_id)
    tree.delete_entity(sample.groceries_id)

    count = tree.conn.execute(
        "SELECT COUNT(*) FROM nodes WHERE container_id = ?", (sample.groceries_id,)
    ).fetchone()[0]
    assert count == 0
    assert [m.id for m in tree.list_entities(sample.workspace_id)] == [
        sample.ideas_id,
        sample.journal_id,
    ]
    assert listener.scope_ids == [
        f"workspace:{sample.workspace_id}",
        f"container:{sample.groceries_id}",
    ]


def test_delete_workspace_cascades(tree: ContentTree, sample: Sample) -> None:
    assert tree.delete_workspace(sample.workspace_id)
    assert not tree.delete_workspace(sample.workspace_id)
    assert tree.list_workspaces() == []
    assert tree.conn.execute("SELECT COUNT(*) FROM entities").fetchone()[0] == 0
    assert tree.conn.execute("SELECT COUNT(*) FROM nodes").fetchone()[0] == 0


def test_delete_node_is_idempotent(tree: ContentTree, sample: Sample) -> None:
    tree.delete_node(sample.bread_id)
    tree.delete_node(sample.bread_id)
    tree.delete_node("never-existed")
    assert [n.id for n in tree.list_roots(sample.groceries_id)] == [sample.buy_id]


def test_compact_after_deletes(tree: ContentTree, sample: Sample) -> None:
    tree.delete_entity(sample.groceries_id)
    tree.compact(WorkspaceScope(sample.workspace_id))
    assert [m.sort_key for m in tree.list_entities(sample.workspace_id)] == [0, 1]

    eggs = tree.create_node(sample.ideas_id, "Eggs")
    tree.delete_node(sample.garden_id)
    tree.compact(SiblingScope(sample.ideas_id))
    assert tree.store.get(eggs.id).sort_key == 0


def test_rename_entity(tree: ContentTree, sample: Sample) -> None:
    assert tree.rename_entity(sample.ideas_id, "Someday").title == "Someday"
    with pytest.raises(NotFoundError):
        tree.rename_entity("missing", "x")


def test_create_node_at_index(tree: ContentTree, sample: Sample) -> None:
    eggs = tree.create_node(sample.groceries_id, "Eggs", index=0)
    assert eggs.sort_key == 0
    assert [n.title for n in tree.list_roots(sample.groceries_id)] == [
        "Eggs",
        "Buy groceries",
        "Bread",
    ]


def test_create_node_out_of_range_index_leaves_nothing(
    tree: ContentTree, sample: Sample
) -> None:
    listener = RecordingListener()
    tree.on_scope_changed(listener)
    with pytest.raises(InvalidRangeError):
        tree.create_node(sample.groceries_id, "Eggs", index=9)

    assert [n.title for n in tree.list_roots(sample.groceries_id)] == ["Buy groceries", "Bread"]
    assert tree.conn.execute("SELECT COUNT(*) FROM nodes WHERE title = 'Eggs'").fetchone()[0] == 0
    assert listener.scope_ids == []


def test_node_description(tree: ContentTree, sample: Sample) -> None:
    node = tree.create_node(sample.ideas_id, "Herbs", description="  basil, thyme ")
    assert node.description == "basil, thyme"
    assert tree.set_description(node.id, "mint").description == "mint"
    assert tree.get_node(node.id).description == "mint"
    with pytest.raises(NotFoundError):
        tree.set_description("missing", "x")


def test_tags_on_nodes_and_members(tree: ContentTree, sample: Sample) -> None:
    listener = RecordingListener()
    tree.on_scope_changed(listener)

    assert tree.set_tags(sample.milk_id, ["Dairy", " weekly ", "dairy", ""]) == ("dairy", "weekly")
    assert tree.set_tags(sample.journal_id, ["private"]) == ("private",)

    assert tree.get_tags(sample.milk_id) == ("dairy", "weekly")
    assert tree.get_tags(sample.journal_id) == ("private",)
    assert tree.get_tags(sample.bread_id) == ()
    assert listener.scope_ids == [
        f"node:{sample.buy_id}",
        f"workspace:{sample.workspace_id}",
    ]

    tree.set_tags(sample.milk_id, [])
    assert tree.get_tags(sample.milk_id) == ()
    with pytest.raises(NotFoundError):
        tree.set_tags("missing", ["x"])


def test_tags_go_with_deleted_entries(tree: ContentTree, sample: Sample) -> None:
    tree.set_tags(sample.oat_id, ["dairy"])
    tree.set_tags(sample.groceries_id, ["weekly"])
    tree.delete_node(sample.milk_id)
    tree.delete_entity(sample.groceries_id)
    assert tree.conn.execute("SELECT COUNT(*) FROM node_tags").fetchone()[0] == 0
    assert tree.conn.execute("SELECT COUNT(*) FROM entity_tags").fetchone()[0] == 0


def test_find_lookups(tree: ContentTree, sample: Sample) -> None:
    assert tree.find_workspace(sample.workspace_id).name == "Home"
    assert tree.find_workspace("missing") is None
    assert tree.find_node(sample.milk_id).title == "Milk"
    assert tree.find_node(sample.groceries_id) is None
    with pytest.raises(NotFoundError):
        tree.get_workspace("missing")
    with pytest.raises(NotFoundError):
        tree.get_entity("missing")


def test_open_creates_database_file(tmp_path: Path) -> None:
    db_path = tmp_path / "later.db"
    tree = ContentTree.open(db_path)
    ws = tree.create_workspace("Home")
    tree.close()

    reopened = ContentTree.open(db_path)
    try:
        assert [w.id for w in reopened.list_workspaces()] == [ws.id]
    finally:
        reopened.close()


def test_scope_locks_are_per_workspace() -> None:
    locks = ScopeLocks()
    entered = threading.Event()
    release = threading.Event()

    def hold_first() -> None:
        with locks.hold("w1"):
            entered.set()
            release.wait(timeout=5)

    worker = threading.Thread(target=hold_first)
    worker.start()
    assert entered.wait(timeout=5)

    # Another workspace's lock is free, but the shared connection is not.
    other = locks._lock_for("w2")
    assert other.acquire(blocking=False)
    other.release()
    assert not locks.database.acquire(blocking=False)
    assert not locks._lock_for("w1").acquire(blocking=False)

    release.set()
    worker.join(timeout=5)
    with locks.hold("w1"), locks.hold("w1"):
        pass


def test_workspaces_do_not_interleave_transactions(
    tree: ContentTree, sample: Sample, monkeypatch: pytest.MonkeyPatch
) -> None:
    work = tree.create_workspace("Work")
    tasks = tree.create_entity(work.id, kind=EntityKind.TODO_LIST, title="Tasks")
    task = tree.create_node(tasks.id, "Write report")

    inside = threading.Event()
    release = threading.Event()
    reparent = tree.store.reparent

    def slow_reparent(node_id: str, new_parent_id: str | None = None) -> Node:
        inside.set()
        release.wait(timeout=5)
        return reparent(node_id, new_parent_id)

    monkeypatch.setattr(tree.store, "reparent", slow_reparent)
    errors: list[type[TreeError]] = []

    def move_into_itself() -> None:
        try:
            tree.reparent_node(task.id, task.id)
        except TreeError as exc:
            errors.append(type(exc))

    mover = threading.Thread(target=move_into_itself)
    mover.start()
    assert inside.wait(timeout=5)

    # A write to another workspace waits for the open transaction to finish.
    writer = threading.Thread(target=tree.create_node, args=(sample.groceries_id, "Eggs"))
    writer.start()
    writer.join(timeout=0.2)
    assert writer.is_alive()

    release.set()
    mover.join(timeout=5)
    writer.join(timeout=5)

    assert errors == [CycleDetectedError]
    assert [n.title for n in tree.list_roots(sample.groceries_id)] == [
        "Buy groceries",
        "Bread",
        "Eggs",
    ]
    assert [n.title for n in tree.list_roots(tasks.id)] == ["Write report"]


def test_unscoped_search_waits_for_open_transaction(
    tree: ContentTree, sample: Sample, monkeypatch: pytest.MonkeyPatch
) -> None:
    inside = threading.Event()
    release = threading.Event()
    set_done = tree.store.set_done

    def slow_set_done(node_id: str, is_done: bool) -> Node:
        node = set_done(node_id, is_done)
        inside.set()
        release.wait(timeout=5)
        return node

    monkeypatch.setattr(tree.store, "set_done", slow_set_done)
    worker = threading.Thread(target=tree.set_done, args=(sample.bread_id, True))
    worker.start()
    assert inside.wait(timeout=5)

    found: list[int] = []
    searcher = threading.Thread(target=lambda: found.append(tree.search_text(None, "bread")[1]))
    searcher.start()
    searcher.join(timeout=0.2)
    assert searcher.is_alive()

    release.set()
    worker.join(timeout=5)
    searcher.join(timeout=5)
    assert found == [1]


def test_change_notifier_deduplicates_scope_ids() -> None:
    notifier = ChangeNotifier()
    listener = RecordingListener()
    notifier.subscribe(listener)
    notifier.subscribe(listener)
    notifier.notify(["node:a", "node:a", "container:c"])
    assert listener.scope_ids == ["node:a", "container:c"]
