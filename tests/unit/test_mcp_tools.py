"""Tests for MCP tool core functions."""

from later_tree.mcp.server import (
    later_add_item,
    later_delete_item,
    later_get_item_context,
    later_list_content,
    later_move_item,
    later_read_container,
    later_search,
    later_set_done,
    later_set_tags,
)
from later_tree.service import ContentTree
from tests.unit.conftest import Sample


def test_list_content_without_workspace_lists_workspaces(
    tree: ContentTree, sample: Sample
) -> None:
    result = later_list_content(tree)
    assert result["count"] == 1
    assert result["workspaces"][0]["id"] == sample.workspace_id
    assert result["workspaces"][0]["name"] == "Home"


def test_list_content_of_workspace_has_progress(tree: ContentTree, sample: Sample) -> None:
    tree.set_done(sample.bread_id, True)
    result = later_list_content(tree, workspace_id=sample.workspace_id)
    entries = result["entries"]
    assert [e["title"] for e in entries] == ["Groceries", "Ideas", "Journal"]
    assert (entries[0]["done"], entries[0]["total"]) == (1, 4)
    assert "total" not in entries[2]


def test_list_content_missing_workspace_is_error(tree: ContentTree) -> None:
    result = later_list_content(tree, workspace_id="missing")
    assert result["kind"] == "not_found"
    assert "error" in result


def test_read_container_markdown(tree: ContentTree, sample: Sample) -> None:
    result = later_read_container(tree, container_id=sample.groceries_id)
    assert "error" not in result
    assert result["content"].startswith("# Groceries\n")
    assert "        - [ ] Oat milk" in result["content"]


def test_read_container_json_includes_recursive_children(
    tree: ContentTree, sample: Sample
) -> None:
    result = later_read_container(
        tree, container_id=sample.groceries_id, output_format="json", max_depth=1
    )
    buy, bread = result["items"]
    assert buy["id"] == sample.buy_id
    assert buy["child_count"] == 1
    milk = buy["children"][0]
    assert milk["title"] == "Milk"
    assert milk["depth"] == 1
    assert "children" not in milk
    assert bread["children"] == []


def test_read_note_returns_body(tree: ContentTree, sample: Sample) -> None:
    result = later_read_container(tree, container_id=sample.journal_id)
    assert result["body"] == "Remember the farmers market"


def test_item_context(tree: ContentTree, sample: Sample) -> None:
    result = later_get_item_context(tree, node_id=sample.milk_id)
    assert result["breadcrumb"] == "Buy groceries > Milk"
    assert result["container"]["title"] == "Groceries"
    assert result["siblings_before"] == []
    assert [c["id"] for c in result["children"]] == [sample.oat_id]

    root = later_get_item_context(tree, node_id=sample.bread_id)
    assert [s["title"] for s in root["siblings_before"]] == ["Buy groceries"]


def test_item_context_missing_node(tree: ContentTree) -> None:
    assert later_get_item_context(tree, node_id="missing")["kind"] == "not_found"


def test_search_returns_breadcrumbs(tree: ContentTree, sample: Sample) -> None:
    result = later_search(tree, query="milk", workspace_id=sample.workspace_id)
    assert result["total"] == 2
    by_id = {r["id"]: r for r in result["results"]}
    assert by_id[sample.oat_id]["breadcrumb"] == "Buy groceries > Milk > Oat milk"
    assert by_id[sample.oat_id]["container"] == "Groceries"
    assert not result["has_more"]


def test_search_paginates(tree: ContentTree, sample: Sample) -> None:
    first = later_search(tree, query="milk", limit=1)
    assert first["count"] == 1
    assert first["has_more"]
    second = later_search(tree, query="milk", limit=1, offset=first["next_offset"])
    assert second["count"] == 1
    assert second["results"][0]["id"] != first["results"][0]["id"]


def test_search_filters_kinds(tree: ContentTree, sample: Sample) -> None:
    result = later_search(tree, query="market", kinds=["note"])
    assert [r["id"] for r in result["results"]] == [sample.journal_id]
    assert later_search(tree, query="market", kinds=["node"])["total"] == 0


def test_search_rejects_empty_query_and_unknown_kind(tree: ContentTree) -> None:
    assert "error" in later_search(tree, query="  ")
    assert "error" in later_search(tree, query="milk", kinds=["folder"])


def test_add_item_at_index(tree: ContentTree, sample: Sample) -> None:
    result = later_add_item(tree, container_id=sample.groceries_id, title="Eggs", index=0)
    created = result["created"]
    assert created["depth"] == 0
    assert [n.id for n in tree.list_roots(sample.groceries_id)][0] == created["id"]


def test_add_item_out_of_range_index_leaves_nothing(tree: ContentTree, sample: Sample) -> None:
    result = later_add_item(tree, container_id=sample.groceries_id, title="Eggs", index=9)
    assert result["kind"] == "invalid_range"
    assert [n.title for n in tree.list_roots(sample.groceries_id)] == ["Buy groceries", "Bread"]


def test_add_item_with_description(tree: ContentTree, sample: Sample) -> None:
    result = later_add_item(
        tree, container_id=sample.ideas_id, title="Herbs", description="basil and thyme"
    )
    assert result["created"]["description"] == "basil and thyme"
    assert "description" not in later_get_item_context(tree, node_id=sample.garden_id)["item"]


def test_add_item_too_deep_is_error(tree: ContentTree, sample: Sample) -> None:
    result = later_add_item(
        tree, container_id=sample.groceries_id, title="Too deep", parent_id=sample.oat_id
    )
    assert result["kind"] == "depth_exceeded"
    assert result["error"] == "Can't nest here, maximum depth reached."


def test_move_item_by_neighbors(tree: ContentTree, sample: Sample) -> None:
    result = later_move_item(tree, node_id=sample.bread_id, below_id=sample.buy_id)
    assert result["state"] == "committed"
    assert result["index"] == 0
    assert not result["cross_parent"]
    assert [n.id for n in tree.list_roots(sample.groceries_id)] == [
        sample.bread_id,
        sample.buy_id,
    ]


def test_move_item_under_new_parent(tree: ContentTree, sample: Sample) -> None:
    result = later_move_item(tree, node_id=sample.bread_id, parent_id=sample.buy_id, index=0)
    assert result["cross_parent"]
    assert result["parent_id"] == sample.buy_id
    assert tree.get_node(sample.bread_id).depth == 1


def test_move_item_into_itself_is_error(tree: ContentTree, sample: Sample) -> None:
    result = later_move_item(tree, node_id=sample.buy_id, parent_id=sample.oat_id)
    assert result["kind"] == "cycle_detected"


def test_set_done_and_delete(tree: ContentTree, sample: Sample) -> None:
    assert later_set_done(tree, node_id=sample.garden_id) == {
        "id": sample.garden_id,
        "done": True,
    }
    assert later_delete_item(tree, node_id=sample.buy_id) == {"deleted": sample.buy_id}
    assert later_delete_item(tree, node_id=sample.buy_id) == {"deleted": sample.buy_id}
    assert [n.id for n in tree.list_roots(sample.groceries_id)] == [sample.bread_id]


def test_set_tags_and_search_by_tag(tree: ContentTree, sample: Sample) -> None:
    assert later_set_tags(tree, entry_id=sample.oat_id, tags=["Vegan", "dairy"]) == {
        "id": sample.oat_id,
        "tags": ["dairy", "vegan"],
    }

    result = later_search(tree, query="milk", tags=["vegan"])
    assert [r["id"] for r in result["results"]] == [sample.oat_id]
    assert result["results"][0]["tags"] == ["dairy", "vegan"]
    assert later_search(tree, query="milk")["total"] == 2


def test_set_tags_on_missing_entry_is_error(tree: ContentTree) -> None:
    assert later_set_tags(tree, entry_id="missing", tags=["x"])["kind"] == "not_found"
