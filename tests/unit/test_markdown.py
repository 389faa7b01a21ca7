"""Tests for markdown rendering."""

from later_tree.service import ContentTree
from tests.unit.conftest import Sample


def test_render_todo_list_with_checkboxes(tree: ContentTree, sample: Sample) -> None:
    tree.set_done(sample.bread_id, True)
    md = tree.render_markdown(container_id=sample.groceries_id)
    assert md == (
        "# Groceries\n"
        "\n"
        "- [ ] Buy groceries\n"
        "    - [ ] Milk\n"
        "        - [ ] Oat milk\n"
        "- [x] Bread\n"
    )


def test_render_list_without_checkboxes(tree: ContentTree, sample: Sample) -> None:
    tree.create_node(sample.ideas_id, "Tomatoes", parent_id=sample.garden_id)
    tree.set_done(sample.garden_id, True)
    md = tree.render_markdown(container_id=sample.ideas_id)
    assert "- ~~Garden~~\n" in md
    assert "    - Tomatoes\n" in md
    assert "[ ]" not in md


def test_render_with_max_depth_shows_truncation(tree: ContentTree, sample: Sample) -> None:
    md = tree.render_markdown(container_id=sample.groceries_id, max_depth=0)
    assert "Milk" not in md
    assert f"    - ... (1 more child, id={sample.buy_id})\n" in md


def test_render_node_subtree(tree: ContentTree, sample: Sample) -> None:
    md = tree.render_markdown(node_id=sample.milk_id)
    assert md == "- [ ] Milk\n    - [ ] Oat milk\n"
