import pytest
from conceptvault.graph_store import GraphStore
from conceptvault.models import Link, Node
from conceptvault.exceptions import NotFoundError, ValidationError


def make_node(node_id, category="Core", status="new"):
    return Node(id=node_id, label=node_id.upper(), status=status, weight=10, category=category)


def test_nodes_keep_insertion_order():
    """Test that nodes come back in the order they were added."""
    store = GraphStore()
    store.add_nodes([make_node("b"), make_node("a"), make_node("c")])

    assert [n.id for n in store.nodes] == ["b", "a", "c"]
    assert len(store) == 3
    assert "a" in store


def test_duplicate_node_id_rejected(small_store):
    """Test that an existing id cannot be added again."""
    with pytest.raises(ValidationError):
        small_store.add_nodes([make_node("c1")])

    # Duplicates inside one batch are rejected too
    with pytest.raises(ValidationError):
        small_store.add_nodes([make_node("x"), make_node("x")])
    assert "x" not in small_store


def test_link_with_unknown_endpoint_rejected(small_store):
    """Test that links must reference stored nodes."""
    with pytest.raises(ValidationError):
        small_store.add_links([Link(source="root", target="missing")])
    assert len(small_store.links) == 1


def test_commit_is_all_or_nothing(small_store):
    """Test that a failing commit leaves the store unchanged."""
    nodes = [make_node("n1"), make_node("n2")]
    links = [Link("c1", "n1"), Link("n1", "ghost")]

    with pytest.raises(ValidationError):
        small_store.commit(nodes, links)

    assert [n.id for n in small_store.nodes] == ["root", "c1"]
    assert small_store.links == [Link("root", "c1")]


def test_commit_accepts_links_to_nodes_in_same_batch(small_store):
    """Test that links may point at nodes added by the same commit."""
    small_store.commit([make_node("n1")], [Link("c1", "n1")])

    assert small_store.has_node("n1")
    assert Link("c1", "n1") in small_store.links


def test_invalid_status_rejected():
    """Test that nodes with an unknown status are refused."""
    store = GraphStore()
    with pytest.raises(ValidationError):
        store.add_nodes([make_node("a", status="mastered")])


def test_get_node_missing():
    """Test lookup of an unknown id."""
    with pytest.raises(NotFoundError):
        GraphStore().get_node("nope")


def test_update_status(small_store):
    """Test status updates in place."""
    node = small_store.update_status("c1", "known")

    assert node.status == "known"
    assert small_store.get_node("c1").status == "known"

    with pytest.raises(ValidationError):
        small_store.update_status("c1", "bogus")
    with pytest.raises(NotFoundError):
        small_store.update_status("nope", "known")


def test_category_queries(small_store):
    """Test first-in-category lookup and sorted categories."""
    small_store.add_nodes([make_node("c2", category="Architecture")])

    assert small_store.first_in_category("Architecture").id == "c1"
    assert small_store.first_in_category("Nothing") is None
    assert small_store.first_node().id == "root"
    assert small_store.categories() == ["Architecture", "Core"]


def test_neighbours_from_either_end(small_store):
    """Test that links are followed in both directions."""
    small_store.commit([make_node("c2")], [Link("c2", "c1")])

    assert [n.id for n in small_store.neighbours("c1")] == ["root", "c2"]
    assert [n.id for n in small_store.neighbours("root")] == ["c1"]
    assert len(small_store.links_touching("c1")) == 2


def test_validate_does_not_write(small_store):
    """Test that validation checks a batch without storing it."""
    small_store.validate([make_node("n1")], [Link("c1", "n1")])
    assert "n1" not in small_store

    with pytest.raises(ValidationError):
        small_store.validate([], [Link("c1", "n1")])
