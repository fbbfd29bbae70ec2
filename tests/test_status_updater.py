import pytest
from conceptvault.models import AssessmentOutcome, Node
from conceptvault.status_updater import StatusUpdater
from conceptvault.exceptions import NotFoundError, ValidationError


def test_apply_outcome(small_store):
    """Test that the outcome's status lands on the node and nothing else changes."""
    small_store.add_nodes([Node(id="c2", label="Attention", status="unknown", weight=20,
                                category="Concept", description="Weights inputs")])
    links_before = small_store.links
    other_before = Node(**vars(small_store.get_node("root")))

    node = StatusUpdater(small_store).apply("c2", AssessmentOutcome(score=90, status="known"))

    assert node.status == "known"
    assert small_store.get_node("c2").status == "known"
    assert node.label == "Attention"
    assert node.weight == 20
    assert node.category == "Concept"
    assert node.description == "Weights inputs"

    # Other nodes and the links are untouched
    assert small_store.get_node("root") == other_before
    assert small_store.get_node("c1").status == "fuzzy"
    assert small_store.links == links_before


def test_apply_mapping(small_store):
    """Test outcomes given as plain mappings."""
    StatusUpdater(small_store).apply("root", {"score": 10, "status": "unknown"})
    assert small_store.get_node("root").status == "unknown"


def test_apply_to_missing_node(small_store):
    """Test a node deleted while the assessment was running."""
    with pytest.raises(NotFoundError):
        StatusUpdater(small_store).apply("gone", AssessmentOutcome(score=50, status="fuzzy"))


def test_apply_invalid_status(small_store):
    """Test outcomes with a bad or missing status."""
    updater = StatusUpdater(small_store)
    with pytest.raises(ValidationError):
        updater.apply("c1", {"score": 50})
    with pytest.raises(ValidationError):
        updater.apply("c1", AssessmentOutcome(score=50, status="great"))
    assert small_store.get_node("c1").status == "fuzzy"
