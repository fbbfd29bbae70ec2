import pytest
from conceptvault.graph_store import GraphStore
from conceptvault.models import Link, Node


@pytest.fixture
def small_store():
    """Store with a Core root and one Architecture node, linked root -> c1."""
    return GraphStore(
        nodes=[
            Node(id="root", label="LLM", status="known", weight=30, category="Core"),
            Node(id="c1", label="Transformer", status="fuzzy", weight=25, category="Architecture"),
        ],
        links=[Link(source="root", target="c1")],
    )


@pytest.fixture
def sequential_ids():
    """Predictable id factory for merges."""
    return lambda index: f"new_test_{index}"
