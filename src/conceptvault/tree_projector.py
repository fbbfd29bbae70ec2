"""Projection of the concept graph into the navigation hierarchy.

The hierarchy has three levels: a subject bucket, a folder per category and a
leaf per concept node. Buckets come from a keyword table evaluated in order,
so a category always lands in the same bucket.

Re-projection is an upsert against the previous hierarchy: folders that still
exist keep their open state and any name the user gave them, new folders get
the default state of their bucket, and leaves are rebuilt from node order.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from conceptvault.models import Folder, Hierarchy, Leaf, Node

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bucket:
    """A top-level subject grouping.

    Attributes:
        id (str): Folder id of the bucket
        name (str): Default display name
        default_open (bool): Open state of folders created in this bucket
    """
    id: str
    name: str
    default_open: bool


COMPUTER_SCIENCE = Bucket("bucket:computer-science", "Computer Science", True)
MATHEMATICS = Bucket("bucket:mathematics", "Mathematics", False)
GENERAL_KNOWLEDGE = Bucket("bucket:general-knowledge", "General Knowledge", True)

BUCKETS: Tuple[Bucket, ...] = (COMPUTER_SCIENCE, MATHEMATICS, GENERAL_KNOWLEDGE)

# Checked top to bottom, first match wins.
BUCKET_KEYWORDS: Tuple[Tuple[Tuple[str, ...], Bucket], ...] = (
    (("core", "architecture", "infrastructure", "skill", "training", "ai", "data"), COMPUTER_SCIENCE),
    (("math", "concept", "theory"), MATHEMATICS),
)

CATEGORY_FOLDER_PREFIX = "category-folder:"
NODE_LEAF_PREFIX = "node-leaf:"


def classify_category(category: str) -> Bucket:
    """Pick the bucket for a category string.

    Args:
        category: Category of a node

    Returns:
        Bucket: First bucket with a keyword contained in the category, else General Knowledge
    """
    lowered = category.lower()
    for keywords, bucket in BUCKET_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return bucket
    return GENERAL_KNOWLEDGE


def category_folder_id(category: str) -> str:
    return f"{CATEGORY_FOLDER_PREFIX}{category}"


def node_leaf_id(node_id: str) -> str:
    return f"{NODE_LEAF_PREFIX}{node_id}"


def collect_folder_state(tree: Optional[Hierarchy]) -> Dict[str, Tuple[bool, str]]:
    """Map every folder id in a hierarchy to its (is_open, name) pair."""
    state: Dict[str, Tuple[bool, str]] = {}

    def _walk(items) -> None:
        for item in items:
            if isinstance(item, Folder):
                state[item.id] = (item.is_open, item.name)
                _walk(item.children)

    _walk(tree or ())
    return state


def iter_leaves(tree: Hierarchy) -> Iterable[Leaf]:
    """Yield every leaf of a hierarchy in display order."""
    for item in tree:
        if isinstance(item, Folder):
            yield from iter_leaves(item.children)
        else:
            yield item


class TreeProjector:
    """Derives the navigation hierarchy from the graph nodes."""

    def project(self, nodes: Iterable[Node], previous: Optional[Hierarchy] = None) -> Hierarchy:
        """Build the hierarchy for the given nodes.

        Args:
            nodes: Graph nodes in store order
            previous: Hierarchy from the last projection, if any

        Returns:
            Hierarchy: The three bucket folders, always in the same order
        """
        old_state = collect_folder_state(previous)

        # bucket id -> category -> leaves, both in first-seen order
        grouped: Dict[str, Dict[str, List[Leaf]]] = {bucket.id: {} for bucket in BUCKETS}
        for node in nodes:
            bucket = classify_category(node.category)
            leaves = grouped[bucket.id].setdefault(node.category, [])
            leaves.append(Leaf(id=node_leaf_id(node.id), name=node.label, node_id=node.id))

        tree = []
        for bucket in BUCKETS:
            category_folders = tuple(
                self._make_folder(category_folder_id(category), category, bucket,
                                  tuple(leaves), old_state)
                for category, leaves in grouped[bucket.id].items()
            )
            tree.append(self._make_folder(bucket.id, bucket.name, bucket,
                                          category_folders, old_state))

        preserved = sum(1 for folder_id in collect_folder_state(tuple(tree)) if folder_id in old_state)
        logger.debug(f"Projected hierarchy, {preserved} folders carried over from previous state")
        return tuple(tree)

    def _make_folder(self, folder_id: str, default_name: str, bucket: Bucket,
                     children: tuple, old_state: Dict[str, Tuple[bool, str]]) -> Folder:
        if folder_id in old_state:
            is_open, name = old_state[folder_id]
        else:
            is_open, name = bucket.default_open, default_name
        return Folder(id=folder_id, name=name, is_open=is_open, children=children)
