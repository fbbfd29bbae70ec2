"""Merging analysed concepts into the knowledge graph.

A merge turns a list of candidate concepts plus the category the learner
picked into new nodes and links:

* every candidate becomes a node filed under the target category,
* the first new node hangs off an anchor node (the first node already in that
  category, else the first node in the graph, else the sentinel root),
* the new nodes are chained in input order.

Nodes and links go to the graph store in a single commit, so a rejected merge
leaves the graph exactly as it was.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from conceptvault.dedup import create_deduplicator
from conceptvault.exceptions import ValidationError
from conceptvault.graph_store import GraphStore
from conceptvault.models import CandidateConcept, Link, MergeConfig, Node, check_status

logger = logging.getLogger(__name__)


def default_id_factory(index: int) -> str:
    return f"new_{uuid.uuid4().hex[:12]}_{index}"


@dataclass
class MergeResult:
    """Outcome of a merge.

    Attributes:
        nodes (List[Node]): Nodes added, in input order
        links (List[Link]): Links added
        anchor_id (Optional[str]): Node the new chain hangs off, None if nothing was merged
        created_root (bool): Whether the sentinel root node was created for an empty graph
        skipped (List[CandidateConcept]): Candidates dropped by the dedup policy
    """
    nodes: List[Node] = field(default_factory=list)
    links: List[Link] = field(default_factory=list)
    anchor_id: Optional[str] = None
    created_root: bool = False
    skipped: List[CandidateConcept] = field(default_factory=list)


class ConceptMerger:
    """Converts candidate concepts into graph nodes and links."""

    def __init__(self, store: GraphStore, config: Optional[MergeConfig] = None,
                 id_factory: Callable[[int], str] = default_id_factory,
                 deduplicator: Optional[Any] = None):
        self.store = store
        self.config = config or MergeConfig()
        self.id_factory = id_factory
        self.deduplicator = deduplicator if deduplicator is not None else create_deduplicator(self.config)

    def merge(self, candidates: List[CandidateConcept], target_category: str) -> MergeResult:
        """Merge candidates into the graph under target_category.

        Args:
            candidates: Concepts to add, in the order they should be chained
            target_category: Category chosen by the learner, overrides anything on the candidates

        Returns:
            MergeResult: What was added

        Raises:
            ValidationError: On malformed input or if the commit would break a graph invariant
        """
        result = self.plan(candidates, target_category)
        if result.nodes:
            self.store.commit(result.nodes, result.links)
            logger.info(
                f"Merged {len(result.nodes)} nodes into '{target_category}' anchored on '{result.anchor_id}'"
            )
        return result

    def plan(self, candidates: List[CandidateConcept], target_category: str) -> MergeResult:
        """Work out the nodes and links a merge would add, without writing them.

        The plan is checked against the store, so committing it right away
        cannot fail.

        Raises:
            ValidationError: On malformed input or if the commit would break a graph invariant
        """
        self._validate_input(candidates, target_category)

        kept = list(candidates)
        if self.deduplicator is not None:
            kept = self.deduplicator.filter(kept, [node.label for node in self.store.nodes])
        skipped = [c for c in candidates if not any(c is k for k in kept)]
        if not kept:
            logger.info("All candidate concepts were duplicates, nothing to merge")
            return MergeResult(skipped=skipped)

        new_nodes = [
            Node(
                id=self.id_factory(index),
                label=candidate.label,
                status=candidate.status,
                weight=self.config.default_weight,
                category=target_category,
                description=candidate.description,
            )
            for index, candidate in enumerate(kept)
        ]

        anchor_id, root_node = self._find_anchor(target_category)
        links = [Link(source=anchor_id, target=new_nodes[0].id)]
        for current, following in zip(new_nodes, new_nodes[1:]):
            links.append(Link(source=current.id, target=following.id))

        nodes_to_commit = ([root_node] if root_node else []) + new_nodes
        self.store.validate(nodes_to_commit, links)
        return MergeResult(
            nodes=nodes_to_commit,
            links=links,
            anchor_id=anchor_id,
            created_root=root_node is not None,
            skipped=skipped,
        )

    def _find_anchor(self, target_category: str):
        """Pick the anchor id, creating the sentinel root node when the graph is empty."""
        same_category = self.store.first_in_category(target_category)
        if same_category is not None:
            return same_category.id, None

        first = self.store.first_node()
        if first is not None:
            return first.id, None

        root = Node(
            id=self.config.sentinel_root_id,
            label=self.config.sentinel_root_label,
            status="new",
            weight=self.config.default_weight,
            category=target_category,
        )
        return root.id, root

    def _validate_input(self, candidates: List[CandidateConcept], target_category: str) -> None:
        if not target_category or not target_category.strip():
            raise ValidationError("Target category cannot be empty")
        if not candidates:
            raise ValidationError("No concepts to merge")
        for index, candidate in enumerate(candidates):
            if not candidate.label or not candidate.label.strip():
                raise ValidationError(f"Concept #{index + 1} has an empty label")
            check_status(candidate.status)
