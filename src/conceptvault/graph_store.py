"""Graph store holding the canonical concept nodes and their links."""
import logging
from typing import Dict, Iterable, List, Optional

from conceptvault.exceptions import NotFoundError, ValidationError
from conceptvault.models import Link, Node, check_status

logger = logging.getLogger(__name__)


class GraphStore:
    """Owns the concept nodes and the links between them.

    Nodes keep insertion order; that order drives both the folder projection
    and the choice of merge anchors. Every write either applies completely or
    raises before touching anything.
    """

    def __init__(self, nodes: Optional[Iterable[Node]] = None,
                 links: Optional[Iterable[Link]] = None):
        self._nodes: Dict[str, Node] = {}
        self._links: List[Link] = []
        if nodes or links:
            self.commit(list(nodes or []), list(links or []))

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    @property
    def nodes(self) -> List[Node]:
        """Nodes in insertion order."""
        return list(self._nodes.values())

    @property
    def links(self) -> List[Link]:
        """Links in insertion order."""
        return list(self._links)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: str) -> Node:
        """Get a node by id.

        Raises:
            NotFoundError: If no node has this id
        """
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NotFoundError(f"Node '{node_id}' not found in graph") from None

    def first_node(self) -> Optional[Node]:
        return next(iter(self._nodes.values()), None)

    def first_in_category(self, category: str) -> Optional[Node]:
        """Return the earliest node whose category equals the given one."""
        for node in self._nodes.values():
            if node.category == category:
                return node
        return None

    def categories(self) -> List[str]:
        """Unique categories, sorted."""
        return sorted({node.category for node in self._nodes.values()})

    def add_nodes(self, nodes: Iterable[Node]) -> None:
        """Append nodes to the store.

        Args:
            nodes: Nodes to append

        Raises:
            ValidationError: If any id is already taken or repeated in the batch
        """
        self.commit(list(nodes), [])

    def add_links(self, links: Iterable[Link]) -> None:
        """Append links to the store.

        Raises:
            ValidationError: If any endpoint is not a stored node
        """
        self.commit([], list(links))

    def commit(self, nodes: List[Node], links: List[Link]) -> None:
        """Append nodes and links as one all-or-nothing operation.

        Links may reference nodes of the same call. Nothing is written unless
        the whole batch is valid.

        Args:
            nodes: Nodes to append
            links: Links to append, checked after the nodes are accounted for

        Raises:
            ValidationError: On an id collision, an unknown status or a dangling endpoint
        """
        self.validate(nodes, links)
        for node in nodes:
            self._nodes[node.id] = node
        self._links.extend(links)
        logger.debug(f"Committed {len(nodes)} nodes and {len(links)} links")

    def validate(self, nodes: List[Node], links: List[Link]) -> None:
        """Check that commit(nodes, links) would succeed, without writing.

        Raises:
            ValidationError: On an id collision, an unknown status or a dangling endpoint
        """
        batch_ids = set()
        for node in nodes:
            if node.id in self._nodes or node.id in batch_ids:
                raise ValidationError(f"Node id '{node.id}' already exists")
            check_status(node.status)
            batch_ids.add(node.id)

        for link in links:
            for endpoint in (link.source, link.target):
                if endpoint not in self._nodes and endpoint not in batch_ids:
                    raise ValidationError(
                        f"Link {link.source} -> {link.target} references unknown node '{endpoint}'"
                    )

    def update_status(self, node_id: str, status: str) -> Node:
        """Set the mastery status of one node in place.

        Args:
            node_id: Node to update
            status: New mastery status

        Returns:
            Node: The updated node

        Raises:
            NotFoundError: If the node does not exist
            ValidationError: If the status is unknown
        """
        node = self.get_node(node_id)
        check_status(status)
        previous = node.status
        node.status = status
        logger.info(f"Node '{node_id}' status changed: {previous} -> {status}")
        return node

    def links_touching(self, node_id: str) -> List[Link]:
        """Return, in insertion order, every link with node_id at either end."""
        return [link for link in self._links if link.touches(node_id)]

    def neighbours(self, node_id: str) -> List[Node]:
        """Nodes connected to node_id, one entry per link."""
        return [
            self._nodes[link.other_end(node_id)]
            for link in self.links_touching(node_id)
            if link.other_end(node_id) in self._nodes
        ]
