"""Applies assessment outcomes to node mastery status."""
import logging
from typing import Any, Mapping

from conceptvault.exceptions import ValidationError
from conceptvault.graph_store import GraphStore
from conceptvault.models import Node

logger = logging.getLogger(__name__)


class StatusUpdater:
    """Writes the status carried by an assessment outcome onto one node."""

    def __init__(self, store: GraphStore):
        self.store = store

    def apply(self, node_id: str, outcome: Any) -> Node:
        """Set the node's status from the outcome.

        Args:
            node_id: Node that was assessed
            outcome: Object with a ``status`` attribute, or a mapping with a ``status`` key

        Returns:
            Node: The updated node

        Raises:
            NotFoundError: If the node no longer exists
            ValidationError: If the outcome carries no usable status
        """
        if isinstance(outcome, Mapping):
            status = outcome.get("status")
        else:
            status = getattr(outcome, "status", None)
        if status is None:
            raise ValidationError("Assessment outcome carries no status")
        return self.store.update_status(node_id, status)
