"""Persistence stores for conceptvault.

Every record is scoped to an owner id. Two stores are provided: an in-memory
store for tests and single sessions, and a YAML store that keeps one document
per owner on disk.
"""

import copy
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from conceptvault.exceptions import NotFoundError, ValidationError
from conceptvault.models import (
    AssessmentResult,
    ChatMessage,
    Link,
    Node,
    NodeContent,
    check_status,
)

logger = logging.getLogger(__name__)


class PersistenceStore(ABC):
    """Owner-scoped storage of graph data, notes, chat and assessment results."""

    # Nodes

    @abstractmethod
    def fetch_nodes(self, owner_id: str) -> List[Node]:
        """All nodes of the owner, in creation order."""

    @abstractmethod
    def fetch_node(self, owner_id: str, node_id: str) -> Optional[Node]:
        """One node, or None if the owner has no such node."""

    @abstractmethod
    def create_nodes(self, owner_id: str, nodes: List[Node]) -> List[Node]:
        """Insert nodes; raises ValidationError on a duplicate id."""

    @abstractmethod
    def update_node(self, owner_id: str, node_id: str, **updates: Any) -> Node:
        """Update fields of a node; raises NotFoundError if absent."""

    @abstractmethod
    def delete_node(self, owner_id: str, node_id: str) -> None:
        """Delete a node; missing nodes are ignored."""

    # Links

    @abstractmethod
    def fetch_links(self, owner_id: str) -> List[Link]:
        """All links of the owner."""

    @abstractmethod
    def create_links(self, owner_id: str, links: List[Link]) -> None:
        """Insert links."""

    @abstractmethod
    def delete_link(self, owner_id: str, source: str, target: str) -> None:
        """Delete every link between source and target."""

    # Node content

    @abstractmethod
    def fetch_node_content(self, owner_id: str, node_id: str) -> Optional[NodeContent]:
        """Notes kept for a node, or None."""

    @abstractmethod
    def save_node_content(self, owner_id: str, node_id: str, title: str, content: str) -> NodeContent:
        """Create or replace the notes of a node (one per node per owner)."""

    @abstractmethod
    def delete_node_content(self, owner_id: str, node_id: str) -> None:
        """Delete the notes of a node."""

    # Chat

    @abstractmethod
    def fetch_chat_messages(self, owner_id: str) -> List[ChatMessage]:
        """Chat messages, oldest first."""

    @abstractmethod
    def save_chat_message(self, owner_id: str, message: ChatMessage) -> None:
        """Append a chat message."""

    @abstractmethod
    def clear_chat_messages(self, owner_id: str) -> None:
        """Delete the owner's chat history."""

    # Assessment results

    @abstractmethod
    def fetch_assessment_results(self, owner_id: str, node_id: str) -> List[AssessmentResult]:
        """Assessment results for a node, newest first."""

    @abstractmethod
    def save_assessment_result(self, owner_id: str, result: AssessmentResult) -> AssessmentResult:
        """Store an assessment result."""

    @abstractmethod
    def clear_all(self, owner_id: str) -> None:
        """Delete every record of the owner."""

    def fetch_graph_data(self, owner_id: str) -> Tuple[List[Node], List[Link]]:
        return self.fetch_nodes(owner_id), self.fetch_links(owner_id)

    def save_graph_data(self, owner_id: str, nodes: List[Node], links: List[Link]) -> None:
        self.create_nodes(owner_id, nodes)
        self.create_links(owner_id, links)


@dataclass
class _OwnerData:
    nodes: Dict[str, Node] = field(default_factory=dict)
    links: List[Link] = field(default_factory=list)
    contents: Dict[str, NodeContent] = field(default_factory=dict)
    chat: List[ChatMessage] = field(default_factory=list)
    results: List[AssessmentResult] = field(default_factory=list)


class InMemoryPersistenceStore(PersistenceStore):
    """Keeps every owner's records in process memory.

    Records are copied on the way in and out, so callers never share state
    with the store.
    """

    NODE_FIELDS = ("label", "status", "weight", "category", "description")

    def __init__(self):
        self._owners: Dict[str, _OwnerData] = {}

    def _load(self, owner_id: str) -> _OwnerData:
        if not owner_id:
            raise ValidationError("Owner id is required")
        return self._owners.setdefault(owner_id, _OwnerData())

    def _save(self, owner_id: str) -> None:
        """Hook called after every write."""

    def fetch_nodes(self, owner_id: str) -> List[Node]:
        return [copy.copy(node) for node in self._load(owner_id).nodes.values()]

    def fetch_node(self, owner_id: str, node_id: str) -> Optional[Node]:
        node = self._load(owner_id).nodes.get(node_id)
        return copy.copy(node) if node else None

    def create_nodes(self, owner_id: str, nodes: List[Node]) -> List[Node]:
        data = self._load(owner_id)
        ids = [node.id for node in nodes]
        duplicates = [node_id for node_id in ids if node_id in data.nodes or ids.count(node_id) > 1]
        if duplicates:
            raise ValidationError(f"Nodes already stored: {', '.join(sorted(set(duplicates)))}")
        for node in nodes:
            data.nodes[node.id] = copy.copy(node)
        self._save(owner_id)
        logger.info(f"Stored {len(nodes)} nodes for owner '{owner_id}'")
        return [copy.copy(node) for node in nodes]

    def update_node(self, owner_id: str, node_id: str, **updates: Any) -> Node:
        data = self._load(owner_id)
        if node_id not in data.nodes:
            raise NotFoundError(f"Node '{node_id}' not stored for owner '{owner_id}'")
        unknown = set(updates) - set(self.NODE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update node fields: {', '.join(sorted(unknown))}")
        if "status" in updates:
            check_status(updates["status"])
        data.nodes[node_id] = replace(data.nodes[node_id], **updates)
        self._save(owner_id)
        return copy.copy(data.nodes[node_id])

    def delete_node(self, owner_id: str, node_id: str) -> None:
        data = self._load(owner_id)
        if data.nodes.pop(node_id, None) is not None:
            self._save(owner_id)

    def fetch_links(self, owner_id: str) -> List[Link]:
        return list(self._load(owner_id).links)

    def create_links(self, owner_id: str, links: List[Link]) -> None:
        self._load(owner_id).links.extend(links)
        self._save(owner_id)
        logger.info(f"Stored {len(links)} links for owner '{owner_id}'")

    def delete_link(self, owner_id: str, source: str, target: str) -> None:
        data = self._load(owner_id)
        data.links = [l for l in data.links if not (l.source == source and l.target == target)]
        self._save(owner_id)

    def fetch_node_content(self, owner_id: str, node_id: str) -> Optional[NodeContent]:
        content = self._load(owner_id).contents.get(node_id)
        return copy.copy(content) if content else None

    def save_node_content(self, owner_id: str, node_id: str, title: str, content: str) -> NodeContent:
        record = NodeContent(node_id=node_id, title=title, content=content)
        self._load(owner_id).contents[node_id] = record
        self._save(owner_id)
        logger.debug(f"Saved notes for node '{node_id}'")
        return copy.copy(record)

    def delete_node_content(self, owner_id: str, node_id: str) -> None:
        if self._load(owner_id).contents.pop(node_id, None) is not None:
            self._save(owner_id)

    def fetch_chat_messages(self, owner_id: str) -> List[ChatMessage]:
        return sorted((copy.copy(m) for m in self._load(owner_id).chat), key=lambda m: m.timestamp)

    def save_chat_message(self, owner_id: str, message: ChatMessage) -> None:
        self._load(owner_id).chat.append(copy.copy(message))
        self._save(owner_id)

    def clear_chat_messages(self, owner_id: str) -> None:
        self._load(owner_id).chat = []
        self._save(owner_id)

    def fetch_assessment_results(self, owner_id: str, node_id: str) -> List[AssessmentResult]:
        results = [copy.copy(r) for r in self._load(owner_id).results if r.node_id == node_id]
        return sorted(results, key=lambda r: r.created_at, reverse=True)

    def save_assessment_result(self, owner_id: str, result: AssessmentResult) -> AssessmentResult:
        self._load(owner_id).results.append(copy.copy(result))
        self._save(owner_id)
        return copy.copy(result)

    def clear_all(self, owner_id: str) -> None:
        self._owners[owner_id] = _OwnerData()
        self._save(owner_id)
        logger.info(f"Cleared all data for owner '{owner_id}'")


class YamlPersistenceStore(InMemoryPersistenceStore):
    """Stores each owner's records as one YAML document under data_dir.

    The document is read on first access and rewritten after every write.

    Attributes:
        data_dir (Path): Directory holding the owner documents
    """

    def __init__(self, data_dir: Path):
        super().__init__()
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initialized YAML persistence at {self.data_dir}")

    def _path(self, owner_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", owner_id)
        return self.data_dir / f"{safe}.yaml"

    def _load(self, owner_id: str) -> _OwnerData:
        if owner_id in self._owners:
            return self._owners[owner_id]
        data = super()._load(owner_id)
        path = self._path(owner_id)
        if path.exists():
            with open(path, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
            data.nodes = {n["id"]: Node.from_dict(n) for n in raw.get("nodes", [])}
            data.links = [Link(**l) for l in raw.get("links", [])]
            data.contents = {c["node_id"]: NodeContent(**c) for c in raw.get("contents", [])}
            data.chat = [ChatMessage(**m) for m in raw.get("chat", [])]
            data.results = [AssessmentResult(**r) for r in raw.get("results", [])]
            logger.debug(f"Loaded data for owner '{owner_id}' from {path}")
        return data

    def _save(self, owner_id: str) -> None:
        data = self._owners[owner_id]
        document = {
            "nodes": [asdict(n) for n in data.nodes.values()],
            "links": [asdict(l) for l in data.links],
            "contents": [asdict(c) for c in data.contents.values()],
            "chat": [asdict(m) for m in data.chat],
            "results": [asdict(r) for r in data.results],
        }
        path = self._path(owner_id)
        tmp = path.with_suffix(".yaml.tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                yaml.safe_dump(document, f, allow_unicode=True, sort_keys=False)
            tmp.replace(path)
        except (OSError, yaml.YAMLError) as e:
            # Forget the unsaved change; the next access reloads from disk.
            self._owners.pop(owner_id, None)
            logger.error(f"Failed to write data for owner '{owner_id}' to {path}: {e}")
            raise
        finally:
            if tmp.exists():
                tmp.unlink()


def create_persistence_store(config: Dict[str, Any]) -> PersistenceStore:
    """Build the store selected by the persistence section of the config.

    Raises:
        ValidationError: If the backend is unknown
    """
    settings = config.get("persistence", {})
    backend = settings.get("backend", "memory")
    if backend == "memory":
        return InMemoryPersistenceStore()
    if backend == "yaml":
        return YamlPersistenceStore(Path(settings.get("data_dir", "data")))
    raise ValidationError(f"Unknown persistence backend '{backend}'")
