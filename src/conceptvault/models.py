"""Data models for conceptvault.

This module contains the data models used throughout the conceptvault package:
the graph records (nodes and links), the navigation hierarchy (folders and
leaves), the payloads exchanged with external services and the records kept by
the persistence layer.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Tuple, Union
import time

from conceptvault.exceptions import ValidationError


MASTERY_STATUSES = ("known", "fuzzy", "unknown", "new")

# An assessment never hands back "new"; that status only marks fresh concepts.
ASSESSED_STATUSES = ("known", "fuzzy", "unknown")


def check_status(status: Any, allowed: Tuple[str, ...] = MASTERY_STATUSES) -> str:
    """Validate a mastery status value.

    Args:
        status: Value to check
        allowed: Accepted status names

    Returns:
        str: The status, unchanged

    Raises:
        ValidationError: If the status is not one of the allowed values
    """
    if status not in allowed:
        raise ValidationError(
            f"Unknown mastery status {status!r}, expected one of {', '.join(allowed)}"
        )
    return status


@dataclass
class Node:
    """A concept in the knowledge graph.

    Attributes:
        id (str): Unique, stable identifier
        label (str): Display text
        status (str): Mastery status (known, fuzzy, unknown or new)
        weight (float): Presentation size, not used by any graph logic
        category (str): Free-form grouping key
        description (Optional[str]): Optional explanation of the concept
    """
    id: str
    label: str
    status: str
    weight: float
    category: str
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        """Build a node from a plain mapping (seed files, persistence rows)."""
        return cls(
            id=str(data["id"]),
            label=data["label"],
            status=check_status(data.get("status", "new")),
            weight=data.get("weight", data.get("val", 0)),
            category=data["category"],
            description=data.get("description"),
        )


@dataclass(frozen=True)
class Link:
    """A connection between two nodes.

    Links have no identity of their own and their direction carries no
    meaning; it only matters for lookups from either end.

    Attributes:
        source (str): Id of one endpoint
        target (str): Id of the other endpoint
    """
    source: str
    target: str

    def touches(self, node_id: str) -> bool:
        """Check whether either endpoint is the given node."""
        return self.source == node_id or self.target == node_id

    def other_end(self, node_id: str) -> str:
        """Return the endpoint opposite to node_id."""
        return self.target if self.source == node_id else self.source


@dataclass(frozen=True)
class Leaf:
    """A concept entry in the navigation hierarchy.

    Attributes:
        id (str): Leaf id, derived from the node id
        name (str): Display name (the node label)
        node_id (str): Id of the referenced node
    """
    id: str
    name: str
    node_id: str


@dataclass(frozen=True)
class Folder:
    """A folder in the navigation hierarchy.

    Folders are immutable; edits produce a new folder that shares every
    untouched child with the old one.

    Attributes:
        id (str): Stable folder id
        name (str): Display name, may be renamed by the user
        is_open (bool): Whether the folder is expanded
        children (Tuple): Ordered child folders and leaves
    """
    id: str
    name: str
    is_open: bool
    children: Tuple[Union["Folder", Leaf], ...] = ()


Hierarchy = Tuple[Folder, ...]


@dataclass
class CandidateConcept:
    """A concept proposed by the analysis service, editable before merging.

    Attributes:
        label (str): Concept name
        status (str): Proposed mastery status
        description (Optional[str]): Short explanation
    """
    label: str
    status: str = "new"
    description: Optional[str] = None


@dataclass
class AssessmentOutcome:
    """Result of assessing a learner's explanation of a concept.

    Attributes:
        score (int): Score between 0 and 100
        status (str): Resulting mastery status
        feedback (str): Feedback for the learner
        next_step (str): Suggested next step
    """
    score: int
    status: str
    feedback: str = ""
    next_step: str = ""


@dataclass
class QuizQuestion:
    """Represents a quiz question."""
    question: str
    options: List[str]
    correct_answer: str
    explanation: str
    type: str = "multiple_choice"


@dataclass
class QuizContent:
    """A quiz generated for one concept."""
    concept_label: str
    questions: List[QuizQuestion] = field(default_factory=list)


@dataclass
class NodeContent:
    """Free-text notes a learner keeps for one node.

    Attributes:
        node_id (str): Node the notes belong to
        title (str): Note title
        content (str): Note body
        last_saved (float): When the note was last written
    """
    node_id: str
    title: str
    content: str
    last_saved: float = field(default_factory=time.time)


@dataclass
class ChatMessage:
    """A message exchanged with the analysis assistant."""
    id: str
    sender: str  # user or bot
    content: str
    subconcepts: Optional[List[str]] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class AssessmentResult:
    """A stored assessment of one node."""
    node_id: str
    score: int
    status: str
    feedback: str
    next_step: str
    created_at: float = field(default_factory=time.time)


@dataclass
class RateLimitConfig:
    """Configuration for API rate limiting.

    Attributes:
        max_requests_per_minute (int): Maximum API requests per minute
    """
    max_requests_per_minute: int = 50


@dataclass
class ModelConfig:
    """Configuration for an LLM model.

    Attributes:
        name (str): Name of the model
        description (str): Description of the model
        max_tokens (int): Maximum tokens per request
        temperature (float): Temperature for generation
    """
    name: str
    description: str = ""
    max_tokens: int = 4096
    temperature: float = 0.2


@dataclass
class ProviderConfig:
    """Configuration for an LLM provider.

    Attributes:
        api_key (str): API key for the provider
        base_url (str): Base URL for the provider's API
        models (List[ModelConfig]): List of available models
    """
    api_key: str
    base_url: str
    models: List[ModelConfig] = field(default_factory=list)


@dataclass
class MergeConfig:
    """Configuration for merging analysed concepts into the graph.

    Attributes:
        default_weight (float): Weight given to every merged node
        sentinel_root_id (str): Anchor id used when the graph is empty
        sentinel_root_label (str): Label of the root node created for an empty graph
        dedup_policy (str): none, label or semantic
        similarity_threshold (float): Cosine similarity at which the semantic policy drops a candidate
        embedding_model (str): Sentence embedding model for the semantic policy
    """
    default_weight: float = 25
    sentinel_root_id: str = "root"
    sentinel_root_label: str = "Knowledge Root"
    dedup_policy: str = "none"
    similarity_threshold: float = 0.9
    embedding_model: str = "all-MiniLM-L6-v2"
