"""The knowledge vault controller.

KnowledgeVault is the single owner of application state: the graph store, the
navigation hierarchy, the hidden categories, the pending analysis and the
request tokens of in-flight service calls. Every change goes through one of
its methods, and every graph change is followed by a re-projection of the
hierarchy.

Service calls are split into begin and complete steps. ``begin_*`` issues a
request token; ``complete_*`` applies the response only if that token is still
the newest for its slot. The one-call helpers (``analyze``, ``assess``,
``request_quiz``) run both steps around a synchronous service call.
"""

import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from conceptvault.analysis import ConceptAnalyzer
from conceptvault.assessment import ExplanationAssessor
from conceptvault.cache import QuizCache
from conceptvault.concept_merger import ConceptMerger, MergeResult, default_id_factory
from conceptvault.config import DEFAULT_CONFIG, merge_config_from
from conceptvault.exceptions import ExternalServiceError, StaleResponseError, ValidationError
from conceptvault.graph_store import GraphStore
from conceptvault.models import (
    AssessmentOutcome,
    AssessmentResult,
    CandidateConcept,
    ChatMessage,
    Hierarchy,
    MergeConfig,
    Node,
    NodeContent,
    QuizContent,
    check_status,
)
from conceptvault.persistence import InMemoryPersistenceStore, PersistenceStore, create_persistence_store
from conceptvault.quiz import QuizGenerator
from conceptvault.request_tokens import (
    ANALYSIS_SLOT,
    QUIZ_SLOT,
    RequestToken,
    RequestTracker,
    assessment_slot,
)
from conceptvault.seed import default_seed, load_seed_file
from conceptvault.status_updater import StatusUpdater
from conceptvault.tree_mutator import TreeMutator
from conceptvault.tree_projector import TreeProjector

logger = logging.getLogger(__name__)

EDITABLE_CANDIDATE_FIELDS = ("label", "status", "description")


class KnowledgeVault:
    """Owns the knowledge graph, its hierarchy and the learner's session state."""

    def __init__(self, store: Optional[GraphStore] = None,
                 merge_config: Optional[MergeConfig] = None,
                 analyzer: Optional[Any] = None,
                 quiz_generator: Optional[Any] = None,
                 assessor: Optional[Any] = None,
                 persistence: Optional[PersistenceStore] = None,
                 owner_id: str = "local",
                 id_factory=default_id_factory,
                 deduplicator: Optional[Any] = None):
        self.store = store if store is not None else GraphStore()
        self.owner_id = owner_id
        self.analyzer = analyzer
        self.quiz_generator = quiz_generator
        self.assessor = assessor

        if persistence is None:
            persistence = InMemoryPersistenceStore()
            persistence.save_graph_data(owner_id, self.store.nodes, self.store.links)
        self.persistence = persistence

        self.projector = TreeProjector()
        self.mutator = TreeMutator()
        self.merger = ConceptMerger(self.store, merge_config, id_factory, deduplicator)
        self.status_updater = StatusUpdater(self.store)
        self.requests = RequestTracker()

        self.pending_candidates: List[CandidateConcept] = []
        self.pending_saved = False
        self.current_quiz: Optional[QuizContent] = None
        self.last_assessments: Dict[str, AssessmentOutcome] = {}

        self._tree: Hierarchy = self.projector.project(self.store.nodes)

    @classmethod
    def from_seed(cls, config: Optional[Dict[str, Any]] = None, **kwargs) -> "KnowledgeVault":
        """Start from the seed graph without loading anything from persistence."""
        config = config or DEFAULT_CONFIG
        seed_file = config.get("seed_file")
        nodes, links = load_seed_file(seed_file) if seed_file else default_seed()
        kwargs.setdefault("merge_config", merge_config_from(config))
        kwargs.setdefault("owner_id", config.get("owner_id", "local"))
        return cls(store=GraphStore(nodes, links), **kwargs)

    @classmethod
    def from_persistence(cls, persistence: PersistenceStore, owner_id: str,
                         config: Optional[Dict[str, Any]] = None, **kwargs) -> "KnowledgeVault":
        """Load the owner's graph, seeding it first if the owner has no nodes yet."""
        config = config or DEFAULT_CONFIG
        nodes, links = persistence.fetch_graph_data(owner_id)
        if not nodes:
            seed_file = config.get("seed_file")
            nodes, links = load_seed_file(seed_file) if seed_file else default_seed()
            persistence.save_graph_data(owner_id, nodes, links)
            logger.info(f"Seeded empty graph for owner '{owner_id}' with {len(nodes)} nodes")

        node_ids = {node.id for node in nodes}
        usable = [link for link in links if link.source in node_ids and link.target in node_ids]
        if len(usable) != len(links):
            logger.warning(f"Ignoring {len(links) - len(usable)} stored links with missing endpoints")

        kwargs.setdefault("merge_config", merge_config_from(config))
        return cls(store=GraphStore(nodes, usable), persistence=persistence, owner_id=owner_id, **kwargs)

    @classmethod
    def from_config(cls, config: Dict[str, Any], llm_client: Optional[Any] = None,
                    **kwargs) -> "KnowledgeVault":
        """Build a vault from a loaded configuration.

        With an llm_client the analysis, quiz and assessment services are
        wired up; without one those calls raise ExternalServiceError.
        """
        if llm_client is not None:
            kwargs.setdefault("analyzer", ConceptAnalyzer(llm_client))
            kwargs.setdefault("quiz_generator", QuizGenerator(llm_client, QuizCache(Path(config.get("cache_dir", "cache")))))
            kwargs.setdefault("assessor", ExplanationAssessor(llm_client))
        persistence = create_persistence_store(config)
        return cls.from_persistence(persistence, config.get("owner_id", "local"), config, **kwargs)

    # Hierarchy

    @property
    def tree(self) -> Hierarchy:
        return self._tree

    @property
    def hidden_categories(self):
        return self.mutator.hidden_categories

    def refresh_tree(self) -> Hierarchy:
        """Re-project the hierarchy, keeping folder customizations."""
        self._tree = self.projector.project(self.store.nodes, previous=self._tree)
        return self._tree

    def toggle_folder(self, folder_id: str) -> Hierarchy:
        self._tree = self.mutator.toggle_folder(self._tree, folder_id)
        return self._tree

    def rename_folder(self, folder_id: str, new_name: str) -> Hierarchy:
        self._tree = self.mutator.rename_folder(self._tree, folder_id, new_name)
        return self._tree

    def toggle_category_visibility(self, category: str) -> bool:
        return self.mutator.toggle_category_visibility(category)

    # Graph queries

    def unique_categories(self) -> List[str]:
        return self.store.categories()

    def connections(self, node_id: str) -> List[Node]:
        """Nodes linked to node_id, for the node detail view.

        Raises:
            NotFoundError: If the node does not exist
        """
        self.store.get_node(node_id)
        return self.store.neighbours(node_id)

    def visible_nodes(self) -> List[Node]:
        return [node for node in self.store.nodes if not self.mutator.is_hidden(node.category)]

    # Merging

    def merge(self, candidates: List[CandidateConcept], target_category: str) -> MergeResult:
        """Persist concepts, then add them to the graph and re-project.

        The graph only changes once persistence has accepted the new records.

        Raises:
            ValidationError: If the merge is rejected; nothing is changed
        """
        result = self.merger.plan(candidates, target_category)
        if result.nodes:
            self.persistence.save_graph_data(self.owner_id, result.nodes, result.links)
            self.store.commit(result.nodes, result.links)
            logger.info(f"Merged {len(result.nodes)} nodes into '{target_category}' anchored on '{result.anchor_id}'")
            self.refresh_tree()
        return result

    # Analysis

    def begin_analysis(self, text: str) -> RequestToken:
        if not text or not text.strip():
            raise ValidationError("Nothing to analyze")
        return self.requests.issue(ANALYSIS_SLOT)

    def complete_analysis(self, token: RequestToken,
                          candidates: List[CandidateConcept]) -> Optional[List[CandidateConcept]]:
        """Make the analysis result the pending, editable concept list.

        Returns:
            The pending candidates, or None if the response was stale
        """
        if not self._accept(token):
            return None
        self.pending_candidates = [
            CandidateConcept(label=c.label, status=c.status, description=c.description)
            for c in candidates
        ]
        self.pending_saved = False
        logger.info(f"Analysis ready with {len(self.pending_candidates)} candidate concepts")
        return self.pending_candidates

    def fail_analysis(self, token: RequestToken, error: Exception) -> None:
        self._fail(token, error)

    def analyze(self, text: str) -> Optional[List[CandidateConcept]]:
        """Analyze text with the analysis service and keep the result pending.

        Raises:
            ExternalServiceError: If the service fails or is not configured
        """
        token = self.begin_analysis(text)
        try:
            candidates = self._require(self.analyzer, "analysis").analyze(text)
        except ExternalServiceError as e:
            return self._fail(token, e)
        return self.complete_analysis(token, candidates)

    def edit_candidate(self, index: int, **fields: Any) -> CandidateConcept:
        """Edit one pending concept before it is saved.

        Raises:
            ValidationError: On a bad index, field or status
        """
        if not 0 <= index < len(self.pending_candidates):
            raise ValidationError(f"No pending concept at position {index}")
        unknown = set(fields) - set(EDITABLE_CANDIDATE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot edit concept fields: {', '.join(sorted(unknown))}")
        if "status" in fields:
            check_status(fields["status"])
        candidate = self.pending_candidates[index]
        for name, value in fields.items():
            setattr(candidate, name, value)
        return candidate

    def remove_candidate(self, index: int) -> CandidateConcept:
        if not 0 <= index < len(self.pending_candidates):
            raise ValidationError(f"No pending concept at position {index}")
        return self.pending_candidates.pop(index)

    def save_pending(self, target_category: str) -> MergeResult:
        """Merge the pending concepts under the chosen category, once.

        Raises:
            ValidationError: If there is nothing pending, it was already saved, or the merge is rejected
        """
        if not self.pending_candidates:
            raise ValidationError("No analysed concepts to save")
        if self.pending_saved:
            raise ValidationError("These concepts have already been saved")
        result = self.merge(self.pending_candidates, target_category)
        self.pending_saved = True
        return result

    # Assessment

    def begin_assessment(self, node_id: str) -> RequestToken:
        self.store.get_node(node_id)
        return self.requests.issue(assessment_slot(node_id), subject=node_id)

    def complete_assessment(self, token: RequestToken, outcome: AssessmentOutcome) -> Optional[Node]:
        """Apply an assessment outcome to the assessed node.

        Returns:
            The updated node, or None if the response was stale

        Raises:
            NotFoundError: If the node no longer exists in the graph or in persistence;
                the status is left unchanged
        """
        if not self._accept(token):
            return None
        node_id = token.subject
        previous = self.store.get_node(node_id).status
        node = self.status_updater.apply(node_id, outcome)
        try:
            self.persistence.update_node(self.owner_id, node_id, status=node.status)
            self.persistence.save_assessment_result(self.owner_id, AssessmentResult(
                node_id=node_id,
                score=outcome.score,
                status=outcome.status,
                feedback=outcome.feedback,
                next_step=outcome.next_step,
            ))
        except Exception:
            # The graph must not show a status that was never stored
            self.store.update_status(node_id, previous)
            raise

        self.last_assessments[node_id] = outcome
        self.refresh_tree()
        return node

    def fail_assessment(self, token: RequestToken, error: Exception) -> None:
        self._fail(token, error)

    def assess(self, node_id: str, explanation: str) -> Optional[Node]:
        """Have the learner's explanation assessed and update the node's status.

        Raises:
            NotFoundError: If the node does not exist
            ValidationError: If the explanation is empty
            ExternalServiceError: If the service fails or is not configured
        """
        if not explanation or not explanation.strip():
            raise ValidationError("Explanation cannot be empty")
        token = self.begin_assessment(node_id)
        label = self.store.get_node(node_id).label
        try:
            outcome = self._require(self.assessor, "assessment").evaluate(label, explanation)
        except ExternalServiceError as e:
            return self._fail(token, e)
        return self.complete_assessment(token, outcome)

    def assessment_history(self, node_id: str) -> List[AssessmentResult]:
        return self.persistence.fetch_assessment_results(self.owner_id, node_id)

    # Quiz

    def request_quiz(self, node_id: str) -> Optional[QuizContent]:
        """Generate a quiz for a node; the graph is not changed.

        Returns:
            The quiz, or None if a newer quiz request superseded this one
        """
        label = self.store.get_node(node_id).label
        token = self.requests.issue(QUIZ_SLOT, subject=node_id)
        try:
            quiz = self._require(self.quiz_generator, "quiz").generate(label)
        except ExternalServiceError as e:
            return self._fail(token, e)
        if not self._accept(token):
            return None
        self.current_quiz = quiz
        return quiz

    # Notes and chat

    def save_note(self, node_id: str, title: str, content: str) -> NodeContent:
        self.store.get_node(node_id)
        return self.persistence.save_node_content(self.owner_id, node_id, title, content)

    def note_for(self, node_id: str) -> Optional[NodeContent]:
        return self.persistence.fetch_node_content(self.owner_id, node_id)

    def record_chat_message(self, sender: str, content: str,
                            subconcepts: Optional[List[str]] = None) -> ChatMessage:
        if sender not in ("user", "bot"):
            raise ValidationError(f"Unknown chat sender '{sender}'")
        message = ChatMessage(id=uuid.uuid4().hex, sender=sender, content=content, subconcepts=subconcepts)
        self.persistence.save_chat_message(self.owner_id, message)
        return message

    def chat_history(self) -> List[ChatMessage]:
        return self.persistence.fetch_chat_messages(self.owner_id)

    # Request bookkeeping

    def _accept(self, token: RequestToken) -> bool:
        try:
            self.requests.check(token)
        except StaleResponseError as e:
            logger.warning(f"Discarding stale response: {e}")
            return False
        self.requests.retire(token)
        return True

    def _fail(self, token: RequestToken, error: Exception) -> None:
        """Surface a failure for a current request; drop it for a stale one."""
        if not self.requests.is_current(token):
            logger.warning(f"Ignoring failure of superseded request for '{token.slot}': {error}")
            return None
        self.requests.retire(token)
        raise error

    @staticmethod
    def _require(service: Optional[Any], name: str) -> Any:
        if service is None:
            raise ExternalServiceError(f"No {name} service configured")
        return service
