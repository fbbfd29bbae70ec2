"""Duplicate filtering for concepts about to be merged into the graph."""
from typing import List, Optional, Any
import logging

import numpy as np
from sentence_transformers import SentenceTransformer

from conceptvault.exceptions import ValidationError
from conceptvault.models import CandidateConcept, MergeConfig

logger = logging.getLogger(__name__)

DEDUP_POLICIES = ("none", "label", "semantic")


def _normalize_label(label: str) -> str:
    return " ".join(label.split()).casefold()


class LabelDeduplicator:
    """Drops candidates whose label already exists, ignoring case and spacing."""

    def filter(self, candidates: List[CandidateConcept], existing_labels: List[str]) -> List[CandidateConcept]:
        """Return the candidates that do not repeat a known label.

        Earlier candidates count as known for later ones.
        """
        seen = {_normalize_label(label) for label in existing_labels}
        kept = []
        for candidate in candidates:
            key = _normalize_label(candidate.label)
            if key in seen:
                logger.info(f"Skipping duplicate concept '{candidate.label}'")
                continue
            seen.add(key)
            kept.append(candidate)
        return kept


class SemanticDeduplicator:
    """Drops candidates whose label embedding is too close to a known label."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", threshold: float = 0.9,
                 model: Optional[Any] = None):
        self.model_name = model_name
        self.threshold = threshold
        self._model = model

    @property
    def model(self) -> Any:
        # Loading the embedding model is slow, defer it to first use.
        if self._model is None:
            logger.info(f"Loading sentence embedding model {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def filter(self, candidates: List[CandidateConcept], existing_labels: List[str]) -> List[CandidateConcept]:
        """Return the candidates not similar to any known label or earlier candidate."""
        if not candidates:
            return []

        known = np.asarray(self.model.encode(list(existing_labels))) if existing_labels else None
        kept = []
        for candidate in candidates:
            embedding = np.asarray(self.model.encode([candidate.label])[0])
            if known is not None and len(known):
                similarities = self._compute_similarities(embedding, known)
                best = float(np.max(similarities))
                if best >= self.threshold:
                    logger.info(f"Skipping concept '{candidate.label}', similarity {best:.2f} to an existing concept")
                    continue
                known = np.vstack([known, embedding])
            else:
                known = embedding.reshape(1, -1)
            kept.append(candidate)
        return kept

    def _compute_similarities(self, query_embedding: np.ndarray,
                              label_embeddings: np.ndarray) -> np.ndarray:
        """Compute cosine similarities between one label and many."""
        return np.dot(label_embeddings, query_embedding) / (
            np.linalg.norm(label_embeddings, axis=1) * np.linalg.norm(query_embedding)
        )


def create_deduplicator(config: MergeConfig):
    """Build the deduplicator for the configured policy, or None for no filtering.

    Raises:
        ValidationError: If the policy name is unknown
    """
    policy = config.dedup_policy
    if policy == "none":
        return None
    if policy == "label":
        return LabelDeduplicator()
    if policy == "semantic":
        return SemanticDeduplicator(config.embedding_model, config.similarity_threshold)
    raise ValidationError(f"Unknown dedup policy '{policy}', expected one of {', '.join(DEDUP_POLICIES)}")
