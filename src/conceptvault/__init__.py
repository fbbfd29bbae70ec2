"""ConceptVault - A personal knowledge graph that tracks how well each concept is understood."""

from conceptvault.controller import KnowledgeVault
from conceptvault.exceptions import (
    ConceptVaultError,
    ExternalServiceError,
    NotFoundError,
    StaleResponseError,
    ValidationError,
)
from conceptvault.models import Node, Link, Folder, Leaf, CandidateConcept, AssessmentOutcome
from conceptvault.graph_store import GraphStore
from conceptvault.tree_projector import TreeProjector
from conceptvault.tree_mutator import TreeMutator
from conceptvault.concept_merger import ConceptMerger, MergeResult
from conceptvault.status_updater import StatusUpdater
from conceptvault.api_client import APIRateLimiter, APIClientFactory, LLMClient

__version__ = "0.1.0"
