"""Seed data for a fresh knowledge graph."""
import logging
from pathlib import Path
from typing import Dict, List, Tuple, Union

import yaml

from conceptvault.exceptions import ValidationError
from conceptvault.models import Link, Node

logger = logging.getLogger(__name__)

INITIAL_NODES = [
    {"id": "root", "label": "LLM (Large Language Model)", "status": "known", "weight": 30, "category": "Core",
     "description": "An AI model trained on a vast amount of text data."},
    {"id": "c1", "label": "Transformer", "status": "fuzzy", "weight": 25, "category": "Architecture",
     "description": "A deep learning architecture built on the attention mechanism."},
    {"id": "c2", "label": "Attention Mechanism", "status": "unknown", "weight": 20, "category": "Concept",
     "description": "A technique that weights the most relevant parts of the input."},
    {"id": "c3", "label": "RAG (Retrieval-Augmented Generation)", "status": "known", "weight": 28, "category": "Application",
     "description": "Searches an external knowledge base to make LLM answers more accurate."},
    {"id": "c4", "label": "Vector DB", "status": "known", "weight": 22, "category": "Infrastructure",
     "description": "A database that stores and searches high-dimensional vectors efficiently."},
    {"id": "c5", "label": "Embedding", "status": "fuzzy", "weight": 18, "category": "Math",
     "description": "Turning text or images into numeric vectors."},
    {"id": "c6", "label": "Fine-tuning", "status": "unknown", "weight": 15, "category": "Training",
     "description": "Adapting a pretrained model to a specific task."},
    {"id": "c7", "label": "Prompt Engineering", "status": "known", "weight": 20, "category": "Skill",
     "description": "Designing inputs to get the best results from an AI model."},
]

INITIAL_LINKS = [
    {"source": "root", "target": "c1"},
    {"source": "c1", "target": "c2"},
    {"source": "root", "target": "c3"},
    {"source": "c3", "target": "c4"},
    {"source": "c4", "target": "c5"},
    {"source": "root", "target": "c6"},
    {"source": "root", "target": "c7"},
    {"source": "c3", "target": "c7"},
]


def _build(raw_nodes: List[Dict], raw_links: List[Dict]) -> Tuple[List[Node], List[Link]]:
    try:
        nodes = [Node.from_dict(n) for n in raw_nodes]
        links = [Link(source=str(l["source"]), target=str(l["target"])) for l in raw_links]
    except (KeyError, TypeError) as e:
        raise ValidationError(f"Malformed seed data: {e}") from e
    return nodes, links


def default_seed() -> Tuple[List[Node], List[Link]]:
    """Fresh copies of the built-in seed graph."""
    return _build(INITIAL_NODES, INITIAL_LINKS)


def load_seed_file(path: Union[str, Path]) -> Tuple[List[Node], List[Link]]:
    """Load seed nodes and links from a YAML file.

    The file holds a ``nodes`` list and an optional ``links`` list in the same
    shape as the built-in seed.

    Raises:
        FileNotFoundError: If the file does not exist
        ValidationError: If the file does not have a nodes list
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Seed file not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict) or not isinstance(data.get("nodes"), list):
        raise ValidationError("Seed file must contain a 'nodes' list")

    nodes, links = _build(data["nodes"], data.get("links") or [])
    logger.info(f"Loaded {len(nodes)} nodes and {len(links)} links from {path}")
    return nodes, links
