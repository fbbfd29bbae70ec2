"""Cache module for conceptvault.

This module caches generated quizzes so that asking for the same concept again
does not repeat the API call.
"""

import logging
import hashlib
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import yaml

from conceptvault.models import QuizContent, QuizQuestion

logger = logging.getLogger(__name__)


class QuizCache:
    """File cache of generated quizzes, one YAML file per concept label.

    Attributes:
        cache_dir (Path): Directory to store cache files
    """

    def __init__(self, cache_dir: Path):
        """Initialize the cache.

        Args:
            cache_dir: Directory to store cache files

        Raises:
            OSError: If the cache directory cannot be created
        """
        self.cache_dir = Path(cache_dir)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Initialized quiz cache at {self.cache_dir}")
        except OSError as e:
            logger.error(f"Failed to create cache directory: {e}")
            raise

    def get_cache_key(self, concept_label: str) -> str:
        """Generate a cache key for a concept.

        Returns:
            str: MD5 hash of the normalized label
        """
        key = hashlib.md5(concept_label.strip().casefold().encode()).hexdigest()
        logger.debug(f"Generated cache key {key} for concept '{concept_label}'")
        return key

    def get(self, concept_label: str) -> Optional[QuizContent]:
        """Retrieve a cached quiz if available.

        Unreadable cache entries are treated as missing.
        """
        cache_file = self.cache_dir / f"{self.get_cache_key(concept_label)}.yaml"
        if not cache_file.exists():
            logger.debug(f"No cached quiz for '{concept_label}'")
            return None
        try:
            data = yaml.safe_load(cache_file.read_text(encoding="utf-8"))
            quiz = QuizContent(
                concept_label=data["concept_label"],
                questions=[QuizQuestion(**q) for q in data.get("questions", [])],
            )
            logger.info(f"Retrieved cached quiz for '{concept_label}'")
            return quiz
        except (OSError, yaml.YAMLError, KeyError, TypeError) as e:
            logger.error(f"Error reading quiz cache for '{concept_label}': {e}")
            return None

    def put(self, quiz: QuizContent) -> bool:
        """Cache a generated quiz.

        Returns:
            bool: True if successful, False otherwise
        """
        cache_file = self.cache_dir / f"{self.get_cache_key(quiz.concept_label)}.yaml"
        try:
            cache_file.write_text(yaml.safe_dump(asdict(quiz), allow_unicode=True), encoding="utf-8")
            logger.debug(f"Quiz cached for '{quiz.concept_label}'")
            return True
        except OSError as e:
            logger.error(f"Failed to cache quiz: {e}")
            return False

    def clear(self) -> bool:
        """Clear all cached quizzes.

        Returns:
            bool: True if successful, False otherwise
        """
        try:
            for cache_file in self.cache_dir.glob("*.yaml"):
                cache_file.unlink()
            logger.info("Quiz cache cleared successfully")
            return True
        except OSError as e:
            logger.error(f"Failed to clear cache: {e}")
            return False
