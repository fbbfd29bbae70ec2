from typing import List, Any
import logging

from conceptvault.api_client import parse_yaml_reply
from conceptvault.exceptions import ExternalServiceError
from conceptvault.models import CandidateConcept, MASTERY_STATUSES

logger = logging.getLogger(__name__)


class ConceptAnalyzer:
    """Extracts candidate concepts from a learner's free text."""

    def __init__(self, llm_client: Any, max_concepts: int = 5):
        self.llm_client = llm_client
        self.max_concepts = max_concepts

    def analyze(self, text: str) -> List[CandidateConcept]:
        """Turn free text into candidate concepts.

        Args:
            text: What the learner asked or wrote

        Returns:
            List of CandidateConcept objects, in the order the model gave them

        Raises:
            ExternalServiceError: If the call fails or the reply cannot be used
        """
        try:
            reply = self.llm_client.generate(self._create_analysis_prompt(text))
            return self._parse_concepts(reply)
        except ExternalServiceError:
            raise
        except Exception as e:
            logger.error(f"Concept analysis failed: {e}")
            raise ExternalServiceError(f"Concept analysis failed: {str(e)}") from e

    def _create_analysis_prompt(self, text: str) -> str:
        return f"""A learner wrote the following while studying:

{text[:4000]}

Identify up to {self.max_concepts} distinct concepts the learner should add to their
knowledge graph. For each, judge how well the text shows the learner already
understands it:
- known: explained correctly
- fuzzy: mentioned with gaps or confusion
- unknown: asked about or clearly misunderstood
- new: not covered by the text but needed next

Format your response as YAML with a concepts list containing:
- label: string (short concept name)
- status: one of {', '.join(MASTERY_STATUSES)}
- description: string (one sentence)"""

    def _parse_concepts(self, reply: str) -> List[CandidateConcept]:
        data = parse_yaml_reply(reply)
        if not isinstance(data, dict) or not isinstance(data.get("concepts"), list):
            raise ExternalServiceError("Missing 'concepts' list in analysis reply")

        concepts = []
        for item in data["concepts"]:
            if not isinstance(item, dict) or not str(item.get("label") or "").strip():
                logger.warning(f"Ignoring malformed concept in analysis reply: {item!r}")
                continue
            status = str(item.get("status", "new")).strip().lower()
            if status not in MASTERY_STATUSES:
                logger.warning(f"Unknown status '{status}' for '{item['label']}', using 'new'")
                status = "new"
            concepts.append(CandidateConcept(
                label=str(item["label"]).strip(),
                status=status,
                description=item.get("description"),
            ))

        if not concepts:
            raise ExternalServiceError("Analysis reply contained no usable concepts")
        logger.info(f"Analysis produced {len(concepts)} candidate concepts")
        return concepts
