from typing import Any
import logging

from conceptvault.api_client import parse_yaml_reply
from conceptvault.exceptions import ExternalServiceError
from conceptvault.models import AssessmentOutcome, ASSESSED_STATUSES

logger = logging.getLogger(__name__)


class ExplanationAssessor:
    """Scores a learner's own explanation of a concept."""

    REQUIRED_FIELDS = ("score", "status", "feedback", "next_step")

    def __init__(self, llm_client: Any):
        self.llm_client = llm_client

    def evaluate(self, concept_label: str, explanation: str) -> AssessmentOutcome:
        """Assess how well the explanation shows the concept is understood.

        Args:
            concept_label: The concept being explained
            explanation: The learner's explanation, typed or transcribed

        Returns:
            AssessmentOutcome with score, status, feedback and next step

        Raises:
            ExternalServiceError: If the assessment fails or the reply is incomplete
        """
        try:
            reply = self.llm_client.generate(self._create_assessment_prompt(concept_label, explanation))
            data = parse_yaml_reply(reply)
            if not isinstance(data, dict):
                raise ExternalServiceError("Assessment reply is not a mapping")

            for field in self.REQUIRED_FIELDS:
                if field not in data:
                    raise ExternalServiceError(f"Missing required field in assessment: {field}")

            status = str(data["status"]).strip().lower()
            if status not in ASSESSED_STATUSES:
                raise ExternalServiceError(f"Invalid status in assessment: {status}")

            score = max(0, min(100, int(data["score"])))
            return AssessmentOutcome(
                score=score,
                status=status,
                feedback=str(data["feedback"]),
                next_step=str(data["next_step"]),
            )
        except ExternalServiceError as e:
            logger.error(f"Assessment failed for {concept_label}: {e}")
            raise
        except Exception as e:
            logger.error(f"Assessment failed for {concept_label}: {e}")
            raise ExternalServiceError(f"Assessment failed: {str(e)}") from e

    def _create_assessment_prompt(self, concept_label: str, explanation: str) -> str:
        return f"""A learner explained the concept "{concept_label}" in their own words:

{explanation[:3000]}

Evaluate the explanation:
1. Score (0-100): How accurate and complete is it?
2. Status: known if the concept is understood, fuzzy if partly, unknown if not
3. Feedback: What was right and what was missing
4. Next step: One concrete thing to study next

Format your response as YAML with these keys:
- score: integer
- status: known, fuzzy or unknown
- feedback: string
- next_step: string"""
