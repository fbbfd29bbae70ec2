from typing import List, Any, Optional
import logging

from conceptvault.api_client import parse_yaml_reply
from conceptvault.cache import QuizCache
from conceptvault.exceptions import ExternalServiceError
from conceptvault.models import QuizContent, QuizQuestion

logger = logging.getLogger(__name__)


class QuizGenerator:
    """Generates a short quiz for one concept."""

    def __init__(self, llm_client: Any, cache: Optional[QuizCache] = None, num_questions: int = 3):
        self.llm_client = llm_client
        self.cache = cache
        self.num_questions = num_questions

    def generate(self, concept_label: str) -> QuizContent:
        """Generate quiz questions about a concept.

        Args:
            concept_label: Label of the concept to quiz on

        Returns:
            QuizContent with the generated questions

        Raises:
            ExternalServiceError: If quiz generation fails
        """
        if self.cache is not None:
            cached = self.cache.get(concept_label)
            if cached is not None:
                return cached

        try:
            reply = self.llm_client.generate(self._create_quiz_prompt(concept_label))
            quiz = QuizContent(concept_label=concept_label, questions=self._parse_quiz_response(reply))
        except ExternalServiceError:
            raise
        except Exception as e:
            logger.error(f"Failed to generate quiz: {e}")
            raise ExternalServiceError(f"Quiz generation failed: {str(e)}") from e

        if self.cache is not None:
            self.cache.put(quiz)
        return quiz

    def _create_quiz_prompt(self, concept_label: str) -> str:
        return f"""Create {self.num_questions} quiz questions that check whether a learner
understands the concept "{concept_label}".
Include detailed explanations for correct answers.

Format response as YAML with questions list containing:
- question: string
- options: list of strings
- correct_answer: string (one of the options)
- explanation: string
- type: string (multiple_choice/true_false)"""

    def _parse_quiz_response(self, reply: str) -> List[QuizQuestion]:
        data = parse_yaml_reply(reply)
        if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
            raise ExternalServiceError("Missing 'questions' list in quiz reply")

        questions = []
        for item in data["questions"]:
            try:
                questions.append(QuizQuestion(
                    question=item["question"],
                    options=list(item.get("options") or []),
                    correct_answer=str(item["correct_answer"]),
                    explanation=item.get("explanation", ""),
                    type=item.get("type", "multiple_choice"),
                ))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed quiz question: {e}")

        if not questions:
            raise ExternalServiceError("Quiz reply contained no usable questions")
        return questions
