"""OpenAI LLM service for grading free-form programming answers."""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from openai import OpenAI, OpenAIError, RateLimitError

from classtrail.core.config import settings
from classtrail.core.exceptions import EvaluatorError, EvaluatorQuotaExceeded

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    approved: bool
    score: float
    feedback: str
    suggestions: List[str] = field(default_factory=list)


def parse_evaluation(content: str) -> EvaluationResult:
    """Parse the model output into an EvaluationResult.

    The first JSON object found in the text is used, so stray prose around
    it is tolerated. Raises EvaluatorError when no usable object is present.
    """
    match = re.search(r"\{[\s\S]*\}", content or "")
    if not match:
        raise EvaluatorError("No JSON object in evaluator response")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise EvaluatorError(f"Malformed evaluator response: {e}") from e

    try:
        score = float(data.get("score") or 0)
    except (TypeError, ValueError):
        score = 0.0
    score = max(0.0, min(100.0, score))

    suggestions = data.get("suggestions")
    if not isinstance(suggestions, list):
        suggestions = []

    return EvaluationResult(
        approved=bool(data.get("approved")),
        score=score,
        feedback=str(data.get("feedback") or "No feedback available"),
        suggestions=[str(s) for s in suggestions],
    )


class OpenAIService:
    """Service for interacting with OpenAI API."""

    def __init__(self, client: Optional[OpenAI] = None):
        """Initialize OpenAI client with API key from settings."""
        self.client = client or OpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
        )
        self.model = getattr(settings, 'OPENAI_MODEL', 'gpt-4o-mini')

    def evaluate(
        self,
        statement: str,
        answer_text: str,
        reference_answer: Optional[str] = None
    ) -> EvaluationResult:
        """
        Grade a student's answer against the exercise statement.

        Args:
            statement: Exercise statement (and question prompt)
            answer_text: The student's submitted answer
            reference_answer: Optional expected solution shown to the model

        Returns:
            EvaluationResult with approved flag, 0-100 score, feedback and suggestions

        Raises:
            EvaluatorQuotaExceeded: OpenAI rejected the call for rate/quota reasons
            EvaluatorError: any other API failure or an unusable response
        """
        user_prompt = self._build_user_prompt(statement, answer_text, reference_answer)

        logger.info("Sending answer for evaluation: %s", statement[:100])
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._build_system_prompt()},
                    {"role": "user", "content": user_prompt}
                ],
                temperature=settings.OPENAI_TEMPERATURE,
                response_format={"type": "json_object"}
            )
        except RateLimitError as e:
            raise EvaluatorQuotaExceeded(str(e)) from e
        except OpenAIError as e:
            raise EvaluatorError(f"Error evaluating answer with OpenAI: {str(e)}") from e

        content = response.choices[0].message.content
        result = parse_evaluation(content)

        logger.info("Evaluation finished: approved=%s score=%s", result.approved, result.score)
        return result

    def _build_system_prompt(self) -> str:
        """Build the system prompt for answer grading."""
        return """You are a programming teacher who grades students' code.

Guidelines:
- Check whether the code solves the stated problem
- Check syntax and logic
- Consider good programming practices
- Point out what can be improved
- Give a score from 0 to 100
- Return ONLY valid JSON in the specified format

Output format:
{
  "approved": true or false,
  "feedback": "Detailed feedback for the student",
  "score": 0-100,
  "suggestions": ["improvement", "suggestions"]
}"""

    def _build_user_prompt(
        self,
        statement: str,
        answer_text: str,
        reference_answer: Optional[str]
    ) -> str:
        """Build the user prompt with the exercise and the student's answer."""
        prompt = f"""EXERCISE STATEMENT:
{statement}

STUDENT ANSWER:
{answer_text}
"""

        if reference_answer:
            prompt += f"\nEXAMPLE OF AN EXPECTED ANSWER:\n{reference_answer}\n"

        prompt += "\nReturn your response as valid JSON following the specified format."

        return prompt


def get_evaluator() -> OpenAIService:
    """Dependency providing the answer evaluator."""
    return OpenAIService()
