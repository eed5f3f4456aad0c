"""
Question/answer service backed by OpenAI.

Two calls: generate practice questions for a topic pool, and grade a free
text answer against a question. Both have a per-call timeout and a bounded
number of retries; on any failure they raise GenerationUnavailable and the
caller falls back to the local question bank / string-equality grader.
"""

import asyncio
import json
import re
import uuid
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from learnpath.config import Settings, get_settings
from learnpath.engines.progression.grader import GradeResult
from learnpath.engines.progression.models import Difficulty, GradedBy, Question
from learnpath.engines.progression.question_bank import QuestionBank
from learnpath.errors import GenerationUnavailable
from learnpath.logging_config import get_logger

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

GENERATION_SYSTEM_PROMPT = (
    "You are an expert educator who creates high-quality practice questions. "
    "Return only valid JSON arrays."
)

GRADING_SYSTEM_PROMPT = (
    "You are an encouraging tutor evaluating student answers. Be supportive but accurate.\n"
    "Accept equivalent forms of the correct answer (different formatting, equivalent "
    "fractions or decimals, small rounding differences).\n\n"
    "Return a JSON object with these exact fields:\n"
    '{"isCorrect": boolean, "feedback": string (1-2 sentences)}\n\n'
    "Return ONLY valid JSON. Do not include any markdown formatting or explanatory text."
)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` block if the model added one."""
    return _FENCE_RE.sub("", (text or "").strip()).strip()


def is_placeholder_key(key: Optional[str]) -> bool:
    key = (key or "").strip()
    return not key or key.startswith("sk-your-")


def optional_text(value: Any) -> Optional[str]:
    """A non-empty string field from model output, anything else becomes None."""
    if not isinstance(value, str):
        return None
    return value.strip() or None


class QuestionService:
    """
    Usage:
        service = QuestionService()
        questions = await service.generate_questions("Algebra", ["fractions"], Difficulty.EASY, 3)
        result = await service.grade_answer(questions[0], "3/4")
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Any] = None):
        self.settings = settings or get_settings()
        self.timeout = self.settings.generation_timeout_seconds
        self.max_retries = max(0, self.settings.generation_max_retries)
        self.model = self.settings.openai_model

        if client is not None:
            self._client = client
        elif is_placeholder_key(self.settings.openai_api_key):
            self._client = None
        else:
            # Retries are handled here so the timeout budget stays predictable
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key.strip(),
                timeout=self.timeout,
                max_retries=0,
            )

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def _complete_json(
        self,
        messages: List[Dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
        purpose: str,
    ) -> Any:
        """Run one chat completion and parse its JSON body, retrying on failure."""
        if self._client is None:
            raise GenerationUnavailable("Question service is not configured (no API key)")

        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries + 1):
            try:
                response = await asyncio.wait_for(
                    self._client.chat.completions.create(
                        model=self.model,
                        messages=messages,
                        temperature=temperature,
                        max_tokens=max_tokens,
                    ),
                    timeout=self.timeout,
                )
                content = strip_code_fences(response.choices[0].message.content or "")
                return json.loads(content)
            except (OpenAIError, asyncio.TimeoutError, ValueError, IndexError, AttributeError) as exc:
                last_error = exc
                logger.warning(
                    "Question service %s attempt %d/%d failed: %s",
                    purpose,
                    attempt + 1,
                    self.max_retries + 1,
                    exc,
                )

        raise GenerationUnavailable(
            f"Question service {purpose} failed after {self.max_retries + 1} attempt(s)",
            details={"error": str(last_error)},
        ) from last_error

    async def generate_questions(
        self,
        subject: str,
        topics: List[str],
        difficulty: Difficulty,
        count: int,
        avoid: Optional[List[str]] = None,
    ) -> List[Question]:
        """
        Generate up to `count` questions.

        Items without text or answer are dropped, so fewer than `count` may be
        returned; the caller tops up from the local bank.
        """
        pool = [t for t in topics if t and t.strip()] or [subject]
        avoid_block = ""
        if avoid:
            listed = "\n".join(f"- {text}" for text in avoid[:20])
            avoid_block = f"\nDo NOT repeat any of these questions:\n{listed}\n"

        prompt = f"""Generate {count} practice questions.

Subject: {subject}
Topics: {', '.join(pool)}
Difficulty: {difficulty.value}
{avoid_block}
Return ONLY a valid JSON array of {count} questions with this structure:
[
  {{
    "text": "question text",
    "correctAnswer": "answer",
    "topic": "one of the topics above",
    "hint": "helpful hint",
    "explanation": "why this answer is correct"
  }}
]

NO additional text, ONLY the JSON array."""

        data = await self._complete_json(
            [
                {"role": "system", "content": GENERATION_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.8,
            max_tokens=1500,
            purpose="generation",
        )
        if not isinstance(data, list):
            raise GenerationUnavailable("Question service returned a non-array payload")

        questions: List[Question] = []
        for item in data[:count]:
            if not isinstance(item, dict):
                continue
            text = str(item.get("text") or item.get("question") or "").strip()
            answer = str(item.get("correctAnswer") or item.get("answer") or "").strip()
            if not text or not answer:
                continue
            topic = str(item.get("topic") or "").strip()
            if topic not in pool:
                topic = pool[0]
            try:
                question = Question(
                    question_id=f"gen-{uuid.uuid4().hex[:16]}",
                    text=text,
                    topic=topic,
                    difficulty=difficulty,
                    correct_answer=answer,
                    points_value=QuestionBank.points_for(difficulty),
                    hint=optional_text(item.get("hint")),
                    explanation=optional_text(item.get("explanation")),
                )
            except ValidationError as exc:
                logger.warning("Dropping malformed generated question: %s", exc.error_count())
                continue
            questions.append(question)

        logger.info("Generated %d/%d %s questions for %s", len(questions), count, difficulty.value, subject)
        return questions

    async def grade_answer(self, question: Question, student_answer: str) -> GradeResult:
        """Judge an answer. Raises GenerationUnavailable when the service can't."""
        context = (
            f"Question: {question.text}\n"
            f"Correct Answer: {question.correct_answer}\n"
            f"Student Answer: {student_answer}\n\n"
            "Evaluate if the student's answer is equivalent to the correct answer, "
            "even if formatted differently."
        )
        data = await self._complete_json(
            [
                {"role": "system", "content": GRADING_SYSTEM_PROMPT},
                {"role": "user", "content": context},
            ],
            temperature=0.5,
            max_tokens=300,
            purpose="grading",
        )
        if not isinstance(data, dict):
            raise GenerationUnavailable("Question service returned a non-object grading payload")
        is_correct = data.get("isCorrect")
        feedback = data.get("feedback")
        if not isinstance(is_correct, bool) or not feedback:
            raise GenerationUnavailable("Invalid grading payload from question service")

        return GradeResult(is_correct=is_correct, feedback=str(feedback), graded_by=GradedBy.SERVICE)
