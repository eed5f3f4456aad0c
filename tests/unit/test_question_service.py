"""Unit tests for the OpenAI-backed question service (client mocked)."""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from learnpath.ai.question_service import QuestionService, is_placeholder_key, strip_code_fences
from learnpath.config import Settings
from learnpath.engines.progression.models import Difficulty, GradedBy
from learnpath.engines.progression.question_bank import QuestionBank
from learnpath.errors import GenerationUnavailable


def completion(content: str):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def make_service(*side_effect, timeout: float = 1.0, retries: int = 1):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=list(side_effect))
    settings = Settings(
        openai_api_key="",
        generation_timeout_seconds=timeout,
        generation_max_retries=retries,
    )
    return QuestionService(settings, client=client), client


class TestConfiguration:
    """Placeholder keys disable the client."""

    @pytest.mark.parametrize("key", ["", "   ", "sk-your-openai-key-here"])
    def test_placeholder_keys(self, key):
        assert is_placeholder_key(key)
        assert not QuestionService(Settings(openai_api_key=key)).enabled

    def test_real_looking_key(self):
        assert not is_placeholder_key("sk-live-123")

    @pytest.mark.asyncio
    async def test_disabled_service_raises(self):
        service = QuestionService(Settings(openai_api_key=""))
        with pytest.raises(GenerationUnavailable):
            await service.generate_questions("Math", ["fractions"], Difficulty.EASY, 3)

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n[{"a": 1}]\n```') == '[{"a": 1}]'
        assert strip_code_fences("[]") == "[]"


class TestGenerateQuestions:
    """Question generation."""

    @pytest.mark.asyncio
    async def test_parses_questions(self):
        payload = [
            {"text": "What is 1/2 + 1/4?", "correctAnswer": "3/4", "topic": "fractions", "hint": "Common denominator"},
            {"question": "Write 0.5 as a fraction", "answer": "1/2", "topic": "something else"},
            {"text": "", "correctAnswer": "dropped"},
        ]
        service, client = make_service(completion("```json\n" + json.dumps(payload) + "\n```"))
        questions = await service.generate_questions("Math", ["fractions", "decimals"], Difficulty.MEDIUM, 3)

        assert len(questions) == 2
        assert questions[0].text == "What is 1/2 + 1/4?"
        assert questions[0].correct_answer == "3/4"
        assert questions[0].hint == "Common denominator"
        assert questions[0].points_value == QuestionBank.points_for(Difficulty.MEDIUM)
        # Unknown topic falls back to the first topic in the pool
        assert questions[1].topic == "fractions"
        assert questions[0].question_id != questions[1].question_id
        assert client.chat.completions.create.await_count == 1

    @pytest.mark.asyncio
    async def test_non_string_optional_fields_are_dropped(self):
        payload = [
            {"text": "What is 1/2 + 1/4?", "correctAnswer": "3/4", "hint": ["Find a common denominator"]},
            {"text": "Write 0.5 as a fraction", "answer": "1/2", "explanation": {"why": "halves"}, "hint": "  "},
        ]
        service, _ = make_service(completion(json.dumps(payload)))
        questions = await service.generate_questions("Math", ["fractions"], Difficulty.EASY, 2)

        assert [q.correct_answer for q in questions] == ["3/4", "1/2"]
        assert all(q.hint is None and q.explanation is None for q in questions)

    @pytest.mark.asyncio
    async def test_avoid_list_in_prompt(self):
        service, client = make_service(completion("[]"))
        await service.generate_questions("Math", ["fractions"], Difficulty.EASY, 1, avoid=["What is 1/2?"])
        messages = client.chat.completions.create.await_args.kwargs["messages"]
        assert "What is 1/2?" in messages[1]["content"]

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        service, client = make_service(completion("not json"), completion('[{"text": "Q", "answer": "A"}]'))
        questions = await service.generate_questions("Math", ["fractions"], Difficulty.EASY, 1)
        assert [x.correct_answer for x in questions] == ["A"]
        assert client.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_retry_budget(self):
        service, client = make_service(completion("nope"), completion("still nope"), retries=1)
        with pytest.raises(GenerationUnavailable):
            await service.generate_questions("Math", ["fractions"], Difficulty.EASY, 1)
        assert client.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_non_array_payload(self):
        service, _ = make_service(completion('{"text": "Q"}'))
        with pytest.raises(GenerationUnavailable):
            await service.generate_questions("Math", ["fractions"], Difficulty.EASY, 1)

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow(**kwargs):
            await asyncio.sleep(1)
            return completion("[]")

        client = MagicMock()
        client.chat.completions.create = slow
        service = QuestionService(
            Settings(openai_api_key="", generation_timeout_seconds=0.01, generation_max_retries=0),
            client=client,
        )
        with pytest.raises(GenerationUnavailable):
            await service.generate_questions("Math", ["fractions"], Difficulty.EASY, 1)


class TestGradeAnswer:
    """Answer grading."""

    @pytest.mark.asyncio
    async def test_grades(self):
        question = QuestionBank.get_questions(["fractions"], Difficulty.EASY, 1)[0]
        service, _ = make_service(completion('{"isCorrect": true, "feedback": "Nice work!"}'))
        result = await service.grade_answer(question, "Fractions")
        assert result.is_correct is True
        assert result.feedback == "Nice work!"
        assert result.graded_by == GradedBy.SERVICE

    @pytest.mark.asyncio
    async def test_invalid_payload(self):
        question = QuestionBank.get_questions(["fractions"], Difficulty.EASY, 1)[0]
        service, _ = make_service(completion('{"isCorrect": "yes"}'), retries=0)
        with pytest.raises(GenerationUnavailable):
            await service.grade_answer(question, "fractions")
