"""
Question Bank - deterministic local questions built from the topic pool.

Used when the generation service is unavailable, so a batch can always be
issued and an incorrect answer can always be replaced. Every question's
correct answer is the topic name itself, which keeps it gradable by the
local string-equality fallback.
"""

import itertools
import uuid
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from learnpath.engines.progression.checkpoint_engine import normalize_text
from learnpath.engines.progression.models import Difficulty, Question

_BANK_NAMESPACE = uuid.UUID("6f1c2a0e-7d4b-4c55-9a2e-3b8f0d9e1a47")


def _mask(topic: str) -> str:
    """Hide every second letter: 'fractions' -> 'f_a_t_o_s'."""
    out = []
    letter_index = 0
    for ch in topic:
        if ch.isalpha():
            out.append(ch if letter_index % 2 == 0 else "_")
            letter_index += 1
        else:
            out.append(ch)
    return "".join(out)


def _scramble(topic: str) -> str:
    """Sort the letters of each word: 'linear equations' -> 'aeilnr aeinoqstu'."""
    return " ".join("".join(sorted(word.lower())) for word in topic.split())


def _reverse(topic: str) -> str:
    return topic[::-1]


def _initials(topic: str) -> str:
    return "".join(word[0].upper() for word in topic.split() if word)


Template = Tuple[str, Callable[[str], str]]


class QuestionBank:
    """
    Local question source.

    Templates per difficulty; each (template, topic) pair yields one
    question with a stable id. When every pair is excluded, numbered review
    rounds produce further distinct questions.
    """

    POINTS_BY_DIFFICULTY: Dict[Difficulty, int] = {
        Difficulty.EASY: 5,
        Difficulty.MEDIUM: 10,
        Difficulty.HARD: 15,
    }

    TEMPLATES: Dict[Difficulty, List[Template]] = {
        Difficulty.EASY: [
            ("Fill in the missing letters of a topic from your sessions: {clue}", _mask),
            ("Which topic from your sessions has the initials {clue}?", _initials),
        ],
        Difficulty.MEDIUM: [
            ("Unscramble this topic from your sessions: {clue}", _scramble),
            ("Which topic from your sessions has the initials {clue}?", _initials),
        ],
        Difficulty.HARD: [
            ("Which topic from your sessions reads '{clue}' backwards?", _reverse),
            ("Unscramble this topic from your sessions: {clue}", _scramble),
        ],
    }

    DEFAULT_TOPIC = "review"

    @classmethod
    def points_for(cls, difficulty: Difficulty) -> int:
        return cls.POINTS_BY_DIFFICULTY.get(difficulty, 10)

    @classmethod
    def _candidates(cls, topics: List[str], difficulty: Difficulty) -> Iterable[Question]:
        templates = cls.TEMPLATES[difficulty]
        for round_number in itertools.count():
            for template, clue in templates:
                for topic in topics:
                    text = template.format(clue=clue(topic))
                    if round_number:
                        text = f"Review {round_number + 1}: {text}"
                    key = f"{difficulty.value}|{template}|{topic}|{round_number}"
                    yield Question(
                        question_id=f"bank-{uuid.uuid5(_BANK_NAMESPACE, key).hex[:16]}",
                        text=text,
                        topic=topic,
                        difficulty=difficulty,
                        correct_answer=topic,
                        points_value=cls.points_for(difficulty),
                        hint=f"It has {len(topic.replace(' ', ''))} letters.",
                    )

    @classmethod
    def get_questions(
        cls,
        topics: Iterable[str],
        difficulty: Difficulty,
        count: int,
        exclude_ids: Optional[Iterable[str]] = None,
        exclude_texts: Optional[Iterable[str]] = None,
    ) -> List[Question]:
        """
        Return `count` questions for the topic pool, skipping excluded ones.

        Args:
            topics: Topic pool (order is kept; duplicates removed)
            difficulty: Difficulty for every returned question
            count: Number of questions wanted
            exclude_ids: Question ids already issued in this scope
            exclude_texts: Question texts already issued in this scope
        """
        pool: List[str] = []
        for t in topics:
            t = (t or "").strip()
            if t and t not in pool:
                pool.append(t)
        if not pool:
            pool = [cls.DEFAULT_TOPIC]

        excluded_ids = set(exclude_ids or ())
        excluded_texts = {normalize_text(t) for t in (exclude_texts or ())}

        selected: List[Question] = []
        if count <= 0:
            return selected
        for question in cls._candidates(pool, difficulty):
            if question.question_id in excluded_ids:
                continue
            if normalize_text(question.text) in excluded_texts:
                continue
            selected.append(question)
            excluded_ids.add(question.question_id)
            excluded_texts.add(normalize_text(question.text))
            if len(selected) >= count:
                break
        return selected
