"""
Grader - local deterministic grading used when the answer service is unavailable.
"""

from pydantic import BaseModel

from learnpath.engines.progression.models import GradedBy, Question


class GradeResult(BaseModel):
    """Correctness judgment for one answer."""

    is_correct: bool
    feedback: str
    graded_by: GradedBy = GradedBy.SERVICE


class Grader:
    """
    Fallback grading: trimmed, case-insensitive string equality against the
    question's correct answer, with generic feedback.
    """

    CORRECT_FEEDBACK = "Correct! Great job!"
    INCORRECT_FEEDBACK = "Not quite. The correct answer is: {answer}. Keep practicing!"

    @classmethod
    def normalize(cls, answer: str) -> str:
        return (answer or "").strip().lower()

    @classmethod
    def grade(cls, question: Question, student_answer: str) -> GradeResult:
        correct = cls.normalize(student_answer) == cls.normalize(question.correct_answer)
        feedback = (
            cls.CORRECT_FEEDBACK
            if correct
            else cls.INCORRECT_FEEDBACK.format(answer=question.correct_answer)
        )
        return GradeResult(is_correct=correct, feedback=feedback, graded_by=GradedBy.FALLBACK)
