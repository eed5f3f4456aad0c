"""
AI Zone - external question generation and answer grading.

Every call is bounded by a timeout and a retry budget, and failure is
always recoverable: callers fall back to the local question bank and the
string-equality grader.
"""

from learnpath.ai.question_service import QuestionService

__all__ = [
    "QuestionService",
]
