"""
Domain error taxonomy.

- NotFound: unknown student/checkpoint/batch/question. Surfaced, not retried.
- GenerationUnavailable: the question/answer service failed or timed out.
  Always recovered locally with the deterministic fallback.
- InvariantViolation: progression state is inconsistent. Fatal for the
  current write; never masked.
- Conflicts (BatchClosed, QuestionNotActive, ConcurrentSubmission): the
  request cannot be applied to the current state.

A locked checkpoint is not an error; it is reported as a start outcome.
"""

from typing import Any, Dict, Optional


class LearnPathError(Exception):
    """Base class for all domain errors."""

    code = "learnpath_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(LearnPathError):
    """A referenced student, path, checkpoint, batch or question does not exist."""

    code = "not_found"


class GenerationUnavailable(LearnPathError):
    """The external question generation / grading service could not be used."""

    code = "generation_unavailable"


class InvariantViolation(LearnPathError):
    """Progression state would become (or already is) corrupt."""

    code = "invariant_violation"


class ConflictError(LearnPathError):
    """The request conflicts with the current state."""

    code = "conflict"


class BatchClosed(ConflictError):
    """The batch is completed or skipped; terminal states are not re-enterable."""

    code = "batch_closed"


class QuestionNotActive(ConflictError):
    """The question was superseded or already answered correctly."""

    code = "question_not_active"


class ConcurrentSubmission(ConflictError):
    """Another submission for the same student or batch won the race. Retry the whole submission."""

    code = "concurrent_submission"
