"""
Question batch state machine.

    pending --(every active question answered correctly)--> completed
    pending --(explicit abandonment)-----------------------> skipped

Terminal states are never re-entered. An incorrect answer does not end a
question's pending state by itself; the question is superseded by a fresh
replacement that takes its place in the active list.
"""

from typing import Dict, FrozenSet, List, Optional

from learnpath.engines.progression.models import (
    BatchStatus,
    Question,
    QuestionBatch,
    Response,
)
from learnpath.errors import BatchClosed, InvariantViolation, NotFound, QuestionNotActive


class BatchLifecycle:
    """Transitions over immutable QuestionBatch values."""

    TRANSITIONS: Dict[BatchStatus, FrozenSet[BatchStatus]] = {
        BatchStatus.PENDING: frozenset({BatchStatus.COMPLETED, BatchStatus.SKIPPED}),
        BatchStatus.COMPLETED: frozenset(),
        BatchStatus.SKIPPED: frozenset(),
    }

    @classmethod
    def can_transition(cls, current: BatchStatus, target: BatchStatus) -> bool:
        return target in cls.TRANSITIONS.get(current, frozenset())

    @classmethod
    def ensure_open(cls, batch: QuestionBatch) -> None:
        if batch.status != BatchStatus.PENDING:
            raise BatchClosed(
                f"Batch {batch.batch_id} is {batch.status.value}; start a new batch to keep practicing",
                details={"batch_id": str(batch.batch_id), "status": batch.status.value},
            )

    @classmethod
    def pending_questions(cls, batch: QuestionBatch) -> List[Question]:
        """Active questions without a correct response, in batch order."""
        correct = batch.correct_question_ids
        return [q for q in batch.active_questions if q.question_id not in correct]

    @classmethod
    def next_question(cls, batch: QuestionBatch) -> Optional[Question]:
        pending = cls.pending_questions(batch)
        return pending[0] if pending else None

    @classmethod
    def is_exhausted(cls, batch: QuestionBatch) -> bool:
        return not cls.pending_questions(batch)

    @classmethod
    def ensure_answerable(cls, batch: QuestionBatch, question_id: str) -> Question:
        """Return the question if it can be answered now, else raise."""
        cls.ensure_open(batch)
        question = batch.question(question_id)
        if question is None:
            raise NotFound(
                f"Question {question_id} is not part of batch {batch.batch_id}",
                details={"batch_id": str(batch.batch_id), "question_id": question_id},
            )
        if question_id in batch.superseded:
            raise QuestionNotActive(
                f"Question {question_id} was replaced by {batch.superseded[question_id]}",
                details={"question_id": question_id, "replacement_id": batch.superseded[question_id]},
            )
        if question_id in batch.correct_question_ids:
            raise QuestionNotActive(
                f"Question {question_id} was already answered correctly",
                details={"question_id": question_id},
            )
        return question

    @classmethod
    def _transition(cls, batch: QuestionBatch, target: BatchStatus) -> QuestionBatch:
        if not cls.can_transition(batch.status, target):
            raise BatchClosed(
                f"Batch {batch.batch_id} cannot move from {batch.status.value} to {target.value}",
                details={"batch_id": str(batch.batch_id)},
            )
        return batch.model_copy(update={"status": target})

    @classmethod
    def record_correct(cls, batch: QuestionBatch, response: Response) -> QuestionBatch:
        """Append a correct response; complete the batch once nothing is pending."""
        if not response.is_correct:
            raise InvariantViolation("record_correct called with an incorrect response")
        cls.ensure_answerable(batch, response.question_id)

        updated = batch.model_copy(update={"responses": [*batch.responses, response]})
        if cls.is_exhausted(updated):
            updated = cls._transition(updated, BatchStatus.COMPLETED)
        return updated

    @classmethod
    def record_incorrect(
        cls,
        batch: QuestionBatch,
        response: Response,
        replacement: Question,
    ) -> QuestionBatch:
        """
        Log the incorrect response and swap in the replacement question.

        The replacement is placed directly after the failed question so the
        active list keeps its order.
        """
        if response.is_correct:
            raise InvariantViolation("record_incorrect called with a correct response")
        failed = cls.ensure_answerable(batch, response.question_id)
        if batch.question(replacement.question_id) is not None:
            raise InvariantViolation(
                f"Replacement question {replacement.question_id} was already issued in batch {batch.batch_id}",
                details={"batch_id": str(batch.batch_id), "question_id": replacement.question_id},
            )

        questions: List[Question] = []
        for q in batch.questions:
            questions.append(q)
            if q.question_id == failed.question_id:
                questions.append(replacement)

        superseded = dict(batch.superseded)
        superseded[failed.question_id] = replacement.question_id
        return batch.model_copy(
            update={
                "questions": questions,
                "responses": [*batch.responses, response],
                "superseded": superseded,
            }
        )

    @classmethod
    def skip(cls, batch: QuestionBatch) -> QuestionBatch:
        """Abandon a pending batch."""
        return cls._transition(batch, BatchStatus.SKIPPED)
