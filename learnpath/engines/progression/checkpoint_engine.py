"""
Checkpoint Engine - derives checkpoint mastery from the response ledger.

Mastery is never stored as a running counter. Every read folds over the
batches in a checkpoint's scope and counts distinct question ids that have a
correct response, so retries and overlapping batches cannot inflate it.
"""

from typing import Iterable, List, Optional, Set

from learnpath.engines.progression.models import (
    AdhocScope,
    BatchStatus,
    Checkpoint,
    CheckpointScope,
    QuestionBatch,
)
from learnpath.errors import InvariantViolation


SUCCESS_CHECKPOINT_ID = "cp-success"


def checkpoint_id_for(order: int) -> str:
    """Stable checkpoint id for a path position."""
    return f"cp-{order}"


class CheckpointEngine:
    """
    Pure functions over checkpoints and batches.

    Scope rules:
    - Checkpoint(id) batches count toward that checkpoint only
    - Adhoc batches count toward checkpoint 0 only (legacy practice items)
    - Skipped batches keep the correct answers recorded before the skip;
      they take no further answers, so nothing new counts from them
    - Batches tied to a session outside the path's session pool are ignored
    """

    REQUIRED_CORRECT = 3

    @classmethod
    def scope_applies(cls, scope, checkpoint: Checkpoint) -> bool:
        """Whether a batch scope targets the given checkpoint."""
        if checkpoint.is_terminal:
            return False
        if isinstance(scope, CheckpointScope):
            return scope.checkpoint_id == checkpoint.id
        if isinstance(scope, AdhocScope):
            return checkpoint.order == 0
        raise InvariantViolation(f"Unknown batch scope: {scope!r}")

    @classmethod
    def batches_in_scope(
        cls,
        checkpoint: Checkpoint,
        batches: Iterable[QuestionBatch],
    ) -> List[QuestionBatch]:
        """Batches whose correct answers count toward this checkpoint."""
        pool = set(checkpoint.source_session_ids)
        selected = []
        for batch in batches:
            if not cls.scope_applies(batch.scope, checkpoint):
                continue
            if batch.source_session_id is not None and batch.source_session_id not in pool:
                continue
            selected.append(batch)
        return selected

    @classmethod
    def validate_batch(cls, batch: QuestionBatch) -> None:
        """Raise InvariantViolation if the batch is in an impossible state."""
        seen: Set[str] = set()
        for q in batch.questions:
            if q.question_id in seen:
                raise InvariantViolation(
                    f"Question {q.question_id} issued twice in batch {batch.batch_id}",
                    details={"batch_id": str(batch.batch_id), "question_id": q.question_id},
                )
            seen.add(q.question_id)

        for old_id, new_id in batch.superseded.items():
            if old_id not in seen or new_id not in seen:
                raise InvariantViolation(
                    f"Replacement {old_id} -> {new_id} references an unknown question in batch {batch.batch_id}",
                    details={"batch_id": str(batch.batch_id)},
                )

        correct: Set[str] = set()
        for r in batch.responses:
            if r.question_id not in seen:
                raise InvariantViolation(
                    f"Response to question {r.question_id} that batch {batch.batch_id} never issued",
                    details={"batch_id": str(batch.batch_id), "question_id": r.question_id},
                )
            if not r.is_correct:
                continue
            if r.question_id in correct:
                raise InvariantViolation(
                    f"Question {r.question_id} answered correctly twice in batch {batch.batch_id}",
                    details={"batch_id": str(batch.batch_id), "question_id": r.question_id},
                )
            if r.question_id in batch.superseded:
                raise InvariantViolation(
                    f"Superseded question {r.question_id} has a correct response",
                    details={"batch_id": str(batch.batch_id), "question_id": r.question_id},
                )
            correct.add(r.question_id)

        if batch.status == BatchStatus.COMPLETED:
            unanswered = [q.question_id for q in batch.active_questions if q.question_id not in correct]
            if unanswered:
                raise InvariantViolation(
                    f"Batch {batch.batch_id} is completed with unanswered questions",
                    details={"batch_id": str(batch.batch_id), "unanswered": unanswered},
                )

    @classmethod
    def mastered_question_ids(
        cls,
        checkpoint: Checkpoint,
        batches: Iterable[QuestionBatch],
    ) -> List[str]:
        """
        Distinct question ids answered correctly within the checkpoint's scope.

        A question answered correctly in two batches is counted once.
        """
        counted: List[str] = []
        seen: Set[str] = set()
        for batch in cls.batches_in_scope(checkpoint, batches):
            cls.validate_batch(batch)
            correct_ids = batch.correct_question_ids
            for question in batch.questions:
                qid = question.question_id
                if qid in seen or qid not in correct_ids:
                    continue
                seen.add(qid)
                counted.append(qid)
        return counted

    @classmethod
    def recompute_checkpoint(
        cls,
        checkpoint: Checkpoint,
        batches: Iterable[QuestionBatch],
    ) -> Checkpoint:
        """
        Re-derive correct_count and completed for one checkpoint.

        Pure and idempotent. Never touches `unlocked`; the caller re-derives the
        unlock chain for the whole path afterwards.
        """
        if checkpoint.is_terminal:
            return checkpoint.model_copy()

        batches = list(batches)
        mastered = cls.mastered_question_ids(checkpoint, batches)
        correct_count = len(mastered)
        if correct_count != len(set(mastered)):
            raise InvariantViolation(
                f"Checkpoint {checkpoint.id} counted a question twice",
                details={"checkpoint_id": checkpoint.id},
            )

        return checkpoint.model_copy(
            update={
                "correct_count": correct_count,
                "completed": correct_count >= checkpoint.required_correct,
            }
        )

    @classmethod
    def derive_unlock_chain(cls, checkpoints: Iterable[Checkpoint]) -> List[Checkpoint]:
        """
        Re-derive `unlocked` top-down and the success gate's state.

        order 0 is always unlocked; order i is unlocked iff i-1 is completed.
        The terminal gate is completed (and unlocked) iff every other
        checkpoint is completed.
        """
        ordered = sorted(checkpoints, key=lambda cp: cp.order)
        gates = [cp for cp in ordered if not cp.is_terminal]
        terminals = [cp for cp in ordered if cp.is_terminal]

        if len(terminals) > 1:
            raise InvariantViolation("Path has more than one success gate")
        expected = list(range(len(ordered)))
        if [cp.order for cp in ordered] != expected:
            raise InvariantViolation(
                "Checkpoint orders are not dense and unique",
                details={"orders": [cp.order for cp in ordered]},
            )
        if terminals and terminals[0].order != len(ordered) - 1:
            raise InvariantViolation("Success gate is not the last checkpoint")

        result: List[Checkpoint] = []
        previous_completed = True
        for cp in gates:
            unlocked = cp.order == 0 or previous_completed
            result.append(cp.model_copy(update={"unlocked": unlocked}))
            previous_completed = cp.completed

        if terminals:
            all_done = bool(gates) and all(cp.completed for cp in gates)
            result.append(terminals[0].model_copy(update={"unlocked": all_done, "completed": all_done}))
        return result

    @classmethod
    def issued_question_ids(
        cls,
        checkpoint: Checkpoint,
        batches: Iterable[QuestionBatch],
    ) -> Set[str]:
        """Every question id ever issued in the checkpoint's scope, skipped batches included."""
        ids: Set[str] = set()
        for batch in batches:
            if cls.scope_applies(batch.scope, checkpoint):
                ids.update(q.question_id for q in batch.questions)
        return ids

    @classmethod
    def issued_question_texts(
        cls,
        checkpoint: Optional[Checkpoint],
        batches: Iterable[QuestionBatch],
    ) -> Set[str]:
        """Normalized text of every question issued in scope, used to reject re-issued duplicates."""
        texts: Set[str] = set()
        for batch in batches:
            if checkpoint is None:
                if not isinstance(batch.scope, AdhocScope):
                    continue
            elif not cls.scope_applies(batch.scope, checkpoint):
                continue
            texts.update(normalize_text(q.text) for q in batch.questions)
        return texts


def normalize_text(text: str) -> str:
    """Case- and whitespace-insensitive comparison key."""
    return " ".join((text or "").lower().split())
