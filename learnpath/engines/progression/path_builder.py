"""
Path Builder - assembles the checkpoint list for one student and subject.
"""

import uuid
from typing import Iterable, List, Optional

from learnpath.engines.progression.checkpoint_engine import (
    SUCCESS_CHECKPOINT_ID,
    CheckpointEngine,
    checkpoint_id_for,
)
from learnpath.engines.progression.models import (
    Checkpoint,
    QuestionBatch,
    StudySession,
    SubjectPath,
)


def path_id_for(subject: str, student_id: uuid.UUID) -> str:
    """
    Stable path id: path-<subject>-<student>.

    The subject is kept verbatim because sessions, batches and the
    (student, subject) unique key all match it exactly.
    """
    return f"path-{subject}-{student_id}"


class PathBuilder:
    """
    Builds a fixed-length path: CHECKPOINT_COUNT gates plus one success gate.

    Every gate draws from the full pool of analyzed sessions and topics;
    order provides pacing, not content partitioning. Rebuilding is
    idempotent because gate ids depend only on order and mastery is
    re-derived from the ledger.
    """

    CHECKPOINT_COUNT = 10

    @classmethod
    def analyzed_sessions(cls, sessions: Iterable[StudySession], subject: str) -> List[StudySession]:
        """Sessions for the subject that have topics, oldest first."""
        usable = [s for s in sessions if s.subject == subject and s.topics]
        return sorted(usable, key=lambda s: s.occurred_at)

    @classmethod
    def topic_pool(cls, sessions: Iterable[StudySession]) -> List[str]:
        topics: List[str] = []
        for session in sessions:
            for topic in session.topics:
                topic = topic.strip()
                if topic and topic not in topics:
                    topics.append(topic)
        return topics

    @classmethod
    def build_path(
        cls,
        student_id: uuid.UUID,
        subject: str,
        sessions: Iterable[StudySession],
        existing_batches: Iterable[QuestionBatch],
        checkpoint_count: Optional[int] = None,
        required_correct: Optional[int] = None,
    ) -> SubjectPath:
        """
        Build (or rebuild) the subject path.

        Args:
            student_id: Owner of the path
            subject: Subject name as stored on sessions
            sessions: The student's sessions; unanalyzed ones are ignored
            existing_batches: Every batch the student has for this subject
            checkpoint_count: Number of gates before the success gate
            required_correct: Distinct correct answers needed per gate

        Returns:
            SubjectPath; empty when no session has been analyzed yet
        """
        count = checkpoint_count or cls.CHECKPOINT_COUNT
        required = required_correct or CheckpointEngine.REQUIRED_CORRECT
        path_id = path_id_for(subject, student_id)

        analyzed = cls.analyzed_sessions(sessions, subject)
        if not analyzed:
            return SubjectPath(path_id=path_id, student_id=student_id, subject=subject)

        session_ids = [s.session_id for s in analyzed]
        topics = cls.topic_pool(analyzed)
        batches = [b for b in existing_batches if b.student_id == student_id and b.subject == subject]

        gates = []
        for order in range(count):
            gate = Checkpoint(
                id=checkpoint_id_for(order),
                order=order,
                required_correct=required,
                source_session_ids=list(session_ids),
                topics=list(topics),
            )
            gates.append(CheckpointEngine.recompute_checkpoint(gate, batches))

        gates.append(
            Checkpoint(
                id=SUCCESS_CHECKPOINT_ID,
                order=count,
                required_correct=0,
                source_session_ids=list(session_ids),
                topics=list(topics),
                is_terminal=True,
            )
        )
        return cls.finalize(
            SubjectPath(path_id=path_id, student_id=student_id, subject=subject),
            gates,
        )

    @classmethod
    def finalize(cls, path: SubjectPath, checkpoints: Iterable[Checkpoint]) -> SubjectPath:
        """Re-derive the unlock chain, current checkpoint and progress."""
        chain = CheckpointEngine.derive_unlock_chain(checkpoints)
        if not chain:
            return path.model_copy(update={"checkpoints": [], "current_checkpoint_id": None, "progress": 0.0})

        current = next((cp for cp in chain if not cp.completed and not cp.is_terminal), None)
        if current is None:
            current = chain[-1]
        completed = sum(1 for cp in chain if cp.completed)
        return path.model_copy(
            update={
                "checkpoints": chain,
                "current_checkpoint_id": current.id,
                "progress": round(completed / len(chain) * 100, 2),
            }
        )

    @classmethod
    def refresh_checkpoint(
        cls,
        path: SubjectPath,
        checkpoint_id: str,
        batches: Iterable[QuestionBatch],
    ) -> SubjectPath:
        """Recompute one checkpoint from the ledger, then the whole unlock chain."""
        batches = list(batches)
        updated = [
            CheckpointEngine.recompute_checkpoint(cp, batches) if cp.id == checkpoint_id else cp
            for cp in path.checkpoints
        ]
        return cls.finalize(path, updated)

    @classmethod
    def next_unlocked_after(cls, path: SubjectPath, checkpoint_id: str) -> Optional[Checkpoint]:
        """The checkpoint right after `checkpoint_id`, if it is unlocked."""
        cp = path.checkpoint(checkpoint_id)
        if cp is None:
            return None
        for other in path.checkpoints:
            if other.order == cp.order + 1 and other.unlocked:
                return other
        return None
