"""
Row <-> domain conversion and the queries the tracker needs.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.engines.progression.models import (
    AdhocScope,
    BatchStatus,
    CheckpointScope,
    Difficulty,
    GradedBy,
    Question,
    QuestionBatch,
    Response,
    StudySession,
    SubjectPath,
)
from learnpath.errors import InvariantViolation, NotFound
from learnpath.kernel.models import (
    BatchQuestionRecord,
    LearningPath,
    QuestionBatchRecord,
    ResponseRecord,
    Student,
    StudySessionRecord,
    utcnow,
)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def session_to_domain(row: StudySessionRecord) -> StudySession:
    return StudySession(
        session_id=row.id,
        student_id=row.student_id,
        subject=row.subject,
        topics=list(row.topics or []),
        occurred_at=as_utc(row.occurred_at),
    )


def scope_of(row: QuestionBatchRecord):
    if row.scope_kind == "checkpoint":
        return CheckpointScope(checkpoint_id=row.checkpoint_id)
    if row.scope_kind == "adhoc":
        return AdhocScope()
    raise InvariantViolation(f"Batch {row.id} has unknown scope {row.scope_kind!r}")


def question_to_domain(row: BatchQuestionRecord) -> Question:
    return Question(
        question_id=row.question_id,
        text=row.text,
        topic=row.topic,
        difficulty=Difficulty(row.difficulty),
        correct_answer=row.correct_answer,
        points_value=row.points_value,
        hint=row.hint,
        explanation=row.explanation,
    )


def response_to_domain(row: ResponseRecord) -> Response:
    return Response(
        question_id=row.question_id,
        student_answer=row.student_answer,
        is_correct=row.is_correct,
        feedback=row.feedback,
        points_awarded=row.points_awarded,
        submitted_at=as_utc(row.submitted_at),
        graded_by=GradedBy(row.graded_by),
    )


def batch_to_domain(row: QuestionBatchRecord) -> QuestionBatch:
    """Questions come back in active-list order: by slot, then issue sequence."""
    question_rows = sorted(row.questions, key=lambda q: (q.slot, q.sequence))
    return QuestionBatch(
        batch_id=row.id,
        student_id=row.student_id,
        subject=row.subject,
        scope=scope_of(row),
        source_session_id=row.source_session_id,
        difficulty=Difficulty(row.difficulty),
        status=BatchStatus(row.status),
        questions=[question_to_domain(q) for q in question_rows],
        responses=[response_to_domain(r) for r in sorted(row.responses, key=lambda r: r.sequence)],
        superseded={q.question_id: q.superseded_by for q in question_rows if q.superseded_by},
    )


def question_record(question: Question, sequence: int, slot: int) -> BatchQuestionRecord:
    return BatchQuestionRecord(
        question_id=question.question_id,
        sequence=sequence,
        slot=slot,
        text=question.text,
        topic=question.topic,
        difficulty=question.difficulty.value,
        correct_answer=question.correct_answer,
        points_value=question.points_value,
        hint=question.hint,
        explanation=question.explanation,
    )


def new_batch_record(batch: QuestionBatch) -> QuestionBatchRecord:
    scope = batch.scope
    record = QuestionBatchRecord(
        id=batch.batch_id,
        student_id=batch.student_id,
        subject=batch.subject,
        scope_kind=scope.kind,
        checkpoint_id=scope.checkpoint_id if isinstance(scope, CheckpointScope) else None,
        source_session_id=batch.source_session_id,
        difficulty=batch.difficulty.value,
        status=batch.status.value,
        last_activity_at=utcnow(),
    )
    record.questions = [question_record(q, sequence=i, slot=i) for i, q in enumerate(batch.questions)]
    record.responses = []
    return record


def sync_batch_record(record: QuestionBatchRecord, batch: QuestionBatch) -> None:
    """
    Write a transitioned batch back onto its row.

    Only appends: new questions, new responses, newly set replacements and
    the status. The row's activity timestamp is always touched so the
    version counter moves on every write.
    """
    by_id: Dict[str, BatchQuestionRecord] = {q.question_id: q for q in record.questions}
    replaced_by: Dict[str, str] = {new: old for old, new in batch.superseded.items()}

    next_sequence = len(record.questions)
    next_slot = max((q.slot for q in record.questions), default=-1) + 1
    for question in batch.questions:
        if question.question_id in by_id:
            continue
        original = replaced_by.get(question.question_id)
        if original is not None and original in by_id:
            slot = by_id[original].slot
        else:
            slot = next_slot
            next_slot += 1
        row = question_record(question, sequence=next_sequence, slot=slot)
        next_sequence += 1
        record.questions.append(row)
        by_id[question.question_id] = row

    for old_id, new_id in batch.superseded.items():
        row = by_id[old_id]
        if row.superseded_by is None:
            row.superseded_by = new_id
        elif row.superseded_by != new_id:
            raise InvariantViolation(
                f"Question {old_id} is already replaced by {row.superseded_by}",
                details={"batch_id": str(record.id)},
            )

    for sequence, response in enumerate(batch.responses):
        if sequence < len(record.responses):
            continue
        record.responses.append(
            ResponseRecord(
                question_id=response.question_id,
                sequence=sequence,
                student_answer=response.student_answer,
                is_correct=response.is_correct,
                feedback=response.feedback,
                points_awarded=response.points_awarded,
                graded_by=response.graded_by.value,
                submitted_at=response.submitted_at,
            )
        )

    now = utcnow()
    if record.status != batch.status.value:
        record.status = batch.status.value
        if batch.status == BatchStatus.COMPLETED:
            record.completed_at = now
    record.last_activity_at = now


class ProgressRepository:
    """Queries over students, sessions, batches and path snapshots."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_student(self, student_id: uuid.UUID) -> Student:
        student = await self.session.get(Student, student_id)
        if student is None:
            raise NotFound(f"Student {student_id} not found", details={"student_id": str(student_id)})
        return student

    async def list_sessions(self, student_id: uuid.UUID, subject: str) -> List[StudySession]:
        result = await self.session.execute(
            select(StudySessionRecord)
            .where(
                StudySessionRecord.student_id == student_id,
                StudySessionRecord.subject == subject,
            )
            .order_by(StudySessionRecord.occurred_at)
        )
        return [session_to_domain(row) for row in result.scalars().all()]

    async def list_batch_records(self, student_id: uuid.UUID, subject: str) -> List[QuestionBatchRecord]:
        result = await self.session.execute(
            select(QuestionBatchRecord)
            .where(
                QuestionBatchRecord.student_id == student_id,
                QuestionBatchRecord.subject == subject,
            )
            .order_by(QuestionBatchRecord.created_at, QuestionBatchRecord.id)
        )
        return list(result.scalars().all())

    async def list_batches(self, student_id: uuid.UUID, subject: str) -> List[QuestionBatch]:
        return [batch_to_domain(row) for row in await self.list_batch_records(student_id, subject)]

    async def get_batch_record(self, batch_id: uuid.UUID) -> QuestionBatchRecord:
        result = await self.session.execute(
            select(QuestionBatchRecord).where(QuestionBatchRecord.id == batch_id)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFound(f"Batch {batch_id} not found", details={"batch_id": str(batch_id)})
        return record

    async def find_pending_batch(
        self,
        student_id: uuid.UUID,
        subject: str,
        scope_kind: str,
        checkpoint_id: Optional[str],
    ) -> Optional[QuestionBatchRecord]:
        query = select(QuestionBatchRecord).where(
            QuestionBatchRecord.student_id == student_id,
            QuestionBatchRecord.subject == subject,
            QuestionBatchRecord.scope_kind == scope_kind,
            QuestionBatchRecord.status == BatchStatus.PENDING.value,
        )
        if checkpoint_id is None:
            query = query.where(QuestionBatchRecord.checkpoint_id.is_(None))
        else:
            query = query.where(QuestionBatchRecord.checkpoint_id == checkpoint_id)
        result = await self.session.execute(query.order_by(QuestionBatchRecord.created_at).limit(1))
        return result.scalar_one_or_none()

    async def add_session(
        self,
        student_id: uuid.UUID,
        subject: str,
        topics: List[str],
        occurred_at: datetime,
        session_id: Optional[uuid.UUID] = None,
    ) -> StudySessionRecord:
        row = StudySessionRecord(
            student_id=student_id,
            subject=subject,
            topics=topics,
            occurred_at=occurred_at,
            analyzed_at=utcnow() if topics else None,
        )
        if session_id is not None:
            row.id = session_id
        self.session.add(row)
        await self.session.flush()
        return row

    async def save_path(self, path: SubjectPath) -> bool:
        """Upsert the path snapshot. Returns True when the row was created."""
        row = await self.session.get(LearningPath, path.path_id)
        snapshot = [cp.model_dump(mode="json") for cp in path.checkpoints]
        created = row is None
        if created:
            row = LearningPath(id=path.path_id, student_id=path.student_id, subject=path.subject)
            self.session.add(row)
        row.checkpoints = snapshot
        row.current_checkpoint_id = path.current_checkpoint_id
        row.progress = path.progress
        if created:
            await self.session.flush()
        return created
