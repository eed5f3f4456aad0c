"""
Progress Tracker - caller-facing progression operations (DB-backed).

Each public method runs inside the caller's transaction. Progression and
reward state are derived independently from the same correctness signal:
checkpoints are re-derived from the response ledger, reward state is folded
forward by the reward engine.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, List, Literal, Optional, Set, Tuple

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from learnpath.ai.question_service import QuestionService
from learnpath.config import Settings, get_settings
from learnpath.engines.progression.batch_lifecycle import BatchLifecycle
from learnpath.engines.progression.checkpoint_engine import (
    CheckpointEngine,
    checkpoint_id_for,
    normalize_text,
)
from learnpath.engines.progression.grader import GradeResult, Grader
from learnpath.engines.progression.models import (
    AdhocScope,
    BatchStatus,
    Checkpoint,
    CheckpointScope,
    Difficulty,
    Question,
    QuestionBatch,
    Response,
    StudySession,
    SubjectPath,
)
from learnpath.engines.progression.path_builder import PathBuilder
from learnpath.engines.progression.question_bank import QuestionBank
from learnpath.engines.progression.repository import (
    ProgressRepository,
    batch_to_domain,
    new_batch_record,
    session_to_domain,
    sync_batch_record,
)
from learnpath.engines.rewards.badges import Badge
from learnpath.engines.rewards.reward_engine import RewardState, RewardUpdate, level_for_points
from learnpath.engines.rewards.reward_tracker import RewardTracker
from learnpath.errors import ConcurrentSubmission, GenerationUnavailable, NotFound
from learnpath.kernel.events.event_store import EventStore
from learnpath.kernel.models import EventType, Student
from learnpath.kernel.notifications import Notification, NotificationKind
from learnpath.logging_config import get_logger

logger = get_logger(__name__)


class StartBatchOutcome(BaseModel):
    """Result of asking for questions."""

    status: Literal["started", "resumed", "locked"]
    review: bool = False
    checkpoint_id: Optional[str] = None
    batch: Optional[QuestionBatch] = None
    path: SubjectPath


class SubmissionOutcome(BaseModel):
    """Result of one answer submission."""

    batch_id: uuid.UUID
    question_id: str
    is_correct: bool
    feedback: str
    graded_by: str
    points_awarded: int = 0
    bonus_points: int = 0
    total_points: int
    level: int
    level_up: bool = False
    new_badges: List[Badge] = []
    daily_goal_reached: bool = False
    current_streak: int = 0
    checkpoint_id: str
    checkpoint_completed: bool = False
    correct_count: int = 0
    required_correct: int = 0
    next_unlocked_checkpoint_id: Optional[str] = None
    path_completed: bool = False
    progress: float = 0.0
    batch_status: BatchStatus
    replacement_question: Optional[Question] = None
    next_question: Optional[Question] = None
    notifications: List[Notification] = []


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean_topics(topics: List[str]) -> List[str]:
    cleaned: List[str] = []
    for topic in topics or []:
        topic = (topic or "").strip()
        if topic and topic not in cleaned:
            cleaned.append(topic)
    return cleaned


class ProgressTracker:
    """
    Usage:
        tracker = ProgressTracker(session)
        path = await tracker.get_or_build_path(student_id, "Algebra")
        outcome = await tracker.start_batch(student_id, "Algebra", "cp-0", Difficulty.MEDIUM)
        result = await tracker.submit_answer(outcome.batch.batch_id, question_id, "fractions")
    """

    def __init__(
        self,
        session: AsyncSession,
        question_service: Optional[QuestionService] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.question_service = question_service or QuestionService(self.settings)
        self.clock = clock
        self.repo = ProgressRepository(session)
        self.rewards = RewardTracker(session, self.settings)
        self.events = EventStore(session)

    # ------------------------------------------------------------------
    # Students and sessions
    # ------------------------------------------------------------------

    async def register_student(self, display_name: str, student_id: Optional[uuid.UUID] = None) -> Student:
        student = Student(id=student_id or uuid.uuid4(), display_name=display_name.strip())
        self.session.add(student)
        await self.session.flush()
        self.rewards.create(student.id)
        await self.events.log(
            EventType.STUDENT_REGISTERED,
            entity_type="student",
            entity_id=student.id,
            student_id=student.id,
            payload={"display_name": student.display_name},
        )
        await self.session.flush()
        logger.info("Registered student", extra={"student_id": str(student.id)})
        return student

    async def record_session_analysis(
        self,
        student_id: uuid.UUID,
        subject: str,
        topics: List[str],
        occurred_at: Optional[datetime] = None,
        session_id: Optional[uuid.UUID] = None,
    ) -> Tuple[StudySession, SubjectPath]:
        """Store an analyzed session and rebuild the subject path from it."""
        await self.repo.get_student(student_id)
        row = await self.repo.add_session(
            student_id,
            subject.strip(),
            _clean_topics(topics),
            occurred_at or self.clock(),
            session_id=session_id,
        )
        await self.events.log(
            EventType.SESSION_ANALYZED,
            entity_type="session",
            entity_id=row.id,
            student_id=student_id,
            payload={"subject": row.subject, "topics": row.topics},
        )
        path = await self.get_or_build_path(student_id, row.subject)
        return session_to_domain(row), path

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    async def _build(
        self,
        student_id: uuid.UUID,
        subject: str,
        batches: Optional[List[QuestionBatch]] = None,
    ) -> SubjectPath:
        sessions = await self.repo.list_sessions(student_id, subject)
        if batches is None:
            batches = await self.repo.list_batches(student_id, subject)
        return PathBuilder.build_path(
            student_id,
            subject,
            sessions,
            batches,
            checkpoint_count=self.settings.checkpoints_per_path,
            required_correct=self.settings.required_correct,
        )

    async def get_or_build_path(self, student_id: uuid.UUID, subject: str) -> SubjectPath:
        """Rebuild the path from sessions and the ledger and store the snapshot."""
        await self.repo.get_student(student_id)
        path = await self._build(student_id, subject)
        if path.is_empty:
            return path
        created = await self.repo.save_path(path)
        if created:
            await self.events.log(
                EventType.PATH_BUILT,
                entity_type="path",
                entity_id=path.path_id,
                student_id=student_id,
                payload={"subject": subject, "checkpoints": len(path.checkpoints)},
            )
        return path

    # ------------------------------------------------------------------
    # Question issuing
    # ------------------------------------------------------------------

    async def _issue_questions(
        self,
        subject: str,
        topics: List[str],
        difficulty: Difficulty,
        count: int,
        exclude_ids: Set[str],
        exclude_texts: Set[str],
    ) -> List[Question]:
        """Questions from the service, topped up from the local bank."""
        chosen: List[Question] = []
        ids = set(exclude_ids)
        texts = set(exclude_texts)
        try:
            generated = await self.question_service.generate_questions(
                subject, topics, difficulty, count, avoid=sorted(texts)
            )
        except GenerationUnavailable as exc:
            logger.warning("Question generation unavailable, using local bank: %s", exc.message)
            generated = []

        for question in generated:
            key = normalize_text(question.text)
            if question.question_id in ids or key in texts:
                continue
            chosen.append(question)
            ids.add(question.question_id)
            texts.add(key)
            if len(chosen) >= count:
                break

        if len(chosen) < count:
            chosen.extend(
                QuestionBank.get_questions(
                    topics or [subject],
                    difficulty,
                    count - len(chosen),
                    exclude_ids=ids,
                    exclude_texts=texts,
                )
            )
        return chosen

    def _scope_exclusions(
        self,
        path: SubjectPath,
        scope,
        batches: List[QuestionBatch],
    ) -> Tuple[Set[str], Set[str]]:
        """Ids and texts already issued in the scope, skipped batches included."""
        if isinstance(scope, CheckpointScope):
            checkpoint = path.checkpoint(scope.checkpoint_id)
        else:
            checkpoint = path.checkpoint(checkpoint_id_for(0))
        if checkpoint is not None:
            return (
                CheckpointEngine.issued_question_ids(checkpoint, batches),
                CheckpointEngine.issued_question_texts(checkpoint, batches),
            )
        ids = {q.question_id for b in batches if isinstance(b.scope, AdhocScope) for q in b.questions}
        return ids, CheckpointEngine.issued_question_texts(None, batches)

    async def start_batch(
        self,
        student_id: uuid.UUID,
        subject: str,
        checkpoint_id: Optional[str],
        difficulty: Difficulty = Difficulty.MEDIUM,
    ) -> StartBatchOutcome:
        """
        Issue (or resume) a question batch.

        `checkpoint_id=None` starts free practice. A locked checkpoint is
        reported as status "locked" without issuing anything; a completed
        checkpoint can still be practised for review.
        """
        await self.repo.get_student(student_id)
        batches = await self.repo.list_batches(student_id, subject)
        path = await self._build(student_id, subject, batches)
        if not path.is_empty:
            await self.repo.save_path(path)

        review = False
        if checkpoint_id is None:
            scope = AdhocScope()
            sessions = await self.repo.list_sessions(student_id, subject)
            analyzed = PathBuilder.analyzed_sessions(sessions, subject)
            topics = PathBuilder.topic_pool(analyzed)
            source_session_id = analyzed[0].session_id if analyzed else None
        else:
            checkpoint = path.checkpoint(checkpoint_id)
            if checkpoint is None:
                raise NotFound(
                    f"Checkpoint {checkpoint_id} not found in {subject} path",
                    details={"checkpoint_id": checkpoint_id, "subject": subject},
                )
            if checkpoint.is_terminal or not checkpoint.unlocked:
                logger.info(
                    "Checkpoint is locked",
                    extra={"student_id": str(student_id), "checkpoint_id": checkpoint_id},
                )
                return StartBatchOutcome(status="locked", checkpoint_id=checkpoint_id, path=path)
            scope = CheckpointScope(checkpoint_id=checkpoint_id)
            review = checkpoint.completed
            topics = list(checkpoint.topics)
            source_session_id = checkpoint.source_session_ids[0] if checkpoint.source_session_ids else None

        pending = await self.repo.find_pending_batch(
            student_id,
            subject,
            scope.kind,
            checkpoint_id,
        )
        if pending is not None:
            return StartBatchOutcome(
                status="resumed",
                review=review,
                checkpoint_id=checkpoint_id,
                batch=batch_to_domain(pending),
                path=path,
            )

        exclude_ids, exclude_texts = self._scope_exclusions(path, scope, batches)
        questions = await self._issue_questions(
            subject,
            topics,
            difficulty,
            self.settings.batch_size,
            exclude_ids,
            exclude_texts,
        )
        batch = QuestionBatch(
            batch_id=uuid.uuid4(),
            student_id=student_id,
            subject=subject,
            scope=scope,
            source_session_id=source_session_id,
            difficulty=difficulty,
            questions=questions,
        )
        CheckpointEngine.validate_batch(batch)
        self.session.add(new_batch_record(batch))
        await self.events.log(
            EventType.BATCH_STARTED,
            entity_type="batch",
            entity_id=batch.batch_id,
            student_id=student_id,
            payload={
                "subject": subject,
                "scope": scope.kind,
                "checkpoint_id": checkpoint_id,
                "difficulty": difficulty.value,
                "question_ids": [q.question_id for q in questions],
                "review": review,
            },
        )
        await self.session.flush()
        logger.info(
            "Started batch with %d questions",
            len(questions),
            extra={
                "batch_id": str(batch.batch_id),
                "student_id": str(student_id),
                "checkpoint_id": checkpoint_id or "adhoc",
            },
        )
        return StartBatchOutcome(
            status="started",
            review=review,
            checkpoint_id=checkpoint_id,
            batch=batch,
            path=path,
        )

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    async def _grade(self, question: Question, answer: str) -> GradeResult:
        try:
            return await self.question_service.grade_answer(question, answer)
        except GenerationUnavailable as exc:
            logger.warning("Grading service unavailable, using fallback: %s", exc.message)
            return Grader.grade(question, answer)

    @asynccontextmanager
    async def _write_guard(self, batch_id: uuid.UUID) -> AsyncIterator[None]:
        """Turn a lost race (stale version, duplicate correct response) into ConcurrentSubmission."""
        try:
            yield
            await self.session.flush()
        except (StaleDataError, IntegrityError) as exc:
            logger.warning("Concurrent write: %s", exc, extra={"batch_id": str(batch_id)})
            raise ConcurrentSubmission(
                f"Batch {batch_id} was modified by another submission; retry",
                details={"batch_id": str(batch_id)},
            ) from exc

    @staticmethod
    def _target_checkpoint(batch: QuestionBatch) -> str:
        if isinstance(batch.scope, CheckpointScope):
            return batch.scope.checkpoint_id
        return checkpoint_id_for(0)

    async def submit_answer(self, batch_id: uuid.UUID, question_id: str, answer: str) -> SubmissionOutcome:
        """
        Grade one answer and apply it.

        Correct: logged with the question's points (fixed base points for
        free practice), checkpoint recomputed, reward state updated.
        Incorrect: logged with 0 points and replaced by a fresh question at
        the same difficulty; reward state untouched.
        """
        record = await self.repo.get_batch_record(batch_id)
        batch = batch_to_domain(record)
        question = BatchLifecycle.ensure_answerable(batch, question_id)

        grade = await self._grade(question, answer)
        now = self.clock()
        student_id = batch.student_id

        batches_before = await self.repo.list_batches(student_id, batch.subject)
        path_before = await self._build(student_id, batch.subject, batches_before)
        target_id = self._target_checkpoint(batch)
        checkpoint_before: Optional[Checkpoint] = path_before.checkpoint(target_id)

        replacement: Optional[Question] = None
        points = 0
        if grade.is_correct:
            if isinstance(batch.scope, CheckpointScope):
                points = question.points_value
            else:
                points = self.settings.adhoc_points
            response = Response(
                question_id=question_id,
                student_answer=answer,
                is_correct=True,
                feedback=grade.feedback,
                points_awarded=points,
                submitted_at=now,
                graded_by=grade.graded_by,
            )
            updated = BatchLifecycle.record_correct(batch, response)
        else:
            response = Response(
                question_id=question_id,
                student_answer=answer,
                is_correct=False,
                feedback=grade.feedback,
                points_awarded=0,
                submitted_at=now,
                graded_by=grade.graded_by,
            )
            exclude_ids, exclude_texts = self._scope_exclusions(path_before, batch.scope, batches_before)
            exclude_ids.update(q.question_id for q in batch.questions)
            exclude_texts.update(normalize_text(q.text) for q in batch.questions)
            pool = checkpoint_before.topics if checkpoint_before is not None else []
            issued = await self._issue_questions(
                batch.subject,
                [question.topic] + [t for t in pool if t != question.topic],
                question.difficulty,
                1,
                exclude_ids,
                exclude_texts,
            )
            replacement = issued[0]
            updated = BatchLifecycle.record_incorrect(batch, response, replacement)

        CheckpointEngine.validate_batch(updated)
        sync_batch_record(record, updated)
        await self.events.log(
            EventType.ANSWER_SUBMITTED,
            entity_type="batch",
            entity_id=batch_id,
            student_id=student_id,
            payload={
                "question_id": question_id,
                "is_correct": grade.is_correct,
                "points_awarded": points,
                "graded_by": grade.graded_by.value,
            },
        )
        if replacement is not None:
            await self.events.log(
                EventType.QUESTION_REPLACED,
                entity_type="batch",
                entity_id=batch_id,
                student_id=student_id,
                payload={"question_id": question_id, "replacement_id": replacement.question_id},
            )
        if updated.status == BatchStatus.COMPLETED:
            await self.events.log(
                EventType.BATCH_COMPLETED,
                entity_type="batch",
                entity_id=batch_id,
                student_id=student_id,
                payload={"checkpoint_id": target_id},
            )

        # Progression: recompute the target checkpoint from the ledger
        batches_after = [updated if b.batch_id == batch_id else b for b in batches_before]
        if path_before.is_empty:
            path_after = path_before
        else:
            path_after = PathBuilder.refresh_checkpoint(path_before, target_id, batches_after)
        checkpoint_after = path_after.checkpoint(target_id)

        notifications: List[Notification] = []
        newly_completed = bool(
            checkpoint_after is not None
            and checkpoint_after.completed
            and not (checkpoint_before is not None and checkpoint_before.completed)
        )
        if newly_completed:
            await self.events.log(
                EventType.CHECKPOINT_COMPLETED,
                entity_type="path",
                entity_id=path_after.path_id,
                student_id=student_id,
                payload={"checkpoint_id": target_id, "correct_count": checkpoint_after.correct_count},
            )
            notifications.append(
                Notification(
                    student_id=student_id,
                    kind=NotificationKind.CHECKPOINT_COMPLETED,
                    payload={"subject": batch.subject, "checkpoint_id": target_id},
                )
            )
        gate_before = path_before.success_gate
        gate_after = path_after.success_gate
        path_completed = bool(gate_after is not None and gate_after.completed)
        if path_completed and not (gate_before is not None and gate_before.completed):
            await self.events.log(
                EventType.PATH_COMPLETED,
                entity_type="path",
                entity_id=path_after.path_id,
                student_id=student_id,
                payload={"subject": batch.subject},
            )
            notifications.append(
                Notification(
                    student_id=student_id,
                    kind=NotificationKind.PATH_COMPLETED,
                    payload={"subject": batch.subject},
                )
            )

        # Rewards: only correct answers reach the reward engine
        reward = None
        async with self._write_guard(batch_id):
            if not path_after.is_empty:
                await self.repo.save_path(path_after)
            if grade.is_correct:
                reward = await self.rewards.apply_correct_answer(student_id, points, now.date().isoformat())
                notifications.extend(await self._log_reward(student_id, reward, batch_id))
        reward_state = reward.state if reward else await self.rewards.get_state(student_id)

        next_unlocked = None
        if checkpoint_after is not None and checkpoint_after.completed:
            next_unlocked = PathBuilder.next_unlocked_after(path_after, target_id)

        logger.info(
            "Answer %s (+%d)",
            "correct" if grade.is_correct else "incorrect",
            points,
            extra={
                "batch_id": str(batch_id),
                "student_id": str(student_id),
                "question_id": question_id,
                "graded_by": grade.graded_by.value,
            },
        )
        return SubmissionOutcome(
            batch_id=batch_id,
            question_id=question_id,
            is_correct=grade.is_correct,
            feedback=grade.feedback,
            graded_by=grade.graded_by.value,
            points_awarded=points,
            bonus_points=reward.bonus_points if reward else 0,
            total_points=reward_state.total_points,
            level=level_for_points(reward_state.total_points),
            level_up=reward.level_up if reward else False,
            new_badges=reward.new_badges if reward else [],
            daily_goal_reached=reward.daily_goal_reached if reward else False,
            current_streak=reward_state.current_streak,
            checkpoint_id=target_id,
            checkpoint_completed=bool(checkpoint_after and checkpoint_after.completed),
            correct_count=checkpoint_after.correct_count if checkpoint_after else 0,
            required_correct=checkpoint_after.required_correct if checkpoint_after else self.settings.required_correct,
            next_unlocked_checkpoint_id=next_unlocked.id if next_unlocked else None,
            path_completed=path_completed,
            progress=path_after.progress,
            batch_status=updated.status,
            replacement_question=replacement,
            next_question=BatchLifecycle.next_question(updated),
            notifications=notifications,
        )

    async def _log_reward(self, student_id: uuid.UUID, reward: RewardUpdate, batch_id: uuid.UUID) -> List[Notification]:
        notifications: List[Notification] = []
        await self.events.log(
            EventType.POINTS_AWARDED,
            entity_type="reward",
            entity_id=student_id,
            student_id=student_id,
            payload={
                "batch_id": batch_id,
                "points": reward.points_awarded,
                "bonus": reward.bonus_points,
                "total_points": reward.state.total_points,
            },
        )
        if reward.daily_goal_reached:
            await self.events.log(
                EventType.DAILY_GOAL_COMPLETED,
                entity_type="reward",
                entity_id=student_id,
                student_id=student_id,
                payload={"date": reward.state.daily_goal.date, "bonus": reward.bonus_points},
            )
            notifications.append(
                Notification(
                    student_id=student_id,
                    kind=NotificationKind.DAILY_GOAL_COMPLETED,
                    payload={"bonus_points": reward.bonus_points},
                )
            )
        if reward.level_up:
            await self.events.log(
                EventType.LEVEL_UP,
                entity_type="reward",
                entity_id=student_id,
                student_id=student_id,
                payload={"from": reward.previous_level, "to": reward.state.level},
            )
            notifications.append(
                Notification(
                    student_id=student_id,
                    kind=NotificationKind.LEVEL_UP,
                    payload={"level": reward.state.level},
                )
            )
        for badge in reward.new_badges:
            await self.events.log(
                EventType.BADGE_EARNED,
                entity_type="reward",
                entity_id=student_id,
                student_id=student_id,
                payload={"badge_id": badge.badge_id.value},
            )
            notifications.append(
                Notification(
                    student_id=student_id,
                    kind=NotificationKind.BADGE_EARNED,
                    payload={"badge_id": badge.badge_id.value, "name": badge.name, "emoji": badge.emoji},
                )
            )
        return notifications

    # ------------------------------------------------------------------
    # Batches and rewards
    # ------------------------------------------------------------------

    async def skip_batch(self, batch_id: uuid.UUID) -> QuestionBatch:
        """Abandon a pending batch. Answers already given keep counting."""
        record = await self.repo.get_batch_record(batch_id)
        skipped = BatchLifecycle.skip(batch_to_domain(record))
        async with self._write_guard(batch_id):
            sync_batch_record(record, skipped)
            await self.events.log(
                EventType.BATCH_SKIPPED,
                entity_type="batch",
                entity_id=batch_id,
                student_id=skipped.student_id,
                payload={"scope": skipped.scope.kind},
            )

        path = await self._build(skipped.student_id, skipped.subject)
        if not path.is_empty:
            await self.repo.save_path(path)
        return skipped

    async def get_batch(self, batch_id: uuid.UUID) -> QuestionBatch:
        return batch_to_domain(await self.repo.get_batch_record(batch_id))

    async def get_reward_state(self, student_id: uuid.UUID) -> RewardState:
        await self.repo.get_student(student_id)
        return await self.rewards.get_state(student_id)
