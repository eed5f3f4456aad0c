"""
Integration tests for ProgressTracker against SQLite.

Covers the progression scenarios end to end: batch issuing and resuming,
locked checkpoints, replacement of wrong answers, mastery that never
double-counts, free practice counting toward the first checkpoint,
skipping, rewards (daily goal, streaks, levels, badges) and conflicts.
"""

import json
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from learnpath.ai.question_service import QuestionService
from learnpath.config import Settings
from learnpath.engines.progression.models import AdhocScope, BatchStatus, CheckpointScope, Difficulty
from learnpath.engines.progression.progress_tracker import ProgressTracker
from learnpath.engines.progression.repository import ProgressRepository
from learnpath.engines.rewards.badges import BadgeId
from learnpath.errors import (
    BatchClosed,
    ConcurrentSubmission,
    NotFound,
    QuestionNotActive,
)
from learnpath.kernel.events.event_store import EventStore
from learnpath.kernel.models import EventType, LearningPath, QuestionBatchRecord, ResponseRecord
from learnpath.kernel.notifications import NotificationKind


async def answer_correctly(tracker: ProgressTracker, batch_id, count=None):
    """Answer the batch's pending questions with their correct answers."""
    results = []
    while count is None or len(results) < count:
        batch = await tracker.get_batch(batch_id)
        pending = [q for q in batch.active_questions if q.question_id not in batch.correct_question_ids]
        if not pending or batch.status != BatchStatus.PENDING:
            break
        question = pending[0]
        results.append(await tracker.submit_answer(batch_id, question.question_id, question.correct_answer))
    return results


@pytest_asyncio.fixture
async def cp0_batch(tracker, student):
    outcome = await tracker.start_batch(student.id, "Math", "cp-0")
    return outcome.batch


class TestPaths:
    """Path building from analyzed sessions."""

    @pytest.mark.asyncio
    async def test_session_builds_path(self, tracker, student, db_session):
        path = await tracker.get_or_build_path(student.id, "Math")
        assert len(path.checkpoints) == 11
        assert path.checkpoints[0].topics == ["fractions", "decimals"]
        assert path.current_checkpoint_id == "cp-0"

        stored = await db_session.get(LearningPath, path.path_id)
        assert stored is not None
        assert stored.current_checkpoint_id == "cp-0"
        assert len(stored.checkpoints) == 11

    @pytest.mark.asyncio
    async def test_subjects_differing_in_case_keep_separate_paths(self, tracker, student, db_session):
        await tracker.record_session_analysis(student.id, "math", ["ratios"])
        upper = await tracker.get_or_build_path(student.id, "Math")
        lower = await tracker.get_or_build_path(student.id, "math")
        assert upper.path_id != lower.path_id
        assert upper.checkpoints[0].topics == ["fractions", "decimals"]
        assert lower.checkpoints[0].topics == ["ratios"]

        stored = await db_session.get(LearningPath, upper.path_id)
        assert stored.checkpoints[0]["topics"] == ["fractions", "decimals"]

    @pytest.mark.asyncio
    async def test_student_without_sessions_has_empty_path(self, tracker):
        newcomer = await tracker.register_student("Newcomer")
        path = await tracker.get_or_build_path(newcomer.id, "Math")
        assert path.is_empty
        with pytest.raises(NotFound):
            await tracker.start_batch(newcomer.id, "Math", "cp-0")

    @pytest.mark.asyncio
    async def test_unknown_student(self, tracker):
        with pytest.raises(NotFound):
            await tracker.get_or_build_path(uuid.uuid4(), "Math")

    @pytest.mark.asyncio
    async def test_new_session_extends_topics(self, tracker, student):
        _, path = await tracker.record_session_analysis(student.id, "Math", ["ratios", " fractions "])
        assert path.checkpoints[0].topics == ["fractions", "decimals", "ratios"]
        assert len(path.checkpoints[0].source_session_ids) == 2

    @pytest.mark.asyncio
    async def test_unanalyzed_session_ignored(self, tracker, student):
        session, path = await tracker.record_session_analysis(student.id, "Math", [])
        assert session.topics == []
        assert len(path.checkpoints[0].source_session_ids) == 1


class TestStartBatch:
    """Issuing questions."""

    @pytest.mark.asyncio
    async def test_start_issues_batch(self, tracker, student):
        outcome = await tracker.start_batch(student.id, "Math", "cp-0", Difficulty.EASY)
        assert outcome.status == "started"
        assert outcome.review is False
        assert len(outcome.batch.questions) == 3
        assert outcome.batch.scope == CheckpointScope(checkpoint_id="cp-0")
        assert all(q.difficulty == Difficulty.EASY for q in outcome.batch.questions)
        assert all(q.topic in ("fractions", "decimals") for q in outcome.batch.questions)

    @pytest.mark.asyncio
    async def test_pending_batch_is_resumed(self, tracker, student, cp0_batch):
        again = await tracker.start_batch(student.id, "Math", "cp-0")
        assert again.status == "resumed"
        assert again.batch.batch_id == cp0_batch.batch_id

    @pytest.mark.asyncio
    async def test_locked_checkpoint(self, tracker, student):
        outcome = await tracker.start_batch(student.id, "Math", "cp-1")
        assert outcome.status == "locked"
        assert outcome.batch is None

        gate = await tracker.start_batch(student.id, "Math", "cp-success")
        assert gate.status == "locked"

    @pytest.mark.asyncio
    async def test_unknown_checkpoint(self, tracker, student):
        with pytest.raises(NotFound):
            await tracker.start_batch(student.id, "Math", "cp-42")

    @pytest.mark.asyncio
    async def test_uses_generated_questions(self, db_session, settings, clock, student):
        generated = [
            {"text": "What is 1/2 + 1/4?", "correctAnswer": "3/4", "topic": "fractions"},
            {"text": "Write 0.25 as a fraction", "correctAnswer": "1/4", "topic": "decimals"},
            {"text": "What is 2/4 simplified?", "correctAnswer": "1/2", "topic": "fractions"},
        ]
        client = MagicMock()
        client.chat.completions.create = AsyncMock(
            side_effect=[
                SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=json.dumps(generated)))]),
                SimpleNamespace(
                    choices=[
                        SimpleNamespace(
                            message=SimpleNamespace(content='{"isCorrect": true, "feedback": "Exactly right!"}')
                        )
                    ]
                ),
            ]
        )
        service = QuestionService(settings, client=client)
        tracker = ProgressTracker(db_session, question_service=service, settings=settings, clock=clock)

        outcome = await tracker.start_batch(student.id, "Math", "cp-0")
        assert [q.text for q in outcome.batch.questions] == [g["text"] for g in generated]

        first = outcome.batch.questions[0]
        result = await tracker.submit_answer(outcome.batch.batch_id, first.question_id, "0.75")
        assert result.is_correct is True
        assert result.graded_by == "service"
        assert result.feedback == "Exactly right!"

    @pytest.mark.asyncio
    async def test_replacement_survives_malformed_hint(self, db_session, settings, clock, student):
        def completion(content):
            return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

        generated = [
            {"text": f"Question {n}", "correctAnswer": str(n), "topic": "fractions"} for n in range(3)
        ]
        replacement = [{"text": "What is 3/6 simplified?", "correctAnswer": "1/2", "hint": ["Divide by 3"]}]
        client = MagicMock()
        client.chat.completions.create = AsyncMock(
            side_effect=[
                completion(json.dumps(generated)),
                completion('{"isCorrect": false, "feedback": "Not quite."}'),
                completion(json.dumps(replacement)),
            ]
        )
        service = QuestionService(settings, client=client)
        tracker = ProgressTracker(db_session, question_service=service, settings=settings, clock=clock)

        outcome = await tracker.start_batch(student.id, "Math", "cp-0")
        first = outcome.batch.questions[0]
        result = await tracker.submit_answer(outcome.batch.batch_id, first.question_id, "nope")

        assert result.is_correct is False
        assert result.replacement_question.text == "What is 3/6 simplified?"
        assert result.replacement_question.hint is None


class TestAnswers:
    """Grading, replacement and mastery."""

    @pytest.mark.asyncio
    async def test_completing_first_checkpoint(self, tracker, student, cp0_batch):
        results = await answer_correctly(tracker, cp0_batch.batch_id)
        assert len(results) == 3
        assert [r.points_awarded for r in results] == [10, 10, 10]
        assert [r.correct_count for r in results] == [1, 2, 3]
        assert [r.checkpoint_completed for r in results] == [False, False, True]
        assert all(r.graded_by == "fallback" for r in results)

        last = results[-1]
        assert last.batch_status == BatchStatus.COMPLETED
        assert last.next_unlocked_checkpoint_id == "cp-1"
        assert last.next_question is None
        assert last.progress == round(1 / 11 * 100, 2)
        kinds = [n.kind for n in last.notifications]
        assert NotificationKind.CHECKPOINT_COMPLETED in kinds
        assert NotificationKind.DAILY_GOAL_COMPLETED in kinds

        path = await tracker.get_or_build_path(student.id, "Math")
        assert path.checkpoint("cp-0").completed
        assert path.checkpoint("cp-1").unlocked
        assert path.current_checkpoint_id == "cp-1"

        outcome = await tracker.start_batch(student.id, "Math", "cp-1")
        assert outcome.status == "started"

    @pytest.mark.asyncio
    async def test_wrong_answer_is_replaced(self, tracker, student, cp0_batch):
        failed = cp0_batch.questions[0]
        result = await tracker.submit_answer(cp0_batch.batch_id, failed.question_id, "definitely wrong")

        assert result.is_correct is False
        assert result.points_awarded == 0
        assert result.total_points == 0
        assert result.correct_count == 0
        assert "The correct answer is" in result.feedback
        replacement = result.replacement_question
        assert replacement is not None
        assert replacement.question_id not in {q.question_id for q in cp0_batch.questions}
        assert replacement.difficulty == failed.difficulty
        assert replacement.topic in ("fractions", "decimals")

        batch = await tracker.get_batch(cp0_batch.batch_id)
        assert [q.question_id for q in batch.active_questions][0] == replacement.question_id
        assert batch.superseded == {failed.question_id: replacement.question_id}
        assert len(batch.responses) == 1

        with pytest.raises(QuestionNotActive):
            await tracker.submit_answer(cp0_batch.batch_id, failed.question_id, failed.correct_answer)

        state = await tracker.get_reward_state(student.id)
        assert state.total_points == 0
        assert state.total_correct_answers == 0

    @pytest.mark.asyncio
    async def test_replacement_must_be_answered_to_complete(self, tracker, student, cp0_batch):
        await tracker.submit_answer(cp0_batch.batch_id, cp0_batch.questions[0].question_id, "nope")
        results = await answer_correctly(tracker, cp0_batch.batch_id)
        assert len(results) == 3
        assert results[-1].batch_status == BatchStatus.COMPLETED
        assert results[-1].correct_count == 3

    @pytest.mark.asyncio
    async def test_answer_already_correct_question(self, tracker, cp0_batch):
        question = cp0_batch.questions[0]
        await tracker.submit_answer(cp0_batch.batch_id, question.question_id, question.correct_answer)
        with pytest.raises(QuestionNotActive):
            await tracker.submit_answer(cp0_batch.batch_id, question.question_id, question.correct_answer)

    @pytest.mark.asyncio
    async def test_completed_batch_is_closed(self, tracker, cp0_batch):
        await answer_correctly(tracker, cp0_batch.batch_id)
        with pytest.raises(BatchClosed):
            await tracker.submit_answer(cp0_batch.batch_id, cp0_batch.questions[0].question_id, "x")

    @pytest.mark.asyncio
    async def test_unknown_question(self, tracker, cp0_batch):
        with pytest.raises(NotFound):
            await tracker.submit_answer(cp0_batch.batch_id, "no-such-question", "x")

    @pytest.mark.asyncio
    async def test_unknown_batch(self, tracker):
        with pytest.raises(NotFound):
            await tracker.submit_answer(uuid.uuid4(), "q", "x")

    @pytest.mark.asyncio
    async def test_review_of_completed_checkpoint(self, tracker, student, cp0_batch):
        await answer_correctly(tracker, cp0_batch.batch_id)

        review = await tracker.start_batch(student.id, "Math", "cp-0")
        assert review.status == "started"
        assert review.review is True
        assert not {q.question_id for q in review.batch.questions} & {q.question_id for q in cp0_batch.questions}

        [result] = await answer_correctly(tracker, review.batch.batch_id, count=1)
        assert result.checkpoint_completed is True
        assert result.correct_count == 4
        assert NotificationKind.CHECKPOINT_COMPLETED not in [n.kind for n in result.notifications]

        # Wrong answers during review are still replaced
        pending = (await tracker.get_batch(review.batch.batch_id)).active_questions[-1]
        wrong = await tracker.submit_answer(review.batch.batch_id, pending.question_id, "nope")
        assert wrong.replacement_question is not None


class TestFreePractice:
    """Ad-hoc batches count toward the first checkpoint."""

    @pytest.mark.asyncio
    async def test_adhoc_counts_toward_first_checkpoint(self, tracker, student):
        outcome = await tracker.start_batch(student.id, "Math", None)
        assert outcome.status == "started"
        assert outcome.batch.scope == AdhocScope()
        assert outcome.checkpoint_id is None

        results = await answer_correctly(tracker, outcome.batch.batch_id)
        assert [r.points_awarded for r in results] == [10, 10, 10]
        assert all(r.checkpoint_id == "cp-0" for r in results)
        assert results[-1].checkpoint_completed is True

        path = await tracker.get_or_build_path(student.id, "Math")
        assert path.checkpoint("cp-0").completed
        assert path.checkpoint("cp-1").correct_count == 0

    @pytest.mark.asyncio
    async def test_adhoc_and_checkpoint_batches_do_not_repeat_questions(self, tracker, student, cp0_batch):
        adhoc = await tracker.start_batch(student.id, "Math", None)
        assert not {q.question_id for q in adhoc.batch.questions} & {q.question_id for q in cp0_batch.questions}

    @pytest.mark.asyncio
    async def test_adhoc_without_sessions(self, tracker):
        newcomer = await tracker.register_student("Newcomer")
        outcome = await tracker.start_batch(newcomer.id, "Chemistry", None)
        question = outcome.batch.questions[0]
        assert question.topic == "Chemistry"
        result = await tracker.submit_answer(outcome.batch.batch_id, question.question_id, question.correct_answer)
        assert result.is_correct is True
        assert result.total_points == 10
        assert result.correct_count == 0


class TestSkip:
    """Skipped batches take no more answers but keep what was recorded."""

    @pytest.mark.asyncio
    async def test_skip_keeps_recorded_mastery_and_points(self, tracker, student, cp0_batch):
        results = await answer_correctly(tracker, cp0_batch.batch_id, count=2)
        assert results[-1].correct_count == 2

        skipped = await tracker.skip_batch(cp0_batch.batch_id)
        assert skipped.status == BatchStatus.SKIPPED

        path = await tracker.get_or_build_path(student.id, "Math")
        assert path.checkpoint("cp-0").correct_count == 2
        state = await tracker.get_reward_state(student.id)
        assert state.total_points == 20

        with pytest.raises(BatchClosed):
            await tracker.submit_answer(cp0_batch.batch_id, cp0_batch.questions[2].question_id, "x")
        with pytest.raises(BatchClosed):
            await tracker.skip_batch(cp0_batch.batch_id)

        fresh = await tracker.start_batch(student.id, "Math", "cp-0")
        assert fresh.status == "started"
        assert not {q.question_id for q in fresh.batch.questions} & {q.question_id for q in cp0_batch.questions}

    @pytest.mark.asyncio
    async def test_skip_never_revokes_completed_checkpoint(self, tracker, student, cp0_batch):
        await answer_correctly(tracker, cp0_batch.batch_id, count=2)
        practice = await tracker.start_batch(student.id, "Math", None)
        [result] = await answer_correctly(tracker, practice.batch.batch_id, count=1)
        assert result.checkpoint_completed is True
        assert result.next_unlocked_checkpoint_id == "cp-1"

        await tracker.skip_batch(cp0_batch.batch_id)

        path = await tracker.get_or_build_path(student.id, "Math")
        assert path.checkpoint("cp-0").correct_count == 3
        assert path.checkpoint("cp-0").completed is True
        assert path.checkpoint("cp-1").unlocked is True
        outcome = await tracker.start_batch(student.id, "Math", "cp-1")
        assert outcome.status == "started"


class TestRewards:
    """Reward state updates from correct answers."""

    @pytest.mark.asyncio
    async def test_daily_goal_and_badges(self, tracker, student, cp0_batch):
        results = await answer_correctly(tracker, cp0_batch.batch_id)
        assert [r.bonus_points for r in results] == [0, 0, 15]
        assert [r.daily_goal_reached for r in results] == [False, False, True]
        assert [b.badge_id for b in results[0].new_badges] == [BadgeId.FIRST_ANSWER]
        assert [b.badge_id for b in results[2].new_badges] == [BadgeId.PERFECT_DAY]
        assert results[-1].total_points == 45

        state = await tracker.get_reward_state(student.id)
        assert state.total_points == 45
        assert state.level == 1
        assert state.current_streak == 1
        assert state.total_correct_answers == 3
        assert state.daily_goal.completed == 3
        assert state.badges == ["first_answer", "perfect_day"]

    @pytest.mark.asyncio
    async def test_streak_across_days(self, tracker, student, cp0_batch, clock):
        streaks = []
        badges = []
        for _ in range(3):
            [result] = await answer_correctly(tracker, cp0_batch.batch_id, count=1)
            streaks.append(result.current_streak)
            badges.extend(b.badge_id for b in result.new_badges)
            clock.advance(days=1)
        assert streaks == [1, 2, 3]
        assert BadgeId.THREE_DAY_STREAK in badges

        clock.advance(days=3)
        outcome = await tracker.start_batch(student.id, "Math", "cp-1")
        [result] = await answer_correctly(tracker, outcome.batch.batch_id, count=1)
        assert result.current_streak == 1
        state = await tracker.get_reward_state(student.id)
        assert state.longest_streak == 3

    @pytest.mark.asyncio
    async def test_level_up(self, db_session, question_service, clock, student):
        settings = Settings(openai_api_key="", adhoc_points=60)
        tracker = ProgressTracker(db_session, question_service=question_service, settings=settings, clock=clock)
        outcome = await tracker.start_batch(student.id, "Math", None)
        first, second = await answer_correctly(tracker, outcome.batch.batch_id, count=2)

        assert first.level == 1 and first.level_up is False
        assert second.total_points == 120
        assert second.level == 2
        assert second.level_up is True
        assert NotificationKind.LEVEL_UP in [n.kind for n in second.notifications]

    @pytest.mark.asyncio
    async def test_fresh_student_state(self, tracker):
        newcomer = await tracker.register_student("Newcomer")
        state = await tracker.get_reward_state(newcomer.id)
        assert state.total_points == 0
        assert state.level == 1
        assert state.badges == []

    @pytest.mark.asyncio
    async def test_unknown_student(self, tracker):
        with pytest.raises(NotFound):
            await tracker.get_reward_state(uuid.uuid4())


class TestAuditAndConcurrency:
    """Event log and write conflicts."""

    @pytest.mark.asyncio
    async def test_events_logged(self, tracker, student, cp0_batch, db_session):
        await tracker.submit_answer(cp0_batch.batch_id, cp0_batch.questions[0].question_id, "nope")
        await answer_correctly(tracker, cp0_batch.batch_id)
        await db_session.flush()

        events = EventStore(db_session)
        assert await events.count_events(EventType.STUDENT_REGISTERED, student_id=student.id) == 1
        assert await events.count_events(EventType.PATH_BUILT, student_id=student.id) == 1
        assert await events.count_events(EventType.BATCH_STARTED, entity_id=cp0_batch.batch_id) == 1
        assert await events.count_events(EventType.ANSWER_SUBMITTED, entity_id=cp0_batch.batch_id) == 4
        assert await events.count_events(EventType.QUESTION_REPLACED, entity_id=cp0_batch.batch_id) == 1
        assert await events.count_events(EventType.BATCH_COMPLETED, entity_id=cp0_batch.batch_id) == 1
        assert await events.count_events(EventType.CHECKPOINT_COMPLETED, student_id=student.id) == 1
        assert await events.count_events(EventType.POINTS_AWARDED, student_id=student.id) == 3

        history = await events.get_entity_history("batch", cp0_batch.batch_id, event_types=[EventType.QUESTION_REPLACED])
        assert len(history) == 1
        assert history[0].payload["question_id"] == cp0_batch.questions[0].question_id

    @pytest.mark.asyncio
    async def test_stale_batch_version_is_a_conflict(self, tracker, cp0_batch, db_session):
        # Keep the loaded row in the identity map across the commit
        record = await ProgressRepository(db_session).get_batch_record(cp0_batch.batch_id)
        record_version = record.version
        await db_session.commit()
        # Another writer bumps the row behind this session's back
        await db_session.execute(
            update(QuestionBatchRecord)
            .where(QuestionBatchRecord.id == cp0_batch.batch_id)
            .values(version=QuestionBatchRecord.version + 1)
            .execution_options(synchronize_session=False)
        )
        question = cp0_batch.questions[0]
        with pytest.raises(ConcurrentSubmission):
            await tracker.submit_answer(cp0_batch.batch_id, question.question_id, question.correct_answer)

        await db_session.rollback()
        version = await db_session.scalar(
            select(QuestionBatchRecord.version).where(QuestionBatchRecord.id == cp0_batch.batch_id)
        )
        assert version == record_version
        responses = await db_session.scalar(
            select(func.count()).select_from(ResponseRecord).where(ResponseRecord.batch_id == cp0_batch.batch_id)
        )
        assert responses == 0

    @pytest.mark.asyncio
    async def test_one_correct_response_per_question(self, tracker, cp0_batch, db_session):
        question_id = cp0_batch.questions[0].question_id
        record = await ProgressRepository(db_session).get_batch_record(cp0_batch.batch_id)

        def ledger_row(sequence: int, is_correct: bool) -> ResponseRecord:
            return ResponseRecord(
                batch_id=record.id,
                question_id=question_id,
                sequence=sequence,
                student_answer="fractions",
                is_correct=is_correct,
                feedback="",
                points_awarded=10 if is_correct else 0,
                graded_by="fallback",
            )

        db_session.add_all([ledger_row(0, False), ledger_row(1, False), ledger_row(2, True)])
        await db_session.flush()

        db_session.add(ledger_row(3, True))
        with pytest.raises(IntegrityError):
            await db_session.flush()

    @pytest.mark.asyncio
    async def test_racing_rewards_are_not_lost(
        self, tracker, student, cp0_batch, db_session, session_maker, settings, clock
    ):
        practice = await tracker.start_batch(student.id, "Math", None)
        await db_session.commit()
        cp0_question = cp0_batch.questions[0]
        practice_question = practice.batch.questions[0]

        async with session_maker() as session_a, session_maker() as session_b:
            tracker_a = ProgressTracker(session_a, settings=settings, clock=clock)
            tracker_b = ProgressTracker(session_b, settings=settings, clock=clock)

            # A holds a snapshot of the reward row while B commits a correct answer
            before = await tracker_a.get_reward_state(student.id)
            assert before.total_points == 0
            await tracker_b.submit_answer(cp0_batch.batch_id, cp0_question.question_id, cp0_question.correct_answer)
            await session_b.commit()

            try:
                await tracker_a.submit_answer(
                    practice.batch.batch_id, practice_question.question_id, practice_question.correct_answer
                )
                await session_a.commit()
            except ConcurrentSubmission:
                await session_a.rollback()
                await tracker_a.submit_answer(
                    practice.batch.batch_id, practice_question.question_id, practice_question.correct_answer
                )
                await session_a.commit()

        async with session_maker() as fresh:
            state = await ProgressTracker(fresh, settings=settings, clock=clock).get_reward_state(student.id)
        assert state.total_points == 20
        assert state.total_correct_answers == 2
        assert state.daily_goal.completed == 2
