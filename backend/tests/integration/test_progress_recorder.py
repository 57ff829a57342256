"""Progress recorder and SQL store against a real (SQLite) database."""

import asyncio
from contextlib import suppress

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.courses.catalog import CourseCatalog
from coursetrack.exceptions import (
    InvalidReferenceError,
    LessonLockedError,
    ResourceNotFoundError,
    TransientStoreError,
    ValidationError,
)
from coursetrack.lessons.classifier import LessonVariant
from coursetrack.progress.models import LessonProgress, LessonProgressItem
from coursetrack.progress.recorder import ProgressRecorder
from coursetrack.progress.state import DerivedProgress, LessonProgressState, ProgressDelta, ProgressStatus
from coursetrack.progress.store import SqlProgressStore
from tests.fixtures.content import TWO_EXERCISES, create_course, create_lesson, exercise, question


STUDENT = "student-1"


@pytest_asyncio.fixture
async def recorder(session_maker: async_sessionmaker[AsyncSession]) -> ProgressRecorder:
    return ProgressRecorder(SqlProgressStore(session_maker), CourseCatalog(session_maker), watched_threshold=0.8)


@pytest_asyncio.fixture
async def course_id(session_maker: async_sessionmaker[AsyncSession]) -> int:
    return await create_course(session_maker)


@pytest.mark.asyncio
async def test_untouched_lesson_is_not_started(recorder: ProgressRecorder, session_maker, course_id: int) -> None:
    lesson_id = await create_lesson(session_maker, course_id, exercises=TWO_EXERCISES)

    recorded = await recorder.get_progress(STUDENT, course_id, lesson_id)

    assert recorded.state.status is ProgressStatus.NOT_STARTED
    assert recorded.state.completion_percentage == 0
    assert recorded.lesson.variant is LessonVariant.PRACTICE


@pytest.mark.asyncio
async def test_start_lesson_moves_to_in_progress(recorder: ProgressRecorder, session_maker, course_id: int) -> None:
    lesson_id = await create_lesson(session_maker, course_id)

    first = await recorder.start_lesson(STUDENT, course_id, lesson_id)
    again = await recorder.start_lesson(STUDENT, course_id, lesson_id)

    assert first.state.status is ProgressStatus.IN_PROGRESS
    assert again.state.status is ProgressStatus.IN_PROGRESS
    assert not again.state.completed


@pytest.mark.asyncio
async def test_practice_lesson_completes_after_every_question(
    recorder: ProgressRecorder, session_maker, course_id: int
) -> None:
    lesson_id = await create_lesson(session_maker, course_id, exercises=TWO_EXERCISES)

    percentages = []
    for key in ["e2:q2", "e1:q1", "e2:q1"]:
        recorded = await recorder.mark_exercise(STUDENT, course_id, lesson_id, key)
        percentages.append(recorded.state.completion_percentage)

    assert percentages == [33, 67, 100]
    assert recorded.state.completed
    assert recorded.state.status is ProgressStatus.COMPLETED


@pytest.mark.asyncio
async def test_replayed_submission_is_a_no_op(recorder: ProgressRecorder, session_maker, course_id: int) -> None:
    lesson_id = await create_lesson(session_maker, course_id, exercises=TWO_EXERCISES)

    first = await recorder.mark_exercise(STUDENT, course_id, lesson_id, "e1:q1", is_correct=True)
    second = await recorder.mark_exercise(STUDENT, course_id, lesson_id, "e1:q1", is_correct=False)

    assert second.state.completion_percentage == first.state.completion_percentage == 33
    assert second.state.completed_keys == frozenset({"e1:q1"})
    # The first answer's correctness is kept
    assert second.state.correct_keys == frozenset({"e1:q1"})

    async with session_maker() as session:
        count = await session.scalar(select(func.count()).select_from(LessonProgressItem))
    assert count == 1


@pytest.mark.asyncio
async def test_unknown_reference_is_rejected_without_writing(
    recorder: ProgressRecorder, session_maker, course_id: int
) -> None:
    lesson_id = await create_lesson(session_maker, course_id, exercises=TWO_EXERCISES)

    with pytest.raises(InvalidReferenceError) as exc_info:
        await recorder.mark_exercise(STUDENT, course_id, lesson_id, "e9:q1")

    assert exc_info.value.reference == "e9:q1"
    async with session_maker() as session:
        assert await session.scalar(select(func.count()).select_from(LessonProgress)) == 0


@pytest.mark.asyncio
async def test_wrong_answers_still_mark_the_question(
    recorder: ProgressRecorder, session_maker, course_id: int
) -> None:
    lesson_id = await create_lesson(session_maker, course_id, exercises=TWO_EXERCISES)

    wrong = await recorder.submit_answer(STUDENT, course_id, lesson_id, "e1:q1", selected_option=0)
    right = await recorder.submit_answer(STUDENT, course_id, lesson_id, "e2:q1", selected_option=0)

    assert wrong.is_correct is False
    assert right.is_correct is True
    assert right.state.completed_keys == frozenset({"e1:q1", "e2:q1"})
    assert right.state.correct_keys == frozenset({"e2:q1"})


@pytest.mark.asyncio
async def test_bare_exercise_id_marks_all_its_questions(
    recorder: ProgressRecorder, session_maker, course_id: int
) -> None:
    lesson_id = await create_lesson(session_maker, course_id, lesson_type="text", exercises=TWO_EXERCISES)

    recorded = await recorder.mark_exercise(STUDENT, course_id, lesson_id, "e2")

    assert recorded.state.completed_keys == frozenset({"e2:q1", "e2:q2"})
    assert recorded.gate.remaining_exercise_ids == ("e1",)
    assert not recorded.gate.content_unlocked


@pytest.mark.asyncio
async def test_concurrent_submissions_are_merged(recorder: ProgressRecorder, session_maker, course_id: int) -> None:
    lesson_id = await create_lesson(session_maker, course_id, exercises=TWO_EXERCISES)

    await asyncio.gather(
        *(recorder.mark_exercise(STUDENT, course_id, lesson_id, key) for key in ["e1:q1", "e2:q1", "e2:q2", "e1:q1"])
    )

    recorded = await recorder.get_progress(STUDENT, course_id, lesson_id)
    assert recorded.state.completed_keys == frozenset({"e1:q1", "e2:q1", "e2:q2"})
    assert recorded.state.completion_percentage == 100
    assert recorded.state.completed


@pytest.mark.asyncio
@pytest.mark.parametrize("step", [0.05, 0.13, 0.3, 0.5])
async def test_video_watched_flips_at_first_sample_past_threshold(
    recorder: ProgressRecorder, session_maker, course_id: int, step: float
) -> None:
    lesson_id = await create_lesson(session_maker, course_id, video_url="https://cdn.example/v.mp4")
    duration = 200.0

    samples = []
    position = 0.0
    while position <= 1.0:
        samples.append(position)
        position = round(position + step, 6)

    flips = []
    for fraction in samples:
        recorded = await recorder.record_playback(STUDENT, course_id, lesson_id, fraction * duration, duration)
        flips.append(recorded.state.video_watched)

    first_past = next(i for i, fraction in enumerate(samples) if fraction >= 0.8)
    assert flips == [i >= first_past for i in range(len(samples))]

    # Seeking back never resets the flag or the watched fraction
    rewound = await recorder.record_playback(STUDENT, course_id, lesson_id, 10.0, duration)
    assert rewound.state.video_watched
    assert rewound.state.watched_fraction == pytest.approx(samples[-1])
    assert rewound.state.completed


@pytest.mark.asyncio
async def test_video_with_exercises_needs_both_parts(
    recorder: ProgressRecorder, session_maker, course_id: int
) -> None:
    lesson_id = await create_lesson(session_maker, course_id, video_url="v.mp4", exercises=TWO_EXERCISES)

    watched = await recorder.record_playback(STUDENT, course_id, lesson_id, 90.0, 100.0)
    assert watched.state.video_watched
    assert not watched.state.completed
    # (90 + 0) / 2
    assert watched.state.completion_percentage == 45

    for key in ["e1:q1", "e2:q1", "e2:q2"]:
        recorded = await recorder.mark_exercise(STUDENT, course_id, lesson_id, key)

    assert recorded.state.completed
    assert recorded.state.completion_percentage == 100


@pytest.mark.asyncio
async def test_unwatching_is_ignored(recorder: ProgressRecorder, session_maker, course_id: int) -> None:
    lesson_id = await create_lesson(session_maker, course_id, video_url="v.mp4", exercises=TWO_EXERCISES)

    await recorder.mark_video_watched(STUDENT, course_id, lesson_id, watched=True)
    recorded = await recorder.mark_video_watched(STUDENT, course_id, lesson_id, watched=False)

    assert recorded.state.video_watched
    assert recorded.state.watched_fraction == pytest.approx(0.8)


@pytest.mark.asyncio
async def test_playback_on_a_text_lesson_is_rejected(
    recorder: ProgressRecorder, session_maker, course_id: int
) -> None:
    lesson_id = await create_lesson(session_maker, course_id)

    with pytest.raises(ValidationError):
        await recorder.record_playback(STUDENT, course_id, lesson_id, 10.0, 100.0)


@pytest.mark.asyncio
async def test_text_lesson_without_exercises_needs_explicit_completion(
    recorder: ProgressRecorder, session_maker, course_id: int
) -> None:
    lesson_id = await create_lesson(session_maker, course_id)

    started = await recorder.start_lesson(STUDENT, course_id, lesson_id)
    assert not started.state.completed

    completed = await recorder.mark_completed(STUDENT, course_id, lesson_id)
    assert completed.state.completed
    assert completed.state.completion_percentage == 100

    again = await recorder.mark_completed(STUDENT, course_id, lesson_id)
    assert again.state.completed


@pytest.mark.asyncio
async def test_gated_lesson_cannot_be_completed_early(
    recorder: ProgressRecorder, session_maker, course_id: int
) -> None:
    lesson_id = await create_lesson(session_maker, course_id, lesson_type="text", exercises=TWO_EXERCISES)
    await recorder.mark_exercise(STUDENT, course_id, lesson_id, "e1:q1")

    with pytest.raises(LessonLockedError) as exc_info:
        await recorder.mark_completed(STUDENT, course_id, lesson_id)

    assert "e2" in exc_info.value.reason
    recorded = await recorder.get_progress(STUDENT, course_id, lesson_id)
    assert not recorded.state.completed
    assert recorded.state.completion_percentage == 33


@pytest.mark.asyncio
async def test_unwatched_video_cannot_be_completed(
    recorder: ProgressRecorder, session_maker, course_id: int
) -> None:
    lesson_id = await create_lesson(session_maker, course_id, video_url="v.mp4")

    with pytest.raises(LessonLockedError, match="watch at least 80%"):
        await recorder.mark_completed(STUDENT, course_id, lesson_id)


@pytest.mark.asyncio
async def test_practice_lesson_without_questions_completes_explicitly(
    recorder: ProgressRecorder, session_maker, course_id: int
) -> None:
    lesson_id = await create_lesson(session_maker, course_id, lesson_type="practice")

    started = await recorder.start_lesson(STUDENT, course_id, lesson_id)
    assert not started.state.completed

    completed = await recorder.mark_completed(STUDENT, course_id, lesson_id)
    assert completed.state.completed


@pytest.mark.asyncio
async def test_students_do_not_share_progress(recorder: ProgressRecorder, session_maker, course_id: int) -> None:
    lesson_id = await create_lesson(session_maker, course_id, exercises=TWO_EXERCISES)

    await recorder.mark_exercise("alice", course_id, lesson_id, "e1:q1")
    bob = await recorder.get_progress("bob", course_id, lesson_id)

    assert bob.state.completed_keys == frozenset()
    assert bob.state.status is ProgressStatus.NOT_STARTED


@pytest.mark.asyncio
async def test_lesson_of_another_course_is_not_found(
    recorder: ProgressRecorder, session_maker, course_id: int
) -> None:
    other_course = await create_course(session_maker, title="Other")
    lesson_id = await create_lesson(session_maker, other_course)

    with pytest.raises(ResourceNotFoundError):
        await recorder.start_lesson(STUDENT, course_id, lesson_id)


@pytest.mark.asyncio
async def test_question_without_id_is_tracked_apart_from_its_sibling(
    recorder: ProgressRecorder, session_maker, course_id: int
) -> None:
    unnamed = {"question": "No id here", "options": ["A", "B"], "correct_answer": 0}
    lesson_id = await create_lesson(session_maker, course_id, exercises=[exercise("e", question("1"), unnamed)])

    recorded = await recorder.submit_answer(STUDENT, course_id, lesson_id, "e:1", 0)

    assert recorded.state.completed_keys == frozenset({"e:1"})
    assert recorded.state.completion_percentage == 50
    assert not recorded.state.completed


@pytest.mark.asyncio
async def test_bare_id_of_exercise_without_questions_changes_nothing(
    recorder: ProgressRecorder, session_maker, course_id: int
) -> None:
    lesson_id = await create_lesson(
        session_maker, course_id, lesson_type="text", exercises=[exercise("reading"), *TWO_EXERCISES]
    )

    first = await recorder.mark_exercise(STUDENT, course_id, lesson_id, "reading")
    again = await recorder.mark_exercise(STUDENT, course_id, lesson_id, "reading")

    assert first.state.status is ProgressStatus.NOT_STARTED
    assert again.state.status is ProgressStatus.NOT_STARTED
    assert again.state.completed_keys == frozenset()


def _half_done(progress: LessonProgressState) -> DerivedProgress:
    return DerivedProgress(completion_percentage=50, completed=False)


def _connection_lost(progress: LessonProgressState) -> DerivedProgress:
    raise OperationalError("SELECT 1", {}, ConnectionError("connection lost"))


TWO_KEYS = ProgressDelta(completed_keys={"e:a": True, "e:b": None})


async def _row_counts(session_maker) -> tuple[int, int]:
    async with session_maker() as session:
        rows = await session.scalar(select(func.count()).select_from(LessonProgress))
        items = await session.scalar(select(func.count()).select_from(LessonProgressItem))
    return rows, items


@pytest.mark.asyncio
async def test_store_failure_during_merge_writes_nothing(session_maker, course_id: int) -> None:
    store = SqlProgressStore(session_maker)
    lesson_id = await create_lesson(session_maker, course_id, exercises=TWO_EXERCISES)

    with pytest.raises(TransientStoreError):
        await store.merge_lesson_progress(STUDENT, course_id, lesson_id, TWO_KEYS, _connection_lost)

    assert await _row_counts(session_maker) == (0, 0)
    assert (await store.get_lesson_progress(STUDENT, course_id, lesson_id)).status is ProgressStatus.NOT_STARTED


@pytest.mark.parametrize("delay", [0, 0.001, 0.002, 0.005])
@pytest.mark.asyncio
async def test_cancelled_merge_is_all_or_nothing(session_maker, course_id: int, delay: float) -> None:
    store = SqlProgressStore(session_maker)
    lesson_id = await create_lesson(session_maker, course_id, exercises=TWO_EXERCISES)

    task = asyncio.create_task(store.merge_lesson_progress(STUDENT, course_id, lesson_id, TWO_KEYS, _half_done))
    await asyncio.sleep(delay)
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task

    state = await store.get_lesson_progress(STUDENT, course_id, lesson_id)
    untouched = (state.started, state.completed_keys, state.completion_percentage) == (False, frozenset(), 0)
    applied = (state.started, state.completed_keys, state.completion_percentage) == (
        True,
        frozenset({"e:a", "e:b"}),
        50,
    )
    assert untouched or applied
