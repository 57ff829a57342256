"""Course and student aggregation over stored progress."""

import pytest
import pytest_asyncio
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.courses.catalog import CourseCatalog
from coursetrack.courses.models import Lesson, Quiz
from coursetrack.exceptions import ResourceNotFoundError
from coursetrack.progress.aggregator import CourseAggregator
from coursetrack.progress.calculator import CourseWeights
from coursetrack.progress.recorder import ProgressRecorder
from coursetrack.progress.state import ProgressStatus
from coursetrack.progress.store import SqlProgressStore
from tests.fixtures.content import (
    TWO_EXERCISES,
    complete_quizzes,
    create_assignments,
    create_course,
    create_lesson,
    create_quizzes,
    enroll,
    submit_assignments,
)


@pytest_asyncio.fixture
async def store(session_maker: async_sessionmaker[AsyncSession]) -> SqlProgressStore:
    return SqlProgressStore(session_maker)


@pytest_asyncio.fixture
async def aggregator(store: SqlProgressStore, session_maker) -> CourseAggregator:
    return CourseAggregator(store, CourseCatalog(session_maker))


@pytest_asyncio.fixture
async def recorder(store: SqlProgressStore, session_maker) -> ProgressRecorder:
    return ProgressRecorder(store, CourseCatalog(session_maker))


@pytest.mark.asyncio
async def test_quiz_only_course_ignores_empty_dimensions(aggregator: CourseAggregator, session_maker) -> None:
    course_id = await create_course(session_maker)
    quiz_ids = await create_quizzes(session_maker, course_id, 4)
    await complete_quizzes(session_maker, "student-1", course_id, quiz_ids[:2])

    progress = await aggregator.course_progress("student-1", course_id)

    assert progress.overall_progress == 50
    assert progress.quizzes.completed == 2
    assert progress.lessons.total == 0
    assert progress.completed_quiz_ids == sorted(quiz_ids[:2])
    assert progress.status is ProgressStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_mixed_course(aggregator: CourseAggregator, recorder: ProgressRecorder, session_maker) -> None:
    course_id = await create_course(session_maker)
    reading = await create_lesson(session_maker, course_id, "Reading")
    await create_lesson(session_maker, course_id, "Practice", exercises=TWO_EXERCISES, order_index=1)
    assignment_ids = await create_assignments(session_maker, course_id, 1)

    await recorder.mark_completed("student-1", course_id, reading)
    await submit_assignments(session_maker, "student-1", course_id, assignment_ids)

    progress = await aggregator.course_progress("student-1", course_id)

    # mean(50 lessons, 100 assignments)
    assert progress.overall_progress == 75
    assert progress.completed_lesson_ids == [reading]
    assert progress.submitted_assignment_ids == assignment_ids


@pytest.mark.asyncio
async def test_in_progress_lessons_do_not_count(
    aggregator: CourseAggregator, recorder: ProgressRecorder, session_maker
) -> None:
    course_id = await create_course(session_maker)
    lesson_id = await create_lesson(session_maker, course_id, exercises=TWO_EXERCISES)
    await recorder.mark_exercise("student-1", course_id, lesson_id, "e1:q1")

    progress = await aggregator.course_progress("student-1", course_id)

    assert progress.overall_progress == 0
    assert progress.status is ProgressStatus.NOT_STARTED


@pytest.mark.asyncio
async def test_weights_are_applied(store: SqlProgressStore, session_maker) -> None:
    course_id = await create_course(session_maker)
    await create_lesson(session_maker, course_id, "A")
    quiz_ids = await create_quizzes(session_maker, course_id, 1)
    await complete_quizzes(session_maker, "student-1", course_id, quiz_ids)

    weighted = CourseAggregator(store, CourseCatalog(session_maker), CourseWeights(lessons=3.0, quizzes=1.0))
    progress = await weighted.course_progress("student-1", course_id)

    assert progress.overall_progress == 25


@pytest.mark.asyncio
async def test_orphaned_progress_is_skipped(
    aggregator: CourseAggregator, recorder: ProgressRecorder, session_maker
) -> None:
    course_id = await create_course(session_maker)
    kept = await create_lesson(session_maker, course_id, "Kept")
    removed = await create_lesson(session_maker, course_id, "Removed", order_index=1)
    quiz_ids = await create_quizzes(session_maker, course_id, 2)

    await recorder.mark_completed("student-1", course_id, kept)
    await recorder.mark_completed("student-1", course_id, removed)
    await complete_quizzes(session_maker, "student-1", course_id, quiz_ids)

    async with session_maker() as session:
        await session.execute(delete(Lesson).where(Lesson.id == removed))
        await session.execute(delete(Quiz).where(Quiz.id == quiz_ids[1]))
        await session.commit()

    progress = await aggregator.course_progress("student-1", course_id)

    assert progress.completed_lesson_ids == [kept]
    assert progress.skipped_lesson_ids == [removed]
    assert progress.completed_quiz_ids == [quiz_ids[0]]
    assert progress.skipped_quiz_ids == [quiz_ids[1]]
    assert progress.overall_progress == 100


@pytest.mark.asyncio
async def test_missing_course_is_not_found(aggregator: CourseAggregator) -> None:
    with pytest.raises(ResourceNotFoundError):
        await aggregator.course_progress("student-1", 999)


@pytest.mark.asyncio
async def test_student_progress_spans_approved_enrollments(
    aggregator: CourseAggregator, recorder: ProgressRecorder, session_maker
) -> None:
    finished = await create_course(session_maker, "Finished")
    lesson_id = await create_lesson(session_maker, finished)
    halfway = await create_course(session_maker, "Halfway")
    quiz_ids = await create_quizzes(session_maker, halfway, 2)
    pending = await create_course(session_maker, "Pending")
    await create_quizzes(session_maker, pending, 1)

    await enroll(session_maker, finished, "student-1")
    await enroll(session_maker, halfway, "student-1")
    await enroll(session_maker, pending, "student-1", status="pending")
    await recorder.mark_completed("student-1", finished, lesson_id)
    await complete_quizzes(session_maker, "student-1", halfway, quiz_ids[:1])

    progress = await aggregator.student_progress("student-1")

    assert [course.course_id for course in progress.courses] == [finished, halfway]
    assert progress.overall_progress == 75


@pytest.mark.asyncio
async def test_student_without_enrollments(aggregator: CourseAggregator) -> None:
    progress = await aggregator.student_progress("nobody")

    assert progress.courses == []
    assert progress.overall_progress == 0


@pytest.mark.asyncio
async def test_course_summary_counts_students(
    aggregator: CourseAggregator, recorder: ProgressRecorder, session_maker
) -> None:
    course_id = await create_course(session_maker)
    first = await create_lesson(session_maker, course_id, "One")
    second = await create_lesson(session_maker, course_id, "Two", order_index=1)
    for student_id in ("ada", "ben", "cy"):
        await enroll(session_maker, course_id, student_id)
    await enroll(session_maker, course_id, "dee", status="pending")

    await recorder.mark_completed("ada", course_id, first)
    await recorder.mark_completed("ada", course_id, second)
    await recorder.mark_completed("ben", course_id, first)
    await recorder.mark_completed("dee", course_id, first)

    summary = await aggregator.course_summary(course_id)

    assert summary.total_students == 3
    assert summary.count(ProgressStatus.COMPLETED) == 1
    assert summary.count(ProgressStatus.IN_PROGRESS) == 1
    assert summary.count(ProgressStatus.NOT_STARTED) == 1
    assert summary.average_progress == 50
    by_student = {entry.student_id: entry.progress.overall_progress for entry in summary.students}
    assert by_student == {"ada": 100, "ben": 50, "cy": 0}


@pytest.mark.asyncio
async def test_students_are_aggregated_independently(
    aggregator: CourseAggregator, recorder: ProgressRecorder, session_maker
) -> None:
    course_id = await create_course(session_maker)
    lesson_id = await create_lesson(session_maker, course_id)
    quiz_ids = await create_quizzes(session_maker, course_id, 1)

    await recorder.mark_completed("alice", course_id, lesson_id)
    await complete_quizzes(session_maker, "alice", course_id, quiz_ids)

    alice = await aggregator.course_progress("alice", course_id)
    bob = await aggregator.course_progress("bob", course_id)

    assert alice.overall_progress == 100
    assert bob.overall_progress == 0
    assert bob.completed_lesson_ids == []
    assert bob.completed_quiz_ids == []
