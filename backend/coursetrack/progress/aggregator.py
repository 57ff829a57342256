"""Course and student progress aggregation.

Aggregates are always rebuilt from stored raw progress (lesson progress
rows, quiz completions, assignment submissions); nothing is cached between
calls, so concurrent requests for different students never share state.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field

from coursetrack.courses.catalog import CourseCatalog, CourseInfo, CourseItems
from coursetrack.exceptions import ResourceNotFoundError
from coursetrack.progress.calculator import (
    EQUAL_WEIGHTS,
    CourseWeights,
    Tally,
    course_score,
    student_overall,
    to_percentage,
)
from coursetrack.progress.protocols import ProgressStore
from coursetrack.progress.state import ProgressStatus


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CourseProgress:
    """One student's progress in one course."""

    student_id: str
    course_id: int
    completed_lesson_ids: list[int]
    completed_quiz_ids: list[int]
    submitted_assignment_ids: list[int]
    lessons: Tally
    quizzes: Tally
    assignments: Tally
    score: float
    skipped_lesson_ids: list[int] = field(default_factory=list)
    skipped_quiz_ids: list[int] = field(default_factory=list)
    skipped_assignment_ids: list[int] = field(default_factory=list)

    @property
    def overall_progress(self) -> int:
        return to_percentage(self.score)

    @property
    def status(self) -> ProgressStatus:
        if self.score >= 100.0:
            return ProgressStatus.COMPLETED
        if self.score > 0.0:
            return ProgressStatus.IN_PROGRESS
        return ProgressStatus.NOT_STARTED


@dataclass(frozen=True)
class StudentProgress:
    """A student's progress over every approved enrollment."""

    student_id: str
    courses: list[CourseProgress]

    @property
    def overall_progress(self) -> int:
        return student_overall(course.score for course in self.courses)


@dataclass(frozen=True)
class StudentSummaryEntry:
    student_id: str
    name: str
    progress: CourseProgress


@dataclass(frozen=True)
class CourseSummary:
    """Dashboard view of a course over its approved roster."""

    course: CourseInfo
    students: list[StudentSummaryEntry]

    @property
    def total_students(self) -> int:
        return len(self.students)

    def count(self, status: ProgressStatus) -> int:
        return sum(1 for entry in self.students if entry.progress.status is status)

    @property
    def average_progress(self) -> int:
        if not self.students:
            return 0
        return to_percentage(math.fsum(entry.progress.score for entry in self.students) / len(self.students))


def _split(found: set[int], known: frozenset[int]) -> tuple[list[int], list[int]]:
    """Partition stored ids into (still existing, orphaned)."""
    return sorted(found & known), sorted(found - known)


class CourseAggregator:
    """Compute course-level and student-level progress."""

    def __init__(
        self,
        store: ProgressStore,
        catalog: CourseCatalog,
        weights: CourseWeights = EQUAL_WEIGHTS,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._weights = weights

    async def course_progress(self, student_id: str, course_id: int) -> CourseProgress:
        await self._catalog.get_course(course_id)
        items = await self._catalog.get_course_items(course_id)
        return await self._course_progress(student_id, course_id, items)

    async def student_progress(self, student_id: str) -> StudentProgress:
        course_ids = await self._catalog.enrolled_course_ids(student_id)
        results = await asyncio.gather(
            *(self.course_progress(student_id, course_id) for course_id in course_ids),
            return_exceptions=True,
        )

        courses: list[CourseProgress] = []
        for course_id, result in zip(course_ids, results, strict=True):
            if isinstance(result, ResourceNotFoundError):
                logger.warning(f"Skipping enrollment of {student_id} in missing course {course_id}")
                continue
            if isinstance(result, BaseException):
                raise result
            courses.append(result)
        return StudentProgress(student_id=student_id, courses=courses)

    async def course_summary(self, course_id: int) -> CourseSummary:
        course = await self._catalog.get_course(course_id)
        items = await self._catalog.get_course_items(course_id)
        roster = await self._catalog.enrolled_students(course_id)
        progresses = await asyncio.gather(
            *(self._course_progress(student.student_id, course_id, items) for student in roster)
        )
        entries = [
            StudentSummaryEntry(student_id=student.student_id, name=student.name, progress=progress)
            for student, progress in zip(roster, progresses, strict=True)
        ]
        return CourseSummary(course=course, students=entries)

    async def _course_progress(self, student_id: str, course_id: int, items: CourseItems) -> CourseProgress:
        lesson_rows, quiz_ids, assignment_ids = await asyncio.gather(
            self._store.list_course_lesson_progress(student_id, course_id),
            self._store.completed_quiz_ids(student_id, course_id),
            self._store.submitted_assignment_ids(student_id, course_id),
        )

        # In-progress rows can be orphaned too, so split all rows first
        _, skipped_lessons = _split({row.lesson_id for row in lesson_rows}, items.lesson_ids)
        completed_lessons = sorted({row.lesson_id for row in lesson_rows if row.completed} & items.lesson_ids)
        completed_quizzes, skipped_quizzes = _split(quiz_ids, items.quiz_ids)
        submitted, skipped_assignments = _split(assignment_ids, items.assignment_ids)

        if skipped_lessons or skipped_quizzes or skipped_assignments:
            logger.warning(
                f"Skipping orphaned progress for student {student_id} in course {course_id}: "
                f"lessons={skipped_lessons} quizzes={skipped_quizzes} assignments={skipped_assignments}"
            )

        lessons = Tally(completed=len(completed_lessons), total=len(items.lesson_ids))
        quizzes = Tally(completed=len(completed_quizzes), total=len(items.quiz_ids))
        assignments = Tally(completed=len(submitted), total=len(items.assignment_ids))

        return CourseProgress(
            student_id=student_id,
            course_id=course_id,
            completed_lesson_ids=completed_lessons,
            completed_quiz_ids=completed_quizzes,
            submitted_assignment_ids=submitted,
            lessons=lessons,
            quizzes=quizzes,
            assignments=assignments,
            score=course_score(lessons, quizzes, assignments, self._weights),
            skipped_lesson_ids=skipped_lessons,
            skipped_quiz_ids=skipped_quizzes,
            skipped_assignment_ids=skipped_assignments,
        )
