"""Read-only access to course content owned by the CRUD layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.courses.models import Assignment, Course, Enrollment, Lesson as LessonModel, Quiz
from coursetrack.database.errors import translate_store_errors
from coursetrack.exceptions import ResourceNotFoundError
from coursetrack.lessons.classifier import Lesson, LessonRecord, classify_lesson
from coursetrack.lessons.exercises import parse_exercises


logger = logging.getLogger(__name__)

APPROVED = "approved"


@dataclass(frozen=True)
class CourseInfo:
    id: int
    title: str
    teacher_name: str | None
    teacher_email: str | None


@dataclass(frozen=True)
class CourseItems:
    """Identifiers of everything that counts towards a course's progress."""

    lesson_ids: frozenset[int]
    quiz_ids: frozenset[int]
    assignment_ids: frozenset[int]


@dataclass(frozen=True)
class EnrolledStudent:
    student_id: str
    name: str
    email: str | None


def to_lesson_record(row: LessonModel) -> LessonRecord:
    return LessonRecord(
        id=row.id,
        course_id=row.course_id,
        title=row.title,
        content=row.content or "",
        video_url=row.video_url,
        lesson_type=row.lesson_type,
        exercises=parse_exercises(row.exercises),
        summary=row.summary,
        duration=row.duration,
    )


class CourseCatalog:
    """Course, lesson, quiz, assignment and roster lookups."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def get_course(self, course_id: int) -> CourseInfo:
        with translate_store_errors("course lookup"):
            async with self._session_maker() as session:
                course = await session.get(Course, course_id)
        if course is None:
            raise ResourceNotFoundError("Course", course_id)
        return CourseInfo(
            id=course.id,
            title=course.title,
            teacher_name=course.teacher_name,
            teacher_email=course.teacher_email,
        )

    async def get_lesson(self, course_id: int, lesson_id: int) -> Lesson:
        """Load and classify a lesson of a course."""
        with translate_store_errors("lesson lookup"):
            async with self._session_maker() as session:
                result = await session.execute(
                    select(LessonModel).where(LessonModel.id == lesson_id, LessonModel.course_id == course_id)
                )
                row = result.scalar_one_or_none()
        if row is None:
            raise ResourceNotFoundError("Lesson", lesson_id)
        return classify_lesson(to_lesson_record(row))

    async def get_course_items(self, course_id: int) -> CourseItems:
        with translate_store_errors("course item lookup"):
            async with self._session_maker() as session:
                lesson_ids = await session.scalars(select(LessonModel.id).where(LessonModel.course_id == course_id))
                quiz_ids = await session.scalars(select(Quiz.id).where(Quiz.course_id == course_id))
                assignment_ids = await session.scalars(
                    select(Assignment.id).where(Assignment.course_id == course_id)
                )
                return CourseItems(
                    lesson_ids=frozenset(lesson_ids.all()),
                    quiz_ids=frozenset(quiz_ids.all()),
                    assignment_ids=frozenset(assignment_ids.all()),
                )

    async def enrolled_students(self, course_id: int) -> list[EnrolledStudent]:
        """Approved roster of a course."""
        with translate_store_errors("roster lookup"):
            async with self._session_maker() as session:
                result = await session.execute(
                    select(Enrollment)
                    .where(Enrollment.course_id == course_id, Enrollment.status == APPROVED)
                    .order_by(Enrollment.id)
                )
                rows = result.scalars().all()

        students: dict[str, EnrolledStudent] = {}
        for row in rows:
            email = (row.student_email or "").strip() or None
            students.setdefault(row.student_id, EnrolledStudent(row.student_id, row.student_name, email))
        return list(students.values())

    async def enrolled_course_ids(self, student_id: str) -> list[int]:
        with translate_store_errors("enrollment lookup"):
            async with self._session_maker() as session:
                result = await session.scalars(
                    select(Enrollment.course_id)
                    .where(Enrollment.student_id == student_id, Enrollment.status == APPROVED)
                    .distinct()
                    .order_by(Enrollment.course_id)
                )
                return list(result.all())
