"""Lesson variant classification.

A lesson is classified exactly once per request into a tagged variant:

1. a non-blank ``video_url`` makes it a video lesson, whatever its stored
   ``lesson_type`` or exercises say;
2. otherwise ``lesson_type == "practice"`` makes it a practice lesson, and so
   does at least one exercise with at least one question unless the lesson is
   explicitly tagged ``"text"``;
3. anything else is a text lesson. Text lessons may carry exercises, which
   then gate the prose.

Callers switch on the returned class (or its ``variant``) instead of
re-inspecting the raw record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from functools import cached_property

from coursetrack.lessons.exercises import Exercise, QuestionRef, exercise_done, flatten_questions


logger = logging.getLogger(__name__)


class LessonVariant(str, Enum):
    """How a lesson is presented and tracked."""

    VIDEO = "video"
    PRACTICE = "practice"
    TEXT = "text"


ROUTE_SEGMENTS: dict[LessonVariant, str] = {
    LessonVariant.VIDEO: "lesson",
    LessonVariant.PRACTICE: "practice-lesson",
    LessonVariant.TEXT: "text-lesson",
}


@dataclass(frozen=True)
class LessonRecord:
    """Read-only snapshot of a stored lesson."""

    id: int
    course_id: int
    title: str
    content: str = ""
    video_url: str | None = None
    lesson_type: str | None = None
    exercises: tuple[Exercise, ...] = ()
    summary: str | None = None
    duration: int | None = None


@dataclass(frozen=True)
class ClassifiedLesson:
    """Common behaviour of every lesson variant."""

    record: LessonRecord

    variant = LessonVariant.TEXT

    @property
    def id(self) -> int:
        return self.record.id

    @property
    def course_id(self) -> int:
        return self.record.course_id

    @property
    def exercises(self) -> tuple[Exercise, ...]:
        return self.record.exercises

    @cached_property
    def gating_exercises(self) -> tuple[Exercise, ...]:
        """Exercises that have questions; question-less ones are plain reading."""
        return tuple(exercise for exercise in self.exercises if exercise.has_questions)

    @property
    def has_exercises(self) -> bool:
        return bool(self.gating_exercises)

    @cached_property
    def questions(self) -> tuple[QuestionRef, ...]:
        return tuple(flatten_questions(self.exercises))

    @cached_property
    def question_keys(self) -> frozenset[str]:
        return frozenset(ref.key for ref in self.questions)

    def find_question(self, key: str) -> QuestionRef | None:
        for ref in self.questions:
            if ref.key == key:
                return ref
        return None

    def remaining_exercises(self, completed_keys: frozenset[str]) -> list[str]:
        return [exercise.id for exercise in self.gating_exercises if not exercise_done(exercise, completed_keys)]

    def all_exercises_done(self, completed_keys: frozenset[str]) -> bool:
        return not self.remaining_exercises(completed_keys)


@dataclass(frozen=True)
class VideoLesson(ClassifiedLesson):
    """Lesson played through the video player; exercises (if any) follow the video."""

    variant = LessonVariant.VIDEO

    @property
    def video_url(self) -> str:
        return (self.record.video_url or "").strip()


@dataclass(frozen=True)
class PracticeLesson(ClassifiedLesson):
    """Lesson made of one flattened, one-question-at-a-time sequence."""

    variant = LessonVariant.PRACTICE


@dataclass(frozen=True)
class TextLesson(ClassifiedLesson):
    """Prose lesson; exercises with questions gate the prose."""

    variant = LessonVariant.TEXT


Lesson = VideoLesson | PracticeLesson | TextLesson


def classify_variant(record: LessonRecord) -> LessonVariant:
    """Decide the variant of a lesson record."""
    if record.video_url and record.video_url.strip():
        return LessonVariant.VIDEO
    lesson_type = (record.lesson_type or "").strip().lower()
    if lesson_type == LessonVariant.PRACTICE.value:
        return LessonVariant.PRACTICE
    # Untagged lessons with questions are practice; an explicit "text" tag keeps them text
    if lesson_type != LessonVariant.TEXT.value and any(exercise.has_questions for exercise in record.exercises):
        return LessonVariant.PRACTICE
    return LessonVariant.TEXT


_VARIANT_CLASSES: dict[LessonVariant, type[ClassifiedLesson]] = {
    LessonVariant.VIDEO: VideoLesson,
    LessonVariant.PRACTICE: PracticeLesson,
    LessonVariant.TEXT: TextLesson,
}


def classify_lesson(record: LessonRecord) -> Lesson:
    """Wrap a lesson record in its variant class."""
    variant = classify_variant(record)
    if record.lesson_type and record.lesson_type != variant.value:
        logger.debug(f"Lesson {record.id} stored as {record.lesson_type!r} classified as {variant.value}")
    return _VARIANT_CLASSES[variant](record)  # type: ignore[return-value]


@dataclass(frozen=True)
class RouteDecision:
    """Where a lesson must be rendered, and whether the caller asked for the wrong place."""

    variant: LessonVariant
    route: str
    redirect: bool


def lesson_route(lesson: ClassifiedLesson) -> str:
    """Canonical client route for a lesson."""
    return f"/workspace/my-courses/{lesson.course_id}/{ROUTE_SEGMENTS[lesson.variant]}/{lesson.id}"


def resolve_route(lesson: ClassifiedLesson, requested: LessonVariant) -> RouteDecision:
    """Send a request for the wrong variant's route to the right one."""
    redirect = requested is not lesson.variant
    if redirect:
        logger.info(
            f"Redirecting lesson {lesson.id} from {requested.value} view to {lesson.variant.value} view"
        )
    return RouteDecision(variant=lesson.variant, route=lesson_route(lesson), redirect=redirect)
