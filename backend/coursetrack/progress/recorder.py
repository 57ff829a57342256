"""Progress recorder.

Owns the ``NotStarted -> InProgress -> Completed`` state machine of one
student on one lesson. Every mutation is validated against the classified
lesson first and then merged through the store in a single transaction;
percentages and the completed flag are re-derived from the merged raw
progress inside that same transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from coursetrack.courses.catalog import CourseCatalog
from coursetrack.exceptions import InvalidReferenceError, LessonLockedError, ValidationError
from coursetrack.lessons.classifier import ClassifiedLesson, Lesson, LessonVariant
from coursetrack.progress.calculator import lesson_percentage
from coursetrack.progress.gate import GateDecision, all_exercises_done, completion_unlocked, evaluate_gate
from coursetrack.progress.protocols import Deriver, ProgressStore
from coursetrack.progress.state import DerivedProgress, LessonProgressState, ProgressDelta


logger = logging.getLogger(__name__)

DEFAULT_WATCHED_THRESHOLD = 0.80


@dataclass(frozen=True)
class RecordedProgress:
    """Result of a recorder call: the lesson, its progress and the fresh gate."""

    lesson: Lesson
    state: LessonProgressState
    gate: GateDecision
    is_correct: bool | None = None


def auto_completes(progress: LessonProgressState, lesson: ClassifiedLesson) -> bool:
    """Whether the merged progress completes the lesson without an explicit signal.

    Practice lessons without questions and text lessons without exercises
    never complete on their own.
    """
    if lesson.variant is LessonVariant.VIDEO:
        return completion_unlocked(progress, lesson)
    return lesson.has_exercises and all_exercises_done(progress, lesson)


def explicit_completion_allowed(progress: LessonProgressState, lesson: ClassifiedLesson) -> bool:
    """Whether an explicit "mark complete" may be honoured."""
    if lesson.variant is not LessonVariant.VIDEO and not lesson.has_exercises:
        return True
    return completion_unlocked(progress, lesson)


def _deriver(lesson: ClassifiedLesson) -> Deriver:
    def derive(progress: LessonProgressState) -> DerivedProgress:
        completed = progress.completed or auto_completes(progress, lesson)
        percentage = 100 if completed else lesson_percentage(progress, lesson)
        return DerivedProgress(completion_percentage=percentage, completed=completed)

    return derive


class ProgressRecorder:
    """Record student progress on lessons."""

    def __init__(
        self,
        store: ProgressStore,
        catalog: CourseCatalog,
        watched_threshold: float = DEFAULT_WATCHED_THRESHOLD,
    ) -> None:
        if not 0.0 < watched_threshold <= 1.0:
            msg = f"Watched threshold must be in (0, 1], got {watched_threshold}"
            raise ValueError(msg)
        self._store = store
        self._catalog = catalog
        self._threshold = watched_threshold

    async def get_progress(self, student_id: str, course_id: int, lesson_id: int) -> RecordedProgress:
        lesson = await self._catalog.get_lesson(course_id, lesson_id)
        state = await self._store.get_lesson_progress(student_id, course_id, lesson_id)
        return RecordedProgress(lesson=lesson, state=state, gate=evaluate_gate(state, lesson))

    async def start_lesson(self, student_id: str, course_id: int, lesson_id: int) -> RecordedProgress:
        """Move a lesson to InProgress on first interaction; no-op afterwards."""
        lesson = await self._catalog.get_lesson(course_id, lesson_id)
        return await self._merge(student_id, lesson, ProgressDelta())

    async def record_playback(
        self,
        student_id: str,
        course_id: int,
        lesson_id: int,
        current_time: float,
        duration: float,
    ) -> RecordedProgress:
        """Record one playback tick of a video lesson.

        The first tick at or past the watched threshold flips
        ``video_watched``; later ticks never flip it back.
        """
        if duration <= 0:
            msg = "Video duration must be positive"
            raise ValidationError(msg)
        if current_time < 0:
            msg = "Playback position must not be negative"
            raise ValidationError(msg)

        lesson = await self._catalog.get_lesson(course_id, lesson_id)
        self._require_video(lesson)

        fraction = min(1.0, current_time / duration)
        delta = ProgressDelta(watched_fraction=fraction, video_watched=fraction >= self._threshold)
        return await self._merge(student_id, lesson, delta)

    async def mark_video_watched(
        self,
        student_id: str,
        course_id: int,
        lesson_id: int,
        watched: bool = True,
    ) -> RecordedProgress:
        """Explicit watched flag. ``watched=False`` is accepted but never resets the flag."""
        lesson = await self._catalog.get_lesson(course_id, lesson_id)
        self._require_video(lesson)
        delta = ProgressDelta(video_watched=True, watched_fraction=self._threshold) if watched else ProgressDelta()
        return await self._merge(student_id, lesson, delta)

    async def mark_exercise(
        self,
        student_id: str,
        course_id: int,
        lesson_id: int,
        key: str,
        is_correct: bool | None = None,
    ) -> RecordedProgress:
        """Mark a question (``"<exercise>:<question>"``) as answered.

        A bare exercise id marks every question of that exercise; an exercise
        without questions has nothing to mark and leaves progress untouched.
        Unknown references raise ``InvalidReferenceError`` before anything is
        written.
        """
        lesson = await self._catalog.get_lesson(course_id, lesson_id)
        keys = self._resolve_keys(lesson, key)
        if not keys:
            state = await self._store.get_lesson_progress(student_id, course_id, lesson_id)
            return RecordedProgress(lesson=lesson, state=state, gate=evaluate_gate(state, lesson))
        delta = ProgressDelta(completed_keys=dict.fromkeys(keys, is_correct))
        return await self._merge(student_id, lesson, delta)

    async def submit_answer(
        self,
        student_id: str,
        course_id: int,
        lesson_id: int,
        key: str,
        selected_option: int,
    ) -> RecordedProgress:
        """Grade an answer and mark its question answered, right or wrong."""
        lesson = await self._catalog.get_lesson(course_id, lesson_id)
        ref = lesson.find_question(key)
        if ref is None:
            raise InvalidReferenceError(lesson.id, key)

        is_correct = ref.question.is_correct(selected_option)
        recorded = await self._merge(student_id, lesson, ProgressDelta(completed_keys={ref.key: is_correct}))
        return RecordedProgress(lesson=recorded.lesson, state=recorded.state, gate=recorded.gate, is_correct=is_correct)

    async def mark_completed(self, student_id: str, course_id: int, lesson_id: int) -> RecordedProgress:
        """Explicit completion signal.

        Honoured for lessons with no completion trigger of their own, or
        when the completion gate is already open. Repeating it is a no-op.
        """
        lesson = await self._catalog.get_lesson(course_id, lesson_id)
        current = await self._store.get_lesson_progress(student_id, course_id, lesson_id)
        if not current.completed and not explicit_completion_allowed(current, lesson):
            raise LessonLockedError(lesson.id, self._locked_reason(current, lesson))
        return await self._merge(student_id, lesson, ProgressDelta(mark_completed=True), before=current)

    # === Internals ===

    async def _merge(
        self,
        student_id: str,
        lesson: Lesson,
        delta: ProgressDelta,
        before: LessonProgressState | None = None,
    ) -> RecordedProgress:
        if before is None:
            before = await self._store.get_lesson_progress(student_id, lesson.course_id, lesson.id)
        state = await self._store.merge_lesson_progress(
            student_id, lesson.course_id, lesson.id, delta, _deriver(lesson)
        )
        self._log_transitions(before, state)
        return RecordedProgress(lesson=lesson, state=state, gate=evaluate_gate(state, lesson))

    @staticmethod
    def _log_transitions(before: LessonProgressState, after: LessonProgressState) -> None:
        if not before.started and after.started:
            logger.info(f"Student {after.student_id} started lesson {after.lesson_id}")
        if not before.video_watched and after.video_watched:
            logger.info(f"Student {after.student_id} watched video of lesson {after.lesson_id}")
        if not before.completed and after.completed:
            logger.info(f"Student {after.student_id} completed lesson {after.lesson_id} in course {after.course_id}")

    @staticmethod
    def _require_video(lesson: Lesson) -> None:
        if lesson.variant is not LessonVariant.VIDEO:
            msg = f"Lesson {lesson.id} is a {lesson.variant.value} lesson and has no video"
            raise ValidationError(msg)

    @staticmethod
    def _resolve_keys(lesson: Lesson, key: str) -> tuple[str, ...]:
        ref = lesson.find_question(key)
        if ref is not None:
            return (ref.key,)
        for exercise in lesson.exercises:
            if exercise.id == key:
                return exercise.question_keys
        raise InvalidReferenceError(lesson.id, key)

    def _locked_reason(self, progress: LessonProgressState, lesson: Lesson) -> str:
        remaining = lesson.remaining_exercises(progress.completed_keys)
        if lesson.variant is LessonVariant.VIDEO and not progress.video_watched:
            return f"watch at least {round(self._threshold * 100)}% of the video first"
        if remaining:
            return f"exercises not finished: {', '.join(remaining)}"
        return "completion requirements not met"
