"""Content gate evaluation.

Gates are recomputed from the current ``LessonProgressState`` on every call
and never cached. Progress only moves forward, so a gate that has opened
stays open.
"""

from __future__ import annotations

from dataclasses import dataclass

from coursetrack.lessons.classifier import ClassifiedLesson, LessonVariant
from coursetrack.progress.state import LessonProgressState


@dataclass(frozen=True)
class GateDecision:
    """Everything a lesson view needs to know about what the student may see."""

    content_unlocked: bool
    video_playable: bool
    completion_unlocked: bool
    remaining_exercise_ids: tuple[str, ...]


def all_exercises_done(progress: LessonProgressState, lesson: ClassifiedLesson) -> bool:
    return lesson.all_exercises_done(progress.completed_keys)


def content_unlocked(progress: LessonProgressState, lesson: ClassifiedLesson) -> bool:
    """Whether the lesson's final content (prose, summary) may be shown.

    Non-practice lessons without exercises are always open; everything else
    opens once all exercises are done.
    """
    if lesson.variant is not LessonVariant.PRACTICE and not lesson.has_exercises:
        return True
    return all_exercises_done(progress, lesson)


def completion_unlocked(progress: LessonProgressState, lesson: ClassifiedLesson) -> bool:
    """Whether the lesson may enter the Completed state.

    Video lessons additionally need the watched threshold. Text lessons
    without exercises have no intrinsic trigger but are never blocked from an
    explicit completion.
    """
    if lesson.variant is LessonVariant.VIDEO:
        return progress.video_watched and all_exercises_done(progress, lesson)
    return all_exercises_done(progress, lesson)


def evaluate_gate(progress: LessonProgressState, lesson: ClassifiedLesson) -> GateDecision:
    return GateDecision(
        content_unlocked=content_unlocked(progress, lesson),
        video_playable=lesson.variant is LessonVariant.VIDEO,
        completion_unlocked=completion_unlocked(progress, lesson),
        remaining_exercise_ids=tuple(lesson.remaining_exercises(progress.completed_keys)),
    )
