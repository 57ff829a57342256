"""Centralized progress calculation.

Pure functions turning raw progress into percentages at lesson, course and
student scope. Everything is accumulated as floats and rounded (half-up)
exactly once, at the output boundary, so repeated recomputation never
compounds rounding error.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

from coursetrack.lessons.classifier import ClassifiedLesson, LessonVariant
from coursetrack.progress.state import LessonProgressState


def round_half_up(value: float) -> int:
    """Round like ``Math.round``: halves go up, not to even."""
    return int(math.floor(value + 0.5))


def to_percentage(score: float) -> int:
    """Round a 0-100 float score into the integer percentage range.

    Only a complete score reports 100; 99.5 and up stays at 99.
    """
    rounded = min(100, max(0, round_half_up(score)))
    if rounded == 100 and score < 100.0:
        return 99
    return rounded


# === Lesson scope ===


def exercise_score(progress: LessonProgressState, lesson: ClassifiedLesson) -> float:
    """Share of the lesson's exercise questions answered, 0-100 (unrounded)."""
    keys = lesson.question_keys
    if not keys:
        return 0.0
    answered = len(progress.completed_keys & keys)
    return 100.0 * answered / len(keys)


def video_score(progress: LessonProgressState) -> float:
    """Watched fraction as a 0-100 score, capped at 100."""
    return min(100.0, max(0.0, progress.watched_fraction * 100.0))


def lesson_score(progress: LessonProgressState, lesson: ClassifiedLesson) -> float:
    """Unrounded lesson completion score.

    - practice / text with exercises: answered questions over all questions;
    - video without exercises: all or nothing on ``video_watched``;
    - video with exercises: mean of the video and exercise scores, or 100 when
      both parts are complete;
    - text without exercises: only an explicit completion counts.
    """
    if progress.completed:
        return 100.0

    if lesson.variant is LessonVariant.VIDEO:
        if not lesson.has_exercises:
            return 100.0 if progress.video_watched else 0.0
        if progress.video_watched and lesson.all_exercises_done(progress.completed_keys):
            return 100.0
        return (video_score(progress) + exercise_score(progress, lesson)) / 2

    return exercise_score(progress, lesson)


def lesson_percentage(progress: LessonProgressState, lesson: ClassifiedLesson) -> int:
    """Integer lesson completion percentage."""
    return to_percentage(lesson_score(progress, lesson))


# === Course scope ===


@dataclass(frozen=True)
class Tally:
    """Completed-out-of-total counter for one course dimension."""

    completed: int
    total: int

    @property
    def score(self) -> float | None:
        """0-100 score, or ``None`` when the dimension is empty."""
        if self.total <= 0:
            return None
        return 100.0 * min(self.completed, self.total) / self.total

    @property
    def percentage(self) -> int:
        score = self.score
        return 0 if score is None else to_percentage(score)


@dataclass(frozen=True)
class CourseWeights:
    """Relative weights of the lesson, quiz and assignment dimensions."""

    lessons: float = 1.0
    quizzes: float = 1.0
    assignments: float = 1.0

    def __post_init__(self) -> None:
        if min(self.lessons, self.quizzes, self.assignments) < 0:
            msg = "Course weights must not be negative"
            raise ValueError(msg)


EQUAL_WEIGHTS = CourseWeights()


def course_score(
    lessons: Tally,
    quizzes: Tally,
    assignments: Tally,
    weights: CourseWeights = EQUAL_WEIGHTS,
) -> float:
    """Weighted mean of the non-empty dimensions (unrounded).

    An empty dimension (total of zero) is left out of the mean instead of
    counting as zero.
    """
    weighted_sum = 0.0
    weight_total = 0.0
    included: list[float] = []
    for tally, weight in (
        (lessons, weights.lessons),
        (quizzes, weights.quizzes),
        (assignments, weights.assignments),
    ):
        score = tally.score
        if score is None or weight == 0:
            continue
        weighted_sum += score * weight
        weight_total += weight
        included.append(score)

    if weight_total == 0:
        return 0.0
    if all(score == 100.0 for score in included):
        return 100.0
    return weighted_sum / weight_total


def course_percentage(
    lessons: Tally,
    quizzes: Tally,
    assignments: Tally,
    weights: CourseWeights = EQUAL_WEIGHTS,
) -> int:
    return to_percentage(course_score(lessons, quizzes, assignments, weights))


# === Student scope ===


def student_overall(course_scores: Iterable[float]) -> int:
    """Mean of unrounded course scores over all enrolled courses; 0 with no courses."""
    scores = list(course_scores)
    if not scores:
        return 0
    return to_percentage(math.fsum(scores) / len(scores))
