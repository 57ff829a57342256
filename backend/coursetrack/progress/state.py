"""Typed progress values shared by the recorder, calculator, gate and store."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ProgressStatus(str, Enum):
    """Per-(student, lesson) state machine states."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class LessonProgressState:
    """Snapshot of one student's progress on one lesson."""

    student_id: str
    course_id: int
    lesson_id: int
    video_watched: bool = False
    watched_fraction: float = 0.0
    completed_keys: frozenset[str] = frozenset()
    correct_keys: frozenset[str] = frozenset()
    completion_percentage: int = 0
    completed: bool = False
    started: bool = False
    updated_at: datetime | None = None

    @property
    def status(self) -> ProgressStatus:
        if self.completed:
            return ProgressStatus.COMPLETED
        if self.started:
            return ProgressStatus.IN_PROGRESS
        return ProgressStatus.NOT_STARTED

    @classmethod
    def not_started(cls, student_id: str, course_id: int, lesson_id: int) -> LessonProgressState:
        return cls(student_id=student_id, course_id=course_id, lesson_id=lesson_id)


@dataclass(frozen=True)
class ProgressDelta:
    """Field-wise merge instructions for one progress mutation.

    Each field merges on its own terms: keys are unioned, flags are OR-ed,
    the watched fraction takes the maximum. Nothing here can move progress
    backwards.
    """

    completed_keys: Mapping[str, bool | None] = field(default_factory=dict)  # key -> is_correct
    video_watched: bool = False
    watched_fraction: float | None = None
    mark_completed: bool = False


@dataclass(frozen=True)
class DerivedProgress:
    """Values recomputed from the merged raw progress."""

    completion_percentage: int
    completed: bool
