"""Progress tracking protocols.

This module defines the narrow read/write contract the progress core needs
from persistence. ``SqlProgressStore`` is the production implementation.
"""

from collections.abc import Callable
from typing import Protocol

from coursetrack.progress.state import DerivedProgress, LessonProgressState, ProgressDelta


Deriver = Callable[[LessonProgressState], DerivedProgress]


class ProgressStore(Protocol):
    """Read/write contract for raw progress."""

    async def get_lesson_progress(self, student_id: str, course_id: int, lesson_id: int) -> LessonProgressState:
        """Current progress, or a not-started snapshot when nothing is stored."""
        ...

    async def merge_lesson_progress(
        self,
        student_id: str,
        course_id: int,
        lesson_id: int,
        delta: ProgressDelta,
        derive: Deriver,
    ) -> LessonProgressState:
        """Atomically merge ``delta`` and store the values ``derive`` computes from the merged state.

        Merges for the same (student, lesson) are serialized. Either the whole
        call is committed or nothing is.
        """
        ...

    async def list_course_lesson_progress(self, student_id: str, course_id: int) -> list[LessonProgressState]:
        """Every stored lesson progress row of a student in a course."""
        ...

    async def completed_quiz_ids(self, student_id: str, course_id: int) -> set[int]:
        ...

    async def submitted_assignment_ids(self, student_id: str, course_id: int) -> set[int]:
        ...
