"""SQLAlchemy implementation of the progress store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any
from weakref import WeakValueDictionary

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.database.errors import translate_store_errors
from coursetrack.progress.models import AssignmentSubmission, LessonProgress, LessonProgressItem, QuizCompletion
from coursetrack.progress.protocols import Deriver
from coursetrack.progress.state import LessonProgressState, ProgressDelta


logger = logging.getLogger(__name__)

# In-process serialization of merges per (student, course, lesson). The row
# lock below does the same across processes on PostgreSQL.
_merge_locks: WeakValueDictionary[tuple[str, int, int], asyncio.Lock] = WeakValueDictionary()


def _merge_lock(key: tuple[str, int, int]) -> asyncio.Lock:
    lock = _merge_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _merge_locks[key] = lock
    return lock


def _insert_for(session: AsyncSession) -> Any:
    """Dialect-specific INSERT that supports ON CONFLICT DO NOTHING."""
    if session.bind is not None and session.bind.dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


def _to_state(row: LessonProgress, items: Sequence[tuple[str, bool | None]]) -> LessonProgressState:
    return LessonProgressState(
        student_id=row.student_id,
        course_id=row.course_id,
        lesson_id=row.lesson_id,
        video_watched=row.video_watched,
        watched_fraction=row.watched_fraction,
        completed_keys=frozenset(key for key, _ in items),
        correct_keys=frozenset(key for key, is_correct in items if is_correct),
        completion_percentage=row.completion_percentage,
        completed=row.completed,
        started=True,
        updated_at=row.updated_at,
    )


class SqlProgressStore:
    """Progress store backed by the ``lesson_progress`` tables.

    Each public method runs in its own session. Writes never replace the
    completed set: keys are inserted one row each and duplicates are
    ignored, so concurrent submissions of different keys all survive and a
    replayed submission changes nothing.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def get_lesson_progress(self, student_id: str, course_id: int, lesson_id: int) -> LessonProgressState:
        with translate_store_errors("progress read"):
            async with self._session_maker() as session:
                row = await self._find_row(session, student_id, course_id, lesson_id)
                if row is None:
                    return LessonProgressState.not_started(student_id, course_id, lesson_id)
                items = await self._load_items(session, [row.id])
                return _to_state(row, items.get(row.id, []))

    async def merge_lesson_progress(
        self,
        student_id: str,
        course_id: int,
        lesson_id: int,
        delta: ProgressDelta,
        derive: Deriver,
    ) -> LessonProgressState:
        async with _merge_lock((student_id, course_id, lesson_id)):
            with translate_store_errors("progress update"):
                async with self._session_maker() as session, session.begin():
                    row = await self._lock_row(session, student_id, course_id, lesson_id)
                    now = datetime.now(UTC)

                    if delta.completed_keys:
                        await self._insert_items(session, row.id, delta, now)
                    if delta.video_watched:
                        row.video_watched = True
                    if delta.watched_fraction is not None:
                        fraction = min(1.0, max(0.0, delta.watched_fraction))
                        if fraction > row.watched_fraction:
                            row.watched_fraction = fraction
                    if delta.mark_completed:
                        row.completed = True

                    items = (await self._load_items(session, [row.id])).get(row.id, [])
                    derived = derive(_to_state(row, items))

                    if derived.completion_percentage > row.completion_percentage:
                        row.completion_percentage = derived.completion_percentage
                    if derived.completed or row.completed:
                        if row.completed_at is None:
                            row.completed_at = now
                        row.completed = True
                        row.completion_percentage = 100
                    row.updated_at = now

                    await session.flush()
                    logger.debug(
                        f"Merged progress for student {student_id} lesson {lesson_id}: "
                        f"{row.completion_percentage}% completed={row.completed}"
                    )
                    return _to_state(row, items)

    async def list_course_lesson_progress(self, student_id: str, course_id: int) -> list[LessonProgressState]:
        with translate_store_errors("course progress read"):
            async with self._session_maker() as session:
                result = await session.execute(
                    select(LessonProgress)
                    .where(LessonProgress.student_id == student_id, LessonProgress.course_id == course_id)
                    .order_by(LessonProgress.lesson_id)
                )
                rows = result.scalars().all()
                items = await self._load_items(session, [row.id for row in rows])
                return [_to_state(row, items.get(row.id, [])) for row in rows]

    async def completed_quiz_ids(self, student_id: str, course_id: int) -> set[int]:
        with translate_store_errors("quiz completion read"):
            async with self._session_maker() as session:
                result = await session.scalars(
                    select(QuizCompletion.quiz_id).where(
                        QuizCompletion.student_id == student_id,
                        QuizCompletion.course_id == course_id,
                    )
                )
                return set(result.all())

    async def submitted_assignment_ids(self, student_id: str, course_id: int) -> set[int]:
        with translate_store_errors("assignment submission read"):
            async with self._session_maker() as session:
                result = await session.scalars(
                    select(AssignmentSubmission.assignment_id).where(
                        AssignmentSubmission.student_id == student_id,
                        AssignmentSubmission.course_id == course_id,
                    )
                )
                return set(result.all())

    # === Internals ===

    @staticmethod
    async def _find_row(
        session: AsyncSession, student_id: str, course_id: int, lesson_id: int
    ) -> LessonProgress | None:
        result = await session.execute(
            select(LessonProgress).where(
                LessonProgress.student_id == student_id,
                LessonProgress.course_id == course_id,
                LessonProgress.lesson_id == lesson_id,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _lock_row(session: AsyncSession, student_id: str, course_id: int, lesson_id: int) -> LessonProgress:
        """Create the row if missing, then select it FOR UPDATE."""
        now = datetime.now(UTC)
        insert = _insert_for(session)
        await session.execute(
            insert(LessonProgress)
            .values(
                student_id=student_id,
                course_id=course_id,
                lesson_id=lesson_id,
                video_watched=False,
                watched_fraction=0.0,
                completion_percentage=0,
                completed=False,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["student_id", "course_id", "lesson_id"])
        )
        result = await session.execute(
            select(LessonProgress)
            .where(
                LessonProgress.student_id == student_id,
                LessonProgress.course_id == course_id,
                LessonProgress.lesson_id == lesson_id,
            )
            .with_for_update()
        )
        return result.scalar_one()

    @staticmethod
    async def _insert_items(session: AsyncSession, progress_id: int, delta: ProgressDelta, now: datetime) -> None:
        insert = _insert_for(session)
        await session.execute(
            insert(LessonProgressItem)
            .values(
                [
                    {"progress_id": progress_id, "item_key": key, "is_correct": is_correct, "created_at": now}
                    for key, is_correct in delta.completed_keys.items()
                ]
            )
            .on_conflict_do_nothing(index_elements=["progress_id", "item_key"])
        )

    @staticmethod
    async def _load_items(
        session: AsyncSession, progress_ids: Sequence[int]
    ) -> dict[int, list[tuple[str, bool | None]]]:
        if not progress_ids:
            return {}
        result = await session.execute(
            select(LessonProgressItem.progress_id, LessonProgressItem.item_key, LessonProgressItem.is_correct)
            .where(LessonProgressItem.progress_id.in_(progress_ids))
            .order_by(LessonProgressItem.id)
        )
        items: dict[int, list[tuple[str, bool | None]]] = {}
        for progress_id, item_key, is_correct in result:
            items.setdefault(progress_id, []).append((item_key, is_correct))
        return items
