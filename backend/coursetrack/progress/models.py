"""Database models for progress tracking."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursetrack.database.base import Base


class LessonProgress(Base):
    """Per-(student, lesson) progress.

    Rows are created on first interaction and never deleted. Every column
    only moves forward: flags go false -> true, numbers go up.
    """

    __tablename__ = "lesson_progress"
    __table_args__ = (
        UniqueConstraint("student_id", "course_id", "lesson_id", name="uq_lesson_progress_student_lesson"),
        CheckConstraint(
            "completion_percentage >= 0 AND completion_percentage <= 100",
            name="ck_lesson_progress_percentage",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    # No FK on purpose: rows outlive deleted lessons and are skipped as orphans.
    course_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    lesson_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    video_watched: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    watched_fraction: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    completion_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    items: Mapped[list[LessonProgressItem]] = relationship(
        "LessonProgressItem",
        back_populates="progress",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        """Return string representation of the progress."""
        return (
            f"<LessonProgress(student_id={self.student_id}, lesson_id={self.lesson_id}, "
            f"percentage={self.completion_percentage}, completed={self.completed})>"
        )


class LessonProgressItem(Base):
    """One answered exercise question (member of the completed set)."""

    __tablename__ = "lesson_progress_items"
    __table_args__ = (UniqueConstraint("progress_id", "item_key", name="uq_lesson_progress_item"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    progress_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("lesson_progress.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_key: Mapped[str] = mapped_column(String(255), nullable=False)
    is_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    progress: Mapped[LessonProgress] = relationship("LessonProgress", back_populates="items")


class QuizCompletion(Base):
    """A student's completed quiz (written by the quiz module)."""

    __tablename__ = "quiz_completions"
    __table_args__ = (UniqueConstraint("student_id", "quiz_id", name="uq_quiz_completion"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    course_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    quiz_id: Mapped[int] = mapped_column(Integer, nullable=False)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )


class AssignmentSubmission(Base):
    """A student's assignment submission (written by the assignment module)."""

    __tablename__ = "assignment_submissions"
    __table_args__ = (UniqueConstraint("student_id", "assignment_id", name="uq_assignment_submission"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    course_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    assignment_id: Mapped[int] = mapped_column(Integer, nullable=False)
    submission_file: Mapped[str | None] = mapped_column(String(500), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
