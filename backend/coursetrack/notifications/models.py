"""In-app notification inbox."""

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from coursetrack.database.base import Base


class StudentNotification(Base):
    """One notification delivered to one student's inbox."""

    __tablename__ = "student_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    student_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    course_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    teacher_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="new_lesson")
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        index=True,
    )

    def __repr__(self) -> str:
        return f"<StudentNotification(id={self.id}, student_id={self.student_id}, type={self.type})>"
