"""Schemas for new-content notifications."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    NEW_LESSON = "new_lesson"
    NEW_QUIZ = "new_quiz"
    NEW_ASSIGNMENT = "new_assignment"

    @property
    def label(self) -> str:
        return self.value.removeprefix("new_")


class NewContentEvent(BaseModel):
    """Typed "new content published" event sent by the course-authoring layer."""

    model_config = ConfigDict(frozen=True)

    course_id: int
    course_title: str
    teacher_name: str | None = None
    teacher_email: str | None = None
    type: NotificationType
    item_title: str = Field(..., min_length=1)
    deadline: datetime | None = None

    @property
    def message(self) -> str:
        """Inbox text, e.g. ``New quiz available: Loops - Due 2026-03-01``."""
        text = f"New {self.type.label} available: {self.item_title}"
        if self.deadline is not None and self.type is not NotificationType.NEW_LESSON:
            text += f" - Due {self.deadline.date().isoformat()}"
        return text


class Recipient(BaseModel):
    """One enrolled student to notify."""

    model_config = ConfigDict(frozen=True)

    student_id: str
    name: str = ""
    email: str | None = None


class Delivery(BaseModel):
    """What a sender managed to deliver to one student."""

    email_sent: bool = False
    email_error: str | None = None


class NotificationOutcome(BaseModel):
    """Per-student result of a fan-out."""

    student_id: str
    success: bool
    reason: str | None = None
    email_sent: bool = False


class DispatchSummary(BaseModel):
    """Aggregate result of one fan-out."""

    total: int
    succeeded: int
    failed: int
    outcomes: list[NotificationOutcome]

    @classmethod
    def from_outcomes(cls, outcomes: list[NotificationOutcome]) -> DispatchSummary:
        succeeded = sum(1 for outcome in outcomes if outcome.success)
        return cls(total=len(outcomes), succeeded=succeeded, failed=len(outcomes) - succeeded, outcomes=outcomes)


class ContentEventRequest(BaseModel):
    """Body of ``POST /courses/{course_id}/content-events``.

    Course title and teacher details default to the stored course.
    """

    type: NotificationType
    item_title: str = Field(..., min_length=1)
    deadline: datetime | None = None
    course_title: str | None = None
    teacher_name: str | None = None
    teacher_email: str | None = None


class ContentEventResponse(BaseModel):
    """The triggering action succeeds even when some students were not reached."""

    success: bool = True
    notifications: DispatchSummary


class StudentNotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: str
    course_id: int | None
    teacher_name: str | None
    message: str
    type: str
    is_read: bool
    created_at: datetime
