"""Notification API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select

from coursetrack.auth import CurrentStudent
from coursetrack.config.settings import Settings, get_settings
from coursetrack.database import DbSession, SessionMaker
from coursetrack.exceptions import ResourceNotFoundError
from coursetrack.progress.dependencies import Catalog

from .dispatcher import InboxEmailSender, NotificationDispatcher
from .models import StudentNotification
from .schemas import ContentEventRequest, ContentEventResponse, NewContentEvent, StudentNotificationResponse


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["notifications"])

INBOX_LIMIT = 50


def get_notification_dispatcher(
    session_maker: SessionMaker,
    catalog: Catalog,
    settings: Annotated[Settings, Depends(get_settings)],
) -> NotificationDispatcher:
    return NotificationDispatcher(
        roster=catalog,
        sender=InboxEmailSender(session_maker, email_timeout_seconds=settings.NOTIFICATION_EMAIL_TIMEOUT_SECONDS),
        max_concurrency=settings.NOTIFICATION_MAX_CONCURRENCY,
        timeout_seconds=settings.NOTIFICATION_TIMEOUT_SECONDS,
    )


Dispatcher = Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)]


@router.post("/courses/{course_id}/content-events")
async def publish_content_event(
    course_id: int,
    payload: ContentEventRequest,
    catalog: Catalog,
    dispatcher: Dispatcher,
) -> ContentEventResponse:
    """Notify every approved student of a course about new content.

    Always reports success for the content itself; per-student delivery
    failures are listed in ``notifications``.
    """
    course = await catalog.get_course(course_id)
    event = NewContentEvent(
        course_id=course.id,
        course_title=payload.course_title or course.title,
        teacher_name=payload.teacher_name or course.teacher_name,
        teacher_email=payload.teacher_email or course.teacher_email,
        type=payload.type,
        item_title=payload.item_title,
        deadline=payload.deadline,
    )
    summary = await dispatcher.dispatch(event)
    return ContentEventResponse(success=True, notifications=summary)


@router.get("/student-notifications")
async def list_notifications(
    student_id: CurrentStudent,
    db: DbSession,
    unread_only: Annotated[bool, Query()] = False,
) -> list[StudentNotificationResponse]:
    """Latest notifications of the current student, newest first."""
    query = select(StudentNotification).where(StudentNotification.student_id == student_id)
    if unread_only:
        query = query.where(StudentNotification.is_read.is_(False))
    result = await db.execute(
        query.order_by(StudentNotification.created_at.desc(), StudentNotification.id.desc()).limit(INBOX_LIMIT)
    )
    return [StudentNotificationResponse.model_validate(row) for row in result.scalars().all()]


@router.patch("/student-notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: int,
    student_id: CurrentStudent,
    db: DbSession,
) -> StudentNotificationResponse:
    """Mark one of the current student's notifications as read."""
    result = await db.execute(
        select(StudentNotification).where(
            StudentNotification.id == notification_id,
            StudentNotification.student_id == student_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise ResourceNotFoundError("Notification", notification_id)

    if not notification.is_read:
        notification.is_read = True
        await db.commit()
        await db.refresh(notification)
        logger.info(f"Student {student_id} read notification {notification_id}")
    return StudentNotificationResponse.model_validate(notification)
