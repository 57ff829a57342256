"""New-content notification fan-out.

One event becomes one notification per approved student, delivered
concurrently. A student who cannot be reached fails alone: the caller gets
a per-student outcome and the succeeded/failed counts, never an exception.
There are no retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.courses.catalog import EnrolledStudent
from coursetrack.notifications.emails import email_configured, send_notification_email
from coursetrack.notifications.models import StudentNotification
from coursetrack.notifications.schemas import Delivery, DispatchSummary, NewContentEvent, NotificationOutcome, Recipient


logger = logging.getLogger(__name__)

NO_EMAIL_REASON = "No email address"
TIMEOUT_REASON = "Timed out"
EMAIL_TIMEOUT_REASON = "Email timed out"


class RosterSource(Protocol):
    async def enrolled_students(self, course_id: int) -> list[EnrolledStudent]: ...


class NotificationSender(Protocol):
    """Delivers one notification to one student.

    Raises when the student could not be notified at all. A notification that
    reached the inbox but not the mailbox is a ``Delivery`` with ``email_error`` set.
    """

    async def send(self, event: NewContentEvent, recipient: Recipient) -> Delivery: ...


class InboxEmailSender:
    """Write the in-app notification, then email the student when email is configured.

    The inbox row is committed first. Once it is there the student counts as
    notified: an email that fails or times out is reported on the ``Delivery``
    instead of failing the whole notification.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        email_timeout_seconds: float = 5.0,
    ) -> None:
        self._session_maker = session_maker
        self._email_timeout = email_timeout_seconds

    async def send(self, event: NewContentEvent, recipient: Recipient) -> Delivery:
        async with self._session_maker() as session:
            session.add(
                StudentNotification(
                    student_id=recipient.student_id,
                    course_id=event.course_id,
                    teacher_name=event.teacher_name,
                    message=event.message,
                    type=event.type.value,
                    is_read=False,
                )
            )
            await session.commit()

        if not recipient.email or not email_configured():
            return Delivery(email_sent=False)

        try:
            email_sent = await asyncio.wait_for(
                send_notification_email(event, recipient.email), timeout=self._email_timeout
            )
        except TimeoutError:
            logger.warning(f"Email to student {recipient.student_id} timed out after {self._email_timeout}s")
            return Delivery(email_sent=False, email_error=EMAIL_TIMEOUT_REASON)
        except httpx.HTTPError as e:
            logger.warning(f"Email to student {recipient.student_id} failed: {type(e).__name__}: {e}")
            return Delivery(email_sent=False, email_error=f"Email failed: {e}" if str(e) else "Email failed")
        return Delivery(email_sent=email_sent)


class NotificationDispatcher:
    """Fan a new-content event out to every approved student of the course."""

    def __init__(
        self,
        roster: RosterSource,
        sender: NotificationSender,
        max_concurrency: int = 10,
        timeout_seconds: float = 10.0,
    ) -> None:
        if max_concurrency < 1:
            msg = "max_concurrency must be at least 1"
            raise ValueError(msg)
        self._roster = roster
        self._sender = sender
        self._max_concurrency = max_concurrency
        self._timeout = timeout_seconds

    async def dispatch(self, event: NewContentEvent) -> DispatchSummary:
        students = await self._roster.enrolled_students(event.course_id)
        recipients = [
            Recipient(student_id=student.student_id, name=student.name, email=student.email) for student in students
        ]
        return await self.dispatch_to(event, recipients)

    async def dispatch_to(self, event: NewContentEvent, recipients: list[Recipient]) -> DispatchSummary:
        semaphore = asyncio.Semaphore(self._max_concurrency)
        outcomes = await asyncio.gather(*(self._notify(event, recipient, semaphore) for recipient in recipients))
        summary = DispatchSummary.from_outcomes(list(outcomes))

        logger.info(
            f"Dispatched {event.type.value} '{event.item_title}' for course {event.course_id}: "
            f"{summary.succeeded}/{summary.total} succeeded"
        )
        if summary.failed:
            logger.warning(f"{summary.failed} notification(s) failed for course {event.course_id}")
        return summary

    async def _notify(
        self,
        event: NewContentEvent,
        recipient: Recipient,
        semaphore: asyncio.Semaphore,
    ) -> NotificationOutcome:
        if not recipient.email:
            return NotificationOutcome(student_id=recipient.student_id, success=False, reason=NO_EMAIL_REASON)

        async with semaphore:
            try:
                delivery = await asyncio.wait_for(self._sender.send(event, recipient), timeout=self._timeout)
            except TimeoutError:
                logger.warning(f"Notification to student {recipient.student_id} timed out after {self._timeout}s")
                return NotificationOutcome(student_id=recipient.student_id, success=False, reason=TIMEOUT_REASON)
            except Exception as e:
                logger.warning(f"Notification to student {recipient.student_id} failed: {type(e).__name__}: {e}")
                return NotificationOutcome(
                    student_id=recipient.student_id,
                    success=False,
                    reason=str(e) or type(e).__name__,
                )

        return NotificationOutcome(
            student_id=recipient.student_id,
            success=True,
            reason=delivery.email_error,
            email_sent=delivery.email_sent,
        )
