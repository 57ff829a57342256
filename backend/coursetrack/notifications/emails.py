"""Email delivery for new-content notifications."""

from __future__ import annotations

import hashlib
import html
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx

from coursetrack.config.settings import get_settings
from coursetrack.notifications.schemas import NewContentEvent, NotificationType


_BRAND_NAME = "Course Notifications"
_RESEND_SEND_EMAILS_URL = "https://api.resend.com/emails"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Template:
    emoji: str
    noun: str
    color: str
    path: str
    button: str
    call_to_action: str


_TEMPLATES: dict[NotificationType, _Template] = {
    NotificationType.NEW_LESSON: _Template(
        emoji="📚",
        noun="Lesson",
        color="#16a34a",
        path="/workspace/my-courses",
        button="View Lesson",
        call_to_action="Log in to your dashboard to access the new lesson and continue your learning journey.",
    ),
    NotificationType.NEW_QUIZ: _Template(
        emoji="📝",
        noun="Quiz",
        color="#2563eb",
        path="/workspace/quizzes-assessment",
        button="Take Quiz Now",
        call_to_action="Log in to your dashboard to take the quiz and test your knowledge.",
    ),
    NotificationType.NEW_ASSIGNMENT: _Template(
        emoji="📋",
        noun="Assignment",
        color="#7c3aed",
        path="/workspace/my-courses",
        button="View Assignment",
        call_to_action="Log in to your dashboard to view the assignment details and submit your work.",
    ),
}


def email_subject(event: NewContentEvent) -> str:
    template = _TEMPLATES[event.type]
    return f"{template.emoji} New {template.noun}: {event.item_title} - {event.course_title}"


def _render_email_layout(*, preheader: str, title: str, body_html: str, color: str) -> str:
    year = datetime.now(UTC).year
    return f"""\
<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>{html.escape(title)}</title>
  </head>
  <body style="margin:0; padding:0; background-color:#f6f8fb; font-family:Arial, sans-serif;">
    <span style="display:none; visibility:hidden; opacity:0; height:0; width:0; overflow:hidden;">
      {html.escape(preheader)}
    </span>
    <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="border-collapse:collapse; width:100%;">
      <tr>
        <td align="center" style="padding:24px 16px;">
          <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="border-collapse:collapse; max-width:600px; background-color:#ffffff; border:1px solid #e5e7eb; border-radius:12px;">
            <tr>
              <td style="padding:24px; background-color:{color}; color:#ffffff; border-radius:12px 12px 0 0;">
                <h1 style="margin:0; font-size:22px; line-height:1.3;">{html.escape(title)}</h1>
              </td>
            </tr>
            <tr>
              <td style="padding:24px;">
                {body_html}
              </td>
            </tr>
            <tr>
              <td style="padding:16px 24px; background-color:#f8fafc; border-top:1px solid #e5e7eb; font-size:12px; color:#64748b;">
                This is an automated notification. © {year} {_BRAND_NAME}
              </td>
            </tr>
          </table>
        </td>
      </tr>
    </table>
  </body>
</html>
"""


def _render_button(*, url: str, text: str, color: str) -> str:
    return f"""\
<table role="presentation" cellspacing="0" cellpadding="0" style="border-collapse:collapse; margin:18px 0 14px 0;">
  <tr>
    <td align="center" style="border-radius:8px;" bgcolor="{color}">
      <a href="{html.escape(url, quote=True)}" style="display:inline-block; padding:12px 24px; font-size:14px; font-weight:700; color:#ffffff; text-decoration:none;">
        {html.escape(text)}
      </a>
    </td>
  </tr>
</table>
"""


def render_notification_email(event: NewContentEvent) -> str:
    """Render the HTML body for one new-content event."""
    settings = get_settings()
    template = _TEMPLATES[event.type]
    teacher = html.escape(event.teacher_name or "Teacher")
    course = html.escape(event.course_title)

    deadline_html = ""
    if event.deadline is not None:
        deadline_text = event.deadline.strftime("%A, %B %d, %Y at %H:%M")
        deadline_html = f"""\
<div style="margin:16px 0; padding:12px 16px; background-color:#fef3c7; border-left:4px solid #f59e0b; border-radius:6px;">
  <strong>⏰ Deadline:</strong> {html.escape(deadline_text)}
</div>
"""

    body = f"""\
<p style="margin:0; font-size:14px; line-height:1.6; color:#475569;">
  Your teacher <strong>{teacher}</strong> has added a new {template.noun.lower()} to the course <strong>{course}</strong>.
</p>
<div style="margin:16px 0; padding:12px 16px; background-color:#f1f5f9; border-radius:6px;">
  <h2 style="margin:0 0 8px 0; font-size:18px; color:#0f172a;">{html.escape(event.item_title)}</h2>
  <div style="font-size:13px; color:#475569;"><strong>Course:</strong> {course}</div>
  <div style="font-size:13px; color:#475569;"><strong>Teacher:</strong> {teacher}</div>
</div>
{deadline_html}
<p style="margin:0; font-size:14px; line-height:1.6; color:#475569;">{html.escape(template.call_to_action)}</p>
{_render_button(url=f"{settings.FRONTEND_URL.rstrip('/')}{template.path}", text=template.button, color=template.color)}
<p style="margin:0; font-size:12px; color:#94a3b8;">You received this email because you are enrolled in {course}.</p>
"""
    return _render_email_layout(
        preheader=event.message,
        title=f"{template.emoji} New {template.noun} Available!",
        body_html=body,
        color=template.color,
    )


def _build_idempotency_key(*, event: NewContentEvent, email: str) -> str:
    material = f"{event.course_id}:{event.type.value}:{event.item_title}:{email}"
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()[:24]
    return f"content-notification/{digest}"


def email_configured() -> bool:
    settings = get_settings()
    return bool(settings.RESEND_API_KEY.get_secret_value() and settings.EMAILS_FROM_EMAIL)


async def send_email(
    *,
    email_to: str,
    subject: str,
    html_content: str,
    idempotency_key: str | None = None,
) -> bool:
    """Send an email through the Resend API.

    Returns ``False`` without sending when email is not configured; raises
    on delivery errors.
    """
    settings = get_settings()
    resend_api_key = settings.RESEND_API_KEY.get_secret_value()
    if not resend_api_key or not settings.EMAILS_FROM_EMAIL:
        return False

    from_email = settings.EMAILS_FROM_EMAIL
    if settings.EMAILS_FROM_NAME:
        from_email = f"{settings.EMAILS_FROM_NAME} <{settings.EMAILS_FROM_EMAIL}>"

    headers: dict[str, str] = {
        "Authorization": f"Bearer {resend_api_key}",
        "Content-Type": "application/json",
    }
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key

    payload = {
        "from": from_email,
        "to": [email_to],
        "subject": subject,
        "html": html_content,
    }

    async with httpx.AsyncClient(timeout=settings.NOTIFICATION_EMAIL_TIMEOUT_SECONDS) as client:
        response = await client.post(_RESEND_SEND_EMAILS_URL, headers=headers, json=payload)
        response.raise_for_status()

    logger.info(f"Sent notification email to {email_to}: {subject}")
    return True


async def send_notification_email(event: NewContentEvent, email_to: str) -> bool:
    """Send the new-content email for one student."""
    return await send_email(
        email_to=email_to,
        subject=email_subject(event),
        html_content=render_notification_email(event),
        idempotency_key=_build_idempotency_key(event=event, email=email_to),
    )
