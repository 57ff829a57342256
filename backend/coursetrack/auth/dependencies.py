"""Resolve the current student for a request.

Identity is owned by the surrounding application: an upstream gateway
authenticates the user and forwards the student id in ``X-Student-Id``.
"""

import logging
from typing import Annotated

from fastapi import Depends, Header

from coursetrack.auth.exceptions import MissingStudentError
from coursetrack.config.settings import Settings, get_settings


logger = logging.getLogger(__name__)

STUDENT_HEADER = "X-Student-Id"


async def get_current_student_id(
    settings: Annotated[Settings, Depends(get_settings)],
    x_student_id: Annotated[str | None, Header(alias=STUDENT_HEADER)] = None,
) -> str:
    """Return the student id forwarded by the gateway.

    In single-user mode (``AUTH_DISABLED``) a missing header falls back to
    ``DEFAULT_STUDENT_ID``.
    """
    if x_student_id and x_student_id.strip():
        return x_student_id.strip()
    if settings.AUTH_DISABLED:
        return settings.DEFAULT_STUDENT_ID
    logger.debug(f"Rejecting request without {STUDENT_HEADER} header")
    raise MissingStudentError


CurrentStudent = Annotated[str, Depends(get_current_student_id)]
