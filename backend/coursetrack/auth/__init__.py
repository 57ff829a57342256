"""Authentication module exports."""

from coursetrack.auth.dependencies import STUDENT_HEADER, CurrentStudent, get_current_student_id
from coursetrack.auth.exceptions import AuthenticationError, MissingStudentError


__all__ = [
    "STUDENT_HEADER",
    "AuthenticationError",
    "CurrentStudent",
    "MissingStudentError",
    "get_current_student_id",
]
