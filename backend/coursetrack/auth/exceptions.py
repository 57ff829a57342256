"""Authentication-specific exceptions."""

from fastapi import HTTPException, status


class AuthenticationError(HTTPException):
    """Base authentication error."""

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class MissingStudentError(AuthenticationError):
    """No student identity was supplied with the request."""

    def __init__(self) -> None:
        super().__init__(detail="Missing X-Student-Id header")
