class DomainError(Exception):
    """Base exception class for all domain-specific exceptions."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class ResourceNotFoundError(DomainError):
    """Exception raised when a requested resource is not found."""

    def __init__(self, resource_type: str, resource_id: str | int) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type} with ID {resource_id} not found"
        super().__init__(message)


class ValidationError(DomainError):
    """Exception raised when validation fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class InvalidReferenceError(ValidationError):
    """A progress update names an exercise/question that the lesson does not have.

    Raised before any write; the stored progress is left untouched.
    """

    def __init__(self, lesson_id: int, reference: str) -> None:
        self.lesson_id = lesson_id
        self.reference = reference
        super().__init__(f"Lesson {lesson_id} has no exercise question '{reference}'")


class LessonLockedError(DomainError):
    """Completion was requested for a lesson whose completion gate is still closed."""

    def __init__(self, lesson_id: int, reason: str) -> None:
        self.lesson_id = lesson_id
        self.reason = reason
        super().__init__(f"Lesson {lesson_id} cannot be completed yet: {reason}")


class TransientStoreError(DomainError):
    """The persistence layer could not be reached.

    Nothing was committed, so the whole request is safe to retry.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Progress store unavailable during {operation}")
