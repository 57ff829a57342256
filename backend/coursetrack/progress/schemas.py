"""Schemas for progress API."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from coursetrack.lessons.classifier import LessonVariant
from coursetrack.progress.aggregator import CourseProgress, CourseSummary, StudentProgress
from coursetrack.progress.recorder import RecordedProgress
from coursetrack.progress.state import ProgressStatus


class UpdateKind(str, Enum):
    """Which one-of group a progress update carries."""

    VIDEO_WATCHED = "video_watched"
    PLAYBACK = "playback"
    EXERCISE = "exercise"
    ANSWER = "answer"


class LessonProgressUpdate(BaseModel):
    """Body of a lesson progress update.

    Exactly one of these shapes is accepted:

    - ``{"video_watched": true}``
    - ``{"current_time": 95.0, "duration": 120.0}``
    - ``{"completed_exercise_id": "ex1:q2", "is_correct": true}`` (``is_correct`` optional)
    - ``{"completed_exercise_id": "ex1:q2", "selected_option": 1}``
    """

    model_config = ConfigDict(extra="forbid")

    video_watched: bool | None = None
    current_time: float | None = Field(default=None, ge=0)
    duration: float | None = Field(default=None, gt=0)
    completed_exercise_id: str | None = Field(default=None, min_length=1)
    is_correct: bool | None = None
    selected_option: int | None = Field(default=None, ge=0)

    @field_validator("completed_exercise_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Any) -> Any:
        """Accept numeric ids from clients that store them as numbers."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @model_validator(mode="after")
    def check_one_of(self) -> LessonProgressUpdate:
        groups = {
            UpdateKind.VIDEO_WATCHED: self.video_watched is not None,
            UpdateKind.PLAYBACK: self.current_time is not None or self.duration is not None,
            UpdateKind.EXERCISE: self.completed_exercise_id is not None,
        }
        present = [kind for kind, given in groups.items() if given]
        if len(present) != 1:
            msg = "Provide exactly one of: video_watched, current_time+duration, completed_exercise_id"
            raise ValueError(msg)
        if present[0] is UpdateKind.PLAYBACK and (self.current_time is None or self.duration is None):
            msg = "current_time and duration must be sent together"
            raise ValueError(msg)
        if (self.is_correct is not None or self.selected_option is not None) and present[0] is not UpdateKind.EXERCISE:
            msg = "is_correct and selected_option only apply to completed_exercise_id"
            raise ValueError(msg)
        if self.is_correct is not None and self.selected_option is not None:
            msg = "Send either is_correct or selected_option, not both"
            raise ValueError(msg)
        return self

    @property
    def kind(self) -> UpdateKind:
        if self.video_watched is not None:
            return UpdateKind.VIDEO_WATCHED
        if self.current_time is not None:
            return UpdateKind.PLAYBACK
        if self.selected_option is not None:
            return UpdateKind.ANSWER
        return UpdateKind.EXERCISE


class LessonProgressResponse(BaseModel):
    """Lesson progress record with a freshly evaluated gate."""

    course_id: int
    lesson_id: int
    variant: LessonVariant
    status: ProgressStatus
    video_watched: bool
    watched_fraction: float
    completed_exercises: list[str]
    completion_percentage: int
    completed: bool
    content_unlocked: bool
    completion_unlocked: bool
    remaining_exercises: list[str]
    is_correct: bool | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_recorded(cls, recorded: RecordedProgress) -> LessonProgressResponse:
        state = recorded.state
        return cls(
            course_id=state.course_id,
            lesson_id=state.lesson_id,
            variant=recorded.lesson.variant,
            status=state.status,
            video_watched=state.video_watched,
            watched_fraction=state.watched_fraction,
            completed_exercises=sorted(state.completed_keys),
            completion_percentage=state.completion_percentage,
            completed=state.completed,
            content_unlocked=recorded.gate.content_unlocked,
            completion_unlocked=recorded.gate.completion_unlocked,
            remaining_exercises=list(recorded.gate.remaining_exercise_ids),
            is_correct=recorded.is_correct,
            updated_at=state.updated_at,
        )


class StudentProgressUpdate(BaseModel):
    """Explicit lesson completion signal."""

    course_id: int
    lesson_id: int
    completed: bool


class CourseProgressResponse(BaseModel):
    """Course progress for one student (camelCase keys for the course page)."""

    model_config = ConfigDict(populate_by_name=True)

    course_id: int
    completed_lessons: list[int] = Field(alias="completedLessons")
    completed_quizzes: list[int] = Field(alias="completedQuizzes")
    submitted_assignments: list[int] = Field(alias="submittedAssignments")
    lessons_completed: int = Field(alias="lessonsCompleted")
    quizzes_completed: int = Field(alias="quizzesCompleted")
    assignments_submitted: int = Field(alias="assignmentsSubmitted")
    lessons_total: int = Field(alias="lessonsTotal")
    quizzes_total: int = Field(alias="quizzesTotal")
    assignments_total: int = Field(alias="assignmentsTotal")
    overall_progress: int = Field(alias="overallProgress")
    skipped_lesson_ids: list[int] = Field(default_factory=list)
    skipped_quiz_ids: list[int] = Field(default_factory=list)
    skipped_assignment_ids: list[int] = Field(default_factory=list)

    @classmethod
    def from_progress(cls, progress: CourseProgress) -> CourseProgressResponse:
        return cls(
            course_id=progress.course_id,
            completed_lessons=progress.completed_lesson_ids,
            completed_quizzes=progress.completed_quiz_ids,
            submitted_assignments=progress.submitted_assignment_ids,
            lessons_completed=progress.lessons.completed,
            quizzes_completed=progress.quizzes.completed,
            assignments_submitted=progress.assignments.completed,
            lessons_total=progress.lessons.total,
            quizzes_total=progress.quizzes.total,
            assignments_total=progress.assignments.total,
            overall_progress=progress.overall_progress,
            skipped_lesson_ids=progress.skipped_lesson_ids,
            skipped_quiz_ids=progress.skipped_quiz_ids,
            skipped_assignment_ids=progress.skipped_assignment_ids,
        )


class StudentProgressResponse(BaseModel):
    """Overall progress of a student across enrolled courses."""

    model_config = ConfigDict(populate_by_name=True)

    student_id: str
    overall_progress: int = Field(alias="overallProgress")
    courses: list[CourseProgressResponse]

    @classmethod
    def from_progress(cls, progress: StudentProgress) -> StudentProgressResponse:
        return cls(
            student_id=progress.student_id,
            overall_progress=progress.overall_progress,
            courses=[CourseProgressResponse.from_progress(course) for course in progress.courses],
        )


class StudentSummary(BaseModel):
    student_id: str
    name: str
    overall_progress: int
    status: ProgressStatus
    lessons_completed: int


class CourseSummaryResponse(BaseModel):
    """Course dashboard summary over the approved roster."""

    course_id: int
    course_title: str
    total_students: int
    students_completed: int
    students_in_progress: int
    students_not_started: int
    average_progress: int
    students: list[StudentSummary]

    @classmethod
    def from_summary(cls, summary: CourseSummary) -> CourseSummaryResponse:
        return cls(
            course_id=summary.course.id,
            course_title=summary.course.title,
            total_students=summary.total_students,
            students_completed=summary.count(ProgressStatus.COMPLETED),
            students_in_progress=summary.count(ProgressStatus.IN_PROGRESS),
            students_not_started=summary.count(ProgressStatus.NOT_STARTED),
            average_progress=summary.average_progress,
            students=[
                StudentSummary(
                    student_id=entry.student_id,
                    name=entry.name,
                    overall_progress=entry.progress.overall_progress,
                    status=entry.progress.status,
                    lessons_completed=entry.progress.lessons.completed,
                )
                for entry in summary.students
            ],
        )


class QuestionView(BaseModel):
    """A question as shown to the student (no answer key)."""

    key: str
    prompt: str
    options: list[str]


class ExerciseView(BaseModel):
    id: str
    title: str
    content: str
    done: bool
    questions: list[QuestionView]


class LessonViewResponse(BaseModel):
    """Gated lesson view; locked content is withheld."""

    course_id: int
    lesson_id: int
    variant: LessonVariant
    route: str
    title: str
    video_url: str | None = None
    content: str | None = None
    summary: str | None = None
    exercises: list[ExerciseView]
    progress: LessonProgressResponse
