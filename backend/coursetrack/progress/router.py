"""Progress tracking API endpoints."""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import RedirectResponse

from coursetrack.auth import CurrentStudent
from coursetrack.config.settings import get_settings
from coursetrack.lessons.classifier import LessonVariant, resolve_route
from coursetrack.lessons.exercises import exercise_done
from coursetrack.middleware.security import limiter

from .dependencies import Aggregator, Recorder
from .schemas import (
    CourseProgressResponse,
    CourseSummaryResponse,
    ExerciseView,
    LessonProgressResponse,
    LessonProgressUpdate,
    LessonViewResponse,
    QuestionView,
    StudentProgressResponse,
    StudentProgressUpdate,
    UpdateKind,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["progress"])


def _progress_limit() -> str:
    return get_settings().PROGRESS_RATE_LIMIT


# Video players report playback every few seconds; keep writes bounded per client
progress_rate_limit = limiter.limit(_progress_limit)


@router.get("/courses/{course_id}/lessons/{lesson_id}/progress")
async def get_lesson_progress(
    course_id: int,
    lesson_id: int,
    student_id: CurrentStudent,
    recorder: Recorder,
) -> LessonProgressResponse:
    """Get the current student's progress on a lesson."""
    recorded = await recorder.get_progress(student_id, course_id, lesson_id)
    return LessonProgressResponse.from_recorded(recorded)


@router.post("/courses/{course_id}/lessons/{lesson_id}/progress")
@progress_rate_limit
async def update_lesson_progress(
    request: Request,  # noqa: ARG001
    course_id: int,
    lesson_id: int,
    update: LessonProgressUpdate,
    student_id: CurrentStudent,
    recorder: Recorder,
) -> LessonProgressResponse:
    """Merge one progress update into the current student's lesson progress."""
    kind = update.kind
    if kind is UpdateKind.VIDEO_WATCHED:
        recorded = await recorder.mark_video_watched(student_id, course_id, lesson_id, bool(update.video_watched))
    elif kind is UpdateKind.PLAYBACK:
        recorded = await recorder.record_playback(
            student_id, course_id, lesson_id, update.current_time or 0.0, update.duration or 0.0
        )
    elif kind is UpdateKind.ANSWER:
        recorded = await recorder.submit_answer(
            student_id, course_id, lesson_id, update.completed_exercise_id or "", update.selected_option or 0
        )
    else:
        recorded = await recorder.mark_exercise(
            student_id, course_id, lesson_id, update.completed_exercise_id or "", update.is_correct
        )
    return LessonProgressResponse.from_recorded(recorded)


@router.get("/courses/{course_id}/lessons/{lesson_id}/view/{variant}", response_model=None)
async def view_lesson(
    request: Request,
    course_id: int,
    lesson_id: int,
    variant: LessonVariant,
    student_id: CurrentStudent,
    recorder: Recorder,
) -> LessonViewResponse | RedirectResponse:
    """Render a lesson through its variant's view.

    Requests for the wrong variant are redirected to the right one.
    """
    recorded = await recorder.get_progress(student_id, course_id, lesson_id)
    lesson = recorded.lesson
    decision = resolve_route(lesson, variant)
    if decision.redirect:
        url = request.url_for("view_lesson", course_id=course_id, lesson_id=lesson_id, variant=decision.variant.value)
        return RedirectResponse(
            url=str(url),
            status_code=status.HTTP_307_TEMPORARY_REDIRECT,
            headers={"X-Lesson-Route": decision.route},
        )

    completed_keys = recorded.state.completed_keys
    unlocked = recorded.gate.content_unlocked
    exercises = [
        ExerciseView(
            id=exercise.id,
            title=exercise.title,
            content=exercise.content,
            done=exercise_done(exercise, completed_keys),
            questions=[
                QuestionView(key=key, prompt=question.prompt, options=list(question.options))
                for key, question in zip(exercise.question_keys, exercise.questions, strict=True)
            ],
        )
        for exercise in lesson.exercises
    ]
    return LessonViewResponse(
        course_id=course_id,
        lesson_id=lesson_id,
        variant=lesson.variant,
        route=decision.route,
        title=lesson.record.title,
        video_url=lesson.record.video_url if lesson.variant is LessonVariant.VIDEO else None,
        content=lesson.record.content if unlocked else None,
        summary=lesson.record.summary if unlocked else None,
        exercises=exercises,
        progress=LessonProgressResponse.from_recorded(recorded),
    )


@router.get("/courses/{course_id}/progress")
async def get_course_progress(
    course_id: int,
    student_id: CurrentStudent,
    aggregator: Aggregator,
) -> CourseProgressResponse:
    """Get the current student's progress in a course."""
    progress = await aggregator.course_progress(student_id, course_id)
    return CourseProgressResponse.from_progress(progress)


@router.get("/courses/{course_id}/progress/summary")
async def get_course_summary(course_id: int, aggregator: Aggregator) -> CourseSummaryResponse:
    """Get the progress dashboard of a course over its approved students."""
    summary = await aggregator.course_summary(course_id)
    return CourseSummaryResponse.from_summary(summary)


@router.post("/student-progress")
@progress_rate_limit
async def update_student_progress(
    request: Request,  # noqa: ARG001
    update: StudentProgressUpdate,
    student_id: CurrentStudent,
    recorder: Recorder,
) -> LessonProgressResponse:
    """Explicitly mark a lesson completed.

    ``completed=false`` is accepted and changes nothing; completion is terminal.
    """
    if update.completed:
        recorded = await recorder.mark_completed(student_id, update.course_id, update.lesson_id)
    else:
        recorded = await recorder.get_progress(student_id, update.course_id, update.lesson_id)
    return LessonProgressResponse.from_recorded(recorded)


@router.get("/student/progress")
async def get_my_progress(student_id: CurrentStudent, aggregator: Aggregator) -> StudentProgressResponse:
    """Get the current student's overall progress."""
    progress = await aggregator.student_progress(student_id)
    return StudentProgressResponse.from_progress(progress)


@router.get("/students/{student_id}/progress")
async def get_student_progress(student_id: str, aggregator: Aggregator) -> StudentProgressResponse:
    """Get any student's overall progress (teacher/admin dashboards)."""
    progress = await aggregator.student_progress(student_id)
    return StudentProgressResponse.from_progress(progress)
