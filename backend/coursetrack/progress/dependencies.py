"""FastAPI dependency providers for the progress services."""

from typing import Annotated

from fastapi import Depends

from coursetrack.config.settings import Settings, get_settings
from coursetrack.courses.catalog import CourseCatalog
from coursetrack.database.session import SessionMaker
from coursetrack.progress.aggregator import CourseAggregator
from coursetrack.progress.calculator import CourseWeights
from coursetrack.progress.recorder import ProgressRecorder
from coursetrack.progress.store import SqlProgressStore


def get_course_catalog(session_maker: SessionMaker) -> CourseCatalog:
    return CourseCatalog(session_maker)


def get_progress_store(session_maker: SessionMaker) -> SqlProgressStore:
    return SqlProgressStore(session_maker)


def get_progress_recorder(
    store: Annotated[SqlProgressStore, Depends(get_progress_store)],
    catalog: Annotated[CourseCatalog, Depends(get_course_catalog)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ProgressRecorder:
    return ProgressRecorder(store, catalog, watched_threshold=settings.VIDEO_WATCHED_THRESHOLD)


def get_course_aggregator(
    store: Annotated[SqlProgressStore, Depends(get_progress_store)],
    catalog: Annotated[CourseCatalog, Depends(get_course_catalog)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> CourseAggregator:
    weights = CourseWeights(
        lessons=settings.COURSE_WEIGHT_LESSONS,
        quizzes=settings.COURSE_WEIGHT_QUIZZES,
        assignments=settings.COURSE_WEIGHT_ASSIGNMENTS,
    )
    return CourseAggregator(store, catalog, weights=weights)


Catalog = Annotated[CourseCatalog, Depends(get_course_catalog)]
Recorder = Annotated[ProgressRecorder, Depends(get_progress_recorder)]
Aggregator = Annotated[CourseAggregator, Depends(get_course_aggregator)]
