"""Read-only view of a lesson's nested exercises and questions.

Lessons store exercises as free-form JSON. This module turns that JSON into
frozen value objects with stable identifiers and gives every question a
composite key ``"<exercise_id>:<question_id>"``, the one identifier used to
record progress for every lesson variant.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any


logger = logging.getLogger(__name__)

KEY_SEPARATOR = ":"


@dataclass(frozen=True)
class Question:
    """A multiple-choice question."""

    id: str
    prompt: str
    options: tuple[str, ...]
    correct_option: int

    def is_correct(self, selected_option: int) -> bool:
        return selected_option == self.correct_option


@dataclass(frozen=True)
class Exercise:
    """A titled group of questions attached to a lesson."""

    id: str
    title: str
    content: str
    questions: tuple[Question, ...]

    @property
    def has_questions(self) -> bool:
        return bool(self.questions)

    @property
    def question_keys(self) -> tuple[str, ...]:
        return tuple(question_key(self.id, question.id) for question in self.questions)


@dataclass(frozen=True)
class QuestionRef:
    """A question located within the flattened sequence of a lesson."""

    key: str
    exercise: Exercise
    question: Question
    position: int  # index in the flattened sequence


def question_key(exercise_id: str, question_id: str) -> str:
    """Build the composite identifier for one question of one exercise."""
    return f"{exercise_id}{KEY_SEPARATOR}{question_id}"


def _explicit_id(raw: Mapping[str, Any]) -> str | None:
    value = raw.get("id")
    if value is None or str(value).strip() == "":
        return None
    return str(value).strip()


def _assign_ids(entries: Sequence[tuple[int, Mapping[str, Any]]], kind: str) -> list[str]:
    """Give every entry an id that is unique within its list.

    Explicit ids are claimed first, in order. Entries without an id, or whose
    id is already claimed, fall back to their position, suffixed (``"1.1"``)
    when that is taken as well.
    """
    explicit = [_explicit_id(raw) for _, raw in entries]
    taken: set[str] = set()
    ids: list[str | None] = []
    for value in explicit:
        if value is not None and value not in taken:
            taken.add(value)
            ids.append(value)
        else:
            ids.append(None)

    assigned: list[str] = []
    for (position, _), value, given in zip(entries, ids, explicit, strict=True):
        if value is None:
            value = str(position)
            suffix = 1
            while value in taken:
                value = f"{position}.{suffix}"
                suffix += 1
            taken.add(value)
            if given is not None:
                logger.warning(f"Duplicate {kind} id {given!r} at position {position}; using {value!r}")
        assigned.append(value)
    return assigned


def _parse_question(raw: Mapping[str, Any], question_id: str) -> Question:
    options = tuple(str(option) for option in raw.get("options") or [])
    correct = raw.get("correct_answer", raw.get("correct_option", 0))
    try:
        correct_option = int(correct)
    except (TypeError, ValueError):
        correct_option = 0
    return Question(
        id=question_id,
        prompt=str(raw.get("question") or raw.get("prompt") or ""),
        options=options,
        correct_option=correct_option,
    )


def _mappings(raw_entries: Iterable[Any], kind: str) -> list[tuple[int, Mapping[str, Any]]]:
    entries = []
    for position, raw in enumerate(raw_entries):
        if not isinstance(raw, Mapping):
            logger.warning(f"Skipping malformed {kind} at position {position}: {raw!r}")
            continue
        entries.append((position, raw))
    return entries


def parse_exercises(raw_exercises: Iterable[Any] | None) -> tuple[Exercise, ...]:
    """Parse the stored exercise JSON.

    Entries that are not objects are skipped. Missing ids fall back to the
    entry's position, which keeps ids stable as long as the lesson is not
    re-ordered by its author. Ids are unique per list, so every question has
    its own composite key.
    """
    if not raw_exercises:
        return ()

    entries = _mappings(raw_exercises, "exercise")
    exercises: list[Exercise] = []
    for (_, raw), exercise_id in zip(entries, _assign_ids(entries, "exercise"), strict=True):
        question_entries = _mappings(raw.get("questions") or [], "question")
        question_ids = _assign_ids(question_entries, "question")
        exercises.append(
            Exercise(
                id=exercise_id,
                title=str(raw.get("title") or ""),
                content=str(raw.get("content") or ""),
                questions=tuple(
                    _parse_question(q, qid) for (_, q), qid in zip(question_entries, question_ids, strict=True)
                ),
            )
        )
    return tuple(exercises)


def flatten_questions(exercises: Iterable[Exercise]) -> list[QuestionRef]:
    """Flatten all exercises into one ordered question sequence."""
    refs: list[QuestionRef] = []
    for exercise in exercises:
        for question in exercise.questions:
            refs.append(
                QuestionRef(
                    key=question_key(exercise.id, question.id),
                    exercise=exercise,
                    question=question,
                    position=len(refs),
                )
            )
    return refs


def exercise_done(exercise: Exercise, completed_keys: frozenset[str] | set[str]) -> bool:
    """An exercise is done once every one of its questions has been answered."""
    return all(key in completed_keys for key in exercise.question_keys)
