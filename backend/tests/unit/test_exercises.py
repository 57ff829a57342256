"""Parsing of stored exercise JSON."""

from coursetrack.lessons.exercises import exercise_done, flatten_questions, parse_exercises


def test_missing_ids_fall_back_to_position() -> None:
    exercises = parse_exercises(
        [
            {"title": "First", "questions": [{"question": "a?", "options": ["x", "y"]}]},
            {"title": "Second", "questions": [{"question": "b?"}, {"question": "c?"}]},
        ]
    )

    assert [e.id for e in exercises] == ["0", "1"]
    assert [ref.key for ref in flatten_questions(exercises)] == ["0:0", "1:0", "1:1"]


def test_correct_answer_defaults_to_first_option() -> None:
    (exercise,) = parse_exercises([{"id": "e", "questions": [{"id": "q", "options": ["x", "y"]}]}])

    question = exercise.questions[0]
    assert question.correct_option == 0
    assert question.is_correct(0)
    assert not question.is_correct(1)


def test_numeric_ids_become_strings() -> None:
    (exercise,) = parse_exercises([{"id": 5, "questions": [{"id": 9, "correct_answer": "2"}]}])

    assert exercise.id == "5"
    assert exercise.question_keys == ("5:9",)
    assert exercise.questions[0].correct_option == 2


def test_malformed_entries_are_skipped_and_duplicates_renamed() -> None:
    exercises = parse_exercises(
        [
            "not an exercise",
            {"id": "e1", "questions": [{"id": "q1"}]},
            {"id": "e1", "questions": [{"id": "other"}]},
        ]
    )

    assert [e.id for e in exercises] == ["e1", "2"]
    assert [ref.key for ref in flatten_questions(exercises)] == ["e1:q1", "2:other"]


def test_missing_question_id_never_collides_with_explicit_one() -> None:
    (exercise,) = parse_exercises([{"id": "e", "questions": [{"id": "1"}, {"question": "no id"}]}])

    assert exercise.question_keys == ("e:1", "e:1.1")
    assert not exercise_done(exercise, frozenset({"e:1"}))


def test_missing_exercise_id_never_collides_with_explicit_one() -> None:
    exercises = parse_exercises(
        [
            {"id": "1", "questions": [{"id": "a"}]},
            {"title": "No id", "questions": [{"id": "a"}]},
        ]
    )

    assert [e.id for e in exercises] == ["1", "1.1"]
    assert [ref.key for ref in flatten_questions(exercises)] == ["1:a", "1.1:a"]


def test_duplicate_question_ids_get_distinct_keys() -> None:
    (exercise,) = parse_exercises([{"id": "e", "questions": [{"id": "q"}, {"id": "q"}, {"id": "1"}]}])

    assert exercise.question_keys == ("e:q", "e:1.1", "e:1")


def test_empty_or_missing_json() -> None:
    assert parse_exercises(None) == ()
    assert parse_exercises([]) == ()


def test_exercise_done_needs_every_question() -> None:
    (exercise,) = parse_exercises([{"id": "e", "questions": [{"id": "a"}, {"id": "b"}]}])

    assert not exercise_done(exercise, frozenset({"e:a"}))
    assert exercise_done(exercise, frozenset({"e:a", "e:b"}))
