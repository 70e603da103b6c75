"""Tests for strict parsing of completion output."""

import json

import pytest

from classia.core.errors import MalformedGenerationError
from classia.features.generation.parser import parse_exam_content
from classia.models.exam import QuestionType
from classia.tests.mocks import exam_json, exam_payload


def test_parses_valid_multiple_choice():
    content = parse_exam_content(exam_json(3), expected_count=3)
    assert content.title == "Prova de Frações"
    assert len(content.questions) == 3
    assert content.questions[0].type == QuestionType.MULTIPLE_CHOICE
    assert content.answer_key == {"1": "B", "2": "B", "3": "B"}


def test_parses_mixed_types():
    content = parse_exam_content(exam_json(6, "mixed"))
    assert content.question_types() == {
        QuestionType.MULTIPLE_CHOICE,
        QuestionType.TRUE_FALSE,
        QuestionType.ESSAY,
    }


def test_to_json_round_trips_camel_case():
    content = parse_exam_content(exam_json(2, "true_false"))
    data = content.to_json()
    assert "answerKey" in data
    assert data["questions"][0]["correctAnswer"] == "V"
    assert "choices" not in data["questions"][0]


@pytest.mark.parametrize(
    "text",
    [
        "",
        "not json at all",
        "```json\n" + exam_json(1) + "\n```",
        "[]",
        '"a string"',
    ],
)
def test_rejects_non_object_output(text):
    with pytest.raises(MalformedGenerationError):
        parse_exam_content(text)


def _mutated(mutate, count=2, question_type="multiple_choice") -> str:
    payload = exam_payload(count, question_type)
    mutate(payload)
    return json.dumps(payload)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda p: p.pop("title"),
        lambda p: p.update(questions=[]),
        lambda p: p.pop("answerKey"),
        lambda p: p["questions"][0].update(choices=["A) x", "B) y", "C) z"]),
        lambda p: p["questions"][0].update(correctAnswer="E"),
        lambda p: p["questions"][0].update(type="matching"),
        lambda p: p["questions"][0].update(number="1"),
        lambda p: p["questions"][1].update(number=1),
        lambda p: p["answerKey"].pop("2"),
        lambda p: p["answerKey"].update({"3": "C"}),
        lambda p: p["answerKey"].update({"1": "D"}),
    ],
    ids=[
        "missing-title",
        "no-questions",
        "missing-answer-key",
        "three-choices",
        "letter-out-of-range",
        "unknown-type",
        "string-number",
        "duplicate-number",
        "answer-key-missing-entry",
        "answer-key-extra-entry",
        "answer-key-disagrees",
    ],
)
def test_rejects_schema_violations(mutate):
    with pytest.raises(MalformedGenerationError):
        parse_exam_content(_mutated(mutate))


def test_true_false_requires_v_or_f():
    def mutate(p):
        p["questions"][0]["correctAnswer"] = "T"
        p["answerKey"]["1"] = "T"

    with pytest.raises(MalformedGenerationError):
        parse_exam_content(_mutated(mutate, question_type="true_false"))


def test_lowercase_closed_answers_are_uppercased():
    def mutate(p):
        p["questions"][0]["correctAnswer"] = "b"
        p["answerKey"]["1"] = " b "
        p["questions"][1]["correctAnswer"] = "v"
        p["answerKey"]["2"] = "v"

    content = parse_exam_content(_mutated(mutate, count=3, question_type="mixed"))
    assert content.questions[0].correct_answer == "B"
    assert content.answer_key == {"1": "B", "2": "V", "3": "Resposta esperada com justificativa."}
    assert content.to_json()["questions"][0]["correctAnswer"] == "B"


def test_essay_rejects_choices():
    def mutate(p):
        p["questions"][0]["choices"] = ["A) a", "B) b", "C) c", "D) d"]

    with pytest.raises(MalformedGenerationError):
        parse_exam_content(_mutated(mutate, question_type="essay"))


def test_question_count_must_match_request():
    with pytest.raises(MalformedGenerationError) as exc_info:
        parse_exam_content(exam_json(4), expected_count=5)
    assert exc_info.value.details == {"expected": 5, "received": 4}
