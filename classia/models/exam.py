"""
classia/models/exam.py

Exam artifact models and the exam content schema the completion service
must return.

Content schema (camelCase on the wire):
    {
      "title": "...",
      "questions": [
        {"number": 1, "prompt": "...", "type": "multiple_choice",
         "choices": ["A) ...", "B) ...", "C) ...", "D) ..."], "correctAnswer": "A"}
      ],
      "answerKey": {"1": "A"}
    }
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel


MULTIPLE_CHOICE_LETTERS = ("A", "B", "C", "D")
TRUE_FALSE_ANSWERS = ("V", "F")


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    ESSAY = "essay"


class ExamType(str, Enum):
    """Requested exam type; `mixed` combines all question types."""
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    ESSAY = "essay"
    MIXED = "mixed"


CLOSED_TYPES = frozenset({QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE})

class Question(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    number: StrictInt = Field(gt=0)
    prompt: str = Field(min_length=1)
    type: QuestionType
    choices: Optional[List[str]] = None
    correct_answer: Optional[str] = None

    @field_validator("correct_answer")
    @classmethod
    def normalize_answer(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if info.data.get("type") in CLOSED_TYPES:
            return value.upper()
        return value

    @model_validator(mode="after")
    def check_type_rules(self) -> "Question":
        if self.type == QuestionType.MULTIPLE_CHOICE:
            if not self.choices or len(self.choices) != 4:
                raise ValueError(f"question {self.number}: multiple_choice needs exactly 4 choices")
            if any(not choice.strip() for choice in self.choices):
                raise ValueError(f"question {self.number}: empty choice")
            if self.correct_answer not in MULTIPLE_CHOICE_LETTERS:
                raise ValueError(f"question {self.number}: correctAnswer must be one of A, B, C, D")
        elif self.type == QuestionType.TRUE_FALSE:
            if self.choices:
                raise ValueError(f"question {self.number}: true_false takes no choices")
            if self.correct_answer not in TRUE_FALSE_ANSWERS:
                raise ValueError(f"question {self.number}: correctAnswer must be V or F")
        elif self.choices:
            raise ValueError(f"question {self.number}: essay takes no choices")
        return self


class ExamContent(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    title: str = Field(min_length=1)
    questions: List[Question] = Field(min_length=1)
    answer_key: Dict[str, str]

    @field_validator("answer_key")
    @classmethod
    def normalize_answer_key(cls, value: Dict[str, str], info: ValidationInfo) -> Dict[str, str]:
        # Closed-type answers are stored uppercase, like correctAnswer
        closed = {str(q.number) for q in info.data.get("questions", []) if q.type in CLOSED_TYPES}
        key = {}
        for number, answer in value.items():
            number = number.strip()
            answer = answer.strip()
            key[number] = answer.upper() if number in closed else answer
        return key

    @model_validator(mode="after")
    def check_answer_key(self) -> "ExamContent":
        numbers = [q.number for q in self.questions]
        if len(set(numbers)) != len(numbers):
            raise ValueError("question numbers must be unique")

        expected_keys = {str(n) for n in numbers}
        keys = set(self.answer_key)
        if keys != expected_keys:
            raise ValueError(
                f"answerKey keys {sorted(keys)} do not match question numbers {sorted(expected_keys)}"
            )

        for q in self.questions:
            answer = self.answer_key[str(q.number)]
            if not answer:
                raise ValueError(f"answerKey entry for question {q.number} is empty")
            if q.type != QuestionType.ESSAY and answer != q.correct_answer:
                raise ValueError(f"answerKey entry for question {q.number} disagrees with correctAnswer")
        return self

    def question_types(self) -> set:
        return {q.type for q in self.questions}

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ExamArtifact(BaseModel):
    """Persisted output of one successful generation. Immutable."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    account_id: str
    title: str
    theme: Optional[str] = None
    grade: Optional[str] = None
    question_count: int
    type: ExamType
    content: ExamContent
    created_at: datetime
