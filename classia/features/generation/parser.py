"""Strict parsing of completion output into ExamContent."""

import json
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from classia.core.errors import MalformedGenerationError
from classia.models.exam import ExamContent


def parse_exam_content(text: str, expected_count: Optional[int] = None) -> ExamContent:
    """
    Parse `text` as the exam JSON schema.

    The whole text must be one JSON object; no fence stripping or repair is
    attempted. When `expected_count` is given the number of questions must
    match it exactly.

    Raises:
        MalformedGenerationError: On any parse or schema failure
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise MalformedGenerationError("Generated content is not valid JSON") from exc

    if not isinstance(data, dict):
        raise MalformedGenerationError("Generated content must be a JSON object")

    try:
        content = ExamContent.model_validate(data)
    except PydanticValidationError as exc:
        raise MalformedGenerationError(
            "Generated content does not match the exam schema",
            details={"errors": [e["msg"] for e in exc.errors()][:10]},
        ) from exc

    if expected_count is not None and len(content.questions) != expected_count:
        raise MalformedGenerationError(
            f"Expected {expected_count} questions, got {len(content.questions)}",
            details={"expected": expected_count, "received": len(content.questions)},
        )
    return content
