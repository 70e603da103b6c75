"""
classia/features/generation/service.py

Generation admission pipeline.

Flow for one request:
1. Fresh entitlement check (blocked -> QuotaExceededError, nothing called)
2. Prompt build and a single completion call (no lock held)
3. Strict parse of the completion output
4. One database transaction: re-check the limit on the locked account row,
   insert the artifact, conditionally increment quota_used

An artifact is never stored without its increment, and vice versa.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import select, insert, update

from classia.core.database import get_db_session, supports_row_locks, accounts, exam_artifacts
from classia.core.errors import NotFoundError, QuotaExceededError
from classia.features.accounts.service import row_to_account
from classia.features.entitlements.service import evaluate, get_entitlement
from classia.features.generation.completion import CompletionClient, GroqCompletionClient
from classia.features.generation.parser import parse_exam_content
from classia.features.generation.prompts import build_prompt
from classia.models.exam import ExamArtifact, ExamContent, ExamType


logger = logging.getLogger(__name__)

MAX_QUESTIONS = 50


class GenerationRequest(BaseModel):
    """Either a freeform `prompt` or the structured theme/grade/questionCount/type form."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    prompt: Optional[str] = None
    theme: Optional[str] = None
    grade: Optional[str] = None
    question_count: Optional[int] = Field(default=None, ge=1, le=MAX_QUESTIONS)
    type: Optional[ExamType] = None

    @model_validator(mode="after")
    def check_form(self) -> "GenerationRequest":
        if self.prompt is not None:
            if not self.prompt.strip():
                raise ValueError("prompt must not be empty")
            return self
        missing = [
            name
            for name, value in (
                ("theme", self.theme),
                ("grade", self.grade),
                ("questionCount", self.question_count),
                ("type", self.type),
            )
            if value is None or (isinstance(value, str) and not value.strip())
        ]
        if missing:
            raise ValueError(f"either prompt or {', '.join(missing)} must be provided")
        return self

    @property
    def is_freeform(self) -> bool:
        return self.prompt is not None


@dataclass(frozen=True)
class GenerationResult:
    artifact: ExamArtifact
    remaining: Optional[int]  # None = unbounded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "artifact": self.artifact.model_dump(mode="json", by_alias=True, exclude_none=True),
            "remaining": self.remaining,
        }


def get_completion_client() -> CompletionClient:
    return GroqCompletionClient()


def _artifact_type(request: GenerationRequest, content: ExamContent) -> ExamType:
    if not request.is_freeform:
        return request.type
    kinds = content.question_types()
    if len(kinds) == 1:
        return ExamType(next(iter(kinds)).value)
    return ExamType.MIXED


def _persist(
    account_id: str,
    request: GenerationRequest,
    content: ExamContent,
    now: datetime,
) -> GenerationResult:
    artifact = ExamArtifact(
        id=str(uuid.uuid4()),
        account_id=account_id,
        title=content.title,
        theme=None if request.is_freeform else request.theme.strip(),
        grade=None if request.is_freeform else request.grade.strip(),
        question_count=len(content.questions),
        type=_artifact_type(request, content),
        content=content,
        created_at=now,
    )

    with get_db_session() as session:
        query = select(accounts).where(accounts.c.id == account_id)
        if supports_row_locks():
            query = query.with_for_update()
        row = session.execute(query).first()
        if row is None:
            raise NotFoundError(f"Account {account_id} not found")

        current = evaluate(row_to_account(row), now)
        if current.blocked:
            raise QuotaExceededError("Exam quota exceeded for current plan", limit=current.limit, used=current.used)

        session.execute(
            insert(exam_artifacts).values(
                id=artifact.id,
                account_id=account_id,
                title=artifact.title,
                theme=artifact.theme,
                grade=artifact.grade,
                question_count=artifact.question_count,
                type=artifact.type.value,
                content=content.to_json(),
                created_at=now,
            )
        )

        increment = (
            update(accounts)
            .where(accounts.c.id == account_id)
            .values(quota_used=accounts.c.quota_used + 1, updated_at=now)
        )
        if current.limit is not None:
            increment = increment.where(accounts.c.quota_used < current.limit)
        result = session.execute(increment)
        used = session.execute(
            select(accounts.c.quota_used).where(accounts.c.id == account_id)
        ).scalar_one()
        if result.rowcount != 1:
            # Another request took the last slot after our read; rolls back the insert
            raise QuotaExceededError(
                "Exam quota exceeded for current plan", limit=current.limit, used=used
            )

    remaining = None if current.limit is None else max(0, current.limit - used)
    return GenerationResult(artifact=artifact, remaining=remaining)


def generate(
    account_id: str,
    request: GenerationRequest,
    *,
    now: Optional[datetime] = None,
    client: Optional[CompletionClient] = None,
) -> GenerationResult:
    """
    Admit, generate and persist one exam.

    Raises:
        NotFoundError: Unknown account
        QuotaExceededError: Account is at its limit (before or after generation)
        ProviderError: Completion service failed
        MalformedGenerationError: Completion output did not match the schema
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    entitlement = get_entitlement(account_id, now)
    if entitlement.blocked:
        logger.warning(
            "[generation] quota blocked",
            extra={"account_id": account_id, "limit": entitlement.limit, "used": entitlement.used},
        )
        raise QuotaExceededError(
            "Exam quota exceeded for current plan", limit=entitlement.limit, used=entitlement.used
        )

    prompt = build_prompt(
        prompt=request.prompt,
        theme=request.theme,
        grade=request.grade,
        question_count=request.question_count,
        exam_type=request.type,
    )
    client = client or get_completion_client()
    text = client.complete(prompt)

    expected = None if request.is_freeform else request.question_count
    content = parse_exam_content(text, expected_count=expected)

    result = _persist(account_id, request, content, now)
    logger.info(
        "[generation] exam generated",
        extra={
            "account_id": account_id,
            "artifact_id": result.artifact.id,
            "questions": result.artifact.question_count,
            "remaining": result.remaining,
        },
    )
    return result
