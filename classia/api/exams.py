"""
Exam API routes.

- POST /v1/exams/generate: admit, generate and persist one exam
- GET  /v1/exams: caller's exams, newest first
- GET  /v1/exams/{exam_id}: one of the caller's exams

Generation runs as a sync endpoint in the worker thread pool, so a client
disconnect does not interrupt a started generation; its result is dropped.
"""
from fastapi import APIRouter, Depends, Query

from classia.core.auth import get_current_account_id
from classia.features.accounts.service import get_artifact, list_artifacts
from classia.features.generation.service import GenerationRequest, generate


router = APIRouter(prefix="/v1/exams", tags=["exams"])


@router.post("/generate")
def generate_exam(body: GenerationRequest, account_id: str = Depends(get_current_account_id)):
    """
    Errors:
        403: Quota exceeded (limit/used/remaining in the error body)
        404: Caller has no account
        500: Completion service failure or malformed completion
    """
    return generate(account_id, body).to_dict()


@router.get("")
def list_exams(
    limit: int = Query(50, ge=1, le=200),
    account_id: str = Depends(get_current_account_id),
):
    artifacts = list_artifacts(account_id, limit=limit)
    return {
        "exams": [a.model_dump(mode="json", by_alias=True, exclude_none=True) for a in artifacts],
        "count": len(artifacts),
    }


@router.get("/{exam_id}")
def read_exam(exam_id: str, account_id: str = Depends(get_current_account_id)):
    artifact = get_artifact(account_id, exam_id)
    return artifact.model_dump(mode="json", by_alias=True, exclude_none=True)
