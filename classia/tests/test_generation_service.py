"""Tests for the generation admission pipeline."""

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select, update

from classia.core.database import get_db_session, accounts, exam_artifacts
from classia.core.errors import MalformedGenerationError, NotFoundError, ProviderError, QuotaExceededError
from classia.features.accounts.service import get_account
from classia.features.entitlements.service import AlertLevel, evaluate, get_entitlement
from classia.features.generation.service import GenerationRequest, generate
from classia.models.exam import ExamType
from classia.tests.mocks import FailingCompletionClient, FakeCompletionClient, exam_json, exam_payload


NOW = datetime(2026, 5, 4, 15, 30, tzinfo=timezone.utc)

STRUCTURED = GenerationRequest(theme="Frações", grade="5º ano", question_count=3, type="multiple_choice")


def artifact_count(account_id: str) -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count()).select_from(exam_artifacts).where(exam_artifacts.c.account_id == account_id)
        ).scalar_one()


class TestAdmission:
    def test_success_persists_and_increments(self, make_account):
        make_account("acc-1", quota_used=2)
        client = FakeCompletionClient(exam_json(3))

        result = generate("acc-1", STRUCTURED, now=NOW, client=client)

        assert result.remaining == 7
        assert result.artifact.theme == "Frações"
        assert result.artifact.grade == "5º ano"
        assert result.artifact.question_count == 3
        assert result.artifact.type == ExamType.MULTIPLE_CHOICE
        assert get_account("acc-1").quota_used == 3
        assert artifact_count("acc-1") == 1
        assert len(client.prompts) == 1
        assert "Frações" in client.prompts[0]
        assert "exatamente 3 questões" in client.prompts[0]

    def test_last_slot_then_blocked(self, make_account):
        make_account("acc-1", quota_used=9)

        result = generate("acc-1", STRUCTURED, now=NOW, client=FakeCompletionClient(exam_json(3)))

        assert result.remaining == 0
        ent = get_entitlement("acc-1", NOW)
        assert ent.alert == AlertLevel.BLOCKED
        assert ent.blocked is True

    def test_blocked_account_never_calls_provider(self, make_account):
        make_account("acc-1", quota_used=10)
        client = FakeCompletionClient()

        with pytest.raises(QuotaExceededError) as exc_info:
            generate("acc-1", STRUCTURED, now=NOW, client=client)

        assert client.prompts == []
        assert exc_info.value.details == {"limit": 10, "used": 10, "remaining": 0}
        assert artifact_count("acc-1") == 0

    def test_unknown_account(self):
        with pytest.raises(NotFoundError):
            generate("ghost", STRUCTURED, now=NOW, client=FakeCompletionClient())

    def test_institutional_is_unbounded(self, make_account):
        make_account(
            "acc-inst",
            quota_used=500,
            plan_tier="institutional",
            subscription_status="active",
            subscription_plan="institutional",
            subscription_start=NOW - timedelta(days=1),
            subscription_end=NOW + timedelta(days=29),
        )

        result = generate("acc-inst", STRUCTURED, now=NOW, client=FakeCompletionClient(exam_json(3)))

        assert result.remaining is None
        assert get_account("acc-inst").quota_used == 501

    def test_expired_pro_is_limited_as_free(self, make_account):
        make_account(
            "acc-exp",
            quota_used=10,
            plan_tier="pro",
            subscription_status="active",
            subscription_plan="pro",
            subscription_start=NOW - timedelta(days=31),
            subscription_end=NOW - timedelta(days=1),
        )

        with pytest.raises(QuotaExceededError):
            generate("acc-exp", STRUCTURED, now=NOW, client=FakeCompletionClient())


class TestFailures:
    def test_malformed_output_leaves_no_trace(self, make_account):
        make_account("acc-1", quota_used=4)

        with pytest.raises(MalformedGenerationError):
            generate("acc-1", STRUCTURED, now=NOW, client=FakeCompletionClient("Aqui está sua prova: {"))

        assert get_account("acc-1").quota_used == 4
        assert artifact_count("acc-1") == 0

    def test_wrong_question_count_is_malformed(self, make_account):
        make_account("acc-1")

        with pytest.raises(MalformedGenerationError):
            generate("acc-1", STRUCTURED, now=NOW, client=FakeCompletionClient(exam_json(2)))

        assert get_account("acc-1").quota_used == 0

    def test_provider_error_surfaces_without_state_change(self, make_account):
        make_account("acc-1", quota_used=1)

        with pytest.raises(ProviderError):
            generate("acc-1", STRUCTURED, now=NOW, client=FailingCompletionClient())

        assert get_account("acc-1").quota_used == 1
        assert artifact_count("acc-1") == 0

    def test_quota_taken_during_generation_rolls_back(self, make_account):
        make_account("acc-1", quota_used=9)

        class SlotStealingClient(FakeCompletionClient):
            def complete(self, prompt):
                with get_db_session() as session:
                    session.execute(update(accounts).where(accounts.c.id == "acc-1").values(quota_used=10))
                return super().complete(prompt)

        with pytest.raises(QuotaExceededError):
            generate("acc-1", STRUCTURED, now=NOW, client=SlotStealingClient(exam_json(3)))

        assert get_account("acc-1").quota_used == 10
        assert artifact_count("acc-1") == 0

    def test_lost_increment_reports_stored_usage(self, make_account):
        make_account("acc-1", quota_used=11)

        # Re-check sees a stale count, so only the conditional increment can stop it
        def stale_evaluate(account, now):
            return evaluate(account.model_copy(update={"quota_used": 9}), now)

        with patch("classia.features.generation.service.get_entitlement",
                   lambda account_id, now: stale_evaluate(get_account(account_id), now)), \
                patch("classia.features.generation.service.evaluate", stale_evaluate):
            with pytest.raises(QuotaExceededError) as exc_info:
                generate("acc-1", STRUCTURED, now=NOW, client=FakeCompletionClient(exam_json(3)))

        assert exc_info.value.details == {"limit": 10, "used": 11, "remaining": 0}
        assert get_account("acc-1").quota_used == 11
        assert artifact_count("acc-1") == 0

    def test_lowercase_answers_are_stored_uppercase(self, make_account):
        make_account("acc-1")
        payload = exam_payload(2, "true_false")
        payload["questions"][0]["correctAnswer"] = "v"
        payload["answerKey"]["1"] = "v"

        result = generate(
            "acc-1",
            GenerationRequest(theme="Frações", grade="5º ano", question_count=2, type="true_false"),
            now=NOW,
            client=FakeCompletionClient(json.dumps(payload)),
        )

        with get_db_session() as session:
            stored = session.execute(
                select(exam_artifacts.c.content).where(exam_artifacts.c.id == result.artifact.id)
            ).scalar_one()
        assert stored["questions"][0]["correctAnswer"] == "V"
        assert stored["answerKey"] == {"1": "V", "2": "V"}


class TestFreeform:
    def test_freeform_single_type(self, make_account):
        make_account("acc-1")
        client = FakeCompletionClient(exam_json(4, "true_false"))

        result = generate("acc-1", GenerationRequest(prompt="Prova sobre o ciclo da água"), now=NOW, client=client)

        assert result.artifact.theme is None
        assert result.artifact.grade is None
        assert result.artifact.question_count == 4
        assert result.artifact.type == ExamType.TRUE_FALSE
        assert client.prompts[0].startswith("Prova sobre o ciclo da água")

    def test_freeform_mixed_type(self, make_account):
        make_account("acc-1")

        result = generate(
            "acc-1", GenerationRequest(prompt="Prova de revisão"), now=NOW, client=FakeCompletionClient(exam_json(5, "mixed"))
        )

        assert result.artifact.type == ExamType.MIXED
        assert result.artifact.question_count == 5


class TestRequestValidation:
    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"prompt": "   "},
            {"theme": "Frações", "grade": "5º ano", "type": "essay"},
            {"theme": "Frações", "grade": "5º ano", "questionCount": 0, "type": "essay"},
            {"theme": "Frações", "grade": "5º ano", "questionCount": 3, "type": "matching"},
        ],
    )
    def test_invalid_requests(self, payload):
        with pytest.raises(PydanticValidationError):
            GenerationRequest.model_validate(payload)

    def test_camel_case_request(self):
        request = GenerationRequest.model_validate(
            {"theme": "Frações", "grade": "5º ano", "questionCount": 4, "type": "mixed"}
        )
        assert request.question_count == 4
        assert request.type == ExamType.MIXED
        assert request.is_freeform is False


def test_concurrent_requests_on_last_slot(make_account):
    """Two requests admitted at limit - 1: exactly one commits."""
    make_account("acc-race", quota_used=9)
    barrier = threading.Barrier(2)
    client = FakeCompletionClient(exam_json(3), barrier=barrier)

    def attempt():
        try:
            return generate("acc-race", STRUCTURED, now=NOW, client=client)
        except QuotaExceededError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = list(pool.map(lambda _: attempt(), range(2)))

    successes = [o for o in outcomes if not isinstance(o, QuotaExceededError)]
    failures = [o for o in outcomes if isinstance(o, QuotaExceededError)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert successes[0].remaining == 0
    assert get_account("acc-race").quota_used == 10
    assert artifact_count("acc-race") == 1
