import json
import time

import pytest
from fastapi.testclient import TestClient

from kasama_ai.orchestrator.deps import set_orchestrator
from kasama_ai.orchestrator.main import app

STYLE_OUTPUT = {
    "strengthAreas": ["Warm tone"],
    "improvementAreas": ["Interrupting"],
    "recommendedTechniques": ["Reflective listening"],
}


@pytest.fixture
def client(orchestrator):
    set_orchestrator(orchestrator)
    with TestClient(app) as c:
        yield c
    set_orchestrator(None)


def wait_for_batch(client: TestClient, status_url: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(status_url).json()
        if body["status"] in ("completed", "failed", "cancelled") or time.monotonic() > deadline:
            return body
        time.sleep(0.02)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_run_operation_returns_validated_output(client, primary):
    primary.script("communication_advisor", json.dumps(STYLE_OUTPUT))

    r = client.post("/agents/communication_advisor/assess_style", json={"user_id": "u1", "input": {}})

    assert r.status_code == 200
    body = r.json()
    assert body["output"]["strength_areas"] == ["Warm tone"]
    assert body["fallback_used"] is False
    assert body["operation"] == "assess_style"


def test_unknown_agent_is_404(client):
    r = client.post("/agents/astrologer/horoscope", json={"input": {}})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"


def test_invalid_agent_input_is_400(client):
    r = client.post("/agents/communication_advisor/resolve_conflict", json={"input": {"conflictDescription": ""}})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_INPUT"


def test_malformed_request_body_is_400(client):
    r = client.post("/agents/communication_advisor/assess_style", json={"input": {}, "priority": "urgent"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_INPUT"


def test_quick_tips_endpoint(client):
    r = client.get("/agents/communication_advisor/quick-tips/boundary-setting")
    assert r.status_code == 200
    assert r.json()["situation"] == "boundary_setting"
    assert client.get("/agents/communication_advisor/quick-tips/jealousy").status_code == 404


def test_assessment_input_check_endpoint(client, primary):
    r = client.post(
        "/agents/assessment_analyst/validate-input",
        json={"assessment": {"answers": [{"questionId": "q1", "answer": "yes"}]}, "userProfile": {"age": 30}},
    )
    assert r.status_code == 200
    assert r.json()["is_valid"] is True
    assert primary.calls == []


def test_batch_submit_and_poll(client, providers_down):
    r = client.post(
        "/batch",
        json={
            "members": [
                {"agent_type": "insight_generator", "operation": "daily_insight", "input": {"dayOfWeek": "monday"}},
                {"agent_type": "learning_coach", "input": {"skillLevel": "beginner"}},
            ],
            "options": {"parallel": True, "max_concurrency": 2},
        },
    )
    assert r.status_code == 202
    accepted = r.json()
    assert accepted["member_count"] == 2
    assert accepted["status_url"] == f"/batch/{accepted['batch_id']}/status"

    status = wait_for_batch(client, accepted["status_url"])

    assert status["status"] == "completed"
    assert status["progress"] == 100.0
    assert [m["status"] for m in status["results"]] == ["succeeded", "succeeded"]
    assert status["results"][1]["operation"] == "generate_learning_path"
    assert client.get("/batch/stats").json()["completed"] == 1


def test_batch_validation_and_lookup_errors(client):
    assert client.post("/batch", json={"members": []}).status_code == 400
    too_many = [{"agent_type": "progress_tracker"}] * 51
    assert client.post("/batch", json={"members": too_many}).status_code == 400
    assert client.get("/batch/missing/status").status_code == 404
    assert client.post("/batch/missing/cancel").status_code == 404


def test_schedule_endpoint(client):
    r = client.post(
        "/batch/schedule",
        json={
            "user_id": "u9",
            "members": [{"agent_type": "progress_tracker", "scheduled_time": "2999-01-01T00:00:00Z"}],
        },
    )
    assert r.status_code == 200
    assert r.json()["status"] == "scheduled"
    assert client.get("/batch/stats").json()["queued"] == 1


def test_webhook_without_configured_secret_is_401(client):
    r = client.post("/webhooks/anthropic", content=b"{}", headers={"X-Signature": "sha256=00"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "AUTHENTICATION_FAILED"


def test_callback_registration_endpoint(client):
    r = client.post("/webhooks/callbacks", json={"request_id": "req-1", "callback_url": "https://client.example/cb"})
    assert r.status_code == 200
    assert r.json()["webhook_url"].endswith("/webhooks/callback/req-1")
    assert client.get("/webhooks/stats").json()["registered_callback_urls"] == 1


def test_stats_endpoint(client):
    body = client.get("/stats").json()
    assert set(body) == {"cache", "errors", "providers", "rate_limits", "agents", "batches", "webhooks"}
    assert body["rate_limits"]["enabled"] is True
