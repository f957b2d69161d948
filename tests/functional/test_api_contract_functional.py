"""HTTP contract tests for the takeout approval API.

Drives the FastAPI app in-process through TestClient. Success bodies and
problem+json error bodies are validated against the JSON Schemas under
docs/schemas/.
"""

from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest
from sqlalchemy.exc import OperationalError

SCHEMA_DIR = Path(__file__).resolve().parents[2] / "docs" / "schemas"

ADMIN = {"X-Actor-Id": "admin1", "X-Actor-Role": "admin"}
LEAD = {"X-Actor-Id": "lead1", "X-Actor-Role": "it_lead"}


def _validate(schema_name: str, body) -> None:
    schema = json.loads((SCHEMA_DIR / f"{schema_name}.schema.json").read_text(encoding="utf-8"))
    jsonschema.validate(instance=body, schema=schema)


def _assert_problem(resp, status: int, code: str) -> dict:
    assert resp.status_code == status, resp.text
    assert resp.headers["content-type"].startswith("application/problem+json")
    body = resp.json()
    _validate("problem", body)
    assert body["code"] == code
    assert body["status"] == status
    return body


def _submit(client, email: str, score, apps=("app-1",), survey_id: str = "s1"):
    return client.post(
        f"/surveys/{survey_id}/responses",
        json={
            "respondent": {"name": "Dana", "email": email, "department_id": "dept-1"},
            "application_ids": list(apps),
            "answers": [
                {"question_id": "q1", "value": {"numeric_value": score}},
                {"question_id": "q2", "value": {"text_value": f"comment from {email}"}},
            ],
        },
    )


@pytest.fixture
def rid(seed, client) -> str:
    seed.survey("s1", questions=[("q1", "Rating"), ("q2", "Text")])
    seed.function("fn-1", ["app-1"], it_lead="lead1")
    resp = _submit(client, "dana@example.com", 3)
    assert resp.status_code == 201
    return resp.json()["response_ids"][0]


def test_submit_response_contract(seed, client):
    seed.survey("s1", questions=[("q1", "Rating"), ("q2", "Text")])
    resp = _submit(client, "eve@example.com", 7, apps=("app-1", "app-2"))
    assert resp.status_code == 201
    body = resp.json()
    _validate("submission_result", body)
    assert len(body["response_ids"]) == 2


def test_duplicate_submission_is_409_with_matches(rid, client):
    body = _assert_problem(_submit(client, "DANA@example.com", 5), 409, "RESPONSE_DUPLICATE")
    assert body["matched_response_ids"] == [rid]
    check = client.post("/surveys/s1/duplicate-check", json={"respondent_email": "dana@example.com", "application_ids": ["app-1"]})
    assert check.status_code == 200
    assert check.json() == {"is_duplicate": True, "matched_response_ids": [rid]}


def test_malformed_submission_is_422(seed, client):
    seed.survey("s1", questions=[("q1", "Rating")])
    _assert_problem(client.post("/surveys/s1/responses", json={"respondent": {}}), 422, "REQUEST_INVALID")
    _assert_problem(_submit(client, "no-at-sign", 4), 422, "REQUEST_INVALID")


def test_propose_approve_and_history(rid, client):
    proposed = client.post(f"/question-responses/{rid}/q1/propose", json={"reason": "outlier"}, headers=ADMIN)
    assert proposed.status_code == 200, proposed.text
    _validate("transition_result", proposed.json())
    assert proposed.json()["status"] == "ProposedTakeout"

    approved = client.post(f"/api/v1/question-responses/{rid}/q1/approve", headers=LEAD)
    assert approved.status_code == 200, approved.text
    assert approved.json()["status"] == "TakenOut"

    history = client.get(f"/question-responses/{rid}/q1/history", headers=LEAD)
    assert history.status_code == 200
    entries = history.json()
    assert [e["action"] for e in entries] == ["Proposed", "Approved"]
    for entry in entries:
        _validate("history_entry", entry)


def test_missing_actor_is_401(rid, client):
    _assert_problem(client.post(f"/question-responses/{rid}/q1/propose", json={"reason": "x"}), 401, "ACTOR_MISSING")


def test_wrong_role_is_403_distinct_from_domain_errors(rid, client):
    _assert_problem(
        client.post(f"/question-responses/{rid}/q1/propose", json={"reason": "x"}, headers=LEAD),
        403,
        "PERMISSION_DENIED",
    )
    _assert_problem(client.post(f"/question-responses/{rid}/q1/approve", headers=ADMIN), 403, "PERMISSION_DENIED")
    _assert_problem(
        client.post(f"/question-responses/{rid}/q1/cancel", headers={"X-Actor-Id": "x", "X-Actor-Role": "guest"}),
        403,
        "PERMISSION_DENIED",
    )


def test_domain_errors_map_to_problem_codes(rid, client):
    _assert_problem(
        client.post(f"/question-responses/{rid}/q1/propose", json={"reason": "  "}, headers=ADMIN),
        422,
        "TAKEOUT_REASON_REQUIRED",
    )
    _assert_problem(client.post(f"/question-responses/{rid}/q1/approve", headers=LEAD), 409, "TAKEOUT_INVALID_TRANSITION")
    client.post(f"/question-responses/{rid}/q1/propose", json={"reason": "outlier"}, headers=ADMIN)
    client.post(f"/question-responses/{rid}/q1/approve", headers=LEAD)
    body = _assert_problem(
        client.post(f"/question-responses/{rid}/q1/approve", headers=LEAD), 409, "TAKEOUT_ALREADY_RESOLVED"
    )
    assert body["error_kind"] == "AlreadyResolved"
    _assert_problem(client.get(f"/question-responses/{rid}/zz/history", headers=LEAD), 404, "RESOURCE_NOT_FOUND")


def test_cancel_by_admin_returns_to_active(rid, client):
    client.post(f"/question-responses/{rid}/q1/propose", json={"reason": "outlier"}, headers=ADMIN)
    resp = client.post(f"/question-responses/{rid}/q1/cancel", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["status"] == "Active"
    assert resp.json()["entry"]["action"] == "Cancelled"


def test_store_failure_is_503(rid, client, mocker):
    from survey_takeout.logic import repository_responses

    mocker.patch.object(
        repository_responses,
        "get_question_response",
        side_effect=OperationalError("SELECT", {}, Exception("connection refused")),
    )
    _assert_problem(
        client.post(f"/question-responses/{rid}/q1/propose", json={"reason": "outlier"}, headers=ADMIN),
        503,
        "STORE_UNAVAILABLE",
    )


def test_bulk_contract_and_capabilities(seed, client, rid):
    other = _submit(client, "eve@example.com", 9).json()["response_ids"][0]
    items = [{"response_id": rid, "question_id": "q1"}, {"response_id": other, "question_id": "q1"}]

    _assert_problem(
        client.post("/takeouts/bulk", json={"operation": "propose", "items": items, "reason": "x"}, headers=LEAD),
        403,
        "PERMISSION_DENIED",
    )
    proposed = client.post("/takeouts/bulk", json={"operation": "propose", "items": items, "reason": "outlier"}, headers=ADMIN)
    assert proposed.status_code == 200
    _validate("bulk_result", proposed.json())

    client.post(f"/question-responses/{other}/q1/reject", json={"reason": "valid"}, headers=LEAD)
    approved = client.post("/takeouts/bulk", json={"operation": "approve", "items": items}, headers=LEAD)
    body = approved.json()
    _validate("bulk_result", body)
    assert body["succeeded"] == [items[0]]
    assert body["failed"][0]["item"] == items[1]
    assert body["failed"][0]["error_kind"] == "AlreadyResolved"

    _assert_problem(
        client.post("/takeouts/bulk", json={"operation": "reject", "items": items, "reason": ""}, headers=LEAD),
        422,
        "TAKEOUT_REASON_REQUIRED",
    )
    _assert_problem(
        client.post("/takeouts/bulk", json={"operation": "purge", "items": items}, headers=LEAD),
        422,
        "REQUEST_INVALID",
    )


def test_queues(rid, client):
    client.post(f"/question-responses/{rid}/q1/propose", json={"reason": "outlier"}, headers=ADMIN)
    pending = client.get("/takeouts/pending", headers=LEAD)
    assert pending.status_code == 200
    assert [i["response_id"] for i in pending.json()] == [rid]
    listed = client.get("/takeouts", params={"status": "ProposedTakeout", "function_id": "fn-1"}, headers=ADMIN)
    assert [i["question_id"] for i in listed.json()] == ["q1"]
    assert client.get("/takeouts", params={"status": "Bogus"}, headers=ADMIN).status_code == 422


def test_comparison_contract(rid, client):
    _submit(client, "eve@example.com", 9)
    client.post(f"/question-responses/{rid}/q1/propose", json={"reason": "outlier"}, headers=ADMIN)
    client.post(f"/question-responses/{rid}/q1/approve", headers=LEAD)

    resp = client.get("/api/v1/surveys/s1/takeout-comparison", headers=LEAD)
    assert resp.status_code == 200
    body = resp.json()
    _validate("comparison", body)
    per_q = {q["question_id"]: q for q in body["per_question"]}
    assert (per_q["q1"]["avg_before"], per_q["q1"]["avg_after"]) == (6.0, 9.0)
    assert per_q["q2"]["avg_before"] is None
    assert per_q["q1"]["takeout_reason"] == "outlier"

    _assert_problem(
        client.get("/surveys/s1/takeout-comparison", params={"function_id": "ghost"}, headers=LEAD),
        404,
        "RESOURCE_NOT_FOUND",
    )
    stats = client.get("/surveys/s1/approval-statistics", headers=ADMIN).json()
    assert stats["overall"]["taken_out"] == 1


def test_function_scores_contract(seed, client):
    seed.survey("scored", questions=[("q1", "Rating"), ("q2", "Text")], target_score=5)
    seed.function("fn-1", ["app-1"])
    _submit(client, "dana@example.com", 3, survey_id="scored")
    _submit(client, "eve@example.com", 9, survey_id="scored")

    resp = client.get("/surveys/scored/function-scores", headers=LEAD)
    assert resp.status_code == 200, resp.text
    assert resp.json() == [
        {
            "function_id": "fn-1",
            "function_name": "Function fn-1",
            "average_score": 6.0,
            "target_score": 5.0,
            "status": "On Track",
            "response_count": 2,
        }
    ]
    assert client.get("/surveys/scored/function-scores", params={"department_id": "dept-9"}, headers=ADMIN).json() == []
    _assert_problem(client.get("/surveys/ghost/function-scores", headers=LEAD), 404, "RESOURCE_NOT_FOUND")
    _assert_problem(client.get("/surveys/scored/function-scores"), 401, "ACTOR_MISSING")


def test_best_comment_flow(rid, client):
    marked = client.post(f"/question-responses/{rid}/q2/best-comment", headers=ADMIN)
    assert marked.status_code == 200, marked.text
    qr_id = marked.json()["question_response_id"]

    _assert_problem(client.post(f"/question-responses/{rid}/q1/best-comment", headers=ADMIN), 404, "RESOURCE_NOT_FOUND")
    _assert_problem(
        client.put(f"/best-comments/{qr_id}/feedback", json={"feedback_text": "nice"}, headers=ADMIN),
        403,
        "PERMISSION_DENIED",
    )
    fb = client.put(f"/best-comments/{qr_id}/feedback", json={"feedback_text": "nice"}, headers=LEAD)
    assert fb.json()["feedback_text"] == "nice"

    listed = client.get("/best-comments", params={"survey_id": "s1"}, headers=LEAD).json()
    assert [c["comment"] for c in listed] == ["comment from dana@example.com"]

    assert client.delete(f"/question-responses/{rid}/q2/best-comment", headers=ADMIN).status_code == 204
    _assert_problem(
        client.put(f"/best-comments/{qr_id}/feedback", json={"feedback_text": "again"}, headers=LEAD),
        404,
        "RESOURCE_NOT_FOUND",
    )


def test_respondents_listing(seed, client):
    seed.survey("open", questions=[("q1", "Rating"), ("q2", "Text")], duplicate_prevention=False)
    _submit(client, "dana@example.com", 3, survey_id="open")
    _submit(client, "dana@example.com", 4, survey_id="open")
    resp = client.get("/surveys/open/respondents", params={"duplicate_filter": "duplicate"}, headers=ADMIN)
    assert resp.status_code == 200
    assert len(resp.json()) == 2
    assert all(r["is_duplicate"] for r in resp.json())
    _assert_problem(
        client.get("/surveys/open/respondents", params={"duplicate_filter": "odd"}, headers=ADMIN),
        422,
        "REQUEST_INVALID",
    )


def test_request_id_and_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers.get("X-Request-Id")
    echoed = client.get("/health", headers={"X-Request-Id": "req-123"})
    assert echoed.headers["X-Request-Id"] == "req-123"


def test_unknown_route_is_problem_json(client):
    _assert_problem(client.get("/nope"), 404, "RESOURCE_NOT_FOUND")
