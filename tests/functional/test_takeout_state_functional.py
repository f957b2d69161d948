"""Functional tests for the takeout state machine and its ledger.

Each test drives the real state machine against the SQLite store seeded by
conftest. Status and ledger are read back through the public helpers so the
tests also cover the atomic status + ledger write.
"""

from __future__ import annotations

import threading

import pytest

from survey_takeout.logic import approval_ledger
from survey_takeout.logic import repository_responses as repo
from survey_takeout.logic.actor import Actor
from survey_takeout.logic.errors import AlreadyResolved, InvalidTransition, MissingReason, NotFound
from survey_takeout.logic.takeout_state import TakeoutStateMachine, current_status, list_takeouts, pending_for_approver
from survey_takeout.models.takeout_status import ApprovalAction, TakeoutStatus

ADMIN = Actor(actor_id="admin1", role="admin")
LEAD = Actor(actor_id="lead1", role="it_lead")
OTHER_LEAD = Actor(actor_id="lead2", role="it_lead")


@pytest.fixture
def sm() -> TakeoutStateMachine:
    return TakeoutStateMachine()


@pytest.fixture
def r1(seed) -> str:
    seed.survey("s1", questions=[("q1", "Rating"), ("q2", "Text")])
    return seed.respond("s1", "alice@example.com", {"q1": {"numeric_value": 3}, "q2": {"text_value": "slow"}})[0]


def _assert_ledger_matches_status(rid: str, qid: str) -> None:
    history = approval_ledger.history_for(rid, qid)
    expected = history[-1].to_status if history else TakeoutStatus.ACTIVE
    assert current_status(rid, qid) is expected


def test_new_question_response_starts_active_with_empty_history(r1):
    assert current_status(r1, "q1") is TakeoutStatus.ACTIVE
    assert approval_ledger.history_for(r1, "q1") == []
    _assert_ledger_matches_status(r1, "q1")


def test_propose_reject_repropose_approve_scenario(sm, r1):
    assert sm.propose(r1, "q1", "outlier", ADMIN).status is TakeoutStatus.PROPOSED_TAKEOUT
    _assert_ledger_matches_status(r1, "q1")
    assert sm.reject(r1, "q1", "insufficient reason", LEAD).status is TakeoutStatus.REJECTED
    _assert_ledger_matches_status(r1, "q1")
    assert sm.propose(r1, "q1", "re-submitted with evidence", ADMIN).status is TakeoutStatus.PROPOSED_TAKEOUT
    _assert_ledger_matches_status(r1, "q1")
    assert sm.approve(r1, "q1", None, LEAD).status is TakeoutStatus.TAKEN_OUT
    _assert_ledger_matches_status(r1, "q1")

    history = approval_ledger.history_for(r1, "q1")
    assert len(history) == 4
    assert [e.action for e in history] == [
        ApprovalAction.PROPOSED,
        ApprovalAction.REJECTED,
        ApprovalAction.PROPOSED,
        ApprovalAction.APPROVED,
    ]
    assert [e.sequence_no for e in history] == [1, 2, 3, 4]
    assert history[0].reason == "outlier"
    assert history[1].actor_id == "lead1" and history[1].actor_role == "it_lead"
    assert history[2].from_status is TakeoutStatus.REJECTED
    assert history[3].reason is None


def test_second_approve_is_already_resolved_without_new_entry(sm, r1):
    sm.propose(r1, "q1", "outlier", ADMIN)
    sm.approve(r1, "q1", "ok", LEAD)
    with pytest.raises(AlreadyResolved):
        sm.approve(r1, "q1", None, OTHER_LEAD)
    assert len(approval_ledger.history_for(r1, "q1")) == 2
    assert current_status(r1, "q1") is TakeoutStatus.TAKEN_OUT


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_propose_without_reason_changes_nothing(sm, r1, reason):
    with pytest.raises(MissingReason):
        sm.propose(r1, "q1", reason, ADMIN)
    assert current_status(r1, "q1") is TakeoutStatus.ACTIVE
    assert approval_ledger.history_for(r1, "q1") == []


def test_reject_requires_reason(sm, r1):
    sm.propose(r1, "q1", "outlier", ADMIN)
    with pytest.raises(MissingReason):
        sm.reject(r1, "q1", " ", LEAD)
    assert current_status(r1, "q1") is TakeoutStatus.PROPOSED_TAKEOUT
    assert len(approval_ledger.history_for(r1, "q1")) == 1


def test_double_propose_is_invalid_transition(sm, r1):
    sm.propose(r1, "q1", "outlier", ADMIN)
    with pytest.raises(InvalidTransition):
        sm.propose(r1, "q1", "again", ADMIN)
    assert len(approval_ledger.history_for(r1, "q1")) == 1


def test_propose_on_taken_out_is_invalid_transition(sm, r1):
    sm.propose(r1, "q1", "outlier", ADMIN)
    sm.approve(r1, "q1", None, LEAD)
    with pytest.raises(InvalidTransition):
        sm.propose(r1, "q1", "again", ADMIN)


@pytest.mark.parametrize("operation", ["approve", "reject", "cancel"])
def test_decisions_on_active_are_invalid_transition(sm, r1, operation):
    with pytest.raises(InvalidTransition):
        sm.apply(operation, r1, "q1", "because", LEAD)
    assert approval_ledger.history_for(r1, "q1") == []


@pytest.mark.parametrize("operation", ["approve", "reject", "cancel"])
def test_decisions_on_rejected_are_already_resolved(sm, r1, operation):
    sm.propose(r1, "q1", "outlier", ADMIN)
    sm.reject(r1, "q1", "no", LEAD)
    with pytest.raises(AlreadyResolved):
        sm.apply(operation, r1, "q1", "because", LEAD)


def test_cancel_returns_to_active_with_distinct_action(sm, r1):
    sm.propose(r1, "q1", "outlier", ADMIN)
    result = sm.cancel_proposal(r1, "q1", ADMIN)
    assert result.status is TakeoutStatus.ACTIVE
    entry = approval_ledger.latest_entry(r1, "q1")
    assert entry is not None
    assert entry.action is ApprovalAction.CANCELLED
    assert (entry.from_status, entry.to_status) == (TakeoutStatus.PROPOSED_TAKEOUT, TakeoutStatus.ACTIVE)
    _assert_ledger_matches_status(r1, "q1")


def test_unknown_pair_is_not_found(sm, r1):
    with pytest.raises(NotFound):
        sm.propose("missing", "q1", "outlier", ADMIN)
    with pytest.raises(NotFound):
        sm.propose(r1, "nope", "outlier", ADMIN)


def test_lost_compare_and_set_reports_already_resolved(sm, r1, mocker):
    sm.propose(r1, "q1", "outlier", ADMIN)
    real_get = repo.get_question_response
    calls = {"n": 0}

    def racing_get(conn, rid, qid):
        calls["n"] += 1
        record = real_get(conn, rid, qid)
        if calls["n"] > 1 and record is not None:
            return record.model_copy(update={"takeout_status": TakeoutStatus.TAKEN_OUT})
        return record

    mocker.patch.object(repo, "get_question_response", side_effect=racing_get)
    mocker.patch.object(repo, "compare_and_set_status", return_value=False)

    with pytest.raises(AlreadyResolved):
        sm.approve(r1, "q1", None, LEAD)
    mocker.stopall()
    assert len(approval_ledger.history_for(r1, "q1")) == 1
    assert current_status(r1, "q1") is TakeoutStatus.PROPOSED_TAKEOUT


def test_concurrent_approvals_have_exactly_one_winner(sm, r1):
    sm.propose(r1, "q1", "outlier", ADMIN)
    barrier = threading.Barrier(2)
    outcomes: list = []
    lock = threading.Lock()

    def approve(actor: Actor) -> None:
        barrier.wait()
        try:
            sm.approve(r1, "q1", None, actor)
            result = "ok"
        except AlreadyResolved:
            result = "already"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=approve, args=(a,)) for a in (LEAD, OTHER_LEAD)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert sorted(outcomes) == ["already", "ok"]
    history = approval_ledger.history_for(r1, "q1")
    assert [e.action for e in history] == [ApprovalAction.PROPOSED, ApprovalAction.APPROVED]


def test_queues_list_pending_proposals(sm, seed):
    seed.survey("s1", questions=[("q1", "Rating")])
    seed.function("fn-a", ["app-a"], it_lead="lead1")
    seed.function("fn-b", ["app-b"], it_lead="lead2")
    ra = seed.respond("s1", "a@example.com", {"q1": {"numeric_value": 1}}, applications=["app-a"])[0]
    rb = seed.respond("s1", "b@example.com", {"q1": {"numeric_value": 2}}, applications=["app-b"])[0]
    sm.propose(ra, "q1", "outlier", ADMIN)
    sm.propose(rb, "q1", "outlier", ADMIN)

    assert {i.response_id for i in list_takeouts(survey_id="s1")} == {ra, rb}
    assert [i.response_id for i in list_takeouts(function_id="fn-a")] == [ra]
    assert [i.response_id for i in pending_for_approver("lead2")] == [rb]
    assert list_takeouts(status=TakeoutStatus.TAKEN_OUT) == []

    item = pending_for_approver("lead1")[0]
    assert item.takeout_reason == "outlier"
    assert item.proposed_by == "admin1"
