"""Before/after-takeout score aggregation.

"Before" averages every numeric answer in scope regardless of takeout
status; "after" drops answers currently TakenOut. Only Rating answers carry
a score; every other kind is counted in `total_responses` but never
averaged. An average with no eligible answers is None, never 0 or NaN.

Results are always computed from the store; nothing here is cached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Set

from survey_takeout.config import load_config
from survey_takeout.db.base import read_only
from survey_takeout.logic import repository_responses as repo
from survey_takeout.logic import repository_surveys as surveys
from survey_takeout.logic.errors import NotFound
from survey_takeout.models.question_kind import QuestionKind, numeric_score
from survey_takeout.models.response_types import (
    ApprovalStatistics,
    Comparison,
    FunctionScore,
    QuestionComparison,
    QuestionResponseRecord,
    QuestionStatusCounts,
    StatusCounts,
)
from survey_takeout.models.takeout_status import TakeoutStatus

logger = logging.getLogger(__name__)

REASON_SEPARATOR = "; "


@dataclass
class _Tally:
    total: int = 0
    taken_out: int = 0
    before_sum: float = 0.0
    before_n: int = 0
    after_sum: float = 0.0
    after_n: int = 0
    reasons: List[str] = field(default_factory=list)

    def add(self, record: QuestionResponseRecord) -> None:
        self.total += 1
        excluded = record.takeout_status is TakeoutStatus.TAKEN_OUT
        if excluded:
            self.taken_out += 1
            reason = (record.takeout_reason or "").strip()
            if reason and reason not in self.reasons:
                self.reasons.append(reason)
        score = numeric_score(record.answer())
        if score is None:
            return
        self.before_sum += score
        self.before_n += 1
        if not excluded:
            self.after_sum += score
            self.after_n += 1


def _mean(total: float, count: int) -> Optional[float]:
    return total / count if count else None


def round_score(value: Optional[float], places: int) -> Optional[float]:
    """Round half-up to `places`; None stays None."""
    if value is None:
        return None
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def aggregate(
    survey_id: str,
    questions: Sequence[Dict],
    records: Iterable[QuestionResponseRecord],
    decimal_places: int = 2,
    function_id: str | None = None,
) -> Comparison:
    """Fold question responses into a Comparison.

    `questions` fixes the output order; display-only questions are skipped.
    Overall averages are taken over every eligible answer, not over the
    per-question averages.
    """
    tallies: Dict[str, _Tally] = {}
    meta: Dict[str, Dict] = {}
    for q in questions:
        if q["kind"] is QuestionKind.HERO_COVER:
            continue
        tallies[q["question_id"]] = _Tally()
        meta[q["question_id"]] = q

    overall = _Tally()
    for record in records:
        if record.question_kind is QuestionKind.HERO_COVER:
            continue
        if record.question_id not in tallies:
            tallies[record.question_id] = _Tally()
            meta[record.question_id] = {"question_id": record.question_id, "kind": record.question_kind, "prompt_text": None}
        tallies[record.question_id].add(record)
        overall.add(record)

    per_question = [
        QuestionComparison(
            question_id=qid,
            question_text=meta[qid].get("prompt_text"),
            question_kind=meta[qid]["kind"],
            total_responses=t.total,
            takeout_count=t.taken_out,
            avg_before=round_score(_mean(t.before_sum, t.before_n), decimal_places),
            avg_after=round_score(_mean(t.after_sum, t.after_n), decimal_places),
            takeout_reason=REASON_SEPARATOR.join(t.reasons),
        )
        for qid, t in tallies.items()
    ]
    return Comparison(
        survey_id=survey_id,
        function_id=function_id,
        per_question=per_question,
        overall_avg_before=round_score(_mean(overall.before_sum, overall.before_n), decimal_places),
        overall_avg_after=round_score(_mean(overall.after_sum, overall.after_n), decimal_places),
    )


def compute_comparison(survey_id: str, function_id: str | None = None) -> Comparison:
    """Per-question and overall before/after averages for a survey scope."""
    places = load_config().scoring.decimal_places
    with read_only("compute_comparison") as conn:
        if not surveys.survey_exists(conn, survey_id):
            raise NotFound(f"survey {survey_id} not found")
        if function_id and not surveys.function_exists(conn, function_id):
            raise NotFound(f"function {function_id} not found")
        questions = surveys.list_questions(conn, survey_id)
        records = repo.list_scope_rows(conn, survey_id, function_id=function_id)
    result = aggregate(survey_id, questions, records, decimal_places=places, function_id=function_id)
    logger.info(
        "comparison_computed survey=%s function=%s rows=%s before=%s after=%s",
        survey_id,
        function_id,
        len(records),
        result.overall_avg_before,
        result.overall_avg_after,
    )
    return result


_STATUS_FIELDS = {
    TakeoutStatus.ACTIVE: "active",
    TakeoutStatus.PROPOSED_TAKEOUT: "proposed_takeout",
    TakeoutStatus.TAKEN_OUT: "taken_out",
    TakeoutStatus.REJECTED: "rejected",
}


def _bump(counts: StatusCounts, status: TakeoutStatus) -> None:
    name = _STATUS_FIELDS[status]
    setattr(counts, name, getattr(counts, name) + 1)
    counts.total += 1


def approval_statistics(
    survey_id: str,
    question_id: str | None = None,
    application_id: str | None = None,
    department_id: str | None = None,
) -> ApprovalStatistics:
    """Counts of question responses per takeout status, overall and per question."""
    with read_only("approval_statistics") as conn:
        if not surveys.survey_exists(conn, survey_id):
            raise NotFound(f"survey {survey_id} not found")
        questions = surveys.list_questions(conn, survey_id)
        records = repo.list_scope_rows(
            conn,
            survey_id,
            application_id=application_id,
            department_id=department_id,
            question_id=question_id,
        )

    prompts = {q["question_id"]: q.get("prompt_text") for q in questions}
    overall = StatusCounts()
    by_question: Dict[str, QuestionStatusCounts] = {}
    for record in records:
        bucket = by_question.get(record.question_id)
        if bucket is None:
            bucket = QuestionStatusCounts(question_id=record.question_id, question_text=prompts.get(record.question_id))
            by_question[record.question_id] = bucket
        _bump(bucket, record.takeout_status)
        _bump(overall, record.takeout_status)

    order = {q["question_id"]: i for i, q in enumerate(questions)}
    ordered = sorted(by_question.values(), key=lambda b: (order.get(b.question_id, len(order)), b.question_id))
    return ApprovalStatistics(survey_id=survey_id, overall=overall, by_question=ordered)


ON_TRACK = "On Track"
BELOW_TARGET = "Below Target"


def target_status(average: Optional[float], target: Optional[float]) -> Optional[str]:
    if average is None or target is None:
        return None
    return ON_TRACK if average >= target else BELOW_TARGET


def scores_by_function(survey_id: str, department_id: str | None = None) -> List[FunctionScore]:
    """Per-function average of the scores still counted after takeout.

    A response belongs to every function its application is mapped to.
    Functions appear once they have at least one question response in scope;
    one whose answers are all unscored or TakenOut reports a null average and
    a null status. `response_count` counts distinct responses that contributed
    a score. Rows are ordered by function name.
    """
    places = load_config().scoring.decimal_places
    with read_only("scores_by_function") as conn:
        survey = surveys.get_survey(conn, survey_id)
        if survey is None:
            raise NotFound(f"survey {survey_id} not found")
        memberships = surveys.list_application_functions(conn)
        records = repo.list_scope_rows(conn, survey_id, department_id=department_id)

    target = survey["target_score"]
    names: Dict[str, str] = {}
    tallies: Dict[str, _Tally] = {}
    responses: Dict[str, Set[str]] = {}
    for record in records:
        if record.question_kind is QuestionKind.HERO_COVER:
            continue
        scored = (
            record.takeout_status is not TakeoutStatus.TAKEN_OUT
            and numeric_score(record.answer()) is not None
        )
        for fn in memberships.get(record.application_id, []):
            fid = fn["function_id"]
            names[fid] = fn["name"]
            tallies.setdefault(fid, _Tally()).add(record)
            seen = responses.setdefault(fid, set())
            if scored:
                seen.add(record.response_id)

    result = []
    for fid, t in tallies.items():
        average = round_score(_mean(t.after_sum, t.after_n), places)
        result.append(
            FunctionScore(
                function_id=fid,
                function_name=names[fid],
                average_score=average,
                target_score=target,
                status=target_status(average, target),
                response_count=len(responses[fid]),
            )
        )
    result.sort(key=lambda s: (s.function_name, s.function_id))
    logger.info(
        "function_scores_computed survey=%s department=%s functions=%s target=%s",
        survey_id,
        department_id,
        len(result),
        target,
    )
    return result


__all__ = [
    "REASON_SEPARATOR",
    "round_score",
    "aggregate",
    "compute_comparison",
    "approval_statistics",
    "ON_TRACK",
    "BELOW_TARGET",
    "target_status",
    "scores_by_function",
]
