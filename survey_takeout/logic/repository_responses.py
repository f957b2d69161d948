"""Response and question-response data access helpers.

Encapsulates the SQL behind submission, the takeout workflow and reporting
so logic modules stay free of inline queries. Every helper takes the caller's
connection; transaction boundaries belong to the caller.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import bindparam, text as sql_text
from sqlalchemy.engine import Connection

from survey_takeout.logic.timestamps import utc_now_iso
from survey_takeout.models.question_kind import QuestionKind
from survey_takeout.models.response_types import (
    QuestionResponseRecord,
    Respondent,
    TakeoutQueueItem,
)
from survey_takeout.models.takeout_status import TakeoutStatus

_QR_SELECT = """
    SELECT qr.question_response_id, qr.response_id, qr.question_id, qr.kind,
           qr.text_value, qr.numeric_value, qr.date_value, qr.selected_options,
           qr.matrix_values, qr.signature_ref, qr.comment_value,
           qr.takeout_status, qr.takeout_reason, qr.status_version,
           r.survey_id, r.application_id, r.department_id, r.respondent_email,
           r.submitted_at
    FROM question_responses qr
    JOIN responses r ON r.response_id = qr.response_id
"""

# Restricts rows to applications mapped to a function
_FUNCTION_SCOPE = """
    EXISTS (
        SELECT 1 FROM function_applications fa
        WHERE fa.application_id = r.application_id AND fa.function_id = :fid
    )
"""


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _record(row: Any) -> QuestionResponseRecord:
    m = dict(row)
    return QuestionResponseRecord(
        question_response_id=str(m["question_response_id"]),
        response_id=str(m["response_id"]),
        question_id=str(m["question_id"]),
        survey_id=str(m["survey_id"]),
        application_id=str(m["application_id"]),
        department_id=m.get("department_id"),
        respondent_email=str(m["respondent_email"]),
        question_kind=QuestionKind(m["kind"]),
        text_value=m.get("text_value"),
        numeric_value=None if m.get("numeric_value") is None else float(m["numeric_value"]),
        date_value=m.get("date_value"),
        selected_options=m.get("selected_options"),
        matrix_values=m.get("matrix_values"),
        signature_ref=m.get("signature_ref"),
        comment_value=m.get("comment_value"),
        takeout_status=TakeoutStatus(m["takeout_status"]),
        takeout_reason=m.get("takeout_reason"),
        status_version=int(m.get("status_version") or 0),
        submitted_at=m.get("submitted_at"),
    )


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


def find_prior_responses(
    conn: Connection,
    survey_id: str,
    normalized_email: str,
    application_ids: Iterable[str],
) -> List[str]:
    """Response ids for the same survey + respondent covering any application."""
    app_ids = [str(a) for a in application_ids]
    if not app_ids:
        return []
    stmt = sql_text(
        """
        SELECT response_id FROM responses
        WHERE survey_id = :sid
          AND normalized_email = :email
          AND application_id IN :apps
        ORDER BY submitted_at ASC, response_id ASC
        """
    ).bindparams(bindparam("apps", expanding=True))
    rows = conn.execute(stmt, {"sid": survey_id, "email": normalized_email, "apps": app_ids}).fetchall()
    return [str(r[0]) for r in rows]


def insert_response(
    conn: Connection,
    survey_id: str,
    respondent_name: str | None,
    respondent_email: str,
    application_id: str,
    department_id: str | None,
    prevent_duplicates: bool = True,
) -> str:
    """Insert one response row.

    With `prevent_duplicates` the unique constraint on
    (survey_id, dedupe_email, application_id) applies to this row.
    """
    response_id = str(uuid.uuid4())
    nemail = normalize_email(respondent_email)
    conn.execute(
        sql_text(
            """
            INSERT INTO responses (response_id, survey_id, respondent_name, respondent_email,
                                   normalized_email, dedupe_email, application_id, department_id,
                                   submitted_at)
            VALUES (:rid, :sid, :name, :email, :nemail, :dedupe, :app, :dept, :at)
            """
        ),
        {
            "rid": response_id,
            "sid": survey_id,
            "name": respondent_name,
            "email": respondent_email.strip(),
            "nemail": nemail,
            "dedupe": nemail if prevent_duplicates else None,
            "app": application_id,
            "dept": department_id,
            "at": utc_now_iso(),
        },
    )
    return response_id


def insert_question_response(
    conn: Connection,
    response_id: str,
    question_id: str,
    kind: QuestionKind,
    columns: Dict[str, Any],
) -> str:
    qr_id = str(uuid.uuid4())
    conn.execute(
        sql_text(
            """
            INSERT INTO question_responses (
                question_response_id, response_id, question_id, kind,
                text_value, numeric_value, date_value, selected_options,
                matrix_values, signature_ref, comment_value,
                takeout_status, status_version
            )
            VALUES (
                :qrid, :rid, :qid, :kind,
                :text_value, :numeric_value, :date_value, :selected_options,
                :matrix_values, :signature_ref, :comment_value,
                :status, 0
            )
            """
        ),
        {
            "qrid": qr_id,
            "rid": response_id,
            "qid": question_id,
            "kind": QuestionKind(kind).value,
            "status": TakeoutStatus.ACTIVE.value,
            **columns,
        },
    )
    return qr_id


def list_respondents(
    conn: Connection,
    survey_id: str,
    application_id: str | None = None,
    department_id: str | None = None,
) -> List[Respondent]:
    """Respondents of a survey with per email+application duplicate counts.

    Duplicate counts are computed over the whole survey so that an
    application/department filter never hides the other copies.
    """
    query = """
        SELECT r.response_id, r.respondent_name, r.respondent_email, r.application_id,
               r.department_id, r.submitted_at,
               (SELECT COUNT(*) FROM responses d
                WHERE d.survey_id = r.survey_id
                  AND d.normalized_email = r.normalized_email
                  AND d.application_id = r.application_id) AS duplicate_count
        FROM responses r
        WHERE r.survey_id = :sid
    """
    params: Dict[str, Any] = {"sid": survey_id}
    if application_id:
        query += " AND r.application_id = :app"
        params["app"] = application_id
    if department_id:
        query += " AND r.department_id = :dept"
        params["dept"] = department_id
    query += " ORDER BY r.submitted_at DESC, r.response_id ASC"
    rows = conn.execute(sql_text(query), params).mappings().all()
    result: List[Respondent] = []
    for r in rows:
        count = int(r["duplicate_count"] or 0)
        result.append(
            Respondent(
                response_id=str(r["response_id"]),
                respondent_name=r["respondent_name"],
                respondent_email=str(r["respondent_email"]),
                application_id=str(r["application_id"]),
                department_id=r["department_id"],
                submitted_at=r["submitted_at"],
                duplicate_count=count,
                is_duplicate=count > 1,
            )
        )
    return result


# ---------------------------------------------------------------------------
# Takeout workflow
# ---------------------------------------------------------------------------


def get_question_response(conn: Connection, response_id: str, question_id: str) -> Optional[QuestionResponseRecord]:
    row = conn.execute(
        sql_text(_QR_SELECT + " WHERE qr.response_id = :rid AND qr.question_id = :qid"),
        {"rid": response_id, "qid": question_id},
    ).mappings().fetchone()
    return _record(row) if row is not None else None


def compare_and_set_status(
    conn: Connection,
    question_response_id: str,
    expected_version: int,
    expected_status: TakeoutStatus,
    new_status: TakeoutStatus,
    fields: Dict[str, Any],
) -> bool:
    """Move a question response to `new_status` if nobody changed it first.

    `fields` holds the takeout bookkeeping columns to overwrite
    (takeout_reason, proposed_by, proposed_at, reviewed_by, reviewed_at).
    Returns False when the version/status no longer match.
    """
    allowed = {"takeout_reason", "proposed_by", "proposed_at", "reviewed_by", "reviewed_at"}
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"unexpected columns: {sorted(unknown)}")
    assignments = "".join(f", {col} = :{col}" for col in sorted(fields))
    result = conn.execute(
        sql_text(
            f"""
            UPDATE question_responses
            SET takeout_status = :new_status,
                status_version = status_version + 1{assignments}
            WHERE question_response_id = :qrid
              AND status_version = :version
              AND takeout_status = :expected_status
            """
        ),
        {
            "new_status": new_status.value,
            "qrid": question_response_id,
            "version": int(expected_version),
            "expected_status": expected_status.value,
            **fields,
        },
    )
    return int(result.rowcount or 0) == 1


def list_takeouts(
    conn: Connection,
    status: TakeoutStatus = TakeoutStatus.PROPOSED_TAKEOUT,
    survey_id: str | None = None,
    application_id: str | None = None,
    department_id: str | None = None,
    function_id: str | None = None,
    it_lead_user_id: str | None = None,
) -> List[TakeoutQueueItem]:
    query = """
        SELECT qr.question_response_id, qr.response_id, qr.question_id, qr.takeout_status,
               qr.takeout_reason, qr.proposed_by, qr.proposed_at,
               r.survey_id, r.application_id, r.department_id, r.respondent_email
        FROM question_responses qr
        JOIN responses r ON r.response_id = qr.response_id
        WHERE qr.takeout_status = :status
    """
    params: Dict[str, Any] = {"status": TakeoutStatus(status).value}
    if survey_id:
        query += " AND r.survey_id = :sid"
        params["sid"] = survey_id
    if application_id:
        query += " AND r.application_id = :app"
        params["app"] = application_id
    if department_id:
        query += " AND r.department_id = :dept"
        params["dept"] = department_id
    if function_id:
        query += " AND " + _FUNCTION_SCOPE
        params["fid"] = function_id
    if it_lead_user_id:
        query += """
            AND EXISTS (
                SELECT 1 FROM function_applications fa
                JOIN functions f ON f.function_id = fa.function_id
                WHERE fa.application_id = r.application_id AND f.it_lead_user_id = :lead
            )
        """
        params["lead"] = it_lead_user_id
    query += " ORDER BY qr.proposed_at DESC, qr.question_response_id ASC"
    rows = conn.execute(sql_text(query), params).mappings().all()
    return [
        TakeoutQueueItem(
            question_response_id=str(r["question_response_id"]),
            response_id=str(r["response_id"]),
            question_id=str(r["question_id"]),
            survey_id=str(r["survey_id"]),
            application_id=str(r["application_id"]),
            department_id=r["department_id"],
            respondent_email=str(r["respondent_email"]),
            takeout_status=TakeoutStatus(r["takeout_status"]),
            takeout_reason=r["takeout_reason"],
            proposed_by=r["proposed_by"],
            proposed_at=r["proposed_at"],
        )
        for r in rows
    ]


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def list_scope_rows(
    conn: Connection,
    survey_id: str,
    function_id: str | None = None,
    application_id: str | None = None,
    department_id: str | None = None,
    question_id: str | None = None,
) -> List[QuestionResponseRecord]:
    """All question responses of a survey, optionally narrowed."""
    query = _QR_SELECT + " WHERE r.survey_id = :sid"
    params: Dict[str, Any] = {"sid": survey_id}
    if function_id:
        query += " AND " + _FUNCTION_SCOPE
        params["fid"] = function_id
    if application_id:
        query += " AND r.application_id = :app"
        params["app"] = application_id
    if department_id:
        query += " AND r.department_id = :dept"
        params["dept"] = department_id
    if question_id:
        query += " AND qr.question_id = :qid"
        params["qid"] = question_id
    query += " ORDER BY qr.question_id ASC, r.submitted_at ASC"
    rows = conn.execute(sql_text(query), params).mappings().all()
    return [_record(r) for r in rows]


__all__ = [
    "normalize_email",
    "find_prior_responses",
    "insert_response",
    "insert_question_response",
    "list_respondents",
    "get_question_response",
    "compare_and_set_status",
    "list_takeouts",
    "list_scope_rows",
]
