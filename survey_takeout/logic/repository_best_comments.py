"""Best-comment data access helpers."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from survey_takeout.models.question_kind import comment_text, decode_answer
from survey_takeout.models.response_types import BestComment

_BEST_SELECT = """
    SELECT bc.question_response_id, bc.curator_id, bc.curated_at,
           bc.feedback_text, bc.feedback_author_id, bc.feedback_at,
           qr.response_id, qr.question_id, qr.kind, qr.text_value, qr.comment_value,
           r.survey_id, r.application_id, r.department_id
    FROM best_comments bc
    JOIN question_responses qr ON qr.question_response_id = bc.question_response_id
    JOIN responses r ON r.response_id = qr.response_id
"""


def _best(row: Any) -> BestComment:
    m = dict(row)
    answer = decode_answer(m["kind"], m)
    return BestComment(
        question_response_id=str(m["question_response_id"]),
        response_id=str(m["response_id"]),
        question_id=str(m["question_id"]),
        survey_id=m.get("survey_id"),
        application_id=m.get("application_id"),
        department_id=m.get("department_id"),
        comment=comment_text(answer),
        curator_id=str(m["curator_id"]),
        curated_at=str(m["curated_at"]),
        feedback_text=m.get("feedback_text"),
        feedback_author_id=m.get("feedback_author_id"),
        feedback_at=m.get("feedback_at"),
    )


def get_best_comment(conn: Connection, question_response_id: str) -> Optional[BestComment]:
    row = conn.execute(
        sql_text(_BEST_SELECT + " WHERE bc.question_response_id = :qrid"),
        {"qrid": question_response_id},
    ).mappings().fetchone()
    return _best(row) if row is not None else None


def insert_best_comment(conn: Connection, question_response_id: str, curator_id: str, curated_at: str) -> None:
    conn.execute(
        sql_text(
            """
            INSERT INTO best_comments (question_response_id, curator_id, curated_at)
            VALUES (:qrid, :curator, :at)
            """
        ),
        {"qrid": question_response_id, "curator": curator_id, "at": curated_at},
    )


def delete_best_comment(conn: Connection, question_response_id: str) -> bool:
    result = conn.execute(
        sql_text("DELETE FROM best_comments WHERE question_response_id = :qrid"),
        {"qrid": question_response_id},
    )
    return int(result.rowcount or 0) > 0


def set_feedback(
    conn: Connection,
    question_response_id: str,
    feedback_text: str,
    author_id: str,
    at: str,
) -> bool:
    result = conn.execute(
        sql_text(
            """
            UPDATE best_comments
            SET feedback_text = :text, feedback_author_id = :author, feedback_at = :at
            WHERE question_response_id = :qrid
            """
        ),
        {"qrid": question_response_id, "text": feedback_text, "author": author_id, "at": at},
    )
    return int(result.rowcount or 0) == 1


def list_best_comments(
    conn: Connection,
    survey_id: str | None = None,
    application_id: str | None = None,
    department_id: str | None = None,
    function_id: str | None = None,
) -> List[BestComment]:
    query = _BEST_SELECT + " WHERE 1 = 1"
    params: Dict[str, Any] = {}
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
        query += """
            AND EXISTS (
                SELECT 1 FROM function_applications fa
                WHERE fa.application_id = r.application_id AND fa.function_id = :fid
            )
        """
        params["fid"] = function_id
    query += " ORDER BY bc.curated_at DESC, bc.question_response_id ASC"
    return [_best(r) for r in conn.execute(sql_text(query), params).mappings().all()]


__all__ = [
    "get_best_comment",
    "insert_best_comment",
    "delete_best_comment",
    "set_feedback",
    "list_best_comments",
]
