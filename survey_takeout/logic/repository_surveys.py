"""Survey, question and function-mapping data access helpers.

Surveys, questions and the function/application hierarchy are owned by
external collaborators; the core only reads them to scope its queries. The
insert helpers exist for seeding and tests.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from survey_takeout.logic.timestamps import utc_now_iso
from survey_takeout.models.question_kind import QuestionKind


def get_survey(conn: Connection, survey_id: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        sql_text(
            "SELECT survey_id, title, duplicate_prevention_enabled, target_score FROM surveys WHERE survey_id = :sid"
        ),
        {"sid": survey_id},
    ).mappings().fetchone()
    if row is None:
        return None
    return {
        "survey_id": str(row["survey_id"]),
        "title": row["title"],
        "duplicate_prevention_enabled": bool(row["duplicate_prevention_enabled"]),
        "target_score": None if row["target_score"] is None else float(row["target_score"]),
    }


def survey_exists(conn: Connection, survey_id: str) -> bool:
    row = conn.execute(
        sql_text("SELECT 1 FROM surveys WHERE survey_id = :sid"), {"sid": survey_id}
    ).fetchone()
    return row is not None


def function_exists(conn: Connection, function_id: str) -> bool:
    row = conn.execute(
        sql_text("SELECT 1 FROM functions WHERE function_id = :fid"), {"fid": function_id}
    ).fetchone()
    return row is not None


def list_questions(conn: Connection, survey_id: str) -> List[Dict[str, Any]]:
    """Questions of a survey ordered by display order, then id."""
    rows = conn.execute(
        sql_text(
            """
            SELECT question_id, kind, prompt_text, display_order, is_mandatory
            FROM questions
            WHERE survey_id = :sid
            ORDER BY display_order ASC, question_id ASC
            """
        ),
        {"sid": survey_id},
    ).mappings().all()
    return [
        {
            "question_id": str(r["question_id"]),
            "kind": QuestionKind(r["kind"]),
            "prompt_text": r["prompt_text"],
            "display_order": int(r["display_order"] or 0),
            "is_mandatory": bool(r["is_mandatory"]),
        }
        for r in rows
    ]


def create_survey(
    conn: Connection,
    survey_id: str,
    title: str,
    duplicate_prevention_enabled: bool = True,
    target_score: float | None = None,
) -> None:
    conn.execute(
        sql_text(
            """
            INSERT INTO surveys (survey_id, title, duplicate_prevention_enabled, target_score, created_at)
            VALUES (:sid, :title, :dup, :target, :at)
            """
        ),
        {
            "sid": survey_id,
            "title": title,
            "dup": 1 if duplicate_prevention_enabled else 0,
            "target": target_score,
            "at": utc_now_iso(),
        },
    )


def add_question(
    conn: Connection,
    survey_id: str,
    question_id: str,
    kind: QuestionKind | str,
    prompt_text: str = "",
    display_order: int = 0,
    is_mandatory: bool = False,
) -> None:
    conn.execute(
        sql_text(
            """
            INSERT INTO questions (question_id, survey_id, kind, prompt_text, display_order, is_mandatory)
            VALUES (:qid, :sid, :kind, :prompt, :ord, :mand)
            """
        ),
        {
            "qid": question_id,
            "sid": survey_id,
            "kind": QuestionKind(kind).value,
            "prompt": prompt_text,
            "ord": int(display_order),
            "mand": 1 if is_mandatory else 0,
        },
    )


def create_function(conn: Connection, function_id: str, name: str, it_lead_user_id: str | None = None) -> None:
    conn.execute(
        sql_text("INSERT INTO functions (function_id, name, it_lead_user_id) VALUES (:fid, :name, :lead)"),
        {"fid": function_id, "name": name, "lead": it_lead_user_id},
    )


def map_function_application(conn: Connection, function_id: str, application_id: str) -> None:
    conn.execute(
        sql_text("INSERT INTO function_applications (function_id, application_id) VALUES (:fid, :aid)"),
        {"fid": function_id, "aid": application_id},
    )


def list_application_functions(conn: Connection) -> Dict[str, List[Dict[str, str]]]:
    """Map each application id to the functions it belongs to."""
    rows = conn.execute(
        sql_text(
            """
            SELECT fa.application_id, f.function_id, f.name
            FROM function_applications fa
            JOIN functions f ON f.function_id = fa.function_id
            ORDER BY fa.application_id ASC, f.function_id ASC
            """
        )
    ).mappings().all()
    out: Dict[str, List[Dict[str, str]]] = {}
    for r in rows:
        out.setdefault(str(r["application_id"]), []).append({"function_id": str(r["function_id"]), "name": r["name"]})
    return out


__all__ = [
    "get_survey",
    "survey_exists",
    "function_exists",
    "list_questions",
    "create_survey",
    "add_question",
    "create_function",
    "map_function_application",
    "list_application_functions",
]
