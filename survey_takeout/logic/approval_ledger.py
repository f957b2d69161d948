"""Append-only ledger of takeout transitions.

`record` runs on the caller's connection so the entry commits in the same
transaction as the status change it describes. The module exposes no
update or delete helper.
"""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from survey_takeout.db.base import read_only
from survey_takeout.logic.actor import Actor
from survey_takeout.logic.timestamps import utc_now_iso
from survey_takeout.models.response_types import HistoryEntry
from survey_takeout.models.takeout_status import ApprovalAction, TakeoutStatus

logger = logging.getLogger(__name__)

_ENTRY_SELECT = """
    SELECT entry_id, response_id, question_id, sequence_no, action, from_status,
           to_status, actor_id, actor_role, reason, created_at
    FROM approval_history
"""


def _entry(row) -> HistoryEntry:  # type: ignore[no-untyped-def]
    return HistoryEntry(
        entry_id=str(row["entry_id"]),
        response_id=str(row["response_id"]),
        question_id=str(row["question_id"]),
        sequence_no=int(row["sequence_no"]),
        action=ApprovalAction(row["action"]),
        from_status=TakeoutStatus(row["from_status"]),
        to_status=TakeoutStatus(row["to_status"]),
        actor_id=str(row["actor_id"]),
        actor_role=str(row["actor_role"]),
        reason=row["reason"],
        created_at=str(row["created_at"]),
    )


def record(
    conn: Connection,
    question_response_id: str,
    response_id: str,
    question_id: str,
    action: ApprovalAction,
    from_status: TakeoutStatus,
    to_status: TakeoutStatus,
    actor: Actor,
    reason: Optional[str] = None,
) -> HistoryEntry:
    """Append one entry for a transition and return it."""
    next_seq = conn.execute(
        sql_text(
            "SELECT COALESCE(MAX(sequence_no), 0) + 1 FROM approval_history WHERE question_response_id = :qrid"
        ),
        {"qrid": question_response_id},
    ).scalar_one()
    entry = HistoryEntry(
        entry_id=str(uuid.uuid4()),
        response_id=response_id,
        question_id=question_id,
        sequence_no=int(next_seq),
        action=action,
        from_status=from_status,
        to_status=to_status,
        actor_id=actor.actor_id,
        actor_role=actor.role,
        reason=reason,
        created_at=utc_now_iso(),
    )
    conn.execute(
        sql_text(
            """
            INSERT INTO approval_history (
                entry_id, question_response_id, response_id, question_id, sequence_no,
                action, from_status, to_status, actor_id, actor_role, reason, created_at
            )
            VALUES (
                :entry_id, :qrid, :rid, :qid, :seq,
                :action, :from_status, :to_status, :actor_id, :actor_role, :reason, :created_at
            )
            """
        ),
        {
            "entry_id": entry.entry_id,
            "qrid": question_response_id,
            "rid": response_id,
            "qid": question_id,
            "seq": entry.sequence_no,
            "action": action.value,
            "from_status": from_status.value,
            "to_status": to_status.value,
            "actor_id": actor.actor_id,
            "actor_role": actor.role,
            "reason": reason,
            "created_at": entry.created_at,
        },
    )
    logger.info(
        "ledger_record rs=%s q=%s seq=%s action=%s %s->%s actor=%s",
        response_id,
        question_id,
        entry.sequence_no,
        action.value,
        from_status.value,
        to_status.value,
        actor.actor_id,
    )
    return entry


def history_for(response_id: str, question_id: str, conn: Connection | None = None) -> List[HistoryEntry]:
    """Entries for one (response, question) pair, oldest first."""
    stmt = sql_text(_ENTRY_SELECT + " WHERE response_id = :rid AND question_id = :qid ORDER BY sequence_no ASC")
    params = {"rid": response_id, "qid": question_id}
    if conn is not None:
        return [_entry(r) for r in conn.execute(stmt, params).mappings().all()]
    with read_only("history_for") as c:
        return [_entry(r) for r in c.execute(stmt, params).mappings().all()]


def latest_entry(response_id: str, question_id: str, conn: Connection | None = None) -> Optional[HistoryEntry]:
    entries = history_for(response_id, question_id, conn=conn)
    return entries[-1] if entries else None


__all__ = ["record", "history_for", "latest_entry"]
