"""Bulk takeout operations with per-item failure isolation.

Items are grouped by (response, question) pair. Groups run independently,
optionally on a thread pool; items repeating a pair stay sequential in input
order inside their group. The result lists every input item exactly once,
in input order, under either `succeeded` or `failed`.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Tuple

from survey_takeout.config import load_config
from survey_takeout.db.base import is_sqlite
from survey_takeout.logic.actor import Actor
from survey_takeout.logic.errors import TakeoutError, ValidationFailed
from survey_takeout.logic.takeout_state import TRANSITIONS, TakeoutStateMachine, normalize_reason
from survey_takeout.models.response_types import BulkFailure, BulkItem, BulkResult

logger = logging.getLogger(__name__)

_Outcome = Optional[BulkFailure]


def _group_by_pair(items: Sequence[BulkItem]) -> Dict[Tuple[str, str], List[int]]:
    groups: Dict[Tuple[str, str], List[int]] = {}
    for index, item in enumerate(items):
        groups.setdefault((item.response_id, item.question_id), []).append(index)
    return groups


def _worker_count(groups: int) -> int:
    if is_sqlite():
        return 1
    return max(1, min(load_config().approvals.bulk_max_workers, groups))


def apply_bulk(
    operation: str,
    items: Sequence[BulkItem],
    reason: Optional[str],
    actor: Actor,
    machine: Optional[TakeoutStateMachine] = None,
) -> BulkResult:
    """Apply `operation` to every item and report each outcome once.

    Raises ValidationFailed for an unknown operation or an oversized batch
    and MissingReason when the operation needs a reason; in those cases no
    item is touched.
    """
    if operation not in TRANSITIONS:
        raise ValidationFailed(f"unknown bulk operation: {operation}")
    limit = load_config().approvals.bulk_max_items
    if len(items) > limit:
        raise ValidationFailed(f"bulk request has {len(items)} items; the limit is {limit}")
    cleaned = normalize_reason(operation, reason)
    sm = machine or TakeoutStateMachine()

    outcomes: List[_Outcome] = [None] * len(items)

    def run_group(indices: List[int]) -> None:
        for index in indices:
            item = items[index]
            try:
                sm.apply(operation, item.response_id, item.question_id, cleaned, actor)
            except TakeoutError as exc:
                outcomes[index] = BulkFailure(item=item, error_kind=exc.kind.value, message=exc.message)

    groups = list(_group_by_pair(items).values())
    workers = _worker_count(len(groups))
    if workers == 1:
        for indices in groups:
            run_group(indices)
    else:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bulk-takeout") as executor:
            for future in [executor.submit(run_group, indices) for indices in groups]:
                future.result()

    result = BulkResult(operation=operation)
    for item, outcome in zip(items, outcomes):
        if outcome is None:
            result.succeeded.append(item)
        else:
            result.failed.append(outcome)

    logger.info(
        "bulk_applied op=%s items=%s succeeded=%s failed=%s workers=%s actor=%s",
        operation,
        len(items),
        len(result.succeeded),
        len(result.failed),
        workers,
        actor.actor_id,
    )
    return result


__all__ = ["apply_bulk"]
