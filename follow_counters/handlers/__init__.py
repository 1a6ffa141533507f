"""
Handler package.

Handlers must be:
- stateless (all coordination lives in the Firestore transaction)
- loud on failure (log with edge context, then re-raise the original error)
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from follow_counters.counter_updater import TransactionalCounterUpdater
from follow_counters.errors import MISSING_RECORD, classify_store_error, is_retryable
from follow_counters.event_utils import FollowEdge
from follow_counters.logging import log_event


_logger = logging.getLogger("follow_counters")


def apply_edge_delta(
    *,
    kind: str,
    edge: FollowEdge,
    delta: int,
    updater: TransactionalCounterUpdater,
    event_id: Optional[str] = None,
) -> dict[str, Any]:
    """
    Move target.followersCount and follower.followingCount by `delta` together.
    """
    context = {
        "kind": kind,
        "targetUid": edge.target_uid,
        "followerUid": edge.follower_uid,
        "delta": delta,
    }
    first, second = updater.edge_deltas(edge, delta)
    try:
        res = updater.apply(first, second, event_id=event_id, marker=context)
    except Exception as e:
        error_class = classify_store_error(e)
        if error_class == MISSING_RECORD:
            log_event(
                _logger,
                "follow_counters.missing_user_record",
                severity="ALERT",
                message=f"Error in {kind}: referenced user record does not exist",
                edgeEventId=event_id,
                error_type=type(e).__name__,
                error=str(e),
                **context,
            )
        else:
            log_event(
                _logger,
                "follow_counters.update_failed",
                severity="ERROR",
                message=f"Error in {kind}: {e}",
                edgeEventId=event_id,
                error_type=type(e).__name__,
                error_class=error_class,
                retryable=is_retryable(e),
                error=str(e),
                **context,
            )
        raise

    if not res.applied:
        log_event(_logger, "follow_counters.duplicate_event_ignored", severity="WARNING", edgeEventId=event_id, **context)
    else:
        log_event(_logger, "follow_counters.applied", severity="DEBUG", edgeEventId=event_id, **context)

    return {**context, "applied": bool(res.applied), "reason": str(res.reason)}
