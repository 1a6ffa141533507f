from __future__ import annotations

from typing import Any, Optional

from follow_counters.counter_updater import TransactionalCounterUpdater
from follow_counters.event_utils import FollowEdge
from follow_counters.handlers import apply_edge_delta


KIND = "follow_edge.deleted"


def handle_edge_deleted(
    *,
    edge: FollowEdge,
    updater: TransactionalCounterUpdater,
    event_id: Optional[str] = None,
) -> dict[str, Any]:
    """Edge removed: -1 on both counters."""
    return apply_edge_delta(kind=KIND, edge=edge, delta=-1, updater=updater, event_id=event_id)
