from __future__ import annotations

from typing import Any, Optional

from follow_counters.counter_updater import TransactionalCounterUpdater
from follow_counters.event_utils import FollowEdge
from follow_counters.handlers import apply_edge_delta


KIND = "follow_edge.created"


def handle_edge_created(
    *,
    edge: FollowEdge,
    updater: TransactionalCounterUpdater,
    event_id: Optional[str] = None,
) -> dict[str, Any]:
    """
    `users/{targetUid}/followers/{followerUid}` was created:
    +1 on target.followersCount and +1 on follower.followingCount.
    """
    return apply_edge_delta(kind=KIND, edge=edge, delta=1, updater=updater, event_id=event_id)
