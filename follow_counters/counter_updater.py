"""
Atomic follower/following counter adjustments.

Both counter mutations of one edge event are relative increments
(`firestore.Increment`) staged on a single Firestore transaction: either both
commit or neither does. Counters are never read back and rewritten, so
concurrent edge events for the same user cannot lose updates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from follow_counters.event_utils import FollowEdge
from follow_counters.idempotency import EventDedupe, ensure_event_once


@dataclass(frozen=True)
class CounterDelta:
    ref: Any
    field: str
    delta: int


@dataclass(frozen=True)
class UpdateResult:
    applied: bool
    reason: str


def _check_delta(d: CounterDelta) -> None:
    if isinstance(d.delta, bool) or not isinstance(d.delta, int):
        raise ValueError(f"invalid_delta:{d.delta!r}")
    if d.delta == 0:
        raise ValueError("zero_delta")
    if not str(d.field or "").strip():
        raise ValueError("missing_counter_field")


def _ref_key(ref: Any) -> Any:
    path = getattr(ref, "path", None)
    return path if isinstance(path, str) else id(ref)


class TransactionalCounterUpdater:
    def __init__(
        self,
        db: Any,
        *,
        firestore_module: Any = None,
        users_collection: str = "users",
        followers_field: str = "followersCount",
        following_field: str = "followingCount",
        dedupe: Optional[EventDedupe] = None,
        max_attempts: int = 5,
    ) -> None:
        if firestore_module is None:
            from google.cloud import firestore as firestore_module

        self._firestore = firestore_module
        self._db = db
        self._users_collection = str(users_collection)
        self._followers_field = str(followers_field)
        self._following_field = str(following_field)
        self._dedupe = dedupe
        self._max_attempts = max(1, int(max_attempts))

    def user_ref(self, uid: str) -> Any:
        return self._db.collection(self._users_collection).document(str(uid))

    def edge_deltas(self, edge: FollowEdge, delta: int) -> tuple[CounterDelta, CounterDelta]:
        """Target-side followers delta and follower-side following delta for one edge."""
        return (
            CounterDelta(ref=self.user_ref(edge.target_uid), field=self._followers_field, delta=delta),
            CounterDelta(ref=self.user_ref(edge.follower_uid), field=self._following_field, delta=delta),
        )

    def apply(
        self,
        first: CounterDelta,
        second: CounterDelta,
        *,
        event_id: Optional[str] = None,
        marker: Optional[dict[str, Any]] = None,
    ) -> UpdateResult:
        """
        Apply both deltas in one transaction.

        Raises whatever the store raises (contention, unavailability, NotFound for a
        missing user doc); nothing is committed in that case.
        """
        _check_delta(first)
        _check_delta(second)

        fs = self._firestore
        marker_ref = None
        if self._dedupe is not None and event_id:
            marker_ref = self._dedupe.marker_ref(event_id)

        # A self-edge touches one doc twice; stage a single update for it.
        updates: dict[Any, tuple[Any, dict[str, Any]]] = {}
        for d in (first, second):
            _, fields = updates.setdefault(_ref_key(d.ref), (d.ref, {}))
            fields[d.field] = fs.Increment(d.delta)

        def _txn(transaction: Any) -> UpdateResult:
            if marker_ref is not None:
                first_time, _existing = ensure_event_once(
                    txn=transaction,
                    marker_ref=marker_ref,
                    event_id=str(event_id),
                    doc=self._dedupe.marker_doc(applied_at=fs.SERVER_TIMESTAMP, **(marker or {})),
                )
                if not first_time:
                    return UpdateResult(applied=False, reason="duplicate_event_noop")
            for ref, fields in updates.values():
                transaction.update(ref, dict(fields))
            return UpdateResult(applied=True, reason="applied")

        txn = self._db.transaction(max_attempts=self._max_attempts)
        return fs.transactional(_txn)(txn)
