from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from follow_counters.event_utils import normalize_doc_id


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_event_once(
    *,
    txn: Any,
    marker_ref: Any,
    event_id: str,
    doc: Dict[str, Any],
) -> Tuple[bool, Optional[Dict[str, Any]]]:
    """
    Transactional first-seen check for one delivered event.

    Must run before any write staged on `txn` (Firestore requires reads first).
    Returns (first_time, existing_marker). On first sight the marker create is
    staged on the same transaction, so it commits together with the caller's writes.
    """
    snap = marker_ref.get(transaction=txn)
    if snap.exists:
        return False, snap.to_dict() or {}
    txn.create(marker_ref, {"eventId": str(event_id), **doc})
    return True, None


class EventDedupe:
    """
    At-least-once safe dedupe of follow-edge events by event id.

    Implementation notes:
    - One marker doc per event id, created in the counter transaction.
    - Uses Firestore TTL via expireAt (no explicit deletions).
    """

    def __init__(self, db: Any, *, collection: str = "ops_follow_edge_events", ttl_days: int = 7) -> None:
        self._db = db
        self._collection = str(collection)
        self._ttl_days = max(0, int(ttl_days))

    @property
    def collection(self) -> str:
        return self._collection

    def marker_ref(self, event_id: str) -> Any:
        return self._db.collection(self._collection).document(normalize_doc_id(event_id))

    def marker_doc(self, *, applied_at: Any, **fields: Any) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"appliedAt": applied_at, **fields}
        if self._ttl_days > 0:
            # Configure Firestore TTL on this field (optional).
            doc["expireAt"] = _utc_now() + timedelta(days=self._ttl_days)
        return doc
