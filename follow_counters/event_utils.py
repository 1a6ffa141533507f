from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Any, Optional

from follow_counters.errors import InvalidEdgeEvent


CREATED = "created"
DELETED = "deleted"

_DOC_ID_SAFE_RE = re.compile(r"[^A-Za-z0-9_\-:.]+")
# Firestore allows 1500 bytes; marker ids stay well under it.
_DOC_ID_MAX_LEN = 256

_KIND_ALIASES: dict[str, str] = {
    "google.cloud.firestore.document.v1.created": CREATED,
    "google.cloud.firestore.document.v1.created.withauthcontext": CREATED,
    "google.cloud.firestore.document.v1.deleted": DELETED,
    "google.cloud.firestore.document.v1.deleted.withauthcontext": DELETED,
    "providers/cloud.firestore/eventtypes/document.create": CREATED,
    "providers/cloud.firestore/eventtypes/document.delete": DELETED,
    "follow_edge.created": CREATED,
    "follow_edge.deleted": DELETED,
    "oncreate": CREATED,
    "ondelete": DELETED,
    "create": CREATED,
    "delete": DELETED,
    CREATED: CREATED,
    DELETED: DELETED,
}


@dataclass(frozen=True)
class FollowEdge:
    """`follower_uid` follows `target_uid`."""

    target_uid: str
    follower_uid: str


def edge_event_kind(value: Any) -> Optional[str]:
    """
    Normalize a trigger/event type to `created` / `deleted`.

    Updates (`...document.v1.updated`, `...written`) and anything unknown map to None.
    """
    if not isinstance(value, str):
        return None
    return _KIND_ALIASES.get(value.strip().lower())


def _check_uid(value: Any, *, field: str) -> str:
    uid = str(value).strip() if value is not None else ""
    if not uid:
        raise InvalidEdgeEvent(f"missing_{field}")
    if "/" in uid:
        raise InvalidEdgeEvent(f"invalid_{field}")
    return uid


def parse_edge_path(
    path: str,
    *,
    users_collection: str = "users",
    followers_collection: str = "followers",
) -> FollowEdge:
    """
    Extract (targetUid, followerUid) from a follow-edge document path.

    Accepted shapes:
    - users/{targetUid}/followers/{followerUid}
    - documents/users/{targetUid}/followers/{followerUid}   (CloudEvent subject)
    - projects/{p}/databases/{d}/documents/users/{targetUid}/followers/{followerUid}
    """
    raw = str(path or "").strip().strip("/")
    if not raw:
        raise InvalidEdgeEvent("missing_document_path")

    parts = raw.split("/")
    if "documents" in parts:
        parts = parts[parts.index("documents") + 1 :]

    if len(parts) != 4 or parts[0] != users_collection or parts[2] != followers_collection:
        raise InvalidEdgeEvent(f"not_a_follow_edge_path:{raw[:256]}")

    return FollowEdge(
        target_uid=_check_uid(parts[1], field="targetUid"),
        follower_uid=_check_uid(parts[3], field="followerUid"),
    )


def edge_from_payload(
    payload: dict[str, Any],
    *,
    users_collection: str = "users",
    followers_collection: str = "followers",
) -> FollowEdge:
    """
    Build a FollowEdge from a JSON event payload.

    Explicit ids win over a document path:
    - targetUid / target_uid + followerUid / follower_uid
    - document / documentPath / path / subject
    """
    if not isinstance(payload, dict):
        raise InvalidEdgeEvent("payload_not_object")

    target = payload.get("targetUid", payload.get("target_uid"))
    follower = payload.get("followerUid", payload.get("follower_uid"))
    if target is not None or follower is not None:
        return FollowEdge(
            target_uid=_check_uid(target, field="targetUid"),
            follower_uid=_check_uid(follower, field="followerUid"),
        )

    for k in ("document", "documentPath", "path", "subject"):
        v = payload.get(k)
        if isinstance(v, str) and v.strip():
            return parse_edge_path(v, users_collection=users_collection, followers_collection=followers_collection)

    raise InvalidEdgeEvent("missing_edge_identity")


def normalize_doc_id(value: str) -> str:
    """
    Map an arbitrary id onto a legal Firestore document id.

    Ids that are already safe come back unchanged. An id that had to be
    rewritten or shortened keeps a readable prefix plus the sha256 of the raw
    value, so distinct inputs never land on the same document.
    """
    raw = str(value or "")
    if not raw.strip():
        return "unknown"
    cleaned = _DOC_ID_SAFE_RE.sub("_", raw.replace("/", "_"))
    cleaned = re.sub(r"_{2,}", "_", cleaned).strip("_")
    if cleaned == raw and len(raw) <= _DOC_ID_MAX_LEN and raw not in (".", ".."):
        return raw
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()
    prefix = cleaned[: _DOC_ID_MAX_LEN - len(digest) - 1] or "unknown"
    return f"{prefix}_{digest}"

