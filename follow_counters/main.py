"""
follow_counters HTTP entrypoint

Runtime assumptions (documented for deploy/debug):
- Served by `uvicorn follow_counters.main:app` on Cloud Run.
- Eventarc delivers Firestore document events for
  `users/{targetUid}/followers/{followerUid}` as CloudEvents (binary content
  mode) to `POST /`; Pub/Sub push deliveries go to `POST /pubsub/push`.
- Any non-2xx response makes the dispatcher redeliver under its own retry /
  dead-letter policy. This service never retries internally.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request, Response

from follow_counters.config import Config, load_config
from follow_counters.counter_updater import TransactionalCounterUpdater
from follow_counters.errors import MISSING_RECORD, TRANSIENT, InvalidEdgeEvent, classify_store_error
from follow_counters.event_utils import FollowEdge, edge_from_payload, parse_edge_path
from follow_counters.firebase_client import get_firestore_client
from follow_counters.idempotency import EventDedupe
from follow_counters.logging import bind_event_id, init_structured_logging, log_event
from follow_counters.router import EdgeEventDispatcher, build_dispatcher


SERVICE_NAME = os.getenv("SERVICE_NAME") or "follow-counters"

_logger = logging.getLogger("follow_counters.main")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _config() -> Config:
    cfg = getattr(app.state, "config", None)
    if cfg is None:
        cfg = load_config()
        app.state.config = cfg
    return cfg


def _status_for(exc: BaseException) -> tuple[int, str]:
    error_class = classify_store_error(exc)
    if error_class == MISSING_RECORD:
        return 422, "missing_user_record"
    if error_class == TRANSIENT:
        return 503, "transient_store_error"
    return 500, "counter_update_failed"


def _edge_from_path(path: str) -> FollowEdge:
    cfg = _config()
    return parse_edge_path(path, users_collection=cfg.users_collection, followers_collection=cfg.followers_collection)


async def _dispatch(*, source: str, event_type: str, edge: FollowEdge, event_id: Optional[str]) -> dict[str, Any]:
    dispatcher: Optional[EdgeEventDispatcher] = getattr(app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="not_ready")

    if dispatcher.route(event_type) is None:
        # Updates and unrelated event types are acknowledged so they are not redelivered.
        log_event(
            _logger,
            "edge_event.ignored",
            severity="WARNING",
            source=source,
            edgeEventId=event_id,
            eventType=event_type,
            targetUid=edge.target_uid,
            followerUid=edge.follower_uid,
        )
        return {"ok": True, "applied": False, "reason": "ignored_event_type", "eventType": event_type}

    with bind_event_id(event_id=event_id):
        try:
            result = await asyncio.to_thread(dispatcher.dispatch, event_type, edge=edge, event_id=event_id)
        except InvalidEdgeEvent as e:
            log_event(_logger, "edge_event.rejected", severity="ERROR", source=source, reason=str(e), edgeEventId=event_id)
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            # The handler has already logged the failure with edge context.
            status_code, detail = _status_for(e)
            raise HTTPException(status_code=status_code, detail=detail) from e

    log_event(
        _logger,
        "edge_event.ok",
        severity="INFO",
        source=source,
        edgeEventId=event_id,
        eventType=event_type,
        kind=result.get("kind"),
        targetUid=edge.target_uid,
        followerUid=edge.follower_uid,
        applied=result.get("applied"),
        reason=result.get("reason"),
    )
    return {"ok": True, **result}


app = FastAPI(title="Firestore follow edges → user counters", version="0.1.0")


@app.on_event("startup")
async def _startup() -> None:
    if getattr(app.state, "dispatcher", None) is not None:
        # Already wired (tests / embedding callers).
        return

    cfg = load_config()
    init_structured_logging(service=cfg.service_name, env=cfg.env, level=cfg.log_level)

    db = get_firestore_client(project_id=cfg.project_id, database=cfg.database)
    dedupe = EventDedupe(db, collection=cfg.dedupe_collection, ttl_days=cfg.dedupe_ttl_days) if cfg.dedupe_enabled else None
    updater = TransactionalCounterUpdater(
        db,
        users_collection=cfg.users_collection,
        followers_field=cfg.followers_field,
        following_field=cfg.following_field,
        dedupe=dedupe,
        max_attempts=cfg.txn_max_attempts,
    )
    app.state.config = cfg
    app.state.dispatcher = build_dispatcher(updater)

    log_event(
        _logger,
        "startup",
        severity="INFO",
        firestore_database=cfg.database,
        users_collection=cfg.users_collection,
        followers_collection=cfg.followers_collection,
        dedupe_enabled=cfg.dedupe_enabled,
        dedupe_collection=cfg.dedupe_collection if cfg.dedupe_enabled else None,
        txn_max_attempts=cfg.txn_max_attempts,
    )


@app.get("/healthz")
async def healthz() -> dict[str, Any]:
    return {"status": "ok", "service": SERVICE_NAME, "ts": _utc_now().isoformat()}


@app.get("/readyz")
async def readyz(response: Response) -> dict[str, Any]:
    ok = getattr(app.state, "dispatcher", None) is not None
    response.status_code = 200 if ok else 503
    return {"status": "ok" if ok else "not_ready", "service": SERVICE_NAME}


@app.post("/")
async def cloudevent(req: Request) -> dict[str, Any]:
    """
    Eventarc CloudEvent (binary content mode).

    Only the `ce-*` headers are used; the protobuf body is ignored because the
    edge identity is fully encoded in the document path.
    """
    event_id = str(req.headers.get("ce-id") or "").strip() or None
    event_type = str(req.headers.get("ce-type") or "").strip()
    document = str(req.headers.get("ce-document") or req.headers.get("ce-subject") or "").strip()

    if not event_type or not document:
        log_event(
            _logger,
            "edge_event.rejected",
            severity="ERROR",
            source="cloudevent",
            reason="missing_cloudevent_headers",
            edgeEventId=event_id,
            has_type=bool(event_type),
            has_document=bool(document),
        )
        raise HTTPException(status_code=400, detail="missing_cloudevent_headers")

    try:
        edge = _edge_from_path(document)
    except InvalidEdgeEvent as e:
        log_event(_logger, "edge_event.rejected", severity="ERROR", source="cloudevent", reason=str(e), edgeEventId=event_id)
        raise HTTPException(status_code=400, detail=str(e)) from e

    return await _dispatch(source="cloudevent", event_type=event_type, edge=edge, event_id=event_id)


@app.post("/pubsub/push")
async def pubsub_push(req: Request) -> dict[str, Any]:
    """
    Pub/Sub push envelope whose `message.data` is base64 JSON:
      {"eventType": "created"|"deleted"|<CloudEvent type>,
       "document": "users/U1/followers/U2"  (or "targetUid" + "followerUid"),
       "eventId": "..."}                    (optional, falls back to messageId)
    """
    try:
        body = await req.json()
    except Exception as e:
        log_event(_logger, "pubsub.rejected", severity="ERROR", reason="invalid_json", error=str(e))
        raise HTTPException(status_code=400, detail="invalid_json") from e

    message = body.get("message") if isinstance(body, dict) else None
    if not isinstance(message, dict):
        log_event(_logger, "pubsub.rejected", severity="ERROR", reason="invalid_envelope", error="missing_message")
        raise HTTPException(status_code=400, detail="invalid_envelope")

    message_id = str(message.get("messageId") or "").strip() or None
    attributes_raw = message.get("attributes") or {}
    attributes: dict[str, str] = {}
    if isinstance(attributes_raw, dict):
        for k, v in attributes_raw.items():
            attributes[str(k)] = "" if v is None else str(v)

    data_b64 = message.get("data")
    if not isinstance(data_b64, str) or not data_b64.strip():
        log_event(_logger, "pubsub.rejected", severity="ERROR", reason="missing_data", messageId=message_id)
        raise HTTPException(status_code=400, detail="missing_data")

    try:
        payload = json.loads(base64.b64decode(data_b64, validate=True).decode("utf-8"))
    except Exception as e:
        log_event(_logger, "pubsub.rejected", severity="ERROR", reason="invalid_payload", error=str(e), messageId=message_id)
        raise HTTPException(status_code=400, detail="invalid_payload") from e

    if not isinstance(payload, dict):
        log_event(_logger, "pubsub.rejected", severity="ERROR", reason="payload_not_object", messageId=message_id)
        raise HTTPException(status_code=400, detail="payload_not_object")

    event_type = str(payload.get("eventType") or payload.get("type") or attributes.get("eventType") or "").strip()
    if not event_type:
        log_event(_logger, "pubsub.rejected", severity="ERROR", reason="missing_event_type", messageId=message_id)
        raise HTTPException(status_code=400, detail="missing_event_type")

    event_id = str(payload.get("eventId") or attributes.get("eventId") or "").strip() or message_id

    cfg = _config()
    try:
        edge = edge_from_payload(payload, users_collection=cfg.users_collection, followers_collection=cfg.followers_collection)
    except InvalidEdgeEvent as e:
        log_event(_logger, "pubsub.rejected", severity="ERROR", reason=str(e), messageId=message_id)
        raise HTTPException(status_code=400, detail=str(e)) from e

    return await _dispatch(source="pubsub", event_type=event_type, edge=edge, event_id=event_id)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT") or "8080")
    uvicorn.run("follow_counters.main:app", host="0.0.0.0", port=port, log_level="warning", access_log=False)
