from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _str_env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None or not str(v).strip():
        return default
    return str(v).strip()


def _bool_env(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return bool(default)
    s = str(v).strip().lower()
    if s in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "f", "no", "n", "off"}:
        return False
    return bool(default)


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Config:
    service_name: str
    env: str
    log_level: str
    project_id: Optional[str]
    database: str
    users_collection: str
    followers_collection: str
    followers_field: str
    following_field: str
    dedupe_enabled: bool
    dedupe_collection: str
    dedupe_ttl_days: int
    txn_max_attempts: int


def load_config() -> Config:
    return Config(
        service_name=_str_env("SERVICE_NAME", "follow-counters") or "follow-counters",
        env=_str_env("ENV", "unknown") or "unknown",
        log_level=(_str_env("LOG_LEVEL", "INFO") or "INFO").upper(),
        project_id=_str_env("FIREBASE_PROJECT_ID") or _str_env("GOOGLE_CLOUD_PROJECT"),
        database=_str_env("FIRESTORE_DATABASE", "(default)") or "(default)",
        users_collection=_str_env("USERS_COLLECTION", "users") or "users",
        followers_collection=_str_env("FOLLOWERS_COLLECTION", "followers") or "followers",
        followers_field=_str_env("FOLLOWERS_COUNT_FIELD", "followersCount") or "followersCount",
        following_field=_str_env("FOLLOWING_COUNT_FIELD", "followingCount") or "followingCount",
        dedupe_enabled=_bool_env("EDGE_EVENT_DEDUPE_ENABLED", True),
        dedupe_collection=_str_env("EDGE_EVENT_DEDUPE_COLLECTION", "ops_follow_edge_events") or "ops_follow_edge_events",
        dedupe_ttl_days=max(0, _int_env("EDGE_EVENT_DEDUPE_TTL_DAYS", 7)),
        # Matches the Firestore client's own default for transaction attempts.
        txn_max_attempts=max(1, _int_env("FIRESTORE_TXN_MAX_ATTEMPTS", 5)),
    )
