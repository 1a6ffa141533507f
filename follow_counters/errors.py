"""
Failure taxonomy for counter updates.

Store errors are never wrapped: callers re-raise the original exception and use
`classify_store_error()` only to pick a log severity / response status.
"""

from __future__ import annotations

TRANSIENT = "transient"
MISSING_RECORD = "missing_record"
PERMANENT = "permanent"
UNKNOWN = "unknown"

_TRANSIENT_CODES = frozenset({"UNAVAILABLE", "DEADLINE_EXCEEDED", "ABORTED", "INTERNAL", "RESOURCE_EXHAUSTED", "UNKNOWN"})
_PERMANENT_CODES = frozenset({"PERMISSION_DENIED", "INVALID_ARGUMENT", "UNAUTHENTICATED", "FAILED_PRECONDITION"})
_TRANSIENT_NAMES = frozenset(
    {"ServiceUnavailable", "DeadlineExceeded", "InternalServerError", "Aborted", "ResourceExhausted", "Unknown", "RetryError"}
)
_PERMANENT_NAMES = frozenset({"PermissionDenied", "InvalidArgument", "Unauthenticated", "FailedPrecondition"})


class InvalidEdgeEvent(ValueError):
    """The delivered event does not describe a follow edge (poison message)."""


def exc_code(exc: BaseException) -> str:
    """
    Best-effort extraction of a stable Google/gRPC error code string.
    """
    try:
        code = getattr(exc, "grpc_status_code", None) or getattr(exc, "code", None)
        if callable(code):
            code = code()
        if code is None:
            return ""
        # grpc.StatusCode has a `.name`
        name = getattr(code, "name", None)
        if isinstance(name, str) and name.strip():
            return name.strip().upper()
        if isinstance(code, int):
            return ""
        return str(code).strip().upper()
    except Exception:
        return ""


def _classify_one(exc: BaseException) -> str:
    code = exc_code(exc)
    name = exc.__class__.__name__
    if code == "NOT_FOUND" or name == "NotFound":
        return MISSING_RECORD
    if code in _TRANSIENT_CODES or name in _TRANSIENT_NAMES:
        return TRANSIENT
    if code in _PERMANENT_CODES or name in _PERMANENT_NAMES:
        return PERMANENT
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return TRANSIENT
    return UNKNOWN


def _exception_chain(exc: BaseException):
    seen: set[int] = set()
    cur: BaseException | None = exc
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        yield cur
        cur = cur.__cause__ or cur.__context__


def classify_store_error(exc: BaseException) -> str:
    """
    Classify a failure from the store client.

    The client wraps exhausted contention retries in a plain ValueError raised
    `from` the last Aborted, so the cause chain is consulted until one link
    classifies.
    """
    for link in _exception_chain(exc):
        error_class = _classify_one(link)
        if error_class != UNKNOWN:
            return error_class
    return UNKNOWN


def is_retryable(exc: BaseException) -> bool:
    return classify_store_error(exc) == TRANSIENT
