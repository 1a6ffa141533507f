from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from follow_counters.counter_updater import TransactionalCounterUpdater
from follow_counters.errors import InvalidEdgeEvent
from follow_counters.event_utils import CREATED, DELETED, FollowEdge, edge_event_kind
from follow_counters.handlers.edge_created import handle_edge_created
from follow_counters.handlers.edge_deleted import handle_edge_deleted


EdgeCallback = Callable[..., dict[str, Any]]


@dataclass(frozen=True)
class RoutedHandler:
    name: str
    handler: EdgeCallback


class EdgeEventDispatcher:
    """
    Explicit subscription of callbacks to follow-edge lifecycle kinds.

    Callbacks are invoked as `callback(edge=..., event_id=...)` and must return a
    result dict. One callback per kind; subscribing again replaces it.
    """

    def __init__(self) -> None:
        self._routes: dict[str, RoutedHandler] = {}

    def subscribe(self, kind: str, callback: EdgeCallback, *, name: Optional[str] = None) -> None:
        k = edge_event_kind(kind)
        if k is None:
            raise ValueError(f"unsupported_edge_event_kind:{kind}")
        self._routes[k] = RoutedHandler(name=name or getattr(callback, "__name__", k), handler=callback)

    def kinds(self) -> list[str]:
        return sorted(self._routes)

    def route(self, event_type: Any) -> Optional[RoutedHandler]:
        k = edge_event_kind(event_type)
        if k is None:
            return None
        return self._routes.get(k)

    def dispatch(self, event_type: Any, *, edge: FollowEdge, event_id: Optional[str] = None) -> dict[str, Any]:
        routed = self.route(event_type)
        if routed is None:
            raise InvalidEdgeEvent(f"unroutable_event_type:{event_type}")
        return routed.handler(edge=edge, event_id=event_id)


def build_dispatcher(updater: TransactionalCounterUpdater) -> EdgeEventDispatcher:
    dispatcher = EdgeEventDispatcher()

    def _on_created(*, edge: FollowEdge, event_id: Optional[str] = None) -> dict[str, Any]:
        return handle_edge_created(edge=edge, updater=updater, event_id=event_id)

    def _on_deleted(*, edge: FollowEdge, event_id: Optional[str] = None) -> dict[str, Any]:
        return handle_edge_deleted(edge=edge, updater=updater, event_id=event_id)

    dispatcher.subscribe(CREATED, _on_created, name="edge_created")
    dispatcher.subscribe(DELETED, _on_deleted, name="edge_deleted")
    return dispatcher
