"""Best-effort progress notifications for deep research sessions."""

import logging
from enum import Enum
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class EventType(Enum):
    GENERATING_QUERY = "generating_query"
    GENERATED_QUERY = "generated_query"
    GENERATING_QUERY_REASONING = "generating_query_reasoning"
    SEARCHING = "searching"
    SEARCH_COMPLETE = "search_complete"
    PROCESSING_SEARCH_RESULT = "processing_search_result"
    NODE_COMPLETE = "node_complete"
    ERROR = "error"
    TREE_COMPLETE = "tree_complete"


@runtime_checkable
class EventSink(Protocol):
    """Receives progress events. Delivery is fire-and-forget."""

    def notify(
        self,
        session_id: str,
        node_id: str | None,
        event_type: EventType,
        payload: dict[str, Any],
    ) -> None:
        ...


class NullEventSink:
    """Discards every event."""

    def notify(self, session_id, node_id, event_type, payload) -> None:
        return None


class LoggingEventSink:
    """Writes events to a logger at INFO (DEBUG for streamed reasoning deltas)."""

    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logger

    def notify(self, session_id, node_id, event_type, payload) -> None:
        level = logging.DEBUG if event_type == EventType.GENERATING_QUERY_REASONING else logging.INFO
        self.log.log(level, "[%s] %s %s %s", session_id, node_id or "-", event_type.value, payload)


def notify(
    sink: EventSink | None,
    session_id: str,
    node_id: str | None,
    event_type: EventType,
    payload: dict[str, Any] | None = None,
) -> None:
    """Send one event; a failing sink is logged and never interrupts research."""
    if sink is None:
        return
    try:
        sink.notify(session_id, node_id, event_type, payload or {})
    except Exception as e:
        logger.warning("Event sink failed for %s/%s: %s", event_type.value, node_id, e)
