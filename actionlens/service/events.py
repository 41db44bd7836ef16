"""Observer registries for result callbacks and lifecycle events."""

from __future__ import annotations

import logging
from collections.abc import Callable

from actionlens.analysis_config import AnalysisEventType
from actionlens.extraction.models import AnalysisEvent, AnalysisResult

logger = logging.getLogger(__name__)

AnalysisCallback = Callable[[AnalysisResult], None]
EventListener = Callable[[AnalysisEvent], None]


class CallbackRegistry:
    """Ordered set of result subscribers.

    Subscribers are notified in registration order. A subscriber that raises
    is logged and skipped; the rest are still notified.
    """

    def __init__(self) -> None:
        self._callbacks: dict[AnalysisCallback, None] = {}

    def add(self, callback: AnalysisCallback) -> None:
        self._callbacks.setdefault(callback, None)

    def remove(self, callback: AnalysisCallback) -> None:
        self._callbacks.pop(callback, None)

    def clear(self) -> None:
        self._callbacks.clear()

    def notify(self, result: AnalysisResult) -> None:
        for callback in list(self._callbacks):
            try:
                callback(result)
            except Exception:
                logger.exception("Error in analysis callback %r", callback)

    def __len__(self) -> int:
        return len(self._callbacks)


class EventBus:
    """Per-event-type listener lists with the same isolation as callbacks."""

    def __init__(self) -> None:
        self._listeners: dict[AnalysisEventType, list[EventListener]] = {}

    def add_listener(self, event_type: AnalysisEventType | str, listener: EventListener) -> None:
        self._listeners.setdefault(AnalysisEventType(event_type), []).append(listener)

    def remove_listener(self, event_type: AnalysisEventType | str, listener: EventListener) -> None:
        listeners = self._listeners.get(AnalysisEventType(event_type), [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: AnalysisEvent) -> None:
        for listener in list(self._listeners.get(event.type, [])):
            try:
                listener(event)
            except Exception:
                logger.exception("Error in %s event listener", event.type)
