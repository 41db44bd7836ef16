"""Real-time analysis service: debounce, queueing, settings, filtering and events."""

from __future__ import annotations

import itertools
import logging
import time
from collections import OrderedDict
from dataclasses import replace
from typing import Any

from actionlens.analysis_config import (
    ActionItemType,
    AnalysisEventType,
    AnalysisSettings,
    SuggestionType,
)
from actionlens.config import Settings, settings
from actionlens.engine.analyzer import MODEL_REGEX_FALLBACK, AnalysisEngine, PatternEngine
from actionlens.extraction.models import (
    AnalysisContext,
    AnalysisEvent,
    AnalysisMetadata,
    AnalysisOptions,
    AnalysisRequest,
    AnalysisResult,
    AnalysisSuggestion,
    DetectedActionItem,
    PerformanceData,
    PerformanceMetrics,
    empty_result,
)
from actionlens.extraction.patterns import detect_patterns
from actionlens.service.events import AnalysisCallback, CallbackRegistry, EventBus, EventListener
from actionlens.service.scheduler import Debouncer, QueueWorker, SchedulerState

logger = logging.getLogger(__name__)


def filter_and_sort(
    items: list[DetectedActionItem] | tuple[DetectedActionItem, ...],
    analysis_settings: AnalysisSettings,
    options: AnalysisOptions | None = None,
) -> list[DetectedActionItem]:
    """Apply the display contract to a raw candidate list.

    Items below the confidence threshold are dropped unless low-confidence
    items are shown. Items of a disabled type are always dropped. Survivors
    are ordered by priority tier, then by descending confidence, and
    truncated to the maximum item count.
    """
    options = options or AnalysisOptions()
    threshold = _pick(options.min_confidence_threshold, analysis_settings.min_confidence_threshold)
    max_items = _pick(options.max_items, analysis_settings.max_items_to_show)
    enabled_types = set(analysis_settings.enabled_detection_types)

    kept = [
        item
        for item in items
        if (analysis_settings.show_low_confidence_items or item.confidence >= threshold)
        and item.type in enabled_types
    ]
    kept.sort(key=lambda item: (-item.priority.rank, -item.confidence))
    return kept[:max_items]


def service_suggestions(
    items: list[DetectedActionItem] | tuple[DetectedActionItem, ...],
    auto_create_threshold: float,
) -> list[AnalysisSuggestion]:
    """Advisory nudges about auto-creation, missing dates and missing assignees."""
    suggestions: list[AnalysisSuggestion] = []

    auto_create = [item for item in items if item.confidence >= auto_create_threshold]
    if auto_create:
        suggestions.append(
            AnalysisSuggestion(
                type=SuggestionType.FORMATTING,
                message=(
                    f"{len(auto_create)} high-confidence items detected. "
                    "Consider auto-creating them."
                ),
                confidence=0.9,
            )
        )

    undated = [
        item
        for item in items
        if item.type is ActionItemType.DEADLINE and not item.suggested_due_date
    ]
    if undated:
        suggestions.append(
            AnalysisSuggestion(
                type=SuggestionType.DEADLINE,
                message=f"{len(undated)} deadline items missing specific dates.",
                confidence=0.7,
            )
        )

    unassigned = [
        item
        for item in items
        if item.type is ActionItemType.ASSIGNMENT and not item.suggested_assignee
    ]
    if unassigned:
        suggestions.append(
            AnalysisSuggestion(
                type=SuggestionType.ASSIGNMENT,
                message=f"{len(unassigned)} items need assignment clarification.",
                confidence=0.8,
            )
        )

    return suggestions


class RealTimeAnalysisService:
    """Front door for editor-driven analysis.

    Wraps an :class:`AnalysisEngine` with a debounce timer, a sequential
    priority queue, the current :class:`AnalysisSettings`, result callbacks
    and lifecycle events. No public method raises for analysis failures.

    ``debounced_analysis`` and ``queue_analysis`` schedule asyncio tasks and
    must be called while an event loop is running.
    """

    def __init__(
        self,
        engine: AnalysisEngine,
        config: Settings | None = None,
        pattern_engine: PatternEngine = detect_patterns,
    ) -> None:
        self._engine = engine
        self._config = config or settings
        self._detect = pattern_engine
        self._defaults = AnalysisSettings.from_config(self._config)
        self._settings = self._defaults
        self._callbacks = CallbackRegistry()
        self._events = EventBus()
        self._debouncer = Debouncer()
        self._queue = QueueWorker(self._process_queued)
        self._request_counter = itertools.count(1)
        self._active = 0
        self._pending_ids: set[str] = set()
        self._queued_results: OrderedDict[str, AnalysisResult] = OrderedDict()

    # ------------------------------------------------------------------
    # Analysis entry points
    # ------------------------------------------------------------------

    async def analyze_text(
        self,
        text: str,
        context: AnalysisContext | None = None,
        options: AnalysisOptions | None = None,
    ) -> AnalysisResult:
        """Analyze *text* immediately and return the filtered result."""
        current = self._settings
        if not current.enabled or not text.strip():
            return empty_result(len(text))

        request_id = self._next_request_id()
        self._emit(AnalysisEventType.STARTED, request_id, data={"text_length": len(text)})
        self._active += 1
        try:
            raw = await self._engine.analyze(text, context, self._engine_options(current, options))
            result = self._present(raw, current, options)
        except Exception as exc:
            logger.exception("Analysis %s failed, using pattern fallback", request_id)
            self._emit(AnalysisEventType.ERROR, request_id, error=exc)
            result = self._fallback_result(text, current, options)
        finally:
            self._active -= 1

        self._emit(AnalysisEventType.COMPLETED, request_id, data=result)
        return result

    def debounced_analysis(
        self,
        text: str,
        context: AnalysisContext | None = None,
        options: AnalysisOptions | None = None,
    ) -> None:
        """Schedule an analysis after the debounce interval, replacing any pending one.

        When the timer fires the result is delivered to every registered
        callback.
        """
        delay_ms = _pick(options.debounce_ms if options else None, self._settings.debounce_ms)

        async def run() -> None:
            result = await self.analyze_text(text, context, options)
            self._callbacks.notify(result)

        self._debouncer.schedule(delay_ms / 1000, run)

    def start_real_time_analysis(self, callback: AnalysisCallback) -> None:
        self._callbacks.add(callback)

    def stop_real_time_analysis(self, callback: AnalysisCallback | None = None) -> None:
        """Remove *callback*, or with no argument remove all and cancel the pending timer."""
        if callback is not None:
            self._callbacks.remove(callback)
            return
        self._callbacks.clear()
        self._debouncer.cancel()

    def queue_analysis(
        self,
        text: str,
        context: AnalysisContext | None = None,
        priority: int = 0,
    ) -> str:
        """Enqueue *text* for sequential analysis and return its request id."""
        request = AnalysisRequest(
            id=self._next_request_id(),
            text=text,
            context=context,
            priority=priority,
        )
        self._pending_ids.add(request.id)
        self._queue.submit(request)
        logger.debug("Queued analysis %s (priority %d, backlog %d)", request.id, priority, len(self._queue))
        return request.id

    def cancel_all(self) -> list[str]:
        """Cancel the pending debounce timer and drop all undispatched queue work.

        Analyses already running are not interrupted. Returns the ids of the
        dropped queued requests.
        """
        timer_cancelled = self._debouncer.cancel()
        dropped = [request.id for request in self._queue.cancel_pending()]
        self._pending_ids.difference_update(dropped)
        logger.info(
            "Cancelled %d queued analyses%s",
            len(dropped),
            " and a pending debounce" if timer_cancelled else "",
        )
        self._emit(
            AnalysisEventType.CANCELLED,
            "all",
            data={"dropped_request_ids": dropped, "debounce_cancelled": timer_cancelled},
        )
        return dropped

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self) -> AnalysisSettings:
        return self._settings

    def update_settings(self, **changes: Any) -> AnalysisSettings:
        """Shallow-merge *changes* into the current settings.

        Raises:
            ValueError: On unknown keys or out-of-range values. The current
                settings are left untouched in that case.
        """
        updated = self._settings.merged(changes)
        self._settings = updated
        if changes.get("cache_enabled") is False:
            self._engine.clear_cache()
            logger.info("Caching disabled; analysis cache cleared")
        return updated

    def reset_settings(self) -> AnalysisSettings:
        self._settings = self._defaults
        return self._settings

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_event_listener(self, event_type: AnalysisEventType | str, listener: EventListener) -> None:
        self._events.add_listener(event_type, listener)

    def remove_event_listener(self, event_type: AnalysisEventType | str, listener: EventListener) -> None:
        self._events.remove_listener(event_type, listener)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def health_check(self) -> dict[str, Any]:
        """Report backend, queue and settings health.

        All three checks passing is ``healthy``, two is ``degraded`` and one
        or none is ``unhealthy``. The cache is not counted as a check because
        it cannot fail on its own. An unreachable backend together with a
        disabled service is therefore ``unhealthy``, where counting an
        always-passing cache check would report ``degraded``.
        """
        status = await self._engine.check_backend()
        details = {
            "ollama": status.available,
            "queue": len(self._queue) < self._config.max_queue_health,
            "settings": self._settings.enabled,
        }
        passing = sum(details.values())
        if passing == len(details):
            overall = "healthy"
        elif passing <= 1:
            overall = "unhealthy"
        else:
            overall = "degraded"
        return {"status": overall, "details": details}

    def get_performance_metrics(self) -> PerformanceMetrics:
        return self._engine.get_performance_metrics()

    def clear_cache(self) -> None:
        self._engine.clear_cache()

    def get_cache_info(self) -> dict[str, Any]:
        return {
            "size": self._engine.cache_size(),
            "max_entries": self._config.cache_max_entries,
            "ttl_seconds": self._config.cache_ttl_seconds,
            "enabled": self._settings.cache_enabled,
        }

    def get_queue_status(self) -> dict[str, Any]:
        return {
            "length": len(self._queue),
            "is_processing": self._queue.is_processing,
            "debounce": str(self._debouncer.state),
        }

    def get_queued_result(self, request_id: str) -> dict[str, Any] | None:
        """Look up a queued request by id.

        Returns ``None`` for unknown, cancelled or evicted ids. Otherwise the
        status is ``"pending"`` until the analysis finishes, then
        ``"completed"`` with its result. Only the most recent
        ``queued_result_limit`` completed results are kept.
        """
        if request_id in self._pending_ids:
            return {"request_id": request_id, "status": "pending", "result": None}
        result = self._queued_results.get(request_id)
        if result is None:
            return None
        return {"request_id": request_id, "status": "completed", "result": result}

    def is_analyzing(self) -> bool:
        return (
            self._active > 0
            or self._queue.is_processing
            or self._debouncer.state is not SchedulerState.IDLE
        )

    async def wait_until_idle(self) -> None:
        """Wait for the pending debounce job and the queue drain to finish."""
        await self._debouncer.join()
        await self._queue.join()

    async def aclose(self) -> None:
        self.stop_real_time_analysis()
        self.cancel_all()
        await self.wait_until_idle()
        await self._engine.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _process_queued(self, request: AnalysisRequest, remaining: int) -> None:
        self._emit(
            AnalysisEventType.PROGRESS,
            request.id,
            data={"queue_length": remaining},
        )
        try:
            result = await self.analyze_text(request.text, request.context)
        finally:
            self._pending_ids.discard(request.id)
        result = replace(
            result,
            performance=replace(result.performance, queue_position=remaining),
        )
        self._store_queued_result(request.id, result)
        self._callbacks.notify(result)

    def _store_queued_result(self, request_id: str, result: AnalysisResult) -> None:
        self._queued_results[request_id] = result
        while len(self._queued_results) > self._config.queued_result_limit:
            self._queued_results.popitem(last=False)

    def _present(
        self,
        raw: AnalysisResult,
        current: AnalysisSettings,
        options: AnalysisOptions | None,
    ) -> AnalysisResult:
        suggestions = list(raw.suggestions)
        suggestions.extend(service_suggestions(raw.detected_items, current.auto_create_threshold))
        return replace(
            raw,
            detected_items=tuple(filter_and_sort(raw.detected_items, current, options)),
            suggestions=tuple(suggestions),
        )

    def _fallback_result(
        self,
        text: str,
        current: AnalysisSettings,
        options: AnalysisOptions | None,
    ) -> AnalysisResult:
        started = time.perf_counter()
        start_wall = time.time()
        try:
            items = self._detect(text)
        except Exception:
            logger.exception("Pattern fallback failed")
            return empty_result(len(text))
        return AnalysisResult(
            detected_items=tuple(filter_and_sort(items, current, options)),
            metadata=AnalysisMetadata(
                processing_time_ms=(time.perf_counter() - started) * 1000,
                model_used=MODEL_REGEX_FALLBACK,
                text_length=len(text),
            ),
            suggestions=tuple(service_suggestions(items, current.auto_create_threshold)),
            performance=PerformanceData(start_time=start_wall, end_time=time.time()),
        )

    def _engine_options(
        self,
        current: AnalysisSettings,
        options: AnalysisOptions | None,
    ) -> AnalysisOptions:
        options = options or AnalysisOptions()
        # A per-call option can only turn caching off.
        return replace(
            options,
            enable_caching=current.cache_enabled and _pick(options.enable_caching, True),
            ollama_model=_pick(options.ollama_model, current.ollama_model),
            fallback_to_regex=_pick(options.fallback_to_regex, current.fallback_to_regex),
        )

    def _emit(
        self,
        event_type: AnalysisEventType,
        request_id: str,
        data: Any = None,
        error: BaseException | None = None,
    ) -> None:
        self._events.emit(AnalysisEvent(type=event_type, request_id=request_id, data=data, error=error))

    def _next_request_id(self) -> str:
        return f"req_{int(time.time() * 1000)}_{next(self._request_counter)}"


def _pick(override: Any, default: Any) -> Any:
    return default if override is None else override
