"""Analysis engine: cache lookup, AI-vs-regex routing, chunking and metrics."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import replace

from actionlens.ai.base import AiBackend, BackendStatus
from actionlens.analysis_config import DetectionMethod, Priority, SuggestionType
from actionlens.config import Settings, settings
from actionlens.engine.cache import AnalysisCache, fingerprint
from actionlens.engine.chunking import remap_items, split_into_chunks
from actionlens.engine.metrics import MetricsTracker
from actionlens.extraction.dedupe import deduplicate_items
from actionlens.extraction.models import (
    AnalysisContext,
    AnalysisMetadata,
    AnalysisOptions,
    AnalysisResult,
    AnalysisSuggestion,
    DetectedActionItem,
    PerformanceData,
    PerformanceMetrics,
    empty_result,
)
from actionlens.extraction.patterns import detect_patterns

logger = logging.getLogger(__name__)

MODEL_NONE = "none"
MODEL_REGEX = "regex-engine"
MODEL_REGEX_FALLBACK = "regex-fallback"
MODEL_CHUNKED = "chunked-analysis"

PatternEngine = Callable[[str], list[DetectedActionItem]]


def engine_suggestions(items: list[DetectedActionItem]) -> list[AnalysisSuggestion]:
    """Advisory nudges derived from the raw candidate list."""
    suggestions: list[AnalysisSuggestion] = []

    low_confidence = [item for item in items if item.confidence < 0.6]
    if low_confidence:
        suggestions.append(
            AnalysisSuggestion(
                type=SuggestionType.FORMATTING,
                message=(
                    f"Consider using clearer action language for "
                    f"{len(low_confidence)} detected items"
                ),
                confidence=0.7,
            )
        )

    urgent = [item for item in items if item.priority is Priority.URGENT]
    if len(urgent) > 3:
        suggestions.append(
            AnalysisSuggestion(
                type=SuggestionType.PRIORITY,
                message="Many urgent items detected. Consider prioritizing the most critical ones.",
                confidence=0.8,
            )
        )

    return suggestions


class AnalysisEngine:
    """Produces an :class:`AnalysisResult` for a block of text.

    Routing per request:

    1. Text shorter than ``min_text_length`` (after trimming) yields an
       empty result.
    2. A fresh cache entry for the text's fingerprint is returned as a
       cache hit. Concurrent misses for the same fingerprint share one
       underlying analysis.
    3. Text longer than ``max_text_length`` is analyzed slice by slice.
    4. Otherwise the AI backend is used when available, with the pattern
       engine as the fallback for any backend failure.

    ``analyze`` never raises for analysis failures; the worst case is an
    empty result and an incremented error count.
    """

    def __init__(
        self,
        backend: AiBackend,
        config: Settings | None = None,
        pattern_engine: PatternEngine = detect_patterns,
        cache: AnalysisCache | None = None,
        metrics: MetricsTracker | None = None,
    ) -> None:
        self._backend = backend
        self._config = config or settings
        self._detect = pattern_engine
        self._cache = cache or AnalysisCache(
            max_entries=self._config.cache_max_entries,
            ttl_seconds=self._config.cache_ttl_seconds,
        )
        self._metrics = metrics or MetricsTracker()
        self._in_flight: dict[str, asyncio.Task[AnalysisResult]] = {}
        # Bumped on clear so results started before a clear are not cached.
        self._generation = 0

    async def analyze(
        self,
        text: str,
        context: AnalysisContext | None = None,
        options: AnalysisOptions | None = None,
    ) -> AnalysisResult:
        options = options or AnalysisOptions()
        started = time.perf_counter()

        if len(text.strip()) < self._config.min_text_length:
            return empty_result(len(text))

        if options.enable_caching is False:
            return await self._run_fresh(text, context, options)

        key = fingerprint(text)
        cached = self._cache.get(key)
        if cached is not None:
            return self._as_cache_hit(cached, started)

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(
                self._run_fresh(text, context, options, key=key, generation=self._generation)
            )
            self._in_flight[key] = task
            # Shielded: cancelling this caller must not abort shared work.
            return await asyncio.shield(task)

        logger.debug("Joining in-flight analysis for fingerprint %s", key)
        result = await asyncio.shield(task)
        return self._as_cache_hit(result, started)

    def clear_cache(self) -> None:
        self._generation += 1
        self._cache.clear()

    def cache_size(self) -> int:
        return len(self._cache)

    def get_performance_metrics(self) -> PerformanceMetrics:
        return self._metrics.snapshot()

    async def check_backend(self) -> BackendStatus:
        try:
            return await self._backend.check_availability()
        except Exception as exc:
            logger.warning("Backend availability check failed: %s", exc)
            return BackendStatus(installed=False, running=False, error=str(exc))

    async def aclose(self) -> None:
        await self._backend.aclose()

    async def _run_fresh(
        self,
        text: str,
        context: AnalysisContext | None,
        options: AnalysisOptions,
        key: str | None = None,
        generation: int | None = None,
    ) -> AnalysisResult:
        started = time.perf_counter()
        try:
            if len(text) > self._config.max_text_length:
                result = await self._analyze_chunked(text, context, options)
            else:
                result = await self._analyze_single(text, context, options)
        except Exception:
            logger.exception("Analysis failed for %d characters of text", len(text))
            self._metrics.record_error(_elapsed_ms(started))
            return empty_result(len(text))
        finally:
            if key is not None:
                self._in_flight.pop(key, None)

        self._metrics.record(_elapsed_ms(started), cache_hit=False)
        if key is not None and generation == self._generation:
            self._cache.put(key, result)
        return result

    async def _analyze_single(
        self,
        text: str,
        context: AnalysisContext | None,
        options: AnalysisOptions,
    ) -> AnalysisResult:
        started = time.perf_counter()
        model = options.ollama_model or self._config.ollama_model
        allow_fallback = options.fallback_to_regex is not False

        status = await self.check_backend()
        if not status.available:
            if not allow_fallback:
                return empty_result(len(text))
            return self._pattern_result(text, started, MODEL_REGEX)

        await self._backend.warm_up(model)
        try:
            analysis = await self._backend.call(model, text, context)
        except Exception as exc:
            logger.warning("AI analysis failed, falling back to regex: %s", exc)
            self._metrics.record_ai_fallback()
            if not allow_fallback:
                return empty_result(len(text))
            return self._pattern_result(text, started, MODEL_REGEX_FALLBACK)

        return self._build_result(
            deduplicate_items(analysis.items),
            text,
            started,
            model_used=model,
            method=DetectionMethod.AI,
            language=analysis.language,
        )

    async def _analyze_chunked(
        self,
        text: str,
        context: AnalysisContext | None,
        options: AnalysisOptions,
    ) -> AnalysisResult:
        started = time.perf_counter()
        chunks = split_into_chunks(text, self._config.chunk_size)
        logger.info("Analyzing %d characters in %d chunks", len(text), len(chunks))

        items: list[DetectedActionItem] = []
        methods: set[DetectionMethod] = set()
        languages: list[str] = []
        for chunk in chunks:
            if len(chunk.text.strip()) < self._config.min_text_length:
                continue
            chunk_result = await self._analyze_single(chunk.text, context, options)
            if chunk_result.metadata.model_used == MODEL_NONE:
                continue
            methods.add(chunk_result.metadata.analysis_method)
            if chunk_result.metadata.language != "unknown":
                languages.append(chunk_result.metadata.language)
            items.extend(remap_items(list(chunk_result.detected_items), chunk.offset))

        if len(methods) == 1:
            method = methods.pop()
        elif methods:
            method = DetectionMethod.HYBRID
        else:
            method = DetectionMethod.REGEX

        return self._build_result(
            deduplicate_items(items),
            text,
            started,
            model_used=MODEL_CHUNKED,
            method=method,
            language=languages[0] if languages else "unknown",
        )

    def _pattern_result(self, text: str, started: float, model_used: str) -> AnalysisResult:
        return self._build_result(
            self._detect(text),
            text,
            started,
            model_used=model_used,
            method=DetectionMethod.REGEX,
        )

    def _build_result(
        self,
        items: list[DetectedActionItem],
        text: str,
        started: float,
        model_used: str,
        method: DetectionMethod,
        language: str = "unknown",
    ) -> AnalysisResult:
        elapsed = _elapsed_ms(started)
        end_wall = time.time()
        return AnalysisResult(
            detected_items=tuple(items),
            metadata=AnalysisMetadata(
                processing_time_ms=elapsed,
                model_used=model_used,
                text_length=len(text),
                language=language,
                cache_hit=False,
                analysis_method=method,
            ),
            suggestions=tuple(engine_suggestions(items)),
            performance=PerformanceData(start_time=end_wall - elapsed / 1000, end_time=end_wall),
        )

    def _as_cache_hit(self, result: AnalysisResult, started: float) -> AnalysisResult:
        elapsed = _elapsed_ms(started)
        self._metrics.record(elapsed, cache_hit=True)
        end_wall = time.time()
        return replace(
            result,
            metadata=replace(result.metadata, cache_hit=True, processing_time_ms=elapsed),
            performance=PerformanceData(start_time=end_wall - elapsed / 1000, end_time=end_wall),
        )


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
