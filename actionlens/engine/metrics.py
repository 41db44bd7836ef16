"""Rolling performance aggregate for the analysis engine."""

from __future__ import annotations

from actionlens.extraction.models import PerformanceMetrics


class MetricsTracker:
    """Accumulates counts and latencies; ``snapshot()`` derives the rates."""

    def __init__(self) -> None:
        self._total = 0
        self._cache_hits = 0
        self._fresh = 0
        self._fresh_time_ms = 0.0
        self._errors = 0
        self._ai_fallbacks = 0

    def record(self, elapsed_ms: float, cache_hit: bool) -> None:
        self._total += 1
        if cache_hit:
            self._cache_hits += 1
        else:
            self._fresh += 1
            self._fresh_time_ms += elapsed_ms

    def record_error(self, elapsed_ms: float) -> None:
        """Count an analysis that degraded to an empty result."""
        self._errors += 1
        self.record(elapsed_ms, cache_hit=False)

    def record_ai_fallback(self) -> None:
        self._ai_fallbacks += 1

    def snapshot(self) -> PerformanceMetrics:
        total = self._total
        return PerformanceMetrics(
            total_analyses=total,
            average_analysis_time_ms=self._fresh_time_ms / self._fresh if self._fresh else 0.0,
            cache_hit_rate=self._cache_hits / total if total else 0.0,
            error_rate=self._errors / total if total else 0.0,
            cache_hits=self._cache_hits,
            errors=self._errors,
            ai_fallbacks=self._ai_fallbacks,
        )
