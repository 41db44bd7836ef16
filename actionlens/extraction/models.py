"""Data models for detected action items and analysis results."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from actionlens.analysis_config import (
    ActionItemType,
    AnalysisEventType,
    DetectionMethod,
    Priority,
    SuggestionType,
)


@dataclass(frozen=True)
class TextPosition:
    """Character span in the caller's original (unchunked) text."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"start ({self.start}) must not exceed end ({self.end})")

    def shifted(self, offset: int) -> TextPosition:
        return TextPosition(self.start + offset, self.end + offset)


@dataclass(frozen=True)
class ActionItemMetadata:
    """Derived signals attached to a detected item."""

    language: str | None = None
    keywords: tuple[str, ...] = ()
    urgency_indicators: tuple[str, ...] = ()
    assignment_indicators: tuple[str, ...] = ()


@dataclass(frozen=True)
class DetectedActionItem:
    """A single candidate action item extracted from text."""

    id: str
    content: str
    type: ActionItemType
    priority: Priority
    confidence: float
    suggested_title: str
    text_position: TextPosition
    context: str
    detection_method: DetectionMethod
    suggested_description: str | None = None
    suggested_due_date: str | None = None
    suggested_assignee: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: ActionItemMetadata = field(default_factory=ActionItemMetadata)

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")


@dataclass(frozen=True)
class AnalysisMetadata:
    processing_time_ms: float
    model_used: str
    text_length: int
    language: str = "unknown"
    cache_hit: bool = False
    analysis_method: DetectionMethod = DetectionMethod.REGEX


@dataclass(frozen=True)
class AnalysisSuggestion:
    """Advisory nudge; never gates a result."""

    type: SuggestionType
    message: str
    confidence: float
    actionable: bool = True


@dataclass(frozen=True)
class PerformanceData:
    start_time: float
    end_time: float
    queue_position: int | None = None


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of one full analysis pass. Immutable once produced."""

    detected_items: tuple[DetectedActionItem, ...]
    metadata: AnalysisMetadata
    suggestions: tuple[AnalysisSuggestion, ...] = ()
    performance: PerformanceData = field(
        default_factory=lambda: PerformanceData(start_time=time.time(), end_time=time.time())
    )


@dataclass(frozen=True)
class AnalysisContext:
    """Optional note context supplied by the editor."""

    note_type: str | None = None
    associated_person: str | None = None
    associated_group: str | None = None


@dataclass(frozen=True)
class AnalysisOptions:
    """Per-call overrides; ``None`` means use the current settings."""

    debounce_ms: int | None = None
    min_confidence_threshold: float | None = None
    max_items: int | None = None
    enable_caching: bool | None = None
    ollama_model: str | None = None
    fallback_to_regex: bool | None = None


@dataclass
class AnalysisRequest:
    """A queued unit of work."""

    id: str
    text: str
    context: AnalysisContext | None = None
    timestamp: float = field(default_factory=time.time)
    priority: int = 0


@dataclass(frozen=True)
class AnalysisEvent:
    type: AnalysisEventType
    request_id: str
    data: Any = None
    error: BaseException | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class PerformanceMetrics:
    """Snapshot of the running performance aggregate."""

    total_analyses: int = 0
    average_analysis_time_ms: float = 0.0
    cache_hit_rate: float = 0.0
    error_rate: float = 0.0
    cache_hits: int = 0
    errors: int = 0
    ai_fallbacks: int = 0


def empty_result(text_length: int = 0, model_used: str = "none") -> AnalysisResult:
    """Zero-cost result for rejected or degraded input."""
    now = time.time()
    return AnalysisResult(
        detected_items=(),
        metadata=AnalysisMetadata(
            processing_time_ms=0.0,
            model_used=model_used,
            text_length=text_length,
        ),
        performance=PerformanceData(start_time=now, end_time=now),
    )
