"""Pydantic request/response schemas for the ActionLens API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from actionlens.analysis_config import (
    ActionItemType,
    AnalysisSettings,
    DetectionMethod,
    Priority,
    SuggestionType,
)
from actionlens.extraction.models import AnalysisContext, AnalysisOptions


class ContextPayload(BaseModel):
    """Optional note context sent by the editor."""

    note_type: str | None = None
    associated_person: str | None = None
    associated_group: str | None = None

    def to_context(self) -> AnalysisContext:
        return AnalysisContext(**self.model_dump())


class OptionsPayload(BaseModel):
    """Per-request overrides; omitted fields use the current settings."""

    debounce_ms: int | None = Field(default=None, ge=0)
    min_confidence_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    max_items: int | None = Field(default=None, ge=0)
    enable_caching: bool | None = None
    ollama_model: str | None = None
    fallback_to_regex: bool | None = None

    def to_options(self) -> AnalysisOptions:
        return AnalysisOptions(**self.model_dump())


class AnalyzeRequest(BaseModel):
    """Request body for the /api/analyze endpoint."""

    text: str
    context: ContextPayload | None = None
    options: OptionsPayload | None = None


class QueueRequest(BaseModel):
    """Request body for the /api/queue endpoint."""

    text: str
    context: ContextPayload | None = None
    priority: int = 0


class QueueResponse(BaseModel):
    request_id: str


class TextPositionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: int
    end: int


class ItemMetadataResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    language: str | None = None
    keywords: list[str] = []
    urgency_indicators: list[str] = []
    assignment_indicators: list[str] = []


class DetectedItemResponse(BaseModel):
    """A single detected action item."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    content: str
    type: ActionItemType
    priority: Priority
    confidence: float
    suggested_title: str
    suggested_description: str | None = None
    suggested_due_date: str | None = None
    suggested_assignee: str | None = None
    text_position: TextPositionResponse
    context: str
    detection_method: DetectionMethod
    created_at: datetime
    metadata: ItemMetadataResponse


class AnalysisMetadataResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    processing_time_ms: float
    model_used: str
    text_length: int
    language: str
    cache_hit: bool
    analysis_method: DetectionMethod


class SuggestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: SuggestionType
    message: str
    confidence: float
    actionable: bool


class PerformanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start_time: float
    end_time: float
    queue_position: int | None = None


class AnalysisResponse(BaseModel):
    """Response body for the /api/analyze endpoint."""

    model_config = ConfigDict(from_attributes=True)

    detected_items: list[DetectedItemResponse]
    metadata: AnalysisMetadataResponse
    suggestions: list[SuggestionResponse]
    performance: PerformanceResponse


class SettingsResponse(BaseModel):
    """Current analysis settings."""

    model_config = ConfigDict(from_attributes=True)

    enabled: bool
    debounce_ms: int
    min_confidence_threshold: float
    max_items_to_show: int
    enabled_detection_types: list[ActionItemType]
    ollama_model: str
    fallback_to_regex: bool
    cache_enabled: bool
    show_low_confidence_items: bool
    auto_create_threshold: float

    @classmethod
    def from_settings(cls, analysis_settings: AnalysisSettings) -> SettingsResponse:
        return cls.model_validate(analysis_settings)


class SettingsUpdate(BaseModel):
    """Partial settings update; only the fields sent are applied."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool | None = None
    debounce_ms: int | None = None
    min_confidence_threshold: float | None = None
    max_items_to_show: int | None = None
    enabled_detection_types: list[ActionItemType] | None = None
    ollama_model: str | None = None
    fallback_to_regex: bool | None = None
    cache_enabled: bool | None = None
    show_low_confidence_items: bool | None = None
    auto_create_threshold: float | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class CancelResponse(BaseModel):
    cancelled_request_ids: list[str]


class MetricsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_analyses: int
    average_analysis_time_ms: float
    cache_hit_rate: float
    error_rate: float
    cache_hits: int
    errors: int
    ai_fallbacks: int


class CacheInfoResponse(BaseModel):
    size: int
    max_entries: int
    ttl_seconds: float
    enabled: bool


class QueueStatusResponse(BaseModel):
    length: int
    is_processing: bool
    debounce: str


class HealthResponse(BaseModel):
    status: str
    details: dict[str, bool]


class QueuedResultResponse(BaseModel):
    """Status of a queued analysis; ``result`` is set once it completes."""

    request_id: str
    status: str
    result: AnalysisResponse | None = None
