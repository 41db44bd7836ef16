"""Strict parsing of backend JSON into validated action items.

The backend's reply is untyped model output. Everything here either maps it
onto the closed enums and ranges used internally or rejects it with a
``pydantic.ValidationError``; nothing downstream sees a raw value.
"""

from __future__ import annotations

import math
import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from actionlens.analysis_config import ActionItemType, DetectionMethod, Priority
from actionlens.extraction.models import ActionItemMetadata, DetectedActionItem, TextPosition
from actionlens.extraction.patterns import extract_context

DEFAULT_CONFIDENCE = 0.5


def coerce_type(value: Any) -> ActionItemType:
    try:
        return ActionItemType(str(value).strip().lower())
    except ValueError:
        return ActionItemType.GENERAL


def coerce_priority(value: Any) -> Priority:
    try:
        return Priority(str(value).strip().lower())
    except ValueError:
        return Priority.MEDIUM


def coerce_confidence(value: Any) -> float:
    """Parse a confidence score, clamped to [0, 1]; unusable values become 0.5."""
    if isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if math.isnan(number):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, number))


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none", "n/a"}:
        return None
    return text


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None and str(v).strip()]


class _ReplyModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class _TaskFields(_ReplyModel):
    """Fields common to both transport reply shapes."""

    content: str = ""
    type: ActionItemType = ActionItemType.GENERAL
    priority: Priority = Priority.MEDIUM
    confidence: float = DEFAULT_CONFIDENCE

    @field_validator("content", mode="before")
    @classmethod
    def strip_content(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("type", mode="before")
    @classmethod
    def sanitize_type(cls, value: Any) -> ActionItemType:
        return coerce_type(value)

    @field_validator("priority", mode="before")
    @classmethod
    def sanitize_priority(cls, value: Any) -> Priority:
        return coerce_priority(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        return coerce_confidence(value)


class _LanguageTagged(_ReplyModel):
    detected_language: str = Field(default="unknown", alias="detectedLanguage")

    @field_validator("detected_language", mode="before")
    @classmethod
    def default_language(cls, value: Any) -> str:
        return _optional_text(value) or "unknown"


def _object_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError("expected a list of objects")
    return [v for v in value if isinstance(v, (dict, BaseModel))]


class AiItem(_TaskFields):
    """One item as the model returns it."""

    suggested_title: str | None = Field(default=None, alias="suggestedTitle")
    suggested_description: str | None = Field(default=None, alias="suggestedDescription")
    suggested_due_date: str | None = Field(default=None, alias="suggestedDueDate")
    suggested_assignee: str | None = Field(default=None, alias="suggestedAssignee")
    keywords: list[str] = Field(default_factory=list)
    urgency_indicators: list[str] = Field(default_factory=list, alias="urgencyIndicators")
    assignment_indicators: list[str] = Field(default_factory=list, alias="assignmentIndicators")

    @field_validator(
        "suggested_title",
        "suggested_description",
        "suggested_due_date",
        "suggested_assignee",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, value: Any) -> str | None:
        return _optional_text(value)

    @field_validator("keywords", "urgency_indicators", "assignment_indicators", mode="before")
    @classmethod
    def string_lists(cls, value: Any) -> list[str]:
        return _string_list(value)


class AiReply(_LanguageTagged):
    """Reply shape of the HTTP generate transport."""

    items: list[AiItem] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def object_items(cls, value: Any) -> list[Any]:
        return _object_list(value)


class CommandTask(_TaskFields):
    pass


class CommandReply(_LanguageTagged):
    """Reply shape of the command-line transport."""

    tasks: list[CommandTask] = Field(default_factory=list)

    @field_validator("tasks", mode="before")
    @classmethod
    def object_tasks(cls, value: Any) -> list[Any]:
        return _object_list(value)

    def to_reply(self) -> AiReply:
        return AiReply(
            detected_language=self.detected_language,
            items=[
                AiItem(
                    content=task.content,
                    suggested_title=task.content[:50],
                    type=task.type,
                    priority=task.priority,
                    confidence=task.confidence,
                )
                for task in self.tasks
            ],
        )


def find_text_position(text: str, content: str) -> TextPosition:
    """Locate the first occurrence of *content*; default to ``(0, len(content))``."""
    index = text.find(content)
    if index < 0:
        return TextPosition(0, len(content))
    return TextPosition(index, index + len(content))


def _fallback_title(content: str) -> str:
    return content if len(content) <= 50 else content[:47] + "..."


def to_action_items(
    reply: AiReply, original_text: str, context_radius: int = 100
) -> list[DetectedActionItem]:
    """Convert a validated reply into canonical items positioned in *original_text*."""
    items: list[DetectedActionItem] = []
    for raw in reply.items:
        if not raw.content:
            continue
        position = find_text_position(original_text, raw.content)
        items.append(
            DetectedActionItem(
                id=f"ai_{uuid.uuid4().hex[:12]}",
                content=raw.content,
                type=raw.type,
                priority=raw.priority,
                confidence=raw.confidence,
                suggested_title=raw.suggested_title or _fallback_title(raw.content),
                suggested_description=raw.suggested_description,
                suggested_due_date=raw.suggested_due_date,
                suggested_assignee=raw.suggested_assignee,
                text_position=position,
                context=extract_context(original_text, position, context_radius),
                detection_method=DetectionMethod.AI,
                metadata=ActionItemMetadata(
                    language=reply.detected_language,
                    keywords=tuple(raw.keywords),
                    urgency_indicators=tuple(raw.urgency_indicators),
                    assignment_indicators=tuple(raw.assignment_indicators),
                ),
            )
        )
    return items
