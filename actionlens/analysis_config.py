"""Analysis configuration: closed tag enums and the AnalysisSettings dataclass."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import StrEnum
from typing import Any

from actionlens.config import Settings


class ActionItemType(StrEnum):
    """Fixed set of action item categories."""

    TODO = "todo"
    TASK = "task"
    ACTION = "action"
    REMINDER = "reminder"
    DEADLINE = "deadline"
    DEVELOPMENT = "development"
    FOLLOW_UP = "follow_up"
    ASSIGNMENT = "assignment"
    COMMITMENT = "commitment"
    GENERAL = "general"


class Priority(StrEnum):
    """Priority tiers, lowest first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    def upgraded(self) -> Priority:
        """Return the next tier up (urgent stays urgent)."""
        order = list(Priority)
        return order[min(order.index(self) + 1, len(order) - 1)]


_PRIORITY_RANK: dict[Priority, int] = {
    Priority.LOW: 1,
    Priority.MEDIUM: 2,
    Priority.HIGH: 3,
    Priority.URGENT: 4,
}


class DetectionMethod(StrEnum):
    """Which analysis path produced an item or result."""

    AI = "ai"
    REGEX = "regex"
    HYBRID = "hybrid"


class SuggestionType(StrEnum):
    """Categories of advisory suggestions attached to a result."""

    FORMATTING = "formatting"
    PRIORITY = "priority"
    ASSIGNMENT = "assignment"
    DEADLINE = "deadline"


class AnalysisEventType(StrEnum):
    """Lifecycle notifications emitted by the orchestrator."""

    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


DEFAULT_DETECTION_TYPES: tuple[ActionItemType, ...] = (
    ActionItemType.TODO,
    ActionItemType.TASK,
    ActionItemType.ACTION,
    ActionItemType.DEADLINE,
    ActionItemType.REMINDER,
    ActionItemType.DEVELOPMENT,
)


@dataclass(frozen=True)
class AnalysisSettings:
    """Immutable user-facing analysis settings.

    A new instance replaces the current one on every update, so readers
    never observe a half-applied change.
    """

    enabled: bool = True
    debounce_ms: int = 400
    min_confidence_threshold: float = 0.5
    max_items_to_show: int = 10
    enabled_detection_types: tuple[ActionItemType, ...] = DEFAULT_DETECTION_TYPES
    ollama_model: str = "llama3.2:1b"
    fallback_to_regex: bool = True
    cache_enabled: bool = True
    show_low_confidence_items: bool = False
    auto_create_threshold: float = 0.8

    def __post_init__(self) -> None:
        if self.debounce_ms < 0:
            raise ValueError("debounce_ms must be >= 0")
        if self.max_items_to_show < 0:
            raise ValueError("max_items_to_show must be >= 0")
        for name in ("min_confidence_threshold", "auto_create_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        # Accept plain strings and lists from callers; store validated enums.
        object.__setattr__(
            self,
            "enabled_detection_types",
            tuple(ActionItemType(t) for t in self.enabled_detection_types),
        )

    @classmethod
    def from_config(cls, config: Settings) -> AnalysisSettings:
        """Build process-start defaults from the environment-backed config."""
        return cls(debounce_ms=config.debounce_ms, ollama_model=config.ollama_model)

    def merged(self, changes: dict[str, Any]) -> AnalysisSettings:
        """Shallow-merge *changes* into a new settings instance.

        Raises:
            ValueError: On unknown keys or out-of-range values.
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f"Unknown analysis settings: {', '.join(unknown)}")
        return replace(self, **changes)
