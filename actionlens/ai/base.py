"""AI backend contract shared by the analysis engine and its adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from actionlens.extraction.models import AnalysisContext, DetectedActionItem


class AiBackendError(Exception):
    """Raised for any backend failure: transport, timeout, status or malformed reply."""


@dataclass(frozen=True)
class BackendStatus:
    """Reachability of the local inference process."""

    installed: bool
    running: bool
    version: str | None = None
    error: str | None = None

    @property
    def available(self) -> bool:
        return self.installed and self.running


@dataclass(frozen=True)
class AiAnalysis:
    """Validated reply from one backend call."""

    language: str
    items: list[DetectedActionItem] = field(default_factory=list)


class AiBackend(ABC):
    @abstractmethod
    async def call(
        self, model: str, text: str, context: AnalysisContext | None = None
    ) -> AiAnalysis:
        """Analyze *text* with *model*.

        Raises:
            AiBackendError: If no transport produced a usable reply.
        """
        raise NotImplementedError

    @abstractmethod
    async def check_availability(self) -> BackendStatus:
        raise NotImplementedError

    @abstractmethod
    async def warm_up(self, model: str) -> None:
        """Prime *model* once; must never raise."""
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
