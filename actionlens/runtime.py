"""Process-level wiring of config, AI backend, engine and service."""

from __future__ import annotations

from dataclasses import dataclass

from actionlens.ai.base import AiBackend
from actionlens.ai.ollama import OllamaAdapter
from actionlens.config import Settings, get_settings
from actionlens.engine.analyzer import AnalysisEngine
from actionlens.service.orchestrator import RealTimeAnalysisService


@dataclass
class AnalysisRuntime:
    """One set of collaborators shared by every caller in a process."""

    config: Settings
    backend: AiBackend
    engine: AnalysisEngine
    service: RealTimeAnalysisService

    async def aclose(self) -> None:
        await self.service.aclose()


def build_runtime(config: Settings | None = None, backend: AiBackend | None = None) -> AnalysisRuntime:
    """Construct a fresh runtime; tests pass a fake *backend*."""
    config = config or get_settings()
    backend = backend or OllamaAdapter(config)
    engine = AnalysisEngine(backend, config)
    service = RealTimeAnalysisService(engine, config)
    return AnalysisRuntime(config=config, backend=backend, engine=engine, service=service)
