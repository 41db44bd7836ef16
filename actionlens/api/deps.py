"""Request-scoped access to the process runtime."""

from __future__ import annotations

from fastapi import Request

from actionlens.runtime import AnalysisRuntime
from actionlens.service.orchestrator import RealTimeAnalysisService


def get_runtime(request: Request) -> AnalysisRuntime:
    return request.app.state.runtime


def get_service(request: Request) -> RealTimeAnalysisService:
    return get_runtime(request).service
