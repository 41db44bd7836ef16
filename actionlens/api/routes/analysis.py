"""Analysis endpoints: immediate analysis, queueing, cancellation and cache."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from actionlens.api.deps import get_service
from actionlens.api.models import (
    AnalysisResponse,
    AnalyzeRequest,
    CacheInfoResponse,
    CancelResponse,
    MetricsResponse,
    QueueRequest,
    QueueResponse,
    QueuedResultResponse,
    QueueStatusResponse,
)
from actionlens.service.orchestrator import RealTimeAnalysisService

router = APIRouter(prefix="/api")

ServiceDep = Annotated[RealTimeAnalysisService, Depends(get_service)]


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze(body: AnalyzeRequest, service: ServiceDep) -> AnalysisResponse:
    """Analyze text immediately and return the filtered, sorted items.

    Never fails for analysis problems: an unreachable model yields a
    pattern-based result and the worst case is an empty item list.
    """
    result = await service.analyze_text(
        body.text,
        context=body.context.to_context() if body.context else None,
        options=body.options.to_options() if body.options else None,
    )
    return AnalysisResponse.model_validate(result)


@router.post("/queue", response_model=QueueResponse)
async def queue(body: QueueRequest, service: ServiceDep) -> QueueResponse:
    request_id = service.queue_analysis(
        body.text,
        context=body.context.to_context() if body.context else None,
        priority=body.priority,
    )
    return QueueResponse(request_id=request_id)


@router.get("/queue", response_model=QueueStatusResponse)
async def queue_status(service: ServiceDep) -> QueueStatusResponse:
    return QueueStatusResponse(**service.get_queue_status())


@router.get("/queue/{request_id}", response_model=QueuedResultResponse)
async def queued_result(request_id: str, service: ServiceDep) -> QueuedResultResponse:
    """Return the status of a queued analysis and, once done, its result."""
    entry = service.get_queued_result(request_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Unknown request id: {request_id}")
    result = entry["result"]
    return QueuedResultResponse(
        request_id=request_id,
        status=entry["status"],
        result=AnalysisResponse.model_validate(result) if result is not None else None,
    )


@router.post("/cancel", response_model=CancelResponse)
async def cancel(service: ServiceDep) -> CancelResponse:
    """Drop pending debounced and queued work. Running analyses finish."""
    return CancelResponse(cancelled_request_ids=service.cancel_all())


@router.get("/metrics", response_model=MetricsResponse)
async def metrics(service: ServiceDep) -> MetricsResponse:
    return MetricsResponse.model_validate(service.get_performance_metrics())


@router.get("/cache", response_model=CacheInfoResponse)
async def cache_info(service: ServiceDep) -> CacheInfoResponse:
    return CacheInfoResponse(**service.get_cache_info())


@router.delete("/cache", response_model=CacheInfoResponse)
async def clear_cache(service: ServiceDep) -> CacheInfoResponse:
    service.clear_cache()
    return CacheInfoResponse(**service.get_cache_info())
