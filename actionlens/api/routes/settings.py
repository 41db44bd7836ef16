"""Settings endpoints for the analysis service."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from actionlens.api.deps import get_service
from actionlens.api.models import SettingsResponse, SettingsUpdate
from actionlens.service.orchestrator import RealTimeAnalysisService

router = APIRouter(prefix="/api/settings")

ServiceDep = Annotated[RealTimeAnalysisService, Depends(get_service)]


@router.get("", response_model=SettingsResponse)
async def read_settings(service: ServiceDep) -> SettingsResponse:
    return SettingsResponse.from_settings(service.get_settings())


@router.patch("", response_model=SettingsResponse)
async def update_settings(body: SettingsUpdate, service: ServiceDep) -> SettingsResponse:
    """Merge the sent fields into the current settings.

    Out-of-range values are rejected with 422 and leave the settings as they were.
    """
    try:
        updated = service.update_settings(**body.changes())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return SettingsResponse.from_settings(updated)


@router.post("/reset", response_model=SettingsResponse)
async def reset_settings(service: ServiceDep) -> SettingsResponse:
    return SettingsResponse.from_settings(service.reset_settings())
