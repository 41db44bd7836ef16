from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from actionlens.api.deps import get_service
from actionlens.api.models import HealthResponse
from actionlens.api.routes.analysis import router as analysis_router
from actionlens.api.routes.settings import router as settings_router
from actionlens.config import get_settings
from actionlens.runtime import AnalysisRuntime, build_runtime
from actionlens.service.orchestrator import RealTimeAnalysisService

logger = logging.getLogger(__name__)


def create_app(runtime: AnalysisRuntime | None = None) -> FastAPI:
    """Build the API around *runtime*, or a default one from the environment."""
    runtime = runtime or build_runtime()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("ActionLens API started (model %s)", runtime.config.ollama_model)
        yield
        await runtime.aclose()

    app = FastAPI(
        title="ActionLens API",
        description="Real-time action item detection for notes",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"http://localhost:\d+|http://127\.0\.0\.1:\d+",
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(analysis_router)
    app.include_router(settings_router)

    @app.get("/health", response_model=HealthResponse)
    async def health(
        service: Annotated[RealTimeAnalysisService, Depends(get_service)],
    ) -> HealthResponse:
        return HealthResponse(**await service.health_check())

    return app


logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    config = get_settings()
    uvicorn.run(app, host=config.api_host, port=config.api_port)
