from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Sequence

from fastapi import Depends, FastAPI, Request, Response
from fastapi.templating import Jinja2Templates

from .metrics.registry import MetricRegistry
from .services.collector import BaseCollector

APP_NAME = "AWS Resources Exporter"
DEFAULT_TELEMETRY_PATH = "/metrics"

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def create_app(
    registry: MetricRegistry,
    collectors: Sequence[BaseCollector] = (),
    telemetry_path: str = DEFAULT_TELEMETRY_PATH,
) -> FastAPI:
    """Build the HTTP app serving cached metrics while the collectors poll AWS."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for collector in collectors:
            collector.start()
        try:
            yield
        finally:
            for collector in collectors:
                await collector.stop()

    app = FastAPI(title=APP_NAME, lifespan=lifespan)

    def get_registry() -> MetricRegistry:
        return registry

    @app.get("/", include_in_schema=False)
    async def index(request: Request):
        return templates.TemplateResponse(
            request=request,
            name="index.html",
            context={
                "app_name": APP_NAME,
                "telemetry_path": telemetry_path,
                "collectors": [collector.name for collector in collectors],
            },
        )

    @app.get(telemetry_path, include_in_schema=False)
    async def metrics(registry: MetricRegistry = Depends(get_registry)) -> Response:
        return Response(content=registry.render(), media_type=registry.content_type)

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    return app
