# src/where_the_bus/main.py
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from where_the_bus import collector
from where_the_bus.config import Settings
from where_the_bus.models import HealthResponse
from where_the_bus.routes import router
from where_the_bus.service import TransitService

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or Settings()
        logging.basicConfig(
            level=cfg.log_level,
            format="%(asctime)s %(levelname)s %(name)s — %(message)s",
        )
        # Raises ConfigError and aborts startup when a parameter is missing.
        service = TransitService.from_settings(cfg)
        app.state.service = service
        logger.info(
            "Service started (transport=%s, mock=%s, %d zones)",
            cfg.deployment_context,
            cfg.mock_mode,
            len(service.zones.snapshot()),
        )

        task = None
        if cfg.warm_cache:
            # Half the TTL, so each wake-up finds the entry expired at most once.
            task = asyncio.create_task(
                collector.run(service.cache, cfg.feed_ttl / 2)
            )
        yield
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await service.aclose()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="where the bus",
        description="Real-time bus and train positions with geofence alerts. "
        "Positions are cached briefly and shared between callers; when an "
        "upstream feed is down the response says so in `source` instead of "
        "failing.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)

    @app.get("/health", response_model=HealthResponse, tags=["system"])
    def health():
        service: TransitService = app.state.service
        return HealthResponse(
            mock_mode=service.settings.mock_mode,
            deployment_context=service.settings.deployment_context,
            feeds=service.feed_status(),
        )

    return app


app = create_app()
