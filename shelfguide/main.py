from contextlib import asynccontextmanager

from fastapi import FastAPI

from shelfguide.internal.env_settings import Settings
from shelfguide.internal.services import build_services
from shelfguide.routers import api
from shelfguide.util.connection import create_client_session
from shelfguide.util.log import logger, setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()
    setup_logging(
        log_level="DEBUG" if settings.app.debug else settings.app.log_level,
        log_format=settings.app.log_format,
        log_file=settings.app.log_file,
        config_dir=settings.app.config_dir,
    )
    client_session = create_client_session(settings.lookup)
    app.state.services = build_services(settings, client_session)
    logger.info(
        "Lookup service started",
        cache_backend=settings.covers.cache_backend,
        max_concurrency=settings.covers.max_concurrency,
        request_gap_ms=settings.covers.request_gap_ms,
    )
    try:
        yield
    finally:
        await client_session.close()
        logger.info("Lookup service stopped")


app = FastAPI(title="ShelfGuide Lookup", lifespan=lifespan)
app.include_router(api.router)
