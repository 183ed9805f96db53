import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .api.health import router as health_router
from .api.lookup import router as lookup_router
from .logging_config import setup_logging
from .middleware import TracingMiddleware
from .refresher import DatabaseRefresher, editions_for
from .store import StoreHolder

logger = logging.getLogger("geoip")


def create_app(holder: Optional[StoreHolder] = None,
               refresher: Optional[DatabaseRefresher] = None,
               update_interval: float = config.UPDATE_INTERVAL_SECONDS) -> FastAPI:
    """
    Build the application. Without a holder the database at the configured
    path is opened at startup; failing to open it aborts startup.
    """

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        store_holder = holder
        if store_holder is None:
            store_holder = StoreHolder()
            store_holder.open(config.get_db_path())
        db_refresher = refresher
        if db_refresher is None:
            db_refresher = DatabaseRefresher(
                store_holder,
                editions_for(config.EDITIONS, store_holder.path),
                config.get_license_key(),
            )

        application.state.store_holder = store_holder
        application.state.refresher = db_refresher
        application.state.refresh_task = asyncio.create_task(
            db_refresher.run_forever(update_interval)
        )
        logger.info("GeoIP API ready", extra={
            "component": "api",
            "db_path": store_holder.path,
            "refresh_enabled": db_refresher.enabled,
        })

        try:
            yield
        finally:
            application.state.refresh_task.cancel()
            with suppress(asyncio.CancelledError):
                await application.state.refresh_task
            logger.info("GeoIP API shutting down", extra={"component": "api"})

    application = FastAPI(title="GeoIP API", version=config.API_VERSION, lifespan=lifespan)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=config.CORS_ALLOWED_HEADERS,
        max_age=config.CORS_MAX_AGE,
    )
    application.add_middleware(TracingMiddleware)

    application.include_router(lookup_router)
    application.include_router(health_router)
    return application


setup_logging()

app = create_app()
