"""Lockwarden: account protection and threat detection service.

FastAPI entry point with lifespan management and the retention loop.
"""

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from .api.router import api_router
from .config import get_config
from .database import close_engine, create_tables
from .dependencies import close_protection_engine, get_app_config, get_protection_engine, peek_protection_engine
from .maintenance.retention import RetentionManager
from .middleware.error_handler import register_error_handlers
from .middleware.rate_limit import GatekeeperMiddleware
from .middleware.request_id import RequestIDMiddleware
from .utils.logging import get_logger, setup_logging

config = get_config()
setup_logging(
    debug=config.debug,
    log_dir=config.log_dir,
    log_max_bytes=config.log_max_bytes,
    log_backup_count=config.log_backup_count,
)
logger = get_logger("lockwarden.main")

VERSION = "1.0.0"


async def _retention_cleanup_loop(retention: RetentionManager, interval: float) -> None:
    while True:
        try:
            await asyncio.sleep(interval)
            logger.info("retention_cleanup_starting")
            summary = await retention.run_cleanup()
            logger.info("retention_cleanup_complete", summary=summary)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("retention_cleanup_error", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    app_config = get_app_config()

    # --- Startup ---
    logger.info("lockwarden_starting", host=app_config.host, port=app_config.port)
    if not app_config.admin_api_key:
        logger.warning("admin_api_disabled", reason="ADMIN_API_KEY is not set")

    await create_tables(app_config)
    engine = get_protection_engine()

    retention = RetentionManager(engine, app_config)
    retention_task = asyncio.create_task(
        _retention_cleanup_loop(retention, app_config.retention_interval_seconds)
    )
    logger.info("lockwarden_started", store_backend=app_config.store_backend)

    yield

    # --- Shutdown ---
    logger.info("lockwarden_stopping")
    retention_task.cancel()
    await asyncio.wait([retention_task], timeout=3.0)

    await close_protection_engine()
    await close_engine()
    logger.info("lockwarden_stopped")


app = FastAPI(
    title="LOCKWARDEN",
    description="Account protection and threat detection engine",
    version=VERSION,
    lifespan=lifespan,
)

# Register standard error handlers
register_error_handlers(app)

# The Gatekeeper: rate limiting on state-changing endpoints
app.add_middleware(GatekeeperMiddleware)

# Request ID: added LAST so it runs FIRST
app.add_middleware(RequestIDMiddleware)

# Mount API routes
app.include_router(api_router)


@app.get("/health")
async def health():
    """Engine health: degraded flag plus recorder and detector counters."""
    engine = peek_protection_engine()
    if engine is None:
        return {"name": get_app_config().app_name, "version": VERSION, "status": "starting"}
    stats = engine.stats()
    return {
        "name": get_app_config().app_name,
        "version": VERSION,
        "status": "degraded" if stats["degraded"] else "operational",
        "engine": stats,
    }


def main():
    """Run the Lockwarden server."""
    uvicorn.run(
        "lockwarden.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
