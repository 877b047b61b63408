"""
FastAPI Application Factory

Creates the web application that receives Microsoft Graph mail
notifications and Telegram bot updates, and runs periodic housekeeping
(expired row sweep and subscription renewal) while it is up.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from ..core.config import ConfigManager, get_config
from ..core.exceptions import GraphAPIError
from ..core.logging_config import setup_logging
from ..services import Services, build_services
from ..utils.concurrency import run_blocking


logger = logging.getLogger(__name__)


async def run_housekeeping_once(services: Services):
    """Purge expired rows and keep the Graph subscription alive."""
    try:
        await run_blocking(services.db.purge_expired)
    except Exception as e:
        logger.error(f"Expired row purge failed: {e}", exc_info=True)

    if not services.config.graph_api.is_configured():
        logger.debug("Graph API not configured, skipping subscription check")
        return

    try:
        action = await run_blocking(services.subscriptions.renew_if_expiring)
        if action != "ok":
            logger.info(f"Mail subscription {action}")
    except GraphAPIError as e:
        logger.error(f"Mail subscription maintenance failed: {e}")


async def housekeeping_loop(services: Services, interval_minutes: int):
    """Run housekeeping every interval_minutes until cancelled."""
    logger.info(f"Starting housekeeping (every {interval_minutes}m)")
    while True:
        await run_housekeeping_once(services)
        await asyncio.sleep(interval_minutes * 60)


def create_app(config: Optional[ConfigManager] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        config: Configuration (default: global get_config())
        services: Prebuilt services (default: built from config)

    Returns:
        Configured FastAPI app
    """
    if config is None:
        config = services.config if services is not None else get_config()
    if services is None:
        services = build_services(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services.db.create_tables()

        task = None
        if config.app.housekeeping_enabled:
            task = asyncio.create_task(
                housekeeping_loop(services, config.app.housekeeping_interval_minutes)
            )

        yield

        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Housekeeping stopped")

    app = FastAPI(
        title="Inbox Courier",
        description="Relays new mailbox messages to Telegram and sends AI-drafted replies",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.services = services

    # Register routers (imported here to avoid circular imports)
    from .routers import health, webhooks

    app.include_router(health.router, prefix="/api", tags=["Health"])
    app.include_router(webhooks.router, prefix="/api/webhook", tags=["Webhooks"])

    logger.info("FastAPI application created successfully")

    return app


def run_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """
    Run the FastAPI server using uvicorn.

    Args:
        host: Host to bind to
        port: Port to bind to
        reload: Enable auto-reload on code changes
    """
    setup_logging(log_file="logs/web.log")

    logger.info(f"Starting web server on {host}:{port} (reload: {reload})")

    app = create_app()

    uvicorn.run(
        app,
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


if __name__ == "__main__":
    run_server()
