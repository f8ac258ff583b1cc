"""FastAPI application factory"""

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from soulxbot import __version__
from soulxbot.api.dependencies import Services, get_services, init_services
from soulxbot.api.routers import golive_router, questions_router, register_router
from soulxbot.core.errors import SoulxbotError

logger = logging.getLogger(__name__)


async def _handle_soulxbot_error(request: Request, exc: SoulxbotError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app(services: Services) -> FastAPI:
    """Create and configure FastAPI application"""
    init_services(services)
    start_time = time.time()

    app = FastAPI(
        title="soulxbot API",
        description="Go-live trigger, broadcaster registration and question management",
        version=__version__,
        docs_url=None if services.settings.is_production else "/docs",
        redoc_url=None,
    )
    app.add_exception_handler(SoulxbotError, _handle_soulxbot_error)

    app.include_router(golive_router.router)
    app.include_router(register_router.router)
    app.include_router(questions_router.router)

    # Liveness probe
    @app.get("/health")
    async def health():
        db = get_services().database
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - start_time),
            "db_connected": await db.check_health() if db is not None else None,
        }

    logger.info("FastAPI application configured")
    return app
