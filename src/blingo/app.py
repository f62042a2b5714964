"""FastAPI application factory for Blingo."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from blingo.common.config import get_settings
from blingo.common.logging import setup_logging
from blingo.common.schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from blingo.deps import close_clients, get_db, get_key_store, get_summarizer
        if get_key_store().configured:
            db = get_db()
            await db.init()
            await db.create_all()
        else:
            logger.warning("BLINGO_DB_URL not set, API key store is not configured")
        if get_summarizer().mock_mode:
            logger.warning("BLINGO_OPENAI_API_KEY not set, summaries will be mocked")
        yield
        # Shutdown
        await close_clients()
        if get_key_store().configured:
            await get_db().close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request, exc: StarletteHTTPException):
        return JSONResponse(
            ErrorResponse(error=str(exc.detail)).model_dump(), status_code=exc.status_code
        )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from blingo.keys.router import router as keys_router
    from blingo.summarize.router import router as summarize_router

    prefix = settings.api_prefix
    app.include_router(summarize_router, prefix=prefix, tags=["summarize"])
    app.include_router(keys_router, prefix=prefix)

    return app
