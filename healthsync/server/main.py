"""
Reference server for the healthsync chunked upload and processing contracts.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException

from healthsync import __version__
from healthsync.server.api import router as api_router
from healthsync.server.db import models  # noqa: F401  registers tables on Base
from healthsync.server.db.session import Base, engine
from healthsync.server.services import get_processing_manager, storage

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting healthsync server...")
    storage.ensure_directories()
    await create_db_and_tables()
    logger.info("Application startup completed successfully!")

    yield

    logger.info("Shutting down healthsync server...")
    await get_processing_manager().stop()
    await engine.dispose()
    logger.info("Application shutdown completed successfully!")


async def create_db_and_tables():
    """Create database tables if they don't exist and validate connectivity."""
    max_retries = 10
    base_delay = 0.5

    for attempt in range(max_retries):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
                await conn.execute(text("SELECT 1"))
            logger.info("Database tables created and connectivity verified!")
            return
        except Exception as e:
            if attempt < max_retries - 1:
                delay = min(3.0, base_delay * (2 ** attempt))
                logger.warning(f"Failed to create tables/connect (attempt {attempt + 1}/{max_retries}): {e}. Retrying in {delay:.1f}s...")
                await asyncio.sleep(delay)
            else:
                logger.error(f"Failed to initialize database after {max_retries} attempts: {e}")
                raise


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render errors as ``{"success": false, "error": ...}``, the shape clients read."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request", "details": str(exc.errors())},
    )


def create_app(with_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="healthsync",
        description="Chunked health-data uploads with asynchronous processing",
        version=__version__,
        lifespan=lifespan if with_lifespan else None,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(api_router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "healthsync",
            "version": __version__,
            "docs": "/docs",
            "api": "/api"
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
