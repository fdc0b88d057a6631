"""
Main application entry point for the JLPT backend.

Usage:
    - Direct: python -m jlpt_backend.main
    - ASGI server: uvicorn jlpt_backend.main:app
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jlpt_backend import __version__
from jlpt_backend.api import install_exception_handlers, main_router, register_assessment_module
from jlpt_backend.common.logger import app_logger
from jlpt_backend.config import settings
from jlpt_backend.database.init_db import close_database, initialize_database

logger = app_logger.getChild("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database engine on startup and dispose it on shutdown."""
    await initialize_database(
        database_url=settings.DATABASE_URL,
        echo=settings.SQL_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
    )
    logger.info("Application startup complete")
    yield
    await close_database()
    logger.info("Application shutdown complete")


def _register_assessment_modules() -> None:
    from jlpt_backend.assessments.exam.router import router as exam_router
    register_assessment_module(name="exam", router=exam_router)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Routers are registered on the shared ``main_router`` before it is
    included, so every module route ends up on the app.
    """
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Test composition and adaptive question sessions for JLPT preparation",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_assessment_modules()
    app.include_router(main_router)
    install_exception_handlers(app)

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "version": __version__}

    logger.info(f"Application created with {len(app.routes)} routes")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", 8000))
    reload_enabled = os.environ.get("RELOAD", "false").lower() == "true"

    logger.info(f"Starting server on {host}:{port} (reload: {reload_enabled})")
    uvicorn.run(
        "jlpt_backend.main:app",
        host=host,
        port=port,
        reload=reload_enabled,
        log_level=settings.LOG_LEVEL.lower()
    )
