"""
Windsurf
========

A small FastAPI application carrying the Centinela request/response audit
trail and session-scoped CSRF protection.

Tech Stack:
- FastAPI / Starlette
- SQLAlchemy
- pydantic

Features:
- Centinela: one audit record per request, written to JSON files and/or a
  database table, with header redaction and body size limits
- CSRF tokens with a one hour lifetime, ten per session
- Cookie sessions with flash values
- CORS preflight handling
"""

from contextlib import asynccontextmanager
import logging
import os
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from starlette.exceptions import HTTPException

from windsurf.config import Settings, load_environment
from windsurf.database import db_healthcheck, init_engine
from windsurf.middleware import CentinelaMiddleware, CorsMiddleware, CsrfMiddleware, SessionMiddleware
from windsurf.routes.centinela_routes import router as centinela_router
from windsurf.routes.form_routes import router as form_router
from windsurf.services.centinela import CentinelaDispatcher, SinkDiagnostics
from windsurf.services.session_service import SessionStore
from windsurf.validation import ValidationError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

APP_NAME = "Windsurf"
APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Notes:
    - A database that is down only disables the database sink; startup goes on.
    - With auto-migrate on, the Centinela table is ensured once here rather
      than on the first request.
    """
    dispatcher: CentinelaDispatcher = app.state.centinela
    config = dispatcher.config

    if config.db_enabled:
        try:
            db_healthcheck(app.state.engine)
            logger.info("Database reachable; centinela table=%s", config.db_table)
            if config.db_auto_migrate:
                dispatcher.db_logger.ensure_table(app.state.engine)
        except Exception as e:
            logger.error(f"Centinela database sink unavailable: {e}", exc_info=True)

    logger.info(
        "%s started (centinela enabled=%s file=%s db=%s)",
        APP_NAME, config.enabled, config.file_enabled, config.db_enabled,
    )
    yield
    logger.info("%s shutdown complete", APP_NAME)


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    diagnostics: Optional[SinkDiagnostics] = None,
    session_store: Optional[SessionStore] = None,
    csrf_clock: Optional[Callable[[], float]] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    engine = engine or init_engine(settings.database_url)
    dispatcher = CentinelaDispatcher(settings.centinela, diagnostics=diagnostics, engine=engine)

    app = FastAPI(
        title=f"{APP_NAME} API",
        description="Request/response audit trail (Centinela) and CSRF-protected forms.",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.centinela = dispatcher

    # Added innermost first; requests pass CORS -> Centinela -> Session -> CSRF -> routes
    csrf_options = {"config": settings.csrf}
    if csrf_clock is not None:
        csrf_options["clock"] = csrf_clock
    app.add_middleware(CsrfMiddleware, **csrf_options)
    app.add_middleware(SessionMiddleware, store=session_store, config=settings.session)
    app.add_middleware(CentinelaMiddleware, config=settings.centinela, dispatcher=dispatcher)
    app.add_middleware(CorsMiddleware, config=settings.cors, dispatcher=dispatcher)

    # Routers
    app.include_router(form_router)
    app.include_router(centinela_router)

    # Health
    @app.get("/", name="home")
    def health_check():
        return {
            "status": "healthy",
            "service": APP_NAME,
            "version": APP_VERSION,
        }

    # Error handlers
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": True, "status_code": exc.status_code, "detail": exc.detail},
        )

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content={"errors": exc.errors})

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": True, "status_code": 500, "detail": "Internal server error"},
        )

    return app


load_environment()
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("windsurf.main:app", host="0.0.0.0", port=int(os.environ.get("PORT", 8001)), reload=True)
