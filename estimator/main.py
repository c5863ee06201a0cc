"""
Main FastAPI application entry point.
Configures the application, middleware, error handlers and routes.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from estimator.api.routes import export, extraction, health, quote
from estimator.core.config import settings
from estimator.core.logging import get_logger, session_id_var, setup_logging
from estimator.services.export_service import EmptyQuoteError
from estimator.services.extraction_service import ExtractionError, ExtractionErrorKind
from estimator.ui import routes as ui_routes
from estimator.ui.state import ExtractionInProgress, new_session_id

# Setup logging
setup_logging()
logger = get_logger(__name__)

EXTRACTION_STATUS = {
    ExtractionErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ExtractionErrorKind.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ExtractionErrorKind.NOT_CONFIGURED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.
    Runs startup and shutdown logic.
    """
    logger.info(f"Starting {settings.PROJECT_NAME} v{settings.VERSION}")
    if not settings.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY is not set; AI extraction is disabled")
    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application...")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url=f"{settings.API_V1_PREFIX}/docs",
    redoc_url=f"{settings.API_V1_PREFIX}/redoc",
    lifespan=lifespan,
)


@app.middleware("http")
async def quote_session(request: Request, call_next):
    """Assign every browser a quote session id kept in a cookie."""
    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    is_new = not session_id
    if is_new:
        session_id = new_session_id()
    request.state.session_id = session_id
    token = session_id_var.set(session_id)
    try:
        response = await call_next(request)
    finally:
        session_id_var.reset(token)
    if is_new:
        response.set_cookie(settings.SESSION_COOKIE_NAME, session_id, httponly=True, samesite="lax")
    return response


@app.exception_handler(ExtractionError)
async def extraction_error_handler(request: Request, exc: ExtractionError) -> JSONResponse:
    return JSONResponse(
        status_code=EXTRACTION_STATUS.get(exc.kind, status.HTTP_502_BAD_GATEWAY),
        content={"detail": exc.user_message, "kind": exc.kind.value},
    )


@app.exception_handler(ExtractionInProgress)
async def extraction_in_progress_handler(request: Request, exc: ExtractionInProgress) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(EmptyQuoteError)
async def empty_quote_handler(request: Request, exc: EmptyQuoteError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


# UI routes serve at the root
app.include_router(ui_routes.router, tags=["UI"])

# JSON API
app.include_router(health.router, prefix=settings.API_V1_PREFIX)
app.include_router(quote.router, prefix=settings.API_V1_PREFIX)
app.include_router(extraction.router, prefix=settings.API_V1_PREFIX)
app.include_router(export.router, prefix=settings.API_V1_PREFIX)
