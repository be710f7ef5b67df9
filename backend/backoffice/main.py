"""
Real Estate Back Office API

FastAPI application for property document intake and reconciliation.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backoffice.core.config import get_settings
from backoffice.core.errors import IntakeError
from backoffice.core.logging import configure_logging
from backoffice.api import intake, objects, webhooks

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Validates configuration on startup (fail-fast).
    """
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    logger.info("Starting %s", settings.APP_NAME)
    logger.info("Storage backend: %s (bucket %s)", settings.STORAGE_BACKEND, settings.STORAGE_BUCKET)
    if not settings.PARSER_DISPATCH_URL:
        logger.warning("PARSER_DISPATCH_URL not set; uploads stay processing until simulated")
    if settings.dev_mode:
        logger.warning("Development routes enabled")

    yield

    logger.info("Shutting down")


app = FastAPI(
    title="Real Estate Back Office API",
    description="API for property document intake, overrides and review",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(IntakeError)
async def intake_error_handler(request: Request, exc: IntakeError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query"))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "invalid request"
    return JSONResponse(status_code=400, content={"error": message})


app.include_router(intake.router)
app.include_router(objects.router)
app.include_router(webhooks.router)


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "Real Estate Back Office API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
