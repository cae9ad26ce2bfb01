from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from atscan.middleware.error_handlers import (
    ExceptionHandlerMiddleware,
    PerformanceMiddleware,
    RequestLoggingMiddleware,
)
from atscan.models.settings import load_settings
from atscan.routers import scan
from atscan.services.esco_client import ESCOClient
from atscan.services.pipeline import ScanPipeline
from atscan.utils.logging_config import configure_for_environment, get_logger

logger = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager"""
    configure_for_environment()
    logger.info("ATS Keyword Scorer starting up...")
    settings = load_settings()
    esco_client = ESCOClient(settings.validation, settings.cache)
    app.state.settings = settings
    app.state.esco_client = esco_client
    app.state.pipeline = ScanPipeline(settings, esco_client)
    logger.info(
        f"Validation {'enabled' if settings.validation.enabled else 'disabled'} "
        f"(threshold {settings.validation.confidence_threshold}, reference {settings.validation.base_url})"
    )
    logger.info("ATS Keyword Scorer startup completed")

    yield

    logger.info("ATS Keyword Scorer shutting down...")
    await esco_client.aclose()
    logger.info("ATS Keyword Scorer shutdown completed")


app = FastAPI(title="ATS Keyword Scorer", version=VERSION, lifespan=lifespan)

# Add middleware in order (LIFO - Last In, First Out)
# the exception handler wraps the other two
app.add_middleware(PerformanceMiddleware, slow_request_threshold=5.0)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(ExceptionHandlerMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
@app.head("/")
async def root():
    """Root endpoint - handles both GET and HEAD requests for health checks"""
    logger.debug("Root endpoint accessed")
    return {"message": "Welcome to the ATS Keyword Scorer API", "version": VERSION, "status": "ok"}


@app.get("/health")
@app.head("/health")
async def health_check():
    """Health check endpoint - handles both GET and HEAD requests"""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


app.include_router(scan.router)

logger.info("ATS Keyword Scorer initialized successfully")
