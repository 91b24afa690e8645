import logging
import os

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from swingscore.api.admin import router as admin_router
from swingscore.api.analytics import router as analytics_router
from swingscore.api.dependencies import get_document_store
from swingscore.api.feedback import router as feedback_router
from swingscore.api.swings import router as swings_router
from swingscore.core.config import settings
from swingscore.core.db_init import initialize_database
from swingscore.core.errors import (
    AggregationAborted,
    AnalyzerTimeout,
    AnalyzerUnavailable,
    InvalidReference,
    InvalidRubric,
    MalformedResponse,
    PermanentStorage,
    PolicyDenied,
    SwingScoreError,
    TransientStorage,
)
from swingscore.processing.scheduler import start_background_run

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidReference: 400,
    PolicyDenied: 403,
    AggregationAborted: 409,
    InvalidRubric: 422,
    PermanentStorage: 500,
    MalformedResponse: 502,
    AnalyzerUnavailable: 503,
    TransientStorage: 503,
    AnalyzerTimeout: 504,
}

app = FastAPI(title="SwingScore API", version="0.1.0")

# Configure CORS origins - localhost plus any from ALLOWED_ORIGINS
cors_origins = ["http://localhost:3000"]
allowed_origins_env = os.getenv("ALLOWED_ORIGINS", "")
if allowed_origins_env:
    cors_origins.extend([origin.strip() for origin in allowed_origins_env.split(",")])

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(swings_router)
app.include_router(feedback_router)
app.include_router(analytics_router)
app.include_router(admin_router)


@app.exception_handler(SwingScoreError)
async def swingscore_error_handler(request: Request, exc: SwingScoreError):
    status_code = ERROR_STATUS.get(type(exc), 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.detail}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    logger.info("=" * 60)
    logger.info("Starting application startup sequence...")
    logger.info(f"Analyzer configured: {'Yes' if settings.analyzer_api_key else 'No (mock scoring)'}")

    db_ready = initialize_database()

    # Feedback aggregation (skip during tests)
    if db_ready and settings.run_feedback_on_startup and not os.environ.get("TESTING"):
        try:
            start_background_run(get_document_store())
        except Exception as e:
            logger.error(f"✗ Failed to start feedback processing: {e}", exc_info=True)

    logger.info("=" * 60)
    logger.info("Application startup sequence completed - server ready to accept requests")


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
def ready(store=Depends(get_document_store)):
    if not store.ping():
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    return {"status": "ready"}
