# =============================================================================
# NutriVision - FastAPI Server Application
# =============================================================================
# Defines the HTTP API for receiving food photos with their weight, serving
# the latest analysis to polling clients, and serving stored images.
#
# An upload is answered as soon as the image is on disk: the response carries
# a processing record, and the oracle analysis runs afterwards on the
# dispatcher's worker pool.  Clients observe completion by polling
# /api/latest-analysis.
# =============================================================================

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_config
from server.dispatcher import AnalysisDispatcher
from server.errors import MissingFile, ValidationError
from server.intake import UploadIntake
from server.oracle import OracleClient
from server.store import RecordIdAllocator, ResultStore
from shared.schemas import AnalysisEnvelope, HealthResponse, utc_now

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Global references populated during lifespan startup
# ---------------------------------------------------------------------------
_store: ResultStore = None
_intake: UploadIntake = None
_dispatcher: AnalysisDispatcher = None
_uploads_dir: str = ""


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler: initializes and tears down resources.

    On startup:
        - Creates the empty single-slot result store.
        - Prepares the uploads directory.
        - Starts the analysis worker pool with its oracle client.

    On shutdown:
        - Cancels queued analyses and gives running oracle calls a short
          grace period before abandoning them.
    """
    global _store, _intake, _dispatcher, _uploads_dir

    config = get_config()
    _uploads_dir = config.uploads_dir

    logger.info("Starting server - uploads directory: %s", _uploads_dir)
    _store = ResultStore()
    _intake = UploadIntake(
        uploads_dir=_uploads_dir,
        store=_store,
        ids=RecordIdAllocator(),
        max_bytes=config.max_upload_bytes,
    )

    logger.info(
        "Oracle: %s (model=%s, timeout=%gs, workers=%d)",
        config.oracle_endpoint,
        config.oracle_model,
        config.oracle_timeout_seconds,
        config.max_concurrent_analyses,
    )
    oracle = OracleClient(
        endpoint=config.oracle_endpoint,
        model=config.oracle_model,
        timeout_seconds=config.oracle_timeout_seconds,
        max_tokens=config.oracle_max_tokens,
        temperature=config.oracle_temperature,
        api_key=config.oracle_api_key,
    )
    _dispatcher = AnalysisDispatcher(
        store=_store,
        oracle=oracle,
        max_workers=config.max_concurrent_analyses,
        grace_seconds=config.shutdown_grace_seconds,
    )

    logger.info("Server ready - accepting uploads.")
    yield

    logger.info("Shutting down server...")
    _dispatcher.shutdown()


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------
app = FastAPI(
    title="NutriVision Server",
    description=(
        "Accepts food photos with their weight, analyzes them in the "
        "background with a multimodal model, and exposes the latest "
        "nutrition estimate for polling clients."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
    )


@app.exception_handler(ValidationError)
async def upload_rejected(request: Request, exc: ValidationError):
    logger.info("Upload rejected (%s): %s", type(exc).__name__, exc.message)
    return _error(400, exc.message)


@app.exception_handler(RequestValidationError)
async def request_malformed(request: Request, exc: RequestValidationError):
    # The only typed form field is the image part; anything else is a bad file
    logger.info("Malformed upload request: %s", exc.errors())
    return _error(400, MissingFile.message)


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return _error(404, "Route not found")
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def internal_error(request: Request, exc: Exception):
    logger.error("Internal server error on %s", request.url.path, exc_info=exc)
    return _error(500, "Internal server error")


@app.get("/api/health", response_model=HealthResponse)
def health_check():
    """Liveness check."""
    return HealthResponse(status="OK", timestamp=utc_now().isoformat())


@app.post(
    "/api/analyze-food",
    response_model=AnalysisEnvelope,
    response_model_exclude_none=True,
)
def analyze_food(
    food_image: Optional[UploadFile] = File(default=None, alias="foodImage"),
    weight: Optional[str] = Form(default=None),
):
    """
    Accept a food photo and its weight in grams.

    Validates and stores the image, publishes a processing record, queues
    the oracle analysis, and returns the processing record without waiting
    for the analysis.

    Returns:
        AnalysisEnvelope with the processing UploadRecord.
    """
    if food_image is None:
        raise MissingFile()

    accepted = _intake.accept(
        filename=food_image.filename,
        content_type=food_image.content_type,
        stream=food_image.file,
        weight=weight,
    )
    # After shutdown this publishes a fallback record, then raises (500)
    _dispatcher.submit(accepted.record, accepted.image_path)
    return AnalysisEnvelope(success=True, data=accepted.record)


@app.get(
    "/api/latest-analysis",
    response_model=AnalysisEnvelope,
    response_model_exclude_none=True,
)
def latest_analysis(t: Optional[str] = None):
    """
    Return the most recent record.

    ``t`` is an ignored cache-buster.  An empty store is reported with
    ``success: false`` and HTTP 200.
    """
    record = _store.read()
    if record is None:
        return AnalysisEnvelope(success=False, error="No analysis data available")
    return AnalysisEnvelope(success=True, data=record)


@app.get("/uploads/{filename}")
def uploaded_image(filename: str):
    """Serve a stored image by its storage name."""
    path = os.path.join(_uploads_dir, os.path.basename(filename))
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="Image not found")
    return FileResponse(path)
