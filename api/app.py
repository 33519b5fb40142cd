"""
FastAPI Application Entry Point

This module creates and configures the FastAPI application that exposes the
face backend (detector, recognizer, camera and registration store) to the
session UI when it runs in another process.

The application provides:
- REST endpoints for face detection and live verification
- REST endpoints for camera acquisition and release
- REST endpoints for storing and managing registrations
- Health check endpoint

Usage:
    # From project root:
    uvicorn api.app:app --host 0.0.0.0 --port 8000

    # Or run directly:
    python -m api.app
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import camera_router, faces_router, registrations_router
from api.schemas import HealthResponse
from core.backend import LocalFaceBackend, get_local_backend
from core.config import get_config, get_server_config, setup_logging
from core.errors import FaceUnlockError, ValidationError


# Configure logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup:
    - Create the backend and open the registration store

    Runs on shutdown:
    - Release the camera and close the store
    """
    logger.info("=" * 60)
    logger.info("Starting Face Unlock API")
    logger.info("=" * 60)

    backend = get_local_backend()
    logger.info(f"Registration store ready: {backend.store.count()} registrations")

    # Face models are loaded lazily on the first detection request

    logger.info("API startup complete!")

    yield

    # Cleanup on shutdown
    logger.info("Shutting down API...")
    await backend.close()
    backend.store.close()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Face Unlock API",
    description="""
Backend for face unlock enrollment and live verification.

## Features
- **Faces**: Detect a face in an image file or a camera frame, compare a live frame with a reference
- **Camera**: Exclusive camera acquisition and release
- **Registrations**: Store, list and delete enrolled faces

## Errors
Every error body is `{"code": "...", "error": "..."}`.
`NO_FACE_DETECTED` is transient during live capture.
    """,
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allows all origins (adjust for production)
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(faces_router)
app.include_router(camera_router)
app.include_router(registrations_router)


@app.exception_handler(FaceUnlockError)
async def face_unlock_error_handler(request: Request, exc: FaceUnlockError):
    """Render domain errors as {"code", "error"} with the class's HTTP status."""
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.debug(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies use the same error body as ValidationError."""
    fields = ", ".join(".".join(str(p) for p in err["loc"][1:]) or "body" for err in exc.errors())
    error = ValidationError(f"Invalid request: {fields}")
    return JSONResponse(status_code=error.http_status, content=error.to_dict())


# ============================================================
# Health Check Endpoint
# ============================================================

@app.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check(backend: LocalFaceBackend = Depends(get_local_backend)):
    """
    Check the health of the API and its dependencies.

    Returns status of:
    - Face models (loaded/not loaded)
    - Camera (held/free)
    - Number of stored registrations
    """
    models_loaded = backend.models_loaded

    return HealthResponse(
        status="healthy" if models_loaded else "degraded",
        models_loaded=models_loaded,
        camera_open=backend.camera_open,
        registrations=backend.store.count(),
    )


@app.get("/", tags=["system"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Face Unlock API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    server = get_server_config()
    log_level = str(get_config().get("logging", {}).get("level", "info")).lower()

    logger.info(f"Starting server on {server['host']}:{server['port']}")
    uvicorn.run(
        "api.app:app",
        host=server["host"],
        port=server["port"],
        log_level=log_level,
    )
