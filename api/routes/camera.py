"""
Camera API Routes

- POST /camera/open: Acquire the camera exclusively
- POST /camera/stop: Release the camera (never fails)
"""

import logging

from fastapi import APIRouter, Depends

from api.schemas import CameraResponse, ErrorResponse
from core.backend import LocalFaceBackend, get_local_backend

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/camera",
    tags=["camera"],
    responses={409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)


@router.post("/open", response_model=CameraResponse)
async def open_camera(backend: LocalFaceBackend = Depends(get_local_backend)):
    """Open the camera. Answers 409 RESOURCE_BUSY if it is already held."""
    await backend.open_camera()
    return CameraResponse(success=True, camera_open=backend.camera_open)


@router.post("/stop", response_model=CameraResponse)
async def stop_camera(backend: LocalFaceBackend = Depends(get_local_backend)):
    """Release the camera. Best-effort: a failing release is logged, not returned."""
    try:
        await backend.stop_camera()
    except Exception as e:
        logger.warning(f"Camera release failed: {e}")
        return CameraResponse(success=False, camera_open=backend.camera_open)
    return CameraResponse(success=True, camera_open=backend.camera_open)
