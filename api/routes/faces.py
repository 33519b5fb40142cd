"""
Face API Routes

- POST /faces/check-image: Detect a face in an image file
- POST /faces/check-camera: Grab one camera frame and detect a face
- POST /faces/verify: Compare one camera frame with a reference image

Failures are raised as core.errors exceptions and rendered by the
application's FaceUnlockError handler.
"""

from fastapi import APIRouter, Depends

from api.schemas import (
    CaptureResponse,
    CheckImageRequest,
    ErrorResponse,
    VerifyRequest,
    VerifyResponse,
)
from core.backend import LocalFaceBackend, get_local_backend

# Create router
router = APIRouter(
    prefix="/faces",
    tags=["faces"],
    responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)


@router.post("/check-image", response_model=CaptureResponse)
async def check_face_from_image(
    request: CheckImageRequest,
    backend: LocalFaceBackend = Depends(get_local_backend),
):
    """Detect a face in a still image. No camera resource is touched."""
    frame = await backend.check_face_from_image(request.path)
    return CaptureResponse(display_image=frame.display_image, raw_image=frame.raw_image)


@router.post("/check-camera", response_model=CaptureResponse)
async def check_face_from_camera(backend: LocalFaceBackend = Depends(get_local_backend)):
    """
    Grab one frame from the open camera and detect a face.

    A frame without a face answers 422 with code NO_FACE_DETECTED.
    """
    frame = await backend.check_face_from_camera()
    return CaptureResponse(display_image=frame.display_image, raw_image=frame.raw_image)


@router.post("/verify", response_model=VerifyResponse)
async def verify_face(
    request: VerifyRequest,
    backend: LocalFaceBackend = Depends(get_local_backend),
):
    """Compare one live frame with the reference image."""
    sample = await backend.verify_face(request.reference_image)
    return VerifyResponse(score=sample.score, display_image=sample.stream_image)
