"""
Registration and System API Routes

- POST /registrations: Store an enrollment record
- GET /registrations: List stored registrations
- DELETE /registrations/{file_name}: Delete a registration
- GET /system/username: Current OS account name (prefills the credential form)
"""

from fastapi import APIRouter, Depends, HTTPException

from api.schemas import (
    DeleteRegistrationResponse,
    ErrorResponse,
    RegistrationInfo,
    RegistrationListResponse,
    SaveRegistrationRequest,
    SaveRegistrationResponse,
    UsernameResponse,
)
from core.backend import LocalFaceBackend, get_local_backend
from core.config import get_verification_config
from core.models import EnrollmentRecord
from core.verification import validate_threshold

router = APIRouter(
    tags=["registrations"],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)


@router.post("/registrations", response_model=SaveRegistrationResponse)
async def save_registration(
    request: SaveRegistrationRequest,
    backend: LocalFaceBackend = Depends(get_local_backend),
):
    """
    Extract the reference face's features and store them with the record.

    Answers 400 VALIDATION_ERROR for a missing username, an out-of-range
    threshold or a reference without a face, and 500 STORAGE_ERROR if the
    record cannot be written. Nothing is stored on failure.
    """
    verification_config = get_verification_config()
    threshold = validate_threshold(
        request.threshold,
        int(verification_config.get("min_threshold", 20)),
        int(verification_config.get("max_threshold", 100)),
    )
    handle = await backend.save_face_registration(
        EnrollmentRecord(
            alias=request.alias,
            reference_image=request.reference_image,
            threshold=threshold,
            username=request.username,
        )
    )
    return SaveRegistrationResponse(file_name=handle.file_name)


@router.get("/registrations", response_model=RegistrationListResponse)
async def list_registrations(backend: LocalFaceBackend = Depends(get_local_backend)):
    """List stored registrations, newest first."""
    rows = backend.store.list_registrations()
    return RegistrationListResponse(
        registrations=[RegistrationInfo(**row) for row in rows],
        total=len(rows),
    )


@router.delete("/registrations/{file_name}", response_model=DeleteRegistrationResponse)
async def delete_registration(
    file_name: str,
    backend: LocalFaceBackend = Depends(get_local_backend),
):
    """
    Delete a stored registration.

    Raises:
        404: If the registration is not found.
    """
    if not backend.store.delete_registration(file_name):
        raise HTTPException(status_code=404, detail=f"Registration {file_name} not found")

    return DeleteRegistrationResponse(
        success=True,
        file_name=file_name,
        message=f"Registration {file_name} deleted successfully",
    )


@router.get("/system/username", response_model=UsernameResponse, tags=["system"])
async def get_current_username(backend: LocalFaceBackend = Depends(get_local_backend)):
    """Name of the OS account the backend runs under."""
    return UsernameResponse(username=await backend.get_current_username())
