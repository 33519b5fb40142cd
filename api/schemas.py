"""
Pydantic Schemas for API Request/Response Models

This module defines the data models exchanged between the session UI
(frontend/api_client.py) and the backend service.

All images are JPEG data URLs ("data:image/jpeg;base64,...").
"""

from typing import List, Optional
from pydantic import BaseModel, Field


# ============================================================
# Face Schemas
# ============================================================

class CheckImageRequest(BaseModel):
    """Request to detect a face in an image file on the backend host."""
    path: str = Field(..., min_length=1, description="Path of a readable image file")


class CaptureResponse(BaseModel):
    """A detected face ready for display and later submission."""
    display_image: str = Field(..., description="Annotated, downscaled frame for rendering")
    raw_image: str = Field(..., description="Unannotated, downscaled frame (the reference artifact)")


class VerifyRequest(BaseModel):
    """Request to compare one live frame with a reference image."""
    reference_image: str = Field(..., min_length=1, description="Reference image data URL")


class VerifyResponse(BaseModel):
    """Result of one live comparison."""
    score: float = Field(..., description="Raw cosine similarity from the recognizer")
    display_image: Optional[str] = Field(None, description="The live frame that was compared")


# ============================================================
# Camera Schemas
# ============================================================

class CameraResponse(BaseModel):
    """Acknowledgement of a camera command."""
    success: bool = True
    camera_open: bool = Field(..., description="Whether the camera is held after the command")


# ============================================================
# Registration Schemas
# ============================================================

class SaveRegistrationRequest(BaseModel):
    """An enrollment record to persist."""
    alias: str = Field("", description="Optional display name")
    reference_image: str = Field(..., description="Reference image data URL")
    threshold: int = Field(50, description="Match threshold percentage")
    username: str = Field(..., description="Linked account name")


class SaveRegistrationResponse(BaseModel):
    """Handle of a stored registration."""
    file_name: str = Field(..., description="Storage file name of the registration")


class RegistrationInfo(BaseModel):
    """Summary of one stored registration."""
    file_name: str
    alias: str
    username: str
    threshold: int
    feature_dim: int
    enrolled_at: str


class RegistrationListResponse(BaseModel):
    """List of stored registrations."""
    registrations: List[RegistrationInfo]
    total: int


class DeleteRegistrationResponse(BaseModel):
    """Response for a registration deletion."""
    success: bool
    file_name: str
    message: str


# ============================================================
# System Schemas
# ============================================================

class UsernameResponse(BaseModel):
    """Current OS account name."""
    username: str


class ErrorResponse(BaseModel):
    """Body of every error response."""
    code: str = Field(..., description="Stable error code, e.g. NO_FACE_DETECTED")
    error: str = Field(..., description="Human-readable message")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="'healthy' or 'degraded'")
    models_loaded: bool = Field(..., description="Whether the face models are loaded")
    camera_open: bool = Field(..., description="Whether the camera is currently held")
    registrations: int = Field(..., description="Number of stored registrations")
