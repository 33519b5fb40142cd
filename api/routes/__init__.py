"""
API Routes Package

This package contains route handlers organized by feature:
- faces.py: Face detection and live verification
- camera.py: Camera acquisition and release
- registrations.py: Registration storage and the username lookup
"""

from api.routes.faces import router as faces_router
from api.routes.camera import router as camera_router
from api.routes.registrations import router as registrations_router

__all__ = [
    "faces_router",
    "camera_router",
    "registrations_router",
]
