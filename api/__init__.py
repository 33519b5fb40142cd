"""
API Layer for the Face Unlock System

This package provides the FastAPI-based service that exposes the face
backend (detection, live verification, camera control and registration
storage) to a session UI running in another process.
"""
