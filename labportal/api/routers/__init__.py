"""
API routers module.

This module contains all route definitions organized by page area.
"""
from labportal.api.routers.account import router as account_router
from labportal.api.routers.auth import router as auth_router
from labportal.api.routers.health import router as health_router
from labportal.api.routers.invite import router as invite_router
from labportal.api.routers.pages import router as pages_router
from labportal.api.routers.patients import router as patients_router

__all__ = [
    "account_router",
    "auth_router",
    "health_router",
    "invite_router",
    "pages_router",
    "patients_router",
]
