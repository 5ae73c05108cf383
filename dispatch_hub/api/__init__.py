"""
API package for Dispatch Hub.

This package aggregates all API routers to be included in the FastAPI
application. The API is versioned under ``/api/v1``.
"""

from fastapi import APIRouter
from .v1.dispatch import router as dispatch_router
from .v1.flags import router as flags_router
from .v1.health import router as health_router
from .v1.reallocations import router as reallocations_router

api_router = APIRouter()
api_router.include_router(dispatch_router)
api_router.include_router(flags_router)
api_router.include_router(reallocations_router)
api_router.include_router(health_router)
