"""API route registration."""

from fastapi import APIRouter
from .setup import router as setup_router
from .grading import router as grading_router


def register_all_routes(api_router: APIRouter):
    """Include all route modules on the main API router."""
    api_router.include_router(setup_router)
    api_router.include_router(grading_router)
