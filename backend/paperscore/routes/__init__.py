"""API route registration."""

from fastapi import APIRouter
from .analysis import router as analysis_router
from .scores import router as scores_router
from .reports import router as reports_router
from .exams import router as exams_router


def register_all_routes(api_router: APIRouter):
    """Include all route modules on the main API router."""
    api_router.include_router(analysis_router)
    api_router.include_router(scores_router)
    api_router.include_router(reports_router)
    api_router.include_router(exams_router)
