"""API routes for planchat."""

from fastapi import APIRouter

from planchat.api.planning import router as planning_router

api_router = APIRouter(prefix="/api")
api_router.include_router(planning_router, tags=["planning"])

__all__ = ["api_router"]
