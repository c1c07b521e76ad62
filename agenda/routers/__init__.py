"""API router initializers."""

from fastapi import APIRouter


def get_api_router() -> APIRouter:
    """Construct and return the API router."""

    from agenda.routers.agenda import router as agenda_router

    api_router = APIRouter()
    api_router.include_router(agenda_router, prefix="/agenda", tags=["agenda"])
    return api_router
