"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from app.api.v1 import availability, health

api_router = APIRouter()

# Health check
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["health"],
)

# Availability and booking policy
api_router.include_router(
    availability.router,
    prefix="/availability",
    tags=["availability"],
)
