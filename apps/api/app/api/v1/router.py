"""API v1 router."""

from fastapi import APIRouter

from app.api.v1.endpoints import health, exports, tickets

api_router = APIRouter()

# Include endpoint routers
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(tickets.router, prefix="/tickets", tags=["tickets"])
api_router.include_router(exports.router, prefix="/exports", tags=["exports"])
