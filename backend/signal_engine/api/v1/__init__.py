"""
API v1 Router

All API endpoints of the signal engine.
"""

from fastapi import APIRouter

from signal_engine.api.v1.endpoints import indicators

router = APIRouter()

# Include all endpoint routers
router.include_router(indicators.router, prefix="/indicators", tags=["Indicators"])
