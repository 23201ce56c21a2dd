"""API route aggregation.

All routers registered here get mounted in main.py under /api.
Reading versions and health is open; the mutation hooks require a
session token (applied per route, see vampsync.auth.dependencies).
"""

from fastapi import APIRouter

from vampsync.api.health import router as health_router
from vampsync.api.notifications import router as notifications_router
from vampsync.api.versions import router as versions_router

api_router = APIRouter(prefix="/api")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(versions_router, tags=["versions"])
api_router.include_router(notifications_router, tags=["notifications"])
