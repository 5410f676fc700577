"""API v1 routes."""

from fastapi import APIRouter

from secmon.api.v1 import (
    auth,
    channels,
    health,
    ignore_rules,
    issues,
    notifications,
    runs,
    stats,
)

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(issues.router, prefix="/issues", tags=["issues"])
router.include_router(ignore_rules.router, prefix="/ignore-rules", tags=["ignore-rules"])
router.include_router(stats.router, prefix="/stats", tags=["stats"])
router.include_router(channels.router, prefix="/channels", tags=["channels"])
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
router.include_router(runs.router, prefix="/runs", tags=["runs"])
