"""API routers."""

from applytrak.routers.applications import router as applications_router
from applytrak.routers.backups import router as backups_router
from applytrak.routers.conflicts import router as conflicts_router

__all__ = ["applications_router", "backups_router", "conflicts_router"]
