"""Admin API module - CV management endpoints."""
from cvfolio.app.api.v1.admin.cv import router as cv_router

__all__ = ["cv_router"]
