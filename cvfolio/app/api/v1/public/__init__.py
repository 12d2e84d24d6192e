"""Public API module - CV page and download endpoints."""
from cvfolio.app.api.v1.public.cv import router as cv_router

__all__ = ["cv_router"]
