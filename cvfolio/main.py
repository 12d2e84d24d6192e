"""
FastAPI application entry point
"""
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from cvfolio.app.api.v1 import admin, public
from cvfolio.app.core.config import settings
from cvfolio.app.core.logging_config import setup_logging
from cvfolio.app.db.base import Base
from cvfolio.app.db import session as db_session
from cvfolio.app.utils import cache

# Import models so they register with Base.metadata
import cvfolio.app.models  # noqa: F401

logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Dev convenience; deployments run alembic migrations
    try:
        Base.metadata.create_all(bind=db_session.engine)
    except Exception as e:
        logger.error("Database error: %s", e)
    await cache.connect()
    yield
    await cache.close()


# Initialize FastAPI app
app = FastAPI(
    title="cvfolio API",
    description="CV version management and download analytics",
    version=settings.app_version,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(admin.cv_router, prefix="/api")
app.include_router(public.cv_router, prefix="/api")

# Serve locally stored CV files (create dir if missing)
upload_path = Path(settings.upload_dir)
upload_path.mkdir(parents=True, exist_ok=True)
app.mount(settings.upload_url_prefix, StaticFiles(directory=settings.upload_dir), name="uploads")


@app.get("/")
def read_root():
    """Root endpoint"""
    return {"message": "cvfolio API", "version": settings.app_version}


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
