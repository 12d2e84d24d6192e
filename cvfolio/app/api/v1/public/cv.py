"""
Public CV endpoints - the portfolio's CV page and its download links. No auth.
The active version is always looked up by is_active, not through users.cv_url.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse, Response
from sqlalchemy.orm import Session

from cvfolio.app.core.config import CV_FORMATS
from cvfolio.app.core.dependencies import get_db
from cvfolio.app.core.errors import CVError, to_http_exception
from cvfolio.app.core.logging_config import get_logger
from cvfolio.app.models.cv_version import CVVersion
from cvfolio.app.schemas.cv import CVVersionOut, PublicCVOut
from cvfolio.app.services import cv_version_service, download_tracker

logger = get_logger("api.public.cv")
router = APIRouter(prefix="/cv", tags=["cv"])


def _require_active_version(db: Session, user_id: int) -> CVVersion:
    try:
        version = cv_version_service.get_active_version(db, user_id)
    except CVError as e:
        raise to_http_exception(e)
    if not version:
        raise HTTPException(status_code=404, detail="No CV available")
    return version


def _schedule_record(background_tasks: BackgroundTasks, request: Request, version_id: int) -> None:
    background_tasks.add_task(
        download_tracker.record_download_safely,
        version_id,
        request.client.host if request.client else None,
        request.headers.get("user-agent"),
    )


@router.get("/{user_id}", response_model=PublicCVOut)
def get_public_cv(user_id: int, db: Session = Depends(get_db)):
    """Name, CV URL and active version of a user, for the public CV page."""
    try:
        user = cv_version_service.get_user(db, user_id)
        active = cv_version_service.get_active_version(db, user_id)
    except CVError as e:
        raise to_http_exception(e)
    return PublicCVOut(
        user_id=user.id,
        name=user.name,
        cv_url=user.cv_url,
        active_version=CVVersionOut.model_validate(active) if active else None,
    )


@router.get("/{user_id}/download")
def download_cv(
    user_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Redirect to the active CV file. The download is recorded after the response is sent."""
    version = _require_active_version(db, user_id)
    try:
        url = download_tracker.resolve_download_url(db, version.id)
    except CVError as e:
        raise to_http_exception(e)
    _schedule_record(background_tasks, request, version.id)
    return RedirectResponse(url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get("/{user_id}/file")
def get_cv_file(
    user_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Serve the active CV bytes through the backend (avoids storage CORS for inline previews)."""
    version = _require_active_version(db, user_id)
    try:
        version, data = download_tracker.fetch_version_bytes(db, version.id)
    except CVError as e:
        logger.exception("Failed to fetch CV file user_id=%s version_id=%s", user_id, version.id)
        raise to_http_exception(e)
    _schedule_record(background_tasks, request, version.id)
    filename = f"cv_v{version.version}.{CV_FORMATS[version.file_format][0]}"
    logger.info("Proxied CV user_id=%s version_id=%s bytes=%d", user_id, version.id, len(data))
    return Response(
        content=data,
        media_type=CV_FORMATS[version.file_format][1],
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )
