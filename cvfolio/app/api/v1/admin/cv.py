"""
Admin CV management API - version list, upload, activate, delete, analytics.
All endpoints require an administrator token.
"""
from datetime import datetime

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    Request,
    Response,
    UploadFile,
    status,
)
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cvfolio.app.core.dependencies import get_current_admin, get_db
from cvfolio.app.core.errors import CVError, from_db_error, to_http_exception
from cvfolio.app.core.logging_config import get_logger
from cvfolio.app.models.user import User
from cvfolio.app.schemas.cv import (
    AnalyticsSnapshot,
    CVVersionOut,
    UserCVOverview,
    VersionDownloads,
)
from cvfolio.app.services import cv_analytics, cv_version_service, download_tracker
from cvfolio.app.utils import cache

logger = get_logger("api.admin.cv")
router = APIRouter(prefix="/admin/cv", tags=["admin-cv"])


def _build_overview(db: Session) -> list[dict]:
    """Every user with versions (newest first), the active version and its analytics."""
    try:
        users = db.query(User).order_by(User.name).all()
    except SQLAlchemyError as e:
        raise from_db_error(e) from e
    overview = []
    for user in users:
        versions = cv_version_service.list_versions(db, user.id)
        active = next((v for v in versions if v.is_active), None)
        analytics = cv_analytics.get_analytics(db, active.id) if active else None
        overview.append(
            UserCVOverview(
                id=user.id,
                name=user.name,
                email=user.email,
                cv_url=user.cv_url,
                versions=[CVVersionOut.model_validate(v) for v in versions],
                active_version=CVVersionOut.model_validate(active) if active else None,
                analytics=analytics,
            ).model_dump(mode="json")
        )
    return overview


@router.get("/users")
async def get_overview(
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_admin),
) -> list[dict]:
    """Users with their CV versions and active-version analytics. Cached briefly."""
    cached = await cache.get_overview()
    if cached is not None:
        return cached
    try:
        result = _build_overview(db)
    except CVError as e:
        raise to_http_exception(e)
    await cache.set_overview(result)
    return result


@router.get("/users/{user_id}/versions", response_model=list[CVVersionOut])
def list_versions(
    user_id: int,
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_admin),
):
    """All versions of a user, newest first."""
    try:
        return cv_version_service.list_versions(db, user_id)
    except CVError as e:
        raise to_http_exception(e)


@router.post(
    "/users/{user_id}/versions",
    response_model=CVVersionOut,
    status_code=status.HTTP_201_CREATED,
)
async def upload_version(
    user_id: int,
    file: UploadFile = File(...),
    file_format: str | None = Form(None),
    template_name: str | None = Form(None),
    notes: str | None = Form(None),
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_admin),
):
    """
    Upload a new CV version and make it active.

    - **file**: CV file (pdf, docx, html, txt)
    - **file_format**: optional; inferred from the file name when omitted
    - **template_name**: optional template label ("default" means none)
    - **notes**: optional free text

    201 means the version is stored and active. Any error status means nothing changed.
    """
    contents = await file.read()
    try:
        version = cv_version_service.upload_version(
            db,
            user_id,
            contents,
            file_format=file_format,
            file_name=file.filename,
            template_name=template_name,
            notes=notes,
        )
    except CVError as e:
        logger.warning("CV upload rejected user_id=%s error=%s", user_id, e.message)
        raise to_http_exception(e)
    await cache.invalidate_overview()
    return version


@router.post("/versions/{version_id}/activate", status_code=status.HTTP_204_NO_CONTENT)
async def activate_version(
    version_id: int,
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_admin),
):
    """Make this version the user's active CV."""
    try:
        cv_version_service.set_active_version(db, version_id)
    except CVError as e:
        raise to_http_exception(e)
    await cache.invalidate_overview()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/versions/{version_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_version(
    version_id: int,
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_admin),
):
    """Delete a version. 409 when it is the user's only version."""
    try:
        cv_version_service.delete_version(db, version_id)
    except CVError as e:
        raise to_http_exception(e)
    await cache.invalidate_overview()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/versions/{version_id}/analytics", response_model=AnalyticsSnapshot)
def get_version_analytics(
    version_id: int,
    as_of: datetime | None = None,
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_admin),
):
    """Download analytics for one version. as_of defaults to now (ISO 8601, UTC if naive)."""
    try:
        return cv_analytics.get_analytics(db, version_id, as_of=as_of)
    except CVError as e:
        raise to_http_exception(e)


@router.get("/users/{user_id}/analytics", response_model=list[VersionDownloads])
def get_user_analytics(
    user_id: int,
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_admin),
):
    """Total downloads per version for a user."""
    try:
        return cv_analytics.get_downloads_by_version(db, user_id)
    except CVError as e:
        raise to_http_exception(e)


@router.get("/versions/{version_id}/download")
def download_version(
    version_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_admin),
):
    """Redirect to the stored file; the download is recorded after the response."""
    try:
        url = download_tracker.resolve_download_url(db, version_id)
    except CVError as e:
        raise to_http_exception(e)
    background_tasks.add_task(
        download_tracker.record_download_safely,
        version_id,
        request.client.host if request.client else None,
        request.headers.get("user-agent"),
    )
    return RedirectResponse(url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
