"""
Download tracker - records CV downloads and resolves where the file lives.
Recording on a download path goes through record_download_safely: analytics loss
is acceptable, a broken download is not.
"""
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cvfolio.app.core.errors import NotFoundError, from_db_error
from cvfolio.app.core.logging_config import get_logger
from cvfolio.app.db import session as db_session
from cvfolio.app.models.cv_download import CVDownload
from cvfolio.app.models.cv_version import CVVersion
from cvfolio.app.services.storage_service import get_object_store

logger = get_logger("services.download_tracker")


def _get_version(db: Session, version_id: int) -> CVVersion:
    try:
        version = db.query(CVVersion).filter(CVVersion.id == version_id).first()
    except SQLAlchemyError as e:
        raise from_db_error(e) from e
    if not version:
        raise NotFoundError(f"CV version {version_id} not found")
    return version


def record_download(
    db: Session,
    version_id: int,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> CVDownload:
    """Insert one download event for version_id. NotFoundError for unknown versions."""
    version = _get_version(db, version_id)
    event = CVDownload(
        cv_version_id=version.id,
        user_id=version.user_id,
        ip_address=ip_address[:64] if ip_address else None,
        user_agent=user_agent[:512] if user_agent else None,
    )
    try:
        db.add(event)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise from_db_error(e) from e
    db.refresh(event)
    logger.info("CV download recorded version_id=%s user_id=%s", version.id, version.user_id)
    return event


def record_download_safely(
    version_id: int,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> bool:
    """
    Fire-and-forget variant with its own session, run as a background task.
    Never raises; returns False when the event could not be stored.
    """
    db = db_session.SessionLocal()
    try:
        record_download(db, version_id, ip_address=ip_address, user_agent=user_agent)
        return True
    except Exception as e:
        logger.warning("CV download not recorded version_id=%s error=%s", version_id, e)
        return False
    finally:
        db.close()


def resolve_download_url(db: Session, version_id: int, store=None) -> str:
    """URL of the stored file for version_id."""
    version = _get_version(db, version_id)
    store = store or get_object_store()
    return store.resolve_url(version.file_path)


def fetch_version_bytes(db: Session, version_id: int, store=None) -> tuple[CVVersion, bytes]:
    """Read the stored file through the object store (proxy downloads)."""
    version = _get_version(db, version_id)
    store = store or get_object_store()
    return version, store.get(version.file_path)
