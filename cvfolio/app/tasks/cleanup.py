"""
Periodic cleanup: remove CV blobs that no cv_versions row references.
Orphans appear when a row insert fails after its blob was written, or a blob delete failed.
Run via cron or: python -c "from cvfolio.app.tasks.cleanup import run_cleanup; print(run_cleanup())"

Uploads write the blob before committing its row, so a blob that is unreferenced
right now may be referenced a moment later. Blobs younger than
cv_orphan_min_age_seconds are skipped, and every candidate is checked again under
the owner's lock just before it is deleted.
"""
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from cvfolio.app.core.config import settings
from cvfolio.app.core.errors import CVError
from cvfolio.app.core.logging_config import get_logger
from cvfolio.app.db import session as db_session
from cvfolio.app.models.cv_version import CVVersion
from cvfolio.app.services.storage_service import get_object_store
from cvfolio.app.services.user_locks import user_lock

logger = get_logger("tasks.cleanup")


def _owner_from_key(key: str) -> int | None:
    """User id out of cv/{user_id}/v{n}_{token}.{ext}; None for keys of any other shape."""
    parts = key.split("/")
    if len(parts) < 3 or not parts[1].isdigit():
        return None
    return int(parts[1])


def _is_referenced(db: Session, key: str) -> bool:
    db.rollback()  # end the read snapshot so rows committed since are visible
    return db.query(CVVersion.id).filter(CVVersion.file_path == key).first() is not None


def _delete_if_orphaned(db: Session, store, key: str) -> bool:
    if _is_referenced(db, key):
        logger.info("Orphan candidate now referenced, kept key=%s", key)
        return False
    try:
        store.delete(key)
    except CVError as e:
        logger.warning("Orphan delete failed key=%s error=%s", key, e.message)
        return False
    return True


def sweep_orphaned_blobs(db: Session, store=None, min_age_seconds: int | None = None) -> dict:
    """
    Delete stored CV files that no version row references and that are older than
    min_age_seconds (defaults to settings.cv_orphan_min_age_seconds).
    Returns {"deleted": n, "skipped_recent": m}.
    """
    store = store or get_object_store()
    if min_age_seconds is None:
        min_age_seconds = settings.cv_orphan_min_age_seconds
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=min_age_seconds)

    referenced = {row[0] for row in db.query(CVVersion.file_path).all()}
    deleted = 0
    skipped_recent = 0
    for key, modified_at in store.list_objects(settings.cv_key_prefix):
        if key in referenced:
            continue
        if modified_at > cutoff:
            skipped_recent += 1
            continue
        owner_id = _owner_from_key(key)
        if owner_id is None:
            removed = _delete_if_orphaned(db, store, key)
        else:
            with user_lock(owner_id):
                removed = _delete_if_orphaned(db, store, key)
        deleted += int(removed)
    logger.info("Orphan sweep done deleted=%d skipped_recent=%d", deleted, skipped_recent)
    return {"deleted": deleted, "skipped_recent": skipped_recent}


def run_cleanup() -> dict:
    """Run cleanup using a new DB session."""
    db = db_session.SessionLocal()
    try:
        return sweep_orphaned_blobs(db)
    except Exception as e:
        db.rollback()
        logger.exception("Orphan sweep failed")
        return {"error": str(e), "deleted": 0}
    finally:
        db.close()
