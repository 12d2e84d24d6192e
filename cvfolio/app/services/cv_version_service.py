"""
CV version manager - upload, activate and delete CV versions.

Every user with at least one version has exactly one active version between calls.
Each mutation runs under the per-user lock and a single DB transaction that starts by
locking the user row. Blobs are written before their row is inserted and deleted only
after the row deletion has committed, so a row never points at a missing blob.
"""
import uuid
from pathlib import Path

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cvfolio.app.core.config import (
    CV_EXTENSION_FORMATS,
    CV_FORMATS,
    DEFAULT_CV_FORMAT,
    DEFAULT_TEMPLATE_NAME,
    settings,
)
from cvfolio.app.core.errors import (
    CVError,
    InvalidOperationError,
    LastVersionError,
    NotFoundError,
    from_db_error,
)
from cvfolio.app.core.logging_config import get_logger
from cvfolio.app.models.cv_version import CVVersion
from cvfolio.app.models.user import User
from cvfolio.app.services.storage_service import get_object_store
from cvfolio.app.services.user_locks import user_lock

logger = get_logger("services.cv_version")

LAST_VERSION_MESSAGE = "Cannot delete the only CV version. Upload a new version before deleting this one."


def resolve_format(declared: str | None, file_name: str | None = None) -> str:
    """
    Declared format wins and must be in the closed set. Otherwise infer from the
    file name extension, falling back to pdf.
    """
    if declared and declared.strip():
        fmt = declared.strip().lower()
        if fmt not in CV_FORMATS:
            raise InvalidOperationError(
                f"Unsupported CV format '{declared}'. Allowed: {', '.join(CV_FORMATS)}"
            )
        return fmt
    suffix = Path(file_name or "").suffix.lower()
    return CV_EXTENSION_FORMATS.get(suffix, DEFAULT_CV_FORMAT)


def build_storage_key(user_id: int, version: int, file_format: str) -> str:
    """cv/{user_id}/v{version}_{token}.{ext}; the token keeps re-uploads of a number distinct."""
    ext = CV_FORMATS[file_format][0]
    return f"{settings.cv_key_prefix}/{user_id}/v{version}_{uuid.uuid4().hex}.{ext}"


def _clean_optional(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def _get_user(db: Session, user_id: int, for_update: bool = False) -> User:
    q = db.query(User).filter(User.id == user_id)
    if for_update:
        q = q.with_for_update()
    user = q.first()
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


def _get_version(db: Session, version_id: int, refresh: bool = False) -> CVVersion:
    q = db.query(CVVersion).filter(CVVersion.id == version_id)
    if refresh:
        q = q.populate_existing()
    version = q.first()
    if not version:
        raise NotFoundError(f"CV version {version_id} not found")
    return version


def _deactivate_all(db: Session, user_id: int) -> None:
    db.query(CVVersion).filter(
        CVVersion.user_id == user_id, CVVersion.is_active.is_(True)
    ).update({CVVersion.is_active: False})


def _activate(db: Session, user: User, version: CVVersion, store) -> None:
    """Inactive set -> exactly one active, with the user pointer following."""
    _deactivate_all(db, user.id)
    db.query(CVVersion).filter(CVVersion.id == version.id).update({CVVersion.is_active: True})
    user.cv_url = store.resolve_url(version.file_path)


def _owner_id(db: Session, version_id: int) -> int:
    try:
        version = _get_version(db, version_id)
        user_id = version.user_id
        db.rollback()
        return user_id
    except SQLAlchemyError as e:
        db.rollback()
        raise from_db_error(e) from e


def upload_version(
    db: Session,
    user_id: int,
    data: bytes,
    file_format: str | None = None,
    file_name: str | None = None,
    template_name: str | None = None,
    notes: str | None = None,
    store=None,
) -> CVVersion:
    """
    Store a new CV file and make it the user's active version.

    Raises InvalidOperationError for empty/oversized files or an unknown format,
    NotFoundError for an unknown user, StorageError/TransientNetworkError when the
    blob write fails (nothing changed) and PersistenceError when the row insert
    fails (the written blob is left orphaned).
    """
    fmt = resolve_format(file_format, file_name)
    if not data:
        raise InvalidOperationError("CV file is empty")
    if len(data) > settings.cv_max_file_size_bytes:
        raise InvalidOperationError(
            f"CV file is too large ({len(data)} bytes, max {settings.cv_max_file_size_bytes})"
        )
    template = _clean_optional(template_name)
    if template and template.lower() == DEFAULT_TEMPLATE_NAME:
        template = None
    store = store or get_object_store()

    with user_lock(user_id):
        try:
            user = _get_user(db, user_id, for_update=True)
            current_max = (
                db.query(func.max(CVVersion.version)).filter(CVVersion.user_id == user_id).scalar()
                or 0
            )
            next_version = max(current_max, user.cv_version_seq or 0) + 1
        except SQLAlchemyError as e:
            db.rollback()
            raise from_db_error(e) from e
        except CVError:
            db.rollback()
            raise

        key = build_storage_key(user_id, next_version, fmt)
        try:
            store.put(key, data, CV_FORMATS[fmt][1])
        except CVError:
            db.rollback()
            logger.error("CV upload aborted, storage write failed user_id=%s key=%s", user_id, key)
            raise

        try:
            _deactivate_all(db, user_id)
            version = CVVersion(
                user_id=user_id,
                version=next_version,
                file_path=key,
                file_format=fmt,
                file_size=len(data),
                template_name=template,
                notes=_clean_optional(notes),
                is_active=True,
            )
            db.add(version)
            user.cv_url = store.resolve_url(key)
            user.cv_version_seq = next_version
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(
                "CV row insert failed, orphaned blob left in storage user_id=%s key=%s error=%s",
                user_id,
                key,
                e,
            )
            raise from_db_error(e) from e

    db.refresh(version)
    logger.info(
        "CV version uploaded user_id=%s version=%s id=%s format=%s size_bytes=%d",
        user_id,
        version.version,
        version.id,
        fmt,
        version.file_size,
    )
    return version


def set_active_version(db: Session, version_id: int, store=None) -> None:
    """Make version_id the only active version of its owner. NotFoundError if missing."""
    store = store or get_object_store()
    user_id = _owner_id(db, version_id)
    with user_lock(user_id):
        try:
            user = _get_user(db, user_id, for_update=True)
            version = _get_version(db, version_id, refresh=True)
            _activate(db, user, version, store)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise from_db_error(e) from e
        except CVError:
            db.rollback()
            raise
    logger.info("CV version activated user_id=%s version_id=%s", user_id, version_id)


def delete_version(db: Session, version_id: int, store=None) -> None:
    """
    Delete a version. Refuses the owner's only version (LastVersionError). When the
    active version is deleted, the remaining version with the highest number is
    promoted in the same transaction. The blob is removed afterwards, best-effort.
    """
    store = store or get_object_store()
    user_id = _owner_id(db, version_id)
    with user_lock(user_id):
        try:
            user = _get_user(db, user_id, for_update=True)
            version = _get_version(db, version_id, refresh=True)
            count = db.query(func.count(CVVersion.id)).filter(CVVersion.user_id == user_id).scalar()
            if count <= 1:
                raise LastVersionError(LAST_VERSION_MESSAGE)
            key = version.file_path
            was_active = version.is_active
            db.delete(version)
            db.flush()
            promoted = None
            if was_active:
                promoted = (
                    db.query(CVVersion)
                    .filter(CVVersion.user_id == user_id)
                    .order_by(CVVersion.version.desc())
                    .first()
                )
                _activate(db, user, promoted, store)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise from_db_error(e) from e
        except CVError:
            db.rollback()
            raise

    logger.info(
        "CV version deleted user_id=%s version_id=%s promoted=%s",
        user_id,
        version_id,
        promoted.id if promoted else None,
    )
    try:
        store.delete(key)
    except CVError as e:
        logger.warning("CV blob delete failed, continuing key=%s error=%s", key, e.message)


def get_user(db: Session, user_id: int) -> User:
    """NotFoundError for unknown users; DB failures are classified like every other read."""
    try:
        return _get_user(db, user_id)
    except SQLAlchemyError as e:
        raise from_db_error(e) from e


def list_versions(db: Session, user_id: int) -> list[CVVersion]:
    """All versions of a user, newest first."""
    try:
        _get_user(db, user_id)
        return (
            db.query(CVVersion)
            .filter(CVVersion.user_id == user_id)
            .order_by(CVVersion.version.desc())
            .all()
        )
    except SQLAlchemyError as e:
        raise from_db_error(e) from e


def get_active_version(db: Session, user_id: int) -> CVVersion | None:
    """The active version, read from is_active rather than the user's cv_url pointer."""
    try:
        _get_user(db, user_id)
        return (
            db.query(CVVersion)
            .filter(CVVersion.user_id == user_id, CVVersion.is_active.is_(True))
            .first()
        )
    except SQLAlchemyError as e:
        raise from_db_error(e) from e
