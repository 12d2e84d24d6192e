"""
CV download analytics - on-demand aggregation over cv_downloads.
All windows and day buckets are UTC. Windows are inclusive at both ends: [as_of - N days, as_of].
"""
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cvfolio.app.core.config import ANALYTICS_LONG_WINDOW_DAYS, ANALYTICS_SHORT_WINDOW_DAYS
from cvfolio.app.core.errors import NotFoundError, from_db_error
from cvfolio.app.models.cv_download import CVDownload
from cvfolio.app.models.cv_version import CVVersion
from cvfolio.app.models.user import User
from cvfolio.app.schemas.cv import AnalyticsSnapshot, DailyDownloads, VersionDownloads


def to_naive_utc(value: datetime | None) -> datetime:
    """Stored timestamps are naive UTC; bring aware datetimes into the same frame."""
    if value is None:
        return datetime.utcnow()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _date_range(start: date, end: date) -> list[date]:
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def get_analytics(db: Session, version_id: int, as_of: datetime | None = None) -> AnalyticsSnapshot:
    """
    Totals, 7/30-day window counts, dense 31-day histogram and 30-day daily average
    for one version. Events of deleted versions stay queryable by id.
    """
    as_of = to_naive_utc(as_of)
    since_short = as_of - timedelta(days=ANALYTICS_SHORT_WINDOW_DAYS)
    since_long = as_of - timedelta(days=ANALYTICS_LONG_WINDOW_DAYS)
    histogram_start = datetime.combine(since_long.date(), time.min)

    base = CVDownload.cv_version_id == version_id
    try:
        total = db.query(func.count(CVDownload.id)).filter(base).scalar() or 0
        if total == 0 and not db.query(CVVersion.id).filter(CVVersion.id == version_id).first():
            raise NotFoundError(f"CV version {version_id} not found")
        last_short = (
            db.query(func.count(CVDownload.id))
            .filter(base, CVDownload.downloaded_at >= since_short, CVDownload.downloaded_at <= as_of)
            .scalar()
            or 0
        )
        last_long = (
            db.query(func.count(CVDownload.id))
            .filter(base, CVDownload.downloaded_at >= since_long, CVDownload.downloaded_at <= as_of)
            .scalar()
            or 0
        )
        rows = (
            db.query(CVDownload.downloaded_at)
            .filter(base, CVDownload.downloaded_at >= histogram_start, CVDownload.downloaded_at <= as_of)
            .all()
        )
    except SQLAlchemyError as e:
        raise from_db_error(e) from e

    per_day: dict[date, int] = {}
    for (downloaded_at,) in rows:
        day = downloaded_at.date()
        per_day[day] = per_day.get(day, 0) + 1

    return AnalyticsSnapshot(
        cv_version_id=version_id,
        as_of=as_of,
        total_downloads=total,
        downloads_last_7_days=last_short,
        downloads_last_30_days=last_long,
        downloads_by_date=[
            DailyDownloads(date=day, count=per_day.get(day, 0))
            for day in _date_range(since_long.date(), as_of.date())
        ],
        average_downloads_per_day=round(last_long / ANALYTICS_LONG_WINDOW_DAYS, 1),
    )


def get_downloads_by_version(db: Session, user_id: int) -> list[VersionDownloads]:
    """Total downloads per existing version of a user, oldest version first."""
    try:
        if not db.query(User.id).filter(User.id == user_id).first():
            raise NotFoundError(f"User {user_id} not found")
        rows = (
            db.query(CVVersion.version, func.count(CVDownload.id))
            .outerjoin(CVDownload, CVDownload.cv_version_id == CVVersion.id)
            .filter(CVVersion.user_id == user_id)
            .group_by(CVVersion.id, CVVersion.version)
            .order_by(CVVersion.version)
            .all()
        )
    except SQLAlchemyError as e:
        raise from_db_error(e) from e
    return [VersionDownloads(version=v, count=c) for v, c in rows]
