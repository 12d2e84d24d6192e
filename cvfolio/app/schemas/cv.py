"""
CV version and analytics schemas for the admin and public APIs
"""
import datetime as dt
from typing import Optional

from pydantic import BaseModel, computed_field

from cvfolio.app.utils.file_size import format_file_size


class CVVersionOut(BaseModel):
    """One stored CV version as listed in the admin UI"""
    id: int
    user_id: int
    version: int
    file_path: str
    file_format: str
    file_size: int
    template_name: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool
    created_at: Optional[dt.datetime] = None

    @computed_field
    @property
    def file_size_label(self) -> str:
        return format_file_size(self.file_size)

    class Config:
        from_attributes = True


class DailyDownloads(BaseModel):
    date: dt.date
    count: int


class VersionDownloads(BaseModel):
    version: int
    count: int


class AnalyticsSnapshot(BaseModel):
    """Download analytics for one version as of a given instant (UTC)"""
    cv_version_id: int
    as_of: dt.datetime
    total_downloads: int = 0
    downloads_last_7_days: int = 0
    downloads_last_30_days: int = 0
    downloads_by_date: list[DailyDownloads] = []
    average_downloads_per_day: float = 0.0


class UserCVOverview(BaseModel):
    """Admin overview row: a user with all versions and the active version's analytics"""
    id: int
    name: str
    email: str
    cv_url: Optional[str] = None
    versions: list[CVVersionOut] = []
    active_version: Optional[CVVersionOut] = None
    analytics: Optional[AnalyticsSnapshot] = None


class PublicCVOut(BaseModel):
    """What the public CV page needs to render a download link"""
    user_id: int
    name: str
    cv_url: Optional[str] = None
    active_version: Optional[CVVersionOut] = None
