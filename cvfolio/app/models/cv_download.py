"""
CVDownload - one row per recorded CV download. Rows are append-only and are kept
when their version is deleted, so there is no foreign key to cv_versions.
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from cvfolio.app.db.base import Base


class CVDownload(Base):
    __tablename__ = "cv_downloads"
    __table_args__ = (
        Index("ix_cv_downloads_version_downloaded_at", "cv_version_id", "downloaded_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    cv_version_id = Column(Integer, nullable=False, index=True)
    # Owner of the version, copied at record time
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)

    downloaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)
