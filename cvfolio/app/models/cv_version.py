"""
CVVersion - one uploaded CV file per row; at most one active row per user.
"""
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from cvfolio.app.db.base import Base


class CVVersion(Base):
    __tablename__ = "cv_versions"
    __table_args__ = (
        UniqueConstraint("user_id", "version", name="uq_cv_versions_user_version"),
        Index(
            "uq_cv_versions_one_active_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    version = Column(Integer, nullable=False)
    # Object store key, e.g. cv/7/v3_<hex>.pdf. Never changes after insert.
    file_path = Column(String(512), nullable=False)
    file_format = Column(String(10), nullable=False)  # pdf | docx | html | txt
    file_size = Column(Integer, nullable=False)
    template_name = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="cv_versions")
