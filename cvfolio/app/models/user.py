"""
User - site account. Provisioned outside this service; cv_url is maintained by the CV version manager.
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from cvfolio.app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(String(20), nullable=False, default="user")  # admin | user

    # Denormalized mirror of the active CV version's storage URL (NULL when none)
    cv_url = Column(String(1024), nullable=True)
    # Highest version number ever issued to this user; numbers are never reused
    cv_version_seq = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    cv_versions = relationship(
        "CVVersion",
        back_populates="user",
        order_by="CVVersion.version.desc()",
        passive_deletes=True,
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
