"""CV schema: users, cv_versions, cv_downloads

Revision ID: 001_cv_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_cv_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="user"),
        sa.Column("cv_url", sa.String(length=1024), nullable=True),
        sa.Column("cv_version_seq", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "cv_versions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("file_path", sa.String(length=512), nullable=False),
        sa.Column("file_format", sa.String(length=10), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("template_name", sa.String(length=100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "version", name="uq_cv_versions_user_version"),
    )
    op.create_index(op.f("ix_cv_versions_id"), "cv_versions", ["id"], unique=False)
    op.create_index(op.f("ix_cv_versions_user_id"), "cv_versions", ["user_id"], unique=False)
    # At most one active version per user
    op.create_index(
        "uq_cv_versions_one_active_per_user",
        "cv_versions",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text("is_active = 1"),
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "cv_downloads",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("cv_version_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("downloaded_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_cv_downloads_id"), "cv_downloads", ["id"], unique=False)
    op.create_index(op.f("ix_cv_downloads_cv_version_id"), "cv_downloads", ["cv_version_id"], unique=False)
    op.create_index(op.f("ix_cv_downloads_user_id"), "cv_downloads", ["user_id"], unique=False)
    op.create_index(
        "ix_cv_downloads_version_downloaded_at",
        "cv_downloads",
        ["cv_version_id", "downloaded_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_cv_downloads_version_downloaded_at", table_name="cv_downloads")
    op.drop_index(op.f("ix_cv_downloads_user_id"), table_name="cv_downloads")
    op.drop_index(op.f("ix_cv_downloads_cv_version_id"), table_name="cv_downloads")
    op.drop_index(op.f("ix_cv_downloads_id"), table_name="cv_downloads")
    op.drop_table("cv_downloads")
    op.drop_index("uq_cv_versions_one_active_per_user", table_name="cv_versions")
    op.drop_index(op.f("ix_cv_versions_user_id"), table_name="cv_versions")
    op.drop_index(op.f("ix_cv_versions_id"), table_name="cv_versions")
    op.drop_table("cv_versions")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_index(op.f("ix_users_id"), table_name="users")
    op.drop_table("users")
