"""create learning paths, path versions and cache entries

Revision ID: 3f1a9c2d7b10
Revises:
Create Date: 2026-10-16 10:12:04.118203
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "3f1a9c2d7b10"
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "cache_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("cache_key", sa.String(length=512), nullable=False),
        sa.Column("kind", sa.String(length=64), nullable=False),
        sa.Column("payload", JSONType, nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_cache_entries_id", "cache_entries", ["id"])
    op.create_index("ix_cache_entries_cache_key", "cache_entries", ["cache_key"], unique=True)
    op.create_index("ix_cache_entries_kind", "cache_entries", ["kind"])
    op.create_index("ix_cache_entries_expires_at", "cache_entries", ["expires_at"])
    op.create_index("ix_cache_entries_kind_usage", "cache_entries", ["kind", "usage_count"])

    op.create_table(
        "learning_paths",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("visibility", sa.String(length=30), nullable=False),
        sa.Column("structure_graph", JSONType, nullable=False),
        sa.Column("inferred_skills", JSONType, nullable=False),
        sa.Column("inferred_careers", JSONType, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_learning_paths_id", "learning_paths", ["id"])
    op.create_index("ix_learning_paths_user_id", "learning_paths", ["user_id"])
    op.create_index("ix_learning_paths_title", "learning_paths", ["title"])

    op.create_table(
        "learning_path_versions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "path_id", sa.Integer(),
            sa.ForeignKey("learning_paths.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=40), nullable=False),
        sa.Column("change_description", sa.String(length=500), nullable=True),
        sa.Column("snapshot", JSONType, nullable=False),
        sa.Column("delta", JSONType, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("path_id", "version_number", name="uq_path_versions_number"),
    )
    op.create_index("ix_learning_path_versions_id", "learning_path_versions", ["id"])
    op.create_index("ix_learning_path_versions_path_id", "learning_path_versions", ["path_id"])
    op.create_index("ix_learning_path_versions_created_at", "learning_path_versions", ["created_at"])
    op.create_index("ix_path_versions_path_created", "learning_path_versions", ["path_id", "created_at"])


def downgrade() -> None:
    op.drop_table("learning_path_versions")
    op.drop_table("learning_paths")
    op.drop_table("cache_entries")
