# backend/models.py
from __future__ import annotations

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, Index, UniqueConstraint, JSON
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func as sa_func

from sqlalchemy.ext.mutable import MutableList, MutableDict

from backend.database import Base

# JSONB on Postgres, plain JSON everywhere else (e.g., SQLite in dev/tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# =======================
# Cache entry model
# =======================
class CacheEntry(Base):
    """One row per cached computation (keyed query or singleton kind)."""
    __tablename__ = "cache_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    cache_key = Column(String(512), unique=True, index=True, nullable=False)
    kind = Column(String(64), index=True, nullable=False)            # trending_domains | career_keyword | web_search ...

    payload = Column(JSONType, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)

    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    last_accessed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=sa_func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=sa_func.now(), onupdate=sa_func.now())

    __table_args__ = (
        Index("ix_cache_entries_kind_usage", "kind", "usage_count"),
    )

    def __repr__(self) -> str:
        return f"<CacheEntry key={self.cache_key!r} kind={self.kind!r} usage={self.usage_count}>"


# =======================
# Learning path model
# =======================
class LearningPath(Base):
    __tablename__ = "learning_paths"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, nullable=True, index=True)

    title = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    status = Column(String(30), nullable=False, default="draft")          # draft | active | completed | archived
    visibility = Column(String(30), nullable=False, default="private")    # private | unlisted | public

    # {"nodes": [...], "edges": [...]}
    structure_graph = Column(MutableDict.as_mutable(JSONType), nullable=False, default=dict)
    inferred_skills = Column(MutableList.as_mutable(JSONType), nullable=False, default=list)
    inferred_careers = Column(MutableList.as_mutable(JSONType), nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=sa_func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=sa_func.now(), onupdate=sa_func.now())

    versions = relationship(
        "LearningPathVersion",
        back_populates="path",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="LearningPathVersion.version_number",
    )

    def __repr__(self) -> str:
        return f"<LearningPath id={self.id} title={self.title!r}>"


# =======================
# Learning path version model
# =======================
class LearningPathVersion(Base):
    __tablename__ = "learning_path_versions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    path_id = Column(Integer, ForeignKey("learning_paths.id", ondelete="CASCADE"), index=True, nullable=False)
    version_number = Column(Integer, nullable=False)

    reason = Column(String(40), nullable=False, default="user_edit")
    change_description = Column(String(500), nullable=True)

    snapshot = Column(JSONType, nullable=False)
    delta = Column(JSONType, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=sa_func.now(), index=True)

    path = relationship("LearningPath", back_populates="versions", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("path_id", "version_number", name="uq_path_versions_number"),
        Index("ix_path_versions_path_created", "path_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<LearningPathVersion path_id={self.path_id} v={self.version_number} reason={self.reason!r}>"
