# backend/services/path_versions.py
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from backend.config import PATH_VERSION_KEEP
from backend.models import LearningPath, LearningPathVersion
from backend.schemas.paths import PathDiff, PathState
from backend.services.diff_engine import (
    REASONS, apply_diff, compute_diff, infer_reason, summarize_diff, to_delta,
)

log = logging.getLogger("paths.versions")


class VersionNotFound(LookupError):
    pass


def snapshot_of(path: LearningPath) -> PathState:
    return PathState.model_validate({
        "title": path.title,
        "description": path.description,
        "status": path.status,
        "visibility": path.visibility,
        "structureGraph": path.structure_graph or {},
        "inferredSkills": path.inferred_skills or [],
        "inferredCareers": path.inferred_careers or [],
    })


def _dump(model) -> dict:
    return model.model_dump(by_alias=True, mode="json")


def _assign(path: LearningPath, state: PathState) -> None:
    path.title = state.title or path.title
    path.description = state.description or ""
    path.status = state.status or "draft"
    path.visibility = state.visibility or "private"
    path.structure_graph = _dump(state.structure_graph)
    path.inferred_skills = list(dict.fromkeys(state.inferred_skills))
    path.inferred_careers = list(dict.fromkeys(state.inferred_careers))


class PathVersionService:
    """Learning paths + their version history (snapshot, compact delta, summary per version)."""

    def __init__(self, db: Session, keep: int = PATH_VERSION_KEEP):
        self.db = db
        self.keep = keep

    # ---------- paths ----------

    def get_path(self, path_id: int) -> LearningPath:
        path = self.db.query(LearningPath).filter(LearningPath.id == path_id).first()
        if not path:
            raise VersionNotFound(f"Learning path {path_id} not found")
        return path

    def create_path(
        self, state: PathState, user_id: Optional[int] = None, reason: Optional[str] = None
    ) -> Tuple[LearningPath, LearningPathVersion]:
        path = LearningPath(user_id=user_id, title=state.title or "Untitled")
        _assign(path, state)
        self.db.add(path)
        self.db.flush()

        version = self.record_version(path, snapshot_of(path), reason=reason, commit=False)
        self.db.commit()
        self.db.refresh(path)
        return path, version

    def update_path(
        self, path_id: int, state: PathState, reason: Optional[str] = None
    ) -> Tuple[LearningPath, Optional[LearningPathVersion]]:
        """Overwrite the path; a version is recorded only if something actually changed."""
        path = self.get_path(path_id)
        _assign(path, state)
        version = self.record_version(path, snapshot_of(path), reason=reason, commit=False)
        self.db.commit()
        self.db.refresh(path)
        if version is not None:
            self.cleanup(path.id)
        return path, version

    # ---------- versions ----------

    def record_version(
        self,
        path: LearningPath,
        new_state: PathState,
        reason: Optional[str] = None,
        commit: bool = True,
    ) -> Optional[LearningPathVersion]:
        if reason is not None and reason not in REASONS:
            raise ValueError(f"Unknown version reason: '{reason}'")

        latest = self.get_latest_version(path.id)
        diff: Optional[PathDiff] = None
        if latest is not None:
            diff = compute_diff(PathState.model_validate(latest.snapshot), new_state)
            if not diff.has_changes:
                log.debug("path %s unchanged; no version recorded", path.id)
                return None

        version = LearningPathVersion(
            path_id=path.id,
            version_number=(latest.version_number + 1) if latest else 1,
            reason=reason or infer_reason(diff),
            change_description=(str(summarize_diff(diff)) if diff else "Initial version")[:500],
            snapshot=_dump(new_state),
            delta=_dump(to_delta(diff)) if diff else None,
        )
        self.db.add(version)
        if commit:
            self.db.commit()
            self.db.refresh(version)
        else:
            self.db.flush()
        log.info("path %s -> v%d (%s)", path.id, version.version_number, version.reason)
        return version

    def get_history(self, path_id: int, limit: int = 20, offset: int = 0) -> List[LearningPathVersion]:
        return (
            self.db.query(LearningPathVersion)
            .filter(LearningPathVersion.path_id == path_id)
            .order_by(LearningPathVersion.version_number.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def get_latest_version(self, path_id: int) -> Optional[LearningPathVersion]:
        return (
            self.db.query(LearningPathVersion)
            .filter(LearningPathVersion.path_id == path_id)
            .order_by(LearningPathVersion.version_number.desc())
            .first()
        )

    def get_version(self, path_id: int, version_number: int) -> LearningPathVersion:
        v = (
            self.db.query(LearningPathVersion)
            .filter(
                LearningPathVersion.path_id == path_id,
                LearningPathVersion.version_number == version_number,
            )
            .first()
        )
        if not v:
            raise VersionNotFound(f"Version {version_number} of path {path_id} not found")
        return v

    def compare(self, path_id: int, from_version: int, to_version: int) -> PathDiff:
        v1 = self.get_version(path_id, from_version)
        v2 = self.get_version(path_id, to_version)
        return compute_diff(PathState.model_validate(v1.snapshot), PathState.model_validate(v2.snapshot))

    def reconstruct(self, path_id: int, from_version: int, to_version: int) -> PathState:
        """Rebuild `to_version` by applying the from->to diff onto the `from_version` snapshot."""
        base = PathState.model_validate(self.get_version(path_id, from_version).snapshot)
        return apply_diff(base, self.compare(path_id, from_version, to_version))

    def cleanup(self, path_id: int, keep_count: Optional[int] = None) -> int:
        """Keep only the newest N versions of a path."""
        keep_count = self.keep if keep_count is None else keep_count
        stale = (
            self.db.query(LearningPathVersion.id)
            .filter(LearningPathVersion.path_id == path_id)
            .order_by(LearningPathVersion.version_number.desc())
            .offset(keep_count)
            .all()
        )
        if not stale:
            return 0
        ids = [row.id for row in stale]
        deleted = (
            self.db.query(LearningPathVersion)
            .filter(LearningPathVersion.id.in_(ids))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        log.info("path %s: removed %d old versions", path_id, deleted)
        return deleted
