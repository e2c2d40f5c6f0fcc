# backend/routes/paths.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from backend.deps import get_version_service
from backend.models import LearningPath, LearningPathVersion
from backend.schemas.paths import (
    ApplyDiffRequest, DiffRequest, DiffResponse, PathIn, PathOut, PathState,
    VersionCompareOut, VersionOut,
)
from backend.services.diff_engine import apply_diff, compute_diff, summarize_diff
from backend.services.path_versions import PathVersionService, VersionNotFound, snapshot_of

# NOTE: main.py mounts this with prefix="/api/v1"
router = APIRouter(prefix="/paths", tags=["Paths"])


# ---- Helpers ----
def _path_out(path: LearningPath, version: Optional[int] = None) -> PathOut:
    state = snapshot_of(path)
    return PathOut(**dict(state), id=path.id, user_id=path.user_id, version=version)


def _version_out(v: LearningPathVersion, with_snapshot: bool = False) -> VersionOut:
    return VersionOut(
        path_id=v.path_id,
        version_number=v.version_number,
        reason=v.reason,
        change_description=v.change_description,
        delta=v.delta,
        snapshot=v.snapshot if with_snapshot else None,
        created_at=v.created_at,
    )


def _not_found(e: VersionNotFound):
    raise HTTPException(status_code=404, detail=str(e))


# ---- Stateless diff/patch ----
@router.post("/diff", response_model=DiffResponse)
def diff_states(body: DiffRequest):
    """Structured delta between two path snapshots + human-readable summary."""
    diff = compute_diff(body.old, body.new)
    return DiffResponse(diff=diff, summary=list(summarize_diff(diff)))


@router.post("/apply-diff", response_model=PathState)
def apply_path_diff(body: ApplyDiffRequest):
    """Rebuild a snapshot from a base state and a previously computed diff."""
    try:
        return apply_diff(body.base, body.diff)
    except ValidationError as e:
        # e.g. a diff that sets status to a value PathState does not allow
        raise HTTPException(status_code=422, detail=f"Diff produces an invalid path: {e.error_count()} error(s)")


# ---- Paths ----
@router.post("", response_model=PathOut, status_code=201)
def create_path(body: PathIn, svc: PathVersionService = Depends(get_version_service)):
    try:
        path, version = svc.create_path(body, user_id=body.user_id, reason=body.reason)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _path_out(path, version.version_number)


@router.get("/{path_id}", response_model=PathOut)
def read_path(path_id: int, svc: PathVersionService = Depends(get_version_service)):
    try:
        path = svc.get_path(path_id)
    except VersionNotFound as e:
        _not_found(e)
    latest = svc.get_latest_version(path_id)
    return _path_out(path, latest.version_number if latest else None)


@router.put("/{path_id}", response_model=PathOut)
def update_path(path_id: int, body: PathIn, svc: PathVersionService = Depends(get_version_service)):
    """
    Overwrite a path and record a version when anything changed.
    The version reason is inferred from the diff unless `reason` is given.
    """
    try:
        path, _ = svc.update_path(path_id, body, reason=body.reason)
    except VersionNotFound as e:
        _not_found(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    latest = svc.get_latest_version(path_id)
    return _path_out(path, latest.version_number if latest else None)


# ---- Versions ----
@router.get("/{path_id}/versions", response_model=List[VersionOut])
def list_versions(
    path_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    svc: PathVersionService = Depends(get_version_service),
):
    return [_version_out(v) for v in svc.get_history(path_id, limit=limit, offset=offset)]


@router.get("/{path_id}/versions/compare", response_model=VersionCompareOut)
def compare_versions(
    path_id: int,
    from_version: int = Query(..., ge=1),
    to_version: int = Query(..., ge=1),
    svc: PathVersionService = Depends(get_version_service),
):
    try:
        diff = svc.compare(path_id, from_version, to_version)
    except VersionNotFound as e:
        _not_found(e)
    return VersionCompareOut(
        path_id=path_id,
        from_version=from_version,
        to_version=to_version,
        diff=diff,
        summary=list(summarize_diff(diff)),
    )


@router.get("/{path_id}/versions/reconstruct", response_model=PathState)
def reconstruct_version(
    path_id: int,
    from_version: int = Query(..., ge=1),
    to_version: int = Query(..., ge=1),
    svc: PathVersionService = Depends(get_version_service),
):
    try:
        return svc.reconstruct(path_id, from_version, to_version)
    except VersionNotFound as e:
        _not_found(e)


@router.get("/{path_id}/versions/{version_number}", response_model=VersionOut)
def read_version(path_id: int, version_number: int, svc: PathVersionService = Depends(get_version_service)):
    try:
        return _version_out(svc.get_version(path_id, version_number), with_snapshot=True)
    except VersionNotFound as e:
        _not_found(e)
