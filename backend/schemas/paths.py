# backend/schemas/paths.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel

PathStatus = Literal["draft", "active", "completed", "archived"]
Visibility = Literal["private", "unlisted", "public"]


class CamelModel(BaseModel):
    """Accepts camelCase (frontend) or snake_case; emits camelCase when dumped by_alias."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "coerce_numbers_to_str": True,   # node ids sometimes arrive as numbers
        "extra": "ignore",
    }


def _none_to_list(v: Any) -> Any:
    return [] if v is None else v


# =========================
# 🗺️ Path state
# =========================

class PathNode(CamelModel):
    id: str
    title: str = ""
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    order: int = 0
    # carried along, never compared
    video_id: Optional[str] = None
    notes: Optional[str] = None


class PathEdge(CamelModel):
    from_: str = Field(..., alias="from")
    to: str
    type: Optional[str] = None          # e.g. "prerequisite"; not part of identity

    @property
    def key(self) -> tuple:
        return (self.from_, self.to)


class StructureGraph(CamelModel):
    nodes: List[PathNode] = Field(default_factory=list)
    edges: List[PathEdge] = Field(default_factory=list)

    @field_validator("nodes", "edges", mode="before")
    @classmethod
    def empty_collections(cls, v: Any) -> Any:
        return _none_to_list(v)


class PathState(CamelModel):
    """Snapshot of a learning path. Missing collections are normalized to empty here,
    so downstream code never has to null-check them."""
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[PathStatus] = None
    visibility: Optional[Visibility] = None

    structure_graph: StructureGraph = Field(default_factory=StructureGraph)
    inferred_skills: List[str] = Field(default_factory=list)
    inferred_careers: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def lift_flat_graph(cls, data: Any) -> Any:
        # Accept {"nodes": [...], "edges": [...]} at the top level as well as nested
        if isinstance(data, dict) and ("nodes" in data or "edges" in data):
            data = dict(data)
            graph = data.get("structureGraph") or data.get("structure_graph") or {}
            graph = dict(graph) if isinstance(graph, dict) else graph.model_dump(by_alias=True)
            graph.setdefault("nodes", data.pop("nodes", None))
            graph.setdefault("edges", data.pop("edges", None))
            data.pop("structure_graph", None)
            data["structureGraph"] = graph
        return data

    @field_validator("structure_graph", mode="before")
    @classmethod
    def empty_graph(cls, v: Any) -> Any:
        return StructureGraph() if v is None else v

    @field_validator("inferred_skills", "inferred_careers", mode="before")
    @classmethod
    def empty_sets(cls, v: Any) -> Any:
        return _none_to_list(v)

    @property
    def nodes(self) -> List[PathNode]:
        return self.structure_graph.nodes

    @property
    def edges(self) -> List[PathEdge]:
        return self.structure_graph.edges


# =========================
# 🔀 Diff value types
# =========================

class FieldChange(CamelModel):
    from_: Any = Field(None, alias="from")
    to: Any = None


class NodeModification(CamelModel):
    id: str
    changes: Dict[str, FieldChange]


class NodeReorder(CamelModel):
    id: str
    from_: int = Field(..., alias="from")
    to: int


class NodeDiff(CamelModel):
    added: List[PathNode] = Field(default_factory=list)
    removed: List[PathNode] = Field(default_factory=list)
    modified: List[NodeModification] = Field(default_factory=list)
    reordered: List[NodeReorder] = Field(default_factory=list)

    @computed_field(alias="hasChanges")
    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified or self.reordered)


class EdgeDiff(CamelModel):
    added: List[PathEdge] = Field(default_factory=list)
    removed: List[PathEdge] = Field(default_factory=list)

    @computed_field(alias="hasChanges")
    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed)


class SetDiff(CamelModel):
    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)

    @computed_field(alias="hasChanges")
    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed)


SCALAR_FIELDS = ("title", "description", "status", "visibility")


class PathDiff(CamelModel):
    """A `None` scalar means "unchanged"; a change *to* null is FieldChange(to=None)."""
    title: Optional[FieldChange] = None
    description: Optional[FieldChange] = None
    status: Optional[FieldChange] = None
    visibility: Optional[FieldChange] = None

    nodes: NodeDiff = Field(default_factory=NodeDiff)
    edges: EdgeDiff = Field(default_factory=EdgeDiff)
    skills: SetDiff = Field(default_factory=SetDiff)
    careers: SetDiff = Field(default_factory=SetDiff)

    @field_validator("nodes", "edges", "skills", "careers", mode="before")
    @classmethod
    def empty_subdiffs(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def changed_fields(self) -> List[str]:
        return [name for name in SCALAR_FIELDS if getattr(self, name) is not None]

    @computed_field(alias="hasChanges")
    @property
    def has_changes(self) -> bool:
        return bool(
            self.changed_fields
            or self.nodes.has_changes
            or self.edges.has_changes
            or self.skills.has_changes
            or self.careers.has_changes
        )


class PathDelta(CamelModel):
    """Compact, id-only form of a diff stored next to each version."""
    added_nodes: List[str] = Field(default_factory=list)
    removed_nodes: List[str] = Field(default_factory=list)
    added_edges: List[PathEdge] = Field(default_factory=list)
    removed_edges: List[PathEdge] = Field(default_factory=list)
    completed_nodes: List[str] = Field(default_factory=list)
    metadata_changed: List[str] = Field(default_factory=list)


# =========================
# 📦 Request / response bodies
# =========================

class DiffRequest(CamelModel):
    old: PathState
    new: PathState


class DiffResponse(CamelModel):
    diff: PathDiff
    summary: List[str]


class ApplyDiffRequest(CamelModel):
    base: PathState
    diff: PathDiff


class PathIn(PathState):
    title: str = Field(..., min_length=1, max_length=200)
    user_id: Optional[int] = None
    reason: Optional[str] = Field(None, max_length=40, description="Override the inferred version reason")


class PathOut(PathState):
    id: int
    user_id: Optional[int] = None
    version: Optional[int] = None


class VersionOut(CamelModel):
    path_id: int
    version_number: int
    reason: str
    change_description: Optional[str] = None
    delta: Optional[PathDelta] = None
    snapshot: Optional[PathState] = None
    created_at: Optional[datetime] = None


class VersionCompareOut(CamelModel):
    path_id: int
    from_version: int
    to_version: int
    diff: PathDiff
    summary: List[str]
