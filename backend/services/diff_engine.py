# backend/services/diff_engine.py
"""
Structural diff/patch for learning-path snapshots.

- compute_diff(old, new)  -> PathDiff     (scalar fields, node/edge graph, tag sets)
- apply_diff(base, diff)  -> PathState    (inverse; never mutates `base`)
- summarize_diff(diff)    -> DiffSummary  (restartable iterable of sentences)
- to_delta / infer_reason                 (compact form + reason used by version history)
"""
import logging
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from backend.schemas.paths import (
    SCALAR_FIELDS,
    EdgeDiff,
    FieldChange,
    NodeDiff,
    NodeModification,
    NodeReorder,
    PathDelta,
    PathDiff,
    PathEdge,
    PathNode,
    PathState,
    SetDiff,
)

log = logging.getLogger("paths.diff")

# wire name -> attribute; only these participate in "modified"
NODE_COMPARE_FIELDS = {
    "title": "title",
    "isCompleted": "is_completed",
    "completedAt": "completed_at",
}

# every node attribute reachable by wire name or attribute name (for apply_diff)
_NODE_ATTRS = {
    **{name: name for name in PathNode.model_fields},
    **{f.alias: name for name, f in PathNode.model_fields.items() if f.alias},
}

NO_CHANGES = "No significant changes"

REASONS = (
    "user_edit",
    "video_added",
    "video_removed",
    "reorder",
    "node_completed",
    "ai_suggestion",
    "branch_created",
    "path_activated",
    "path_created",
    "import",
    "bulk_operation",
)

StateLike = Union[PathState, Dict[str, Any]]


def _as_state(value: StateLike) -> PathState:
    return value if isinstance(value, PathState) else PathState.model_validate(value)


def _as_diff(value: Union[PathDiff, Dict[str, Any]]) -> PathDiff:
    return value if isinstance(value, PathDiff) else PathDiff.model_validate(value)


# =========================
# compute
# =========================

def _field_diff(old_value: Any, new_value: Any) -> Optional[FieldChange]:
    if old_value == new_value:
        return None
    return FieldChange(from_=old_value, to=new_value)


def _node_changes(old_node: PathNode, new_node: PathNode) -> Dict[str, FieldChange]:
    changes: Dict[str, FieldChange] = {}
    for wire_name, attr in NODE_COMPARE_FIELDS.items():
        before, after = getattr(old_node, attr), getattr(new_node, attr)
        if before != after:
            changes[wire_name] = FieldChange(from_=before, to=after)
    return changes


def _nodes_diff(old_nodes: Sequence[PathNode], new_nodes: Sequence[PathNode]) -> NodeDiff:
    old_map = {n.id: n for n in old_nodes}
    new_map = {n.id: n for n in new_nodes}

    removed = [node.model_copy(deep=True) for nid, node in old_map.items() if nid not in new_map]
    added: List[PathNode] = []
    modified: List[NodeModification] = []
    reordered: List[NodeReorder] = []

    for nid, new_node in new_map.items():
        old_node = old_map.get(nid)
        if old_node is None:
            added.append(new_node.model_copy(deep=True))
            continue

        changes = _node_changes(old_node, new_node)
        if changes:
            modified.append(NodeModification(id=nid, changes=changes))
        # tracked separately from field changes; a node can land in both
        if old_node.order != new_node.order:
            reordered.append(NodeReorder(id=nid, from_=old_node.order, to=new_node.order))

    return NodeDiff(added=added, removed=removed, modified=modified, reordered=reordered)


def _unique_edges(edges: Sequence[PathEdge]) -> Dict[tuple, PathEdge]:
    out: Dict[tuple, PathEdge] = {}
    for e in edges:
        out.setdefault(e.key, e)
    return out


def _edges_diff(old_edges: Sequence[PathEdge], new_edges: Sequence[PathEdge]) -> EdgeDiff:
    old_set = _unique_edges(old_edges)
    new_set = _unique_edges(new_edges)
    return EdgeDiff(
        added=[e.model_copy() for k, e in new_set.items() if k not in old_set],
        removed=[e.model_copy() for k, e in old_set.items() if k not in new_set],
    )


def _set_diff(old_items: Sequence[str], new_items: Sequence[str]) -> SetDiff:
    old_set, new_set = set(old_items), set(new_items)
    # dict.fromkeys: dedupe, keep first-seen order
    return SetDiff(
        added=[x for x in dict.fromkeys(new_items) if x not in old_set],
        removed=[x for x in dict.fromkeys(old_items) if x not in new_set],
    )


def compute_diff(old_state: StateLike, new_state: StateLike) -> PathDiff:
    """Describe how `new_state` differs from `old_state`. Inputs are not mutated."""
    old, new = _as_state(old_state), _as_state(new_state)

    diff = PathDiff(
        **{name: _field_diff(getattr(old, name), getattr(new, name)) for name in SCALAR_FIELDS},
        nodes=_nodes_diff(old.nodes, new.nodes),
        edges=_edges_diff(old.edges, new.edges),
        skills=_set_diff(old.inferred_skills, new.inferred_skills),
        careers=_set_diff(old.inferred_careers, new.inferred_careers),
    )
    log.debug(
        "diff: fields=%s nodes +%d -%d ~%d reordered=%d edges +%d -%d",
        diff.changed_fields,
        len(diff.nodes.added), len(diff.nodes.removed), len(diff.nodes.modified),
        len(diff.nodes.reordered), len(diff.edges.added), len(diff.edges.removed),
    )
    return diff


# =========================
# apply
# =========================

def apply_diff(base_state: StateLike, diff: Union[PathDiff, Dict[str, Any]]) -> PathState:
    """
    Rebuild a state from `base_state` + `diff`. The result's `order` fields are
    authoritative; array position of re-added nodes may differ from the target.
    Edge endpoints are not checked against the resulting node set.
    The result is re-validated: ISO strings from a serialized diff become
    datetimes, and values outside a field's type raise pydantic.ValidationError.
    """
    base, patch = _as_state(base_state), _as_diff(diff)
    result = base.model_copy(deep=True)

    for name in SCALAR_FIELDS:
        change = getattr(patch, name)
        if change is not None:
            setattr(result, name, change.to)

    graph = result.structure_graph

    # nodes: remove -> add -> modify -> reorder
    removed_ids = {n.id for n in patch.nodes.removed}
    nodes = [n for n in graph.nodes if n.id not in removed_ids]
    nodes.extend(n.model_copy(deep=True) for n in patch.nodes.added)

    by_id: Dict[str, PathNode] = {}
    for n in nodes:
        by_id.setdefault(n.id, n)

    for mod in patch.nodes.modified:
        node = by_id.get(mod.id)
        if node is None:
            log.debug("apply_diff: modified node %s not in base, skipped", mod.id)
            continue
        for field, change in mod.changes.items():
            setattr(node, _NODE_ATTRS.get(field, field), change.to)

    for reorder in patch.nodes.reordered:
        node = by_id.get(reorder.id)
        if node is not None:
            node.order = reorder.to

    graph.nodes = nodes

    # edges: identity is the (from, to) pair
    removed_keys = {e.key for e in patch.edges.removed}
    edges = [e for e in graph.edges if e.key not in removed_keys]
    edges.extend(e.model_copy() for e in patch.edges.added)
    graph.edges = edges

    result.inferred_skills = _apply_set(result.inferred_skills, patch.skills)
    result.inferred_careers = _apply_set(result.inferred_careers, patch.careers)
    # setattr above skips validation
    return PathState.model_validate(result.model_dump(by_alias=True, warnings=False))


def _apply_set(base_items: Sequence[str], change: SetDiff) -> List[str]:
    items = dict.fromkeys(base_items)
    for x in change.removed:
        items.pop(x, None)
    for x in change.added:
        items.setdefault(x, None)
    return list(items)


# =========================
# summaries
# =========================

def _completed_ids(diff: PathDiff) -> List[str]:
    out = []
    for mod in diff.nodes.modified:
        change = mod.changes.get("isCompleted")
        if change is not None and change.to is True:
            out.append(mod.id)
    return out


class DiffSummary:
    """Human-readable sentences for a diff. Iterating again starts over."""

    def __init__(self, diff: PathDiff):
        self.diff = diff

    def _sentences(self) -> Iterator[str]:
        d = self.diff
        if d.title is not None:
            yield f'Title changed from "{d.title.from_}" to "{d.title.to}"'
        if d.status is not None:
            yield f'Status changed from "{d.status.from_}" to "{d.status.to}"'
        if d.nodes.added:
            yield f"Added {len(d.nodes.added)} video(s)"
        if d.nodes.removed:
            yield f"Removed {len(d.nodes.removed)} video(s)"
        completed = _completed_ids(d)
        if completed:
            yield f"Marked {len(completed)} video(s) as completed"
        if d.nodes.reordered:
            yield f"Reordered {len(d.nodes.reordered)} video(s)"
        if d.edges.added:
            yield f"Added {len(d.edges.added)} connection(s)"
        if d.edges.removed:
            yield f"Removed {len(d.edges.removed)} connection(s)"

    def __iter__(self) -> Iterator[str]:
        empty = True
        for sentence in self._sentences():
            empty = False
            yield sentence
        if empty:
            yield NO_CHANGES

    def __str__(self) -> str:
        return "; ".join(self)

    def __repr__(self) -> str:
        return f"<DiffSummary {list(self)!r}>"


def summarize_diff(diff: Union[PathDiff, Dict[str, Any]]) -> DiffSummary:
    return DiffSummary(_as_diff(diff))


def to_delta(diff: PathDiff) -> PathDelta:
    """Id-only view of a diff (what version history stores per row)."""
    return PathDelta(
        added_nodes=[n.id for n in diff.nodes.added],
        removed_nodes=[n.id for n in diff.nodes.removed],
        added_edges=list(diff.edges.added),
        removed_edges=list(diff.edges.removed),
        completed_nodes=_completed_ids(diff),
        metadata_changed=diff.changed_fields,
    )


def infer_reason(diff: Optional[PathDiff]) -> str:
    """Best single label for why a version was recorded. `None` means first version."""
    if diff is None:
        return "path_created"

    kinds = []
    if diff.changed_fields or diff.skills.has_changes or diff.careers.has_changes or diff.edges.has_changes:
        kinds.append("user_edit")
    if diff.nodes.added:
        kinds.append("video_added")
    if diff.nodes.removed:
        kinds.append("video_removed")
    if _completed_ids(diff):
        kinds.append("node_completed")
    elif diff.nodes.modified:
        kinds.append("user_edit")
    if diff.nodes.reordered:
        kinds.append("reorder")

    kinds = list(dict.fromkeys(kinds))
    if len(kinds) > 1:
        return "bulk_operation"
    return kinds[0] if kinds else "user_edit"
