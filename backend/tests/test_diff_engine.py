from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from backend.schemas.paths import FieldChange, PathDiff, PathState
from backend.services.diff_engine import (
    NO_CHANGES, apply_diff, compute_diff, infer_reason, summarize_diff, to_delta,
)


def _state(nodes=(), edges=(), skills=(), careers=(), **scalars) -> PathState:
    return PathState.model_validate({
        **scalars,
        "structureGraph": {"nodes": list(nodes), "edges": list(edges)},
        "inferredSkills": list(skills),
        "inferredCareers": list(careers),
    })


def _node(nid, title=None, order=0, done=False, **extra):
    return {"id": nid, "title": title or f"Video {nid}", "order": order, "isCompleted": done, **extra}


def _canon(state: PathState) -> dict:
    """Order-insensitive view: node/edge array positions are not part of a path's meaning."""
    data = state.model_dump(by_alias=True, mode="json")
    graph = data["structureGraph"]
    graph["nodes"] = sorted(graph["nodes"], key=lambda n: n["id"])
    graph["edges"] = sorted(graph["edges"], key=lambda e: (e["from"], e["to"]))
    data["inferredSkills"] = sorted(data["inferredSkills"])
    data["inferredCareers"] = sorted(data["inferredCareers"])
    return data


OLD = _state(
    nodes=[_node("a", order=0), _node("b", order=1), _node("c", order=2)],
    edges=[{"from": "a", "to": "b"}, {"from": "b", "to": "c"}],
    skills=["python", "sql"],
    careers=["data engineer"],
    title="Data Path",
    description="Start here",
    status="draft",
    visibility="private",
)

NEW = _state(
    nodes=[
        _node("a", order=1, done=True),
        _node("c", title="Video C (updated)", order=0),
        _node("d", order=2, videoId="yt-123", notes="watch at 1.5x"),
    ],
    edges=[{"from": "c", "to": "a"}, {"from": "a", "to": "d", "type": "prerequisite"}],
    skills=["python", "spark"],
    careers=["data engineer", "ml engineer"],
    title="Data Engineering Path",
    description="Start here",
    status="active",
    visibility="private",
)


def test_apply_of_compute_rebuilds_new_state():
    diff = compute_diff(OLD, NEW)
    rebuilt = apply_diff(OLD, diff)
    assert _canon(rebuilt) == _canon(NEW)


def test_compute_diff_does_not_mutate_inputs():
    before_old = OLD.model_dump()
    before_new = NEW.model_dump()
    diff = compute_diff(OLD, NEW)
    apply_diff(OLD, diff)
    assert OLD.model_dump() == before_old
    assert NEW.model_dump() == before_new


def test_identical_states_produce_empty_diff():
    diff = compute_diff(OLD, OLD.model_copy(deep=True))
    assert not diff.has_changes
    assert list(summarize_diff(diff)) == [NO_CHANGES]
    assert _canon(apply_diff(OLD, diff)) == _canon(OLD)


def test_scalar_changes_only_report_changed_fields():
    diff = compute_diff(OLD, NEW)
    assert diff.title == FieldChange(from_="Data Path", to="Data Engineering Path")
    assert diff.status.from_ == "draft" and diff.status.to == "active"
    assert diff.description is None
    assert diff.visibility is None
    assert diff.changed_fields == ["title", "status"]


def test_change_to_null_is_distinct_from_unchanged():
    old = _state(description="Some text")
    new = _state(description=None)
    diff = compute_diff(old, new)

    assert diff.description is not None
    assert diff.description.to is None
    dumped = diff.model_dump(by_alias=True)
    assert dumped["description"] == {"from": "Some text", "to": None}
    assert dumped["title"] is None
    assert apply_diff(old, diff).description is None


def test_node_added_removed_and_extras_ride_along():
    diff = compute_diff(OLD, NEW)
    assert [n.id for n in diff.nodes.added] == ["d"]
    assert [n.id for n in diff.nodes.removed] == ["b"]
    added = diff.nodes.added[0]
    assert added.video_id == "yt-123"
    assert added.notes == "watch at 1.5x"


def test_modified_and_reordered_are_tracked_independently():
    diff = compute_diff(OLD, NEW)
    modified = {m.id: m.changes for m in diff.nodes.modified}
    reordered = {r.id: (r.from_, r.to) for r in diff.nodes.reordered}

    # "a": completed + moved; "c": retitled + moved
    assert set(modified) == {"a", "c"}
    assert set(modified["a"]) == {"isCompleted"}
    assert modified["c"]["title"].to == "Video C (updated)"
    assert reordered == {"a": (0, 1), "c": (2, 0)}


def test_order_only_change_is_not_a_modification():
    old = _state(nodes=[_node("x", order=0)])
    new = _state(nodes=[_node("x", order=5)])
    diff = compute_diff(old, new)
    assert diff.nodes.modified == []
    assert [(r.id, r.from_, r.to) for r in diff.nodes.reordered] == [("x", 0, 5)]


def test_notes_and_video_id_do_not_count_as_modifications():
    old = _state(nodes=[_node("x", notes="old")])
    new = _state(nodes=[_node("x", notes="new", videoId="v1")])
    assert not compute_diff(old, new).has_changes


def test_completed_at_is_compared():
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    old = _state(nodes=[_node("x")])
    new = _state(nodes=[_node("x", done=True, completedAt=when.isoformat())])
    diff = compute_diff(old, new)
    changes = diff.nodes.modified[0].changes
    assert set(changes) == {"isCompleted", "completedAt"}
    assert changes["completedAt"].to == when
    assert apply_diff(old, diff).nodes[0].completed_at == when


def test_duplicate_edges_collapse_to_one():
    old = _state(edges=[{"from": "a", "to": "b"}, {"from": "a", "to": "b"}])
    new = _state(edges=[])
    diff = compute_diff(old, new)
    assert len(diff.edges.removed) == 1
    assert diff.edges.removed[0].key == ("a", "b")
    assert list(summarize_diff(diff)) == ["Removed 1 connection(s)"]


def test_edge_type_is_not_part_of_identity():
    old = _state(edges=[{"from": "a", "to": "b", "type": "prerequisite"}])
    new = _state(edges=[{"from": "a", "to": "b", "type": "related"}])
    assert not compute_diff(old, new).edges.has_changes


def test_set_diff_dedupes_and_keeps_first_seen_order():
    old = _state(skills=["js", "js", "ts"])
    new = _state(skills=["ts", "go", "go"])
    diff = compute_diff(old, new)
    assert diff.skills.added == ["go"]
    assert diff.skills.removed == ["js"]
    assert apply_diff(old, diff).inferred_skills == ["ts", "go"]


def test_careers_use_set_semantics():
    diff = compute_diff(OLD, NEW)
    assert diff.careers.added == ["ml engineer"]
    assert diff.careers.removed == []


def test_flat_nodes_and_edges_are_accepted():
    old = {"title": "T", "nodes": [_node("a")], "edges": []}
    new = {"title": "T", "nodes": [_node("a"), _node("b", order=1)], "edges": [{"from": "a", "to": "b"}]}
    diff = compute_diff(old, new)
    assert [n.id for n in diff.nodes.added] == ["b"]
    assert [e.key for e in diff.edges.added] == [("a", "b")]


def test_missing_collections_are_treated_as_empty():
    diff = compute_diff({"title": "T", "structureGraph": None, "inferredSkills": None}, {"title": "T"})
    assert not diff.has_changes


def test_numeric_node_ids_are_coerced_to_strings():
    state = _state(nodes=[{"id": 7, "title": "seven"}])
    assert state.nodes[0].id == "7"


def test_apply_accepts_serialized_diff():
    old = _state(nodes=[_node("a"), _node("b", order=1)], skills=["python"], title="T")
    new = _state(nodes=[_node("b", order=0, title="B!")], skills=["python", "go"], title="T2")
    wire = compute_diff(old, new).model_dump(by_alias=True, mode="json")

    assert wire["hasChanges"] is True
    assert wire["nodes"]["reordered"] == [{"id": "b", "from": 1, "to": 0}]

    rebuilt = apply_diff(old, wire)
    assert _canon(rebuilt) == _canon(new)
    assert not compute_diff(rebuilt, new).has_changes


def test_serialized_diff_restores_field_types():
    old = _state(nodes=[_node("a")])
    new = _state(nodes=[_node("a", done=True, completedAt="2024-05-01T10:00:00Z")])
    wire = compute_diff(old, new).model_dump(by_alias=True, mode="json")
    assert isinstance(wire["nodes"]["modified"][0]["changes"]["completedAt"]["to"], str)

    rebuilt = apply_diff(old, wire)
    assert rebuilt.nodes[0].completed_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert not compute_diff(rebuilt, new).has_changes


def test_apply_rejects_values_outside_field_type():
    base = _state(status="draft")
    with pytest.raises(ValidationError):
        apply_diff(base, {"status": {"from": "draft", "to": "bogus"}})
    with pytest.raises(ValidationError):
        apply_diff(base, {"visibility": {"from": None, "to": "everyone"}})


def test_apply_skips_modifications_for_missing_nodes():
    diff = PathDiff.model_validate({
        "nodes": {"modified": [{"id": "ghost", "changes": {"title": {"from": "a", "to": "b"}}}]},
    })
    base = _state(nodes=[_node("a")])
    assert _canon(apply_diff(base, diff)) == _canon(base)


def test_summary_sentences_in_fixed_order():
    summary = list(summarize_diff(compute_diff(OLD, NEW)))
    assert summary == [
        'Title changed from "Data Path" to "Data Engineering Path"',
        'Status changed from "draft" to "active"',
        "Added 1 video(s)",
        "Removed 1 video(s)",
        "Marked 1 video(s) as completed",
        "Reordered 2 video(s)",
        "Added 2 connection(s)",
        "Removed 2 connection(s)",
    ]


def test_summary_can_be_iterated_twice():
    summary = summarize_diff(compute_diff(OLD, NEW))
    first = list(summary)
    assert list(summary) == first
    assert str(summary) == "; ".join(first)


def test_uncompleting_a_node_is_not_reported_as_completed():
    old = _state(nodes=[_node("a", done=True)])
    new = _state(nodes=[_node("a", done=False)])
    diff = compute_diff(old, new)
    assert diff.has_changes
    assert list(summarize_diff(diff)) == [NO_CHANGES]


def test_to_delta_is_id_only():
    delta = to_delta(compute_diff(OLD, NEW))
    assert delta.added_nodes == ["d"]
    assert delta.removed_nodes == ["b"]
    assert delta.completed_nodes == ["a"]
    assert delta.metadata_changed == ["title", "status"]
    assert {e.key for e in delta.added_edges} == {("c", "a"), ("a", "d")}
    assert {e.key for e in delta.removed_edges} == {("a", "b"), ("b", "c")}


def test_infer_reason():
    base = _state(nodes=[_node("a"), _node("b", order=1)], title="T")

    assert infer_reason(None) == "path_created"
    assert infer_reason(compute_diff(base, base)) == "user_edit"

    added = _state(nodes=[_node("a"), _node("b", order=1), _node("c", order=2)], title="T")
    assert infer_reason(compute_diff(base, added)) == "video_added"

    removed = _state(nodes=[_node("a")], title="T")
    assert infer_reason(compute_diff(base, removed)) == "video_removed"

    completed = _state(nodes=[_node("a", done=True), _node("b", order=1)], title="T")
    assert infer_reason(compute_diff(base, completed)) == "node_completed"

    swapped = _state(nodes=[_node("a", order=1), _node("b", order=0)], title="T")
    assert infer_reason(compute_diff(base, swapped)) == "reorder"

    renamed = _state(nodes=[_node("a"), _node("b", order=1)], title="T (v2)")
    assert infer_reason(compute_diff(base, renamed)) == "user_edit"

    assert infer_reason(compute_diff(base, NEW)) == "bulk_operation"
