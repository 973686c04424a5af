"""Tests for the declarative pressure interpreter."""

import json

import pytest

from worldgen_kernel.models.pressure import RatioFactor
from worldgen_kernel.pressure.interpreter import (
    PressureConfigError,
    evaluate_factor,
    load_pressures,
)
from worldgen_kernel.world_model.store import GraphStore
from worldgen_kernel.world_model.view import GraphView


def _make_view() -> GraphView:
    store = GraphStore(overlap_radius=0)
    for i, (kind, subtype, status, culture) in enumerate([
        ("npc", "hero", "alive", "north"),
        ("npc", "hero", "dead", "south"),
        ("npc", "outlaw", "alive", "north"),
        ("faction", "guild", "active", "south"),
    ]):
        store.create_entity({
            "id": f"e{i}", "kind": kind, "subtype": subtype, "status": status,
            "culture": culture, "name": f"E{i}", "coordinates": {"x": i, "y": 0},
            "tags": ["brave"] if i < 2 else [],
        })
    store.add_relationship("member_of", "e0", "e3")
    store.add_relationship("member_of", "e2", "e3")
    store.add_relationship("rivals", "e0", "e1")
    return GraphView(store)


def _document(**growth) -> dict:
    return {"pressures": [{
        "id": "conflict",
        "name": "Conflict",
        "initialValue": 25,
        "decay": 1.5,
        "growth": growth,
        "contract": {
            "sources": [{"component": "system.war", "delta": 2}],
            "sinks": [{"component": "time.decay"}],
        },
    }]}


class TestFactors:
    def test_entity_count(self):
        view = _make_view()
        pressure = load_pressures(_document(positiveFeedback=[
            {"type": "entity_count", "kind": "npc", "coefficient": 2},
        ]))[0]
        assert pressure.growth(view) == 6

    def test_cap(self):
        view = _make_view()
        pressure = load_pressures(_document(positiveFeedback=[
            {"type": "entity_count", "kind": "npc", "coefficient": 2, "cap": 4},
        ]))[0]
        assert pressure.growth(view) == 4

    def test_relationship_and_tag_counts(self):
        view = _make_view()
        pressure = load_pressures(_document(positiveFeedback=[
            {"type": "relationship_count", "relationshipKinds": ["member_of"]},
            {"type": "tag_count", "tags": ["brave"]},
        ]))[0]
        assert pressure.growth(view) == 4

    def test_ratio_with_fallback(self):
        view = _make_view()
        factor = RatioFactor.model_validate({
            "type": "ratio",
            "numerator": {"type": "entity_count", "kind": "npc"},
            "denominator": {"type": "entity_count", "kind": "dragon"},
            "fallbackValue": 0.25,
        })
        assert evaluate_factor(factor, view) == 0.25

        factor = RatioFactor.model_validate({
            "type": "ratio",
            "numerator": {"type": "relationship_count", "relationshipKinds": ["member_of"]},
            "denominator": {"type": "total_entities"},
        })
        assert evaluate_factor(factor, view) == 0.5

    def test_status_ratio(self):
        view = _make_view()
        pressure = load_pressures(_document(positiveFeedback=[
            {"type": "status_ratio", "kind": "npc", "subtype": "hero", "coefficient": 10},
        ]))[0]
        assert pressure.growth(view) == 5

    def test_cross_culture_ratio(self):
        view = _make_view()
        pressure = load_pressures(_document(positiveFeedback=[
            {"type": "cross_culture_ratio", "relationshipKinds": ["member_of", "rivals"], "coefficient": 3},
        ]))[0]
        # all three relationships run from north to south
        assert pressure.growth(view) == 3


class TestGrowthFunction:
    def test_negative_feedback_and_floor(self):
        view = _make_view()
        pressure = load_pressures(_document(
            baseGrowth=1,
            negativeFeedback=[{"type": "entity_count", "kind": "npc"}],
        ))[0]
        assert pressure.growth(view) == 0.0

    def test_max_growth(self):
        view = _make_view()
        pressure = load_pressures(_document(
            baseGrowth=50,
            maxGrowth=8,
        ))[0]
        assert pressure.growth(view) == 8

    def test_runtime_fields(self):
        pressure = load_pressures(_document())[0]
        assert pressure.id == "conflict"
        assert pressure.value == 25
        assert pressure.decay == 1.5
        assert [s.component for s in pressure.contract.sources] == ["system.war"]


class TestLoading:
    def test_load_from_file(self, tmp_path):
        path = tmp_path / "pressures.json"
        path.write_text(json.dumps(_document(baseGrowth=2)))
        pressures = load_pressures(path)
        assert len(pressures) == 1
        assert pressures[0].growth(_make_view()) == 2

    def test_unknown_factor_type(self):
        with pytest.raises(PressureConfigError) as exc_info:
            load_pressures(_document(positiveFeedback=[{"type": "moon_phase"}]))
        assert exc_info.value.details

    def test_missing_pressures_key(self):
        with pytest.raises(PressureConfigError):
            load_pressures({"pressure": []})
