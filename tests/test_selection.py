"""Tests for weighted sampling, template weighting and system modifiers."""

import random
from types import SimpleNamespace

from worldgen_kernel.models.config import DistributionTargets, Era
from worldgen_kernel.models.contracts import ComponentMetadata, ProducedKind, Produces
from worldgen_kernel.models.execution import (
    DiversityTracking,
    TargetAvoidance,
    TargetBias,
    TargetPreference,
)
from worldgen_kernel.selection.sampling import diversity_penalty, pick_random, weighted_random
from worldgen_kernel.selection.systems import SystemSelector
from worldgen_kernel.selection.targets import TargetSelector
from worldgen_kernel.selection.templates import TemplateSelector
from worldgen_kernel.world_model.store import GraphStore
from worldgen_kernel.world_model.view import GraphView


def _make_template(template_id: str, kind: str):
    return SimpleNamespace(
        id=template_id,
        metadata=ComponentMetadata(produces=Produces(entity_kinds=[ProducedKind(kind=kind)])),
    )


def _make_view(npcs: int, factions: int) -> GraphView:
    store = GraphStore(overlap_radius=0)
    for i in range(npcs):
        store.create_entity({"kind": "npc", "subtype": "hero", "name": f"n{i}", "coordinates": {"x": i, "y": 0}})
    for i in range(factions):
        store.create_entity({"kind": "faction", "subtype": "guild", "name": f"f{i}", "coordinates": {"x": i, "y": 1}})
    store.current_era = Era(id="expansion", name="Expansion")
    return GraphView(store)


def _make_targets(**tuning) -> DistributionTargets:
    return DistributionTargets.model_validate({
        "global": {"entityKindDistribution": {"targets": {"npc": 0.5, "faction": 0.5}}},
        "tuning": tuning,
    })


class TestWeightedRandom:
    def test_three_to_one_ratio(self):
        """1000 draws over weights [3, 1] land near 750/250."""
        rng = random.Random(1234)
        draws = [weighted_random(["a", "b"], [3, 1], rng) for _ in range(1000)]
        count_a = draws.count("a")
        # 99% interval for Binomial(1000, 0.75) is roughly 750 +/- 35
        assert 700 <= count_a <= 800

    def test_zero_weights_never_picked(self):
        rng = random.Random(7)
        for _ in range(200):
            assert weighted_random(["a", "b", "c"], [0, 1, 0], rng) == "b"

    def test_all_zero_returns_none(self):
        assert weighted_random(["a", "b"], [0, 0]) is None
        assert weighted_random([], []) is None

    def test_pick_random(self):
        assert pick_random([]) is None
        assert pick_random(["only"]) == "only"


class TestDiversityPenalty:
    def test_values(self):
        assert diversity_penalty(0) == 1.0
        assert diversity_penalty(1) == 0.5
        assert diversity_penalty(2) == 0.2
        assert diversity_penalty(3) == 0.1
        assert diversity_penalty(4) < 0.06

    def test_monotonic(self):
        penalties = [diversity_penalty(k) for k in range(10)]
        assert penalties == sorted(penalties, reverse=True)


class TestTemplateSelector:
    def test_disabled_by_era_weight(self):
        selector = TemplateSelector(_make_targets())
        weights = selector.calculate_weights(
            _make_view(2, 2), [_make_template("t", "npc")], {"t": 0}
        )
        assert weights["t"] == 0.0

    def test_no_correction_when_converged(self):
        selector = TemplateSelector(_make_targets(convergenceThreshold=10))
        templates = [_make_template("npcs", "npc"), _make_template("factions", "faction")]
        weights = selector.calculate_weights(_make_view(6, 0), templates, {"npcs": 1.5})
        assert weights == {"npcs": 1.5, "factions": 1.0}

    def test_short_kind_boosted_over_long_kind(self):
        selector = TemplateSelector(_make_targets(convergenceThreshold=0))
        templates = [_make_template("npcs", "npc"), _make_template("factions", "faction")]
        weights = selector.calculate_weights(_make_view(6, 0), templates, {})
        assert weights["factions"] > 1.0
        assert weights["npcs"] < 1.0

    def test_weights_stay_within_base_bounds(self):
        selector = TemplateSelector(_make_targets(
            convergenceThreshold=0, adjustmentSpeed=50, maxTemplateWeight=100,
        ))
        templates = [_make_template("npcs", "npc"), _make_template("factions", "faction")]
        weights = selector.calculate_weights(_make_view(6, 0), templates, {"npcs": 1.0, "factions": 1.0})
        assert weights["factions"] == 2.0
        assert weights["npcs"] == 0.2

    def test_select_templates_draws_count(self):
        selector = TemplateSelector(_make_targets())
        templates = [_make_template("npcs", "npc"), _make_template("factions", "faction")]
        selected = selector.select_templates(
            _make_view(1, 1), templates, {"npcs": 0}, count=5, rng=random.Random(3)
        )
        assert [t.id for t in selected] == ["factions"] * 5


class TestSystemSelector:
    def test_zero_disables(self):
        """An era modifier of exactly 0 switches the system off."""
        selector = SystemSelector()
        assert selector.modifier_for("A", {"A": 0}) == 0.0
        assert selector.modifier_for("A", {"A": 0.0, "B": 5}) == 0.0

    def test_default_and_clamp(self):
        selector = SystemSelector()
        assert selector.modifier_for("A", {}) == 1.0
        assert selector.modifier_for("A", {"A": 0.05}) == 0.2
        assert selector.modifier_for("A", {"A": 9}) == 2.0

    def test_all_modifiers(self):
        selector = SystemSelector()
        systems = [SimpleNamespace(id="A"), SimpleNamespace(id="B")]
        assert selector.calculate_system_modifiers(systems, {"A": 0, "B": 1.5}) == {"A": 0.0, "B": 1.5}


def _make_map(residents_per_colony) -> GraphStore:
    """Colonies c0, c1, ... each with the given number of resident heroes."""
    store = GraphStore(overlap_radius=0)
    for i, residents in enumerate(residents_per_colony):
        colony = store.create_entity({
            "id": f"c{i}", "kind": "location", "subtype": "colony", "name": f"C{i}",
            "coordinates": {"x": i * 20, "y": 0},
        })
        for j in range(residents):
            hero = store.create_entity({
                "kind": "npc", "subtype": "hero", "name": f"h{i}{j}",
                "coordinates": {"x": i * 20, "y": j + 1},
            })
            store.add_relationship("resident_of", hero, colony)
    return store


_CROWD_AVERSE = TargetBias(avoid=TargetAvoidance(relationship_kinds=["resident_of"]))


class TestTargetSelector:
    def test_hub_penalty_prefers_quiet_colony(self):
        view = GraphView(_make_map([2, 0]))
        selection = view.select_targets("location", 1, _CROWD_AVERSE)
        assert [e.id for e in selection.existing] == ["c1"]
        assert selection.candidates_evaluated == 2
        assert abs(selection.worst_score - 1 / 3) < 1e-9
        assert not selection.saturated

    def test_ties_keep_insertion_order(self):
        view = GraphView(_make_map([0, 0, 0]))
        assert [e.id for e in view.select_targets("location", 2).existing] == ["c0", "c1"]

    def test_preference_boost(self):
        store = _make_map([0])
        store.create_entity({
            "id": "rift", "kind": "location", "subtype": "anomaly", "name": "Rift",
            "coordinates": {"x": 90, "y": 90},
        })
        bias = TargetBias(prefer=TargetPreference(subtypes=["anomaly"], boost=3.0))
        selection = GraphView(store).select_targets("location", 1, bias)
        assert selection.existing[0].id == "rift"
        assert selection.best_score == 3.0

    def test_general_hub_penalty(self):
        view = GraphView(_make_map([6]))
        score = TargetSelector().score_candidate(
            view, view.get_entity("c0"), TargetBias(avoid=TargetAvoidance())
        )
        assert abs(score - 0.5) < 1e-9

    def test_hard_filters(self):
        store = _make_map([2, 1, 0])
        view = GraphView(store)
        capped = TargetBias(avoid=TargetAvoidance(max_total_relationships=1))
        assert [e.id for e in view.select_targets("location", 3, capped).existing] == ["c2"]

        hero = store.get_relationships(dst="c1")[0].src
        excluded = TargetBias(avoid=TargetAvoidance(exclude_related_to=hero))
        assert "c1" not in [e.id for e in view.select_targets("location", 3, excluded).existing]

    def test_diversity_tracking_rotates_picks(self):
        view = GraphView(_make_map([0, 0]))
        bias = TargetBias(diversity=DiversityTracking(tracking_id="heroes"))
        first = view.select_targets("location", 1, bias).existing[0].id
        second = view.select_targets("location", 1, bias).existing[0].id
        assert (first, second) == ("c0", "c1")

        view.target_selector.reset_diversity_tracking("heroes")
        assert view.select_targets("location", 1, bias).existing[0].id == "c0"

    def test_saturated_when_every_candidate_is_crowded(self):
        view = GraphView(_make_map([3, 3]))
        bias = TargetBias(avoid=TargetAvoidance(relationship_kinds=["resident_of"], hub_penalty_strength=3))
        selection = view.select_targets("location", 1, bias)
        assert selection.saturated
        assert selection.best_score < 0.1

    def test_no_candidates(self):
        selection = GraphView(_make_map([])).select_targets("faction", 2)
        assert selection.existing == []
        assert selection.candidates_evaluated == 0
