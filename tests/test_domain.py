"""Tests for the frontier reference domain: its templates, systems and wiring."""

import random

from worldgen_kernel.config.settings import EngineSettings
from worldgen_kernel.domain.frontier import (
    AllianceFormation,
    ColonyFounding,
    ConflictEscalation,
    FactionFounding,
    HeroEmergence,
    ProminenceEvolution,
    build_config,
    build_systems,
    build_templates,
    most_prominent_hero,
    truce_rule,
)
from worldgen_kernel.execution.fabric import ExecutionFabric
from worldgen_kernel.governance.validator import FrameworkValidator
from worldgen_kernel.models import GrowthTemplate, SimulationSystem
from worldgen_kernel.selection.systems import SystemSelector
from worldgen_kernel.world_model.store import GraphStore
from worldgen_kernel.world_model.view import GraphView


def _make_store(seed: int = 0) -> GraphStore:
    return GraphStore(overlap_radius=0, rng=random.Random(seed))


def _add(store: GraphStore, entity_id: str, kind: str, subtype: str, **extra) -> str:
    payload = {
        "id": entity_id, "kind": kind, "subtype": subtype, "name": entity_id,
        "coordinates": {"x": len(store.get_entities()) * 3, "y": 0},
    }
    payload.update(extra)
    return store.create_entity(payload)


def _make_war_store(seed: int) -> GraphStore:
    store = _make_store(seed)
    _add(store, "a", "faction", "guild", culture="highland")
    _add(store, "b", "faction", "guild", culture="coastal")
    _add(store, "e", "faction", "cult", culture="highland")
    store.add_relationship("at_war_with", "a", "e")
    store.add_relationship("at_war_with", "b", "e")
    return store


class TestAllianceFormation:
    def test_common_enemy_alliance_over_many_runs(self):
        """Chance 0.5 over 200 applications: allied in a majority, never duplicated."""
        allied_runs = 0
        for seed in range(200):
            store = _make_war_store(seed)
            system = AllianceFormation(alliance_base_chance=0.5)
            fabric = ExecutionFabric(store)
            for _ in range(3):
                result = system.apply(fabric.view, 1.0)
                fabric.apply_system_result(system.id, 1.0, result)

            alliances = store.get_relationships(kind="allied_with")
            pair = [r for r in alliances if {r.src, r.dst} == {"a", "b"}]
            assert len(pair) <= 1
            if store.has_relationship("allied_with", "a", "b") or store.has_relationship("allied_with", "b", "a"):
                allied_runs += 1
        assert allied_runs > 100

    def test_sequential_applications_on_one_store(self):
        store = _make_war_store(42)
        system = AllianceFormation(alliance_base_chance=0.5)
        fabric = ExecutionFabric(store)
        for _ in range(200):
            fabric.apply_system_result(system.id, 1.0, system.apply(fabric.view, 1.0))
        assert len(store.get_relationships(kind="allied_with")) == 1

    def test_enemies_never_ally(self):
        store = _make_war_store(1)
        result = AllianceFormation(alliance_base_chance=1.0).apply(GraphView(store), 1.0)
        pairs = [{r.src, r.dst} for r in result.relationships_added]
        assert pairs == [{"a", "b"}]
        assert result.pressure_changes == {"stability": 5.0}

    def test_zero_chance(self):
        result = AllianceFormation(alliance_base_chance=0.0).apply(GraphView(_make_war_store(1)), 1.0)
        assert result.relationships_added == []
        assert result.pressure_changes == {}

    def test_override_does_not_leak_to_class(self):
        AllianceFormation(alliance_base_chance=0.9)
        assert AllianceFormation().metadata.parameter("allianceBaseChance") == 0.5


class TestConflictEscalation:
    def test_disabled_in_expansion(self):
        config = build_config(EngineSettings(_env_file=None))
        expansion = config.eras[0]
        assert SystemSelector().modifier_for("conflict_escalation", expansion.system_modifiers) == 0.0

    def test_war_limit_and_pressures(self):
        store = _make_store(3)
        for i, (subtype, culture) in enumerate([
            ("guild", "highland"), ("cult", "coastal"), ("political", "highland"), ("cult", "highland"),
        ]):
            _add(store, f"f{i}", "faction", subtype, culture=culture)
        store.pressures["conflict"] = 100.0
        system = ConflictEscalation()
        system.metadata = system.metadata.model_copy(deep=True)
        system.metadata.parameters["warChance"].value = 1.0
        result = system.apply(GraphView(store), 2.0)
        assert len(result.relationships_added) == 2
        assert result.pressure_changes == {"conflict": 4.0, "stability": -6.0}
        assert result.description == "2 wars declared"

    def test_recent_war_puts_factions_on_cooldown(self):
        store = _make_store(3)
        _add(store, "x", "faction", "guild", culture="highland")
        _add(store, "y", "faction", "cult", culture="coastal")
        _add(store, "z", "faction", "political", culture="coastal")
        store.pressures["conflict"] = 100.0
        store.tick = 5
        store.add_relationship("at_war_with", "x", "z")
        system = ConflictEscalation()
        system.metadata = system.metadata.model_copy(deep=True)
        system.metadata.parameters["warChance"].value = 1.0

        assert system.apply(GraphView(store), 1.0).relationships_added == []

        store.tick = 15
        wars = system.apply(GraphView(store), 1.0).relationships_added
        assert {(w.src, w.dst) for w in wars} == {("x", "y"), ("y", "z")}

    def test_same_culture_and_subtype_never_fight(self):
        store = _make_store(3)
        _add(store, "x", "faction", "guild", culture="highland")
        _add(store, "y", "faction", "guild", culture="highland")
        store.pressures["conflict"] = 100.0
        result = ConflictEscalation().apply(GraphView(store), 2.0)
        assert result.relationships_added == []
        assert result.description == "The frontier stays quiet"


class TestTemplates:
    def test_colony_founding_links_nearest_colony(self):
        store = _make_store(5)
        _add(store, "home", "location", "colony", culture="coastal")
        result = ColonyFounding().expand(GraphView(store), None)
        assert result.entities[0].subtype == "colony"
        assert result.relationships[0].dst == "home"

    def test_first_colony_has_no_neighbour(self):
        result = ColonyFounding().expand(GraphView(_make_store(5)), None)
        assert result.relationships == []

    def test_hero_emergence(self):
        store = _make_store(5)
        _add(store, "home", "location", "colony", culture="coastal")
        view = GraphView(store)
        template = HeroEmergence()
        assert template.can_apply(view)
        colony = template.find_targets(view)[0]
        result = template.expand(view, colony)
        hero = result.entities[0]
        assert hero.culture == "coastal"
        assert "culture:coastal" in hero.tags
        assert result.relationships[0].dst == "home"

    def test_hero_emergence_prefers_quiet_colony(self):
        store = _make_store(5)
        _add(store, "crowded", "location", "colony", culture="coastal")
        _add(store, "quiet", "location", "colony", culture="highland")
        for i in range(2):
            _add(store, f"r{i}", "npc", "hero", status="alive")
            store.add_relationship("resident_of", f"r{i}", "crowded")
        assert [c.id for c in HeroEmergence().find_targets(GraphView(store))] == ["quiet"]

    def test_faction_founding_targets_unled_heroes(self):
        store = _make_store(5)
        _add(store, "h1", "npc", "hero", status="alive", culture="highland")
        _add(store, "h2", "npc", "hero", status="alive", culture="highland")
        _add(store, "f1", "faction", "guild")
        store.add_relationship("leader_of", "h1", "f1")
        view = GraphView(store)
        template = FactionFounding()
        assert [h.id for h in template.find_targets(view)] == ["h2"]
        result = template.expand(view, view.get_entity("h2"))
        assert {r.kind for r in result.relationships} == {"leader_of", "member_of"}


class TestProminenceEvolution:
    def test_connected_entities_rise(self):
        store = _make_store(9)
        _add(store, "hub", "npc", "hero", prominence="marginal")
        for i in range(4):
            _add(store, f"s{i}", "location", "colony")
            store.add_relationship("resident_of", "hub", f"s{i}")
        system = ProminenceEvolution()
        system.metadata = system.metadata.model_copy(deep=True)
        system.metadata.parameters["riseChance"].value = 1.0
        result = system.apply(GraphView(store), 1.0)
        changes = {m.id: m.changes["prominence"].value for m in result.entities_modified}
        assert changes["hub"] == "recognized"


class TestWiring:
    def test_frontier_config_is_valid(self):
        result = FrameworkValidator(build_config(EngineSettings(_env_file=None))).validate()
        assert result.valid, result.errors

    def test_most_prominent_hero(self):
        store = _make_store()
        _add(store, "h1", "npc", "hero", prominence="recognized")
        _add(store, "h2", "npc", "hero", prominence="mythic")
        _add(store, "h3", "npc", "hero", prominence="marginal")
        view = GraphView(store)
        assert most_prominent_hero(view, view.get_entity("h3")).id == "h2"
        assert most_prominent_hero(view, view.get_entity("h2")).id == "h1"

    def test_truce_rule_ends_oldest_war(self):
        store = _make_war_store(0)
        store.pressures["stability"] = 75.0
        truce_rule(store)
        remaining = store.get_relationships(kind="at_war_with")
        assert len(remaining) == 1
        assert store.get_relationships(kind="at_war_with", include_historical=True)

    def test_truce_rule_needs_stability(self):
        store = _make_war_store(0)
        store.pressures["stability"] = 30.0
        truce_rule(store)
        assert len(store.get_relationships(kind="at_war_with")) == 2

    def test_components_match_protocols(self):
        assert all(isinstance(t, GrowthTemplate) for t in build_templates())
        assert all(isinstance(s, SimulationSystem) for s in build_systems())
        assert not isinstance(AllianceFormation(), GrowthTemplate)
