"""Tests for the WorldEngine epoch loop: validation, growth, simulation, termination and export."""

import asyncio
import copy
import math
import random
from types import SimpleNamespace

import pytest

from worldgen_kernel.config.settings import EngineSettings
from worldgen_kernel.domain.frontier import (
    PRESSURES,
    SYLLABLES,
    build_config,
    build_engine,
    initial_state,
)
from worldgen_kernel.engine.emitter import RecordingEmitter
from worldgen_kernel.engine.scheduler import FrameworkValidationError, WorldEngine
from worldgen_kernel.models.config import Era
from worldgen_kernel.models.execution import SystemResult
from worldgen_kernel.models.pressure import Pressure
from worldgen_kernel.models.world import EntityModification, RelationshipDraft
from worldgen_kernel.pressure.interpreter import load_pressures
from worldgen_kernel.services.naming import SyllableNameGenerator
from worldgen_kernel.world_model.store import UNNAMED


def _settings() -> EngineSettings:
    return EngineSettings(_env_file=None)


def _make_engine(emitter=None, **overrides) -> WorldEngine:
    values = dict(seed=11, max_ticks=100, epochs_per_era=1, simulation_ticks_per_growth=5)
    values.update(overrides)
    return build_engine(_settings(), emitter=emitter, **values)


def _make_custom_engine(config, naming_service=None, **kwargs) -> WorldEngine:
    return WorldEngine(
        config,
        initial_state=kwargs.pop("initial_state", initial_state()),
        naming_service=naming_service or SyllableNameGenerator(SYLLABLES, rng=random.Random(3)),
        **kwargs,
    )


class _AsyncNamer:
    def __init__(self):
        self.calls = 0

    async def generate(self, draft):
        self.calls += 1
        await asyncio.sleep(0)
        return f"{draft.subtype.title()} {self.calls}"


class _BrokenNamer:
    def generate(self, draft):
        raise RuntimeError("name service down")


class _Ennobler:
    """Asks for a prominence level that does not exist."""

    id = "ennobler"
    name = "Ennobler"

    def apply(self, view, modifier):
        return SystemResult(entities_modified=[
            EntityModification(id="npc_founder", changes={"prominence": "legendary"}),
        ])


class _Matchmaker:
    id = "matchmaker"
    name = "Matchmaker"

    def apply(self, view, modifier):
        return SystemResult(
            relationships_added=[
                RelationshipDraft(kind=kind, src="npc_founder", dst="loc_firstlanding")
                for kind in ("patron_of", "rival_of", "sworn_to")
            ],
            description="Bonds are sworn",
        )


def _barren_template():
    return SimpleNamespace(
        id="barren",
        name="Barren",
        can_apply=lambda view: True,
        find_targets=lambda view: [],
        expand=lambda view, target: None,
    )


def _only_era(**weights) -> Era:
    return Era(id="only", name="Only", template_weights=weights)


class TestConstruction:
    def test_invalid_config_refuses_to_build(self):
        document = copy.deepcopy(PRESSURES)
        document["pressures"][0]["contract"]["sinks"] = []
        config = build_config(_settings(), seed=1).model_copy(
            update={"pressures": load_pressures(document)}
        )
        emitter = RecordingEmitter()
        with pytest.raises(FrameworkValidationError) as exc_info:
            _make_custom_engine(config, emitter=emitter)
        assert "Pressure 'conflict' has no sinks and will saturate at 100!" in exc_info.value.errors
        assert emitter.of_type("validation")[0].status == "failed"

    def test_seed_state_loaded(self):
        engine = _make_engine()
        assert engine.validation.valid
        assert engine.store.get_entity_count() == 2
        assert engine.store.has_relationship("resident_of", "npc_founder", "loc_firstlanding")
        first = engine.store.history[0]
        assert first.description == "World initialized"
        assert first.tick == 0
        assert set(first.entities_created) == {"loc_firstlanding", "npc_founder"}

    def test_unresolved_seed_link_is_a_warning(self):
        seed = initial_state()
        seed[1]["links"].append({"kind": "resident_of", "src": "npc_founder", "dst": "Atlantis"})
        engine = _make_custom_engine(build_config(_settings(), seed=1), initial_state=seed)
        assert engine.store.get_relationship_count() == 1
        warnings = engine.warning_log.query_by_category("seed")
        assert len(warnings) == 1
        assert "Atlantis" in warnings[0].message

    def test_initial_pressures(self):
        engine = _make_engine()
        assert engine.store.pressures == {"conflict": 20.0, "stability": 50.0}


class TestGrowthTarget:
    @pytest.mark.parametrize("scale", [0.5, 1.0, 3.0])
    def test_bounds(self, scale):
        engine = _make_engine(scale_factor=scale)
        low, high = math.ceil(3 * scale), math.ceil(25 * scale)
        for _ in range(50):
            target = engine.calculate_growth_target()
            assert low <= target <= high

    def test_floor_when_populations_met(self):
        engine = _make_engine(target_entities_per_kind=0)
        assert engine.calculate_growth_target() == 3


class TestTermination:
    def test_runs_all_eras(self):
        emitter = RecordingEmitter()
        engine = _make_engine(emitter)
        state = engine.run_sync()

        assert engine.finished
        assert engine.stop_reason == "eras_complete"
        assert engine.current_epoch == engine.total_epochs == 2
        assert engine.store.tick == 10
        assert state["metadata"]["stop_reason"] == "eras_complete"

        complete = emitter.of_type("complete")
        assert len(complete) == 1
        assert complete[0].epochs == 2
        assert complete[0].entities == engine.store.get_entity_count()
        assert [e.era_id for e in emitter.of_type("epoch_start")] == ["expansion", "conflict"]

    def test_tick_limit_wins(self):
        engine = _make_engine(max_ticks=3)
        engine.run_sync()
        assert engine.stop_reason == "max_ticks"
        assert engine.store.tick == 3
        assert engine.current_epoch == 1

    def test_excessive_growth_reported(self):
        engine = _make_engine(target_entities_per_kind=0)
        engine.run_sync()
        assert engine.stop_reason == "eras_complete_excessive_growth"

    def test_step_by_step(self):
        engine = _make_engine()
        assert asyncio.run(engine.step()) is True
        assert engine.current_era.id == "conflict"
        assert asyncio.run(engine.step()) is False
        assert asyncio.run(engine.step()) is False
        assert engine.current_epoch == 2
        state = asyncio.run(engine.finish())
        assert state["metadata"]["stop_reason"] == "eras_complete"

    def test_finish_is_idempotent(self):
        emitter = RecordingEmitter()
        engine = _make_engine(emitter)
        engine.run_sync()
        asyncio.run(engine.finish())
        assert len(emitter.of_type("complete")) == 1


class TestSimulation:
    def test_pressures_stay_bounded(self):
        engine = _make_engine(max_ticks=200, epochs_per_era=3, simulation_ticks_per_growth=10)
        engine.run_sync()
        for epoch in engine.statistics.epochs:
            for value in epoch.pressures.values():
                assert 0.0 <= value <= 100.0
        for value in engine.store.pressures.values():
            assert 0.0 <= value <= 100.0

    def test_disabled_system_is_skipped(self):
        engine = _make_engine()
        asyncio.run(engine.step())
        health = engine.export_statistics().system_health["conflict_escalation"]
        assert health.executions == 0
        assert health.skipped == 5
        assert engine.store.get_relationships(kind="at_war_with") == []

    def test_world_grows(self):
        engine = _make_engine()
        engine.run_sync()
        stats = engine.export_statistics()
        assert stats.final_entities > 2
        assert sum(stats.template_usage.values()) > 0
        assert stats.epochs_completed == 2
        assert any(h.type == "growth" for h in engine.store.history)

    def test_failing_template_logged_and_skipped(self):
        def explode(view, target):
            raise RuntimeError("template exploded")

        broken = SimpleNamespace(
            id="broken",
            name="Broken",
            can_apply=lambda view: True,
            find_targets=lambda view: [None],
            expand=explode,
        )
        config = build_config(_settings(), seed=2, epochs_per_era=1, simulation_ticks_per_growth=1)
        config = config.model_copy(update={
            "templates": list(config.templates) + [broken],
            "eras": [_only_era(colony_founding=0, hero_emergence=0, faction_founding=0)],
        })
        engine = _make_custom_engine(config)
        engine.run_sync()

        assert engine.stop_reason == "eras_complete"
        assert engine.export_statistics().template_failures["broken"] > 0
        warnings = engine.warning_log.query_by_source("broken")
        assert warnings
        assert "template exploded" in warnings[0].message

    def test_async_naming_resolved_before_export(self):
        namer = _AsyncNamer()
        engine = _make_custom_engine(
            build_config(_settings(), seed=5, max_ticks=100, epochs_per_era=1, simulation_ticks_per_growth=2),
            naming_service=namer,
        )
        state = engine.run_sync()
        assert namer.calls > 0
        names = [e["name"] for e in state["hard_state"]]
        assert UNNAMED not in names
        assert engine.tasks.pending == 0

    def test_naming_failure_keeps_placeholder(self):
        engine = _make_custom_engine(
            build_config(_settings(), seed=4, max_ticks=100, epochs_per_era=1, simulation_ticks_per_growth=2),
            naming_service=_BrokenNamer(),
        )
        state = engine.run_sync()

        assert engine.stop_reason == "eras_complete"
        assert any(e["name"] == UNNAMED for e in state["hard_state"])
        warnings = engine.warning_log.query_by_category("naming")
        assert warnings
        assert "name service down" in warnings[0].message

    def test_rejected_system_change_is_logged_and_skipped(self):
        config = build_config(_settings(), seed=6, epochs_per_era=1, simulation_ticks_per_growth=2)
        config = config.model_copy(update={"systems": list(config.systems) + [_Ennobler()]})
        engine = _make_custom_engine(config)
        engine.run_sync()

        assert engine.stop_reason == "eras_complete"
        assert engine.store.get_entity("npc_founder").prominence.value != "legendary"
        warnings = engine.warning_log.query_by_source("ennobler")
        assert warnings
        assert warnings[0].message == "ennobler: change to npc_founder was rejected"

    def test_relationship_budget_per_tick(self):
        config = build_config(_settings(), seed=3, relationship_budget=1)
        config = config.model_copy(update={
            "systems": list(config.systems) + [_Matchmaker()],
            "eras": [_only_era()],
        })
        engine = _make_custom_engine(config)
        asyncio.run(engine._run_simulation_tick(engine.current_era))

        # the seed resident_of link plus the single bond the budget allows
        assert engine.store.get_relationship_count() == 2
        assert engine.store.has_relationship("patron_of", "npc_founder", "loc_firstlanding")
        budget = engine.warning_log.query_by_category("budget")
        assert [w.message for w in budget] == ["BUDGET: matchmaker dropped 2 relationships at tick 0"]


class TestGrowthPhase:
    def test_run_cap_makes_template_ineligible(self):
        engine = _make_engine()
        templates = {t.id: t for t in engine.config.templates}
        assert engine.max_runs_per_template == 20
        engine.template_run_counts["colony_founding"] = engine.max_runs_per_template
        assert not engine.is_template_eligible(templates["colony_founding"])
        assert engine.is_template_eligible(templates["hero_emergence"])

    def test_stops_early_when_nothing_is_eligible(self):
        emitter = RecordingEmitter()
        engine = _make_engine(emitter)
        for template_id in engine.template_run_counts:
            engine.template_run_counts[template_id] = engine.max_runs_per_template
        asyncio.run(engine._run_growth_phase(engine.current_era, 5))

        event = emitter.of_type("growth_phase")[-1]
        assert event.attempts == 1
        assert event.entities_created == 0
        assert engine.store.get_entity_count() == 2

    @pytest.mark.parametrize("scale, attempts", [(1.0, 40), (0.5, 20)])
    def test_attempt_limit(self, scale, attempts):
        emitter = RecordingEmitter()
        config = build_config(_settings(), seed=2, scale_factor=scale)
        config = config.model_copy(update={
            "templates": list(config.templates) + [_barren_template()],
            "eras": [_only_era(colony_founding=0, hero_emergence=0, faction_founding=0)],
        })
        engine = _make_custom_engine(config, emitter=emitter)
        asyncio.run(engine._run_growth_phase(engine.current_era, 4))

        event = emitter.of_type("growth_phase")[-1]
        assert event.attempts == attempts
        assert event.entities_created == 0


def _engine_with_pressure(value: float, growth: float, decay: float) -> WorldEngine:
    """Engine whose only pressure grows by a fixed amount, with distribution nudges off."""
    engine = _make_engine()
    engine.distribution_tracker = None
    pressure = Pressure(id="conflict", name="Conflict", value=value, decay=decay, growth=lambda view: growth)
    engine.config = engine.config.model_copy(update={"pressures": [pressure]})
    engine.store.pressures = {"conflict": value}
    return engine


class TestPressureUpdate:
    def test_growth_scaled_by_headroom(self):
        engine = _engine_with_pressure(50.0, growth=10.0, decay=1.0)
        engine.update_pressures(_only_era())
        assert engine.store.pressures["conflict"] == pytest.approx(56.5)

    def test_scaling_floor_near_ceiling(self):
        engine = _engine_with_pressure(90.0, growth=10.0, decay=0.0)
        engine.update_pressures(_only_era())
        # 1 - 0.9^2 = 0.19
        assert engine.store.pressures["conflict"] == pytest.approx(91.9)

        engine = _engine_with_pressure(100.0, growth=10.0, decay=1.0)
        engine.update_pressures(_only_era())
        assert engine.store.pressures["conflict"] == pytest.approx(100.0)

    def test_change_smoothed_to_fifteen(self):
        engine = _engine_with_pressure(0.0, growth=100.0, decay=0.0)
        engine.update_pressures(_only_era())
        assert engine.store.pressures["conflict"] == 15.0

        engine = _engine_with_pressure(50.0, growth=0.0, decay=40.0)
        engine.update_pressures(_only_era())
        assert engine.store.pressures["conflict"] == 35.0

    def test_era_modifier(self):
        engine = _engine_with_pressure(50.0, growth=10.0, decay=1.0)
        engine.update_pressures(Era(id="war", name="War", pressure_modifiers={"conflict": 2.0}))
        assert engine.store.pressures["conflict"] == pytest.approx(63.0)

    def test_distribution_nudge_for_missing_factions(self):
        # Seed world: one colony and one hero, no factions against a 20% faction target
        engine = _make_engine()
        assert engine._distribution_nudges() == {"conflict": pytest.approx(4.0)}

        conflict = next(p for p in engine.config.pressures if p.id == "conflict")
        still = Pressure(id="conflict", name="Conflict", value=20, decay=0,
                         growth=lambda view: 0.0, contract=conflict.contract)
        engine.config = engine.config.model_copy(update={"pressures": [still]})
        engine.update_pressures(engine.current_era)
        assert engine.store.pressures["conflict"] == pytest.approx(24.0)



class TestPruning:
    def test_isolated_old_entities_forgotten(self):
        engine = _make_engine()
        engine.store.create_entity({
            "id": "hermit", "kind": "npc", "subtype": "outlaw", "name": "Hermit",
            "status": "alive", "coordinates": {"x": 5, "y": 5},
        })
        engine.store.tick = 60
        engine.prune_and_consolidate()
        assert engine.store.get_entity("hermit").prominence.value == "forgotten"
        # the founder lives in First Landing but has only one connection
        assert engine.store.get_entity("npc_founder").prominence.value == "forgotten"

    def test_mortality_sets_end_tick(self):
        engine = _make_engine()
        engine.store.tick = 500
        for _ in range(40):
            engine.prune_and_consolidate()
        founder = engine.store.get_entity("npc_founder")
        assert founder.status == "dead"
        assert founder.temporal.end_tick == 500
        # locations are not mortal
        assert engine.store.get_entity("loc_firstlanding").status != "dead"


class TestExport:
    def test_export_state_shape(self):
        engine = _make_engine()
        state = engine.run_sync()
        assert set(state) == {
            "metadata", "hard_state", "relationships", "historical_relationships",
            "pressures", "history", "lore_records", "distribution_metrics",
        }
        assert state["metadata"]["entity_count"] == len(state["hard_state"])
        assert state["metadata"]["history_events"] == len(state["history"])
        assert set(state["distribution_metrics"]) == {"state", "deviation", "targets"}
        assert state["distribution_metrics"]["deviation"]["overall"] >= 0

    def test_status(self):
        engine = _make_engine()
        status = engine.status()
        assert status["epoch"] == 0
        assert status["finished"] is False
        assert status["stop_reason"] is None
        assert status["era"] == "expansion"
