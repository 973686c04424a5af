"""Tests for the world, pressure and target models."""

import pytest
from pydantic import ValidationError

from worldgen_kernel.models.config import DistributionTargets, EngineConfig, Era, DomainSchema
from worldgen_kernel.models.contracts import ComponentMetadata, EntityOperatorRegistry, ParameterSpec
from worldgen_kernel.models.pressure import DeclarativePressure, Pressure
from worldgen_kernel.models.world import (
    Coordinates,
    Entity,
    EntityDraft,
    Prominence,
    Relationship,
    pending_ref,
)


class TestEntity:
    def test_tags_list_becomes_dict(self):
        """A plain tag list is accepted and stored as tag -> True."""
        entity = Entity(
            id="npc_1",
            kind="npc",
            subtype="hero",
            name="Aldric",
            tags=["brave", "frontier"],
            coordinates={"x": 1, "y": 2},
        )
        assert entity.tags == {"brave": True, "frontier": True}

    def test_coordinates_required(self):
        with pytest.raises(ValidationError):
            Entity(id="npc_1", kind="npc", subtype="hero", name="Aldric")

    def test_draft_allows_missing_name_and_coordinates(self):
        draft = EntityDraft(kind="npc", subtype="hero")
        assert draft.name is None
        assert draft.coordinates is None
        assert draft.prominence == Prominence.MARGINAL

    def test_distance(self):
        assert Coordinates(x=0, y=0).distance_to(Coordinates(x=3, y=4)) == 5.0


class TestProminence:
    def test_rank_order(self):
        ranks = [p.rank for p in Prominence]
        assert ranks == [0, 1, 2, 3, 4]
        assert Prominence.MYTHIC.rank > Prominence.RENOWNED.rank


class TestRelationship:
    def test_strength_bounds(self):
        with pytest.raises(ValidationError):
            Relationship(kind="ally", src="a", dst="b", strength=1.5)

    def test_defaults(self):
        rel = Relationship(kind="ally", src="a", dst="b")
        assert rel.strength == 0.5
        assert rel.status == "active"

    def test_pending_ref(self):
        assert pending_ref(2) == "pending:2"


class TestPressure:
    def test_value_clamped(self):
        """Runtime pressure values are clamped into [0, 100]."""
        high = Pressure(id="p", name="P", value=140, growth=lambda view: 0.0)
        low = Pressure(id="q", name="Q", value=-3, growth=lambda view: 0.0)
        assert high.value == 100.0
        assert low.value == 0.0

    def test_declarative_accepts_camel_case(self):
        pressure = DeclarativePressure.model_validate({
            "id": "conflict",
            "name": "Conflict",
            "initialValue": 20,
            "growth": {"baseGrowth": 2, "maxGrowth": 5},
            "contract": {
                "sources": [{"component": "system.war", "delta": 3}],
                "equilibrium": {"expectedRange": [10, 60], "restingPoint": 30},
            },
        })
        assert pressure.initial_value == 20
        assert pressure.growth.base_growth == 2
        assert pressure.contract.equilibrium.resting_point == 30


class TestDistributionTargets:
    def test_global_alias_and_defaults(self):
        targets = DistributionTargets.model_validate({
            "global": {
                "entityKindDistribution": {"targets": {"npc": 0.6, "faction": 0.4}},
            },
        })
        assert targets.global_.entity_kind_distribution.targets == {"npc": 0.6, "faction": 0.4}
        assert targets.global_.graph_connectivity.clustering_strength_threshold == 0.6
        assert targets.tuning.correction_strength.entity_kind == 1.0

    def test_empty_document(self):
        targets = DistributionTargets()
        assert targets.global_.entity_kind_distribution.targets == {}
        assert targets.per_era == {}


class TestContracts:
    def test_metadata_parameter_lookup(self):
        metadata = ComponentMetadata(parameters={"chance": ParameterSpec(value=0.4)})
        assert metadata.parameter("chance") == 0.4
        assert metadata.parameter("missing", 7) == 7

    def test_registry_key(self):
        assert EntityOperatorRegistry(kind="npc", subtype="hero").key == "npc:hero"
        assert EntityOperatorRegistry(kind="faction").key == "faction"


class TestEngineConfig:
    def test_get_registry_matches_subtype_exactly(self):
        config = EngineConfig(
            domain=DomainSchema(),
            eras=[Era(id="a", name="A")],
            entity_registries=[
                EntityOperatorRegistry(kind="npc", subtype="hero"),
                EntityOperatorRegistry(kind="npc"),
            ],
        )
        assert config.get_registry("npc", "hero").subtype == "hero"
        assert config.get_registry("npc").subtype is None
        assert config.get_registry("faction") is None
