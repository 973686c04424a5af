"""
Frontier — a small reference domain: colonies, the heroes who rise in them and
the factions those heroes found, drifting from expansion into conflict.

Used by the test suite and as a worked example of wiring a domain:
schema, templates, systems, declarative pressures, eras, registries,
distribution targets, feedback loops and a tag registry.
"""

import logging
import random
from typing import Any, Dict, List, Optional

from worldgen_kernel.config.settings import EngineSettings, get_settings
from worldgen_kernel.diagnostics.warning_log import WarningLog
from worldgen_kernel.engine.scheduler import WorldEngine
from worldgen_kernel.models.config import (
    CultureDefinition,
    DistributionTargets,
    DomainSchema,
    EngineConfig,
    EntityKindDefinition,
    Era,
    FeedbackLoop,
    RelationshipKindDefinition,
    TagDefinition,
)
from worldgen_kernel.models.contracts import (
    ComponentContract,
    ComponentMetadata,
    ComponentPurpose,
    ContractAffects,
    CountRange,
    CreatorRef,
    DistanceRange,
    EnabledBy,
    EntityAffect,
    EntityCountRequirement,
    EntityOperatorRegistry,
    ExpectedDistribution,
    LineageRule,
    ModifierRef,
    ParameterSpec,
    PressureAffect,
    PressureThreshold,
    ProducedKind,
    ProducedRelationship,
    Produces,
    RelationshipAffect,
)
from worldgen_kernel.models.execution import (
    SystemResult,
    TargetAvoidance,
    TargetBias,
    TargetPreference,
    TemplateResult,
)
from worldgen_kernel.models.world import (
    Entity,
    EntityDraft,
    EntityModification,
    Prominence,
    RelationshipDraft,
    pending_ref,
)
from worldgen_kernel.pressure.interpreter import load_pressures
from worldgen_kernel.services.naming import SyllableNameGenerator

logger = logging.getLogger(__name__)

WORLD_SIZE = 100.0
HERO_SPREAD = 4.0
TRUCE_STABILITY = 70.0


# --- Schema ---

SCHEMA = DomainSchema(
    id="frontier",
    entity_kinds=[
        EntityKindDefinition(
            kind="npc",
            description="People of the frontier",
            subtypes=["hero", "merchant", "outlaw"],
            statuses=["alive", "dead"],
        ),
        EntityKindDefinition(
            kind="faction",
            description="Organised groups",
            subtypes=["political", "cult", "guild"],
        ),
        EntityKindDefinition(
            kind="location",
            description="Places on the map",
            subtypes=["colony", "anomaly"],
        ),
    ],
    relationship_kinds=[
        RelationshipKindDefinition(kind="member_of", category="social", src_kinds=["npc"], dst_kinds=["faction"]),
        RelationshipKindDefinition(kind="leader_of", category="social", src_kinds=["npc"], dst_kinds=["faction"]),
        RelationshipKindDefinition(kind="resident_of", category="spatial", src_kinds=["npc"], dst_kinds=["location"]),
        RelationshipKindDefinition(kind="at_war_with", category="conflict", src_kinds=["faction"], dst_kinds=["faction"]),
        RelationshipKindDefinition(kind="allied_with", category="social", src_kinds=["faction"], dst_kinds=["faction"]),
        RelationshipKindDefinition(kind="adjacent_to", category="spatial", src_kinds=["location"], dst_kinds=["location"]),
        RelationshipKindDefinition(kind="inspired_by", category="social", src_kinds=["npc"], dst_kinds=["npc"]),
    ],
    cultures=[
        CultureDefinition(id="highland", name="Highlanders"),
        CultureDefinition(id="coastal", name="Coastfolk"),
    ],
)

SYLLABLES = {
    "highland": ["dun", "brae", "mor", "kil", "glen", "ach", "ross", "tay"],
    "coastal": ["sea", "mar", "wen", "lo", "ri", "sal", "tide", "port"],
}


def _nearby(view, around: Entity, spread: float) -> Dict[str, float]:
    origin = around.coordinates
    return {
        "x": origin.x + view.rng.uniform(-spread, spread),
        "y": origin.y + view.rng.uniform(-spread, spread),
    }


# --- Growth templates ---

class ColonyFounding:
    """Founds a colony somewhere on the map, adjacent to the nearest existing one."""

    id = "colony_founding"
    name = "Colony Founding"
    metadata = ComponentMetadata(
        produces=Produces(
            entity_kinds=[ProducedKind(kind="location", subtype="colony", count=CountRange(min=1, max=1))],
            relationships=[ProducedRelationship(kind="adjacent_to", category="spatial")],
        ),
        tags=["settlement"],
    )
    contract = ComponentContract(
        purpose=ComponentPurpose.ENTITY_CREATION,
        affects=ContractAffects(
            entities=[EntityAffect(kind="location", subtype="colony", count=CountRange(min=1, max=1))],
            relationships=[RelationshipAffect(kind="adjacent_to", count=CountRange(min=0, max=1))],
        ),
    )

    def can_apply(self, view) -> bool:
        return True

    def find_targets(self, view) -> List[Optional[Entity]]:
        return [None]

    def expand(self, view, target) -> TemplateResult:
        culture = view.rng.choice([c.id for c in SCHEMA.cultures])
        x = view.rng.uniform(0, WORLD_SIZE)
        y = view.rng.uniform(0, WORLD_SIZE)
        colony = EntityDraft(
            kind="location",
            subtype="colony",
            culture=culture,
            tags=["settlement", "frontier", f"culture:{culture}"],
            coordinates={"x": x, "y": y},
        )

        relationships = []
        existing = view.find_entities(kind="location", subtype="colony")
        if existing:
            nearest = min(
                existing,
                key=lambda e: (e.coordinates.x - x) ** 2 + (e.coordinates.y - y) ** 2,
            )
            relationships.append(RelationshipDraft(
                kind="adjacent_to", src=pending_ref(0), dst=nearest.id, strength=0.3,
            ))
        return TemplateResult(
            entities=[colony],
            relationships=relationships,
            description="A new colony is founded",
        )


class HeroEmergence:
    """A hero rises in an existing colony."""

    id = "hero_emergence"
    name = "Hero Emergence"
    metadata = ComponentMetadata(
        produces=Produces(
            entity_kinds=[ProducedKind(kind="npc", subtype="hero", count=CountRange(min=1, max=1))],
            relationships=[ProducedRelationship(kind="resident_of", category="spatial")],
        ),
        tags=["heroic"],
    )
    contract = ComponentContract(
        purpose=ComponentPurpose.ENTITY_CREATION,
        enabled_by=EnabledBy(
            entity_counts=[EntityCountRequirement(kind="location", subtype="colony", min=1)],
        ),
        affects=ContractAffects(
            entities=[EntityAffect(kind="npc", subtype="hero", count=CountRange(min=1, max=1))],
            relationships=[
                RelationshipAffect(kind="resident_of", count=CountRange(min=1, max=1)),
                RelationshipAffect(kind="inspired_by", count=CountRange(min=0, max=1)),
            ],
        ),
    )

    # Crowded colonies rank lower so heroes spread across the map
    bias = TargetBias(
        prefer=TargetPreference(subtypes=["colony"]),
        avoid=TargetAvoidance(relationship_kinds=["resident_of"]),
    )

    def can_apply(self, view) -> bool:
        return view.count_entities(kind="location", subtype="colony") > 0

    def find_targets(self, view) -> List[Optional[Entity]]:
        selection = view.select_targets("location", 1, self.bias)
        return [e for e in selection.existing if e.subtype == "colony"]

    def expand(self, view, colony: Entity) -> TemplateResult:
        hero = EntityDraft(
            kind="npc",
            subtype="hero",
            status="alive",
            prominence=Prominence.RECOGNIZED,
            culture=colony.culture,
            tags=["heroic", "frontier", f"culture:{colony.culture}"],
            coordinates=_nearby(view, colony, HERO_SPREAD),
            temporal={"start_tick": view.tick},
        )
        return TemplateResult(
            entities=[hero],
            relationships=[
                RelationshipDraft(kind="resident_of", src=pending_ref(0), dst=colony.id, strength=0.7),
            ],
            description=f"A hero emerges in {colony.name}",
        )


class FactionFounding:
    """A hero founds a faction and leads it; needs some conflict in the air."""

    id = "faction_founding"
    name = "Faction Founding"
    metadata = ComponentMetadata(
        produces=Produces(
            entity_kinds=[ProducedKind(kind="faction", count=CountRange(min=1, max=1))],
            relationships=[
                ProducedRelationship(kind="leader_of", category="social"),
                ProducedRelationship(kind="member_of", category="social"),
            ],
        ),
        tags=["organised"],
        parameters={
            "cultChance": ParameterSpec(value=0.2, min=0, max=1, description="Chance the faction is a cult"),
        },
    )
    contract = ComponentContract(
        purpose=ComponentPurpose.ENTITY_CREATION,
        enabled_by=EnabledBy(
            pressures=[PressureThreshold(name="conflict", threshold=10)],
            entity_counts=[EntityCountRequirement(kind="npc", subtype="hero", min=1)],
        ),
        affects=ContractAffects(
            entities=[EntityAffect(kind="faction", count=CountRange(min=1, max=1))],
            relationships=[
                RelationshipAffect(kind="leader_of", count=CountRange(min=1, max=1)),
                RelationshipAffect(kind="member_of", count=CountRange(min=1, max=1)),
            ],
            pressures=[PressureAffect(name="conflict", delta=1)],
        ),
    )

    def can_apply(self, view) -> bool:
        return bool(self.find_targets(view))

    def find_targets(self, view) -> List[Optional[Entity]]:
        return [
            hero for hero in view.find_entities(kind="npc", subtype="hero", status="alive")
            if not view.get_connected_entities(hero.id, kind="leader_of", direction="out")
        ]

    def expand(self, view, hero: Entity) -> TemplateResult:
        if view.rng.random() < self.metadata.parameter("cultChance", 0.2):
            subtype = "cult"
        else:
            subtype = view.rng.choice(["political", "guild"])
        faction = EntityDraft(
            kind="faction",
            subtype=subtype,
            culture=hero.culture,
            tags=["organised", f"faction:{subtype}", f"culture:{hero.culture}"],
            coordinates=_nearby(view, hero, HERO_SPREAD),
        )
        return TemplateResult(
            entities=[faction],
            relationships=[
                RelationshipDraft(kind="leader_of", src=hero.id, dst=pending_ref(0), strength=0.9),
                RelationshipDraft(kind="member_of", src=hero.id, dst=pending_ref(0), strength=0.8),
            ],
            description=f"{hero.name} founds a {subtype} faction",
        )


# --- Simulation systems ---

class AllianceFormation:
    """Factions at war with a common enemy may ally."""

    id = "alliance_formation"
    name = "Alliance Formation"
    metadata = ComponentMetadata(
        produces=Produces(relationships=[ProducedRelationship(kind="allied_with", category="social")]),
        parameters={
            "allianceBaseChance": ParameterSpec(value=0.5, min=0, max=1),
            "stabilityGain": ParameterSpec(value=5.0),
        },
    )
    contract = ComponentContract(
        purpose=ComponentPurpose.RELATIONSHIP_CREATION,
        affects=ContractAffects(
            relationships=[RelationshipAffect(kind="allied_with", count=CountRange(min=0, max=10))],
            pressures=[PressureAffect(name="stability", delta=5)],
        ),
    )

    def __init__(self, alliance_base_chance: Optional[float] = None):
        if alliance_base_chance is not None:
            self.metadata = self.metadata.model_copy(deep=True)
            self.metadata.parameters["allianceBaseChance"].value = alliance_base_chance

    def apply(self, view, modifier: float) -> SystemResult:
        chance = self.metadata.parameter("allianceBaseChance", 0.5) * modifier
        enemies_of: Dict[str, set] = {}
        for war in view.get_relationships(kind="at_war_with"):
            enemies_of.setdefault(war.src, set()).add(war.dst)
            enemies_of.setdefault(war.dst, set()).add(war.src)

        factions = sorted(enemies_of)
        proposed = set()
        relationships = []
        for i, a in enumerate(factions):
            for b in factions[i + 1:]:
                if b in enemies_of[a] or not enemies_of[a] & enemies_of[b]:
                    continue
                if view.has_relationship("allied_with", a, b, bidirectional=True):
                    continue
                if (a, b) in proposed or view.rng.random() >= chance:
                    continue
                proposed.add((a, b))
                relationships.append(RelationshipDraft(
                    kind="allied_with", src=a, dst=b, strength=0.8, category="social",
                ))

        pressure_changes = {}
        if relationships:
            pressure_changes["stability"] = self.metadata.parameter("stabilityGain", 5.0)
        return SystemResult(
            relationships_added=relationships,
            pressure_changes=pressure_changes,
            description=f"{len(relationships)} alliances formed",
        )


class ConflictEscalation:
    """
    Rival factions go to war, more readily while conflict pressure is high.
    A faction that went to war recently waits out the relationship cooldown.
    """

    id = "conflict_escalation"
    name = "Conflict Escalation"
    metadata = ComponentMetadata(
        produces=Produces(relationships=[ProducedRelationship(kind="at_war_with", category="conflict")]),
        parameters={
            "warChance": ParameterSpec(value=0.15, min=0, max=1),
            "maxWarsPerTick": ParameterSpec(value=2),
        },
    )
    contract = ComponentContract(
        purpose=ComponentPurpose.RELATIONSHIP_CREATION,
        enabled_by=EnabledBy(
            entity_counts=[EntityCountRequirement(kind="faction", min=2)],
        ),
        affects=ContractAffects(
            relationships=[RelationshipAffect(kind="at_war_with", count=CountRange(min=0, max=2))],
            pressures=[
                PressureAffect(name="conflict", delta=2),
                PressureAffect(name="stability", delta=-3),
            ],
        ),
    )

    def apply(self, view, modifier: float) -> SystemResult:
        factions = view.find_entities(kind="faction")
        if len(factions) < 2:
            return SystemResult(description="No rivals")

        conflict = view.get_pressure("conflict")
        chance = self.metadata.parameter("warChance", 0.15) * modifier * (0.5 + conflict / 100)
        limit = self.metadata.parameter("maxWarsPerTick", 2)

        wars = []
        for i, a in enumerate(factions):
            for b in factions[i + 1:]:
                if len(wars) >= limit:
                    break
                if a.culture == b.culture and a.subtype == b.subtype:
                    continue
                if not (
                    view.can_form_relationship(a.id, "at_war_with")
                    and view.can_form_relationship(b.id, "at_war_with")
                ):
                    continue
                if view.has_relationship("at_war_with", a.id, b.id, bidirectional=True):
                    continue
                if view.has_relationship("allied_with", a.id, b.id, bidirectional=True):
                    continue
                if view.rng.random() < chance:
                    wars.append(RelationshipDraft(
                        kind="at_war_with", src=a.id, dst=b.id, strength=0.6, category="conflict",
                    ))

        if not wars:
            return SystemResult(description="The frontier stays quiet")
        return SystemResult(
            relationships_added=wars,
            pressure_changes={"conflict": 2.0 * len(wars), "stability": -3.0 * len(wars)},
            description=f"{len(wars)} wars declared",
        )


class ProminenceEvolution:
    """Well-connected entities grow in renown; isolated ones fade."""

    id = "prominence_evolution"
    name = "Prominence Evolution"
    metadata = ComponentMetadata(
        parameters={
            "riseChance": ParameterSpec(value=0.3, min=0, max=1),
            "fadeChance": ParameterSpec(value=0.1, min=0, max=1),
        },
    )
    contract = ComponentContract(purpose=ComponentPurpose.STATE_MODIFICATION)

    _LADDER = list(Prominence)

    def apply(self, view, modifier: float) -> SystemResult:
        rise = self.metadata.parameter("riseChance", 0.3) * modifier
        fade = self.metadata.parameter("fadeChance", 0.1) * modifier

        modifications = []
        for entity in view.get_entities():
            rank = entity.prominence.rank
            connections = len(view.get_connected_entities(entity.id))
            if rank + 1 < len(self._LADDER) and connections >= 2 * (rank + 1):
                if view.rng.random() < rise:
                    modifications.append(EntityModification(
                        id=entity.id, changes={"prominence": self._LADDER[rank + 1]},
                    ))
            elif connections == 0 and rank > 1 and view.rng.random() < fade:
                modifications.append(EntityModification(
                    id=entity.id, changes={"prominence": self._LADDER[rank - 1]},
                ))

        return SystemResult(
            entities_modified=modifications,
            description=f"{len(modifications)} entities changed prominence",
        )


# --- Pressures ---

PRESSURES: Dict[str, Any] = {
    "pressures": [
        {
            "id": "conflict",
            "name": "Conflict",
            "initialValue": 20,
            "decay": 2,
            "growth": {
                "baseGrowth": 1,
                "positiveFeedback": [
                    {"type": "relationship_count", "relationshipKinds": ["at_war_with"], "coefficient": 0.5, "cap": 10},
                    {"type": "entity_count", "kind": "faction", "coefficient": 0.3, "cap": 5},
                ],
                "negativeFeedback": [
                    {"type": "relationship_count", "relationshipKinds": ["allied_with"], "coefficient": 0.3, "cap": 5},
                ],
                "maxGrowth": 15,
            },
            "contract": {
                "sources": [
                    {"component": "template.faction_founding", "delta": 40},
                    {"component": "system.conflict_escalation", "delta": 35},
                ],
                "sinks": [
                    {"component": "system.alliance_formation", "delta": -5},
                    {"component": "time.decay", "formula": "decay"},
                ],
                "affects": [
                    {"component": "template.faction_founding", "effect": "enabler", "threshold": 10},
                ],
                "equilibrium": {"expectedRange": [10, 70], "restingPoint": 35},
            },
        },
        {
            "id": "stability",
            "name": "Stability",
            "initialValue": 50,
            "decay": 1,
            "growth": {
                "baseGrowth": 0.5,
                "positiveFeedback": [
                    {
                        "type": "ratio",
                        "numerator": {"type": "relationship_count", "relationshipKinds": ["resident_of"]},
                        "denominator": {"type": "entity_count", "kind": "npc"},
                        "fallbackValue": 0,
                        "coefficient": 2,
                        "cap": 2,
                    },
                ],
                "negativeFeedback": [
                    {"type": "relationship_count", "relationshipKinds": ["at_war_with"], "coefficient": 0.5, "cap": 8},
                ],
            },
            "contract": {
                "sources": [{"component": "system.alliance_formation", "delta": 45}],
                "sinks": [{"component": "system.conflict_escalation", "delta": -5}],
                "affects": [{"component": "template.colony_founding", "effect": "enabler"}],
                "equilibrium": {"expectedRange": [20, 80], "restingPoint": 40},
            },
        },
    ]
}


# --- Eras ---

def truce_rule(store) -> None:
    """In a stable world, the oldest war ends."""
    if store.pressures.get("stability", 0.0) < TRUCE_STABILITY:
        return
    wars = store.get_relationships(kind="at_war_with")
    if wars:
        oldest = min(wars, key=lambda r: r.created_at)
        store.archive_relationship(oldest.kind, oldest.src, oldest.dst)
        logger.info("Truce between %s and %s", oldest.src, oldest.dst)


ERAS = [
    Era(
        id="expansion",
        name="Age of Expansion",
        description="Settlers spread across the frontier",
        template_weights={"colony_founding": 2.0, "hero_emergence": 1.5, "faction_founding": 0.5},
        system_modifiers={"conflict_escalation": 0, "alliance_formation": 0.5},
        pressure_modifiers={"conflict": 0.5},
    ),
    Era(
        id="conflict",
        name="Age of Strife",
        description="Factions turn on one another",
        template_weights={"colony_founding": 0.5, "hero_emergence": 1.0, "faction_founding": 2.0},
        system_modifiers={"conflict_escalation": 1.5, "alliance_formation": 1.0},
        pressure_modifiers={"conflict": 1.5},
        special_rules=truce_rule,
    ),
]


# --- Registries ---

def most_prominent_hero(view, entity: Entity) -> Optional[Entity]:
    heroes = [
        h for h in view.find_entities(kind="npc", subtype="hero")
        if h.id != entity.id
    ]
    if not heroes:
        return None
    return max(heroes, key=lambda h: (h.prominence.rank, -h.created_at))


REGISTRIES = [
    EntityOperatorRegistry(
        kind="location",
        subtype="colony",
        creators=[CreatorRef(template_id="colony_founding", target_count=2)],
        expected_distribution=ExpectedDistribution(target_count=12),
    ),
    EntityOperatorRegistry(
        kind="npc",
        subtype="hero",
        creators=[CreatorRef(template_id="hero_emergence")],
        modifiers=[ModifierRef(system_id="prominence_evolution")],
        lineage=LineageRule(
            relationship_kind="inspired_by",
            find_ancestor=most_prominent_hero,
            distance_range=DistanceRange(min=0.1, max=0.5),
        ),
        expected_distribution=ExpectedDistribution(
            target_count=20,
            prominence_distribution={
                "marginal": 0.3, "recognized": 0.4, "renowned": 0.2, "mythic": 0.1,
            },
        ),
    ),
    EntityOperatorRegistry(
        kind="faction",
        creators=[CreatorRef(template_id="faction_founding")],
        modifiers=[
            ModifierRef(system_id="alliance_formation", operation="relate"),
            ModifierRef(system_id="conflict_escalation", operation="relate"),
        ],
        expected_distribution=ExpectedDistribution(target_count=8),
    ),
]


# --- Targets, loops, tags ---

DISTRIBUTION_TARGETS: Dict[str, Any] = {
    "version": "1.0",
    "global": {
        "entityKindDistribution": {
            "targets": {"npc": 0.5, "faction": 0.2, "location": 0.3},
            "tolerance": 0.1,
        },
        "prominenceDistribution": {
            "targets": {
                "forgotten": 0.1, "marginal": 0.4, "recognized": 0.3,
                "renowned": 0.15, "mythic": 0.05,
            },
        },
        "relationshipDistribution": {"maxSingleTypeRatio": 0.4, "minTypesPresent": 3},
        "graphConnectivity": {
            "targetClusters": {"min": 1, "max": 8, "preferred": 3},
            "densityTargets": {"intraCluster": 0.4, "interCluster": 0.05},
            "isolatedNodeRatio": {"max": 0.2},
        },
    },
    "perEra": {
        "conflict": {"entityKindDistribution": {"npc": 0.45, "faction": 0.3, "location": 0.25}},
    },
    "tuning": {"convergenceThreshold": 0.1},
    "relationshipCategories": {
        "social": ["member_of", "leader_of", "allied_with", "inspired_by"],
        "conflict": ["at_war_with"],
        "spatial": ["resident_of", "adjacent_to"],
    },
    "entities": {
        "npc": {"hero": {"target": 20}},
        "location": {"colony": {"target": 12}},
    },
}

FEEDBACK_LOOPS = [
    FeedbackLoop(
        id="war_breeds_conflict",
        type="positive",
        source="at_war_with.count",
        mechanism=["conflict pressure growth counts wars"],
        target="conflict.value",
        strength=0.5,
    ),
    FeedbackLoop(
        id="alliances_calm",
        type="negative",
        source="allied_with.count",
        mechanism=["conflict pressure shrinks with alliances"],
        target="conflict.value",
        strength=0.3,
        delay=1,
    ),
]

TAG_REGISTRY = [
    TagDefinition(tag="settlement", category="role"),
    TagDefinition(tag="frontier", category="region"),
    TagDefinition(tag="heroic", category="role", conflicts_with=["villainous"]),
    TagDefinition(tag="villainous", category="role", conflicts_with=["heroic"]),
    TagDefinition(tag="organised", category="role"),
    TagDefinition(tag="culture:*", category="culture"),
    TagDefinition(tag="faction:*", category="role", max_usage=40),
]


# --- Assembly ---

def build_templates() -> List[Any]:
    return [ColonyFounding(), HeroEmergence(), FactionFounding()]


def build_systems(alliance_base_chance: Optional[float] = None) -> List[Any]:
    return [
        AllianceFormation(alliance_base_chance),
        ConflictEscalation(),
        ProminenceEvolution(),
    ]


def build_config(settings: Optional[EngineSettings] = None, **overrides: Any) -> EngineConfig:
    """Assemble the frontier EngineConfig; scalars come from settings unless overridden."""
    return EngineConfig.from_settings(
        settings or get_settings(),
        domain=SCHEMA,
        eras=ERAS,
        templates=build_templates(),
        systems=build_systems(),
        pressures=load_pressures(PRESSURES),
        entity_registries=REGISTRIES,
        distribution_targets=DistributionTargets.model_validate(DISTRIBUTION_TARGETS),
        feedback_loops=FEEDBACK_LOOPS,
        tag_registry=TAG_REGISTRY,
        **overrides,
    )


def initial_state() -> List[Dict[str, Any]]:
    """Seed world: one colony and its founder."""
    return [
        {
            "id": "loc_firstlanding",
            "kind": "location",
            "subtype": "colony",
            "name": "First Landing",
            "culture": "coastal",
            "prominence": "renowned",
            "tags": ["settlement", "frontier", "culture:coastal"],
            "coordinates": {"x": 50, "y": 50},
        },
        {
            "id": "npc_founder",
            "kind": "npc",
            "subtype": "hero",
            "name": "Mara Tidewell",
            "status": "alive",
            "culture": "coastal",
            "prominence": "recognized",
            "tags": ["heroic", "frontier", "culture:coastal"],
            "coordinates": {"x": 51, "y": 49},
            "links": [{"kind": "resident_of", "src": "npc_founder", "dst": "First Landing", "strength": 0.9}],
        },
    ]


def build_engine(
    settings: Optional[EngineSettings] = None,
    emitter=None,
    enrichment_service=None,
    image_service=None,
    **overrides: Any,
) -> WorldEngine:
    settings = settings or get_settings()
    config = build_config(settings, **overrides)
    return WorldEngine(
        config,
        initial_state=initial_state(),
        naming_service=SyllableNameGenerator(SYLLABLES, rng=random.Random(config.seed)),
        enrichment_service=enrichment_service,
        image_service=image_service,
        emitter=emitter,
        warning_log=WarningLog(settings.warning_log_path),
    )
