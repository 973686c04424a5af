"""Engine configuration — domain schema, eras, targets and the assembled EngineConfig."""

from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from worldgen_kernel.models.contracts import EntityOperatorRegistry
from worldgen_kernel.models.pressure import Pressure


class EntityKindDefinition(BaseModel):
    kind: str
    description: str = ""
    subtypes: List[str] = []
    statuses: List[str] = ["active"]


class RelationshipKindDefinition(BaseModel):
    kind: str
    description: str = ""
    category: Optional[str] = None
    src_kinds: List[str] = []
    dst_kinds: List[str] = []


class CultureDefinition(BaseModel):
    id: str
    name: str


class DomainSchema(BaseModel):
    """The vocabulary a world is grown from."""

    id: str = "domain"
    entity_kinds: List[EntityKindDefinition] = []
    relationship_kinds: List[RelationshipKindDefinition] = []
    cultures: List[CultureDefinition] = []

    def kind_names(self) -> List[str]:
        return [k.kind for k in self.entity_kinds]

    def get_kind(self, kind: str) -> Optional[EntityKindDefinition]:
        return next((k for k in self.entity_kinds if k.kind == kind), None)


class Era(BaseModel):
    """A named phase of world history with its own weights and modifiers."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    name: str
    description: str = ""
    template_weights: Dict[str, float] = {}
    system_modifiers: Dict[str, float] = {}
    pressure_modifiers: Dict[str, float] = {}
    special_rules: Optional[Callable[[Any], None]] = None


# --- Distribution targets (JSON-facing, camelCase accepted) ---


class _Targets(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TotalEntitiesTarget(_Targets):
    target: int
    tolerance: float = 0.2


class RatioTargets(_Targets):
    targets: Dict[str, float] = {}
    tolerance: float = 0.1


class RelationshipDiversity(_Targets):
    max_single_type_ratio: float = 0.3
    min_types_present: int = 1
    min_type_ratio: float = 0.0


class ClusterTargets(_Targets):
    min: int = 1
    max: int = 10
    preferred: int = 5


class DensityTargets(_Targets):
    intra_cluster: float = 0.5
    inter_cluster: float = 0.1


class IsolatedNodeTarget(_Targets):
    max: float = 0.1


class GraphConnectivityTargets(_Targets):
    target_clusters: ClusterTargets = ClusterTargets()
    density_targets: DensityTargets = DensityTargets()
    isolated_node_ratio: IsolatedNodeTarget = IsolatedNodeTarget()
    clustering_strength_threshold: float = 0.6


class GlobalTargets(_Targets):
    total_entities: Optional[TotalEntitiesTarget] = None
    entity_kind_distribution: RatioTargets = RatioTargets()
    prominence_distribution: RatioTargets = RatioTargets()
    relationship_distribution: RelationshipDiversity = RelationshipDiversity()
    graph_connectivity: GraphConnectivityTargets = GraphConnectivityTargets()


class EraTargetOverrides(_Targets):
    entity_kind_distribution: Optional[Dict[str, float]] = None
    prominence_distribution: Optional[Dict[str, float]] = None
    relationship_distribution: Optional[RelationshipDiversity] = None
    graph_connectivity: Optional[GraphConnectivityTargets] = None


class CorrectionStrength(_Targets):
    entity_kind: float = 1.0
    prominence: float = 1.0
    relationship: float = 1.0
    connectivity: float = 1.0


class Tuning(_Targets):
    adjustment_speed: float = 0.3
    deviation_sensitivity: float = 1.0
    min_template_weight: float = 0.05
    max_template_weight: float = 5.0
    convergence_threshold: float = 0.1
    measurement_interval: int = 1
    correction_strength: CorrectionStrength = CorrectionStrength()


class SubtypeTarget(_Targets):
    target: int


class DistributionTargets(_Targets):
    """Statistical targets the world is steered toward."""

    version: str = "1.0"
    global_: GlobalTargets = Field(default_factory=GlobalTargets, alias="global")
    per_era: Dict[str, EraTargetOverrides] = {}
    tuning: Tuning = Tuning()
    relationship_categories: Dict[str, List[str]] = {}
    entities: Dict[str, Dict[str, SubtypeTarget]] = {}


# --- Feedback loops and tags ---


class FeedbackLoop(BaseModel):
    """A declared causal loop between two metrics, checked by correlation."""

    id: str
    type: Literal["negative", "positive"]
    source: str
    mechanism: List[str] = []
    target: str
    strength: float = 1.0
    delay: int = 0
    active: bool = True
    last_validated: Optional[int] = None


class TagDefinition(BaseModel):
    tag: str
    category: str = "general"
    description: str = ""
    max_usage: Optional[int] = None
    conflicts_with: List[str] = []


# --- Assembled engine configuration ---


class EngineConfig(BaseModel):
    """Everything a WorldEngine needs; scalars default from EngineSettings."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    domain: DomainSchema
    eras: List[Era]
    templates: List[Any] = []
    systems: List[Any] = []
    pressures: List[Pressure] = []
    entity_registries: List[EntityOperatorRegistry] = []
    distribution_targets: Optional[DistributionTargets] = None
    feedback_loops: List[FeedbackLoop] = []
    tag_registry: List[TagDefinition] = []

    max_ticks: int = 500
    scale_factor: float = 1.0
    target_entities_per_kind: int = 30
    simulation_ticks_per_growth: int = 10
    epochs_per_era: int = 2
    relationship_budget: Optional[int] = None
    overlap_radius: float = 5.0
    saturation_multiplier: float = 1.0
    enrichment_batch_size: int = 15
    max_entity_enrichments: Optional[int] = None
    mortal_kinds: List[str] = ["npc"]
    seed: Optional[int] = None

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "EngineConfig":
        """Build a config whose scalar tuning comes from ``EngineSettings``."""
        scalars = {
            "max_ticks": settings.max_ticks,
            "scale_factor": settings.scale_factor,
            "target_entities_per_kind": settings.target_entities_per_kind,
            "simulation_ticks_per_growth": settings.simulation_ticks_per_growth,
            "epochs_per_era": settings.epochs_per_era,
            "relationship_budget": settings.relationship_budget,
            "overlap_radius": settings.overlap_radius,
            "saturation_multiplier": settings.saturation_multiplier,
            "enrichment_batch_size": settings.enrichment_batch_size,
            "max_entity_enrichments": settings.max_entity_enrichments,
            "seed": settings.seed,
        }
        scalars.update(kwargs)
        return cls(**scalars)

    def get_registry(
        self, kind: str, subtype: Optional[str] = None
    ) -> Optional[EntityOperatorRegistry]:
        for registry in self.entity_registries:
            if registry.kind == kind and registry.subtype == subtype:
                return registry
        return None
