"""Measurement models — distribution state, deviation, population metrics, run statistics."""

from typing import Dict, List, Optional

from pydantic import BaseModel


class GraphMetrics(BaseModel):
    clusters: int = 0
    avg_cluster_size: float = 0.0
    intra_cluster_density: float = 0.0
    inter_cluster_density: float = 0.0
    isolated_nodes: int = 0
    isolated_node_ratio: float = 0.0


class DistributionState(BaseModel):
    """Snapshot of the world's observed ratios and graph shape."""

    tick: int
    total_entities: int
    entity_kind_counts: Dict[str, int] = {}
    entity_kind_ratios: Dict[str, float] = {}
    prominence_ratios: Dict[str, float] = {}
    prominence_by_kind: Dict[str, Dict[str, float]] = {}
    relationship_type_counts: Dict[str, int] = {}
    relationship_type_ratios: Dict[str, float] = {}
    relationship_category_ratios: Dict[str, float] = {}
    graph_metrics: GraphMetrics = GraphMetrics()


class CategoryDeviation(BaseModel):
    score: float = 0.0
    deviations: Dict[str, float] = {}


class RelationshipDeviation(BaseModel):
    score: float = 0.0
    max_type_ratio: float = 0.0
    types_present: int = 0


class ConnectivityDeviation(BaseModel):
    score: float = 0.0
    cluster_count_deviation: float = 0.0
    density_deviation: float = 0.0
    isolated_node_deviation: float = 0.0


class DeviationScore(BaseModel):
    """How far a distribution state is from its targets; every score is >= 0."""

    overall: float = 0.0
    entity_kind: CategoryDeviation = CategoryDeviation()
    prominence: CategoryDeviation = CategoryDeviation()
    relationship: RelationshipDeviation = RelationshipDeviation()
    connectivity: ConnectivityDeviation = ConnectivityDeviation()


class MetricSeries(BaseModel):
    """A tracked count with its target, relative deviation and recent trend."""

    key: str
    count: float = 0.0
    target: float = 0.0
    deviation: float = 0.0
    trend: float = 0.0
    history: List[float] = []


class PopulationMetrics(BaseModel):
    tick: int = 0
    entities: Dict[str, MetricSeries] = {}
    relationships: Dict[str, MetricSeries] = {}
    pressures: Dict[str, MetricSeries] = {}


class PopulationSummary(BaseModel):
    total_entities: int = 0
    total_relationships: int = 0
    avg_entity_deviation: float = 0.0
    avg_pressure_deviation: float = 0.0
    entities_over_target: int = 0
    entities_under_target: int = 0
    pressures_out_of_range: int = 0


class WeightAdjustment(BaseModel):
    template_id: str
    base_weight: float
    adjusted_weight: float
    adjustment_factor: float
    reason: str


class LoopValidation(BaseModel):
    loop_id: str
    valid: bool
    warmup: bool = False
    correlation: Optional[float] = None
    expected_correlation: float = 0.0
    reason: str = ""
    recommendations: List[str] = []


class EpochStats(BaseModel):
    epoch: int
    tick: int
    era: str
    entities: int
    relationships: int
    entities_by_kind: Dict[str, int] = {}
    pressures: Dict[str, float] = {}
    entities_created: int = 0
    relationships_created: int = 0
    growth_target: int = 0
    deviation: Optional[float] = None


class SystemHealth(BaseModel):
    system_id: str
    executions: int = 0
    failures: int = 0
    relationships_created: int = 0
    entities_modified: int = 0
    skipped: int = 0


class WarningCounts(BaseModel):
    total: int = 0
    by_category: Dict[str, int] = {}
    by_system: Dict[str, int] = {}


class SimulationStatistics(BaseModel):
    """Everything the statistics collector recorded over a run."""

    epochs: List[EpochStats] = []
    template_usage: Dict[str, int] = {}
    template_failures: Dict[str, int] = {}
    system_health: Dict[str, SystemHealth] = {}
    warnings: WarningCounts = WarningCounts()
    final_entities: int = 0
    final_relationships: int = 0
    final_entities_by_kind: Dict[str, int] = {}
    final_pressures: Dict[str, float] = {}
    final_deviation: Optional[float] = None
    ticks: int = 0
    epochs_completed: int = 0
