"""
Distribution Tracker — measures the world against its statistical targets.

Behavioral Contract:
- measure_state reads only through a GraphView and never mutates the world
- An empty graph measures as all-zero ratios and metrics
- Every deviation score is >= 0, and 0 for an exact match of kind/prominence ratios
- Era overrides are merged into a copy of the global targets; globals are never mutated
"""

from typing import Dict, List, Optional, Set

from worldgen_kernel.models.config import (
    DistributionTargets,
    GlobalTargets,
    GraphConnectivityTargets,
    RelationshipDiversity,
)
from worldgen_kernel.models.statistics import (
    CategoryDeviation,
    ConnectivityDeviation,
    DeviationScore,
    DistributionState,
    GraphMetrics,
    RelationshipDeviation,
)
from worldgen_kernel.models.world import Entity, Prominence, Relationship

PROMINENCE_LEVELS = [p.value for p in Prominence]


def _ratios(counts: Dict[str, int], total: int) -> Dict[str, float]:
    if total <= 0:
        return {k: 0.0 for k in counts}
    return {k: v / total for k, v in counts.items()}


def _mean_absolute_deviation(
    targets: Dict[str, float], actual: Dict[str, float]
) -> CategoryDeviation:
    if not targets:
        return CategoryDeviation()
    deviations = {
        key: abs(actual.get(key, 0.0) - target) for key, target in targets.items()
    }
    return CategoryDeviation(
        score=sum(deviations.values()) / len(deviations),
        deviations=deviations,
    )


class DistributionTracker:
    """Computes distribution state and deviation from targets."""

    def __init__(self, targets: DistributionTargets):
        self.targets = targets

    # --- Measurement ---

    def measure_state(self, view) -> DistributionState:
        entities = view.get_entities()
        relationships = view.get_relationships()
        total = len(entities)

        kind_counts: Dict[str, int] = {}
        prominence_counts: Dict[str, int] = {level: 0 for level in PROMINENCE_LEVELS}
        prominence_by_kind_counts: Dict[str, Dict[str, int]] = {}
        for entity in entities:
            kind_counts[entity.kind] = kind_counts.get(entity.kind, 0) + 1
            level = entity.prominence.value
            prominence_counts[level] = prominence_counts.get(level, 0) + 1
            per_kind = prominence_by_kind_counts.setdefault(
                entity.kind, {lvl: 0 for lvl in PROMINENCE_LEVELS}
            )
            per_kind[level] += 1

        type_counts: Dict[str, int] = {}
        for rel in relationships:
            type_counts[rel.kind] = type_counts.get(rel.kind, 0) + 1

        return DistributionState(
            tick=view.tick,
            total_entities=total,
            entity_kind_counts=kind_counts,
            entity_kind_ratios=_ratios(kind_counts, total),
            prominence_ratios=_ratios(prominence_counts, total),
            prominence_by_kind={
                kind: _ratios(counts, kind_counts[kind])
                for kind, counts in prominence_by_kind_counts.items()
            },
            relationship_type_counts=type_counts,
            relationship_type_ratios=_ratios(type_counts, len(relationships)),
            relationship_category_ratios=self._category_ratios(relationships),
            graph_metrics=self.calculate_graph_metrics(entities, relationships),
        )

    def _category_ratios(self, relationships: List[Relationship]) -> Dict[str, float]:
        categories = self.targets.relationship_categories
        counts = {category: 0 for category in categories}
        for rel in relationships:
            for category, kinds in categories.items():
                if rel.kind in kinds:
                    counts[category] += 1
        return _ratios(counts, len(relationships))

    def calculate_graph_metrics(
        self, entities: List[Entity], relationships: List[Relationship]
    ) -> GraphMetrics:
        if not entities:
            return GraphMetrics()

        threshold = self.targets.global_.graph_connectivity.clustering_strength_threshold
        adjacency: Dict[str, Set[str]] = {e.id: set() for e in entities}
        for rel in relationships:
            if rel.strength < threshold:
                continue
            if rel.src in adjacency and rel.dst in adjacency:
                adjacency[rel.src].add(rel.dst)
                adjacency[rel.dst].add(rel.src)

        clusters = self._find_clusters(adjacency)
        membership = {
            node: index for index, cluster in enumerate(clusters) for node in cluster
        }

        intra_edges = [0] * len(clusters)
        inter_edges = 0
        for rel in relationships:
            a = membership.get(rel.src)
            b = membership.get(rel.dst)
            if a is None or b is None:
                continue
            if a == b:
                intra_edges[a] += 1
            else:
                inter_edges += 1

        densities = []
        for index, cluster in enumerate(clusters):
            size = len(cluster)
            if size > 1:
                possible = size * (size - 1) / 2
                densities.append(min(1.0, intra_edges[index] / possible))
        intra_density = sum(densities) / len(densities) if densities else 0.0

        inter_possible = 0
        for i in range(len(clusters)):
            for j in range(i + 1, len(clusters)):
                inter_possible += len(clusters[i]) * len(clusters[j])
        inter_density = inter_edges / inter_possible if inter_possible else 0.0

        isolated = sum(1 for neighbours in adjacency.values() if not neighbours)

        return GraphMetrics(
            clusters=len(clusters),
            avg_cluster_size=len(entities) / len(clusters),
            intra_cluster_density=intra_density,
            inter_cluster_density=min(1.0, inter_density),
            isolated_nodes=isolated,
            isolated_node_ratio=isolated / len(entities),
        )

    def _find_clusters(self, adjacency: Dict[str, Set[str]]) -> List[List[str]]:
        """Connected components over the strength-filtered adjacency."""
        visited: Set[str] = set()
        clusters = []
        for start in adjacency:
            if start in visited:
                continue
            cluster = []
            stack = [start]
            visited.add(start)
            while stack:
                node = stack.pop()
                cluster.append(node)
                for neighbour in adjacency[node]:
                    if neighbour not in visited:
                        visited.add(neighbour)
                        stack.append(neighbour)
            clusters.append(cluster)
        return clusters

    # --- Deviation ---

    def get_targets_for_era(self, era_id: Optional[str] = None) -> GlobalTargets:
        """Global targets with the era's overrides merged in (a copy)."""
        merged = self.targets.global_.model_copy(deep=True)
        overrides = self.targets.per_era.get(era_id) if era_id else None
        if overrides is None:
            return merged

        if overrides.entity_kind_distribution is not None:
            merged.entity_kind_distribution.targets = {
                **merged.entity_kind_distribution.targets,
                **overrides.entity_kind_distribution,
            }
        if overrides.prominence_distribution is not None:
            merged.prominence_distribution.targets = {
                **merged.prominence_distribution.targets,
                **overrides.prominence_distribution,
            }
        if overrides.relationship_distribution is not None:
            merged.relationship_distribution = overrides.relationship_distribution
        if overrides.graph_connectivity is not None:
            merged.graph_connectivity = overrides.graph_connectivity
        return merged

    def calculate_deviation(
        self, state: DistributionState, era_id: Optional[str] = None
    ) -> DeviationScore:
        targets = self.get_targets_for_era(era_id)

        entity_kind = _mean_absolute_deviation(
            targets.entity_kind_distribution.targets, state.entity_kind_ratios
        )
        prominence = _mean_absolute_deviation(
            targets.prominence_distribution.targets, state.prominence_ratios
        )
        relationship = self._relationship_deviation(
            state, targets.relationship_distribution
        )
        connectivity = self._connectivity_deviation(
            state.graph_metrics, targets.graph_connectivity
        )

        strength = self.targets.tuning.correction_strength
        weighted = (
            entity_kind.score * strength.entity_kind
            + prominence.score * strength.prominence
            + relationship.score * strength.relationship
            + connectivity.score * strength.connectivity
        )
        total_weight = (
            strength.entity_kind
            + strength.prominence
            + strength.relationship
            + strength.connectivity
        )

        return DeviationScore(
            overall=weighted / total_weight if total_weight > 0 else 0.0,
            entity_kind=entity_kind,
            prominence=prominence,
            relationship=relationship,
            connectivity=connectivity,
        )

    def _relationship_deviation(
        self, state: DistributionState, targets: RelationshipDiversity
    ) -> RelationshipDeviation:
        ratios = state.relationship_type_ratios
        max_ratio = max(ratios.values()) if ratios else 0.0
        types_present = sum(1 for ratio in ratios.values() if ratio > 0)

        score = max(0.0, max_ratio - targets.max_single_type_ratio)
        score += 0.05 * max(0, targets.min_types_present - types_present)
        return RelationshipDeviation(
            score=score,
            max_type_ratio=max_ratio,
            types_present=types_present,
        )

    def _connectivity_deviation(
        self, metrics: GraphMetrics, targets: GraphConnectivityTargets
    ) -> ConnectivityDeviation:
        preferred = max(1, targets.target_clusters.preferred)
        cluster_dev = abs(metrics.clusters - preferred) / preferred
        density_dev = abs(
            metrics.intra_cluster_density - targets.density_targets.intra_cluster
        ) + abs(
            metrics.inter_cluster_density - targets.density_targets.inter_cluster
        )
        isolated_dev = max(
            0.0, metrics.isolated_node_ratio - targets.isolated_node_ratio.max
        )
        return ConnectivityDeviation(
            score=(cluster_dev + density_dev + isolated_dev) / 3,
            cluster_count_deviation=cluster_dev,
            density_deviation=density_dev,
            isolated_node_deviation=isolated_dev,
        )

    def get_under_represented_kinds(
        self, state: DistributionState, era_id: Optional[str] = None, margin: float = 0.0
    ) -> Dict[str, float]:
        """Kinds whose ratio falls more than ``margin`` below target, with the shortfall."""
        targets = self.get_targets_for_era(era_id).entity_kind_distribution.targets
        shortfalls = {}
        for kind, target in targets.items():
            shortfall = target - state.entity_kind_ratios.get(kind, 0.0)
            if shortfall > margin:
                shortfalls[kind] = shortfall
        return shortfalls
