"""
Population Tracker — per kind:subtype counts, relationship counts and pressures
against their targets, with a short history for trend detection.
"""

from typing import Dict, List, Optional

from worldgen_kernel.models.config import DistributionTargets, DomainSchema
from worldgen_kernel.models.pressure import Pressure
from worldgen_kernel.models.statistics import (
    MetricSeries,
    PopulationMetrics,
    PopulationSummary,
)

HISTORY_WINDOW = 10
DEFAULT_PRESSURE_TARGET = 50.0


def _relative_deviation(count: float, target: float) -> float:
    if target <= 0:
        return 0.0
    return (count - target) / target


def _record(series: MetricSeries, count: float) -> None:
    series.count = count
    series.deviation = _relative_deviation(count, series.target)
    series.history.append(count)
    if len(series.history) > HISTORY_WINDOW:
        series.history.pop(0)
    if len(series.history) >= 2:
        deltas = [b - a for a, b in zip(series.history, series.history[1:])]
        series.trend = sum(deltas) / len(deltas)
    else:
        series.trend = 0.0


class PopulationTracker:
    """Tracks observed populations against target counts."""

    def __init__(
        self,
        domain: DomainSchema,
        targets: Optional[DistributionTargets] = None,
        pressures: Optional[List[Pressure]] = None,
    ):
        self._metrics = PopulationMetrics()

        entity_targets = targets.entities if targets else {}
        for kind_def in domain.entity_kinds:
            for subtype in kind_def.subtypes:
                key = f"{kind_def.kind}:{subtype}"
                target = entity_targets.get(kind_def.kind, {}).get(subtype)
                self._metrics.entities[key] = MetricSeries(
                    key=key, target=float(target.target) if target else 0.0
                )

        for pressure in pressures or []:
            target = DEFAULT_PRESSURE_TARGET
            if pressure.contract and pressure.contract.equilibrium:
                target = pressure.contract.equilibrium.resting_point
            self._metrics.pressures[pressure.id] = MetricSeries(
                key=pressure.id, target=target
            )

    def update(self, view) -> PopulationMetrics:
        """Re-count everything from the current graph."""
        self._metrics.tick = view.tick

        counts: Dict[str, int] = {}
        for entity in view.get_entities():
            key = f"{entity.kind}:{entity.subtype}"
            counts[key] = counts.get(key, 0) + 1
        for key in counts:
            if key not in self._metrics.entities:
                self._metrics.entities[key] = MetricSeries(key=key)
        for key, series in self._metrics.entities.items():
            _record(series, counts.get(key, 0))

        rel_counts: Dict[str, int] = {}
        for rel in view.get_relationships():
            rel_counts[rel.kind] = rel_counts.get(rel.kind, 0) + 1
        for kind in rel_counts:
            if kind not in self._metrics.relationships:
                self._metrics.relationships[kind] = MetricSeries(key=kind)
        for kind, series in self._metrics.relationships.items():
            _record(series, rel_counts.get(kind, 0))

        for pressure_id, value in view.pressures.items():
            series = self._metrics.pressures.setdefault(
                pressure_id,
                MetricSeries(key=pressure_id, target=DEFAULT_PRESSURE_TARGET),
            )
            _record(series, value)

        return self._metrics

    def get_metrics(self) -> PopulationMetrics:
        return self._metrics

    def get_outliers(self, threshold: float = 0.3) -> Dict[str, List[str]]:
        """Keys whose relative deviation exceeds ``threshold``; untargeted keys are ignored."""
        over = []
        under = []
        for key, series in self._metrics.entities.items():
            if series.target <= 0:
                continue
            if series.deviation > threshold:
                over.append(key)
            elif series.deviation < -threshold:
                under.append(key)
        pressures = [
            key for key, series in self._metrics.pressures.items()
            if series.target > 0 and abs(series.deviation) > threshold
        ]
        return {"overpopulated": over, "underpopulated": under, "pressures": pressures}

    def get_summary(self) -> PopulationSummary:
        entities = [s for s in self._metrics.entities.values() if s.target > 0]
        pressures = list(self._metrics.pressures.values())
        outliers = self.get_outliers()
        return PopulationSummary(
            total_entities=int(sum(s.count for s in self._metrics.entities.values())),
            total_relationships=int(
                sum(s.count for s in self._metrics.relationships.values())
            ),
            avg_entity_deviation=(
                sum(abs(s.deviation) for s in entities) / len(entities)
                if entities else 0.0
            ),
            avg_pressure_deviation=(
                sum(abs(s.deviation) for s in pressures) / len(pressures)
                if pressures else 0.0
            ),
            entities_over_target=len(outliers["overpopulated"]),
            entities_under_target=len(outliers["underpopulated"]),
            pressures_out_of_range=len(outliers["pressures"]),
        )
