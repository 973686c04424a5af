"""Statistics Collector — per-epoch snapshots and run-wide usage/health counters."""

from typing import Dict, List, Optional

from worldgen_kernel.models.statistics import (
    EpochStats,
    SimulationStatistics,
    SystemHealth,
    WarningCounts,
)


class StatisticsCollector:
    """Accumulates what happened during a run."""

    def __init__(self):
        self._stats = SimulationStatistics()

    def record_epoch(self, stats: EpochStats) -> None:
        self._stats.epochs.append(stats)
        self._stats.epochs_completed = len(self._stats.epochs)

    def record_template_application(self, template_id: str, success: bool = True) -> None:
        if success:
            usage = self._stats.template_usage
            usage[template_id] = usage.get(template_id, 0) + 1
        else:
            failures = self._stats.template_failures
            failures[template_id] = failures.get(template_id, 0) + 1

    def _health(self, system_id: str) -> SystemHealth:
        return self._stats.system_health.setdefault(
            system_id, SystemHealth(system_id=system_id)
        )

    def record_system_execution(
        self,
        system_id: str,
        success: bool,
        relationships_created: int = 0,
        entities_modified: int = 0,
    ) -> None:
        health = self._health(system_id)
        health.executions += 1
        if not success:
            health.failures += 1
        health.relationships_created += relationships_created
        health.entities_modified += entities_modified

    def record_system_skipped(self, system_id: str) -> None:
        self._health(system_id).skipped += 1

    def record_warning(self, category: str, source: Optional[str] = None) -> None:
        warnings = self._stats.warnings
        warnings.total += 1
        warnings.by_category[category] = warnings.by_category.get(category, 0) + 1
        if source:
            warnings.by_system[source] = warnings.by_system.get(source, 0) + 1

    @property
    def epochs(self) -> List[EpochStats]:
        return self._stats.epochs

    @property
    def template_usage(self) -> Dict[str, int]:
        return dict(self._stats.template_usage)

    @property
    def warnings(self) -> WarningCounts:
        return self._stats.warnings

    def generate_statistics(
        self,
        view,
        ticks: int,
        final_deviation: Optional[float] = None,
    ) -> SimulationStatistics:
        """Return a copy of the run statistics completed with final world figures."""
        stats = self._stats.model_copy(deep=True)
        by_kind: Dict[str, int] = {}
        for entity in view.get_entities():
            by_kind[entity.kind] = by_kind.get(entity.kind, 0) + 1
        stats.final_entities = view.get_entity_count()
        stats.final_relationships = view.get_relationship_count()
        stats.final_entities_by_kind = by_kind
        stats.final_pressures = view.pressures
        stats.final_deviation = final_deviation
        stats.ticks = ticks
        return stats
