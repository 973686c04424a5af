"""
Dynamic Weight Calculator — nudges template weights toward population targets.

Templates producing an over-target kind:subtype are suppressed; templates
producing an under-target one are boosted. The factor never leaves
[1 - max_suppression_factor, max_boost_factor].
"""

from typing import Dict, List, Optional, Tuple

from worldgen_kernel.models.statistics import MetricSeries, PopulationMetrics, WeightAdjustment


class DynamicWeightCalculator:
    """Turns population deviation into per-template weight adjustments."""

    def __init__(
        self,
        deviation_threshold: float = 0.2,
        max_suppression_factor: float = 0.8,
        max_boost_factor: float = 2.0,
    ):
        self.deviation_threshold = deviation_threshold
        self.max_suppression_factor = max_suppression_factor
        self.max_boost_factor = max_boost_factor

    def configure(
        self,
        deviation_threshold: Optional[float] = None,
        max_suppression_factor: Optional[float] = None,
        max_boost_factor: Optional[float] = None,
    ) -> None:
        if deviation_threshold is not None:
            self.deviation_threshold = deviation_threshold
        if max_suppression_factor is not None:
            self.max_suppression_factor = max_suppression_factor
        if max_boost_factor is not None:
            self.max_boost_factor = max_boost_factor

    def calculate_weight(
        self, template, base_weight: float, metrics: PopulationMetrics
    ) -> WeightAdjustment:
        template_id = template.id
        if base_weight <= 0:
            return WeightAdjustment(
                template_id=template_id,
                base_weight=base_weight,
                adjusted_weight=0.0,
                adjustment_factor=0.0,
                reason="Template disabled by era",
            )

        produced = _produced_keys(template)
        if not produced:
            return WeightAdjustment(
                template_id=template_id,
                base_weight=base_weight,
                adjusted_weight=base_weight,
                adjustment_factor=1.0,
                reason="No tracked entity output",
            )

        factor = 1.0
        reasons = []
        for kind, subtype in produced:
            series = _lookup(metrics, kind, subtype)
            if series is None or series.target <= 0:
                continue
            label = f"{kind}:{subtype}" if subtype else kind
            if series.deviation > self.deviation_threshold:
                suppression = min(series.deviation, self.max_suppression_factor)
                factor *= 1 - suppression
                reasons.append(f"{label} {series.deviation:.0%} over target")
            elif series.deviation < -self.deviation_threshold:
                boost = min(self.max_boost_factor, 1 + abs(series.deviation))
                factor *= boost
                reasons.append(f"{label} {abs(series.deviation):.0%} under target")

        factor = max(1 - self.max_suppression_factor, min(self.max_boost_factor, factor))
        return WeightAdjustment(
            template_id=template_id,
            base_weight=base_weight,
            adjusted_weight=base_weight * factor,
            adjustment_factor=factor,
            reason="; ".join(reasons) if reasons else "No adjustment needed",
        )

    def calculate_all_weights(
        self,
        templates: List,
        base_weights: Dict[str, float],
        metrics: PopulationMetrics,
    ) -> Dict[str, WeightAdjustment]:
        return {
            t.id: self.calculate_weight(t, base_weights.get(t.id, 1.0), metrics)
            for t in templates
        }

    def get_suppressed_templates(
        self, adjustments: Dict[str, WeightAdjustment]
    ) -> List[WeightAdjustment]:
        return [
            a for a in adjustments.values()
            if 0 < a.adjustment_factor < 1.0
        ]

    def get_boosted_templates(
        self, adjustments: Dict[str, WeightAdjustment]
    ) -> List[WeightAdjustment]:
        return [a for a in adjustments.values() if a.adjustment_factor > 1.0]


def _produced_keys(template) -> List[Tuple[str, Optional[str]]]:
    metadata = getattr(template, "metadata", None)
    if metadata is None:
        return []
    return [(p.kind, p.subtype) for p in metadata.produces.entity_kinds]


def _lookup(
    metrics: PopulationMetrics, kind: str, subtype: Optional[str]
) -> Optional[MetricSeries]:
    """Metric for kind:subtype, or all subtypes of a kind summed when no subtype is named."""
    if subtype:
        return metrics.entities.get(f"{kind}:{subtype}")

    prefix = f"{kind}:"
    matching = [s for key, s in metrics.entities.items() if key.startswith(prefix)]
    if not matching:
        return None
    count = sum(s.count for s in matching)
    target = sum(s.target for s in matching)
    return MetricSeries(
        key=kind,
        count=count,
        target=target,
        deviation=(count - target) / target if target > 0 else 0.0,
    )
