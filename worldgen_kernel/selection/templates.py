"""
Template Selector — era weights corrected by measured distribution deviation.

Behavioral Contract:
- Era weight defaults to 1.0; a non-positive era weight disables the template (weight 0)
- Deviation correction applies only while overall deviation exceeds convergence_threshold
- Final weight is clamped to [min_template_weight, max_template_weight], then to
  [0.2 * base, 2.0 * base]
"""

import random
from typing import Dict, List, Optional

from worldgen_kernel.models.config import DistributionTargets
from worldgen_kernel.models.statistics import DeviationScore, DistributionState
from worldgen_kernel.selection.sampling import weighted_random
from worldgen_kernel.statistics.distribution import DistributionTracker

MIN_BASE_MULTIPLIER = 0.2
MAX_BASE_MULTIPLIER = 2.0


class TemplateSelector:
    """Weights growth templates by how much their output is needed."""

    def __init__(
        self,
        targets: DistributionTargets,
        tracker: Optional[DistributionTracker] = None,
    ):
        self.targets = targets
        self.tracker = tracker or DistributionTracker(targets)

    def get_state(self, view) -> DistributionState:
        return self.tracker.measure_state(view)

    def get_deviation(self, view) -> DeviationScore:
        return self.tracker.calculate_deviation(self.get_state(view), view.era_id)

    def calculate_weights(
        self, view, templates: List, era_weights: Dict[str, float]
    ) -> Dict[str, float]:
        state = self.get_state(view)
        deviation = self.tracker.calculate_deviation(state, view.era_id)
        tuning = self.targets.tuning
        correcting = deviation.overall > tuning.convergence_threshold
        kind_targets = self.tracker.get_targets_for_era(
            view.era_id
        ).entity_kind_distribution.targets

        weights = {}
        for template in templates:
            base = era_weights.get(template.id, 1.0)
            if base <= 0:
                weights[template.id] = 0.0
                continue

            weight = base
            if correcting:
                weight = base * self._correction_factor(
                    template, state, kind_targets
                )

            weight = max(tuning.min_template_weight, min(tuning.max_template_weight, weight))
            weight = max(MIN_BASE_MULTIPLIER * base, min(MAX_BASE_MULTIPLIER * base, weight))
            weights[template.id] = weight
        return weights

    def _correction_factor(
        self,
        template,
        state: DistributionState,
        kind_targets: Dict[str, float],
    ) -> float:
        metadata = getattr(template, "metadata", None)
        if metadata is None or not metadata.produces.entity_kinds:
            return 1.0

        tuning = self.targets.tuning
        shortfalls = []
        for produced in metadata.produces.entity_kinds:
            target = kind_targets.get(produced.kind)
            if not target:
                continue
            actual = state.entity_kind_ratios.get(produced.kind, 0.0)
            shortfalls.append((target - actual) / target)
        if not shortfalls:
            return 1.0

        mean_shortfall = sum(shortfalls) / len(shortfalls)
        return 1.0 + tuning.adjustment_speed * tuning.deviation_sensitivity * mean_shortfall

    def select_templates(
        self,
        view,
        templates: List,
        era_weights: Dict[str, float],
        count: int,
        rng: Optional[random.Random] = None,
    ) -> List:
        """Draw ``count`` templates with replacement, proportional to their weights."""
        weights = self.calculate_weights(view, templates, era_weights)
        values = [weights[t.id] for t in templates]
        selected = []
        for _ in range(count):
            choice = weighted_random(templates, values, rng)
            if choice is None:
                break
            selected.append(choice)
        return selected
