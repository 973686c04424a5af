"""
Feedback Analyzer — checks declared feedback loops against observed history.

Behavioral Contract:
- Diagnostic only: results are reported, nothing is corrected automatically
- Loops with fewer than MIN_SAMPLES observations are in warm-up and count as valid
- A loop is valid when the observed correlation has the expected sign and at
  least half the expected magnitude
"""

from typing import List, Optional, Tuple

from worldgen_kernel.models.config import FeedbackLoop
from worldgen_kernel.models.statistics import LoopValidation, MetricSeries, PopulationMetrics

MIN_SAMPLES = 5


def pearson_correlation(x: List[float], y: List[float]) -> Optional[float]:
    """Pearson correlation of two equal-length series; None when either is constant."""
    n = min(len(x), len(y))
    if n < 2:
        return None
    x, y = x[:n], y[:n]
    mean_x = sum(x) / n
    mean_y = sum(y) / n
    cov = sum((a - mean_x) * (b - mean_y) for a, b in zip(x, y))
    var_x = sum((a - mean_x) ** 2 for a in x)
    var_y = sum((b - mean_y) ** 2 for b in y)
    if var_x == 0 or var_y == 0:
        return None
    return cov / (var_x ** 0.5 * var_y ** 0.5)


def resolve_series(metrics: PopulationMetrics, path: str) -> Optional[List[float]]:
    """
    History for a metric path: ``npc:hero.count``, ``at_war_with.count``,
    ``conflict.value`` or any of those with ``.deviation``.
    """
    key, _, field = path.rpartition(".")
    if not key:
        key, field = path, "count"

    series: Optional[MetricSeries] = (
        metrics.entities.get(key)
        or metrics.pressures.get(key)
        or metrics.relationships.get(key)
    )
    if series is None:
        return None
    if field == "deviation":
        if series.target <= 0:
            return [0.0 for _ in series.history]
        return [(v - series.target) / series.target for v in series.history]
    return list(series.history)


class FeedbackAnalyzer:
    """Validates feedback loops; optionally inspects component contracts for diagnostics."""

    def __init__(self, loops: List[FeedbackLoop], config=None):
        self.loops = loops
        self.config = config

    def validate_loop(self, loop: FeedbackLoop, metrics: PopulationMetrics) -> LoopValidation:
        expected = loop.strength if loop.type == "positive" else -loop.strength
        source = resolve_series(metrics, loop.source)
        target = resolve_series(metrics, loop.target)

        if source is None or target is None:
            missing = loop.source if source is None else loop.target
            return LoopValidation(
                loop_id=loop.id,
                valid=False,
                expected_correlation=expected,
                reason=f"Metric not tracked: {missing}",
            )

        if min(len(source), len(target)) < MIN_SAMPLES:
            return LoopValidation(
                loop_id=loop.id,
                valid=True,
                warmup=True,
                expected_correlation=expected,
                reason="Warming up: not enough history",
            )

        x, y = _shift(source, target, loop.delay)
        correlation = pearson_correlation(x, y) if len(x) >= 3 else None
        if correlation is None:
            return LoopValidation(
                loop_id=loop.id,
                valid=True,
                expected_correlation=expected,
                reason="Insufficient variance to measure correlation",
            )

        same_sign = (correlation > 0) == (expected > 0)
        strong_enough = abs(correlation) >= 0.5 * abs(expected)
        valid = same_sign and strong_enough
        if valid:
            reason = f"Observed correlation {correlation:.2f} matches expected {expected:.2f}"
        elif not same_sign:
            reason = f"Observed correlation {correlation:.2f} has the wrong sign"
        else:
            reason = f"Observed correlation {correlation:.2f} is weaker than expected"

        return LoopValidation(
            loop_id=loop.id,
            valid=valid,
            correlation=correlation,
            expected_correlation=expected,
            reason=reason,
        )

    def validate_all(self, metrics: PopulationMetrics) -> List[LoopValidation]:
        results = []
        for loop in self.loops:
            if not loop.active:
                continue
            result = self.validate_loop(loop, metrics)
            if not result.warmup:
                loop.last_validated = metrics.tick
            results.append(result)
        return results

    def get_broken_loops(self, results: List[LoopValidation]) -> List[LoopValidation]:
        return [r for r in results if not r.valid and not r.warmup]

    def generate_detailed_diagnostics(self, result: LoopValidation) -> List[str]:
        """Inspect the components named in a loop's mechanism and suggest fixes."""
        loop = next((c for c in self.loops if c.id == result.loop_id), None)
        if loop is None or self.config is None:
            return []

        findings = []
        templates = {t.id: t for t in self.config.templates}
        systems = {s.id: s for s in self.config.systems}
        pressures = {p.id: p for p in self.config.pressures}

        for step in loop.mechanism:
            prefix, _, name = step.partition(".")
            if prefix == "template":
                template = templates.get(name)
                if template is None:
                    findings.append(f"Template '{name}' is not registered")
                elif getattr(template, "contract", None) is None:
                    findings.append(f"Template '{name}' declares no contract")
                elif template.contract.enabled_by is None:
                    findings.append(
                        f"Template '{name}' has no enabled_by gate; "
                        f"it cannot respond to the loop's source"
                    )
            elif prefix == "system":
                system = systems.get(name)
                if system is None:
                    findings.append(f"System '{name}' is not registered")
                elif getattr(system, "contract", None) is None:
                    findings.append(f"System '{name}' declares no contract")
                elif not system.contract.affects.pressures and not system.contract.affects.relationships:
                    findings.append(f"System '{name}' declares no effects")
            elif prefix == "pressure":
                pressure = pressures.get(name)
                if pressure is None:
                    findings.append(f"Pressure '{name}' is not defined")
                elif pressure.contract is None or not pressure.contract.sinks:
                    findings.append(f"Pressure '{name}' has no sinks to close the loop")

        if not findings and not result.valid:
            findings.append(
                f"Mechanism for '{loop.id}' looks complete; "
                f"consider tuning strength ({loop.strength}) or delay ({loop.delay})"
            )
        result.recommendations = findings
        return findings


def _shift(
    source: List[float], target: List[float], delay: int
) -> Tuple[List[float], List[float]]:
    n = min(len(source), len(target))
    source, target = source[-n:], target[-n:]
    if delay <= 0 or delay >= n:
        return source, target
    return source[: n - delay], target[delay:]
