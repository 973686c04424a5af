"""
Pressure Interpreter — compiles declarative pressure documents into runtime pressures.

Behavioral Contract:
- The document shape is validated once, at load time; malformed documents raise
  PressureConfigError carrying the validation details
- growth = max(0, base + sum(positive factors) - sum(negative factors)), optionally
  capped by max_growth
- Every factor value is raw * coefficient, capped by the factor's cap when set
- Ratios with a zero denominator yield the factor's fallback_value
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Union

from pydantic import ValidationError

from worldgen_kernel.models.pressure import (
    CrossCultureRatioFactor,
    DeclarativePressure,
    EntityCountFactor,
    GrowthSpec,
    Pressure,
    PressureDocument,
    RatioFactor,
    RelationshipCountFactor,
    StatusRatioFactor,
    TagCountFactor,
)

logger = logging.getLogger(__name__)


class PressureConfigError(ValueError):
    """Raised when a declarative pressure document does not match its schema."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


# --- Counting primitives ---


def _count_entities(view, kind: str, subtype=None, status=None) -> int:
    return view.count_entities(kind=kind, subtype=subtype, status=status)


def _count_relationships(view, kinds: List[str]) -> int:
    wanted = set(kinds)
    return sum(1 for r in view.get_relationships() if r.kind in wanted)


def _count(view, spec) -> float:
    if spec.type == "entity_count":
        return _count_entities(view, spec.kind, spec.subtype, spec.status)
    if spec.type == "relationship_count":
        return _count_relationships(view, spec.relationship_kinds)
    return view.get_entity_count()


# --- Factor evaluators ---


def _entity_count(factor: EntityCountFactor, view) -> float:
    return _count_entities(view, factor.kind, factor.subtype, factor.status)


def _relationship_count(factor: RelationshipCountFactor, view) -> float:
    return _count_relationships(view, factor.relationship_kinds)


def _tag_count(factor: TagCountFactor, view) -> float:
    wanted = set(factor.tags)
    return sum(
        1 for entity in view.get_entities()
        if wanted.intersection(entity.tags)
    )


def _ratio(factor: RatioFactor, view) -> float:
    denominator = _count(view, factor.denominator)
    if denominator == 0:
        return factor.fallback_value
    return _count(view, factor.numerator) / denominator


def _status_ratio(factor: StatusRatioFactor, view) -> float:
    total = _count_entities(view, factor.kind, factor.subtype)
    if total == 0:
        return 0.0
    alive = _count_entities(view, factor.kind, factor.subtype, factor.alive_status)
    return alive / total


def _cross_culture_ratio(factor: CrossCultureRatioFactor, view) -> float:
    wanted = set(factor.relationship_kinds)
    relevant = [r for r in view.get_relationships() if r.kind in wanted]
    if not relevant:
        return 0.0
    crossing = 0
    for rel in relevant:
        src = view.get_entity(rel.src)
        dst = view.get_entity(rel.dst)
        if src and dst and src.culture and dst.culture and src.culture != dst.culture:
            crossing += 1
    return crossing / len(relevant)


FACTOR_EVALUATORS: Dict[str, Callable[[Any, Any], float]] = {
    "entity_count": _entity_count,
    "relationship_count": _relationship_count,
    "tag_count": _tag_count,
    "ratio": _ratio,
    "status_ratio": _status_ratio,
    "cross_culture_ratio": _cross_culture_ratio,
}


def evaluate_factor(factor, view) -> float:
    """Value of one feedback factor: raw * coefficient, capped when a cap is set."""
    raw = FACTOR_EVALUATORS[factor.type](factor, view)
    value = raw * factor.coefficient
    if factor.cap is not None:
        value = min(value, factor.cap)
    return value


# --- Compilation ---


def create_growth_function(spec: GrowthSpec) -> Callable[[Any], float]:
    """Close over a growth spec; the returned callable is evaluated against a GraphView."""

    def growth(view) -> float:
        positive = sum(evaluate_factor(f, view) for f in spec.positive_feedback)
        negative = sum(evaluate_factor(f, view) for f in spec.negative_feedback)
        value = max(0.0, spec.base_growth + positive - negative)
        if spec.max_growth is not None:
            value = min(value, spec.max_growth)
        return value

    return growth


def interpret(declarative: DeclarativePressure) -> Pressure:
    return Pressure(
        id=declarative.id,
        name=declarative.name,
        value=declarative.initial_value,
        decay=declarative.decay,
        growth=create_growth_function(declarative.growth),
        contract=declarative.contract,
    )


def load_pressures(source: Union[str, Path, Mapping[str, Any]]) -> List[Pressure]:
    """
    Load and compile a pressure document.

    ``source`` is a path to a JSON file or an already parsed mapping of the
    shape ``{"pressures": [...]}``.
    """
    try:
        if isinstance(source, Mapping):
            document = PressureDocument.model_validate(source)
        else:
            document = PressureDocument.model_validate_json(Path(source).read_text())
    except ValidationError as e:
        raise PressureConfigError(
            f"Invalid pressure document: {e.error_count()} error(s)",
            details=e.errors(),
        ) from e
    except OSError as e:
        raise PressureConfigError(f"Cannot read pressure document: {e}") from e

    pressures = [interpret(p) for p in document.pressures]
    logger.info("Loaded %d declarative pressures", len(pressures))
    return pressures
