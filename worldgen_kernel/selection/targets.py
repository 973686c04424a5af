"""
Target Selector — ranks existing entities as template targets while keeping
popular entities from turning into super-hubs.

Behavioral Contract:
- Every candidate starts at score 1.0; preferences multiply it by their boost
- Each penalised relationship kind counts both directions; n such edges
  multiply the score by 1 / (1 + n^hub_penalty_strength)
- Past 5 total relationships the score is further multiplied by
  1 / (1 + sqrt(total - 5))
- Hard filters (max_total_relationships, exclude_related_to) remove candidates outright
- Ties keep insertion order, so a selection is deterministic for a given graph
- Selection never mutates the graph; a best score under the saturation threshold
  is reported as ``saturated`` so the caller can create a fresh entity instead
"""

from typing import Dict, List, Optional

from worldgen_kernel.models.execution import TargetBias, TargetSelection
from worldgen_kernel.models.world import Entity

GENERAL_HUB_THRESHOLD = 5


class SelectionTracker:
    """How often each entity was picked, per tracking id."""

    def __init__(self):
        self._counts: Dict[str, Dict[str, int]] = {}

    def track(self, tracking_id: str, entity_id: str) -> None:
        counts = self._counts.setdefault(tracking_id, {})
        counts[entity_id] = counts.get(entity_id, 0) + 1

    def get_count(self, tracking_id: str, entity_id: str) -> int:
        return self._counts.get(tracking_id, {}).get(entity_id, 0)

    def reset(self, tracking_id: Optional[str] = None) -> None:
        if tracking_id is None:
            self._counts.clear()
        else:
            self._counts.pop(tracking_id, None)


class TargetSelector:
    """Score-based target selection with hub and repeat-selection penalties."""

    def __init__(self, tracker: Optional[SelectionTracker] = None):
        self.tracker = tracker or SelectionTracker()

    def select_targets(
        self, view, kind: str, count: int = 1, bias: Optional[TargetBias] = None
    ) -> TargetSelection:
        bias = bias or TargetBias()
        candidates = view.find_entities(kind=kind)
        if not candidates:
            return TargetSelection()

        degrees = _degrees(view)
        scored = [(entity, self.score_candidate(view, entity, bias, degrees)) for entity in candidates]
        scored = self._apply_hard_filters(view, scored, bias, degrees)
        scored.sort(key=lambda pair: pair[1], reverse=True)

        selected = [entity for entity, _ in scored[:max(0, count)]]
        if bias.diversity is not None:
            for entity in selected:
                self.tracker.track(bias.diversity.tracking_id, entity.id)

        scores = [score for _, score in scored]
        best = max(scores) if scores else 0.0
        return TargetSelection(
            existing=selected,
            candidates_evaluated=len(candidates),
            best_score=best,
            worst_score=min(scores) if scores else 0.0,
            avg_score=sum(scores) / len(scores) if scores else 0.0,
            saturated=best < bias.saturation_threshold,
        )

    def score_candidate(
        self,
        view,
        entity: Entity,
        bias: TargetBias,
        degrees: Optional[Dict[str, Dict[str, int]]] = None,
    ) -> float:
        """Higher is more desirable."""
        if degrees is None:
            degrees = _degrees(view)
        by_kind = degrees.get(entity.id, {})
        score = 1.0

        prefer = bias.prefer
        if prefer is not None:
            if entity.subtype in prefer.subtypes:
                score *= prefer.boost
            if any(tag in entity.tags for tag in prefer.tags):
                score *= prefer.boost
            if entity.prominence.value in prefer.prominence:
                score *= prefer.boost
            if prefer.same_location_as and _shares_location(view, entity, prefer.same_location_as):
                score *= prefer.boost

        avoid = bias.avoid
        if avoid is not None:
            penalised = sum(by_kind.get(k, 0) for k in avoid.relationship_kinds)
            if penalised > 0:
                score *= 1 / (1 + penalised ** avoid.hub_penalty_strength)
            total = sum(by_kind.values())
            if total > GENERAL_HUB_THRESHOLD:
                score *= 1 / (1 + (total - GENERAL_HUB_THRESHOLD) ** 0.5)

        if bias.diversity is not None:
            picked = self.tracker.get_count(bias.diversity.tracking_id, entity.id)
            if picked > 0:
                score *= 1 / (1 + picked ** bias.diversity.strength)

        return max(0.0, score)

    def _apply_hard_filters(self, view, scored, bias: TargetBias, degrees):
        avoid = bias.avoid
        if avoid is None:
            return scored
        if avoid.max_total_relationships is not None:
            scored = [
                (e, s) for e, s in scored
                if sum(degrees.get(e.id, {}).values()) < avoid.max_total_relationships
            ]
        if avoid.exclude_related_to:
            other = avoid.exclude_related_to
            related = set()
            for rel in view.get_relationships(kind=avoid.exclude_relationship_kind):
                if rel.src == other:
                    related.add(rel.dst)
                elif rel.dst == other:
                    related.add(rel.src)
            scored = [(e, s) for e, s in scored if e.id not in related]
        return scored

    def reset_diversity_tracking(self, tracking_id: Optional[str] = None) -> None:
        self.tracker.reset(tracking_id)


def _degrees(view) -> Dict[str, Dict[str, int]]:
    degrees: Dict[str, Dict[str, int]] = {}
    for rel in view.get_relationships():
        for endpoint in (rel.src, rel.dst):
            by_kind = degrees.setdefault(endpoint, {})
            by_kind[rel.kind] = by_kind.get(rel.kind, 0) + 1
    return degrees


def _locations(view, entity_id: str) -> List[str]:
    return [r.dst for r in view.get_relationships(kind="resident_of", src=entity_id)]


def _shares_location(view, entity: Entity, other_id: str) -> bool:
    return bool(set(_locations(view, entity.id)) & set(_locations(view, other_id)))
