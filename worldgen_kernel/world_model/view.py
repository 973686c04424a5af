"""Read-only facade over the GraphStore handed to templates, systems and pressures."""

import random
from typing import Dict, List, Optional

from worldgen_kernel.models.execution import TargetBias, TargetSelection
from worldgen_kernel.models.world import Entity, Relationship
from worldgen_kernel.selection.targets import TargetSelector
from worldgen_kernel.world_model.store import GraphStore

RELATIONSHIP_COOLDOWN = 10


class GraphView:
    """Query surface for pluggable components. Exposes no mutation."""

    def __init__(self, store: GraphStore, target_selector: Optional[TargetSelector] = None):
        self._store = store
        self.target_selector = target_selector or TargetSelector()

    @property
    def tick(self) -> int:
        return self._store.tick

    @property
    def era_id(self) -> Optional[str]:
        era = self._store.current_era
        return era.id if era else None

    @property
    def rng(self) -> random.Random:
        return self._store.rng

    @property
    def pressures(self) -> Dict[str, float]:
        return dict(self._store.pressures)

    def get_pressure(self, pressure_id: str, default: float = 0.0) -> float:
        return self._store.pressures.get(pressure_id, default)

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        return self._store.get_entity(entity_id)

    def get_entities(self) -> List[Entity]:
        return self._store.get_entities()

    def find_entities(self, **criteria) -> List[Entity]:
        return self._store.find_entities(**criteria)

    def count_entities(
        self,
        kind: Optional[str] = None,
        subtype: Optional[str] = None,
        status: Optional[str] = None,
    ) -> int:
        return len(self._store.find_entities(kind=kind, subtype=subtype, status=status))

    def get_entity_count(self) -> int:
        return self._store.get_entity_count()

    def get_relationships(self, **criteria) -> List[Relationship]:
        return self._store.get_relationships(**criteria)

    def get_relationship_count(self) -> int:
        return self._store.get_relationship_count()

    def has_relationship(
        self, kind: str, src: str, dst: str, bidirectional: bool = False
    ) -> bool:
        return self._store.has_relationship(kind, src, dst, bidirectional)

    def get_connected_entities(
        self, entity_id: str, kind: Optional[str] = None, direction: str = "both"
    ) -> List[Entity]:
        return self._store.get_connected_entities(entity_id, kind, direction)

    # --- Target selection and cooldowns ---

    def select_targets(
        self, kind: str, count: int = 1, bias: Optional[TargetBias] = None
    ) -> TargetSelection:
        """Rank existing ``kind`` entities as targets, penalising hubs."""
        return self.target_selector.select_targets(self, kind, count, bias)

    def get_relationship_cooldown(
        self, entity_id: str, kind: str, period: int = RELATIONSHIP_COOLDOWN
    ) -> int:
        """Ticks left before ``entity_id`` may form another ``kind`` relationship."""
        last = self._store.last_formation_tick(entity_id, kind)
        if last is None:
            return 0
        return max(0, period - (self._store.tick - last))

    def can_form_relationship(
        self, entity_id: str, kind: str, period: int = RELATIONSHIP_COOLDOWN
    ) -> bool:
        return self.get_relationship_cooldown(entity_id, kind, period) == 0
