"""
Graph Store — the single owner of world state.

Updated by: Engine Scheduler (template results, system results, pruning)
Queried by: Templates, Systems, Pressures, Selectors, Trackers (via GraphView)

Behavioral Contract:
- Reads return copies; callers never hold live references into the store
- Entity and relationship counts change only through this API
- add_relationship returns False (never raises) for duplicates or unknown endpoints
- create_entity requires coordinates and a name source (explicit name or naming service);
  a naming service that raises leaves the placeholder name and a warning
- update_entity returns False (never raises) for unknown ids or changes that fail validation
- Each entity's link cache mirrors its outgoing active relationships, except after
  _set_relationships, which replaces edges without touching the cache
"""

import inspect
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union
from uuid import uuid4

from pydantic import ValidationError

from worldgen_kernel.models.config import Era
from worldgen_kernel.models.world import (
    Entity,
    EntityDraft,
    HistoryEvent,
    Link,
    LoreRecord,
    Relationship,
)

logger = logging.getLogger(__name__)

UNNAMED = "unnamed"

RelationshipKey = Tuple[str, str, str]


class GraphStoreError(ValueError):
    """Raised when a creation payload cannot be turned into an entity."""
    pass


class GraphStore:
    """
    In-memory world graph.
    Entities are keyed by id; active relationships are unique per (kind, src, dst).
    """

    def __init__(
        self,
        naming_service: Optional[Any] = None,
        task_registry: Optional[Any] = None,
        overlap_radius: float = 5.0,
        rng: Optional[random.Random] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ):
        self.naming_service = naming_service
        self.task_registry = task_registry
        self.overlap_radius = overlap_radius
        self.rng = rng or random.Random()
        self.on_warning = on_warning

        self.tick = 0
        self.current_era: Optional[Era] = None
        self.pressures: Dict[str, float] = {}
        self.history: List[HistoryEvent] = []
        self.lore_records: List[LoreRecord] = []

        self._entities: Dict[str, Entity] = {}
        self._relationships: List[Relationship] = []
        self._active: Dict[RelationshipKey, Relationship] = {}
        # entity id -> relationship kind -> tick of the latest formation
        self._formations: Dict[str, Dict[str, int]] = {}

    # --- Entities ---

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        """Get a copy of an entity by ID."""
        entity = self._entities.get(entity_id)
        return entity.model_copy(deep=True) if entity else None

    def has_entity(self, entity_id: str) -> bool:
        return entity_id in self._entities

    def get_entities(self) -> List[Entity]:
        return [e.model_copy(deep=True) for e in self._entities.values()]

    def get_entity_count(self) -> int:
        return len(self._entities)

    def find_entities(
        self,
        kind: Optional[str] = None,
        subtype: Optional[str] = None,
        status: Optional[str] = None,
        prominence: Optional[str] = None,
        culture: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> List[Entity]:
        """Get copies of all entities matching every given criterion."""
        found = []
        for entity in self._entities.values():
            if kind is not None and entity.kind != kind:
                continue
            if subtype is not None and entity.subtype != subtype:
                continue
            if status is not None and entity.status != status:
                continue
            if prominence is not None and entity.prominence.value != prominence:
                continue
            if culture is not None and entity.culture != culture:
                continue
            if tag is not None and tag not in entity.tags:
                continue
            found.append(entity.model_copy(deep=True))
        return found

    def create_entity(self, draft: Union[EntityDraft, dict]) -> str:
        """
        Create an entity and return its id.

        Order of resolution: coordinates, then tags, then name.
        """
        if isinstance(draft, dict):
            draft = EntityDraft.model_validate(draft)

        if draft.coordinates is None:
            raise GraphStoreError(
                f"Cannot create {draft.kind}:{draft.subtype}: coordinates are required"
            )

        entity_id = draft.id or f"{draft.kind}_{uuid4().hex[:12]}"
        if entity_id in self._entities:
            raise GraphStoreError(f"Entity id already exists: {entity_id}")

        pending_name = None
        name = draft.name
        if not name:
            if self.naming_service is None:
                raise GraphStoreError(
                    f"Cannot create {draft.kind}:{draft.subtype}: "
                    f"no name given and no naming service configured"
                )
            try:
                generated = self.naming_service.generate(draft)
            except Exception as e:
                self._warn(
                    f"Naming failed for {draft.kind}:{draft.subtype} {entity_id}, "
                    f"keeping placeholder: {e}"
                )
                generated = None
            if inspect.isawaitable(generated):
                pending_name = generated
                name = UNNAMED
            else:
                name = generated or UNNAMED

        entity = Entity(
            id=entity_id,
            kind=draft.kind,
            subtype=draft.subtype,
            name=name,
            description=draft.description,
            status=draft.status,
            prominence=draft.prominence,
            culture=draft.culture,
            tags=dict(draft.tags),
            coordinates=draft.coordinates,
            temporal=draft.temporal,
            created_at=self.tick,
            updated_at=self.tick,
        )
        self._warn_on_overlap(entity)
        self._entities[entity_id] = entity

        if pending_name is not None:
            self._schedule_name(entity_id, pending_name)

        return entity_id

    def load_entity(self, entity: Entity) -> None:
        """Insert a fully formed entity (seed state), keeping its id."""
        self._entities[entity.id] = entity.model_copy(deep=True)

    def update_entity(self, entity_id: str, changes: Dict[str, Any]) -> bool:
        """Apply field changes to an entity. Returns False for unknown ids or invalid changes."""
        entity = self._entities.get(entity_id)
        if entity is None:
            return False
        data = entity.model_dump()
        data.update({k: v for k, v in changes.items() if k != "id"})
        data["updated_at"] = self.tick
        try:
            updated = Entity.model_validate(data)
        except ValidationError as e:
            logger.warning(
                "Rejected change to %s (%s): %d validation error(s)",
                entity_id, ", ".join(sorted(changes)), e.error_count(),
            )
            return False
        self._entities[entity_id] = updated
        return True

    def set_entity_name(self, entity_id: str, name: str) -> bool:
        return self.update_entity(entity_id, {"name": name})

    def _warn(self, message: str) -> None:
        logger.warning(message)
        if self.on_warning is not None:
            self.on_warning(message)

    def _warn_on_overlap(self, entity: Entity) -> None:
        for other in self._entities.values():
            if other.kind != entity.kind:
                continue
            if other.coordinates.distance_to(entity.coordinates) < self.overlap_radius:
                logger.warning(
                    "Entity %s (%s) placed within %.1f of %s",
                    entity.id, entity.kind, self.overlap_radius, other.id,
                )
                return

    def _schedule_name(self, entity_id: str, pending: Awaitable[str]) -> None:
        if self.task_registry is None:
            raise GraphStoreError(
                "Asynchronous naming requires a task registry on the graph store"
            )

        async def _apply() -> None:
            name = await pending
            if name:
                self.set_entity_name(entity_id, name)

        self.task_registry.spawn(_apply(), name=f"name:{entity_id}", names=True)

    # --- Relationships ---

    def add_relationship(
        self,
        kind: str,
        src: str,
        dst: str,
        strength: float = 0.5,
        distance: Optional[float] = None,
        category: Optional[str] = None,
    ) -> bool:
        """
        Add a directed relationship.
        Returns False for unknown endpoints, self-loops and duplicates.

        Uniqueness covers active edges only: once an edge is archived the same
        (kind, src, dst) may be added again, and the relationship list then holds
        both the historical edge and the new active one.
        """
        if src not in self._entities or dst not in self._entities:
            return False
        if src == dst:
            return False
        key = (kind, src, dst)
        if key in self._active:
            return False

        relationship = Relationship(
            kind=kind,
            src=src,
            dst=dst,
            strength=max(0.0, min(1.0, strength)),
            distance=distance,
            category=category,
            created_at=self.tick,
        )
        self._relationships.append(relationship)
        self._active[key] = relationship
        self._entities[src].links.append(
            Link(kind=kind, src=src, dst=dst, strength=relationship.strength)
        )
        self.record_relationship_formation(src, kind)
        self.record_relationship_formation(dst, kind)
        return True

    def remove_relationship(self, kind: str, src: str, dst: str) -> bool:
        relationship = self._active.pop((kind, src, dst), None)
        if relationship is None:
            return False
        self._relationships.remove(relationship)
        self._drop_link(kind, src, dst)
        return True

    def archive_relationship(self, kind: str, src: str, dst: str) -> bool:
        """Soft-retire an active relationship to 'historical'."""
        relationship = self._active.pop((kind, src, dst), None)
        if relationship is None:
            return False
        relationship.status = "historical"
        self._drop_link(kind, src, dst)
        return True

    def record_relationship_formation(self, entity_id: str, kind: str) -> None:
        """Stamp the current tick as the latest time ``entity_id`` formed a ``kind`` edge."""
        self._formations.setdefault(entity_id, {})[kind] = self.tick

    def last_formation_tick(self, entity_id: str, kind: str) -> Optional[int]:
        return self._formations.get(entity_id, {}).get(kind)

    def has_relationship(
        self, kind: str, src: str, dst: str, bidirectional: bool = False
    ) -> bool:
        if (kind, src, dst) in self._active:
            return True
        return bidirectional and (kind, dst, src) in self._active

    def get_relationships(
        self,
        kind: Optional[str] = None,
        src: Optional[str] = None,
        dst: Optional[str] = None,
        include_historical: bool = False,
    ) -> List[Relationship]:
        found = []
        for rel in self._relationships:
            if not include_historical and rel.status != "active":
                continue
            if kind is not None and rel.kind != kind:
                continue
            if src is not None and rel.src != src:
                continue
            if dst is not None and rel.dst != dst:
                continue
            found.append(rel.model_copy())
        return found

    def get_historical_relationships(self) -> List[Relationship]:
        return [r.model_copy() for r in self._relationships if r.status == "historical"]

    def get_relationship_count(self, include_historical: bool = False) -> int:
        if include_historical:
            return len(self._relationships)
        return len(self._active)

    def get_connected_entities(
        self,
        entity_id: str,
        kind: Optional[str] = None,
        direction: str = "both",
    ) -> List[Entity]:
        """Get copies of entities adjacent to ``entity_id`` over active relationships."""
        connected: Dict[str, Entity] = {}
        for (rel_kind, src, dst) in self._active:
            if kind is not None and rel_kind != kind:
                continue
            if src == entity_id and direction in ("out", "both"):
                connected[dst] = self._entities[dst]
            elif dst == entity_id and direction in ("in", "both"):
                connected[src] = self._entities[src]
        return [e.model_copy(deep=True) for e in connected.values()]

    def count_relationships_for(self, entity_id: str) -> int:
        return sum(
            1 for (_, src, dst) in self._active if src == entity_id or dst == entity_id
        )

    def _set_relationships(self, relationships: Iterable[Relationship]) -> None:
        """
        Replace the relationship list wholesale.
        Link caches are NOT rebuilt; call rebuild_links() when they must agree.
        """
        self._relationships = [r.model_copy() for r in relationships]
        self._active = {
            (r.kind, r.src, r.dst): r
            for r in self._relationships
            if r.status == "active"
        }

    def rebuild_links(self) -> None:
        """Recompute every entity's link cache from active relationships."""
        for entity in self._entities.values():
            entity.links = []
        for rel in self._active.values():
            source = self._entities.get(rel.src)
            if source is not None:
                source.links.append(
                    Link(kind=rel.kind, src=rel.src, dst=rel.dst, strength=rel.strength)
                )

    def _drop_link(self, kind: str, src: str, dst: str) -> None:
        source = self._entities.get(src)
        if source is None:
            return
        source.links = [
            link for link in source.links
            if not (link.kind == kind and link.dst == dst)
        ]

    # --- Snapshot ---

    def snapshot(self) -> dict:
        """Get a serializable snapshot of the current graph."""
        return {
            "tick": self.tick,
            "era": self.current_era.id if self.current_era else None,
            "entities": [e.model_dump(mode="json") for e in self._entities.values()],
            "relationships": [
                r.model_dump(mode="json") for r in self._relationships
                if r.status == "active"
            ],
            "historical_relationships": [
                r.model_dump(mode="json") for r in self._relationships
                if r.status == "historical"
            ],
            "pressures": dict(self.pressures),
        }
