"""
Enrichment Coordinator — batches entities and relationships out to the lore
and image services without ever blocking the simulation.

Behavioral Contract:
- Enrichment runs in tracked background tasks; the tick loop never awaits it
- Every batch waits for pending name generation before building its context
- Service failures become warnings; they never abort a run
- In partial mode, at most max_entity_enrichments entities are sent
"""

import logging
from typing import Callable, List, Optional, Set, Tuple

from worldgen_kernel.models.world import Entity, LoreRecord, Prominence, Relationship

logger = logging.getLogger(__name__)

NOTABLE_RELATIONSHIPS_PER_TICK = 3


class EnrichmentCoordinator:
    """Queues enrichment work and flushes it to the configured services."""

    def __init__(
        self,
        store,
        tasks,
        service=None,
        image_service=None,
        batch_size: int = 15,
        max_entity_enrichments: Optional[int] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ):
        self.store = store
        self.tasks = tasks
        self.service = service
        self.image_service = image_service
        self.batch_size = batch_size
        self.max_entity_enrichments = max_entity_enrichments
        self.on_warning = on_warning or (lambda message: logger.warning(message))

        self._queue: List[str] = []
        self._queued_total = 0
        self._seen_relationships: Set[Tuple[str, str, str]] = set()

    @property
    def enabled(self) -> bool:
        return self.service is not None and self.service.is_enabled()

    @property
    def queued(self) -> int:
        return len(self._queue)

    def queue_entities(self, entity_ids: List[str]) -> None:
        if not self.enabled:
            return
        for entity_id in entity_ids:
            if (
                self.max_entity_enrichments is not None
                and self._queued_total >= self.max_entity_enrichments
            ):
                break
            self._queue.append(entity_id)
            self._queued_total += 1
        while len(self._queue) >= self.batch_size:
            self.flush()

    def flush(self) -> None:
        """Send up to one batch of queued entities."""
        if not self._queue:
            return
        batch = self._queue[: self.batch_size]
        self._queue = self._queue[self.batch_size:]
        self.tasks.spawn(
            self._enrich_entities(batch),
            name=f"enrich:entities:{self.store.tick}:{batch[0]}",
        )

    def flush_all(self) -> None:
        while self._queue:
            self.flush()

    def queue_notable_relationships(self, relationships: List[Relationship]) -> None:
        """Enrich a few relationships whose endpoints are both renowned or better."""
        if not self.enabled:
            return
        notable = []
        for rel in relationships:
            key = (rel.kind, rel.src, rel.dst)
            if key in self._seen_relationships:
                continue
            src = self.store.get_entity(rel.src)
            dst = self.store.get_entity(rel.dst)
            if src is None or dst is None:
                continue
            if min(src.prominence.rank, dst.prominence.rank) < Prominence.RENOWNED.rank:
                continue
            self._seen_relationships.add(key)
            notable.append(rel)
            if len(notable) >= NOTABLE_RELATIONSHIPS_PER_TICK:
                break
        if notable:
            self.tasks.spawn(
                self._enrich_relationships(notable),
                name=f"enrich:relationships:{self.store.tick}",
            )

    async def generate_mythic_images(self) -> int:
        if self.image_service is None:
            return 0
        mythic = self.store.find_entities(prominence=Prominence.MYTHIC.value)
        if not mythic:
            return 0
        try:
            records = await self.image_service.generate_images(mythic)
        except Exception as e:
            self.on_warning(f"Image generation failed: {e}")
            return 0
        self.store.lore_records.extend(records)
        return len(records)

    def build_context(self) -> dict:
        era = self.store.current_era
        kinds = {}
        for entity in self.store.get_entities():
            kinds[entity.kind] = kinds.get(entity.kind, 0) + 1
        return {
            "tick": self.store.tick,
            "era": era.name if era else None,
            "era_description": era.description if era else "",
            "pressures": dict(self.store.pressures),
            "entity_counts": kinds,
        }

    async def _enrich_entities(self, entity_ids: List[str]) -> None:
        await self.tasks.join_names()
        entities: List[Entity] = [
            e for e in (self.store.get_entity(i) for i in entity_ids) if e is not None
        ]
        if not entities:
            return
        try:
            records = await self.service.enrich_entities(entities, self.build_context())
        except Exception as e:
            self.on_warning(f"Entity enrichment failed for {len(entities)} entities: {e}")
            return
        self._store_records(records)

    async def _enrich_relationships(self, relationships: List[Relationship]) -> None:
        await self.tasks.join_names()
        try:
            records = await self.service.enrich_relationships(
                relationships, self.build_context()
            )
        except Exception as e:
            self.on_warning(f"Relationship enrichment failed: {e}")
            return
        self._store_records(records)

    def _store_records(self, records: List[LoreRecord]) -> None:
        self.store.lore_records.extend(records)
        for record in records:
            if record.type == "description" and self.store.has_entity(record.target_id):
                self.store.update_entity(record.target_id, {"description": record.text})
