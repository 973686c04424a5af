"""Structural protocols for the pluggable world components.

Hooks may return plain values or awaitables; the engine resolves both.
"""

from typing import Any, Awaitable, List, Optional, Protocol, Union, runtime_checkable

from worldgen_kernel.models.contracts import ComponentContract, ComponentMetadata
from worldgen_kernel.models.execution import SystemResult, TemplateResult
from worldgen_kernel.models.world import Entity, EntityDraft, LoreRecord, Relationship


@runtime_checkable
class GrowthTemplate(Protocol):
    id: str
    name: str
    metadata: Optional[ComponentMetadata]
    contract: Optional[ComponentContract]

    def can_apply(self, view: Any) -> bool:
        ...

    def find_targets(self, view: Any) -> List[Optional[Entity]]:
        ...

    def expand(
        self, view: Any, target: Optional[Entity]
    ) -> Union[TemplateResult, Awaitable[TemplateResult]]:
        ...


@runtime_checkable
class SimulationSystem(Protocol):
    id: str
    name: str
    metadata: Optional[ComponentMetadata]
    contract: Optional[ComponentContract]

    def apply(
        self, view: Any, modifier: float
    ) -> Union[SystemResult, Awaitable[SystemResult]]:
        ...


class NameGenerationService(Protocol):
    def generate(self, draft: EntityDraft) -> Union[str, Awaitable[str]]:
        ...


class EnrichmentService(Protocol):
    def is_enabled(self) -> bool:
        ...

    async def enrich_entities(
        self, entities: List[Entity], context: dict
    ) -> List[LoreRecord]:
        ...

    async def enrich_relationships(
        self, relationships: List[Relationship], context: dict
    ) -> List[LoreRecord]:
        ...


class ImageGenerationService(Protocol):
    async def generate_images(self, entities: List[Entity]) -> List[LoreRecord]:
        ...
