"""worldgen-kernel data models."""

from worldgen_kernel.models.components import (
    EnrichmentService,
    GrowthTemplate,
    ImageGenerationService,
    NameGenerationService,
    SimulationSystem,
)
from worldgen_kernel.models.config import (
    DistributionTargets,
    DomainSchema,
    EngineConfig,
    EntityKindDefinition,
    Era,
    FeedbackLoop,
    RelationshipKindDefinition,
    TagDefinition,
)
from worldgen_kernel.models.contracts import (
    ComponentContract,
    ComponentMetadata,
    ComponentPurpose,
    EntityOperatorRegistry,
)
from worldgen_kernel.models.execution import (
    SystemResult,
    TemplateResult,
    ValidationResult,
)
from worldgen_kernel.models.pressure import (
    DeclarativePressure,
    Pressure,
    PressureContract,
)
from worldgen_kernel.models.statistics import (
    DeviationScore,
    DistributionState,
    PopulationMetrics,
    SimulationStatistics,
)
from worldgen_kernel.models.world import (
    Coordinates,
    Entity,
    EntityDraft,
    HistoryEvent,
    Prominence,
    Relationship,
    RelationshipDraft,
    pending_ref,
)

__all__ = [
    "ComponentContract",
    "ComponentMetadata",
    "ComponentPurpose",
    "Coordinates",
    "DeclarativePressure",
    "DeviationScore",
    "DistributionState",
    "DistributionTargets",
    "DomainSchema",
    "EngineConfig",
    "EnrichmentService",
    "Entity",
    "EntityDraft",
    "EntityKindDefinition",
    "EntityOperatorRegistry",
    "Era",
    "FeedbackLoop",
    "GrowthTemplate",
    "HistoryEvent",
    "ImageGenerationService",
    "NameGenerationService",
    "PopulationMetrics",
    "Pressure",
    "PressureContract",
    "Prominence",
    "Relationship",
    "RelationshipDraft",
    "RelationshipKindDefinition",
    "SimulationStatistics",
    "SimulationSystem",
    "SystemResult",
    "TagDefinition",
    "TemplateResult",
    "ValidationResult",
    "pending_ref",
]
