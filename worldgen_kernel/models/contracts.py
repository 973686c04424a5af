"""Component contracts, metadata and entity operator registries.

Templates and systems are duck-typed (see ``worldgen_kernel.models.components``);
these models describe what they declare about themselves so that the
validator and the contract enforcer can reason about them.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class ComponentPurpose(str, Enum):
    ENTITY_CREATION = "entity_creation"
    RELATIONSHIP_CREATION = "relationship_creation"
    STATE_MODIFICATION = "state_modification"
    PRESSURE_ACCUMULATION = "pressure_accumulation"
    TAG_PROPAGATION = "tag_propagation"


class CountRange(BaseModel):
    min: int = 0
    max: Optional[int] = None


class PressureThreshold(BaseModel):
    name: str
    threshold: float


class EntityCountRequirement(BaseModel):
    kind: str
    subtype: Optional[str] = None
    min: int = 0
    max: Optional[int] = None


class EnabledBy(BaseModel):
    """Preconditions a component needs before it may run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    pressures: List[PressureThreshold] = []
    entity_counts: List[EntityCountRequirement] = []
    era: List[str] = []
    custom: Optional[Callable[[Any], bool]] = None


class EntityAffect(BaseModel):
    kind: str
    subtype: Optional[str] = None
    operation: str = "create"
    count: Optional[CountRange] = None


class RelationshipAffect(BaseModel):
    kind: str
    operation: str = "create"
    count: Optional[CountRange] = None


class PressureAffect(BaseModel):
    name: str
    delta: Optional[float] = None
    formula: Optional[str] = None


class ContractAffects(BaseModel):
    entities: List[EntityAffect] = []
    relationships: List[RelationshipAffect] = []
    pressures: List[PressureAffect] = []


class ComponentContract(BaseModel):
    """Declared purpose, preconditions and effects of a template or system."""

    purpose: ComponentPurpose
    enabled_by: Optional[EnabledBy] = None
    affects: ContractAffects = ContractAffects()


class ProducedKind(BaseModel):
    kind: str
    subtype: Optional[str] = None
    count: Optional[CountRange] = None


class ProducedRelationship(BaseModel):
    kind: str
    category: Optional[str] = None


class Produces(BaseModel):
    entity_kinds: List[ProducedKind] = []
    relationships: List[ProducedRelationship] = []


class ParameterSpec(BaseModel):
    value: Any
    min: Optional[float] = None
    max: Optional[float] = None
    description: str = ""


class ComponentMetadata(BaseModel):
    produces: Produces = Produces()
    tags: List[str] = []
    parameters: Dict[str, ParameterSpec] = {}

    def parameter(self, name: str, default: Any = None) -> Any:
        spec = self.parameters.get(name)
        return spec.value if spec is not None else default


class CreatorRef(BaseModel):
    template_id: str
    primary: bool = True
    target_count: int = 1


class ModifierRef(BaseModel):
    system_id: str
    operation: str = "modify"


class DistanceRange(BaseModel):
    min: float = 0.0
    max: float = 1.0


class LineageRule(BaseModel):
    """How a freshly created entity is tied to an existing ancestor."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    relationship_kind: str
    find_ancestor: Callable[[Any, Any], Any]
    distance_range: DistanceRange = DistanceRange()


class ExpectedDistribution(BaseModel):
    target_count: int
    prominence_distribution: Dict[str, float] = {}


class EntityOperatorRegistry(BaseModel):
    """Who creates, who modifies and how many of a kind (or kind:subtype) to expect."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: str
    subtype: Optional[str] = None
    creators: List[CreatorRef] = []
    modifiers: List[ModifierRef] = []
    lineage: Optional[LineageRule] = None
    expected_distribution: Optional[ExpectedDistribution] = None

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.subtype}" if self.subtype else self.kind
