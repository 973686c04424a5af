"""Pressures — bounded scalar forces that gate and bias world growth.

Two shapes live here: the runtime ``Pressure`` (growth is a callable over a
graph view) and the declarative document shape that the pressure
interpreter compiles into runtime pressures.
"""

from typing import Annotated, Any, Callable, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _Declarative(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PressureComponentRef(_Declarative):
    """A source or sink of a pressure: ``template.<id>``, ``system.<id>``, ``time.decay``..."""

    component: str
    delta: Optional[float] = None
    formula: Optional[str] = None


class PressureEffect(_Declarative):
    component: str
    effect: str = "enabler"
    threshold: Optional[float] = None
    factor: Optional[float] = None


class Equilibrium(_Declarative):
    expected_range: Tuple[float, float]
    resting_point: float


class PressureContract(_Declarative):
    sources: List[PressureComponentRef] = []
    sinks: List[PressureComponentRef] = []
    affects: List[PressureEffect] = []
    equilibrium: Optional[Equilibrium] = None


class Pressure(BaseModel):
    """A named scalar in [0, 100] updated once per epoch."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    name: str
    value: float = Field(ge=0, le=100, default=0.0)
    decay: float = 0.0
    growth: Callable[[Any], float]
    contract: Optional[PressureContract] = None

    @field_validator("value", mode="before")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return max(0.0, min(100.0, float(value)))


# --- Declarative document shape ---


class EntityCountSpec(_Declarative):
    type: Literal["entity_count"]
    kind: str
    subtype: Optional[str] = None
    status: Optional[str] = None


class RelationshipCountSpec(_Declarative):
    type: Literal["relationship_count"]
    relationship_kinds: List[str]


class TotalEntitiesSpec(_Declarative):
    type: Literal["total_entities"]


CountSpec = Annotated[
    Union[EntityCountSpec, RelationshipCountSpec, TotalEntitiesSpec],
    Field(discriminator="type"),
]


class _Factor(_Declarative):
    coefficient: float = 1.0
    cap: Optional[float] = None


class EntityCountFactor(_Factor):
    type: Literal["entity_count"]
    kind: str
    subtype: Optional[str] = None
    status: Optional[str] = None


class RelationshipCountFactor(_Factor):
    type: Literal["relationship_count"]
    relationship_kinds: List[str]


class TagCountFactor(_Factor):
    type: Literal["tag_count"]
    tags: List[str]


class RatioFactor(_Factor):
    type: Literal["ratio"]
    numerator: CountSpec
    denominator: CountSpec
    fallback_value: float = 0.0


class StatusRatioFactor(_Factor):
    type: Literal["status_ratio"]
    kind: str
    subtype: Optional[str] = None
    alive_status: str = "alive"


class CrossCultureRatioFactor(_Factor):
    type: Literal["cross_culture_ratio"]
    relationship_kinds: List[str]


PressureFactor = Annotated[
    Union[
        EntityCountFactor,
        RelationshipCountFactor,
        TagCountFactor,
        RatioFactor,
        StatusRatioFactor,
        CrossCultureRatioFactor,
    ],
    Field(discriminator="type"),
]


class GrowthSpec(_Declarative):
    base_growth: float = 0.0
    positive_feedback: List[PressureFactor] = []
    negative_feedback: List[PressureFactor] = []
    max_growth: Optional[float] = None


class DeclarativePressure(_Declarative):
    id: str
    name: str
    initial_value: float = Field(ge=0, le=100, default=0.0)
    decay: float = 0.0
    growth: GrowthSpec = GrowthSpec()
    contract: Optional[PressureContract] = None


class PressureDocument(_Declarative):
    pressures: List[DeclarativePressure]
