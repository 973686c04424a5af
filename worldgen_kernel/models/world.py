"""World Model — typed entities, relationships and the history timeline."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

TagValue = Union[str, bool, int, float]

PENDING_REF_PREFIX = "pending:"


def pending_ref(index: int) -> str:
    """Reference to the index-th entity created by the same template result."""
    return f"{PENDING_REF_PREFIX}{index}"


def _coerce_tags(value: Any) -> Any:
    # Templates may hand over a plain list of tag keys
    if value is None:
        return {}
    if isinstance(value, (list, tuple, set)):
        return {str(tag): True for tag in value}
    return value


class Prominence(str, Enum):
    FORGOTTEN = "forgotten"
    MARGINAL = "marginal"
    RECOGNIZED = "recognized"
    RENOWNED = "renowned"
    MYTHIC = "mythic"

    @property
    def rank(self) -> int:
        return _PROMINENCE_ORDER.index(self)


_PROMINENCE_ORDER = [
    Prominence.FORGOTTEN,
    Prominence.MARGINAL,
    Prominence.RECOGNIZED,
    Prominence.RENOWNED,
    Prominence.MYTHIC,
]


class Coordinates(BaseModel):
    """Position of an entity in the world's semantic space."""

    x: float
    y: float
    z: float = 0.0

    def distance_to(self, other: "Coordinates") -> float:
        return (
            (self.x - other.x) ** 2
            + (self.y - other.y) ** 2
            + (self.z - other.z) ** 2
        ) ** 0.5


class TemporalRange(BaseModel):
    start_tick: int
    end_tick: Optional[int] = None


class Link(BaseModel):
    """Denormalised copy of an outgoing relationship, cached on its source entity."""

    kind: str
    src: str
    dst: str
    strength: float = 0.5


class Entity(BaseModel):
    """A node in the world graph (a person, place, faction, artifact...)."""

    id: str
    kind: str
    subtype: str
    name: str
    description: str = ""
    status: str = "active"
    prominence: Prominence = Prominence.MARGINAL
    culture: Optional[str] = None
    tags: Dict[str, TagValue] = {}
    links: List[Link] = []
    coordinates: Coordinates
    temporal: Optional[TemporalRange] = None
    created_at: int = 0
    updated_at: int = 0

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> Any:
        return _coerce_tags(value)


class EntityDraft(BaseModel):
    """Creation payload returned by growth templates."""

    kind: str
    subtype: str
    id: Optional[str] = None
    name: Optional[str] = None
    description: str = ""
    status: str = "active"
    prominence: Prominence = Prominence.MARGINAL
    culture: Optional[str] = None
    tags: Dict[str, TagValue] = {}
    coordinates: Optional[Coordinates] = None
    temporal: Optional[TemporalRange] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> Any:
        return _coerce_tags(value)


class Relationship(BaseModel):
    """A directed, typed edge between two entities."""

    kind: str
    src: str
    dst: str
    strength: float = Field(ge=0, le=1, default=0.5)
    distance: Optional[float] = None
    category: Optional[str] = None
    status: Literal["active", "historical"] = "active"
    created_at: int = 0


class RelationshipDraft(BaseModel):
    """Relationship payload returned by templates and systems.

    ``src`` / ``dst`` may be pending references produced by ``pending_ref``.
    """

    kind: str
    src: str
    dst: str
    strength: float = Field(ge=0, le=1, default=0.5)
    distance: Optional[float] = None
    category: Optional[str] = None


class EntityModification(BaseModel):
    id: str
    changes: Dict[str, Any]


class HistoryEvent(BaseModel):
    """One entry on the world timeline."""

    tick: int
    era: str
    type: Literal["growth", "simulation", "special"]
    description: str
    entities_created: List[str] = []
    relationships_created: List[Relationship] = []
    entities_modified: List[str] = []


class LoreRecord(BaseModel):
    """Narrative text attached to an entity or relationship by enrichment."""

    type: str
    target_id: str
    text: str
    metadata: Dict[str, Any] = {}
