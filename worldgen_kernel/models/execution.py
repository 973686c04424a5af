"""Results returned by templates and systems, and their execution outcomes."""

from typing import Dict, List, Optional

from pydantic import BaseModel, field_validator

from worldgen_kernel.models.world import (
    Entity,
    EntityDraft,
    EntityModification,
    Relationship,
    RelationshipDraft,
)


class TemplateResult(BaseModel):
    """What a growth template wants added to the world."""

    entities: List[EntityDraft] = []
    relationships: List[RelationshipDraft] = []
    description: str = ""


class SystemResult(BaseModel):
    """What a simulation system wants changed for one tick."""

    relationships_added: List[RelationshipDraft] = []
    entities_modified: List[EntityModification] = []
    pressure_changes: Dict[str, float] = {}
    description: str = ""


class TemplateApplication(BaseModel):
    """Outcome of applying one template result to the graph."""

    template_id: str
    success: bool
    entity_ids: List[str] = []
    relationships: List[Relationship] = []
    description: str = ""
    warnings: List[str] = []
    error: Optional[str] = None


class SystemExecution(BaseModel):
    """Outcome of one system invocation inside a tick."""

    system_id: str
    success: bool
    modifier: float
    relationships: List[Relationship] = []
    relationships_dropped: int = 0
    entities_modified: List[str] = []
    pressure_changes: Dict[str, float] = {}
    description: str = ""
    warnings: List[str] = []
    error: Optional[str] = None


class ValidationResult(BaseModel):
    """Outcome of the framework validator."""

    valid: bool
    errors: List[str] = []
    warnings: List[str] = []

    @field_validator("errors", "warnings")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))


class ContractCheck(BaseModel):
    """Verdict of one contract enforcement check."""

    allowed: bool
    reason: str = ""


class TagHealthReport(BaseModel):
    total_entities: int = 0
    coverage_ratio: float = 0.0
    under_tagged: List[str] = []
    over_tagged: List[str] = []
    orphan_tags: List[str] = []
    oversaturated_tags: List[str] = []
    conflicts: List[str] = []
    usage: Dict[str, int] = {}


# --- Target selection ---


class TargetPreference(BaseModel):
    """Traits that multiply a candidate's score by ``boost``."""

    subtypes: List[str] = []
    tags: List[str] = []
    prominence: List[str] = []
    same_location_as: Optional[str] = None
    boost: float = 2.0


class TargetAvoidance(BaseModel):
    """Penalties and hard filters against over-connected candidates."""

    relationship_kinds: List[str] = []
    hub_penalty_strength: float = 1.0
    max_total_relationships: Optional[int] = None
    exclude_related_to: Optional[str] = None
    exclude_relationship_kind: Optional[str] = None


class DiversityTracking(BaseModel):
    tracking_id: str
    strength: float = 1.0


class TargetBias(BaseModel):
    prefer: Optional[TargetPreference] = None
    avoid: Optional[TargetAvoidance] = None
    diversity: Optional[DiversityTracking] = None
    saturation_threshold: float = 0.1


class TargetSelection(BaseModel):
    """Chosen targets, best first, with the scores that ranked them."""

    existing: List[Entity] = []
    candidates_evaluated: int = 0
    best_score: float = 0.0
    worst_score: float = 0.0
    avg_score: float = 0.0
    saturated: bool = False
