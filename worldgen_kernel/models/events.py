"""Structured simulation events pushed through the engine's emitter."""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class ProgressEvent(BaseModel):
    type: Literal["progress"] = "progress"
    phase: str
    tick: int
    max_ticks: int
    epoch: int
    total_epochs: int
    entities: int
    relationships: int


class LogEvent(BaseModel):
    type: Literal["log"] = "log"
    level: Literal["debug", "info", "warning", "error"]
    message: str
    context: Dict[str, Any] = {}


class ValidationEvent(BaseModel):
    type: Literal["validation"] = "validation"
    status: Literal["success", "failed"]
    errors: List[str] = []
    warnings: List[str] = []


class EpochStartEvent(BaseModel):
    type: Literal["epoch_start"] = "epoch_start"
    epoch: int
    era_id: str
    era_name: str
    tick: int


class EpochStatsEvent(BaseModel):
    type: Literal["epoch_stats"] = "epoch_stats"
    epoch: int
    era: str
    entities: int
    relationships: int
    entities_by_kind: Dict[str, int] = {}
    pressures: Dict[str, float] = {}
    entities_created: int = 0
    relationships_created: int = 0


class GrowthPhaseEvent(BaseModel):
    type: Literal["growth_phase"] = "growth_phase"
    epoch: int
    target: int
    entities_created: int
    templates_applied: int
    attempts: int


class PopulationReportEvent(BaseModel):
    type: Literal["population_report"] = "population_report"
    summary: Dict[str, Any]
    outliers: Dict[str, List[str]] = {}
    broken_loops: List[str] = []


class TemplateUsageEvent(BaseModel):
    type: Literal["template_usage"] = "template_usage"
    usage: Dict[str, int]
    unused: List[str] = []


class TagHealthEvent(BaseModel):
    type: Literal["tag_health"] = "tag_health"
    coverage_ratio: float
    orphan_tags: List[str] = []
    oversaturated_tags: List[str] = []
    conflicts: int = 0


class SystemHealthEvent(BaseModel):
    type: Literal["system_health"] = "system_health"
    systems: Dict[str, Dict[str, int]]


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    reason: str
    tick: int
    epochs: int
    entities: int
    relationships: int
    history_events: int


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str
    phase: Optional[str] = None
    tick: Optional[int] = None


SimulationEvent = Annotated[
    Union[
        ProgressEvent,
        LogEvent,
        ValidationEvent,
        EpochStartEvent,
        EpochStatsEvent,
        GrowthPhaseEvent,
        PopulationReportEvent,
        TemplateUsageEvent,
        TagHealthEvent,
        SystemHealthEvent,
        CompleteEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]
