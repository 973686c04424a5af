"""Engine settings loaded from the environment (prefix ``WORLDGEN_``)."""

import logging
from functools import lru_cache
from typing import ClassVar, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Scalar tuning for a world run."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="WORLDGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Run length
    max_ticks: int = Field(default=500, description="Hard tick limit")
    epochs_per_era: int = Field(default=2, description="Epochs allotted to each era")
    simulation_ticks_per_growth: int = Field(
        default=10, description="Simulation ticks run after each growth phase"
    )

    # Scale
    scale_factor: float = Field(default=1.0, gt=0, description="World size multiplier")
    target_entities_per_kind: int = Field(
        default=30, description="Desired population per entity kind"
    )

    # Guards
    relationship_budget: Optional[int] = Field(
        default=None, description="Max relationships created per simulation tick"
    )
    overlap_radius: float = Field(
        default=5.0, description="Distance under which same-kind entities are reported as overlapping"
    )
    saturation_multiplier: float = Field(
        default=1.0, description="Multiple of a registry's target count at which creation stops"
    )

    # Enrichment
    enrichment_batch_size: int = Field(default=15, description="Entities per enrichment call")
    max_entity_enrichments: Optional[int] = Field(
        default=None, description="Enrichment budget in partial mode"
    )

    # Diagnostics
    warning_log_path: str = Field(
        default=":memory:", description="SQLite path of the persistent warning log"
    )
    log_level: str = Field(default="INFO", description="Root log level")

    seed: Optional[int] = Field(default=None, description="RNG seed for reproducible runs")


@lru_cache
def get_settings() -> EngineSettings:
    """Get cached engine settings."""
    return EngineSettings()


def configure_logging(settings: Optional[EngineSettings] = None) -> None:
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("worldgen_kernel").setLevel(level)
