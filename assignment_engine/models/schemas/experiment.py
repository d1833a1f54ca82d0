import enum
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ExperimentStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"


class CatalogModel(BaseModel):
    """Catalog payloads arrive camelCased from the loader; Python code uses snake_case."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class VariantDefinition(CatalogModel):
    """One treatment arm of an experiment."""

    id: str
    key: str
    name: Optional[str] = None
    weight: float = Field(
        ...,
        ge=0.0,
        le=100.0,
        description="Share of allocated traffic, in percent.",
    )
    # Opaque to the engine; decoded by whoever knows the experiment's schema.
    config_json: str = "{}"


class ExperimentDefinition(CatalogModel):
    """An experiment as it appears in a catalog snapshot."""

    id: str
    key: str = Field(..., min_length=1)
    name: Optional[str] = None
    description: Optional[str] = None
    status: ExperimentStatus
    start_at: Optional[datetime] = None
    stop_at: Optional[datetime] = None
    hash_salt: str
    allocation: float = Field(
        100.0,
        ge=0.0,
        le=100.0,
        description="Percentage of eligible subjects that enter the experiment at all.",
    )
    guardrail_metric: Optional[str] = None
    store_id: Optional[str] = None
    variants: List[VariantDefinition] = Field(default_factory=list)

    @field_validator("start_at", "stop_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_window_and_variants(self) -> "ExperimentDefinition":
        if self.start_at and self.stop_at and self.stop_at < self.start_at:
            raise ValueError(
                f"Experiment {self.key} stops ({self.stop_at}) before it starts ({self.start_at})"
            )
        keys = [variant.key for variant in self.variants]
        if len(keys) != len(set(keys)):
            raise ValueError(f"Variant keys must be unique within experiment {self.key}")
        return self

    @property
    def total_weight(self) -> float:
        return sum(variant.weight for variant in self.variants)


# --- Catalog administration ---


class VariantCreateModel(BaseModel):
    key: str
    name: str
    weight: float = Field(..., ge=0.0, le=100.0)
    config_json: str = "{}"


class ExperimentCreateModel(BaseModel):
    """Input for creating a catalog row (API Input)."""

    key: str = Field(..., min_length=1)
    name: str
    description: Optional[str] = None
    status: ExperimentStatus = ExperimentStatus.DRAFT
    store_id: Optional[str] = None
    start_at: Optional[datetime] = None
    stop_at: Optional[datetime] = None
    hash_salt: Optional[str] = Field(
        None, description="Defaults to a random salt when omitted."
    )
    guardrail_metric: Optional[str] = None
    allocation: float = Field(100.0, ge=0.0, le=100.0)
    variants: List[VariantCreateModel]
