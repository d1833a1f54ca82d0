from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from assignment_engine.models.schemas.experiment import ExperimentStatus

from .base import Base


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# --- Experiment Model ---
class ExperimentORM(Base):
    __tablename__ = "experiments"

    # --- Core Identifiers ---
    experiment_id = Column(String, primary_key=True, index=True)
    # Relaunching under the same key means replacing the row with a new id.
    key = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    store_id = Column(String, nullable=True, index=True)

    # --- Lifecycle ---
    status = Column(
        Enum(ExperimentStatus), default=ExperimentStatus.DRAFT, nullable=False
    )
    updated_at = Column(DateTime, default=_utc_now, onupdate=_utc_now)
    start_at = Column(DateTime(timezone=True), nullable=True)
    stop_at = Column(DateTime(timezone=True), nullable=True)

    # --- Bucketing ---
    hash_salt = Column(String, nullable=False)
    allocation = Column(Float, nullable=False, default=100.0)
    guardrail_metric = Column(String, nullable=True)

    # One Experiment has many Variants, in bucketing order
    variants = relationship(
        "VariantORM",
        back_populates="experiment",
        order_by="VariantORM.position",
        cascade="all, delete-orphan",
    )


# --- Variant Model ---
class VariantORM(Base):
    __tablename__ = "variants"

    variant_id = Column(String, primary_key=True)
    key = Column(String, nullable=False)
    name = Column(String, nullable=False)
    weight = Column(Float, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    # Stored verbatim; the engine never parses it.
    config_json = Column(Text, nullable=False, default="{}")

    experiment_id = Column(
        String, ForeignKey("experiments.experiment_id"), nullable=False, index=True
    )

    experiment = relationship("ExperimentORM", back_populates="variants")
