from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, PrimaryKeyConstraint, String

from .base import Base


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExposureORM(Base):
    """Ledger row marking the first exposure of a subject on a surface."""

    __tablename__ = "exposures"

    experiment_key = Column(String, nullable=False)
    subject_key = Column(String, nullable=False)
    surface = Column(String, nullable=False)

    organization_id = Column(String, nullable=False, index=True)
    store_id = Column(String, nullable=True)
    experiment_id = Column(String, nullable=False, index=True)
    variant_id = Column(String, nullable=False)
    exposed_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint(
            "experiment_key", "subject_key", "surface", name="exposure_pk"
        ),
    )
