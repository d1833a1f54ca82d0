from datetime import datetime, timedelta, timezone

import pytest

from assignment_engine.core.db import build_engine, build_session_factory
from assignment_engine.models.orm.base import Base
from assignment_engine.models.schemas.experiment import (
    ExperimentDefinition,
    ExperimentStatus,
    VariantDefinition,
)
from assignment_engine.repositories.experiment_repo import ExperimentRepository  # noqa: F401
from assignment_engine.repositories.exposure_repo import SqlExposureLedger  # noqa: F401
from assignment_engine.services.experiment_service import ExperimentEngine

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def make_experiment(
    key: str = "checkout-button",
    *,
    id: str = "exp-1",
    hash_salt: str = "v1",
    allocation: float = 100.0,
    weights=(("control", 50.0), ("treatment", 50.0)),
    status: ExperimentStatus = ExperimentStatus.RUNNING,
    **overrides,
) -> ExperimentDefinition:
    variants = [
        VariantDefinition(
            id=f"{id}-{variant_key}",
            key=variant_key,
            name=variant_key.title(),
            weight=weight,
            config_json=f'{{"variant": "{variant_key}"}}',
        )
        for variant_key, weight in weights
    ]
    return ExperimentDefinition(
        id=id,
        key=key,
        status=status,
        hash_salt=hash_salt,
        allocation=allocation,
        variants=variants,
        **overrides,
    )


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def engine(clock):
    engine = ExperimentEngine(clock=clock)
    engine.load_experiments([make_experiment()])
    yield engine
    engine.clear_cache()


@pytest.fixture
def session_factory():
    db_engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=db_engine)
    yield build_session_factory(db_engine)
    db_engine.dispose()
