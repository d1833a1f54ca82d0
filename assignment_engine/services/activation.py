from datetime import datetime, timezone
from typing import Callable, Optional

from assignment_engine.models.schemas.experiment import (
    ExperimentDefinition,
    ExperimentStatus,
)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_active(experiment: ExperimentDefinition, now: datetime) -> bool:
    """True when the experiment is RUNNING and ``now`` is inside its window.

    Both window bounds are inclusive. A naive ``now`` is read as UTC.
    """
    if experiment.status != ExperimentStatus.RUNNING:
        return False

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    if experiment.start_at and now < experiment.start_at:
        return False

    if experiment.stop_at and now > experiment.stop_at:
        return False

    return True


def is_store_eligible(experiment: ExperimentDefinition, store_id: Optional[str]) -> bool:
    # No store scope on the experiment means every store.
    return experiment.store_id is None or experiment.store_id == store_id


def is_eligible(
    experiment: ExperimentDefinition, now: datetime, store_id: Optional[str] = None
) -> bool:
    return is_store_eligible(experiment, store_id) and is_active(experiment, now)
