import logging
import threading
from typing import Optional, Protocol, Set, Tuple

from assignment_engine.core.metrics import UNKNOWN_STORE, EngineMetrics
from assignment_engine.models.schemas.assignment import AssignmentResult, ExposureResult
from assignment_engine.models.schemas.exposure import ExposureRecord
from assignment_engine.services.activation import Clock, utc_now

logger = logging.getLogger(__name__)


class ExposureLedger(Protocol):
    def record_first(self, exposure: ExposureRecord) -> bool:
        """Return True if this is the first exposure for its dedup key."""


class InMemoryExposureLedger:
    """Deduplicates exposures for the lifetime of the process."""

    def __init__(self):
        self._lock = threading.Lock()
        self._seen: Set[Tuple[str, str, str]] = set()

    def record_first(self, exposure: ExposureRecord) -> bool:
        with self._lock:
            if exposure.dedup_key in self._seen:
                return False
            self._seen.add(exposure.dedup_key)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)


class ExposureRecorder:
    """
    Turns a resolved assignment into an exposure.

    Without a ledger every exposure is reported as recorded. With one, only
    the first exposure for (experiment key, subject key, surface) is; a
    failing ledger is logged and the exposure reported as not recorded.
    """

    def __init__(
        self,
        metrics: EngineMetrics,
        ledger: Optional[ExposureLedger] = None,
        clock: Clock = utc_now,
    ):
        self.metrics = metrics
        self.ledger = ledger
        self.clock = clock

    def record(
        self,
        org_id: str,
        store_id: Optional[str],
        subject_key: str,
        assignment: AssignmentResult,
        surface: str,
    ) -> ExposureResult:
        recorded = self._record_in_ledger(
            ExposureRecord(
                organization_id=org_id,
                store_id=store_id,
                subject_key=subject_key,
                experiment_id=assignment.experiment_id,
                experiment_key=assignment.experiment_key,
                variant_id=assignment.variant_id,
                surface=surface,
                exposed_at=self.clock(),
            )
        )

        self.metrics.record_exposure(
            experiment=assignment.experiment_key,
            variant=assignment.variant_key,
            surface=surface,
            store_id=store_id,
            first_exposure=recorded,
        )
        logger.info(
            "experiment exposure",
            extra={
                "organization_id": org_id,
                "experiment_id": assignment.experiment_id,
                "variant_id": assignment.variant_id,
                "subject_key": subject_key,
                "store_id": store_id or UNKNOWN_STORE,
                "surface": surface,
                "first_exposure": recorded,
            },
        )

        return ExposureResult(
            experiment_id=assignment.experiment_id,
            experiment_key=assignment.experiment_key,
            variant_id=assignment.variant_id,
            variant_key=assignment.variant_key,
            config=assignment.config,
            surface=surface,
            recorded=recorded,
        )

    def _record_in_ledger(self, exposure: ExposureRecord) -> bool:
        if self.ledger is None:
            return True
        try:
            return self.ledger.record_first(exposure)
        except Exception:
            logger.warning(
                "Exposure ledger unavailable; exposure not deduplicated",
                extra={
                    "experiment_key": exposure.experiment_key,
                    "surface": exposure.surface,
                },
                exc_info=True,
            )
            return False
