import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter

logger = logging.getLogger(__name__)

UNKNOWN_STORE = "unknown"


class EngineMetrics:
    """
    Prometheus counters emitted by the engine.

    Each engine owns its own registry unless one is passed in, so several
    engines (or test cases) can live in the same process. Increments are
    best-effort: a failing label or collector is logged and dropped.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()

        self.assignments = Counter(
            "experiment_assignment_total",
            "New experiment assignments",
            ["experiment", "variant", "store_id"],
            registry=self.registry,
        )
        self.exposures = Counter(
            "experiment_exposure_total",
            "Exposure calls that resolved to a variant",
            ["experiment", "variant", "surface", "store_id"],
            registry=self.registry,
        )
        self.unique_exposures = Counter(
            "experiment_unique_exposure_total",
            "First exposures per experiment, subject and surface",
            ["experiment", "variant", "surface", "store_id"],
            registry=self.registry,
        )
        self.guardrail_breaches = Counter(
            "experiment_guardrail_breach_total",
            "Guardrail threshold breaches",
            ["experiment", "metric", "threshold"],
            registry=self.registry,
        )

    def record_assignment(self, experiment: str, variant: str, store_id: Optional[str]):
        self._inc(
            self.assignments,
            experiment=experiment,
            variant=variant,
            store_id=store_id or UNKNOWN_STORE,
        )

    def record_exposure(
        self,
        experiment: str,
        variant: str,
        surface: str,
        store_id: Optional[str],
        first_exposure: bool,
    ):
        labels = dict(
            experiment=experiment,
            variant=variant,
            surface=surface,
            store_id=store_id or UNKNOWN_STORE,
        )
        self._inc(self.exposures, **labels)
        if first_exposure:
            self._inc(self.unique_exposures, **labels)

    def record_guardrail_breach(self, experiment: str, metric: str, threshold: float):
        self._inc(
            self.guardrail_breaches,
            experiment=experiment,
            metric=metric,
            threshold=str(threshold),
        )

    @staticmethod
    def _inc(counter: Counter, **labels):
        try:
            counter.labels(**labels).inc()
        except Exception:
            logger.warning(
                "Dropping metric increment", extra={"labels": labels}, exc_info=True
            )
