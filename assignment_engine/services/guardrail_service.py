import logging
from typing import Optional

from assignment_engine.core.metrics import EngineMetrics
from assignment_engine.models.schemas.experiment import ExperimentDefinition

logger = logging.getLogger(__name__)


class GuardrailMonitor:
    """Flags guardrail breaches. It never pauses or edits an experiment."""

    def __init__(self, metrics: EngineMetrics):
        self.metrics = metrics

    def check(
        self,
        experiment: Optional[ExperimentDefinition],
        metric: str,
        value: float,
        threshold: float,
    ) -> bool:
        """Return True when safe, False when ``value`` exceeds ``threshold``.

        Experiments that do not watch ``metric`` are always safe.
        """
        if experiment is None or experiment.guardrail_metric != metric:
            return True

        breach = value > threshold
        if not breach:
            return True

        self.metrics.record_guardrail_breach(experiment.key, metric, threshold)
        logger.warning(
            "Guardrail breach detected",
            extra={
                "experiment_id": experiment.id,
                "experiment_key": experiment.key,
                "metric": metric,
                "value": value,
                "threshold": threshold,
            },
        )
        return False
