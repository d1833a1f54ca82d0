# services/experiment_service.py

import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from assignment_engine.core.errors import CatalogLoadError
from assignment_engine.core.metrics import UNKNOWN_STORE, EngineMetrics
from assignment_engine.models.schemas.assignment import AssignmentResult, ExposureResult
from assignment_engine.models.schemas.experiment import ExperimentDefinition
from assignment_engine.services.activation import Clock, is_eligible, utc_now
from assignment_engine.services.assignment_cache import AssignmentCache
from assignment_engine.services.exposure_service import ExposureLedger, ExposureRecorder
from assignment_engine.services.guardrail_service import GuardrailMonitor
from assignment_engine.services.selection import select_variant

logger = logging.getLogger(__name__)

CatalogEntry = Union[ExperimentDefinition, Mapping[str, Any]]


class ExperimentEngine:
    """
    Decides which variant of a running experiment a subject belongs to.

    The catalog is an immutable snapshot swapped wholesale by
    ``load_experiments``; readers always see either the old or the new
    snapshot. Assignments are memoized per organization and subject so a
    subject keeps its variant for as long as the experiment keeps its id.
    """

    def __init__(
        self,
        clock: Clock = utc_now,
        metrics: Optional[EngineMetrics] = None,
        exposure_ledger: Optional[ExposureLedger] = None,
        cache: Optional[AssignmentCache] = None,
    ):
        self.clock = clock
        self.metrics = metrics if metrics is not None else EngineMetrics()
        self.cache = cache if cache is not None else AssignmentCache()
        self.exposures = ExposureRecorder(self.metrics, exposure_ledger, clock)
        self.guardrails = GuardrailMonitor(self.metrics)
        self._experiments: Mapping[str, ExperimentDefinition] = MappingProxyType({})

    # --- Catalog ---

    def load_experiments(self, experiments: Iterable[CatalogEntry]) -> int:
        """
        Replaces the catalog with ``experiments``.

        The whole batch is validated before anything is swapped in. Raises
        CatalogLoadError on malformed entries or duplicate keys, in which
        case the current catalog stays in place.
        """
        table: Dict[str, ExperimentDefinition] = {}
        try:
            for entry in experiments:
                experiment = ExperimentDefinition.model_validate(entry)
                if experiment.key in table:
                    raise CatalogLoadError(
                        f"Duplicate experiment key in catalog: {experiment.key}"
                    )
                table[experiment.key] = experiment
                if experiment.variants and experiment.total_weight < 100:
                    logger.warning(
                        "Variant weights sum below 100; first variant takes the remainder",
                        extra={
                            "experiment_key": experiment.key,
                            "total_weight": experiment.total_weight,
                        },
                    )
        except ValidationError as e:
            logger.error("Rejected experiment catalog", extra={"errors": e.error_count()})
            raise CatalogLoadError(f"Invalid experiment definition: {e}") from e
        except TypeError as e:
            logger.error("Rejected experiment catalog", exc_info=True)
            raise CatalogLoadError(f"Invalid experiment catalog: {e}") from e
        except CatalogLoadError:
            logger.error("Rejected experiment catalog", exc_info=True)
            raise

        self._experiments = MappingProxyType(table)
        logger.info(f"Loaded {len(table)} experiments")
        return len(table)

    @property
    def experiments(self) -> Mapping[str, ExperimentDefinition]:
        return self._experiments

    def get_experiment(self, experiment_key: str) -> Optional[ExperimentDefinition]:
        return self._experiments.get(experiment_key)

    def get_active_experiments(
        self, org_id: str, store_id: Optional[str] = None
    ) -> List[ExperimentDefinition]:
        # The catalog is not organization scoped; org_id is kept for callers' symmetry.
        now = self.clock()
        return [
            experiment
            for experiment in self._experiments.values()
            if is_eligible(experiment, now, store_id)
        ]

    # --- Assignment ---

    def get_assignment(
        self,
        org_id: str,
        subject_key: str,
        experiment_key: str,
        store_id: Optional[str] = None,
    ) -> Optional[AssignmentResult]:
        """
        Gets a subject's variant assignment, ensuring stickiness.

        1. Check that the experiment exists and is eligible right now.
        2. Return the cached assignment for the experiment's current id,
           as a copy flagged is_new_assignment=False; the cached entry
           itself keeps the flag it was stored with.
        3. Otherwise bucket the subject and cache the result.

        Returns None whenever the subject has no variant; unallocated
        subjects are not cached so allocation changes apply immediately.
        """
        experiment = self._experiments.get(experiment_key)
        if experiment is None or not is_eligible(experiment, self.clock(), store_id):
            return None

        cached = self.cache.get(org_id, subject_key, experiment.id)
        if cached is not None:
            return cached.model_copy(update={"is_new_assignment": False})

        variant = select_variant(experiment, subject_key)
        if variant is None:
            return None

        assignment, inserted = self.cache.put_if_absent(
            org_id,
            subject_key,
            AssignmentResult(
                experiment_id=experiment.id,
                experiment_key=experiment.key,
                variant_id=variant.id,
                variant_key=variant.key,
                config=variant.config_json,
                is_new_assignment=True,
            ),
        )
        if not inserted:
            # A concurrent call bucketed the same subject first.
            return assignment.model_copy(update={"is_new_assignment": False})

        self.metrics.record_assignment(experiment.key, variant.key, store_id)
        logger.info(
            "experiment assignment",
            extra={
                "organization_id": org_id,
                "experiment_id": experiment.id,
                "variant_id": variant.id,
                "subject_key": subject_key,
                "store_id": store_id or UNKNOWN_STORE,
            },
        )
        return assignment

    def record_exposure(
        self,
        org_id: str,
        store_id: Optional[str],
        subject_key: str,
        experiment_key: str,
        surface: str,
    ) -> Optional[ExposureResult]:
        """Record that the subject saw its variant on ``surface``.

        Subjects without an assignment are never exposed; None is returned
        and nothing is emitted.
        """
        assignment = self.get_assignment(org_id, subject_key, experiment_key, store_id)
        if assignment is None:
            return None

        return self.exposures.record(org_id, store_id, subject_key, assignment, surface)

    # --- Guardrails ---

    def check_guardrail(
        self, experiment_key: str, metric: str, value: float, threshold: float
    ) -> bool:
        return self.guardrails.check(
            self._experiments.get(experiment_key), metric, value, threshold
        )

    def clear_cache(self):
        """Drop all memoized assignments (test teardown, operator reset)."""
        self.cache.clear()
