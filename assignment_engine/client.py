from typing import Any, Dict, List, Optional

from assignment_engine.models.schemas.assignment import AssignmentResult
from assignment_engine.models.schemas.experiment import ExperimentDefinition
from assignment_engine.services.experiment_service import ExperimentEngine

DEFAULT_SURFACE = "sdk"


class ExperimentClient:
    """
    Convenience wrapper bound to one organization, store and subject.

    Keeps its own memo of resolved assignments so repeated lookups from the
    same caller skip the engine entirely.
    """

    def __init__(
        self,
        engine: ExperimentEngine,
        org_id: str,
        subject_key: str,
        store_id: Optional[str] = None,
    ):
        self.engine = engine
        self.org_id = org_id
        self.subject_key = subject_key
        self.store_id = store_id
        self._assignments: Dict[str, AssignmentResult] = {}

    def get_assignment(self, experiment_key: str) -> Optional[AssignmentResult]:
        if experiment_key in self._assignments:
            return self._assignments[experiment_key]

        assignment = self.engine.get_assignment(
            self.org_id, self.subject_key, experiment_key, self.store_id
        )
        if assignment is not None:
            self._assignments[experiment_key] = assignment
        return assignment

    def record_exposure(self, experiment_key: str, surface: str = DEFAULT_SURFACE) -> bool:
        result = self.engine.record_exposure(
            self.org_id, self.store_id, self.subject_key, experiment_key, surface
        )
        return result is not None and result.recorded

    def get_experiment_config(
        self, experiment_key: str, surface: str = DEFAULT_SURFACE
    ) -> Optional[Any]:
        """Returns the decoded variant config and records the exposure.

        None means the caller should use its default behaviour. An
        undecodable config counts as no assignment, so no exposure is
        recorded for it.
        """
        assignment = self.get_assignment(experiment_key)
        if assignment is None:
            return None

        config = assignment.decode_config()
        if config is None:
            return None

        self.record_exposure(experiment_key, surface)
        return config

    def is_in_variant(self, experiment_key: str, variant_key: str) -> bool:
        assignment = self.get_assignment(experiment_key)
        return assignment is not None and assignment.variant_key == variant_key

    def get_active_experiments(self) -> List[ExperimentDefinition]:
        return self.engine.get_active_experiments(self.org_id, self.store_id)

    def clear_cache(self):
        self._assignments.clear()
