import threading
from typing import Dict, Optional, Tuple

from assignment_engine.models.schemas.assignment import AssignmentResult

SubjectKey = Tuple[str, str]


class AssignmentCache:
    """
    In-process store of the assignments handed out so far.

    Keyed by (organization id, subject key), then by experiment id. An entry
    is written once and never changed afterwards; experiment relaunches get
    a new experiment id and therefore a new entry.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[SubjectKey, Dict[str, AssignmentResult]] = {}

    def get(
        self, org_id: str, subject_key: str, experiment_id: str
    ) -> Optional[AssignmentResult]:
        with self._lock:
            subject_entries = self._entries.get((org_id, subject_key))
            if subject_entries is None:
                return None
            return subject_entries.get(experiment_id)

    def put_if_absent(
        self, org_id: str, subject_key: str, assignment: AssignmentResult
    ) -> Tuple[AssignmentResult, bool]:
        """
        Stores ``assignment`` unless an entry for its experiment id exists.

        Returns the entry that ends up cached and whether this call inserted
        it. Entries left behind by an earlier experiment id under the same
        experiment key are dropped on insert.
        """
        with self._lock:
            subject_entries = self._entries.setdefault((org_id, subject_key), {})
            existing = subject_entries.get(assignment.experiment_id)
            if existing is not None:
                return existing, False

            stale_ids = [
                experiment_id
                for experiment_id, cached in subject_entries.items()
                if cached.experiment_key == assignment.experiment_key
            ]
            for experiment_id in stale_ids:
                del subject_entries[experiment_id]

            subject_entries[assignment.experiment_id] = assignment
            return assignment, True

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._entries.values())
