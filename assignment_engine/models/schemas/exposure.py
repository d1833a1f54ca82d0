from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ExposureRecord(BaseModel):
    """An exposure handed to the exposure ledger for deduplication."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    organization_id: str
    store_id: Optional[str] = None
    subject_key: str
    experiment_id: str
    experiment_key: str
    variant_id: str
    surface: str
    exposed_at: datetime

    @property
    def dedup_key(self) -> tuple:
        return (self.experiment_key, self.subject_key, self.surface)
