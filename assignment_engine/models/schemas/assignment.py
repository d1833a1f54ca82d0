import json
import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class AssignmentRequest(BaseModel):
    org_id: str
    store_id: Optional[str] = None
    subject_key: str
    experiment_key: str


class ExposureRequest(BaseModel):
    org_id: str
    store_id: str
    subject_key: str
    experiment_key: str
    surface: str


class GuardrailCheckRequest(BaseModel):
    experiment_key: str
    metric: str
    value: float
    threshold: float


class _ResolvedVariant(BaseModel):
    model_config = ConfigDict(frozen=True)

    experiment_id: str
    experiment_key: str
    variant_id: str
    variant_key: str
    config: str = Field(..., description="The variant's config payload, unparsed.")

    def decode_config(self) -> Optional[Any]:
        """
        Parses the variant config payload.

        A payload that is not valid JSON yields None, which callers should
        treat the same as having no assignment.
        """
        try:
            return json.loads(self.config)
        except (TypeError, ValueError):
            logger.warning(
                "Variant config payload is not valid JSON",
                extra={
                    "experiment_id": self.experiment_id,
                    "variant_id": self.variant_id,
                },
            )
            return None


class AssignmentResult(_ResolvedVariant):
    """A subject's variant for one experiment, as held in the assignment cache."""

    is_new_assignment: bool


class ExposureResult(_ResolvedVariant):
    surface: str
    recorded: bool = Field(
        ...,
        description="True when this was the first exposure for the experiment, subject and surface.",
    )
