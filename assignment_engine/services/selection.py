"""Allocation and weighted variant selection.

Two independently salted hashes decide a subject's fate:

- the allocation hash decides whether the subject enters the experiment at
  all (the traffic ramp),
- the variant hash decides which arm an allocated subject lands in.

Because the variant hash does not involve the allocation percentage,
ramping allocation up or down never moves a subject that stays allocated to
a different variant.
"""

from typing import Optional

from assignment_engine.models.schemas.experiment import (
    ExperimentDefinition,
    VariantDefinition,
)
from assignment_engine.services.hashing import stable_hash

BUCKETS = 100


def allocation_bucket(experiment: ExperimentDefinition, subject_key: str) -> int:
    return stable_hash(f"{subject_key}:{experiment.hash_salt}") % BUCKETS


def variant_bucket(experiment: ExperimentDefinition, subject_key: str) -> int:
    return (
        stable_hash(f"{subject_key}:{experiment.key}:{experiment.hash_salt}")
        % BUCKETS
    )


def select_variant(
    experiment: ExperimentDefinition, subject_key: str
) -> Optional[VariantDefinition]:
    """Pick the subject's variant, or None when the subject is not allocated.

    Variants are walked in catalog order against cumulative weights. When the
    weights sum to less than 100 and the bucket falls past the last
    cumulative weight, the first variant is returned instead of dropping the
    subject.
    """
    if not experiment.variants:
        return None

    if allocation_bucket(experiment, subject_key) >= experiment.allocation:
        return None

    bucket = variant_bucket(experiment, subject_key)
    cumulative_weight = 0.0
    for variant in experiment.variants:
        cumulative_weight += variant.weight
        if bucket < cumulative_weight:
            return variant

    return experiment.variants[0]
