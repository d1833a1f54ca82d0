import secrets
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from assignment_engine.models.orm.experiment import ExperimentORM, VariantORM
from assignment_engine.models.schemas.experiment import (
    ExperimentCreateModel,
    ExperimentDefinition,
    VariantDefinition,
)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ExperimentRepository:
    def __init__(self, db: Session):
        """Initializes the repository with a database session."""
        self.db = db

    def create_experiment(self, experiment_data: ExperimentCreateModel) -> ExperimentORM:
        """
        Creates an experiment row and its variants in one transaction.

        Variants keep the order they were given in; that order is the
        bucketing order. Raises ValueError for definitions the engine would
        reject and for duplicate keys.
        """
        experiment_id = str(uuid.uuid4())
        db_experiment = ExperimentORM(
            experiment_id=experiment_id,
            key=experiment_data.key,
            name=experiment_data.name,
            description=experiment_data.description,
            store_id=experiment_data.store_id,
            status=experiment_data.status,
            start_at=_as_utc(experiment_data.start_at),
            stop_at=_as_utc(experiment_data.stop_at),
            hash_salt=experiment_data.hash_salt or secrets.token_hex(8),
            allocation=experiment_data.allocation,
            guardrail_metric=experiment_data.guardrail_metric,
            variants=[
                VariantORM(
                    variant_id=str(uuid.uuid4()),
                    key=variant.key,
                    name=variant.name,
                    weight=variant.weight,
                    position=position,
                    config_json=variant.config_json,
                )
                for position, variant in enumerate(experiment_data.variants)
            ],
        )

        # Fail before writing anything the catalog could not load.
        self.to_definition(db_experiment)

        try:
            self.db.add(db_experiment)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ValueError(
                f"Experiment key already exists: {experiment_data.key}"
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RuntimeError(
                f"A database error occurred during experiment creation: {e}"
            ) from e

        self.db.refresh(db_experiment)
        return db_experiment

    def list_experiments(self) -> List[ExperimentDefinition]:
        """Loads the full catalog, variants in bucketing order."""
        stmt = select(ExperimentORM).options(selectinload(ExperimentORM.variants))
        return [self.to_definition(row) for row in self.db.scalars(stmt).all()]

    @staticmethod
    def to_definition(row: ExperimentORM) -> ExperimentDefinition:
        return ExperimentDefinition(
            id=row.experiment_id,
            key=row.key,
            name=row.name,
            description=row.description,
            status=row.status,
            start_at=row.start_at,
            stop_at=row.stop_at,
            hash_salt=row.hash_salt,
            allocation=row.allocation if row.allocation is not None else 100.0,
            guardrail_metric=row.guardrail_metric,
            store_id=row.store_id,
            variants=[
                VariantDefinition(
                    id=variant.variant_id,
                    key=variant.key,
                    name=variant.name,
                    weight=variant.weight,
                    config_json=variant.config_json or "{}",
                )
                for variant in sorted(row.variants, key=lambda v: v.position or 0)
            ],
        )
