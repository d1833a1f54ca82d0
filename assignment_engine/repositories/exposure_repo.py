# repositories/exposure_repo.py

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from assignment_engine.models.orm.exposure import ExposureORM
from assignment_engine.models.schemas.exposure import ExposureRecord


class SqlExposureLedger:
    """Durable exposure ledger; the table's primary key is the dedup key."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def record_first(self, exposure: ExposureRecord) -> bool:
        """
        Inserts the exposure, returning False if one already exists for the
        same experiment key, subject and surface.
        """
        with self.session_factory() as db:
            try:
                db.add(ExposureORM(**exposure.model_dump()))
                db.commit()
                return True
            except IntegrityError:
                db.rollback()
                return False
            except SQLAlchemyError as e:
                db.rollback()
                raise RuntimeError("Exposure ledger write failed") from e
