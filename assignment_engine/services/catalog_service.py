import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from assignment_engine.core.errors import CatalogLoadError
from assignment_engine.repositories.experiment_repo import ExperimentRepository
from assignment_engine.services.experiment_service import ExperimentEngine

logger = logging.getLogger(__name__)


class CatalogLoader:
    """Refreshes an engine's catalog from the experiments table."""

    def __init__(self, engine: ExperimentEngine, session_factory: sessionmaker):
        self.engine = engine
        self.session_factory = session_factory

    def refresh(self) -> int:
        """
        Reads every experiment and swaps it into the engine.

        Raises CatalogLoadError if the rows cannot be read or converted; the
        engine keeps its previous catalog in that case.
        """
        try:
            with self.session_factory() as db:
                experiments = ExperimentRepository(db).list_experiments()
        except SQLAlchemyError as e:
            logger.error("Could not read experiment catalog", exc_info=True)
            raise CatalogLoadError(f"Could not read experiment catalog: {e}") from e
        except ValueError as e:
            logger.error("Experiment catalog contains invalid rows", exc_info=True)
            raise CatalogLoadError(f"Invalid experiment row: {e}") from e

        return self.engine.load_experiments(experiments)
