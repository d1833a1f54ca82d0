import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.orm import Session
from starlette import status

from assignment_engine.core.auth import require_auth_token
from assignment_engine.core.db import build_engine, build_session_factory, get_db
from assignment_engine.core.errors import CatalogLoadError
from assignment_engine.core.logging_config import configure_logging
from assignment_engine.core.settings import EngineSettings, get_settings
from assignment_engine.models.orm.base import Base
from assignment_engine.models.schemas.assignment import (
    AssignmentRequest,
    ExposureRequest,
    GuardrailCheckRequest,
)
from assignment_engine.models.schemas.experiment import ExperimentCreateModel
from assignment_engine.repositories.experiment_repo import ExperimentRepository
from assignment_engine.repositories.exposure_repo import SqlExposureLedger
from assignment_engine.services.catalog_service import CatalogLoader
from assignment_engine.services.experiment_service import ExperimentEngine

logger = logging.getLogger(__name__)


def get_engine(request: Request) -> ExperimentEngine:
    return request.app.state.engine


def get_catalog_loader(request: Request) -> CatalogLoader:
    return request.app.state.catalog_loader


router = APIRouter(dependencies=[Depends(require_auth_token)])


@router.get("/experiments/active", summary="List experiments currently taking traffic")
def get_active_experiments(
    org_id: str = Query(...),
    store_id: Optional[str] = Query(None),
    engine: ExperimentEngine = Depends(get_engine),
):
    experiments = engine.get_active_experiments(org_id, store_id)
    logger.info(
        "Retrieved active experiments",
        extra={"organization_id": org_id, "store_id": store_id, "count": len(experiments)},
    )
    return {"success": True, "data": experiments}


@router.post(
    "/experiments",
    status_code=status.HTTP_201_CREATED,
    summary="Add an experiment to the catalog store",
)
def post_experiments(experiment_data: ExperimentCreateModel, db: Session = Depends(get_db)):
    """
    Persists the experiment. It takes traffic after the next catalog reload.
    """
    repository = ExperimentRepository(db)
    try:
        row = repository.create_experiment(experiment_data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"success": True, "data": repository.to_definition(row)}


@router.post("/catalog/reload", summary="Reload the catalog from the database")
def reload_catalog(loader: CatalogLoader = Depends(get_catalog_loader)):
    try:
        count = loader.refresh()
    except CatalogLoadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"success": True, "data": {"loaded": count}}


@router.post("/assignments", summary="Get subject assignment")
def get_assignment(
    request: AssignmentRequest, engine: ExperimentEngine = Depends(get_engine)
):
    """
    Returns the subject's variant, or null data when the subject has none and
    the caller should fall back to its default behaviour.
    """
    assignment = engine.get_assignment(
        request.org_id, request.subject_key, request.experiment_key, request.store_id
    )
    return {"success": True, "data": assignment}


@router.post("/exposures", summary="Record a subject's exposure to its variant")
def record_exposure(request: ExposureRequest, engine: ExperimentEngine = Depends(get_engine)):
    result = engine.record_exposure(
        request.org_id,
        request.store_id,
        request.subject_key,
        request.experiment_key,
        request.surface,
    )
    if result is None:
        return {"success": True, "data": {"recorded": False}}
    return {"success": True, "data": result}


@router.post("/guardrails/check", summary="Compare a guardrail metric to its threshold")
def check_guardrail(
    request: GuardrailCheckRequest, engine: ExperimentEngine = Depends(get_engine)
):
    safe = engine.check_guardrail(
        request.experiment_key, request.metric, request.value, request.threshold
    )
    return {"success": True, "data": {"safe": safe}}


def create_app(settings: Optional[EngineSettings] = None) -> FastAPI:
    """
    Builds the HTTP wrapper around one engine instance.

    The engine, its catalog loader and the database session factory live on
    ``app.state`` for the lifetime of the application.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        listener = configure_logging(settings.log_level)
        db_engine = build_engine(settings.database_url, settings.ledger_timeout_seconds)
        Base.metadata.create_all(bind=db_engine)
        session_factory = build_session_factory(db_engine)

        ledger = SqlExposureLedger(session_factory) if settings.exposure_dedup else None
        engine = ExperimentEngine(exposure_ledger=ledger)

        app.state.session_factory = session_factory
        app.state.engine = engine
        app.state.catalog_loader = CatalogLoader(engine, session_factory)

        if settings.load_catalog_on_startup:
            try:
                app.state.catalog_loader.refresh()
            except CatalogLoadError:
                logger.error("Starting with an empty experiment catalog")

        try:
            yield
        finally:
            db_engine.dispose()
            listener.stop()

    app = FastAPI(
        title="Experiment assignment engine",
        description="Deterministic experiment bucketing, exposure and guardrail checks",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.dependency_overrides[get_settings] = lambda: settings
    app.include_router(router)

    @app.get("/metrics", include_in_schema=False)
    def metrics(engine: ExperimentEngine = Depends(get_engine)):
        return Response(
            generate_latest(engine.metrics.registry), media_type=CONTENT_TYPE_LATEST
        )

    return app


if __name__ == "__main__":
    uvicorn.run(
        "assignment_engine.main:create_app", factory=True, host="0.0.0.0", port=8000
    )
