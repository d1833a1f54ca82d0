"""Tests for exposure recording and deduplication."""

import logging
from unittest.mock import MagicMock

from assignment_engine.models.schemas.experiment import ExperimentStatus
from assignment_engine.services.experiment_service import ExperimentEngine
from assignment_engine.services.exposure_service import InMemoryExposureLedger
from tests.conftest import make_experiment


def exposure_count(engine, variant, surface, store_id="store-1", name="experiment_exposure_total"):
    return engine.metrics.registry.get_sample_value(
        name,
        {
            "experiment": "checkout-button",
            "variant": variant,
            "surface": surface,
            "store_id": store_id,
        },
    )


class TestRecordExposure:
    def test_exposure_resolves_assignment(self, engine):
        result = engine.record_exposure("org-1", "store-1", "user-42", "checkout-button", "pdp")
        assert result.variant_key == "treatment"
        assert result.experiment_id == "exp-1"
        assert result.surface == "pdp"
        assert result.recorded
        assert result.decode_config() == {"variant": "treatment"}

    def test_exposure_matches_assignment(self, engine):
        assignment = engine.get_assignment("org-1", "user-1", "checkout-button", "store-1")
        result = engine.record_exposure("org-1", "store-1", "user-1", "checkout-button", "pdp")
        assert result.variant_id == assignment.variant_id

    def test_no_assignment_no_exposure(self, engine):
        engine.load_experiments([make_experiment(allocation=50)])
        assert engine.record_exposure("org-1", "store-1", "user-42", "checkout-button", "pdp") is None
        assert exposure_count(engine, "treatment", "pdp") is None
        assert exposure_count(engine, "control", "pdp") is None

    def test_inactive_experiment_no_exposure(self, engine):
        engine.load_experiments([make_experiment(status=ExperimentStatus.COMPLETED)])
        assert engine.record_exposure("org-1", "store-1", "user-42", "checkout-button", "pdp") is None

    def test_without_ledger_every_call_is_recorded(self, engine):
        for _ in range(3):
            result = engine.record_exposure("org-1", "store-1", "user-42", "checkout-button", "pdp")
            assert result.recorded
        assert exposure_count(engine, "treatment", "pdp") == 3.0
        assert exposure_count(engine, "treatment", "pdp", name="experiment_unique_exposure_total") == 3.0

    def test_exposure_log_event(self, engine, caplog):
        with caplog.at_level(logging.INFO, logger="assignment_engine"):
            engine.record_exposure("org-1", "store-1", "user-42", "checkout-button", "pdp")
        [record] = [r for r in caplog.records if r.getMessage() == "experiment exposure"]
        assert record.organization_id == "org-1"
        assert record.variant_id == "exp-1-treatment"
        assert record.surface == "pdp"
        assert record.store_id == "store-1"


class TestExposureDedup:
    def make_engine(self, clock, ledger):
        engine = ExperimentEngine(clock=clock, exposure_ledger=ledger)
        engine.load_experiments([make_experiment()])
        return engine

    def test_first_exposure_per_surface(self, clock):
        ledger = InMemoryExposureLedger()
        engine = self.make_engine(clock, ledger)

        first = engine.record_exposure("org-1", "store-1", "user-42", "checkout-button", "pdp")
        repeat = engine.record_exposure("org-1", "store-1", "user-42", "checkout-button", "pdp")
        other_surface = engine.record_exposure("org-1", "store-1", "user-42", "checkout-button", "cart")

        assert first.recorded
        assert not repeat.recorded
        assert other_surface.recorded
        assert repeat.variant_key == first.variant_key
        assert len(ledger) == 2

    def test_metrics_split_total_and_unique(self, clock):
        engine = self.make_engine(clock, InMemoryExposureLedger())
        for _ in range(4):
            engine.record_exposure("org-1", "store-1", "user-42", "checkout-button", "pdp")
        assert exposure_count(engine, "treatment", "pdp") == 4.0
        assert exposure_count(engine, "treatment", "pdp", name="experiment_unique_exposure_total") == 1.0

    def test_failing_ledger_does_not_fail_exposure(self, clock):
        ledger = MagicMock()
        ledger.record_first.side_effect = RuntimeError("ledger offline")
        engine = self.make_engine(clock, ledger)

        result = engine.record_exposure("org-1", "store-1", "user-42", "checkout-button", "pdp")
        assert result.variant_key == "treatment"
        assert not result.recorded
        assert exposure_count(engine, "treatment", "pdp") == 1.0
        assert exposure_count(engine, "treatment", "pdp", name="experiment_unique_exposure_total") is None

    def test_ledger_receives_exposure_details(self, clock):
        ledger = MagicMock()
        ledger.record_first.return_value = True
        engine = self.make_engine(clock, ledger)

        engine.record_exposure("org-1", "store-1", "user-42", "checkout-button", "pdp")
        [call] = ledger.record_first.call_args_list
        exposure = call.args[0]
        assert exposure.dedup_key == ("checkout-button", "user-42", "pdp")
        assert exposure.organization_id == "org-1"
        assert exposure.variant_id == "exp-1-treatment"
        assert exposure.exposed_at == clock.now
