"""Tests for poolguard.pipeline.orchestrator — per-scenario flow and suites."""

from __future__ import annotations

import pytest

from conftest import UnguardedPool
from poolguard.core.errors import ConfigurationError, PoolBusy, UnsupportedScenario
from poolguard.core.types import CallerIdentities, ScenarioKind, ScenarioSpec
from poolguard.pipeline.orchestrator import ScenarioOrchestrator
from poolguard.pipeline.suites import default_suite
from poolguard.pool.facade import PoolFacade
from poolguard.pool.simulated import SimulatedPool


class TestReadiness:

    def test_ready(self, orchestrator):
        orchestrator.verify_ready()

    def test_uninitialized_pool(self, identities, settings):
        orchestrator = ScenarioOrchestrator(PoolFacade(SimulatedPool()), identities, settings)
        with pytest.raises(ConfigurationError, match="not initialized"):
            orchestrator.verify_ready()

    def test_duplicate_identities(self, facade, settings):
        ids = CallerIdentities(owner="0x1", attacker="0x1", user="0x2")
        with pytest.raises(ConfigurationError, match="distinct"):
            ScenarioOrchestrator(facade, ids, settings).verify_ready()

    def test_suite_refuses_unready_pool(self, identities, settings):
        orchestrator = ScenarioOrchestrator(PoolFacade(SimulatedPool()), identities, settings)
        with pytest.raises(ConfigurationError):
            orchestrator.run_suite(default_suite(settings))


class TestRun:

    def test_result_shape(self, orchestrator):
        result = orchestrator.run(ScenarioSpec(kind=ScenarioKind.FLASH_LOAN, name="flash"))
        assert result.spec.label == "flash"
        assert result.scenario_id
        assert result.duration_seconds >= 0
        names = {v.name for v in result.invariant_verdicts}
        assert {"pool.unlocked_before", "pool.unlocked_after", "oracle.accumulator_continuity"} <= names
        assert {"flash.settlement_outcome", "flash.reserve_accounting", "flash.borrower_accounting"} <= names

    def test_scenario_ids_unique(self, orchestrator):
        spec = ScenarioSpec(kind=ScenarioKind.FLASH_LOAN)
        assert orchestrator.run(spec).scenario_id != orchestrator.run(spec).scenario_id

    def test_unknown_parameter_leaves_pool_untouched(self, orchestrator, facade):
        before = orchestrator.facade.read_snapshot()
        with pytest.raises(UnsupportedScenario):
            orchestrator.run(ScenarioSpec(kind=ScenarioKind.SANDWICH, parameters={"bribe": 1}))
        assert orchestrator.facade.read_snapshot() == before

    def test_busy_pool(self, orchestrator):
        orchestrator._in_flight.acquire()
        try:
            with pytest.raises(PoolBusy):
                orchestrator.run(ScenarioSpec(kind=ScenarioKind.FLASH_LOAN))
        finally:
            orchestrator._in_flight.release()
        orchestrator.run(ScenarioSpec(kind=ScenarioKind.FLASH_LOAN))

    def test_unexpected_agent_error_propagates(self, orchestrator, monkeypatch):
        from poolguard.agents.sandwich import Sandwicher

        def explode(self, pool, params):
            raise RuntimeError("agent bug")

        monkeypatch.setattr(Sandwicher, "attack", explode)
        with pytest.raises(RuntimeError, match="agent bug"):
            orchestrator.run(ScenarioSpec(kind=ScenarioKind.SANDWICH))
        orchestrator.run(ScenarioSpec(kind=ScenarioKind.FLASH_LOAN))


class TestSuite:

    def test_default_suite_passes_on_guarded_pool(self, orchestrator, settings):
        report = orchestrator.run_suite(default_suite(settings))
        assert report.exit_code == 0, report.violation_names()
        assert [r.spec.label for r in report.results] == [s.label for s in default_suite(settings)]
        assert report.skipped == []

    def test_default_suite_fails_on_unguarded_pool(self, make_orchestrator, settings):
        report = make_orchestrator(UnguardedPool).run_suite(default_suite(settings))
        assert report.exit_code == 1
        assert any("lock.no_reentry_accepted" in name for name in report.violation_names())

    def test_unsupported_scenario_skipped(self, orchestrator):
        specs = [
            ScenarioSpec(kind=ScenarioKind.FLASH_LOAN),
            ScenarioSpec(kind=ScenarioKind.REENTRANCY, name="bad", parameters={"entry_point": 9}),
        ]
        report = orchestrator.run_suite(specs)
        assert len(report.results) == 1
        assert report.skipped[0].startswith("bad:")

    def test_suite_covers_every_kind(self, settings):
        assert {s.kind for s in default_suite(settings)} == set(ScenarioKind)
