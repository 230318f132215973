"""Tests for the invariants checked around every scenario."""

from __future__ import annotations

import pytest

from conftest import ResettingOraclePool
from poolguard.core.config import Settings
from poolguard.core.types import PoolSnapshot, ScenarioKind, ScenarioSpec
from poolguard.invariants.context import CheckContext
from poolguard.invariants.pool_state import PoolStateInvariants
from poolguard.pipeline.orchestrator import ScenarioOrchestrator
from poolguard.pool.facade import PoolFacade
from poolguard.pool.simulated import SimulatedPool, deploy_simulated_pool
from poolguard.pool.sqrt_math import Q96, sqrt_ratio_at_tick


def _snapshot(**overrides) -> PoolSnapshot:
    data = dict(
        sqrt_price_x96=Q96,
        tick=5,
        locked=False,
        observation_index=3,
        observation_cardinality=64,
        reserves=(1000, 1000),
        timestamp=100,
        tick_cumulative=1000,
    )
    data.update(overrides)
    return PoolSnapshot(**data)


def _continuity(before: PoolSnapshot, after: PoolSnapshot, settings, identities) -> bool:
    ctx = CheckContext(
        spec=ScenarioSpec(kind=ScenarioKind.FLASH_LOAN),
        before=before,
        after=after,
        reverted=False,
        revert_reason=None,
        revert_category=None,
        identities=identities,
        settings=settings,
    )
    verdicts = {v.name: v.held for v in PoolStateInvariants().check(ctx)}
    return verdicts["oracle.accumulator_continuity"]


class TestAccumulatorContinuity:

    def test_steady_accumulation(self, settings, identities):
        after = _snapshot(timestamp=110, tick_cumulative=1050, observation_index=4)
        assert _continuity(_snapshot(), after, settings, identities) is True

    def test_cumulative_falls_at_positive_tick(self, settings, identities):
        after = _snapshot(timestamp=110, tick_cumulative=500, observation_index=4)
        assert _continuity(_snapshot(), after, settings, identities) is False

    def test_cumulative_may_fall_at_negative_tick(self, settings, identities):
        before = _snapshot(tick=-5)
        after = _snapshot(tick=-5, timestamp=110, tick_cumulative=950, observation_index=4)
        assert _continuity(before, after, settings, identities) is True

    def test_index_moves_backwards(self, settings, identities):
        after = _snapshot(timestamp=110, tick_cumulative=1050, observation_index=1)
        assert _continuity(_snapshot(), after, settings, identities) is False

    def test_index_moves_without_time_passing(self, settings, identities):
        after = _snapshot(observation_index=9)
        assert _continuity(_snapshot(), after, settings, identities) is False

    def test_single_write_in_current_block(self, settings, identities):
        after = _snapshot(observation_index=4)
        assert _continuity(_snapshot(), after, settings, identities) is True

    def test_cardinality_shrinks(self, settings, identities):
        after = _snapshot(observation_cardinality=32)
        assert _continuity(_snapshot(), after, settings, identities) is False


class TestResettingAccumulator:

    @pytest.fixture
    def above_par(self) -> Settings:
        """Pool seeded at tick 600 so the accumulator grows over time."""
        return Settings(_env_file=None, initial_sqrt_price_x96=sqrt_ratio_at_tick(600))

    def _run_flash(self, pool_cls, settings, identities):
        pool = deploy_simulated_pool(settings, identities, pool_cls=pool_cls)
        pool.advance_time(100)
        orchestrator = ScenarioOrchestrator(PoolFacade(pool), identities, settings)
        return orchestrator.run(ScenarioSpec(kind=ScenarioKind.FLASH_LOAN))

    def test_honest_accumulator_holds(self, above_par, identities):
        result = self._run_flash(SimulatedPool, above_par, identities)
        assert result.passed, result.violations
        assert result.before.tick == 600
        assert result.after.tick_cumulative == result.before.tick_cumulative == 600 * 100

    def test_reset_is_caught(self, above_par, identities):
        result = self._run_flash(ResettingOraclePool, above_par, identities)
        names = [v.name for v in result.violations]
        assert names == ["oracle.accumulator_continuity"]
        assert result.after.tick_cumulative == 0
