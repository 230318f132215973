"""Tests for TWAP math and the manipulation-resistance verdicts."""

from __future__ import annotations

from fractions import Fraction

import pytest

from conftest import SpotOraclePool, UnguardedPool
from poolguard.agents.protocol import ETHER
from poolguard.core.errors import RevertCategory
from poolguard.core.types import Observation, ScenarioKind, ScenarioSpec
from poolguard.invariants.twap import manipulation_bound, twap


def _verdicts(result) -> dict[str, bool]:
    return {v.name: v.held for v in result.invariant_verdicts}


class TestTwapMath:

    def test_exact_fraction(self):
        start = Observation(timestamp_seconds=0, tick_cumulative=0)
        end = Observation(timestamp_seconds=60, tick_cumulative=-90)
        assert twap(start, end) == Fraction(-3, 2)

    def test_zero_interval(self):
        obs = Observation(timestamp_seconds=5, tick_cumulative=0)
        with pytest.raises(ValueError):
            twap(obs, obs)

    def test_bound(self):
        assert manipulation_bound(100, 12, 60) == 20
        assert manipulation_bound(7, 12, 60) == Fraction(7, 5)

    def test_bound_requires_window_longer_than_block(self):
        with pytest.raises(ValueError):
            manipulation_bound(100, 60, 60)


class TestOracleScenario:

    def test_honest_oracle_holds(self, orchestrator):
        result = orchestrator.run(ScenarioSpec(kind=ScenarioKind.ORACLE_MANIPULATION))
        verdicts = _verdicts(result)
        assert result.passed, result.violations
        assert verdicts["oracle.twap_bound"] is True
        assert verdicts["oracle.history_stable"] is True
        assert verdicts["oracle.observe_idempotent"] is True
        assert verdicts["oracle.accumulator_continuity"] is True
        assert result.after.tick < result.before.tick
        twap_evidence = result.evidence["twap"]
        assert twap_evidence["twap_before"] != twap_evidence["twap_after"]

    def test_upward_manipulation_holds(self, orchestrator):
        result = orchestrator.run(ScenarioSpec(
            kind=ScenarioKind.ORACLE_MANIPULATION,
            parameters={"zero_for_one": 0, "amount": 500 * ETHER, "window": 120, "block_duration": 12},
        ))
        assert result.passed, result.violations
        assert result.after.tick > result.before.tick

    def test_spot_oracle_is_caught(self, make_orchestrator):
        orchestrator = make_orchestrator(SpotOraclePool)
        result = orchestrator.run(ScenarioSpec(kind=ScenarioKind.ORACLE_MANIPULATION))
        verdicts = _verdicts(result)
        assert verdicts["oracle.twap_bound"] is False
        assert verdicts["oracle.history_stable"] is False

    def test_window_beyond_history_is_a_warning(self, orchestrator):
        result = orchestrator.run(ScenarioSpec(
            kind=ScenarioKind.ORACLE_MANIPULATION,
            parameters={"window": 3600, "warmup_seconds": 0},
        ))
        assert result.warnings
        assert result.passed
        assert "oracle.twap_bound" not in _verdicts(result)
        assert result.evidence.get("twap") is None


class TestFlashFundedManipulation:
    """The swap input is borrowed from the pool and swapped inside the flash."""

    spec = ScenarioSpec(kind=ScenarioKind.ORACLE_MANIPULATION, parameters={"flash_funded": 1})

    def test_guarded_pool_blocks_the_swap(self, orchestrator):
        result = orchestrator.run(self.spec)
        assert result.passed, result.violations
        assert not result.reverted
        assert result.evidence["manipulation_blocked"] is True

        swap = result.evidence["swaps"][0]
        assert swap["reverted"] is True
        assert swap["reason"] == "LOK"

        assert result.after.tick == result.before.tick
        twap_evidence = result.evidence["twap"]
        assert twap_evidence["twap_before"] == twap_evidence["twap_after"]
        assert _verdicts(result)["lock.no_reentry_accepted"] is True

    def test_guarded_pool_keeps_only_the_fee(self, orchestrator):
        result = orchestrator.run(self.spec)
        fee = 3 * ETHER  # 0.3% of the 1000 token0 borrowed
        assert result.evidence["fee0"] == fee
        before0, before1 = result.before.reserves
        assert result.after.reserves == (before0 + fee, before1)
        assert not result.after.locked

    def test_unguarded_pool_accepts_the_reentry(self, make_orchestrator):
        orchestrator = make_orchestrator(UnguardedPool)
        result = orchestrator.run(self.spec)
        verdicts = _verdicts(result)
        assert verdicts["lock.no_reentry_accepted"] is False
        assert result.reverted
        assert result.revert_category is RevertCategory.INSUFFICIENT_REPAYMENT
        assert result.after.reserves == result.before.reserves
        assert result.evidence["swaps"][0]["reverted"] is False
        assert "twap" not in result.evidence
