"""Tests for flash settlement terms, case classification and verdicts."""

from __future__ import annotations

import pytest

from conftest import NoRepaymentCheckPool
from poolguard.agents.protocol import ETHER
from poolguard.core.errors import RevertCategory
from poolguard.core.types import PoolSnapshot, ScenarioKind, ScenarioSpec
from poolguard.invariants.flash import FlashCase, FlashTerms

FEE = 3 * 10**17  # 0.3% of 100 units


def _flash(**params) -> ScenarioSpec:
    return ScenarioSpec(kind=ScenarioKind.FLASH_LOAN, parameters=params)


def _verdicts(result) -> dict[str, bool]:
    return {v.name: v.held for v in result.invariant_verdicts}


class TestFlashTerms:

    def test_default_repayment_includes_fee(self):
        terms = FlashTerms.from_params({"amount0": 100 * ETHER, "amount1": 100 * ETHER}, 3000)
        assert terms.fee0 == FEE
        assert terms.repay0 == 100 * ETHER + FEE
        assert terms.net_paid == (FEE, FEE)

    def test_fee_rounds_up(self):
        terms = FlashTerms.from_params({"amount0": 1, "amount1": 0}, 3000)
        assert terms.fee0 == 1
        assert terms.fee1 == 0

    @pytest.mark.parametrize(
        "params,expected",
        [
            ({"amount0": 100, "amount1": 100}, FlashCase.FULL_REPAYMENT),
            ({"amount0": 100, "amount1": 100, "repay0": 100, "repay1": 101}, FlashCase.UNDER_REPAYMENT),
            ({"amount0": 5000, "amount1": 0}, FlashCase.DRAIN),
            ({"amount0": 100, "amount1": 0, "repay0": 10_000}, FlashCase.UNFUNDED),
        ],
    )
    def test_classify(self, params, expected):
        before = PoolSnapshot(
            sqrt_price_x96=2**96, tick=0, locked=False,
            observation_index=0, observation_cardinality=1,
            reserves=(1000, 1000), holder_balances={"0xb": (50, 50)},
        )
        terms = FlashTerms.from_params(params, 3000)
        assert terms.classify(before, "0xb") is expected


class TestFlashScenarios:

    def test_full_repayment_settles(self, orchestrator, identities):
        result = orchestrator.run(_flash(amount0=100 * ETHER, amount1=100 * ETHER,
                                         repay0=100 * ETHER + FEE, repay1=100 * ETHER + FEE))
        assert result.passed, result.violations
        assert not result.reverted
        before, after = result.before, result.after
        assert after.reserves == (before.reserves[0] + FEE, before.reserves[1] + FEE)
        b0, b1 = before.balance_of(identities.attacker)
        assert after.balance_of(identities.attacker) == (b0 - FEE, b1 - FEE)

    def test_under_repayment_fails(self, orchestrator):
        result = orchestrator.run(_flash(amount0=100 * ETHER, amount1=100 * ETHER,
                                         repay0=100 * ETHER, repay1=100 * ETHER))
        assert result.passed, result.violations
        assert result.reverted
        assert result.revert_category is RevertCategory.INSUFFICIENT_REPAYMENT
        assert result.after.reserves == result.before.reserves
        assert _verdicts(result)["pool.reverted_reserves_unchanged"] is True

    def test_drain_fails(self, orchestrator, settings):
        drain = 2 * settings.initial_liquidity
        result = orchestrator.run(_flash(amount0=drain, amount1=drain))
        assert result.passed, result.violations
        assert result.reverted
        assert result.revert_category is RevertCategory.REVERTED
        assert result.revert_reason == "TF"

    def test_unfunded_borrower_fails(self, orchestrator, settings):
        result = orchestrator.run(_flash(amount0=100 * ETHER, amount1=0, repay0=3 * settings.attacker_funding))
        assert result.passed, result.violations
        assert result.reverted

    def test_missing_repayment_check_is_caught(self, make_orchestrator):
        orchestrator = make_orchestrator(NoRepaymentCheckPool)
        result = orchestrator.run(_flash(amount0=100 * ETHER, amount1=100 * ETHER,
                                         repay0=50 * ETHER, repay1=50 * ETHER))
        verdicts = _verdicts(result)
        assert not result.reverted
        assert verdicts["flash.settlement_outcome"] is False
        assert verdicts["flash.reserve_accounting"] is False
        assert verdicts["flash.borrower_accounting"] is False
