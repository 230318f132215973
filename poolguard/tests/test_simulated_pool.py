"""Tests for the in-memory pool collaborator."""

from __future__ import annotations

import pytest

from poolguard.agents.protocol import ETHER
from poolguard.core.errors import PoolRevert
from poolguard.pool.simulated import SimulatedPool, TokenLedger
from poolguard.pool.sqrt_math import MAX_SQRT_RATIO, MIN_SQRT_RATIO, Q96


def _reserves(pool: SimulatedPool) -> tuple[int, int]:
    return pool.balance_of(pool.token0(), pool.address), pool.balance_of(pool.token1(), pool.address)


def _balances(pool: SimulatedPool, account: str) -> tuple[int, int]:
    return pool.balance_of(pool.token0(), account), pool.balance_of(pool.token1(), account)


def _payer(pool: SimulatedPool, account: str):
    def pay(amount0: int, amount1: int) -> None:
        if amount0 > 0:
            pool.transfer(pool.token0(), account, pool.address, amount0)
        if amount1 > 0:
            pool.transfer(pool.token1(), account, pool.address, amount1)
    return pay


class TestTokenLedger:

    def test_transfer(self):
        ledger = TokenLedger()
        ledger.mint("T", "a", 10)
        ledger.transfer("T", "a", "b", 4)
        assert ledger.balance_of("T", "a") == 6
        assert ledger.balance_of("T", "b") == 4

    def test_insufficient_balance(self):
        ledger = TokenLedger()
        with pytest.raises(PoolRevert) as exc_info:
            ledger.transfer("T", "a", "b", 1)
        assert exc_info.value.reason == "TF"


class TestDeployment:

    def test_initialized_and_unlocked(self, pool):
        slot0 = pool.slot0()
        assert slot0.sqrt_price_x96 == Q96
        assert slot0.tick == 0
        assert slot0.unlocked is True
        assert slot0.observation_cardinality == 1
        assert slot0.observation_cardinality_next == 64

    def test_seeded_reserves(self, pool, settings, identities):
        assert _reserves(pool) == (settings.initial_liquidity, settings.initial_liquidity)
        assert pool.liquidity() == settings.initial_liquidity
        owner0, owner1 = _balances(pool, identities.owner)
        assert owner0 == settings.owner_funding - settings.initial_liquidity

    def test_initialize_twice(self, pool):
        with pytest.raises(PoolRevert) as exc_info:
            pool.initialize(Q96)
        assert exc_info.value.reason == "AI"

    def test_uninitialized_pool_is_locked(self):
        fresh = SimulatedPool()
        assert fresh.slot0().unlocked is False
        with pytest.raises(PoolRevert) as exc_info:
            fresh.observe([0])
        assert exc_info.value.reason == "I"


class TestSwap:

    def test_exact_input_moves_price_down(self, pool, identities):
        amount0, amount1 = pool.swap(
            identities.user, True, ETHER, MIN_SQRT_RATIO + 1, _payer(pool, identities.user),
        )
        assert amount0 == ETHER
        assert amount1 < 0
        assert pool.slot0().sqrt_price_x96 < Q96
        assert pool.slot0().tick < 0

    def test_exact_input_moves_price_up(self, pool, identities):
        amount0, amount1 = pool.swap(
            identities.user, False, ETHER, MAX_SQRT_RATIO - 1, _payer(pool, identities.user),
        )
        assert amount1 == ETHER
        assert amount0 < 0
        assert pool.slot0().tick > 0

    def test_limit_on_wrong_side(self, pool, identities):
        with pytest.raises(PoolRevert) as exc_info:
            pool.swap(identities.user, True, ETHER, Q96 + 1, _payer(pool, identities.user))
        assert exc_info.value.reason == "SPL"
        assert pool.slot0().unlocked is True

    def test_partial_fill_stops_at_limit(self, pool, identities):
        limit = Q96 * 999 // 1000
        amount0, _ = pool.swap(identities.user, True, 1000 * ETHER, limit, _payer(pool, identities.user))
        assert pool.slot0().sqrt_price_x96 == limit
        assert 0 < amount0 < 1000 * ETHER

    def test_unpaid_swap_rolls_back(self, pool, identities):
        reserves = _reserves(pool)
        balances = _balances(pool, identities.user)
        with pytest.raises(PoolRevert) as exc_info:
            pool.swap(identities.user, True, ETHER, MIN_SQRT_RATIO + 1, lambda a0, a1: None)
        assert exc_info.value.reason == "IIA"
        assert _reserves(pool) == reserves
        assert _balances(pool, identities.user) == balances
        assert pool.slot0().sqrt_price_x96 == Q96
        assert pool.slot0().unlocked is True

    def test_zero_amount(self, pool, identities):
        with pytest.raises(PoolRevert) as exc_info:
            pool.swap(identities.user, True, 0, MIN_SQRT_RATIO + 1, lambda a0, a1: None)
        assert exc_info.value.reason == "AS"


class TestFlash:

    def test_fee_is_rounded_up(self, pool, identities):
        seen = []

        def repay(fee0: int, fee1: int) -> None:
            seen.append((fee0, fee1))
            _payer(pool, identities.attacker)(100 * ETHER + fee0, 100 * ETHER + fee1)

        paid = pool.flash(identities.attacker, 100 * ETHER, 100 * ETHER, repay)
        assert seen == [(3 * 10**17, 3 * 10**17)]
        assert paid == (3 * 10**17, 3 * 10**17)

    def test_under_repayment_reverts(self, pool, identities):
        reserves = _reserves(pool)
        balances = _balances(pool, identities.attacker)
        with pytest.raises(PoolRevert) as exc_info:
            pool.flash(
                identities.attacker, 100 * ETHER, 100 * ETHER,
                lambda f0, f1: _payer(pool, identities.attacker)(100 * ETHER, 100 * ETHER),
            )
        assert exc_info.value.reason == "F0"
        assert _reserves(pool) == reserves
        assert _balances(pool, identities.attacker) == balances

    def test_drain_reverts(self, pool, identities, settings):
        with pytest.raises(PoolRevert) as exc_info:
            pool.flash(identities.attacker, settings.initial_liquidity + 1, 0, lambda f0, f1: None)
        assert exc_info.value.reason == "TF"

    def test_reentry_rejected_with_lok(self, pool, identities):
        nested = []

        def callback(fee0: int, fee1: int) -> None:
            try:
                pool.swap(identities.attacker, True, ETHER, MIN_SQRT_RATIO + 1, lambda a0, a1: None)
            except PoolRevert as exc:
                nested.append(exc.reason)
            _payer(pool, identities.attacker)(10 * ETHER + fee0, 10 * ETHER + fee1)

        pool.flash(identities.attacker, 10 * ETHER, 10 * ETHER, callback)
        assert nested == ["LOK"]
        assert pool.slot0().unlocked is True


class TestMint:

    def test_mint_full_range(self, pool, identities):
        liquidity = pool.liquidity()
        amount0, amount1 = pool.mint(identities.user, -887220, 887220, ETHER, _payer(pool, identities.user))
        assert (amount0, amount1) == (ETHER, ETHER)
        assert pool.liquidity() == liquidity + ETHER

    def test_bad_range(self, pool, identities):
        with pytest.raises(PoolRevert) as exc_info:
            pool.mint(identities.user, 60, -60, ETHER, _payer(pool, identities.user))
        assert exc_info.value.reason == "TLU"

    def test_unpaid_mint_rolls_back(self, pool, identities):
        liquidity = pool.liquidity()
        with pytest.raises(PoolRevert) as exc_info:
            pool.mint(identities.user, -887220, 887220, ETHER, lambda a0, a1: None)
        assert exc_info.value.reason == "M0"
        assert pool.liquidity() == liquidity
        assert pool.positions()[-1].owner != identities.user


class TestClock:

    def test_advance(self, pool, settings):
        pool.advance_time(12)
        assert pool.block_timestamp() == settings.genesis_timestamp + 12

    def test_time_only_moves_forward(self, pool):
        with pytest.raises(ValueError):
            pool.advance_time(-1)

    def test_observation_written_on_new_block(self, pool, identities):
        pool.advance_time(12)
        pool.swap(identities.user, True, ETHER, MIN_SQRT_RATIO + 1, _payer(pool, identities.user))
        slot0 = pool.slot0()
        assert slot0.observation_cardinality == 64
        assert slot0.observation_index == 1
        assert pool.observe([12]) == [0]
