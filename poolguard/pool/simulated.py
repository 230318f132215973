"""In-memory pool collaborator used as the harness's reference target.

The simulated pool speaks the same narrow protocol the facade expects
from a live pool (``slot0``/``observe``/``swap``/``flash``/``mint`` plus
token balances and a block clock) and raises ``PoolRevert`` with the
familiar reason codes:

    LOK   entry point called while the reentrancy guard is held
    SPL   price limit on the wrong side of the current price
    AS    zero swap amount
    IIA   swap input not paid in the callback
    F0/F1 flash loan not repaid with fee
    M0/M1 mint amounts not paid in the callback
    TF    token transfer failed (insufficient balance)
    L     no liquidity to lend
    OLD   oracle read older than recorded history

Pricing is a single constant-liquidity segment: every minted position
contributes to the active liquidity regardless of its range and swaps
never cross ticks.  That keeps the curve honest enough to move ticks
and produce fees while staying out of the production math.

Each mutating entry point runs inside an atomic scope: the whole
mutable state is checkpointed on entry and restored if anything raises,
including exceptions thrown from a caller's callback.
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterator

from poolguard.core.config import Settings, get_settings
from poolguard.core.errors import PoolRevert
from poolguard.core.types import CallerIdentities
from poolguard.pool.oracle import ObservationRing
from poolguard.pool.sqrt_math import (
    FULL_RANGE_TICK_LOWER,
    FULL_RANGE_TICK_UPPER,
    MAX_SQRT_RATIO,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MIN_TICK,
    Q96,
    compute_swap_step,
    fee_for,
    mul_div_rounding_up,
    tick_at_sqrt_ratio,
)

logger = logging.getLogger(__name__)

SwapCallback = Callable[[int, int], None]
FlashCallback = Callable[[int, int], None]
MintCallback = Callable[[int, int], None]


# ── State ────────────────────────────────────────────────────────────────────


@dataclass
class Slot0:
    """Packed pool state, as returned by ``slot0()``."""
    sqrt_price_x96: int = 0
    tick: int = 0
    observation_index: int = 0
    observation_cardinality: int = 0
    observation_cardinality_next: int = 0
    unlocked: bool = False


@dataclass
class Position:
    owner: str
    tick_lower: int
    tick_upper: int
    liquidity: int = 0


class TokenLedger:
    """Balances for every token the pool touches."""

    def __init__(self) -> None:
        self._balances: dict[str, dict[str, int]] = {}

    def mint(self, token: str, account: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("cannot mint a negative amount")
        book = self._balances.setdefault(token, {})
        book[account] = book.get(account, 0) + amount

    def balance_of(self, token: str, account: str) -> int:
        return self._balances.get(token, {}).get(account, 0)

    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise PoolRevert("TF")
        book = self._balances.setdefault(token, {})
        if book.get(sender, 0) < amount:
            raise PoolRevert("TF")
        book[sender] = book.get(sender, 0) - amount
        book[recipient] = book.get(recipient, 0) + amount

    def copy(self) -> "TokenLedger":
        clone = TokenLedger()
        clone._balances = {token: dict(book) for token, book in self._balances.items()}
        return clone


@dataclass
class _Checkpoint:
    slot0: Slot0
    liquidity: int
    oracle: ObservationRing
    ledger: TokenLedger
    positions: dict[tuple[str, int, int], Position] = field(default_factory=dict)


# ── Pool ─────────────────────────────────────────────────────────────────────


class SimulatedPool:
    """A single-pair pool with a reentrancy guard, flash loans and an oracle."""

    def __init__(
        self,
        token0: str = "TKA",
        token1: str = "TKB",
        fee: int = 3000,
        address: str = "0x00000000000000000000000000000000000000f1",
        genesis_timestamp: int = 1_700_000_000,
    ) -> None:
        self.address = address
        self._token0 = token0
        self._token1 = token1
        self._fee = fee
        self._now = genesis_timestamp
        self._slot0 = Slot0()
        self._liquidity = 0
        self._oracle = ObservationRing()
        self._positions: dict[tuple[str, int, int], Position] = {}
        self.ledger = TokenLedger()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def token0(self) -> str:
        return self._token0

    def token1(self) -> str:
        return self._token1

    def fee(self) -> int:
        return self._fee

    def liquidity(self) -> int:
        return self._liquidity

    def slot0(self) -> Slot0:
        return replace(self._slot0)

    def block_timestamp(self) -> int:
        return self._now

    def balance_of(self, token: str, account: str) -> int:
        return self.ledger.balance_of(token, account)

    def positions(self) -> list[Position]:
        return [replace(p) for p in self._positions.values()]

    def observe(self, seconds_agos: list[int]) -> list[int]:
        if self._slot0.sqrt_price_x96 == 0:
            raise PoolRevert("I")
        return self._oracle.observe(self._now, list(seconds_agos), self._slot0.tick)

    # ------------------------------------------------------------------
    # Chain-level helpers
    # ------------------------------------------------------------------

    def advance_time(self, seconds: int) -> None:
        if seconds < 0:
            raise ValueError("time only moves forward")
        self._now += seconds

    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        self.ledger.transfer(token, sender, recipient, amount)

    def fund(self, account: str, amount0: int, amount1: int) -> None:
        self.ledger.mint(self._token0, account, amount0)
        self.ledger.mint(self._token1, account, amount1)

    # ------------------------------------------------------------------
    # Setup entry points
    # ------------------------------------------------------------------

    def initialize(self, sqrt_price_x96: int) -> None:
        if self._slot0.sqrt_price_x96 != 0:
            raise PoolRevert("AI")
        tick = tick_at_sqrt_ratio(sqrt_price_x96)
        self._oracle.initialize(self._now)
        self._slot0 = Slot0(
            sqrt_price_x96=sqrt_price_x96,
            tick=tick,
            observation_index=0,
            observation_cardinality=1,
            observation_cardinality_next=1,
            unlocked=True,
        )
        logger.debug("Pool %s initialized at tick %d", self.address, tick)

    def increase_observation_cardinality_next(self, cardinality_next: int) -> None:
        with self._atomic(), self._lock():
            self._slot0.observation_cardinality_next = self._oracle.grow(cardinality_next)

    # ------------------------------------------------------------------
    # Mutating entry points
    # ------------------------------------------------------------------

    def swap(
        self,
        recipient: str,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit_x96: int,
        callback: SwapCallback,
    ) -> tuple[int, int]:
        if amount_specified == 0:
            raise PoolRevert("AS")
        with self._atomic(), self._lock():
            start = self._slot0.sqrt_price_x96
            if zero_for_one:
                valid_limit = MIN_SQRT_RATIO < sqrt_price_limit_x96 < start
            else:
                valid_limit = start < sqrt_price_limit_x96 < MAX_SQRT_RATIO
            if not valid_limit:
                raise PoolRevert("SPL")

            self._write_observation()

            sqrt_next, amount_in, amount_out, fee_amount = compute_swap_step(
                start, sqrt_price_limit_x96, self._liquidity, amount_specified, self._fee,
            )
            paid_in = amount_in + fee_amount
            if zero_for_one:
                amount0, amount1 = paid_in, -amount_out
                token_in, token_out = self._token0, self._token1
            else:
                amount0, amount1 = -amount_out, paid_in
                token_in, token_out = self._token1, self._token0

            self._slot0.sqrt_price_x96 = sqrt_next
            self._slot0.tick = tick_at_sqrt_ratio(sqrt_next)

            if amount_out:
                self.ledger.transfer(token_out, self.address, recipient, amount_out)

            balance_before = self.ledger.balance_of(token_in, self.address)
            callback(amount0, amount1)
            if balance_before + paid_in > self.ledger.balance_of(token_in, self.address):
                raise PoolRevert("IIA")

            return amount0, amount1

    def flash(
        self,
        recipient: str,
        amount0: int,
        amount1: int,
        callback: FlashCallback,
    ) -> tuple[int, int]:
        """Lend ``amount0``/``amount1`` for the duration of ``callback``.

        Returns the amounts paid back on top of principal.
        """
        with self._atomic(), self._lock():
            if self._liquidity <= 0:
                raise PoolRevert("L")
            fee0 = fee_for(amount0, self._fee)
            fee1 = fee_for(amount1, self._fee)
            balance0_before = self.ledger.balance_of(self._token0, self.address)
            balance1_before = self.ledger.balance_of(self._token1, self.address)

            if amount0 > 0:
                self.ledger.transfer(self._token0, self.address, recipient, amount0)
            if amount1 > 0:
                self.ledger.transfer(self._token1, self.address, recipient, amount1)

            callback(fee0, fee1)

            balance0_after = self.ledger.balance_of(self._token0, self.address)
            balance1_after = self.ledger.balance_of(self._token1, self.address)
            self._check_repayment(
                (balance0_before, balance1_before),
                (balance0_after, balance1_after),
                (fee0, fee1),
            )
            self._write_observation()
            return balance0_after - balance0_before, balance1_after - balance1_before

    def mint(
        self,
        recipient: str,
        tick_lower: int,
        tick_upper: int,
        amount: int,
        callback: MintCallback,
    ) -> tuple[int, int]:
        if amount <= 0:
            raise PoolRevert("AM")
        with self._atomic(), self._lock():
            if tick_lower >= tick_upper:
                raise PoolRevert("TLU")
            if tick_lower < MIN_TICK:
                raise PoolRevert("TLM")
            if tick_upper > MAX_TICK:
                raise PoolRevert("TUM")

            self._write_observation()

            sqrt_price = self._slot0.sqrt_price_x96
            amount0 = mul_div_rounding_up(amount, Q96, sqrt_price)
            amount1 = mul_div_rounding_up(amount, sqrt_price, Q96)

            key = (recipient, tick_lower, tick_upper)
            position = self._positions.setdefault(key, Position(recipient, tick_lower, tick_upper))
            position.liquidity += amount
            self._liquidity += amount

            balance0_before = self.ledger.balance_of(self._token0, self.address)
            balance1_before = self.ledger.balance_of(self._token1, self.address)
            callback(amount0, amount1)
            if balance0_before + amount0 > self.ledger.balance_of(self._token0, self.address):
                raise PoolRevert("M0")
            if balance1_before + amount1 > self.ledger.balance_of(self._token1, self.address):
                raise PoolRevert("M1")

            return amount0, amount1

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_repayment(
        self,
        before: tuple[int, int],
        after: tuple[int, int],
        fees: tuple[int, int],
    ) -> None:
        if before[0] + fees[0] > after[0]:
            raise PoolRevert("F0")
        if before[1] + fees[1] > after[1]:
            raise PoolRevert("F1")

    def _write_observation(self) -> None:
        if self._oracle.write(self._now, self._slot0.tick):
            self._slot0.observation_index = self._oracle.index
            self._slot0.observation_cardinality = self._oracle.cardinality

    @contextmanager
    def _lock(self) -> Iterator[None]:
        if not self._slot0.unlocked:
            raise PoolRevert("LOK")
        self._slot0.unlocked = False
        yield
        self._slot0.unlocked = True

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        saved = self._checkpoint()
        try:
            yield
        except Exception:
            self._restore(saved)
            raise

    def _checkpoint(self) -> _Checkpoint:
        return _Checkpoint(
            slot0=replace(self._slot0),
            liquidity=self._liquidity,
            oracle=self._oracle.copy(),
            ledger=self.ledger.copy(),
            positions=copy.deepcopy(self._positions),
        )

    def _restore(self, saved: _Checkpoint) -> None:
        self._slot0 = saved.slot0
        self._liquidity = saved.liquidity
        self._oracle = saved.oracle
        self.ledger = saved.ledger
        self._positions = saved.positions


# ── Deployment ───────────────────────────────────────────────────────────────


def deploy_simulated_pool(
    settings: Settings | None = None,
    identities: CallerIdentities | None = None,
    pool_cls: type[SimulatedPool] = SimulatedPool,
    **pool_kwargs: Any,
) -> SimulatedPool:
    """Create, initialize, fund and seed a simulated pool.

    The owner provides full-range liquidity; attacker and user receive
    working balances of both tokens.
    """
    s = settings or get_settings()
    ids = identities or CallerIdentities.from_settings(s)

    pool = pool_cls(fee=s.pool_fee_pips, genesis_timestamp=s.genesis_timestamp, **pool_kwargs)
    pool.fund(ids.owner, s.owner_funding, s.owner_funding)
    pool.fund(ids.attacker, s.attacker_funding, s.attacker_funding)
    pool.fund(ids.user, s.user_funding, s.user_funding)

    pool.initialize(s.initial_sqrt_price_x96)
    pool.increase_observation_cardinality_next(s.observation_cardinality)

    if s.initial_liquidity > 0:
        def pay_owner(amount0: int, amount1: int) -> None:
            pool.transfer(pool.token0(), ids.owner, pool.address, amount0)
            pool.transfer(pool.token1(), ids.owner, pool.address, amount1)

        pool.mint(ids.owner, FULL_RANGE_TICK_LOWER, FULL_RANGE_TICK_UPPER, s.initial_liquidity, pay_owner)

    logger.info(
        "Deployed simulated pool %s (fee=%d, liquidity=%d, cardinality_next=%d)",
        pool.address, s.pool_fee_pips, pool.liquidity(), s.observation_cardinality,
    )
    return pool
