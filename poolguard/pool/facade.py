"""Narrow facade over a pool collaborator.

The facade is the only thing agents and checkers talk to.  It holds no
pool state of its own: every read goes to the collaborator, every
mutating call is forwarded and its raw ``PoolRevert`` reason code is
translated into the harness error taxonomy.  Listeners registered on
the facade are told when a mutating entry point is entered and exited,
which is how the lock tracker observes nesting without touching the
pool.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol, runtime_checkable

from poolguard.core.errors import (
    ConfigurationError,
    InsufficientRepayment,
    PoolCallFailed,
    PoolRevert,
    PriceLimitReached,
    Reverted,
    UnsupportedLookback,
)
from poolguard.core.types import Observation, PoolSnapshot
from poolguard.pool.sqrt_math import quote_exact_input

logger = logging.getLogger(__name__)

SWAP = "swap"
FLASH = "flash"
MINT = "mint"
MUTATING_OPERATIONS = (SWAP, FLASH, MINT)


# ── Protocols ────────────────────────────────────────────────────────────────


@runtime_checkable
class PoolCollaborator(Protocol):
    """What the harness needs from a pool implementation."""

    address: str

    def slot0(self) -> Any: ...
    def observe(self, seconds_agos: list[int]) -> list[int]: ...
    def swap(self, recipient: str, zero_for_one: bool, amount_specified: int,
             sqrt_price_limit_x96: int, callback: Callable[[int, int], None]) -> tuple[int, int]: ...
    def flash(self, recipient: str, amount0: int, amount1: int,
              callback: Callable[[int, int], None]) -> tuple[int, int]: ...
    def mint(self, recipient: str, tick_lower: int, tick_upper: int, amount: int,
             callback: Callable[[int, int], None]) -> tuple[int, int]: ...
    def token0(self) -> str: ...
    def token1(self) -> str: ...
    def fee(self) -> int: ...
    def liquidity(self) -> int: ...
    def balance_of(self, token: str, account: str) -> int: ...
    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None: ...
    def advance_time(self, seconds: int) -> None: ...
    def block_timestamp(self) -> int: ...


class FacadeListener(Protocol):
    def on_enter(self, operation: str) -> None: ...
    def on_exit(self, operation: str, error: BaseException | None) -> None: ...


# ── Outcomes ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SwapOutcome:
    """Signed pool-side deltas of a completed swap (positive = paid in)."""
    zero_for_one: bool
    amount0: int
    amount1: int
    sqrt_price_x96: int
    tick: int

    @property
    def amount_in(self) -> int:
        return self.amount0 if self.zero_for_one else self.amount1

    @property
    def amount_out(self) -> int:
        return -(self.amount1 if self.zero_for_one else self.amount0)


@dataclass(frozen=True)
class FlashOutcome:
    fee0: int
    fee1: int
    paid0: int
    paid1: int


@dataclass(frozen=True)
class PositionOutcome:
    tick_lower: int
    tick_upper: int
    liquidity: int
    amount0: int
    amount1: int


# ── Reason mapping ───────────────────────────────────────────────────────────


_REASON_MAP: dict[str, type[PoolCallFailed]] = {
    "SPL": PriceLimitReached,
    "F0": InsufficientRepayment,
    "F1": InsufficientRepayment,
}


def translate_revert(reason: str) -> PoolCallFailed:
    return _REASON_MAP.get(reason, Reverted)(reason)


# ── Facade ───────────────────────────────────────────────────────────────────


class PoolFacade:
    """Typed, translated access to one pool collaborator."""

    def __init__(self, pool: PoolCollaborator | None, listeners: Iterable[FacadeListener] = ()) -> None:
        if pool is None:
            raise ConfigurationError("no pool collaborator configured")
        self.pool = pool
        self._listeners: list[FacadeListener] = list(listeners)

    def with_listeners(self, *listeners: FacadeListener) -> "PoolFacade":
        """Return a facade over the same pool with extra listeners attached."""
        return PoolFacade(self.pool, [*self._listeners, *listeners])

    @property
    def address(self) -> str:
        return self.pool.address

    def token(self, index: int) -> str:
        if index == 0:
            return self.pool.token0()
        if index == 1:
            return self.pool.token1()
        raise ValueError(f"token index must be 0 or 1, got {index}")

    def fee(self) -> int:
        return self.pool.fee()

    def quote_exact_input(self, zero_for_one: bool, amount_in: int) -> int:
        """What an unbounded exact-input swap would deliver right now."""
        slot0 = self.pool.slot0()
        return quote_exact_input(
            slot0.sqrt_price_x96, self.pool.liquidity(), amount_in, zero_for_one, self.pool.fee(),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def balance_of(self, token_index: int, account: str) -> int:
        return self.pool.balance_of(self.token(token_index), account)

    def balances_of(self, account: str) -> tuple[int, int]:
        return self.balance_of(0, account), self.balance_of(1, account)

    def reserves(self) -> tuple[int, int]:
        return self.balances_of(self.pool.address)

    def read_snapshot(self, holders: Iterable[str] = ()) -> PoolSnapshot:
        slot0 = self.pool.slot0()
        try:
            tick_cumulative: int | None = self.pool.observe([0])[0]
        except PoolRevert as exc:
            logger.debug("observe([0]) unavailable: %s", exc.reason)
            tick_cumulative = None

        return PoolSnapshot(
            sqrt_price_x96=slot0.sqrt_price_x96,
            tick=slot0.tick,
            locked=not slot0.unlocked,
            observation_index=slot0.observation_index,
            observation_cardinality=slot0.observation_cardinality,
            reserves=self.reserves(),
            fee_pips=self.pool.fee(),
            timestamp=self.pool.block_timestamp(),
            tick_cumulative=tick_cumulative,
            holder_balances={h: self.balances_of(h) for h in holders},
        )

    def observe(self, seconds_agos: list[int]) -> list[Observation]:
        """Tick cumulatives at ``now - s`` for each ``s``.

        Raises:
            UnsupportedLookback: an age predates the oldest observation.
            Reverted: any other collaborator failure.
        """
        now = self.pool.block_timestamp()
        try:
            cumulatives = self.pool.observe(list(seconds_agos))
        except PoolRevert as exc:
            if exc.reason == "OLD":
                raise UnsupportedLookback(max(seconds_agos), exc.reason) from exc
            raise translate_revert(exc.reason) from exc
        return [
            Observation(timestamp_seconds=(now - s) % 2**32, tick_cumulative=c)
            for s, c in zip(seconds_agos, cumulatives)
        ]

    # ------------------------------------------------------------------
    # Mutating entry points
    # ------------------------------------------------------------------

    def execute_swap(
        self,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit_x96: int,
        callback: Callable[[int, int], None],
        recipient: str,
    ) -> SwapOutcome:
        amount0, amount1 = self._call(
            SWAP, self.pool.swap,
            recipient, zero_for_one, amount_specified, sqrt_price_limit_x96, callback,
        )
        slot0 = self.pool.slot0()
        return SwapOutcome(zero_for_one, amount0, amount1, slot0.sqrt_price_x96, slot0.tick)

    def execute_flash(
        self,
        amount0: int,
        amount1: int,
        callback: Callable[[int, int], None],
        recipient: str,
    ) -> FlashOutcome:
        fees: list[tuple[int, int]] = []

        def recording_callback(fee0: int, fee1: int) -> None:
            fees.append((fee0, fee1))
            callback(fee0, fee1)

        paid0, paid1 = self._call(FLASH, self.pool.flash, recipient, amount0, amount1, recording_callback)
        fee0, fee1 = fees[0] if fees else (0, 0)
        return FlashOutcome(fee0, fee1, paid0, paid1)

    def execute_mint(
        self,
        tick_lower: int,
        tick_upper: int,
        amount: int,
        callback: Callable[[int, int], None],
        recipient: str,
    ) -> PositionOutcome:
        amount0, amount1 = self._call(
            MINT, self.pool.mint, recipient, tick_lower, tick_upper, amount, callback,
        )
        return PositionOutcome(tick_lower, tick_upper, amount, amount0, amount1)

    # ------------------------------------------------------------------
    # Chain helpers
    # ------------------------------------------------------------------

    def pay(self, token_index: int, payer: str, amount: int) -> None:
        """Transfer ``amount`` of a pool token from ``payer`` to the pool."""
        if amount <= 0:
            return
        try:
            self.pool.transfer(self.token(token_index), payer, self.pool.address, amount)
        except PoolRevert as exc:
            raise translate_revert(exc.reason) from exc

    def advance_time(self, seconds: int) -> None:
        self.pool.advance_time(seconds)

    def _call(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        for listener in self._listeners:
            listener.on_enter(operation)
        error: BaseException | None = None
        try:
            return fn(*args)
        except PoolRevert as exc:
            error = translate_revert(exc.reason)
            logger.debug("%s reverted: %s", operation, exc.reason)
            raise error from exc
        except BaseException as exc:
            error = exc
            raise
        finally:
            for listener in self._listeners:
                listener.on_exit(operation, error)
