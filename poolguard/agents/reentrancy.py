"""Reentrancy: call back into the pool from inside one of its callbacks."""

from __future__ import annotations

import enum
import logging
from typing import Callable

from poolguard.agents.protocol import ETHER, AttackOutcome, Params, require_positive
from poolguard.core.errors import PoolCallFailed, UnsupportedScenario
from poolguard.core.types import CallerIdentities
from poolguard.pool.facade import PoolFacade
from poolguard.pool.router import default_price_limit, paying_callback
from poolguard.pool.sqrt_math import FULL_RANGE_TICK_LOWER, FULL_RANGE_TICK_UPPER

logger = logging.getLogger(__name__)


class EntryPoint(int, enum.Enum):
    """Outer call and the nested call attempted from its callback."""

    FLASH_THEN_SWAP = 0
    SWAP_THEN_FLASH = 1
    MINT_THEN_MINT = 2


class ReentrantCaller:
    """Opens an outer call and tries a second mutating call before it returns.

    The nested attempt is expected to fail with ``LOK``; the agent swallows
    that failure, settles the outer call normally and reports the pool's
    own deltas for it as the expected reserve movement.
    """

    defaults = {"entry_point": 0, "amount": 10 * ETHER, "nested_amount": 1 * ETHER}
    optional: frozenset[str] = frozenset()

    def __init__(self, identities: CallerIdentities) -> None:
        self.identities = identities

    def validate(self, params: Params) -> None:
        try:
            EntryPoint(int(params["entry_point"]))
        except ValueError as exc:
            raise UnsupportedScenario(f"unknown reentrancy entry point {params['entry_point']!r}") from exc
        require_positive(params, "amount", "nested_amount")

    def attack(self, pool: PoolFacade, params: Params) -> AttackOutcome:
        entry = EntryPoint(int(params["entry_point"]))
        amount = int(params["amount"])
        nested_amount = int(params["nested_amount"])
        outcome = AttackOutcome(notes={"entry_point": entry.name.lower(), "nested": []})
        attacker = self.identities.attacker
        pay = paying_callback(pool, attacker)

        def attempt(label: str, nested: Callable[[], object]) -> None:
            try:
                nested()
            except PoolCallFailed as exc:
                logger.debug("Nested %s rejected: %s", label, exc.reason)
                outcome.notes["nested"].append({"call": label, "rejected": True, "reason": exc.reason})
            else:
                logger.warning("Nested %s was accepted", label)
                outcome.notes["nested"].append({"call": label, "rejected": False, "reason": None})

        def nested_swap() -> object:
            return pool.execute_swap(True, nested_amount, default_price_limit(True), pay, attacker)

        def nested_flash() -> object:
            def repay(fee0: int, fee1: int) -> None:
                pay(nested_amount + fee0, nested_amount + fee1)
            return pool.execute_flash(nested_amount, nested_amount, repay, attacker)

        def nested_mint() -> object:
            return pool.execute_mint(FULL_RANGE_TICK_LOWER, FULL_RANGE_TICK_UPPER, nested_amount, pay, attacker)

        try:
            if entry is EntryPoint.FLASH_THEN_SWAP:
                def flash_callback(fee0: int, fee1: int) -> None:
                    attempt("swap", nested_swap)
                    pay(amount + fee0, amount + fee1)

                flash = pool.execute_flash(amount, amount, flash_callback, attacker)
                outcome.expected_reserve_delta = (flash.fee0, flash.fee1)

            elif entry is EntryPoint.SWAP_THEN_FLASH:
                def swap_callback(amount0: int, amount1: int) -> None:
                    attempt("flash", nested_flash)
                    pay(amount0, amount1)

                swap = pool.execute_swap(True, amount, default_price_limit(True), swap_callback, attacker)
                outcome.expected_reserve_delta = (swap.amount0, swap.amount1)

            else:
                def mint_callback(amount0: int, amount1: int) -> None:
                    attempt("mint", nested_mint)
                    pay(amount0, amount1)

                position = pool.execute_mint(
                    FULL_RANGE_TICK_LOWER, FULL_RANGE_TICK_UPPER, amount, mint_callback, attacker,
                )
                outcome.expected_reserve_delta = (position.amount0, position.amount1)
        except PoolCallFailed as exc:
            return outcome.fail(exc)

        return outcome
