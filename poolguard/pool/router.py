"""Caller-side swap helpers.

The pool itself only knows price limits.  Minimum-output protection
lives with the caller: the router checks what the pool sent before it
pays, so an under-delivering swap is rolled back together with the
pool's own state changes.
"""

from __future__ import annotations

import logging
from typing import Callable

from poolguard.core.errors import Reverted
from poolguard.pool.facade import PoolFacade, SwapOutcome
from poolguard.pool.sqrt_math import BPS_DENOMINATOR, MAX_SQRT_RATIO, MIN_SQRT_RATIO

logger = logging.getLogger(__name__)

TOO_LITTLE_RECEIVED = "Too little received"


def default_price_limit(zero_for_one: bool) -> int:
    return MIN_SQRT_RATIO + 1 if zero_for_one else MAX_SQRT_RATIO - 1


def min_output(quote: int, slippage_bps: int) -> int:
    """Smallest acceptable output for ``quote`` under ``slippage_bps`` tolerance."""
    return quote * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def paying_callback(facade: PoolFacade, payer: str) -> Callable[[int, int], None]:
    """Callback that pays whatever the pool asks for from ``payer``."""

    def pay(amount0: int, amount1: int) -> None:
        if amount0 > 0:
            facade.pay(0, payer, amount0)
        if amount1 > 0:
            facade.pay(1, payer, amount1)

    return pay


class SwapRouter:
    """Exact-input swaps with an enforced minimum output."""

    def __init__(self, facade: PoolFacade) -> None:
        self.facade = facade

    def exact_input_single(
        self,
        payer: str,
        recipient: str,
        zero_for_one: bool,
        amount_in: int,
        amount_out_minimum: int = 0,
        sqrt_price_limit_x96: int = 0,
    ) -> SwapOutcome:
        limit = sqrt_price_limit_x96 or default_price_limit(zero_for_one)
        pay = paying_callback(self.facade, payer)

        def callback(amount0: int, amount1: int) -> None:
            received = -(amount1 if zero_for_one else amount0)
            if received < amount_out_minimum:
                logger.debug("Swap delivered %d < minimum %d", received, amount_out_minimum)
                raise Reverted(TOO_LITTLE_RECEIVED)
            pay(amount0, amount1)

        return self.facade.execute_swap(zero_for_one, amount_in, limit, callback, recipient)
