"""Front-running: trade ahead of a victim that set a minimum output."""

from __future__ import annotations

import logging

from poolguard.agents.protocol import ETHER, AttackOutcome, Params, require_positive
from poolguard.core.errors import UnsupportedScenario
from poolguard.core.types import CallerIdentities
from poolguard.invariants.slippage import SwapRecord, record_swap
from poolguard.pool.facade import PoolFacade, SwapOutcome
from poolguard.pool.router import TOO_LITTLE_RECEIVED, SwapRouter, default_price_limit, min_output
from poolguard.pool.sqrt_math import BPS_DENOMINATOR

logger = logging.getLogger(__name__)


def routed_swap(
    pool: PoolFacade,
    label: str,
    trader: str,
    zero_for_one: bool,
    amount_in: int,
    amount_out_minimum: int = 0,
    sqrt_price_limit_x96: int = 0,
) -> tuple[SwapRecord, SwapOutcome | None]:
    """Exact-input swap through the router, recorded for the slippage guard."""
    limit = sqrt_price_limit_x96 or default_price_limit(zero_for_one)
    router = SwapRouter(pool)
    return record_swap(
        pool,
        label,
        lambda: router.exact_input_single(
            trader, trader, zero_for_one, amount_in, amount_out_minimum, limit,
        ),
        zero_for_one=zero_for_one,
        amount_specified=amount_in,
        sqrt_price_limit_x96=limit,
        amount_out_minimum=amount_out_minimum,
    )


def validate_slippage(params: Params) -> None:
    bps = params.get("slippage_bps", 0)
    if not 0 <= bps < BPS_DENOMINATOR:
        raise UnsupportedScenario(f"slippage_bps must be in [0, {BPS_DENOMINATOR}), got {bps}")


class FrontRunner:
    """Attacker swaps ``front_amount`` in the victim's direction first.

    The victim's minimum output is derived from a quote taken before the
    front-run, so a large enough front-run must make the victim's swap
    revert with ``Too little received``.  ``front_limit_bps`` caps how far
    the attacker is willing to push the sqrt price; a non-zero cap can
    leave the front-run partially filled at its limit.
    """

    defaults = {
        "front_amount": 200 * ETHER,
        "victim_amount": 100 * ETHER,
        "slippage_bps": 50,
        "zero_for_one": 1,
        "front_limit_bps": 0,
    }
    optional: frozenset[str] = frozenset()

    def __init__(self, identities: CallerIdentities) -> None:
        self.identities = identities

    def validate(self, params: Params) -> None:
        require_positive(params, "front_amount", "victim_amount")
        validate_slippage(params)
        if not 0 <= params["front_limit_bps"] < BPS_DENOMINATOR:
            raise UnsupportedScenario("front_limit_bps must be in [0, 10000)")

    def attack(self, pool: PoolFacade, params: Params) -> AttackOutcome:
        zero_for_one = bool(params["zero_for_one"])
        victim_amount = int(params["victim_amount"])
        quote = pool.quote_exact_input(zero_for_one, victim_amount)
        minimum = min_output(quote, int(params["slippage_bps"]))

        front_limit = 0
        if params["front_limit_bps"]:
            start = pool.pool.slot0().sqrt_price_x96
            bps = int(params["front_limit_bps"])
            shift = BPS_DENOMINATOR - bps if zero_for_one else BPS_DENOMINATOR + bps
            front_limit = start * shift // BPS_DENOMINATOR

        front, _ = routed_swap(
            pool, "front_run", self.identities.attacker, zero_for_one,
            int(params["front_amount"]), sqrt_price_limit_x96=front_limit,
        )
        victim, _ = routed_swap(
            pool, "victim", self.identities.user, zero_for_one, victim_amount, minimum,
        )

        protected = victim.reverted and victim.reason == TOO_LITTLE_RECEIVED
        logger.info(
            "Front-run %s; victim quote=%d minimum=%d %s",
            "partially filled" if front.partial_fill else ("reverted" if front.reverted else "filled"),
            quote, minimum,
            "rejected by minimum output" if protected else f"received {victim.amount_out}",
        )
        return AttackOutcome(
            swaps=[front, victim],
            notes={
                "victim_quote": quote,
                "victim_minimum": minimum,
                "victim_protected": protected,
            },
        )
