"""Sandwich: front-run the victim, then sell back what was bought."""

from __future__ import annotations

import logging

from poolguard.agents.front_run import routed_swap, validate_slippage
from poolguard.agents.protocol import ETHER, AttackOutcome, Params, require_positive
from poolguard.core.types import CallerIdentities
from poolguard.pool.facade import PoolFacade
from poolguard.pool.router import min_output

logger = logging.getLogger(__name__)


class Sandwicher:
    defaults = {
        "front_amount": 1 * ETHER,
        "victim_amount": 10 * ETHER,
        "slippage_bps": 50,
        "zero_for_one": 1,
    }
    optional: frozenset[str] = frozenset()

    def __init__(self, identities: CallerIdentities) -> None:
        self.identities = identities

    def validate(self, params: Params) -> None:
        require_positive(params, "front_amount", "victim_amount")
        validate_slippage(params)

    def attack(self, pool: PoolFacade, params: Params) -> AttackOutcome:
        attacker = self.identities.attacker
        zero_for_one = bool(params["zero_for_one"])
        victim_amount = int(params["victim_amount"])
        minimum = min_output(pool.quote_exact_input(zero_for_one, victim_amount), int(params["slippage_bps"]))
        attacker_before = pool.balances_of(attacker)

        front, _ = routed_swap(pool, "front_run", attacker, zero_for_one, int(params["front_amount"]))
        victim, _ = routed_swap(pool, "victim", self.identities.user, zero_for_one, victim_amount, minimum)
        swaps = [front, victim]
        if not front.reverted and front.amount_out > 0:
            back, _ = routed_swap(pool, "back_run", attacker, not zero_for_one, front.amount_out)
            swaps.append(back)

        attacker_after = pool.balances_of(attacker)
        profit = (attacker_after[0] - attacker_before[0], attacker_after[1] - attacker_before[1])
        logger.info("Sandwich attacker net deltas: token0=%d token1=%d", *profit)
        return AttackOutcome(
            swaps=swaps,
            notes={"victim_minimum": minimum, "attacker_profit": list(profit)},
        )
