"""Flash-loan abuse: borrow, then repay in full, short, or not at all."""

from __future__ import annotations

import logging

from poolguard.agents.protocol import ETHER, AttackOutcome, Params
from poolguard.core.errors import PoolCallFailed, UnsupportedScenario
from poolguard.core.types import CallerIdentities
from poolguard.invariants.flash import FlashTerms
from poolguard.pool.facade import PoolFacade

logger = logging.getLogger(__name__)


class FlashLoanAbuser:
    """Borrows ``amount0``/``amount1`` and pays back ``repay0``/``repay1``.

    Without explicit repay amounts the borrower returns principal plus
    the pool's fee.  Amounts above the reserves model a drain attempt.
    """

    defaults = {"amount0": 100 * ETHER, "amount1": 100 * ETHER}
    optional = frozenset({"repay0", "repay1"})

    def __init__(self, identities: CallerIdentities) -> None:
        self.identities = identities

    def validate(self, params: Params) -> None:
        for name in ("amount0", "amount1", "repay0", "repay1"):
            if name in params and params[name] < 0:
                raise UnsupportedScenario(f"parameter {name!r} must not be negative")
        if params["amount0"] == 0 and params["amount1"] == 0:
            raise UnsupportedScenario("flash loan needs a non-zero amount")

    def attack(self, pool: PoolFacade, params: Params) -> AttackOutcome:
        terms = FlashTerms.from_params(params, pool.fee())
        borrower = self.identities.attacker
        outcome = AttackOutcome(notes={
            "amount0": terms.amount0,
            "amount1": terms.amount1,
            "repay0": terms.repay0,
            "repay1": terms.repay1,
        })

        def repay(fee0: int, fee1: int) -> None:
            logger.debug("Flash callback: fees=(%d, %d), repaying (%d, %d)", fee0, fee1, terms.repay0, terms.repay1)
            pool.pay(0, borrower, terms.repay0)
            pool.pay(1, borrower, terms.repay1)

        try:
            result = pool.execute_flash(terms.amount0, terms.amount1, repay, borrower)
        except PoolCallFailed as exc:
            return outcome.fail(exc)

        outcome.notes.update(fee0=result.fee0, fee1=result.fee1)
        outcome.expected_reserve_delta = (result.paid0, result.paid1)
        return outcome
