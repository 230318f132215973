"""Oracle manipulation: one large swap, then watch the TWAP."""

from __future__ import annotations

import logging

from poolguard.agents.front_run import routed_swap
from poolguard.agents.protocol import ETHER, AttackOutcome, Params, require_positive
from poolguard.core.errors import PoolCallFailed, UnsupportedLookback, UnsupportedScenario
from poolguard.core.types import CallerIdentities
from poolguard.invariants.slippage import SwapRecord
from poolguard.invariants.twap import TwapProbe
from poolguard.pool.facade import PoolFacade

logger = logging.getLogger(__name__)


class OracleManipulator:
    """Moves the tick with a single-block swap and reads the oracle around it.

    Before attacking the agent idles ``warmup_seconds`` (default
    ``window + block_duration``) so the window's oldest segment lies in a
    quiet period of known tick.  A window longer than the recorded
    history is reported as a warning, never as a failure.

    With ``flash_funded=1`` the swap input is borrowed from the pool
    itself and swapped inside the flash callback, the classic
    capital-free manipulation.  The pool's lock must reject that swap.
    """

    defaults = {
        "amount": 1000 * ETHER,
        "zero_for_one": 1,
        "window": 60,
        "block_duration": 12,
    }
    optional = frozenset({"warmup_seconds", "flash_funded"})

    def __init__(self, identities: CallerIdentities) -> None:
        self.identities = identities

    def validate(self, params: Params) -> None:
        require_positive(params, "amount", "window", "block_duration")
        if params["window"] <= params["block_duration"]:
            raise UnsupportedScenario(
                f"window ({params['window']}s) must exceed block_duration ({params['block_duration']}s)"
            )
        if params.get("warmup_seconds", 0) < 0:
            raise UnsupportedScenario("warmup_seconds must not be negative")
        if params.get("flash_funded", 0) not in (0, 1):
            raise UnsupportedScenario("flash_funded must be 0 or 1")

    def attack(self, pool: PoolFacade, params: Params) -> AttackOutcome:
        window = int(params["window"])
        block = int(params["block_duration"])
        warmup = int(params.get("warmup_seconds", window + block))
        flash_funded = bool(params.get("flash_funded", 0))
        outcome = AttackOutcome(notes={
            "window": window,
            "block_duration": block,
            "warmup_seconds": warmup,
            "flash_funded": flash_funded,
        })

        if warmup:
            pool.advance_time(warmup)

        try:
            pre = pool.observe([window, 0])
        except UnsupportedLookback as exc:
            logger.warning("Skipping TWAP probe: %s", exc)
            outcome.warnings.append(f"window of {window}s outruns recorded oracle history")
            return outcome

        zero_for_one = bool(params["zero_for_one"])
        amount = int(params["amount"])
        if flash_funded:
            try:
                swap = self._swap_with_borrowed_funds(pool, zero_for_one, amount, outcome)
            except PoolCallFailed as exc:
                return outcome.fail(exc)
            outcome.notes["manipulation_blocked"] = swap.reverted
        else:
            swap, _ = routed_swap(pool, "manipulation", self.identities.attacker, zero_for_one, amount)
            outcome.swaps.append(swap)
            if swap.reverted:
                outcome.reverted, outcome.reason, outcome.category = True, swap.reason, swap.category
                return outcome

        pool.advance_time(block)
        ages = TwapProbe.post_ages(window, block)
        try:
            post = pool.observe(ages)
            repeat = pool.observe(ages)
        except UnsupportedLookback as exc:
            logger.warning("Skipping TWAP probe: %s", exc)
            outcome.warnings.append(f"window of {window + block}s outruns recorded oracle history")
            return outcome

        outcome.twap_probe = TwapProbe(
            window=window,
            block_duration=block,
            pre_read=(pre[0], pre[1]),
            post_read=(post[0], post[1], post[2], post[3]),
            repeat_read=(repeat[0], repeat[1], repeat[2], repeat[3]),
        )
        return outcome

    def _swap_with_borrowed_funds(
        self,
        pool: PoolFacade,
        zero_for_one: bool,
        amount: int,
        outcome: AttackOutcome,
    ) -> SwapRecord:
        """Borrow the swap input by flash loan and swap it inside the callback.

        A guarded pool rejects the nested swap with ``LOK``; the loan is
        then repaid with its fee and only the fee reaches the reserves.
        """
        attacker = self.identities.attacker
        loan0, loan1 = (amount, 0) if zero_for_one else (0, amount)
        swaps: list[SwapRecord] = []

        def manipulate(fee0: int, fee1: int) -> None:
            swap, _ = routed_swap(pool, "manipulation", attacker, zero_for_one, amount)
            swaps.append(swap)
            logger.debug("Flash-funded manipulation swap: reverted=%s (%s)", swap.reverted, swap.reason)
            pool.pay(0, attacker, loan0 + fee0)
            pool.pay(1, attacker, loan1 + fee1)

        try:
            result = pool.execute_flash(loan0, loan1, manipulate, attacker)
        finally:
            outcome.swaps.extend(swaps)
        outcome.notes.update(loan0=loan0, loan1=loan1, fee0=result.fee0, fee1=result.fee1)
        outcome.expected_reserve_delta = (result.paid0, result.paid1)
        return swaps[0]
