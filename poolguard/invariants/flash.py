"""Flash settlement verification.

A flash loan is a three-phase protocol executed atomically::

    borrow    pool -> borrower    amount0, amount1
    callback  borrower does anything, told fee0/fee1
    repay     borrower -> pool    repay0, repay1
    settle    balance_after >= balance_before + fee   (per token)

fee = ceil(amount * fee_pips / 1e6).  Anything short of that must roll
back the whole loan, leaving reserves and the borrower untouched.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from poolguard.core.errors import RevertCategory
from poolguard.core.types import InvariantVerdict, PoolSnapshot
from poolguard.invariants.context import CheckContext, verdict
from poolguard.pool.sqrt_math import fee_for


class FlashCase(str, enum.Enum):
    FULL_REPAYMENT = "full_repayment"
    UNDER_REPAYMENT = "under_repayment"
    UNFUNDED = "unfunded"
    DRAIN = "drain"

    @property
    def must_succeed(self) -> bool:
        return self is FlashCase.FULL_REPAYMENT


@dataclass(frozen=True)
class FlashTerms:
    amount0: int
    amount1: int
    repay0: int
    repay1: int
    fee0: int
    fee1: int

    @classmethod
    def from_params(cls, params: dict[str, int | float], fee_pips: int) -> "FlashTerms":
        """Loan terms; ``repay0``/``repay1`` default to principal plus fee."""
        amount0 = int(params.get("amount0", 0))
        amount1 = int(params.get("amount1", 0))
        fee0 = fee_for(amount0, fee_pips)
        fee1 = fee_for(amount1, fee_pips)
        return cls(
            amount0=amount0,
            amount1=amount1,
            repay0=int(params.get("repay0", amount0 + fee0)),
            repay1=int(params.get("repay1", amount1 + fee1)),
            fee0=fee0,
            fee1=fee1,
        )

    @property
    def net_paid(self) -> tuple[int, int]:
        """What the pool gains (and the borrower loses) if the loan settles."""
        return self.repay0 - self.amount0, self.repay1 - self.amount1

    def classify(self, before: PoolSnapshot, borrower: str) -> FlashCase:
        reserve0, reserve1 = before.reserves
        if self.amount0 > reserve0 or self.amount1 > reserve1:
            return FlashCase.DRAIN
        if self.repay0 < self.amount0 + self.fee0 or self.repay1 < self.amount1 + self.fee1:
            return FlashCase.UNDER_REPAYMENT
        balance0, balance1 = before.balance_of(borrower)
        if balance0 + self.amount0 < self.repay0 or balance1 + self.amount1 < self.repay1:
            return FlashCase.UNFUNDED
        return FlashCase.FULL_REPAYMENT


class FlashSettlementVerifier:
    """Checks a flash-loan scenario against the settlement rules."""

    def check(self, ctx: CheckContext) -> list[InvariantVerdict]:
        terms = FlashTerms.from_params(ctx.parameters, ctx.before.fee_pips)
        borrower = ctx.identities.attacker
        case = terms.classify(ctx.before, borrower)

        return [
            self._settlement_outcome(ctx, case),
            self._reserve_accounting(ctx, case, terms),
            self._borrower_accounting(ctx, case, terms, borrower),
        ]

    def _settlement_outcome(self, ctx: CheckContext, case: FlashCase) -> InvariantVerdict:
        if case.must_succeed:
            held = not ctx.reverted
            expectation = "settle"
        elif case is FlashCase.UNDER_REPAYMENT:
            held = ctx.reverted and ctx.revert_category is RevertCategory.INSUFFICIENT_REPAYMENT
            expectation = "fail with insufficient repayment"
        else:
            held = ctx.reverted
            expectation = "fail"
        observed = f"reverted ({ctx.revert_reason})" if ctx.reverted else "settled"
        return verdict(
            "flash.settlement_outcome", held,
            f"{case.value}: expected to {expectation}, {observed}",
        )

    def _reserve_accounting(self, ctx: CheckContext, case: FlashCase, terms: FlashTerms) -> InvariantVerdict:
        before = ctx.before.reserves
        if case.must_succeed:
            gain0, gain1 = terms.net_paid
            expected = (before[0] + gain0, before[1] + gain1)
        else:
            expected = before
        return verdict(
            "flash.reserve_accounting",
            ctx.after.reserves == expected,
            f"expected reserves {expected}, observed {ctx.after.reserves}",
        )

    def _borrower_accounting(
        self,
        ctx: CheckContext,
        case: FlashCase,
        terms: FlashTerms,
        borrower: str,
    ) -> InvariantVerdict:
        before = ctx.before.balance_of(borrower)
        if case.must_succeed:
            cost0, cost1 = terms.net_paid
            expected = (before[0] - cost0, before[1] - cost1)
        else:
            expected = before
        observed = ctx.after.balance_of(borrower)
        return verdict(
            "flash.borrower_accounting",
            observed == expected,
            f"expected borrower balances {expected}, observed {observed}",
        )
