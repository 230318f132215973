"""Slippage-bounded swap checks.

Every swap an agent makes is wrapped in ``record_swap`` so the guard
can compare what was asked for (direction, amount, price limit,
minimum output) with what the pool did (start/end price, reported
deltas, reserve movement).  Verdict names carry the swap's label,
e.g. ``slippage.price_within_limit:victim``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable

from poolguard.core.errors import PoolCallFailed, RevertCategory
from poolguard.core.types import InvariantVerdict
from poolguard.invariants.context import CheckContext, verdict
from poolguard.pool.facade import PoolFacade, SwapOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwapRecord:
    label: str
    zero_for_one: bool
    amount_specified: int
    sqrt_price_limit_x96: int
    amount_out_minimum: int
    start_sqrt_price_x96: int
    end_sqrt_price_x96: int
    reserves_before: tuple[int, int]
    reserves_after: tuple[int, int]
    amount0: int = 0
    amount1: int = 0
    reverted: bool = False
    reason: str | None = None
    category: RevertCategory | None = None

    @property
    def amount_in(self) -> int:
        return self.amount0 if self.zero_for_one else self.amount1

    @property
    def amount_out(self) -> int:
        return -(self.amount1 if self.zero_for_one else self.amount0)

    @property
    def partial_fill(self) -> bool:
        return not self.reverted and self.end_sqrt_price_x96 == self.sqrt_price_limit_x96

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value if self.category else None
        return data


def record_swap(
    facade: PoolFacade,
    label: str,
    execute: Callable[[], SwapOutcome],
    *,
    zero_for_one: bool,
    amount_specified: int,
    sqrt_price_limit_x96: int,
    amount_out_minimum: int = 0,
) -> tuple[SwapRecord, SwapOutcome | None]:
    """Run ``execute`` and capture the swap's observable effects.

    A failed swap is recorded rather than raised; callers decide
    whether the failure ends their scenario.
    """
    start = facade.pool.slot0().sqrt_price_x96
    reserves_before = facade.reserves()
    outcome: SwapOutcome | None = None
    failure: PoolCallFailed | None = None
    try:
        outcome = execute()
    except PoolCallFailed as exc:
        failure = exc
        logger.info("Swap %r reverted: %s", label, exc.reason or exc.category.value)

    record = SwapRecord(
        label=label,
        zero_for_one=zero_for_one,
        amount_specified=amount_specified,
        sqrt_price_limit_x96=sqrt_price_limit_x96,
        amount_out_minimum=amount_out_minimum,
        start_sqrt_price_x96=start,
        end_sqrt_price_x96=facade.pool.slot0().sqrt_price_x96,
        reserves_before=reserves_before,
        reserves_after=facade.reserves(),
        amount0=outcome.amount0 if outcome else 0,
        amount1=outcome.amount1 if outcome else 0,
        reverted=failure is not None,
        reason=failure.reason if failure else None,
        category=failure.category if failure else None,
    )
    return record, outcome


class SlippageGuard:
    """Price-limit, fill and minimum-output verdicts for recorded swaps."""

    def check(self, ctx: CheckContext) -> list[InvariantVerdict]:
        swaps = ctx.outcome.swaps if ctx.outcome else []
        verdicts: list[InvariantVerdict] = []
        for record in swaps:
            verdicts.append(self._price_within_limit(record))
            verdicts.append(self._fill_accounted(record))
            if record.amount_out_minimum > 0:
                verdicts.append(self._min_output_enforced(record))
        return verdicts

    def _price_within_limit(self, record: SwapRecord) -> InvariantVerdict:
        start, end, limit = record.start_sqrt_price_x96, record.end_sqrt_price_x96, record.sqrt_price_limit_x96
        name = f"slippage.price_within_limit:{record.label}"
        if record.reverted:
            # A limit on the wrong side must surface as PriceLimitReached.
            wrong_side = limit >= start if record.zero_for_one else limit <= start
            held = end == start and (
                not wrong_side or record.category is RevertCategory.PRICE_LIMIT_REACHED
            )
            return verdict(name, held, f"reverted ({record.reason}); price {'unchanged' if end == start else 'moved'}")
        held = min(start, limit) <= end <= max(start, limit)
        return verdict(name, held, f"start={start} end={end} limit={limit}")

    def _fill_accounted(self, record: SwapRecord) -> InvariantVerdict:
        name = f"slippage.fill_accounted:{record.label}"
        before, after = record.reserves_before, record.reserves_after
        if record.reverted:
            return verdict(name, after == before, f"reserves {before} -> {after} on revert")

        moved = (after[0] - before[0], after[1] - before[1])
        reported = (record.amount0, record.amount1)
        within_input = record.amount_in <= record.amount_specified
        held = moved == reported and within_input
        detail = f"reported {reported}, reserves moved {moved}"
        if record.partial_fill:
            detail += f"; partial fill consumed {record.amount_in} of {record.amount_specified}"
        return verdict(name, held, detail)

    def _min_output_enforced(self, record: SwapRecord) -> InvariantVerdict:
        name = f"slippage.min_output_enforced:{record.label}"
        if record.reverted:
            return verdict(name, True, f"swap reverted ({record.reason})")
        return verdict(
            name,
            record.amount_out >= record.amount_out_minimum,
            f"received {record.amount_out}, minimum {record.amount_out_minimum}",
        )
