"""TWAP manipulation-resistance analysis.

Timeline of a probe, with ``T0`` the attack block and ``w`` the window::

    pre  read at T0      : c(T0 - w), c(T0)
    swap at T0           : tick jumps from t_before to t_after
    idle b seconds
    post read at T0 + b  : c(T0 - w), c(T0 - w + b), c(T0), c(T0 + b)

Because ``TWAP = (c(end) - c(start)) / (end - start)``, sliding the
window by ``b`` replaces the segment ``[T0 - w, T0 - w + b]`` with ``b``
seconds at ``t_after``::

    |TWAP_after - TWAP_before| = b * |t_after - avg(slid segment)| / w

so the shift is bounded by ``maxTickDelta * b / w`` where
``maxTickDelta`` is the larger of the tick jump and the distance from
``t_after`` to the slid segment's average.  Anything larger means the
oracle leaks the manipulated tick into history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from fractions import Fraction
from typing import Any

from poolguard.core.types import InvariantVerdict, Observation
from poolguard.invariants.context import CheckContext, verdict

logger = logging.getLogger(__name__)


def twap(start: Observation, end: Observation) -> Fraction:
    """Exact time-weighted average tick between two observations."""
    elapsed = end.timestamp_seconds - start.timestamp_seconds
    if elapsed <= 0:
        raise ValueError("TWAP needs a positive interval")
    return Fraction(end.tick_cumulative - start.tick_cumulative, elapsed)


def manipulation_bound(max_tick_delta: int | Fraction, block_duration: int, window: int) -> Fraction:
    if window <= block_duration:
        raise ValueError("window must be longer than the block duration")
    return Fraction(max_tick_delta) * block_duration / window


@dataclass(frozen=True)
class TwapProbe:
    """Oracle reads taken around a manipulation."""

    window: int
    block_duration: int
    pre_read: tuple[Observation, Observation]
    post_read: tuple[Observation, Observation, Observation, Observation]
    repeat_read: tuple[Observation, Observation, Observation, Observation] | None = None

    @property
    def pre_ages(self) -> list[int]:
        return [self.window, 0]

    @property
    def twap_before(self) -> Fraction:
        return twap(self.pre_read[0], self.pre_read[1])

    @property
    def twap_after(self) -> Fraction:
        return twap(self.post_read[1], self.post_read[3])

    @property
    def slid_segment_average(self) -> Fraction:
        return twap(self.post_read[0], self.post_read[1])

    def to_dict(self) -> dict[str, Any]:
        return {
            "window": self.window,
            "block_duration": self.block_duration,
            "twap_before": str(self.twap_before),
            "twap_after": str(self.twap_after),
        }

    @staticmethod
    def post_ages(window: int, block_duration: int) -> list[int]:
        return [window + block_duration, window, block_duration, 0]


class TwapAnalyzer:
    """Oracle verdicts for a scenario that recorded a ``TwapProbe``."""

    def check(self, ctx: CheckContext) -> list[InvariantVerdict]:
        probe = ctx.outcome.twap_probe if ctx.outcome else None
        if probe is None:
            return []

        tick_after = ctx.after.tick
        jump = abs(tick_after - ctx.before.tick)
        max_tick_delta = max(Fraction(jump), abs(tick_after - probe.slid_segment_average))
        bound = manipulation_bound(max_tick_delta, probe.block_duration, probe.window)
        shift = abs(probe.twap_after - probe.twap_before)
        logger.debug(
            "TWAP shift %s vs bound %s (jump=%d, window=%ds, block=%ds)",
            shift, bound, jump, probe.window, probe.block_duration,
        )

        stable = probe.post_read[0] == probe.pre_read[0] and probe.post_read[2] == probe.pre_read[1]
        verdicts = [
            verdict(
                "oracle.twap_bound",
                shift <= bound,
                f"|dTWAP|={float(shift):.4f} bound={float(bound):.4f} maxTickDelta={float(max_tick_delta):.4f}",
            ),
            verdict(
                "oracle.history_stable",
                stable,
                "pre-attack cumulatives unchanged" if stable else "pre-attack cumulatives were rewritten",
            ),
        ]
        if probe.repeat_read is not None:
            verdicts.append(verdict(
                "oracle.observe_idempotent",
                probe.repeat_read == probe.post_read,
                "repeated observe on an unchanged pool",
            ))
        return verdicts
