"""Tick-cumulative oracle accumulator.

A bounded ring of observations, one per block at most::

    slot[i] = (block_timestamp, tick_cumulative, initialized)
    tick_cumulative(t) = tick_cumulative(t_prev) + tick * (t - t_prev)

The ring starts with cardinality 1.  ``grow`` only raises
``cardinality_next``; the live cardinality catches up when the write
index wraps onto the last populated slot, so already-written history is
never reordered.  Reads older than the oldest populated slot fail with
the ``OLD`` reason code.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass

from poolguard.core.errors import PoolRevert

MAX_CARDINALITY = 65535


@dataclass(frozen=True)
class OracleSlot:
    block_timestamp: int = 0
    tick_cumulative: int = 0
    initialized: bool = False


def transform(last: OracleSlot, block_timestamp: int, tick: int) -> OracleSlot:
    """Advance ``last`` to ``block_timestamp`` assuming ``tick`` held throughout."""
    elapsed = block_timestamp - last.block_timestamp
    return OracleSlot(
        block_timestamp=block_timestamp,
        tick_cumulative=last.tick_cumulative + tick * elapsed,
        initialized=True,
    )


def _div_toward_zero(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


class ObservationRing:
    """Append-only ring buffer of oracle observations."""

    def __init__(self) -> None:
        self._slots: list[OracleSlot] = [OracleSlot()]
        self.index = 0
        self.cardinality = 0
        self.cardinality_next = 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def initialize(self, block_timestamp: int) -> None:
        self._slots[0] = OracleSlot(block_timestamp=block_timestamp, initialized=True)
        self.index = 0
        self.cardinality = 1
        self.cardinality_next = 1

    def write(self, block_timestamp: int, tick: int) -> bool:
        """Record ``tick`` up to ``block_timestamp``.  Returns False if already written this block."""
        last = self._slots[self.index]
        if last.block_timestamp == block_timestamp:
            return False
        if block_timestamp < last.block_timestamp:
            raise ValueError("observation timestamps must not go backwards")

        if self.cardinality_next > self.cardinality and self.index == self.cardinality - 1:
            self.cardinality = self.cardinality_next

        self.index = (self.index + 1) % self.cardinality
        self._slots[self.index] = transform(last, block_timestamp, tick)
        return True

    def grow(self, cardinality_next: int) -> int:
        if self.cardinality == 0:
            raise PoolRevert("I")
        if cardinality_next > MAX_CARDINALITY:
            raise ValueError(f"cardinality {cardinality_next} exceeds {MAX_CARDINALITY}")
        if cardinality_next <= self.cardinality_next:
            return self.cardinality_next
        # Placeholder timestamp marks the slot as allocated but uninitialized.
        self._slots.extend(
            OracleSlot(block_timestamp=1)
            for _ in range(cardinality_next - len(self._slots))
        )
        self.cardinality_next = cardinality_next
        return cardinality_next

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def chronological(self) -> list[OracleSlot]:
        """Populated slots from oldest to newest."""
        if self.cardinality == 0:
            return []
        ordered = self._slots[self.index + 1:self.cardinality] + self._slots[:self.index + 1]
        return [slot for slot in ordered if slot.initialized]

    def newest(self) -> OracleSlot:
        return self._slots[self.index]

    def oldest(self) -> OracleSlot:
        return self.chronological()[0]

    def observe_single(self, now: int, seconds_ago: int, tick: int) -> int:
        if self.cardinality == 0:
            raise PoolRevert("I")
        if seconds_ago < 0:
            raise ValueError("seconds_ago must be non-negative")

        target = now - seconds_ago
        newest = self.newest()
        if target >= newest.block_timestamp:
            if target == newest.block_timestamp:
                return newest.tick_cumulative
            return transform(newest, target, tick).tick_cumulative

        history = self.chronological()
        if target < history[0].block_timestamp:
            raise PoolRevert("OLD")

        timestamps = [slot.block_timestamp for slot in history]
        position = bisect.bisect_left(timestamps, target)
        at_or_after = history[position]
        if at_or_after.block_timestamp == target:
            return at_or_after.tick_cumulative

        before = history[position - 1]
        span = at_or_after.block_timestamp - before.block_timestamp
        slope = _div_toward_zero(at_or_after.tick_cumulative - before.tick_cumulative, span)
        return before.tick_cumulative + slope * (target - before.block_timestamp)

    def observe(self, now: int, seconds_agos: list[int], tick: int) -> list[int]:
        return [self.observe_single(now, seconds_ago, tick) for seconds_ago in seconds_agos]

    def copy(self) -> "ObservationRing":
        clone = ObservationRing()
        clone._slots = list(self._slots)
        clone.index = self.index
        clone.cardinality = self.cardinality
        clone.cardinality_next = self.cardinality_next
        return clone
