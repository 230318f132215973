"""Invariants checked around every scenario, whatever its kind."""

from __future__ import annotations

from poolguard.core.types import InvariantVerdict
from poolguard.invariants.context import CheckContext, verdict
from poolguard.pool.sqrt_math import MAX_TICK


class PoolStateInvariants:

    def check(self, ctx: CheckContext) -> list[InvariantVerdict]:
        before, after = ctx.before, ctx.after
        verdicts = [
            verdict("pool.unlocked_before", not before.locked, f"locked={before.locked}"),
            verdict("pool.unlocked_after", not after.locked, f"locked={after.locked}"),
        ]
        if ctx.reverted:
            verdicts.append(verdict(
                "pool.reverted_reserves_unchanged",
                after.reserves == before.reserves,
                f"{before.reserves} -> {after.reserves}",
            ))
        verdicts.append(self._accumulator_continuity(ctx))
        return verdicts

    def _accumulator_continuity(self, ctx: CheckContext) -> InvariantVerdict:
        before, after = ctx.before, ctx.after
        problems: list[str] = []
        if after.observation_index >= after.observation_cardinality:
            problems.append(
                f"index {after.observation_index} >= cardinality {after.observation_cardinality}"
            )
        if after.observation_cardinality < before.observation_cardinality:
            problems.append(
                f"cardinality shrank {before.observation_cardinality} -> {after.observation_cardinality}"
            )
        elapsed = after.timestamp - before.timestamp
        if elapsed < 0:
            problems.append(f"clock went backwards by {-elapsed}s")

        # At most one write per block, so the index can move at most
        # elapsed + 1 slots forward while the ring keeps its size.
        cardinality = after.observation_cardinality
        if cardinality == before.observation_cardinality and 0 <= elapsed < cardinality - 1:
            advanced = (after.observation_index - before.observation_index) % cardinality
            if advanced > elapsed + 1:
                problems.append(
                    f"index moved {before.observation_index} -> {after.observation_index} "
                    f"({advanced} slots) in {elapsed}s"
                )

        if before.tick_cumulative is not None and after.tick_cumulative is not None:
            delta = after.tick_cumulative - before.tick_cumulative
            if abs(delta) > MAX_TICK * max(elapsed, 0):
                problems.append(f"tick cumulative jumped by {delta} over {elapsed}s")
            if before.tick >= 0 and after.tick >= 0 and delta < 0:
                problems.append(f"tick cumulative fell by {-delta} while tick >= 0")
        return verdict(
            "oracle.accumulator_continuity",
            not problems,
            "; ".join(problems) or f"elapsed={elapsed}s",
        )
