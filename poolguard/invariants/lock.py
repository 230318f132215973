"""Reentrancy-lock state machine.

::

    UNLOCKED --enter--> LOCKED --exit--> UNLOCKED
                          |
                        enter   (reentrant attempt: must fail)

The tracker listens on the facade, so it sees every mutating entry
point, including calls made from inside another call's callback.  A
nested enter while ``LOCKED`` is recorded as a reentrant attempt; when
that frame exits without an error the pool accepted the reentry, which
is always a violation.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

from poolguard.core.types import InvariantVerdict, ScenarioKind
from poolguard.invariants.context import CheckContext, verdict

logger = logging.getLogger(__name__)


class LockState(str, enum.Enum):
    UNLOCKED = "unlocked"
    LOCKED = "locked"


@dataclass(frozen=True)
class LockTransition:
    operation: str
    entered: bool
    reentrant: bool
    error: str | None = None


@dataclass
class _Frame:
    operation: str
    reentrant: bool


@dataclass
class LockStateTracker:
    """Facade listener that replays the pool's lock transitions."""

    state: LockState = LockState.UNLOCKED
    reentrant_attempts: int = 0
    reentries_accepted: int = 0
    reentries_rejected: int = 0
    history: list[LockTransition] = field(default_factory=list)
    _stack: list[_Frame] = field(default_factory=list)

    def on_enter(self, operation: str) -> None:
        reentrant = self.state is LockState.LOCKED
        if reentrant:
            self.reentrant_attempts += 1
            logger.debug("Reentrant %s attempted while locked", operation)
        self._stack.append(_Frame(operation, reentrant))
        self.history.append(LockTransition(operation, entered=True, reentrant=reentrant))
        self.state = LockState.LOCKED

    def on_exit(self, operation: str, error: BaseException | None) -> None:
        frame = self._stack.pop() if self._stack else _Frame(operation, False)
        if frame.reentrant:
            if error is None:
                self.reentries_accepted += 1
                logger.warning("Reentrant %s was accepted by the pool", operation)
            else:
                self.reentries_rejected += 1
        self.history.append(LockTransition(
            operation,
            entered=False,
            reentrant=frame.reentrant,
            error=getattr(error, "reason", None) or (type(error).__name__ if error else None),
        ))
        self.state = LockState.LOCKED if self._stack else LockState.UNLOCKED

    @property
    def depth(self) -> int:
        return len(self._stack)

    def guard_verdict(self) -> InvariantVerdict:
        return verdict(
            "lock.no_reentry_accepted",
            self.reentries_accepted == 0,
            f"{self.reentries_accepted} of {self.reentrant_attempts} reentrant call(s) accepted",
        )


class LockInvariants:
    """Lock verdicts for one scenario."""

    def check(self, ctx: CheckContext) -> list[InvariantVerdict]:
        tracker = ctx.lock_tracker
        if tracker is None:
            return []
        verdicts = [tracker.guard_verdict()]
        if ctx.spec.kind is not ScenarioKind.REENTRANCY:
            return verdicts

        verdicts.append(verdict(
            "lock.reentry_rejected",
            tracker.reentrant_attempts > 0 and tracker.reentries_rejected == tracker.reentrant_attempts,
            f"attempts={tracker.reentrant_attempts} rejected={tracker.reentries_rejected}",
        ))
        verdicts.append(verdict(
            "lock.released",
            not ctx.after.locked and tracker.state is LockState.UNLOCKED,
            f"pool locked={ctx.after.locked}, tracker={tracker.state.value}",
        ))
        verdicts.append(self._reserves_baseline(ctx))
        return verdicts

    def _reserves_baseline(self, ctx: CheckContext) -> InvariantVerdict:
        before, after = ctx.before.reserves, ctx.after.reserves
        if ctx.reverted:
            expected = before
        else:
            delta = (ctx.outcome.expected_reserve_delta if ctx.outcome else None) or (0, 0)
            expected = (before[0] + delta[0], before[1] + delta[1])
        return verdict(
            "lock.reserves_baseline",
            after == expected,
            f"expected {expected}, observed {after}",
        )
