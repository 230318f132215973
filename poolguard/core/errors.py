"""Error taxonomy for the poolguard harness.

Two families live here:

    HarnessError
     ├── ConfigurationError      — missing pool / bad setup, fatal before any run
     ├── UnsupportedScenario     — unknown kind or parameter, fatal to one scenario
     ├── UnsupportedLookback     — TWAP window older than recorded history
     ├── PoolBusy                — second scenario on an in-flight pool
     ├── InvariantViolation      — a verdict with held=False, always surfaced
     └── PoolCallFailed          — expected-possible collaborator outcomes
           └── Reverted
                 ├── PriceLimitReached
                 └── InsufficientRepayment

``PoolCallFailed`` subclasses are not harness bugs: the orchestrator
turns them into ``ScenarioResult`` fields.  Everything else propagates.
"""

from __future__ import annotations

from enum import Enum


# ── Categories ───────────────────────────────────────────────────────────────


class RevertCategory(str, Enum):
    """Machine-readable category of a failed pool call."""

    REVERTED = "reverted"
    PRICE_LIMIT_REACHED = "price_limit_reached"
    INSUFFICIENT_REPAYMENT = "insufficient_repayment"


# ── Harness errors ───────────────────────────────────────────────────────────


class HarnessError(Exception):
    """Base class for every error raised by poolguard."""


class ConfigurationError(HarnessError):
    """Setup is unusable (no pool, uninitialized pool, bad identity)."""


class UnsupportedScenario(HarnessError):
    """The scenario kind or one of its parameters is not recognised."""


class UnsupportedLookback(HarnessError):
    """A requested observation age predates the oldest recorded observation."""

    def __init__(self, seconds_ago: int, reason: str = "OLD") -> None:
        super().__init__(f"lookback of {seconds_ago}s exceeds recorded history ({reason})")
        self.seconds_ago = seconds_ago
        self.reason = reason


class PoolBusy(HarnessError):
    """A scenario is already running against this pool instance."""


class InvariantViolation(HarnessError):
    """One or more invariant verdicts did not hold."""

    def __init__(self, violations: list[str]) -> None:
        super().__init__(f"{len(violations)} invariant violation(s): {', '.join(violations)}")
        self.violations = violations


# ── Collaborator outcomes ────────────────────────────────────────────────────


class PoolCallFailed(HarnessError):
    """A pool entry point failed and rolled back all of its effects."""

    category: RevertCategory = RevertCategory.REVERTED

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason or self.category.value)
        self.reason = reason


class Reverted(PoolCallFailed):
    """Generic revert with the collaborator's reason string."""


class PriceLimitReached(Reverted):
    """The supplied sqrt price limit is already on the wrong side of the price."""

    category = RevertCategory.PRICE_LIMIT_REACHED


class InsufficientRepayment(Reverted):
    """A flash borrower did not return principal plus fee."""

    category = RevertCategory.INSUFFICIENT_REPAYMENT


class PoolRevert(Exception):
    """Raised by a pool collaborator; carries the raw revert reason code.

    The facade translates it into the ``PoolCallFailed`` hierarchy.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
