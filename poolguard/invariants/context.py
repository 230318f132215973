"""Inputs shared by every checker."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from poolguard.core.config import Settings
from poolguard.core.errors import RevertCategory
from poolguard.core.types import CallerIdentities, InvariantVerdict, PoolSnapshot, ScenarioSpec

if TYPE_CHECKING:
    from poolguard.agents.protocol import AttackOutcome
    from poolguard.invariants.lock import LockStateTracker


@dataclass
class CheckContext:
    """Before/after state of one scenario plus what the agent reported.

    ``parameters`` are the agent's resolved parameters (defaults merged
    with the scenario's overrides).
    """
    spec: ScenarioSpec
    before: PoolSnapshot
    after: PoolSnapshot
    reverted: bool
    revert_reason: str | None
    revert_category: RevertCategory | None
    identities: CallerIdentities
    settings: Settings
    parameters: dict[str, int | float] = field(default_factory=dict)
    outcome: "AttackOutcome | None" = None
    lock_tracker: "LockStateTracker | None" = None


def verdict(name: str, held: bool, detail: str = "") -> InvariantVerdict:
    return InvariantVerdict(name=name, held=bool(held), detail=detail)
