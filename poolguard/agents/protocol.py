"""The contract every attacker agent satisfies.

Agents are plain classes; nothing inherits from a base.  An agent
declares its parameter defaults, validates a resolved parameter map,
then drives the pool facade and reports what happened as an
``AttackOutcome``.  Expected pool failures are caught by the agent and
recorded on the outcome; anything else propagates to the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, runtime_checkable

from poolguard.core.errors import PoolCallFailed, RevertCategory, UnsupportedScenario
from poolguard.core.types import CallerIdentities
from poolguard.invariants.slippage import SwapRecord
from poolguard.invariants.twap import TwapProbe
from poolguard.pool.facade import PoolFacade

Params = dict[str, int | float]

ETHER = 10**18


@dataclass
class AttackOutcome:
    reverted: bool = False
    reason: str | None = None
    category: RevertCategory | None = None
    swaps: list[SwapRecord] = field(default_factory=list)
    twap_probe: TwapProbe | None = None
    expected_reserve_delta: tuple[int, int] | None = None
    notes: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def fail(self, exc: PoolCallFailed) -> "AttackOutcome":
        self.reverted = True
        self.reason = exc.reason or exc.category.value
        self.category = exc.category
        return self

    def to_evidence(self) -> dict[str, Any]:
        evidence: dict[str, Any] = dict(self.notes)
        if self.swaps:
            evidence["swaps"] = [s.to_dict() for s in self.swaps]
        if self.twap_probe is not None:
            evidence["twap"] = self.twap_probe.to_dict()
        if self.expected_reserve_delta is not None:
            evidence["expected_reserve_delta"] = list(self.expected_reserve_delta)
        return evidence


@runtime_checkable
class AttackerAgent(Protocol):
    """Drives one scenario archetype against a pool."""

    identities: CallerIdentities
    defaults: Mapping[str, int | float]
    optional: frozenset[str]

    def validate(self, params: Params) -> None: ...

    def attack(self, pool: PoolFacade, params: Params) -> AttackOutcome: ...


def resolve_parameters(agent: AttackerAgent, overrides: Mapping[str, int | float]) -> Params:
    """Merge ``overrides`` into the agent's defaults and validate.

    Raises:
        UnsupportedScenario: an override names a parameter the agent
            does not take, or the agent rejects the merged values.
    """
    known = set(agent.defaults) | set(agent.optional)
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise UnsupportedScenario(
            f"{type(agent).__name__} does not take parameter(s): {', '.join(unknown)}"
        )
    params: Params = {**agent.defaults, **overrides}
    agent.validate(params)
    return params


def require_positive(params: Params, *names: str) -> None:
    for name in names:
        if name in params and params[name] <= 0:
            raise UnsupportedScenario(f"parameter {name!r} must be positive, got {params[name]}")
