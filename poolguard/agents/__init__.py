"""Attacker agents, one per scenario kind.

``AGENT_REGISTRY`` maps each ``ScenarioKind`` to the class that drives
it; ``build_agent`` instantiates one bound to the caller identities.
"""

from __future__ import annotations

from typing import Callable

from poolguard.agents.flash_loan import FlashLoanAbuser
from poolguard.agents.front_run import FrontRunner
from poolguard.agents.oracle import OracleManipulator
from poolguard.agents.protocol import AttackerAgent, AttackOutcome, resolve_parameters
from poolguard.agents.reentrancy import ReentrantCaller
from poolguard.agents.sandwich import Sandwicher
from poolguard.core.errors import UnsupportedScenario
from poolguard.core.types import CallerIdentities, ScenarioKind

AGENT_REGISTRY: dict[ScenarioKind, Callable[[CallerIdentities], AttackerAgent]] = {
    ScenarioKind.FLASH_LOAN: FlashLoanAbuser,
    ScenarioKind.REENTRANCY: ReentrantCaller,
    ScenarioKind.FRONT_RUN: FrontRunner,
    ScenarioKind.SANDWICH: Sandwicher,
    ScenarioKind.ORACLE_MANIPULATION: OracleManipulator,
}


def build_agent(kind: ScenarioKind, identities: CallerIdentities) -> AttackerAgent:
    try:
        factory = AGENT_REGISTRY[kind]
    except KeyError as exc:
        raise UnsupportedScenario(f"no agent registered for {kind!r}") from exc
    return factory(identities)


__all__ = [
    "AGENT_REGISTRY",
    "AttackOutcome",
    "AttackerAgent",
    "FlashLoanAbuser",
    "FrontRunner",
    "OracleManipulator",
    "ReentrantCaller",
    "Sandwicher",
    "build_agent",
    "resolve_parameters",
]
