"""Scenario orchestrator: drives attacker agents and judges pass/fail.

Per scenario:
1. RESOLVE  — pick the agent for the kind and merge/validate parameters
2. BEFORE   — snapshot the pool and the caller identities' balances
3. ATTACK   — let the agent drive the facade (lock tracker attached)
4. AFTER    — snapshot again, even if the attack reverted
5. CHECK    — pool-wide, lock and kind-specific invariants
6. RESULT   — assemble an immutable ``ScenarioResult``

Scenarios against one pool are serialized; a second ``run`` while one
is in flight fails with ``PoolBusy`` instead of waiting.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Iterable, Protocol

from poolguard.agents import AttackerAgent, AttackOutcome, build_agent, resolve_parameters
from poolguard.core.config import Settings, get_settings
from poolguard.core.errors import ConfigurationError, PoolBusy, PoolCallFailed, UnsupportedScenario
from poolguard.core.logging import scenario_context
from poolguard.core.types import (
    CallerIdentities,
    InvariantVerdict,
    ScenarioKind,
    ScenarioResult,
    ScenarioSpec,
    SuiteReport,
)
from poolguard.invariants.context import CheckContext
from poolguard.invariants.flash import FlashSettlementVerifier
from poolguard.invariants.lock import LockInvariants, LockStateTracker
from poolguard.invariants.pool_state import PoolStateInvariants
from poolguard.invariants.slippage import SlippageGuard
from poolguard.invariants.twap import TwapAnalyzer
from poolguard.pool.facade import PoolFacade

logger = logging.getLogger(__name__)


class Checker(Protocol):
    def check(self, ctx: CheckContext) -> list[InvariantVerdict]: ...


_COMMON_CHECKS: tuple[Checker, ...] = (PoolStateInvariants(), LockInvariants())

_KIND_CHECKS: dict[ScenarioKind, tuple[Checker, ...]] = {
    ScenarioKind.FLASH_LOAN: (FlashSettlementVerifier(),),
    ScenarioKind.REENTRANCY: (),
    ScenarioKind.FRONT_RUN: (SlippageGuard(),),
    ScenarioKind.SANDWICH: (SlippageGuard(),),
    ScenarioKind.ORACLE_MANIPULATION: (TwapAnalyzer(), SlippageGuard()),
}


class ScenarioOrchestrator:
    """Runs scenarios one at a time against a single pool facade."""

    def __init__(
        self,
        facade: PoolFacade,
        identities: CallerIdentities,
        settings: Settings | None = None,
    ) -> None:
        self.facade = facade
        self.identities = identities
        self.settings = settings or get_settings()
        self._in_flight = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def verify_ready(self) -> None:
        """Fail fast if the pool or identities cannot support a run.

        Raises:
            ConfigurationError: uninitialized or locked pool, or missing or
                duplicated caller identities.
        """
        handles = self.identities.handles()
        if any(not h for h in handles):
            raise ConfigurationError("owner, attacker and user identities must all be set")
        if len(set(handles)) != len(handles):
            raise ConfigurationError("caller identities must be distinct")
        if self.facade.address in handles:
            raise ConfigurationError("a caller identity may not be the pool itself")

        snapshot = self.facade.read_snapshot()
        if snapshot.sqrt_price_x96 == 0:
            raise ConfigurationError("pool is not initialized")
        if snapshot.locked:
            raise ConfigurationError("pool is locked before any scenario ran")

    def run(self, spec: ScenarioSpec) -> ScenarioResult:
        """Run one scenario and return its judged result.

        Raises:
            UnsupportedScenario: unknown kind or parameter (pool untouched).
            PoolBusy: another scenario is in flight on this pool.
        """
        agent = build_agent(spec.kind, self.identities)
        params = resolve_parameters(agent, spec.parameters)

        if not self._in_flight.acquire(blocking=False):
            raise PoolBusy(f"pool {self.facade.address} is already running a scenario")
        try:
            scenario_id = str(uuid.uuid4())
            with scenario_context(scenario_id, spec.kind.value):
                return self._run_locked(scenario_id, spec, agent, params)
        finally:
            self._in_flight.release()

    def run_suite(self, specs: Iterable[ScenarioSpec]) -> SuiteReport:
        """Run scenarios in order; unsupported ones are skipped, not fatal."""
        self.verify_ready()
        report = SuiteReport()
        for spec in specs:
            try:
                report.results.append(self.run(spec))
            except UnsupportedScenario as exc:
                logger.warning("Skipping scenario %s: %s", spec.label, exc)
                report.skipped.append(f"{spec.label}: {exc}")
        logger.info(
            "Suite finished: %d scenario(s), %d violation(s), %d skipped",
            len(report.results), report.violation_count, len(report.skipped),
        )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_locked(
        self,
        scenario_id: str,
        spec: ScenarioSpec,
        agent: AttackerAgent,
        params: dict[str, int | float],
    ) -> ScenarioResult:
        tracker = LockStateTracker()
        facade = self.facade.with_listeners(tracker)
        holders = self.identities.handles()

        logger.info("Starting %s scenario %s", spec.kind.value, spec.label)
        start = time.monotonic()
        before = facade.read_snapshot(holders)

        try:
            outcome = agent.attack(facade, params)
        except PoolCallFailed as exc:
            outcome = AttackOutcome().fail(exc)

        after = facade.read_snapshot(holders)
        ctx = CheckContext(
            spec=spec,
            before=before,
            after=after,
            reverted=outcome.reverted,
            revert_reason=outcome.reason,
            revert_category=outcome.category,
            identities=self.identities,
            settings=self.settings,
            parameters=params,
            outcome=outcome,
            lock_tracker=tracker,
        )

        verdicts: list[InvariantVerdict] = []
        for checker in (*_COMMON_CHECKS, *_KIND_CHECKS.get(spec.kind, ())):
            verdicts.extend(checker.check(ctx))

        duration = time.monotonic() - start
        result = ScenarioResult(
            scenario_id=scenario_id,
            spec=spec,
            before=before,
            after=after,
            reverted=outcome.reverted,
            revert_reason=outcome.reason,
            revert_category=outcome.category,
            invariant_verdicts=verdicts,
            warnings=list(outcome.warnings),
            evidence=outcome.to_evidence(),
            duration_seconds=duration,
        )

        for violation in result.violations:
            logger.error(
                "Invariant %s violated: %s", violation.name, violation.detail,
                extra={"verdict": violation.name},
            )
        logger.info(
            "Finished %s in %.3fs: %d check(s), %d violation(s)%s",
            spec.label, duration, len(verdicts), len(result.violations),
            f", reverted ({outcome.reason})" if outcome.reverted else "",
            extra={"duration_ms": round(duration * 1000, 1), "reason": outcome.reason},
        )
        return result
