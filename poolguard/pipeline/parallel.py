"""Parallel scenario execution across independent pools.

Each scenario gets its own pool built by a factory, so scenarios never
share state and the per-pool serialization rule is never in play::

    ParallelScenarioRunner
     ├─ worker slot 0  ─► pool_factory() ─► ScenarioOrchestrator.run(spec)
     ├─ worker slot 1  ─► …
     └─ worker slot N
            │
            └─ results gathered back into input order ──► SuiteReport

Orchestrator runs are synchronous, so each one executes in a thread via
``asyncio.to_thread`` while a semaphore caps concurrency.  ``cancel``
stops scenarios that have not started; started ones run to completion.
Hitting ``total_timeout_sec`` has the same effect as ``cancel``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from poolguard.core.config import Settings, get_settings
from poolguard.core.errors import ConfigurationError, UnsupportedScenario
from poolguard.core.types import CallerIdentities, ScenarioResult, ScenarioSpec, SuiteReport
from poolguard.pipeline.orchestrator import ScenarioOrchestrator
from poolguard.pool.facade import PoolCollaborator, PoolFacade

logger = logging.getLogger(__name__)


# ── Configuration ────────────────────────────────────────────────────────────


@dataclass
class ParallelRunConfig:
    num_workers: int = 4
    total_timeout_sec: float | None = None


@dataclass
class ParallelRunStats:
    """Bookkeeping for one parallel run."""
    started: int = 0
    completed: int = 0
    cancelled: int = 0
    failed: list[str] = field(default_factory=list)
    elapsed_sec: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "started": self.started,
            "completed": self.completed,
            "cancelled": self.cancelled,
            "failed": list(self.failed),
            "elapsed_sec": round(self.elapsed_sec, 2),
        }


# ── Runner ───────────────────────────────────────────────────────────────────


class ParallelScenarioRunner:
    """Run independent scenarios concurrently, one fresh pool each.

    Usage::

        runner = ParallelScenarioRunner(lambda: deploy_simulated_pool(settings), identities)
        report = await runner.run(default_suite(settings))
    """

    def __init__(
        self,
        pool_factory: Callable[[], PoolCollaborator],
        identities: CallerIdentities,
        settings: Settings | None = None,
        config: ParallelRunConfig | None = None,
    ) -> None:
        self.pool_factory = pool_factory
        self.identities = identities
        self.settings = settings or get_settings()
        self.config = config or ParallelRunConfig(num_workers=self.settings.parallel_workers)
        self.stats = ParallelRunStats()
        self._cancelled = False

    def cancel(self) -> None:
        """Stop scenarios that have not started yet."""
        self._cancelled = True

    async def run(self, specs: Sequence[ScenarioSpec]) -> SuiteReport:
        """Run ``specs`` concurrently and return results in input order.

        Raises:
            ConfigurationError: a pool could not be prepared; fatal to the run.
        """
        start = time.monotonic()
        self.stats = ParallelRunStats()
        semaphore = asyncio.Semaphore(max(1, self.config.num_workers))

        tasks = [
            asyncio.create_task(self._run_one(spec, semaphore), name=f"scenario-{i}")
            for i, spec in enumerate(specs)
        ]
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self.config.total_timeout_sec)
            if pending:
                # Never cancel a task: queued ones see the flag and return,
                # running ones finish their scenario.
                logger.warning(
                    "Parallel run timed out after %.1fs; %d scenario(s) not finished",
                    self.config.total_timeout_sec, len(pending),
                )
                self.cancel()
                await asyncio.wait(pending)
        gathered = [t.exception() or t.result() for t in tasks]

        report = SuiteReport()
        for spec, outcome in zip(specs, gathered):
            if isinstance(outcome, ScenarioResult):
                report.results.append(outcome)
            elif isinstance(outcome, ConfigurationError):
                raise outcome
            elif isinstance(outcome, UnsupportedScenario):
                report.skipped.append(f"{spec.label}: {outcome}")
            elif isinstance(outcome, BaseException) and not isinstance(outcome, asyncio.CancelledError):
                self.stats.failed.append(f"{spec.label}: {outcome!r}")
                raise outcome
            else:
                report.skipped.append(f"{spec.label}: cancelled")

        self.stats.elapsed_sec = time.monotonic() - start
        logger.info("Parallel run finished: %s", self.stats.to_dict())
        return report

    async def _run_one(self, spec: ScenarioSpec, semaphore: asyncio.Semaphore) -> ScenarioResult | None:
        async with semaphore:
            if self._cancelled:
                self.stats.cancelled += 1
                logger.debug("Scenario %s cancelled before start", spec.label)
                return None
            self.stats.started += 1
            result = await asyncio.to_thread(self._run_sync, spec)
            self.stats.completed += 1
            return result

    def _run_sync(self, spec: ScenarioSpec) -> ScenarioResult:
        facade = PoolFacade(self.pool_factory())
        orchestrator = ScenarioOrchestrator(facade, self.identities, self.settings)
        orchestrator.verify_ready()
        return orchestrator.run(spec)
