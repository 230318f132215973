"""Shared fixtures for the poolguard test suite."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator

import pytest

from poolguard.core.config import Settings
from poolguard.core.types import CallerIdentities
from poolguard.pipeline.orchestrator import ScenarioOrchestrator
from poolguard.pool.facade import PoolFacade
from poolguard.pool.oracle import OracleSlot
from poolguard.pool.simulated import SimulatedPool, deploy_simulated_pool


# ── Deliberately broken collaborators ────────────────────────────────────────


class UnguardedPool(SimulatedPool):
    """Never takes the reentrancy lock."""

    @contextmanager
    def _lock(self) -> Iterator[None]:
        yield


class NoRepaymentCheckPool(SimulatedPool):
    """Lets flash borrowers keep the fee (and the principal)."""

    def _check_repayment(self, before, after, fees) -> None:
        return None


class SpotOraclePool(SimulatedPool):
    """Reports cumulatives as if the current tick had always held."""

    def observe(self, seconds_agos: list[int]) -> list[int]:
        tick = self.slot0().tick
        now = self.block_timestamp()
        return [tick * (now - s) for s in seconds_agos]


class StuckLockPool(SimulatedPool):
    """Forgets to release the lock after a flash loan."""

    def flash(self, recipient, amount0, amount1, callback):
        paid = super().flash(recipient, amount0, amount1, callback)
        self._slot0.unlocked = False
        return paid


class ResettingOraclePool(SimulatedPool):
    """Restarts the tick accumulator from zero whenever it records an observation."""

    def _write_observation(self) -> None:
        super()._write_observation()
        ring = self._oracle
        ring._slots[ring.index] = OracleSlot(block_timestamp=self._now, tick_cumulative=0, initialized=True)


# ── Core fixtures ────────────────────────────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    """Default settings, isolated from any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def identities(settings: Settings) -> CallerIdentities:
    return CallerIdentities.from_settings(settings)


@pytest.fixture
def make_pool(settings: Settings, identities: CallerIdentities) -> Callable[..., SimulatedPool]:
    """Factory deploying a funded, seeded pool of the given class."""

    def _make(pool_cls: type[SimulatedPool] = SimulatedPool) -> SimulatedPool:
        return deploy_simulated_pool(settings, identities, pool_cls=pool_cls)

    return _make


@pytest.fixture
def pool(make_pool: Callable[..., SimulatedPool]) -> SimulatedPool:
    return make_pool()


@pytest.fixture
def facade(pool: SimulatedPool) -> PoolFacade:
    return PoolFacade(pool)


@pytest.fixture
def make_orchestrator(
    make_pool: Callable[..., SimulatedPool],
    identities: CallerIdentities,
    settings: Settings,
) -> Callable[..., ScenarioOrchestrator]:
    def _make(pool_cls: type[SimulatedPool] = SimulatedPool) -> ScenarioOrchestrator:
        return ScenarioOrchestrator(PoolFacade(make_pool(pool_cls)), identities, settings)

    return _make


@pytest.fixture
def orchestrator(make_orchestrator: Callable[..., ScenarioOrchestrator]) -> ScenarioOrchestrator:
    return make_orchestrator()
