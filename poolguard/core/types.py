"""Shared enums and records used across the harness."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from poolguard.core.errors import InvariantViolation, RevertCategory, UnsupportedScenario


# ── Enums ────────────────────────────────────────────────────────────────────


class ScenarioKind(str, enum.Enum):
    """Scenario archetype; selects the attacker agent and its checks."""

    FLASH_LOAN = "flash_loan"
    REENTRANCY = "reentrancy"
    FRONT_RUN = "front_run"
    SANDWICH = "sandwich"
    ORACLE_MANIPULATION = "oracle_manipulation"


# ── Identities ───────────────────────────────────────────────────────────────


class CallerIdentities(BaseModel):
    """Accounts the harness acts as."""

    model_config = ConfigDict(frozen=True)

    owner: str
    attacker: str
    user: str

    @classmethod
    def from_settings(cls, settings: Any) -> "CallerIdentities":
        return cls(
            owner=settings.owner_handle,
            attacker=settings.attacker_handle,
            user=settings.user_handle,
        )

    def handles(self) -> tuple[str, str, str]:
        return (self.owner, self.attacker, self.user)


# ── Pool state ───────────────────────────────────────────────────────────────


class Observation(BaseModel):
    """One point of the tick-cumulative oracle."""

    model_config = ConfigDict(frozen=True)

    timestamp_seconds: int = Field(ge=0, lt=2**32)
    tick_cumulative: int


class PoolSnapshot(BaseModel):
    """Immutable read of pool state taken before or after a scenario step."""

    model_config = ConfigDict(frozen=True)

    sqrt_price_x96: int = Field(ge=0)
    tick: int
    locked: bool
    observation_index: int = Field(ge=0, lt=2**16)
    observation_cardinality: int = Field(ge=0, lt=2**16)
    reserves: tuple[int, int]
    fee_pips: int = 0
    timestamp: int = 0
    tick_cumulative: int | None = None
    holder_balances: dict[str, tuple[int, int]] = Field(default_factory=dict)

    def balance_of(self, handle: str) -> tuple[int, int]:
        return self.holder_balances.get(handle, (0, 0))


# ── Scenarios ────────────────────────────────────────────────────────────────


class ScenarioSpec(BaseModel):
    """What to run: an archetype plus numeric parameters."""

    model_config = ConfigDict(frozen=True)

    kind: ScenarioKind
    parameters: dict[str, int | float] = Field(default_factory=dict)
    name: str = ""

    @property
    def label(self) -> str:
        return self.name or self.kind.value

    @classmethod
    def parse(
        cls,
        kind: str,
        parameters: dict[str, int | float] | None = None,
        name: str = "",
    ) -> "ScenarioSpec":
        """Build a spec from a raw kind string, failing fast on unknown kinds."""
        try:
            scenario_kind = ScenarioKind(kind)
        except ValueError as exc:
            raise UnsupportedScenario(f"unknown scenario kind {kind!r}") from exc
        return cls(kind=scenario_kind, parameters=dict(parameters or {}), name=name)


class InvariantVerdict(BaseModel):
    """Outcome of one invariant check."""

    model_config = ConfigDict(frozen=True)

    name: str
    held: bool
    detail: str = ""


class ScenarioResult(BaseModel):
    """Everything observed while running one scenario."""

    scenario_id: str
    spec: ScenarioSpec
    before: PoolSnapshot
    after: PoolSnapshot
    reverted: bool = False
    revert_reason: str | None = None
    revert_category: RevertCategory | None = None
    invariant_verdicts: list[InvariantVerdict] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    evidence: dict[str, Any] = Field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def violations(self) -> list[InvariantVerdict]:
        return [v for v in self.invariant_verdicts if not v.held]

    @property
    def passed(self) -> bool:
        return not self.violations

    def summary(self) -> dict[str, Any]:
        return {
            "scenario_id": self.scenario_id,
            "scenario": self.spec.label,
            "kind": self.spec.kind.value,
            "reverted": self.reverted,
            "revert_reason": self.revert_reason,
            "checks": len(self.invariant_verdicts),
            "violations": [v.name for v in self.violations],
            "warnings": self.warnings,
        }


class SuiteReport(BaseModel):
    """Ordered results of a harness run."""

    results: list[ScenarioResult] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)

    @property
    def violation_count(self) -> int:
        return sum(len(r.violations) for r in self.results)

    @property
    def exit_code(self) -> int:
        return 1 if self.violation_count else 0

    def violation_names(self) -> list[str]:
        return [
            f"{r.spec.label}:{v.name}"
            for r in self.results
            for v in r.violations
        ]

    def raise_for_violations(self) -> None:
        """Raise ``InvariantViolation`` if any verdict failed."""
        names = self.violation_names()
        if names:
            raise InvariantViolation(names)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenarios": len(self.results),
            "violation_count": self.violation_count,
            "skipped": list(self.skipped),
            "results": [r.model_dump(mode="json") for r in self.results],
        }
