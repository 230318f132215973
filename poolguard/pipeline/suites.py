"""Built-in scenario suites."""

from __future__ import annotations

from poolguard.agents.protocol import ETHER
from poolguard.core.config import Settings, get_settings
from poolguard.core.types import ScenarioKind, ScenarioSpec
from poolguard.pool.sqrt_math import fee_for


def default_suite(settings: Settings | None = None) -> list[ScenarioSpec]:
    """The standard audit: flash settlement, reentrancy, MEV and oracle scenarios."""
    s = settings or get_settings()
    loan = 100 * ETHER
    fee = fee_for(loan, s.pool_fee_pips)
    drain = 2 * s.initial_liquidity + loan
    slippage = s.slippage_tolerance_bps

    return [
        ScenarioSpec(
            kind=ScenarioKind.FLASH_LOAN,
            name="flash_full_repayment",
            parameters={"amount0": loan, "amount1": loan, "repay0": loan + fee, "repay1": loan + fee},
        ),
        ScenarioSpec(
            kind=ScenarioKind.FLASH_LOAN,
            name="flash_under_repayment",
            parameters={"amount0": loan, "amount1": loan, "repay0": loan, "repay1": loan},
        ),
        ScenarioSpec(
            kind=ScenarioKind.FLASH_LOAN,
            name="flash_drain",
            parameters={"amount0": drain, "amount1": drain},
        ),
        ScenarioSpec(kind=ScenarioKind.REENTRANCY, name="reentrancy_via_flash", parameters={"entry_point": 0}),
        ScenarioSpec(kind=ScenarioKind.REENTRANCY, name="reentrancy_via_swap", parameters={"entry_point": 1}),
        ScenarioSpec(kind=ScenarioKind.REENTRANCY, name="reentrancy_via_mint", parameters={"entry_point": 2}),
        ScenarioSpec(
            kind=ScenarioKind.FRONT_RUN,
            name="front_run_protected_victim",
            parameters={"front_amount": 200 * ETHER, "victim_amount": 100 * ETHER, "slippage_bps": slippage},
        ),
        ScenarioSpec(
            kind=ScenarioKind.SANDWICH,
            name="sandwich",
            parameters={"front_amount": 1 * ETHER, "victim_amount": 10 * ETHER, "slippage_bps": slippage},
        ),
        ScenarioSpec(
            kind=ScenarioKind.ORACLE_MANIPULATION,
            name="oracle_manipulation",
            parameters={
                "amount": 1000 * ETHER,
                "window": s.twap_window_seconds,
                "block_duration": s.block_duration_seconds,
            },
        ),
    ]
