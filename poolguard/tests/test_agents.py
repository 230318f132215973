"""Tests for the agent registry and parameter handling."""

from __future__ import annotations

import pytest

from poolguard.agents import (
    AGENT_REGISTRY,
    AttackerAgent,
    FlashLoanAbuser,
    OracleManipulator,
    ReentrantCaller,
    build_agent,
    resolve_parameters,
)
from poolguard.agents.protocol import ETHER
from poolguard.core.errors import UnsupportedScenario
from poolguard.core.types import ScenarioKind


class TestRegistry:

    def test_every_kind_has_an_agent(self):
        assert set(AGENT_REGISTRY) == set(ScenarioKind)

    @pytest.mark.parametrize("kind", list(ScenarioKind))
    def test_agents_satisfy_protocol(self, kind, identities):
        agent = build_agent(kind, identities)
        assert isinstance(agent, AttackerAgent)
        assert agent.identities is identities

    def test_flash_loan_maps_to_abuser(self, identities):
        assert isinstance(build_agent(ScenarioKind.FLASH_LOAN, identities), FlashLoanAbuser)


class TestResolveParameters:

    def test_defaults_merged(self, identities):
        params = resolve_parameters(FlashLoanAbuser(identities), {"amount0": 5})
        assert params == {"amount0": 5, "amount1": 100 * ETHER}

    def test_optional_parameter_accepted(self, identities):
        params = resolve_parameters(FlashLoanAbuser(identities), {"repay0": 1})
        assert params["repay0"] == 1

    def test_unknown_parameter(self, identities):
        with pytest.raises(UnsupportedScenario, match="leverage"):
            resolve_parameters(FlashLoanAbuser(identities), {"leverage": 3})

    def test_negative_flash_amount(self, identities):
        with pytest.raises(UnsupportedScenario):
            resolve_parameters(FlashLoanAbuser(identities), {"amount0": -1})

    def test_unknown_entry_point(self, identities):
        with pytest.raises(UnsupportedScenario):
            resolve_parameters(ReentrantCaller(identities), {"entry_point": 7})

    def test_flash_funded_is_a_flag(self, identities):
        with pytest.raises(UnsupportedScenario, match="flash_funded"):
            resolve_parameters(OracleManipulator(identities), {"flash_funded": 2})

    def test_window_must_exceed_block(self, identities):
        with pytest.raises(UnsupportedScenario):
            resolve_parameters(OracleManipulator(identities), {"window": 12, "block_duration": 12})

    @pytest.mark.parametrize("kind", [ScenarioKind.FRONT_RUN, ScenarioKind.SANDWICH])
    def test_slippage_range(self, kind, identities):
        with pytest.raises(UnsupportedScenario):
            resolve_parameters(build_agent(kind, identities), {"slippage_bps": 10_000})
