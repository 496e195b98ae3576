#!/usr/bin/env python3
"""
Tests for the declared deployment steps
"""

import pytest

from deployment.address_book import TypeAndVersion
from deployment.config import Features
from deployment import contracts as ct
from deployment.errors import MissingDependency
from deployment.steps import ALL_STEPS, CHAIN_STEPS, DeployStep, StepContext, validate_steps

DEPLOYER = "0x0000000000000000000000000000000000000099"


class TestSteps:
    def test_topology_is_ordered(self):
        validate_steps(ALL_STEPS)

    def test_outputs_are_unique(self):
        outputs = [step.output for step in ALL_STEPS]
        assert len(outputs) == len(set(outputs))

    def test_out_of_order_rejected(self):
        with pytest.raises(ValueError):
            validate_steps(CHAIN_STEPS)

    def test_unknown_input_rejected(self):
        step = DeployStep(ct.ONRAMP_V1_6, requires=(TypeAndVersion("Nothing", "1.0.0"),))
        with pytest.raises(ValueError):
            validate_steps([step])

    def test_home_steps_only_on_home_chain(self):
        home = StepContext(1, DEPLOYER, Features(), is_home=True)
        remote = StepContext(2, DEPLOYER, Features(), is_home=False)
        registry_step = next(s for s in ALL_STEPS if s.output == ct.CAPABILITIES_REGISTRY_V1_0)
        assert registry_step.enabled(home)
        assert not registry_step.enabled(remote)

    def test_feature_flags(self):
        ctx = StepContext(2, DEPLOYER, Features(usdc_chains=[2], multicall3=False), is_home=False)
        usdc = next(s for s in ALL_STEPS if s.output == ct.USDC_TOKEN_POOL_V1_5)
        multicall = next(s for s in ALL_STEPS if s.output == ct.MULTICALL3_V1_0)
        assert usdc.enabled(ctx)
        assert not multicall.enabled(ctx)

    def test_args_need_earlier_outputs(self):
        ctx = StepContext(7, DEPLOYER, Features(), is_home=False)
        onramp = next(s for s in ALL_STEPS if s.output == ct.ONRAMP_V1_6)
        with pytest.raises(MissingDependency) as exc_info:
            onramp.args(ctx)
        assert exc_info.value.chain_selector == 7

    def test_timelock_admin_is_deployer(self):
        ctx = StepContext(7, DEPLOYER, Features(), is_home=False)
        timelock = next(s for s in ALL_STEPS if s.output == ct.TIMELOCK_V1_0)
        min_delay, proposers, executors, admin = timelock.args(ctx)
        assert proposers == [DEPLOYER]
        assert admin == DEPLOYER
