#!/usr/bin/env python3
"""
Tests for the per-chain deployer
"""

from unittest.mock import patch

from deployment.address_book import AddressBook
from deployment.chain import deploy_contract
from deployment.config import Features
from deployment import contracts as ct
from deployment.deployer import deploy_chain_contracts
from deployment.errors import SubmissionFailed
from deployment.state import load_chain_state
from deployment.testing import FakeChain

# Prerequisites, then the per-chain contracts
DEFAULT_RECORDS = 7 + 9
HOME_RECORDS = 3


def run(chain, book, features=None, is_home=False):
    state = load_chain_state(chain, book)
    return deploy_chain_contracts(chain, state, book, features or Features(), is_home)


class TestDeployChainContracts:
    def setup_method(self):
        self.chain = FakeChain(1)
        self.book = AddressBook()

    def test_fresh_chain(self):
        result = run(self.chain, self.book)
        assert result.ok
        assert len(result.records) == DEFAULT_RECORDS
        assert len(self.book) == DEFAULT_RECORDS
        assert self.book.has(1, ct.OFFRAMP_V1_6)
        assert not self.book.has(1, ct.CAPABILITIES_REGISTRY_V1_0)

    def test_dependency_order(self):
        run(self.chain, self.book)
        order = self.chain.deployed
        assert order.index(ct.TOKEN_ADMIN_REGISTRY_V1_5) < order.index(ct.REGISTRY_MODULE_V1_5)
        assert order.index(ct.ROUTER_V1_2) < order.index(ct.FEE_QUOTER_V1_6)
        assert order.index(ct.FEE_QUOTER_V1_6) < order.index(ct.ONRAMP_V1_6)
        assert order.index(ct.NONCE_MANAGER_V1_6) < order.index(ct.OFFRAMP_V1_6)

    def test_later_steps_see_earlier_addresses(self):
        run(self.chain, self.book)
        onramp = self.chain.contract(self.book.get(1, ct.ONRAMP))
        static_config, dynamic_config, _ = onramp.args
        assert static_config[0] == 1
        assert static_config[1] == self.book.get(1, ct.ARM_PROXY, ct.VERSION_1_6_0_DEV)
        assert dynamic_config[0] == self.book.get(1, ct.FEE_QUOTER)

    def test_home_chain(self):
        result = run(self.chain, self.book, is_home=True)
        assert len(result.records) == DEFAULT_RECORDS + HOME_RECORDS
        ccip_home = self.chain.contract(self.book.get(1, ct.CCIP_HOME))
        assert ccip_home.args == [self.book.get(1, ct.CAPABILITIES_REGISTRY)]

    def test_features(self):
        result = run(self.chain, self.book, Features(usdc_chains=[1], multicall3=True))
        assert len(result.records) == DEFAULT_RECORDS + 5
        assert self.book.has(1, ct.USDC_TOKEN_POOL_V1_5)
        assert self.book.has(1, ct.MULTICALL3_V1_0)

    def test_idempotent(self):
        run(self.chain, self.book)
        before = dict(load_chain_state(self.chain, self.book).records)
        deployed = len(self.chain.deployed)

        result = run(self.chain, self.book)
        assert result.ok
        assert result.records == []
        assert len(result.skipped) == DEFAULT_RECORDS
        assert len(self.chain.deployed) == deployed
        assert dict(load_chain_state(self.chain, self.book).records) == before

    def test_existing_rmn_proxy_skips_mock(self):
        rmn = self.chain.add_contract(ct.RMN_REMOTE_V1_6)
        proxy = self.chain.add_contract(ct.RMN_PROXY_EXISTING, rmn)
        self.book.save(1, proxy, ct.RMN_PROXY_EXISTING)

        result = run(self.chain, self.book)
        assert result.ok
        assert ct.MOCK_RMN_V1_0 not in self.chain.deployed
        assert ct.RMN_PROXY_EXISTING not in self.chain.deployed
        assert len(result.records) == DEFAULT_RECORDS - 2

    def test_failure_stops_remaining_steps(self):
        self.chain.fail_deploy.add(ct.FEE_QUOTER)
        result = run(self.chain, self.book)
        assert isinstance(result.error, SubmissionFailed)
        assert not result.ok
        assert self.book.has(1, ct.NONCE_MANAGER_V1_6)
        assert not self.book.has(1, ct.FEE_QUOTER_V1_6)
        assert not self.book.has(1, ct.ONRAMP_V1_6)
        assert not self.book.has(1, ct.OFFRAMP_V1_6)
        # Earlier steps are kept
        assert len(result.records) == DEFAULT_RECORDS - 3
        assert len(self.book) == DEFAULT_RECORDS - 3

    def test_rerun_after_failure_completes(self):
        self.chain.fail_deploy.add(ct.FEE_QUOTER)
        run(self.chain, self.book)
        self.chain.fail_deploy.clear()

        result = run(self.chain, self.book)
        assert result.ok
        assert [r.type_and_version for r in result.records] == [
            ct.FEE_QUOTER_V1_6, ct.ONRAMP_V1_6, ct.OFFRAMP_V1_6
        ]
        assert len(self.book) == DEFAULT_RECORDS

    def test_unexpected_error_keeps_earlier_records(self):
        real = self.chain.deploy

        def deploy(tv, *args):
            if tv == ct.FEE_QUOTER_V1_6:
                raise ValueError("malformed receipt")
            return real(tv, *args)

        self.chain.deploy = deploy
        result = run(self.chain, self.book)
        assert isinstance(result.error, ValueError)
        assert len(result.records) == DEFAULT_RECORDS - 3
        assert self.book.has(1, ct.NONCE_MANAGER_V1_6)
        assert not self.book.has(1, ct.FEE_QUOTER_V1_6)

    def test_conflicting_book_entry_is_a_chain_error(self):
        weth = self.chain.add_contract(ct.WETH9_V1_0)
        self.book.save(1, weth, ct.WETH9_V1_0)

        def deploy(chain, tv, *args):
            # Hands back an address the book already holds under another type
            if tv == ct.LINK_TOKEN_V1_0:
                return weth
            return deploy_contract(chain, tv, *args)

        with patch("deployment.deployer.deploy_contract", side_effect=deploy):
            result = run(self.chain, self.book)
        assert isinstance(result.error, ValueError)
        assert ct.LINK_TOKEN_V1_0 not in [r.type_and_version for r in result.records]
        assert len(result.records) == 4
