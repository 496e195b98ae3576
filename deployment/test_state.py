#!/usr/bin/env python3
"""
Tests for the state loader
"""

from unittest.mock import patch

import pytest

from deployment.address_book import AddressBook
from deployment import contracts as ct
from deployment.errors import MissingDependency, StateInconsistent
from deployment.state import load_chain_state, load_onchain_state
from deployment.testing import FakeChain, FakeRevert


class TestStateLoader:
    def setup_method(self):
        self.chain = FakeChain(1)
        self.book = AddressBook()

    def record(self, tv, *args):
        address = self.chain.add_contract(tv, *args)
        self.book.save(self.chain.selector, address, tv)
        return address

    def test_empty_chain(self):
        state = load_onchain_state({1: self.chain}, self.book)
        assert state.chain(1).records == {}
        assert state.chain(1).fee_quoter is None
        # Chains outside the snapshot also get an empty state
        assert state.chain(99).router is None

    def test_accessors(self):
        router = self.record(ct.ROUTER_V1_2)
        test_router = self.record(ct.TEST_ROUTER_V1_2)
        fee_quoter = self.record(ct.FEE_QUOTER_V1_6)
        state = load_chain_state(self.chain, self.book)
        assert state.router == router
        assert state.test_router == test_router
        assert state.fee_quoter == fee_quoter
        assert state.has(ct.FEE_QUOTER_V1_6)

    def test_linked_rmn(self):
        mock_rmn = self.record(ct.MOCK_RMN_V1_0)
        proxy = self.record(ct.RMN_PROXY_EXISTING, mock_rmn)
        state = load_chain_state(self.chain, self.book)
        assert state.rmn_proxy_existing == proxy
        assert state.linked_rmn[proxy] == mock_rmn

    def test_type_mismatch(self):
        address = self.chain.add_contract(ct.ONRAMP_V1_6)
        self.book.save(1, address, ct.OFFRAMP_V1_6)
        with pytest.raises(StateInconsistent) as exc_info:
            load_chain_state(self.chain, self.book)
        assert exc_info.value.address == address
        assert exc_info.value.onchain == "OnRamp 1.6.0-dev"

    def test_reverting_type_and_version(self):
        address = self.record(ct.FEE_QUOTER_V1_6)
        contract = self.chain.contract(address)
        with patch.object(contract, "typeAndVersion", side_effect=FakeRevert("execution reverted")):
            with pytest.raises(StateInconsistent) as exc_info:
                load_chain_state(self.chain, self.book)
        assert exc_info.value.address == address
        assert exc_info.value.recorded == "FeeQuoter 1.6.0-dev"
        assert "execution reverted" in exc_info.value.onchain
        assert isinstance(exc_info.value.__cause__, FakeRevert)

    def test_garbage_type_and_version(self):
        address = self.record(ct.FEE_QUOTER_V1_6)
        with patch.object(self.chain.contract(address), "typeAndVersion", return_value="not-a-version"):
            with pytest.raises(StateInconsistent) as exc_info:
                load_chain_state(self.chain, self.book)
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_require(self):
        self.record(ct.FEE_QUOTER_V1_6)
        state = load_chain_state(self.chain, self.book)
        assert state.require(ct.FEE_QUOTER_V1_6) == state.fee_quoter
        with pytest.raises(MissingDependency) as exc_info:
            state.require(ct.OFFRAMP_V1_6, "deploy it first")
        assert "OffRamp 1.6.0-dev not found for chain 1" in str(exc_info.value)

    def test_state_is_read_only(self):
        self.record(ct.FEE_QUOTER_V1_6)
        state = load_chain_state(self.chain, self.book)
        with pytest.raises(TypeError):
            state.records[ct.ONRAMP_V1_6] = "0x0000000000000000000000000000000000000001"

    def test_reload_is_stable(self):
        self.record(ct.FEE_QUOTER_V1_6)
        first = load_onchain_state({1: self.chain}, self.book)
        second = load_onchain_state({1: self.chain}, self.book)
        assert dict(first.chain(1).records) == dict(second.chain(1).records)
        assert self.chain.sent == []
