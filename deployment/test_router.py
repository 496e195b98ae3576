#!/usr/bin/env python3
"""
Tests for the change router
"""

import threading

import pytest

from deployment.config import ExecutionMode
from deployment import contracts as ct
from deployment.errors import ConfirmationFailed
from deployment.router import BatchedRouter, DirectRouter, new_router, submit_call
from deployment.testing import FakeChain, decode_fake_call, execute_batch


class TestNewRouter:
    def test_modes(self):
        assert isinstance(new_router(ExecutionMode.DIRECT), DirectRouter)
        assert isinstance(new_router("batched"), BatchedRouter)
        with pytest.raises(ValueError):
            new_router("later")


class TestDirectRouter:
    def setup_method(self):
        self.chain = FakeChain(1)
        self.registry = self.chain.add_contract(ct.TOKEN_ADMIN_REGISTRY_V1_5)
        self.router = DirectRouter()

    def test_submit_executes_immediately(self):
        module = "0x0000000000000000000000000000000000000007"
        result = submit_call(self.router, self.chain, self.registry, ct.TOKEN_ADMIN_REGISTRY,
                             "addRegistryModule", module)
        assert not result.batched
        assert result.receipt["status"] == 1
        assert self.chain.contract(self.registry).isRegistryModule(module)

    def test_revert_raises(self):
        self.chain.revert_methods.add("addRegistryModule")
        with pytest.raises(ConfirmationFailed):
            submit_call(self.router, self.chain, self.registry, ct.TOKEN_ADMIN_REGISTRY,
                        "addRegistryModule", "0x0000000000000000000000000000000000000007")


class TestBatchedRouter:
    def setup_method(self):
        self.chains = {1: FakeChain(1), 2: FakeChain(2)}
        self.registries = {
            selector: chain.add_contract(ct.TOKEN_ADMIN_REGISTRY_V1_5)
            for selector, chain in self.chains.items()
        }
        self.router = BatchedRouter()

    def submit(self, selector, module):
        return submit_call(self.router, self.chains[selector], self.registries[selector],
                           ct.TOKEN_ADMIN_REGISTRY, "addRegistryModule", module)

    def test_nothing_executes(self):
        result = self.submit(1, "0x0000000000000000000000000000000000000007")
        assert result.batched
        assert result.tx_hash is None
        assert self.chains[1].sent == []

    def test_one_batch_per_chain_in_call_order(self):
        self.submit(2, "0x0000000000000000000000000000000000000001")
        self.submit(1, "0x0000000000000000000000000000000000000002")
        self.submit(2, "0x0000000000000000000000000000000000000003")

        batches = self.router.batches()
        assert [b.chain_selector for b in batches] == [2, 1]
        assert len(batches[0]) == 2
        args = [decode_fake_call(op.data)[1][0] for op in batches[0].operations]
        assert args == [
            "0x0000000000000000000000000000000000000001",
            "0x0000000000000000000000000000000000000003",
        ]

    def test_concurrent_submits_share_one_batch(self):
        def submit_many(offset):
            for i in range(25):
                self.submit(1, "0x%040x" % (offset + i + 1))

        threads = [threading.Thread(target=submit_many, args=(n * 100,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        batches = self.router.batches()
        assert len(batches) == 1
        assert len(batches[0]) == 100

    def test_batch_executes_later(self):
        module = "0x0000000000000000000000000000000000000007"
        self.submit(1, module)
        (batch,) = self.router.batches()
        execute_batch(self.chains[1], batch)
        assert self.chains[1].contract(self.registries[1]).isRegistryModule(module)

    def test_batches_are_copies(self):
        self.submit(1, "0x0000000000000000000000000000000000000007")
        self.router.batches()[0].operations.clear()
        assert len(self.router.batches()[0]) == 1

    def test_discard(self):
        self.submit(1, "0x0000000000000000000000000000000000000007")
        self.router.discard()
        assert self.router.batches() == []
