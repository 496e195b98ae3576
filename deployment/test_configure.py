#!/usr/bin/env python3
"""
Tests for the configuration step
"""

from unittest.mock import MagicMock, patch

import pytest
from eth_abi import decode

from deployment.address_book import AddressBook
from deployment.capabilities import normalize_hash
from deployment.config import DeploymentRequest, Features, NodeConfig
from deployment.configure import configure_chains, don_capability_config
from deployment import contracts as ct
from deployment.contracts import ZERO_ADDRESS
from deployment.errors import ConfigError, MissingDependency, StateInconsistent
from deployment.fanout import deploy_chains
from deployment.router import BatchedRouter, ChangeRouter, DirectRouter
from deployment.testing import RMN_HOME_ACTIVE_DIGEST, decode_fake_call, execute_batch, fake_chains

HOME = 1
REMOTES = [2, 3]


def node(i):
    return NodeConfig(
        p2p_id="0x" + f"{i:064x}",
        signer="0x" + f"{i + 100:064x}",
        encryption_public_key="0x" + f"{i + 200:064x}",
    )


class TestConfigureChains:
    def setup_method(self):
        self.chains = fake_chains(HOME, *REMOTES)
        self.book = AddressBook()
        self.request = DeploymentRequest(
            chains=REMOTES, home_chain=HOME, nodes=[node(i) for i in range(1, 5)], f=1
        )

    def deploy(self, selectors=None):
        outcome = deploy_chains(self.chains, selectors or self.request.all_chains, self.book,
                                Features(), home_chain=HOME)
        return outcome

    def contract(self, selector, contract_type):
        return self.chains[selector].contract(self.book.get(selector, contract_type))

    def test_direct_wiring(self):
        self.deploy()
        configure_chains(self.request, self.chains, self.book, DirectRouter())

        for selector in REMOTES:
            registry_module = self.book.get(selector, ct.REGISTRY_MODULE)
            assert self.contract(selector, ct.TOKEN_ADMIN_REGISTRY).isRegistryModule(registry_module)
            _, config = self.contract(selector, ct.RMN_REMOTE).getVersionedConfig()
            assert normalize_hash(config[0]) == normalize_hash(RMN_HOME_ACTIVE_DIGEST)
            assert self.contract(selector, ct.FEE_QUOTER).authorized == [
                self.book.get(selector, ct.OFFRAMP), self.chains[selector].deployer_address
            ]
            assert self.contract(selector, ct.NONCE_MANAGER).authorized == [
                self.book.get(selector, ct.ONRAMP), self.book.get(selector, ct.OFFRAMP)
            ]

        registry = self.contract(HOME, ct.CAPABILITIES_REGISTRY)
        assert [info[1] for info in registry.capabilities] == ["ccip"]
        assert len(registry.nodes) == 4
        assert sorted(self.contract(HOME, ct.CCIP_HOME).chain_configs) == REMOTES
        assert len(registry.dons) == 2
        for don, selector in zip(registry.dons, REMOTES):
            (_, config), = don[6]
            assert decode(["uint64"], config) == (selector,)
            assert don[2] == 1

    def test_rerun_changes_nothing(self):
        self.deploy()
        configure_chains(self.request, self.chains, self.book, DirectRouter())
        sent = {selector: len(chain.sent) for selector, chain in self.chains.items()}

        assert configure_chains(self.request, self.chains, self.book, DirectRouter()) == []
        assert {selector: len(chain.sent) for selector, chain in self.chains.items()} == sent

    def test_batched_one_batch_per_chain(self):
        self.deploy()
        router = BatchedRouter()
        configure_chains(self.request, self.chains, self.book, router)
        assert all(chain.sent == [] for chain in self.chains.values())

        batches = {batch.chain_selector: batch for batch in router.batches()}
        assert sorted(batches) == [HOME] + REMOTES
        assert [decode_fake_call(op.data)[0] for op in batches[HOME].operations] == [
            "addCapabilities", "addNodes", "applyChainConfigUpdates", "addDON", "addDON"
        ]
        assert [decode_fake_call(op.data)[0] for op in batches[2].operations] == [
            "addRegistryModule", "setConfig", "applyAuthorizedCallerUpdates", "applyAuthorizedCallerUpdates"
        ]

        for selector, batch in batches.items():
            execute_batch(self.chains[selector], batch)
        assert len(self.contract(HOME, ct.CAPABILITIES_REGISTRY).dons) == 2

        # Once executed, the same request has nothing left to propose
        router = BatchedRouter()
        configure_chains(self.request, self.chains, self.book, router)
        assert router.batches() == []

    def test_extends_existing_don(self):
        self.deploy()
        configure_chains(self.request, self.chains, self.book, DirectRouter())

        bigger = DeploymentRequest(
            chains=REMOTES, home_chain=HOME, nodes=[node(i) for i in range(1, 6)], f=1
        )
        router = BatchedRouter()
        configure_chains(bigger, self.chains, self.book, router)
        (batch,) = router.batches()
        assert [decode_fake_call(op.data)[0] for op in batch.operations] == [
            "addNodes", "updateDON", "updateDON"
        ]
        execute_batch(self.chains[HOME], batch)
        registry = self.contract(HOME, ct.CAPABILITIES_REGISTRY)
        assert all(len(don[5]) == 5 for don in registry.dons)

    def test_without_nodes_skips_dons(self):
        self.deploy()
        request = DeploymentRequest(chains=REMOTES, home_chain=HOME)
        configure_chains(request, self.chains, self.book, DirectRouter())
        assert self.contract(HOME, ct.CAPABILITIES_REGISTRY).dons == []

    def test_missing_remote_contract_never_routes(self):
        self.chains[3].fail_deploy.add(ct.OFFRAMP)
        self.deploy()
        router = MagicMock(spec=ChangeRouter)

        with pytest.raises(MissingDependency) as exc_info:
            configure_chains(self.request, self.chains, self.book, router)
        assert exc_info.value.chain_selector == 3
        assert "OffRamp" in str(exc_info.value)
        router.submit.assert_not_called()

    def test_missing_home_contract_never_routes(self):
        self.deploy(REMOTES)
        router = BatchedRouter()
        with pytest.raises(MissingDependency) as exc_info:
            configure_chains(self.request, self.chains, self.book, router)
        assert exc_info.value.chain_selector == HOME
        assert router.batches() == []

    def test_ccip_capability_configured_elsewhere(self):
        self.deploy()
        registry = self.contract(HOME, ct.CAPABILITIES_REGISTRY)
        registry.register_capability("ccip", "v1.0.0")
        router = MagicMock(spec=ChangeRouter)

        with pytest.raises(StateInconsistent) as exc_info:
            configure_chains(self.request, self.chains, self.book, router)
        assert exc_info.value.chain_selector == HOME
        assert exc_info.value.address == self.book.get(HOME, ct.CAPABILITIES_REGISTRY)
        assert ZERO_ADDRESS in exc_info.value.onchain
        router.submit.assert_not_called()

    def test_ccip_capability_configured_by_ccip_home(self):
        self.deploy()
        ccip_home = self.book.get(HOME, ct.CCIP_HOME)
        self.contract(HOME, ct.CAPABILITIES_REGISTRY).register_capability("ccip", "v1.0.0", ccip_home.lower())

        configure_chains(self.request, self.chains, self.book, DirectRouter())
        assert "addCapabilities" not in self.chains[HOME].sent_methods()
        assert "addDON" in self.chains[HOME].sent_methods()

    def test_registry_hashes_ccip_differently(self):
        self.deploy()
        registry = self.contract(HOME, ct.CAPABILITIES_REGISTRY)
        router = MagicMock(spec=ChangeRouter)

        with patch.object(registry, "getHashedCapabilityId", return_value=b"\x01" * 32):
            with pytest.raises(StateInconsistent) as exc_info:
                configure_chains(self.request, self.chains, self.book, router)
        assert exc_info.value.onchain == "ccip@v1.0.0 id 0x" + "01" * 32
        router.submit.assert_not_called()

    def test_unknown_chain(self):
        request = DeploymentRequest(chains=[2, 9], home_chain=HOME)
        with pytest.raises(ConfigError):
            configure_chains(request, self.chains, self.book, DirectRouter())

    def test_don_capability_config(self):
        assert len(don_capability_config(5)) == 32
        assert decode(["uint64"], don_capability_config(5)) == (5,)
