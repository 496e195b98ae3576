"""
In-memory chains for tests.

``FakeChain`` exposes the same surface as ``Chain``: deploy, call,
encode_call, send_transaction and confirm. Contracts are plain Python
objects keeping just enough state for the deployment and wiring code to
run against them, including the reverts that matter (the registry rejects
a capability it already has).
"""

import json
import itertools
from typing import Any, Dict, List, Sequence, Set, Tuple

from web3 import Web3

from .address_book import TypeAndVersion
from .capabilities import hashed_capability_id, normalize_hash
from . import contracts as ct
from .contracts import ZERO_ADDRESS
from .errors import ConfirmationFailed, SubmissionFailed
from .router import ChangeBatch

ZERO_HASH = b"\x00" * 32
RMN_HOME_ACTIVE_DIGEST = b"\x11" * 32


class FakeRevert(Exception):
    """Raised by fake contracts where the real one would revert"""


def _json_default(value):
    if isinstance(value, (bytes, bytearray)):
        return {'__bytes__': bytes(value).hex()}
    raise TypeError(f"cannot encode {type(value).__name__}")


def _json_object_hook(obj):
    if set(obj) == {'__bytes__'}:
        return bytes.fromhex(obj['__bytes__'])
    return obj


def encode_fake_call(method: str, args: Sequence[Any]) -> bytes:
    return json.dumps({'method': method, 'args': list(args)}, default=_json_default).encode()


def decode_fake_call(data: bytes) -> Tuple[str, List[Any]]:
    decoded = json.loads(bytes(data).decode(), object_hook=_json_object_hook)
    return decoded['method'], decoded['args']


class FakeContract:
    def __init__(self, type_and_version: TypeAndVersion, args: Sequence[Any] = ()):
        self.type_and_version = type_and_version
        self.args = list(args)

    def typeAndVersion(self) -> str:
        return f"{ct.onchain_type_name(self.type_and_version.type)} {self.type_and_version.version}"


class FakeARMProxy(FakeContract):
    def getARM(self) -> str:
        return self.args[0]


class FakeTokenAdminRegistry(FakeContract):
    def __init__(self, *args):
        super().__init__(*args)
        self.modules: List[str] = []

    def isRegistryModule(self, module: str) -> bool:
        return module in self.modules

    def addRegistryModule(self, module: str):
        if module not in self.modules:
            self.modules.append(module)


class FakeRMNRemote(FakeContract):
    def __init__(self, *args):
        super().__init__(*args)
        self.version = 0
        self.config = (ZERO_HASH, [], 0)

    def getVersionedConfig(self):
        return self.version, self.config

    def setConfig(self, config):
        self.version += 1
        self.config = tuple(config)


class FakeRMNHome(FakeContract):
    def getActiveDigest(self) -> bytes:
        return RMN_HOME_ACTIVE_DIGEST


class FakeAuthorizedCallers(FakeContract):
    def __init__(self, *args):
        super().__init__(*args)
        self.authorized: List[str] = []

    def getAllAuthorizedCallers(self) -> List[str]:
        return list(self.authorized)

    def applyAuthorizedCallerUpdates(self, update):
        added, removed = update
        for caller in added:
            if caller not in self.authorized:
                self.authorized.append(caller)
        self.authorized = [caller for caller in self.authorized if caller not in removed]


class FakeCCIPHome(FakeContract):
    def __init__(self, *args):
        super().__init__(*args)
        self.chain_configs: Dict[int, Any] = {}

    def getAllChainConfigs(self, page_index: int, page_size: int):
        items = sorted(self.chain_configs.items())
        start = page_index * page_size
        return [(selector, config) for selector, config in items[start:start + page_size]]

    def applyChainConfigUpdates(self, removes, adds):
        for selector in removes:
            self.chain_configs.pop(selector, None)
        for selector, config in adds:
            self.chain_configs[int(selector)] = config


class FakeCapabilitiesRegistry(FakeContract):
    def __init__(self, *args):
        super().__init__(*args)
        self.capabilities: List[tuple] = []
        self.nodes: Dict[str, tuple] = {}
        self.dons: List[tuple] = []
        self.add_capability_calls = 0

    def _hashes(self) -> Set[str]:
        return {normalize_hash(info[0]) for info in self.capabilities}

    def getHashedCapabilityId(self, labelled_name: str, version: str) -> bytes:
        return bytes.fromhex(hashed_capability_id(labelled_name, version)[2:])

    def getCapabilities(self):
        return list(self.capabilities)

    def addCapabilities(self, capabilities):
        self.add_capability_calls += 1
        new = []
        known = self._hashes()
        for name, version, capability_type, response_type, config_contract in capabilities:
            hashed = hashed_capability_id(name, version)
            if hashed in known:
                raise FakeRevert(f"CapabilityAlreadyExists({hashed})")
            known.add(hashed)
            new.append((bytes.fromhex(hashed[2:]), name, version, capability_type, response_type,
                        config_contract, False))
        self.capabilities.extend(new)

    def register_capability(self, labelled_name: str, version: str, configuration_contract: str = ZERO_ADDRESS):
        """Test helper: a capability registered before the run"""
        self.addCapabilities([(labelled_name, version, 2, 0, configuration_contract)])

    def _check_capabilities(self, hashed_ids):
        known = self._hashes()
        for hashed in hashed_ids:
            if normalize_hash(hashed) not in known:
                raise FakeRevert(f"InvalidNodeCapabilities({hashed})")

    def getNodes(self):
        return list(self.nodes.values())

    def addNodes(self, params):
        for operator_id, signer, p2p_id, encryption_key, hashed_ids in params:
            key = normalize_hash(p2p_id)
            if key in self.nodes:
                raise FakeRevert(f"NodeAlreadyExists({p2p_id})")
            self._check_capabilities(hashed_ids)
            self.nodes[key] = (operator_id, 1, 0, signer, p2p_id, encryption_key, list(hashed_ids), [])

    def updateNodes(self, params):
        for operator_id, signer, p2p_id, encryption_key, hashed_ids in params:
            key = normalize_hash(p2p_id)
            if key not in self.nodes:
                raise FakeRevert(f"NodeDoesNotExist({p2p_id})")
            self._check_capabilities(hashed_ids)
            config_count = self.nodes[key][1] + 1
            self.nodes[key] = (operator_id, config_count, 0, signer, p2p_id, encryption_key,
                               list(hashed_ids), self.nodes[key][7])

    def getDONs(self):
        return list(self.dons)

    def _check_nodes(self, p2p_ids):
        for p2p_id in p2p_ids:
            if normalize_hash(p2p_id) not in self.nodes:
                raise FakeRevert(f"NodeDoesNotExist({p2p_id})")

    def addDON(self, nodes, capability_configurations, is_public, accepts_workflows, f):
        self._check_nodes(nodes)
        don_id = len(self.dons) + 1
        self.dons.append((don_id, 1, f, is_public, accepts_workflows, list(nodes),
                          [tuple(config) for config in capability_configurations]))

    def updateDON(self, don_id, nodes, capability_configurations, is_public, f):
        self._check_nodes(nodes)
        for i, don in enumerate(self.dons):
            if don[0] == don_id:
                self.dons[i] = (don_id, don[1] + 1, f, is_public, don[4], list(nodes),
                                [tuple(config) for config in capability_configurations])
                return
        raise FakeRevert(f"DONDoesNotExist({don_id})")


class FakeTimelock(FakeContract):
    def __init__(self, *args):
        super().__init__(*args)
        self.scheduled: List[tuple] = []

    def scheduleBatch(self, targets, values, payloads, predecessor, salt, delay):
        self.scheduled.append((list(targets), list(values), list(payloads), salt, delay))


CONTRACT_CLASSES = {
    ct.ARM_PROXY: FakeARMProxy,
    ct.TOKEN_ADMIN_REGISTRY: FakeTokenAdminRegistry,
    ct.RMN_REMOTE: FakeRMNRemote,
    ct.RMN_HOME: FakeRMNHome,
    ct.FEE_QUOTER: FakeAuthorizedCallers,
    ct.NONCE_MANAGER: FakeAuthorizedCallers,
    ct.CCIP_HOME: FakeCCIPHome,
    ct.CAPABILITIES_REGISTRY: FakeCapabilitiesRegistry,
    ct.TIMELOCK: FakeTimelock,
}


class FakeChain:
    """
    A chain living in memory.

    Args:
        selector: Chain selector
        fail_deploy: Contract types whose deployment fails to submit
        revert_methods: Methods whose transactions revert
    """

    def __init__(self, selector: int, fail_deploy: Sequence[str] = (),
                 revert_methods: Sequence[str] = ()):
        self.selector = selector
        self.name = f"fake-{selector}"
        self.confirm_timeout = 0
        self.fail_deploy = set(fail_deploy)
        self.revert_methods = set(revert_methods)
        self.deployer_address = self._address("deployer")
        self.contracts: Dict[str, FakeContract] = {}
        self.deployed: List[TypeAndVersion] = []
        self.sent: List[Tuple[str, str, List[Any]]] = []
        self._receipts: Dict[str, Dict[str, Any]] = {}
        self._counter = itertools.count(1)

    def _address(self, label: str) -> str:
        digest = Web3.keccak(text=f"{self.selector}:{label}")
        return Web3.to_checksum_address(Web3.to_hex(digest[-20:]))

    def _tx_hash(self) -> str:
        return Web3.to_hex(Web3.keccak(text=f"tx:{self.selector}:{next(self._counter)}"))

    def add_contract(self, type_and_version: TypeAndVersion, *args) -> str:
        """Place a contract on the chain without a transaction"""
        address = self._address(f"contract:{len(self.contracts)}")
        contract_class = CONTRACT_CLASSES.get(type_and_version.type, FakeContract)
        self.contracts[address] = contract_class(type_and_version, args)
        return address

    def contract(self, address: str) -> FakeContract:
        return self.contracts[Web3.to_checksum_address(address)]

    def contract_of(self, contract_type: str) -> FakeContract:
        """The last deployed contract of a type"""
        for contract in reversed(list(self.contracts.values())):
            if contract.type_and_version.type == contract_type:
                return contract
        raise KeyError(contract_type)

    def deploy(self, type_and_version: TypeAndVersion, *args) -> str:
        if type_and_version.type in self.fail_deploy:
            raise SubmissionFailed(self.selector, f"deploy {type_and_version}: injected failure")
        address = self.add_contract(type_and_version, *args)
        self.deployed.append(type_and_version)
        tx_hash = self._tx_hash()
        self._receipts[tx_hash] = {'status': 1, 'contractAddress': address, 'transactionHash': tx_hash}
        return tx_hash

    def call(self, address: str, contract_type: str, method: str, *args) -> Any:
        return getattr(self.contract(address), method)(*args)

    def encode_call(self, address: str, contract_type: str, method: str, *args) -> bytes:
        return encode_fake_call(method, args)

    def execute(self, to: str, data: bytes) -> Tuple[str, List[Any]]:
        """Run encoded calldata against the contract at ``to``"""
        method, args = decode_fake_call(data)
        if method in self.revert_methods:
            raise FakeRevert(f"{method} reverted")
        getattr(self.contract(to), method)(*args)
        return method, args

    def send_transaction(self, to: str, data: bytes, value: int = 0) -> str:
        tx_hash = self._tx_hash()
        try:
            method, args = self.execute(to, data)
            self.sent.append((to, method, args))
            status = 1
        except FakeRevert:
            status = 0
        self._receipts[tx_hash] = {'status': status, 'contractAddress': None, 'transactionHash': tx_hash}
        return tx_hash

    def confirm(self, tx_hash: str) -> Dict[str, Any]:
        receipt = self._receipts.get(tx_hash)
        if receipt is None:
            raise ConfirmationFailed(self.selector, tx_hash, "unknown transaction")
        if receipt['status'] != 1:
            raise ConfirmationFailed(self.selector, tx_hash, "transaction reverted")
        return receipt

    def sent_methods(self) -> List[str]:
        return [method for _, method, _ in self.sent]

    def __repr__(self) -> str:
        return f"FakeChain(selector={self.selector})"


def execute_batch(chain: FakeChain, batch: ChangeBatch):
    """Execute a batch in order, as the timelock does once the proposal is approved"""
    for operation in batch.operations:
        method, args = chain.execute(operation.to, operation.data)
        chain.sent.append((operation.to, method, args))


def fake_chains(*selectors: int, **kwargs) -> Dict[int, FakeChain]:
    return {selector: FakeChain(selector, **kwargs) for selector in selectors}
