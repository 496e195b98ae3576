"""
Capability registration on the home chain's CapabilitiesRegistry.

The registry reverts the whole transaction when asked to add a capability it
already has. Inside a governance batch that would sink every other operation,
so requests are deduplicated against the registry and against themselves
before anything is submitted.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from .chain import Chain
from .config import NodeConfig
from . import contracts as ct
from .contracts import ZERO_ADDRESS
from .errors import MissingDependency
from .router import ChangeRouter, SubmitResult, submit_call

logger = logging.getLogger(__name__)

CAPABILITY_TYPE_TRIGGER = 0
CAPABILITY_TYPE_ACTION = 1
CAPABILITY_TYPE_CONSENSUS = 2
CAPABILITY_TYPE_TARGET = 3
RESPONSE_TYPE_REPORT = 0

# Field positions of the registry's NodeInfo tuple
NODE_OPERATOR_ID = 0
NODE_SIGNER = 3
NODE_P2P_ID = 4
NODE_ENCRYPTION_PUBLIC_KEY = 5
NODE_HASHED_CAPABILITY_IDS = 6

# Field positions of the registry's CapabilityInfo tuple
CAPABILITY_HASHED_ID = 0
CAPABILITY_CONFIGURATION_CONTRACT = 5


@dataclass(frozen=True, eq=False)
class CapabilityDescriptor:
    """
    A named, versioned capability.

    Identity is (labelled_name, version) only; the other fields describe the
    capability but never make two descriptors different.
    """
    labelled_name: str
    version: str
    capability_type: int = CAPABILITY_TYPE_CONSENSUS
    response_type: int = RESPONSE_TYPE_REPORT
    configuration_contract: str = ZERO_ADDRESS

    @property
    def id(self) -> str:
        return f"{self.labelled_name}@{self.version}"

    def as_struct(self) -> Tuple[str, str, int, int, str]:
        return (self.labelled_name, self.version, self.capability_type,
                self.response_type, self.configuration_contract)

    def hashed_id(self) -> str:
        return hashed_capability_id(self.labelled_name, self.version)

    def __eq__(self, other) -> bool:
        if not isinstance(other, CapabilityDescriptor):
            return NotImplemented
        return (self.labelled_name, self.version) == (other.labelled_name, other.version)

    def __hash__(self) -> int:
        return hash((self.labelled_name, self.version))

    def __str__(self) -> str:
        return self.id


CCIP_CAPABILITY_LABELLED_NAME = "ccip"
CCIP_CAPABILITY_VERSION = "v1.0.0"


def ccip_capability(ccip_home: str) -> CapabilityDescriptor:
    """The CCIP capability, configured by the CCIPHome contract"""
    return CapabilityDescriptor(
        CCIP_CAPABILITY_LABELLED_NAME,
        CCIP_CAPABILITY_VERSION,
        CAPABILITY_TYPE_CONSENSUS,
        RESPONSE_TYPE_REPORT,
        ccip_home,
    )


def hashed_capability_id(labelled_name: str, version: str) -> str:
    """keccak256(abi.encode(labelledName, version)), as the registry computes it"""
    return Web3.to_hex(Web3.keccak(encode(['string', 'string'], [labelled_name, version])))


def normalize_hash(value: Union[str, bytes]) -> str:
    """0x-prefixed lowercase hex for a bytes32 value given as bytes or hex"""
    return Web3.to_hex(HexBytes(value))


def registry_hashed_id(chain: Chain, registry: str, capability: CapabilityDescriptor) -> str:
    return normalize_hash(chain.call(
        registry, ct.CAPABILITIES_REGISTRY, "getHashedCapabilityId",
        capability.labelled_name, capability.version
    ))


def registered_capability(chain: Chain, registry: str, hashed_id: str) -> Optional[tuple]:
    """The registry's CapabilityInfo for a hashed id, or None if it is not registered"""
    for info in chain.call(registry, ct.CAPABILITIES_REGISTRY, "getCapabilities"):
        if normalize_hash(info[CAPABILITY_HASHED_ID]) == hashed_id:
            return info
    return None


def dedup_capabilities(chain: Chain, registry: str,
                       capabilities: Sequence[CapabilityDescriptor]) -> List[CapabilityDescriptor]:
    """
    Keep only the capabilities that are genuinely new.

    Drops those already registered (compared by the registry's own hash) and
    repeats within the request (first occurrence wins). Order is preserved.
    """
    existing = chain.call(registry, ct.CAPABILITIES_REGISTRY, "getCapabilities")
    registered = {normalize_hash(info[CAPABILITY_HASHED_ID]) for info in existing}

    out = []
    seen = set()
    for candidate in capabilities:
        if candidate.id in seen:
            continue
        seen.add(candidate.id)
        if registry_hashed_id(chain, registry, candidate) in registered:
            logger.info(f"Capability {candidate.id} already registered on chain {chain.selector}")
            continue
        out.append(candidate)
    return out


def add_capabilities(chain: Chain, registry: str, capabilities: Sequence[CapabilityDescriptor],
                     router: ChangeRouter) -> Optional[SubmitResult]:
    """Register the new capabilities in one ``addCapabilities`` call"""
    if not capabilities:
        return None
    deduped = dedup_capabilities(chain, registry, capabilities)
    if not deduped:
        logger.info(f"No new capabilities to register on chain {chain.selector}")
        return None
    result = submit_call(
        router, chain, registry, ct.CAPABILITIES_REGISTRY, "addCapabilities",
        [cap.as_struct() for cap in deduped],
        description=f"add capabilities {[cap.id for cap in deduped]}",
    )
    logger.info(f"Registered capabilities {[cap.id for cap in deduped]} on chain {chain.selector}")
    return result


def _nodes_by_p2p_id(chain: Chain, registry: str) -> Dict[str, tuple]:
    nodes = chain.call(registry, ct.CAPABILITIES_REGISTRY, "getNodes")
    return {normalize_hash(node[NODE_P2P_ID]): node for node in nodes}


def _extended_node(info: tuple, hashed_ids: Sequence[str]) -> Optional[tuple]:
    """NodeParams for a registered node with the missing ids appended, or None"""
    current = [normalize_hash(h) for h in info[NODE_HASHED_CAPABILITY_IDS]]
    missing = [h for h in hashed_ids if h not in current]
    if not missing:
        return None
    return (
        info[NODE_OPERATOR_ID],
        normalize_hash(info[NODE_SIGNER]),
        normalize_hash(info[NODE_P2P_ID]),
        normalize_hash(info[NODE_ENCRYPTION_PUBLIC_KEY]),
        current + missing,
    )


def register_nodes(chain: Chain, registry: str, nodes: Sequence[NodeConfig],
                   hashed_ids: Sequence[str], router: ChangeRouter) -> List[SubmitResult]:
    """
    Make sure every node is registered and supports ``hashed_ids``.

    Unknown nodes go into one ``addNodes`` call, registered nodes lacking a
    capability into one ``updateNodes`` call.
    """
    existing = _nodes_by_p2p_id(chain, registry)
    to_add = []
    to_update = []
    for node in nodes:
        p2p_id = normalize_hash(node.p2p_id)
        info = existing.get(p2p_id)
        if info is None:
            to_add.append((
                node.node_operator_id,
                normalize_hash(node.signer),
                p2p_id,
                normalize_hash(node.encryption_public_key),
                list(hashed_ids),
            ))
            continue
        params = _extended_node(info, hashed_ids)
        if params is not None:
            to_update.append(params)

    results = []
    if to_add:
        results.append(submit_call(
            router, chain, registry, ct.CAPABILITIES_REGISTRY, "addNodes", to_add,
            description=f"add {len(to_add)} nodes",
        ))
    if to_update:
        results.append(submit_call(
            router, chain, registry, ct.CAPABILITIES_REGISTRY, "updateNodes", to_update,
            description=f"update {len(to_update)} nodes",
        ))
    return results


def append_node_capabilities(chain: Chain, registry: str,
                             p2p_to_capabilities: Mapping[str, Sequence[CapabilityDescriptor]],
                             router: ChangeRouter) -> List[SubmitResult]:
    """
    Add capabilities to already registered nodes.

    Registers whichever capabilities are new, then extends each node's
    capability list. In batched mode both calls land in the same batch.

    Raises:
        MissingDependency: A node is not registered
    """
    existing = _nodes_by_p2p_id(chain, registry)
    for p2p_id in p2p_to_capabilities:
        if normalize_hash(p2p_id) not in existing:
            raise MissingDependency(f"node {p2p_id}", chain.selector, "register the node first")

    results = []
    all_capabilities = [cap for caps in p2p_to_capabilities.values() for cap in caps]
    added = add_capabilities(chain, registry, all_capabilities, router)
    if added is not None:
        results.append(added)

    updates = []
    for p2p_id, caps in p2p_to_capabilities.items():
        hashed_ids = [registry_hashed_id(chain, registry, cap) for cap in caps]
        params = _extended_node(existing[normalize_hash(p2p_id)], hashed_ids)
        if params is not None:
            updates.append(params)
    if updates:
        results.append(submit_call(
            router, chain, registry, ct.CAPABILITIES_REGISTRY, "updateNodes", updates,
            description=f"append capabilities to {len(updates)} nodes",
        ))
    return results
