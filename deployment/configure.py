"""
Configuration Step
Post-deployment wiring of ramps, RMN, capabilities, nodes and DONs
"""

import logging
from typing import Dict, List, Mapping, Sequence

from eth_abi import decode, encode

from .address_book import AddressBook
from .capabilities import (
    CAPABILITY_CONFIGURATION_CONTRACT,
    add_capabilities,
    ccip_capability,
    normalize_hash,
    register_nodes,
    registered_capability,
    registry_hashed_id,
)
from .chain import Chain
from .config import DeploymentRequest
from . import contracts as ct
from .errors import ConfigError, StateInconsistent
from .router import ChangeRouter, SubmitResult, submit_call
from .state import ChainState, OnchainState, load_onchain_state

logger = logging.getLogger(__name__)

HOME_REQUIREMENTS = (ct.CAPABILITIES_REGISTRY_V1_0, ct.CCIP_HOME_V1_6, ct.RMN_HOME_V1_6)
CHAIN_REQUIREMENTS = (
    ct.FEE_QUOTER_V1_6,
    ct.NONCE_MANAGER_V1_6,
    ct.ONRAMP_V1_6,
    ct.OFFRAMP_V1_6,
    ct.TOKEN_ADMIN_REGISTRY_V1_5,
    ct.REGISTRY_MODULE_V1_5,
    ct.RMN_REMOTE_V1_6,
)

# Until RMN signers are provisioned every remote gets one placeholder signer
RMN_PLACEHOLDER_SIGNER = "0x0100000000000000000000000000000000000000"
RMN_PLACEHOLDER_F = 0

CHAIN_CONFIG_PAGE_SIZE = 1000

# Field positions of the registry's DONInfo tuple
DON_ID = 0
DON_IS_PUBLIC = 3
DON_NODE_P2P_IDS = 5
DON_CAPABILITY_CONFIGURATIONS = 6


def check_dependencies(state: OnchainState, request: DeploymentRequest):
    """
    Fail before any change if a contract the wiring needs is missing.

    Raises:
        MissingDependency: names the missing record and its chain
    """
    home = state.chain(request.home_chain)
    for tv in HOME_REQUIREMENTS:
        home.require(tv, "deploy the home chain contracts first")
    for selector in request.chains:
        chain_state = state.chain(selector)
        for tv in CHAIN_REQUIREMENTS:
            chain_state.require(tv, "deploy the chain contracts first")


def check_ccip_capability(home_chain: Chain, home_state: ChainState):
    """
    Make sure the registry agrees on the CCIP capability before anything is wired.

    The registry must hash the capability to the expected id, and once the
    capability is registered it must be configured by this run's CCIPHome.

    Raises:
        StateInconsistent: The registry disagrees on either point
    """
    registry = home_state.capability_registry
    ccip_home = home_state.ccip_home
    capability = ccip_capability(ccip_home)

    expected = capability.hashed_id()
    hashed = registry_hashed_id(home_chain, registry, capability)
    if hashed != expected:
        logger.error(f"CapabilitiesRegistry hashes {capability} to {hashed}, expected {expected}")
        raise StateInconsistent(home_chain.selector, registry, f"{capability} id {expected}",
                                f"{capability} id {hashed}")

    info = registered_capability(home_chain, registry, expected)
    if info is None:
        return
    configured_by = info[CAPABILITY_CONFIGURATION_CONTRACT]
    if configured_by.lower() != ccip_home.lower():
        logger.error(f"{capability} is configured by {configured_by}, not CCIPHome {ccip_home}")
        raise StateInconsistent(home_chain.selector, registry, f"{capability} configured by {ccip_home}",
                                f"{capability} configured by {configured_by}")


def _authorize_callers(chain: Chain, address: str, contract_type: str, callers: Sequence[str],
                       router: ChangeRouter) -> List[SubmitResult]:
    current = {caller.lower() for caller in chain.call(address, contract_type, "getAllAuthorizedCallers")}
    added = [caller for caller in callers if caller.lower() not in current]
    if not added:
        logger.info(f"{contract_type} callers already authorized on chain {chain.selector}")
        return []
    return [submit_call(
        router, chain, address, contract_type, "applyAuthorizedCallerUpdates", (added, []),
        description=f"authorize {len(added)} callers on {contract_type}",
    )]


def wire_chain(chain: Chain, chain_state: ChainState, home_chain: Chain, rmn_home: str,
               router: ChangeRouter) -> List[SubmitResult]:
    """Connect the freshly deployed contracts of one chain to each other"""
    results = []

    token_admin_registry = chain_state.token_admin_registry
    registry_module = chain_state.registry_module
    if not chain.call(token_admin_registry, ct.TOKEN_ADMIN_REGISTRY, "isRegistryModule", registry_module):
        results.append(submit_call(
            router, chain, token_admin_registry, ct.TOKEN_ADMIN_REGISTRY, "addRegistryModule", registry_module,
            description="assign registry module on token admin registry",
        ))

    active_digest = normalize_hash(home_chain.call(rmn_home, ct.RMN_HOME, "getActiveDigest"))
    _, current_config = chain.call(chain_state.rmn_remote, ct.RMN_REMOTE, "getVersionedConfig")
    if normalize_hash(current_config[0]) != active_digest:
        logger.info(f"Setting active home digest {active_digest} on RMNRemote of chain {chain.selector}")
        results.append(submit_call(
            router, chain, chain_state.rmn_remote, ct.RMN_REMOTE, "setConfig",
            (active_digest, [(RMN_PLACEHOLDER_SIGNER, 0)], RMN_PLACEHOLDER_F),
            description="set RMNRemote config",
        ))

    # The deployer stays authorized on the fee quoter so it can push initial prices
    results += _authorize_callers(
        chain, chain_state.fee_quoter, ct.FEE_QUOTER,
        [chain_state.offramp, chain.deployer_address], router,
    )
    results += _authorize_callers(
        chain, chain_state.nonce_manager, ct.NONCE_MANAGER,
        [chain_state.onramp, chain_state.offramp], router,
    )
    return results


def add_chain_configs(home_chain: Chain, ccip_home: str, request: DeploymentRequest,
                      router: ChangeRouter) -> List[SubmitResult]:
    """Add a CCIPHome chain config for every target chain that has none"""
    existing = home_chain.call(ccip_home, ct.CCIP_HOME, "getAllChainConfigs", 0, CHAIN_CONFIG_PAGE_SIZE)
    configured = {int(entry[0]) for entry in existing}
    readers = [normalize_hash(node.p2p_id) for node in request.nodes]
    adds = [
        (selector, (readers, request.f, b""))
        for selector in request.chains
        if selector not in configured
    ]
    if not adds:
        logger.info("CCIPHome already has a config for every chain")
        return []
    return [submit_call(
        router, home_chain, ccip_home, ct.CCIP_HOME, "applyChainConfigUpdates", [], adds,
        description=f"add chain configs for {[selector for selector, _ in adds]}",
    )]


def don_capability_config(chain_selector: int) -> bytes:
    """Capability config linking a DON to the chain it serves"""
    return encode(['uint64'], [chain_selector])


def _dons_by_chain(home_chain: Chain, registry: str, ccip_id: str) -> Dict[int, tuple]:
    dons = {}
    for don in home_chain.call(registry, ct.CAPABILITIES_REGISTRY, "getDONs"):
        for capability_id, config in don[DON_CAPABILITY_CONFIGURATIONS]:
            if normalize_hash(capability_id) != ccip_id or len(config) != 32:
                continue
            (selector,) = decode(['uint64'], bytes(config))
            dons[selector] = don
    return dons


def form_dons(home_chain: Chain, registry: str, ccip_id: str, request: DeploymentRequest,
              router: ChangeRouter) -> List[SubmitResult]:
    """
    Create one DON per target chain, or add missing nodes to an existing one.
    """
    if not request.nodes:
        logger.warning("No nodes in deployment request, skipping DON formation")
        return []

    p2p_ids = [normalize_hash(node.p2p_id) for node in request.nodes]
    existing = _dons_by_chain(home_chain, registry, ccip_id)
    results = []
    for selector in request.chains:
        capability_configs = [(ccip_id, don_capability_config(selector))]
        don = existing.get(selector)
        if don is None:
            results.append(submit_call(
                router, home_chain, registry, ct.CAPABILITIES_REGISTRY, "addDON",
                p2p_ids, capability_configs, False, False, request.f,
                description=f"add DON for chain {selector}",
            ))
            continue
        members = [normalize_hash(p2p_id) for p2p_id in don[DON_NODE_P2P_IDS]]
        missing = [p2p_id for p2p_id in p2p_ids if p2p_id not in members]
        if not missing:
            logger.info(f"DON {don[DON_ID]} for chain {selector} already has every node")
            continue
        results.append(submit_call(
            router, home_chain, registry, ct.CAPABILITIES_REGISTRY, "updateDON",
            don[DON_ID], members + missing, capability_configs, don[DON_IS_PUBLIC], request.f,
            description=f"add {len(missing)} nodes to DON {don[DON_ID]} of chain {selector}",
        ))
    return results


def configure_home_chain(home_chain: Chain, home_state: ChainState, request: DeploymentRequest,
                         router: ChangeRouter) -> List[SubmitResult]:
    registry = home_state.capability_registry
    ccip_home = home_state.ccip_home
    capability = ccip_capability(ccip_home)

    results = []
    added = add_capabilities(home_chain, registry, [capability], router)
    if added is not None:
        results.append(added)
    ccip_id = registry_hashed_id(home_chain, registry, capability)
    results += register_nodes(home_chain, registry, request.nodes, [ccip_id], router)
    results += add_chain_configs(home_chain, ccip_home, request, router)
    results += form_dons(home_chain, registry, ccip_id, request, router)
    return results


def configure_chains(request: DeploymentRequest, chains: Mapping[int, Chain], address_book: AddressBook,
                     router: ChangeRouter) -> List[SubmitResult]:
    """
    Wire every target chain and set up the home chain.

    State is reloaded first and every required contract checked before the
    router sees a single call. Each change is guarded by a read, so running
    this again after success submits nothing.

    Raises:
        ConfigError: A requested chain has no chain handle
        MissingDependency: A required contract is not deployed
        StateInconsistent: The CCIP capability is registered differently
    """
    unknown = [selector for selector in request.all_chains if selector not in chains]
    if unknown:
        raise ConfigError(f"chains {unknown} not found in chain registry")

    state = load_onchain_state(chains, address_book, request.all_chains)
    check_dependencies(state, request)

    home_chain = chains[request.home_chain]
    home_state = state.chain(request.home_chain)
    check_ccip_capability(home_chain, home_state)
    results = []
    for selector in request.chains:
        results += wire_chain(chains[selector], state.chain(selector), home_chain, home_state.rmn_home, router)
    results += configure_home_chain(home_chain, home_state, request, router)
    logger.info(f"Configuration submitted {len(results)} changes via {router.mode.value} router")
    return results
