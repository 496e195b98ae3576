"""
State Loader
Builds a typed, read-only view of what is deployed on every chain
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from .address_book import AddressBook, TypeAndVersion
from .chain import Chain
from . import contracts as ct
from .errors import MissingDependency, StateInconsistent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainState:
    """Deployed contracts of one chain, keyed by type and version"""
    chain_selector: int
    records: Mapping[TypeAndVersion, str] = field(default_factory=dict)
    # ARMProxy address -> RMN contract it forwards to
    linked_rmn: Mapping[str, str] = field(default_factory=dict)

    def get(self, type_and_version: TypeAndVersion) -> Optional[str]:
        return self.records.get(type_and_version)

    def latest(self, contract_type: str) -> Optional[str]:
        """Address of the last recorded contract of a type, any version"""
        found = None
        for tv, address in self.records.items():
            if tv.type == contract_type:
                found = address
        return found

    def require(self, type_and_version: TypeAndVersion, hint: str = "") -> str:
        address = self.records.get(type_and_version)
        if address is None:
            raise MissingDependency(str(type_and_version), self.chain_selector, hint)
        return address

    def has(self, type_and_version: TypeAndVersion) -> bool:
        return type_and_version in self.records

    @property
    def router(self) -> Optional[str]:
        return self.get(ct.ROUTER_V1_2)

    @property
    def test_router(self) -> Optional[str]:
        return self.get(ct.TEST_ROUTER_V1_2)

    @property
    def weth9(self) -> Optional[str]:
        return self.get(ct.WETH9_V1_0)

    @property
    def link_token(self) -> Optional[str]:
        return self.get(ct.LINK_TOKEN_V1_0)

    @property
    def token_admin_registry(self) -> Optional[str]:
        return self.get(ct.TOKEN_ADMIN_REGISTRY_V1_5)

    @property
    def registry_module(self) -> Optional[str]:
        return self.get(ct.REGISTRY_MODULE_V1_5)

    @property
    def rmn_proxy_existing(self) -> Optional[str]:
        return self.get(ct.RMN_PROXY_EXISTING)

    @property
    def rmn_proxy_new(self) -> Optional[str]:
        return self.get(ct.RMN_PROXY_NEW)

    @property
    def rmn_remote(self) -> Optional[str]:
        return self.get(ct.RMN_REMOTE_V1_6)

    @property
    def nonce_manager(self) -> Optional[str]:
        return self.get(ct.NONCE_MANAGER_V1_6)

    @property
    def fee_quoter(self) -> Optional[str]:
        return self.get(ct.FEE_QUOTER_V1_6)

    @property
    def onramp(self) -> Optional[str]:
        return self.get(ct.ONRAMP_V1_6)

    @property
    def offramp(self) -> Optional[str]:
        return self.get(ct.OFFRAMP_V1_6)

    @property
    def timelock(self) -> Optional[str]:
        return self.get(ct.TIMELOCK_V1_0)

    @property
    def receiver(self) -> Optional[str]:
        return self.get(ct.CCIP_RECEIVER_V1_0)

    @property
    def multicall3(self) -> Optional[str]:
        return self.get(ct.MULTICALL3_V1_0)

    @property
    def capability_registry(self) -> Optional[str]:
        return self.get(ct.CAPABILITIES_REGISTRY_V1_0)

    @property
    def ccip_home(self) -> Optional[str]:
        return self.get(ct.CCIP_HOME_V1_6)

    @property
    def rmn_home(self) -> Optional[str]:
        return self.get(ct.RMN_HOME_V1_6)


@dataclass(frozen=True)
class OnchainState:
    """Snapshot of every chain's ChainState. Reload rather than mutate."""
    chains: Mapping[int, ChainState]

    def chain(self, chain_selector: int) -> ChainState:
        """State of a chain; chains without records get an empty state"""
        return self.chains.get(chain_selector) or ChainState(chain_selector)

    def __contains__(self, chain_selector: int) -> bool:
        return chain_selector in self.chains


def _verify_type(chain: Chain, address: str, tv: TypeAndVersion):
    # A reverting call or an unparseable answer means the address does not hold what was recorded
    try:
        reported = chain.call(address, tv.type, "typeAndVersion")
        onchain = TypeAndVersion.parse(reported)
    except Exception as e:
        logger.error(f"Address book entry {address} ({tv}) failed typeAndVersion() on chain {chain.selector}: {e}")
        raise StateInconsistent(chain.selector, address, str(tv), f"<typeAndVersion failed: {e}>") from e
    if onchain.type != ct.onchain_type_name(tv.type):
        logger.error(f"Address book entry {address} ({tv}) reports {onchain} on chain {chain.selector}")
        raise StateInconsistent(chain.selector, address, str(tv), str(onchain))


def load_chain_state(chain: Chain, address_book: AddressBook) -> ChainState:
    """
    Build the state of a single chain.

    Records whose type implements ``typeAndVersion()`` are checked against
    the chain. ARMProxy records also have their RMN target read.

    Raises:
        StateInconsistent: A recorded type does not match the deployed contract
    """
    records: Dict[TypeAndVersion, str] = {}
    linked_rmn: Dict[str, str] = {}
    for record in address_book.records(chain.selector):
        tv = record.type_and_version
        if tv.type in ct.VERIFIABLE_TYPES:
            _verify_type(chain, record.address, tv)
        if tv in records and records[tv] != record.address:
            logger.warning(f"Multiple {tv} recorded on chain {chain.selector}, using {record.address}")
        records[tv] = record.address
        if tv.type == ct.ARM_PROXY:
            linked_rmn[record.address] = chain.call(record.address, ct.ARM_PROXY, "getARM")
    return ChainState(chain.selector, MappingProxyType(records), MappingProxyType(linked_rmn))


def load_onchain_state(chains: Mapping[int, Chain], address_book: AddressBook,
                       selectors: Optional[Iterable[int]] = None) -> OnchainState:
    """
    Build the OnchainState of the given chains (all known chains by default).

    Only reads; safe to call repeatedly and from several threads.
    """
    if selectors is None:
        selectors = chains.keys()
    states = {}
    for selector in selectors:
        states[selector] = load_chain_state(chains[selector], address_book)
        logger.debug(f"Loaded {len(states[selector].records)} records for chain {selector}")
    return OnchainState(MappingProxyType(states))
