"""
Contract type tags and versions of the deployed topology
"""

from .address_book import TypeAndVersion

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

VERSION_1_0_0 = "1.0.0"
VERSION_1_2_0 = "1.2.0"
VERSION_1_5_0 = "1.5.0"
VERSION_1_6_0_DEV = "1.6.0-dev"

# Type tags
MOCK_RMN = "MockRMN"
RMN_REMOTE = "RMNRemote"
LINK_TOKEN = "LinkToken"
ARM_PROXY = "ARMProxy"
WETH9 = "WETH9"
ROUTER = "Router"
TEST_ROUTER = "TestRouter"
TOKEN_ADMIN_REGISTRY = "TokenAdminRegistry"
REGISTRY_MODULE = "RegistryModuleOwnerCustom"
NONCE_MANAGER = "NonceManager"
FEE_QUOTER = "FeeQuoter"
CCIP_HOME = "CCIPHome"
RMN_HOME = "RMNHome"
ONRAMP = "OnRamp"
OFFRAMP = "OffRamp"
CAPABILITIES_REGISTRY = "CapabilitiesRegistry"
MULTICALL3 = "Multicall3"
CCIP_RECEIVER = "CCIPReceiver"
TIMELOCK = "Timelock"
USDC_TOKEN = "USDCToken"
USDC_MOCK_TRANSMITTER = "USDCMockTransmitter"
USDC_TOKEN_MESSENGER = "USDCTokenMessenger"
USDC_TOKEN_POOL = "USDCTokenPool"

# Records with a fixed version in this topology
MOCK_RMN_V1_0 = TypeAndVersion(MOCK_RMN, VERSION_1_0_0)
RMN_PROXY_EXISTING = TypeAndVersion(ARM_PROXY, VERSION_1_0_0)
RMN_PROXY_NEW = TypeAndVersion(ARM_PROXY, VERSION_1_6_0_DEV)
TOKEN_ADMIN_REGISTRY_V1_5 = TypeAndVersion(TOKEN_ADMIN_REGISTRY, VERSION_1_5_0)
REGISTRY_MODULE_V1_5 = TypeAndVersion(REGISTRY_MODULE, VERSION_1_5_0)
WETH9_V1_0 = TypeAndVersion(WETH9, VERSION_1_0_0)
LINK_TOKEN_V1_0 = TypeAndVersion(LINK_TOKEN, VERSION_1_0_0)
ROUTER_V1_2 = TypeAndVersion(ROUTER, VERSION_1_2_0)
TEST_ROUTER_V1_2 = TypeAndVersion(TEST_ROUTER, VERSION_1_2_0)
MULTICALL3_V1_0 = TypeAndVersion(MULTICALL3, VERSION_1_0_0)
TIMELOCK_V1_0 = TypeAndVersion(TIMELOCK, VERSION_1_0_0)
CCIP_RECEIVER_V1_0 = TypeAndVersion(CCIP_RECEIVER, VERSION_1_0_0)
RMN_REMOTE_V1_6 = TypeAndVersion(RMN_REMOTE, VERSION_1_6_0_DEV)
NONCE_MANAGER_V1_6 = TypeAndVersion(NONCE_MANAGER, VERSION_1_6_0_DEV)
FEE_QUOTER_V1_6 = TypeAndVersion(FEE_QUOTER, VERSION_1_6_0_DEV)
ONRAMP_V1_6 = TypeAndVersion(ONRAMP, VERSION_1_6_0_DEV)
OFFRAMP_V1_6 = TypeAndVersion(OFFRAMP, VERSION_1_6_0_DEV)
CAPABILITIES_REGISTRY_V1_0 = TypeAndVersion(CAPABILITIES_REGISTRY, VERSION_1_0_0)
CCIP_HOME_V1_6 = TypeAndVersion(CCIP_HOME, VERSION_1_6_0_DEV)
RMN_HOME_V1_6 = TypeAndVersion(RMN_HOME, VERSION_1_6_0_DEV)
USDC_TOKEN_V1_0 = TypeAndVersion(USDC_TOKEN, VERSION_1_0_0)
USDC_MOCK_TRANSMITTER_V1_0 = TypeAndVersion(USDC_MOCK_TRANSMITTER, VERSION_1_0_0)
USDC_TOKEN_MESSENGER_V1_0 = TypeAndVersion(USDC_TOKEN_MESSENGER, VERSION_1_0_0)
USDC_TOKEN_POOL_V1_5 = TypeAndVersion(USDC_TOKEN_POOL, VERSION_1_5_0)

# Tags deployed from another contract's artifact
ARTIFACT_NAMES = {
    TEST_ROUTER: "Router",
    LINK_TOKEN: "BurnMintERC677",
    USDC_TOKEN: "BurnMintERC677",
    ARM_PROXY: "RMNProxyContract",
    MOCK_RMN: "MockRMNContract",
    CCIP_RECEIVER: "MaybeRevertMessageReceiver",
    USDC_MOCK_TRANSMITTER: "MockE2EUSDCTransmitter",
    USDC_TOKEN_MESSENGER: "MockE2EUSDCTokenMessenger",
    TIMELOCK: "TimelockController",
}

# Name a contract reports from typeAndVersion() when it differs from its tag
ONCHAIN_TYPE_NAMES = {
    TEST_ROUTER: ROUTER,
}

# Tags whose contracts implement typeAndVersion()
VERIFIABLE_TYPES = frozenset([
    ARM_PROXY,
    ROUTER,
    TEST_ROUTER,
    TOKEN_ADMIN_REGISTRY,
    REGISTRY_MODULE,
    RMN_REMOTE,
    NONCE_MANAGER,
    FEE_QUOTER,
    ONRAMP,
    OFFRAMP,
    CAPABILITIES_REGISTRY,
    CCIP_HOME,
    RMN_HOME,
    USDC_TOKEN_POOL,
])


def artifact_name(contract_type: str) -> str:
    return ARTIFACT_NAMES.get(contract_type, contract_type)


def onchain_type_name(contract_type: str) -> str:
    return ONCHAIN_TYPE_NAMES.get(contract_type, contract_type)
