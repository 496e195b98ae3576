"""
Deployment topology as an ordered list of steps.

Each step names the record it produces and the records it reads. Steps run
in list order, so every step may use the outputs of the steps before it.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .address_book import TypeAndVersion
from .config import Features
from . import contracts as ct
from .contracts import ZERO_ADDRESS
from .errors import MissingDependency

# Placeholder fee aggregator until a real one is configured
FEE_AGGREGATOR = "0x0000000000000000000000000000000000000001"

LINK_INITIAL_SUPPLY = 10 ** 9 * 10 ** 18
MAX_FEE_JUELS_PER_MSG = 200 * 10 ** 18
TOKEN_PRICE_STALENESS_THRESHOLD = 24 * 60 * 60
PERMISSIONLESS_EXECUTION_THRESHOLD = 24 * 60 * 60
LINK_PREMIUM_MULTIPLIER = 9 * 10 ** 17
WETH_PREMIUM_MULTIPLIER = 10 ** 18


@dataclass
class StepContext:
    """What a step can see: the chain identity, flags and known addresses"""
    chain_selector: int
    deployer_address: str
    features: Features
    is_home: bool
    known: Dict[TypeAndVersion, str] = field(default_factory=dict)

    def address(self, type_and_version: TypeAndVersion) -> str:
        address = self.known.get(type_and_version)
        if address is None:
            raise MissingDependency(str(type_and_version), self.chain_selector,
                                    "deploy the prerequisites first")
        return address


def _no_args(ctx: StepContext) -> Sequence[Any]:
    return ()


def _always(ctx: StepContext) -> bool:
    return True


@dataclass(frozen=True)
class DeployStep:
    output: TypeAndVersion
    requires: Tuple[TypeAndVersion, ...] = ()
    args: Callable[[StepContext], Sequence[Any]] = _no_args
    enabled: Callable[[StepContext], bool] = _always
    # The step is not needed when this record already exists
    satisfied_by: Optional[TypeAndVersion] = None

    @property
    def name(self) -> str:
        return str(self.output)


def _usdc(ctx: StepContext) -> bool:
    return ctx.features.usdc_enabled(ctx.chain_selector)


def _fee_quoter_args(ctx: StepContext):
    link = ctx.address(ct.LINK_TOKEN_V1_0)
    weth = ctx.address(ct.WETH9_V1_0)
    static_config = (MAX_FEE_JUELS_PER_MSG, link, TOKEN_PRICE_STALENESS_THRESHOLD)
    return (
        static_config,
        [ctx.address(ct.TIMELOCK_V1_0)],  # price updaters, ramps are authorized later
        [weth, link],                     # fee tokens
        [],
        [],
        [(link, LINK_PREMIUM_MULTIPLIER), (weth, WETH_PREMIUM_MULTIPLIER)],
        [],
    )


def _onramp_args(ctx: StepContext):
    static_config = (
        ctx.chain_selector,
        ctx.address(ct.RMN_PROXY_NEW),
        ctx.address(ct.NONCE_MANAGER_V1_6),
        ctx.address(ct.TOKEN_ADMIN_REGISTRY_V1_5),
    )
    dynamic_config = (ctx.address(ct.FEE_QUOTER_V1_6), FEE_AGGREGATOR)
    return (static_config, dynamic_config, [])


def _offramp_args(ctx: StepContext):
    static_config = (
        ctx.chain_selector,
        ctx.address(ct.RMN_PROXY_NEW),
        ctx.address(ct.NONCE_MANAGER_V1_6),
        ctx.address(ct.TOKEN_ADMIN_REGISTRY_V1_5),
    )
    dynamic_config = (ctx.address(ct.FEE_QUOTER_V1_6), PERMISSIONLESS_EXECUTION_THRESHOLD, True)
    return (static_config, dynamic_config, [])


# Contracts that normally exist already on production chains and are only
# deployed from scratch on test and staging chains.
PREREQUISITE_STEPS: List[DeployStep] = [
    # Stands in for the RMN an existing ARMProxy already points to
    DeployStep(ct.MOCK_RMN_V1_0, satisfied_by=ct.RMN_PROXY_EXISTING),
    DeployStep(
        ct.RMN_PROXY_EXISTING,
        requires=(ct.MOCK_RMN_V1_0,),
        args=lambda ctx: (ctx.address(ct.MOCK_RMN_V1_0),),
    ),
    DeployStep(ct.TOKEN_ADMIN_REGISTRY_V1_5),
    DeployStep(
        ct.REGISTRY_MODULE_V1_5,
        requires=(ct.TOKEN_ADMIN_REGISTRY_V1_5,),
        args=lambda ctx: (ctx.address(ct.TOKEN_ADMIN_REGISTRY_V1_5),),
    ),
    DeployStep(ct.WETH9_V1_0),
    DeployStep(
        ct.LINK_TOKEN_V1_0,
        args=lambda ctx: ("Link Token", "LINK", 18, LINK_INITIAL_SUPPLY),
    ),
    DeployStep(
        ct.ROUTER_V1_2,
        requires=(ct.WETH9_V1_0, ct.RMN_PROXY_EXISTING),
        args=lambda ctx: (ctx.address(ct.WETH9_V1_0), ctx.address(ct.RMN_PROXY_EXISTING)),
    ),
    DeployStep(ct.MULTICALL3_V1_0, enabled=lambda ctx: ctx.features.multicall3),
    DeployStep(
        ct.USDC_TOKEN_V1_0,
        args=lambda ctx: ("USDC Token", "USDC", 6, 0),
        enabled=_usdc,
    ),
    DeployStep(
        ct.USDC_MOCK_TRANSMITTER_V1_0,
        requires=(ct.USDC_TOKEN_V1_0,),
        args=lambda ctx: (0, 0, ctx.address(ct.USDC_TOKEN_V1_0)),
        enabled=_usdc,
    ),
    DeployStep(
        ct.USDC_TOKEN_MESSENGER_V1_0,
        requires=(ct.USDC_MOCK_TRANSMITTER_V1_0,),
        args=lambda ctx: (0, ctx.address(ct.USDC_MOCK_TRANSMITTER_V1_0)),
        enabled=_usdc,
    ),
    DeployStep(
        ct.USDC_TOKEN_POOL_V1_5,
        requires=(ct.USDC_TOKEN_MESSENGER_V1_0, ct.USDC_TOKEN_V1_0, ct.RMN_PROXY_EXISTING, ct.ROUTER_V1_2),
        args=lambda ctx: (
            ctx.address(ct.USDC_TOKEN_MESSENGER_V1_0),
            ctx.address(ct.USDC_TOKEN_V1_0),
            [],
            ctx.address(ct.RMN_PROXY_EXISTING),
            ctx.address(ct.ROUTER_V1_2),
        ),
        enabled=_usdc,
    ),
]

# Contracts living only on the home chain
HOME_STEPS: List[DeployStep] = [
    DeployStep(ct.CAPABILITIES_REGISTRY_V1_0, enabled=lambda ctx: ctx.is_home),
    DeployStep(
        ct.CCIP_HOME_V1_6,
        requires=(ct.CAPABILITIES_REGISTRY_V1_0,),
        args=lambda ctx: (ctx.address(ct.CAPABILITIES_REGISTRY_V1_0),),
        enabled=lambda ctx: ctx.is_home,
    ),
    DeployStep(ct.RMN_HOME_V1_6, enabled=lambda ctx: ctx.is_home),
]

CHAIN_STEPS: List[DeployStep] = [
    DeployStep(
        ct.TIMELOCK_V1_0,
        args=lambda ctx: (0, [ctx.deployer_address], [ctx.deployer_address], ctx.deployer_address),
    ),
    DeployStep(ct.CCIP_RECEIVER_V1_0, args=lambda ctx: (False,)),
    DeployStep(ct.RMN_REMOTE_V1_6, args=lambda ctx: (ctx.chain_selector,)),
    # A second proxy so RMNRemote can be exercised before the existing proxy is repointed
    DeployStep(
        ct.RMN_PROXY_NEW,
        requires=(ct.RMN_REMOTE_V1_6,),
        args=lambda ctx: (ctx.address(ct.RMN_REMOTE_V1_6),),
    ),
    DeployStep(
        ct.TEST_ROUTER_V1_2,
        requires=(ct.WETH9_V1_0, ct.RMN_PROXY_NEW),
        args=lambda ctx: (ctx.address(ct.WETH9_V1_0), ctx.address(ct.RMN_PROXY_NEW)),
    ),
    DeployStep(ct.NONCE_MANAGER_V1_6, args=lambda ctx: ([],)),
    DeployStep(
        ct.FEE_QUOTER_V1_6,
        requires=(ct.LINK_TOKEN_V1_0, ct.WETH9_V1_0, ct.TIMELOCK_V1_0),
        args=_fee_quoter_args,
    ),
    DeployStep(
        ct.ONRAMP_V1_6,
        requires=(ct.RMN_PROXY_NEW, ct.NONCE_MANAGER_V1_6, ct.TOKEN_ADMIN_REGISTRY_V1_5, ct.FEE_QUOTER_V1_6),
        args=_onramp_args,
    ),
    DeployStep(
        ct.OFFRAMP_V1_6,
        requires=(ct.RMN_PROXY_NEW, ct.NONCE_MANAGER_V1_6, ct.TOKEN_ADMIN_REGISTRY_V1_5, ct.FEE_QUOTER_V1_6),
        args=_offramp_args,
    ),
]

ALL_STEPS: List[DeployStep] = PREREQUISITE_STEPS + HOME_STEPS + CHAIN_STEPS


def validate_steps(steps: Sequence[DeployStep]):
    """Check that every declared input is produced by an earlier step"""
    produced = set()
    for step in steps:
        for required in step.requires:
            if required not in produced:
                raise ValueError(f"step {step.name} requires {required} which no earlier step produces")
        produced.add(step.output)
