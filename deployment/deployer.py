"""
Per-chain deployer
Brings one chain up to the target topology, skipping what already exists
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .address_book import AddressBook, ContractRecord
from .chain import Chain, deploy_contract
from .config import Features
from .state import ChainState
from .steps import ALL_STEPS, DeployStep, StepContext

logger = logging.getLogger(__name__)


@dataclass
class ChainDeployResult:
    """New records of one chain plus the error that stopped it, if any"""
    chain_selector: int
    delta: AddressBook = field(default_factory=AddressBook)
    error: Optional[Exception] = None
    skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def records(self) -> List[ContractRecord]:
        return self.delta.records(self.chain_selector)


def deploy_chain_contracts(chain: Chain, state: ChainState, address_book: AddressBook,
                           features: Features, is_home: bool = False,
                           steps: Optional[Sequence[DeployStep]] = None) -> ChainDeployResult:
    """
    Deploy every missing contract of the topology on one chain.

    Steps run strictly in order. A step whose record already exists is
    skipped. Each new contract is saved to ``address_book`` as soon as it is
    confirmed, so a later failure never loses it. The first failure stops the
    remaining steps of this chain; nothing is rolled back.

    Args:
        chain: Target chain
        state: Freshly loaded state of that chain
        address_book: Shared book receiving every new record
        features: Optional topology parts
        is_home: Whether the home chain contracts belong on this chain
        steps: Override of the step list

    Returns:
        ChainDeployResult with the new records and the first error
    """
    steps = ALL_STEPS if steps is None else steps
    result = ChainDeployResult(chain.selector)
    ctx = StepContext(
        chain_selector=chain.selector,
        deployer_address=chain.deployer_address,
        features=features,
        is_home=is_home,
        known=dict(state.records),
    )

    for step in steps:
        if not step.enabled(ctx):
            continue
        if step.output in ctx.known:
            logger.info(f"{step.name} already deployed on chain {chain.selector} at {ctx.known[step.output]}")
            result.skipped.append(step.name)
            continue
        if step.satisfied_by is not None and step.satisfied_by in ctx.known:
            logger.info(f"{step.name} not needed on chain {chain.selector}, {step.satisfied_by} exists")
            result.skipped.append(step.name)
            continue

        # Any failure ends this chain's run but keeps what was confirmed before it
        try:
            args = step.args(ctx)
            address = deploy_contract(chain, step.output, *args)
            address_book.save(chain.selector, address, step.output)
        except Exception as e:
            logger.error(f"Failed to deploy {step.name} on chain {chain.selector}: {e}")
            result.error = e
            return result

        ctx.known[step.output] = address
        result.delta.save(chain.selector, address, step.output)
        logger.info(f"Deployed {step.name} on chain {chain.selector} at {address}")

    logger.info(f"Chain {chain.selector} deployment complete: "
                f"{len(result.records)} deployed, {len(result.skipped)} already present")
    return result
