"""
Parallel fan-out of the per-chain deployer
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from .address_book import AddressBook
from .chain import Chain
from .config import Features
from .deployer import ChainDeployResult, deploy_chain_contracts
from .errors import ConfigError
from .state import load_onchain_state

logger = logging.getLogger(__name__)


@dataclass
class FanOutResult:
    """Results of every chain, in request order"""
    selectors: List[int]
    results: Dict[int, ChainDeployResult] = field(default_factory=dict)

    @property
    def errors(self) -> Dict[int, Exception]:
        return {
            selector: self.results[selector].error
            for selector in self.selectors
            if selector in self.results and self.results[selector].error is not None
        }

    @property
    def error(self) -> Optional[Exception]:
        """First failure, taking chains in request order"""
        errors = self.errors
        return next(iter(errors.values()), None)

    @property
    def delta(self) -> AddressBook:
        merged = AddressBook()
        for selector in self.selectors:
            if selector in self.results:
                merged.merge(self.results[selector].delta)
        return merged


def deploy_chains(chains: Mapping[int, Chain], selectors: Sequence[int], address_book: AddressBook,
                  features: Features, home_chain: Optional[int] = None) -> FanOutResult:
    """
    Run the per-chain deployer on every selected chain at once.

    One worker per chain. All workers run to completion even when some
    fail; the caller inspects ``FanOutResult.error`` and decides whether to
    re-run. Records of successful steps are already in ``address_book``.

    Raises:
        ConfigError: A selector has no chain handle
        StateInconsistent: The address book disagrees with a chain
    """
    unknown = [selector for selector in selectors if selector not in chains]
    if unknown:
        raise ConfigError(f"chains {unknown} not found in chain registry")

    state = load_onchain_state(chains, address_book, selectors)
    outcome = FanOutResult(list(selectors))
    if not selectors:
        return outcome

    logger.info(f"Deploying to {len(selectors)} chains: {list(selectors)}")
    with ThreadPoolExecutor(max_workers=len(selectors)) as executor:
        futures = {
            executor.submit(
                deploy_chain_contracts,
                chains[selector],
                state.chain(selector),
                address_book,
                features,
                selector == home_chain,
            ): selector
            for selector in selectors
        }
        for future in as_completed(futures):
            selector = futures[future]
            try:
                outcome.results[selector] = future.result()
            except Exception as e:
                logger.error(f"Deployment worker for chain {selector} crashed: {e}")
                outcome.results[selector] = ChainDeployResult(selector, error=e)

    for selector, error in outcome.errors.items():
        logger.error(f"Failed to deploy chain contracts for chain {selector}: {error}")
    logger.info(f"Fan-out finished: {len(selectors) - len(outcome.errors)} of {len(selectors)} chains succeeded")
    return outcome
