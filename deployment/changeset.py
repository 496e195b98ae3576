"""
Deploy and configure in one run
"""

import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from .address_book import AddressBook
from .chain import Chain
from .config import DeploymentRequest
from .configure import configure_chains
from .errors import DeploymentError
from .fanout import FanOutResult, deploy_chains
from .proposal import ProposalResult, TimelockProposer
from .router import BatchedRouter, ChangeRouter, SubmitResult, new_router

logger = logging.getLogger(__name__)


@dataclass
class ChangesetOutput:
    """
    Outcome of one run.

    ``address_book`` holds only the records created by this run. It is
    populated even when ``error`` is set.
    """
    address_book: AddressBook = field(default_factory=AddressBook)
    proposal: Optional[ProposalResult] = None
    error: Optional[Exception] = None
    changes: List[SubmitResult] = field(default_factory=list)
    deployment: Optional[FanOutResult] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def deploy_and_configure(request: DeploymentRequest, chains: Mapping[int, Chain], address_book: AddressBook,
                         router: Optional[ChangeRouter] = None,
                         proposer: Optional[TimelockProposer] = None) -> ChangesetOutput:
    """
    Deploy the missing contracts on every chain, then wire them.

    Deployments always execute directly. Configuration changes go through
    ``router``; in batched mode they end up in a single proposal. A failed
    deployment on any chain skips configuration, since the wiring would see
    an incomplete topology.

    Args:
        request: What to deploy and how changes take effect
        chains: Chain handles by selector
        address_book: Shared book; new records are saved as they confirm
        router: Defaults to the router for ``request.mode``
        proposer: Required in batched mode
    """
    router = router or new_router(request.mode)
    output = ChangesetOutput()

    try:
        deployment = deploy_chains(
            chains, request.all_chains, address_book, request.features, request.home_chain
        )
    except Exception as e:
        logger.error(f"Deployment aborted before any chain started: {e}")
        output.error = e
        return output

    output.deployment = deployment
    output.address_book.merge(deployment.delta)
    if deployment.error is not None:
        output.error = deployment.error
        logger.error(f"Skipping configuration, {len(deployment.errors)} chains failed to deploy")
        return output

    try:
        output.changes = configure_chains(request, chains, address_book, router)
    except Exception as e:
        logger.error(f"Configuration failed: {e}")
        output.error = e
        if isinstance(router, BatchedRouter):
            router.discard()
        return output

    if isinstance(router, BatchedRouter):
        if proposer is None:
            router.discard()
            output.error = DeploymentError("batched mode needs a proposer")
            return output
        try:
            output.proposal = proposer.propose(router.batches(), request.description)
        except Exception as e:
            logger.error(f"Proposal creation failed: {e}")
            output.error = e
            router.discard()

    logger.info(f"Run finished: {len(output.address_book)} contracts deployed, "
                f"{len(output.changes)} configuration changes"
                + (f", proposal {output.proposal.proposal_id}" if output.proposal else ""))
    return output
