"""
Governance proposals built from batched changes.

Every chain's batch becomes one ``scheduleBatch`` call on that chain's
TimelockController. Signers pick the resulting JSON file up, approve it and
execute the calls once the delay has passed.
"""

import os
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from web3 import Web3

from .address_book import AddressBook
from .chain import Chain
from . import contracts as ct
from .errors import ConfigError, DeploymentError, MissingDependency
from .router import ChangeBatch

logger = logging.getLogger(__name__)

ZERO_PREDECESSOR = b"\x00" * 32


@dataclass
class TimelockCall:
    """The scheduleBatch call carrying one chain's batch"""
    chain_selector: int
    timelock: str
    data: bytes
    salt: bytes
    batch: ChangeBatch

    def to_dict(self) -> Dict[str, Any]:
        return {
            'chainSelector': self.chain_selector,
            'timelock': self.timelock,
            'salt': Web3.to_hex(self.salt),
            'data': Web3.to_hex(self.data),
            'operations': self.batch.to_dict()['batch'],
        }


@dataclass
class GovernanceProposal:
    description: str
    min_delay: int
    calls: List[TimelockCall] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def body(self) -> Dict[str, Any]:
        """The content that identifies a proposal; the creation time is not part of it"""
        return {
            'description': self.description,
            'minDelay': self.min_delay,
            'chains': [call.to_dict() for call in self.calls],
        }

    @property
    def proposal_id(self) -> str:
        return Web3.to_hex(Web3.keccak(text=json.dumps(self.body(), sort_keys=True)))

    @property
    def transaction_counts(self) -> Dict[int, int]:
        return {call.chain_selector: len(call.batch) for call in self.calls}

    def to_dict(self) -> Dict[str, Any]:
        data = self.body()
        data['createdAt'] = self.created_at
        data['id'] = self.proposal_id
        return data


@dataclass
class ProposalResult:
    proposal_id: str
    transaction_counts: Dict[int, int]
    path: Optional[str] = None
    proposal: Optional[GovernanceProposal] = None


def batch_salt(batch: ChangeBatch, description: str) -> bytes:
    """Deterministic salt so the same batch under the same description maps to one timelock operation"""
    payload = json.dumps({'description': description, **batch.to_dict()}, sort_keys=True)
    return bytes(Web3.keccak(text=payload))


class TimelockProposer:
    """
    Turns ChangeBatches into a GovernanceProposal.

    Nothing is written unless every batch can be encoded: the timelock of
    each chain is looked up before any payload is built.
    """

    def __init__(self, chains: Mapping[int, Chain], address_book: AddressBook,
                 min_delay: int = 0, output_dir: Optional[str] = "proposals"):
        self.chains = chains
        self.address_book = address_book
        self.min_delay = min_delay
        self.output_dir = output_dir

    def _timelock(self, chain_selector: int) -> str:
        if chain_selector not in self.chains:
            raise ConfigError(f"chain {chain_selector} not found in chain registry")
        if not self.address_book.has(chain_selector, ct.TIMELOCK_V1_0):
            raise MissingDependency(str(ct.TIMELOCK_V1_0), chain_selector, "a batched proposal needs a timelock")
        return self.address_book.get(chain_selector, ct.TIMELOCK, ct.VERSION_1_0_0)

    def build(self, batches: Sequence[ChangeBatch], description: str) -> GovernanceProposal:
        timelocks = {batch.chain_selector: self._timelock(batch.chain_selector) for batch in batches}
        selectors = [batch.chain_selector for batch in batches]
        if len(set(selectors)) != len(selectors):
            raise DeploymentError(f"more than one batch for a chain in {selectors}")

        proposal = GovernanceProposal(description, self.min_delay)
        for batch in batches:
            chain = self.chains[batch.chain_selector]
            timelock = timelocks[batch.chain_selector]
            salt = batch_salt(batch, description)
            data = chain.encode_call(
                timelock, ct.TIMELOCK, "scheduleBatch",
                [op.to for op in batch.operations],
                [op.value for op in batch.operations],
                [op.data for op in batch.operations],
                ZERO_PREDECESSOR,
                salt,
                self.min_delay,
            )
            proposal.calls.append(TimelockCall(batch.chain_selector, timelock, data, salt, batch))
        return proposal

    def _write(self, proposal: GovernanceProposal) -> str:
        os.makedirs(self.output_dir, exist_ok=True)
        path = os.path.join(self.output_dir, f"proposal-{proposal.proposal_id}.json")
        try:
            with open(path, 'w') as f:
                json.dump(proposal.to_dict(), f, indent=2)
        except OSError as e:
            raise DeploymentError(f"Could not write proposal to {path}: {e}") from e
        return path

    def propose(self, batches: Sequence[ChangeBatch], description: str = "") -> Optional[ProposalResult]:
        """
        Bundle the batches into one proposal.

        Returns:
            ProposalResult, or None when there is nothing to propose

        Raises:
            MissingDependency: A chain with changes has no timelock
        """
        batches = [batch for batch in batches if len(batch)]
        if not batches:
            logger.info("No batched changes, no proposal created")
            return None

        proposal = self.build(batches, description)
        path = self._write(proposal) if self.output_dir else None
        result = ProposalResult(proposal.proposal_id, proposal.transaction_counts, path, proposal)
        logger.info(f"Created proposal {result.proposal_id} with transactions {result.transaction_counts}"
                    + (f", written to {path}" if path else ""))
        return result
