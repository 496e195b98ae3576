"""
Change Router
Applies mutating calls directly or collects them into governance batches
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from web3 import Web3

from .chain import Chain
from .config import ExecutionMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Operation:
    """One call inside a batch"""
    to: str
    data: bytes
    value: int = 0
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'to': self.to,
            'data': Web3.to_hex(self.data),
            'value': self.value,
            'description': self.description,
        }


@dataclass
class ChangeBatch:
    """Ordered operations for one chain, executed atomically once approved"""
    chain_selector: int
    operations: List[Operation] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.operations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'chainSelector': self.chain_selector,
            'batch': [op.to_dict() for op in self.operations],
        }


@dataclass
class SubmitResult:
    chain_selector: int
    to: str
    batched: bool
    tx_hash: Optional[str] = None
    receipt: Optional[Dict[str, Any]] = None


class ChangeRouter(ABC):
    """Single entry point for every mutating call"""

    mode: ExecutionMode

    @abstractmethod
    def submit(self, chain: Chain, to: str, data: bytes, value: int = 0,
               description: str = "") -> SubmitResult:
        ...


class DirectRouter(ChangeRouter):
    """Signs, sends and waits for every call"""

    mode = ExecutionMode.DIRECT

    def submit(self, chain: Chain, to: str, data: bytes, value: int = 0,
               description: str = "") -> SubmitResult:
        tx_hash = chain.send_transaction(to, data, value)
        receipt = chain.confirm(tx_hash)
        if description:
            logger.info(f"{description} confirmed on chain {chain.selector}")
        return SubmitResult(chain.selector, to, batched=False, tx_hash=tx_hash, receipt=receipt)


class BatchedRouter(ChangeRouter):
    """
    Appends every call to its chain's batch without sending anything.

    There is exactly one batch per chain, so all calls made for a chain in
    one request execute together, in call order, once the proposal passes.
    """

    mode = ExecutionMode.BATCHED

    def __init__(self):
        self._lock = threading.Lock()
        self._batches: Dict[int, ChangeBatch] = {}

    def submit(self, chain: Chain, to: str, data: bytes, value: int = 0,
               description: str = "") -> SubmitResult:
        with self._lock:
            batch = self._batches.get(chain.selector)
            if batch is None:
                batch = self._batches[chain.selector] = ChangeBatch(chain.selector)
            batch.operations.append(Operation(to, bytes(data), value, description))
            position = len(batch)
        logger.info(f"Batched {description or 'call'} for chain {chain.selector} (operation {position})")
        return SubmitResult(chain.selector, to, batched=True)

    def batches(self) -> List[ChangeBatch]:
        """Batches in the order their chains were first touched"""
        with self._lock:
            return [
                ChangeBatch(batch.chain_selector, list(batch.operations))
                for batch in self._batches.values()
                if batch.operations
            ]

    def discard(self):
        with self._lock:
            dropped = sum(len(batch) for batch in self._batches.values())
            self._batches.clear()
        if dropped:
            logger.warning(f"Discarded {dropped} batched operations")


def new_router(mode: ExecutionMode) -> ChangeRouter:
    """Pick the router for a run"""
    mode = ExecutionMode(mode)
    if mode == ExecutionMode.BATCHED:
        return BatchedRouter()
    return DirectRouter()


def submit_call(router: ChangeRouter, chain: Chain, address: str, contract_type: str,
                method: str, *args, description: str = "") -> SubmitResult:
    """Encode ``method(*args)`` and hand it to the router"""
    data = chain.encode_call(address, contract_type, method, *args)
    return router.submit(chain, address, data, description=description or f"{contract_type}.{method}")
