"""
Address Book
Durable mapping from (chain selector, address) to contract type and version
"""

import json
import os
import threading
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from web3 import Web3

from .errors import NotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TypeAndVersion:
    """Contract type tag plus semantic version, e.g. ``FeeQuoter 1.6.0-dev``"""
    type: str
    version: str

    def __str__(self) -> str:
        return f"{self.type} {self.version}"

    @classmethod
    def parse(cls, value: str) -> "TypeAndVersion":
        """
        Parse the ``"<Type> <version>"`` form returned by ``typeAndVersion()``.

        Args:
            value: String such as ``"Router 1.2.0"``

        Returns:
            TypeAndVersion
        """
        parts = value.strip().split(" ")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise ValueError(f"invalid type and version: {value!r}")
        return cls(parts[0], parts[1])


@dataclass(frozen=True)
class ContractRecord:
    """One deployed program inside one chain"""
    chain_selector: int
    address: str
    type_and_version: TypeAndVersion


class AddressBook:
    """
    Thread-safe address book keyed by chain selector.

    Each deploying task only writes records for its own chain, so merging
    books from concurrent tasks is a union of disjoint keys. When two books
    do record the same address the incoming one wins.
    """

    def __init__(self, addresses: Optional[Dict[int, Dict[str, TypeAndVersion]]] = None):
        self._lock = threading.RLock()
        self._addresses: Dict[int, Dict[str, TypeAndVersion]] = {}
        if addresses:
            for selector, records in addresses.items():
                for address, tv in records.items():
                    self.save(selector, address, tv)

    def save(self, chain_selector: int, address: str, type_and_version: TypeAndVersion):
        """Record a deployed contract. Re-saving the same record is a no-op."""
        if not Web3.is_address(address):
            raise ValueError(f"invalid address {address!r} for chain {chain_selector}")
        address = Web3.to_checksum_address(address)
        with self._lock:
            chain = self._addresses.setdefault(int(chain_selector), {})
            existing = chain.get(address)
            if existing is not None and existing != type_and_version:
                raise ValueError(
                    f"address {address} on chain {chain_selector} already recorded as {existing}"
                )
            chain[address] = type_and_version

    def addresses(self) -> Dict[int, Dict[str, TypeAndVersion]]:
        with self._lock:
            return {selector: dict(records) for selector, records in self._addresses.items()}

    def addresses_for_chain(self, chain_selector: int) -> Dict[str, TypeAndVersion]:
        with self._lock:
            if chain_selector not in self._addresses:
                raise NotFound(f"chain {chain_selector} not found in address book")
            return dict(self._addresses[chain_selector])

    def chains(self) -> List[int]:
        with self._lock:
            return sorted(self._addresses)

    def records(self, chain_selector: Optional[int] = None) -> List[ContractRecord]:
        """All records, or those of one chain, in insertion order"""
        with self._lock:
            selected = self._addresses.items()
            if chain_selector is not None:
                selected = [(chain_selector, self._addresses.get(chain_selector, {}))]
            return [
                ContractRecord(selector, address, tv)
                for selector, records in selected
                for address, tv in records.items()
            ]

    def get(self, chain_selector: int, contract_type: str, version: Optional[str] = None) -> str:
        """
        Look up the address of a contract type on a chain.

        Args:
            chain_selector: Chain to search
            contract_type: Type tag
            version: Exact version, or None for the most recently recorded one

        Returns:
            Checksummed address

        Raises:
            NotFound: No matching record
        """
        with self._lock:
            found = None
            for address, tv in self._addresses.get(chain_selector, {}).items():
                if tv.type == contract_type and (version is None or tv.version == version):
                    found = address
            if found is None:
                wanted = contract_type if version is None else f"{contract_type} {version}"
                raise NotFound(f"{wanted} not found for chain {chain_selector}")
            return found

    def has(self, chain_selector: int, type_and_version: TypeAndVersion) -> bool:
        with self._lock:
            return type_and_version in self._addresses.get(chain_selector, {}).values()

    def merge(self, other: "AddressBook"):
        """Union another book into this one"""
        incoming = other.addresses()
        with self._lock:
            for selector, records in incoming.items():
                self._addresses.setdefault(selector, {}).update(records)

    def is_empty(self) -> bool:
        with self._lock:
            return not any(self._addresses.values())

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        with self._lock:
            return {
                str(selector): {address: str(tv) for address, tv in records.items()}
                for selector, records in self._addresses.items()
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, str]]) -> "AddressBook":
        book = cls()
        for selector, records in data.items():
            for address, tv in records.items():
                book.save(int(selector), address, TypeAndVersion.parse(tv))
        return book

    def to_file(self, path: str):
        """Write the book as JSON, replacing the file atomically"""
        tmp_path = f"{path}.tmp"
        with open(tmp_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, sort_keys=True)
        os.replace(tmp_path, path)
        logger.info(f"Address book written to {path}")

    @classmethod
    def from_file(cls, path: str) -> "AddressBook":
        """Load a book from JSON; a missing file yields an empty book"""
        if not os.path.exists(path):
            logger.info(f"No address book at {path}, starting empty")
            return cls()
        with open(path, 'r') as f:
            data = json.load(f)
        book = cls.from_dict(data)
        logger.info(f"Loaded address book from {path} ({len(book.records())} records)")
        return book

    def __len__(self) -> int:
        return len(self.records())

    def __repr__(self) -> str:
        return f"AddressBook({self.to_dict()!r})"
