"""
Chain handles: one signing, submitting and confirming connection per chain
"""

import os
import json
import logging
from typing import Any, Dict, Optional

from hexbytes import HexBytes
from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

from .address_book import TypeAndVersion
from .contracts import artifact_name
from .errors import ConfigError, ConfirmationFailed, NotFound, SubmissionFailed

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Loads compiled contracts from a Hardhat ``artifacts/contracts`` directory"""

    def __init__(self, artifacts_dir: str):
        self.artifacts_dir = artifacts_dir
        self._cache: Dict[str, Dict[str, Any]] = {}

    def get(self, contract_type: str) -> Dict[str, Any]:
        name = artifact_name(contract_type)
        if name not in self._cache:
            path = os.path.join(self.artifacts_dir, f"{name}.sol", f"{name}.json")
            if not os.path.exists(path):
                raise NotFound(f"artifact for {contract_type} not found at {path}")
            with open(path, 'r') as f:
                data = json.load(f)
            self._cache[name] = {'abi': data['abi'], 'bytecode': data.get('bytecode', '0x')}
        return self._cache[name]

    def abi(self, contract_type: str) -> list:
        return self.get(contract_type)['abi']


class Chain:
    """
    A target environment: a selector, a signing account and a web3 connection.

    Every write goes through ``deploy`` or ``send_transaction`` and must be
    followed by ``confirm``; both raise the engine's own error types so
    callers never see raw web3 exceptions for submission problems.
    """

    def __init__(self, selector: int, w3: Web3, account: Any, artifacts: ArtifactStore,
                 name: Optional[str] = None, confirm_timeout: int = 300):
        self.selector = int(selector)
        self.w3 = w3
        self.account = account
        self.artifacts = artifacts
        self.name = name or str(selector)
        self.confirm_timeout = confirm_timeout

    @classmethod
    def from_rpc(cls, selector: int, rpc_url: str, private_key: str, artifacts: ArtifactStore,
                 **kwargs) -> "Chain":
        """Connect to an RPC endpoint and load the deployer key"""
        w3 = Web3(Web3.HTTPProvider(rpc_url))
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        if not w3.is_connected():
            raise ConfigError(f"Could not connect to RPC URL for chain {selector}: {rpc_url}")
        account = w3.eth.account.from_key(private_key)
        logger.info(f"Connected to chain {selector} at {rpc_url} as {account.address}")
        return cls(selector, w3, account, artifacts, **kwargs)

    @property
    def deployer_address(self) -> str:
        return self.account.address

    def _contract(self, address: str, contract_type: str):
        return self.w3.eth.contract(
            address=self.w3.to_checksum_address(address),
            abi=self.artifacts.abi(contract_type)
        )

    def _transaction_params(self) -> Dict[str, Any]:
        return {
            'from': self.account.address,
            'nonce': self.w3.eth.get_transaction_count(self.account.address, 'pending'),
            'gasPrice': self.w3.eth.gas_price,
            'chainId': self.w3.eth.chain_id,
        }

    def _sign_and_send(self, tx: Dict[str, Any]) -> str:
        signed_tx = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        return Web3.to_hex(tx_hash)

    def deploy(self, type_and_version: TypeAndVersion, *args) -> str:
        """Send a contract creation transaction and return its hash"""
        artifact = self.artifacts.get(type_and_version.type)
        try:
            factory = self.w3.eth.contract(abi=artifact['abi'], bytecode=artifact['bytecode'])
            tx = factory.constructor(*args).build_transaction(self._transaction_params())
            tx_hash = self._sign_and_send(tx)
        except Exception as e:
            logger.error(f"Failed to deploy {type_and_version} on chain {self.selector}: {e}")
            raise SubmissionFailed(self.selector, f"deploy {type_and_version}: {e}") from e
        logger.info(f"Deployment of {type_and_version} sent on chain {self.selector}: {tx_hash}")
        return tx_hash

    def send_transaction(self, to: str, data: bytes, value: int = 0) -> str:
        """Sign and send a call to ``to`` with already-encoded calldata"""
        try:
            tx = self._transaction_params()
            tx.update({
                'to': self.w3.to_checksum_address(to),
                'data': Web3.to_hex(data),
                'value': value,
            })
            tx['gas'] = self.w3.eth.estimate_gas(tx)
            tx_hash = self._sign_and_send(tx)
        except Exception as e:
            logger.error(f"Failed to send transaction to {to} on chain {self.selector}: {e}")
            raise SubmissionFailed(self.selector, f"call to {to}: {e}") from e
        logger.info(f"Transaction sent on chain {self.selector}: {tx_hash}")
        return tx_hash

    def confirm(self, tx_hash: str) -> Dict[str, Any]:
        """Block until the transaction is mined; raise if it reverted"""
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.confirm_timeout)
        except Exception as e:
            raise ConfirmationFailed(self.selector, tx_hash, str(e)) from e
        if receipt['status'] != 1:
            raise ConfirmationFailed(self.selector, tx_hash, "transaction reverted")
        logger.info(f"Transaction {tx_hash} confirmed in block {receipt['blockNumber']} on chain {self.selector}")
        return dict(receipt)

    def call(self, address: str, contract_type: str, method: str, *args) -> Any:
        """Read-only call"""
        contract = self._contract(address, contract_type)
        return getattr(contract.functions, method)(*args).call()

    def encode_call(self, address: str, contract_type: str, method: str, *args) -> bytes:
        """Calldata for ``method(*args)`` on the contract at ``address``"""
        contract = self._contract(address, contract_type)
        return bytes(HexBytes(contract.encode_abi(method, args=list(args))))

    def __repr__(self) -> str:
        return f"Chain({self.name}, selector={self.selector})"


def submit_and_confirm(chain: Chain, to: str, data: bytes, value: int = 0) -> Dict[str, Any]:
    """Send one transaction and wait for its receipt"""
    tx_hash = chain.send_transaction(to, data, value)
    return chain.confirm(tx_hash)


def deploy_contract(chain: Chain, type_and_version: TypeAndVersion, *args) -> str:
    """
    Deploy a contract and wait for it to be mined.

    Returns:
        Address of the new contract
    """
    tx_hash = chain.deploy(type_and_version, *args)
    receipt = chain.confirm(tx_hash)
    address = receipt.get('contractAddress')
    if not address:
        raise ConfirmationFailed(chain.selector, tx_hash, "receipt has no contract address")
    return address
