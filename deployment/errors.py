"""
Error taxonomy for the deployment engine.

Duplicate capabilities are not an error: the deduplicator filters them out
before anything is submitted.
"""

from typing import Optional


class DeploymentError(Exception):
    """Base class for every error raised by the deployment engine"""


class NotFound(DeploymentError):
    """An expected record is absent"""


class StateInconsistent(DeploymentError):
    """The address book disagrees with what is deployed on chain"""

    def __init__(self, chain_selector: int, address: str, recorded: str, onchain: str):
        self.chain_selector = chain_selector
        self.address = address
        self.recorded = recorded
        self.onchain = onchain
        super().__init__(
            f"address {address} on chain {chain_selector} is recorded as {recorded} "
            f"but reports {onchain}"
        )


class SubmissionFailed(DeploymentError):
    """A transaction could not be built, signed or sent"""

    def __init__(self, chain_selector: int, message: str):
        self.chain_selector = chain_selector
        super().__init__(f"chain {chain_selector}: submission failed: {message}")


class ConfirmationFailed(DeploymentError):
    """A sent transaction reverted or was never mined"""

    def __init__(self, chain_selector: int, tx_hash: Optional[str], message: str):
        self.chain_selector = chain_selector
        self.tx_hash = tx_hash
        super().__init__(f"chain {chain_selector}: confirmation of {tx_hash} failed: {message}")


class MissingDependency(DeploymentError):
    """A contract needed by a later step is not deployed"""

    def __init__(self, record: str, chain_selector: int, hint: str = ""):
        self.record = record
        self.chain_selector = chain_selector
        message = f"{record} not found for chain {chain_selector}"
        if hint:
            message = f"{message}, {hint}"
        super().__init__(message)


class ConfigError(DeploymentError, ValueError):
    """The deployment request or the environment settings are invalid"""
