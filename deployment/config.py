"""
Deployment configuration: the per-request descriptor and the process settings
"""

import os
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

RPC_URL_PREFIX = "RPC_URL_"


class ExecutionMode(str, Enum):
    """How mutating calls take effect"""
    DIRECT = "direct"
    BATCHED = "batched"


@dataclass
class Features:
    """Optional parts of the topology"""
    usdc_chains: List[int] = field(default_factory=list)
    multicall3: bool = False

    def usdc_enabled(self, chain_selector: int) -> bool:
        return chain_selector in self.usdc_chains


@dataclass
class NodeConfig:
    """An off-chain node that joins the DONs on the home chain"""
    p2p_id: str
    signer: str
    encryption_public_key: str
    node_operator_id: int = 1


@dataclass
class DeploymentRequest:
    """
    Declarative description of one deployment run.

    Args:
        chains: Selectors of the chains to deploy and wire
        home_chain: Selector of the chain holding the capabilities registry
        mode: Direct execution or a batched governance proposal
        features: Optional contracts to deploy
        nodes: Nodes forming the DONs
        f: Fault tolerance of every DON
        min_delay: Timelock delay in seconds for batched proposals
        description: Human readable proposal description
    """
    chains: List[int]
    home_chain: int
    mode: ExecutionMode = ExecutionMode.DIRECT
    features: Features = field(default_factory=Features)
    nodes: List[NodeConfig] = field(default_factory=list)
    f: int = 1
    min_delay: int = 0
    description: str = ""

    def __post_init__(self):
        self.chains = [int(selector) for selector in self.chains]
        self.home_chain = int(self.home_chain)
        self.mode = ExecutionMode(self.mode)
        self.validate()

    @property
    def all_chains(self) -> List[int]:
        """Target chains plus the home chain, home first"""
        return [self.home_chain] + [s for s in self.chains if s != self.home_chain]

    def validate(self):
        if not self.chains:
            raise ConfigError("deployment request has no target chains")
        if len(set(self.chains)) != len(self.chains):
            raise ConfigError(f"duplicate chain selectors in request: {self.chains}")
        if self.f < 0:
            raise ConfigError(f"f must not be negative, got {self.f}")
        if self.nodes and len(self.nodes) < 3 * self.f + 1:
            raise ConfigError(f"{len(self.nodes)} nodes cannot tolerate f={self.f}, need {3 * self.f + 1}")
        p2p_ids = [node.p2p_id for node in self.nodes]
        if len(set(p2p_ids)) != len(p2p_ids):
            raise ConfigError("duplicate node p2p ids in request")
        unknown_usdc = set(self.features.usdc_chains) - set(self.all_chains)
        if unknown_usdc:
            raise ConfigError(f"USDC enabled on chains outside the request: {sorted(unknown_usdc)}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentRequest":
        try:
            features = data.get('features', {})
            return cls(
                chains=data['chains'],
                home_chain=data['home_chain'],
                mode=data.get('mode', ExecutionMode.DIRECT.value),
                features=Features(
                    usdc_chains=[int(s) for s in features.get('usdc_chains', [])],
                    multicall3=bool(features.get('multicall3', False)),
                ),
                nodes=[NodeConfig(**node) for node in data.get('nodes', [])],
                f=int(data.get('f', 1)),
                min_delay=int(data.get('min_delay', 0)),
                description=data.get('description', ""),
            )
        except ConfigError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"invalid deployment request: {e}") from e

    @classmethod
    def load(cls, path: str) -> "DeploymentRequest":
        """Read a request from a JSON file"""
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Could not read deployment request from {path}: {e}") from e
        request = cls.from_dict(data)
        logger.info(f"Loaded deployment request for chains {request.chains} "
                    f"(home {request.home_chain}, mode {request.mode.value})")
        return request


@dataclass
class Settings:
    """Process settings read from the environment (and a .env file)"""
    private_key: Optional[str]
    rpc_urls: Dict[int, str]
    artifacts_dir: str = "artifacts/contracts"
    address_book_path: str = "address_book.json"
    request_path: str = "deployment_request.json"
    proposals_dir: str = "proposals"
    confirm_timeout: int = 300
    reconcile_interval_minutes: int = 0
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    notification_email: Optional[str] = None
    slack_webhook: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        rpc_urls = {}
        for key, value in os.environ.items():
            if key.startswith(RPC_URL_PREFIX) and value:
                try:
                    rpc_urls[int(key[len(RPC_URL_PREFIX):])] = value
                except ValueError:
                    logger.warning(f"Ignoring {key}: suffix is not a chain selector")
        try:
            return cls(
                private_key=os.getenv("PRIVATE_KEY"),
                rpc_urls=rpc_urls,
                artifacts_dir=os.getenv("ARTIFACTS_DIR", "artifacts/contracts"),
                address_book_path=os.getenv("ADDRESS_BOOK_PATH", "address_book.json"),
                request_path=os.getenv("DEPLOYMENT_REQUEST_PATH", "deployment_request.json"),
                proposals_dir=os.getenv("PROPOSALS_DIR", "proposals"),
                confirm_timeout=int(os.getenv("CONFIRM_TIMEOUT", "300")),
                reconcile_interval_minutes=int(os.getenv("RECONCILE_INTERVAL_MINUTES", "0")),
                smtp_server=os.getenv("SMTP_SERVER", "smtp.gmail.com"),
                smtp_port=int(os.getenv("SMTP_PORT", "587")),
                smtp_username=os.getenv("SMTP_USERNAME"),
                smtp_password=os.getenv("SMTP_PASSWORD"),
                notification_email=os.getenv("NOTIFICATION_EMAIL"),
                slack_webhook=os.getenv("SLACK_WEBHOOK"),
            )
        except ValueError as e:
            raise ConfigError(f"invalid numeric setting: {e}") from e

    def rpc_url(self, chain_selector: int) -> str:
        url = self.rpc_urls.get(chain_selector)
        if not url:
            raise ConfigError(f"{RPC_URL_PREFIX}{chain_selector} not set")
        return url
