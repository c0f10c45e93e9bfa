"""
Configuration for Sophon smart account deployments
"""

import os
import re
from dataclasses import dataclass

# Network constants
SOPHON_TESTNET_CHAIN_ID = 531050204
SOPHON_TESTNET_RPC_URL = "https://zksync-os-testnet-sophon.zksync.dev"
NATIVE_SYMBOL = "SOPH"

# Contract addresses
NEXUS_FACTORY_ADDRESS = "0x84b68EaCE123e6a86dBb6F054af7248B2A0537FC"
SNS_REGISTRY_ADDRESS = "0xB6207614218417c7D7da669313143051AAe6b365"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_HASH = b"\x00" * 32

# Sophon Name Service
DEFAULT_DOMAIN_SUFFIX = "soph.id"
NAME_PATTERN = re.compile(r"^[a-z0-9]{1,28}$")

DEFAULT_RECEIPT_TIMEOUT = 120


def _required_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise ValueError(f"{name} environment variable is required")
    return value


@dataclass
class DeployerConfig:
    """Configuration for Sophon smart account deployments"""

    bootstrap_address: str
    service_private_key: str
    rpc_url: str = SOPHON_TESTNET_RPC_URL
    chain_id: int = SOPHON_TESTNET_CHAIN_ID
    factory_address: str = NEXUS_FACTORY_ADDRESS
    sns_registry_address: str = SNS_REGISTRY_ADDRESS
    account_index: int = 0
    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    native_symbol: str = NATIVE_SYMBOL

    def __post_init__(self):
        if self.account_index < 0:
            raise ValueError(f"Account index must be non-negative, got {self.account_index}")

    def __repr__(self) -> str:
        # Keep the service key out of logs and tracebacks
        return (
            f"DeployerConfig(rpc_url={self.rpc_url!r}, chain_id={self.chain_id}, "
            f"factory_address={self.factory_address!r}, bootstrap_address={self.bootstrap_address!r}, "
            f"sns_registry_address={self.sns_registry_address!r}, account_index={self.account_index})"
        )

    @classmethod
    def from_environment(cls) -> "DeployerConfig":
        """Build configuration from environment variables"""
        return cls(
            bootstrap_address=_required_env("NEXUS_BOOTSTRAP_ADDRESS"),
            service_private_key=_required_env("SERVICE_PRIVATE_KEY"),
            rpc_url=os.environ.get("SOPHON_RPC_URL", SOPHON_TESTNET_RPC_URL),
            chain_id=int(os.environ.get("SOPHON_CHAIN_ID", SOPHON_TESTNET_CHAIN_ID)),
            factory_address=os.environ.get("NEXUS_FACTORY_ADDRESS", NEXUS_FACTORY_ADDRESS),
            sns_registry_address=os.environ.get("SNS_REGISTRY_ADDRESS", SNS_REGISTRY_ADDRESS),
            account_index=int(os.environ.get("ACCOUNT_INDEX", 0)),
            receipt_timeout=float(os.environ.get("RECEIPT_TIMEOUT", DEFAULT_RECEIPT_TIMEOUT)),
        )
