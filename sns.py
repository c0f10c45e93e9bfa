"""
Sophon Name Service lookups: reverse resolution of an account's name and
availability checks for candidate names
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ens import ENS

from chain import ContractErrorKind, classify_contract_error
from config import DEFAULT_DOMAIN_SUFFIX, NAME_PATTERN
from exceptions import InvalidNameError

logger = logging.getLogger(__name__)

SNS_REGISTRY_ABI = [
    {
        "inputs": [],
        "name": "baseDomain",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"name": "owner", "type": "address"}, {"name": "index", "type": "uint256"}],
        "name": "tokenOfOwnerByIndex",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "nameOf",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "ownerOf",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    },
]

SEPARATOR = "."


@dataclass(frozen=True)
class NameRecord:
    label: str
    suffix: str

    @property
    def full_name(self) -> str:
        return f"{self.label}{SEPARATOR}{self.suffix}"


@dataclass
class SuffixCache:
    """Cached registry base domain; ttl of None keeps it until reset"""
    value: Optional[str] = None
    fetched_at: Optional[float] = None
    ttl: Optional[float] = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def get(self) -> Optional[str]:
        if self.value is None:
            return None
        if self.ttl is not None and self.clock() - self.fetched_at > self.ttl:
            return None
        return self.value

    def set(self, value: str) -> None:
        self.value = value
        self.fetched_at = self.clock()

    def reset(self) -> None:
        self.value = None
        self.fetched_at = None


def validate_name(name: str) -> str:
    """Reject names the registry would never mint"""
    if not NAME_PATTERN.match(name):
        raise InvalidNameError(name)
    return name


def name_to_token_id(full_name: str) -> int:
    return int.from_bytes(ENS.namehash(full_name), "big")


class NameResolver:
    """Best-effort lookups against the SNS registry"""

    def __init__(
        self,
        chain,
        registry_address: str,
        classify_error: Callable[[BaseException], ContractErrorKind] = classify_contract_error,
        suffix_cache: Optional[SuffixCache] = None,
        default_suffix: str = DEFAULT_DOMAIN_SUFFIX,
    ):
        self.chain = chain
        self.registry_address = registry_address
        self.classify_error = classify_error
        self.suffix_cache = suffix_cache if suffix_cache is not None else SuffixCache()
        self.default_suffix = default_suffix

    async def get_domain_suffix(self) -> str:
        """Registry base domain without its leading dot, or the default on failure"""
        cached = self.suffix_cache.get()
        if cached:
            return cached

        try:
            base_domain = await self._call("baseDomain")
            suffix = (base_domain or "").lstrip(SEPARATOR) or self.default_suffix
        except Exception as e:
            logger.warning(f"Could not read SNS base domain, using {self.default_suffix}: {e}")
            suffix = self.default_suffix

        self.suffix_cache.set(suffix)
        return suffix

    async def resolve_name(self, address: str) -> Optional[NameRecord]:
        """Existing SNS name owned by an address; None when absent or unreadable"""
        try:
            token_id = await self._call("tokenOfOwnerByIndex", address, 0)
            label = await self._call("nameOf", token_id)
        except Exception as e:
            logger.info(f"No SNS name for {address}: {e}")
            return None

        if not isinstance(label, str):
            logger.warning(f"Ignoring malformed SNS label for {address}: {label!r}")
            return None
        if label.endswith(SEPARATOR):
            label = label[:-1]
        if not label:
            return None

        record = NameRecord(label=label, suffix=await self.get_domain_suffix())
        logger.info(f"Resolved SNS name for {address}: {record.full_name}")
        return record

    async def is_name_available(self, candidate: str) -> bool:
        """True when the candidate's registry token has not been minted.

        Only a "token does not exist" revert means available; every other
        error is re-raised since it may be an outage rather than an answer.
        """
        if not candidate:
            return True

        suffix = await self.get_domain_suffix()
        token_id = name_to_token_id(f"{candidate}{SEPARATOR}{suffix}")

        try:
            owner = await self._call("ownerOf", token_id)
        except Exception as e:
            if self.classify_error(e) is ContractErrorKind.ENTITY_NOT_FOUND:
                logger.info(f"SNS name {candidate}.{suffix} is available")
                return True
            raise

        logger.info(f"SNS name {candidate}.{suffix} is owned by {owner}")
        return False

    async def _call(self, function_name: str, *args):
        return await self.chain.call_function(self.registry_address, SNS_REGISTRY_ABI, function_name, *args)
