"""
Sophon chain access: contract reads, code and balance lookups, receipts,
the service signer and the revert classifier used by name lookups
"""

import asyncio
import enum
import logging
from typing import Any, Dict, List, Optional, Protocol

from eth_account import Account
from hexbytes import HexBytes
from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TransactionNotFound

from config import DeployerConfig
from transactions import DeploymentRequest

logger = logging.getLogger(__name__)

# ERC721NonexistentToken(uint256), raised by OpenZeppelin 5.x ownerOf
NONEXISTENT_TOKEN_SELECTOR = bytes(Web3.keccak(text="ERC721NonexistentToken(uint256)")[:4]).hex()

# Revert reasons from older OpenZeppelin releases
NONEXISTENT_TOKEN_REASONS = (
    "erc721nonexistenttoken",
    "nonexistent token",
    "invalid token id",
)


class ContractErrorKind(enum.Enum):
    ENTITY_NOT_FOUND = "entity_not_found"
    OTHER = "other"


def classify_contract_error(error: BaseException) -> ContractErrorKind:
    """Tell a "token does not exist" revert apart from every other failure"""
    if not isinstance(error, ContractLogicError):
        return ContractErrorKind.OTHER

    data = error.data.lower() if isinstance(error.data, str) else ""
    message = str(error).lower()

    if data.startswith("0x" + NONEXISTENT_TOKEN_SELECTOR) or ("0x" + NONEXISTENT_TOKEN_SELECTOR) in message:
        return ContractErrorKind.ENTITY_NOT_FOUND
    if any(reason in message for reason in NONEXISTENT_TOKEN_REASONS):
        return ContractErrorKind.ENTITY_NOT_FOUND
    return ContractErrorKind.OTHER


class ChainConnector:
    """Read access to the Sophon network"""

    def __init__(self, web3: AsyncWeb3):
        self.web3 = web3

    async def call_function(self, address: str, abi: List[Dict], function_name: str, *args) -> Any:
        """Run a read-only contract call"""
        contract = self.web3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        contract_function = getattr(contract.functions, function_name)
        return await contract_function(*args).call()

    async def get_code(self, address: str) -> bytes:
        return await self.web3.eth.get_code(Web3.to_checksum_address(address))

    async def get_balance(self, address: str) -> int:
        return await self.web3.eth.get_balance(Web3.to_checksum_address(address))

    async def wait_for_receipt(self, transaction_hash: HexBytes, timeout: float) -> Dict:
        return await self.web3.eth.wait_for_transaction_receipt(transaction_hash, timeout=timeout)


class TransactionSigner(Protocol):
    """Capability to sign and submit a transaction on behalf of the service"""

    @property
    def address(self) -> str:
        ...

    async def send_transaction(self, request: DeploymentRequest) -> HexBytes:
        ...


class LocalAccountSigner:
    """Signs with a locally held key and submits raw transactions.

    Nonce allocation is serialized per signer: the lock is held from nonce
    lookup until the node has accepted the transaction. Nonces handed out
    ahead of the node's pending count are trusted only while the node still
    knows the transaction sitting at that pending count; once it has been
    dropped from the pool the signer falls back to the node's count and
    refills the gap.
    """

    def __init__(self, web3: AsyncWeb3, private_key: str, chain_id: int):
        self.web3 = web3
        self.chain_id = chain_id
        self._account = Account.from_key(private_key)
        self._nonce_lock = asyncio.Lock()
        self._next_nonce: Optional[int] = None
        self._in_flight: Dict[int, HexBytes] = {}

    @property
    def address(self) -> str:
        return self._account.address

    async def send_transaction(self, request: DeploymentRequest) -> HexBytes:
        async with self._nonce_lock:
            nonce = await self._allocate_nonce()
            transaction = {
                **request.as_transaction(),
                "from": self.address,
                "nonce": nonce,
                "chainId": self.chain_id,
            }
            transaction["gas"] = await self.web3.eth.estimate_gas(transaction)
            transaction.update(await self._fee_fields())

            signed = self._account.sign_transaction(transaction)
            transaction_hash = HexBytes(await self.web3.eth.send_raw_transaction(signed.raw_transaction))
            self._next_nonce = nonce + 1
            self._in_flight[nonce] = transaction_hash

        logger.info(f"Submitted transaction {Web3.to_hex(transaction_hash)} with nonce {nonce}")
        return transaction_hash

    async def _allocate_nonce(self) -> int:
        pending_nonce = await self.web3.eth.get_transaction_count(self.address, "pending")

        # The node already accounts for everything below its pending count
        for nonce in [n for n in self._in_flight if n < pending_nonce]:
            del self._in_flight[nonce]

        if self._next_nonce is None or pending_nonce >= self._next_nonce:
            return pending_nonce
        if await self._is_known(self._in_flight.get(pending_nonce)):
            return self._next_nonce

        logger.warning(
            f"Transaction with nonce {pending_nonce} is no longer known to the node, "
            f"reusing nonces from {pending_nonce} instead of {self._next_nonce}"
        )
        self._in_flight.clear()
        self._next_nonce = None
        return pending_nonce

    async def _is_known(self, transaction_hash: Optional[HexBytes]) -> bool:
        if transaction_hash is None:
            return False
        try:
            await self.web3.eth.get_transaction(transaction_hash)
        except TransactionNotFound:
            return False
        return True

    async def _fee_fields(self) -> Dict[str, int]:
        latest_block = await self.web3.eth.get_block("latest")
        base_fee = latest_block.get("baseFeePerGas")
        if base_fee is None:
            return {"gasPrice": await self.web3.eth.gas_price}

        priority_fee = await self.web3.eth.max_priority_fee
        return {
            "maxPriorityFeePerGas": priority_fee,
            "maxFeePerGas": 2 * base_fee + priority_fee,
        }


def create_async_web3(config: DeployerConfig) -> AsyncWeb3:
    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.rpc_url))


def create_chain_connector(config: DeployerConfig, web3: Optional[AsyncWeb3] = None) -> ChainConnector:
    """Create a chain connector for the configured RPC endpoint"""
    return ChainConnector(web3 or create_async_web3(config))
