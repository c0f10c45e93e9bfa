"""
Nexus account initialization data and counterfactual address prediction
"""

import logging
from dataclasses import dataclass

from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from config import ZERO_ADDRESS, ZERO_HASH
from exceptions import InvalidOwnerAddressError

logger = logging.getLogger(__name__)

BOOTSTRAP_INIT_SIGNATURE = (
    "initNexusWithDefaultValidatorAndOtherModulesNoRegistry("
    "bytes,(address,bytes)[],(address,bytes)[],(address,bytes),(address,bytes)[],(uint256,address,bytes)[])"
)
BOOTSTRAP_INIT_SELECTOR = Web3.keccak(text=BOOTSTRAP_INIT_SIGNATURE)[:4]

COMPUTE_ACCOUNT_ADDRESS_ABI = [{
    "inputs": [{"name": "initData", "type": "bytes"}, {"name": "salt", "type": "bytes32"}],
    "name": "computeAccountAddress",
    "outputs": [{"name": "expectedAddress", "type": "address"}],
    "stateMutability": "view",
    "type": "function"
}]


@dataclass(frozen=True)
class AccountInitialization:
    """Init data and salt shared by address prediction and account creation"""
    init_data: HexBytes
    salt: HexBytes
    predicted_address: str


def normalize_owner(owner: str) -> str:
    """Checksum an owner address, rejecting anything that is not one"""
    if not owner or not Web3.is_address(owner):
        raise InvalidOwnerAddressError(owner)
    return Web3.to_checksum_address(owner)


def encode_salt(account_index: int) -> HexBytes:
    """Left-pad the account index to a 32-byte salt"""
    if account_index < 0:
        raise ValueError(f"Account index must be non-negative, got {account_index}")
    return HexBytes(account_index.to_bytes(32, "big"))


def encode_bootstrap_call(owner: str) -> HexBytes:
    """Bootstrap initializer with the owner as the default validator's only signer.

    No validators, executors, fallbacks or pre-validation hooks are installed
    and the hook slot is left empty.
    """
    owner_bytes = bytes(HexBytes(Web3.to_checksum_address(owner)))
    empty_hook = (ZERO_ADDRESS, ZERO_HASH)

    encoded_params = encode(
        [
            "bytes",
            "(address,bytes)[]",
            "(address,bytes)[]",
            "(address,bytes)",
            "(address,bytes)[]",
            "(uint256,address,bytes)[]",
        ],
        [owner_bytes, [], [], empty_hook, [], []],
    )
    return HexBytes(BOOTSTRAP_INIT_SELECTOR + encoded_params)


def encode_init_data(bootstrap_address: str, bootstrap_call: bytes) -> HexBytes:
    return HexBytes(encode(
        ["address", "bytes"],
        [Web3.to_checksum_address(bootstrap_address), bytes(bootstrap_call)],
    ))


class AddressPredictor:
    """Derives the counterfactual account address through the factory"""

    def __init__(self, chain, factory_address: str, bootstrap_address: str):
        self.chain = chain
        self.factory_address = Web3.to_checksum_address(factory_address)
        self.bootstrap_address = Web3.to_checksum_address(bootstrap_address)

    def build_init_data(self, owner: str) -> HexBytes:
        return encode_init_data(self.bootstrap_address, encode_bootstrap_call(owner))

    async def predict(self, owner: str, salt: bytes) -> AccountInitialization:
        """Compute init data and ask the factory for the resulting address"""
        init_data = self.build_init_data(owner)

        predicted_address = await self.chain.call_function(
            self.factory_address,
            COMPUTE_ACCOUNT_ADDRESS_ABI,
            "computeAccountAddress",
            bytes(init_data),
            bytes(salt),
        )

        logger.info(f"Predicted account for owner {owner}: {predicted_address}")
        return AccountInitialization(
            init_data=init_data,
            salt=HexBytes(salt),
            predicted_address=Web3.to_checksum_address(predicted_address),
        )


async def is_deployed(chain, address: str) -> bool:
    """An account is deployed once any bytecode lives at its address"""
    code = await chain.get_code(address)
    return len(code or b"") > 0
