"""
Factory call construction for smart account deployments.

The same builder output feeds the preview and the submitted transaction,
so what a caller previews is byte-for-byte what gets sent.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

logger = logging.getLogger(__name__)

CREATE_ACCOUNT_SIGNATURE = "createAccount(bytes,bytes32)"
CREATE_ACCOUNT_WITH_NAME_SIGNATURE = "createAccountWithName(bytes,bytes32,string)"

# Function selectors for the Nexus account factory
CREATE_ACCOUNT_SELECTOR = Web3.keccak(text=CREATE_ACCOUNT_SIGNATURE)[:4]
CREATE_ACCOUNT_WITH_NAME_SELECTOR = Web3.keccak(text=CREATE_ACCOUNT_WITH_NAME_SIGNATURE)[:4]


@dataclass(frozen=True)
class PlainCreate:
    """createAccount(initData, salt)"""

    function_name = "createAccount"
    signature = CREATE_ACCOUNT_SIGNATURE

    def call_args(self, init_data: bytes, salt: bytes) -> Tuple:
        return (init_data, salt)

    def encode(self, init_data: bytes, salt: bytes) -> HexBytes:
        return HexBytes(CREATE_ACCOUNT_SELECTOR + encode(["bytes", "bytes32"], [init_data, salt]))


@dataclass(frozen=True)
class CreateWithName:
    """createAccountWithName(initData, salt, name), registering the SNS name on creation"""

    name: str

    function_name = "createAccountWithName"
    signature = CREATE_ACCOUNT_WITH_NAME_SIGNATURE

    def call_args(self, init_data: bytes, salt: bytes) -> Tuple:
        return (init_data, salt, self.name)

    def encode(self, init_data: bytes, salt: bytes) -> HexBytes:
        return HexBytes(
            CREATE_ACCOUNT_WITH_NAME_SELECTOR
            + encode(["bytes", "bytes32", "string"], [init_data, salt, self.name])
        )


FactoryCall = Union[PlainCreate, CreateWithName]


def factory_call_for(name: Optional[str]) -> FactoryCall:
    """Pick the factory entry point from the caller's input alone"""
    if name:
        return CreateWithName(name=name)
    return PlainCreate()


@dataclass(frozen=True)
class DeploymentRequest:
    """The exact envelope submitted on-chain"""
    to: str
    data: HexBytes
    value: int = 0

    def as_transaction(self) -> Dict:
        return {
            "to": self.to,
            "data": Web3.to_hex(self.data),
            "value": self.value,
        }


@dataclass(frozen=True)
class BuiltDeployment:
    call: FactoryCall
    request: DeploymentRequest
    call_args: Tuple


def build_deployment(
    factory_address: str,
    init_data: bytes,
    salt: bytes,
    name: Optional[str] = None,
) -> BuiltDeployment:
    """Encode the factory call and wrap it in a zero-value request to the factory"""
    call = factory_call_for(name)
    request = DeploymentRequest(
        to=Web3.to_checksum_address(factory_address),
        data=call.encode(init_data, salt),
        value=0,
    )

    logger.info(f"Built {call.function_name} call ({len(request.data)} bytes) for factory {request.to}")
    return BuiltDeployment(call=call, request=request, call_args=call.call_args(init_data, salt))
