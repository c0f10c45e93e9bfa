import asyncio
from typing import Dict, List

import pytest
from eth_abi import decode
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ContractCustomError, ContractLogicError

from chain import NONEXISTENT_TOKEN_SELECTOR
from config import NEXUS_FACTORY_ADDRESS, DeployerConfig
from deployer import SmartAccountDeployer
from transactions import CREATE_ACCOUNT_SELECTOR, CREATE_ACCOUNT_WITH_NAME_SELECTOR, DeploymentRequest

OWNER = "0x1111111111111111111111111111111111111111"
OTHER_OWNER = "0x3333333333333333333333333333333333333333"
BOOTSTRAP_ADDRESS = "0x2222222222222222222222222222222222222222"
SIGNER_ADDRESS = "0x4444444444444444444444444444444444444444"
SERVICE_PRIVATE_KEY = "0x" + "11" * 32
ZERO_SALT = b"\x00" * 32


def counterfactual_address(init_data: bytes, salt: bytes) -> str:
    digest = Web3.keccak(bytes(init_data) + bytes(salt))
    return Web3.to_checksum_address("0x" + bytes(digest[12:]).hex())


class FakeChain:
    """In-memory stand-in for the factory, the SNS registry and the node"""

    def __init__(self):
        self.code: Dict[str, bytes] = {}
        self.balances: Dict[str, int] = {}
        self.receipts: Dict[bytes, Dict] = {}
        self.calls: List = []
        self.failures: Dict[str, BaseException] = {}
        self.base_domain = ".soph.id"
        self.tokens_by_owner: Dict[str, int] = {}
        self.token_names: Dict[int, str] = {}
        self.token_owners: Dict[int, str] = {}
        self.revert_next_transaction = False

    async def call_function(self, address, abi, function_name, *args):
        self.calls.append((address, function_name, args))
        if function_name in self.failures:
            raise self.failures[function_name]
        return getattr(self, f"_{function_name}")(*args)

    def _computeAccountAddress(self, init_data, salt):
        return counterfactual_address(init_data, salt)

    def _baseDomain(self):
        return self.base_domain

    def _tokenOfOwnerByIndex(self, owner, index):
        if owner not in self.tokens_by_owner:
            raise ContractLogicError("execution reverted: ERC721OutOfBoundsIndex", data="0xa57d13dc")
        return self.tokens_by_owner[owner]

    def _nameOf(self, token_id):
        return self.token_names[token_id]

    def _ownerOf(self, token_id):
        if token_id not in self.token_owners:
            data = "0x" + NONEXISTENT_TOKEN_SELECTOR + token_id.to_bytes(32, "big").hex()
            raise ContractCustomError(data, data=data)
        return self.token_owners[token_id]

    async def get_code(self, address):
        self.calls.append((address, "get_code", ()))
        code = self.code.get(address, HexBytes(b""))
        # Yield so concurrent deployments interleave after the check
        await asyncio.sleep(0)
        return code

    async def get_balance(self, address):
        self.calls.append((address, "get_balance", ()))
        return self.balances.get(address, 0)

    async def wait_for_receipt(self, transaction_hash, timeout):
        self.calls.append((transaction_hash, "wait_for_receipt", (timeout,)))
        return self.receipts[bytes(transaction_hash)]

    def mine(self, request: DeploymentRequest, transaction_hash: bytes) -> None:
        data = bytes(request.data)
        if data[:4] == bytes(CREATE_ACCOUNT_SELECTOR):
            init_data, salt = decode(["bytes", "bytes32"], data[4:])
        elif data[:4] == bytes(CREATE_ACCOUNT_WITH_NAME_SELECTOR):
            init_data, salt, _name = decode(["bytes", "bytes32", "string"], data[4:])
        else:
            raise AssertionError(f"unexpected calldata {data[:4].hex()}")

        if self.revert_next_transaction:
            self.revert_next_transaction = False
            self.receipts[bytes(transaction_hash)] = {"status": 0, "blockNumber": 7}
            return

        self.code[counterfactual_address(init_data, salt)] = HexBytes(b"\x60\x80")
        self.receipts[bytes(transaction_hash)] = {"status": 1, "blockNumber": 7}


class FakeSigner:
    address = SIGNER_ADDRESS

    def __init__(self, chain: FakeChain):
        self.chain = chain
        self.sent: List[DeploymentRequest] = []

    async def send_transaction(self, request: DeploymentRequest) -> HexBytes:
        self.sent.append(request)
        transaction_hash = HexBytes(Web3.keccak(bytes(request.data) + len(self.sent).to_bytes(8, "big")))
        self.chain.mine(request, transaction_hash)
        return transaction_hash


@pytest.fixture
def config() -> DeployerConfig:
    return DeployerConfig(
        bootstrap_address=BOOTSTRAP_ADDRESS,
        service_private_key=SERVICE_PRIVATE_KEY,
        factory_address=NEXUS_FACTORY_ADDRESS,
    )


@pytest.fixture
def chain() -> FakeChain:
    fake_chain = FakeChain()
    fake_chain.balances[SIGNER_ADDRESS] = 10**18
    return fake_chain


@pytest.fixture
def signer(chain) -> FakeSigner:
    return FakeSigner(chain)


@pytest.fixture
def deployer(config, chain, signer) -> SmartAccountDeployer:
    return SmartAccountDeployer(config, chain, signer)
