"""
Main smart account deployment orchestration
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from hexbytes import HexBytes
from web3 import Web3

from account_init import AccountInitialization, AddressPredictor, encode_salt, is_deployed, normalize_owner
from chain import ChainConnector, LocalAccountSigner, TransactionSigner, create_chain_connector
from config import DeployerConfig
from exceptions import InsufficientSignerBalanceError, TransactionRevertedError
from sns import NameResolver, validate_name
from transactions import BuiltDeployment, build_deployment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeploymentResult:
    account_address: str
    already_deployed: bool
    transaction_hash: Optional[str] = None

    def as_dict(self) -> Dict:
        return {
            'account_address': self.account_address,
            'already_deployed': self.already_deployed,
            'transaction_hash': self.transaction_hash,
        }


@dataclass(frozen=True)
class DeploymentPreview:
    account_address: str
    already_deployed: bool
    function_name: str
    to: str
    data: HexBytes
    value: int
    call_args: Tuple
    existing_name: Optional[str] = None

    def as_dict(self) -> Dict:
        return {
            'account_address': self.account_address,
            'already_deployed': self.already_deployed,
            'function_name': self.function_name,
            'to': self.to,
            'data': Web3.to_hex(self.data),
            'value': self.value,
            'call_args': [
                Web3.to_hex(arg) if isinstance(arg, (bytes, bytearray)) else arg
                for arg in self.call_args
            ],
            'existing_name': self.existing_name,
        }


def _normalize_name(name: Optional[str]) -> Optional[str]:
    """Blank names mean no name; anything else must be a valid SNS label"""
    name = (name or "").strip()
    if not name:
        return None
    return validate_name(name)


class SmartAccountDeployer:
    """Deploys Nexus smart accounts through the factory, at most once per owner.

    Idempotency comes from reading the predicted address's bytecode on every
    call; nothing about in-flight deployments is stored. Two concurrent calls
    for the same owner can both see "not deployed" and both submit. The
    second creation then reverts or is redundant, and that race is accepted.
    """

    def __init__(
        self,
        config: DeployerConfig,
        chain: ChainConnector,
        signer: TransactionSigner,
        name_resolver: Optional[NameResolver] = None,
        predictor: Optional[AddressPredictor] = None,
    ):
        self.config = config
        self.chain = chain
        self.signer = signer
        self.name_resolver = name_resolver or NameResolver(chain, config.sns_registry_address)
        self.predictor = predictor or AddressPredictor(
            chain, config.factory_address, config.bootstrap_address
        )
        self.salt = encode_salt(config.account_index)

        logger.info(f"Smart account deployer initialized for factory {config.factory_address}")

    async def preview(self, owner: str, name: Optional[str] = None) -> DeploymentPreview:
        """Build the deployment transaction without sending anything"""
        owner = normalize_owner(owner)
        name = _normalize_name(name)

        initialization, already_deployed = await self._predict_and_check(owner)
        record = await self.name_resolver.resolve_name(initialization.predicted_address)
        built = self._build(initialization, name)

        return DeploymentPreview(
            account_address=initialization.predicted_address,
            already_deployed=already_deployed,
            function_name=built.call.function_name,
            to=built.request.to,
            data=built.request.data,
            value=built.request.value,
            call_args=built.call_args,
            existing_name=record.full_name if record else None,
        )

    async def deploy(self, owner: str, name: Optional[str] = None) -> DeploymentResult:
        """Deploy the owner's account unless it already exists"""
        owner = normalize_owner(owner)
        name = _normalize_name(name)
        logger.info(f"Deploying account for owner {owner}")

        initialization, already_deployed = await self._predict_and_check(owner)
        if already_deployed:
            logger.info(f"Account {initialization.predicted_address} already deployed")
            return DeploymentResult(
                account_address=initialization.predicted_address,
                already_deployed=True,
                transaction_hash=None,
            )

        record = await self.name_resolver.resolve_name(initialization.predicted_address)
        if record:
            logger.info(f"Existing SNS name for predicted account: {record.full_name}")

        built = self._build(initialization, name)
        await self._validate_signer_balance()

        logger.info(f"Sending {built.call.function_name} transaction...")
        transaction_hash = await self.signer.send_transaction(built.request)
        await self._confirm(transaction_hash)

        return DeploymentResult(
            account_address=initialization.predicted_address,
            already_deployed=False,
            transaction_hash=Web3.to_hex(transaction_hash),
        )

    async def is_name_available(self, name: str) -> bool:
        return await self.name_resolver.is_name_available(validate_name(name.strip()))

    async def _predict_and_check(self, owner: str) -> Tuple[AccountInitialization, bool]:
        initialization = await self.predictor.predict(owner, self.salt)
        already_deployed = await is_deployed(self.chain, initialization.predicted_address)
        return initialization, already_deployed

    def _build(self, initialization: AccountInitialization, name: Optional[str]) -> BuiltDeployment:
        return build_deployment(
            self.config.factory_address,
            initialization.init_data,
            initialization.salt,
            name,
        )

    async def _validate_signer_balance(self) -> None:
        """Refuse to submit when the service signer cannot pay for gas"""
        balance_wei = await self.chain.get_balance(self.signer.address)
        balance = Web3.from_wei(balance_wei, 'ether')

        logger.info(f"Service signer {self.signer.address} balance: {balance} {self.config.native_symbol}")

        if balance_wei == 0:
            raise InsufficientSignerBalanceError(self.signer.address, self.config.native_symbol)

    async def _confirm(self, transaction_hash: HexBytes) -> None:
        receipt = await self.chain.wait_for_receipt(transaction_hash, self.config.receipt_timeout)
        if receipt.get('status') == 0:
            raise TransactionRevertedError(Web3.to_hex(transaction_hash))
        logger.info(f"Deployment confirmed in block {receipt.get('blockNumber')}")


def create_smart_account_deployer(config: Optional[DeployerConfig] = None) -> SmartAccountDeployer:
    """Create a deployer wired to the configured Sophon network"""
    config = config or DeployerConfig.from_environment()
    chain = create_chain_connector(config)
    signer = LocalAccountSigner(chain.web3, config.service_private_key, config.chain_id)
    return SmartAccountDeployer(config, chain, signer)
