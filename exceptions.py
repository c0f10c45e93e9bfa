"""
Errors raised by the smart account deployer
"""


class DeployerError(Exception):
    """Base class for errors raised by the deployer itself"""


class InvalidOwnerAddressError(DeployerError, ValueError):
    def __init__(self, owner: str):
        self.owner = owner
        super().__init__(f"Invalid owner address {owner!r}: enter a valid 0x-prefixed address")


class InvalidNameError(DeployerError, ValueError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Invalid Sophon name {name!r}: use 1-28 lowercase letters or digits"
        )


class InsufficientSignerBalanceError(DeployerError):
    """The service signer cannot pay gas; deployment aborted before submission"""

    def __init__(self, signer_address: str, symbol: str = "SOPH"):
        self.signer_address = signer_address
        super().__init__(
            f"Backend signer {signer_address} has no {symbol} for gas; top up the service signer"
        )


class TransactionRevertedError(DeployerError):
    def __init__(self, transaction_hash: str):
        self.transaction_hash = transaction_hash
        super().__init__(f"Deployment transaction {transaction_hash} was mined but reverted")
