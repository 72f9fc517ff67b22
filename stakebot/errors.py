"""
Exception hierarchy for StakeBot

Fatal errors (unhealthy endpoint, unreadable cache, insufficient funds,
classification and backend errors) propagate out of the run.
Per-operation submission errors are caught by the submission pipeline
and recorded as that operation's outcome.
"""

from typing import Optional


class StakeBotError(Exception):
    """Base class for all StakeBot errors"""
    pass


class CacheIOError(StakeBotError):
    """Raised when the confirmed-block cache store cannot be opened or written"""
    pass


class RemoteQueryError(StakeBotError):
    """
    Raised when a remote ledger query or submission fails.

    Attributes:
        code: JSON-RPC error code (None for transport errors)
        transient: True if retrying the same request may succeed
    """

    def __init__(self, message: str, code: Optional[int] = None, transient: bool = False):
        super().__init__(message)
        self.code = code
        self.transient = transient


class LedgerUnhealthyError(StakeBotError):
    """Raised when the ledger endpoint reports itself unhealthy"""
    pass


class ClassificationError(StakeBotError):
    """Raised when an accounting period cannot be classified"""
    pass


class PolicyError(StakeBotError):
    """Raised when a risk policy cannot be built from its configuration"""
    pass


class BackendError(StakeBotError):
    """Raised when an allocation backend cannot construct a plan"""
    pass


class InsufficientFundsError(StakeBotError):
    """Raised before submission when a funding account cannot cover the plan"""

    def __init__(self, address: str, balance: int, required: int):
        self.address = address
        self.balance = balance
        self.required = required
        super().__init__(
            f"{address} has insufficient balance: {balance} available, {required} required"
        )


class OperationRejectedError(StakeBotError):
    """Raised when the ledger rejects an operation (terminal, never retried)"""
    pass


class ConfirmationUnknownError(StakeBotError):
    """Raised when a sent operation may still land; resending could apply it twice"""
    pass
