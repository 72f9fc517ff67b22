"""
Allocation Backend Interface

A backend translates desired stake states into an ordered plan of ledger
operations. The decision engine, runner and submission pipeline only see
AllocationBackend; concrete variants are chosen by build_backend().
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from stakebot.decision.engine import ValidatorStake
from stakebot.errors import BackendError
from stakebot.ledger.client import LedgerClient
from stakebot.ledger.types import EpochInfo, Pubkey, ValidatorAddressPair, from_base_units


class OperationKind(str, Enum):
    """Kinds of allocation operations"""
    CREATE = "create"           # create an allocation record / pool entry
    FUND = "fund"               # move stake from a funding source into a record
    ADJUST = "adjust"           # re-delegate a record or change a pool entry
    DEACTIVATE = "deactivate"   # withdraw stake from a validator


@dataclass(frozen=True)
class Operation:
    """
    One ledger operation

    Operations of the same identity keep their plan order during submission
    (create must precede fund).
    """
    kind: OperationKind
    identity: Pubkey
    account: Pubkey
    amount: int = 0
    memo: str = ""
    vote_address: Optional[Pubkey] = None
    funding_source: Optional[str] = None

    def to_payload(self, blockhash: str, authority: str) -> Dict[str, Any]:
        """Build the payload signed by the authority for one submission attempt"""
        return {
            'kind': self.kind.value,
            'identity': str(self.identity),
            'account': str(self.account),
            'voteAddress': str(self.vote_address) if self.vote_address else None,
            'amount': self.amount,
            'fundingSource': self.funding_source,
            'authority': authority,
            'blockhash': blockhash,
            'memo': self.memo,
        }

    def describe(self) -> str:
        text = f"{self.kind.value} {self.account} for {self.identity}"
        if self.amount:
            text += f" amount={from_base_units(self.amount):.4f}"
        if self.funding_source:
            text += f" from {self.funding_source}"
        return text


Plan = List[Operation]


class AllocationBackend(ABC):
    """
    Capability interface shared by all allocation strategies

    Both init() and apply() must be idempotent: re-running them against a
    ledger that already reflects a previous plan yields an empty plan.
    """

    name: str = "backend"

    def __init__(self, enrolled: FrozenSet[Pubkey]):
        self.enrolled = frozenset(enrolled)
        self._vote_addresses: Dict[Pubkey, Pubkey] = {}

    def is_enrolled(self, identity: Pubkey) -> bool:
        """Whether the validator participates in this backend's allocation"""
        return identity in self.enrolled

    def remember_validators(self, validators: List[ValidatorAddressPair]) -> None:
        """Record identity -> vote address for enrolled validators"""
        for pair in validators:
            if self.is_enrolled(pair.identity):
                self._vote_addresses[pair.identity] = pair.vote_address

    def vote_address_for(self, identity: Pubkey) -> Pubkey:
        """
        Raises:
            BackendError: If the validator was not seen by init()
        """
        vote_address = self._vote_addresses.get(identity)
        if vote_address is None:
            raise BackendError(f"No vote address known for {identity}; was init() run?")
        return vote_address

    @abstractmethod
    def init(
        self,
        client: LedgerClient,
        authority: str,
        validators: List[ValidatorAddressPair],
        epoch_info: EpochInfo
    ) -> Plan:
        """
        One-time setup required before allocation can proceed

        Args:
            client: Ledger client
            authority: Staking authority address
            validators: Every validator currently known to the cluster
            epoch_info: Current epoch

        Returns:
            Plan of setup operations (empty if already initialized)
        """
        raise NotImplementedError

    @abstractmethod
    def apply(
        self,
        client: LedgerClient,
        authority: str,
        desired: List[ValidatorStake]
    ) -> Plan:
        """
        Compute the operations moving current allocation to the desired states

        Validators without a decision this run are absent from desired and
        are left untouched.
        """
        raise NotImplementedError
