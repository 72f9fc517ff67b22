"""
Ledger Data Types

Value objects returned by the ledger client. Identities are parsed into
Pubkey at the RPC boundary and compared byte-for-byte afterwards.
"""

import itertools
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import base58

PUBKEY_BYTES = 32
MINIMUM_SLOTS_PER_EPOCH = 32

# Base units per whole stake unit
STAKE_UNIT = 1_000_000_000

# Account data size of one allocation record (rent-exempt reserve is charged on CREATE)
STAKE_RECORD_SIZE = 200

_unique_counter = itertools.count(1)


def to_base_units(amount: float) -> int:
    """Convert a whole-unit amount (as written in config) to base units"""
    return int(round(amount * STAKE_UNIT))


def from_base_units(amount: int) -> float:
    """Convert base units to whole stake units (for display)"""
    return amount / STAKE_UNIT


@dataclass(frozen=True, order=True)
class Pubkey:
    """Opaque 32-byte key. Textual form is base58."""
    raw: bytes

    def __post_init__(self):
        if len(self.raw) != PUBKEY_BYTES:
            raise ValueError(f"Pubkey must be {PUBKEY_BYTES} bytes, got {len(self.raw)}")

    @classmethod
    def from_string(cls, value: str) -> "Pubkey":
        """
        Parse a base58 key

        Raises:
            ValueError: If value is not valid base58 or has the wrong length
        """
        try:
            raw = base58.b58decode(value)
        except ValueError as e:
            raise ValueError(f"Invalid pubkey '{value}': {e}") from e
        return cls(raw)

    @classmethod
    def new_unique(cls) -> "Pubkey":
        """Deterministic, process-unique key (tests and fixtures)"""
        n = next(_unique_counter)
        return cls(n.to_bytes(PUBKEY_BYTES, "big"))

    def __str__(self) -> str:
        return base58.b58encode(self.raw).decode("ascii")

    def __repr__(self) -> str:
        return f"Pubkey({self})"


@dataclass(frozen=True)
class EpochInfo:
    """Current position of the ledger"""
    epoch: int
    slot_index: int
    slots_in_epoch: int
    absolute_slot: int


@dataclass(frozen=True)
class EpochSchedule:
    """
    Epoch layout of the ledger.

    Epochs before first_normal_epoch are warm-up epochs whose length doubles
    from MINIMUM_SLOTS_PER_EPOCH.
    """
    slots_per_epoch: int
    first_normal_epoch: int = 0
    first_normal_slot: int = 0

    def get_slots_in_epoch(self, epoch: int) -> int:
        if epoch < self.first_normal_epoch:
            return MINIMUM_SLOTS_PER_EPOCH * 2 ** epoch
        return self.slots_per_epoch

    def get_first_slot_in_epoch(self, epoch: int) -> int:
        if epoch <= self.first_normal_epoch:
            return (2 ** epoch - 1) * MINIMUM_SLOTS_PER_EPOCH
        return (epoch - self.first_normal_epoch) * self.slots_per_epoch + self.first_normal_slot

    def get_last_slot_in_epoch(self, epoch: int) -> int:
        """Last slot of the epoch (inclusive)"""
        return self.get_first_slot_in_epoch(epoch) + self.get_slots_in_epoch(epoch) - 1


@dataclass(frozen=True)
class VoteAccountInfo:
    """One entry of the vote-account snapshot"""
    identity: Pubkey
    vote_address: Pubkey
    commission: int
    root_slot: int
    last_vote: int
    activated_stake: int = 0
    delinquent: bool = False


@dataclass(frozen=True)
class ClusterNode:
    """Cluster node listing entry (gossip)"""
    identity: Pubkey
    version: Optional[str] = None
    gossip: Optional[str] = None


@dataclass(frozen=True)
class ValidatorAddressPair:
    """Identity and vote address of a validator known to the cluster"""
    identity: Pubkey
    vote_address: Pubkey


class StakeRecordState:
    """Activation states of an allocation record"""
    ACTIVATING = "activating"
    ACTIVE = "active"
    DEACTIVATING = "deactivating"
    INACTIVE = "inactive"

    DELEGATED = (ACTIVATING, ACTIVE)


@dataclass(frozen=True)
class StakeRecord:
    """Allocation record (stake account) held by the authority"""
    address: Pubkey
    vote_address: Optional[Pubkey]
    amount: int
    state: str

    @property
    def is_delegated(self) -> bool:
        return self.state in StakeRecordState.DELEGATED


@dataclass(frozen=True)
class PoolValidatorEntry:
    """Stake a pool holds for one validator"""
    vote_address: Pubkey
    active_amount: int
    transient_amount: int = 0


@dataclass
class PoolState:
    """Snapshot of a shared allocation pool"""
    address: Pubkey
    total_amount: int
    reserve_amount: int
    minimum_record_balance: int
    validators: Dict[Pubkey, PoolValidatorEntry] = field(default_factory=dict)

    def entry_for(self, vote_address: Pubkey) -> Optional[PoolValidatorEntry]:
        return self.validators.get(vote_address)

    @property
    def validator_count(self) -> int:
        return len(self.validators)


LeaderSchedule = Dict[Pubkey, List[int]]
