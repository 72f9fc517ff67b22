"""
Mock Ledger Client for Testing

IMPORTANT: This mock NEVER contacts a real ledger.
Submitted operations are applied to in-memory allocation records and pool
entries, so a second run observes the effects of the first.
"""

import itertools
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Set

from stakebot.errors import LedgerUnhealthyError, RemoteQueryError
from stakebot.ledger.types import (
    ClusterNode,
    EpochInfo,
    EpochSchedule,
    LeaderSchedule,
    PoolState,
    PoolValidatorEntry,
    Pubkey,
    StakeRecord,
    StakeRecordState,
    VoteAccountInfo,
)


def schedule_of(leaders: List[Pubkey], slots_each: int) -> LeaderSchedule:
    """Consecutive slot ranges: leaders[0] gets 0..n-1, leaders[1] n..2n-1, ..."""
    return {
        leader: list(range(i * slots_each, (i + 1) * slots_each))
        for i, leader in enumerate(leaders)
    }


class MockLedgerClient:
    """
    In-memory ledger with the LedgerClient interface

    Attributes:
        get_blocks_calls: (start, end) of every get_blocks call
        sent: Payloads of every accepted send_operation call
        get_blocks_failures: Exceptions raised by the next get_blocks calls, in order
        send_failures: Exceptions raised by the next send_operation calls, in order
        rejected_accounts: Accounts whose operations confirm with an error
        late_signatures: Status polls each signature stays unconfirmed for
        expired_blockhashes: Blockhashes the ledger no longer accepts; operations
            sent with one never land
    """

    def __init__(
        self,
        epoch: int = 2,
        slots_per_epoch: int = 50,
        absolute_slot: Optional[int] = None,
        leader_schedule: Optional[LeaderSchedule] = None,
        confirmed_slots: Iterable[int] = (),
        vote_accounts: Iterable[VoteAccountInfo] = (),
        cluster_nodes: Iterable[ClusterNode] = (),
        balances: Optional[Dict[str, int]] = None,
        first_available_block: int = 0,
        healthy: bool = True
    ):
        self.epoch_schedule = EpochSchedule(slots_per_epoch=slots_per_epoch)
        first_slot = self.epoch_schedule.get_first_slot_in_epoch(epoch)
        if absolute_slot is None:
            absolute_slot = first_slot + slots_per_epoch // 2
        self.epoch_info = EpochInfo(
            epoch=epoch,
            slot_index=absolute_slot - first_slot,
            slots_in_epoch=slots_per_epoch,
            absolute_slot=absolute_slot,
        )
        self.leader_schedule = leader_schedule or {}
        self.confirmed_slots: Set[int] = set(confirmed_slots)
        self.vote_accounts = list(vote_accounts)
        self.cluster_nodes = list(cluster_nodes)
        self.balances = balances if balances is not None else {}
        self.first_available_block = first_available_block
        self.healthy = healthy

        self.stake_records: Dict[Pubkey, StakeRecord] = {}
        self.pool: Optional[PoolState] = None

        self.get_blocks_calls: List[tuple] = []
        self.get_blocks_failures: List[Exception] = []
        self.sent: List[dict] = []
        self.send_failures: List[Exception] = []
        self.rejected_accounts: Set[str] = set()
        self.late_signatures: Dict[str, int] = {}
        self.expired_blockhashes: Set[str] = set()
        self.status_queries = 0

        self._signatures = itertools.count(1)
        self._pending: Dict[str, dict] = {}

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_health(self) -> None:
        if not self.healthy:
            raise LedgerUnhealthyError("RPC endpoint is unhealthy: behind")

    def get_epoch_info(self) -> EpochInfo:
        return self.epoch_info

    def get_epoch_schedule(self) -> EpochSchedule:
        return self.epoch_schedule

    def get_leader_schedule(self, slot: int) -> LeaderSchedule:
        return self.leader_schedule

    def get_first_available_block(self) -> int:
        return self.first_available_block

    def get_blocks(self, start_slot: int, end_slot: int) -> List[int]:
        self.get_blocks_calls.append((start_slot, end_slot))
        if self.get_blocks_failures:
            raise self.get_blocks_failures.pop(0)
        return sorted(s for s in self.confirmed_slots if start_slot <= s < end_slot)

    def get_vote_accounts(self) -> List[VoteAccountInfo]:
        return list(self.vote_accounts)

    def get_cluster_nodes(self) -> List[ClusterNode]:
        return list(self.cluster_nodes)

    def get_balance(self, address: str) -> int:
        return self.balances.get(address, 0)

    def get_minimum_balance_for_rent_exemption(self, data_size: int) -> int:
        return 2_282_880

    def get_stake_accounts(self, authority: str) -> List[StakeRecord]:
        return list(self.stake_records.values())

    def get_stake_pool(self, pool_address: Pubkey) -> PoolState:
        if self.pool is None or self.pool.address != pool_address:
            raise RemoteQueryError(f"getStakePool: {pool_address} not found")
        return self.pool

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def get_latest_blockhash(self) -> str:
        return f"blockhash-{len(self.sent)}"

    def is_blockhash_valid(self, blockhash: str) -> bool:
        return blockhash not in self.expired_blockhashes

    def send_operation(self, payload: dict, signature: str) -> str:
        if self.send_failures:
            raise self.send_failures.pop(0)
        operation_signature = f"sig-{next(self._signatures)}"
        self.sent.append(payload)
        self._pending[operation_signature] = payload
        return operation_signature

    def get_signature_status(self, signature: str) -> Optional[dict]:
        self.status_queries += 1
        payload = self._pending.get(signature)
        if payload is not None and payload['blockhash'] in self.expired_blockhashes:
            return None
        if self.late_signatures.get(signature, 0) > 0:
            self.late_signatures[signature] -= 1
            return None
        payload = self._pending.pop(signature, None)
        if payload is None:
            return {'confirmationStatus': 'finalized', 'err': None}
        if payload['account'] in self.rejected_accounts:
            return {'confirmationStatus': 'processed', 'err': {'InstructionError': [0, 'Custom']}}
        self._apply(payload)
        return {'confirmationStatus': 'finalized', 'err': None}

    def _apply(self, payload: dict) -> None:
        """Apply a confirmed operation to in-memory state"""
        account = Pubkey.from_string(payload['account'])
        vote = Pubkey.from_string(payload['voteAddress']) if payload['voteAddress'] else None
        kind = payload['kind']
        amount = payload['amount']

        if self.pool is not None and account == self.pool.address:
            if kind == 'create':
                self.pool.validators[vote] = PoolValidatorEntry(vote_address=vote, active_amount=0)
            elif kind == 'adjust':
                entry = self.pool.validators[vote]
                self.pool.validators[vote] = replace(entry, active_amount=entry.active_amount + amount)
                if amount > 0:
                    self.pool.reserve_amount -= amount
            return

        record = self.stake_records.get(account)
        if kind == 'create':
            self.stake_records[account] = StakeRecord(account, vote, 0, StakeRecordState.ACTIVE)
        elif kind == 'fund':
            self.stake_records[account] = replace(record, amount=record.amount + amount)
        elif kind == 'adjust':
            self.stake_records[account] = replace(record, state=StakeRecordState.ACTIVE)
        elif kind == 'deactivate':
            self.stake_records[account] = replace(record, state=StakeRecordState.DEACTIVATING)
