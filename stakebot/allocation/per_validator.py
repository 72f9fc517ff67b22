"""
Per-Validator Allocation Backend

Each enrolled validator gets up to two allocation records, carved from a
fixed funding source:
- baseline record: baseline_amount, held while the validator is BASELINE or BONUS
- bonus record:    bonus_amount, held while the validator is BONUS

Record addresses are derived deterministically from (authority, vote address,
tier), so a rerun finds the records created by a previous run.
"""

import hashlib
from typing import Dict, FrozenSet, List

from stakebot.allocation.base import AllocationBackend, Operation, OperationKind, Plan
from stakebot.decision.engine import DesiredStakeState, ValidatorStake
from stakebot.ledger.client import LedgerClient
from stakebot.ledger.types import (
    EpochInfo,
    Pubkey,
    StakeRecord,
    StakeRecordState,
    ValidatorAddressPair,
)
from stakebot.utils.logger import get_logger

logger = get_logger(__name__)

BASELINE_SEED = "baseline"
BONUS_SEED = "bonus"


def derive_record_address(authority: str, vote_address: Pubkey, seed: str) -> Pubkey:
    """Deterministic allocation record address for (authority, validator, tier)"""
    digest = hashlib.sha256(
        authority.encode('utf-8') + vote_address.raw + seed.encode('utf-8')
    ).digest()
    return Pubkey(digest)


class PerValidatorAllocation(AllocationBackend):
    """Two fixed stake tiers per validator, funded from one source account"""

    name = "per_validator"

    def __init__(
        self,
        baseline_amount: int,
        bonus_amount: int,
        source_account: str,
        enrolled: FrozenSet[Pubkey]
    ):
        """
        Args:
            baseline_amount: Baseline tier in base units
            bonus_amount: Bonus tier in base units
            source_account: Address that funds new records
            enrolled: Validators participating in the allocation
        """
        super().__init__(enrolled)
        self.baseline_amount = baseline_amount
        self.bonus_amount = bonus_amount
        self.source_account = source_account

        logger.info(
            f"PerValidatorAllocation: {len(self.enrolled)} enrolled, "
            f"baseline={baseline_amount}, bonus={bonus_amount}"
        )

    def _records(self, client: LedgerClient, authority: str) -> Dict[Pubkey, StakeRecord]:
        return {record.address: record for record in client.get_stake_accounts(authority)}

    def init(
        self,
        client: LedgerClient,
        authority: str,
        validators: List[ValidatorAddressPair],
        epoch_info: EpochInfo
    ) -> Plan:
        """Deactivate records delegated to vote accounts that no longer exist"""
        self.remember_validators(validators)
        known_vote_addresses = {pair.vote_address for pair in validators}

        plan: Plan = []
        for record in self._records(client, authority).values():
            if not record.is_delegated or record.vote_address is None:
                continue
            if record.vote_address in known_vote_addresses:
                continue
            plan.append(Operation(
                kind=OperationKind.DEACTIVATE,
                identity=record.vote_address,
                account=record.address,
                vote_address=record.vote_address,
                memo=f"Vote account `{record.vote_address}` no longer exists",
            ))

        logger.info(f"Init plan (epoch {epoch_info.epoch}): {len(plan)} operations")
        return plan

    def _tier_operations(
        self,
        stake: ValidatorStake,
        vote_address: Pubkey,
        address: Pubkey,
        amount: int,
        wanted: bool,
        record
    ) -> Plan:
        identity = stake.identity

        if not wanted:
            if record is not None and record.is_delegated:
                return [Operation(
                    kind=OperationKind.DEACTIVATE,
                    identity=identity,
                    account=address,
                    vote_address=vote_address,
                    memo=stake.memo,
                )]
            return []

        if record is None:
            return [
                Operation(
                    kind=OperationKind.CREATE,
                    identity=identity,
                    account=address,
                    vote_address=vote_address,
                    memo=stake.memo,
                ),
                Operation(
                    kind=OperationKind.FUND,
                    identity=identity,
                    account=address,
                    amount=amount,
                    vote_address=vote_address,
                    funding_source=self.source_account,
                    memo=stake.memo,
                ),
            ]

        if record.state == StakeRecordState.DEACTIVATING:
            # Can only be re-delegated once fully inactive
            logger.debug(f"{address} for {identity} is still deactivating")
            return []

        plan: Plan = []
        if record.state == StakeRecordState.INACTIVE:
            plan.append(Operation(
                kind=OperationKind.ADJUST,
                identity=identity,
                account=address,
                vote_address=vote_address,
                memo=stake.memo,
            ))

        if record.amount < amount:
            plan.append(Operation(
                kind=OperationKind.FUND,
                identity=identity,
                account=address,
                amount=amount - record.amount,
                vote_address=vote_address,
                funding_source=self.source_account,
                memo=stake.memo,
            ))
        return plan

    def apply(
        self,
        client: LedgerClient,
        authority: str,
        desired: List[ValidatorStake]
    ) -> Plan:
        records = self._records(client, authority)

        plan: Plan = []
        for stake in desired:
            vote_address = self.vote_address_for(stake.identity)
            tiers = [
                (BASELINE_SEED, self.baseline_amount, stake.stake_state >= DesiredStakeState.BASELINE),
                (BONUS_SEED, self.bonus_amount, stake.stake_state == DesiredStakeState.BONUS),
            ]
            for seed, amount, wanted in tiers:
                address = derive_record_address(authority, vote_address, seed)
                plan.extend(self._tier_operations(
                    stake, vote_address, address, amount, wanted, records.get(address)
                ))

        logger.info(f"Allocation plan: {len(plan)} operations for {len(desired)} validators")
        return plan
