"""
Ledger Client - JSON-RPC Integration

Read-only queries against the ledger service plus the operation submission
endpoint used by the submission pipeline.

Every identity in a response is parsed into Pubkey here; nothing past this
module handles identities as strings.
"""

import itertools
from typing import Any, Dict, List, Optional

import requests

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
    VoteAccountInfo,
)
from stakebot.utils.logger import get_logger

logger = get_logger(__name__)

# getBlocks refuses ranges wider than this
MAX_GET_BLOCKS_RANGE = 500_000

# JSON-RPC error codes that indicate a temporary server-side condition.
# -32002 (simulation failed) is left out: most simulation failures are
# permanent, and the retryable ones are matched by submission.transient_errors
TRANSIENT_RPC_CODES = {
    -32004,  # block not available for slot
    -32005,  # node is unhealthy / behind
    -32014,  # block status not yet available
}

TRANSIENT_HTTP_STATUS = {429, 500, 502, 503, 504}


class LedgerClient:
    """
    JSON-RPC client for the ledger service

    Features:
    - Epoch, schedule and block queries for classification
    - Vote-account and cluster-node snapshots
    - Balance and rent lookups for precondition checks
    - Allocation record and pool state queries for backends
    - Operation submission and signature status polling
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize ledger client

        Args:
            url: JSON-RPC endpoint URL
            timeout: Per-request timeout in seconds
            session: Optional requests.Session (for dependency injection)
        """
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self._ids = itertools.count(1)

        logger.info(f"LedgerClient initialized: {url}")

    def _request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Perform one JSON-RPC call

        Raises:
            RemoteQueryError: On transport, HTTP or JSON-RPC error
        """
        body = {
            'jsonrpc': '2.0',
            'id': next(self._ids),
            'method': method,
            'params': params or [],
        }

        try:
            response = self.session.post(self.url, json=body, timeout=self.timeout)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise RemoteQueryError(f"{method}: {e}", transient=True) from e
        except requests.exceptions.RequestException as e:
            raise RemoteQueryError(f"{method}: {e}") from e

        if response.status_code != 200:
            raise RemoteQueryError(
                f"{method}: HTTP {response.status_code} {response.text[:200]}",
                code=response.status_code,
                transient=response.status_code in TRANSIENT_HTTP_STATUS,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteQueryError(f"{method}: invalid JSON response: {e}") from e

        error = data.get('error')
        if error:
            code = error.get('code')
            message = error.get('message', 'Unknown error')
            raise RemoteQueryError(
                f"{method}: {message}",
                code=code,
                transient=code in TRANSIENT_RPC_CODES,
            )

        return data.get('result')

    # =========================================================================
    # HEALTH / EPOCH
    # =========================================================================

    def get_health(self) -> None:
        """
        Check endpoint health

        Raises:
            LedgerUnhealthyError: If the endpoint is unreachable or not 'ok'
        """
        try:
            result = self._request('getHealth')
        except RemoteQueryError as e:
            raise LedgerUnhealthyError(f"RPC endpoint is unhealthy: {e}") from e

        if result != 'ok':
            raise LedgerUnhealthyError(f"RPC endpoint is unhealthy: {result}")

    def get_epoch_info(self) -> EpochInfo:
        result = self._request('getEpochInfo')
        return EpochInfo(
            epoch=result['epoch'],
            slot_index=result['slotIndex'],
            slots_in_epoch=result['slotsInEpoch'],
            absolute_slot=result['absoluteSlot'],
        )

    def get_epoch_schedule(self) -> EpochSchedule:
        result = self._request('getEpochSchedule')
        return EpochSchedule(
            slots_per_epoch=result['slotsPerEpoch'],
            first_normal_epoch=result.get('firstNormalEpoch', 0),
            first_normal_slot=result.get('firstNormalSlot', 0),
        )

    def get_leader_schedule(self, slot: int) -> LeaderSchedule:
        """
        Get the leader schedule of the epoch containing slot

        Returns:
            Dict mapping identity to slot offsets relative to the epoch start

        Raises:
            RemoteQueryError: If the ledger has no schedule for that epoch
        """
        result = self._request('getLeaderSchedule', [slot])
        if result is None:
            raise RemoteQueryError(f"getLeaderSchedule: no schedule for slot {slot}")

        return {
            Pubkey.from_string(identity): list(offsets)
            for identity, offsets in result.items()
        }

    def get_first_available_block(self) -> int:
        return self._request('getFirstAvailableBlock')

    def get_blocks(self, start_slot: int, end_slot: int) -> List[int]:
        """
        Get confirmed slots in the half-open range [start_slot, end_slot)

        Wide ranges are split into several requests.
        """
        confirmed: List[int] = []
        chunk_start = start_slot
        while chunk_start < end_slot:
            chunk_end = min(chunk_start + MAX_GET_BLOCKS_RANGE, end_slot)
            # getBlocks takes an inclusive end slot
            confirmed.extend(self._request('getBlocks', [chunk_start, chunk_end - 1]))
            chunk_start = chunk_end
        return confirmed

    # =========================================================================
    # CLUSTER SNAPSHOTS
    # =========================================================================

    def get_vote_accounts(self) -> List[VoteAccountInfo]:
        """Get current and delinquent vote accounts"""
        result = self._request('getVoteAccounts')
        accounts = []
        for bucket, delinquent in (('current', False), ('delinquent', True)):
            for item in result.get(bucket, []):
                accounts.append(VoteAccountInfo(
                    identity=Pubkey.from_string(item['nodePubkey']),
                    vote_address=Pubkey.from_string(item['votePubkey']),
                    commission=int(item['commission']),
                    root_slot=int(item.get('rootSlot') or 0),
                    last_vote=int(item.get('lastVote') or 0),
                    activated_stake=int(item.get('activatedStake') or 0),
                    delinquent=delinquent,
                ))
        return accounts

    def get_cluster_nodes(self) -> List[ClusterNode]:
        """Get cluster nodes; entries with unparseable identities are skipped"""
        nodes = []
        for item in self._request('getClusterNodes'):
            try:
                identity = Pubkey.from_string(item['pubkey'])
            except ValueError:
                logger.debug(f"Skipping cluster node with invalid pubkey: {item.get('pubkey')}")
                continue
            nodes.append(ClusterNode(
                identity=identity,
                version=item.get('version'),
                gossip=item.get('gossip'),
            ))
        return nodes

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def get_balance(self, address: str) -> int:
        result = self._request('getBalance', [address])
        return int(result['value'])

    def get_minimum_balance_for_rent_exemption(self, data_size: int) -> int:
        return int(self._request('getMinimumBalanceForRentExemption', [data_size]))

    def get_stake_accounts(self, authority: str) -> List[StakeRecord]:
        """Get all allocation records whose staking authority is authority"""
        records = []
        for item in self._request('getStakeAccounts', [authority]):
            voter = item.get('voter')
            records.append(StakeRecord(
                address=Pubkey.from_string(item['address']),
                vote_address=Pubkey.from_string(voter) if voter else None,
                amount=int(item['amount']),
                state=item['state'],
            ))
        return records

    def get_stake_pool(self, pool_address: Pubkey) -> PoolState:
        result = self._request('getStakePool', [str(pool_address)])
        validators = {}
        for item in result.get('validators', []):
            vote_address = Pubkey.from_string(item['voteAddress'])
            validators[vote_address] = PoolValidatorEntry(
                vote_address=vote_address,
                active_amount=int(item['activeAmount']),
                transient_amount=int(item.get('transientAmount', 0)),
            )
        return PoolState(
            address=pool_address,
            total_amount=int(result['totalAmount']),
            reserve_amount=int(result['reserveAmount']),
            minimum_record_balance=int(result['minimumRecordBalance']),
            validators=validators,
        )

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def get_latest_blockhash(self) -> str:
        result = self._request('getLatestBlockhash')
        return result['value']['blockhash']

    def send_operation(self, payload: Dict[str, Any], signature: str) -> str:
        """
        Submit a signed operation

        Returns:
            Operation signature used for status polling
        """
        return self._request('sendOperation', [payload, signature])

    def is_blockhash_valid(self, blockhash: str) -> bool:
        """True while an operation signed with blockhash can still be accepted"""
        result = self._request('isBlockhashValid', [blockhash])
        return bool(result['value'])

    def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        """
        Get status of a submitted operation

        Returns:
            Status dict with 'confirmationStatus' and 'err', or None if unknown
        """
        result = self._request('getSignatureStatuses', [[signature]])
        statuses = result.get('value') or [None]
        return statuses[0]
