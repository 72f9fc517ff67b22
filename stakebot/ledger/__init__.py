"""
Ledger Module - Remote Ledger Access

Components:
- LedgerClient: JSON-RPC queries and operation submission
- Authority: signing wallet for submitted operations
- types: Pubkey and snapshot value objects
"""

from stakebot.ledger.authority import Authority
from stakebot.ledger.client import LedgerClient
from stakebot.ledger.types import Pubkey, EpochInfo, EpochSchedule, VoteAccountInfo

__all__ = [
    'Authority',
    'LedgerClient',
    'Pubkey',
    'EpochInfo',
    'EpochSchedule',
    'VoteAccountInfo',
]
