"""
Global test fixtures for StakeBot

Provides reusable fixtures for all test modules.
"""

import sys
from pathlib import Path

import pytest
from eth_account import Account

# Add project root and tests/ to path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from stakebot.database import CacheDatabase
from stakebot.ledger.authority import Authority
from stakebot.ledger.types import ClusterNode, Pubkey, VoteAccountInfo


@pytest.fixture
def authority():
    """Throwaway signing authority"""
    return Authority(Account.create().key.hex())


@pytest.fixture
def cache_db():
    """In-memory confirmed-block store"""
    database = CacheDatabase.in_memory()
    yield database
    database.close()


@pytest.fixture
def validators():
    """
    Five validators with vote accounts

    Usage:
        identities, vote_accounts = validators
    """
    identities = [Pubkey.new_unique() for _ in range(5)]
    vote_accounts = [
        VoteAccountInfo(
            identity=identity,
            vote_address=Pubkey.new_unique(),
            commission=5,
            root_slot=110,
            last_vote=111,
        )
        for identity in identities
    ]
    return identities, vote_accounts


@pytest.fixture
def cluster_nodes(validators):
    identities, _ = validators
    return [ClusterNode(identity=identity, version="1.14.17") for identity in identities]


@pytest.fixture
def dry_run_config(tmp_path):
    """Configuration with dry_run=True (SAFE for testing)"""
    return {
        'system': {
            'name': 'stakebot-test',
            'version': '1.0.0-test'
        },
        'cluster': {
            'name': 'unknown',
            'json_rpc_url': 'http://localhost:8899',
            'request_timeout': 5
        },
        'authority': {
            'private_key': ''
        },
        'dry_run': True,  # CRITICAL: No real operations
        'classification': {
            'quality_block_producer_percentage': 10,
            'max_poor_block_producer_percentage': 40,
            'use_cluster_average_skip_rate': False,
            'bad_cluster_average_skip_rate': 50
        },
        'policy': {
            'max_commission': 10,
            'min_release_version': None,
            'max_old_release_version_percentage': 10,
            'max_infrastructure_concentration': 100,
            'infrastructure_concentration_affects': 'warn'
        },
        'delinquency': {
            'grace_slot_distance': 21600,
            'hold_slot_distance': 256
        },
        'cache': {
            'path': str(tmp_path / 'cache')
        },
        'data_center': {
            'file': None,
            'url': None
        },
        'registry': {
            'participants_file': None
        },
        'allocation': {
            'backend': 'per_validator',
            'baseline_stake_amount': 5000,
            'bonus_stake_amount': 50000,
            'per_validator': {
                'source_account': 'source-account',
                'validator_list_file': None
            },
            'pooled': {
                'pool_address': None,
                'validator_list_file': None
            }
        },
        'submission': {
            'max_attempts': 3,
            'initial_backoff_seconds': 0.0,
            'backoff_multiplier': 2.0,
            'max_backoff_seconds': 0.0,
            'confirmation_timeout_seconds': 1.0,
            'landing_timeout_seconds': 1.0,
            'poll_interval_seconds': 0.0,
            'fee_per_operation': 5000,
            'max_workers': 1,
            'transient_errors': ['blockhash not found']
        },
        'notifications': {
            'slack_webhook': None,
            'discord_webhook': None,
            'telegram_bot_token': None,
            'telegram_chat_id': None
        },
        'logging': {
            'file': str(tmp_path / 'stakebot.log'),
            'level': 'INFO'
        }
    }
