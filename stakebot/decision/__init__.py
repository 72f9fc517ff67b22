"""
DECISION Module - Desired stake state per validator
"""

from stakebot.decision.engine import (
    DecisionEngine,
    DecisionResult,
    DesiredStakeState,
    ValidatorStake,
    build_observations,
    latest_vote_accounts,
)

__all__ = [
    'DecisionEngine',
    'DecisionResult',
    'DesiredStakeState',
    'ValidatorStake',
    'build_observations',
    'latest_vote_accounts',
]
