"""
POLICY Module - Risk Policy Evaluators

Components:
- CommissionPolicy: commission ceiling
- ReleaseVersionPolicy: software staleness with over-representation guard
- InfrastructureConcentrationPolicy: data center concentration ceiling
"""

from stakebot.policy.base import RiskPolicy, ValidatorObservation, Verdict
from stakebot.policy.commission import CommissionPolicy
from stakebot.policy.release_version import ReleaseVersionPolicy
from stakebot.policy.infrastructure import (
    InfrastructureConcentrationAffects,
    InfrastructureConcentrationPolicy,
)

__all__ = [
    'RiskPolicy',
    'ValidatorObservation',
    'Verdict',
    'CommissionPolicy',
    'ReleaseVersionPolicy',
    'InfrastructureConcentrationAffects',
    'InfrastructureConcentrationPolicy',
]
