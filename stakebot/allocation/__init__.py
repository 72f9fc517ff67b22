"""
ALLOCATION Module - Allocation Backends

Components:
- AllocationBackend: interface shared by the backends
- PooledAllocation: one shared pool rebalanced across validators
- PerValidatorAllocation: two fixed tiers per validator
- build_backend: selects the configured backend
"""

from stakebot.allocation.base import AllocationBackend, Operation, OperationKind, Plan
from stakebot.allocation.per_validator import PerValidatorAllocation
from stakebot.allocation.pooled import PooledAllocation
from stakebot.allocation.factory import build_backend

__all__ = [
    'AllocationBackend',
    'Operation',
    'OperationKind',
    'Plan',
    'PerValidatorAllocation',
    'PooledAllocation',
    'build_backend',
]
