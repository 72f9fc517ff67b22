"""
StakeBot - Validator Stake Allocation Control Loop

Classifies validators by block production, applies risk policies,
and rebalances stake through a pluggable allocation backend.
"""

__version__ = "1.0.0"
