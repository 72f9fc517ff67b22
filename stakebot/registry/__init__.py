"""
REGISTRY Module - Participant registrations and validator lists
"""

from stakebot.registry.participants import (
    Participant,
    ParticipantRegistry,
    ParticipantState,
    load_validator_list,
)

__all__ = ['Participant', 'ParticipantRegistry', 'ParticipantState', 'load_validator_list']
