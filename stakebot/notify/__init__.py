"""
NOTIFY Module - Operator notifications
"""

from stakebot.notify.notifier import Notifier

__all__ = ['Notifier']
