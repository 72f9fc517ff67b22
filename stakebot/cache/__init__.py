"""
Cache Module - Confirmed-Block Cache
"""

from stakebot.cache.confirmed_block_cache import ConfirmedBlockCache

__all__ = ['ConfirmedBlockCache']
