"""
Database module for StakeBot

Provides:
- SQLAlchemy models for the confirmed-block cache
- Store connection and session management
"""

from .models import Base, ConfirmedBlock
from .connection import CacheDatabase

__all__ = [
    "Base",
    "ConfirmedBlock",
    "CacheDatabase",
]
