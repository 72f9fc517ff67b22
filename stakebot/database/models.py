"""
SQLAlchemy Models for StakeBot

Database schema for the confirmed-block cache:
- One row per (cluster, slot), recording whether a block was confirmed
- Rows are only ever inserted, never updated or deleted
"""

from datetime import UTC, datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ConfirmedBlock(Base):
    """
    Confirmation status of one ledger slot

    Slot history is immutable once confirmed, so a cached row stays
    valid forever.
    """
    __tablename__ = "confirmed_blocks"

    cluster = Column(String(64), primary_key=True)
    slot = Column(Integer, primary_key=True, autoincrement=False)
    confirmed = Column(Boolean, nullable=False)

    cached_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        Index('idx_confirmed_blocks_cluster_confirmed', 'cluster', 'confirmed'),
    )

    def __repr__(self):
        return f"<ConfirmedBlock({self.cluster}:{self.slot}, confirmed={self.confirmed})>"
