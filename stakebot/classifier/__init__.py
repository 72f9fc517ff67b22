"""
CLASSIFIER Module - Block-Production Quality

Single Responsibility: split validators into quality/poor producers for one epoch
"""

from stakebot.classifier.block_producers import (
    BlockProducerClassifier,
    EpochClassification,
    ProducerStats,
)

__all__ = ['BlockProducerClassifier', 'EpochClassification', 'ProducerStats']
