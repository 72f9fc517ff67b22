"""
SUBMISSION Module - Sign, send and confirm allocation plans
"""

from stakebot.submission.pipeline import (
    OperationOutcome,
    OutcomeStatus,
    RetryPolicy,
    SubmissionPipeline,
    SubmissionReport,
)

__all__ = [
    'OperationOutcome',
    'OutcomeStatus',
    'RetryPolicy',
    'SubmissionPipeline',
    'SubmissionReport',
]
