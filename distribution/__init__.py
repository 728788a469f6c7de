"""
distribution - "First N claims" giveaway rounds.
"""

from distribution.distributor import (
    ClaimRejection,
    ClaimResult,
    DistributionRound,
    Distributor,
    EndReason,
    ROUND_ENDING_KINDS,
    RoundSummary,
)
from distribution.tags import extract_recipient_tag

__all__ = [
    "ClaimRejection",
    "ClaimResult",
    "DistributionRound",
    "Distributor",
    "EndReason",
    "ROUND_ENDING_KINDS",
    "RoundSummary",
    "extract_recipient_tag",
]
