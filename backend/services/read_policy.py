"""
Duplicate-read policy.

Decides whether a new read may be recorded, given the reads a paper already
has and the tracker configuration. Pure functions only; storage applies the
decision inside its write transaction.
"""

from enum import Enum
from typing import Iterable

from backend.models.config import TrackerConfig
from backend.models.paper import ReadEntry


class ReadDecision(str, Enum):
    """Result of evaluating a candidate read."""
    ACCEPT = "accept"
    REJECT_DUPLICATE = "reject_duplicate"


def is_duplicate(existing_reads: Iterable[ReadEntry], user: str, notes: str) -> bool:
    """
    Check whether ``user`` already recorded a read with exactly ``notes``.

    Notes are compared case-sensitively. The same user with different notes
    is not a duplicate.
    """
    return any(read.user == user and read.notes == notes for read in existing_reads)


def evaluate(existing_reads: Iterable[ReadEntry], candidate: ReadEntry, config: TrackerConfig) -> ReadDecision:
    """
    Evaluate a candidate read against the duplicate-read policy.

    Args:
        existing_reads: Reads already stored for the paper
        candidate: Read about to be appended (user already stamped)
        config: Current tracker configuration

    Returns:
        ACCEPT, or REJECT_DUPLICATE when duplicates are prevented and the
        same (user, notes) pair is already present
    """
    if not config.prevent_duplicate_reads:
        return ReadDecision.ACCEPT
    if is_duplicate(existing_reads, candidate.user, candidate.notes):
        return ReadDecision.REJECT_DUPLICATE
    return ReadDecision.ACCEPT
