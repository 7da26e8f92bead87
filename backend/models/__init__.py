"""Data models for the backend."""

from backend.models.paper import (
    PaperMetadata,
    CandidateRead,
    ReadEntry,
    Paper,
    SearchCriteria,
    SearchPage,
)
from backend.models.config import TrackerConfig

__all__ = [
    "PaperMetadata",
    "CandidateRead",
    "ReadEntry",
    "Paper",
    "SearchCriteria",
    "SearchPage",
    "TrackerConfig",
]
