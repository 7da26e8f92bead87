"""
Data model for the tracker-wide configuration record.
"""

from pydantic import BaseModel, ConfigDict, Field


class TrackerConfig(BaseModel):
    """Admin-controlled settings shared by every request."""

    model_config = ConfigDict(populate_by_name=True)

    prevent_duplicate_reads: bool = Field(
        default=False,
        alias="preventDuplicateReads",
        description="Reject a read when the same user already recorded identical notes"
    )
