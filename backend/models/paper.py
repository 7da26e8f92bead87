"""
Data models for papers and the reads recorded against them.
"""

from typing import List, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.config.settings import MAX_PAGE_LIMIT


MIN_PUBLISH_YEAR = 1900


class PaperMetadata(BaseModel):
    """Bibliographic metadata, fixed by the first read of a paper."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., description="Paper title")
    authors: List[str] = Field(..., description="Ordered author names (at least one)")
    abstract: str = Field(..., description="Paper abstract")
    publish_year: Optional[int] = Field(
        None,
        alias="publishYear",
        description="Publication year, 1900 up to the current year"
    )

    @field_validator("title", "abstract")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("authors")
    @classmethod
    def validate_authors(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one author is required")
        if any(not author.strip() for author in v):
            raise ValueError("author names must not be empty")
        return v

    @field_validator("publish_year")
    @classmethod
    def validate_publish_year(cls, v: Optional[int]) -> Optional[int]:
        if v is None:
            return v
        current_year = datetime.now(timezone.utc).year
        if not MIN_PUBLISH_YEAR <= v <= current_year:
            raise ValueError(f"publish year must be between {MIN_PUBLISH_YEAR} and {current_year}")
        return v


class CandidateRead(BaseModel):
    """
    Client-supplied part of a new read.

    The reader is never taken from the client; it is stamped from the
    verified identity when the read is accepted.
    """

    notes: str = Field(default="", description="Optional free-text notes")

    @field_validator("notes", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return "" if v is None else v


class ReadEntry(BaseModel):
    """A single recorded read of a paper."""

    model_config = ConfigDict(populate_by_name=True)

    entry_id: str = Field(..., alias="entryId", description="Identifier used for targeted removal")
    user: str = Field(..., description="Verified identity of the reader")
    timestamp: datetime = Field(..., description="UTC time the read was accepted")
    notes: str = Field(default="", description="Free-text notes")


class Paper(BaseModel):
    """A tracked paper with its reads in arrival order."""

    id: str = Field(..., description="Externally supplied identifier (DOI, URL or content hash)")
    metadata: PaperMetadata
    reads: List[ReadEntry] = Field(default_factory=list)

    def read_by(self, user: str) -> bool:
        """Whether ``user`` has at least one read recorded."""
        return any(read.user == user for read in self.reads)


class SearchCriteria(BaseModel):
    """Filters and page window for paper search. All filters are ANDed."""

    model_config = ConfigDict(populate_by_name=True)

    keyword: Optional[str] = Field(None, description="Substring of title, abstract or any author")
    user: Optional[str] = Field(None, description="Only papers read by this identity")
    publish_year: Optional[int] = Field(None, alias="publishYear")
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=MAX_PAGE_LIMIT)

    @field_validator("keyword", "user", mode="before")
    @classmethod
    def blank_as_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class SearchPage(BaseModel):
    """One page of search results plus the total number of matches."""

    model_config = ConfigDict(populate_by_name=True)

    papers: List[Paper]
    total_count: int = Field(..., alias="totalCount")
    page: int
    limit: int
