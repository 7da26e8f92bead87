"""
Read tracking service.

Coordinates the paper store, the config store and the duplicate-read policy
behind the operations used by the extension and the admin panel.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from backend.auth.identity import Identity
from backend.db.config_store import ConfigStore
from backend.db.paper_store import PaperStore
from backend.errors import NotFound, Unauthorized, ValidationError
from backend.models.config import TrackerConfig
from backend.models.paper import (
    CandidateRead,
    Paper,
    PaperMetadata,
    ReadEntry,
    SearchCriteria,
    SearchPage,
)
from backend.services.read_policy import ReadDecision, evaluate

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class MarkReadOutcome(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE_REJECTED = "duplicate_rejected"


class MarkReadResult(BaseModel):
    """Result of a mark-read call. ``paper`` is the stored state after the call."""
    outcome: MarkReadOutcome
    paper: Paper
    created: bool = False


class CheckPaperResult(BaseModel):
    """Lookup of a paper from the point of view of the calling identity."""

    model_config = ConfigDict(populate_by_name=True)

    found: bool
    id: Optional[str] = None
    read_status: Optional[Literal["read", "unread"]] = Field(None, alias="readStatus")
    metadata: Optional[PaperMetadata] = None
    reads: Optional[List[ReadEntry]] = None


def _format_validation_error(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}" if location else first["msg"]


def _validate(model: Type[ModelT], data: Union[ModelT, dict, None]) -> ModelT:
    """Coerce raw input into ``model``, raising ValidationError on bad data."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data if data is not None else {})
    except PydanticValidationError as e:
        raise ValidationError(_format_validation_error(e)) from e


def _require_text(value: Optional[str], field: str) -> str:
    # Ids come from outside and are used verbatim.
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value


class ReadTracker:
    """
    Entry point for marking, checking, removing and searching reads.

    Storage calls block, so they run in worker threads; a request waiting
    on the database does not hold up unrelated requests.
    """

    def __init__(self, paper_store: PaperStore, config_store: ConfigStore):
        """
        Initialize read tracker.

        Args:
            paper_store: Storage for papers and reads.
            config_store: Storage for the duplicate-read policy flag.
        """
        self.paper_store = paper_store
        self.config_store = config_store

    async def mark_read(
        self,
        paper_id: str,
        metadata: Union[PaperMetadata, dict],
        candidate: Union[CandidateRead, dict, None],
        identity: Identity,
    ) -> MarkReadResult:
        """
        Record that ``identity`` read a paper.

        Creates the paper with ``metadata`` on its first read; later calls
        keep the original metadata and only append reads.

        Args:
            paper_id: External paper id.
            metadata: Paper metadata (used only if the paper is new).
            candidate: Client-supplied read fields (notes).
            identity: Verified reader.

        Returns:
            MarkReadResult with outcome ACCEPTED or DUPLICATE_REJECTED.

        Raises:
            ValidationError: If the id, metadata or read fields are malformed.
            StorageUnavailable: If the database cannot be reached.
        """
        paper_id = _require_text(paper_id, "id")
        metadata = _validate(PaperMetadata, metadata)
        candidate = _validate(CandidateRead, candidate)

        config = await asyncio.to_thread(self.config_store.get)

        entry = ReadEntry(
            entry_id=uuid.uuid4().hex,
            user=identity.name,
            timestamp=datetime.now(timezone.utc),
            notes=candidate.notes,
        )

        def accept(existing: List[ReadEntry], read: ReadEntry) -> bool:
            return evaluate(existing, read, config) == ReadDecision.ACCEPT

        result = await asyncio.to_thread(
            self.paper_store.upsert_append_read, paper_id, metadata, entry, accept
        )

        if not result.appended:
            logger.info(f"Duplicate read by {identity.name} on paper {paper_id} rejected")
            return MarkReadResult(outcome=MarkReadOutcome.DUPLICATE_REJECTED, paper=result.paper)

        logger.info(f"User {identity.name} marked paper {paper_id} as read")
        return MarkReadResult(
            outcome=MarkReadOutcome.ACCEPTED,
            paper=result.paper,
            created=result.created,
        )

    async def check_paper(self, paper_id: str, include_details: bool, identity: Identity) -> CheckPaperResult:
        """
        Look up a paper and whether the caller has read it.

        Args:
            paper_id: External paper id.
            include_details: Include the full list of reads.
            identity: Verified caller.

        Returns:
            CheckPaperResult; ``found`` is False for unknown papers.
        """
        paper_id = _require_text(paper_id, "id")
        paper = await asyncio.to_thread(self.paper_store.find_by_id, paper_id)
        if paper is None:
            return CheckPaperResult(found=False)

        # ``reads`` is left unset, not None, so it is omitted from responses.
        fields = {
            "found": True,
            "id": paper.id,
            "read_status": "read" if paper.read_by(identity.name) else "unread",
            "metadata": paper.metadata,
        }
        if include_details:
            fields["reads"] = paper.reads
        return CheckPaperResult(**fields)

    async def remove_read(self, paper_id: str, entry_id: str, identity: Identity) -> Paper:
        """
        Remove one of the caller's own reads.

        Raises:
            NotFound: If the paper or entry doesn't exist, or the entry
                belongs to someone else.
        """
        paper_id = _require_text(paper_id, "id")
        entry_id = _require_text(entry_id, "readEntryId")

        paper = await asyncio.to_thread(self.paper_store.remove_read, paper_id, entry_id, identity.name)
        if paper is None:
            raise NotFound("Paper or read entry not found for this user.")

        logger.info(f"User {identity.name} removed read entry {entry_id} from paper {paper_id}")
        return paper

    async def admin_remove_read(self, paper_id: str, entry_id: str, identity: Identity) -> Paper:
        """
        Remove any user's read. Administrators only.

        Raises:
            Unauthorized: If ``identity`` is not an administrator.
            NotFound: If the paper or entry doesn't exist.
        """
        self._require_admin(identity)
        paper_id = _require_text(paper_id, "paperId")
        entry_id = _require_text(entry_id, "readEntryId")

        paper = await asyncio.to_thread(self.paper_store.remove_read, paper_id, entry_id, None)
        if paper is None:
            raise NotFound("Paper or read entry not found.")

        logger.info(f"Admin {identity.name} removed read entry {entry_id} from paper {paper_id}.")
        return paper

    async def search_papers(self, criteria: Union[SearchCriteria, dict, None] = None) -> SearchPage:
        """
        Search papers by keyword, reader and publish year.

        Args:
            criteria: Filters plus page/limit; validated before querying.

        Returns:
            SearchPage with the requested page and the total match count.
        """
        criteria = _validate(SearchCriteria, criteria)
        papers, total_count = await asyncio.to_thread(self.paper_store.search, criteria)
        return SearchPage(
            papers=papers,
            total_count=total_count,
            page=criteria.page,
            limit=criteria.limit,
        )

    async def get_config(self) -> TrackerConfig:
        """Current tracker configuration."""
        return await asyncio.to_thread(self.config_store.get)

    async def set_config(self, prevent_duplicate_reads: bool, identity: Identity) -> TrackerConfig:
        """
        Update the duplicate-read policy. Administrators only.

        Raises:
            Unauthorized: If ``identity`` is not an administrator.
            ValidationError: If the value is not a boolean.
        """
        self._require_admin(identity)
        if not isinstance(prevent_duplicate_reads, bool):
            raise ValidationError("preventDuplicateReads must be a boolean")

        config = await asyncio.to_thread(self.config_store.set, prevent_duplicate_reads)
        logger.info(
            f"Admin {identity.name} updated config: preventDuplicateReads to {prevent_duplicate_reads}"
        )
        return config

    @staticmethod
    def _require_admin(identity: Identity) -> None:
        if not identity.is_admin:
            raise Unauthorized("Administrator access required")
