"""
Paper API endpoints used by the browser extension.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
import logging

from backend.api.dependencies import get_current_reader, get_current_user, get_tracker, to_http_exception
from backend.auth.identity import Identity
from backend.config.settings import get_settings
from backend.errors import ReadTrackerError
from backend.models.paper import CandidateRead, Paper, PaperMetadata, SearchPage
from backend.services.read_tracker import CheckPaperResult, MarkReadOutcome, ReadTracker

router = APIRouter()
logger = logging.getLogger(__name__)


class MarkReadRequest(BaseModel):
    """Mark-read request. Any reader name in ``read`` is ignored."""
    id: str
    metadata: PaperMetadata
    read: CandidateRead = Field(default_factory=CandidateRead)


class RemoveReadRequest(BaseModel):
    """Request to remove one of the caller's reads."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    read_entry_id: str = Field(..., alias="readEntryId")


class PaperResponse(BaseModel):
    """Message plus the paper as stored after the change."""
    message: str
    paper: Paper


@router.post("/papers/mark-read", response_model=PaperResponse)
async def mark_read(
    request: MarkReadRequest,
    identity: Identity = Depends(get_current_user),
    tracker: ReadTracker = Depends(get_tracker),
):
    """
    Mark a paper as read by the caller.

    Creates the paper on its first read. Existing papers keep their
    original metadata.

    Raises:
        HTTPException: 409 if the read is a prevented duplicate,
            400 on invalid input, 503 if storage is unavailable.
    """
    try:
        result = await tracker.mark_read(request.id, request.metadata, request.read, identity)
    except ReadTrackerError as e:
        raise to_http_exception(e)

    if result.outcome == MarkReadOutcome.DUPLICATE_REJECTED:
        raise HTTPException(status_code=409, detail="Duplicate read entry prevented.")

    return PaperResponse(message="Paper marked as read successfully", paper=result.paper)


@router.get(
    "/papers/check-paper",
    response_model=CheckPaperResult,
    response_model_exclude_unset=True,
)
async def check_paper(
    id: str = Query(..., description="Paper id"),
    details: bool = Query(False, description="Include all reads"),
    identity: Identity = Depends(get_current_user),
    tracker: ReadTracker = Depends(get_tracker),
):
    """
    Check whether a paper is tracked and whether the caller has read it.

    Returns:
        ``{"found": false}`` for unknown papers, otherwise read status,
        metadata and (with ``details``) the reads.
    """
    try:
        return await tracker.check_paper(id, details, identity)
    except ReadTrackerError as e:
        raise to_http_exception(e)


@router.get("/papers/search-papers", response_model=SearchPage)
async def search_papers(
    keyword: Optional[str] = Query(None),
    user: Optional[str] = Query(None),
    publish_year: Optional[int] = Query(None, alias="publishYear"),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    identity: Identity = Depends(get_current_reader),
    tracker: ReadTracker = Depends(get_tracker),
):
    """
    Search papers by keyword, reader and publish year.

    Returns:
        One page of papers with ``totalCount`` across all pages.
    """
    criteria = {
        "keyword": keyword,
        "user": user,
        "publish_year": publish_year,
        "page": page,
        "limit": limit if limit is not None else get_settings().default_page_limit,
    }
    try:
        return await tracker.search_papers(criteria)
    except ReadTrackerError as e:
        raise to_http_exception(e)


@router.delete("/papers/mark-read", response_model=PaperResponse)
async def remove_read(
    request: RemoveReadRequest,
    identity: Identity = Depends(get_current_user),
    tracker: ReadTracker = Depends(get_tracker),
):
    """
    Remove one of the caller's own reads.

    Raises:
        HTTPException: 404 if no such read exists for this user.
    """
    try:
        paper = await tracker.remove_read(request.id, request.read_entry_id, identity)
    except ReadTrackerError as e:
        raise to_http_exception(e)

    return PaperResponse(message="Read entry removed successfully", paper=paper)
