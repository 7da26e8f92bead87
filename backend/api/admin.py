"""
Admin API endpoints for read moderation.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
import logging

from backend.api.dependencies import get_current_admin, get_tracker, to_http_exception
from backend.api.papers import PaperResponse
from backend.auth.identity import Identity
from backend.errors import ReadTrackerError
from backend.services.read_tracker import ReadTracker

router = APIRouter()
logger = logging.getLogger(__name__)


class AdminRemoveReadRequest(BaseModel):
    """Request to remove any user's read."""
    model_config = ConfigDict(populate_by_name=True)

    paper_id: str = Field(..., alias="paperId")
    read_entry_id: str = Field(..., alias="readEntryId")


@router.delete("/admin/mark-read", response_model=PaperResponse)
async def admin_remove_read(
    request: AdminRemoveReadRequest,
    identity: Identity = Depends(get_current_admin),
    tracker: ReadTracker = Depends(get_tracker),
):
    """
    Remove a read entry regardless of which user recorded it.

    Raises:
        HTTPException: 404 if the paper or read entry doesn't exist.
    """
    try:
        paper = await tracker.admin_remove_read(request.paper_id, request.read_entry_id, identity)
    except ReadTrackerError as e:
        raise to_http_exception(e)

    return PaperResponse(message="Read entry removed successfully by admin", paper=paper)
