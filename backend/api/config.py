"""
Configuration API endpoints.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
import logging

from backend.api.dependencies import get_current_admin, get_tracker, to_http_exception
from backend.auth.identity import Identity
from backend.config.settings import get_settings
from backend.errors import ReadTrackerError
from backend.models.config import TrackerConfig
from backend.services.read_tracker import ReadTracker

router = APIRouter()
logger = logging.getLogger(__name__)


class ConfigUpdateRequest(BaseModel):
    """Configuration update request."""
    model_config = ConfigDict(populate_by_name=True)

    prevent_duplicate_reads: bool = Field(..., alias="preventDuplicateReads")


class ConfigUpdateResponse(BaseModel):
    """Configuration after an update."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    prevent_duplicate_reads: bool = Field(..., alias="preventDuplicateReads")


@router.get("/admin/config", response_model=TrackerConfig)
async def get_config(
    identity: Identity = Depends(get_current_admin),
    tracker: ReadTracker = Depends(get_tracker),
):
    """
    Get the current tracker configuration.

    Returns:
        Current duplicate-read policy.
    """
    try:
        return await tracker.get_config()
    except ReadTrackerError as e:
        raise to_http_exception(e)


@router.post("/admin/config", response_model=ConfigUpdateResponse)
async def update_config(
    request: ConfigUpdateRequest,
    identity: Identity = Depends(get_current_admin),
    tracker: ReadTracker = Depends(get_tracker),
):
    """
    Update the duplicate-read policy.

    The change applies to the next mark-read call.

    Args:
        request: New flag value.

    Returns:
        Updated configuration.
    """
    try:
        config = await tracker.set_config(request.prevent_duplicate_reads, identity)
    except ReadTrackerError as e:
        raise to_http_exception(e)

    return ConfigUpdateResponse(
        message="Config updated successfully",
        prevent_duplicate_reads=config.prevent_duplicate_reads,
    )


@router.get("/version")
async def get_version():
    """
    Get backend API version.

    Used by the extension to check compatibility.

    Returns:
        API version information.
    """
    settings = get_settings()
    return {
        "api_version": settings.version,
        "service": "Read Tracker API"
    }
