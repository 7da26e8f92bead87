"""
Shared FastAPI dependencies: service lookup and caller identity.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException, Request

from backend.auth.identity import Identity, IdentityVerifier
from backend.errors import ReadTrackerError
from backend.services.read_tracker import ReadTracker

logger = logging.getLogger(__name__)


def get_tracker(request: Request) -> ReadTracker:
    """Read tracker created by the application lifespan."""
    return request.app.state.tracker


def get_verifier(request: Request) -> IdentityVerifier:
    """Identity verifier created by the application lifespan."""
    return request.app.state.verifier


def _verify(request: Request, token: Optional[str]) -> Identity:
    if not token:
        raise HTTPException(status_code=401, detail="No token, authorization denied")
    identity = get_verifier(request).verify(token)
    if identity is None:
        raise HTTPException(status_code=401, detail="Token is not valid")
    return identity


def get_current_user(
    request: Request,
    x_auth_token: Optional[str] = Header(None, alias="x-auth-token"),
) -> Identity:
    """Identity for user endpoints. Admin tokens are not accepted here."""
    identity = _verify(request, x_auth_token)
    if identity.is_admin:
        raise HTTPException(status_code=401, detail="Token is not valid")
    return identity


def get_current_reader(
    request: Request,
    x_auth_token: Optional[str] = Header(None, alias="x-auth-token"),
) -> Identity:
    """Identity for read-only endpoints shared by the extension and the admin panel."""
    return _verify(request, x_auth_token)


def get_current_admin(
    request: Request,
    x_auth_token: Optional[str] = Header(None, alias="x-auth-token"),
) -> Identity:
    """Identity for admin endpoints."""
    identity = _verify(request, x_auth_token)
    if not identity.is_admin:
        raise HTTPException(status_code=401, detail="Token is not valid or not an admin token")
    return identity


def to_http_exception(error: ReadTrackerError) -> HTTPException:
    """Map a core error onto its HTTP status."""
    if error.status_code >= 500:
        logger.error(f"Request failed: {error}", exc_info=error)
    return HTTPException(status_code=error.status_code, detail=str(error))
