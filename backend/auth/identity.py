"""
Identity verification contract.

The tracker does not authenticate anyone itself; it needs a verified,
opaque identity string for every call. ``StaticTokenVerifier`` maps
pre-shared tokens to identities and is what the API uses by default.
"""

import logging
import secrets
from typing import Dict, Optional, Protocol

from pydantic import BaseModel

from backend.config.settings import Settings


logger = logging.getLogger(__name__)


class Identity(BaseModel):
    """A verified caller."""
    name: str
    is_admin: bool = False


class IdentityVerifier(Protocol):
    """Anything that can turn a credential token into a verified identity."""

    def verify(self, token: str) -> Optional[Identity]:
        ...


class StaticTokenVerifier:
    """
    Verifier backed by fixed token tables.

    User and admin tokens are kept apart: an admin token does not act as a
    user token, nor the other way round.
    """

    def __init__(self, user_tokens: Dict[str, str], admin_tokens: Dict[str, str]):
        """
        Initialize verifier.

        Args:
            user_tokens: Token -> username
            admin_tokens: Token -> admin name
        """
        self._user_tokens = dict(user_tokens)
        self._admin_tokens = dict(admin_tokens)
        if not self._user_tokens and not self._admin_tokens:
            logger.warning("No access tokens configured; every request will be rejected")

    @classmethod
    def from_settings(cls, settings: Settings) -> "StaticTokenVerifier":
        return cls(settings.get_user_tokens(), settings.get_admin_tokens())

    def verify(self, token: str) -> Optional[Identity]:
        """
        Resolve a token to an identity.

        Returns:
            Identity, or None if the token is unknown
        """
        name = self._lookup(self._admin_tokens, token)
        if name is not None:
            return Identity(name=name, is_admin=True)
        name = self._lookup(self._user_tokens, token)
        if name is not None:
            return Identity(name=name)
        return None

    @staticmethod
    def _lookup(table: Dict[str, str], token: str) -> Optional[str]:
        # Compare against every entry so lookup time doesn't depend on the match.
        found = None
        for known, name in table.items():
            if secrets.compare_digest(known.encode("utf-8"), token.encode("utf-8")):
                found = name
        return found
