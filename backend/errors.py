"""
Error types raised by the read tracking core.

Duplicate reads are not errors: they are reported as an outcome of
``ReadTracker.mark_read``.
"""


class ReadTrackerError(Exception):
    """Base class for read tracker failures."""

    status_code = 500


class ValidationError(ReadTrackerError):
    """Input was malformed. Raised before any storage mutation."""

    status_code = 400


class NotFound(ReadTrackerError):
    """Referenced paper or read entry does not exist (for the acting user)."""

    status_code = 404


class Unauthorized(ReadTrackerError):
    """Identity could not be verified or lacks administrator rights."""

    status_code = 401


class StorageUnavailable(ReadTrackerError):
    """Database unreachable or timed out. Safe for the caller to retry."""

    status_code = 503
