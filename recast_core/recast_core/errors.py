"""Error taxonomy shared by the core and the API layer.

Every error raised deliberately by Recast derives from :class:`RecastError`
so that the API exception handlers can map the whole family to opaque
client responses without leaking internal details.
"""

from __future__ import annotations


class RecastError(Exception):
    """Base class for all Recast errors."""


class StorageError(RecastError):
    """The backing store is unreachable or returned a malformed row."""


class SignatureError(RecastError):
    """A billing webhook payload failed signature verification."""


class GenerationError(RecastError):
    """The generative model returned output that could not be parsed."""


class FetchError(RecastError):
    """The subject URL could not be fetched or did not contain text."""


class ValidationError(RecastError):
    """Caller input (typically the subject URL) is malformed."""


class UpgradeRequiredError(RecastError):
    """The identity has exhausted its free quota.

    This is a product signal rather than a failure: callers route it to a
    billing prompt instead of a generic error page.
    """

    def __init__(self, reason: str, remaining_free: int = 0) -> None:
        super().__init__(reason)
        self.reason = reason
        self.remaining_free = remaining_free
