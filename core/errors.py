"""Error taxonomy shared by the store, its repositories and background jobs.

Foreground (request-driven) operations raise these to the caller. Background
work (sweep, migration, archive packaging) catches them per item and logs.
"""

from __future__ import annotations


class PhotoStoreError(Exception):
    """Base class for all photo store failures."""


class NotFound(PhotoStoreError):
    """An album, archive job or image does not exist."""


class AlreadyExists(PhotoStoreError):
    """A resource with the same identity key already exists."""


class AlreadyMember(PhotoStoreError):
    """The path reference is already present in the album."""


class InProgress(PhotoStoreError):
    """The archive job is still packaging; poll again later."""


class CodecError(PhotoStoreError):
    """The image could not be decoded or re-encoded."""


class Unauthenticated(PhotoStoreError):
    """Missing or invalid credentials."""


class TokenExpired(Unauthenticated):
    """Credentials were valid but are past their expiry."""


class InvalidName(PhotoStoreError, ValueError):
    """A principal id, filename or album name is not storage-safe."""


class UnsupportedFormat(PhotoStoreError, ValueError):
    """The uploaded file extension is not an accepted image type."""


class UploadTooLarge(PhotoStoreError):
    """The upload exceeded the configured size limit."""


class EmptySelection(PhotoStoreError, ValueError):
    """A bulk operation was requested with no items."""


class RangeNotSatisfiable(PhotoStoreError):
    """The requested byte range does not fit the artifact."""


class CorruptIndexError(PhotoStoreError):
    """A persisted shard or album file could not be parsed."""
