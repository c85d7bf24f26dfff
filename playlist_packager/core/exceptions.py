"""
Exception classes for playlist-packager.

Each exception carries a human-readable message plus a ``details`` dict that
names the ids, keys or filenames involved, so the CLI and the log file can
report exactly what was affected instead of an opaque failure.

Partial failures (a local delete that succeeded while the remote one did
not, an archive written without its sidecar) are NOT exceptions: they are
returned as result objects with one flag per sub-operation.

Exception Hierarchy:
    PackagerError (base)
        ConfigurationError - store or settings not usable, never retried
        StoreError - object store failures
            NotFoundError - key does not exist
            TransportError - network, timeout or I/O failure, retryable
        IntegrityError - broken playlist/manifest cross-references
        ArchiveError - bytes are not a readable content package
"""

from typing import Optional


class PackagerError(Exception):
    """
    Base exception for all playlist-packager errors.

    Attributes:
        message: Human-readable error description.
        details: Dictionary with additional context (keys, ids, filenames).

    Example:
        try:
            await catalog.refresh()
        except PackagerError as e:
            logger.error(f"Refresh failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context. Common keys:
                     - 'key': object store key involved
                     - 'video_id' / 'playlist_id': affected records
                     - 'original_error': text of a wrapped exception
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigurationError(PackagerError):
    """
    Raised when the object store or settings cannot be used.

    Fails fast: callers must not retry. Typical causes are an unknown
    storage backend or a filesystem backend without a root directory or
    bucket name.

    Example:
        raise ConfigurationError(
            "Storage bucket is not configured",
            details={'missing': ['storage.bucket_name']}
        )
    """
    pass


class StoreError(PackagerError):
    """
    Base class for object store failures.

    Attributes:
        key: Store key involved, when there is one.
    """

    def __init__(self, message: str, key: Optional[str] = None, details: Optional[dict] = None) -> None:
        details = dict(details or {})
        if key is not None:
            details.setdefault('key', key)
        super().__init__(message, details)
        self.key = key


class NotFoundError(StoreError):
    """
    Raised when a key (or a local record such as a video id) does not exist.

    Distinguished from TransportError so that callers can treat "absent" as
    a normal outcome, e.g. a missing sidecar that must be generated.
    """
    pass


class TransportError(StoreError):
    """
    Raised on network, timeout or I/O failures talking to the store.

    Retryable in principle, but only remote deletion is actually retried.
    Raised from a catalog refresh, it means "couldn't reach the store",
    which is different from an empty library.
    """
    pass


class IntegrityError(PackagerError):
    """
    Raised when a package or playlist fails referential integrity checks.

    Attributes:
        errors: List of validation messages.

    Example:
        raise IntegrityError(
            "Package failed validation",
            errors=["Playlist 'set.json' references 'c.mp4' which is missing from the manifest"]
        )
    """

    def __init__(self, message: str, errors: Optional[list] = None, details: Optional[dict] = None) -> None:
        details = dict(details or {})
        self.errors = list(errors or [])
        if self.errors:
            details.setdefault('errors', self.errors)
        super().__init__(message, details)


class ArchiveError(PackagerError):
    """
    Raised when archive bytes cannot be read as a content package.

    Common causes:
        - Not a ZIP file, or a truncated upload
        - Missing ``content/packages/metadata.json``
        - Playlist or manifest files that are not valid JSON
    """
    pass
