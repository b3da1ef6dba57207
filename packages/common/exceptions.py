"""Custom exception hierarchy for the apkg codec.

This module defines application-specific exceptions that provide:
- One error kind per failure class (missing input, bad archive, bad document,
  storage failure, filesystem failure)
- Structured logging context naming the offending structure and field
"""

from __future__ import annotations


class ApkgError(Exception):
    """Base exception for all codec errors.

    All custom exceptions inherit from this so a caller (the CLI) can
    report any codec failure with a single ``except`` clause.
    """

    def __init__(self, message: str, *, context: dict[str, object] | None = None) -> None:
        """Initialize error with message and optional context.

        Args:
            message: Human-readable error description.
            context: Additional key-value pairs for structured logging.
        """
        super().__init__(message)
        self.context = context or {}


class NotFoundError(ApkgError):
    """Input file or required entry does not exist."""


class MissingEntryError(NotFoundError):
    """Archive was extracted but a required entry (database, media index) is absent."""


class MalformedArchiveError(ApkgError):
    """Zip structure is corrupt or an entry path is unsafe."""


class MalformedDocumentError(ApkgError):
    """JSON syntax error or schema violation in an embedded document."""


class InvalidValueError(ApkgError):
    """A value has no valid encoding in the legacy format."""


class StorageError(ApkgError):
    """Embedded database open, query or transaction failed."""


class FilesystemError(ApkgError):
    """Filesystem operation unrelated to archive structure failed."""
