# Common utilities

from packages.common.config import Settings, get_settings
from packages.common.exceptions import (
    ApkgError,
    FilesystemError,
    InvalidValueError,
    MalformedArchiveError,
    MalformedDocumentError,
    MissingEntryError,
    NotFoundError,
    StorageError,
)
from packages.common.logging import (
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)

__all__ = [
    "ApkgError",
    "FilesystemError",
    "InvalidValueError",
    "MalformedArchiveError",
    "MalformedDocumentError",
    "MissingEntryError",
    "NotFoundError",
    "Settings",
    "StorageError",
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
    "get_settings",
    "set_correlation_id",
]
