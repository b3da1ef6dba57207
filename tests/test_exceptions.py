"""Tests for custom exception hierarchy."""

import pytest

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


class TestApkgError:
    """Tests for base exception class."""

    def test_basic_message(self) -> None:
        """Test exception with just a message."""
        err = ApkgError("Something went wrong")
        assert str(err) == "Something went wrong"
        assert err.context == {}

    def test_with_context(self) -> None:
        """Test exception with context dict."""
        err = ApkgError(
            "Deck field 'name' is missing",
            context={"structure": "Deck 1", "field": "name"},
        )
        assert str(err) == "Deck field 'name' is missing"
        assert err.context == {"structure": "Deck 1", "field": "name"}


class TestExceptionHierarchy:
    """Tests for exception inheritance."""

    @pytest.mark.parametrize(
        "error_type",
        [
            NotFoundError,
            MissingEntryError,
            MalformedArchiveError,
            MalformedDocumentError,
            InvalidValueError,
            StorageError,
            FilesystemError,
        ],
    )
    def test_inherit_from_base(self, error_type: type[ApkgError]) -> None:
        assert issubclass(error_type, ApkgError)

    def test_missing_entry_is_not_found(self) -> None:
        """A missing archive entry can be caught as any missing input."""
        with pytest.raises(NotFoundError):
            raise MissingEntryError("no media", context={"entry": "media"})

    def test_kinds_are_distinct(self) -> None:
        assert not issubclass(MalformedArchiveError, MalformedDocumentError)
        assert not issubclass(StorageError, FilesystemError)
