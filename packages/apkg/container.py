"""Extract, edit and repack ``.apkg`` archives.

An .apkg file is a ZIP archive containing:
- collection.anki2 (SQLite database with the legacy schema)
- media (JSON object mapping archive entry names to original filenames)
    {"0": "audio.mp3", "1": "image.png"}
- 0, 1, 2, ... (media payloads named by their entry name)

The archive is extracted into a temporary workspace owned by an
``ApkgContainer``. The workspace is removed when the container is closed,
when its ``with`` block exits, after ``save``, and when opening fails.
"""

import json
import os
import re
import shutil
import stat
import tempfile
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Any

from packages.apkg.collection import load_collection, save_collection
from packages.apkg.models import AnkiCollection, MediaEntry
from packages.common.config import Settings, get_settings
from packages.common.exceptions import (
    FilesystemError,
    InvalidValueError,
    MalformedArchiveError,
    MalformedDocumentError,
    MissingEntryError,
    NotFoundError,
)
from packages.common.logging import get_logger

logger = get_logger(module=__name__)

# Errors zipfile raises for corrupt or unsupported archives
_ARCHIVE_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    zlib.error,
    EOFError,
    NotImplementedError,
    RuntimeError,
)
_DRIVE = re.compile(r"^[A-Za-z]:")


def _safe_target(root: Path, entry_name: str) -> Path:
    """Resolve an entry name inside ``root``, rejecting paths that escape it."""
    name = entry_name.replace("\\", "/")
    pure = PurePosixPath(name)
    if not name or pure.is_absolute() or ".." in pure.parts or _DRIVE.match(name):
        raise MalformedArchiveError(
            f"Archive entry has an unsafe path: {entry_name!r}",
            context={"entry": entry_name},
        )

    resolved_root = root.resolve()
    target = (resolved_root / pure).resolve()
    if target == resolved_root and not entry_name.endswith("/"):
        raise MalformedArchiveError(
            f"Archive entry has an unsafe path: {entry_name!r}",
            context={"entry": entry_name},
        )
    if not target.is_relative_to(resolved_root):
        raise MalformedArchiveError(
            f"Archive entry resolves outside the workspace: {entry_name!r}",
            context={"entry": entry_name},
        )
    return target


def _restore_mode(target: Path, info: zipfile.ZipInfo) -> None:
    """Apply the Unix permission bits stored in the entry, if any."""
    if os.name != "posix" or info.create_system != 3:
        return
    mode = stat.S_IMODE(info.external_attr >> 16)
    if mode:
        target.chmod(mode)


def extract_archive(archive_path: Path, destination: Path) -> list[str]:
    """Extract every entry of ``archive_path`` into ``destination``.

    Returns:
        The entry names in archive order.
    """
    try:
        archive = zipfile.ZipFile(archive_path)
    except FileNotFoundError as e:
        raise NotFoundError(
            f"Archive not found: {archive_path}",
            context={"path": str(archive_path)},
        ) from e
    except _ARCHIVE_ERRORS as e:
        raise MalformedArchiveError(
            f"Cannot read archive {archive_path}: {e}",
            context={"path": str(archive_path)},
        ) from e
    except OSError as e:
        raise FilesystemError(
            f"Cannot open archive {archive_path}: {e}",
            context={"path": str(archive_path)},
        ) from e

    names: list[str] = []
    with archive:
        for info in archive.infolist():
            target = _safe_target(destination, info.filename)
            try:
                if info.filename.endswith("/"):
                    target.mkdir(parents=True, exist_ok=True)
                else:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with archive.open(info) as src, open(target, "wb") as dst:
                        shutil.copyfileobj(src, dst)
                _restore_mode(target, info)
            except _ARCHIVE_ERRORS as e:
                raise MalformedArchiveError(
                    f"Cannot extract entry {info.filename!r}: {e}",
                    context={"path": str(archive_path), "entry": info.filename},
                ) from e
            except OSError as e:
                raise FilesystemError(
                    f"Cannot write entry {info.filename!r}: {e}",
                    context={"path": str(archive_path), "entry": info.filename},
                ) from e
            names.append(info.filename)

    return names


def load_media_index(path: Path) -> list[MediaEntry]:
    """Read the media index; anything but a JSON object means no media."""
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedDocumentError(
            f"Media index is not UTF-8 text: {e}",
            context={"structure": "media"},
        ) from e
    except OSError as e:
        raise FilesystemError(f"Cannot read media index: {e}", context={"path": str(path)}) from e

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedDocumentError(
            f"Media index is not valid JSON: {e}",
            context={"structure": "media"},
        ) from e

    if not isinstance(parsed, dict):
        return []

    entries: list[MediaEntry] = []
    for condensed_name, name in parsed.items():
        if not isinstance(name, str):
            logger.debug("media_entry_skipped", condensed_name=condensed_name)
            continue
        entries.append(MediaEntry(condensed_name=condensed_name, name=name))
    return entries


def write_media_index(path: Path, entries: list[MediaEntry]) -> None:
    """Replace the media index file with ``entries``."""
    document = {entry.condensed_name: entry.name for entry in entries}
    try:
        path.unlink(missing_ok=True)
        path.write_text(
            json.dumps(document, ensure_ascii=False, separators=(",", ":")),
            encoding="utf-8",
        )
    except OSError as e:
        raise FilesystemError(f"Cannot write media index: {e}", context={"path": str(path)}) from e


def write_archive(source_dir: Path, destination: Path) -> list[str]:
    """Zip every top-level file of ``source_dir`` as a stored entry.

    The archive is built next to ``destination`` and moved into place once
    complete, so a failure never leaves a partial archive behind.

    Returns:
        The entry names written.
    """
    destination = Path(destination)
    names: list[str] = []
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{destination.name}.",
            suffix=".tmp",
            dir=destination.parent,
        )
    except OSError as e:
        raise FilesystemError(
            f"Cannot create output archive {destination}: {e}",
            context={"path": str(destination)},
        ) from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fh, zipfile.ZipFile(
            fh, "w", compression=zipfile.ZIP_STORED, strict_timestamps=False
        ) as archive:
            for path in sorted(source_dir.iterdir()):
                if not path.is_file():
                    logger.debug("workspace_entry_skipped", entry=path.name)
                    continue
                archive.write(path, arcname=path.name)
                names.append(path.name)
        os.replace(tmp_path, destination)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise FilesystemError(
            f"Cannot write output archive {destination}: {e}",
            context={"path": str(destination)},
        ) from e
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    return names


class ApkgContainer:
    """An extracted .apkg archive with its collection and media index loaded.

    Use as a context manager to ensure the workspace is removed::

        with ApkgContainer.open("deck.apkg") as apkg:
            apkg.collection.notes[0].tags.append("edited")
            apkg.save("edited.apkg")
    """

    def __init__(
        self,
        workspace: tempfile.TemporaryDirectory[str],
        collection: AnkiCollection,
        media: list[MediaEntry],
        settings: Settings,
    ) -> None:
        self._workspace: tempfile.TemporaryDirectory[str] | None = workspace
        self.collection = collection
        self.media_entries = media
        self.settings = settings

    @classmethod
    def open(cls, archive_path: str | Path, settings: Settings | None = None) -> "ApkgContainer":
        """Extract ``archive_path`` into a fresh workspace and load its contents."""
        if settings is None:
            settings = get_settings()
        archive_path = Path(archive_path)
        if not archive_path.is_file():
            raise NotFoundError(
                f"Archive not found: {archive_path}",
                context={"path": str(archive_path)},
            )

        try:
            workspace = tempfile.TemporaryDirectory(prefix="apkg-", dir=settings.workspace_root)
        except OSError as e:
            raise FilesystemError(f"Cannot create workspace: {e}") from e

        try:
            root = Path(workspace.name)
            names = extract_archive(archive_path, root)

            db_path = root / settings.database_name
            media_path = root / settings.media_name
            for required in (db_path, media_path):
                if not required.is_file():
                    raise MissingEntryError(
                        f"Archive has no '{required.name}' entry",
                        context={"path": str(archive_path), "entry": required.name},
                    )

            collection = load_collection(db_path, settings)
            media = load_media_index(media_path)
        except BaseException:
            workspace.cleanup()
            raise

        logger.info(
            "archive_extracted",
            path=str(archive_path),
            entries=len(names),
            media=len(media),
        )
        return cls(workspace, collection, media, settings)

    def __enter__(self) -> "ApkgContainer":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._workspace is None

    @property
    def workspace(self) -> Path:
        if self._workspace is None:
            raise FilesystemError("Workspace has already been released")
        return Path(self._workspace.name)

    @property
    def db_path(self) -> Path:
        return self.workspace / self.settings.database_name

    @property
    def media_index_path(self) -> Path:
        return self.workspace / self.settings.media_name

    def close(self) -> None:
        """Remove the workspace. Safe to call more than once."""
        if self._workspace is not None:
            self._workspace.cleanup()
            self._workspace = None

    # -------------------------------------------------------------------------
    # Media
    # -------------------------------------------------------------------------

    def media_path(self, entry: MediaEntry) -> Path:
        """Location of a media payload inside the workspace."""
        return _safe_target(self.workspace, entry.condensed_name)

    def find_media(self, name: str) -> MediaEntry | None:
        return next((m for m in self.media_entries if m.name == name), None)

    def add_media(self, source: str | Path, name: str | None = None) -> MediaEntry:
        """Copy a file into the workspace under the next free numeric entry name."""
        source = Path(source)
        name = name or source.name
        if self.find_media(name) is not None:
            raise InvalidValueError(
                f"Media file already present: {name}",
                context={"name": name},
            )

        taken = {m.condensed_name for m in self.media_entries}
        taken.update(p.name for p in self.workspace.iterdir())
        index = 0
        while str(index) in taken:
            index += 1

        entry = MediaEntry(condensed_name=str(index), name=name)
        try:
            shutil.copyfile(source, self.media_path(entry))
        except FileNotFoundError as e:
            raise NotFoundError(f"Media source not found: {source}", context={"path": str(source)}) from e
        except OSError as e:
            raise FilesystemError(f"Cannot copy media file: {e}", context={"path": str(source)}) from e

        self.media_entries.append(entry)
        return entry

    def remove_media(self, condensed_name: str) -> MediaEntry:
        """Drop a media entry and delete its payload from the workspace."""
        for index, entry in enumerate(self.media_entries):
            if entry.condensed_name == condensed_name:
                break
        else:
            raise NotFoundError(
                f"No media entry named {condensed_name!r}",
                context={"entry": condensed_name},
            )

        try:
            self.media_path(entry).unlink(missing_ok=True)
        except OSError as e:
            raise FilesystemError(f"Cannot remove media file: {e}", context={"entry": condensed_name}) from e
        del self.media_entries[index]
        return entry

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def repack(self, destination: str | Path) -> None:
        """Zip the workspace as it currently is, without rewriting anything."""
        names = write_archive(self.workspace, Path(destination))
        logger.info("archive_written", path=str(destination), entries=len(names))

    def save(self, destination: str | Path) -> None:
        """Write media index and collection back, zip the workspace, release it.

        The container cannot be used afterwards, whether or not saving succeeded.
        """
        try:
            write_media_index(self.media_index_path, self.media_entries)
            save_collection(self.collection, self.db_path, self.settings)
            self.repack(destination)
        finally:
            self.close()


def open_apkg(archive_path: str | Path, settings: Settings | None = None) -> ApkgContainer:
    """Convenience function to extract and load an .apkg archive."""
    return ApkgContainer.open(archive_path, settings)
