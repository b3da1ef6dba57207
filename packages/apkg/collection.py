"""Load and save a whole collection from its embedded SQLite database."""

import sqlite3
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, TypeVar

from pydantic import ValidationError

from packages.apkg.documents import (
    parse_deck_configs,
    parse_decks,
    parse_models,
    parse_sync_config,
    serialize_deck_configs,
    serialize_decks,
    serialize_models,
    serialize_sync_config,
)
from packages.apkg.models import (
    AnkiCard,
    AnkiCollection,
    AnkiGrave,
    AnkiNote,
    AnkiReviewLog,
)
from packages.apkg.records import (
    CARD_COLUMNS,
    COL_COLUMNS,
    GRAVE_COLUMNS,
    NOTE_COLUMNS,
    OWNED_TABLES,
    REVLOG_COLUMNS,
    Row,
    card_from_row,
    card_to_params,
    grave_from_row,
    grave_to_params,
    insert_sql,
    note_from_row,
    note_to_params,
    review_log_from_row,
    review_log_to_params,
    select_sql,
)
from packages.common.config import Settings
from packages.common.database import connect, ensure_schema, transaction
from packages.common.exceptions import MalformedDocumentError, NotFoundError, StorageError
from packages.common.logging import get_logger

logger = get_logger(module=__name__)

T = TypeVar("T")


class CollectionDatabase:
    """Read and rewrite the legacy tables of a collection database.

    Use as a context manager so the connection is released on every exit path::

        with CollectionDatabase(path) as db:
            collection = db.read_collection()
            db.write_collection(collection)
    """

    def __init__(self, path: str | Path, settings: Settings | None = None) -> None:
        self.path = Path(path)
        self.settings = settings
        self._conn: sqlite3.Connection | None = None

    def __enter__(self) -> "CollectionDatabase":
        self._conn = connect(self.path, self.settings)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError(
                "Database not opened. Use 'with CollectionDatabase(...) as db:'",
                context={"path": str(self.path)},
            )
        return self._conn

    def _read_rows(
        self,
        table: str,
        columns: tuple[str, ...],
        build: Callable[[Row], T],
    ) -> list[T]:
        conn = self._ensure_connected()
        try:
            rows = conn.execute(select_sql(table, columns)).fetchall()
        except sqlite3.Error as e:
            raise StorageError(
                f"Cannot read table {table}: {e}",
                context={"path": str(self.path), "table": table},
            ) from e

        result: list[T] = []
        for row in rows:
            try:
                result.append(build(row))
            except ValidationError as e:
                raise MalformedDocumentError(
                    f"Row of table {table} has invalid values: {e}",
                    context={"structure": table, "row_id": row[columns[0]]},
                ) from e
        return result

    def read_collection(self) -> AnkiCollection:
        """Read the col row and every owned table.

        Any decode failure aborts the whole read.
        """
        col_rows = self._read_rows("col", COL_COLUMNS, dict)
        if not col_rows:
            raise MalformedDocumentError(
                "Collection database has no col row",
                context={"structure": "col", "path": str(self.path)},
            )
        if len(col_rows) > 1:
            logger.warning("extra_col_rows_ignored", path=str(self.path), rows=len(col_rows))
        row = col_rows[0]

        try:
            collection = AnkiCollection(
                id=row["id"],
                created=row["crt"],
                modified=row["mod"],
                schema_modified=row["scm"],
                version=row["ver"],
                dirty=row["dty"],
                usn=row["usn"],
                last_sync=row["ls"],
                config=parse_sync_config(row["conf"]),
                models=parse_models(row["models"]),
                decks=parse_decks(row["decks"]),
                deck_configs=parse_deck_configs(row["dconf"]),
                tags=row["tags"],
            )
        except ValidationError as e:
            raise MalformedDocumentError(
                f"col row has invalid values: {e}",
                context={"structure": "col"},
            ) from e

        collection.notes = self.read_notes()
        collection.cards = self.read_cards()
        collection.revlog = self.read_revlog()
        collection.graves = self.read_graves()
        return collection

    def read_notes(self) -> list[AnkiNote]:
        return self._read_rows("notes", NOTE_COLUMNS, note_from_row)

    def read_cards(self) -> list[AnkiCard]:
        return self._read_rows("cards", CARD_COLUMNS, card_from_row)

    def read_revlog(self) -> list[AnkiReviewLog]:
        return self._read_rows("revlog", REVLOG_COLUMNS, review_log_from_row)

    def read_graves(self) -> list[AnkiGrave]:
        return self._read_rows("graves", GRAVE_COLUMNS, grave_from_row)

    def write_collection(self, collection: AnkiCollection) -> None:
        """Replace every owned table with the contents of ``collection``.

        Runs in one transaction: on any failure the previous rows stay in place.
        """
        conn = self._ensure_connected()
        try:
            with transaction(conn):
                ensure_schema(conn)
                for table in OWNED_TABLES:
                    conn.execute(f"DELETE FROM {table}")
                conn.execute(insert_sql("col", COL_COLUMNS), _col_params(collection))
                _insert_all(conn, "notes", NOTE_COLUMNS, collection.notes, note_to_params)
                _insert_all(conn, "cards", CARD_COLUMNS, collection.cards, card_to_params)
                _insert_all(
                    conn, "revlog", REVLOG_COLUMNS, collection.revlog, review_log_to_params
                )
                _insert_all(conn, "graves", GRAVE_COLUMNS, collection.graves, grave_to_params)
        except sqlite3.Error as e:
            raise StorageError(
                f"Cannot save collection: {e}",
                context={"path": str(self.path)},
            ) from e


def _col_params(collection: AnkiCollection) -> tuple[Any, ...]:
    return (
        collection.id,
        collection.created,
        collection.modified,
        collection.schema_modified,
        collection.version,
        collection.dirty,
        collection.usn,
        collection.last_sync,
        serialize_sync_config(collection.config),
        serialize_models(collection.models),
        serialize_decks(collection.decks),
        serialize_deck_configs(collection.deck_configs),
        collection.tags,
    )


def _insert_all(
    conn: sqlite3.Connection,
    table: str,
    columns: tuple[str, ...],
    records: Iterable[T],
    to_params: Callable[[T], tuple[Any, ...]],
) -> None:
    conn.executemany(insert_sql(table, columns), (to_params(r) for r in records))


def load_collection(path: str | Path, settings: Settings | None = None) -> AnkiCollection:
    """Load a complete collection from a collection database file.

    Args:
        path: Path to the collection database (``collection.anki2``).
        settings: Optional settings; defaults to the cached environment settings.

    Returns:
        The collection with every document and table decoded.
    """
    path = Path(path)
    if not path.is_file():
        raise NotFoundError(f"Collection database not found: {path}", context={"path": str(path)})

    with CollectionDatabase(path, settings) as db:
        collection = db.read_collection()

    logger.info(
        "collection_loaded",
        path=str(path),
        models=len(collection.models),
        decks=len(collection.decks),
        notes=len(collection.notes),
        cards=len(collection.cards),
        revlog=len(collection.revlog),
        graves=len(collection.graves),
    )
    return collection


def save_collection(
    collection: AnkiCollection,
    path: str | Path,
    settings: Settings | None = None,
) -> None:
    """Rewrite a collection database from ``collection``.

    Missing tables are created, so ``path`` may name a new file.
    """
    with CollectionDatabase(path, settings) as db:
        db.write_collection(collection)

    logger.info(
        "collection_saved",
        path=str(path),
        notes=len(collection.notes),
        cards=len(collection.cards),
    )


def find_dangling_references(collection: AnkiCollection) -> list[str]:
    """List references the format does not enforce but a valid collection needs.

    Checks that cards point at existing notes and decks, and notes at existing models.
    """
    note_ids = {note.id for note in collection.notes}
    deck_ids = {deck.id for deck in collection.decks.values()} | set(collection.decks)
    model_ids = {model.id for model in collection.models.values()} | set(collection.models)

    problems: list[str] = []
    for note in collection.notes:
        if note.model_id not in model_ids:
            problems.append(f"note {note.id} references missing model {note.model_id}")
    for card in collection.cards:
        if card.note_id not in note_ids:
            problems.append(f"card {card.id} references missing note {card.note_id}")
        if card.deck_id not in deck_ids:
            problems.append(f"card {card.id} references missing deck {card.deck_id}")
    return problems
