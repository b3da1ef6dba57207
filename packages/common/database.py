"""SQLite connection and schema utilities for collection databases."""

import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from packages.common.config import Settings, get_settings
from packages.common.exceptions import StorageError
from packages.common.logging import get_logger

logger = get_logger(module=__name__)

# Legacy (schema 11) layout of the tables this codec owns
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS col (
    id integer primary key,
    crt integer not null,
    mod integer not null,
    scm integer not null,
    ver integer not null,
    dty integer not null,
    usn integer not null,
    ls integer not null,
    conf text not null,
    models text not null,
    decks text not null,
    dconf text not null,
    tags text not null
);
CREATE TABLE IF NOT EXISTS notes (
    id integer primary key,
    guid text not null,
    mid integer not null,
    mod integer not null,
    usn integer not null,
    tags text not null,
    flds text not null,
    sfld integer not null,
    csum integer not null,
    flags integer not null,
    data text not null
);
CREATE TABLE IF NOT EXISTS cards (
    id integer primary key,
    nid integer not null,
    did integer not null,
    ord integer not null,
    mod integer not null,
    usn integer not null,
    type integer not null,
    queue integer not null,
    due integer not null,
    ivl integer not null,
    factor integer not null,
    reps integer not null,
    lapses integer not null,
    left integer not null,
    odue integer not null,
    odid integer not null,
    flags integer not null,
    data text not null
);
CREATE TABLE IF NOT EXISTS revlog (
    id integer primary key,
    cid integer not null,
    usn integer not null,
    ease integer not null,
    ivl integer not null,
    lastIvl integer not null,
    factor integer not null,
    time integer not null,
    type integer not null
);
CREATE TABLE IF NOT EXISTS graves (
    usn integer not null,
    oid integer not null,
    type integer not null
);
CREATE INDEX IF NOT EXISTS ix_notes_usn ON notes (usn);
CREATE INDEX IF NOT EXISTS ix_cards_usn ON cards (usn);
CREATE INDEX IF NOT EXISTS ix_revlog_usn ON revlog (usn);
CREATE INDEX IF NOT EXISTS ix_cards_nid ON cards (nid);
CREATE INDEX IF NOT EXISTS ix_cards_sched ON cards (did, queue, due);
CREATE INDEX IF NOT EXISTS ix_revlog_cid ON revlog (cid);
CREATE INDEX IF NOT EXISTS ix_notes_csum ON notes (csum);
"""

SCHEMA_STATEMENTS = [stmt.strip() for stmt in SCHEMA_SQL.split(";") if stmt.strip()]


def _unicase(a: str, b: str) -> int:
    """Case-insensitive collation registered by Anki on every connection."""
    a, b = a.lower(), b.lower()
    return (a > b) - (a < b)


def connect(path: str | Path, settings: Settings | None = None) -> sqlite3.Connection:
    """Open a collection database with the collation Anki expects."""
    if settings is None:
        settings = get_settings()
    try:
        conn = sqlite3.connect(str(path), timeout=settings.sqlite_timeout)
        conn.row_factory = sqlite3.Row
        conn.create_collation("unicase", _unicase)
    except sqlite3.Error as e:
        raise StorageError(
            f"Cannot open collection database: {path}",
            context={"path": str(path)},
        ) from e
    return conn


@contextmanager
def connection(
    path: str | Path,
    settings: Settings | None = None,
) -> Generator[sqlite3.Connection]:
    """Yield a connection that is closed on every exit path."""
    conn = connect(path, settings)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Generator[sqlite3.Connection]:
    """Run a block inside one immediate transaction.

    Commits when the block finishes and rolls back on any exception, so a
    failed rewrite leaves the previous rows untouched.
    """
    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as e:
        raise StorageError("Cannot begin transaction") from e

    try:
        yield conn
    except BaseException:
        conn.rollback()
        logger.warning("transaction_rolled_back")
        raise

    try:
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise StorageError("Cannot commit transaction") from e


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create any missing legacy tables and indexes.

    Runs statement by statement so it can share the caller's open transaction.
    """
    for stmt in SCHEMA_STATEMENTS:
        conn.execute(stmt)
