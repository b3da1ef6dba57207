"""Row layout of the collection tables and conversion to and from records.

Enum columns are stored as integers; they are decoded here so no raw codes
reach the collection models.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from packages.apkg.enums import (
    CARD_QUEUE,
    CARD_TYPE,
    GRAVE_TYPE,
    CardType,
    decode_review_answer,
    encode_review_answer,
)
from packages.apkg.models import AnkiCard, AnkiGrave, AnkiNote, AnkiReviewLog

Row = Mapping[str, Any]

# Separator between field values in notes.flds (ASCII unit separator)
FIELD_SEPARATOR = "\x1f"
TAG_SEPARATOR = " "

COL_COLUMNS = (
    "id", "crt", "mod", "scm", "ver", "dty", "usn", "ls",
    "conf", "models", "decks", "dconf", "tags",
)
NOTE_COLUMNS = (
    "id", "guid", "mid", "mod", "usn", "tags", "flds", "sfld", "csum", "flags", "data",
)
CARD_COLUMNS = (
    "id", "nid", "did", "ord", "mod", "usn", "type", "queue", "due", "ivl",
    "factor", "reps", "lapses", "left", "odue", "odid", "flags", "data",
)
REVLOG_COLUMNS = (
    "id", "cid", "usn", "ease", "ivl", "lastIvl", "factor", "time", "type",
)
GRAVE_COLUMNS = ("usn", "oid", "type")

# Tables rewritten in full on save, in deletion order
OWNED_TABLES = ("cards", "notes", "col", "graves", "revlog")


def select_sql(table: str, columns: Sequence[str]) -> str:
    return f"SELECT {', '.join(columns)} FROM {table}"


def insert_sql(table: str, columns: Sequence[str]) -> str:
    placeholders = ", ".join("?" * len(columns))
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"


def split_tags(text: str) -> list[str]:
    """Split the space-joined tag column.

    Splits on every single space, so leading, trailing and doubled spaces
    produce empty entries that are kept as they are.
    """
    if not text:
        return []
    return text.split(TAG_SEPARATOR)


def join_tags(tags: Iterable[str]) -> str:
    return TAG_SEPARATOR.join(tags)


def split_fields(text: str) -> list[str]:
    return text.split(FIELD_SEPARATOR)


def join_fields(fields: Iterable[str]) -> str:
    return FIELD_SEPARATOR.join(fields)


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


def note_from_row(row: Row) -> AnkiNote:
    sort_field = row["sfld"]
    return AnkiNote(
        id=row["id"],
        guid=row["guid"],
        model_id=row["mid"],
        modified=row["mod"],
        usn=row["usn"],
        tags=split_tags(row["tags"]),
        fields=split_fields(row["flds"]),
        # Column has integer affinity, numeric sort fields come back as numbers
        sort_field="" if sort_field is None else str(sort_field),
        checksum=row["csum"],
        flags=row["flags"],
        data=row["data"],
    )


def note_to_params(note: AnkiNote) -> tuple[Any, ...]:
    return (
        note.id,
        note.guid,
        note.model_id,
        note.modified,
        note.usn,
        join_tags(note.tags),
        join_fields(note.fields),
        note.sort_field,
        note.checksum,
        note.flags,
        note.data,
    )


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


def card_from_row(row: Row) -> AnkiCard:
    return AnkiCard(
        id=row["id"],
        note_id=row["nid"],
        deck_id=row["did"],
        ordinal=row["ord"],
        modified=row["mod"],
        usn=row["usn"],
        type=CARD_TYPE.decode(row["type"]),
        queue=CARD_QUEUE.decode(row["queue"]),
        due=row["due"],
        interval=row["ivl"],
        factor=row["factor"],
        reps=row["reps"],
        lapses=row["lapses"],
        left=row["left"],
        original_due=row["odue"],
        original_deck_id=row["odid"],
        flags=row["flags"],
        data=row["data"],
    )


def card_to_params(card: AnkiCard) -> tuple[Any, ...]:
    return (
        card.id,
        card.note_id,
        card.deck_id,
        card.ordinal,
        card.modified,
        card.usn,
        CARD_TYPE.encode(card.type),
        CARD_QUEUE.encode(card.queue),
        card.due,
        card.interval,
        card.factor,
        card.reps,
        card.lapses,
        card.left,
        card.original_due,
        card.original_deck_id,
        card.flags,
        card.data,
    )


# ---------------------------------------------------------------------------
# Review log
# ---------------------------------------------------------------------------


def review_log_from_row(row: Row) -> AnkiReviewLog:
    card_type = CARD_TYPE.decode(row["type"])
    return AnkiReviewLog(
        id=row["id"],
        card_id=row["cid"],
        usn=row["usn"],
        answer=decode_review_answer(row["ease"], card_type is CardType.REVIEW),
        interval=row["ivl"],
        last_interval=row["lastIvl"],
        factor=row["factor"],
        time=row["time"],
        card_type=card_type,
    )


def review_log_to_params(entry: AnkiReviewLog) -> tuple[Any, ...]:
    return (
        entry.id,
        entry.card_id,
        entry.usn,
        encode_review_answer(entry.answer, entry.card_type is CardType.REVIEW),
        entry.interval,
        entry.last_interval,
        entry.factor,
        entry.time,
        CARD_TYPE.encode(entry.card_type),
    )


# ---------------------------------------------------------------------------
# Graves
# ---------------------------------------------------------------------------


def grave_from_row(row: Row) -> AnkiGrave:
    return AnkiGrave(usn=row["usn"], oid=row["oid"], type=GRAVE_TYPE.decode(row["type"]))


def grave_to_params(grave: AnkiGrave) -> tuple[Any, ...]:
    return (grave.usn, grave.oid, GRAVE_TYPE.encode(grave.type))
