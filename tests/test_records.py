"""Tests for table row conversion."""

import pytest

from packages.apkg.enums import CardQueue, CardType, GraveType, ReviewAnswer
from packages.apkg.models import AnkiReviewLog
from packages.apkg.records import (
    CARD_COLUMNS,
    NOTE_COLUMNS,
    card_from_row,
    card_to_params,
    grave_from_row,
    grave_to_params,
    insert_sql,
    join_fields,
    join_tags,
    note_from_row,
    note_to_params,
    review_log_from_row,
    review_log_to_params,
    select_sql,
    split_fields,
    split_tags,
)
from packages.common.exceptions import InvalidValueError


def _note_row(**overrides: object) -> dict[str, object]:
    row: dict[str, object] = {
        "id": 1,
        "guid": "g",
        "mid": 10,
        "mod": 100,
        "usn": -1,
        "tags": "a b",
        "flds": "front\x1fback",
        "sfld": "front",
        "csum": 42,
        "flags": 0,
        "data": "",
    }
    row.update(overrides)
    return row


class TestTags:
    """Tags are split on every single space."""

    def test_empty(self) -> None:
        assert split_tags("") == []

    def test_simple(self) -> None:
        assert split_tags("python programming") == ["python", "programming"]

    def test_extra_spaces_kept(self) -> None:
        tags = split_tags(" a  b ")
        assert tags == ["", "a", "", "b", ""]
        assert join_tags(tags) == " a  b "


class TestFields:
    def test_split_on_unit_separator(self) -> None:
        assert split_fields("one\x1ftwo\x1f") == ["one", "two", ""]

    def test_join(self) -> None:
        assert join_fields(["one", "two"]) == "one\x1ftwo"


class TestSql:
    def test_select(self) -> None:
        assert select_sql("graves", ("usn", "oid", "type")) == "SELECT usn, oid, type FROM graves"

    def test_insert_placeholders(self) -> None:
        sql = insert_sql("notes", NOTE_COLUMNS)
        assert sql.count("?") == len(NOTE_COLUMNS)
        assert sql.startswith("INSERT INTO notes (id, guid, mid")


class TestNotes:
    def test_from_row(self) -> None:
        note = note_from_row(_note_row())
        assert note.model_id == 10
        assert note.tags == ["a", "b"]
        assert note.fields == ["front", "back"]
        assert note.sort_field == "front"
        assert note.checksum == 42

    def test_numeric_sort_field(self) -> None:
        """sfld has integer affinity, so numeric text comes back as a number."""
        note = note_from_row(_note_row(sfld=42))
        assert note.sort_field == "42"

    def test_params_follow_column_order(self) -> None:
        params = note_to_params(note_from_row(_note_row(flags=3, data="x")))
        assert len(params) == len(NOTE_COLUMNS)
        assert params[5] == "a b"
        assert params[6] == "front\x1fback"
        assert params[-2:] == (3, "x")


class TestCards:
    def test_from_row(self) -> None:
        row = dict.fromkeys(CARD_COLUMNS, 0)
        row.update({"id": 5, "nid": 1, "did": 2, "type": 2, "queue": -1, "data": ""})
        card = card_from_row(row)

        assert card.type is CardType.REVIEW
        assert card.queue is CardQueue.SUSPENDED

        params = card_to_params(card)
        assert params[6:8] == (2, -1)

    def test_unknown_codes_use_defaults(self) -> None:
        row = dict.fromkeys(CARD_COLUMNS, 0)
        row.update({"type": 17, "queue": 17, "data": ""})
        card = card_from_row(row)

        assert card.type is CardType.NEW
        assert card.queue is CardQueue.NEW


class TestReviewLog:
    def _row(self, ease: int, card_type: int) -> dict[str, int]:
        return {
            "id": 1,
            "cid": 2,
            "usn": -1,
            "ease": ease,
            "ivl": 1,
            "lastIvl": 0,
            "factor": 2500,
            "time": 3000,
            "type": card_type,
        }

    def test_review_row(self) -> None:
        entry = review_log_from_row(self._row(ease=2, card_type=2))
        assert entry.card_type is CardType.REVIEW
        assert entry.answer is ReviewAnswer.HARD
        assert review_log_to_params(entry)[3] == 2

    def test_learning_row(self) -> None:
        entry = review_log_from_row(self._row(ease=2, card_type=1))
        assert entry.answer is ReviewAnswer.OK
        assert review_log_to_params(entry)[3] == 2

    def test_hard_on_learning_card_cannot_be_written(self) -> None:
        entry = AnkiReviewLog(
            id=1,
            card_id=2,
            usn=-1,
            answer=ReviewAnswer.HARD,
            interval=1,
            last_interval=0,
            factor=2500,
            time=3000,
            card_type=CardType.LEARNING,
        )
        with pytest.raises(InvalidValueError):
            review_log_to_params(entry)


class TestGraves:
    def test_round_trip(self) -> None:
        grave = grave_from_row({"usn": -1, "oid": 7, "type": 1})
        assert grave.type is GraveType.NOTE
        assert grave_to_params(grave) == (-1, 7, 1)
