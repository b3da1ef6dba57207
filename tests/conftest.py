"""Pytest configuration and fixtures."""

import json
import sqlite3
import tempfile
import zipfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from packages.common.config import Settings
from packages.common.database import SCHEMA_SQL

MODEL_EPOCH = 1342697561419
FRENCH_DECK_ID = 1234567890


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def workspace_root(temp_dir: Path) -> Path:
    """Directory that receives extraction workspaces, so tests can watch it."""
    root = temp_dir / "workspaces"
    root.mkdir()
    return root


@pytest.fixture
def settings(workspace_root: Path) -> Settings:
    return Settings(workspace_root=str(workspace_root))


@pytest.fixture
def sync_config_json() -> dict[str, Any]:
    """col.conf as written by a desktop client."""
    return {
        "curDeck": 1,
        "activeDecks": [1],
        "newSpread": 0,
        "collapseTime": 1200,
        "timeLim": 0,
        "estTimes": True,
        "dueCounts": True,
        "curModel": str(MODEL_EPOCH),
        "nextPos": 3,
        "sortType": "noteFld",
        "sortBackwards": False,
        "addToCur": True,
        "dayLearnFirst": False,
        "newBury": True,
        "activeCols": ["noteFld", "template", "cardDue", "deck"],
        "localOffset": -120,
    }


@pytest.fixture
def models_json() -> dict[str, Any]:
    """col.models with one Basic note type."""
    return {
        str(MODEL_EPOCH): {
            "id": MODEL_EPOCH,
            "name": "Basic",
            "type": 0,
            "mod": 1700000000,
            "usn": -1,
            "sortf": 0,
            "did": 1,
            "tmpls": [
                {
                    "name": "Card 1",
                    "ord": 0,
                    "qfmt": "{{Front}}",
                    "afmt": "{{FrontSide}}<hr id=answer>{{Back}}",
                    "did": None,
                    "bqfmt": "",
                    "bafmt": "",
                }
            ],
            "flds": [
                {"name": "Front", "ord": 0, "sticky": False, "rtl": False, "font": "Arial", "size": 20},
                {"name": "Back", "ord": 1, "sticky": False, "rtl": False, "font": "Arial", "size": 20},
            ],
            "css": ".card { font-family: arial; }",
            "latexPre": "\\documentclass[12pt]{article}",
            "latexPost": "\\end{document}",
            "latexsvg": False,
            "tags": [],
            "vers": [],
            "req": [[0, "all", [0]]],
        }
    }


def _deck(deck_id: int, name: str) -> dict[str, Any]:
    return {
        "id": deck_id,
        "name": name,
        "desc": "",
        "mod": 1700000000,
        "usn": -1,
        "collapsed": False,
        "browserCollapsed": False,
        "dyn": 0,
        "conf": 1,
        "extendNew": 10,
        "extendRev": 50,
        "newToday": [10, 3],
        "lrnToday": [10, 1],
        "revToday": [10, 7],
        "timeToday": [10, 60000],
    }


@pytest.fixture
def decks_json() -> dict[str, Any]:
    """col.decks with the default deck and one user deck."""
    return {
        "1": _deck(1, "Default"),
        str(FRENCH_DECK_ID): _deck(FRENCH_DECK_ID, "French::Vocabulary"),
    }


@pytest.fixture
def deck_configs_json() -> dict[str, Any]:
    """col.dconf with the default options group."""
    return {
        "1": {
            "id": 1,
            "name": "Default",
            "autoplay": True,
            "dyn": False,
            "maxTaken": 60,
            "mod": 0,
            "replayq": True,
            "timer": 0,
            "usn": 0,
            "new": {
                "bury": True,
                "delays": [1, 10],
                "initialFactor": 2500,
                "ints": [1, 4, 7],
                "order": 1,
                "perDay": 20,
                "separate": True,
            },
            "rev": {
                "bury": True,
                "ease4": 1.3,
                "fuzz": 0.05,
                "ivlFct": 1,
                "maxIvl": 36500,
                "perDay": 100,
                "minSpace": 1,
            },
            "lapse": {
                "delays": [10],
                "leechAction": 0,
                "leechFails": 8,
                "minInt": 1,
                "mult": 0,
            },
        }
    }


@pytest.fixture
def sample_collection(
    temp_dir: Path,
    sync_config_json: dict[str, Any],
    models_json: dict[str, Any],
    decks_json: dict[str, Any],
    deck_configs_json: dict[str, Any],
) -> Path:
    """Create a small collection database with the legacy schema."""
    db_path = temp_dir / "collection.anki2"
    conn = sqlite3.connect(str(db_path))
    conn.executescript(SCHEMA_SQL)

    conn.execute(
        """
        INSERT INTO col (id, crt, mod, scm, ver, dty, usn, ls, conf, models, decks, dconf, tags)
        VALUES (1, 1700000000, 1700000000000, 1700000000000, 11, 0, 0, 0, ?, ?, ?, ?, '{}')
        """,
        (
            json.dumps(sync_config_json),
            json.dumps(models_json),
            json.dumps(decks_json),
            json.dumps(deck_configs_json),
        ),
    )

    notes = [
        (
            1000000001,
            "abc123",
            MODEL_EPOCH,
            1700000000,
            -1,
            "french vocabulary",
            "bonjour[sound:bonjour.mp3]\x1fhello",
            "bonjour[sound:bonjour.mp3]",
            1234567,
            0,
            "",
        ),
        (
            1000000002,
            "def456",
            MODEL_EPOCH,
            1700000000,
            -1,
            "",
            "merci\x1fthank you",
            "merci",
            7654321,
            0,
            "",
        ),
    ]
    conn.executemany(
        "INSERT INTO notes (id, guid, mid, mod, usn, tags, flds, sfld, csum, flags, data) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        notes,
    )

    cards = [
        (2000000001, 1000000001, FRENCH_DECK_ID, 0, 1700000000, -1, 2, 2, 100, 21, 2500, 10, 2, 0, 0, 0, 0, ""),
        (2000000002, 1000000002, FRENCH_DECK_ID, 0, 1700000000, -1, 0, -1, 2, 0, 0, 0, 0, 0, 0, 0, 0, ""),
    ]
    conn.executemany(
        "INSERT INTO cards (id, nid, did, ord, mod, usn, type, queue, due, ivl, factor, reps, lapses, left, odue, odid, flags, data) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        cards,
    )

    revlog = [
        (1700000000001, 2000000001, -1, 3, 1, 0, 2500, 5000, 1),  # learning: 3 = easy
        (1700000000002, 2000000001, -1, 2, 21, 1, 2500, 3000, 2),  # review: 2 = hard
    ]
    conn.executemany(
        "INSERT INTO revlog (id, cid, usn, ease, ivl, lastIvl, factor, time, type) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        revlog,
    )

    conn.execute("INSERT INTO graves (usn, oid, type) VALUES (-1, 1000000099, 1)")

    conn.commit()
    conn.close()

    return db_path


def build_apkg(
    path: Path,
    entries: dict[str, bytes],
    compression: int = zipfile.ZIP_DEFLATED,
) -> Path:
    """Write a zip archive with the given entries."""
    with zipfile.ZipFile(path, "w", compression=compression) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return path


@pytest.fixture
def sample_apkg(temp_dir: Path, sample_collection: Path) -> Path:
    """Package the sample collection with one audio file."""
    return build_apkg(
        temp_dir / "french.apkg",
        {
            "collection.anki2": sample_collection.read_bytes(),
            "media": json.dumps({"0": "bonjour.mp3"}).encode("utf-8"),
            "0": b"ID3 fake audio payload",
        },
    )


@pytest.fixture
def make_apkg(temp_dir: Path) -> Callable[..., Path]:
    """Factory writing an archive with arbitrary entries into the temp dir."""

    def make(name: str, entries: dict[str, bytes], compression: int = zipfile.ZIP_DEFLATED) -> Path:
        return build_apkg(temp_dir / name, entries, compression)

    return make
