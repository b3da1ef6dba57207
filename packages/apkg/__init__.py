# Read and write Anki .apkg packages

from packages.apkg.collection import (
    CollectionDatabase,
    find_dangling_references,
    load_collection,
    save_collection,
)
from packages.apkg.container import ApkgContainer, open_apkg
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
from packages.apkg.enums import (
    CardQueue,
    CardType,
    GraveType,
    LeechAction,
    ModelType,
    NewOrder,
    NewSpread,
    ReviewAnswer,
)
from packages.apkg.models import (
    AnkiCard,
    AnkiCollection,
    AnkiDeck,
    AnkiDeckConfig,
    AnkiGrave,
    AnkiModel,
    AnkiNote,
    AnkiReviewLog,
    LapseConfig,
    MediaEntry,
    ModelField,
    ModelTemplate,
    NewConfig,
    ReviewConfig,
    SyncConfig,
    TemplateRequirement,
)
from packages.apkg.normalizer import field_checksum, refresh_note_caches

__all__ = [
    "AnkiCard",
    "AnkiCollection",
    "AnkiDeck",
    "AnkiDeckConfig",
    "AnkiGrave",
    "AnkiModel",
    "AnkiNote",
    "AnkiReviewLog",
    "ApkgContainer",
    "CardQueue",
    "CardType",
    "CollectionDatabase",
    "GraveType",
    "LapseConfig",
    "LeechAction",
    "MediaEntry",
    "ModelField",
    "ModelTemplate",
    "ModelType",
    "NewConfig",
    "NewOrder",
    "NewSpread",
    "ReviewAnswer",
    "ReviewConfig",
    "SyncConfig",
    "TemplateRequirement",
    "field_checksum",
    "find_dangling_references",
    "load_collection",
    "open_apkg",
    "parse_deck_configs",
    "parse_decks",
    "parse_models",
    "parse_sync_config",
    "refresh_note_caches",
    "save_collection",
    "serialize_deck_configs",
    "serialize_decks",
    "serialize_models",
    "serialize_sync_config",
]
