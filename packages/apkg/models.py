"""Collection data models."""

from typing import Any

from pydantic import BaseModel, Field

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

# JSON numbers are kept as parsed so integers are not rewritten as floats
Number = int | float

# Browser columns shown when the collection config does not list any
DEFAULT_ACTIVE_COLS = ["noteFld", "template", "cardDue", "deck"]


class ModelField(BaseModel):
    """A field of a note type."""

    name: str
    ordinal: int
    font: str
    font_size: int
    right_to_left: bool = False
    sticky: bool = False
    extra: dict[str, Any] = Field(default_factory=dict)


class ModelTemplate(BaseModel):
    """A card template of a note type."""

    name: str
    ordinal: int
    question_format: str
    answer_format: str
    browser_question_format: str = ""
    browser_answer_format: str = ""
    deck_override: int | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class TemplateRequirement(BaseModel):
    """Which fields must be non-empty for a template to generate a card."""

    ordinal: int
    mode: str  # "all", "any" or "none"
    field_indices: list[int] = Field(default_factory=list)


class AnkiModel(BaseModel):
    """Note type, keyed in the collection by its creation epoch."""

    epoch: int
    id: int
    name: str
    css: str
    latex_pre: str
    latex_post: str
    modified: int
    usn: int
    sort_field: int = 0
    type: ModelType = ModelType.STANDARD
    deck_id: int | None = None
    fields: list[ModelField] = Field(default_factory=list)
    templates: list[ModelTemplate] = Field(default_factory=list)
    req: list[TemplateRequirement] | None = None
    tags: list[Any] = Field(default_factory=list)
    vers: list[Any] = Field(default_factory=list)
    extra: dict[str, Any] = Field(default_factory=dict)


class AnkiDeck(BaseModel):
    """Deck, keyed in the collection by its creation epoch."""

    epoch: int
    id: int
    name: str
    description: str = ""
    modified: int
    usn: int
    collapsed: bool = False
    browser_collapsed: bool = False
    dynamic: int = 0
    config_id: int | None = None  # None only for filtered decks
    extended_new_limit: int = 10
    extended_review_limit: int = 10
    # (day, count) pairs reset daily
    new_today: tuple[int, int] = (0, 0)
    learned_today: tuple[int, int] = (0, 0)
    reviewed_today: tuple[int, int] = (0, 0)
    extra: dict[str, Any] = Field(default_factory=dict)


class NewConfig(BaseModel):
    """Deck options for new cards."""

    bury: bool
    delays: list[Number] = Field(default_factory=list)  # minutes
    initial_factor: int
    intervals: list[int] = Field(default_factory=list)  # graduating, easy (days)
    order: NewOrder = NewOrder.RANDOM
    per_day: int
    separate: bool | int | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class ReviewConfig(BaseModel):
    """Deck options for review cards."""

    bury: bool
    ease4: Number
    fuzz: Number | None = None
    interval_factor: Number
    max_interval: Number
    per_day: int
    extra: dict[str, Any] = Field(default_factory=dict)


class LapseConfig(BaseModel):
    """Deck options for lapsed cards."""

    delays: list[Number] = Field(default_factory=list)
    leech_action: LeechAction = LeechAction.SUSPEND
    leech_fails: int
    min_interval: int
    mult: Number
    extra: dict[str, Any] = Field(default_factory=dict)


class AnkiDeckConfig(BaseModel):
    """Options group shared by decks, keyed by id."""

    id: int
    name: str
    autoplay: bool
    dynamic: bool = False
    max_taken: int
    modified: int
    replay_audio: bool
    timer: int
    usn: int
    new: NewConfig | None = None
    review: ReviewConfig | None = None
    lapse: LapseConfig | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class SyncConfig(BaseModel):
    """Synced collection options and session state."""

    current_deck: int
    active_decks: list[int] = Field(default_factory=list)
    new_spread: NewSpread = NewSpread.DISTRIBUTE
    collapse_time: int
    time_limit: int
    estimated_times: bool
    due_counts: bool
    current_model: int
    next_pos: int
    sort_type: str | None = None
    sort_backwards: bool = False
    add_to_current: bool = True
    day_learn_first: bool = False
    new_bury: bool | None = None
    last_unburied: int | None = None
    active_cols: list[str] = Field(default_factory=lambda: list(DEFAULT_ACTIVE_COLS))
    extra: dict[str, Any] = Field(default_factory=dict)


class AnkiNote(BaseModel):
    """Note from collection."""

    id: int
    guid: str
    model_id: int
    modified: int  # seconds since epoch
    usn: int
    tags: list[str] = Field(default_factory=list)
    fields: list[str]  # stored joined by \x1f
    # sfld has integer affinity: numeric-looking values come back in SQLite's
    # canonical form after a save ("007" -> "7", "1.50" -> "1.5")
    sort_field: str = ""
    checksum: int = 0  # first field checksum for duplicate detection
    flags: int = 0
    data: str = ""


class AnkiCard(BaseModel):
    """Card from collection."""

    id: int
    note_id: int
    deck_id: int
    ordinal: int = 0  # template or cloze number the card was generated from
    modified: int
    usn: int
    type: CardType = CardType.NEW
    queue: CardQueue = CardQueue.NEW
    due: int = 0  # note id/position for new cards, timestamp or day otherwise
    interval: int = 0  # negative = seconds, positive = days
    factor: int = 0  # ease factor in permille, e.g. 2500 = 250%
    reps: int = 0
    lapses: int = 0
    left: int = 0  # reps left until graduation
    original_due: int = 0  # filtered decks only
    original_deck_id: int = 0  # filtered decks only
    flags: int = 0
    data: str = ""


class AnkiReviewLog(BaseModel):
    """Review log entry."""

    id: int  # timestamp in milliseconds
    card_id: int
    usn: int
    answer: ReviewAnswer
    interval: int
    last_interval: int
    factor: int
    time: int  # milliseconds spent answering
    card_type: CardType


class AnkiGrave(BaseModel):
    """Tombstone for a deleted card, note or deck."""

    usn: int
    oid: int
    type: GraveType = GraveType.CARD


class MediaEntry(BaseModel):
    """A media file inside the archive."""

    condensed_name: str  # entry name in the archive
    name: str  # original filename referenced by notes


class AnkiCollection(BaseModel):
    """Complete collection: the col row, its documents and every table."""

    id: int
    created: int  # seconds
    modified: int  # milliseconds
    schema_modified: int
    version: int
    dirty: int = 0
    usn: int
    last_sync: int
    config: SyncConfig
    models: dict[int, AnkiModel] = Field(default_factory=dict)
    decks: dict[int, AnkiDeck] = Field(default_factory=dict)
    deck_configs: dict[int, AnkiDeckConfig] = Field(default_factory=dict)
    tags: str = "{}"
    notes: list[AnkiNote] = Field(default_factory=list)
    cards: list[AnkiCard] = Field(default_factory=list)
    revlog: list[AnkiReviewLog] = Field(default_factory=list)
    graves: list[AnkiGrave] = Field(default_factory=list)
