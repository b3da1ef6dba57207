"""JSON documents stored in the ``col`` row.

The ``conf``, ``models``, ``decks`` and ``dconf`` columns each hold one JSON
document. Every value is looked up by its legacy key; required keys that are
missing or of the wrong type raise ``MalformedDocumentError`` naming the key
and the structure it belongs to. Keys this module does not know are kept in
the ``extra`` mapping of the owning model and written back unchanged.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any, TypeVar

from packages.apkg.enums import LEECH_ACTION, MODEL_TYPE, NEW_ORDER, NEW_SPREAD
from packages.apkg.models import (
    DEFAULT_ACTIVE_COLS,
    AnkiDeck,
    AnkiDeckConfig,
    AnkiModel,
    LapseConfig,
    ModelField,
    ModelTemplate,
    NewConfig,
    Number,
    ReviewConfig,
    SyncConfig,
    TemplateRequirement,
)
from packages.common.exceptions import InvalidValueError, MalformedDocumentError

T = TypeVar("T")

_MISSING = object()

_DECIMAL_ID = re.compile(r"-?[0-9]+")


def _is_int(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _parse_decimal_id(value: str) -> int | None:
    if _DECIMAL_ID.fullmatch(value):
        return int(value)
    return None


class _ObjectReader:
    """Typed access to one JSON object, remembering which keys were consumed."""

    def __init__(self, value: Any, structure: str) -> None:
        if not isinstance(value, dict):
            raise MalformedDocumentError(
                f"{structure} is not a JSON object",
                context={"structure": structure},
            )
        self._obj: dict[str, Any] = value
        self._seen: set[str] = set()
        self.structure = structure

    def fail(self, key: str, problem: str = "is missing or has the wrong type") -> MalformedDocumentError:
        return MalformedDocumentError(
            f"{self.structure} field '{key}' {problem}",
            context={"structure": self.structure, "field": key},
        )

    def _get(self, key: str) -> Any:
        self._seen.add(key)
        return self._obj.get(key, _MISSING)

    def _required(self, key: str, check: Callable[[Any], bool]) -> Any:
        value = self._get(key)
        if value is _MISSING or not check(value):
            raise self.fail(key)
        return value

    def _optional(self, key: str, check: Callable[[Any], bool]) -> Any:
        value = self._get(key)
        if value is _MISSING or value is None:
            return None
        if not check(value):
            raise self.fail(key, "has the wrong type")
        return value

    def skip(self, *keys: str) -> None:
        """Mark keys as known without reading them."""
        self._seen.update(keys)

    def integer(self, key: str) -> int:
        return int(self._required(key, _is_int))

    def optional_integer(self, key: str) -> int | None:
        value = self._optional(key, _is_int)
        return None if value is None else int(value)

    def number(self, key: str) -> Number:
        return self._required(key, _is_number)

    def optional_number(self, key: str) -> Number | None:
        return self._optional(key, _is_number)

    def string(self, key: str) -> str:
        return self._required(key, lambda v: isinstance(v, str))

    def optional_string(self, key: str) -> str | None:
        return self._optional(key, lambda v: isinstance(v, str))

    def boolean(self, key: str) -> bool:
        return self._required(key, lambda v: isinstance(v, bool))

    def optional_boolean(self, key: str) -> bool | None:
        return self._optional(key, lambda v: isinstance(v, bool))

    def identifier(self, key: str, *, required: bool = True) -> int | None:
        """Integer id that some clients store as a decimal string."""
        value = self._get(key)
        if value is _MISSING or value is None:
            if required:
                raise self.fail(key)
            return None
        if _is_int(value):
            return int(value)
        if isinstance(value, str):
            parsed = _parse_decimal_id(value)
            if parsed is not None:
                return parsed
        raise self.fail(key)

    def array(self, key: str) -> list[Any]:
        return self._required(key, lambda v: isinstance(v, list))

    def optional_array(self, key: str) -> list[Any] | None:
        return self._optional(key, lambda v: isinstance(v, list))

    def int_list(self, key: str) -> list[int]:
        values = self.array(key)
        if not all(_is_int(v) for v in values):
            raise self.fail(key, "contains a non-integer")
        return [int(v) for v in values]

    def number_list(self, key: str) -> list[Number]:
        values = self.array(key)
        if not all(_is_number(v) for v in values):
            raise self.fail(key, "contains a non-number")
        return list(values)

    def pair(self, key: str) -> tuple[int, int]:
        values = self.array(key)
        if len(values) != 2:
            raise self.fail(key, "must have exactly 2 elements")
        for index, v in enumerate(values):
            if not _is_int(v):
                raise self.fail(key, f"element {index} is not an integer")
        return int(values[0]), int(values[1])

    def raw(self, key: str) -> Any:
        return self._get(key)

    def extra(self) -> dict[str, Any]:
        """Keys present in the object that were never read."""
        return {k: v for k, v in self._obj.items() if k not in self._seen}


def _load(text: str | bytes, structure: str) -> Any:
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedDocumentError(
            f"{structure} is not valid JSON: {e}",
            context={"structure": structure},
        ) from e


def _dump(document: Any) -> str:
    return json.dumps(document, ensure_ascii=False, separators=(",", ":"))


def _with_extra(extra: dict[str, Any], known: dict[str, Any]) -> dict[str, Any]:
    document = dict(extra)
    document.update(known)
    return document


def _parse_keyed(
    text: str | bytes,
    structure: str,
    build: Callable[[int, Any], T],
) -> dict[int, T]:
    """Parse a JSON object keyed by decimal ids into an id -> value mapping."""
    parsed = _load(text, structure)
    if not isinstance(parsed, dict):
        raise MalformedDocumentError(
            f"{structure} is not a JSON object at top level",
            context={"structure": structure},
        )

    result: dict[int, T] = {}
    for key, value in parsed.items():
        key_id = _parse_decimal_id(key) if isinstance(key, str) else None
        if key_id is None:
            raise MalformedDocumentError(
                f"{structure} key '{key}' is not an integer id",
                context={"structure": structure, "field": key},
            )
        if key_id in result:
            raise MalformedDocumentError(
                f"{structure} key '{key}' duplicates id {key_id}",
                context={"structure": structure, "field": key},
            )
        result[key_id] = build(key_id, value)
    return result


def _serialize_keyed(
    values: dict[int, T],
    structure: str,
    to_json: Callable[[T], tuple[int, dict[str, Any]]],
) -> str:
    document: dict[str, Any] = {}
    for value in values.values():
        key_id, entry = to_json(value)
        key = str(key_id)
        if key in document:
            raise InvalidValueError(
                f"{structure} has two entries with key {key}",
                context={"structure": structure, "field": key},
            )
        document[key] = entry
    return _dump(document)


# ---------------------------------------------------------------------------
# Sync config (col.conf)
# ---------------------------------------------------------------------------


def sync_config_from_json(value: Any) -> SyncConfig:
    r = _ObjectReader(value, "SyncConfig")

    active_cols = list(DEFAULT_ACTIVE_COLS)
    cols = r.optional_array("activeCols")
    if cols is not None:
        if not all(isinstance(c, str) for c in cols):
            raise r.fail("activeCols", "contains a non-string")
        active_cols = list(cols)

    return SyncConfig(
        current_deck=r.integer("curDeck"),
        active_decks=r.int_list("activeDecks"),
        new_spread=NEW_SPREAD.decode(r.integer("newSpread")),
        collapse_time=r.integer("collapseTime"),
        time_limit=r.integer("timeLim"),
        estimated_times=r.boolean("estTimes"),
        due_counts=r.boolean("dueCounts"),
        current_model=r.identifier("curModel"),
        next_pos=r.integer("nextPos"),
        sort_type=r.optional_string("sortType"),
        sort_backwards=r.boolean("sortBackwards"),
        add_to_current=r.boolean("addToCur"),
        day_learn_first=r.boolean("dayLearnFirst"),
        new_bury=r.optional_boolean("newBury"),
        last_unburied=r.optional_integer("lastUnburied"),
        active_cols=active_cols,
        extra=r.extra(),
    )


def sync_config_to_json(config: SyncConfig) -> dict[str, Any]:
    known: dict[str, Any] = {
        "curDeck": config.current_deck,
        "activeDecks": list(config.active_decks),
        "newSpread": NEW_SPREAD.encode(config.new_spread),
        "collapseTime": config.collapse_time,
        "timeLim": config.time_limit,
        "estTimes": config.estimated_times,
        "dueCounts": config.due_counts,
        "curModel": config.current_model,
        "nextPos": config.next_pos,
        "sortBackwards": config.sort_backwards,
        "addToCur": config.add_to_current,
        "dayLearnFirst": config.day_learn_first,
        "activeCols": list(config.active_cols),
    }
    if config.sort_type is not None:
        known["sortType"] = config.sort_type
    if config.new_bury is not None:
        known["newBury"] = config.new_bury
    if config.last_unburied is not None:
        known["lastUnburied"] = config.last_unburied
    return _with_extra(config.extra, known)


def parse_sync_config(text: str | bytes) -> SyncConfig:
    """Parse the ``col.conf`` document."""
    return sync_config_from_json(_load(text, "SyncConfig"))


def serialize_sync_config(config: SyncConfig) -> str:
    return _dump(sync_config_to_json(config))


# ---------------------------------------------------------------------------
# Models (col.models)
# ---------------------------------------------------------------------------


def field_from_json(value: Any, structure: str = "Field") -> ModelField:
    r = _ObjectReader(value, structure)
    return ModelField(
        name=r.string("name"),
        ordinal=r.integer("ord"),
        font=r.string("font"),
        font_size=r.integer("size"),
        right_to_left=bool(r.optional_boolean("rtl")),
        sticky=bool(r.optional_boolean("sticky")),
        extra=r.extra(),
    )


def field_to_json(field: ModelField) -> dict[str, Any]:
    return _with_extra(
        field.extra,
        {
            "font": field.font,
            "name": field.name,
            "ord": field.ordinal,
            "rtl": field.right_to_left,
            "size": field.font_size,
            "sticky": field.sticky,
        },
    )


def template_from_json(value: Any, structure: str = "Template") -> ModelTemplate:
    r = _ObjectReader(value, structure)
    return ModelTemplate(
        name=r.string("name"),
        ordinal=r.integer("ord"),
        question_format=r.string("qfmt"),
        answer_format=r.string("afmt"),
        browser_question_format=r.string("bqfmt"),
        browser_answer_format=r.string("bafmt"),
        deck_override=r.identifier("did", required=False),
        extra=r.extra(),
    )


def template_to_json(template: ModelTemplate) -> dict[str, Any]:
    known: dict[str, Any] = {
        "afmt": template.answer_format,
        "bafmt": template.browser_answer_format,
        "bqfmt": template.browser_question_format,
        "name": template.name,
        "ord": template.ordinal,
        "qfmt": template.question_format,
    }
    if template.deck_override is not None:
        known["did"] = template.deck_override
    return _with_extra(template.extra, known)


def requirement_from_json(value: Any, structure: str = "Requirement") -> TemplateRequirement:
    """Parse one ``[ordinal, mode, [field indices]]`` triple."""

    def fail(problem: str, position: int | None = None) -> MalformedDocumentError:
        context: dict[str, object] = {"structure": structure}
        if position is not None:
            context["position"] = position
        return MalformedDocumentError(f"{structure} {problem}", context=context)

    if not isinstance(value, list):
        raise fail("is not an array")
    if len(value) < 3:
        raise fail(f"has {len(value)} elements, expected 3")

    ordinal, mode, indices = value[0], value[1], value[2]
    if not _is_int(ordinal):
        raise fail("element 0 (template ordinal) is not an integer", 0)
    if not isinstance(mode, str):
        raise fail("element 1 (mode) is not a string", 1)
    if not isinstance(indices, list):
        raise fail("element 2 (field indices) is not an array", 2)
    if not all(_is_int(i) for i in indices):
        raise fail("element 2 (field indices) contains a non-integer", 2)

    return TemplateRequirement(
        ordinal=int(ordinal),
        mode=mode,
        field_indices=[int(i) for i in indices],
    )


def requirement_to_json(req: TemplateRequirement) -> list[Any]:
    return [req.ordinal, req.mode, list(req.field_indices)]


def model_from_json(epoch: int, value: Any) -> AnkiModel:
    """Build a model from its JSON object and the key it was stored under."""
    structure = f"Model {epoch}"
    r = _ObjectReader(value, structure)

    model = AnkiModel(
        epoch=epoch,
        id=r.integer("id"),
        name=r.string("name"),
        css=r.string("css"),
        latex_pre=r.string("latexPre"),
        latex_post=r.string("latexPost"),
        modified=r.integer("mod"),
        usn=r.integer("usn"),
        sort_field=r.integer("sortf"),
        type=MODEL_TYPE.decode(r.integer("type")),
        deck_id=r.identifier("did", required=False),
        tags=r.optional_array("tags") or [],
        vers=r.optional_array("vers") or [],
    )

    model.fields = [
        field_from_json(item, f"{structure} field {i}")
        for i, item in enumerate(r.array("flds"))
    ]
    model.templates = [
        template_from_json(item, f"{structure} template {i}")
        for i, item in enumerate(r.array("tmpls"))
    ]

    raw_req = r.optional_array("req")
    if raw_req is not None:
        model.req = [
            requirement_from_json(item, f"{structure} req[{i}]")
            for i, item in enumerate(raw_req)
        ]

    model.extra = r.extra()
    return model


def model_to_json(model: AnkiModel) -> tuple[int, dict[str, Any]]:
    """Return the collection key and JSON object for a model."""
    known: dict[str, Any] = {
        "css": model.css,
        "id": model.id,
        "latexPost": model.latex_post,
        "latexPre": model.latex_pre,
        "mod": model.modified,
        "name": model.name,
        "sortf": model.sort_field,
        "tags": list(model.tags),
        "type": MODEL_TYPE.encode(model.type),
        "usn": model.usn,
        "vers": list(model.vers),
        "flds": [field_to_json(f) for f in model.fields],
        "tmpls": [template_to_json(t) for t in model.templates],
    }
    if model.deck_id is not None:
        known["did"] = model.deck_id
    if model.req is not None:
        known["req"] = [requirement_to_json(r) for r in model.req]
    return model.epoch, _with_extra(model.extra, known)


def parse_models(text: str | bytes) -> dict[int, AnkiModel]:
    """Parse the ``col.models`` document into epoch -> model."""
    return _parse_keyed(text, "Models", model_from_json)


def serialize_models(models: dict[int, AnkiModel]) -> str:
    return _serialize_keyed(models, "Models", model_to_json)


# ---------------------------------------------------------------------------
# Decks (col.decks)
# ---------------------------------------------------------------------------


def deck_from_json(epoch: int, value: Any) -> AnkiDeck:
    r = _ObjectReader(value, f"Deck {epoch}")

    extended_review = r.optional_integer("extendRev")
    if extended_review is None:
        # Older writers used this key; when both exist it stays in extra
        extended_review = r.optional_integer("extended_rev")
    extended_new = r.optional_integer("extendNew")

    dynamic = r.integer("dyn")
    # Filtered decks have no options group
    config_id = r.integer("conf") if dynamic == 0 else r.optional_integer("conf")

    return AnkiDeck(
        epoch=epoch,
        id=r.integer("id"),
        name=r.string("name"),
        description=r.string("desc"),
        modified=r.integer("mod"),
        usn=r.integer("usn"),
        collapsed=r.boolean("collapsed"),
        browser_collapsed=r.boolean("browserCollapsed"),
        dynamic=dynamic,
        config_id=config_id,
        extended_new_limit=10 if extended_new is None else extended_new,
        extended_review_limit=10 if extended_review is None else extended_review,
        new_today=r.pair("newToday"),
        learned_today=r.pair("lrnToday"),
        reviewed_today=r.pair("revToday"),
        extra=r.extra(),
    )


def deck_to_json(deck: AnkiDeck) -> tuple[int, dict[str, Any]]:
    known: dict[str, Any] = {
        "name": deck.name,
        "extendRev": deck.extended_review_limit,
        "usn": deck.usn,
        "collapsed": deck.collapsed,
        "browserCollapsed": deck.browser_collapsed,
        "newToday": list(deck.new_today),
        "revToday": list(deck.reviewed_today),
        "lrnToday": list(deck.learned_today),
        "dyn": deck.dynamic,
        "extendNew": deck.extended_new_limit,
        "id": deck.id,
        "mod": deck.modified,
        "desc": deck.description,
    }
    if deck.config_id is not None:
        known["conf"] = deck.config_id
    return deck.epoch, _with_extra(deck.extra, known)


def parse_decks(text: str | bytes) -> dict[int, AnkiDeck]:
    """Parse the ``col.decks`` document into epoch -> deck."""
    return _parse_keyed(text, "Decks", deck_from_json)


def serialize_decks(decks: dict[int, AnkiDeck]) -> str:
    return _serialize_keyed(decks, "Decks", deck_to_json)


# ---------------------------------------------------------------------------
# Deck configs (col.dconf)
# ---------------------------------------------------------------------------


def new_config_from_json(value: Any, structure: str = "new") -> NewConfig:
    r = _ObjectReader(value, structure)
    separate = r.raw("separate")
    if separate is not _MISSING and separate is not None and not isinstance(separate, bool | int):
        raise r.fail("separate", "has the wrong type")
    return NewConfig(
        bury=r.boolean("bury"),
        delays=r.number_list("delays"),
        initial_factor=r.integer("initialFactor"),
        intervals=r.int_list("ints"),
        order=NEW_ORDER.decode(r.integer("order")),
        per_day=r.integer("perDay"),
        separate=None if separate is _MISSING else separate,
        extra=r.extra(),
    )


def new_config_to_json(config: NewConfig) -> dict[str, Any]:
    known: dict[str, Any] = {
        "bury": config.bury,
        "delays": list(config.delays),
        "initialFactor": config.initial_factor,
        "ints": list(config.intervals),
        "order": NEW_ORDER.encode(config.order),
        "perDay": config.per_day,
    }
    if config.separate is not None:
        known["separate"] = config.separate
    return _with_extra(config.extra, known)


def review_config_from_json(value: Any, structure: str = "rev") -> ReviewConfig:
    r = _ObjectReader(value, structure)
    return ReviewConfig(
        bury=r.boolean("bury"),
        ease4=r.number("ease4"),
        fuzz=r.optional_number("fuzz"),
        interval_factor=r.number("ivlFct"),
        max_interval=r.number("maxIvl"),
        per_day=r.integer("perDay"),
        extra=r.extra(),
    )


def review_config_to_json(config: ReviewConfig) -> dict[str, Any]:
    known: dict[str, Any] = {
        "bury": config.bury,
        "ease4": config.ease4,
        "ivlFct": config.interval_factor,
        "maxIvl": config.max_interval,
        "perDay": config.per_day,
    }
    if config.fuzz is not None:
        known["fuzz"] = config.fuzz
    return _with_extra(config.extra, known)


def lapse_config_from_json(value: Any, structure: str = "lapse") -> LapseConfig:
    r = _ObjectReader(value, structure)
    return LapseConfig(
        delays=r.number_list("delays"),
        leech_action=LEECH_ACTION.decode(r.integer("leechAction")),
        leech_fails=r.integer("leechFails"),
        min_interval=r.integer("minInt"),
        mult=r.number("mult"),
        extra=r.extra(),
    )


def lapse_config_to_json(config: LapseConfig) -> dict[str, Any]:
    return _with_extra(
        config.extra,
        {
            "delays": list(config.delays),
            "leechAction": LEECH_ACTION.encode(config.leech_action),
            "leechFails": config.leech_fails,
            "minInt": config.min_interval,
            "mult": config.mult,
        },
    )


def deck_config_from_json(config_id: int, value: Any) -> AnkiDeckConfig:
    structure = f"DeckConfig {config_id}"
    r = _ObjectReader(value, structure)
    # The key is authoritative; a duplicated "id" must agree with it
    inner_id = r.identifier("id", required=False)
    if inner_id is not None and inner_id != config_id:
        raise r.fail("id", f"is {inner_id} but the key is {config_id}")

    def sub(key: str, build: Callable[[Any, str], T]) -> T | None:
        raw = r.raw(key)
        if raw is _MISSING or raw is None:
            return None
        return build(raw, f"{structure} {key}")

    return AnkiDeckConfig(
        id=config_id,
        name=r.string("name"),
        autoplay=r.boolean("autoplay"),
        dynamic=r.boolean("dyn"),
        max_taken=r.integer("maxTaken"),
        modified=r.integer("mod"),
        replay_audio=r.boolean("replayq"),
        timer=r.integer("timer"),
        usn=r.integer("usn"),
        new=sub("new", new_config_from_json),
        review=sub("rev", review_config_from_json),
        lapse=sub("lapse", lapse_config_from_json),
        extra=r.extra(),
    )


def deck_config_to_json(config: AnkiDeckConfig) -> tuple[int, dict[str, Any]]:
    known: dict[str, Any] = {
        "autoplay": config.autoplay,
        "dyn": config.dynamic,
        "id": config.id,
        "maxTaken": config.max_taken,
        "mod": config.modified,
        "name": config.name,
        "replayq": config.replay_audio,
        "timer": config.timer,
        "usn": config.usn,
    }
    if config.new is not None:
        known["new"] = new_config_to_json(config.new)
    if config.review is not None:
        known["rev"] = review_config_to_json(config.review)
    if config.lapse is not None:
        known["lapse"] = lapse_config_to_json(config.lapse)
    return config.id, _with_extra(config.extra, known)


def parse_deck_configs(text: str | bytes) -> dict[int, AnkiDeckConfig]:
    """Parse the ``col.dconf`` document into id -> deck config."""
    return _parse_keyed(text, "DeckConfigs", deck_config_from_json)


def serialize_deck_configs(configs: dict[int, AnkiDeckConfig]) -> str:
    return _serialize_keyed(configs, "DeckConfigs", deck_config_to_json)
