"""Integer codes of the legacy collection format and their named variants.

The integer encodings stay inside this module and the record codec; everything
else works with the enum members. Decoding is permissive: an unknown code maps
to the default variant of its enum, as older clients do. The one exception is
encoding a "Hard" answer for a card that was not in review, which has no code.
"""

from __future__ import annotations

from enum import Enum
from typing import Generic, TypeVar

from packages.common.exceptions import InvalidValueError

E = TypeVar("E", bound=Enum)


class CardType(Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


class CardQueue(Enum):
    USER_BURIED = "user_buried"
    BURIED = "buried"
    SUSPENDED = "suspended"
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    IN_LEARNING = "in_learning"
    PREVIEW = "preview"


class ModelType(Enum):
    STANDARD = "standard"
    CLOZE = "cloze"


class LeechAction(Enum):
    SUSPEND = "suspend"
    MARK = "mark"


class NewOrder(Enum):
    RANDOM = "random"
    DUE = "due"


class NewSpread(Enum):
    DISTRIBUTE = "distribute"
    LAST = "last"
    FIRST = "first"


class GraveType(Enum):
    CARD = "card"
    NOTE = "note"
    DECK = "deck"


class ReviewAnswer(Enum):
    WRONG = "wrong"
    HARD = "hard"
    OK = "ok"
    EASY = "easy"


class IntCodec(Generic[E]):
    """Two-way mapping between an enum and its integer codes."""

    def __init__(self, codes: dict[E, int], default: E) -> None:
        self._to_code = dict(codes)
        self._from_code = {code: member for member, code in codes.items()}
        self.default = default

    def decode(self, code: int) -> E:
        return self._from_code.get(code, self.default)

    def encode(self, member: E) -> int:
        return self._to_code[member]


CARD_TYPE = IntCodec(
    {
        CardType.NEW: 0,
        CardType.LEARNING: 1,
        CardType.REVIEW: 2,
        CardType.RELEARNING: 3,
    },
    default=CardType.NEW,
)

CARD_QUEUE = IntCodec(
    {
        CardQueue.USER_BURIED: -3,
        CardQueue.BURIED: -2,
        CardQueue.SUSPENDED: -1,
        CardQueue.NEW: 0,
        CardQueue.LEARNING: 1,
        CardQueue.REVIEW: 2,
        CardQueue.IN_LEARNING: 3,
        CardQueue.PREVIEW: 4,
    },
    default=CardQueue.NEW,
)

MODEL_TYPE = IntCodec({ModelType.STANDARD: 0, ModelType.CLOZE: 1}, default=ModelType.STANDARD)

LEECH_ACTION = IntCodec({LeechAction.SUSPEND: 0, LeechAction.MARK: 1}, default=LeechAction.SUSPEND)

NEW_ORDER = IntCodec({NewOrder.RANDOM: 0, NewOrder.DUE: 1}, default=NewOrder.RANDOM)

NEW_SPREAD = IntCodec(
    {NewSpread.DISTRIBUTE: 0, NewSpread.LAST: 1, NewSpread.FIRST: 2},
    default=NewSpread.DISTRIBUTE,
)

GRAVE_TYPE = IntCodec(
    {GraveType.CARD: 0, GraveType.NOTE: 1, GraveType.DECK: 2},
    default=GraveType.CARD,
)

# Review cards have four answer buttons, learning cards only three.
_REVIEW_ANSWER = IntCodec(
    {
        ReviewAnswer.WRONG: 1,
        ReviewAnswer.HARD: 2,
        ReviewAnswer.OK: 3,
        ReviewAnswer.EASY: 4,
    },
    default=ReviewAnswer.WRONG,
)
_LEARNING_ANSWER = IntCodec(
    {ReviewAnswer.WRONG: 1, ReviewAnswer.OK: 2, ReviewAnswer.EASY: 3},
    default=ReviewAnswer.WRONG,
)


def decode_review_answer(code: int, was_review_card: bool) -> ReviewAnswer:
    """Decode the answer button stored in a review log row."""
    codec = _REVIEW_ANSWER if was_review_card else _LEARNING_ANSWER
    return codec.decode(code)


def encode_review_answer(answer: ReviewAnswer, was_review_card: bool) -> int:
    """Encode an answer button for a review log row.

    Raises:
        InvalidValueError: ``answer`` is HARD and the card was not in review.
    """
    if was_review_card:
        return _REVIEW_ANSWER.encode(answer)
    if answer is ReviewAnswer.HARD:
        raise InvalidValueError(
            "Answer 'hard' has no encoding for a card outside the review phase",
            context={"answer": answer.value, "was_review_card": was_review_card},
        )
    return _LEARNING_ANSWER.encode(answer)
