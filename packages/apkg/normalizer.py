"""Derived note columns: sort field text and first-field checksum."""

import hashlib
import html
import re

from packages.apkg.models import AnkiModel, AnkiNote

# Regex patterns
COMMENT_PATTERN = re.compile(r"<!--.*?-->", re.DOTALL)
STYLE_PATTERN = re.compile(r"<style.*?>.*?</style>", re.DOTALL | re.IGNORECASE)
SCRIPT_PATTERN = re.compile(r"<script.*?>.*?</script>", re.DOTALL | re.IGNORECASE)
HTML_TAG_PATTERN = re.compile(r"<.*?>", re.DOTALL)
IMG_SRC_PATTERN = re.compile(r"""(?i)<img[^>]+src=["']?([^"'>]+)["']?[^>]*>""")


def strip_html(text: str) -> str:
    """Strip comments, style and script blocks, and tags, then decode entities."""
    if not text:
        return ""

    result = COMMENT_PATTERN.sub("", text)
    result = STYLE_PATTERN.sub("", result)
    result = SCRIPT_PATTERN.sub("", result)
    result = HTML_TAG_PATTERN.sub("", result)
    result = result.replace("&nbsp;", " ")
    result = html.unescape(result)

    return result.strip()


def strip_html_media(text: str) -> str:
    """Strip HTML but keep image filenames, so image-only fields still differ."""
    return strip_html(IMG_SRC_PATTERN.sub(r" \1 ", text))


def field_checksum(text: str) -> int:
    """Checksum of a field used for duplicate detection.

    The first 8 hex digits of the SHA-1 of the stripped field, as an integer.
    """
    digest = hashlib.sha1(strip_html_media(text).encode("utf-8")).hexdigest()
    return int(digest[:8], 16)


def sort_field_text(note: AnkiNote, model: AnkiModel) -> str:
    """Text of the model's sort field for a note, stripped of HTML."""
    index = model.sort_field
    if not 0 <= index < len(note.fields):
        index = 0
    return strip_html_media(note.fields[index]) if note.fields else ""


def refresh_note_caches(note: AnkiNote, model: AnkiModel) -> AnkiNote:
    """Recompute ``sort_field`` and ``checksum`` after field values change."""
    note.sort_field = sort_field_text(note, model)
    note.checksum = field_checksum(note.fields[0]) if note.fields else 0
    return note
