"""
Pull structured data out of free-form model output.

The vision prompts ask for a bare JSON array, but models often wrap it in
prose or Markdown fences. The first bracket/brace delimited value is located,
parsed, classified (payload vs. "nothing detected" sentinel) and normalized.
"""

import json
import logging
import math
import re
from typing import Any, List, Optional

import jsonschema

from shelfscan.errors import MalformedResponse, NotFound
from shelfscan.models import ExtractedBook

logger = logging.getLogger(__name__)

# Greedy across newlines: from the first '[' or '{' to the last matching closer
JSON_PATTERN = re.compile(r"(\[.*\]|\{.*\})", re.DOTALL)

BOOK_LIST_SCHEMA = {
    "type": "array",
    "items": {"type": "object"},
}

TITLE_LIST_SCHEMA = {
    "type": "array",
    "items": {"type": "string"},
}

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_AUTHOR = "Unknown Author"


def _looks_like_payload(value: Any) -> bool:
    if isinstance(value, dict):
        return True
    if isinstance(value, list):
        return all(isinstance(v, (dict, str)) for v in value)
    return False


def find_json_payload(text: str) -> Any:
    """Return the first JSON array or object embedded in ``text``.

    The greedy match is tried first. When it does not parse (prose before the
    payload contained brackets of its own) every '[' / '{' from the match
    onwards is tried with a streaming decoder and the first array of
    objects/strings or object wins.
    """
    cleaned = (text or "").replace("```json", "").replace("```", "")
    match = JSON_PATTERN.search(cleaned)
    if not match:
        raise MalformedResponse("No JSON found in response")
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.debug("Greedy JSON match did not parse (%s); scanning for balanced values", e)

    decoder = json.JSONDecoder()
    for pos in range(match.start(), len(cleaned)):
        if cleaned[pos] not in "[{":
            continue
        try:
            value, _ = decoder.raw_decode(cleaned, pos)
        except json.JSONDecodeError:
            continue
        if _looks_like_payload(value):
            return value
    raise MalformedResponse("Could not parse JSON in response")


def _sentinel_message(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return str(value["error"]) if value.get("error") else None
    if isinstance(value, list) and value:
        if all(isinstance(v, dict) and v.get("error") and not v.get("title") for v in value):
            return str(value[0]["error"])
    return None


def classify_payload(value: Any) -> list:
    """Return ``value`` if it is a data array; raise NotFound / MalformedResponse otherwise."""
    message = _sentinel_message(value)
    if message is not None:
        raise NotFound(message)
    if not isinstance(value, list):
        raise MalformedResponse("Unexpected response format")
    return value


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "" or isinstance(value, (dict, list)):
        return None
    return str(value)


def _page_count(book: dict) -> Optional[int]:
    value = book.get("page_count") or book.get("pageCount")
    if not value or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return int(value)
    m = re.match(r"\s*(\d+)", str(value))
    return int(m.group(1)) if m else None


def to_extracted_book(book: dict) -> ExtractedBook:
    return ExtractedBook(
        title=_optional_str(book.get("title")) or UNKNOWN_TITLE,
        author=_optional_str(book.get("author")) or UNKNOWN_AUTHOR,
        isbn=_optional_str(book.get("isbn")),
        genre=_optional_str(book.get("genre")),
        page_count=_page_count(book),
    )


def extract_books(text: str) -> List[ExtractedBook]:
    books = classify_payload(find_json_payload(text))
    try:
        jsonschema.validate(instance=books, schema=BOOK_LIST_SCHEMA)
    except jsonschema.exceptions.ValidationError as e:
        raise MalformedResponse("Unexpected response format") from e
    return [to_extracted_book(book) for book in books]


def extract_titles(text: str) -> List[str]:
    titles = classify_payload(find_json_payload(text))
    try:
        jsonschema.validate(instance=titles, schema=TITLE_LIST_SCHEMA)
    except jsonschema.exceptions.ValidationError as e:
        raise MalformedResponse("Unexpected response format") from e
    return titles
